"""
PeakFit Test Suite
==================

Test Categories:
- Unit Tests: models, solvers, configuration and utilities
"""
