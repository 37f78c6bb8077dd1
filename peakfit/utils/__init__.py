"""Utilities for the peakfit package."""

from peakfit.utils.logging import (
    configure_logging,
    get_logger,
    log_calls,
    log_operation,
    log_performance,
)

__all__ = [
    "get_logger",
    "configure_logging",
    "log_performance",
    "log_calls",
    "log_operation",
]
