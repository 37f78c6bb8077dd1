"""Configuration system for the peakfit package."""

from peakfit.config.manager import ConfigManager, load_fit_config

__all__ = [
    "ConfigManager",
    "load_fit_config",
]
