"""Configuration Management for PeakFit
====================================

YAML/JSON configuration loading. The ``fitting`` section is parsed into a
:class:`~peakfit.optimization.config.FitConfig`; the ``logging`` section
sets the package log level.
"""

import json
from pathlib import Path
from typing import Any

import yaml

from peakfit.optimization.config import FitConfig
from peakfit.utils.logging import configure_logging, get_logger, log_operation

logger = get_logger(__name__)

KNOWN_SECTIONS = ["metadata", "fitting", "logging"]


class ConfigManager:
    """Configuration manager for peak fitting runs.

    Key Features:
    - YAML/JSON configuration file loading
    - Dot-notation updates
    - Fallback to defaults when the file cannot be read

    Usage:
        config_manager = ConfigManager('fit.yaml')
        fit_config = config_manager.get_fit_config()
    """

    def __init__(
        self,
        config_file: str = "peakfit_config.yaml",
        config_override: dict[str, Any] | None = None,
    ):
        """Initialize configuration manager.

        Parameters
        ----------
        config_file : str
            Path to YAML/JSON configuration file
        config_override : dict, optional
            Override configuration data instead of loading from file
        """
        self.config_file = config_file
        self.config: dict[str, Any] | None = None

        if config_override is not None:
            self.config = config_override.copy()
            logger.info("Configuration loaded from override data")
            self._validate_config()
        else:
            self.load_config()

    def load_config(self) -> None:
        """Load and parse the YAML/JSON configuration file.

        Falls back to the default configuration if the file is missing or
        cannot be parsed.
        """
        config_path = Path(self.config_file)
        try:
            with log_operation(f"load configuration {config_path.name}", logger):
                with open(config_path, encoding="utf-8") as f:
                    if config_path.suffix.lower() == ".json":
                        self.config = json.load(f)
                    else:
                        self.config = yaml.safe_load(f)
        except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
            logger.error(f"Configuration error: {e}")
            logger.info("Using default configuration...")
            self.config = self._get_default_config()
            return

        if self.config is None:
            self.config = {}
        logger.info(f"Configuration loaded from: {self.config_file}")

        if isinstance(self.config, dict) and "metadata" in self.config:
            version = self.config["metadata"].get("config_version", "Unknown")
            logger.info(f"Configuration version: {version}")

        self._validate_config()

    def _get_default_config(self) -> dict[str, Any]:
        return {
            "metadata": {
                "config_version": "1.0",
                "description": "Default configuration",
            },
            "fitting": FitConfig().to_dict(),
            "logging": {"level": "INFO"},
        }

    def get_config(self) -> dict[str, Any]:
        return self.config

    def update_config(self, key: str, value: Any) -> None:
        """Update a configuration value using dot notation.

        Parameters
        ----------
        key : str
            Configuration key (supports dot notation like 'fitting.lvm.max_iterations')
        value : Any
            New value to set
        """
        keys = key.split(".")
        config_ref = self.config

        for k in keys[:-1]:
            if k not in config_ref:
                config_ref[k] = {}
            config_ref = config_ref[k]

        config_ref[keys[-1]] = value

    def get_fit_config(self) -> FitConfig:
        """Parse the ``fitting`` section into a FitConfig."""
        return FitConfig.from_dict(self.config.get("fitting") or {})

    def apply_logging_config(self) -> None:
        """Set the package log level from the ``logging`` section."""
        level = (self.config.get("logging") or {}).get("level", "INFO")
        configure_logging(str(level).upper())

    def _validate_config(self) -> None:
        if not self.config:
            logger.warning("Configuration is empty")
            return

        for section in self.config:
            if section not in KNOWN_SECTIONS:
                logger.warning(
                    f"Unknown configuration section: '{section}'. "
                    f"Known sections: {KNOWN_SECTIONS}"
                )

        if "fitting" not in self.config:
            logger.warning("Missing recommended section: fitting")

        logger.debug("Configuration validation completed")


def load_fit_config(config_path: str) -> FitConfig:
    """Load a configuration file and return its fitting settings."""
    return ConfigManager(config_path).get_fit_config()
