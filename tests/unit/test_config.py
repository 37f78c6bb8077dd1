"""Tests for FitConfig and the configuration manager."""

from __future__ import annotations

import json
import logging

import pytest
import yaml

from peakfit.config import ConfigManager, load_fit_config
from peakfit.optimization.config import FitConfig


@pytest.fixture
def peakfit_logger_level():
    """Restore the package log level after a test changes it."""
    root = logging.getLogger("peakfit")
    level = root.level
    yield root
    root.setLevel(level)


class TestFitConfig:
    """Tests for the FitConfig dataclass."""

    def test_defaults(self):
        """Test the default solver settings."""
        config = FitConfig()

        assert config.solver == "lvm"
        assert config.initial_lambda == 0.01
        assert config.lambda_decrease_factor == 0.1
        assert config.lambda_increase_factor == 10.0
        assert config.max_iterations == 20
        assert config.stopping_criteria == "error"
        assert config.search_method == "powell"
        assert config.max_evaluations == 2000
        assert config.clamp_values is None
        assert config.is_valid()

    def test_from_dict(self, test_config):
        """Test the nested file layout is parsed."""
        config = FitConfig.from_dict(test_config["fitting"])

        assert config.solver == "bounded"
        assert config.max_iterations == 50
        assert config.significant_digits == 6
        assert config.clamp_values == [10, 1000, 1, 1, 0.5, 0.5]
        assert config.dynamic_clamp is True
        assert config.lower_bounds == [0, 0, 0, 0, 0.5, 0.5]
        assert config.search_method == "powell_bounded"
        assert config.max_evaluations == 5000
        assert config.is_valid()

    def test_from_dict_normalises_names(self):
        """Test solver and method names are lower-cased."""
        config = FitConfig.from_dict({"solver": "MLE", "mle": {"search_method": "CMAES"}})
        assert config.solver == "mle"
        assert config.search_method == "cmaes"

    def test_from_dict_warns_on_invalid(self, caplog):
        """Test validation problems are logged as warnings."""
        caplog.set_level(logging.WARNING)

        config = FitConfig.from_dict({"solver": "simplex", "lvm": {"initial_lambda": -1}})

        assert not config.is_valid()
        assert "solver must be one of" in caplog.text
        assert "initial_lambda must be positive" in caplog.text

    @pytest.mark.parametrize(
        "overrides, message",
        [
            ({"lambda_decrease_factor": 1.5}, "lambda_decrease_factor"),
            ({"lambda_increase_factor": 0.5}, "lambda_increase_factor"),
            ({"max_iterations": 0}, "max_iterations"),
            ({"stopping_criteria": "gradient"}, "stopping_criteria"),
            ({"significant_digits": 0}, "significant_digits"),
            ({"local_search": -1.0}, "local_search"),
            ({"lower_bounds": [0, 0], "upper_bounds": [1]}, "same length"),
            ({"search_method": "simplex"}, "search_method"),
            ({"max_evaluations": 0}, "max_evaluations"),
            ({"relative_tolerance": 0.0}, "relative_tolerance"),
        ],
    )
    def test_validate(self, overrides, message):
        """Test each invalid setting is reported."""
        errors = FitConfig(**overrides).validate()
        assert any(message in error for error in errors)

    def test_to_dict_round_trip(self, test_config):
        """Test to_dict produces the layout from_dict reads."""
        config = FitConfig.from_dict(test_config["fitting"])

        again = FitConfig.from_dict(config.to_dict())

        assert again.to_dict() == config.to_dict()


class TestConfigManager:
    """Tests for ConfigManager."""

    def test_load_yaml(self, temp_dir, test_config):
        """Test loading a YAML file."""
        path = temp_dir / "fit.yaml"
        path.write_text(yaml.safe_dump(test_config))

        manager = ConfigManager(str(path))

        assert manager.get_config()["fitting"]["solver"] == "bounded"
        assert manager.get_fit_config().max_iterations == 50

    def test_load_json(self, temp_dir, test_config):
        """Test loading a JSON file."""
        path = temp_dir / "fit.json"
        path.write_text(json.dumps(test_config))

        fit_config = load_fit_config(str(path))

        assert fit_config.solver == "bounded"
        assert fit_config.search_method == "powell_bounded"

    def test_missing_file_uses_defaults(self, temp_dir, caplog):
        """Test a missing file falls back to the default configuration."""
        caplog.set_level(logging.INFO)

        manager = ConfigManager(str(temp_dir / "missing.yaml"))

        assert manager.get_config()["metadata"]["description"] == "Default configuration"
        assert manager.get_fit_config().to_dict() == FitConfig().to_dict()
        assert "Using default configuration" in caplog.text

    def test_invalid_yaml_uses_defaults(self, temp_dir):
        """Test an unparsable file falls back to the default configuration."""
        path = temp_dir / "broken.yaml"
        path.write_text("fitting: [unclosed\n")

        manager = ConfigManager(str(path))

        assert manager.get_fit_config().solver == "lvm"

    def test_empty_file(self, temp_dir):
        """Test an empty file gives an empty configuration."""
        path = temp_dir / "empty.yaml"
        path.write_text("")

        manager = ConfigManager(str(path))

        assert manager.get_config() == {}
        assert manager.get_fit_config().solver == "lvm"

    def test_override(self, test_config):
        """Test override data is used instead of a file."""
        manager = ConfigManager(config_override=test_config)
        assert manager.get_fit_config().solver == "bounded"

    def test_unknown_section_warns(self, caplog):
        """Test unknown sections are reported."""
        caplog.set_level(logging.WARNING)

        ConfigManager(config_override={"fitting": {}, "plotting": {}})

        assert "Unknown configuration section: 'plotting'" in caplog.text

    def test_missing_fitting_warns(self, caplog):
        """Test a configuration without a fitting section is reported."""
        caplog.set_level(logging.WARNING)

        ConfigManager(config_override={"logging": {"level": "INFO"}})

        assert "Missing recommended section: fitting" in caplog.text

    def test_update_config(self):
        """Test dot-notation updates create nested keys."""
        manager = ConfigManager(config_override={"fitting": {"solver": "lvm"}})

        manager.update_config("fitting.lvm.max_iterations", 75)
        manager.update_config("fitting.solver", "bounded")

        fit_config = manager.get_fit_config()
        assert fit_config.max_iterations == 75
        assert fit_config.solver == "bounded"

    def test_apply_logging_config(self, test_config, peakfit_logger_level):
        """Test the logging section sets the package log level."""
        manager = ConfigManager(config_override=test_config)

        manager.apply_logging_config()

        assert peakfit_logger_level.level == logging.WARNING
