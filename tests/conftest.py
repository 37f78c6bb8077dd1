"""
Pytest Configuration and Fixtures for PeakFit
=============================================

Shared fixtures, configuration, and test utilities for the entire test suite.
"""

import tempfile
from pathlib import Path

import numpy as np
import pytest

from peakfit.core.functions import CallableFunction
from peakfit.core.gaussian2d import create_function

# True coefficients of the standard test peak:
# background, signal, x, y, x_sd, y_sd
TRUE_PARAMETERS = np.array([5.0, 2000.0, 7.3, 8.6, 1.6, 1.9])
GRID_SIZE = 16

# 1D profile: background, amplitude, centre (fixed width)
PROFILE_TRUTH = np.array([2.0, 10.0, 0.5])
PROFILE_WIDTH = 1.5
PROFILE_X = np.linspace(-5.0, 5.0, 41)


# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests for individual components")
    config.addinivalue_line("markers", "integration: Integration tests for workflows")
    config.addinivalue_line("markers", "slow: Slow tests (> 5 seconds)")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


# ============================================================================
# Core Fixtures
# ============================================================================


@pytest.fixture
def temp_dir():
    """Temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def rng():
    """Seeded random generator for reproducible noise."""
    return np.random.default_rng(42)


# ============================================================================
# Test Data Fixtures
# ============================================================================


def _profile_values(a, x):
    return a[0] + a[1] * np.exp(-0.5 * ((x - a[2]) / PROFILE_WIDTH) ** 2)


def make_profile_function(indices=(0, 1, 2)):
    """Gaussian profile on a constant background, fitting ``indices``."""
    indices = list(indices)

    def jacobian(a, x):
        u = (x - a[2]) / PROFILE_WIDTH
        e = np.exp(-0.5 * u * u)
        full = np.column_stack([np.ones_like(x), e, a[1] * e * u / PROFILE_WIDTH])
        return full[:, indices]

    return CallableFunction(
        _profile_values,
        jacobian,
        PROFILE_X,
        indices,
        ["background", "amplitude", "centre"],
    )


def make_profile_data(parameters=PROFILE_TRUTH):
    """Noise-free profile values for ``parameters``."""
    return _profile_values(np.asarray(parameters, dtype=float), PROFILE_X)


def make_peak_image(parameters, fit_mode="free", integrated=True, size=GRID_SIZE):
    """Noise-free model image for ``parameters`` on a ``size x size`` grid."""
    function = create_function(size, size, fit_mode, integrated=integrated)
    function.initialise(np.asarray(parameters, dtype=float))
    return function.values(size * size)


@pytest.fixture(scope="module")
def true_parameters():
    """Coefficients used to synthesise the test images.

    Note: Module-scoped; tests must copy before modifying.
    """
    return TRUE_PARAMETERS.copy()


@pytest.fixture(scope="module")
def clean_image():
    """Noise-free integrated Gaussian image of the standard test peak."""
    return make_peak_image(TRUE_PARAMETERS)


@pytest.fixture(scope="module")
def poisson_image():
    """Poisson-sampled counts of the standard test peak."""
    expected = make_peak_image(TRUE_PARAMETERS)
    return np.random.default_rng(7).poisson(expected).astype(float)


@pytest.fixture
def initial_guess():
    """Starting coefficients a short distance from the truth."""
    return np.array([3.0, 1500.0, 8.0, 8.0, 2.0, 2.2])


@pytest.fixture(scope="module")
def test_config():
    """Basic configuration dictionary in file layout.

    Note: Module-scoped as config values are read-only during tests.
    """
    return {
        "metadata": {"config_version": "1.0"},
        "fitting": {
            "solver": "bounded",
            "lvm": {"max_iterations": 50, "significant_digits": 6},
            "clamping": {"values": [10, 1000, 1, 1, 0.5, 0.5], "dynamic": True},
            "bounds": {
                "lower": [0, 0, 0, 0, 0.5, 0.5],
                "upper": [100, 1.0e5, GRID_SIZE, GRID_SIZE, 5, 5],
            },
            "mle": {"search_method": "powell_bounded", "max_evaluations": 5000},
        },
        "logging": {"level": "WARNING"},
    }


@pytest.fixture
def profile_truth():
    """True coefficients of the 1D profile."""
    return PROFILE_TRUTH.copy()


@pytest.fixture
def profile_function():
    """1D profile model fitting all three coefficients."""
    return make_profile_function()


@pytest.fixture
def profile_factory():
    """Builder for 1D profile models fitting a chosen subset."""
    return make_profile_function


@pytest.fixture
def profile_data():
    """Noise-free 1D profile at the true coefficients."""
    return make_profile_data()


@pytest.fixture
def profile_guess():
    """Starting coefficients for the 1D profile."""
    return np.array([1.0, 7.0, -0.5])
