"""Tests for the 2D Gaussian peak models."""

from __future__ import annotations

import numpy as np
import pytest

from peakfit.core.gaussian2d import (
    BACKGROUND,
    FIT_MODES,
    SIGNAL,
    X_POSITION,
    X_SD,
    Y_POSITION,
    Y_SD,
    ErfGaussian2DFunction,
    Gaussian2DFunction,
    create_function,
)

PARAMETERS = np.array([3.0, 800.0, 5.4, 6.2, 1.3, 1.7])


def numerical_jacobian(function, a, h=1e-6):
    """Central-difference Jacobian over the fitted coefficients."""
    columns = []
    for index in function.gradient_indices():
        step = np.zeros_like(a)
        step[index] = h
        function.initialise(a + step)
        upper = function.values(function.size)
        function.initialise(a - step)
        lower = function.values(function.size)
        columns.append((upper - lower) / (2 * h))
    return np.column_stack(columns)


class TestJacobian:
    """Analytic partial derivatives against finite differences."""

    @pytest.mark.parametrize("fit_mode", sorted(FIT_MODES))
    @pytest.mark.parametrize("integrated", [True, False])
    def test_matches_finite_differences(self, fit_mode, integrated):
        """Test the analytic Jacobian for each model and fit mode."""
        function = create_function(12, 14, fit_mode, integrated=integrated)
        function.initialise(PARAMETERS)
        _, jacobian = function.values_with_gradient(function.size)

        expected = numerical_jacobian(function, PARAMETERS)

        assert jacobian.shape == (function.size, len(FIT_MODES[fit_mode]))
        np.testing.assert_allclose(jacobian, expected, rtol=1e-4, atol=1e-5)

    def test_eval_with_gradient_matches_vectorised(self):
        """Test per-index evaluation agrees with the vectorised path."""
        function = create_function(8, 8, "free")
        function.initialise(PARAMETERS)
        values, jacobian = function.values_with_gradient(function.size)

        for i in (0, 17, 63):
            value, gradient = function.eval_with_gradient(i)
            assert value == pytest.approx(values[i])
            assert function.eval(i) == pytest.approx(values[i])
            np.testing.assert_allclose(gradient, jacobian[i])


class TestValues:
    """Tests for model values."""

    def test_integrated_sum_is_signal(self):
        """Test the pixel-integrated model sums to signal plus background."""
        size = 64
        a = np.array([2.0, 1000.0, 32.3, 31.7, 2.0, 2.5])
        function = ErfGaussian2DFunction(size, size)
        function.initialise(a)

        total = function.values(function.size).sum()

        assert total == pytest.approx(a[SIGNAL] + a[BACKGROUND] * size * size, rel=1e-9)

    def test_point_sampled_peak_value(self):
        """Test the point-sampled model at a pixel centred on the peak."""
        a = np.array([1.0, 100.0, 4.5, 3.5, 1.0, 2.0])
        function = Gaussian2DFunction(10, 8)
        function.initialise(a)

        index = 3 * 10 + 4
        expected = a[BACKGROUND] + a[SIGNAL] / (2 * np.pi * a[X_SD] * a[Y_SD])
        assert function.eval(index) == pytest.approx(expected)

    def test_sample_index_layout(self):
        """Test index ``i`` maps to ``x = i % maxx`` and ``y = i // maxx``."""
        function = Gaussian2DFunction(10, 8)
        a = np.array([0.0, 100.0, 7.5, 1.5, 1.0, 1.0])
        function.initialise(a)

        values = function.values(function.size)

        assert int(np.argmax(values)) == 1 * 10 + 7

    def test_circular_uses_x_width(self):
        """Test circular mode ignores the Y_SD coefficient."""
        function = create_function(10, 10, "circular")
        a = PARAMETERS.copy()
        function.initialise(a)
        first = function.values(function.size)

        a[Y_SD] = 9.0
        function.initialise(a)
        second = function.values(function.size)

        np.testing.assert_array_equal(first, second)

    def test_coefficients_not_modified(self):
        """Test initialise leaves the coefficient array untouched."""
        function = create_function(10, 10)
        a = PARAMETERS.copy()
        function.initialise(a)
        np.testing.assert_array_equal(a, PARAMETERS)


class TestConstruction:
    """Tests for model construction and fitted indices."""

    @pytest.mark.parametrize(
        "fit_mode, expected",
        [
            ("fixed", [BACKGROUND, SIGNAL, X_POSITION, Y_POSITION]),
            ("circular", [BACKGROUND, SIGNAL, X_POSITION, Y_POSITION, X_SD]),
            ("free", [BACKGROUND, SIGNAL, X_POSITION, Y_POSITION, X_SD, Y_SD]),
        ],
    )
    def test_gradient_indices(self, fit_mode, expected):
        """Test each fit mode selects its coefficients."""
        function = create_function(5, 5, fit_mode)
        np.testing.assert_array_equal(function.gradient_indices(), expected)
        assert function.number_of_gradients() == len(expected)

    def test_create_function_class(self):
        """Test create_function selects the integrated model by default."""
        assert type(create_function(4, 4)) is ErfGaussian2DFunction
        assert type(create_function(4, 4, integrated=False)) is Gaussian2DFunction

    def test_invalid_fit_mode(self):
        """Test an unknown fit mode raises ValueError."""
        with pytest.raises(ValueError, match="fit_mode"):
            create_function(4, 4, "elliptical")

    def test_invalid_grid(self):
        """Test a non-positive grid raises ValueError."""
        with pytest.raises(ValueError, match="Grid size"):
            Gaussian2DFunction(0, 4)


class TestNoiseVariance:
    """Tests for weighted fitting support."""

    def test_no_weights_by_default(self):
        """Test weights are off without a read-noise variance."""
        assert create_function(4, 4).can_compute_weights() is False

    def test_variances_include_model(self):
        """Test the expected variance is the model value plus read noise."""
        noise = np.full(16, 2.0)
        function = create_function(4, 4, noise_variance=noise)
        function.initialise(PARAMETERS)

        assert function.can_compute_weights() is True
        values = function.values(16)
        np.testing.assert_allclose(function.variances(16), values + 2.0)
        assert function.variance(5) == pytest.approx(values[5] + 2.0)

    def test_noise_variance_size_checked(self):
        """Test a read-noise array of the wrong size raises ValueError."""
        with pytest.raises(ValueError, match="noise_variance"):
            create_function(4, 4, noise_variance=np.ones(15))
