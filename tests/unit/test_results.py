"""Tests for fit results, status values, exceptions and numerical helpers."""

from __future__ import annotations

import math

import numpy as np
import pytest

from peakfit.optimization.exceptions import (
    EvaluationBudgetExceeded,
    FitConfigurationError,
    FittingError,
    SingularSystemError,
)
from peakfit.optimization.numerical_validation import (
    ToleranceChecker,
    has_nan,
    has_non_finite,
    reciprocal_sqrt,
)
from peakfit.optimization.results import (
    FitResult,
    FunctionEvaluationCounter,
    get_error,
    get_total_sum_of_squares,
)
from peakfit.optimization.status import FitStatus


class TestFitStatus:
    """Tests for FitStatus."""

    def test_only_ok_is_ok(self):
        """Test is_ok is true for OK alone."""
        assert FitStatus.OK.is_ok
        assert not any(status.is_ok for status in FitStatus if status is not FitStatus.OK)

    def test_description(self):
        """Test the description is human readable."""
        assert FitStatus.SINGULAR_NON_LINEAR_MODEL.description == "Singular non-linear model"


class TestFitResult:
    """Tests for FitResult."""

    def test_success_message(self):
        """Test a converged result reports iterations and sum of squares."""
        result = FitResult(
            FitStatus.OK, np.zeros(2), iterations=4, residual_sum_of_squares=12.5
        )

        assert result.success
        assert result.message == "Fit converged after 4 iterations. SS=12.5"

    def test_failure_message(self):
        """Test a failed result reports the status."""
        result = FitResult(FitStatus.TOO_MANY_ITERATIONS, np.zeros(2))

        assert not result.success
        assert result.message == "Fit failed: Too many iterations"

    def test_adjusted_r_squared(self):
        """Test the adjusted coefficient of determination."""
        result = FitResult(
            FitStatus.OK,
            np.zeros(2),
            residual_sum_of_squares=10.0,
            total_sum_of_squares=100.0,
            n_fitted_points=12,
            n_fitted_parameters=2,
        )

        assert result.adjusted_r_squared() == pytest.approx(1.0 - 0.1 * 11 / 9)

    @pytest.mark.parametrize(
        "n, p, total",
        [(3, 2, 100.0), (12, 2, 0.0), (12, 2, float("nan"))],
    )
    def test_adjusted_r_squared_undefined(self, n, p, total):
        """Test NaN when degrees of freedom or variance are missing."""
        result = FitResult(
            FitStatus.OK,
            np.zeros(p),
            residual_sum_of_squares=1.0,
            total_sum_of_squares=total,
            n_fitted_points=n,
            n_fitted_parameters=p,
        )

        assert math.isnan(result.adjusted_r_squared())


class TestStatistics:
    """Tests for the residual statistics helpers."""

    def test_get_error(self):
        """Test normalisation by degrees of freedom and noise."""
        assert get_error(20.0, 0.0, 12, 2) == pytest.approx(2.0)
        assert get_error(20.0, 2.0, 12, 2) == pytest.approx(0.5)

    def test_get_error_no_degrees_of_freedom(self):
        """Test the raw sum is returned when n <= m."""
        assert get_error(20.0, 0.0, 2, 2) == pytest.approx(20.0)

    def test_total_sum_of_squares(self):
        """Test the sum of squared deviations from the mean."""
        assert get_total_sum_of_squares(np.array([1.0, 2.0, 3.0])) == pytest.approx(2.0)
        assert get_total_sum_of_squares(np.array([])) == 0.0


class TestFunctionEvaluationCounter:
    """Tests for FunctionEvaluationCounter."""

    def test_counts_calls(self):
        """Test each call is counted and forwarded."""
        counter = FunctionEvaluationCounter(lambda x: x * 2)

        assert counter(3) == 6
        assert counter(x=4) == 8
        assert counter.count == 2

    def test_budget(self):
        """Test the call past the budget raises without evaluating."""
        calls = []
        counter = FunctionEvaluationCounter(calls.append, max_evaluations=2)

        counter(1)
        counter(2)
        with pytest.raises(EvaluationBudgetExceeded) as exc_info:
            counter(3)

        assert calls == [1, 2]
        assert counter.count == 2
        assert exc_info.value.max_evaluations == 2


class TestExceptions:
    """Tests for the exception hierarchy."""

    def test_hierarchy(self):
        """Test every error derives from FittingError."""
        for error in (FitConfigurationError, SingularSystemError, EvaluationBudgetExceeded):
            assert issubclass(error, FittingError)

    def test_context_in_message(self):
        """Test context values are appended to the message."""
        error = FitConfigurationError("Lower bound above upper bound", parameter="bounds")

        assert error.parameter == "bounds"
        assert str(error) == "Lower bound above upper bound (context: parameter=bounds)"

    def test_plain_message(self):
        """Test no context leaves the message unchanged."""
        assert str(FittingError("failed")) == "failed"

    def test_singular_size(self):
        """Test the system size is recorded."""
        error = SingularSystemError("Singular matrix", size=3, error_context={"lambda": 0.1})

        assert error.size == 3
        assert error.error_context == {"lambda": 0.1, "size": 3}


class TestToleranceChecker:
    """Tests for ToleranceChecker."""

    def test_relative(self):
        """Test values agreeing to the requested digits are equal."""
        checker = ToleranceChecker(3, 0.0)

        assert checker.almost_equal(1000.0, 1000.9)
        assert not checker.almost_equal(1000.0, 1002.0)

    def test_absolute(self):
        """Test tiny differences are always equal."""
        checker = ToleranceChecker(10, 1e-6)
        assert checker.almost_equal(0.0, 5e-7)

    def test_arrays(self):
        """Test the element-wise comparison."""
        checker = ToleranceChecker(3, 0.0)

        assert checker.all_almost_equal([1.0, 100.0], [1.0005, 100.05])
        assert not checker.all_almost_equal([1.0, 100.0], [1.0, 101.0])

    def test_from_relative_error(self):
        """Test a checker built from a relative tolerance."""
        checker = ToleranceChecker.from_relative_error(0.5, 0.0)

        assert checker.almost_equal(10.0, 6.0)
        assert not checker.almost_equal(10.0, 4.0)

    def test_invalid_digits(self):
        """Test fewer than one significant digit raises ValueError."""
        with pytest.raises(ValueError, match="significant_digits"):
            ToleranceChecker(0)


class TestArrayChecks:
    """Tests for the NaN/Inf helpers."""

    def test_has_nan(self):
        """Test NaN detection across several arrays."""
        assert has_nan(np.zeros(2), np.array([1.0, np.nan]))
        assert not has_nan(np.zeros(2), np.array([np.inf]))

    def test_has_non_finite(self):
        """Test infinities are detected."""
        assert has_non_finite(np.array([1.0, -np.inf]))
        assert not has_non_finite(np.ones(3))

    def test_reciprocal_sqrt(self):
        """Test non-positive entries give zero."""
        np.testing.assert_allclose(reciprocal_sqrt([4.0, 0.0, -1.0, 0.25]), [0.5, 0.0, 0.0, 2.0])
