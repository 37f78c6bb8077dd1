"""Fit result classes shared by all solvers."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import numpy as np

from peakfit.optimization.exceptions import EvaluationBudgetExceeded
from peakfit.optimization.status import FitStatus


@dataclass
class FunctionEvaluationCounter:
    """Wraps a callable and counts invocations.

    When ``max_evaluations`` is set, the call that would exceed the budget
    raises :class:`EvaluationBudgetExceeded` instead of evaluating.
    """

    fn: Callable[..., Any]
    count: int = 0
    max_evaluations: int | None = None

    def __call__(self, *args, **kwargs):
        """Call the wrapped function and increment count."""
        if self.max_evaluations is not None and self.count >= self.max_evaluations:
            raise EvaluationBudgetExceeded(
                "Objective evaluation budget exhausted",
                max_evaluations=self.max_evaluations,
            )
        self.count += 1
        return self.fn(*args, **kwargs)


@dataclass
class FitResult:
    """Outcome of a single call to a solver's ``fit``.

    Attributes
    ----------
    status : FitStatus
        Fit outcome.
    parameters : np.ndarray
        Full coefficient vector. Equal to the initial guess unless an
        improving step was accepted.
    deviations : np.ndarray | None
        Per-coefficient standard deviations (zero for coefficients that are
        not fitted), when requested and supported.
    y_fit : np.ndarray | None
        Model values at the fitted coefficients (successful fits only).
    value : float
        Best value of the fitting metric (least squares, weighted least
        squares, likelihood ratio or negative log-likelihood).
    residual_sum_of_squares : float
        Unweighted sum of squared residuals of the fitted curve.
    total_sum_of_squares : float
        Sum of squared deviations of the data from its mean.
    initial_residual_sum_of_squares : float
        Fitting metric at the initial coefficients.
    error : float
        ``residual_sum_of_squares / (n - m)``, divided by ``noise**2`` when a
        noise estimate was supplied.
    iterations : int
        Number of solver iterations.
    evaluations : int
        Number of objective evaluations.
    n_fitted_points : int
        Number of data samples.
    n_fitted_parameters : int
        Number of optimised coefficients.
    """

    status: FitStatus
    parameters: np.ndarray
    deviations: np.ndarray | None = None
    y_fit: np.ndarray | None = None
    value: float = float("nan")
    residual_sum_of_squares: float = float("nan")
    total_sum_of_squares: float = float("nan")
    initial_residual_sum_of_squares: float = float("nan")
    error: float = float("nan")
    iterations: int = 0
    evaluations: int = 0
    n_fitted_points: int = 0
    n_fitted_parameters: int = 0

    @property
    def success(self) -> bool:
        """Return True if the fit finished with status OK."""
        return self.status.is_ok

    @property
    def message(self) -> str:
        """Return descriptive message about the fit outcome."""
        if self.success:
            return (
                f"Fit converged after {self.iterations} iterations. "
                f"SS={self.residual_sum_of_squares:.6g}"
            )
        return f"Fit failed: {self.status.description}"

    def adjusted_r_squared(self) -> float:
        """Adjusted coefficient of determination of the fit.

        Returns NaN when the degrees of freedom are exhausted or the data has
        no variance.
        """
        n = self.n_fitted_points
        p = self.n_fitted_parameters
        if n - p - 1 <= 0 or not self.total_sum_of_squares > 0:
            return float("nan")
        r2 = 1.0 - self.residual_sum_of_squares / self.total_sum_of_squares
        return 1.0 - (1.0 - r2) * (n - 1) / (n - p - 1)


def get_error(residual_sum_of_squares: float, noise: float, n: int, m: int) -> float:
    """Residual error per degree of freedom, normalised by the noise variance.

    Returns the raw sum of squares when there are no degrees of freedom.
    """
    error = residual_sum_of_squares
    if n > m:
        error /= n - m
    if noise > 0:
        error /= noise * noise
    return error


def get_total_sum_of_squares(y: np.ndarray) -> float:
    """Sum of squared deviations of ``y`` from its mean."""
    y = np.asarray(y, dtype=float)
    if y.size == 0:
        return 0.0
    d = y - y.mean()
    return float(np.dot(d, d))
