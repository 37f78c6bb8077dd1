"""Levenberg-Marquardt nonlinear least-squares solver.

Iterates damped Gauss-Newton steps. Each iteration:

1. builds ``covar = alpha`` with the diagonal scaled by ``1 + lambda`` and
   ``da = beta``, zeroes negligible gradient entries and solves
   ``covar · da = beta``
2. projects ``ap = a + da`` onto the fitted coefficients
3. re-evaluates the metric at ``ap``; an improvement is accepted (``a = ap``
   and lambda decreased), otherwise lambda is increased

The loop is controlled by a
:class:`~peakfit.optimization.lvm.stopping.StoppingCriteria`. Step
projection, solve-failure recovery and the lambda update are delegated to
the strategy objects in :mod:`peakfit.optimization.lvm.hooks`.

Instances hold mutable working buffers: use one instance per thread.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

import numpy as np

from peakfit.core.functions import NonLinearFunction
from peakfit.optimization.config import FitConfig
from peakfit.optimization.exceptions import SingularSystemError
from peakfit.optimization.lvm.gradients import GradientCalculator, new_calculator
from peakfit.optimization.lvm.hooks import (
    LambdaPolicy,
    SolveFailureRecovery,
    StepProjection,
)
from peakfit.optimization.lvm.linear_solver import LinearSolver
from peakfit.optimization.lvm.stopping import (
    ErrorStoppingCriteria,
    ParameterStoppingCriteria,
    StoppingCriteria,
)
from peakfit.optimization.numerical_validation import reciprocal_sqrt
from peakfit.optimization.results import (
    FitResult,
    get_error,
    get_total_sum_of_squares,
)
from peakfit.optimization.status import FitStatus
from peakfit.utils.logging import get_logger, log_calls, log_performance

logger = get_logger(__name__)

# Gradient entries smaller than this are treated as converged and excluded
# from the linear solve. Tunable through FitConfig.gradient_zero_tolerance.
GRADIENT_ZERO_TOLERANCE = 1e-16


@dataclass
class Workspace:
    """Working buffers for ``m`` fitted coefficients of a ``k``-vector.

    Recreated only when ``m`` or ``k`` changes; reused across iterations
    and across fits otherwise.
    """

    m: int
    n_coefficients: int
    alpha: np.ndarray = field(init=False)
    beta: np.ndarray = field(init=False)
    covar: np.ndarray = field(init=False)
    da: np.ndarray = field(init=False)
    ap: np.ndarray = field(init=False)

    def __post_init__(self):
        self.alpha = np.zeros((self.m, self.m))
        self.beta = np.zeros(self.m)
        self.covar = np.zeros((self.m, self.m))
        self.da = np.zeros(self.m)
        self.ap = np.zeros(self.n_coefficients)

    def matches(self, m: int, n_coefficients: int) -> bool:
        return (
            self.alpha.shape == (m, m)
            and self.covar.shape == (m, m)
            and self.beta.shape == (m,)
            and self.da.shape == (m,)
            and self.ap.shape == (n_coefficients,)
        )


def create_stopping_criteria(config: FitConfig) -> StoppingCriteria:
    """Build the convergence policy named in the configuration."""
    if config.stopping_criteria == "parameter":
        return ParameterStoppingCriteria(
            significant_digits=config.significant_digits,
            maximum_iterations=config.max_iterations,
            max_absolute_error=config.max_absolute_error,
        )
    return ErrorStoppingCriteria(
        significant_digits=config.significant_digits,
        maximum_iterations=config.max_iterations,
        max_absolute_error=config.max_absolute_error,
    )


def ensure_positive(y: np.ndarray) -> np.ndarray:
    """Return ``y`` with negative values replaced by zero (copy if needed)."""
    if np.any(y < 0):
        return np.maximum(y, 0.0)
    return y


def as_coefficients(a) -> np.ndarray:
    """Coefficient vector as float64; float64 ndarrays are used in place."""
    if isinstance(a, np.ndarray) and a.dtype == np.float64 and a.ndim == 1:
        return a
    return np.array(a, dtype=float).ravel()


class NonLinearFit:
    """Damped Gauss-Newton (Levenberg-Marquardt) solver.

    Parameters
    ----------
    function : NonLinearFunction
        The objective model
    stopping_criteria : StoppingCriteria, optional
        Convergence policy. Built from ``config`` when omitted.
    config : FitConfig, optional
        Solver settings
    linear_solver : LinearSolver, optional
        Normal-equation solver
    projection : StepProjection, optional
        Turns the solved shift into trial coefficients
    recovery : SolveFailureRecovery, optional
        Rescues a failed linear solve
    lambda_policy : LambdaPolicy, optional
        Damping update after accept/reject
    """

    def __init__(
        self,
        function: NonLinearFunction,
        stopping_criteria: StoppingCriteria | None = None,
        config: FitConfig | None = None,
        *,
        linear_solver: LinearSolver | None = None,
        projection: StepProjection | None = None,
        recovery: SolveFailureRecovery | None = None,
        lambda_policy: LambdaPolicy | None = None,
    ):
        self.config = config or FitConfig()
        self.function = function
        self.stopping_criteria = stopping_criteria or create_stopping_criteria(self.config)
        self.linear_solver = linear_solver or LinearSolver(
            self.config.solver_significant_digits, self.config.max_absolute_error
        )
        self.projection = projection or StepProjection()
        self.recovery = recovery or SolveFailureRecovery()
        self.lambda_policy = lambda_policy or LambdaPolicy(
            self.config.lambda_decrease_factor, self.config.lambda_increase_factor
        )

        self.initial_lambda = self.config.initial_lambda
        self.gradient_zero_tolerance = self.config.gradient_zero_tolerance
        self.mle = self.config.use_mle_gradients

        # Called as callback(fitter, accepted) after every iteration
        self.callback: Callable[[NonLinearFit, bool], None] | None = None

        self.workspace: Workspace | None = None
        self.lambda_ = self.initial_lambda
        self.iterations = 0
        self.evaluations = 0
        self.value = float("nan")
        self.initial_residual_sum_of_squares = float("nan")

        self._calculator: GradientCalculator | None = None
        self._ss_best = float("nan")
        self._ss_old = float("nan")
        self._ss_new = float("nan")

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @log_calls(include_args=True, skip_self=True)
    def set_initial_lambda(self, initial_lambda: float) -> None:
        self.initial_lambda = initial_lambda

    def get_initial_lambda(self) -> float:
        return self.initial_lambda

    def set_max_iterations(self, max_iterations: int) -> None:
        self.stopping_criteria.maximum_iterations = max_iterations

    def set_mle(self, mle: bool) -> None:
        """Fit the Poisson likelihood ratio instead of least squares."""
        self.mle = mle

    def set_objective_model(self, function: NonLinearFunction) -> None:
        self.function = function

    def is_bounded(self) -> bool:
        return False

    def is_constrained(self) -> bool:
        return False

    def get_initial_residual_sum_of_squares(self) -> float:
        return self.initial_residual_sum_of_squares

    def get_value(self) -> float:
        """Best value of the fitting metric from the last fit."""
        return self.value

    # ------------------------------------------------------------------
    # Fitting
    # ------------------------------------------------------------------

    @log_performance(threshold=1.0)
    def fit(
        self,
        y,
        a,
        y_fit: np.ndarray | None = None,
        a_dev: np.ndarray | None = None,
        noise: float = 0.0,
        compute_deviations: bool = False,
    ) -> FitResult:
        """Fit the model to ``y`` starting from coefficients ``a``.

        Parameters
        ----------
        y : array-like
            Observed data, one value per sample index
        a : array-like
            Full coefficient vector. A float64 ndarray is updated in place
            each time an improving step is accepted.
        y_fit : np.ndarray, optional
            Filled with the fitted values on success
        a_dev : np.ndarray, optional
            Filled with per-coefficient standard deviations on success
        noise : float
            Noise estimate used to normalise the error
        compute_deviations : bool
            Allocate ``a_dev`` if not supplied

        Returns
        -------
        FitResult
            Status, coefficients and fit statistics. Failures are reported
            through ``status``, never raised.
        """
        y = np.asarray(y, dtype=float).ravel()
        a = as_coefficients(a)
        indices = np.asarray(self.function.gradient_indices(), dtype=int)
        n = y.size
        m = indices.size

        self._prepare_workspace(m, a.size)
        if self.mle:
            # The likelihood is undefined for negative counts
            y = ensure_positive(y)
        self._calculator = new_calculator(m, self.mle)
        if compute_deviations and a_dev is None:
            a_dev = np.zeros(a.size)

        self.value = float("nan")
        self.initial_residual_sum_of_squares = float("nan")
        self.projection.begin_fit(indices)

        status = self._do_fit(y, a, indices)
        self.iterations = self.evaluations = self.stopping_criteria.iteration

        result = FitResult(
            status=status,
            parameters=a.copy(),
            initial_residual_sum_of_squares=self.initial_residual_sum_of_squares,
            total_sum_of_squares=get_total_sum_of_squares(y),
            iterations=self.iterations,
            evaluations=self.evaluations,
            n_fitted_points=n,
            n_fitted_parameters=m,
        )
        if not status.is_ok:
            logger.debug(
                f"Fit stopped after {self.iterations} iterations: {status.description}"
            )
            return result

        if a_dev is not None:
            self._compute_deviations(n, a, indices, a_dev)
            result.deviations = a_dev

        self.value = self._ss_best
        self.function.initialise(a)
        fitted = self.function.values(n)
        if y_fit is not None:
            y_fit[:n] = fitted

        # Weighted and likelihood metrics are not a least-squares residual
        if self.mle or self.function.can_compute_weights():
            residuals = y - fitted
            residual_ss = float(np.dot(residuals, residuals))
        else:
            residual_ss = self.value

        result.y_fit = fitted if y_fit is None else y_fit
        result.value = self.value
        result.residual_sum_of_squares = residual_ss
        result.error = get_error(residual_ss, noise, n, m)
        return result

    def compute_value(self, y, a) -> float:
        """Fitting metric at coefficients ``a`` without fitting."""
        y = np.asarray(y, dtype=float).ravel()
        if self.mle:
            y = ensure_positive(y)
        calculator = new_calculator(self.function.number_of_gradients(), self.mle)
        return calculator.find_value(y, as_coefficients(a), self.function)

    def _prepare_workspace(self, m: int, n_coefficients: int) -> None:
        if self.workspace is None or not self.workspace.matches(m, n_coefficients):
            self.workspace = Workspace(m, n_coefficients)
        # Buffers must match the fitted-coefficient layout for this call
        assert self.workspace.matches(m, n_coefficients)

    def _do_fit(self, y: np.ndarray, a: np.ndarray, indices: np.ndarray) -> FitStatus:
        sc = self.stopping_criteria
        sc.initialise(a)

        status = self._iterate(y, a, indices, initial_stage=True)
        if status is not None:
            return status
        sc.evaluate(self._ss_old, self._ss_new, a)

        while sc.are_not_satisfied():
            status = self._iterate(y, a, indices, initial_stage=False)
            if status is not None:
                return status
            sc.evaluate(self._ss_old, self._ss_new, a)

        if not sc.are_achieved():
            if sc.iteration >= sc.maximum_iterations:
                return FitStatus.TOO_MANY_ITERATIONS
            return FitStatus.FAILED_TO_CONVERGE

        return FitStatus.OK

    def _iterate(
        self, y: np.ndarray, a: np.ndarray, indices: np.ndarray, initial_stage: bool
    ) -> FitStatus | None:
        """Run one iteration. Returns a failure status or None to continue."""
        ws = self.workspace
        calculator = self._calculator

        if initial_stage:
            self.lambda_ = self.initial_lambda
            ws.ap[:] = a
            self._ss_best = calculator.find_linearised(y, a, ws.alpha, ws.beta, self.function)
            self.initial_residual_sum_of_squares = self._ss_best
            if calculator.is_nan_gradients():
                logger.debug("Invalid gradients at the initial coefficients")
                return FitStatus.INVALID_GRADIENTS_IN_NON_LINEAR_MODEL

        self._ss_old = self._ss_best

        if not self._solve():
            return FitStatus.SINGULAR_NON_LINEAR_MODEL

        self.projection.project(a, ws.da, ws.ap, indices)

        self._ss_new = calculator.find_linearised(
            y, ws.ap, ws.covar, ws.da, self.function
        )

        if calculator.is_nan_gradients():
            logger.debug("Invalid gradients at the trial coefficients")
            return FitStatus.INVALID_GRADIENTS_IN_NON_LINEAR_MODEL

        accepted = self._ss_new < self._ss_old
        if accepted:
            self._accepted(a)
        else:
            self.lambda_ = self.lambda_policy.on_reject(self.lambda_)

        logger.debug(
            f"Iteration {self.stopping_criteria.iteration + 1}: "
            f"SS={self._ss_new:.6g} best={self._ss_best:.6g} "
            f"lambda={self.lambda_:.3g} accepted={accepted}"
        )
        if self.callback is not None:
            self.callback(self, accepted)
        return None

    def _accepted(self, a: np.ndarray) -> None:
        ws = self.workspace
        self.lambda_ = self.lambda_policy.on_accept(self.lambda_)
        ws.alpha[:] = ws.covar
        ws.beta[:] = ws.da
        a[:] = ws.ap
        self._ss_best = self._ss_new

    def create_linear_problem(self) -> None:
        """Fill ``covar`` with the damped ``alpha`` and ``da`` with ``beta``."""
        ws = self.workspace
        ws.covar[:] = ws.alpha
        ws.covar[np.diag_indices_from(ws.covar)] *= 1.0 + self.lambda_
        ws.da[:] = ws.beta

    def solve_linear_problem(self, a: np.ndarray, b: np.ndarray) -> None:
        """Solve ``a x = b`` into ``b`` after zeroing negligible gradients.

        Raises
        ------
        SingularSystemError
            If the system cannot be solved.
        """
        b[np.abs(b) < self.gradient_zero_tolerance] = 0.0
        self.linear_solver.solve_with_zeros(a, b)

    def _solve(self) -> bool:
        self.create_linear_problem()
        try:
            self.solve_linear_problem(self.workspace.covar, self.workspace.da)
            return True
        except SingularSystemError as e:
            logger.debug(f"Linear solve failed: {e}")
        return self.recovery.recover(self)

    def _compute_deviations(
        self, n: int, a: np.ndarray, indices: np.ndarray, a_dev: np.ndarray
    ) -> None:
        a_dev[:] = 0.0
        try:
            # Undamped curvature matrix at the best fit
            covariance = self.linear_solver.invert(self.workspace.alpha)
            a_dev[indices] = np.sqrt(np.diag(covariance))
        except SingularSystemError as e:
            # Loose lower bound from the Fisher information
            logger.debug(f"Covariance inversion failed, using Fisher information: {e}")
            information = self._calculator.fisher_information_diagonal(
                n, a, self.function
            )
            a_dev[indices] = reciprocal_sqrt(information)
