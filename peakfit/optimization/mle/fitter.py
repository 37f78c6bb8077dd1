"""Maximum likelihood fitting of Poisson counts.

The :class:`MaximumLikelihoodFitter` minimises the Poisson negative
log-likelihood (:class:`PoissonLikelihoodFunction`) with a selectable
:class:`SearchMethod`. Failures inside the search are mapped to a
:class:`FitStatus` at a single boundary in :meth:`MaximumLikelihoodFitter.fit`.
"""

from __future__ import annotations

import numpy as np

from peakfit.core.functions import NonLinearFunction
from peakfit.optimization.config import FitConfig
from peakfit.optimization.exceptions import EvaluationBudgetExceeded, FitConfigurationError
from peakfit.optimization.lvm.nonlinear_fit import as_coefficients
from peakfit.optimization.mle.likelihood import PoissonLikelihoodFunction
from peakfit.optimization.mle.search_methods import (
    SEARCH_STRATEGIES,
    SearchMethod,
    SearchOutcome,
    SearchProblem,
)
from peakfit.optimization.parameters import extract_bounds, none_to_inf
from peakfit.optimization.results import (
    FitResult,
    FunctionEvaluationCounter,
    get_error,
    get_total_sum_of_squares,
)
from peakfit.optimization.status import FitStatus
from peakfit.utils.logging import get_logger, log_calls, log_performance

logger = get_logger(__name__)


class MaximumLikelihoodFitter:
    """Fit a model to Poisson distributed counts by maximum likelihood.

    Parameters
    ----------
    function : NonLinearFunction
        Model of the expected counts
    search_method : SearchMethod | str, optional
        Search strategy. Defaults to ``config.search_method``.
    config : FitConfig, optional
        Evaluation budget, tolerances, seed and bounds

    Notes
    -----
    Deviations are not computed; a requested ``a_dev`` is left untouched.
    """

    def __init__(
        self,
        function: NonLinearFunction,
        search_method: SearchMethod | str | None = None,
        config: FitConfig | None = None,
    ):
        config = config or FitConfig()
        self.function = function
        self.search_method = SearchMethod.POWELL
        self.set_search_method(search_method or config.search_method)

        self.max_iterations = 0
        self.max_evaluations = config.max_evaluations
        self.relative_tolerance = config.relative_tolerance
        self.absolute_tolerance = config.absolute_tolerance
        self.seed = config.cmaes_seed

        self.lower: np.ndarray | None = None
        self.upper: np.ndarray | None = None
        if config.lower_bounds is not None or config.upper_bounds is not None:
            self.set_bounds(
                none_to_inf(config.lower_bounds, -np.inf),
                none_to_inf(config.upper_bounds, np.inf),
            )

        self.value = float("nan")
        self.iterations = 0
        self.evaluations = 0

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @log_calls(include_args=True, skip_self=True)
    def set_bounds(self, lower, upper) -> None:
        """Set full-length bounds; ``None`` disables that side.

        Raises
        ------
        FitConfigurationError
            If any lower bound is above its upper bound. The previous bounds
            are kept.
        """
        indices = np.asarray(self.function.gradient_indices(), dtype=int)
        new_lower, new_upper, _, _ = extract_bounds(lower, upper, indices)
        self.lower = new_lower
        self.upper = new_upper

    def set_search_method(self, search_method: SearchMethod | str) -> None:
        if isinstance(search_method, str):
            search_method = SearchMethod.from_name(search_method)
        self.search_method = search_method

    def set_max_iterations(self, max_iterations: int) -> None:
        """Iteration budget of the search; 0 is unlimited."""
        self.max_iterations = max_iterations

    def set_max_evaluations(self, max_evaluations: int) -> None:
        self.max_evaluations = max_evaluations

    def set_objective_model(self, function: NonLinearFunction) -> None:
        """Replace the model. Bounds are cleared."""
        self.function = function
        self.lower = None
        self.upper = None

    def is_bounded(self) -> bool:
        return self.search_method.is_bounded

    def is_constrained(self) -> bool:
        return False

    def get_value(self) -> float:
        """Negative log-likelihood at the last fitted coefficients."""
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
        """Maximise the Poisson likelihood of ``y`` starting from ``a``.

        Parameters
        ----------
        y : array-like
            Observed counts. Negative values are treated as zero.
        a : array-like
            Full coefficient vector. A float64 ndarray is updated in place
            on success.
        y_fit : np.ndarray, optional
            Filled with the fitted values on success
        a_dev : np.ndarray, optional
            Accepted for interface compatibility; not filled
        noise : float
            Noise estimate used to normalise the error
        compute_deviations : bool
            Accepted for interface compatibility; deviations are not computed

        Returns
        -------
        FitResult
            Status, coefficients and fit statistics.

        Raises
        ------
        FitConfigurationError
            If a bounded search method is selected without bounds.
        """
        y = np.maximum(np.asarray(y, dtype=float).ravel(), 0.0)
        a = as_coefficients(a)
        indices = np.asarray(self.function.gradient_indices(), dtype=int)
        n = y.size
        m = indices.size
        method = self.search_method

        if method.is_bounded and self.lower is None and self.upper is None:
            raise FitConfigurationError(
                f"Search method {method} requires bounds",
                parameter="bounds",
            )

        likelihood = PoissonLikelihoodFunction(self.function, a, y)
        objective = FunctionEvaluationCounter(likelihood.value, max_evaluations=self.max_evaluations)
        problem = SearchProblem(
            objective=objective,
            x0=a[indices].copy(),
            gradient=likelihood.gradient if method.uses_gradient else None,
            lower=self.lower,
            upper=self.upper,
            max_evaluations=self.max_evaluations,
            max_iterations=self.max_iterations,
            relative_tolerance=self.relative_tolerance,
            absolute_tolerance=self.absolute_tolerance,
            seed=self.seed,
        )

        result = FitResult(
            status=FitStatus.UNKNOWN,
            parameters=a.copy(),
            total_sum_of_squares=get_total_sum_of_squares(y),
            n_fitted_points=n,
            n_fitted_parameters=m,
        )
        self.value = float("nan")

        logger.debug(f"Likelihood search: method={method.name} n={n} m={m}")
        status, outcome = self._search(method, problem)
        result.evaluations = self.evaluations = objective.count
        if outcome is not None:
            result.iterations = self.iterations = outcome.iterations
        result.status = status
        if not status.is_ok:
            logger.debug(f"Likelihood fit failed: {status.description}")
            return result

        a[indices] = outcome.x
        self.value = outcome.value
        self.function.initialise(a)
        fitted = self.function.values(n)
        if y_fit is not None:
            y_fit[:n] = fitted

        residuals = y - fitted
        residual_ss = float(np.dot(residuals, residuals))

        result.parameters = a.copy()
        result.y_fit = fitted if y_fit is None else y_fit
        result.value = self.value
        result.residual_sum_of_squares = residual_ss
        result.error = get_error(residual_ss, noise, n, m)
        return result

    def _search(
        self, method: SearchMethod, problem: SearchProblem
    ) -> tuple[FitStatus, SearchOutcome | None]:
        strategy = SEARCH_STRATEGIES[method]
        try:
            outcome = strategy(problem)
        except EvaluationBudgetExceeded as e:
            logger.debug(f"{method}: {e}")
            return FitStatus.FAILED_TO_CONVERGE, None
        except np.linalg.LinAlgError as e:
            logger.debug(f"{method}: singular system: {e}")
            return FitStatus.SINGULAR_NON_LINEAR_MODEL, None
        except (ValueError, ArithmeticError, RuntimeError) as e:
            logger.warning(f"{method} search failed: {e}", exc_info=True)
            return FitStatus.UNKNOWN, None

        if outcome.exhausted:
            logger.debug(f"{method}: budget exhausted before convergence")
            return FitStatus.FAILED_TO_CONVERGE, outcome
        if not (np.all(np.isfinite(outcome.x)) and np.isfinite(outcome.value)):
            logger.warning(f"{method} search ended at a non-finite point")
            return FitStatus.UNKNOWN, outcome
        return FitStatus.OK, outcome
