"""Bounded and step-clamped Levenberg-Marquardt solver.

Wraps :class:`~peakfit.optimization.lvm.nonlinear_fit.NonLinearFit` with
three hook implementations:

- :class:`BoundedStepProjection` clamps each raw shift to
  ``da / (1 + |da| / clamp)`` (Stetson 1987, DAOPHOT pp. 207-208), halves a
  clamp whose shift changed sign when dynamic clamping is on, and clips the
  trial coefficients into ``[lower, upper]``
- :class:`PinnedCoefficientRecovery` retries a failed solve with the
  coefficients pinned at a bound excluded
- :class:`NonLocalLambdaPolicy` leaves lambda unchanged after accepting a
  step that moved further than the local search range

Bounds are enforced by projection, not by penalty.
"""

from __future__ import annotations

import numpy as np

from peakfit.core.functions import NonLinearFunction
from peakfit.optimization.config import FitConfig
from peakfit.optimization.exceptions import FitConfigurationError, SingularSystemError
from peakfit.optimization.lvm.hooks import (
    LambdaPolicy,
    SolveFailureRecovery,
    StepProjection,
)
from peakfit.optimization.lvm.nonlinear_fit import NonLinearFit
from peakfit.optimization.lvm.stopping import StoppingCriteria
from peakfit.optimization.parameters import extract_bounds, extract_fitted, none_to_inf
from peakfit.optimization.results import FitResult
from peakfit.utils.logging import get_logger, log_calls

logger = get_logger(__name__)


class BoundedStepProjection(StepProjection):
    """Clamped, bounded step projection.

    All arrays are indexed by fitted-coefficient position ``j``, not by the
    position in the full coefficient vector.

    Attributes
    ----------
    lower, upper : np.ndarray | None
        Active bounds
    clamp_initial : np.ndarray | None
        Configured clamp values (0 disables clamping for a coefficient)
    clamp : np.ndarray | None
        Working clamp values for the current fit
    dir : np.ndarray | None
        Sign of the previous clamped shift (0 before the first)
    at_bounds : np.ndarray | None
        Coefficients pinned at a bound by the last projection
    at_bounds_count : int
        Number of pinned coefficients
    non_local_search : bool
        True if the last projected step was flagged non-local
    """

    def __init__(self):
        self.lower = None
        self.upper = None
        self.is_lower = False
        self.is_upper = False

        self.clamp_initial = None
        self.clamp = None
        self.is_clamped = False
        self.dynamic_clamp = False
        self.local_search = 0.0
        self.dir = None

        self.at_bounds = None
        self.at_bounds_count = 0
        self.non_local_search = False

    def begin_fit(self, indices: np.ndarray) -> None:
        m = indices.size
        if self.is_clamped:
            # Dynamic updates must not destroy the configured values
            self.clamp = self.clamp_initial.copy() if self.dynamic_clamp else self.clamp_initial
            self.dir = np.zeros(m, dtype=int)
        self.at_bounds = np.zeros(m, dtype=bool)
        self.at_bounds_count = 0
        self.non_local_search = False

    def project(
        self, a: np.ndarray, da: np.ndarray, ap: np.ndarray, indices: np.ndarray
    ) -> None:
        self.non_local_search = False
        if self.is_clamped:
            ap[indices] = a[indices] + da / self._clamp_divisor(da)
            self.apply_bounds(ap, indices)
            if self.local_search != 0:
                self.non_local_search = self._check_for_non_local_search(a, indices, ap)
        else:
            ap[indices] = a[indices] + da
            self.apply_bounds(ap, indices)

    def _clamp_divisor(self, da: np.ndarray) -> np.ndarray:
        clamped = self.clamp != 0
        moving = clamped & (da != 0)

        if self.dynamic_clamp:
            sign = np.where(da > 0, 1, -1)
            # dir == 0 before the first move, so a new direction never halves
            flipped = moving & (sign + self.dir == 0)
            self.clamp[flipped] *= 0.5
            self.dir[moving] = sign[moving]

        divisor = np.ones_like(da)
        divisor[moving] = 1.0 + np.abs(da[moving]) / self.clamp[moving]
        return divisor

    def _check_for_non_local_search(
        self, a: np.ndarray, indices: np.ndarray, ap: np.ndarray
    ) -> bool:
        # A zero clamp value flags any movement of that coefficient
        shift = np.abs(ap[indices] - a[indices])
        return bool(np.any(self.local_search * shift > self.clamp_initial))

    def apply_bounds(self, point: np.ndarray, indices: np.ndarray) -> bool:
        """Clip ``point`` into the bounds. Returns True if any are pinned."""
        self.at_bounds[:] = False
        if not (self.is_upper or self.is_lower):
            self.at_bounds_count = 0
            return False

        values = point[indices]
        if self.is_upper:
            np.minimum(values, self.upper, out=values)
            self.at_bounds |= values >= self.upper
        if self.is_lower:
            np.maximum(values, self.lower, out=values)
            self.at_bounds |= values <= self.lower
        point[indices] = values

        self.at_bounds_count = int(np.count_nonzero(self.at_bounds))
        return self.at_bounds_count != 0


class PinnedCoefficientRecovery(SolveFailureRecovery):
    """Retry a failed solve without the coefficients pinned at a bound."""

    def __init__(self, projection: BoundedStepProjection):
        self.projection = projection

    def recover(self, fitter: NonLinearFit) -> bool:
        if self.projection.at_bounds_count == 0:
            return False

        ws = fitter.workspace
        fitter.create_linear_problem()
        # Zero gradients are excluded from the solve
        ws.da[self.projection.at_bounds] = 0.0
        try:
            fitter.solve_linear_problem(ws.covar, ws.da)
        except SingularSystemError as e:
            logger.debug(f"Solve failed with pinned coefficients excluded: {e}")
            return False
        logger.debug(
            f"Recovered linear solve excluding {self.projection.at_bounds_count} "
            f"pinned coefficients"
        )
        return True


class NonLocalLambdaPolicy(LambdaPolicy):
    """Skip the lambda decrease after a non-local step."""

    def __init__(
        self,
        projection: BoundedStepProjection,
        decrease_factor: float = 0.1,
        increase_factor: float = 10.0,
    ):
        super().__init__(decrease_factor, increase_factor)
        self.projection = projection

    def on_accept(self, lambda_: float) -> float:
        if self.projection.non_local_search:
            return lambda_
        return super().on_accept(lambda_)


class BoundedNonLinearFit:
    """Levenberg-Marquardt solver with hard bounds and step clamping.

    Parameters
    ----------
    function : NonLinearFunction
        The objective model
    stopping_criteria : StoppingCriteria, optional
        Convergence policy
    config : FitConfig, optional
        Solver settings; clamp values, dynamic clamping, local search and
        bounds are applied from it
    """

    def __init__(
        self,
        function: NonLinearFunction,
        stopping_criteria: StoppingCriteria | None = None,
        config: FitConfig | None = None,
    ):
        config = config or FitConfig()
        self.projection = BoundedStepProjection()
        self.fitter = NonLinearFit(
            function,
            stopping_criteria,
            config,
            projection=self.projection,
            recovery=PinnedCoefficientRecovery(self.projection),
            lambda_policy=NonLocalLambdaPolicy(
                self.projection,
                config.lambda_decrease_factor,
                config.lambda_increase_factor,
            ),
        )

        self.projection.dynamic_clamp = config.dynamic_clamp
        self.projection.local_search = config.local_search
        if config.clamp_values is not None:
            self.set_clamp_values(config.clamp_values)
        if config.lower_bounds is not None or config.upper_bounds is not None:
            self.set_bounds(
                none_to_inf(config.lower_bounds, -np.inf),
                none_to_inf(config.upper_bounds, np.inf),
            )

    @property
    def function(self) -> NonLinearFunction:
        return self.fitter.function

    @property
    def stopping_criteria(self) -> StoppingCriteria:
        return self.fitter.stopping_criteria

    @property
    def lower(self) -> np.ndarray | None:
        return self.projection.lower

    @property
    def upper(self) -> np.ndarray | None:
        return self.projection.upper

    @property
    def callback(self):
        return self.fitter.callback

    @callback.setter
    def callback(self, callback) -> None:
        self.fitter.callback = callback

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
        new_lower, new_upper, is_lower, is_upper = extract_bounds(lower, upper, indices)

        self.projection.lower = new_lower
        self.projection.upper = new_upper
        self.projection.is_lower = is_lower
        self.projection.is_upper = is_upper
        self.projection.at_bounds_count = 0

    def set_clamp_values(self, clamp_values) -> None:
        """Set full-length maximum steps. Non-finite or zero entries disable
        clamping for that coefficient; ``None`` disables clamping."""
        if clamp_values is None:
            self.projection.clamp_initial = None
            self.projection.is_clamped = False
            return

        indices = np.asarray(self.function.gradient_indices(), dtype=int)
        values = extract_fitted(clamp_values, indices, "clamp_values")
        values[~np.isfinite(values)] = 0.0
        values = np.abs(values)

        self.projection.clamp_initial = values
        self.projection.is_clamped = bool(np.any(values != 0))

    def set_dynamic_clamp(self, dynamic_clamp: bool) -> None:
        self.projection.dynamic_clamp = dynamic_clamp

    def set_local_search(self, local_search: float) -> None:
        """Threshold for flagging non-local steps when clamping (0 disables)."""
        self.projection.local_search = local_search

    def set_initial_lambda(self, initial_lambda: float) -> None:
        self.fitter.set_initial_lambda(initial_lambda)

    def set_max_iterations(self, max_iterations: int) -> None:
        self.fitter.set_max_iterations(max_iterations)

    def set_mle(self, mle: bool) -> None:
        self.fitter.set_mle(mle)

    def set_objective_model(self, function: NonLinearFunction) -> None:
        """Replace the model. Bounds are cleared; clamp values are kept."""
        self.fitter.set_objective_model(function)
        self.projection.lower = None
        self.projection.upper = None
        self.projection.is_lower = False
        self.projection.is_upper = False
        self.projection.at_bounds_count = 0

    def is_bounded(self) -> bool:
        return True

    def is_constrained(self) -> bool:
        return False

    def is_clamped(self) -> bool:
        return self.projection.is_clamped

    def get_initial_residual_sum_of_squares(self) -> float:
        return self.fitter.get_initial_residual_sum_of_squares()

    def get_value(self) -> float:
        return self.fitter.get_value()

    # ------------------------------------------------------------------
    # Fitting
    # ------------------------------------------------------------------

    def fit(
        self,
        y,
        a,
        y_fit: np.ndarray | None = None,
        a_dev: np.ndarray | None = None,
        noise: float = 0.0,
        compute_deviations: bool = False,
    ) -> FitResult:
        """Fit with bounds and clamping. See :meth:`NonLinearFit.fit`.

        Raises
        ------
        FitConfigurationError
            If the clamp values were set for a model with a different number
            of fitted coefficients.
        """
        m = self.function.number_of_gradients()
        if self.projection.is_clamped and self.projection.clamp_initial.size != m:
            raise FitConfigurationError(
                "Clamp values do not match the fitted coefficients",
                parameter="clamp_values",
                error_context={
                    "n_clamp": self.projection.clamp_initial.size,
                    "n_fitted": m,
                },
            )
        return self.fitter.fit(
            y, a, y_fit=y_fit, a_dev=a_dev, noise=noise,
            compute_deviations=compute_deviations,
        )

    def compute_value(self, y, a) -> float:
        return self.fitter.compute_value(y, a)
