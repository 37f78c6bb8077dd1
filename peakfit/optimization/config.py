"""Fit configuration dataclass and validation.

This module provides the FitConfig dataclass for parsing and validating
solver settings from a YAML/JSON configuration file.

Example YAML section::

    fitting:
      solver: bounded
      lvm:
        initial_lambda: 0.01
        max_iterations: 50
        significant_digits: 5
      clamping:
        values: [10, 1000, 1, 1, 0.5, 0.5]
        dynamic: true
        local_search: 3
      bounds:
        lower: [0, 0, 0, 0, 0.5, 0.5]
        upper: [100, 1.0e6, 15, 15, 5, 5]
      mle:
        search_method: powell_bounded
        max_evaluations: 2000
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from peakfit.utils.logging import get_logger

logger = get_logger(__name__)

VALID_SOLVERS = ["lvm", "bounded", "mle"]
VALID_STOPPING_CRITERIA = ["error", "parameter"]
VALID_SEARCH_METHODS = [
    "powell",
    "powell_bounded",
    "bobyqa",
    "cmaes",
    "conjugate_gradient_fr",
    "conjugate_gradient_pr",
]


@dataclass
class FitConfig:
    """Configuration for the nonlinear fitting solvers.

    Attributes
    ----------
    solver : str
        Solver to build: "lvm", "bounded" or "mle". Default: "lvm".
    initial_lambda : float
        Starting damping factor. Default: 0.01.
    lambda_decrease_factor : float
        Damping multiplier after an accepted step. Default: 0.1.
    lambda_increase_factor : float
        Damping multiplier after a rejected step. Default: 10.
    max_iterations : int
        Iteration budget of the stopping criteria. Default: 20.
    stopping_criteria : str
        "error" (metric change) or "parameter" (coefficient change).
    significant_digits : int
        Convergence tolerance in significant digits. Default: 5.
    max_absolute_error : float
        Absolute change always treated as converged. Default: 1e-10.
    gradient_zero_tolerance : float
        Gradient entries below this magnitude are zeroed before the linear
        solve. Default: 1e-16.
    solver_significant_digits : int
        Accuracy demanded of linear solutions. Default: 3.
    use_mle_gradients : bool
        Use the Poisson likelihood-ratio metric in the LVM solvers.
    clamp_values : list[float] | None
        Full-length per-coefficient maximum step. Default: None.
    dynamic_clamp : bool
        Halve a clamp value when its step changes sign. Default: False.
    local_search : float
        Non-local step threshold for clamped fits (0 disables).
    lower_bounds, upper_bounds : list[float | None] | None
        Full-length bounds. ``None`` entries are unbounded.
    search_method : str
        Likelihood solver strategy. Default: "powell".
    max_evaluations : int
        Objective evaluation budget for the likelihood solver. Default: 2000.
    relative_tolerance, absolute_tolerance : float
        Likelihood solver value tolerances. Defaults: 1e-4, 1e-10.
    cmaes_seed : int | None
        Random seed for the evolutionary strategy.
    """

    solver: str = "lvm"

    # Levenberg-Marquardt settings
    initial_lambda: float = 0.01
    lambda_decrease_factor: float = 0.1
    lambda_increase_factor: float = 10.0
    max_iterations: int = 20
    stopping_criteria: str = "error"
    significant_digits: int = 5
    max_absolute_error: float = 1e-10
    gradient_zero_tolerance: float = 1e-16
    solver_significant_digits: int = 3
    use_mle_gradients: bool = False

    # Clamping
    clamp_values: list[float] | None = None
    dynamic_clamp: bool = False
    local_search: float = 0.0

    # Bounds
    lower_bounds: list[float | None] | None = None
    upper_bounds: list[float | None] | None = None

    # Likelihood solver
    search_method: str = "powell"
    max_evaluations: int = 2000
    relative_tolerance: float = 1e-4
    absolute_tolerance: float = 1e-10
    cmaes_seed: int | None = None

    _validation_errors: list[str] = field(default_factory=list, repr=False)

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> FitConfig:
        """Create FitConfig from a configuration dictionary.

        Parameters
        ----------
        config_dict : dict
            The ``fitting`` section of a configuration file.

        Returns
        -------
        FitConfig
            Configuration object. Validation problems are logged as warnings.
        """
        lvm = config_dict.get("lvm", {})
        clamping = config_dict.get("clamping", {})
        bounds = config_dict.get("bounds", {})
        mle = config_dict.get("mle", {})

        config = cls(
            solver=str(config_dict.get("solver", "lvm")).lower(),
            # Levenberg-Marquardt
            initial_lambda=float(lvm.get("initial_lambda", 0.01)),
            lambda_decrease_factor=float(lvm.get("lambda_decrease_factor", 0.1)),
            lambda_increase_factor=float(lvm.get("lambda_increase_factor", 10.0)),
            max_iterations=int(lvm.get("max_iterations", 20)),
            stopping_criteria=str(lvm.get("stopping_criteria", "error")).lower(),
            significant_digits=int(lvm.get("significant_digits", 5)),
            max_absolute_error=float(lvm.get("max_absolute_error", 1e-10)),
            gradient_zero_tolerance=float(lvm.get("gradient_zero_tolerance", 1e-16)),
            solver_significant_digits=int(lvm.get("solver_significant_digits", 3)),
            use_mle_gradients=bool(lvm.get("use_mle_gradients", False)),
            # Clamping
            clamp_values=clamping.get("values"),
            dynamic_clamp=bool(clamping.get("dynamic", False)),
            local_search=float(clamping.get("local_search", 0.0)),
            # Bounds
            lower_bounds=bounds.get("lower"),
            upper_bounds=bounds.get("upper"),
            # Likelihood solver
            search_method=str(mle.get("search_method", "powell")).lower(),
            max_evaluations=int(mle.get("max_evaluations", 2000)),
            relative_tolerance=float(mle.get("relative_tolerance", 1e-4)),
            absolute_tolerance=float(mle.get("absolute_tolerance", 1e-10)),
            cmaes_seed=mle.get("cmaes_seed"),
        )

        errors = config.validate()
        if errors:
            for error in errors:
                logger.warning(f"Fit config validation: {error}")

        return config

    def validate(self) -> list[str]:
        """Validate configuration values.

        Returns
        -------
        list[str]
            List of validation error messages (empty if valid).
        """
        errors: list[str] = []

        if self.solver not in VALID_SOLVERS:
            errors.append(f"solver must be one of {VALID_SOLVERS}, got: {self.solver}")

        if self.initial_lambda <= 0:
            errors.append(f"initial_lambda must be positive, got: {self.initial_lambda}")
        if not 0 < self.lambda_decrease_factor < 1:
            errors.append(
                f"lambda_decrease_factor must be in (0, 1), got: {self.lambda_decrease_factor}"
            )
        if self.lambda_increase_factor <= 1:
            errors.append(
                f"lambda_increase_factor must be greater than 1, "
                f"got: {self.lambda_increase_factor}"
            )

        if self.max_iterations <= 0:
            errors.append(f"max_iterations must be positive, got: {self.max_iterations}")
        if self.stopping_criteria not in VALID_STOPPING_CRITERIA:
            errors.append(
                f"stopping_criteria must be one of {VALID_STOPPING_CRITERIA}, "
                f"got: {self.stopping_criteria}"
            )
        if self.significant_digits <= 0:
            errors.append(
                f"significant_digits must be positive, got: {self.significant_digits}"
            )
        if self.solver_significant_digits <= 0:
            errors.append(
                f"solver_significant_digits must be positive, "
                f"got: {self.solver_significant_digits}"
            )
        if self.max_absolute_error < 0:
            errors.append(
                f"max_absolute_error must be non-negative, got: {self.max_absolute_error}"
            )
        if self.gradient_zero_tolerance < 0:
            errors.append(
                f"gradient_zero_tolerance must be non-negative, "
                f"got: {self.gradient_zero_tolerance}"
            )

        if self.local_search < 0:
            errors.append(f"local_search must be non-negative, got: {self.local_search}")

        if (
            self.lower_bounds is not None
            and self.upper_bounds is not None
            and len(self.lower_bounds) != len(self.upper_bounds)
        ):
            errors.append(
                f"lower_bounds and upper_bounds must have the same length, "
                f"got: {len(self.lower_bounds)} and {len(self.upper_bounds)}"
            )

        if self.search_method not in VALID_SEARCH_METHODS:
            errors.append(
                f"search_method must be one of {VALID_SEARCH_METHODS}, "
                f"got: {self.search_method}"
            )
        if self.max_evaluations <= 0:
            errors.append(f"max_evaluations must be positive, got: {self.max_evaluations}")
        if self.relative_tolerance <= 0:
            errors.append(
                f"relative_tolerance must be positive, got: {self.relative_tolerance}"
            )
        if self.absolute_tolerance <= 0:
            errors.append(
                f"absolute_tolerance must be positive, got: {self.absolute_tolerance}"
            )

        self._validation_errors = errors
        return errors

    def is_valid(self) -> bool:
        """Check if configuration is valid."""
        return len(self.validate()) == 0

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to nested dictionary format."""
        return {
            "solver": self.solver,
            "lvm": {
                "initial_lambda": self.initial_lambda,
                "lambda_decrease_factor": self.lambda_decrease_factor,
                "lambda_increase_factor": self.lambda_increase_factor,
                "max_iterations": self.max_iterations,
                "stopping_criteria": self.stopping_criteria,
                "significant_digits": self.significant_digits,
                "max_absolute_error": self.max_absolute_error,
                "gradient_zero_tolerance": self.gradient_zero_tolerance,
                "solver_significant_digits": self.solver_significant_digits,
                "use_mle_gradients": self.use_mle_gradients,
            },
            "clamping": {
                "values": self.clamp_values,
                "dynamic": self.dynamic_clamp,
                "local_search": self.local_search,
            },
            "bounds": {
                "lower": self.lower_bounds,
                "upper": self.upper_bounds,
            },
            "mle": {
                "search_method": self.search_method,
                "max_evaluations": self.max_evaluations,
                "relative_tolerance": self.relative_tolerance,
                "absolute_tolerance": self.absolute_tolerance,
                "cmaes_seed": self.cmaes_seed,
            },
        }
