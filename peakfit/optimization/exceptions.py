"""Custom exceptions for nonlinear peak fitting.

Exception Hierarchy:
    FittingError (base)
    ├── FitConfigurationError (invalid solver configuration)
    ├── SingularSystemError (linear system could not be solved)
    └── EvaluationBudgetExceeded (objective evaluation budget used up)

Only :class:`FitConfigurationError` is meant to reach callers. The other two
are raised inside the solvers and translated to a
:class:`~peakfit.optimization.status.FitStatus` at the ``fit`` boundary.

Examples
--------
>>> try:
...     solver.set_bounds(lower, upper)
... except FitConfigurationError as e:
...     logger.error(f"Rejected bounds: {e}")
"""

from __future__ import annotations


class FittingError(Exception):
    """Base exception for all peak fitting errors.

    Attributes
    ----------
    message : str
        Detailed error message
    error_context : dict
        Additional context about the error (parameter index, sizes, etc.)
    """

    def __init__(self, message: str, error_context: dict | None = None):
        """Initialize base fitting error.

        Parameters
        ----------
        message : str
            Detailed error message
        error_context : dict, optional
            Additional context about the error
        """
        super().__init__(message)
        self.error_context = error_context or {}

    def __str__(self) -> str:
        """Return formatted error message with context."""
        base_msg = super().__str__()
        if self.error_context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.error_context.items())
            return f"{base_msg} (context: {context_str})"
        return base_msg


class FitConfigurationError(FittingError):
    """Raised when a solver is given an invalid configuration.

    The solver state is left exactly as it was before the rejected call.

    Common Causes
    -------------
    - A lower bound above its upper bound
    - Bound or clamp arrays shorter than the coefficient vector
    - A bounded search method run without bounds

    Attributes
    ----------
    parameter : str
        Name of the offending configuration value
    """

    def __init__(
        self,
        message: str,
        parameter: str | None = None,
        error_context: dict | None = None,
    ):
        context = error_context or {}
        if parameter:
            context["parameter"] = parameter

        super().__init__(message, context)
        self.parameter = parameter


class SingularSystemError(FittingError):
    """Raised when the normal equations cannot be solved or inverted.

    Attributes
    ----------
    size : int
        Dimension of the (reduced) linear system
    """

    def __init__(
        self,
        message: str,
        size: int | None = None,
        error_context: dict | None = None,
    ):
        context = error_context or {}
        if size is not None:
            context["size"] = size

        super().__init__(message, context)
        self.size = size


class EvaluationBudgetExceeded(FittingError):
    """Raised when an objective function exceeds its evaluation budget.

    Attributes
    ----------
    max_evaluations : int
        The budget that was exhausted
    """

    def __init__(
        self,
        message: str,
        max_evaluations: int | None = None,
        error_context: dict | None = None,
    ):
        context = error_context or {}
        if max_evaluations is not None:
            context["max_evaluations"] = max_evaluations

        super().__init__(message, context)
        self.max_evaluations = max_evaluations
