"""Nonlinear fitting solvers for PeakFit
=====================================

Three solvers share one model contract, one status enum and one result type:

1. NonLinearFit: damped Gauss-Newton (Levenberg-Marquardt) least squares
2. BoundedNonLinearFit: the same loop with hard bounds and step clamping
3. MaximumLikelihoodFitter: Poisson maximum likelihood with selectable
   search strategies

Failures are reported through :class:`FitStatus`; only configuration
errors are raised.
"""

from peakfit.optimization.config import FitConfig
from peakfit.optimization.exceptions import (
    EvaluationBudgetExceeded,
    FitConfigurationError,
    FittingError,
    SingularSystemError,
)
from peakfit.optimization.factory import create_solver
from peakfit.optimization.lvm import BoundedNonLinearFit, NonLinearFit
from peakfit.optimization.mle import MaximumLikelihoodFitter, SearchMethod
from peakfit.optimization.results import FitResult, FunctionEvaluationCounter
from peakfit.optimization.status import FitStatus

__all__ = [
    "FitConfig",
    "FitResult",
    "FitStatus",
    "FunctionEvaluationCounter",
    "FittingError",
    "FitConfigurationError",
    "SingularSystemError",
    "EvaluationBudgetExceeded",
    "create_solver",
    "NonLinearFit",
    "BoundedNonLinearFit",
    "MaximumLikelihoodFitter",
    "SearchMethod",
]
