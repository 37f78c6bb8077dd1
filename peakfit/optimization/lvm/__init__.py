"""Levenberg-Marquardt least squares solvers.

Key Components:
- nonlinear_fit: damped Gauss-Newton core loop
- bounded: bounds and step clamping through the core loop's hooks
- hooks: the step projection, solve recovery and lambda policy seams
- gradients: curvature matrix and gradient accumulation
- linear_solver: normal-equation solves with zero exclusion
- stopping: convergence policies
"""

from peakfit.optimization.lvm.bounded import BoundedNonLinearFit
from peakfit.optimization.lvm.gradients import (
    GradientCalculator,
    MLEGradientCalculator,
    new_calculator,
)
from peakfit.optimization.lvm.hooks import LambdaPolicy, SolveFailureRecovery, StepProjection
from peakfit.optimization.lvm.linear_solver import LinearSolver
from peakfit.optimization.lvm.nonlinear_fit import NonLinearFit
from peakfit.optimization.lvm.stopping import (
    ErrorStoppingCriteria,
    ParameterStoppingCriteria,
    StoppingCriteria,
)

__all__ = [
    "BoundedNonLinearFit",
    "NonLinearFit",
    "GradientCalculator",
    "MLEGradientCalculator",
    "new_calculator",
    "LambdaPolicy",
    "SolveFailureRecovery",
    "StepProjection",
    "LinearSolver",
    "ErrorStoppingCriteria",
    "ParameterStoppingCriteria",
    "StoppingCriteria",
]
