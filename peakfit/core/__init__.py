"""Model functions for peak fitting.

Key Components:
- functions: the model contract consumed by every solver
- gaussian2d: point-sampled and pixel-integrated 2D Gaussian models
"""

from peakfit.core.functions import CallableFunction, NonLinearFunction
from peakfit.core.gaussian2d import (
    FIT_MODES,
    PARAMETER_NAMES,
    ErfGaussian2DFunction,
    Gaussian2DFunction,
    create_function,
)

__all__ = [
    "NonLinearFunction",
    "CallableFunction",
    "Gaussian2DFunction",
    "ErfGaussian2DFunction",
    "create_function",
    "FIT_MODES",
    "PARAMETER_NAMES",
]
