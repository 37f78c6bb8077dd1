"""PeakFit: Nonlinear Peak Fitting
==============================

Least squares and maximum likelihood fitting of peak models to image data.

Key Features:
- Levenberg-Marquardt solver with pluggable step projection
- Bounded and step-clamped variant for hard parameter limits
- Poisson maximum likelihood solver with Powell, BOBYQA, CMA-ES and
  conjugate gradient searches
- 2D Gaussian models, point-sampled or integrated over pixels

Quick Start:
    >>> import numpy as np
    >>> from peakfit import BoundedNonLinearFit, create_function
    >>>
    >>> function = create_function(20, 20, "free")
    >>> fitter = BoundedNonLinearFit(function)
    >>> fitter.set_bounds([0, 0, 0, 0, 0.5, 0.5], [100, 1e5, 20, 20, 5, 5])
    >>> a = np.array([1.0, 500.0, 9.0, 11.0, 2.0, 2.0])
    >>> result = fitter.fit(image.ravel(), a)
    >>> print(result.status, result.parameters)
"""

__version__ = "1.0.0"

from peakfit.config import ConfigManager  # noqa: E402
from peakfit.core import (  # noqa: E402
    ErfGaussian2DFunction,
    Gaussian2DFunction,
    NonLinearFunction,
    create_function,
)
from peakfit.optimization import (  # noqa: E402
    BoundedNonLinearFit,
    FitConfig,
    FitConfigurationError,
    FitResult,
    FitStatus,
    MaximumLikelihoodFitter,
    NonLinearFit,
    SearchMethod,
    create_solver,
)
from peakfit.utils import configure_logging, get_logger  # noqa: E402

__all__ = [
    "__version__",
    "ConfigManager",
    "NonLinearFunction",
    "Gaussian2DFunction",
    "ErfGaussian2DFunction",
    "create_function",
    "FitConfig",
    "FitConfigurationError",
    "FitResult",
    "FitStatus",
    "NonLinearFit",
    "BoundedNonLinearFit",
    "MaximumLikelihoodFitter",
    "SearchMethod",
    "create_solver",
    "configure_logging",
    "get_logger",
]
