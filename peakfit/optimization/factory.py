"""Solver construction from configuration."""

from __future__ import annotations

from peakfit.core.functions import NonLinearFunction
from peakfit.optimization.config import VALID_SOLVERS, FitConfig
from peakfit.optimization.exceptions import FitConfigurationError
from peakfit.optimization.lvm.bounded import BoundedNonLinearFit
from peakfit.optimization.lvm.nonlinear_fit import NonLinearFit
from peakfit.optimization.mle.fitter import MaximumLikelihoodFitter
from peakfit.utils.logging import get_logger

logger = get_logger(__name__)


def create_solver(function: NonLinearFunction, config: FitConfig | None = None):
    """Build the solver named by ``config.solver``.

    Parameters
    ----------
    function : NonLinearFunction
        The objective model
    config : FitConfig, optional
        Solver settings. Defaults to the plain Levenberg-Marquardt solver.

    Returns
    -------
    NonLinearFit | BoundedNonLinearFit | MaximumLikelihoodFitter

    Raises
    ------
    FitConfigurationError
        If the solver name is unknown.
    """
    config = config or FitConfig()
    solver = config.solver.lower()
    logger.debug(f"Creating '{solver}' solver for {function.name}")

    if solver == "lvm":
        return NonLinearFit(function, config=config)
    if solver == "bounded":
        return BoundedNonLinearFit(function, config=config)
    if solver == "mle":
        return MaximumLikelihoodFitter(function, config=config)

    raise FitConfigurationError(
        f"Unknown solver: {config.solver}. Valid solvers: {VALID_SOLVERS}",
        parameter="solver",
    )
