"""Extension points of the Levenberg-Marquardt loop.

:class:`~peakfit.optimization.lvm.nonlinear_fit.NonLinearFit` delegates three
decisions to injected strategy objects:

- ``StepProjection``: turns a solved shift ``da`` into trial coefficients
- ``SolveFailureRecovery``: gets one chance to rescue a failed linear solve
- ``LambdaPolicy``: updates the damping factor after an accepted or
  rejected step

The defaults implement the plain unbounded solver. The bounded solver
supplies clamping/bounds versions of all three.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from peakfit.optimization.lvm.nonlinear_fit import NonLinearFit


class StepProjection:
    """Apply the raw shift: ``ap[j] = a[j] + da[j]`` for each fitted index."""

    def begin_fit(self, indices: np.ndarray) -> None:
        """Called once at the start of every fit."""

    def project(
        self, a: np.ndarray, da: np.ndarray, ap: np.ndarray, indices: np.ndarray
    ) -> None:
        ap[indices] = a[indices] + da


class SolveFailureRecovery:
    """Never recovers; a failed solve ends the fit."""

    def recover(self, fitter: NonLinearFit) -> bool:
        """Retry the failed solve. Return True if ``da`` now holds a shift."""
        return False


class LambdaPolicy:
    """Multiplicative damping updates.

    Parameters
    ----------
    decrease_factor : float
        Applied after an accepted step
    increase_factor : float
        Applied after a rejected step
    """

    def __init__(self, decrease_factor: float = 0.1, increase_factor: float = 10.0):
        self.decrease_factor = decrease_factor
        self.increase_factor = increase_factor

    def on_accept(self, lambda_: float) -> float:
        return lambda_ * self.decrease_factor

    def on_reject(self, lambda_: float) -> float:
        return lambda_ * self.increase_factor
