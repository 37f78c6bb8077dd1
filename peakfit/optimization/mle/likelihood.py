"""Poisson negative log-likelihood objective.

For observed counts ``k_i`` and model values ``l_i = f(i; a)`` the objective
minimised by the likelihood solver is::

    NLL(a) = sum_i (l_i - k_i * ln(l_i)) [+ sum_i ln(k_i!)]

with gradient::

    dNLL/da_j = sum_i dl_i/da_j * (1 - k_i / l_i)

The constant ``ln(k!)`` term does not move the minimum and is only added
when an absolute likelihood is wanted. Any non-positive model value makes
the likelihood undefined and the objective returns ``+inf``.
"""

from __future__ import annotations

import numpy as np
from scipy.special import gammaln

from peakfit.core.functions import NonLinearFunction


class PoissonLikelihoodFunction:
    """Negative log-likelihood of Poisson counts over the fitted coefficients.

    The optimiser sees only the fitted coefficients; the remaining entries of
    the full coefficient vector are taken from the template ``a``.

    Parameters
    ----------
    function : NonLinearFunction
        Model of the expected counts
    a : array-like
        Full coefficient vector used as the template
    y : array-like
        Observed counts. Negative values are treated as zero.
    include_log_factorial : bool
        Add the constant ``sum(ln(k!))`` term
    """

    def __init__(
        self,
        function: NonLinearFunction,
        a,
        y,
        include_log_factorial: bool = False,
    ):
        self.function = function
        self.template = np.array(a, dtype=float).ravel()
        self.indices = np.asarray(function.gradient_indices(), dtype=int)
        self.y = np.maximum(np.asarray(y, dtype=float).ravel(), 0.0)
        self.n = self.y.size
        self.log_factorial = float(gammaln(self.y + 1).sum()) if include_log_factorial else 0.0

        self._last_point: np.ndarray | None = None
        self._last_value = float("nan")

    def coefficients(self, point) -> np.ndarray:
        """Full coefficient vector for a fitted-coefficient ``point``."""
        a = self.template.copy()
        a[self.indices] = point
        return a

    def value(self, point) -> float:
        point = np.asarray(point, dtype=float)
        if self._last_point is not None and np.array_equal(point, self._last_point):
            return self._last_value

        self.function.initialise(self.coefficients(point))
        l = self.function.values(self.n)
        return self._remember(point, self._score(l))

    def gradient(self, point) -> np.ndarray:
        return self.value_and_gradient(point)[1]

    def value_and_gradient(self, point) -> tuple[float, np.ndarray]:
        """Objective and its gradient with respect to the fitted coefficients.

        The gradient is zero where the objective is infinite.
        """
        point = np.asarray(point, dtype=float)
        self.function.initialise(self.coefficients(point))
        l, dl = self.function.values_with_gradient(self.n)

        score = self._score(l)
        if np.isinf(score):
            gradient = np.zeros(self.indices.size)
        else:
            gradient = dl.T @ (1.0 - self.y / l)
        return self._remember(point, score), gradient

    def _score(self, l: np.ndarray) -> float:
        if not np.all(l > 0):
            return float("inf")
        return float(np.sum(l - self.y * np.log(l))) + self.log_factorial

    def _remember(self, point: np.ndarray, score: float) -> float:
        self._last_point = point.copy()
        self._last_value = score
        return score
