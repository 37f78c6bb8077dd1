"""Curvature matrix and gradient vector accumulation.

Computes the Gauss-Newton normal-equation components for the current
coefficients:

- least squares: ``alpha = JᵀWJ``, ``beta = JᵀW(y - f)``, ``SS = Σ w (y - f)²``
- Poisson maximum likelihood (Laurence & Chromy, Nature Methods 7, 338-339,
  2010): the log-likelihood-ratio ``χ²_mle = 2 Σ [f - x - x ln(f/x)]`` with
  ``alpha[k][l] = Σ (x/f²) df_k df_l`` and ``beta[k] = -Σ (1 - x/f) df_k``

Only the fitted coefficients contribute columns to ``J``.
"""

from __future__ import annotations

import sys

import numpy as np

from peakfit.core.functions import NonLinearFunction
from peakfit.optimization.numerical_validation import has_nan

# Smallest positive normal double; log of it stands in for log(0)
_LOG_MIN_VALUE = np.log(sys.float_info.min)


class GradientCalculator:
    """Least-squares accumulator, weighted when the function supports it.

    Weights are ``1 / variance`` with variances below 1 treated as 1.
    """

    def __init__(self, nparams: int):
        self.nparams = nparams
        self._nan_gradients = False

    def is_nan_gradients(self) -> bool:
        """True if the last :meth:`find_linearised` produced NaN gradients."""
        return self._nan_gradients

    @staticmethod
    def get_weights(variances: np.ndarray) -> np.ndarray:
        weights = np.ones_like(variances)
        large = variances >= 1
        weights[large] = 1.0 / variances[large]
        return weights

    def find_linearised(
        self,
        y: np.ndarray,
        a: np.ndarray,
        alpha: np.ndarray,
        beta: np.ndarray,
        func: NonLinearFunction,
    ) -> float:
        """Fill ``alpha`` and ``beta`` in place and return the sum of squares."""
        n = y.size
        func.initialise(a)
        values, jacobian = func.values_with_gradient(n)
        dy = y - values

        if func.can_compute_weights():
            weights = self.get_weights(func.variances(n))
            weighted = jacobian * weights[:, None]
            alpha[:] = weighted.T @ jacobian
            beta[:] = weighted.T @ dy
            ssx = float(np.dot(dy * weights, dy))
        else:
            alpha[:] = jacobian.T @ jacobian
            beta[:] = jacobian.T @ dy
            ssx = float(np.dot(dy, dy))

        self._nan_gradients = has_nan(alpha, beta)
        return ssx

    def find_value(self, y: np.ndarray, a: np.ndarray, func: NonLinearFunction) -> float:
        """Fitting metric at ``a`` without computing gradients."""
        n = y.size
        func.initialise(a)
        dy = y - func.values(n)
        if func.can_compute_weights():
            return float(np.dot(dy * self.get_weights(func.variances(n)), dy))
        return float(np.dot(dy, dy))

    def fisher_information_diagonal(
        self, n: int, a: np.ndarray, func: NonLinearFunction
    ) -> np.ndarray:
        """Diagonal of the Poisson Fisher information, ``Σ df²/f`` over f > 0."""
        func.initialise(a)
        values, jacobian = func.values_with_gradient(n)
        positive = values > 0
        return np.sum(
            jacobian[positive] ** 2 / values[positive, None], axis=0
        )


class MLEGradientCalculator(GradientCalculator):
    """Poisson log-likelihood-ratio accumulator.

    The data must be non-negative.
    """

    def find_linearised(
        self,
        y: np.ndarray,
        a: np.ndarray,
        alpha: np.ndarray,
        beta: np.ndarray,
        func: NonLinearFunction,
    ) -> float:
        n = y.size
        func.initialise(a)
        values, jacobian = func.values_with_gradient(n)

        chisq = self._chi_squared(y, values)

        positive = values > 0
        fi = values[positive]
        xi = y[positive]
        dfi = jacobian[positive]
        alpha[:] = (dfi * (xi / (fi * fi))[:, None]).T @ dfi
        beta[:] = -(dfi.T @ (1.0 - xi / fi))

        # NaN model values fail the positivity test, so check them directly
        self._nan_gradients = has_nan(alpha, beta, values)
        return chisq

    def find_value(self, y: np.ndarray, a: np.ndarray, func: NonLinearFunction) -> float:
        func.initialise(a)
        return self._chi_squared(y, func.values(y.size))

    @staticmethod
    def _chi_squared(y: np.ndarray, values: np.ndarray) -> float:
        positive = values > 0
        fi = values[positive]
        xi = y[positive]

        terms = fi.copy()
        counted = xi != 0
        terms[counted] = fi[counted] - xi[counted] - xi[counted] * np.log(
            fi[counted] / xi[counted]
        )
        chisq = float(np.sum(terms))

        # Non-positive model values: the likelihood is evaluated at the
        # smallest representable value
        xi_clipped = y[~positive]
        xi_clipped = xi_clipped[xi_clipped != 0]
        chisq += float(np.sum(-xi_clipped - xi_clipped * _LOG_MIN_VALUE))
        return 2.0 * chisq


def new_calculator(nparams: int, mle: bool = False) -> GradientCalculator:
    """Create the accumulator for least-squares or maximum likelihood fitting."""
    if mle:
        return MLEGradientCalculator(nparams)
    return GradientCalculator(nparams)
