"""Symmetric linear system solver for the Levenberg-Marquardt normal equations.

Solves ``A x = b`` where ``A`` is the (damped) curvature matrix and ``b`` the
gradient vector. Entries of ``b`` that are exactly zero mark coefficients that
are treated as converged: their row and column are removed from the system
and their shift is zero.
"""

from __future__ import annotations

import numpy as np
from scipy import linalg

from peakfit.optimization.exceptions import SingularSystemError
from peakfit.optimization.numerical_validation import ToleranceChecker, has_non_finite
from peakfit.utils.logging import get_logger

logger = get_logger(__name__)


class LinearSolver:
    """Cholesky solver with LU fallback and solution validation.

    Parameters
    ----------
    significant_digits : int
        Digits to which ``A x`` must reproduce ``b`` for a solution to be
        accepted.
    max_absolute_error : float
        Absolute residual below which the solution is always accepted.
    """

    def __init__(self, significant_digits: int = 3, max_absolute_error: float = 1e-10):
        self.checker = ToleranceChecker(significant_digits, max_absolute_error)

    def solve_with_zeros(self, a: np.ndarray, b: np.ndarray) -> np.ndarray:
        """Solve ``a x = b`` in place, excluding indices where ``b == 0``.

        Parameters
        ----------
        a : np.ndarray
            Symmetric (m, m) matrix. Not modified.
        b : np.ndarray
            Right-hand side (m,). Overwritten with the solution.

        Returns
        -------
        np.ndarray
            ``b``, now holding the solution.

        Raises
        ------
        SingularSystemError
            If the reduced system cannot be solved to the required accuracy.
        """
        keep = np.flatnonzero(b != 0)
        if keep.size == 0:
            return b
        if keep.size == b.size:
            return self.solve(a, b)

        sub_a = a[np.ix_(keep, keep)]
        sub_b = b[keep].copy()
        self.solve(sub_a, sub_b)
        b[:] = 0.0
        b[keep] = sub_b
        return b

    def solve(self, a: np.ndarray, b: np.ndarray) -> np.ndarray:
        """Solve ``a x = b`` in place into ``b``. Raises SingularSystemError."""
        size = b.size
        if has_non_finite(a, b):
            raise SingularSystemError("Linear system contains non-finite values", size=size)

        try:
            x = linalg.cho_solve(linalg.cho_factor(a, check_finite=False), b, check_finite=False)
        except linalg.LinAlgError:
            logger.debug(f"Cholesky decomposition failed for {size}x{size} system, trying LU")
            x = self._solve_lu(a, b)

        if not self._validate(a, x, b):
            raise SingularSystemError(
                "Linear solution failed validation", size=size
            )
        b[:] = x
        return b

    def _solve_lu(self, a: np.ndarray, b: np.ndarray) -> np.ndarray:
        try:
            lu, piv = linalg.lu_factor(a, check_finite=False)
        except (linalg.LinAlgError, ValueError) as e:
            raise SingularSystemError(f"LU decomposition failed: {e}", size=b.size) from e
        if np.any(np.diag(lu) == 0):
            raise SingularSystemError("Matrix is singular", size=b.size)
        return linalg.lu_solve((lu, piv), b, check_finite=False)

    def _validate(self, a: np.ndarray, x: np.ndarray, b: np.ndarray) -> bool:
        if has_non_finite(x):
            return False
        return self.checker.all_almost_equal(a @ x, b)

    def invert(self, a: np.ndarray) -> np.ndarray:
        """Inverse of a symmetric positive definite matrix.

        Rows/columns whose diagonal entry is zero are excluded and their
        inverse entries set to zero.

        Raises
        ------
        SingularSystemError
            If the matrix is not positive definite.
        """
        a = np.asarray(a, dtype=float)
        keep = np.flatnonzero(np.diag(a) != 0)
        inverse = np.zeros_like(a)
        if keep.size == 0:
            return inverse
        if has_non_finite(a):
            raise SingularSystemError("Matrix contains non-finite values", size=a.shape[0])

        sub_a = a[np.ix_(keep, keep)]
        try:
            factor = linalg.cho_factor(sub_a, check_finite=False)
        except linalg.LinAlgError as e:
            raise SingularSystemError(
                f"Matrix inversion failed: {e}", size=keep.size
            ) from e
        sub_inverse = linalg.cho_solve(factor, np.eye(keep.size), check_finite=False)
        if has_non_finite(sub_inverse):
            raise SingularSystemError("Matrix inversion failed", size=keep.size)
        inverse[np.ix_(keep, keep)] = sub_inverse
        return inverse
