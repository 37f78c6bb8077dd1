"""Numerical validation helpers for the fitting loops.

Provides the relative-or-absolute tolerance comparison used to validate
linear solutions and to detect convergence, plus NaN/Inf detection.
"""

from __future__ import annotations

import numpy as np


class ToleranceChecker:
    """Compare floating point values to a number of significant digits.

    Two values are considered equal when their absolute difference is within
    ``max_absolute_error`` or their relative difference is within
    ``10**-significant_digits``.

    Attributes
    ----------
    significant_digits : int
        Number of significant digits that must agree
    max_absolute_error : float
        Absolute difference below which values are always equal
    """

    def __init__(self, significant_digits: int = 3, max_absolute_error: float = 1e-10):
        if significant_digits < 1:
            raise ValueError(
                f"significant_digits must be positive, got: {significant_digits}"
            )
        self.significant_digits = significant_digits
        self.max_absolute_error = max_absolute_error
        self.max_relative_error = 10.0 ** -significant_digits

    @classmethod
    def from_relative_error(
        cls, max_relative_error: float, max_absolute_error: float = 1e-10
    ) -> ToleranceChecker:
        """Build a checker from a relative tolerance rather than digits."""
        checker = cls(1, max_absolute_error)
        checker.max_relative_error = max_relative_error
        return checker

    def almost_equal(self, a: float, b: float) -> bool:
        difference = abs(a - b)
        if difference <= self.max_absolute_error:
            return True
        size = max(abs(a), abs(b))
        return difference <= size * self.max_relative_error

    def all_almost_equal(self, a: np.ndarray, b: np.ndarray) -> bool:
        """Element-wise :meth:`almost_equal` over two arrays."""
        a = np.asarray(a, dtype=float)
        b = np.asarray(b, dtype=float)
        difference = np.abs(a - b)
        size = np.maximum(np.abs(a), np.abs(b))
        ok = (difference <= self.max_absolute_error) | (
            difference <= size * self.max_relative_error
        )
        return bool(np.all(ok))


def has_nan(*arrays: np.ndarray) -> bool:
    """Return True if any of the arrays contains NaN."""
    return any(np.isnan(np.asarray(arr)).any() for arr in arrays)


def has_non_finite(*arrays: np.ndarray) -> bool:
    """Return True if any of the arrays contains NaN or Inf."""
    return any(not np.isfinite(np.asarray(arr)).all() for arr in arrays)


def reciprocal_sqrt(values: np.ndarray) -> np.ndarray:
    """``1/sqrt(v)`` for positive entries and 0 elsewhere."""
    values = np.asarray(values, dtype=float)
    out = np.zeros_like(values)
    positive = values > 0
    out[positive] = 1.0 / np.sqrt(values[positive])
    return out
