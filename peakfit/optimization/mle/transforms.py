"""Bound-removing variable transforms.

Lets an unconstrained optimiser search a bounded box by mapping each bounded
coefficient onto the whole real line:

=================  ===================================  =========================
bounds             bounded -> unbounded                 unbounded -> bounded
=================  ===================================  =========================
lower and upper    ``log((x - lo) / (hi - x))``         ``lo + (hi - lo) * sigmoid(y)``
lower only         ``log(x - lo)``                      ``lo + exp(y)``
upper only         ``-log(hi - x)``                     ``hi - exp(-y)``
neither            ``x``                                ``y``
=================  ===================================  =========================

Every unbounded point maps strictly inside the bounds, so a mapped search
can never leave the box.
"""

from __future__ import annotations

import numpy as np
from scipy.special import expit, logit

# Fraction of the range kept between a start point and its bound
_INTERIOR_MARGIN = 1e-6


class BoundMappingAdapter:
    """Map coefficients between a bounded box and unbounded space.

    Parameters
    ----------
    lower, upper : array-like | None
        Per-coefficient bounds. ``None`` or infinite entries are unbounded.
        A coefficient with equal bounds is fixed at that value.
    size : int
        Number of coefficients
    """

    def __init__(self, lower, upper, size: int):
        self.lower = _as_bound(lower, -np.inf, size)
        self.upper = _as_bound(upper, np.inf, size)

        has_lower = np.isfinite(self.lower)
        has_upper = np.isfinite(self.upper)
        self.fixed = has_lower & has_upper & (self.lower == self.upper)
        self.both = has_lower & has_upper & ~self.fixed
        self.lower_only = has_lower & ~has_upper
        self.upper_only = has_upper & ~has_lower

    def to_unbounded(self, x) -> np.ndarray:
        """Map a bounded point to unbounded space.

        Points on or outside a bound are first moved just inside it.
        """
        x = self.interior(x)
        y = x.copy()

        lo, hi = self.lower, self.upper
        b = self.both
        y[b] = logit((x[b] - lo[b]) / (hi[b] - lo[b]))
        b = self.lower_only
        y[b] = np.log(x[b] - lo[b])
        b = self.upper_only
        y[b] = -np.log(hi[b] - x[b])
        y[self.fixed] = 0.0
        return y

    def to_bounded(self, y) -> np.ndarray:
        """Map an unbounded point back into the bounds."""
        y = np.asarray(y, dtype=float)
        x = y.copy()

        lo, hi = self.lower, self.upper
        b = self.both
        x[b] = lo[b] + (hi[b] - lo[b]) * expit(y[b])
        b = self.lower_only
        x[b] = lo[b] + np.exp(y[b])
        b = self.upper_only
        x[b] = hi[b] - np.exp(-y[b])
        x[self.fixed] = lo[self.fixed]
        return x

    def interior(self, x) -> np.ndarray:
        """Copy of ``x`` moved strictly inside any finite bound."""
        x = np.array(x, dtype=float)
        lo, hi = self.lower, self.upper

        b = self.both
        margin = (hi[b] - lo[b]) * _INTERIOR_MARGIN
        x[b] = np.clip(x[b], lo[b] + margin, hi[b] - margin)

        b = self.lower_only
        x[b] = np.maximum(x[b], lo[b] + _one_sided_margin(lo[b]))
        b = self.upper_only
        x[b] = np.minimum(x[b], hi[b] - _one_sided_margin(hi[b]))

        x[self.fixed] = lo[self.fixed]
        return x


def _as_bound(values, fill: float, size: int) -> np.ndarray:
    if values is None:
        return np.full(size, fill)
    values = np.array(values, dtype=float).ravel()
    values[np.isnan(values)] = fill
    return values


def _one_sided_margin(bound: np.ndarray) -> np.ndarray:
    return np.maximum(np.abs(bound) * _INTERIOR_MARGIN, _INTERIOR_MARGIN)
