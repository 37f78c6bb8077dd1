"""Helpers mapping full-length coefficient settings to the fitted subset."""

from __future__ import annotations

import numpy as np

from peakfit.optimization.exceptions import FitConfigurationError


def extract_fitted(values, indices: np.ndarray, name: str) -> np.ndarray:
    """Select the fitted-coefficient entries of a full-length array.

    Raises
    ------
    FitConfigurationError
        If ``values`` is too short to cover every fitted index.
    """
    values = np.array(values, dtype=float).ravel()
    if indices.size and values.size <= indices.max():
        raise FitConfigurationError(
            f"{name} must cover every fitted coefficient",
            parameter=name,
            error_context={"length": values.size, "required": int(indices.max()) + 1},
        )
    return values[indices]


def extract_bounds(lower, upper, indices: np.ndarray):
    """Extract and validate bounds for the fitted coefficients.

    ``None`` disables a side; NaN entries are unbounded.

    Returns
    -------
    tuple
        ``(lower, upper, is_lower, is_upper)`` where the flags report whether
        any finite bound is present on that side.

    Raises
    ------
    FitConfigurationError
        If any lower bound is above its upper bound.
    """
    new_lower = None
    if lower is not None:
        new_lower = extract_fitted(lower, indices, "lower")
        new_lower[np.isnan(new_lower)] = -np.inf
    new_upper = None
    if upper is not None:
        new_upper = extract_fitted(upper, indices, "upper")
        new_upper[np.isnan(new_upper)] = np.inf

    is_lower = new_lower is not None and bool(np.any(new_lower != -np.inf))
    is_upper = new_upper is not None and bool(np.any(new_upper != np.inf))

    if is_lower and is_upper:
        bad = np.flatnonzero(new_lower > new_upper)
        if bad.size:
            j = bad[0]
            raise FitConfigurationError(
                f"Lower bound is above upper bound: {new_lower[j]} > {new_upper[j]}",
                parameter="bounds",
                error_context={"index": int(indices[j])},
            )

    return new_lower, new_upper, is_lower, is_upper


def none_to_inf(values, fill: float):
    """Replace ``None`` entries of a configuration list with ``fill``."""
    if values is None:
        return None
    return [fill if v is None else float(v) for v in values]
