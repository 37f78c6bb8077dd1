"""Closed set of outcomes returned by every solver's ``fit`` entry point."""

from __future__ import annotations

from enum import Enum


class FitStatus(Enum):
    """Fit outcome. Returned by solvers, never raised."""

    OK = "OK"
    FAILED_TO_CONVERGE = "Failed to converge"
    TOO_MANY_ITERATIONS = "Too many iterations"
    SINGULAR_NON_LINEAR_MODEL = "Singular non-linear model"
    INVALID_GRADIENTS_IN_NON_LINEAR_MODEL = "Invalid gradients in non-linear model"
    UNKNOWN = "Unknown"

    @property
    def is_ok(self) -> bool:
        return self is FitStatus.OK

    @property
    def description(self) -> str:
        return self.value
