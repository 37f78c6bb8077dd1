"""Convergence policies for the Levenberg-Marquardt loop.

A policy is told, after every iteration, the best metric value before the
step, the metric value of the trial step and the current coefficients. It
decides whether to continue and whether convergence was achieved. Running out
of iterations stops the loop without achieving convergence.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import numpy as np

from peakfit.optimization.numerical_validation import ToleranceChecker
from peakfit.utils.logging import get_logger

logger = get_logger(__name__)


class StoppingCriteria(ABC):
    """Base convergence policy.

    Attributes
    ----------
    iteration : int
        Iterations evaluated since :meth:`initialise`
    maximum_iterations : int
        Budget after which the loop stops unconverged
    minimum_iterations : int
        Convergence is not declared before this many iterations
    """

    def __init__(self, maximum_iterations: int = 20, minimum_iterations: int = 0):
        self.maximum_iterations = maximum_iterations
        self.minimum_iterations = minimum_iterations
        self.iteration = 0
        self._not_satisfied = True
        self._achieved = False

    def initialise(self, a: np.ndarray) -> None:
        """Reset for a new fit starting at coefficients ``a``."""
        self.iteration = 0
        self._not_satisfied = True
        self._achieved = False

    @abstractmethod
    def evaluate(self, old_ss: float, new_ss: float, a: np.ndarray) -> None:
        """Record the outcome of one iteration."""

    def are_not_satisfied(self) -> bool:
        return self._not_satisfied

    def are_achieved(self) -> bool:
        return self._achieved

    def _converged(self) -> bool:
        """Mark convergence if the minimum iteration count allows it."""
        if self.iteration < self.minimum_iterations:
            return False
        self._achieved = True
        self._not_satisfied = False
        return True

    def _check_budget(self) -> None:
        if self._not_satisfied and self.iteration >= self.maximum_iterations:
            logger.debug(f"Iteration budget of {self.maximum_iterations} exhausted")
            self._not_satisfied = False


class ErrorStoppingCriteria(StoppingCriteria):
    """Stop when the metric stops improving to a number of significant digits.

    An accepted improvement that is within tolerance of the previous best
    counts towards convergence; a larger improvement resets the count. A worse
    trial step leaves the count unchanged. Converged after
    ``iteration_limit`` counted iterations.

    Parameters
    ----------
    significant_digits : int
        Digits to which consecutive best values must agree
    maximum_iterations : int
        Iteration budget
    iteration_limit : int
        Number of within-tolerance improvements required
    max_absolute_error : float
        Absolute change always treated as within tolerance
    avoid_plateau : bool
        Stop unconverged after ``plateau_iterations`` consecutive worse steps
    plateau_iterations : int
        Length of the run of worse steps that ends a fit when
        ``avoid_plateau`` is set
    """

    def __init__(
        self,
        significant_digits: int = 5,
        maximum_iterations: int = 20,
        iteration_limit: int = 1,
        max_absolute_error: float = 1e-10,
        avoid_plateau: bool = False,
        plateau_iterations: int = 10,
    ):
        super().__init__(maximum_iterations=maximum_iterations)
        self.checker = ToleranceChecker(significant_digits, max_absolute_error)
        self.significant_digits = significant_digits
        self.iteration_limit = iteration_limit
        self.avoid_plateau = avoid_plateau
        self.plateau_iterations = plateau_iterations
        self._count = 0
        self._worse = 0

    def initialise(self, a: np.ndarray) -> None:
        super().initialise(a)
        self._count = 0
        self._worse = 0

    def evaluate(self, old_ss: float, new_ss: float, a: np.ndarray) -> None:
        self.iteration += 1

        if new_ss > old_ss:
            self._worse += 1
        else:
            self._worse = 0
            if self.checker.almost_equal(old_ss, new_ss):
                self._count += 1
            else:
                self._count = 0

        if self._count >= self.iteration_limit and self._converged():
            return
        if self.avoid_plateau and self._worse >= self.plateau_iterations:
            logger.debug(f"No improvement in {self._worse} iterations, stopping")
            self._not_satisfied = False
            return
        self._check_budget()


class ParameterStoppingCriteria(StoppingCriteria):
    """Stop when every coefficient changes by less than a relative tolerance.

    Only accepted steps (``new_ss <= old_ss``) are compared.
    """

    def __init__(
        self,
        significant_digits: int = 5,
        maximum_iterations: int = 20,
        max_absolute_error: float = 1e-10,
    ):
        super().__init__(maximum_iterations=maximum_iterations)
        self.checker = ToleranceChecker(significant_digits, max_absolute_error)
        self._previous = None

    def initialise(self, a: np.ndarray) -> None:
        super().initialise(a)
        self._previous = np.array(a, dtype=float)

    def evaluate(self, old_ss: float, new_ss: float, a: np.ndarray) -> None:
        self.iteration += 1
        if new_ss <= old_ss:
            if self.checker.all_almost_equal(self._previous, a) and self._converged():
                return
            self._previous = np.array(a, dtype=float)
        self._check_budget()
