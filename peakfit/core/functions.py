"""Objective model contract for the nonlinear solvers
=====================================================

A model predicts a value at each integer sample index ``i`` for a full
coefficient vector ``a``. Only the coefficients listed by
:meth:`NonLinearFunction.gradient_indices` are optimised; the remainder are
held fixed by every solver.

Evaluation is two-phase: :meth:`initialise` is called once with the
coefficients, then values (and optionally partial derivatives) are requested
per index. The vectorised :meth:`values` and :meth:`values_with_gradient`
methods are what the solvers actually call; the defaults here loop over the
per-index methods, and concrete models override them with array code.
"""

from abc import ABC, abstractmethod

import numpy as np


class NonLinearFunction(ABC):
    """Abstract base class for all fit models.

    Subclasses must not modify the coefficient array passed to
    :meth:`initialise`.
    """

    def __init__(self, name: str, parameter_names: list[str]):
        """Initialize base model.

        Args:
            name: Model name for identification
            parameter_names: Names of the full coefficient vector, in order
        """
        self.name = name
        self.parameter_names = parameter_names
        self.n_params = len(parameter_names)

    @abstractmethod
    def gradient_indices(self) -> np.ndarray:
        """Indices of the coefficients that are fitted, in solver order."""

    @abstractmethod
    def initialise(self, a: np.ndarray) -> None:
        """Prepare to evaluate the model at coefficients ``a``."""

    @abstractmethod
    def eval(self, i: int) -> float:
        """Model value at sample index ``i``."""

    @abstractmethod
    def eval_with_gradient(self, i: int) -> tuple[float, np.ndarray]:
        """Model value and partial derivatives for each fitted coefficient."""

    def can_compute_weights(self) -> bool:
        """True if per-sample variances are available for weighted fitting.

        Solvers recompute the plain sum of squares after fitting when this is
        True, since the weighted metric is not a least-squares residual.
        """
        return False

    def variance(self, i: int) -> float:
        """Expected variance of sample ``i``. Only used when weighted."""
        raise NotImplementedError(f"{self.name} does not compute weights")

    def number_of_gradients(self) -> int:
        return len(self.gradient_indices())

    def values(self, n: int) -> np.ndarray:
        """Values for samples ``0..n-1`` at the initialised coefficients."""
        return np.array([self.eval(i) for i in range(n)], dtype=float)

    def values_with_gradient(self, n: int) -> tuple[np.ndarray, np.ndarray]:
        """Values (n,) and Jacobian (n, m) for samples ``0..n-1``."""
        m = self.number_of_gradients()
        values = np.empty(n)
        jacobian = np.empty((n, m))
        for i in range(n):
            values[i], jacobian[i] = self.eval_with_gradient(i)
        return values, jacobian

    def variances(self, n: int) -> np.ndarray:
        return np.array([self.variance(i) for i in range(n)], dtype=float)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(name='{self.name}', "
            f"n_params={self.n_params}, n_fitted={self.number_of_gradients()})"
        )


class CallableFunction(NonLinearFunction):
    """Adapts plain numpy callables to the model contract.

    Args:
        value_fn: ``value_fn(a, x) -> values`` evaluated on the sample grid
        jacobian_fn: ``jacobian_fn(a, x) -> (n, m)`` partial derivatives for
            the fitted indices
        x: Sample coordinates, indexed by sample index
        gradient_indices: Fitted coefficient indices
        parameter_names: Names of the full coefficient vector
    """

    def __init__(self, value_fn, jacobian_fn, x, gradient_indices, parameter_names):
        super().__init__("callable", list(parameter_names))
        self._value_fn = value_fn
        self._jacobian_fn = jacobian_fn
        self._x = np.asarray(x, dtype=float)
        self._indices = np.asarray(gradient_indices, dtype=int)
        self._values = None
        self._jacobian = None

    def gradient_indices(self) -> np.ndarray:
        return self._indices

    def initialise(self, a: np.ndarray) -> None:
        a = np.array(a, dtype=float)
        self._values = np.asarray(self._value_fn(a, self._x), dtype=float)
        self._jacobian = np.asarray(self._jacobian_fn(a, self._x), dtype=float)

    def eval(self, i: int) -> float:
        return float(self._values[i])

    def eval_with_gradient(self, i: int) -> tuple[float, np.ndarray]:
        return float(self._values[i]), self._jacobian[i].copy()

    def values(self, n: int) -> np.ndarray:
        return self._values[:n].copy()

    def values_with_gradient(self, n: int) -> tuple[np.ndarray, np.ndarray]:
        return self._values[:n].copy(), self._jacobian[:n].copy()
