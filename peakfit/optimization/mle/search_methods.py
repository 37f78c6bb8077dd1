"""Search strategies for the maximum likelihood solver.

Each :class:`SearchMethod` maps to a strategy function in
:data:`SEARCH_STRATEGIES`. A strategy takes a :class:`SearchProblem` and
returns a :class:`SearchOutcome`; it owns no solver state.

Strategies:

- POWELL: Powell conjugate-direction search (derivative free)
- POWELL_BOUNDED: Powell search through :class:`BoundMappingAdapter`
- BOBYQA: bound-constrained quadratic-model trust region (``COBYQA``)
- CMAES: covariance matrix adaptation evolution strategy with restarts
- CONJUGATE_GRADIENT_FR / CONJUGATE_GRADIENT_PR: nonlinear conjugate
  gradient with Fletcher-Reeves or Polak-Ribiere updates
"""

from __future__ import annotations

import warnings
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from functools import partial

import cma
import numpy as np
from scipy.optimize import Bounds, line_search, minimize

from peakfit.optimization.exceptions import FitConfigurationError
from peakfit.optimization.mle.transforms import BoundMappingAdapter
from peakfit.optimization.numerical_validation import ToleranceChecker
from peakfit.optimization.results import FunctionEvaluationCounter
from peakfit.utils.logging import get_logger

logger = get_logger(__name__)

# Termination reasons reported by cma when a run used up its budget
_CMAES_BUDGET_STOPS = ("maxfevals", "maxiter")

# Smallest initial step for a coefficient with a zero-width range
_MIN_SIGMA = 1e-10


class SearchMethod(Enum):
    """Likelihood search strategy.

    Attributes
    ----------
    display_name : str
        Human readable name
    uses_gradient : bool
        The strategy evaluates the likelihood gradient
    is_bounded : bool
        The strategy requires bounds
    """

    POWELL = ("Powell", False, False)
    POWELL_BOUNDED = ("Powell (bounded)", False, True)
    BOBYQA = ("BOBYQA", False, True)
    CMAES = ("CMAES", False, True)
    CONJUGATE_GRADIENT_FR = ("Conjugate Gradient Fletcher-Reeves", True, False)
    CONJUGATE_GRADIENT_PR = ("Conjugate Gradient Polak-Ribiere", True, False)

    def __init__(self, display_name: str, uses_gradient: bool, is_bounded: bool):
        self.display_name = display_name
        self.uses_gradient = uses_gradient
        self.is_bounded = is_bounded

    @classmethod
    def from_name(cls, name: str) -> SearchMethod:
        """Look up a method by member name, case insensitive."""
        try:
            return cls[name.upper()]
        except KeyError:
            valid = [m.name.lower() for m in cls]
            raise FitConfigurationError(
                f"Unknown search method: {name}. Valid methods: {valid}",
                parameter="search_method",
            ) from None

    def __str__(self) -> str:
        return self.display_name


@dataclass
class SearchProblem:
    """Minimisation problem over the fitted coefficients.

    Attributes
    ----------
    objective : callable
        ``objective(x) -> float``; ``+inf`` where undefined
    x0 : np.ndarray
        Start point
    gradient : callable | None
        ``gradient(x) -> np.ndarray`` for gradient strategies
    lower, upper : np.ndarray | None
        Bounds for bounded strategies; infinite entries are unbounded
    max_evaluations : int
        Objective evaluation budget
    max_iterations : int
        Iteration budget; 0 is unlimited
    relative_tolerance, absolute_tolerance : float
        Convergence tolerances on the objective value
    seed : int | None
        Seed for stochastic strategies
    """

    objective: Callable[[np.ndarray], float]
    x0: np.ndarray
    gradient: Callable[[np.ndarray], np.ndarray] | None = None
    lower: np.ndarray | None = None
    upper: np.ndarray | None = None
    max_evaluations: int = 2000
    max_iterations: int = 0
    relative_tolerance: float = 1e-4
    absolute_tolerance: float = 1e-10
    seed: int | None = None


@dataclass
class SearchOutcome:
    """Best point found by a strategy.

    ``exhausted`` is True when the search stopped because it ran out of
    evaluations or iterations rather than converging.
    """

    x: np.ndarray
    value: float
    evaluations: int
    iterations: int
    exhausted: bool = False


# ----------------------------------------------------------------------
# Powell
# ----------------------------------------------------------------------


def powell_search(problem: SearchProblem) -> SearchOutcome:
    options = {
        "xtol": problem.relative_tolerance,
        "ftol": problem.relative_tolerance,
        "maxfev": problem.max_evaluations,
    }
    if problem.max_iterations > 0:
        options["maxiter"] = problem.max_iterations

    res = minimize(problem.objective, problem.x0, method="Powell", options=options)
    # status 1: evaluation budget, status 2: iteration budget
    return SearchOutcome(
        x=np.atleast_1d(res.x),
        value=float(res.fun),
        evaluations=int(res.nfev),
        iterations=int(res.nit),
        exhausted=res.status in (1, 2),
    )


def bounded_powell_search(problem: SearchProblem) -> SearchOutcome:
    """Powell search over variables mapped to remove the bounds."""
    adapter = BoundMappingAdapter(problem.lower, problem.upper, problem.x0.size)

    def mapped_objective(y):
        return problem.objective(adapter.to_bounded(y))

    mapped = SearchProblem(
        objective=mapped_objective,
        x0=adapter.to_unbounded(problem.x0),
        max_evaluations=problem.max_evaluations,
        max_iterations=problem.max_iterations,
        relative_tolerance=problem.relative_tolerance,
        absolute_tolerance=problem.absolute_tolerance,
    )
    outcome = powell_search(mapped)
    outcome.x = adapter.to_bounded(outcome.x)
    return outcome


# ----------------------------------------------------------------------
# Quadratic model trust region
# ----------------------------------------------------------------------


def bobyqa_search(problem: SearchProblem) -> SearchOutcome:
    """Derivative-free trust region search respecting the bounds.

    Uses the COBYQA solver, the successor of BOBYQA by the same quadratic
    interpolation design.
    """
    lower, upper = _require_bounds(problem)
    x0 = np.clip(problem.x0, lower, upper)

    options = {
        "maxfev": problem.max_evaluations,
        "scale": bool(np.all(np.isfinite(lower)) and np.all(np.isfinite(upper))),
    }
    if problem.max_iterations > 0:
        options["maxiter"] = problem.max_iterations

    res = minimize(
        problem.objective,
        x0,
        method="COBYQA",
        bounds=Bounds(lower, upper),
        options=options,
    )
    nfev = int(res.nfev)
    nit = int(getattr(res, "nit", 0))
    exhausted = not res.success and (
        nfev >= problem.max_evaluations
        or (problem.max_iterations > 0 and nit >= problem.max_iterations)
    )
    return SearchOutcome(
        x=np.atleast_1d(res.x),
        value=float(res.fun),
        evaluations=nfev,
        iterations=nit,
        exhausted=exhausted,
    )


# ----------------------------------------------------------------------
# CMA-ES
# ----------------------------------------------------------------------


def cmaes_search(problem: SearchProblem) -> SearchOutcome:
    """Evolution strategy with restarts.

    Runs are repeated while the total evaluation count is below
    ``min(30 m^2, max_evaluations / 2)``. The second run repeats the first
    from the same start; later runs start from the best point so far with a
    doubled population. The best point over all runs is returned.

    Each run is given the whole generations that fit in the remaining
    evaluation budget, so the total never exceeds ``max_evaluations``.
    """
    lower, upper = _require_bounds(problem)
    if not (np.all(np.isfinite(lower)) and np.all(np.isfinite(upper))):
        raise FitConfigurationError(
            "CMAES requires finite lower and upper bounds",
            parameter="bounds",
        )

    m = problem.x0.size
    sigma = np.maximum((upper - lower) / 3.0, _MIN_SIGMA)
    population_size = 4 + int(np.floor(3 * np.log(m)))
    restart_limit = min(30 * m * m, problem.max_evaluations // 2)

    start = np.clip(problem.x0, lower, upper)
    best = SearchOutcome(x=start.copy(), value=float("inf"), evaluations=0, iterations=0)
    run = 0
    while best.evaluations < restart_limit:
        if run > 1:
            start = best.x.copy()
            population_size *= 2

        # cma stops only between generations, so whole generations must fit
        remaining = problem.max_evaluations - best.evaluations
        run_budget = remaining - remaining % population_size
        if run_budget < population_size:
            logger.debug(
                f"CMAES: {remaining} evaluations left, less than one generation "
                f"of {population_size}"
            )
            best.exhausted = best.exhausted or run == 0
            break

        options = {
            "bounds": [lower.tolist(), upper.tolist()],
            "CMA_stds": sigma.tolist(),
            "popsize": population_size,
            "maxfevals": run_budget,
            "tolfun": problem.absolute_tolerance,
            "tolfunrel": problem.relative_tolerance,
            "verbose": -9,
            "verb_disp": 0,
            "verb_log": 0,
        }
        if problem.max_iterations > 0:
            options["maxiter"] = problem.max_iterations
        if problem.seed is not None:
            options["seed"] = problem.seed + run

        es = cma.CMAEvolutionStrategy(start.tolist(), 1.0, options)
        es.optimize(problem.objective)
        result = es.result
        stops = es.stop()
        logger.debug(
            f"CMAES run {run + 1}: popsize={population_size} "
            f"evaluations={result.evaluations} f={result.fbest:.6g} stop={list(stops)}"
        )

        best.evaluations += int(result.evaluations)
        best.iterations += int(result.iterations)
        if result.xbest is not None and result.fbest < best.value:
            best.x = np.asarray(result.xbest, dtype=float)
            best.value = float(result.fbest)
            best.exhausted = any(key in stops for key in _CMAES_BUDGET_STOPS)
        run += 1

    return best


# ----------------------------------------------------------------------
# Nonlinear conjugate gradient
# ----------------------------------------------------------------------


def fletcher_reeves(g0: np.ndarray, g1: np.ndarray) -> float:
    return float(np.dot(g1, g1) / np.dot(g0, g0))


def polak_ribiere(g0: np.ndarray, g1: np.ndarray) -> float:
    return float(np.dot(g1, g1 - g0) / np.dot(g0, g0))


def conjugate_gradient_search(
    problem: SearchProblem, update: Callable[[np.ndarray, np.ndarray], float]
) -> SearchOutcome:
    """Nonlinear conjugate gradient with a strong Wolfe line search.

    The direction is reset to steepest descent every ``m`` iterations, when
    the update factor is negative, and after a failed line search. The
    search stops when consecutive objective values agree to the relative or
    absolute tolerance, or when a steepest descent line search fails.
    """
    if problem.gradient is None:
        raise FitConfigurationError(
            "Conjugate gradient search requires the objective gradient",
            parameter="search_method",
        )

    objective = FunctionEvaluationCounter(problem.objective)
    gradient = problem.gradient
    checker = ToleranceChecker.from_relative_error(
        problem.relative_tolerance, problem.absolute_tolerance
    )

    x = np.array(problem.x0, dtype=float)
    fx = objective(x)
    if not np.isfinite(fx):
        raise ValueError("Objective is not finite at the start point")
    g = gradient(x)
    direction = -g
    m = x.size
    iteration = 0

    while True:
        if problem.max_iterations > 0 and iteration >= problem.max_iterations:
            return SearchOutcome(x, fx, objective.count, iteration, exhausted=True)
        iteration += 1
        if not np.any(direction):
            break

        with warnings.catch_warnings():
            # Line search failures are handled below
            warnings.simplefilter("ignore", RuntimeWarning)
            alpha, _, _, f_new, _, g_new = line_search(
                objective, gradient, x, direction, gfk=g, old_fval=fx, c2=0.1
            )

        if alpha is None or f_new is None or not np.isfinite(f_new):
            if np.array_equal(direction, -g):
                logger.debug(f"Line search failed along steepest descent at iteration {iteration}")
                break
            direction = -g
            continue

        x = x + alpha * direction
        if g_new is None:
            g_new = gradient(x)
        converged = checker.almost_equal(fx, f_new)
        fx = float(f_new)
        if converged:
            break

        beta = update(g, g_new)
        g = np.asarray(g_new, dtype=float)
        if iteration % m == 0 or not beta > 0:
            direction = -g
        else:
            direction = -g + beta * direction

    return SearchOutcome(x, float(fx), objective.count, iteration)


def _require_bounds(problem: SearchProblem) -> tuple[np.ndarray, np.ndarray]:
    m = problem.x0.size
    lower = np.full(m, -np.inf) if problem.lower is None else np.asarray(problem.lower, dtype=float)
    upper = np.full(m, np.inf) if problem.upper is None else np.asarray(problem.upper, dtype=float)
    return lower, upper


SEARCH_STRATEGIES: dict[SearchMethod, Callable[[SearchProblem], SearchOutcome]] = {
    SearchMethod.POWELL: powell_search,
    SearchMethod.POWELL_BOUNDED: bounded_powell_search,
    SearchMethod.BOBYQA: bobyqa_search,
    SearchMethod.CMAES: cmaes_search,
    SearchMethod.CONJUGATE_GRADIENT_FR: partial(conjugate_gradient_search, update=fletcher_reeves),
    SearchMethod.CONJUGATE_GRADIENT_PR: partial(conjugate_gradient_search, update=polak_ribiere),
}
