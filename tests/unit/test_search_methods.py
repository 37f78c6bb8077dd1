"""Tests for the likelihood search strategies."""

from __future__ import annotations

import numpy as np
import pytest

from peakfit.optimization.exceptions import FitConfigurationError
from peakfit.optimization.mle.likelihood import PoissonLikelihoodFunction
from peakfit.optimization.mle.search_methods import (
    SEARCH_STRATEGIES,
    SearchMethod,
    SearchProblem,
    bobyqa_search,
    cmaes_search,
    conjugate_gradient_search,
    fletcher_reeves,
    polak_ribiere,
    powell_search,
)
from peakfit.optimization.results import FunctionEvaluationCounter

PROFILE_LOWER = np.array([0.0, 0.0, -5.0])
PROFILE_UPPER = np.array([10.0, 50.0, 5.0])


@pytest.fixture
def profile_problem(profile_function, profile_truth, profile_data, profile_guess):
    """Likelihood problem for the noise-free profile with tight tolerances."""
    likelihood = PoissonLikelihoodFunction(profile_function, profile_truth, profile_data)
    return SearchProblem(
        objective=likelihood.value,
        x0=profile_guess.copy(),
        gradient=likelihood.gradient,
        lower=PROFILE_LOWER.copy(),
        upper=PROFILE_UPPER.copy(),
        max_evaluations=20000,
        relative_tolerance=1e-10,
        absolute_tolerance=1e-10,
        seed=11,
    )


def quadratic(x):
    return float(np.sum((np.asarray(x) - 1.5) ** 2))


class TestSearchMethod:
    """Tests for the SearchMethod enum."""

    @pytest.mark.parametrize(
        "method, uses_gradient, is_bounded",
        [
            (SearchMethod.POWELL, False, False),
            (SearchMethod.POWELL_BOUNDED, False, True),
            (SearchMethod.BOBYQA, False, True),
            (SearchMethod.CMAES, False, True),
            (SearchMethod.CONJUGATE_GRADIENT_FR, True, False),
            (SearchMethod.CONJUGATE_GRADIENT_PR, True, False),
        ],
    )
    def test_flags(self, method, uses_gradient, is_bounded):
        """Test each method declares its gradient and bounds needs."""
        assert method.uses_gradient is uses_gradient
        assert method.is_bounded is is_bounded

    def test_from_name(self):
        """Test lookup by name is case insensitive."""
        assert SearchMethod.from_name("powell_bounded") is SearchMethod.POWELL_BOUNDED
        assert SearchMethod.from_name("CMAES") is SearchMethod.CMAES

    def test_from_name_unknown(self):
        """Test an unknown name raises FitConfigurationError."""
        with pytest.raises(FitConfigurationError) as exc_info:
            SearchMethod.from_name("simplex")
        assert exc_info.value.parameter == "search_method"

    def test_display_name(self):
        """Test str() gives the human readable name."""
        assert str(SearchMethod.CONJUGATE_GRADIENT_PR) == "Conjugate Gradient Polak-Ribiere"

    def test_every_method_has_a_strategy(self):
        """Test the strategy table covers the enum."""
        assert set(SEARCH_STRATEGIES) == set(SearchMethod)


class TestStrategiesOnProfile:
    """Each strategy recovers the noise-free profile."""

    @pytest.mark.parametrize(
        "method, rtol",
        [
            (SearchMethod.POWELL, 1e-3),
            (SearchMethod.POWELL_BOUNDED, 1e-3),
            (SearchMethod.BOBYQA, 1e-3),
            (SearchMethod.CMAES, 1e-2),
            (SearchMethod.CONJUGATE_GRADIENT_FR, 1e-2),
            (SearchMethod.CONJUGATE_GRADIENT_PR, 1e-2),
        ],
    )
    def test_recovers_truth(self, profile_problem, profile_truth, method, rtol):
        """Test the minimum is found at the generating coefficients."""
        outcome = SEARCH_STRATEGIES[method](profile_problem)

        assert outcome.exhausted is False
        assert outcome.evaluations > 0
        np.testing.assert_allclose(outcome.x, profile_truth, rtol=rtol)
        assert outcome.value <= profile_problem.objective(profile_problem.x0)


class TestPowell:
    """Tests for the Powell strategies."""

    def test_exhausted_budget(self, profile_problem):
        """Test running out of evaluations is reported as exhausted."""
        profile_problem.max_evaluations = 5
        outcome = powell_search(profile_problem)
        assert outcome.exhausted is True

    def test_bounded_stays_inside(self):
        """Test the mapped search never evaluates outside the bounds."""
        seen = []

        def objective(x):
            seen.append(np.array(x))
            return quadratic(x)

        problem = SearchProblem(
            objective=objective,
            x0=np.array([0.5, 0.5]),
            lower=np.array([0.0, 0.0]),
            upper=np.array([1.0, 1.0]),
            relative_tolerance=1e-8,
        )
        outcome = SEARCH_STRATEGIES[SearchMethod.POWELL_BOUNDED](problem)

        points = np.array(seen)
        assert np.all(points >= 0.0) and np.all(points <= 1.0)
        np.testing.assert_allclose(outcome.x, [1.0, 1.0], atol=1e-3)


class TestBobyqa:
    """Tests for the trust region strategy."""

    def test_start_clipped_into_bounds(self):
        """Test a start point outside the bounds is clipped."""
        problem = SearchProblem(
            objective=quadratic,
            x0=np.array([-4.0, 9.0]),
            lower=np.array([0.0, 0.0]),
            upper=np.array([3.0, 3.0]),
        )
        outcome = bobyqa_search(problem)

        np.testing.assert_allclose(outcome.x, [1.5, 1.5], atol=1e-4)
        assert outcome.exhausted is False

    def test_one_sided_bounds(self):
        """Test infinite bounds are accepted."""
        problem = SearchProblem(
            objective=quadratic,
            x0=np.array([4.0]),
            lower=np.array([2.0]),
            upper=None,
        )
        outcome = bobyqa_search(problem)

        np.testing.assert_allclose(outcome.x, [2.0], atol=1e-4)


class TestCmaes:
    """Tests for the evolution strategy."""

    def test_requires_finite_bounds(self):
        """Test infinite bounds raise FitConfigurationError."""
        problem = SearchProblem(
            objective=quadratic,
            x0=np.zeros(2),
            lower=np.array([-1.0, -np.inf]),
            upper=np.array([1.0, 1.0]),
        )
        with pytest.raises(FitConfigurationError):
            cmaes_search(problem)

    def test_restarts_until_limit(self):
        """Test runs repeat until the restart evaluation limit is reached."""
        problem = SearchProblem(
            objective=quadratic,
            x0=np.zeros(2),
            lower=np.full(2, -5.0),
            upper=np.full(2, 5.0),
            max_evaluations=5000,
            relative_tolerance=1e-8,
            absolute_tolerance=1e-12,
            seed=5,
        )
        outcome = cmaes_search(problem)

        assert outcome.evaluations >= min(30 * 2 * 2, 5000 // 2)
        np.testing.assert_allclose(outcome.x, [1.5, 1.5], atol=1e-3)

    def test_seeded_runs_repeat(self):
        """Test the same seed gives the same result."""

        def run():
            problem = SearchProblem(
                objective=quadratic,
                x0=np.zeros(3),
                lower=np.full(3, -5.0),
                upper=np.full(3, 5.0),
                max_evaluations=2000,
                seed=42,
            )
            return cmaes_search(problem)

        first, second = run(), run()

        np.testing.assert_array_equal(first.x, second.x)
        assert first.evaluations == second.evaluations

    def test_budget_not_exceeded(self):
        """Test runs never evaluate past the evaluation budget."""
        counter = FunctionEvaluationCounter(quadratic, max_evaluations=100)
        problem = SearchProblem(
            objective=counter,
            x0=np.zeros(2),
            lower=np.full(2, -5.0),
            upper=np.full(2, 5.0),
            max_evaluations=100,
            relative_tolerance=1e-14,
            absolute_tolerance=1e-16,
            seed=3,
        )
        outcome = cmaes_search(problem)

        assert outcome.evaluations <= 100
        assert counter.count == outcome.evaluations

    def test_budget_below_one_generation(self):
        """Test a budget smaller than one generation is reported as exhausted."""
        counter = FunctionEvaluationCounter(quadratic)
        problem = SearchProblem(
            objective=counter,
            x0=np.zeros(2),
            lower=np.full(2, -5.0),
            upper=np.full(2, 5.0),
            max_evaluations=5,
            seed=3,
        )
        outcome = cmaes_search(problem)

        assert outcome.exhausted is True
        assert counter.count == 0


class TestConjugateGradient:
    """Tests for nonlinear conjugate gradient."""

    def test_update_factors(self):
        """Test the Fletcher-Reeves and Polak-Ribiere formulas."""
        g0 = np.array([1.0, 2.0])
        g1 = np.array([0.5, -1.0])

        assert fletcher_reeves(g0, g1) == pytest.approx(1.25 / 5.0)
        assert polak_ribiere(g0, g1) == pytest.approx((0.5 * -0.5 + -1.0 * -3.0) / 5.0)

    def test_quadratic(self):
        """Test a convex quadratic is minimised."""
        problem = SearchProblem(
            objective=quadratic,
            x0=np.array([4.0, -2.0, 0.0]),
            gradient=lambda x: 2.0 * (np.asarray(x) - 1.5),
            relative_tolerance=1e-10,
        )
        outcome = conjugate_gradient_search(problem, polak_ribiere)

        np.testing.assert_allclose(outcome.x, [1.5, 1.5, 1.5], atol=1e-4)

    def test_requires_gradient(self):
        """Test a missing gradient raises FitConfigurationError."""
        problem = SearchProblem(objective=quadratic, x0=np.zeros(2))
        with pytest.raises(FitConfigurationError):
            conjugate_gradient_search(problem, fletcher_reeves)

    def test_non_finite_start(self):
        """Test an infinite objective at the start raises ValueError."""
        problem = SearchProblem(
            objective=lambda x: float("inf"),
            x0=np.zeros(2),
            gradient=lambda x: np.zeros(2),
        )
        with pytest.raises(ValueError, match="start point"):
            conjugate_gradient_search(problem, fletcher_reeves)

    def test_iteration_budget(self, profile_problem):
        """Test the iteration budget stops the search as exhausted."""
        profile_problem.max_iterations = 1

        outcome = conjugate_gradient_search(profile_problem, fletcher_reeves)

        assert outcome.exhausted is True
        assert outcome.iterations == 1
