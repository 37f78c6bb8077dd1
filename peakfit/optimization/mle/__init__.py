"""Maximum likelihood fitting of Poisson counts.

Key Components:
- likelihood: Poisson negative log-likelihood and its gradient
- search_methods: search strategy enum and strategy table
- transforms: bound-removing variable mapping for unbounded searches
- fitter: the solver tying them together
"""

from peakfit.optimization.mle.fitter import MaximumLikelihoodFitter
from peakfit.optimization.mle.likelihood import PoissonLikelihoodFunction
from peakfit.optimization.mle.search_methods import (
    SEARCH_STRATEGIES,
    SearchMethod,
    SearchOutcome,
    SearchProblem,
)
from peakfit.optimization.mle.transforms import BoundMappingAdapter

__all__ = [
    "MaximumLikelihoodFitter",
    "PoissonLikelihoodFunction",
    "SEARCH_STRATEGIES",
    "SearchMethod",
    "SearchOutcome",
    "SearchProblem",
    "BoundMappingAdapter",
]
