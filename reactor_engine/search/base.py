"""search/base.py — Contract shared by the four search algorithms.

An algorithm proposes a generation of unit-cube vectors (``suggest``), is
told their evaluations once the whole generation has finished
(``observe``), and decides from the run history whether to stop
(``has_converged``).  It never calls the prediction engine itself.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence

import numpy as np
from numpy.typing import NDArray

from ..config import OptimizerConfig
from ..domain import Evaluation, IterationRecord
from .space import SearchSpace


def fitness_plateau(history: Sequence[IterationRecord], window: int, tolerance: float) -> bool:
    """True when the best fitness moved less than *tolerance* (relative) over *window* iterations."""
    if window < 1 or len(history) < window:
        return False
    recent = [r.best_fitness for r in history[-window:]]
    if not all(np.isfinite(recent)):
        return False
    spread = max(recent) - min(recent)
    return spread <= tolerance * max(1.0, abs(recent[-1]))


class SearchAlgorithm(ABC):
    """Base class; subclasses keep their own state in unit-cube coordinates."""

    def __init__(
        self,
        space: SearchSpace,
        settings: OptimizerConfig,
        rng: np.random.Generator,
    ) -> None:
        self.space = space
        self.settings = settings
        self.rng = rng
        self.x0 = np.full(space.dim, 0.5)
        self.initial: Evaluation | None = None

    def initialize(self, x0_unit: NDArray[np.float64], initial: Evaluation) -> None:
        """Seed the algorithm with the already-evaluated starting point."""
        self.x0 = np.asarray(x0_unit, dtype=np.float64).copy()
        self.initial = initial

    @abstractmethod
    def suggest(self, best: Evaluation) -> list[NDArray[np.float64]]:
        """Return the next generation as unit-cube vectors."""

    @abstractmethod
    def observe(self, xs: Sequence[NDArray[np.float64]], evaluations: Sequence[Evaluation]) -> None:
        """Absorb the complete generation's evaluations (same order as *xs*)."""

    def has_converged(self, history: Sequence[IterationRecord]) -> bool:
        return fitness_plateau(history, self.settings.convergence_window, self.settings.tolerance)
