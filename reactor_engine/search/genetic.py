"""search/genetic.py — Real-coded genetic algorithm in the unit cube.

The first generation is the starting point plus uniform random
individuals.  Later generations keep the elite unchanged and fill the rest
by tournament selection, uniform crossover and bounded Gaussian mutation.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np
from numpy.typing import NDArray

from ..domain import Evaluation
from .base import SearchAlgorithm


class GeneticAlgorithm(SearchAlgorithm):
    def initialize(self, x0_unit: NDArray[np.float64], initial: Evaluation) -> None:
        super().initialize(x0_unit, initial)
        self._population: NDArray[np.float64] | None = None
        self._fitness: NDArray[np.float64] | None = None

    @property
    def population_size(self) -> int:
        return max(1, self.settings.population_size)

    def suggest(self, best: Evaluation) -> list[NDArray[np.float64]]:
        n = self.population_size
        if self._population is None:
            rest = self.space.sample_uniform(self.rng, n - 1)
            return [self.x0.copy()] + list(rest)

        assert self._fitness is not None
        n_elite = min(n, max(1, int(round(self.settings.elite_fraction * n))))
        order = np.argsort(-self._fitness)
        children = [self._population[i].copy() for i in order[:n_elite]]
        while len(children) < n:
            a = self._tournament()
            b = self._tournament()
            children.append(self._mutate(self._crossover(a, b)))
        return children

    def observe(self, xs: Sequence[NDArray[np.float64]], evaluations: Sequence[Evaluation]) -> None:
        self._population = np.array([np.asarray(x, dtype=np.float64) for x in xs])
        self._fitness = np.array([e.fitness for e in evaluations], dtype=np.float64)

    # ---------------------------------------------------------------- #
    #  Operators                                                       #
    # ---------------------------------------------------------------- #

    def _tournament(self) -> NDArray[np.float64]:
        assert self._population is not None and self._fitness is not None
        k = min(self.settings.tournament_size, len(self._population))
        picks = self.rng.choice(len(self._population), size=k, replace=False)
        winner = picks[int(np.argmax(self._fitness[picks]))]
        return self._population[winner]

    def _crossover(self, a: NDArray[np.float64], b: NDArray[np.float64]) -> NDArray[np.float64]:
        if self.rng.random() >= self.settings.crossover_rate:
            return a.copy()
        mask = self.rng.random(a.shape) < 0.5
        return np.where(mask, a, b)

    def _mutate(self, x: NDArray[np.float64]) -> NDArray[np.float64]:
        genes = self.rng.random(x.shape) < self.settings.mutation_rate
        noise = self.rng.normal(0.0, self.settings.mutation_sigma, size=x.shape)
        return np.clip(x + genes * noise, 0.0, 1.0)
