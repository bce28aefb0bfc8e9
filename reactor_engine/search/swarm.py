"""search/swarm.py — Constriction-factor particle swarm in the unit cube."""

from __future__ import annotations

from typing import Sequence

import numpy as np
from numpy.typing import NDArray

from ..domain import Evaluation, IterationRecord
from .base import SearchAlgorithm


class ParticleSwarm(SearchAlgorithm):
    """Particles start at the initial point plus uniform samples.

    Velocities are limited to ``max_velocity`` per axis; a particle that hits
    a wall is placed on it and loses that velocity component.
    """

    def initialize(self, x0_unit: NDArray[np.float64], initial: Evaluation) -> None:
        super().initialize(x0_unit, initial)
        n = max(1, self.settings.population_size)
        vmax = self.settings.max_velocity
        self._positions = np.vstack([self.x0[None, :], self.space.sample_uniform(self.rng, n - 1)])
        self._velocities = self.rng.uniform(-vmax, vmax, size=self._positions.shape)
        self._velocities[0] = 0.0
        self._pbest = self._positions.copy()
        self._pbest_fitness = np.full(n, -np.inf)
        self._gbest = self.x0.copy()
        self._gbest_fitness = initial.fitness
        self._started = False

    def suggest(self, best: Evaluation) -> list[NDArray[np.float64]]:
        if not self._started:
            self._started = True
            return list(self._positions.copy())

        s = self.settings
        r1 = self.rng.random(self._positions.shape)
        r2 = self.rng.random(self._positions.shape)
        v = (
            s.inertia * self._velocities
            + s.cognitive * r1 * (self._pbest - self._positions)
            + s.social * r2 * (self._gbest - self._positions)
        )
        v = np.clip(v, -s.max_velocity, s.max_velocity)
        x = self._positions + v
        walled = (x < 0.0) | (x > 1.0)
        v[walled] = 0.0
        self._positions = np.clip(x, 0.0, 1.0)
        self._velocities = v
        return list(self._positions.copy())

    def observe(self, xs: Sequence[NDArray[np.float64]], evaluations: Sequence[Evaluation]) -> None:
        fitness = np.array([e.fitness for e in evaluations], dtype=np.float64)
        improved = fitness > self._pbest_fitness
        self._pbest[improved] = self._positions[improved]
        self._pbest_fitness[improved] = fitness[improved]
        i = int(np.argmax(fitness))
        if fitness[i] > self._gbest_fitness:
            self._gbest = self._positions[i].copy()
            self._gbest_fitness = float(fitness[i])

    def has_converged(self, history: Sequence[IterationRecord]) -> bool:
        if self._started and len(self._positions) > 1:
            spread = float(np.mean(np.std(self._positions, axis=0)))
            if spread < self.settings.tolerance:
                return True
        return super().has_converged(history)
