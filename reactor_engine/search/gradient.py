"""search/gradient.py — Finite-difference gradient ascent in the unit cube.

Iterations alternate between a stencil generation (2·d central-difference
points around the incumbent) and a step generation (one move along the
normalised gradient).  A step is accepted only when it improves fitness;
otherwise the learning rate shrinks and the step is retried, so the
incumbent never gets worse.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np
from numpy.typing import NDArray

from ..domain import Evaluation, IterationRecord
from .base import SearchAlgorithm

logger = logging.getLogger(__name__)

_STENCIL = "stencil"
_STEP = "step"


class GradientDescent(SearchAlgorithm):
    def initialize(self, x0_unit: NDArray[np.float64], initial: Evaluation) -> None:
        super().initialize(x0_unit, initial)
        self._u = self.x0.copy()
        self._f = initial.fitness
        self._grad = np.zeros(self.space.dim)
        self._lr = self.settings.learning_rate
        self._phase = _STENCIL
        self._stalled = False

    def _stencil(self) -> list[NDArray[np.float64]]:
        h = self.settings.fd_step
        points: list[NDArray[np.float64]] = []
        for i in range(self.space.dim):
            for sign in (1.0, -1.0):
                p = self._u.copy()
                p[i] = np.clip(p[i] + sign * h, 0.0, 1.0)
                points.append(p)
        return points

    def suggest(self, best: Evaluation) -> list[NDArray[np.float64]]:
        if self._phase == _STENCIL:
            return self._stencil()
        direction = self._grad / np.linalg.norm(self._grad)
        return [np.clip(self._u + self._lr * direction, 0.0, 1.0)]

    def observe(self, xs: Sequence[NDArray[np.float64]], evaluations: Sequence[Evaluation]) -> None:
        if self._phase == _STENCIL:
            self._estimate_gradient(xs, evaluations)
            norm = float(np.linalg.norm(self._grad))
            if norm < self.settings.tolerance:
                logger.debug("Gradient norm %.3g below tolerance", norm)
                self._stalled = True
            else:
                self._phase = _STEP
            return

        candidate, evaluation = xs[0], evaluations[0]
        if evaluation.ok and evaluation.fitness > self._f:
            self._u = np.asarray(candidate, dtype=np.float64).copy()
            self._f = evaluation.fitness
            self._phase = _STENCIL
            return
        self._lr *= self.settings.step_shrink
        if self._lr < self.settings.min_learning_rate:
            logger.debug("Learning rate %.3g below minimum", self._lr)
            self._stalled = True

    def _estimate_gradient(
        self, xs: Sequence[NDArray[np.float64]], evaluations: Sequence[Evaluation]
    ) -> None:
        grad = np.zeros(self.space.dim)
        for i in range(self.space.dim):
            plus, minus = evaluations[2 * i], evaluations[2 * i + 1]
            x_plus, x_minus = xs[2 * i][i], xs[2 * i + 1][i]
            # Fall back to a one-sided difference against the incumbent.
            if plus.ok and minus.ok and x_plus > x_minus:
                grad[i] = (plus.fitness - minus.fitness) / (x_plus - x_minus)
            elif plus.ok and x_plus > self._u[i]:
                grad[i] = (plus.fitness - self._f) / (x_plus - self._u[i])
            elif minus.ok and x_minus < self._u[i]:
                grad[i] = (self._f - minus.fitness) / (self._u[i] - x_minus)
        grad[~np.isfinite(grad)] = 0.0
        self._grad = grad

    def has_converged(self, history: Sequence[IterationRecord]) -> bool:
        return self._stalled or super().has_converged(history)
