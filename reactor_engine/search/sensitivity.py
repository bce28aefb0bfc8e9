"""search/sensitivity.py — One-at-a-time sensitivity around the best solution."""

from __future__ import annotations

import logging

import numpy as np
from numpy.typing import NDArray

from ..domain import ParameterSensitivity
from .objective import Evaluator

logger = logging.getLogger(__name__)

def analyze_sensitivity(
    evaluator: Evaluator,
    best_x: NDArray[np.float64],
    step: float,
    range_fraction: float = 0.05,
    range_samples: int = 20,
) -> list[ParameterSensitivity]:
    """Perturb each parameter independently by ±*step* (fraction of its span).

    ``sensitivity`` is the parameter's share of the summed absolute score
    change, ``gradient`` is d(score)/d(parameter) in physical units and
    ``optimal_range`` spans the *range_samples* grid values whose score
    stays within *range_fraction* of the best.
    """
    space = evaluator.space
    best_x = space.clip(best_x)
    base = evaluator.evaluate(best_x)
    if not base.ok:
        logger.warning("Sensitivity skipped: best solution no longer evaluates (%s)", base.error)
        return []

    effects: list[float] = []
    gradients: list[float] = []
    ranges: list[tuple[float, float]] = []
    for i, name in enumerate(space.names):
        delta = step * space.span[i]
        hi, lo = best_x.copy(), best_x.copy()
        hi[i] = min(space.upper[i], best_x[i] + delta)
        lo[i] = max(space.lower[i], best_x[i] - delta)
        if hi[i] - lo[i] <= 0:
            effects.append(0.0)
            gradients.append(0.0)
            ranges.append((float(best_x[i]), float(best_x[i])))
            continue
        up, down = evaluator.evaluate_batch([hi, lo])
        if up.ok and down.ok:
            change = up.score - down.score
            effects.append(abs(change))
            gradients.append(change / (hi[i] - lo[i]))
        else:
            effects.append(0.0)
            gradients.append(0.0)
        ranges.append(_optimal_range(evaluator, best_x, i, base.score, range_fraction, range_samples))

    total = sum(effects)
    return [
        ParameterSensitivity(
            parameter=name,
            sensitivity=effects[i] / total if total > 0 else 0.0,
            gradient=float(gradients[i]),
            optimal_range=ranges[i],
        )
        for i, name in enumerate(space.names)
    ]


def _optimal_range(
    evaluator: Evaluator,
    best_x: NDArray[np.float64],
    axis: int,
    best_score: float,
    fraction: float,
    samples: int,
) -> tuple[float, float]:
    space = evaluator.space
    grid = np.linspace(space.lower[axis], space.upper[axis], samples)
    points = []
    for value in grid:
        x = best_x.copy()
        x[axis] = value
        points.append(x)
    results = evaluator.evaluate_batch(points)
    margin = fraction * max(abs(best_score), 1e-12)
    good = [v for v, e in zip(grid, results) if e.ok and e.score >= best_score - margin]
    if not good:
        return float(best_x[axis]), float(best_x[axis])
    return float(min(good)), float(max(good))
