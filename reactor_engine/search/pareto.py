"""search/pareto.py — Non-dominated filtering of multi-objective evaluations.

Objective vectors are oriented so larger is better on every axis.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from ..domain import Evaluation


def dominates(a: Sequence[float], b: Sequence[float]) -> bool:
    """True when *a* is at least as good as *b* everywhere and strictly better somewhere."""
    if len(a) != len(b):
        raise ValueError("objective vectors differ in length")
    return all(x >= y for x, y in zip(a, b)) and any(x > y for x, y in zip(a, b))


def pareto_front(evaluations: Sequence[Evaluation]) -> list[Evaluation]:
    """Feasible, successful evaluations that no other one dominates.

    Duplicate objective vectors are reported once.
    """
    candidates = [e for e in evaluations if e.ok and e.feasible and e.objectives]
    front: list[Evaluation] = []
    seen: set[tuple[float, ...]] = set()
    for e in candidates:
        key = tuple(round(v, 9) for v in e.objectives)
        if key in seen:
            continue
        if any(dominates(other.objectives, e.objectives) for other in candidates):
            continue
        seen.add(key)
        front.append(e)
    return front


def best_compromise(front: Sequence[Evaluation]) -> Evaluation | None:
    """Front member closest to the ideal point after min-max normalisation."""
    if not front:
        return None
    values = np.array([e.objectives for e in front], dtype=np.float64)
    lo, hi = values.min(axis=0), values.max(axis=0)
    span = np.where(hi - lo > 0, hi - lo, 1.0)
    distance = np.linalg.norm((hi - values) / span, axis=1)
    return front[int(np.argmin(distance))]
