"""search/space.py — Continuous box search space over operating parameters.

Algorithms work in the unit cube [0, 1]^d; the space maps to and from
physical units and guarantees every emitted vector lies inside the bounds.
"""

from __future__ import annotations

from typing import Mapping, Sequence

import numpy as np
from numpy.typing import NDArray
from scipy.stats import qmc

from ..domain import OperatingParameters, ParameterRange


class SearchSpace:
    """Axis-aligned box, one axis per declared parameter (canonical order)."""

    def __init__(self, names: Sequence[str], lower: Sequence[float], upper: Sequence[float]) -> None:
        self.names = tuple(names)
        self.lower = np.asarray(lower, dtype=np.float64)
        self.upper = np.asarray(upper, dtype=np.float64)
        if np.any(self.lower > self.upper):
            raise ValueError("lower bound exceeds upper bound")

    @classmethod
    def from_bounds(cls, bounds: Mapping[str, ParameterRange]) -> SearchSpace:
        names = list(bounds)
        return cls(names, [bounds[n].min for n in names], [bounds[n].max for n in names])

    @property
    def dim(self) -> int:
        return len(self.names)

    @property
    def span(self) -> NDArray[np.float64]:
        return self.upper - self.lower

    def clip(self, x: NDArray[np.float64]) -> NDArray[np.float64]:
        return np.clip(np.asarray(x, dtype=np.float64), self.lower, self.upper)

    def to_unit(self, x: NDArray[np.float64]) -> NDArray[np.float64]:
        span = np.where(self.span > 0, self.span, 1.0)
        return np.clip((np.asarray(x, dtype=np.float64) - self.lower) / span, 0.0, 1.0)

    def from_unit(self, u: NDArray[np.float64]) -> NDArray[np.float64]:
        return self.clip(self.lower + np.clip(u, 0.0, 1.0) * self.span)

    def to_params(self, x: NDArray[np.float64]) -> OperatingParameters:
        return OperatingParameters.from_vector(self.names, self.clip(x))

    def sample_uniform(self, rng: np.random.Generator, n: int) -> NDArray[np.float64]:
        """*n* points uniformly distributed in the unit cube."""
        return rng.random((n, self.dim))

    def latin_hypercube(self, rng: np.random.Generator, n: int) -> NDArray[np.float64]:
        """*n* Latin-hypercube points in the unit cube (one per stratum per axis)."""
        if n <= 0 or not self.dim:
            return np.empty((max(n, 0), self.dim))
        return qmc.LatinHypercube(d=self.dim, seed=rng).random(n)
