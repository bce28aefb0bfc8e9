"""search/acquisition.py — Acquisition functions for the Bayesian search.

All functions score a candidate pool from the surrogate's predictive mean
``mu`` and spread ``sigma`` (both in fitness units, higher is better).
Wherever the spread has collapsed below ``SIGMA_FLOOR`` the improvement-based
scores are zero: the surrogate is certain there and nothing is to be gained.
"""

from __future__ import annotations

from enum import Enum

import numpy as np
from numpy.typing import NDArray
from scipy.stats import norm

SIGMA_FLOOR = 1e-12


class AcquisitionFn(Enum):
    UCB = "ucb"
    EI = "ei"
    PI = "pi"

    @classmethod
    def parse(cls, value: str | AcquisitionFn) -> AcquisitionFn:
        if isinstance(value, AcquisitionFn):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown acquisition function {value!r}") from None

    @property
    def improvement_based(self) -> bool:
        return self is not AcquisitionFn.UCB


def _standardised_improvement(
    mu: NDArray[np.float64],
    sigma: NDArray[np.float64],
    y_best: float,
    xi: float,
) -> tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.bool_]]:
    """Return (improvement, z, certain) with z = 0 where σ has collapsed."""
    improvement = mu - y_best - xi
    certain = sigma < SIGMA_FLOOR
    safe_sigma = np.where(certain, 1.0, sigma)
    z = np.where(certain, 0.0, improvement / safe_sigma)
    return improvement, z, certain


def upper_confidence_bound(
    mu: NDArray[np.float64],
    sigma: NDArray[np.float64],
    kappa: float = 2.576,
) -> NDArray[np.float64]:
    """UCB: α(x) = μ(x) + κ · σ(x)."""
    return mu + kappa * sigma


def expected_improvement(
    mu: NDArray[np.float64],
    sigma: NDArray[np.float64],
    y_best: float,
    xi: float = 0.01,
) -> NDArray[np.float64]:
    """Expected fitness gain over the incumbent *y_best*."""
    improvement, z, certain = _standardised_improvement(mu, sigma, y_best, xi)
    ei = improvement * norm.cdf(z) + sigma * norm.pdf(z)
    return np.where(certain, 0.0, np.maximum(ei, 0.0))


def probability_of_improvement(
    mu: NDArray[np.float64],
    sigma: NDArray[np.float64],
    y_best: float,
    xi: float = 0.01,
) -> NDArray[np.float64]:
    _, z, certain = _standardised_improvement(mu, sigma, y_best, xi)
    return np.where(certain, 0.0, norm.cdf(z))


def acquisition_values(
    kind: AcquisitionFn | str,
    mu: NDArray[np.float64],
    sigma: NDArray[np.float64],
    y_best: float,
    kappa: float = 2.576,
    xi: float = 0.01,
) -> NDArray[np.float64]:
    kind = AcquisitionFn.parse(kind)
    if kind is AcquisitionFn.UCB:
        return upper_confidence_bound(mu, sigma, kappa=kappa)
    if kind is AcquisitionFn.EI:
        return expected_improvement(mu, sigma, y_best, xi=xi)
    return probability_of_improvement(mu, sigma, y_best, xi=xi)


def gain_exhausted(
    kind: AcquisitionFn | str,
    best_gain: float,
    observed: NDArray[np.float64],
    tolerance: float,
) -> bool:
    """True when the best remaining acquisition value no longer justifies sampling.

    EI is in fitness units, so its threshold scales with the largest observed
    magnitude; PI is a probability and uses *tolerance* as is.  UCB never
    signals exhaustion.
    """
    kind = AcquisitionFn.parse(kind)
    if not kind.improvement_based:
        return False
    scale = 1.0
    if kind is AcquisitionFn.EI and observed.size:
        scale = max(1.0, float(np.max(np.abs(observed))))
    return best_gain < tolerance * scale
