from __future__ import annotations

import numpy as np
import pytest

from reactor_engine.search.acquisition import (
    AcquisitionFn,
    acquisition_values,
    expected_improvement,
    gain_exhausted,
    probability_of_improvement,
)


def test_collapsed_spread_scores_zero() -> None:
    mu = np.array([2.0, 2.0])
    sigma = np.array([0.0, 0.5])
    ei = expected_improvement(mu, sigma, y_best=1.0)
    pi = probability_of_improvement(mu, sigma, y_best=1.0)
    assert ei[0] == 0.0 and ei[1] > 0.0
    assert pi[0] == 0.0 and 0.5 < pi[1] < 1.0


def test_expected_improvement_prefers_higher_mean() -> None:
    ei = expected_improvement(np.array([1.0, 1.5]), np.array([0.2, 0.2]), y_best=1.2)
    assert ei[1] > ei[0] >= 0.0


def test_dispatch_and_parse() -> None:
    mu, sigma = np.array([1.0]), np.array([0.5])
    assert acquisition_values("UCB", mu, sigma, 0.0, kappa=2.0)[0] == pytest.approx(2.0)
    assert AcquisitionFn.parse(" ei ") is AcquisitionFn.EI
    with pytest.raises(ValueError):
        AcquisitionFn.parse("thompson")


def test_gain_exhaustion_scales_with_observations() -> None:
    observed = np.array([50.0, -120.0])
    assert gain_exhausted("ei", 1e-3, observed, tolerance=1e-4)
    assert not gain_exhausted("ei", 1e-1, observed, tolerance=1e-4)
    assert not gain_exhausted("pi", 1e-3, observed, tolerance=1e-4)
    assert not gain_exhausted("ucb", 0.0, observed, tolerance=1e-4)
