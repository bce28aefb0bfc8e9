"""search/bayesian.py — Surrogate-driven search over the unit cube.

Design notes
------------
* **Surrogate choice** — Gaussian Process (scikit-learn, Matérn ν=2.5 plus a
  white-noise term) while the ledger is small; above ``surrogate_limit``
  observations the GP's cubic scaling is avoided by switching to a
  Random-Forest surrogate whose per-tree spread stands in for the variance.
* **Cold start** — until ``n_initial`` finite observations exist the search
  proposes Latin-hypercube points.
* **Batch selection** — greedy "kriging believer": after picking the best
  candidate its predicted mean is hallucinated as an observation and the
  surrogate refit before the next pick.
* **Exploration** — the incumbent handed back by the run loop is the best
  point ever evaluated, so exploratory proposals never lower the result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np
from numpy.typing import NDArray
from sklearn.ensemble import RandomForestRegressor
from sklearn.gaussian_process import GaussianProcessRegressor
from sklearn.gaussian_process.kernels import Matern, WhiteKernel

from ..config import OptimizerConfig
from ..domain import Evaluation, IterationRecord
from .acquisition import AcquisitionFn, acquisition_values, gain_exhausted
from .base import SearchAlgorithm
from .space import SearchSpace

logger = logging.getLogger(__name__)

# How many observations before we auto-switch GP → RF.
SURROGATE_LIMIT = 5_000


@dataclass
class _ObservationLedger:
    """Append-only store for finite (X, y) pairs."""

    X: list[NDArray[np.float64]] = field(default_factory=list)
    y: list[float] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.y)

    def as_arrays(self) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
        return np.array(self.X), np.array(self.y)


class BayesianSearch(SearchAlgorithm):
    """Parameters
    ----------
    surrogate_limit:
        Observation count above which the Random-Forest surrogate is used.
    """

    def __init__(
        self,
        space: SearchSpace,
        settings: OptimizerConfig,
        rng: np.random.Generator,
        surrogate_limit: int = SURROGATE_LIMIT,
    ) -> None:
        super().__init__(space, settings, rng)
        self.surrogate_limit = surrogate_limit
        self._ledger = _ObservationLedger()
        self._surrogate: GaussianProcessRegressor | RandomForestRegressor | None = None
        self.surrogate_kind = "gp"
        self._last_gain = np.inf
        self.acquisition = AcquisitionFn.parse(settings.acquisition)

    def initialize(self, x0_unit: NDArray[np.float64], initial: Evaluation) -> None:
        super().initialize(x0_unit, initial)
        self._record(self.x0, initial)

    # ---------------------------------------------------------------- #
    #  Surrogate construction                                          #
    # ---------------------------------------------------------------- #

    def _build_gp(self) -> GaussianProcessRegressor:
        kernel = Matern(nu=2.5, length_scale=np.ones(self.space.dim)) + WhiteKernel(
            noise_level=1e-4, noise_level_bounds=(1e-10, 1e-1)
        )
        return GaussianProcessRegressor(
            kernel=kernel,
            alpha=1e-8,
            n_restarts_optimizer=self.settings.gp_restarts,
            normalize_y=True,
            random_state=int(self.rng.integers(0, 2**31)),
        )

    def _build_rf(self) -> RandomForestRegressor:
        return RandomForestRegressor(
            n_estimators=self.settings.rf_estimators,
            min_samples_leaf=3,
            random_state=int(self.rng.integers(0, 2**31)),
        )

    def _fit(self, X: NDArray[np.float64], y: NDArray[np.float64]) -> None:
        if len(y) > self.surrogate_limit and self.surrogate_kind == "gp":
            logger.info("Observation count (%d) exceeds GP limit; switching to RF.", len(y))
            self.surrogate_kind = "rf"
        self._surrogate = self._build_gp() if self.surrogate_kind == "gp" else self._build_rf()
        self._surrogate.fit(X, y)

    def _predict(
        self, X: NDArray[np.float64]
    ) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
        """Return (mean, std) predictions for *X*."""
        if isinstance(self._surrogate, GaussianProcessRegressor):
            mu, sigma = self._surrogate.predict(X, return_std=True)
            return mu, sigma
        assert isinstance(self._surrogate, RandomForestRegressor)
        preds = np.array([tree.predict(X) for tree in self._surrogate.estimators_])
        return preds.mean(axis=0), preds.std(axis=0)

    # ---------------------------------------------------------------- #
    #  Suggest / observe                                               #
    # ---------------------------------------------------------------- #

    def suggest(self, best: Evaluation) -> list[NDArray[np.float64]]:
        batch = max(1, self.settings.batch_size)
        if len(self._ledger) < self.settings.n_initial:
            n = max(batch, self.settings.n_initial - len(self._ledger))
            return list(self.space.latin_hypercube(self.rng, n))
        return self._kriging_believer_batch(batch)

    def _kriging_believer_batch(self, batch_size: int) -> list[NDArray[np.float64]]:
        X_obs, y_obs = self._ledger.as_arrays()
        self._fit(X_obs, y_obs)
        pool = self.space.sample_uniform(self.rng, self.settings.candidate_pool)
        y_best = float(np.max(y_obs))

        X_extra: list[NDArray[np.float64]] = []
        y_extra: list[float] = []
        selected: list[NDArray[np.float64]] = []
        for k in range(batch_size):
            mu, sigma = self._predict(pool)
            acq = acquisition_values(
                self.acquisition, mu, sigma, y_best,
                kappa=self.settings.ucb_kappa, xi=self.settings.ei_xi,
            )
            for prev in selected:
                acq[np.linalg.norm(pool - prev, axis=1) < 1e-9] = -np.inf
            idx = int(np.argmax(acq))
            if k == 0:
                self._last_gain = float(acq[idx])
            selected.append(pool[idx].copy())

            # Hallucinate the predicted mean and refit for the next pick.
            if k + 1 < batch_size:
                X_extra.append(pool[idx])
                y_extra.append(float(mu[idx]))
                self._fit(np.vstack([X_obs, np.array(X_extra)]), np.concatenate([y_obs, y_extra]))
        return selected

    def observe(self, xs: Sequence[NDArray[np.float64]], evaluations: Sequence[Evaluation]) -> None:
        for x, evaluation in zip(xs, evaluations):
            self._record(x, evaluation)

    def _record(self, x: NDArray[np.float64], evaluation: Evaluation) -> None:
        if evaluation.ok and np.isfinite(evaluation.fitness):
            self._ledger.X.append(np.asarray(x, dtype=np.float64).copy())
            self._ledger.y.append(float(evaluation.fitness))

    @property
    def n_observed(self) -> int:
        return len(self._ledger)

    def has_converged(self, history: Sequence[IterationRecord]) -> bool:
        if len(self._ledger) >= self.settings.n_initial:
            _, y_obs = self._ledger.as_arrays()
            if gain_exhausted(self.acquisition, self._last_gain, y_obs, self.settings.tolerance):
                logger.debug("Acquisition gain %.3g below tolerance", self._last_gain)
                return True
        return super().has_converged(history)
