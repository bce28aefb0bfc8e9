"""search/objective.py — Black-box objective over the prediction engine.

Every candidate is clipped into the search box before it reaches
``PredictionEngine.predict``, so a hard bound is never evaluated outside its
range.  Objective values are oriented so that larger is always better
(cost is negated).  Derived constraints add a penalty proportional to the
relative violation; a candidate whose prediction raises
:class:`NumericalError` scores ``-inf`` instead of aborting the run.
"""

from __future__ import annotations

import logging
import math
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Sequence

import numpy as np
from numpy.typing import NDArray

from ..config import CostModel, OptimizerConfig
from ..domain import (
    MINIMIZED_METRICS,
    ConstraintSet,
    Evaluation,
    FidelityLevel,
    MultiObjectiveMode,
    ObjectiveKind,
    ObjectiveSpec,
    OperatingParameters,
    OperatingWindow,
    PredictionResult,
    ReactorConfiguration,
)
from ..engine.prediction import PredictionEngine
from ..errors import NumericalError
from ..properties.tables import PropertyTables
from .space import SearchSpace

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------ #
#  Economic metrics                                                   #
# ------------------------------------------------------------------ #

def material_cost_per_hour(config: ReactorConfiguration, tables: PropertyTables, cost: CostModel) -> float:
    """Electrode and membrane capital cost amortised over ``amortization_hours``.

    Materials missing from the tables are charged the model's default rate.
    """
    per_m2 = 0.0
    for name in (config.anode, config.cathode):
        if name:
            material = tables.electrode(name)
            per_m2 += material.cost_per_m2 if material else cost.default_electrode_cost_per_m2
    if config.has_membrane:
        membrane = tables.membrane(config.membrane)
        per_m2 += membrane.cost_per_m2 if membrane else cost.default_membrane_cost_per_m2
    area = config.geometry.active_area_m2 * config.geometry.cell_count
    return per_m2 * area / cost.amortization_hours


def operating_cost(
    params: OperatingParameters,
    window: OperatingWindow,
    cost: CostModel,
    material_cost: float = 0.0,
) -> float:
    """Relative cost per hour of the parameter set, materials included."""
    total = cost.base_cost + material_cost
    if params.temperature is not None:
        total += abs(params.temperature - window.optimal_temperature) * cost.temperature_deviation_cost
    if params.mixing_speed is not None:
        total += params.mixing_speed * cost.mixing_cost
    if params.electrode_voltage is not None:
        total += params.electrode_voltage * cost.bias_cost
    if params.substrate_concentration is not None and params.flow_rate is not None:
        total += params.substrate_concentration * params.flow_rate * cost.substrate_flow_cost
    if params.pressure is not None:
        total += max(0.0, params.pressure - 1.0) * cost.compression_cost
    if params.air_flow_rate is not None:
        total += params.air_flow_rate * cost.air_flow_cost
    return total


def durability_hours(params: OperatingParameters, window: OperatingWindow, cost: CostModel) -> float:
    """Expected service life; decays with thermal and pH stress."""
    hours = cost.durability_base_hours
    if params.temperature is not None:
        hours *= math.exp(
            -abs(params.temperature - window.optimal_temperature) / cost.durability_temperature_scale
        )
    if params.ph is not None and window.optimal_ph is not None:
        hours *= math.exp(-abs(params.ph - window.optimal_ph) / cost.durability_ph_scale)
    if params.electrode_voltage is not None and params.electrode_voltage > cost.high_bias_threshold_mV:
        hours *= cost.high_bias_factor
    if params.mixing_speed is not None and params.mixing_speed > cost.high_mixing_threshold:
        hours *= cost.high_mixing_factor
    return hours


def collect_metrics(
    params: OperatingParameters,
    result: PredictionResult,
    window: OperatingWindow,
    cost: CostModel,
    material_cost: float = 0.0,
) -> dict[str, float]:
    return {
        "power": result.power,
        "power_density": result.power_density,
        "current": result.current,
        "current_density": result.current_density,
        "voltage": result.voltage,
        "efficiency": result.efficiency,
        "cost": operating_cost(params, window, cost, material_cost),
        "durability": durability_hours(params, window, cost),
    }


_SINGLE_METRIC = {
    ObjectiveKind.MAXIMIZE_POWER: "power",
    ObjectiveKind.MAXIMIZE_EFFICIENCY: "efficiency",
    ObjectiveKind.MINIMIZE_COST: "cost",
    ObjectiveKind.MAXIMIZE_DURABILITY: "durability",
}


def _scale(reference: float) -> float:
    return abs(reference) if abs(reference) > 1e-12 else 1.0


# ------------------------------------------------------------------ #
#  Evaluator                                                          #
# ------------------------------------------------------------------ #

class Evaluator:
    """Scores candidate vectors for one optimisation run.

    Parameters
    ----------
    engine:
        Prediction façade used as the black box.
    config:
        Reactor under optimisation (never modified).
    space:
        Search box; candidates are clipped into it before evaluation.
    objectives:
        One spec (single mode) or several (multi-objective).
    constraints:
        Source of derived constraints; hard bounds are already in *space*.
    mode:
        How several objectives are reduced to one score.  Pareto mode ignores
        *weights* and guides the search with the equal-weight sum; the front
        is computed afterwards from :attr:`history`.
    weights:
        Weighted-sum weights; equal by default.
    """

    def __init__(
        self,
        engine: PredictionEngine,
        config: ReactorConfiguration,
        space: SearchSpace,
        objectives: Sequence[ObjectiveSpec],
        constraints: ConstraintSet,
        fidelity: FidelityLevel = FidelityLevel.BASIC,
        mode: MultiObjectiveMode = MultiObjectiveMode.SINGLE,
        weights: Sequence[float] | None = None,
        settings: OptimizerConfig | None = None,
        cost: CostModel | None = None,
    ) -> None:
        self.engine = engine
        self.config = config
        self.space = space
        self.objectives = tuple(objectives)
        self.constraints = constraints
        self.fidelity = fidelity
        self.settings = settings or OptimizerConfig()
        self.cost = cost or CostModel()
        self._material_cost = material_cost_per_hour(config, engine.tables, self.cost)
        k = len(self.objectives)
        if weights is None or mode is MultiObjectiveMode.PARETO:
            weights = [1.0 / k] * k
        if len(weights) != k:
            raise ValueError(f"Expected {k} weights, got {len(weights)}")
        self.weights = tuple(float(w) for w in weights)

        self._reference_metrics: dict[str, float] = {}
        self._reference_objectives: tuple[float, ...] = ()
        self._reference_score = 1.0
        self._lock = threading.Lock()
        self.history: list[Evaluation] = []

    @property
    def n_evaluations(self) -> int:
        with self._lock:
            return len(self.history)

    # ---------------------------------------------------------------- #
    #  Scoring                                                         #
    # ---------------------------------------------------------------- #

    def _objective_value(self, spec: ObjectiveSpec, metrics: dict[str, float]) -> float:
        if spec.kind is ObjectiveKind.WEIGHTED:
            total = 0.0
            for metric, weight in spec.weights.items():
                sign = -1.0 if metric in MINIMIZED_METRICS else 1.0
                ref = self._reference_metrics.get(metric, 1.0)
                total += weight * sign * metrics[metric] / _scale(ref)
            return total
        metric = _SINGLE_METRIC[spec.kind]
        return -metrics[metric] if metric in MINIMIZED_METRICS else metrics[metric]

    def _scalarize(self, objectives: tuple[float, ...]) -> float:
        if len(objectives) == 1:
            return objectives[0]
        refs = self._reference_objectives or (1.0,) * len(objectives)
        return sum(w * v / _scale(r) for w, v, r in zip(self.weights, objectives, refs))

    def _violation(self, metrics: dict[str, float]) -> float:
        return sum(c.violation(metrics[c.metric]) for c in self.constraints.derived)

    def calibrate(self, x0: NDArray[np.float64]) -> Evaluation:
        """Evaluate the starting point and fix the normalisation references."""
        params = self.space.to_params(x0)
        try:
            result = self.engine.predict(self.config, params, self.fidelity)
        except NumericalError as exc:
            return self._record(self._failed(params, exc))
        metrics = collect_metrics(params, result, self.config.window, self.cost, self._material_cost)
        self._reference_metrics = dict(metrics)
        self._reference_objectives = tuple(self._objective_value(s, metrics) for s in self.objectives)
        self._reference_score = self._scalarize(self._reference_objectives)
        return self._record(self._score(params, result, metrics))

    def _score(
        self, params: OperatingParameters, result: PredictionResult, metrics: dict[str, float]
    ) -> Evaluation:
        objectives = tuple(self._objective_value(s, metrics) for s in self.objectives)
        score = self._scalarize(objectives)
        violation = self._violation(metrics)
        penalty = self.settings.penalty_weight * violation * _scale(self._reference_score)
        return Evaluation(
            parameters=params,
            result=result,
            objectives=objectives,
            score=score,
            violation=violation,
            fitness=score - penalty,
        )

    @staticmethod
    def _failed(params: OperatingParameters, exc: Exception) -> Evaluation:
        return Evaluation(
            parameters=params,
            result=None,
            objectives=(),
            score=-math.inf,
            violation=math.inf,
            fitness=-math.inf,
            error=str(exc),
        )

    def _record(self, evaluation: Evaluation) -> Evaluation:
        with self._lock:
            self.history.append(evaluation)
        return evaluation

    # ---------------------------------------------------------------- #
    #  Evaluation                                                      #
    # ---------------------------------------------------------------- #

    def evaluate(self, x: NDArray[np.float64]) -> Evaluation:
        params = self.space.to_params(x)
        try:
            result = self.engine.predict(self.config, params, self.fidelity)
            metrics = collect_metrics(params, result, self.config.window, self.cost, self._material_cost)
            evaluation = self._score(params, result, metrics)
        except (NumericalError, ArithmeticError) as exc:
            logger.debug("Candidate %s failed: %s", params.as_dict(), exc)
            evaluation = self._failed(params, exc)
        return self._record(evaluation)

    def evaluate_batch(self, xs: Sequence[NDArray[np.float64]]) -> list[Evaluation]:
        """Evaluate a whole generation; returns only when every candidate is done."""
        workers = min(self.settings.max_workers, len(xs))
        if workers <= 1:
            return [self.evaluate(x) for x in xs]
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(self.evaluate, x) for x in xs]
            return [f.result() for f in futures]
