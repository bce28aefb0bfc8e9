"""api.py — JSON request round-trip for prediction, optimisation and control runs.

The HTTP layer around this package is someone else's; these handlers take
the decoded request body and return an :class:`ApiResponse` carrying a
status code and a JSON-ready body.  Error mapping:

    ValidationError            → 400 with field and valid range
    UnsupportedOperationError  → 422
    InfeasibleError            → 409 structured "no solution"
    anything else              → 500 with a correlation id, no trace
"""

from __future__ import annotations

import functools
import logging
import math
import uuid
from dataclasses import dataclass, replace
from typing import Any, Callable, Mapping

from .control.simulation import (
    SCENARIO_PRESETS,
    ControlScenario,
    Disturbance,
    DisturbanceKind,
    LoopSettings,
    PurgeStrategy,
    simulate_control,
    simulation_to_wire,
)
from .domain import (
    METRICS,
    PARAMETER_NAMES,
    ConstraintSet,
    DerivedConstraint,
    FidelityLevel,
    MultiObjectiveMode,
    ObjectiveKind,
    ObjectiveSpec,
    OptimizationRun,
    RunOutcome,
)
from .engine.prediction import PredictionEngine
from .engine.wire import (
    PRECISION,
    configuration_from_wire,
    number_from_wire,
    parameter_key,
    parameters_from_wire,
    parameters_to_wire,
    result_to_wire,
    to_camel,
    to_snake,
)
from .errors import InfeasibleError, UnsupportedOperationError, ValidationError
from .search.optimizer import OptimizationEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApiResponse:
    status: int
    body: dict[str, Any]


@functools.lru_cache(maxsize=1)
def default_engines() -> tuple[PredictionEngine, OptimizationEngine]:
    prediction = PredictionEngine()
    return prediction, OptimizationEngine(prediction)


def _responds(handler: Callable[..., dict[str, Any]]) -> Callable[..., ApiResponse]:
    """Translate the exception taxonomy into status codes."""

    @functools.wraps(handler)
    def wrapper(*args: Any, **kwargs: Any) -> ApiResponse:
        try:
            return ApiResponse(200, handler(*args, **kwargs))
        except ValidationError as exc:
            return ApiResponse(400, {"error": "validation_error", **exc.to_dict()})
        except UnsupportedOperationError as exc:
            return ApiResponse(422, {"error": "unsupported_operation", "message": str(exc)})
        except InfeasibleError as exc:
            return ApiResponse(409, _no_solution(str(exc)))
        except Exception:
            correlation_id = uuid.uuid4().hex
            logger.exception("Request failed (correlation id %s)", correlation_id)
            return ApiResponse(
                500,
                {"error": "internal_error", "message": "Internal error", "correlationId": correlation_id},
            )

    return wrapper


def _no_solution(message: str, outcome: RunOutcome = RunOutcome.INFEASIBLE) -> dict[str, Any]:
    return {"error": "no_solution", "outcome": outcome.value, "message": message}


def _require(body: Mapping[str, Any], key: str) -> Any:
    if not isinstance(body, Mapping):
        raise ValidationError("Request body must be an object")
    if key not in body:
        raise ValidationError(f"Missing field {key!r}", field=key)
    return body[key]


# ------------------------------------------------------------------ #
#  Prediction                                                         #
# ------------------------------------------------------------------ #

@_responds
def handle_prediction(body: Mapping[str, Any], engine: PredictionEngine | None = None) -> dict[str, Any]:
    """``{reactorId | inlineConfig, parameters, fidelity?, clamp?}`` → prediction result."""
    engine = engine or default_engines()[0]
    if isinstance(body, Mapping) and "inlineConfig" in body:
        config = configuration_from_wire(body["inlineConfig"])
        engine.tables.validate(config, strict_materials=True)
    else:
        config = engine.resolve(str(_require(body, "reactorId")))
    params = parameters_from_wire(_require(body, "parameters"))
    fidelity = FidelityLevel.parse(body.get("fidelity", "basic"))
    result = engine.predict(config, params, fidelity, clamp=bool(body.get("clamp", False)))
    return result_to_wire(result)


# ------------------------------------------------------------------ #
#  Optimisation                                                       #
# ------------------------------------------------------------------ #

def _parse_objective(raw: Any) -> ObjectiveSpec:
    if isinstance(raw, str):
        return ObjectiveSpec(ObjectiveKind.parse(raw))
    if isinstance(raw, Mapping):
        weights = raw.get("weights", {})
        if not isinstance(weights, Mapping):
            raise ValidationError("Objective weights must be an object", field="weights")
        weights = {to_snake(k): number_from_wire(v, "weights") for k, v in weights.items()}
        return ObjectiveSpec(ObjectiveKind.parse(_require(raw, "kind")), weights)
    raise ValidationError("Objective must be a name or an object", field="objective")


def _parse_constraints(raw: Any) -> ConstraintSet:
    """``{name: {min?, max?} | [min, max]}``; metric names become derived constraints."""
    if raw is None:
        return ConstraintSet()
    if not isinstance(raw, Mapping):
        raise ValidationError("Constraints must be an object", field="constraints")
    bounds: dict[str, tuple[float, float]] = {}
    derived: list[DerivedConstraint] = []
    for key, spec in raw.items():
        name = parameter_key(key)
        if isinstance(spec, (list, tuple)) and len(spec) == 2:
            lo, hi = spec
        elif isinstance(spec, Mapping):
            lo, hi = spec.get("min"), spec.get("max")
        else:
            raise ValidationError(f"Bad constraint for {key!r}", field="constraints")
        lo = number_from_wire(lo, key)
        hi = number_from_wire(hi, key)
        if name in METRICS:
            derived.append(DerivedConstraint(name, lo, hi))
        elif name in PARAMETER_NAMES:
            bounds[name] = (-math.inf if lo is None else lo, math.inf if hi is None else hi)
        else:
            raise ValidationError(f"Unknown constraint {key!r}", field="constraints")
    return ConstraintSet(bounds=bounds, derived=tuple(derived))


def _parse_weights(raw: Any) -> list[float] | None:
    """Per-objective weights for weighted-sum mode."""
    if raw is None:
        return None
    if not isinstance(raw, (list, tuple)) or any(w is None for w in raw):
        raise ValidationError("Weights must be a list of numbers", field="weights")
    return [number_from_wire(w, "weights") for w in raw]


def _recommendations(run: OptimizationRun, engine: PredictionEngine) -> list[dict[str, Any]]:
    if run.initial is None or run.best is None:
        return []
    config = engine.resolve(run.reactor_id)
    before = run.initial.parameters.as_dict()
    after = run.best.parameters.as_dict()
    goals = " and ".join(o.label.replace("_", " ") for o in run.objectives)
    recs: list[dict[str, Any]] = []
    for name, old in before.items():
        new = after.get(name, old)
        change = new - old
        if abs(change) < 10.0 ** -PRECISION:
            continue
        reference = abs(old) if abs(old) > 1e-12 else config.range_for(name).span or 1.0
        percent = abs(change) / reference * 100.0
        direction = "increase" if change > 0 else "decrease"
        recs.append({
            "parameter": to_camel(name),
            "direction": direction,
            "percent": round(percent, 2),
            "rationale": f"{direction.capitalize()} {name.replace('_', ' ')} from {old:g} to {new:g} to {goals}",
        })
    recs.sort(key=lambda r: r["percent"], reverse=True)
    return recs


def run_to_wire(run: OptimizationRun, engine: PredictionEngine) -> dict[str, Any]:
    assert run.outcome is not None
    before = run.initial.score if run.initial else math.nan
    after = run.best.score if run.best else math.nan
    body: dict[str, Any] = {
        "reactorId": run.reactor_id,
        "algorithm": run.algorithm.value,
        "mode": run.mode.value,
        "outcome": run.outcome.value,
        "converged": run.converged,
        "optimizedParameters": parameters_to_wire(run.best.parameters) if run.best else {},
        "performance": {
            "scoreBefore": round(before, PRECISION) if math.isfinite(before) else None,
            "scoreAfter": round(after, PRECISION) if math.isfinite(after) else None,
            "improvement": f"{run.improvement_percent:.1f}%",
        },
        "iterations": [
            {
                "iteration": r.iteration,
                "bestFitness": round(r.best_fitness, PRECISION) if math.isfinite(r.best_fitness) else None,
                "evaluated": len(r.evaluations),
                "failures": r.failures,
            }
            for r in run.history
        ],
        "recommendations": _recommendations(run, engine),
        "evaluations": run.n_evaluations,
        "elapsedS": round(run.elapsed_s, PRECISION),
    }
    if run.mode is MultiObjectiveMode.PARETO:
        body["paretoFront"] = [
            {
                "parameters": parameters_to_wire(e.parameters),
                "objectives": [round(v, PRECISION) for v in e.objectives],
            }
            for e in run.pareto_front
        ]
    if run.sensitivity:
        body["sensitivity"] = [
            {
                "parameter": to_camel(s.parameter),
                "sensitivity": round(s.sensitivity, PRECISION),
                "gradient": round(s.gradient, PRECISION),
                "optimalRange": [round(v, PRECISION) for v in s.optimal_range],
            }
            for s in run.sensitivity
        ]
    if run.message:
        body["message"] = run.message
    return body


def handle_optimization(
    body: Mapping[str, Any],
    optimizer: OptimizationEngine | None = None,
) -> ApiResponse:
    """``{reactorId, currentParameters, objective, constraints?, algorithm, ...}`` → run summary.

    A run that ends infeasible is answered with 409; one whose whole
    generation failed with 422.
    """
    response = _optimize(body, optimizer)
    if response.status != 200:
        return response
    outcome = response.body["outcome"]
    if outcome == RunOutcome.INFEASIBLE.value:
        return ApiResponse(409, {**_no_solution(response.body.get("message", "")), "run": response.body})
    if outcome == RunOutcome.EVALUATION_FAILURE.value:
        return ApiResponse(
            422,
            {**_no_solution(response.body.get("message", ""), RunOutcome.EVALUATION_FAILURE), "run": response.body},
        )
    return response


@_responds
def _optimize(body: Mapping[str, Any], optimizer: OptimizationEngine | None) -> dict[str, Any]:
    optimizer = optimizer or default_engines()[1]
    reactor_id = str(_require(body, "reactorId"))
    config = optimizer.prediction.resolve(reactor_id)
    initial = parameters_from_wire(_require(body, "currentParameters"))

    raw_objective = _require(body, "objective")
    if isinstance(raw_objective, list):
        objectives = [_parse_objective(o) for o in raw_objective]
    else:
        objectives = [_parse_objective(raw_objective)]

    mode = None
    if "mode" in body:
        try:
            mode = MultiObjectiveMode(str(body["mode"]).lower())
        except ValueError:
            raise ValidationError(f"Unknown mode {body['mode']!r}", field="mode") from None

    run = optimizer.optimize(
        config,
        initial,
        objectives,
        constraints=_parse_constraints(body.get("constraints")),
        algorithm=body.get("algorithm", "genetic_algorithm"),
        fidelity=body.get("fidelity", "basic"),
        max_iterations=number_from_wire(body.get("maxIterations"), "maxIterations", integer=True),
        tolerance=number_from_wire(body.get("tolerance"), "tolerance"),
        mode=mode,
        weights=_parse_weights(body.get("weights")),
        timeout_s=number_from_wire(body.get("timeoutSeconds"), "timeoutSeconds"),
        sensitivity=bool(body.get("sensitivity", False)),
        seed=number_from_wire(body.get("seed"), "seed", integer=True),
    )
    return run_to_wire(run, optimizer.prediction)


# ------------------------------------------------------------------ #
#  Control simulation                                                 #
# ------------------------------------------------------------------ #

def _parse_loop(raw: Any, name: str) -> LoopSettings:
    if raw is None:
        return LoopSettings()
    if not isinstance(raw, Mapping):
        raise ValidationError(f"Loop {name!r} must be an object", field=name)
    enabled = raw.get("enabled", True)
    if not isinstance(enabled, bool):
        raise ValidationError(f"{name}.enabled must be a boolean", field=name)
    return LoopSettings(
        enabled=enabled,
        setpoint=number_from_wire(raw.get("setpoint"), f"{name}.setpoint"),
        kp=number_from_wire(raw.get("kp"), f"{name}.kp"),
        ki=number_from_wire(raw.get("ki"), f"{name}.ki"),
        kd=number_from_wire(raw.get("kd"), f"{name}.kd"),
    )


def _parse_disturbances(raw: Any) -> tuple[Disturbance, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, (list, tuple)) or not all(isinstance(d, Mapping) for d in raw):
        raise ValidationError("Disturbances must be a list of objects", field="disturbances")
    return tuple(
        Disturbance(
            kind=DisturbanceKind.parse(_require(d, "type")),
            magnitude=number_from_wire(_require(d, "magnitude"), "magnitude"),
            start_s=number_from_wire(d.get("startS", 0.0), "startS"),
            duration_s=number_from_wire(_require(d, "durationS"), "durationS"),
        )
        for d in raw
    )


def _parse_scenario(body: Mapping[str, Any]) -> ControlScenario:
    """A preset, optionally overridden field by field."""
    preset = body.get("preset")
    if preset is None:
        base = ControlScenario()
    elif str(preset).lower() in SCENARIO_PRESETS:
        base = SCENARIO_PRESETS[str(preset).lower()]
    else:
        raise ValidationError(f"Unknown preset {preset!r}", field="preset")
    loops = body.get("loops") or {}
    if not isinstance(loops, Mapping):
        raise ValidationError("Loops must be an object", field="loops")
    changes: dict[str, Any] = {
        name: _parse_loop(loops[name], name) for name in ("thermal", "humidity", "pressure") if name in loops
    }
    if "durationS" in body:
        changes["duration_s"] = number_from_wire(body["durationS"], "durationS")
    if "timeStepS" in body:
        changes["time_step_s"] = number_from_wire(body["timeStepS"], "timeStepS")
    if "purge" in body:
        changes["purge"] = PurgeStrategy.parse(body["purge"])
    if "disturbances" in body:
        changes["disturbances"] = _parse_disturbances(body["disturbances"])
    return replace(base, **changes)


@_responds
def handle_control_simulation(body: Mapping[str, Any], engine: PredictionEngine | None = None) -> dict[str, Any]:
    """``{reactorId | inlineConfig, parameters, preset?, loops?, disturbances?, ...}`` → transient run."""
    engine = engine or default_engines()[0]
    if isinstance(body, Mapping) and "inlineConfig" in body:
        config = configuration_from_wire(body["inlineConfig"])
        engine.tables.validate(config, strict_materials=True)
    else:
        config = engine.resolve(str(_require(body, "reactorId")))
    params = parameters_from_wire(_require(body, "parameters"))
    every = number_from_wire(body.get("sampleEvery", 10), "sampleEvery", integer=True)
    result = simulate_control(engine, config, params, _parse_scenario(body))
    return simulation_to_wire(result, every=every)
