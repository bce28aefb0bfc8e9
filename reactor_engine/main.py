"""
main.py — Command-line front end for the reactor engine.

Usage
-----
    python -m reactor_engine.main catalog

    python -m reactor_engine.main predict \
        --reactor pem-stack-50 \
        --fidelity advanced \
        --param temperature=72 --param humidity=85

    python -m reactor_engine.main optimize \
        --reactor embr-001 \
        --objective maximize_power \
        --algorithm genetic_algorithm \
        --iterations 30 \
        --db reactor_runs.sqlite

    python -m reactor_engine.main simulate \
        --reactor pem-stack-50 \
        --preset thermal_disturbance \
        --setpoint temperature=75

Parameters not given with ``--param`` start from the catalog's nominal
operating point.  Output is JSON on stdout; the log goes to stderr and,
with ``--log-file``, to a file.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from typing import Any

from .api import run_to_wire
from .control.simulation import (
    SCENARIO_PRESETS,
    LoopSettings,
    PurgeStrategy,
    simulate_control,
    simulation_to_wire,
)
from .domain import ConstraintSet, FidelityLevel, ObjectiveKind, ObjectiveSpec, OperatingParameters
from .engine.prediction import PredictionEngine
from .engine.wire import configuration_to_wire, parameter_key, parameters_to_wire, result_to_wire
from .errors import ReactorEngineError, ValidationError
from .search.optimizer import OptimizationEngine
from .store.results import ResultsDB

logger = logging.getLogger("reactor_engine")


def _parse_assignments(items: list[str], option: str) -> dict[str, str]:
    pairs: dict[str, str] = {}
    for item in items:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise ValidationError(f"Expected NAME=VALUE, got {item!r}", field=option)
        pairs[key.strip()] = value.strip()
    return pairs


def _starting_point(engine: PredictionEngine, reactor_id: str, overrides: list[str]) -> OperatingParameters:
    merged: dict[str, Any] = engine.catalog.nominal(reactor_id).as_dict()
    for name, value in _parse_assignments(overrides, "param").items():
        try:
            merged[parameter_key(name)] = float(value)
        except ValueError:
            raise ValidationError(f"{name} must be a number, got {value!r}", field=name) from None
    return OperatingParameters.from_mapping(merged)


def _parse_bounds(items: list[str]) -> ConstraintSet:
    bounds: dict[str, tuple[float, float]] = {}
    for name, value in _parse_assignments(items, "bound").items():
        lo, sep, hi = value.partition(":")
        if not sep:
            raise ValidationError(f"Expected NAME=MIN:MAX, got {name}={value}", field="bound")
        try:
            bounds[parameter_key(name)] = (float(lo), float(hi))
        except ValueError:
            raise ValidationError(f"Bound for {name} must be numeric, got {value!r}", field=name) from None
    return ConstraintSet(bounds=bounds)


# ------------------------------------------------------------------ #
#  Commands                                                           #
# ------------------------------------------------------------------ #

def cmd_catalog(engine: PredictionEngine, args: argparse.Namespace) -> dict[str, Any]:
    return {
        "reactors": [
            {
                **configuration_to_wire(entry.config),
                "nominal": parameters_to_wire(entry.nominal),
                "description": entry.description,
            }
            for entry in engine.catalog
        ]
    }


def cmd_predict(engine: PredictionEngine, args: argparse.Namespace) -> dict[str, Any]:
    params = _starting_point(engine, args.reactor, args.param)
    result = engine.predict(args.reactor, params, FidelityLevel.parse(args.fidelity), clamp=args.clamp)
    logger.info(
        "%s at %s fidelity: P=%.3f W  V=%.3f V  status=%s",
        args.reactor, result.fidelity.name.lower(), result.power, result.voltage, result.status.value,
    )
    return result_to_wire(result)


def cmd_optimize(engine: PredictionEngine, args: argparse.Namespace) -> dict[str, Any]:
    optimizer = OptimizationEngine(engine)
    initial = _starting_point(engine, args.reactor, args.param)
    objectives = [ObjectiveSpec(ObjectiveKind.parse(o)) for o in args.objective]
    run = optimizer.optimize(
        args.reactor,
        initial,
        objectives,
        constraints=_parse_bounds(args.bound),
        algorithm=args.algorithm,
        fidelity=args.fidelity,
        max_iterations=args.iterations,
        timeout_s=args.timeout,
        sensitivity=args.sensitivity,
        seed=args.seed,
    )
    body = run_to_wire(run, engine)
    if args.db:
        db = ResultsDB(args.db)
        try:
            body["runId"] = db.record_run(run)
        finally:
            db.close()
    return body


def cmd_simulate(engine: PredictionEngine, args: argparse.Namespace) -> dict[str, Any]:
    params = _starting_point(engine, args.reactor, args.param)
    scenario = SCENARIO_PRESETS[args.preset]
    loops = {"temperature": "thermal", "humidity": "humidity", "pressure": "pressure"}
    changes: dict[str, Any] = {}
    for name, value in _parse_assignments(args.setpoint, "setpoint").items():
        key = loops.get(parameter_key(name))
        if key is None:
            raise ValidationError(f"No control loop for {name!r}", field="setpoint")
        try:
            changes[key] = LoopSettings(setpoint=float(value))
        except ValueError:
            raise ValidationError(f"Setpoint for {name} must be a number, got {value!r}", field=name) from None
    for name in args.disable:
        changes[name] = LoopSettings(enabled=False)
    if args.duration is not None:
        changes["duration_s"] = args.duration
    if args.purge is not None:
        changes["purge"] = PurgeStrategy.parse(args.purge)
    result = simulate_control(engine, args.reactor, params, replace(scenario, **changes))
    logger.info(
        "%s control run: stability=%.3f performance=%.3f loops=%s",
        args.reactor, result.stability, result.performance, ",".join(result.loops) or "none",
    )
    return simulation_to_wire(result, every=args.every)


# ── CLI ────────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="reactor-engine",
        description="Multi-fidelity prediction and optimisation for electrochemical reactors",
    )
    parser.add_argument("--log-file", default=None, help="Also write the log to this file")
    parser.add_argument("--verbose", "-v", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("catalog", help="List the reference reactors")

    predict = sub.add_parser("predict", help="Predict performance at one operating point")
    predict.add_argument("--reactor", required=True)
    predict.add_argument("--fidelity", default="basic", choices=["basic", "intermediate", "advanced"])
    predict.add_argument("--param", action="append", default=[], metavar="NAME=VALUE")
    predict.add_argument("--clamp", action="store_true", help="Clamp out-of-range values")

    optimize = sub.add_parser("optimize", help="Search for better operating parameters")
    optimize.add_argument("--reactor", required=True)
    optimize.add_argument(
        "--objective", action="append", default=None,
        choices=[k.value for k in ObjectiveKind if k is not ObjectiveKind.WEIGHTED],
    )
    optimize.add_argument("--algorithm", default="genetic_algorithm")
    optimize.add_argument("--fidelity", default="basic", choices=["basic", "intermediate", "advanced"])
    optimize.add_argument("--iterations", type=int, default=None)
    optimize.add_argument("--timeout", type=float, default=None, help="Seconds")
    optimize.add_argument("--param", action="append", default=[], metavar="NAME=VALUE")
    optimize.add_argument("--bound", action="append", default=[], metavar="NAME=MIN:MAX")
    optimize.add_argument("--sensitivity", action="store_true")
    optimize.add_argument("--seed", type=int, default=None)
    optimize.add_argument("--db", default=None, help="SQLite run ledger")

    simulate = sub.add_parser("simulate", help="Run the control loops through a transient scenario")
    simulate.add_argument("--reactor", required=True)
    simulate.add_argument("--preset", default="basic_test", choices=sorted(SCENARIO_PRESETS))
    simulate.add_argument("--param", action="append", default=[], metavar="NAME=VALUE")
    simulate.add_argument("--setpoint", action="append", default=[], metavar="NAME=VALUE")
    simulate.add_argument("--disable", action="append", default=[], choices=["thermal", "humidity", "pressure"])
    simulate.add_argument("--duration", type=float, default=None, help="Seconds")
    simulate.add_argument("--purge", default=None, choices=[p.value for p in PurgeStrategy])
    simulate.add_argument("--every", type=int, default=10, help="Keep every N-th sample")
    return parser


_COMMANDS = {
    "catalog": cmd_catalog,
    "predict": cmd_predict,
    "optimize": cmd_optimize,
    "simulate": cmd_simulate,
}


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.command == "optimize" and not args.objective:
        args.objective = [ObjectiveKind.MAXIMIZE_POWER.value]

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if args.log_file:
        handlers.append(logging.FileHandler(args.log_file))
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )

    engine = PredictionEngine()
    try:
        body = _COMMANDS[args.command](engine, args)
    except ValidationError as exc:
        logger.error("Invalid input: %s", exc)
        json.dump({"error": "validation_error", **exc.to_dict()}, sys.stdout, indent=2)
        print()
        return 2
    except ReactorEngineError as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        json.dump({"error": type(exc).__name__, "message": str(exc)}, sys.stdout, indent=2)
        print()
        return 1
    json.dump(body, sys.stdout, indent=2)
    print()
    return 0


if __name__ == "__main__":
    sys.exit(main())
