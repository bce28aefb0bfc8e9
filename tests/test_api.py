from __future__ import annotations

from reactor_engine.api import handle_optimization, handle_prediction
from reactor_engine.domain import FidelityLevel
from reactor_engine.engine.prediction import DEFAULT_MODELS, PredictionEngine
from reactor_engine.engine.wire import configuration_to_wire, parameters_to_wire

PEM_BODY = {
    "reactorId": "pem-stack-50",
    "parameters": {"temperature": 70, "flowRate": 5, "pressure": 1.5, "humidity": 90, "airFlowRate": 20},
    "fidelity": "intermediate",
}

EMBR_PARAMS = {
    "temperature": 35, "pH": 7.2, "flowRate": 25, "mixingSpeed": 150,
    "electrodeVoltage": 100, "substrateConcentration": 2,
}



def test_prediction_ok(engine) -> None:
    response = handle_prediction(PEM_BODY, engine)
    assert response.status == 200
    assert response.body["fidelity"] == "intermediate"
    assert response.body["power"] > 0
    assert "gasComposition" in response.body
    assert "overpotentials" not in response.body


def test_prediction_out_of_range_is_400(engine) -> None:
    body = {**PEM_BODY, "parameters": {**PEM_BODY["parameters"], "temperature": 150}}
    response = handle_prediction(body, engine)
    assert response.status == 400
    assert response.body["field"] == "temperature"
    assert response.body["validRange"] == [20.0, 95.0]


def test_prediction_clamp_flag(engine) -> None:
    body = {**PEM_BODY, "clamp": True, "parameters": {**PEM_BODY["parameters"], "temperature": 150}}
    response = handle_prediction(body, engine)
    assert response.status == 200
    assert any("clamped" in w for w in response.body["warnings"])


def test_prediction_missing_field_is_400(engine) -> None:
    response = handle_prediction({"parameters": PEM_BODY["parameters"]}, engine)
    assert response.status == 400
    assert response.body["field"] == "reactorId"


def test_prediction_unsupported_fidelity_is_422(engine, catalog) -> None:
    body = {
        "reactorId": "fractal-001",
        "parameters": parameters_to_wire(catalog.nominal("fractal-001")),
        "fidelity": "advanced",
    }
    response = handle_prediction(body, engine)
    assert response.status == 422
    assert response.body["error"] == "unsupported_operation"


def test_prediction_inline_config(engine, catalog) -> None:
    inline = configuration_to_wire(catalog.get("pem-stack-50"))
    inline["id"] = "custom-pem"
    response = handle_prediction({**PEM_BODY, "reactorId": None, "inlineConfig": inline}, engine)
    assert response.status == 200
    assert response.body["reactorId"] == "custom-pem"


def test_prediction_inline_unknown_material_is_400(engine, catalog) -> None:
    inline = configuration_to_wire(catalog.get("pem-stack-50"))
    inline["anode"] = "Unobtainium"
    response = handle_prediction({**PEM_BODY, "inlineConfig": inline}, engine)
    assert response.status == 400
    assert response.body["field"] == "anode"


def test_internal_error_has_correlation_id() -> None:
    def broken(ctx):
        raise RuntimeError("secret internal detail")

    models = dict(DEFAULT_MODELS)
    models[FidelityLevel.BASIC] = broken
    response = handle_prediction(PEM_BODY | {"fidelity": "basic"}, PredictionEngine(models=models))
    assert response.status == 500
    assert response.body["correlationId"]
    assert "secret" not in str(response.body)


def test_optimization_ok(optimizer) -> None:
    body = {
        "reactorId": "embr-001",
        "currentParameters": EMBR_PARAMS,
        "objective": "maximize_power",
        "algorithm": "genetic_algorithm",
        "maxIterations": 3,
    }
    response = handle_optimization(body, optimizer)
    assert response.status == 200
    out = response.body
    assert set(out["optimizedParameters"]) == set(EMBR_PARAMS) - {"pH"} | {"ph"}
    assert out["performance"]["improvement"].endswith("%")
    assert out["performance"]["scoreAfter"] >= out["performance"]["scoreBefore"]
    assert len(out["iterations"]) <= 3
    assert out["mode"] == "single"
    for rec in out["recommendations"]:
        assert rec["direction"] in ("increase", "decrease")
        assert rec["percent"] > 0
        assert rec["rationale"]


def test_optimization_bounds_and_derived_constraints(optimizer) -> None:
    body = {
        "reactorId": "embr-001",
        "currentParameters": EMBR_PARAMS,
        "objective": "maximize_power",
        "algorithm": "pso",
        "constraints": {"temperature": {"min": 30, "max": 38}, "efficiency": {"min": 0}},
        "maxIterations": 2,
    }
    response = handle_optimization(body, optimizer)
    assert response.status == 200
    assert 30 <= response.body["optimizedParameters"]["temperature"] <= 38


def test_optimization_infeasible_is_409(optimizer) -> None:
    body = {
        "reactorId": "embr-001",
        "currentParameters": EMBR_PARAMS,
        "objective": "maximize_power",
        "algorithm": "gradient_descent",
        "constraints": {"temperature": [40, 30]},
    }
    response = handle_optimization(body, optimizer)
    assert response.status == 409
    assert response.body["error"] == "no_solution"


def test_optimization_unreachable_constraint_is_409(optimizer) -> None:
    body = {
        "reactorId": "embr-001",
        "currentParameters": EMBR_PARAMS,
        "objective": "maximize_power",
        "constraints": {"power": {"min": 1e12}},
        "maxIterations": 2,
    }
    response = handle_optimization(body, optimizer)
    assert response.status == 409
    assert response.body["outcome"] == "infeasible"
    assert "run" in response.body


def test_optimization_multi_objective_pareto(optimizer) -> None:
    body = {
        "reactorId": "embr-001",
        "currentParameters": EMBR_PARAMS,
        "objective": ["maximize_power", {"kind": "weighted", "weights": {"efficiency": 1.0, "cost": 0.5}}],
        "mode": "pareto",
        "maxIterations": 2,
    }
    response = handle_optimization(body, optimizer)
    assert response.status == 200
    assert response.body["mode"] == "pareto"
    assert response.body["paretoFront"]


def test_optimization_bad_objective_is_400(optimizer) -> None:
    body = {"reactorId": "embr-001", "currentParameters": EMBR_PARAMS, "objective": "maximize_happiness"}
    response = handle_optimization(body, optimizer)
    assert response.status == 400
    assert response.body["field"] == "objective"


def test_prediction_inline_config_with_ph_range(engine, catalog) -> None:
    inline = configuration_to_wire(catalog.get("embr-001"))
    inline["ranges"]["pH"] = inline["ranges"].pop("ph")
    body = {"inlineConfig": inline, "parameters": EMBR_PARAMS, "fidelity": "intermediate"}
    response = handle_prediction(body, engine)
    assert response.status == 200
    assert response.body["power"] > 0


def test_prediction_inline_config_string_numbers(engine, catalog) -> None:
    inline = configuration_to_wire(catalog.get("pem-stack-50"))
    inline["window"]["optimalTemperature"] = "70"
    inline["window"]["maxTemperature"] = "90"
    response = handle_prediction({**PEM_BODY, "inlineConfig": inline}, engine)
    assert response.status == 200

    inline["window"]["maxTemperature"] = "hot"
    response = handle_prediction({**PEM_BODY, "inlineConfig": inline}, engine)
    assert response.status == 400
    assert response.body["field"] == "maxTemperature"


def test_prediction_reverse_bias_keeps_gas_balance(engine, catalog) -> None:
    inline = configuration_to_wire(catalog.get("embr-001"))
    inline["id"] = "embr-reverse"
    inline["ranges"]["electrodeVoltage"] = [-3000, 300]
    body = {
        "inlineConfig": inline,
        "parameters": {**EMBR_PARAMS, "electrodeVoltage": -2500},
        "fidelity": "intermediate",
    }
    response = handle_prediction(body, engine)
    assert response.status == 200
    out = response.body
    gas = out["gasComposition"]
    assert out["power"] >= 0.0
    assert 0.0 <= out["fuelUtilization"] <= 100.0
    assert 0.0 <= gas["fuelUtilization"] <= gas["fuelInlet"]
    assert gas["fuelOutlet"] <= gas["fuelInlet"]


def test_optimization_non_numeric_constraint_is_400(optimizer) -> None:
    body = {
        "reactorId": "embr-001",
        "currentParameters": EMBR_PARAMS,
        "objective": "maximize_power",
        "constraints": {"temperature": {"min": "warm", "max": 38}},
    }
    response = handle_optimization(body, optimizer)
    assert response.status == 400
    assert response.body["field"] == "temperature"


def test_optimization_ph_constraint_spelling(optimizer) -> None:
    body = {
        "reactorId": "embr-001",
        "currentParameters": EMBR_PARAMS,
        "objective": "maximize_power",
        "constraints": {"pH": ["6.9", "7.3"]},
        "maxIterations": "2",
    }
    response = handle_optimization(body, optimizer)
    assert response.status == 200
    assert 6.9 <= response.body["optimizedParameters"]["ph"] <= 7.3


def test_optimization_bad_run_settings_are_400(optimizer) -> None:
    base = {"reactorId": "embr-001", "currentParameters": EMBR_PARAMS, "objective": "maximize_power"}
    for extra, field in [
        ({"maxIterations": "abc"}, "maxIterations"),
        ({"maxIterations": 2.5}, "maxIterations"),
        ({"tolerance": -1}, "tolerance"),
        ({"timeoutSeconds": "soon"}, "timeoutSeconds"),
        ({"weights": [1, None]}, "weights"),
    ]:
        response = handle_optimization({**base, **extra}, optimizer)
        assert response.status == 400, extra
        assert response.body["field"] == field
