from __future__ import annotations

import json
import math

import pytest

from reactor_engine.domain import FidelityLevel, OperatingParameters, PredictionResult
from reactor_engine.engine.wire import (
    configuration_from_wire,
    configuration_to_wire,
    parameters_from_wire,
    parameters_to_wire,
    result_from_wire,
    result_to_wire,
    to_camel,
    to_snake,
)
from reactor_engine.errors import ValidationError


def _close(a: object, b: object) -> bool:
    if isinstance(a, float) and isinstance(b, float):
        return math.isclose(a, b, rel_tol=0.0, abs_tol=1e-6)
    if isinstance(a, (tuple, list)) and isinstance(b, (tuple, list)):
        return len(a) == len(b) and all(_close(x, y) for x, y in zip(a, b))
    if isinstance(a, dict) and isinstance(b, dict):
        return a.keys() == b.keys() and all(_close(a[k], b[k]) for k in a)
    if hasattr(a, "__dataclass_fields__") and type(a) is type(b):
        return all(_close(getattr(a, f), getattr(b, f)) for f in a.__dataclass_fields__)
    return a == b


def test_case_conversion() -> None:
    assert to_camel("power_density") == "powerDensity"
    assert to_camel("voltage") == "voltage"
    assert to_snake("waterProductionMolS") == "water_production_mol_s"


@pytest.mark.parametrize("level", list(FidelityLevel))
def test_result_round_trip(engine, pem_params, level: FidelityLevel) -> None:
    result = engine.predict("pem-stack-50", pem_params, level)
    # Through real JSON text, as an HTTP layer would.
    decoded = result_from_wire(json.loads(json.dumps(result_to_wire(result))))
    assert isinstance(decoded, PredictionResult)
    assert decoded.fidelity is result.fidelity
    for name in result.__dataclass_fields__:
        assert _close(getattr(decoded, name), getattr(result, name)), name


def test_absent_blocks_are_omitted(engine, pem_params) -> None:
    body = result_to_wire(engine.predict("pem-stack-50", pem_params, FidelityLevel.BASIC))
    for key in ("thermalProfile", "gasComposition", "overpotentials", "electrodeKinetics",
                "fluidDynamics", "controllerSetpoints", "suggestions"):
        assert key not in body
    assert body["fidelity"] == "basic"
    assert "powerDensity" in body and "confidenceInterval" in body


def test_numbers_are_rounded(engine, pem_params) -> None:
    body = result_to_wire(engine.predict("pem-stack-50", pem_params, FidelityLevel.INTERMEDIATE))
    value = body["gasComposition"]["waterProductionMolS"]
    assert value == round(value, 6)


def test_membrane_loss_omitted_without_membrane(engine, catalog) -> None:
    result = engine.predict("stirred-tank-001", catalog.nominal("stirred-tank-001"), FidelityLevel.ADVANCED)
    body = result_to_wire(result)
    assert "membrane" not in body["overpotentials"]
    assert "activation" in body["overpotentials"]


def test_malformed_result_is_validation_error() -> None:
    with pytest.raises(ValidationError):
        result_from_wire({"reactorId": "x"})


def test_parameters_accept_ph_spelling() -> None:
    params = parameters_from_wire({"temperature": 35, "pH": 7.1, "flowRate": 25})
    assert params == OperatingParameters(temperature=35.0, ph=7.1, flow_rate=25.0)
    assert parameters_to_wire(params) == {"temperature": 35.0, "ph": 7.1, "flowRate": 25.0}


def test_parameters_reject_unknown_names() -> None:
    with pytest.raises(ValidationError):
        parameters_from_wire({"warpFactor": 9})
    with pytest.raises(ValidationError):
        parameters_from_wire([1, 2, 3])


def test_configuration_round_trip(catalog) -> None:
    for entry in catalog:
        parsed = configuration_from_wire(json.loads(json.dumps(configuration_to_wire(entry.config))))
        assert parsed == entry.config


def test_malformed_configuration() -> None:
    with pytest.raises(ValidationError) as info:
        configuration_from_wire({"id": "x", "type": "pem"})
    assert info.value.field == "inlineConfig"


def test_configuration_accepts_ph_range_key(catalog) -> None:
    body = configuration_to_wire(catalog.get("embr-001"))
    body["ranges"]["pH"] = body["ranges"].pop("ph")
    parsed = configuration_from_wire(body)
    assert parsed.range_for("ph") == catalog.get("embr-001").range_for("ph")


def test_configuration_coerces_numeric_strings(catalog) -> None:
    body = configuration_to_wire(catalog.get("pem-stack-50"))
    body["window"]["optimalTemperature"] = "70"
    body["window"]["maxTemperature"] = "90"
    body["geometry"]["cellCount"] = "50"
    parsed = configuration_from_wire(body)
    assert parsed.window.optimal_temperature == 70.0
    assert parsed.window.max_temperature == 90.0
    assert parsed.geometry.cell_count == 50


@pytest.mark.parametrize(
    "block, key, value",
    [
        ("window", "maxTemperature", "hot"),
        ("window", "optimalTemperature", True),
        ("window", "maxTemperature", "nan"),
        ("geometry", "cellCount", 2.5),
    ],
)
def test_configuration_rejects_bad_numbers(catalog, block: str, key: str, value) -> None:
    body = configuration_to_wire(catalog.get("pem-stack-50"))
    body[block][key] = value
    with pytest.raises(ValidationError) as info:
        configuration_from_wire(body)
    assert info.value.field == key
