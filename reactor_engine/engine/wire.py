"""engine/wire.py — JSON-ready dictionaries for results, parameters and configurations.

Keys are camelCase, floats are rounded to ``PRECISION`` decimals, and
optional blocks a fidelity level does not populate are omitted rather than
sent as ``null``.
"""

from __future__ import annotations

import dataclasses
import functools
import math
import re
import typing
from enum import Enum
from typing import Any, Mapping

from ..domain import (
    ConfidenceInterval,
    ControllerSetpoints,
    ElectrodeKinetics,
    FidelityLevel,
    FluidDynamics,
    GasComposition,
    Geometry,
    HotSpot,
    OperatingParameters,
    OperatingWindow,
    OperationalStatus,
    OptimizationSuggestion,
    Overpotentials,
    ParameterRange,
    PredictionResult,
    ReactorConfiguration,
    ReactorType,
    ThermalProfile,
)
from ..errors import ValidationError

PRECISION = 6

_BLOCK_TYPES: dict[str, type] = {
    "thermal_profile": ThermalProfile,
    "gas_composition": GasComposition,
    "overpotentials": Overpotentials,
    "electrode_kinetics": ElectrodeKinetics,
    "fluid_dynamics": FluidDynamics,
    "controller_setpoints": ControllerSetpoints,
}
# Tuple-of-dataclass fields inside blocks.
_NESTED: dict[tuple[type, str], type] = {
    (ThermalProfile, "hot_spots"): HotSpot,
}
_SCALARS = (
    "voltage",
    "current",
    "power",
    "power_density",
    "current_density",
    "efficiency",
    "fuel_utilization",
    "execution_time_ms",
)


def to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def to_snake(name: str) -> str:
    return re.sub(r"(?<=[a-z0-9])([A-Z])", r"_\1", name).lower()


def parameter_key(name: str) -> str:
    """Wire spelling to parameter name; ``pH`` is accepted alongside camelCase."""
    return "ph" if name.lower() == "ph" else to_snake(name)


def _encode(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (bool, int, str)) or value is None:
        return value
    if isinstance(value, float):
        return round(float(value), PRECISION)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        out: dict[str, Any] = {}
        for f in dataclasses.fields(value):
            item = getattr(value, f.name)
            if item is not None:
                out[to_camel(f.name)] = _encode(item)
        return out
    if isinstance(value, Mapping):
        return {str(k): _encode(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode(v) for v in value]
    raise TypeError(f"Cannot encode {type(value).__name__}")


@functools.lru_cache(maxsize=None)
def _field_types(cls: type) -> dict[str, Any]:
    return typing.get_type_hints(cls)


def _coerce(hint: Any, raw: Any, key: str) -> Any:
    """Convert one decoded JSON value to the field's declared type.

    Numeric strings are accepted for numeric fields; anything else that does
    not convert is a ValidationError naming the wire key.
    """
    if raw is None:
        return None
    args = typing.get_args(hint)
    if type(None) in args:
        hint = next(a for a in args if a is not type(None))
        args = typing.get_args(hint)
    try:
        if hint is bool:
            if not isinstance(raw, bool):
                raise TypeError("not a boolean")
            return raw
        if hint in (int, float):
            if isinstance(raw, bool):
                raise TypeError("not a number")
            value = float(raw)
            if not math.isfinite(value):
                raise ValueError("not finite")
            if hint is int:
                if not value.is_integer():
                    raise ValueError("not an integer")
                return int(value)
            return value
        if hint is str:
            if not isinstance(raw, str):
                raise TypeError("not a string")
            return raw
        if typing.get_origin(hint) is tuple:
            if not isinstance(raw, (list, tuple)):
                raise TypeError("not a list")
            items = list(raw)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{key}: {exc} ({raw!r})", field=key) from None
    if typing.get_origin(hint) is tuple:
        return tuple(_coerce(args[0], item, key) for item in items)
    return raw


def number_from_wire(raw: Any, key: str, integer: bool = False) -> Any:
    """A finite number (or ``None``) from a request field; ValidationError otherwise."""
    return _coerce(int if integer else float, raw, key)


def _decode_block(cls: type, data: Mapping[str, Any]) -> Any:
    if not isinstance(data, Mapping):
        raise ValidationError(f"{cls.__name__} must be an object")
    hints = _field_types(cls)
    kwargs: dict[str, Any] = {}
    for f in dataclasses.fields(cls):
        key = to_camel(f.name)
        if key not in data:
            continue
        raw = data[key]
        nested = _NESTED.get((cls, f.name))
        if nested is not None:
            kwargs[f.name] = tuple(_decode_block(nested, item) for item in raw)
        else:
            kwargs[f.name] = _coerce(hints[f.name], raw, key)
    return cls(**kwargs)


# ------------------------------------------------------------------ #
#  Prediction results                                                 #
# ------------------------------------------------------------------ #

def result_to_wire(result: PredictionResult) -> dict[str, Any]:
    body: dict[str, Any] = {
        "reactorId": result.reactor_id,
        "fidelity": result.fidelity.name.lower(),
        "requestedFidelity": (result.requested_fidelity or result.fidelity).name.lower(),
    }
    for name in _SCALARS:
        body[to_camel(name)] = _encode(getattr(result, name))
    body["status"] = result.status.value
    body["confidenceInterval"] = _encode(result.confidence_interval)
    body["factors"] = _encode(dict(result.factors))
    body["warnings"] = list(result.warnings)
    for name in _BLOCK_TYPES:
        block = getattr(result, name)
        if block is not None:
            body[to_camel(name)] = _encode(block)
    if result.suggestions is not None:
        body["suggestions"] = _encode(result.suggestions)
    return body


def result_from_wire(data: Mapping[str, Any]) -> PredictionResult:
    try:
        kwargs: dict[str, Any] = {
            "reactor_id": data["reactorId"],
            "fidelity": FidelityLevel.parse(data["fidelity"]),
            "requested_fidelity": FidelityLevel.parse(data.get("requestedFidelity", data["fidelity"])),
            "status": OperationalStatus(data["status"]),
            "confidence_interval": _decode_block(ConfidenceInterval, data["confidenceInterval"]),
            "factors": dict(data.get("factors", {})),
            "warnings": tuple(data.get("warnings", ())),
        }
        for name in _SCALARS:
            kwargs[name] = float(data[to_camel(name)])
        for name, cls in _BLOCK_TYPES.items():
            key = to_camel(name)
            if key in data:
                kwargs[name] = _decode_block(cls, data[key])
        if "suggestions" in data:
            kwargs["suggestions"] = tuple(
                _decode_block(OptimizationSuggestion, s) for s in data["suggestions"]
            )
    except (KeyError, TypeError, ValueError) as exc:
        raise ValidationError(f"Malformed prediction result: {exc}") from exc
    return PredictionResult(**kwargs)


# ------------------------------------------------------------------ #
#  Parameters                                                         #
# ------------------------------------------------------------------ #

def parameters_to_wire(params: OperatingParameters) -> dict[str, float]:
    return {to_camel(k): round(v, PRECISION) for k, v in params.as_dict().items()}


def parameters_from_wire(data: Mapping[str, Any]) -> OperatingParameters:
    if not isinstance(data, Mapping):
        raise ValidationError("Parameters must be an object", field="parameters")
    converted = {parameter_key(k): v for k, v in data.items()}
    return OperatingParameters.from_mapping(converted)


# ------------------------------------------------------------------ #
#  Configurations                                                     #
# ------------------------------------------------------------------ #

def configuration_to_wire(config: ReactorConfiguration) -> dict[str, Any]:
    body: dict[str, Any] = {
        "id": config.id,
        "name": config.name,
        "type": config.reactor_type.value,
        "geometry": _encode(config.geometry),
        "window": _encode(config.window),
        "ranges": {to_camel(name): [rng.min, rng.max] for name, rng in config.ranges},
        "species": list(config.species),
        "maxFidelity": config.max_fidelity.name.lower(),
    }
    for name in ("anode", "cathode", "membrane"):
        value = getattr(config, name)
        if value:
            body[name] = value
    return body


def configuration_from_wire(data: Mapping[str, Any]) -> ReactorConfiguration:
    """Parse an inline configuration; any structural problem is a ValidationError."""
    if not isinstance(data, Mapping):
        raise ValidationError("Inline configuration must be an object", field="inlineConfig")
    try:
        ranges = tuple(
            (parameter_key(name), ParameterRange(float(bounds[0]), float(bounds[1])))
            for name, bounds in data["ranges"].items()
        )
        return ReactorConfiguration(
            id=str(data["id"]),
            name=str(data.get("name", data["id"])),
            reactor_type=ReactorType.parse(data["type"]),
            geometry=_decode_block(Geometry, data.get("geometry", {})),
            window=_decode_block(OperatingWindow, data["window"]),
            ranges=ranges,
            anode=_coerce(str, data.get("anode"), "anode"),
            cathode=_coerce(str, data.get("cathode"), "cathode"),
            membrane=_coerce(str, data.get("membrane"), "membrane"),
            species=_coerce(tuple[str, ...], data.get("species", ()), "species"),
            max_fidelity=FidelityLevel.parse(data.get("maxFidelity", "advanced")),
        )
    except (KeyError, TypeError, ValueError, IndexError) as exc:
        raise ValidationError(f"Malformed inline configuration: {exc}", field="inlineConfig") from exc
