"""models/intermediate.py — Basic model plus thermal and gas-composition detail."""

from __future__ import annotations

import math

import numpy as np

from ..domain import FidelityLevel, GasComposition, HotSpot, PredictionResult, ThermalProfile
from .basic import BasicPrediction, compute_basic
from .outcome import ModelContext, ModelOutcome, guarded


def thermal_profile(ctx: ModelContext, basic: BasicPrediction) -> ThermalProfile:
    """Deterministic per-unit temperatures along the stack / electrode train.

    The inlet runs cool by ``inlet_drop_C``; the centre runs hot by
    ``hot_spot_rise_C`` scaled with load.
    """
    h, window = ctx.settings.heuristics, ctx.config.window
    n = ctx.config.geometry.cell_count
    load = min(basic.current_density / ctx.profile.max_current_density, 1.5)
    position = (np.arange(n) + 0.5) / n
    temps = (
        ctx.temperature
        + h.hot_spot_rise_C * load * np.sin(np.pi * position)
        - h.inlet_drop_C * (1.0 - position)
    )
    hottest = int(np.argmax(temps))
    peak = float(temps[hottest])
    if peak > window.max_temperature:
        severity = "high"
    elif peak > window.optimal_temperature + window.temperature_tolerance:
        severity = "moderate"
    else:
        severity = "low"
    label = "cell" if ctx.config.reactor_type.is_fuel_cell else "electrode pair"
    return ThermalProfile(
        unit_temperatures=tuple(float(t) for t in temps),
        average=float(temps.mean()),
        maximum=peak,
        minimum=float(temps.min()),
        hot_spots=(HotSpot(f"{label} {hottest + 1}", peak, severity),),
        cooling_requirement_w=h.waste_heat_fraction * basic.power,
    )


def gas_composition(ctx: ModelContext, basic: BasicPrediction) -> GasComposition:
    """Stream fractions (%) and Faraday water production (mol/s, whole stack)."""
    h, c = ctx.settings.heuristics, ctx.settings.correlations
    profile, params = ctx.profile, ctx.params
    temperature = ctx.temperature

    fuel_inlet = float(np.clip(profile.fuel_inlet_fraction, 0.0, 100.0))
    fuel_used = float(np.clip(basic.fuel_utilization * fuel_inlet / 100.0, 0.0, fuel_inlet))
    oxidant_inlet = float(np.clip(profile.oxidant_inlet_fraction, 0.0, 100.0))
    oxidant_used = float(
        np.clip(basic.fuel_utilization * h.oxidant_utilization_ratio * oxidant_inlet / 100.0, 0.0, oxidant_inlet)
    )
    nitrogen = float(np.clip(max(temperature, 0.0) * h.nitrogen_per_degree, 0.0, h.max_nitrogen_crossover))

    if params.humidity is not None:
        vapor = float(np.clip(params.humidity + h.vapor_humidity_offset, 0.0, 100.0))
    elif not ctx.config.reactor_type.is_fuel_cell:
        vapor = 100.0
    else:
        vapor = float(np.clip(basic.fuel_utilization * h.oxidant_utilization_ratio, 0.0, 100.0))

    water = basic.current * ctx.config.geometry.cell_count / (c.water_electrons * c.faraday)
    return GasComposition(
        fuel=profile.fuel,
        oxidant=profile.oxidant,
        fuel_inlet=fuel_inlet,
        fuel_outlet=fuel_inlet - fuel_used,
        fuel_utilization=fuel_used,
        oxidant_inlet=oxidant_inlet,
        oxidant_outlet=oxidant_inlet - oxidant_used,
        oxidant_utilization=oxidant_used,
        nitrogen=nitrogen,
        water_vapor=vapor,
        water_production_mol_s=water,
        purge_required=ctx.config.reactor_type.is_fuel_cell and temperature > h.purge_temperature_C,
    )


def intermediate_blocks(
    ctx: ModelContext, basic: BasicPrediction
) -> tuple[ThermalProfile, GasComposition, tuple[str, ...]]:
    thermal = thermal_profile(ctx, basic)
    gas = gas_composition(ctx, basic)
    if not (math.isfinite(thermal.maximum) and math.isfinite(gas.water_production_mol_s)):
        raise ArithmeticError("non-finite thermal or gas balance")
    warnings: list[str] = []
    for spot in thermal.hot_spots:
        if spot.severity == "high":
            warnings.append(f"hot spot at {spot.location} reaches {spot.temperature:.1f} °C")
    if gas.purge_required:
        warnings.append("anode purge required to remove accumulated inerts")
    return thermal, gas, tuple(warnings)


def build_intermediate(ctx: ModelContext) -> PredictionResult:
    basic = compute_basic(ctx)
    thermal, gas, warnings = intermediate_blocks(ctx, basic)
    return basic.to_result(
        ctx.config.id,
        FidelityLevel.INTERMEDIATE,
        extra_warnings=warnings,
        thermal_profile=thermal,
        gas_composition=gas,
    )


def predict_intermediate(ctx: ModelContext) -> ModelOutcome:
    return guarded(FidelityLevel.INTERMEDIATE, build_intermediate, ctx)
