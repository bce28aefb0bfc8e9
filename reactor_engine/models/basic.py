"""models/basic.py — Closed-form lumped performance model.

Stack voltage is the reactor type's base cell voltage plus additive factor
corrections, multiplied by the cell count.  Current density scales the
type's maximum by supply, substrate, culture, mixing and bias factors.
No iteration; every quantity is O(1).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np

from ..correlations.factors import (
    flow_factor,
    humidity_factor,
    material_factor,
    mixing_factor,
    ph_factor,
    pressure_factor,
    species_activity_factor,
    substrate_factor,
    temperature_factor,
)
from ..domain import ConfidenceInterval, FidelityLevel, OperationalStatus, PredictionResult
from .outcome import ModelContext, ModelOutcome, guarded


@dataclass(frozen=True)
class BasicPrediction:
    """Basic-tier quantities shared verbatim by every higher tier."""

    voltage: float
    cell_voltage: float
    current: float
    power: float
    power_density: float
    current_density: float
    efficiency: float
    fuel_utilization: float
    status: OperationalStatus
    confidence_interval: ConfidenceInterval
    factors: dict[str, float]
    warnings: tuple[str, ...]

    def to_result(
        self,
        reactor_id: str,
        fidelity: FidelityLevel,
        extra_warnings: tuple[str, ...] = (),
        **blocks: Any,
    ) -> PredictionResult:
        return PredictionResult(
            reactor_id=reactor_id,
            fidelity=fidelity,
            voltage=self.voltage,
            current=self.current,
            power=self.power,
            power_density=self.power_density,
            current_density=self.current_density,
            efficiency=self.efficiency,
            fuel_utilization=self.fuel_utilization,
            status=self.status,
            confidence_interval=self.confidence_interval,
            factors=dict(self.factors),
            warnings=self.warnings + tuple(extra_warnings),
            **blocks,
        )


def classify_status(ctx: ModelContext) -> OperationalStatus:
    """Threshold rules over temperature, pH and humidity deviations.

    optimal  — every check within its tolerance
    good     — every check within ``status_band`` × tolerance
    warning  — at least one check within the band
    critical — none within the band, or temperature above the rated maximum
    """
    window, params, h = ctx.config.window, ctx.params, ctx.settings.heuristics
    temperature = ctx.temperature
    if temperature > window.max_temperature:
        return OperationalStatus.CRITICAL

    checks = [abs(temperature - window.optimal_temperature) / max(window.temperature_tolerance, 1e-9)]
    if window.optimal_ph is not None and params.ph is not None:
        checks.append(abs(params.ph - window.optimal_ph) / max(window.ph_tolerance, 1e-9))
    if window.optimal_humidity and params.humidity is not None:
        checks.append(abs(params.humidity - window.optimal_humidity) / max(h.humidity_tolerance, 1e-9))

    if all(c <= 1.0 for c in checks):
        return OperationalStatus.OPTIMAL
    within = [c <= h.status_band for c in checks]
    if all(within):
        return OperationalStatus.GOOD
    if any(within):
        return OperationalStatus.WARNING
    return OperationalStatus.CRITICAL


def collect_warnings(ctx: ModelContext, stack_voltage: float, current_density: float) -> tuple[str, ...]:
    config, params, h = ctx.config, ctx.params, ctx.settings.heuristics
    warnings: list[str] = []
    for name in config.parameter_names:
        value = params.get(name)
        rng = config.range_for(name)
        if value is None or rng.span <= 0:
            continue
        margin = h.warning_margin * rng.span
        if value >= rng.max - margin:
            warnings.append(f"{name} near upper limit ({value:g} of {rng.max:g})")
        elif value <= rng.min + margin:
            warnings.append(f"{name} near lower limit ({value:g} of {rng.min:g})")
    if ctx.temperature > config.window.max_temperature:
        warnings.append(
            f"temperature {ctx.temperature:g} exceeds rated maximum {config.window.max_temperature:g}"
        )
    if stack_voltage <= 0.0:
        warnings.append("stack voltage collapsed to zero")
    if current_density <= 0.0:
        warnings.append("no current drawn at this operating point")
    return tuple(warnings)


def compute_basic(ctx: ModelContext) -> BasicPrediction:
    config, params, window = ctx.config, ctx.params, ctx.config.window
    c, h = ctx.settings.correlations, ctx.settings.heuristics
    profile = ctx.profile
    geometry = config.geometry
    temperature = ctx.temperature

    tf = temperature_factor(temperature, window.optimal_temperature, window.max_temperature, c)
    pf = pressure_factor(params.pressure, profile.pressure_bonus)
    hf = humidity_factor(params.humidity, window.optimal_humidity, c)
    phf = ph_factor(params.ph, window.optimal_ph, c)
    mf = material_factor(ctx.tables, config.anode, config.cathode, config.membrane, c)

    cell_voltage = profile.base_voltage + tf + pf + hf + phf + mf
    stack_voltage = max(0.0, cell_voltage * geometry.cell_count)

    ff = flow_factor(params.flow_rate, window.reference_flow, params.air_flow_rate, window.reference_air_flow)
    sf = substrate_factor(params.substrate_concentration, c)
    af = species_activity_factor(ctx.organisms(), temperature, params.ph, window.max_temperature, c)
    xf = mixing_factor(params.mixing_speed, window.optimal_mixing, c)
    # Reverse bias beyond the drive stalls the cell rather than reversing it.
    bias = max(0.0, 1.0 + c.bias_gain * (params.electrode_voltage or 0.0) / 1000.0)

    current_density = max(0.0, profile.max_current_density * ff * sf * af * (1.0 + xf) * bias)
    current = current_density * geometry.active_area_m2
    power = stack_voltage * current
    power_density = power / (geometry.active_area_m2 * geometry.cell_count)

    efficiency = float(np.clip(profile.base_efficiency * (1.0 + tf) * (1.0 + mf) * 100.0, 0.0, 100.0))

    supply = 1.0
    if params.flow_rate is not None and window.reference_flow > 0:
        supply = params.flow_rate / window.reference_flow
    load = current_density / profile.max_current_density
    fuel_utilization = float(np.clip(100.0 * load / max(supply, 1e-9), 0.0, h.max_fuel_utilization))

    band = h.confidence_band
    return BasicPrediction(
        voltage=stack_voltage,
        cell_voltage=cell_voltage,
        current=current,
        power=power,
        power_density=power_density,
        current_density=current_density,
        efficiency=efficiency,
        fuel_utilization=fuel_utilization,
        status=classify_status(ctx),
        confidence_interval=ConfidenceInterval(power * (1.0 - band), power * (1.0 + band)),
        factors={
            "temperature": tf,
            "pressure": pf,
            "humidity": hf,
            "ph": phf,
            "material": mf,
            "flow": ff,
            "substrate": sf,
            "species": af,
            "mixing": xf,
            "bias": bias,
        },
        warnings=collect_warnings(ctx, stack_voltage, current_density),
    )


def build_basic(ctx: ModelContext) -> PredictionResult:
    return compute_basic(ctx).to_result(ctx.config.id, FidelityLevel.BASIC)


def predict_basic(ctx: ModelContext) -> ModelOutcome:
    return guarded(FidelityLevel.BASIC, build_basic, ctx)
