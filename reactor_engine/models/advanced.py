"""models/advanced.py — Intermediate model plus loss breakdown, transport and control.

Adds electrode kinetics, an overpotential breakdown, fluid-dynamics metrics,
controller setpoints and rule-based optimisation suggestions.  The Basic
quantities are never modified here; the extra blocks are diagnostic.
"""

from __future__ import annotations

import math

from ..correlations.factors import electrolyte_conductivity
from ..correlations.kinetics import butler_volmer_current, tafel_overpotential
from ..correlations.losses import (
    GENERIC_ELECTRODE,
    ElectrodeSet,
    LossParameters,
    activation_overpotential,
    overpotentials,
)
from ..correlations.transport import (
    flow_regime,
    impeller_reynolds_number,
    limiting_current_density,
    mass_transfer_coefficient,
    reynolds_number,
    schmidt_number,
    sherwood_number,
)
from ..domain import (
    ControllerSetpoints,
    ElectrodeKinetics,
    FidelityLevel,
    FluidDynamics,
    GasComposition,
    OptimizationSuggestion,
    PredictionResult,
)
from ..errors import ValidationError
from .basic import BasicPrediction, compute_basic
from .intermediate import intermediate_blocks
from .outcome import ModelContext, ModelOutcome, guarded

def _characteristic_length(ctx: ModelContext) -> float:
    g = ctx.config.geometry
    return g.diameter_m or (g.volume_l / 1000.0) ** (1.0 / 3.0)


def fluid_dynamics(ctx: ModelContext) -> FluidDynamics:
    profile, params, h = ctx.profile, ctx.params, ctx.settings.heuristics
    c = ctx.settings.correlations
    length = _characteristic_length(ctx)
    if params.mixing_speed:
        re = impeller_reynolds_number(
            profile.fluid_density, params.mixing_speed, h.impeller_diameter_ratio * length, profile.fluid_viscosity
        )
    else:
        flow_m3_s = (params.flow_rate or 0.0) / 1000.0 / 3600.0
        velocity = flow_m3_s / (math.pi * length**2 / 4.0)
        re = reynolds_number(profile.fluid_density, velocity, length, profile.fluid_viscosity)
    sc = schmidt_number(profile.fluid_viscosity, profile.fluid_density, profile.diffusivity)
    sh = sherwood_number(re, sc, c)
    km = mass_transfer_coefficient(sh, profile.diffusivity, length)
    dead_zone = max(h.min_dead_zone, h.base_dead_zone / (1.0 + re / h.dead_zone_reynolds_scale))
    return FluidDynamics(
        reynolds=re,
        schmidt=sc,
        sherwood=sh,
        mass_transfer_coefficient=km,
        flow_regime=flow_regime(re, c),
        mixing_efficiency=1.0 - dead_zone,
        dead_zone_fraction=dead_zone,
    )


def _bulk_concentration(ctx: ModelContext) -> float:
    """Reactant concentration in mol/m³."""
    substrate = ctx.params.substrate_concentration
    if substrate is not None:
        return substrate * 1000.0 / ctx.settings.correlations.substrate_molar_mass_g
    return ctx.profile.bulk_concentration


def electrode_kinetics(
    ctx: ModelContext, basic: BasicPrediction, fluid: FluidDynamics
) -> ElectrodeKinetics:
    c, h, profile = ctx.settings.correlations, ctx.settings.heuristics, ctx.profile
    anode = ctx.tables.electrode(ctx.config.anode) or GENERIC_ELECTRODE
    temperature_k = ctx.temperature + 273.15
    i0 = anode.exchange_current_density * anode.roughness
    eta = activation_overpotential(basic.current_density, anode, temperature_k, c)
    bv = butler_volmer_current(eta, 0.0, i0, anode.transfer_coefficient, temperature_k, c)
    transport_limit = limiting_current_density(
        profile.electrons_per_fuel,
        fluid.mass_transfer_coefficient * anode.roughness,
        _bulk_concentration(ctx),
        c,
    )
    return ElectrodeKinetics(
        exchange_current_density=i0,
        transfer_coefficient=anode.transfer_coefficient,
        tafel_slope_mv=anode.tafel_slope_mv,
        tafel_overpotential=tafel_overpotential(basic.current_density, i0, anode.tafel_slope_mv),
        butler_volmer_current_density=bv,
        limiting_current_density=max(transport_limit, h.limiting_current_margin * profile.max_current_density),
    )


def controller_setpoints(ctx: ModelContext, gas: GasComposition) -> ControllerSetpoints:
    h = ctx.settings.heuristics
    return ControllerSetpoints(
        temperature_setpoint=ctx.config.window.optimal_temperature,
        pid_kp=h.pid_kp,
        pid_ki=h.pid_ki,
        pid_kd=h.pid_kd,
        pressure_ratio=h.pressure_ratio if ctx.params.pressure is not None else 1.0,
        humidification_rate_g_s=gas.water_production_mol_s * h.water_molar_mass_g,
        purge_threshold=h.purge_threshold,
        purge_interval_s=h.purge_interval_s,
        purge_duration_s=h.purge_duration_s,
    )


def _suggestion(
    ctx: ModelContext,
    parameter: str,
    target: float,
    improvement: float,
    confidence: float,
    rationale: str,
) -> OptimizationSuggestion:
    current = ctx.params.get(parameter)
    if current is None:
        raise ValidationError(f"No value for {parameter!r} to suggest from", field=parameter)
    return OptimizationSuggestion(
        parameter=parameter,
        current_value=current,
        suggested_value=ctx.config.range_for(parameter).clip(target),
        expected_improvement=max(0.0, improvement),
        confidence=min(max(confidence, 0.0), 1.0),
        rationale=rationale,
    )


def suggestions(ctx: ModelContext) -> tuple[OptimizationSuggestion, ...]:
    """Rule-based nudges toward the design window, clipped to declared ranges."""
    params, window, h = ctx.params, ctx.config.window, ctx.settings.heuristics
    c = ctx.settings.correlations
    declared = set(ctx.config.parameter_names)
    out: list[OptimizationSuggestion] = []

    if "temperature" in declared and params.temperature is not None:
        delta = window.optimal_temperature - params.temperature
        if abs(delta) > h.temperature_suggestion_band_C:
            direction = "Increase" if delta > 0 else "Decrease"
            out.append(_suggestion(
                ctx, "temperature", window.optimal_temperature,
                abs(delta) * h.temperature_improvement_per_C,
                h.temperature_suggestion_confidence,
                f"{direction} temperature toward the {window.optimal_temperature:g} °C optimum",
            ))

    if "pressure" in declared and params.pressure is not None:
        if params.pressure < h.pressure_suggestion_below_bar:
            out.append(_suggestion(
                ctx, "pressure", h.pressure_suggestion_target_bar,
                h.pressure_suggestion_improvement,
                h.pressure_suggestion_confidence,
                "Higher pressure improves reactant partial pressure and cell voltage",
            ))

    if "ph" in declared and params.ph is not None and window.optimal_ph is not None:
        delta = window.optimal_ph - params.ph
        if abs(delta) > h.ph_suggestion_band:
            out.append(_suggestion(
                ctx, "ph", window.optimal_ph,
                abs(delta) * c.ph_penalty_slope * 100.0,
                h.ph_suggestion_confidence,
                f"Buffer toward pH {window.optimal_ph:g} to restore biofilm activity",
            ))

    if "humidity" in declared and params.humidity is not None and window.optimal_humidity:
        delta = window.optimal_humidity - params.humidity
        if abs(delta) > h.humidity_tolerance:
            out.append(_suggestion(
                ctx, "humidity", window.optimal_humidity,
                abs(delta) * c.humidity_penalty_slope,
                h.humidity_suggestion_confidence,
                "Adjust humidification to keep the membrane hydrated without flooding",
            ))

    if "flow_rate" in declared and params.flow_rate is not None:
        if params.flow_rate < window.reference_flow:
            shortfall = 1.0 - params.flow_rate / window.reference_flow
            out.append(_suggestion(
                ctx, "flow_rate", window.reference_flow,
                shortfall * h.flow_improvement_per_shortfall,
                h.flow_suggestion_confidence,
                "Reactant supply is limiting current; raise the feed rate",
            ))
    return tuple(out)


def build_advanced(ctx: ModelContext) -> PredictionResult:
    basic = compute_basic(ctx)
    thermal, gas, warnings = intermediate_blocks(ctx, basic)
    c = ctx.settings.correlations
    config, profile = ctx.config, ctx.profile

    fluid = fluid_dynamics(ctx)
    kinetics = electrode_kinetics(ctx, basic, fluid)
    materials = ElectrodeSet(
        anode=ctx.tables.electrode(config.anode),
        cathode=ctx.tables.electrode(config.cathode),
        membrane=ctx.tables.membrane(config.membrane),
        has_membrane=config.has_membrane,
    )
    losses = overpotentials(
        basic.current_density,
        LossParameters(
            temperature_c=ctx.temperature,
            limiting_current_density=kinetics.limiting_current_density,
            electrode_spacing_cm=config.geometry.electrode_spacing_cm,
            electrolyte_conductivity=electrolyte_conductivity(
                profile.electrolyte_conductivity, ctx.temperature, ctx.params.ph, c
            ),
            electrons=profile.electrons_per_fuel,
        ),
        materials,
        c,
    )
    if not math.isfinite(losses.total):
        raise ArithmeticError("non-finite overpotential breakdown")

    h = ctx.settings.heuristics
    extra = list(warnings)
    if basic.current_density > h.limiting_current_warning_fraction * kinetics.limiting_current_density:
        extra.append("operating near the mass-transfer limiting current")

    return basic.to_result(
        config.id,
        FidelityLevel.ADVANCED,
        extra_warnings=tuple(extra),
        thermal_profile=thermal,
        gas_composition=gas,
        overpotentials=losses,
        electrode_kinetics=kinetics,
        fluid_dynamics=fluid,
        controller_setpoints=controller_setpoints(ctx, gas),
        suggestions=suggestions(ctx),
    )


def predict_advanced(ctx: ModelContext) -> ModelOutcome:
    return guarded(FidelityLevel.ADVANCED, build_advanced, ctx)
