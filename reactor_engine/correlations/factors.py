"""correlations/factors.py — Dimensionless performance factors.

All functions are pure; a factor of 0 means "no effect".  Penalties are
non-positive and bounded by the floors in :class:`CorrelationConstants`.
"""

from __future__ import annotations

from typing import Sequence

from ..config import CorrelationConstants
from ..properties.tables import MicrobialSpecies, PropertyTables

_DEFAULTS = CorrelationConstants()


def temperature_factor(
    temperature: float,
    optimal: float,
    max_temperature: float,
    constants: CorrelationConstants = _DEFAULTS,
) -> float:
    """Linear penalty for deviation from *optimal*, bounded at the floor.

    Above *max_temperature* the fixed overheat penalty applies instead of
    the interpolated value.  Range: [overheat_penalty, 0].
    """
    if temperature > max_temperature:
        return constants.overheat_penalty
    if temperature == optimal:
        return 0.0
    deviation = abs(temperature - optimal) / max(abs(optimal), 1.0)
    return max(constants.temperature_penalty_floor, -deviation * constants.temperature_penalty_slope)


def ph_factor(
    ph: float | None,
    optimal: float | None,
    constants: CorrelationConstants = _DEFAULTS,
) -> float:
    """Symmetric pH penalty; 0 for pH-insensitive systems (``optimal is None``)."""
    if optimal is None or ph is None or ph == optimal:
        return 0.0
    return max(constants.ph_penalty_floor, -abs(ph - optimal) * constants.ph_penalty_slope)


def humidity_factor(
    humidity: float | None,
    optimal: float | None,
    constants: CorrelationConstants = _DEFAULTS,
) -> float:
    if not optimal or humidity is None or humidity == optimal:
        return 0.0
    deviation = abs(humidity - optimal) / 100.0
    return max(constants.humidity_penalty_floor, -deviation * constants.humidity_penalty_slope)


def pressure_factor(pressure: float | None, bonus: float) -> float:
    """Voltage gain per cell from pressurisation above 1 bar."""
    if pressure is None:
        return 0.0
    return max(0.0, (pressure - 1.0) * bonus)


def mixing_factor(
    mixing_speed: float | None,
    optimal: float | None,
    constants: CorrelationConstants = _DEFAULTS,
) -> float:
    if not optimal or mixing_speed is None:
        return 0.0
    deviation = abs(mixing_speed - optimal) / optimal
    return max(constants.mixing_penalty_floor, -deviation * abs(constants.mixing_penalty_floor))


def material_factor(
    tables: PropertyTables,
    anode: str | None = None,
    cathode: str | None = None,
    membrane: str | None = None,
    constants: CorrelationConstants = _DEFAULTS,
) -> float:
    """Catalyst activity and membrane conductivity relative to Pt/C + Nafion.

    Unknown or missing names contribute 0.
    """
    factor = 0.0
    for name in (anode, cathode):
        material = tables.electrode(name)
        if material is not None:
            factor += (material.activity - 1.0) * constants.catalyst_weight
    mem = tables.membrane(membrane)
    if mem is not None:
        factor += (mem.conductivity - 1.0) * constants.membrane_weight
    return factor


def substrate_factor(
    concentration: float | None,
    constants: CorrelationConstants = _DEFAULTS,
) -> float:
    """Monod saturation S / (Ks + S); 1 when no substrate is modelled."""
    if concentration is None:
        return 1.0
    if concentration <= 0:
        return 0.0
    return concentration / (constants.substrate_half_saturation + concentration)


def species_activity_factor(
    species: Sequence[MicrobialSpecies],
    temperature: float,
    ph: float | None,
    max_temperature: float,
    constants: CorrelationConstants = _DEFAULTS,
) -> float:
    """Mean electron-transfer activity of the culture relative to Geobacter.

    Each organism is derated by its own temperature and pH penalties.
    Returns 1 for abiotic systems.
    """
    if not species:
        return 1.0
    total = 0.0
    for organism in species:
        rate = organism.electron_transfer_rate / constants.reference_transfer_rate
        tf = temperature_factor(temperature, organism.optimal_temperature, max_temperature, constants)
        pf = ph_factor(ph, organism.optimal_ph, constants)
        total += rate * (1.0 + tf) * (1.0 + pf)
    return total / len(species)


def electrolyte_conductivity(
    base: float,
    temperature: float,
    ph: float | None,
    constants: CorrelationConstants = _DEFAULTS,
) -> float:
    """Bulk conductivity (S/m) corrected for ionic strength and temperature."""
    sigma = base
    if ph is not None:
        sigma *= 1.0 + constants.conductivity_ph_coefficient * abs(ph - 7.0)
    sigma *= max(0.1, 1.0 + constants.conductivity_temperature_coefficient * (temperature - 25.0))
    return sigma


def flow_factor(
    flow_rate: float | None,
    reference_flow: float,
    air_flow_rate: float | None = None,
    reference_air_flow: float | None = None,
) -> float:
    """Supply-limited load fraction in [0, 1]; the scarcer stream governs."""
    factor = 1.0
    if flow_rate is not None and reference_flow > 0:
        factor = min(factor, flow_rate / reference_flow)
    if air_flow_rate is not None and reference_air_flow:
        factor = min(factor, air_flow_rate / reference_air_flow)
    return max(0.0, factor)
