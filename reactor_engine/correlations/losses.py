"""correlations/losses.py — Overpotential breakdown."""

from __future__ import annotations

import math
from dataclasses import dataclass

from ..config import CorrelationConstants
from ..domain import Overpotentials
from ..errors import NumericalError
from ..properties.tables import ElectrodeMaterial, MembraneMaterial

_DEFAULTS = CorrelationConstants()

# Used when a configured electrode/membrane is missing from the tables.
GENERIC_ELECTRODE = ElectrodeMaterial("generic", 1.0, 0.5, 1.0, 120.0, 1.0, 0.0)
_GENERIC_MEMBRANE_ASR = 1.5e-5  # Ω·m²


@dataclass(frozen=True)
class LossParameters:
    temperature_c: float
    limiting_current_density: float  # A/m²
    electrode_spacing_cm: float
    electrolyte_conductivity: float  # S/m
    electrons: int = 1


@dataclass(frozen=True)
class ElectrodeSet:
    anode: ElectrodeMaterial | None
    cathode: ElectrodeMaterial | None
    membrane: MembraneMaterial | None
    has_membrane: bool


def activation_overpotential(
    current_density: float,
    material: ElectrodeMaterial,
    temperature_k: float,
    constants: CorrelationConstants = _DEFAULTS,
) -> float:
    """Inverse Butler–Volmer (symmetric form): η = RT/(αF) · asinh(i / 2 i0)."""
    i0 = material.exchange_current_density * material.roughness
    if i0 <= 0 or material.transfer_coefficient <= 0:
        raise NumericalError(f"Invalid kinetic constants for {material.name!r}")
    b = constants.gas_constant * temperature_k / (material.transfer_coefficient * constants.faraday)
    return b * math.asinh(current_density / (2.0 * i0))


def concentration_overpotential(
    current_density: float,
    limiting_current_density: float,
    electrons: int,
    temperature_k: float,
    constants: CorrelationConstants = _DEFAULTS,
) -> float:
    """η = −(RT/nF) · ln(1 − i/i_lim), with i/i_lim capped below 1."""
    if limiting_current_density <= 0:
        raise NumericalError("Limiting current density must be positive")
    ratio = min(max(current_density / limiting_current_density, 0.0), constants.concentration_ratio_cap)
    return -(constants.gas_constant * temperature_k / (electrons * constants.faraday)) * math.log(1.0 - ratio)


def overpotentials(
    current_density: float,
    params: LossParameters,
    materials: ElectrodeSet,
    constants: CorrelationConstants = _DEFAULTS,
) -> Overpotentials:
    """Activation, concentration, ohmic and (when configured) membrane losses in volts."""
    temperature_k = params.temperature_c + 273.15
    if temperature_k <= 0:
        raise NumericalError("Absolute temperature must be positive")
    if params.electrolyte_conductivity <= 0:
        raise NumericalError("Electrolyte conductivity must be positive")

    activation = sum(
        activation_overpotential(current_density, m or GENERIC_ELECTRODE, temperature_k, constants)
        for m in (materials.anode, materials.cathode)
    )
    concentration = concentration_overpotential(
        current_density, params.limiting_current_density, params.electrons, temperature_k, constants
    )
    ohmic = current_density * (params.electrode_spacing_cm / 100.0) / params.electrolyte_conductivity

    membrane = None
    if materials.has_membrane:
        if materials.membrane is not None:
            asr = materials.membrane.area_specific_resistance / materials.membrane.conductivity
        else:
            asr = _GENERIC_MEMBRANE_ASR
        membrane = current_density * asr

    return Overpotentials(
        activation=activation,
        concentration=concentration,
        ohmic=ohmic,
        membrane=membrane,
    )
