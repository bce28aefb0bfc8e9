"""correlations/transport.py — Dimensionless groups for flow and mass transfer."""

from __future__ import annotations

import math

from ..config import CorrelationConstants
from ..errors import NumericalError

_DEFAULTS = CorrelationConstants()


def _positive(name: str, value: float) -> None:
    if not value > 0:
        raise NumericalError(f"{name} must be positive, got {value}")


def reynolds_number(density: float, velocity: float, length: float, viscosity: float) -> float:
    """Re = ρ u L / μ."""
    _positive("viscosity", viscosity)
    return density * abs(velocity) * length / viscosity


def impeller_reynolds_number(
    density: float, speed_rpm: float, impeller_diameter: float, viscosity: float
) -> float:
    """Stirred-vessel Re = ρ N D² / μ with N in rev/s."""
    _positive("viscosity", viscosity)
    return density * (abs(speed_rpm) / 60.0) * impeller_diameter**2 / viscosity


def schmidt_number(viscosity: float, density: float, diffusivity: float) -> float:
    """Sc = μ / (ρ D)."""
    _positive("density", density)
    _positive("diffusivity", diffusivity)
    return viscosity / (density * diffusivity)


def sherwood_number(
    reynolds: float, schmidt: float, constants: CorrelationConstants = _DEFAULTS
) -> float:
    """Dittus–Boelter analogue when turbulent, Ranz–Marshall otherwise."""
    if reynolds < 0 or schmidt <= 0:
        raise NumericalError(f"Invalid dimensionless groups Re={reynolds}, Sc={schmidt}")
    if reynolds >= constants.laminar_limit:
        return 0.023 * reynolds**0.8 * schmidt**0.33
    return 2.0 + 0.6 * math.sqrt(reynolds) * schmidt ** (1.0 / 3.0)


def mass_transfer_coefficient(sherwood: float, diffusivity: float, length: float) -> float:
    """k_m = Sh · D / L  (m/s)."""
    _positive("characteristic length", length)
    return sherwood * diffusivity / length


def limiting_current_density(
    electrons: int,
    mass_transfer: float,
    bulk_concentration: float,
    constants: CorrelationConstants = _DEFAULTS,
) -> float:
    """i_lim = n F k_m c_b  (A/m²)."""
    return electrons * constants.faraday * mass_transfer * bulk_concentration


def flow_regime(reynolds: float, constants: CorrelationConstants = _DEFAULTS) -> str:
    if reynolds < constants.laminar_limit:
        return "laminar"
    if reynolds < 4000.0:
        return "transitional"
    return "turbulent"
