"""correlations/kinetics.py — Electrode kinetics and electroanalytical responses."""

from __future__ import annotations

import math

import numpy as np
from numpy.typing import NDArray

from ..config import CorrelationConstants
from ..errors import NumericalError, ValidationError

_DEFAULTS = CorrelationConstants()


def butler_volmer_current(
    voltage: float,
    equilibrium_voltage: float,
    exchange_current_density: float,
    alpha: float,
    temperature_k: float,
    constants: CorrelationConstants = _DEFAULTS,
) -> float:
    """Butler–Volmer current density for a one-electron step.

    i = i0 · [exp(α F η / R T) − exp(−(1 − α) F η / R T)],  η = V − V0

    Exponent arguments are clipped to ±``exponent_limit`` so overpotentials
    of a few volts stay finite; a result that still overflows raises
    :class:`NumericalError` instead of returning ``inf``.
    """
    if temperature_k <= 0:
        raise NumericalError(f"Absolute temperature must be positive, got {temperature_k}")
    eta = voltage - equilibrium_voltage
    f = constants.faraday / (constants.gas_constant * temperature_k)
    limit = constants.exponent_limit
    anodic = math.exp(min(max(alpha * f * eta, -limit), limit))
    cathodic = math.exp(min(max(-(1.0 - alpha) * f * eta, -limit), limit))
    current = exchange_current_density * (anodic - cathodic)
    if not math.isfinite(current):
        raise NumericalError(f"Butler-Volmer current overflowed at eta={eta:.3f} V")
    return current


def tafel_overpotential(current_density: float, exchange_current_density: float, slope_mv: float) -> float:
    """High-field Tafel approximation η = b · log10(i / i0); 0 below i0."""
    if exchange_current_density <= 0:
        raise NumericalError("Exchange current density must be positive")
    if current_density <= exchange_current_density:
        return 0.0
    return slope_mv / 1000.0 * math.log10(current_density / exchange_current_density)


def cottrell_current(
    time_s: float,
    diffusivity: float,
    concentration: float,
    area: float,
    electrons: int = 1,
    constants: CorrelationConstants = _DEFAULTS,
) -> float:
    """Diffusion-limited current after a potential step.

    i(t) = n F A c √(D / (π t)).  Times below ``cottrell_min_time_s``
    (including t = 0) are evaluated at that floor, so the boundary is finite.
    """
    if time_s < 0:
        raise ValidationError("Time must be non-negative", field="time", valid_range=(0.0, math.inf))
    if diffusivity <= 0:
        raise ValidationError("Diffusivity must be positive", field="diffusivity")
    t = max(time_s, constants.cottrell_min_time_s)
    return electrons * constants.faraday * area * concentration * math.sqrt(diffusivity / (math.pi * t))


def randles_impedance(
    frequency_hz: float,
    solution_resistance: float,
    charge_transfer_resistance: float,
    double_layer_capacitance: float,
    warburg_coefficient: float,
) -> tuple[float, float, float, float]:
    """Randles equivalent circuit with a semi-infinite Warburg element.

    Returns
    -------
    (real, imaginary, magnitude, phase_deg) where the phase is
    ``atan2(imag, real)`` in degrees.
    """
    if frequency_hz <= 0:
        raise ValidationError("Frequency must be positive", field="frequency")
    omega = 2.0 * math.pi * frequency_hz
    z_w = warburg_coefficient / math.sqrt(omega) * (1.0 - 1.0j)
    z_f = charge_transfer_resistance + z_w
    z = solution_resistance + z_f / (1.0 + 1.0j * omega * double_layer_capacitance * z_f)
    return z.real, z.imag, abs(z), math.degrees(math.atan2(z.imag, z.real))


def impedance_spectrum(
    frequencies_hz: NDArray[np.float64],
    solution_resistance: float,
    charge_transfer_resistance: float,
    double_layer_capacitance: float,
    warburg_coefficient: float,
) -> NDArray[np.float64]:
    """Vectorised :func:`randles_impedance`; rows are (f, real, imag, |Z|, phase)."""
    f = np.asarray(frequencies_hz, dtype=np.float64)
    if np.any(f <= 0):
        raise ValidationError("Frequencies must be positive", field="frequency")
    omega = 2.0 * np.pi * f
    z_w = warburg_coefficient / np.sqrt(omega) * (1.0 - 1.0j)
    z_f = charge_transfer_resistance + z_w
    z = solution_resistance + z_f / (1.0 + 1.0j * omega * double_layer_capacitance * z_f)
    return np.column_stack([f, z.real, z.imag, np.abs(z), np.degrees(np.arctan2(z.imag, z.real))])


def chronoamperogram(
    times_s: NDArray[np.float64],
    diffusivity: float,
    concentration: float,
    area: float,
    electrons: int = 1,
    constants: CorrelationConstants = _DEFAULTS,
) -> NDArray[np.float64]:
    """Cottrell decay sampled at *times_s*."""
    t = np.asarray(times_s, dtype=np.float64)
    if np.any(t < 0):
        raise ValidationError("Times must be non-negative", field="time")
    if diffusivity <= 0:
        raise ValidationError("Diffusivity must be positive", field="diffusivity")
    t = np.maximum(t, constants.cottrell_min_time_s)
    return electrons * constants.faraday * area * concentration * np.sqrt(diffusivity / (np.pi * t))
