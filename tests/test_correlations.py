from __future__ import annotations

import math

import numpy as np
import pytest

from reactor_engine.config import CorrelationConstants
from reactor_engine.correlations.factors import (
    flow_factor,
    material_factor,
    ph_factor,
    pressure_factor,
    substrate_factor,
    temperature_factor,
)
from reactor_engine.correlations.kinetics import (
    butler_volmer_current,
    chronoamperogram,
    cottrell_current,
    impedance_spectrum,
    randles_impedance,
)
from reactor_engine.correlations.losses import ElectrodeSet, LossParameters, overpotentials
from reactor_engine.correlations.transport import (
    flow_regime,
    reynolds_number,
    schmidt_number,
    sherwood_number,
)
from reactor_engine.errors import NumericalError, ValidationError

C = CorrelationConstants()


@pytest.mark.parametrize("temperature", [20.0, 35.0, 50.0, 69.0, 71.0, 85.0, 90.0])
def test_temperature_factor_never_positive(temperature: float) -> None:
    assert temperature_factor(temperature, 70.0, 90.0) <= 0.0


def test_temperature_factor_zero_at_optimum() -> None:
    assert temperature_factor(70.0, 70.0, 90.0) == 0.0


def test_temperature_factor_floor_below_max() -> None:
    assert temperature_factor(-200.0, 70.0, 90.0) == C.temperature_penalty_floor


def test_overheat_returns_exact_penalty() -> None:
    assert temperature_factor(100.0, 70.0, 90.0) == C.overheat_penalty
    assert temperature_factor(90.0001, 70.0, 90.0) == C.overheat_penalty


@pytest.mark.parametrize("ph", [5.0, 6.5, 7.2, 8.0, 9.5])
def test_ph_factor_never_positive(ph: float) -> None:
    assert ph_factor(ph, 7.2) <= 0.0


def test_ph_factor_insensitive_system() -> None:
    assert ph_factor(3.0, None) == 0.0
    assert ph_factor(7.2, 7.2) == 0.0


def test_ph_factor_is_symmetric() -> None:
    assert ph_factor(6.2, 7.2) == pytest.approx(ph_factor(8.2, 7.2))


def test_material_factor_unknown_names_contribute_nothing(tables) -> None:
    assert material_factor(tables, "Unobtainium", "Mithril", "Adamantium") == 0.0
    assert material_factor(tables, None, None, None) == 0.0
    assert material_factor(tables, "Pt/C", "Pt/C", "Nafion") == pytest.approx(0.0)


def test_pressure_and_flow_factors() -> None:
    assert pressure_factor(None, 0.02) == 0.0
    assert pressure_factor(2.0, 0.02) == pytest.approx(0.02)
    assert flow_factor(2.5, 5.0) == pytest.approx(0.5)
    assert flow_factor(10.0, 5.0, 5.0, 20.0) == pytest.approx(0.25)
    assert 0.0 <= flow_factor(100.0, 5.0) <= 1.0


def test_substrate_factor_monod() -> None:
    assert substrate_factor(None) == 1.0
    assert substrate_factor(C.substrate_half_saturation) == pytest.approx(0.5)


def test_butler_volmer_sign_and_zero() -> None:
    assert butler_volmer_current(0.5, 0.5, 1.0, 0.5, 298.15) == pytest.approx(0.0)
    assert butler_volmer_current(0.6, 0.5, 1.0, 0.5, 298.15) > 0.0
    assert butler_volmer_current(0.4, 0.5, 1.0, 0.5, 298.15) < 0.0


def test_butler_volmer_large_overpotential_stays_finite() -> None:
    assert math.isfinite(butler_volmer_current(2.0, 0.0, 1.0, 0.5, 298.15))
    assert math.isfinite(butler_volmer_current(-2.0, 0.0, 1.0, 0.5, 298.15))


def test_butler_volmer_rejects_nonpositive_temperature() -> None:
    with pytest.raises(NumericalError):
        butler_volmer_current(0.6, 0.5, 1.0, 0.5, 0.0)


def test_cottrell_at_time_zero_is_finite() -> None:
    value = cottrell_current(0.0, 1e-9, 1.0, 1e-4)
    assert math.isfinite(value) and value > 0.0
    assert value == cottrell_current(C.cottrell_min_time_s, 1e-9, 1.0, 1e-4)


def test_cottrell_decays_with_time() -> None:
    assert cottrell_current(1.0, 1e-9, 1.0, 1e-4) > cottrell_current(4.0, 1e-9, 1.0, 1e-4)


def test_cottrell_rejects_negative_time() -> None:
    with pytest.raises(ValidationError):
        cottrell_current(-1.0, 1e-9, 1.0, 1e-4)


def test_randles_limits() -> None:
    # High frequency shorts the double layer: Z → Rs.
    real, imag, mag, _ = randles_impedance(1e7, 10.0, 100.0, 1e-3, 1.0)
    assert real == pytest.approx(10.0, rel=1e-3)
    assert mag == pytest.approx(math.hypot(real, imag))
    # Low frequency: capacitive reactance makes the imaginary part negative.
    _, imag_low, _, phase = randles_impedance(0.1, 10.0, 100.0, 1e-3, 1.0)
    assert imag_low < 0.0 and phase < 0.0


def test_impedance_spectrum_matches_point_function() -> None:
    freqs = np.array([0.1, 10.0, 1000.0])
    table = impedance_spectrum(freqs, 10.0, 100.0, 1e-3, 1.0)
    assert table.shape == (3, 5)
    for row in table:
        expected = randles_impedance(row[0], 10.0, 100.0, 1e-3, 1.0)
        assert row[1:] == pytest.approx(expected)


def test_chronoamperogram_is_finite_at_zero() -> None:
    curve = chronoamperogram(np.array([0.0, 0.5, 1.0]), 1e-9, 1.0, 1e-4)
    assert np.all(np.isfinite(curve))
    assert curve[0] > curve[-1]


def test_transport_groups() -> None:
    re = reynolds_number(1000.0, 0.1, 0.05, 1e-3)
    assert re == pytest.approx(5000.0)
    assert flow_regime(re) == "turbulent"
    assert flow_regime(100.0) == "laminar"
    sc = schmidt_number(1e-3, 1000.0, 1e-9)
    assert sc == pytest.approx(1000.0)
    assert sherwood_number(0.0, sc) == pytest.approx(2.0)
    with pytest.raises(NumericalError):
        reynolds_number(1000.0, 0.1, 0.05, 0.0)


def test_overpotentials_membrane_only_when_configured(tables) -> None:
    params = LossParameters(
        temperature_c=70.0,
        limiting_current_density=20000.0,
        electrode_spacing_cm=0.02,
        electrolyte_conductivity=10.0,
        electrons=2,
    )
    with_membrane = ElectrodeSet(
        anode=tables.electrode("Pt/C"), cathode=tables.electrode("Pt/C"),
        membrane=tables.membrane("Nafion"), has_membrane=True,
    )
    without = ElectrodeSet(
        anode=tables.electrode("Pt/C"), cathode=tables.electrode("Pt/C"),
        membrane=None, has_membrane=False,
    )
    losses = overpotentials(5000.0, params, with_membrane)
    assert losses.membrane is not None and losses.membrane >= 0.0
    assert overpotentials(5000.0, params, without).membrane is None
    assert losses.activation >= 0.0 and losses.ohmic >= 0.0
    assert math.isfinite(overpotentials(20000.0, params, with_membrane).concentration)
