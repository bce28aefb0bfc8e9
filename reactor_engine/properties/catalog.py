"""properties/catalog.py — Reference reactor configurations.

Five bioelectrochemical reactors and five fuel-cell stacks, each with a
nominal operating point inside its declared ranges.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

from ..domain import (
    PARAMETER_NAMES,
    FidelityLevel,
    Geometry,
    OperatingParameters,
    OperatingWindow,
    ParameterRange,
    ReactorConfiguration,
    ReactorType,
)
from ..errors import ValidationError


def declare_ranges(**ranges: tuple[float, float]) -> tuple[tuple[str, ParameterRange], ...]:
    """Build a canonical-order range tuple from ``name=(lo, hi)`` keywords."""
    return tuple(
        (name, ParameterRange(*ranges[name])) for name in PARAMETER_NAMES if name in ranges
    )


@dataclass(frozen=True)
class CatalogEntry:
    config: ReactorConfiguration
    nominal: OperatingParameters
    description: str = ""


class ReactorCatalog:
    """Read-only registry of reactor configurations keyed by id."""

    def __init__(self, entries: list[CatalogEntry] | None = None) -> None:
        if entries is None:
            entries = _reference_entries()
        self._entries = {e.config.id: e for e in entries}

    def __contains__(self, reactor_id: str) -> bool:
        return reactor_id in self._entries

    def __iter__(self) -> Iterator[CatalogEntry]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def entry(self, reactor_id: str) -> CatalogEntry:
        try:
            return self._entries[reactor_id]
        except KeyError:
            raise ValidationError(f"Unknown reactor id {reactor_id!r}", field="reactorId") from None

    def get(self, reactor_id: str) -> ReactorConfiguration:
        return self.entry(reactor_id).config

    def nominal(self, reactor_id: str) -> OperatingParameters:
        return self.entry(reactor_id).nominal

    def ids(self) -> list[str]:
        return list(self._entries)


def _bioreactors() -> list[CatalogEntry]:
    return [
        CatalogEntry(
            ReactorConfiguration(
                id="embr-001",
                name="Electrochemical membrane bioreactor",
                reactor_type=ReactorType.MEMBRANE_BIOREACTOR,
                geometry=Geometry(volume_l=50.0, active_area_m2=0.5, cell_count=4,
                                  electrode_spacing_cm=4.0),
                window=OperatingWindow(
                    optimal_temperature=35.0, max_temperature=45.0, temperature_tolerance=2.0,
                    optimal_ph=7.2, ph_tolerance=0.3, optimal_mixing=150.0, reference_flow=25.0,
                ),
                ranges=declare_ranges(
                    temperature=(25.0, 45.0), ph=(6.5, 8.0), flow_rate=(15.0, 40.0),
                    mixing_speed=(100.0, 250.0), electrode_voltage=(0.0, 300.0),
                    substrate_concentration=(1.0, 4.0),
                ),
                anode="Carbon cloth",
                cathode="Platinum-carbon",
                membrane="Cation exchange",
                species=("Geobacter sulfurreducens", "Shewanella oneidensis"),
            ),
            OperatingParameters(temperature=35.0, ph=7.2, flow_rate=25.0, mixing_speed=150.0,
                                electrode_voltage=100.0, substrate_concentration=2.0),
            "Multi-electrode membrane reactor with mixed exoelectrogen culture.",
        ),
        CatalogEntry(
            ReactorConfiguration(
                id="stirred-tank-001",
                name="Continuous stirred-tank bioelectrochemical reactor",
                reactor_type=ReactorType.STIRRED_TANK,
                geometry=Geometry(volume_l=1000.0, active_area_m2=5.0, cell_count=1,
                                  electrode_spacing_cm=15.0, diameter_m=2.0, height_m=3.0),
                window=OperatingWindow(
                    optimal_temperature=30.0, max_temperature=40.0, temperature_tolerance=3.0,
                    optimal_ph=7.0, ph_tolerance=0.5, optimal_mixing=200.0, reference_flow=500.0,
                ),
                ranges=declare_ranges(
                    temperature=(20.0, 40.0), ph=(6.0, 8.5), flow_rate=(300.0, 800.0),
                    mixing_speed=(150.0, 350.0), electrode_voltage=(0.0, 300.0),
                    substrate_concentration=(1.5, 5.0),
                ),
                anode="Carbon felt",
                cathode="Stainless steel",
                species=("Geobacter sulfurreducens", "Desulfovibrio vulgaris"),
            ),
            OperatingParameters(temperature=30.0, ph=7.0, flow_rate=500.0, mixing_speed=200.0,
                                electrode_voltage=100.0, substrate_concentration=3.0),
            "Industrial-scale stirred tank with a single electrode pair.",
        ),
        CatalogEntry(
            ReactorConfiguration(
                id="photobioreactor-001",
                name="Flat-panel photobioreactor",
                reactor_type=ReactorType.PHOTOBIOREACTOR,
                geometry=Geometry(volume_l=200.0, active_area_m2=1.0, cell_count=2,
                                  electrode_spacing_cm=5.0, height_m=1.5),
                window=OperatingWindow(
                    optimal_temperature=25.0, max_temperature=35.0, temperature_tolerance=2.0,
                    optimal_ph=8.0, ph_tolerance=0.4, optimal_mixing=80.0, reference_flow=80.0,
                ),
                ranges=declare_ranges(
                    temperature=(15.0, 35.0), ph=(7.0, 9.0), flow_rate=(50.0, 120.0),
                    mixing_speed=(50.0, 150.0), electrode_voltage=(0.0, 300.0),
                    substrate_concentration=(0.8, 3.0),
                ),
                anode="Carbon cloth",
                cathode="Platinum-carbon",
                species=("Chlorella vulgaris", "Spirulina platensis"),
            ),
            OperatingParameters(temperature=25.0, ph=8.0, flow_rate=80.0, mixing_speed=80.0,
                                electrode_voltage=100.0, substrate_concentration=1.5),
            "Algal photobioreactor coupled to a carbon-cloth anode.",
        ),
        CatalogEntry(
            ReactorConfiguration(
                id="airlift-001",
                name="Airlift bioelectrochemical reactor",
                reactor_type=ReactorType.AIRLIFT,
                geometry=Geometry(volume_l=500.0, active_area_m2=2.0, cell_count=1,
                                  electrode_spacing_cm=8.0, diameter_m=0.8, height_m=4.0),
                window=OperatingWindow(
                    optimal_temperature=32.0, max_temperature=40.0, temperature_tolerance=2.0,
                    optimal_ph=7.5, ph_tolerance=0.3, reference_flow=150.0,
                ),
                ranges=declare_ranges(
                    temperature=(25.0, 40.0), ph=(6.5, 8.5), flow_rate=(100.0, 250.0),
                    electrode_voltage=(0.0, 300.0), substrate_concentration=(1.2, 4.0),
                ),
                anode="Carbon brush",
                cathode="Stainless steel",
                species=("Shewanella oneidensis",),
            ),
            OperatingParameters(temperature=32.0, ph=7.5, flow_rate=150.0,
                                electrode_voltage=100.0, substrate_concentration=2.5),
            "Gas-lift circulation; no mechanical mixing.",
        ),
        CatalogEntry(
            ReactorConfiguration(
                id="fractal-001",
                name="Fractal-channel microreactor",
                reactor_type=ReactorType.FRACTAL,
                geometry=Geometry(volume_l=2.0, active_area_m2=0.05, cell_count=8,
                                  electrode_spacing_cm=0.5),
                window=OperatingWindow(
                    optimal_temperature=28.0, max_temperature=35.0, temperature_tolerance=1.5,
                    optimal_ph=7.8, ph_tolerance=0.2, optimal_mixing=60.0, reference_flow=30.0,
                ),
                ranges=declare_ranges(
                    temperature=(20.0, 35.0), ph=(7.0, 8.5), flow_rate=(20.0, 50.0),
                    mixing_speed=(40.0, 100.0), electrode_voltage=(0.0, 300.0),
                    substrate_concentration=(0.5, 2.5),
                ),
                anode="Graphene oxide",
                cathode="Platinum-carbon",
                membrane="Anion exchange",
                species=("Geobacter sulfurreducens",),
                # Experimental design: no validated data for the detailed physics.
                max_fidelity=FidelityLevel.INTERMEDIATE,
            ),
            OperatingParameters(temperature=28.0, ph=7.8, flow_rate=30.0, mixing_speed=60.0,
                                electrode_voltage=100.0, substrate_concentration=1.2),
            "Branching-channel design; low-confidence experimental data.",
        ),
    ]


def _fuel_cells() -> list[CatalogEntry]:
    return [
        CatalogEntry(
            ReactorConfiguration(
                id="pem-stack-50",
                name="50-cell PEM stack",
                reactor_type=ReactorType.PEM,
                geometry=Geometry(volume_l=5.0, active_area_m2=0.01, cell_count=50,
                                  electrode_spacing_cm=0.02),
                window=OperatingWindow(
                    optimal_temperature=70.0, max_temperature=90.0, temperature_tolerance=5.0,
                    optimal_humidity=90.0, reference_flow=5.0, reference_air_flow=20.0,
                ),
                ranges=declare_ranges(
                    temperature=(20.0, 95.0), flow_rate=(1.0, 10.0), pressure=(1.0, 3.0),
                    humidity=(20.0, 100.0), air_flow_rate=(5.0, 40.0),
                ),
                anode="Pt/C",
                cathode="Pt/C",
                membrane="Nafion",
            ),
            OperatingParameters(temperature=70.0, flow_rate=5.0, pressure=1.5, humidity=90.0,
                                air_flow_rate=20.0),
            "Automotive-class low-temperature stack.",
        ),
        CatalogEntry(
            ReactorConfiguration(
                id="sofc-stack-30",
                name="30-cell planar SOFC stack",
                reactor_type=ReactorType.SOFC,
                geometry=Geometry(volume_l=8.0, active_area_m2=0.01, cell_count=30,
                                  electrode_spacing_cm=0.05),
                window=OperatingWindow(
                    optimal_temperature=750.0, max_temperature=1000.0, temperature_tolerance=25.0,
                    reference_flow=5.0, reference_air_flow=20.0,
                ),
                ranges=declare_ranges(
                    temperature=(600.0, 1000.0), flow_rate=(1.0, 10.0), pressure=(1.0, 3.0),
                    air_flow_rate=(5.0, 40.0),
                ),
                anode="Ni-YSZ",
                cathode="LSM-YSZ",
                membrane="YSZ",
            ),
            OperatingParameters(temperature=750.0, flow_rate=5.0, pressure=1.0, air_flow_rate=20.0),
            "Stationary high-temperature stack; humidity-insensitive.",
        ),
        CatalogEntry(
            ReactorConfiguration(
                id="pafc-stack-40",
                name="40-cell phosphoric-acid stack",
                reactor_type=ReactorType.PAFC,
                geometry=Geometry(volume_l=12.0, active_area_m2=0.02, cell_count=40,
                                  electrode_spacing_cm=0.1),
                window=OperatingWindow(
                    optimal_temperature=200.0, max_temperature=220.0, temperature_tolerance=5.0,
                    optimal_humidity=85.0, reference_flow=5.0, reference_air_flow=20.0,
                ),
                ranges=declare_ranges(
                    temperature=(150.0, 225.0), flow_rate=(1.0, 10.0), pressure=(1.0, 3.0),
                    humidity=(40.0, 100.0), air_flow_rate=(5.0, 40.0),
                ),
                anode="Pt/C",
                cathode="Pt-alloy",
            ),
            OperatingParameters(temperature=200.0, flow_rate=5.0, pressure=1.5, humidity=85.0,
                                air_flow_rate=20.0),
            "Electrolyte held in a SiC matrix; no polymer membrane.",
        ),
        CatalogEntry(
            ReactorConfiguration(
                id="mcfc-stack-20",
                name="20-cell molten-carbonate stack",
                reactor_type=ReactorType.MCFC,
                geometry=Geometry(volume_l=20.0, active_area_m2=0.05, cell_count=20,
                                  electrode_spacing_cm=0.1),
                window=OperatingWindow(
                    optimal_temperature=650.0, max_temperature=700.0, temperature_tolerance=15.0,
                    reference_flow=5.0, reference_air_flow=20.0,
                ),
                ranges=declare_ranges(
                    temperature=(550.0, 710.0), flow_rate=(1.0, 10.0), pressure=(1.0, 3.0),
                    air_flow_rate=(5.0, 40.0),
                ),
                anode="Ni-based",
                cathode="Ni-based",
            ),
            OperatingParameters(temperature=650.0, flow_rate=5.0, pressure=1.0, air_flow_rate=20.0),
            "Carbonate electrolyte; humidity-insensitive.",
        ),
        CatalogEntry(
            ReactorConfiguration(
                id="afc-stack-24",
                name="24-cell alkaline stack",
                reactor_type=ReactorType.AFC,
                geometry=Geometry(volume_l=4.0, active_area_m2=0.01, cell_count=24,
                                  electrode_spacing_cm=0.05),
                window=OperatingWindow(
                    optimal_temperature=70.0, max_temperature=90.0, temperature_tolerance=5.0,
                    optimal_humidity=95.0, reference_flow=5.0, reference_air_flow=20.0,
                ),
                ranges=declare_ranges(
                    temperature=(40.0, 95.0), flow_rate=(1.0, 10.0), pressure=(1.0, 3.0),
                    humidity=(50.0, 100.0), air_flow_rate=(5.0, 40.0),
                ),
                anode="Ni-based",
                cathode="Pt/C",
                membrane="Anion exchange",
            ),
            OperatingParameters(temperature=70.0, flow_rate=5.0, pressure=1.5, humidity=95.0,
                                air_flow_rate=20.0),
            "Anion-exchange membrane alkaline stack.",
        ),
    ]


def _reference_entries() -> list[CatalogEntry]:
    return _bioreactors() + _fuel_cells()
