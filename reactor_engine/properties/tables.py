"""properties/tables.py — Static property tables for materials, organisms and reactor types.

The tables are immutable and built once by :func:`default_tables`; callers
pass a :class:`PropertyTables` instance into the correlation library and the
fidelity models instead of reaching for module-level state, so tests can
inject their own fixtures.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from types import MappingProxyType
from typing import Mapping

from ..domain import ReactorConfiguration, ReactorType
from ..errors import ValidationError

logger = logging.getLogger(__name__)


def normalize_name(name: str) -> str:
    """Lookup key: lower case, separators collapsed to single spaces."""
    return " ".join(name.lower().replace("-", " ").replace("_", " ").replace("/", " ").split())


@dataclass(frozen=True)
class ElectrodeMaterial:
    name: str
    exchange_current_density: float  # A/m²
    transfer_coefficient: float
    roughness: float
    tafel_slope_mv: float  # mV/decade
    activity: float  # relative catalytic activity, 1.0 = Pt/C
    cost_per_m2: float


@dataclass(frozen=True)
class MembraneMaterial:
    name: str
    conductivity: float  # relative to Nafion
    area_specific_resistance: float  # Ω·m²
    cost_per_m2: float


@dataclass(frozen=True)
class MicrobialSpecies:
    name: str
    kind: str  # "bacteria" | "algae"
    electron_transfer_rate: float  # electrons/s per cell
    optimal_ph: float
    optimal_temperature: float  # °C
    growth_rate: float  # 1/day
    coulombic_efficiency: float  # fraction


@dataclass(frozen=True)
class PlantDynamics:
    """First-order time constants (s) of the transient plant.

    A humidity constant of zero marks a system without humidity dynamics.
    """

    thermal_s: float = 600.0
    humidity_s: float = 0.0
    pressure_s: float = 60.0
    voltage_s: float = 30.0


@dataclass(frozen=True)
class ReactorTypeProfile:
    """Per-type constants driving the Basic model.

    Voltages are per cell; current densities in A/m²; fluid properties SI.
    """

    reactor_type: ReactorType
    base_voltage: float
    pressure_bonus: float  # V gain per bar above ambient
    base_efficiency: float  # fraction
    max_current_density: float
    fuel: str
    oxidant: str
    fuel_inlet_fraction: float  # %
    oxidant_inlet_fraction: float  # %
    electrons_per_fuel: int
    fluid_density: float = 1000.0  # kg/m³
    fluid_viscosity: float = 1.0e-3  # Pa·s
    diffusivity: float = 1.0e-9  # m²/s
    bulk_concentration: float = 20.0  # mol/m³
    electrolyte_conductivity: float = 1.0  # S/m
    dynamics: PlantDynamics = PlantDynamics()


@dataclass(frozen=True)
class PropertyTables:
    electrodes: Mapping[str, ElectrodeMaterial]
    membranes: Mapping[str, MembraneMaterial]
    species: Mapping[str, MicrobialSpecies]
    profiles: Mapping[ReactorType, ReactorTypeProfile]

    def electrode(self, name: str | None) -> ElectrodeMaterial | None:
        if not name:
            return None
        return self.electrodes.get(normalize_name(name))

    def membrane(self, name: str | None) -> MembraneMaterial | None:
        if not name:
            return None
        return self.membranes.get(normalize_name(name))

    def organism(self, name: str) -> MicrobialSpecies | None:
        key = normalize_name(name)
        if key in self.species:
            return self.species[key]
        # Accept the genus alone ("Geobacter") as well as the binomial name.
        for entry in self.species.values():
            if normalize_name(entry.name).split()[0] == key:
                return entry
        return None

    def profile(self, reactor_type: ReactorType) -> ReactorTypeProfile:
        try:
            return self.profiles[reactor_type]
        except KeyError:
            raise ValidationError(
                f"No property profile for reactor type {reactor_type.value!r}",
                field="reactorType",
            ) from None

    def validate(self, config: ReactorConfiguration, strict_materials: bool = False) -> None:
        """Check a configuration against the tables.

        Unknown organisms are always rejected.  Unknown electrode or membrane
        names are rejected only with ``strict_materials``; otherwise they are
        tolerated and contribute nothing to the material factor.
        """
        self.profile(config.reactor_type)
        for organism in config.species:
            if self.organism(organism) is None:
                raise ValidationError(f"Unknown organism {organism!r}", field="species")
        checks = (
            ("anode", config.anode, self.electrode),
            ("cathode", config.cathode, self.electrode),
            ("membrane", config.membrane, self.membrane),
        )
        for label, name, lookup in checks:
            if name and lookup(name) is None:
                if strict_materials:
                    raise ValidationError(f"Unknown {label} material {name!r}", field=label)
                logger.debug("Unknown %s material %r; contributes no material factor", label, name)


# ------------------------------------------------------------------ #
#  Table data                                                         #
# ------------------------------------------------------------------ #

_ELECTRODES = (
    # name, i0 [A/m²], α, roughness, Tafel [mV/dec], activity, cost [$/m²]
    ElectrodeMaterial("Pt/C", 10.0, 0.5, 20.0, 70.0, 1.0, 1500.0),
    ElectrodeMaterial("Pt-alloy", 12.0, 0.55, 22.0, 65.0, 1.15, 1800.0),
    ElectrodeMaterial("Non-PGM", 2.0, 0.5, 30.0, 90.0, 0.7, 300.0),
    ElectrodeMaterial("Ni-based", 1.5, 0.5, 10.0, 100.0, 0.6, 150.0),
    ElectrodeMaterial("Platinum", 20.0, 0.7, 1.0, 70.0, 1.0, 5000.0),
    ElectrodeMaterial("Platinum-carbon", 10.0, 0.5, 20.0, 70.0, 1.0, 1500.0),
    ElectrodeMaterial("Carbon cloth", 1.0, 0.5, 15.0, 120.0, 0.5, 50.0),
    ElectrodeMaterial("Carbon felt", 0.8, 0.5, 12.0, 120.0, 0.45, 40.0),
    ElectrodeMaterial("Carbon brush", 2.0, 0.5, 40.0, 120.0, 0.55, 80.0),
    ElectrodeMaterial("Graphite", 0.5, 0.5, 2.0, 110.0, 0.4, 30.0),
    ElectrodeMaterial("Graphene", 10.0, 0.6, 25.0, 90.0, 0.9, 900.0),
    ElectrodeMaterial("Graphene oxide", 5.0, 0.55, 20.0, 90.0, 0.8, 600.0),
    ElectrodeMaterial("Carbon nanotube", 8.0, 0.6, 30.0, 95.0, 0.85, 800.0),
    ElectrodeMaterial("Stainless steel", 0.1, 0.4, 1.5, 140.0, 0.3, 60.0),
    ElectrodeMaterial("LSM-YSZ", 4.0, 0.5, 5.0, 100.0, 0.9, 400.0),
    ElectrodeMaterial("Ni-YSZ", 6.0, 0.5, 5.0, 100.0, 0.95, 350.0),
)

_MEMBRANES = (
    # name, relative conductivity, ASR [Ω·m²], cost [$/m²]
    MembraneMaterial("Nafion", 1.0, 1.0e-5, 700.0),
    MembraneMaterial("PFSA", 0.9, 1.2e-5, 500.0),
    MembraneMaterial("Hydrocarbon", 0.8, 1.5e-5, 250.0),
    MembraneMaterial("Ceramic", 1.2, 0.8e-5, 900.0),
    MembraneMaterial("YSZ", 1.1, 1.5e-5, 600.0),
    MembraneMaterial("Anion exchange", 0.7, 2.0e-5, 200.0),
    MembraneMaterial("Cation exchange", 0.75, 1.8e-5, 180.0),
)

_SPECIES = (
    # name, kind, e-/s, pH*, T* [°C], µ [1/d], coulombic efficiency
    MicrobialSpecies("Geobacter sulfurreducens", "bacteria", 5.2e8, 7.0, 30.0, 0.3, 0.89),
    MicrobialSpecies("Shewanella oneidensis", "bacteria", 4.8e8, 7.2, 25.0, 0.5, 0.75),
    MicrobialSpecies("Pseudomonas aeruginosa", "bacteria", 3.5e8, 7.0, 37.0, 0.7, 0.65),
    MicrobialSpecies("Rhodoferax ferrireducens", "bacteria", 4.2e8, 6.8, 30.0, 0.4, 0.83),
    MicrobialSpecies("Desulfovibrio vulgaris", "bacteria", 3.8e8, 7.5, 35.0, 0.3, 0.70),
    MicrobialSpecies("Clostridium butyricum", "bacteria", 2.9e8, 6.5, 37.0, 0.6, 0.55),
    MicrobialSpecies("Chlorella vulgaris", "algae", 2.3e8, 7.0, 25.0, 0.8, 0.12),
    MicrobialSpecies("Spirulina platensis", "algae", 1.8e8, 8.5, 30.0, 0.6, 0.10),
    MicrobialSpecies("Scenedesmus obliquus", "algae", 2.0e8, 7.5, 28.0, 0.7, 0.11),
    MicrobialSpecies("Dunaliella salina", "algae", 1.5e8, 7.5, 27.0, 0.5, 0.09),
)

_PROFILES = (
    ReactorTypeProfile(ReactorType.PEM, 0.70, 0.02, 0.50, 10_000.0, "H2", "O2", 99.9, 21.0, 2,
                       fluid_density=0.09, fluid_viscosity=8.9e-6, diffusivity=6.1e-5,
                       bulk_concentration=40.0, electrolyte_conductivity=10.0,
                       dynamics=PlantDynamics(60.0, 30.0, 10.0, 5.0)),
    ReactorTypeProfile(ReactorType.SOFC, 0.80, 0.01, 0.60, 8_000.0, "H2", "O2", 97.0, 21.0, 2,
                       fluid_density=0.02, fluid_viscosity=2.0e-5, diffusivity=5.0e-4,
                       bulk_concentration=12.0, electrolyte_conductivity=10.0,
                       dynamics=PlantDynamics(300.0, 0.0, 20.0, 10.0)),
    ReactorTypeProfile(ReactorType.PAFC, 0.75, 0.015, 0.45, 4_000.0, "H2", "O2", 80.0, 21.0, 2,
                       fluid_density=0.06, fluid_viscosity=1.2e-5, diffusivity=1.2e-4,
                       bulk_concentration=25.0, electrolyte_conductivity=10.0,
                       dynamics=PlantDynamics(120.0, 45.0, 15.0, 8.0)),
    ReactorTypeProfile(ReactorType.MCFC, 0.85, 0.01, 0.55, 2_000.0, "H2", "O2", 75.0, 14.0, 2,
                       fluid_density=0.03, fluid_viscosity=1.8e-5, diffusivity=4.0e-4,
                       bulk_concentration=14.0, electrolyte_conductivity=10.0,
                       dynamics=PlantDynamics(240.0, 0.0, 25.0, 12.0)),
    ReactorTypeProfile(ReactorType.AFC, 0.90, 0.025, 0.65, 6_000.0, "H2", "O2", 99.9, 99.5, 2,
                       fluid_density=0.09, fluid_viscosity=8.9e-6, diffusivity=6.1e-5,
                       bulk_concentration=40.0, electrolyte_conductivity=10.0,
                       dynamics=PlantDynamics(45.0, 25.0, 8.0, 4.0)),
    ReactorTypeProfile(ReactorType.MEMBRANE_BIOREACTOR, 0.40, 0.0, 0.86, 9.0,
                       "acetate", "O2", 100.0, 21.0, 8),
    ReactorTypeProfile(ReactorType.STIRRED_TANK, 0.35, 0.0, 0.76, 7.5,
                       "acetate", "O2", 100.0, 21.0, 8),
    ReactorTypeProfile(ReactorType.PHOTOBIOREACTOR, 0.38, 0.0, 0.62, 4.8,
                       "acetate", "O2", 100.0, 21.0, 8),
    ReactorTypeProfile(ReactorType.AIRLIFT, 0.36, 0.0, 0.70, 6.0,
                       "acetate", "O2", 100.0, 21.0, 8),
    ReactorTypeProfile(ReactorType.FRACTAL, 0.37, 0.0, 0.74, 8.0,
                       "acetate", "O2", 100.0, 21.0, 8),
)


@lru_cache(maxsize=1)
def default_tables() -> PropertyTables:
    """Build the reference tables once per process."""
    return PropertyTables(
        electrodes=MappingProxyType({normalize_name(e.name): e for e in _ELECTRODES}),
        membranes=MappingProxyType({normalize_name(m.name): m for m in _MEMBRANES}),
        species=MappingProxyType({normalize_name(s.name): s for s in _SPECIES}),
        profiles=MappingProxyType({p.reactor_type: p for p in _PROFILES}),
    )
