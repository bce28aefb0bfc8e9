"""domain.py — Immutable data model for reactors, parameters and predictions.

Configurations, parameter vectors and prediction results are frozen
dataclasses: optimisation produces fresh ``OperatingParameters`` values and
never edits a ``ReactorConfiguration`` in place.  Only ``OptimizationRun``
is mutable, and it belongs to a single call.
"""

from __future__ import annotations

import dataclasses
import math
import re
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Mapping, Sequence

import numpy as np
from numpy.typing import NDArray

from .errors import InfeasibleError, ValidationError

# Canonical parameter order; every vector in the engine follows it.
PARAMETER_NAMES: tuple[str, ...] = (
    "temperature",
    "ph",
    "flow_rate",
    "mixing_speed",
    "electrode_voltage",
    "substrate_concentration",
    "pressure",
    "humidity",
    "air_flow_rate",
)

# Metrics an objective or a derived constraint can refer to.
METRICS: tuple[str, ...] = (
    "power",
    "power_density",
    "current",
    "current_density",
    "voltage",
    "efficiency",
    "cost",
    "durability",
)
MINIMIZED_METRICS = frozenset({"cost"})


# ------------------------------------------------------------------ #
#  Enumerations                                                       #
# ------------------------------------------------------------------ #

class ReactorType(Enum):
    PEM = "pem"
    SOFC = "sofc"
    PAFC = "pafc"
    MCFC = "mcfc"
    AFC = "afc"
    MEMBRANE_BIOREACTOR = "membrane_bioreactor"
    STIRRED_TANK = "stirred_tank"
    PHOTOBIOREACTOR = "photobioreactor"
    AIRLIFT = "airlift"
    FRACTAL = "fractal"

    @property
    def is_fuel_cell(self) -> bool:
        return self in _FUEL_CELL_TYPES

    @classmethod
    def parse(cls, value: str | ReactorType) -> ReactorType:
        if isinstance(value, ReactorType):
            return value
        key = str(value).strip().lower().replace("-", "_").replace(" ", "_")
        try:
            return cls(key)
        except ValueError:
            raise ValidationError(
                f"Unknown reactor type {value!r}", field="reactorType"
            ) from None


_FUEL_CELL_TYPES = frozenset(
    {ReactorType.PEM, ReactorType.SOFC, ReactorType.PAFC, ReactorType.MCFC, ReactorType.AFC}
)


class FidelityLevel(IntEnum):
    """Modelling tier; each level's fields are a superset of the one below."""

    BASIC = 1
    INTERMEDIATE = 2
    ADVANCED = 3

    def lower(self) -> FidelityLevel | None:
        if self is FidelityLevel.BASIC:
            return None
        return FidelityLevel(self.value - 1)

    @classmethod
    def parse(cls, value: str | int | FidelityLevel) -> FidelityLevel:
        if isinstance(value, FidelityLevel):
            return value
        if isinstance(value, int):
            try:
                return cls(value)
            except ValueError:
                pass
        else:
            try:
                return cls[str(value).strip().upper()]
            except KeyError:
                pass
        raise ValidationError(f"Unknown fidelity level {value!r}", field="fidelity")


class OperationalStatus(Enum):
    OPTIMAL = "optimal"
    GOOD = "good"
    WARNING = "warning"
    CRITICAL = "critical"


class ObjectiveKind(Enum):
    MAXIMIZE_POWER = "maximize_power"
    MAXIMIZE_EFFICIENCY = "maximize_efficiency"
    MINIMIZE_COST = "minimize_cost"
    MAXIMIZE_DURABILITY = "maximize_durability"
    WEIGHTED = "weighted"

    @classmethod
    def parse(cls, value: str | ObjectiveKind) -> ObjectiveKind:
        if isinstance(value, ObjectiveKind):
            return value
        key = str(value).strip().lower().replace("-", "_")
        try:
            return cls(key)
        except ValueError:
            raise ValidationError(f"Unknown objective {value!r}", field="objective") from None


class Algorithm(Enum):
    GRADIENT_DESCENT = "gradient_descent"
    GENETIC = "genetic_algorithm"
    BAYESIAN = "bayesian"
    PARTICLE_SWARM = "particle_swarm"

    @classmethod
    def parse(cls, value: str | Algorithm) -> Algorithm:
        if isinstance(value, Algorithm):
            return value
        key = re.sub(r"[^a-z]", "", str(value).lower())
        try:
            return _ALGORITHM_ALIASES[key]
        except KeyError:
            raise ValidationError(f"Unknown algorithm {value!r}", field="algorithm") from None


_ALGORITHM_ALIASES: dict[str, Algorithm] = {
    "gradientdescent": Algorithm.GRADIENT_DESCENT,
    "gradient": Algorithm.GRADIENT_DESCENT,
    "gd": Algorithm.GRADIENT_DESCENT,
    "geneticalgorithm": Algorithm.GENETIC,
    "genetic": Algorithm.GENETIC,
    "ga": Algorithm.GENETIC,
    "bayesian": Algorithm.BAYESIAN,
    "bayesianoptimization": Algorithm.BAYESIAN,
    "bo": Algorithm.BAYESIAN,
    "particleswarm": Algorithm.PARTICLE_SWARM,
    "pso": Algorithm.PARTICLE_SWARM,
}


class MultiObjectiveMode(Enum):
    SINGLE = "single"
    WEIGHTED_SUM = "weighted_sum"
    PARETO = "pareto"


class RunOutcome(Enum):
    CONVERGED = "converged"
    MAX_ITERATIONS = "max_iterations"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"
    EVALUATION_FAILURE = "evaluation_failure"
    INFEASIBLE = "infeasible"


# ------------------------------------------------------------------ #
#  Reactor configuration                                              #
# ------------------------------------------------------------------ #

@dataclass(frozen=True)
class ParameterRange:
    min: float
    max: float

    @property
    def span(self) -> float:
        return self.max - self.min

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max

    def clip(self, value: float) -> float:
        return float(min(max(value, self.min), self.max))

    def as_tuple(self) -> tuple[float, float]:
        return (self.min, self.max)


@dataclass(frozen=True)
class Geometry:
    """Physical layout.  Areas are per cell (or per electrode pair)."""

    volume_l: float = 1.0
    active_area_m2: float = 0.01
    cell_count: int = 1
    electrode_spacing_cm: float = 2.0
    diameter_m: float | None = None
    height_m: float | None = None


@dataclass(frozen=True)
class OperatingWindow:
    """Design-point values the factor correlations are measured against.

    ``optimal_ph`` / ``optimal_humidity`` of ``None`` mark a system that is
    insensitive to that variable (e.g. a solid-oxide stack and pH).
    """

    optimal_temperature: float
    max_temperature: float
    temperature_tolerance: float = 2.0
    optimal_ph: float | None = None
    ph_tolerance: float = 0.3
    optimal_humidity: float | None = None
    optimal_mixing: float | None = None
    reference_flow: float = 1.0
    reference_air_flow: float | None = None


@dataclass(frozen=True)
class ReactorConfiguration:
    id: str
    name: str
    reactor_type: ReactorType
    geometry: Geometry
    window: OperatingWindow
    ranges: tuple[tuple[str, ParameterRange], ...]
    anode: str | None = None
    cathode: str | None = None
    membrane: str | None = None
    species: tuple[str, ...] = ()
    max_fidelity: FidelityLevel = FidelityLevel.ADVANCED

    def __post_init__(self) -> None:
        if not self.ranges:
            raise ValidationError(f"Reactor {self.id!r} declares no parameters", field="ranges")
        seen: set[str] = set()
        for name, rng in self.ranges:
            if name not in PARAMETER_NAMES:
                raise ValidationError(f"Unknown parameter {name!r}", field=name)
            if name in seen:
                raise ValidationError(f"Parameter {name!r} declared twice", field=name)
            seen.add(name)
            if not (math.isfinite(rng.min) and math.isfinite(rng.max)) or rng.min > rng.max:
                raise ValidationError(
                    f"Declared range for {name!r} is empty or inverted",
                    field=name,
                    valid_range=rng.as_tuple(),
                )
        g = self.geometry
        if g.cell_count < 1 or g.volume_l <= 0 or g.active_area_m2 <= 0 or g.electrode_spacing_cm <= 0:
            raise ValidationError(f"Reactor {self.id!r} has non-positive geometry", field="geometry")
        if self.window.max_temperature < self.window.optimal_temperature:
            raise ValidationError(
                "Maximum temperature is below the optimum", field="window.max_temperature"
            )

    @property
    def has_membrane(self) -> bool:
        return bool(self.membrane)

    @property
    def parameter_names(self) -> tuple[str, ...]:
        declared = {name for name, _ in self.ranges}
        return tuple(n for n in PARAMETER_NAMES if n in declared)

    def range_for(self, name: str) -> ParameterRange:
        for declared, rng in self.ranges:
            if declared == name:
                return rng
        raise ValidationError(f"Reactor {self.id!r} does not declare {name!r}", field=name)


# ------------------------------------------------------------------ #
#  Operating parameters                                               #
# ------------------------------------------------------------------ #

@dataclass(frozen=True)
class OperatingParameters:
    temperature: float | None = None  # °C
    ph: float | None = None
    flow_rate: float | None = None  # L/h (fuel-cell: fuel flow, arbitrary units)
    mixing_speed: float | None = None  # RPM
    electrode_voltage: float | None = None  # mV bias
    substrate_concentration: float | None = None  # g/L
    pressure: float | None = None  # bar
    humidity: float | None = None  # %
    air_flow_rate: float | None = None

    def as_dict(self) -> dict[str, float]:
        return {n: getattr(self, n) for n in PARAMETER_NAMES if getattr(self, n) is not None}

    def get(self, name: str) -> float | None:
        return getattr(self, name)

    def replace(self, **changes: float | None) -> OperatingParameters:
        return dataclasses.replace(self, **changes)

    def vector(self, names: Sequence[str]) -> NDArray[np.float64]:
        values = []
        for n in names:
            v = getattr(self, n)
            if v is None:
                raise ValidationError(f"Missing parameter {n!r}", field=n)
            values.append(v)
        return np.array(values, dtype=np.float64)

    @classmethod
    def from_vector(cls, names: Sequence[str], vec: Sequence[float]) -> OperatingParameters:
        return cls(**{n: float(v) for n, v in zip(names, vec)})

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> OperatingParameters:
        values: dict[str, float] = {}
        for key, raw in mapping.items():
            if key not in PARAMETER_NAMES:
                raise ValidationError(f"Unknown parameter {key!r}", field=key)
            if raw is None:
                continue
            try:
                value = float(raw)
            except (TypeError, ValueError):
                raise ValidationError(f"Parameter {key!r} is not numeric", field=key) from None
            if not math.isfinite(value):
                raise ValidationError(f"Parameter {key!r} is not finite", field=key)
            values[key] = value
        return cls(**values)


# ------------------------------------------------------------------ #
#  Prediction result blocks                                           #
# ------------------------------------------------------------------ #

@dataclass(frozen=True)
class ConfidenceInterval:
    lower: float
    upper: float


@dataclass(frozen=True)
class HotSpot:
    location: str
    temperature: float
    severity: str


@dataclass(frozen=True)
class ThermalProfile:
    unit_temperatures: tuple[float, ...]
    average: float
    maximum: float
    minimum: float
    hot_spots: tuple[HotSpot, ...]
    cooling_requirement_w: float


@dataclass(frozen=True)
class GasComposition:
    """Stream fractions in percent; water production in mol/s."""

    fuel: str
    oxidant: str
    fuel_inlet: float
    fuel_outlet: float
    fuel_utilization: float
    oxidant_inlet: float
    oxidant_outlet: float
    oxidant_utilization: float
    nitrogen: float
    water_vapor: float
    water_production_mol_s: float
    purge_required: bool


@dataclass(frozen=True)
class Overpotentials:
    """Voltage losses in volts; ``membrane`` is absent without a membrane."""

    activation: float
    concentration: float
    ohmic: float
    membrane: float | None = None

    @property
    def total(self) -> float:
        return self.activation + self.concentration + self.ohmic + (self.membrane or 0.0)


@dataclass(frozen=True)
class ElectrodeKinetics:
    exchange_current_density: float  # A/m²
    transfer_coefficient: float
    tafel_slope_mv: float
    tafel_overpotential: float  # V
    butler_volmer_current_density: float  # A/m²
    limiting_current_density: float  # A/m²


@dataclass(frozen=True)
class FluidDynamics:
    reynolds: float
    schmidt: float
    sherwood: float
    mass_transfer_coefficient: float  # m/s
    flow_regime: str
    mixing_efficiency: float
    dead_zone_fraction: float


@dataclass(frozen=True)
class ControllerSetpoints:
    temperature_setpoint: float
    pid_kp: float
    pid_ki: float
    pid_kd: float
    pressure_ratio: float
    humidification_rate_g_s: float
    purge_threshold: float
    purge_interval_s: float
    purge_duration_s: float


@dataclass(frozen=True)
class OptimizationSuggestion:
    parameter: str
    current_value: float
    suggested_value: float
    expected_improvement: float  # %
    confidence: float  # [0, 1]
    rationale: str


# Which optional blocks each fidelity level may populate.
FIDELITY_BLOCKS: dict[FidelityLevel, frozenset[str]] = {
    FidelityLevel.BASIC: frozenset(),
    FidelityLevel.INTERMEDIATE: frozenset({"thermal_profile", "gas_composition"}),
    FidelityLevel.ADVANCED: frozenset(
        {
            "thermal_profile",
            "gas_composition",
            "overpotentials",
            "electrode_kinetics",
            "fluid_dynamics",
            "controller_setpoints",
            "suggestions",
        }
    ),
}
OPTIONAL_BLOCKS: tuple[str, ...] = (
    "thermal_profile",
    "gas_composition",
    "overpotentials",
    "electrode_kinetics",
    "fluid_dynamics",
    "controller_setpoints",
    "suggestions",
)
BASE_FIELDS: tuple[str, ...] = (
    "voltage",
    "current",
    "power",
    "power_density",
    "current_density",
    "efficiency",
    "fuel_utilization",
    "status",
    "confidence_interval",
    "factors",
)


@dataclass(frozen=True)
class PredictionResult:
    reactor_id: str
    fidelity: FidelityLevel
    voltage: float  # V (stack)
    current: float  # A
    power: float  # W
    power_density: float  # W/m²
    current_density: float  # A/m²
    efficiency: float  # %
    fuel_utilization: float  # %
    status: OperationalStatus
    confidence_interval: ConfidenceInterval
    factors: Mapping[str, float] = field(default_factory=dict)
    warnings: tuple[str, ...] = ()
    requested_fidelity: FidelityLevel | None = None
    execution_time_ms: float = 0.0
    thermal_profile: ThermalProfile | None = None
    gas_composition: GasComposition | None = None
    overpotentials: Overpotentials | None = None
    electrode_kinetics: ElectrodeKinetics | None = None
    fluid_dynamics: FluidDynamics | None = None
    controller_setpoints: ControllerSetpoints | None = None
    suggestions: tuple[OptimizationSuggestion, ...] | None = None

    def __post_init__(self) -> None:
        allowed = FIDELITY_BLOCKS[self.fidelity]
        for name in OPTIONAL_BLOCKS:
            if getattr(self, name) is not None and name not in allowed:
                raise ValueError(f"{name} is not populated at {self.fidelity.name} fidelity")
        if self.requested_fidelity is None:
            object.__setattr__(self, "requested_fidelity", self.fidelity)

    def base_fields(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in BASE_FIELDS}

    def metric(self, name: str) -> float:
        if name not in METRICS or name in ("cost", "durability"):
            raise KeyError(name)
        return float(getattr(self, name))

    def replace(self, **changes: Any) -> PredictionResult:
        return dataclasses.replace(self, **changes)


# ------------------------------------------------------------------ #
#  Objectives and constraints                                         #
# ------------------------------------------------------------------ #

@dataclass(frozen=True)
class ObjectiveSpec:
    """One optimisation goal.  ``weights`` is used by ``WEIGHTED`` only."""

    kind: ObjectiveKind
    weights: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.kind is ObjectiveKind.WEIGHTED and not self.weights:
            raise ValidationError("Weighted objective needs at least one weight", field="weights")
        for metric in self.weights:
            if metric not in METRICS:
                raise ValidationError(f"Unknown metric {metric!r}", field="weights")

    @property
    def label(self) -> str:
        return self.kind.value


@dataclass(frozen=True)
class DerivedConstraint:
    """Soft bound on a metric computed from a prediction."""

    metric: str
    minimum: float | None = None
    maximum: float | None = None

    def __post_init__(self) -> None:
        if self.metric not in METRICS:
            raise ValidationError(f"Unknown metric {self.metric!r}", field="constraints")
        if self.minimum is not None and self.maximum is not None and self.minimum > self.maximum:
            raise InfeasibleError(
                f"Derived constraint on {self.metric!r} has min {self.minimum} > max {self.maximum}"
            )

    def violation(self, value: float) -> float:
        """Relative violation magnitude, 0 when satisfied."""
        excess = 0.0
        if self.minimum is not None and value < self.minimum:
            excess += (self.minimum - value) / max(abs(self.minimum), 1.0)
        if self.maximum is not None and value > self.maximum:
            excess += (value - self.maximum) / max(abs(self.maximum), 1.0)
        return excess


@dataclass(frozen=True)
class ConstraintSet:
    bounds: Mapping[str, tuple[float, float]] = field(default_factory=dict)
    derived: tuple[DerivedConstraint, ...] = ()

    def resolve_bounds(self, config: ReactorConfiguration) -> dict[str, ParameterRange]:
        """Intersect caller bounds with the configuration's declared ranges.

        Raises
        ------
        InfeasibleError
            A bound has min > max, or lies entirely outside the declared range.
        ValidationError
            A bound names a parameter the configuration does not declare.
        """
        for name, (lo, hi) in self.bounds.items():
            if lo > hi:
                raise InfeasibleError(f"Constraint on {name!r} has min {lo} > max {hi}")
        declared = config.parameter_names
        for name in self.bounds:
            if name not in declared:
                raise ValidationError(f"Reactor {config.id!r} does not declare {name!r}", field=name)

        resolved: dict[str, ParameterRange] = {}
        for name in declared:
            rng = config.range_for(name)
            if name in self.bounds:
                lo, hi = self.bounds[name]
                lo, hi = max(lo, rng.min), min(hi, rng.max)
                if lo > hi:
                    raise InfeasibleError(
                        f"Constraint on {name!r} does not overlap the declared range "
                        f"[{rng.min}, {rng.max}]"
                    )
                rng = ParameterRange(lo, hi)
            resolved[name] = rng
        return resolved


# ------------------------------------------------------------------ #
#  Optimisation run                                                   #
# ------------------------------------------------------------------ #

@dataclass(frozen=True)
class Evaluation:
    """One candidate scored through the prediction engine.

    A failed candidate carries ``fitness = -inf`` and the error text.
    """

    parameters: OperatingParameters
    result: PredictionResult | None
    objectives: tuple[float, ...]
    score: float
    violation: float
    fitness: float
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def feasible(self) -> bool:
        return self.ok and self.violation <= 0.0


@dataclass(frozen=True)
class IterationRecord:
    iteration: int
    evaluations: tuple[Evaluation, ...]
    best_fitness: float
    best_parameters: OperatingParameters

    @property
    def failures(self) -> int:
        return sum(1 for e in self.evaluations if not e.ok)


@dataclass(frozen=True)
class ParameterSensitivity:
    parameter: str
    sensitivity: float  # normalised effect, |Δscore| share
    gradient: float
    optimal_range: tuple[float, float]


@dataclass
class OptimizationRun:
    reactor_id: str
    algorithm: Algorithm
    mode: MultiObjectiveMode
    objectives: tuple[ObjectiveSpec, ...]
    initial: Evaluation | None = None
    best: Evaluation | None = None
    history: list[IterationRecord] = field(default_factory=list)
    converged: bool = False
    outcome: RunOutcome | None = None
    elapsed_s: float = 0.0
    n_evaluations: int = 0
    sensitivity: list[ParameterSensitivity] = field(default_factory=list)
    pareto_front: list[Evaluation] = field(default_factory=list)
    message: str = ""

    @property
    def best_parameters(self) -> OperatingParameters | None:
        return self.best.parameters if self.best is not None else None

    @property
    def improvement_percent(self) -> float:
        if self.initial is None or self.best is None:
            return 0.0
        before, after = self.initial.score, self.best.score
        if not (math.isfinite(before) and math.isfinite(after)):
            return 0.0
        return (after - before) / max(abs(before), 1e-12) * 100.0
