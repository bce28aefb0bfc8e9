"""control/simulation.py — Fixed-step transient run of the reactor's control loops.

The plant is first order in temperature, humidity, pressure and stack
voltage, with time constants taken from the reactor type's
:class:`~reactor_engine.properties.tables.PlantDynamics`.  Each PID output
shifts the target its variable relaxes toward, around the nominal operating
point.  At every step the Basic model is evaluated at the plant state (held
inside the declared ranges) and gives the voltage the stack relaxes toward
and the current it draws.  Fuel cells also accumulate anode nitrogen, which
costs voltage until a purge removes it.

Loops run only for variables the reactor declares; the humidity loop also
needs a non-zero humidity time constant.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import numpy as np
from numpy.typing import NDArray

from ..config import ControlConfig, EngineConfig, HeuristicConstants
from ..domain import OperatingParameters, ReactorConfiguration
from ..engine.prediction import PredictionEngine
from ..engine.wire import PRECISION, to_camel
from ..errors import ValidationError
from ..models.basic import compute_basic
from ..models.outcome import ModelContext
from .pid import PIDController

logger = logging.getLogger(__name__)


class DisturbanceKind(Enum):
    LOAD_CHANGE = "load_change"
    TEMPERATURE_SPIKE = "temperature_spike"
    PRESSURE_DROP = "pressure_drop"
    HUMIDITY_VARIATION = "humidity_variation"
    FUEL_INTERRUPTION = "fuel_interruption"

    @classmethod
    def parse(cls, value: str | DisturbanceKind) -> DisturbanceKind:
        if isinstance(value, DisturbanceKind):
            return value
        try:
            return cls(str(value).strip().lower().replace("-", "_"))
        except ValueError:
            raise ValidationError(f"Unknown disturbance {value!r}", field="disturbances") from None


class PurgeStrategy(Enum):
    OFF = "off"
    TIME_BASED = "time_based"
    COMPOSITION_BASED = "composition_based"

    @classmethod
    def parse(cls, value: str | PurgeStrategy) -> PurgeStrategy:
        if isinstance(value, PurgeStrategy):
            return value
        try:
            return cls(str(value).strip().lower().replace("-", "_"))
        except ValueError:
            raise ValidationError(f"Unknown purge strategy {value!r}", field="purge") from None


@dataclass(frozen=True)
class Disturbance:
    """A rectangular upset; *magnitude* 1.0 is the configured full excursion."""

    kind: DisturbanceKind
    magnitude: float
    start_s: float
    duration_s: float

    def __post_init__(self) -> None:
        if not 0.0 <= self.magnitude <= 1.0:
            raise ValidationError(
                f"Disturbance magnitude {self.magnitude:g} outside [0, 1]",
                field="magnitude",
                valid_range=(0.0, 1.0),
            )
        if self.start_s < 0 or self.duration_s < 0:
            raise ValidationError("Disturbance timing must not be negative", field="disturbances")

    def active(self, t: float) -> bool:
        return self.start_s <= t <= self.start_s + self.duration_s


@dataclass(frozen=True)
class LoopSettings:
    """One PID loop.  ``None`` setpoint or gains fall back to the defaults."""

    enabled: bool = True
    setpoint: float | None = None
    kp: float | None = None
    ki: float | None = None
    kd: float | None = None


@dataclass(frozen=True)
class ControlScenario:
    duration_s: float | None = None
    time_step_s: float | None = None
    thermal: LoopSettings = field(default_factory=LoopSettings)
    humidity: LoopSettings = field(default_factory=LoopSettings)
    pressure: LoopSettings = field(default_factory=LoopSettings)
    purge: PurgeStrategy = PurgeStrategy.TIME_BASED
    disturbances: tuple[Disturbance, ...] = ()


# Named scenarios for the CLI and the request handler.
SCENARIO_PRESETS: dict[str, ControlScenario] = {
    "basic_test": ControlScenario(duration_s=120.0),
    "load_step": ControlScenario(
        duration_s=180.0,
        disturbances=(Disturbance(DisturbanceKind.LOAD_CHANGE, 0.3, 60.0, 60.0),),
    ),
    "thermal_disturbance": ControlScenario(
        duration_s=240.0,
        disturbances=(Disturbance(DisturbanceKind.TEMPERATURE_SPIKE, 0.5, 90.0, 30.0),),
    ),
    "comprehensive": ControlScenario(
        duration_s=300.0,
        disturbances=(
            Disturbance(DisturbanceKind.TEMPERATURE_SPIKE, 0.3, 60.0, 20.0),
            Disturbance(DisturbanceKind.PRESSURE_DROP, 0.4, 150.0, 30.0),
            Disturbance(DisturbanceKind.HUMIDITY_VARIATION, 0.2, 220.0, 40.0),
        ),
    ),
}


@dataclass(frozen=True)
class TimeSeries:
    time: NDArray[np.float64]  # s, end of each step
    temperature: NDArray[np.float64]  # °C
    humidity: NDArray[np.float64]  # %, NaN when not modelled
    pressure: NDArray[np.float64]  # bar, NaN when not modelled
    voltage: NDArray[np.float64]  # V
    power: NDArray[np.float64]  # W
    nitrogen: NDArray[np.float64]  # anode fraction


@dataclass(frozen=True)
class ControlSimulationResult:
    reactor_id: str
    loops: tuple[str, ...]
    stability: float  # 0–1
    performance: float  # mean / peak power
    efficiency: float  # %, run average
    overshoot_pct: float
    response_time_s: float | None
    settling_time_s: float | None
    recommendations: tuple[str, ...]
    series: TimeSeries


# ------------------------------------------------------------------ #
#  Plant                                                              #
# ------------------------------------------------------------------ #

@dataclass
class _Loop:
    name: str
    controller: PIDController
    time_constant: float


def _build_loop(
    name: str,
    loop: LoopSettings,
    default_setpoint: float,
    limit: float,
    time_constant: float,
    config: ReactorConfiguration,
    h: HeuristicConstants,
    control: ControlConfig,
) -> _Loop | None:
    if not loop.enabled or name not in config.parameter_names or time_constant <= 0:
        return None
    setpoint = default_setpoint if loop.setpoint is None else loop.setpoint
    rng = config.range_for(name)
    if not rng.contains(setpoint):
        raise ValidationError(
            f"{name} setpoint {setpoint:g} is outside [{rng.min:g}, {rng.max:g}]",
            field=to_camel(name),
            valid_range=rng.as_tuple(),
        )
    controller = PIDController(
        h.pid_kp if loop.kp is None else loop.kp,
        h.pid_ki if loop.ki is None else loop.ki,
        h.pid_kd if loop.kd is None else loop.kd,
        setpoint,
        output_min=-limit,
        output_max=limit,
        rate_limit=control.rate_limit_per_s,
    )
    return _Loop(name, controller, time_constant)


def _relax(value: float, target: float, dt: float, time_constant: float) -> float:
    return value + dt / time_constant * (target - value)


def _purging(strategy: PurgeStrategy, t: float, nitrogen: float, purge_until: float, h: HeuristicConstants) -> float:
    """Return the time the current purge ends (``-inf`` when none is running)."""
    if t < purge_until:
        return purge_until
    if strategy is PurgeStrategy.TIME_BASED and t % h.purge_interval_s < h.purge_duration_s:
        return t - t % h.purge_interval_s + h.purge_duration_s
    if strategy is PurgeStrategy.COMPOSITION_BASED and nitrogen > h.purge_threshold:
        return t + h.purge_duration_s
    return -math.inf


# ------------------------------------------------------------------ #
#  Metrics                                                            #
# ------------------------------------------------------------------ #

def step_response_metrics(
    time: NDArray[np.float64],
    values: NDArray[np.float64],
    start: float,
    setpoint: float,
    control: ControlConfig,
) -> tuple[float, float | None, float | None]:
    """(overshoot %, response time, settling time) of one loop.

    Overshoot and the settling band are relative to the step size; without
    a step they are relative to the setpoint.  Response time is when the
    variable first covers ``response_fraction`` of the step.  Settling time
    is when it last enters the band; ``None`` means never.
    """
    step = setpoint - start
    stepped = abs(step) > control.settling_band * max(abs(setpoint), 1.0)
    scale = abs(step) if stepped else max(abs(setpoint), 1.0)
    error = values - setpoint
    if stepped:
        overshoot = max(0.0, float(np.max(np.sign(step) * error))) / scale * 100.0
        reached = np.nonzero(np.abs(values - start) >= control.response_fraction * abs(step))[0]
        response = float(time[reached[0]]) if reached.size else None
    else:
        overshoot = float(np.max(np.abs(error))) / scale * 100.0
        response = 0.0
    outside = np.nonzero(np.abs(error) > control.settling_band * scale)[0]
    if not outside.size:
        settling: float | None = 0.0
    elif outside[-1] == len(values) - 1:
        settling = None
    else:
        settling = float(time[outside[-1] + 1])
    return overshoot, response, settling


def stability_index(series: list[tuple[NDArray[np.float64], float]], control: ControlConfig) -> float:
    """Mean of ``1 - variance / scale`` over the trailing steady-state window."""
    scores = []
    for values, scale in series:
        tail = values[-max(2, int(len(values) * control.steady_state_fraction)):]
        scores.append(max(0.0, 1.0 - float(np.var(tail)) / scale))
    return float(np.mean(scores)) if scores else 0.0


def _recommendations(
    config: ReactorConfiguration,
    scenario: ControlScenario,
    loops: dict[str, _Loop],
    stability: float,
    performance: float,
    response: float | None,
    fuel_cell: bool,
    humidity_tau: float,
    settings: EngineConfig,
) -> tuple[str, ...]:
    control, h = settings.control, settings.heuristics
    out: list[str] = []
    thermal = loops.get("temperature")
    if stability < control.min_stability:
        out.append("Reduce controller gains to improve stability")
        if thermal is not None and thermal.controller.kp > control.high_kp:
            out.append("Thermal controller Kp may be too high")
    if performance < control.min_performance:
        out.append("Power swings widely over the run; check setpoints and disturbance rejection")
    if thermal is not None and (response is None or response > control.slow_response_s):
        out.append("Slow thermal response; consider a higher proportional gain")
    if "humidity" in config.parameter_names and humidity_tau > 0 and "humidity" not in loops:
        out.append("Enable humidity control to keep the membrane hydrated")
    if thermal is not None:
        optimum = config.window.optimal_temperature
        if thermal.controller.setpoint < optimum - h.temperature_suggestion_band_C:
            out.append(f"Thermal setpoint {thermal.controller.setpoint:g} °C sits below the {optimum:g} °C optimum")
    if fuel_cell and scenario.purge is PurgeStrategy.OFF:
        out.append("Enable nitrogen purging to recover anode performance")
    return tuple(out)


# ------------------------------------------------------------------ #
#  Simulation                                                         #
# ------------------------------------------------------------------ #

def simulate_control(
    engine: PredictionEngine,
    config_or_id: ReactorConfiguration | str,
    params: OperatingParameters,
    scenario: ControlScenario | None = None,
) -> ControlSimulationResult:
    """Run *scenario* from the operating point *params*.

    Raises
    ------
    ValidationError
        Bad parameters, a setpoint outside its declared range, or a time
        step too coarse for the fastest active time constant.
    """
    config = engine.resolve(config_or_id)
    params, _ = engine.validate(config, params)
    scenario = scenario or ControlScenario()
    settings = engine.settings
    control, h = settings.control, settings.heuristics
    profile = engine.tables.profile(config.reactor_type)
    dynamics = profile.dynamics
    fuel_cell = config.reactor_type.is_fuel_cell

    duration = control.duration_s if scenario.duration_s is None else scenario.duration_s
    dt = control.time_step_s if scenario.time_step_s is None else scenario.time_step_s
    if dt <= 0 or duration < dt:
        raise ValidationError("Need 0 < timeStep <= duration", field="timeStep", valid_range=(0.0, duration))

    nominal = {
        "temperature": params.temperature if params.temperature is not None else config.window.optimal_temperature,
        "humidity": params.humidity,
        "pressure": params.pressure,
    }
    humidity_target = config.window.optimal_humidity
    if humidity_target is None:
        humidity_target = nominal["humidity"] or 0.0
    candidates = [
        _build_loop("temperature", scenario.thermal, config.window.optimal_temperature,
                    control.thermal_output_limit_C, dynamics.thermal_s, config, h, control),
        _build_loop("humidity", scenario.humidity, humidity_target,
                    control.humidity_output_limit, dynamics.humidity_s, config, h, control),
        _build_loop("pressure", scenario.pressure, nominal["pressure"] or 0.0,
                    control.pressure_output_limit_bar, dynamics.pressure_s, config, h, control),
    ]
    loops = {loop.name: loop for loop in candidates if loop is not None}
    fastest = min([dynamics.voltage_s] + [loop.time_constant for loop in loops.values()])
    if dt > fastest:
        raise ValidationError(
            f"Time step {dt:g} s exceeds the fastest time constant ({fastest:g} s)",
            field="timeStep",
            valid_range=(0.0, fastest),
        )

    def evaluate(state: dict[str, float | None], flow_scale: float) -> tuple[float, float, float]:
        changes: dict[str, float] = {}
        for name, value in state.items():
            if value is not None and name in config.parameter_names:
                changes[name] = config.range_for(name).clip(value)
        if params.flow_rate is not None and flow_scale != 1.0:
            changes["flow_rate"] = params.flow_rate * flow_scale
        basic = compute_basic(ModelContext(config, params.replace(**changes), engine.tables, settings))
        return basic.voltage, basic.current, basic.efficiency

    state: dict[str, float | None] = dict(nominal)
    voltage, _, _ = evaluate(state, 1.0)
    nitrogen = 0.0
    purge_until = -math.inf

    n = int(round(duration / dt))
    time = dt * np.arange(1, n + 1)
    out = {key: np.full(n, np.nan) for key in ("temperature", "humidity", "pressure", "voltage", "power", "nitrogen")}
    efficiencies = np.empty(n)

    for k in range(n):
        t = k * dt
        active = [d for d in scenario.disturbances if d.active(t)]
        offsets = {"temperature": 0.0, "humidity": 0.0, "pressure": 0.0}
        load, flow_scale = 1.0, 1.0
        for d in active:
            if d.kind is DisturbanceKind.TEMPERATURE_SPIKE:
                offsets["temperature"] += control.temperature_spike_C * d.magnitude
            elif d.kind is DisturbanceKind.PRESSURE_DROP:
                offsets["pressure"] -= control.pressure_drop_bar * d.magnitude
            elif d.kind is DisturbanceKind.HUMIDITY_VARIATION:
                offsets["humidity"] += control.humidity_variation * d.magnitude
            elif d.kind is DisturbanceKind.LOAD_CHANGE:
                load += d.magnitude
                offsets["temperature"] += control.load_heating_C * d.magnitude
            else:
                flow_scale *= 1.0 - d.magnitude

        taus = {"temperature": dynamics.thermal_s, "humidity": dynamics.humidity_s, "pressure": dynamics.pressure_s}
        for name, base in nominal.items():
            value = state[name]
            if value is None or base is None or taus[name] <= 0:
                continue
            loop = loops.get(name)
            u = loop.controller.update(value, dt) if loop is not None else 0.0
            state[name] = _relax(value, base + u + offsets[name], dt, taus[name])
        if state["humidity"] is not None:
            state["humidity"] = min(max(state["humidity"], 0.0), 100.0)
        if state["pressure"] is not None:
            state["pressure"] = max(state["pressure"], 0.0)

        if fuel_cell:
            if scenario.purge is not PurgeStrategy.OFF:
                purge_until = _purging(scenario.purge, t, nitrogen, purge_until, h)
            removal = control.nitrogen_purge_per_s if t < purge_until else control.nitrogen_bleed_per_s
            nitrogen = min(max(nitrogen + dt * (control.nitrogen_rate_per_s - removal * nitrogen), 0.0), 1.0)

        target, current, efficiency = evaluate(state, flow_scale)
        penalty = 1.0 - control.nitrogen_voltage_penalty * nitrogen
        voltage = _relax(voltage, max(0.0, target * penalty), dt, dynamics.voltage_s)

        out["temperature"][k] = state["temperature"]
        if state["humidity"] is not None:
            out["humidity"][k] = state["humidity"]
        if state["pressure"] is not None:
            out["pressure"][k] = state["pressure"]
        out["voltage"][k] = voltage
        out["power"][k] = max(0.0, voltage * current * load)
        out["nitrogen"][k] = nitrogen
        efficiencies[k] = efficiency * penalty

    series = TimeSeries(time=time, **out)
    overshoot, response, settling = 0.0, None, None
    thermal = loops.get("temperature")
    if thermal is not None:
        overshoot, response, settling = step_response_metrics(
            time, series.temperature, nominal["temperature"], thermal.controller.setpoint, control
        )
    tracked = [(series.temperature, control.temperature_variance_scale)]
    if "pressure" in loops:
        tracked.append((series.pressure, control.pressure_variance_scale))
    stability = stability_index(tracked, control)
    peak = float(np.max(series.power))
    performance = float(np.mean(series.power)) / peak if peak > 0 else 0.0

    logger.debug(
        "Control run for %s: %d steps, loops=%s, stability=%.3f",
        config.id, n, ",".join(loops), stability,
    )
    return ControlSimulationResult(
        reactor_id=config.id,
        loops=tuple(loops),
        stability=stability,
        performance=performance,
        efficiency=float(np.mean(efficiencies)),
        overshoot_pct=overshoot,
        response_time_s=response,
        settling_time_s=settling,
        recommendations=_recommendations(
            config, scenario, loops, stability, performance, response, fuel_cell, dynamics.humidity_s, settings
        ),
        series=series,
    )


def simulation_to_wire(result: ControlSimulationResult, every: int = 10) -> dict[str, Any]:
    """JSON body; the series keeps every *every*-th sample."""

    def num(value: float | None) -> float | None:
        if value is None or not math.isfinite(value):
            return None
        return round(float(value), PRECISION)

    s = result.series
    picked = slice(max(every, 1) - 1, None, max(every, 1))
    return {
        "reactorId": result.reactor_id,
        "loops": [to_camel(name) for name in result.loops],
        "stability": num(result.stability),
        "performance": num(result.performance),
        "efficiency": num(result.efficiency),
        "overshootPct": num(result.overshoot_pct),
        "responseTimeS": num(result.response_time_s),
        "settlingTimeS": num(result.settling_time_s),
        "recommendations": list(result.recommendations),
        "series": {
            name: [num(v) for v in getattr(s, name)[picked]]
            for name in ("time", "temperature", "humidity", "pressure", "voltage", "power", "nitrogen")
        },
    }
