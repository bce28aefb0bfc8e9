"""Configuration dataclasses for the reactor prediction and optimisation engine.

Every empirical constant (penalty magnitudes, heuristic confidence bands,
controller gains, cost coefficients) lives here rather than inside the
algorithms, so a deployment can recalibrate without touching model code.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class CorrelationConstants:
    """Physical constants and empirical factor shapes."""

    faraday: float = 96485.0  # C/mol
    gas_constant: float = 8.314  # J/(mol·K)
    # Fixed severe penalty once temperature exceeds the rated maximum.
    overheat_penalty: float = -0.5
    temperature_penalty_floor: float = -0.2
    temperature_penalty_slope: float = 0.3
    ph_penalty_floor: float = -0.3
    ph_penalty_slope: float = 0.15  # per pH unit
    humidity_penalty_floor: float = -0.1
    humidity_penalty_slope: float = 0.2
    catalyst_weight: float = 0.1
    membrane_weight: float = 0.05
    mixing_penalty_floor: float = -0.3
    # exp(709) is the float64 ceiling.
    exponent_limit: float = 700.0
    cottrell_min_time_s: float = 1e-6
    concentration_ratio_cap: float = 1.0 - 1e-6
    laminar_limit: float = 2300.0
    reference_transfer_rate: float = 5.0e8  # electrons/s per cell, Geobacter
    substrate_half_saturation: float = 0.5  # g/L (Monod Ks)
    bias_gain: float = 0.5  # current gain per volt of applied bias
    water_electrons: int = 2  # H2 + ½O2 → H2O
    substrate_molar_mass_g: float = 59.04  # acetate
    conductivity_ph_coefficient: float = 0.1  # per pH unit from neutral
    conductivity_temperature_coefficient: float = 0.02  # per °C above 25


@dataclass(frozen=True)
class HeuristicConstants:
    """Fixed heuristics used by the fidelity models."""

    # Not a statistical interval: a documented ±15 % band around the point.
    confidence_band: float = 0.15
    max_fuel_utilization: float = 95.0  # %
    waste_heat_fraction: float = 0.4
    hot_spot_rise_C: float = 3.0
    inlet_drop_C: float = 2.0
    max_nitrogen_crossover: float = 50.0  # %
    nitrogen_per_degree: float = 0.1  # % per °C
    oxidant_utilization_ratio: float = 0.5
    vapor_humidity_offset: float = 10.0  # %
    purge_temperature_C: float = 60.0
    pid_kp: float = 0.8
    pid_ki: float = 0.1
    pid_kd: float = 0.05
    pressure_ratio: float = 2.0
    water_molar_mass_g: float = 18.015
    purge_threshold: float = 0.5
    purge_interval_s: float = 300.0
    purge_duration_s: float = 30.0
    # Suggestion rules.
    temperature_suggestion_band_C: float = 5.0
    temperature_improvement_per_C: float = 0.5  # % per °C moved toward optimum
    temperature_suggestion_confidence: float = 0.9
    pressure_suggestion_below_bar: float = 2.0
    pressure_suggestion_target_bar: float = 2.5
    pressure_suggestion_improvement: float = 8.0  # %
    pressure_suggestion_confidence: float = 0.8
    ph_suggestion_band: float = 0.3
    ph_suggestion_confidence: float = 0.75
    # Warnings fire when a parameter sits within this fraction of a range edge.
    warning_margin: float = 0.1
    humidity_tolerance: float = 10.0  # %
    # Status is "good" while every check sits within this multiple of its tolerance.
    status_band: float = 2.0
    limiting_current_margin: float = 1.25
    limiting_current_warning_fraction: float = 0.9
    humidity_suggestion_confidence: float = 0.7
    flow_suggestion_confidence: float = 0.7
    flow_improvement_per_shortfall: float = 50.0  # % at zero feed
    # Mixing metrics.
    base_dead_zone: float = 0.15
    min_dead_zone: float = 0.02
    dead_zone_reynolds_scale: float = 1.0e4
    # Standard impeller sized at a third of the vessel diameter.
    impeller_diameter_ratio: float = 0.33


@dataclass(frozen=True)
class CacheConfig:
    """Prediction-cache sizing."""

    max_size: int = 1024
    ttl_seconds: float = 300.0
    round_digits: int = 6


@dataclass(frozen=True)
class OptimizerConfig:
    """Search hyper-parameters shared by the four algorithms."""

    max_iterations: int = 50
    tolerance: float = 1e-4
    convergence_window: int = 10
    population_size: int = 20
    max_workers: int = 4
    seed: int = 42
    penalty_weight: float = 10.0
    sensitivity_step: float = 0.05
    # Optimal-range scan around the best point.
    sensitivity_range_fraction: float = 0.05
    sensitivity_range_samples: int = 20
    # Gradient descent.
    learning_rate: float = 0.1
    fd_step: float = 0.01  # fraction of each parameter's span
    min_learning_rate: float = 1e-4
    step_shrink: float = 0.5  # learning-rate factor after a rejected step
    # Genetic algorithm.
    mutation_rate: float = 0.1
    mutation_sigma: float = 0.1  # fraction of span
    crossover_rate: float = 0.8
    elite_fraction: float = 0.1
    tournament_size: int = 3
    # Bayesian.
    n_initial: int = 8
    candidate_pool: int = 256
    acquisition: str = "ei"  # "ei" | "ucb" | "pi"
    ucb_kappa: float = 2.576
    ei_xi: float = 0.01
    gp_restarts: int = 2
    batch_size: int = 1
    rf_estimators: int = 100  # random-forest surrogate size
    # Particle swarm.
    inertia: float = 0.729
    cognitive: float = 1.49445
    social: float = 1.49445
    max_velocity: float = 0.2  # fraction of span per step


@dataclass(frozen=True)
class CostModel:
    """Operating-cost and durability coefficients."""

    base_cost: float = 500.0
    temperature_deviation_cost: float = 2.0  # per °C from optimum
    mixing_cost: float = 0.1  # per RPM
    bias_cost: float = 0.05  # per mV
    substrate_flow_cost: float = 0.01  # per g/L × L/h
    compression_cost: float = 20.0  # per bar above ambient
    air_flow_cost: float = 0.05
    durability_base_hours: float = 8760.0
    durability_temperature_scale: float = 50.0
    durability_ph_scale: float = 2.0
    high_bias_threshold_mV: float = 150.0
    high_bias_factor: float = 0.8
    high_mixing_threshold: float = 250.0
    high_mixing_factor: float = 0.9
    # Capital cost of electrodes and membrane, spread over the rated service life.
    default_electrode_cost_per_m2: float = 50.0
    default_membrane_cost_per_m2: float = 40.0
    amortization_hours: float = 40000.0


@dataclass(frozen=True)
class ControlConfig:
    """Transient control simulation: loop limits, disturbances and metric bands."""

    duration_s: float = 120.0
    time_step_s: float = 0.1
    # Controller outputs shift the plant target around its nominal value.
    thermal_output_limit_C: float = 20.0
    humidity_output_limit: float = 30.0  # %
    pressure_output_limit_bar: float = 1.0
    rate_limit_per_s: float = 5.0
    # Disturbance magnitude 1.0 maps to these excursions.
    temperature_spike_C: float = 20.0
    pressure_drop_bar: float = 0.5
    humidity_variation: float = 30.0  # %
    load_heating_C: float = 10.0
    # Nitrogen build-up on the anode, purged periodically.
    nitrogen_rate_per_s: float = 0.001
    nitrogen_bleed_per_s: float = 0.02
    nitrogen_purge_per_s: float = 0.8
    nitrogen_voltage_penalty: float = 0.3
    # Metrics.
    settling_band: float = 0.02  # fraction of the step
    response_fraction: float = 0.63
    steady_state_fraction: float = 0.2  # trailing share of the run
    temperature_variance_scale: float = 100.0  # °C²
    pressure_variance_scale: float = 10.0  # bar²
    # Recommendation thresholds.
    min_stability: float = 0.7
    min_performance: float = 0.8
    slow_response_s: float = 30.0
    high_kp: float = 1.0


@dataclass(frozen=True)
class EngineConfig:
    """Top-level knobs bundling every group."""

    correlations: CorrelationConstants = field(default_factory=CorrelationConstants)
    heuristics: HeuristicConstants = field(default_factory=HeuristicConstants)
    cache: CacheConfig = field(default_factory=CacheConfig)
    optimizer: OptimizerConfig = field(default_factory=OptimizerConfig)
    cost: CostModel = field(default_factory=CostModel)
    control: ControlConfig = field(default_factory=ControlConfig)
