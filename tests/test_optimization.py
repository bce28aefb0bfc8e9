from __future__ import annotations

import dataclasses

import numpy as np
import pytest

from reactor_engine.config import CostModel, EngineConfig, OptimizerConfig
from reactor_engine.domain import (
    Algorithm,
    ConstraintSet,
    DerivedConstraint,
    Evaluation,
    FidelityLevel,
    MultiObjectiveMode,
    ObjectiveKind,
    ObjectiveSpec,
    OperatingParameters,
    RunOutcome,
)
from reactor_engine.engine.prediction import DEFAULT_MODELS, PredictionEngine
from reactor_engine.errors import InfeasibleError, NumericalError, UnsupportedOperationError, ValidationError
from reactor_engine.models.outcome import ModelContext, ModelOutcome
from reactor_engine.search.bayesian import BayesianSearch
from reactor_engine.search.gradient import GradientDescent
from reactor_engine.search.objective import material_cost_per_hour, operating_cost
from reactor_engine.search.optimizer import CancellationToken, OptimizationEngine
from reactor_engine.search.pareto import best_compromise, dominates, pareto_front
from reactor_engine.search.space import SearchSpace

POWER = ObjectiveSpec(ObjectiveKind.MAXIMIZE_POWER)
ALL_ALGORITHMS = list(Algorithm)

CONSTRAINT_SETS = [
    ConstraintSet(),
    ConstraintSet(bounds={"temperature": (30.0, 38.0)}),
    ConstraintSet(bounds={"ph": (6.8, 7.4), "mixing_speed": (120.0, 180.0), "flow_rate": (20.0, 30.0)}),
]


def _within(params: OperatingParameters, bounds: dict) -> bool:
    return all(bounds[name].min - 1e-9 <= value <= bounds[name].max + 1e-9
               for name, value in params.as_dict().items())


@pytest.mark.parametrize("algorithm", ALL_ALGORITHMS)
@pytest.mark.parametrize("constraints", CONSTRAINT_SETS)
def test_hard_bounds_never_violated(optimizer, catalog, embr_params, algorithm, constraints) -> None:
    config = catalog.get("embr-001")
    bounds = constraints.resolve_bounds(config)
    run = optimizer.optimize("embr-001", embr_params, POWER, constraints, algorithm=algorithm, max_iterations=4)
    for record in run.history:
        for evaluation in record.evaluations:
            assert _within(evaluation.parameters, bounds)
    assert run.best is not None and _within(run.best.parameters, bounds)


@pytest.mark.parametrize("algorithm", ALL_ALGORITHMS)
def test_never_regresses(optimizer, embr_params, algorithm) -> None:
    run = optimizer.optimize("embr-001", embr_params, POWER, algorithm=algorithm)
    assert run.initial is not None and run.best is not None
    assert run.best.score >= run.initial.score
    assert run.best.result is not None and run.initial.result is not None
    assert run.best.result.power >= run.initial.result.power
    assert run.improvement_percent >= 0.0
    assert run.algorithm is algorithm
    assert run.mode is MultiObjectiveMode.SINGLE
    assert run.outcome in (RunOutcome.CONVERGED, RunOutcome.MAX_ITERATIONS)
    assert run.elapsed_s > 0.0


def test_genetic_single_individual_single_iteration(embr_params) -> None:
    settings = OptimizerConfig(population_size=1, max_iterations=1, max_workers=1)
    prediction = PredictionEngine()
    run = OptimizationEngine(prediction, settings=settings).optimize(
        "embr-001", embr_params, POWER, algorithm=Algorithm.GENETIC
    )
    direct = prediction.predict("embr-001", embr_params)
    assert run.best is not None and run.best.result is not None
    names = list(embr_params.as_dict())
    assert run.best.parameters.vector(names) == pytest.approx(embr_params.vector(names))
    assert run.best.result.power == direct.power
    assert len(run.history) == 1
    assert len(run.history[0].evaluations) == 1


def test_min_greater_than_max_is_infeasible_before_evaluation(embr_params) -> None:
    calls = []

    def counting(ctx: ModelContext) -> ModelOutcome:
        calls.append(ctx.params)
        return DEFAULT_MODELS[FidelityLevel.BASIC](ctx)

    models = dict(DEFAULT_MODELS)
    models[FidelityLevel.BASIC] = counting
    optimizer = OptimizationEngine(PredictionEngine(models=models))
    with pytest.raises(InfeasibleError):
        optimizer.optimize("embr-001", embr_params, POWER, ConstraintSet(bounds={"temperature": (40.0, 30.0)}))
    assert calls == []


def test_disjoint_bound_is_infeasible(optimizer, embr_params) -> None:
    with pytest.raises(InfeasibleError):
        optimizer.optimize("embr-001", embr_params, POWER, ConstraintSet(bounds={"temperature": (60.0, 70.0)}))


def test_unknown_bound_name(optimizer, embr_params) -> None:
    with pytest.raises(ValidationError):
        optimizer.optimize("embr-001", embr_params, POWER, ConstraintSet(bounds={"humidity": (10.0, 20.0)}))


def test_unsupported_fidelity(optimizer, catalog) -> None:
    with pytest.raises(UnsupportedOperationError):
        optimizer.optimize("fractal-001", catalog.nominal("fractal-001"), POWER, fidelity=FidelityLevel.ADVANCED)


def test_cancellation_before_first_iteration(optimizer, embr_params) -> None:
    token = CancellationToken()
    token.cancel()
    run = optimizer.optimize("embr-001", embr_params, POWER, cancel_token=token)
    assert run.outcome is RunOutcome.CANCELLED
    assert run.history == []
    assert run.best is run.initial


def test_timeout(optimizer, embr_params) -> None:
    run = optimizer.optimize("embr-001", embr_params, POWER, timeout_s=0.0)
    assert run.outcome is RunOutcome.TIMED_OUT
    assert run.best is not None and run.best.ok


def test_whole_generation_failure(embr_params) -> None:
    """Only the starting point evaluates; every neighbouring point fails."""

    def fragile(ctx: ModelContext) -> ModelOutcome:
        if ctx.params != embr_params:
            return ModelOutcome.failure(FidelityLevel.BASIC, NumericalError("diverged"))
        return DEFAULT_MODELS[FidelityLevel.BASIC](ctx)

    models = dict(DEFAULT_MODELS)
    models[FidelityLevel.BASIC] = fragile
    optimizer = OptimizationEngine(PredictionEngine(models=models))
    run = optimizer.optimize("embr-001", embr_params, POWER, algorithm=Algorithm.GRADIENT_DESCENT)
    assert run.outcome is RunOutcome.EVALUATION_FAILURE
    assert run.history[-1].failures == len(run.history[-1].evaluations)
    assert run.best is run.initial


def test_single_candidate_failure_does_not_abort(embr_params) -> None:
    def picky(ctx: ModelContext) -> ModelOutcome:
        if ctx.params.temperature is not None and ctx.params.temperature > 40.0:
            return ModelOutcome.failure(FidelityLevel.BASIC, NumericalError("too hot"))
        return DEFAULT_MODELS[FidelityLevel.BASIC](ctx)

    models = dict(DEFAULT_MODELS)
    models[FidelityLevel.BASIC] = picky
    settings = OptimizerConfig(max_iterations=4, population_size=10, max_workers=2)
    run = OptimizationEngine(PredictionEngine(models=models), settings=settings).optimize(
        "embr-001", embr_params, POWER, algorithm=Algorithm.GENETIC
    )
    assert run.outcome in (RunOutcome.CONVERGED, RunOutcome.MAX_ITERATIONS)
    assert run.best is not None and run.best.ok
    failed = [e for r in run.history for e in r.evaluations if not e.ok]
    assert all(e.fitness == -np.inf for e in failed)


def test_unreachable_derived_constraint_is_infeasible(optimizer, embr_params) -> None:
    constraints = ConstraintSet(derived=(DerivedConstraint("power", minimum=1e12),))
    run = optimizer.optimize("embr-001", embr_params, POWER, constraints, max_iterations=3)
    assert run.outcome is RunOutcome.INFEASIBLE
    assert run.message


def test_derived_constraint_min_greater_than_max() -> None:
    with pytest.raises(InfeasibleError):
        DerivedConstraint("efficiency", minimum=80.0, maximum=20.0)


def test_minimize_cost(optimizer, embr_params) -> None:
    run = optimizer.optimize("embr-001", embr_params, ObjectiveSpec(ObjectiveKind.MINIMIZE_COST))
    assert run.best is not None and run.initial is not None
    # Objectives are oriented so larger is better; cost is negated.
    assert run.best.objectives[0] >= run.initial.objectives[0]
    assert run.best.objectives[0] < 0.0


def test_weighted_sum_mode(optimizer, embr_params) -> None:
    objectives = [POWER, ObjectiveSpec(ObjectiveKind.MINIMIZE_COST)]
    run = optimizer.optimize("embr-001", embr_params, objectives, weights=[0.7, 0.3])
    assert run.mode is MultiObjectiveMode.WEIGHTED_SUM
    assert run.initial is not None
    # Each objective is normalised by its starting value.
    assert run.initial.score == pytest.approx(0.7 * 1.0 + 0.3 * -1.0)


def test_pareto_mode_guides_with_equal_weights(optimizer, embr_params) -> None:
    objectives = [POWER, ObjectiveSpec(ObjectiveKind.MAXIMIZE_DURABILITY)]
    run = optimizer.optimize(
        "embr-001", embr_params, objectives, mode=MultiObjectiveMode.PARETO, weights=[5.0, 0.0], max_iterations=1
    )
    assert run.initial is not None
    assert run.initial.score == pytest.approx(1.0)


def test_negative_tolerance_or_timeout_is_rejected(optimizer, embr_params) -> None:
    with pytest.raises(ValidationError) as info:
        optimizer.optimize("embr-001", embr_params, POWER, tolerance=-1.0)
    assert info.value.field == "tolerance"
    with pytest.raises(ValidationError) as info:
        optimizer.optimize("embr-001", embr_params, POWER, timeout_s=-5.0)
    assert info.value.field == "timeoutSeconds"


def test_single_mode_rejects_several_objectives(optimizer, embr_params) -> None:
    with pytest.raises(ValidationError):
        optimizer.optimize(
            "embr-001", embr_params, [POWER, ObjectiveSpec(ObjectiveKind.MAXIMIZE_DURABILITY)],
            mode=MultiObjectiveMode.SINGLE,
        )


def test_pareto_mode(optimizer, embr_params) -> None:
    objectives = [POWER, ObjectiveSpec(ObjectiveKind.MAXIMIZE_DURABILITY)]
    run = optimizer.optimize(
        "embr-001", embr_params, objectives, algorithm=Algorithm.GENETIC, mode=MultiObjectiveMode.PARETO
    )
    assert run.mode is MultiObjectiveMode.PARETO
    assert run.pareto_front
    for a in run.pareto_front:
        for b in run.pareto_front:
            assert not dominates(a.objectives, b.objectives)


def test_sensitivity(optimizer, embr_params) -> None:
    run = optimizer.optimize("embr-001", embr_params, POWER, max_iterations=3, sensitivity=True)
    names = [s.parameter for s in run.sensitivity]
    assert names == list(embr_params.as_dict())
    total = sum(s.sensitivity for s in run.sensitivity)
    assert total == pytest.approx(1.0)
    for s in run.sensitivity:
        assert s.optimal_range[0] <= s.optimal_range[1]


def test_sensitivity_range_settings(fast_settings, catalog, embr_params) -> None:
    settings = dataclasses.replace(fast_settings, sensitivity_range_fraction=1e6, sensitivity_range_samples=5)
    optimizer = OptimizationEngine(PredictionEngine(settings=EngineConfig(optimizer=settings)))
    run = optimizer.optimize("embr-001", embr_params, POWER, max_iterations=2, sensitivity=True)
    config = catalog.get("embr-001")
    for s in run.sensitivity:
        declared = config.range_for(s.parameter)
        assert s.optimal_range == pytest.approx((declared.min, declared.max))


def test_algorithm_aliases(optimizer, embr_params) -> None:
    run = optimizer.optimize("embr-001", embr_params, POWER, algorithm="PSO", max_iterations=2)
    assert run.algorithm is Algorithm.PARTICLE_SWARM
    with pytest.raises(ValidationError):
        optimizer.optimize("embr-001", embr_params, POWER, algorithm="simulated_annealing")


def test_fuel_cell_optimisation(optimizer, pem_params) -> None:
    run = optimizer.optimize(
        "pem-stack-50", pem_params, ObjectiveSpec(ObjectiveKind.MAXIMIZE_EFFICIENCY),
        algorithm=Algorithm.GRADIENT_DESCENT, fidelity=FidelityLevel.INTERMEDIATE,
    )
    assert run.best is not None and run.initial is not None
    assert run.best.score >= run.initial.score


# ------------------------------------------------------------------ #
#  Components                                                         #
# ------------------------------------------------------------------ #

def test_dominates() -> None:
    assert dominates((2.0, 2.0), (1.0, 2.0))
    assert not dominates((2.0, 2.0), (2.0, 2.0))
    assert not dominates((3.0, 1.0), (1.0, 3.0))


def _evaluation(objectives: tuple[float, ...]) -> Evaluation:
    return Evaluation(
        parameters=OperatingParameters(temperature=objectives[0]),
        result=None,
        objectives=objectives,
        score=sum(objectives),
        violation=0.0,
        fitness=sum(objectives),
    )


def test_pareto_front_filters_and_dedups() -> None:
    points = [_evaluation(o) for o in [(1.0, 5.0), (3.0, 3.0), (2.0, 2.0), (5.0, 1.0), (3.0, 3.0)]]
    front = pareto_front(points)
    assert sorted(e.objectives for e in front) == [(1.0, 5.0), (3.0, 3.0), (5.0, 1.0)]
    assert best_compromise(front).objectives == (3.0, 3.0)


def test_space_stays_in_bounds() -> None:
    space = SearchSpace(["temperature", "ph"], [25.0, 6.5], [45.0, 8.0])
    rng = np.random.default_rng(0)
    for u in space.latin_hypercube(rng, 16):
        x = space.from_unit(u)
        assert np.all(x >= space.lower) and np.all(x <= space.upper)
    assert np.allclose(space.from_unit(space.to_unit(np.array([30.0, 7.0]))), [30.0, 7.0])
    assert np.allclose(space.clip(np.array([100.0, 0.0])), [45.0, 6.5])


def test_latin_hypercube_fills_every_stratum() -> None:
    space = SearchSpace(["temperature", "ph", "flow_rate"], [25.0, 6.5, 10.0], [45.0, 8.0, 40.0])
    points = space.latin_hypercube(np.random.default_rng(3), 10)
    assert points.shape == (10, 3)
    for axis in range(3):
        assert sorted(np.floor(points[:, axis] * 10).astype(int)) == list(range(10))
    assert space.latin_hypercube(np.random.default_rng(3), 0).shape == (0, 3)


def test_bayesian_switches_to_forest_surrogate() -> None:
    space = SearchSpace(["temperature", "ph"], [25.0, 6.5], [45.0, 8.0])
    settings = OptimizerConfig(n_initial=4, candidate_pool=32, batch_size=1)
    search = BayesianSearch(space, settings, np.random.default_rng(1), surrogate_limit=6)
    start = np.array([0.5, 0.5])
    search.initialize(start, _evaluation((1.0,)))

    def score(u: np.ndarray) -> Evaluation:
        return _evaluation((float(-np.sum((u - 0.3) ** 2)),))

    while search.n_observed <= 6:
        batch = search.suggest(_evaluation((1.0,)))
        assert len(batch) >= 1
        search.observe(batch, [score(u) for u in batch])
    assert search.surrogate_kind == "gp"
    batch = search.suggest(_evaluation((1.0,)))
    assert search.surrogate_kind == "rf"
    assert len(batch) == 1
    assert all(np.all((u >= 0.0) & (u <= 1.0)) for u in batch)


def test_gradient_rejected_step_shrinks_learning_rate() -> None:
    space = SearchSpace(["temperature"], [25.0], [45.0])
    search = GradientDescent(space, OptimizerConfig(learning_rate=0.4, step_shrink=0.25), np.random.default_rng(0))
    search.initialize(np.array([0.5]), _evaluation((1.0,)))
    stencil = search.suggest(_evaluation((1.0,)))
    assert len(stencil) == 2
    search.observe(stencil, [_evaluation((2.0,)), _evaluation((0.0,))])
    (step,) = search.suggest(_evaluation((1.0,)))
    assert step == pytest.approx([0.9])
    search.observe([step], [_evaluation((0.5,))])
    (retry,) = search.suggest(_evaluation((1.0,)))
    assert retry == pytest.approx([0.6])


def test_bayesian_ignores_failed_observations() -> None:
    space = SearchSpace(["temperature"], [25.0], [45.0])
    search = BayesianSearch(space, OptimizerConfig(), np.random.default_rng(0))
    failed = Evaluation(
        parameters=OperatingParameters(temperature=30.0), result=None, objectives=(),
        score=-np.inf, violation=np.inf, fitness=-np.inf, error="boom",
    )
    search.initialize(np.array([0.5]), _evaluation((1.0,)))
    search.observe([np.array([0.1])], [failed])
    assert search.n_observed == 1


def test_engine_config_feeds_optimizer_defaults() -> None:
    settings = OptimizerConfig(max_iterations=2)
    optimizer = OptimizationEngine(PredictionEngine(settings=EngineConfig(optimizer=settings)))
    assert optimizer.settings.max_iterations == 2


def test_material_cost_amortises_electrodes_and_membrane(tables, pem) -> None:
    cost = CostModel()
    area = pem.geometry.active_area_m2 * pem.geometry.cell_count
    per_m2 = (tables.electrode(pem.anode).cost_per_m2 + tables.electrode(pem.cathode).cost_per_m2
              + tables.membrane(pem.membrane).cost_per_m2)
    assert material_cost_per_hour(pem, tables, cost) == pytest.approx(per_m2 * area / cost.amortization_hours)
    unknown = dataclasses.replace(pem, anode="Unobtainium")
    expected = (per_m2 - tables.electrode(pem.anode).cost_per_m2 + cost.default_electrode_cost_per_m2)
    assert material_cost_per_hour(unknown, tables, cost) == pytest.approx(expected * area / cost.amortization_hours)


def test_material_cost_enters_cost_metric(pem, pem_params) -> None:
    window = pem.window
    bare = operating_cost(pem_params, window, CostModel())
    assert operating_cost(pem_params, window, CostModel(), material_cost=2.5) == pytest.approx(bare + 2.5)
