"""search/optimizer.py — Optimisation run loop over the prediction engine.

The loop:
    1. Resolve hard bounds (infeasible bounds fail before any evaluation).
    2. Evaluate the starting point; it fixes the normalisation references.
    3. Ask the algorithm for a generation, clip it into the box and evaluate
       it on the worker pool, waiting for every candidate.
    4. Update best-so-far (feasible first, then fitness) and hand the
       generation back to the algorithm.
    5. Stop on convergence, iteration budget, timeout, cancellation or a
       generation in which every candidate failed.
"""

from __future__ import annotations

import dataclasses
import logging
import math
import threading
import time
from typing import Callable, Mapping, Sequence

import numpy as np

from ..config import CostModel, OptimizerConfig
from ..domain import (
    Algorithm,
    ConstraintSet,
    Evaluation,
    FidelityLevel,
    IterationRecord,
    MultiObjectiveMode,
    ObjectiveSpec,
    OperatingParameters,
    OptimizationRun,
    ReactorConfiguration,
    RunOutcome,
)
from ..engine.prediction import PredictionEngine
from ..errors import UnsupportedOperationError, ValidationError
from .base import SearchAlgorithm
from .bayesian import BayesianSearch
from .genetic import GeneticAlgorithm
from .gradient import GradientDescent
from .objective import Evaluator
from .pareto import pareto_front
from .sensitivity import analyze_sensitivity
from .space import SearchSpace
from .swarm import ParticleSwarm

logger = logging.getLogger(__name__)

AlgorithmFactory = Callable[[SearchSpace, OptimizerConfig, np.random.Generator], SearchAlgorithm]

ALGORITHMS: Mapping[Algorithm, AlgorithmFactory] = {
    Algorithm.GRADIENT_DESCENT: GradientDescent,
    Algorithm.GENETIC: GeneticAlgorithm,
    Algorithm.BAYESIAN: BayesianSearch,
    Algorithm.PARTICLE_SWARM: ParticleSwarm,
}


class CancellationToken:
    """Cooperative stop flag, checked between iterations."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def _rank(evaluation: Evaluation) -> tuple[bool, float]:
    return evaluation.feasible, evaluation.fitness


class OptimizationEngine:
    """Runs one of the search algorithms against a :class:`PredictionEngine`.

    Parameters
    ----------
    prediction:
        Black-box evaluator; its cache is shared by every run.
    settings:
        Default hyper-parameters; per-run overrides are passed to :meth:`optimize`.
    cost:
        Economic model behind the cost and durability objectives.
    algorithms:
        Algorithm → factory mapping; must cover every :class:`Algorithm`.
    """

    def __init__(
        self,
        prediction: PredictionEngine | None = None,
        settings: OptimizerConfig | None = None,
        cost: CostModel | None = None,
        algorithms: Mapping[Algorithm, AlgorithmFactory] | None = None,
    ) -> None:
        self.prediction = prediction or PredictionEngine()
        self.settings = settings or self.prediction.settings.optimizer
        self.cost = cost or self.prediction.settings.cost
        self._algorithms = dict(algorithms or ALGORITHMS)
        missing = set(Algorithm) - set(self._algorithms)
        if missing:
            raise ValueError(f"No search algorithm registered for {sorted(m.name for m in missing)}")

    def optimize(
        self,
        config_or_id: ReactorConfiguration | str,
        initial: OperatingParameters,
        objectives: ObjectiveSpec | Sequence[ObjectiveSpec],
        constraints: ConstraintSet | None = None,
        algorithm: Algorithm | str = Algorithm.GENETIC,
        fidelity: FidelityLevel | str | int = FidelityLevel.BASIC,
        max_iterations: int | None = None,
        tolerance: float | None = None,
        mode: MultiObjectiveMode | None = None,
        weights: Sequence[float] | None = None,
        timeout_s: float | None = None,
        cancel_token: CancellationToken | None = None,
        sensitivity: bool = False,
        seed: int | None = None,
    ) -> OptimizationRun:
        """Search the constrained box for parameters that improve *objectives*.

        Raises
        ------
        InfeasibleError
            Hard bounds are contradictory or outside the declared ranges.
        ValidationError
            Bad initial parameters, objectives or constraint names.
        UnsupportedOperationError
            *fidelity* exceeds what the configuration supports.
        """
        start = time.perf_counter()
        config = self.prediction.resolve(config_or_id)
        algo = Algorithm.parse(algorithm)
        level = FidelityLevel.parse(fidelity)
        if isinstance(objectives, ObjectiveSpec):
            objectives = (objectives,)
        objectives = tuple(objectives)
        if not objectives:
            raise ValidationError("At least one objective is required", field="objective")
        constraints = constraints or ConstraintSet()

        bounds = constraints.resolve_bounds(config)
        if level > config.max_fidelity:
            raise UnsupportedOperationError(
                f"{level.name} fidelity is not available for {config.id!r}"
            )
        if mode is None:
            mode = MultiObjectiveMode.SINGLE if len(objectives) == 1 else MultiObjectiveMode.WEIGHTED_SUM
        if mode is MultiObjectiveMode.SINGLE and len(objectives) > 1:
            raise ValidationError("Single-objective mode takes exactly one objective", field="mode")

        overrides: dict[str, object] = {}
        if max_iterations is not None:
            if max_iterations < 1:
                raise ValidationError("maxIterations must be at least 1", field="maxIterations")
            overrides["max_iterations"] = max_iterations
        if tolerance is not None:
            if tolerance < 0:
                raise ValidationError("tolerance must not be negative", field="tolerance")
            overrides["tolerance"] = tolerance
        if timeout_s is not None and timeout_s < 0:
            raise ValidationError("timeoutSeconds must not be negative", field="timeoutSeconds")
        if seed is not None:
            overrides["seed"] = seed
        settings = dataclasses.replace(self.settings, **overrides)

        initial, _ = self.prediction.validate(config, initial)
        space = SearchSpace.from_bounds(bounds)
        x0 = space.clip(initial.vector(space.names))
        evaluator = Evaluator(
            self.prediction, config, space, objectives, constraints,
            fidelity=level, mode=mode, weights=weights, settings=settings, cost=self.cost,
        )
        run = OptimizationRun(reactor_id=config.id, algorithm=algo, mode=mode, objectives=objectives)

        logger.info(
            "═══ OPTIMIZATION START ═══  reactor=%s  algorithm=%s  mode=%s  "
            "objectives=%s  iterations=%d  fidelity=%s",
            config.id, algo.value, mode.value,
            [o.label for o in objectives], settings.max_iterations, level.name.lower(),
        )

        first = evaluator.calibrate(x0)
        run.initial = run.best = first
        if not first.ok:
            run.outcome = RunOutcome.EVALUATION_FAILURE
            run.message = f"Initial parameters could not be evaluated: {first.error}"
            return self._finish(run, evaluator, start)

        rng = np.random.default_rng(settings.seed)
        search = self._algorithms[algo](space, settings, rng)
        search.initialize(space.to_unit(x0), first)
        deadline = start + timeout_s if timeout_s is not None else None

        best = first
        run.outcome = RunOutcome.MAX_ITERATIONS
        for iteration in range(1, settings.max_iterations + 1):
            if cancel_token is not None and cancel_token.cancelled:
                run.outcome = RunOutcome.CANCELLED
                run.message = f"Cancelled before iteration {iteration}"
                break
            if deadline is not None and time.perf_counter() >= deadline:
                run.outcome = RunOutcome.TIMED_OUT
                run.message = f"Timed out after {timeout_s:g} s"
                break

            units = search.suggest(best)
            evaluations = evaluator.evaluate_batch([space.from_unit(u) for u in units])
            failed = evaluations and all(not e.ok for e in evaluations)
            for evaluation in evaluations:
                if _rank(evaluation) > _rank(best):
                    best = evaluation
            run.history.append(
                IterationRecord(iteration, tuple(evaluations), best.fitness, best.parameters)
            )
            if failed:
                run.outcome = RunOutcome.EVALUATION_FAILURE
                run.message = f"Every candidate in iteration {iteration} failed: {evaluations[0].error}"
                logger.error("[iter %3d] all %d candidates failed", iteration, len(evaluations))
                break

            search.observe(units, evaluations)
            logger.info(
                "[iter %3d] evaluated=%d  failures=%d  best_fitness=%.6g",
                iteration, len(evaluations), run.history[-1].failures, best.fitness,
            )
            if search.has_converged(run.history):
                run.outcome = RunOutcome.CONVERGED
                run.converged = True
                break

        run.best = best
        if (
            run.outcome is not RunOutcome.EVALUATION_FAILURE
            and constraints.derived
            and not best.feasible
        ):
            run.outcome = RunOutcome.INFEASIBLE
            run.message = "No evaluated candidate satisfies the derived constraints"

        if mode is MultiObjectiveMode.PARETO:
            run.pareto_front = pareto_front(evaluator.history)
        run.n_evaluations = evaluator.n_evaluations
        if sensitivity and best.ok:
            run.sensitivity = analyze_sensitivity(
                evaluator, best.parameters.vector(space.names),
                settings.sensitivity_step,
                range_fraction=settings.sensitivity_range_fraction,
                range_samples=settings.sensitivity_range_samples,
            )
        return self._finish(run, evaluator, start)

    @staticmethod
    def _finish(run: OptimizationRun, evaluator: Evaluator, start: float) -> OptimizationRun:
        if not run.n_evaluations:
            run.n_evaluations = evaluator.n_evaluations
        run.elapsed_s = time.perf_counter() - start
        assert run.outcome is not None
        improvement = run.improvement_percent
        logger.info(
            "═══ OPTIMIZATION COMPLETE ═══  outcome=%s  iterations=%d  evaluations=%d  "
            "improvement=%s  (%.2f s)",
            run.outcome.value, len(run.history), run.n_evaluations,
            f"{improvement:+.1f}%" if math.isfinite(improvement) else "n/a", run.elapsed_s,
        )
        return run
