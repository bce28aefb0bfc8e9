"""models/outcome.py — Shared context and explicit success/failure results for the fidelity models."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from ..config import EngineConfig
from ..domain import FidelityLevel, OperatingParameters, PredictionResult, ReactorConfiguration
from ..errors import NumericalError
from ..properties.tables import MicrobialSpecies, PropertyTables, ReactorTypeProfile

logger = logging.getLogger(__name__)

# Failures a model reports as an outcome rather than raising.
_RECOVERABLE = (NumericalError, ArithmeticError, ValueError)


@dataclass(frozen=True)
class ModelContext:
    """Everything a fidelity model reads; parameters are already validated."""

    config: ReactorConfiguration
    params: OperatingParameters
    tables: PropertyTables
    settings: EngineConfig = field(default_factory=EngineConfig)

    @property
    def profile(self) -> ReactorTypeProfile:
        return self.tables.profile(self.config.reactor_type)

    @property
    def temperature(self) -> float:
        t = self.params.temperature
        return self.config.window.optimal_temperature if t is None else t

    def organisms(self) -> list[MicrobialSpecies]:
        found = (self.tables.organism(name) for name in self.config.species)
        return [s for s in found if s is not None]


@dataclass(frozen=True)
class ModelOutcome:
    """Result-or-error returned by every fidelity model."""

    fidelity: FidelityLevel
    result: PredictionResult | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.result is not None

    @classmethod
    def success(cls, result: PredictionResult) -> ModelOutcome:
        return cls(result.fidelity, result=result)

    @classmethod
    def failure(cls, fidelity: FidelityLevel, error: Exception) -> ModelOutcome:
        return cls(fidelity, error=error)


def guarded(
    fidelity: FidelityLevel,
    build: Callable[[ModelContext], PredictionResult],
    ctx: ModelContext,
) -> ModelOutcome:
    """Run *build* and convert numerical failures into a failed outcome."""
    try:
        return ModelOutcome.success(build(ctx))
    except _RECOVERABLE as exc:
        logger.debug("%s model failed for %s: %s", fidelity.name, ctx.config.id, exc)
        return ModelOutcome.failure(fidelity, exc)
