"""engine/prediction.py — Prediction façade: validation, dispatch, fallback, caching.

Design notes
------------
* **Validation first** — every declared parameter must be present and in
  range before any model runs.  Out-of-range values raise
  :class:`ValidationError` unless the caller opts into clamping, in which
  case the clamp is recorded as a warning on the result.
* **Closed dispatch** — one model per :class:`FidelityLevel`; the mapping is
  checked for exhaustiveness at construction.
* **Visible fallback** — models return a :class:`ModelOutcome`.  A failed
  outcome is retried at the next lower level and the mismatch is written
  into ``warnings``; ``fidelity`` always names the level that produced the
  numbers.  Failure at Basic raises :class:`NumericalError`.
* **Cache** — keyed on (config id, config hash, rounded parameter vector,
  fidelity).  A hit returns the stored object unchanged, so its
  ``execution_time_ms`` is the original computation time.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Callable, Mapping

from ..config import EngineConfig
from ..domain import FidelityLevel, OperatingParameters, PredictionResult, ReactorConfiguration
from ..errors import NumericalError, UnsupportedOperationError, ValidationError
from ..models.advanced import predict_advanced
from ..models.basic import predict_basic
from ..models.intermediate import predict_intermediate
from ..models.outcome import ModelContext, ModelOutcome
from ..properties.catalog import ReactorCatalog
from ..properties.tables import PropertyTables, default_tables
from .cache import CacheStats, PredictionCache

logger = logging.getLogger(__name__)

ModelFn = Callable[[ModelContext], ModelOutcome]

DEFAULT_MODELS: Mapping[FidelityLevel, ModelFn] = {
    FidelityLevel.BASIC: predict_basic,
    FidelityLevel.INTERMEDIATE: predict_intermediate,
    FidelityLevel.ADVANCED: predict_advanced,
}


class PredictionEngine:
    """Validating, caching façade over the fidelity models.

    Parameters
    ----------
    catalog:
        Reactor registry used to resolve ids.  Defaults to the reference catalog.
    tables:
        Property tables injected into every model.
    settings:
        Engine-wide constants and cache sizing.
    models:
        Fidelity → model mapping; must cover every level.
    """

    def __init__(
        self,
        catalog: ReactorCatalog | None = None,
        tables: PropertyTables | None = None,
        settings: EngineConfig | None = None,
        models: Mapping[FidelityLevel, ModelFn] | None = None,
    ) -> None:
        self.settings = settings or EngineConfig()
        self.tables = tables or default_tables()
        self.catalog = catalog or ReactorCatalog()
        self._models = dict(models or DEFAULT_MODELS)
        missing = set(FidelityLevel) - set(self._models)
        if missing:
            raise ValueError(f"No model registered for {sorted(m.name for m in missing)}")
        self._cache = PredictionCache(
            max_size=self.settings.cache.max_size,
            ttl_seconds=self.settings.cache.ttl_seconds,
        )

    # ---------------------------------------------------------------- #
    #  Resolution and validation                                       #
    # ---------------------------------------------------------------- #

    def resolve(self, config_or_id: ReactorConfiguration | str) -> ReactorConfiguration:
        if isinstance(config_or_id, ReactorConfiguration):
            self.tables.validate(config_or_id)
            return config_or_id
        return self.catalog.get(config_or_id)

    def validate(
        self,
        config: ReactorConfiguration,
        params: OperatingParameters,
        clamp: bool = False,
    ) -> tuple[OperatingParameters, tuple[str, ...]]:
        """Check *params* against the declared ranges.

        Returns the (possibly clamped) parameters and any clamp warnings.
        """
        declared = config.parameter_names
        for name in params.as_dict():
            if name not in declared:
                raise ValidationError(f"Reactor {config.id!r} does not accept {name!r}", field=name)

        changes: dict[str, float] = {}
        warnings: list[str] = []
        for name in declared:
            rng = config.range_for(name)
            value = params.get(name)
            if value is None:
                raise ValidationError(
                    f"Missing parameter {name!r}", field=name, valid_range=rng.as_tuple()
                )
            if not math.isfinite(value):
                raise ValidationError(
                    f"Parameter {name!r} is not finite", field=name, valid_range=rng.as_tuple()
                )
            if rng.contains(value):
                continue
            if not clamp:
                raise ValidationError(
                    f"{name}={value:g} is outside [{rng.min:g}, {rng.max:g}]",
                    field=name,
                    valid_range=rng.as_tuple(),
                )
            changes[name] = rng.clip(value)
            warnings.append(f"{name} clamped from {value:g} to {changes[name]:g}")
        if changes:
            params = params.replace(**changes)
        return params, tuple(warnings)

    def cache_key(
        self,
        config: ReactorConfiguration,
        params: OperatingParameters,
        fidelity: FidelityLevel,
    ) -> tuple[object, ...]:
        digits = self.settings.cache.round_digits
        vector = tuple(round(float(v), digits) for v in params.vector(config.parameter_names))
        return (config.id, config, vector, int(fidelity))

    # ---------------------------------------------------------------- #
    #  Predict                                                         #
    # ---------------------------------------------------------------- #

    def predict(
        self,
        config_or_id: ReactorConfiguration | str,
        params: OperatingParameters,
        fidelity: FidelityLevel | str | int = FidelityLevel.BASIC,
        clamp: bool = False,
    ) -> PredictionResult:
        """Predict performance at *fidelity* (or the highest level that succeeds)."""
        config = self.resolve(config_or_id)
        level = FidelityLevel.parse(fidelity)
        if level > config.max_fidelity:
            raise UnsupportedOperationError(
                f"{level.name} fidelity is not available for {config.id!r} "
                f"(max {config.max_fidelity.name})"
            )
        params, clamp_warnings = self.validate(config, params, clamp=clamp)

        key = self.cache_key(config, params, level)
        result = self._cache.get(key)
        if result is None:
            result = self._compute(config, params, level)
            self._cache.put(key, result)
        else:
            logger.debug("Cache hit for %s at %s", config.id, level.name)

        if clamp_warnings:
            return result.replace(warnings=clamp_warnings + result.warnings)
        return result

    def _compute(
        self,
        config: ReactorConfiguration,
        params: OperatingParameters,
        requested: FidelityLevel,
    ) -> PredictionResult:
        ctx = ModelContext(config, params, self.tables, self.settings)
        notes: list[str] = []
        level: FidelityLevel | None = requested
        start = time.perf_counter()
        while level is not None:
            outcome = self._models[level](ctx)
            if outcome.ok:
                assert outcome.result is not None
                result = outcome.result
                if result.fidelity is not level:
                    raise ValueError(
                        f"{level.name} model reported fidelity {result.fidelity.name}"
                    )
                return result.replace(
                    requested_fidelity=requested,
                    execution_time_ms=(time.perf_counter() - start) * 1000.0,
                    warnings=tuple(notes) + result.warnings,
                )
            lower = level.lower()
            if lower is None:
                raise NumericalError(
                    f"Basic model failed for {config.id!r}: {outcome.error}"
                ) from outcome.error
            logger.warning(
                "%s model failed for %s (%s); falling back to %s",
                level.name, config.id, outcome.error, lower.name,
            )
            notes.append(
                f"{level.name.lower()} fidelity failed ({outcome.error}); "
                f"result computed at {lower.name.lower()} fidelity"
            )
            level = lower
        raise AssertionError("unreachable")

    # ---------------------------------------------------------------- #
    #  Cache management                                                #
    # ---------------------------------------------------------------- #

    def cache_stats(self) -> CacheStats:
        return self._cache.stats()

    def clear_cache(self) -> None:
        self._cache.clear()
