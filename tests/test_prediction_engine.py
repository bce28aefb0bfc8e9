from __future__ import annotations

import dataclasses
import threading

import pytest

from reactor_engine.domain import FidelityLevel, OperatingParameters
from reactor_engine.engine.prediction import DEFAULT_MODELS, PredictionEngine
from reactor_engine.errors import NumericalError, UnsupportedOperationError, ValidationError
from reactor_engine.models.outcome import ModelContext, ModelOutcome


def _failing(level: FidelityLevel):
    def model(ctx: ModelContext) -> ModelOutcome:
        return ModelOutcome.failure(level, NumericalError(f"{level.name.lower()} diverged"))

    return model


def test_predict_by_id(engine, pem_params) -> None:
    result = engine.predict("pem-stack-50", pem_params)
    assert result.fidelity is FidelityLevel.BASIC
    assert result.requested_fidelity is FidelityLevel.BASIC
    assert result.power > 0.0
    assert result.execution_time_ms >= 0.0


def test_fidelity_accepts_names(engine, pem_params) -> None:
    result = engine.predict("pem-stack-50", pem_params, "advanced")
    assert result.fidelity is FidelityLevel.ADVANCED


def test_unknown_reactor(engine, pem_params) -> None:
    with pytest.raises(ValidationError) as info:
        engine.predict("no-such-reactor", pem_params)
    assert info.value.field == "reactorId"


def test_out_of_range_names_field_and_range(engine, pem_params) -> None:
    with pytest.raises(ValidationError) as info:
        engine.predict("pem-stack-50", pem_params.replace(temperature=120.0))
    assert info.value.field == "temperature"
    assert info.value.valid_range == (20.0, 95.0)


def test_missing_parameter(engine) -> None:
    with pytest.raises(ValidationError) as info:
        engine.predict("pem-stack-50", OperatingParameters(temperature=70.0))
    assert info.value.field in {"flow_rate", "pressure", "humidity", "air_flow_rate"}


def test_undeclared_parameter(engine, pem_params) -> None:
    with pytest.raises(ValidationError) as info:
        engine.predict("pem-stack-50", pem_params.replace(ph=7.0))
    assert info.value.field == "ph"


def test_clamp_records_warning(engine, pem_params) -> None:
    result = engine.predict("pem-stack-50", pem_params.replace(temperature=120.0), clamp=True)
    assert any("temperature clamped" in w for w in result.warnings)
    reference = engine.predict("pem-stack-50", pem_params.replace(temperature=95.0))
    assert result.power == reference.power


def test_unsupported_fidelity(engine, catalog) -> None:
    with pytest.raises(UnsupportedOperationError):
        engine.predict("fractal-001", catalog.nominal("fractal-001"), FidelityLevel.ADVANCED)


def test_fallback_is_visible(pem_params) -> None:
    models = dict(DEFAULT_MODELS)
    models[FidelityLevel.ADVANCED] = _failing(FidelityLevel.ADVANCED)
    engine = PredictionEngine(models=models)
    result = engine.predict("pem-stack-50", pem_params, FidelityLevel.ADVANCED)
    assert result.fidelity is FidelityLevel.INTERMEDIATE
    assert result.requested_fidelity is FidelityLevel.ADVANCED
    assert any("advanced fidelity failed" in w for w in result.warnings)
    assert result.overpotentials is None
    assert result.thermal_profile is not None


def test_fallback_cascades_to_basic(pem_params) -> None:
    models = dict(DEFAULT_MODELS)
    models[FidelityLevel.ADVANCED] = _failing(FidelityLevel.ADVANCED)
    models[FidelityLevel.INTERMEDIATE] = _failing(FidelityLevel.INTERMEDIATE)
    result = PredictionEngine(models=models).predict("pem-stack-50", pem_params, FidelityLevel.ADVANCED)
    assert result.fidelity is FidelityLevel.BASIC
    assert len([w for w in result.warnings if "fidelity failed" in w]) == 2


def test_basic_failure_raises(pem_params) -> None:
    models = dict(DEFAULT_MODELS)
    models[FidelityLevel.BASIC] = _failing(FidelityLevel.BASIC)
    with pytest.raises(NumericalError):
        PredictionEngine(models=models).predict("pem-stack-50", pem_params)


def test_models_must_be_exhaustive() -> None:
    with pytest.raises(ValueError):
        PredictionEngine(models={FidelityLevel.BASIC: DEFAULT_MODELS[FidelityLevel.BASIC]})


def test_inline_configuration_with_unknown_organism(engine, catalog) -> None:
    config = dataclasses.replace(catalog.get("embr-001"), id="custom", species=("Imaginary microbe",))
    with pytest.raises(ValidationError) as info:
        engine.predict(config, catalog.nominal("embr-001"))
    assert info.value.field == "species"


def test_cache_returns_identical_result(engine, pem_params) -> None:
    first = engine.predict("pem-stack-50", pem_params, FidelityLevel.INTERMEDIATE)
    second = engine.predict("pem-stack-50", pem_params, FidelityLevel.INTERMEDIATE)
    assert second is first
    assert second.execution_time_ms <= first.execution_time_ms
    stats = engine.cache_stats()
    assert stats.hits == 1 and stats.misses == 1


def test_cache_distinguishes_fidelity(engine, pem_params) -> None:
    basic = engine.predict("pem-stack-50", pem_params, FidelityLevel.BASIC)
    advanced = engine.predict("pem-stack-50", pem_params, FidelityLevel.ADVANCED)
    assert basic is not advanced
    assert len(engine._cache) == 2
    engine.clear_cache()
    assert len(engine._cache) == 0


def test_concurrent_predictions_agree(engine, pem_params) -> None:
    results = []
    lock = threading.Lock()

    def worker() -> None:
        r = engine.predict("pem-stack-50", pem_params, FidelityLevel.ADVANCED)
        with lock:
            results.append(r)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(results) == 8
    assert all(r.base_fields() == results[0].base_fields() for r in results)


def test_cache_separates_configs_sharing_an_id(engine, pem, pem_params) -> None:
    shifted = dataclasses.replace(pem, window=dataclasses.replace(pem.window, optimal_temperature=50.0))
    first = engine.predict(pem, pem_params)
    second = engine.predict(shifted, pem_params)
    assert second is not first
    assert second.power != first.power
    # An equal configuration built separately still hits.
    again = engine.predict(dataclasses.replace(pem), pem_params)
    assert again is first
