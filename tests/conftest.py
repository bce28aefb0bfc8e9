from __future__ import annotations

import pytest

from reactor_engine.config import EngineConfig, OptimizerConfig
from reactor_engine.domain import OperatingParameters, ReactorConfiguration
from reactor_engine.engine.prediction import PredictionEngine
from reactor_engine.properties.catalog import ReactorCatalog
from reactor_engine.properties.tables import PropertyTables, default_tables
from reactor_engine.search.optimizer import OptimizationEngine


@pytest.fixture
def tables() -> PropertyTables:
    return default_tables()


@pytest.fixture
def catalog() -> ReactorCatalog:
    return ReactorCatalog()


@pytest.fixture
def engine(catalog: ReactorCatalog) -> PredictionEngine:
    return PredictionEngine(catalog=catalog)


@pytest.fixture
def fast_settings() -> OptimizerConfig:
    return OptimizerConfig(
        max_iterations=8,
        population_size=6,
        max_workers=2,
        n_initial=4,
        candidate_pool=64,
        gp_restarts=0,
        convergence_window=4,
    )


@pytest.fixture
def optimizer(fast_settings: OptimizerConfig) -> OptimizationEngine:
    prediction = PredictionEngine(settings=EngineConfig(optimizer=fast_settings))
    return OptimizationEngine(prediction)


@pytest.fixture
def pem(catalog: ReactorCatalog) -> ReactorConfiguration:
    return catalog.get("pem-stack-50")


@pytest.fixture
def pem_params() -> OperatingParameters:
    return OperatingParameters(temperature=70.0, flow_rate=5.0, pressure=1.5, humidity=90.0, air_flow_rate=20.0)


@pytest.fixture
def embr_params(catalog: ReactorCatalog) -> OperatingParameters:
    return catalog.nominal("embr-001")
