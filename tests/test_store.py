from __future__ import annotations

from typing import Iterator

import pytest

from reactor_engine.domain import Algorithm, ObjectiveKind, ObjectiveSpec
from reactor_engine.store.results import ResultsDB


@pytest.fixture
def db(tmp_path) -> Iterator[ResultsDB]:
    store = ResultsDB(tmp_path / "runs.sqlite")
    yield store
    store.close()


def _run(optimizer, embr_params, algorithm: Algorithm, seed: int):
    return optimizer.optimize(
        "embr-001",
        embr_params,
        [ObjectiveSpec(ObjectiveKind.MAXIMIZE_POWER)],
        algorithm=algorithm,
        max_iterations=3,
        seed=seed,
    )


def test_record_and_read_back(db, optimizer, embr_params) -> None:
    run = _run(optimizer, embr_params, Algorithm.GENETIC, seed=1)
    run_id = db.record_run(run)
    rows = db.iterations(run_id)
    assert [r["iteration"] for r in rows] == [r.iteration for r in run.history]
    assert rows[-1]["parameters"] == pytest.approx(run.history[-1].best_parameters.as_dict())
    assert all(r["evaluated"] >= 1 for r in rows)


def test_top_n_orders_by_final_score(db, optimizer, embr_params) -> None:
    runs = [_run(optimizer, embr_params, algo, seed=7) for algo in (Algorithm.GENETIC, Algorithm.PARTICLE_SWARM)]
    for run in runs:
        db.record_run(run)
    top = db.top_n(5)
    assert len(top) == 2
    assert top[0]["score_after"] >= top[1]["score_after"]
    assert db.top_n(1, reactor_id="embr-001")[0]["score_after"] == pytest.approx(
        max(r.best.score for r in runs)
    )
    assert db.top_n(5, reactor_id="pem-stack-50") == []


def test_unknown_run_has_no_iterations(db) -> None:
    assert db.iterations("missing") == []
