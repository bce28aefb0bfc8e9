from __future__ import annotations

import json

from reactor_engine.main import main
from reactor_engine.store.results import ResultsDB


def test_catalog_lists_reactors(capsys) -> None:
    assert main(["catalog"]) == 0
    body = json.loads(capsys.readouterr().out)
    ids = {r["id"] for r in body["reactors"]}
    assert {"embr-001", "pem-stack-50"} <= ids


def test_predict_overrides_nominal_point(capsys) -> None:
    code = main(["predict", "--reactor", "embr-001", "--fidelity", "intermediate", "--param", "pH=7.0"])
    assert code == 0
    body = json.loads(capsys.readouterr().out)
    assert body["reactorId"] == "embr-001"
    assert body["fidelity"] == "intermediate"


def test_predict_rejects_out_of_range(capsys) -> None:
    assert main(["predict", "--reactor", "pem-stack-50", "--param", "temperature=500"]) == 2
    body = json.loads(capsys.readouterr().out)
    assert body["field"] == "temperature"


def test_predict_rejects_non_numeric(capsys) -> None:
    assert main(["predict", "--reactor", "pem-stack-50", "--param", "temperature=hot"]) == 2


def test_optimize_records_run(tmp_path, capsys) -> None:
    db_path = tmp_path / "runs.sqlite"
    code = main([
        "optimize", "--reactor", "embr-001", "--algorithm", "pso", "--iterations", "2",
        "--bound", "flowRate=20:30", "--seed", "3", "--db", str(db_path),
    ])
    assert code == 0
    body = json.loads(capsys.readouterr().out)
    assert 20.0 <= body["optimizedParameters"]["flowRate"] <= 30.0
    db = ResultsDB(db_path)
    try:
        assert len(db.iterations(body["runId"])) == len(body["iterations"])
    finally:
        db.close()


def test_optimize_inverted_bound_fails(capsys) -> None:
    code = main(["optimize", "--reactor", "embr-001", "--bound", "temperature=40:30"])
    assert code == 1
    assert json.loads(capsys.readouterr().out)["error"] == "InfeasibleError"
