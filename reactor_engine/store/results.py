"""store/results.py — Optimisation run ledger backed by SQLite."""

from __future__ import annotations

import json
import logging
import math
import sqlite3
import uuid
from pathlib import Path
from typing import Any

from ..domain import OptimizationRun

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS runs (
    run_id       TEXT    PRIMARY KEY,
    reactor_id   TEXT    NOT NULL,
    algorithm    TEXT    NOT NULL,
    mode         TEXT    NOT NULL,
    outcome      TEXT    NOT NULL,
    score_before REAL,
    score_after  REAL,
    evaluations  INTEGER NOT NULL,
    elapsed_s    REAL,
    created_at   TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
CREATE TABLE IF NOT EXISTS iterations (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id       TEXT    NOT NULL REFERENCES runs(run_id),
    iteration    INTEGER NOT NULL,
    parameters   TEXT    NOT NULL,
    fitness      REAL,
    evaluated    INTEGER NOT NULL,
    failures     INTEGER NOT NULL
);
"""


def _finite(value: float) -> float | None:
    return value if math.isfinite(value) else None


class ResultsDB:
    def __init__(self, db_path: str | Path = "reactor_runs.sqlite") -> None:
        self._conn = sqlite3.connect(str(db_path))
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.executescript(_SCHEMA)
        logger.info("Results DB opened at %s", db_path)

    def record_run(self, run: OptimizationRun) -> str:
        """Store *run* and its iteration log; returns the generated run id."""
        run_id = uuid.uuid4().hex
        assert run.outcome is not None
        self._conn.execute(
            "INSERT INTO runs "
            "(run_id, reactor_id, algorithm, mode, outcome, score_before, score_after, evaluations, elapsed_s) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                run_id,
                run.reactor_id,
                run.algorithm.value,
                run.mode.value,
                run.outcome.value,
                _finite(run.initial.score) if run.initial else None,
                _finite(run.best.score) if run.best else None,
                run.n_evaluations,
                run.elapsed_s,
            ),
        )
        self._conn.executemany(
            "INSERT INTO iterations (run_id, iteration, parameters, fitness, evaluated, failures) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            [
                (
                    run_id,
                    record.iteration,
                    json.dumps(record.best_parameters.as_dict()),
                    _finite(record.best_fitness),
                    len(record.evaluations),
                    record.failures,
                )
                for record in run.history
            ],
        )
        self._conn.commit()
        return run_id

    def top_n(self, n: int = 10, reactor_id: str | None = None) -> list[dict[str, Any]]:
        sql = (
            "SELECT run_id, reactor_id, algorithm, outcome, score_before, score_after "
            "FROM runs"
        )
        args: tuple[Any, ...] = (n,)
        if reactor_id is not None:
            sql += " WHERE reactor_id = ?"
            args = (reactor_id, n)
        cur = self._conn.execute(sql + " ORDER BY score_after DESC LIMIT ?", args)
        cols = [d[0] for d in cur.description]
        return [dict(zip(cols, row)) for row in cur.fetchall()]

    def iterations(self, run_id: str) -> list[dict[str, Any]]:
        cur = self._conn.execute(
            "SELECT iteration, parameters, fitness, evaluated, failures "
            "FROM iterations WHERE run_id = ? ORDER BY iteration",
            (run_id,),
        )
        cols = [d[0] for d in cur.description]
        rows = [dict(zip(cols, row)) for row in cur.fetchall()]
        for row in rows:
            row["parameters"] = json.loads(row["parameters"])
        return rows

    def close(self) -> None:
        self._conn.close()
