"""SQLite implementation of the step store."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from ..contracts import StepRecord, WorkflowRun
from .repository import StepStore


class SQLiteStepStore(StepStore):
    """Checkpoint run state using SQLite so a restarted worker can resume."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS runs (
                run_id TEXT PRIMARY KEY,
                data TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS step_results (
                run_id TEXT NOT NULL,
                attempt INTEGER NOT NULL,
                name TEXT NOT NULL,
                result TEXT,
                completed_at TEXT NOT NULL,
                PRIMARY KEY (run_id, attempt, name)
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    # ------------------------------------------------------------------
    # Store API
    async def save_run(self, run: WorkflowRun) -> None:
        await asyncio.to_thread(
            self._execute,
            "INSERT OR REPLACE INTO runs (run_id, data) VALUES (?, ?)",
            run.run_id,
            run.model_dump_json(),
        )

    async def get_run(self, run_id: str) -> WorkflowRun | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT data FROM runs WHERE run_id = ?", run_id
        )
        if not row:
            return None
        return WorkflowRun.model_validate_json(row["data"])

    async def list_runs(self) -> list[WorkflowRun]:
        rows = await asyncio.to_thread(self._fetchall, "SELECT data FROM runs")
        return [WorkflowRun.model_validate_json(r["data"]) for r in rows]

    async def save_step(self, record: StepRecord) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT OR IGNORE INTO step_results (run_id, attempt, name, result, completed_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            record.run_id,
            record.attempt,
            record.name,
            json.dumps(record.result),
            record.completed_at.isoformat(),
        )

    async def get_step(self, run_id: str, attempt: int, name: str) -> StepRecord | None:
        row = await asyncio.to_thread(
            self._fetchone,
            """
            SELECT run_id, attempt, name, result, completed_at FROM step_results
            WHERE run_id = ? AND attempt = ? AND name = ?
            """,
            run_id,
            attempt,
            name,
        )
        if not row:
            return None
        return StepRecord(
            run_id=row["run_id"],
            attempt=row["attempt"],
            name=row["name"],
            result=json.loads(row["result"]) if row["result"] else None,
            completed_at=datetime.fromisoformat(row["completed_at"]),
        )

    async def clear_steps(self, run_id: str) -> None:
        await asyncio.to_thread(
            self._execute, "DELETE FROM step_results WHERE run_id = ?", run_id
        )
