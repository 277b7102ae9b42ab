"""In-memory implementation of the step store."""

from __future__ import annotations

from typing import Dict, Tuple

from ..contracts import StepRecord, WorkflowRun
from .repository import StepStore


class InMemoryStepStore(StepStore):
    """Store run state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._runs: Dict[str, WorkflowRun] = {}
        self._steps: Dict[Tuple[str, int, str], StepRecord] = {}

    async def save_run(self, run: WorkflowRun) -> None:
        self._runs[run.run_id] = run.model_copy()

    async def get_run(self, run_id: str) -> WorkflowRun | None:
        run = self._runs.get(run_id)
        return run.model_copy() if run else None

    async def list_runs(self) -> list[WorkflowRun]:
        return [run.model_copy() for run in self._runs.values()]

    async def save_step(self, record: StepRecord) -> None:
        # first completion wins
        self._steps.setdefault((record.run_id, record.attempt, record.name), record)

    async def get_step(self, run_id: str, attempt: int, name: str) -> StepRecord | None:
        return self._steps.get((run_id, attempt, name))

    async def clear_steps(self, run_id: str) -> None:
        for key in [k for k in self._steps if k[0] == run_id]:
            del self._steps[key]
