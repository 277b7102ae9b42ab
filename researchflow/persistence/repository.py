"""Store abstraction for run state and step checkpoints."""

from __future__ import annotations

from typing import Protocol

from ..contracts import StepRecord, WorkflowRun


class StepStore(Protocol):
    """Protocol for run-lifetime checkpoint backends."""

    async def save_run(self, run: WorkflowRun) -> None:
        """Insert or update the run record."""

    async def get_run(self, run_id: str) -> WorkflowRun | None:
        """Retrieve the run by id."""

    async def list_runs(self) -> list[WorkflowRun]:
        """Return all known runs."""

    async def save_step(self, record: StepRecord) -> None:
        """Persist a memoized step result."""

    async def get_step(self, run_id: str, attempt: int, name: str) -> StepRecord | None:
        """Return the memoized result for ``(run_id, attempt, name)``."""

    async def clear_steps(self, run_id: str) -> None:
        """Drop every step checkpoint of the run."""
