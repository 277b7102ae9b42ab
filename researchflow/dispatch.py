"""Query dispatcher for researchflow."""

from __future__ import annotations

import asyncio
import logging
import uuid
from functools import partial
from typing import Dict, Optional

from .contracts import QuerySubmitted, WorkflowRun, run_id_for
from .projector import ProgressProjector
from .throttle import Throttle
from .workflow import ResearchWorkflow

logger = logging.getLogger(__name__)


class ResearchDispatcher:
    """Service accepting research queries and running them in the background.

    At most ``concurrency_limit`` runs execute at once and at most
    ``rate_limit`` runs start per ``rate_period`` seconds.
    """

    def __init__(
        self,
        workflow: ResearchWorkflow,
        concurrency_limit: Optional[int] = None,
        rate_limit: Optional[int] = None,
        rate_period: Optional[float] = None,
    ) -> None:
        defaults = workflow.config
        self.workflow = workflow
        self.concurrency_limit = concurrency_limit or defaults.concurrency_limit
        self._semaphore = asyncio.Semaphore(self.concurrency_limit)
        self._rate = Throttle(
            rate_limit or defaults.rate_limit, rate_period or defaults.rate_period
        )
        self._runs: Dict[str, asyncio.Task] = {}

    async def submit(
        self,
        query: str,
        session_id: Optional[str] = None,
        user_id: str = "anonymous",
    ) -> str:
        """Schedule a run for ``query``.

        Args:
            query: Research question to answer.
            session_id: Client-generated channel id; a random UUID when omitted.
            user_id: User submitting the query.

        Returns:
            Session identifier scoping the run's events.
        """
        session_id = session_id or str(uuid.uuid4())
        if session_id in self._runs:
            raise ValueError(f"Session {session_id} already has a run in progress")
        trigger = QuerySubmitted(query=query, session_id=session_id, user_id=user_id)
        task = asyncio.create_task(self._execute(trigger))
        self._runs[session_id] = task
        task.add_done_callback(partial(self._settled, session_id))
        logger.info(f"Submitted query for session_id={session_id}")
        return session_id

    def _settled(self, session_id: str, task: asyncio.Task) -> None:
        if self._runs.get(session_id) is task:
            del self._runs[session_id]
        if task.cancelled():
            logger.warning(f"Run for session_id={session_id} was cancelled")
            return
        error = task.exception()
        if error is not None:
            logger.error(
                f"Run for session_id={session_id} raised",
                exc_info=(type(error), error, error.__traceback__),
            )

    async def wait(self, session_id: str) -> WorkflowRun:
        """Wait for the run of ``session_id`` to settle and return it.

        A run that already settled is read back from the workflow's store.
        """
        task = self._runs.get(session_id)
        if task is not None:
            return await task
        run = await self.workflow.store.get_run(run_id_for(session_id))
        if run is None or not run.is_terminal:
            raise KeyError(f"No run submitted for session {session_id}")
        return run

    async def _execute(self, trigger: QuerySubmitted) -> WorkflowRun:
        projector = ProgressProjector(self.workflow.bus, trigger.session_id)
        waited = await self._rate.acquire("global")
        if waited:
            await projector.metadata(
                "rate_limit",
                f"Rate limited for {waited:.1f}s",
                details={"rateLimit": self._rate.limit, "ratePeriod": self._rate.period},
            )
        async with self._semaphore:
            await projector.metadata(
                "concurrency",
                f"Running with concurrency limit of {self.concurrency_limit}",
                details={
                    "concurrencyLimit": self.concurrency_limit,
                    "rateLimit": f"{self._rate.limit} per {self._rate.period:g}s",
                },
            )
            return await self.workflow.handle(trigger)
