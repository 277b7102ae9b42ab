"""Concurrent execution of independent specialist agents."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, List, Literal, Optional, Sequence

from pydantic import BaseModel, Field

from ..config import BackoffConfig
from ..constants import DEFAULT_AGENT_RETRIES
from ..contracts import ContextItem
from ..events import AgentStatus
from ..generation import TextGenerator
from ..projector import ProgressProjector
from ..throttle import Throttle
from ..utils.retry import backoff_from_config

logger = logging.getLogger(__name__)


class AgentRequest(BaseModel):
    """Input shared by every agent of one pool batch."""

    query: str
    session_id: str
    user_id: str = "anonymous"
    contexts: List[ContextItem] = Field(default_factory=list)


class AgentSpec:
    """Describes one specialist: what it asks and how hard it tries."""

    def __init__(
        self,
        name: str,
        generator: TextGenerator,
        instructions: str,
        label: Optional[str] = None,
        max_retries: int = DEFAULT_AGENT_RETRIES,
        throttle: Optional[Throttle] = None,
    ) -> None:
        self.name = name
        self.generator = generator
        self.instructions = instructions
        self.label = label or name
        self.max_retries = max_retries
        self.throttle = throttle

    def render_prompt(self, request: AgentRequest) -> str:
        context_text = "\n\n".join(
            f"[{i + 1}] {c.source}: {c.text}" for i, c in enumerate(request.contexts)
        )
        return (
            f"{self.instructions}\n\n"
            f"Query: {request.query}\n\n"
            f"Context:\n{context_text}"
        )


class AgentTask(BaseModel):
    """Mutable state of one agent while the pool runs it."""

    agent_id: str
    status: AgentStatus = "idle"
    retry_count: int = 0
    response: Optional[str] = None
    duration_ms: Optional[int] = None
    error: Optional[str] = None


class AgentResult(BaseModel):
    """Terminal outcome of one agent handed to synthesis."""

    agent: str
    status: Literal["completed", "failed"]
    model: str
    response: Optional[str] = None
    duration_ms: Optional[int] = None
    retry_count: int = 0
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "completed"


class AgentPool:
    """Run agents side by side and wait for all of them to settle.

    An agent that keeps failing is reported as ``failed`` with no response;
    it never cancels its siblings.
    """

    def __init__(
        self,
        projector: ProgressProjector,
        backoff: Optional[BackoffConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.projector = projector
        self.backoff = backoff or BackoffConfig()
        self._sleep = sleep
        self._clock = clock

    async def run_all(
        self, specs: Sequence[AgentSpec], request: AgentRequest
    ) -> List[AgentResult]:
        """Return one result per agent, in input order, once every agent is terminal."""
        tasks = [asyncio.create_task(self._run_agent(spec, request)) for spec in specs]
        results = await asyncio.gather(*tasks)
        failed = [r.agent for r in results if not r.succeeded]
        logger.info(
            f"Agent pool settled: {len(results) - len(failed)}/{len(results)} completed "
            f"for session_id={request.session_id}"
        )
        return list(results)

    def _elapsed_ms(self, started: float) -> int:
        return int((self._clock() - started) * 1000)

    async def _run_agent(self, spec: AgentSpec, request: AgentRequest) -> AgentResult:
        task = AgentTask(agent_id=spec.name)
        started = self._clock()

        task.status = "starting"
        await self.projector.agent_update(spec.name, "starting", f"{spec.label}: Starting")

        if spec.throttle is not None:
            waited = await spec.throttle.acquire(request.user_id)
            if waited:
                await self.projector.metadata(
                    "throttle",
                    f"{spec.label} throttled for {waited:.1f}s",
                    details={"agent": spec.name, "limit": spec.throttle.limit},
                )

        prompt = spec.render_prompt(request)
        while True:
            task.status = "running"
            await self.projector.agent_update(
                spec.name, "running", f"{spec.label}: Working on the query"
            )
            stream = self.projector.agent_stream(spec.name)
            try:
                generation = await spec.generator.generate(prompt, on_chunk=stream.push)
            except Exception as e:
                await stream.finish()
                task.error = str(e)
                if task.retry_count < spec.max_retries:
                    task.retry_count += 1
                    task.status = "retrying"
                    logger.warning(
                        f"Agent {spec.name} failed ({e}); retry {task.retry_count}/{spec.max_retries} "
                        f"for session_id={request.session_id}"
                    )
                    await self.projector.agent_update(
                        spec.name,
                        "retrying",
                        f"{spec.label}: {e}",
                        retry_count=task.retry_count,
                    )
                    await self._sleep(backoff_from_config(task.retry_count, self.backoff))
                    continue

                task.status = "failed"
                task.duration_ms = self._elapsed_ms(started)
                logger.warning(
                    f"Agent {spec.name} failed after {task.retry_count + 1} tries "
                    f"for session_id={request.session_id}: {e}"
                )
                await self.projector.agent_update(
                    spec.name,
                    "failed",
                    f"{spec.label}: {e}",
                    duration=task.duration_ms,
                    retry_count=task.retry_count,
                )
                return AgentResult(
                    agent=spec.name,
                    status="failed",
                    model=spec.generator.model_name,
                    duration_ms=task.duration_ms,
                    retry_count=task.retry_count,
                    error=task.error,
                )
            finally:
                # ends a cancelled try without awaiting the drain
                stream.end()

            await stream.finish()
            task.status = "completed"
            task.response = generation.text
            task.duration_ms = self._elapsed_ms(started)
            await self.projector.agent_update(
                spec.name,
                "completed",
                f"{spec.label}: Done",
                duration=task.duration_ms,
            )
            await self.projector.agent_result(
                spec.name, generation.text, generation.model, duration=task.duration_ms
            )
            return AgentResult(
                agent=spec.name,
                status="completed",
                model=generation.model,
                response=generation.text,
                duration_ms=task.duration_ms,
                retry_count=task.retry_count,
            )
