"""Projection of run lifecycle transitions onto session events."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from .bus import BaseEventBus
from .contracts import ContextItem, QualityAssessment, ResearchAnswer, WorkflowRun
from .events import (
    AgentChunk,
    AgentResultEvent,
    AgentStatus,
    AgentUpdate,
    AIChunk,
    ContextsUpdate,
    ErrorNotice,
    EventPayload,
    FinalResult,
    MetadataType,
    MetadataUpdate,
    ProgressStatus,
    ProgressUpdate,
    SourceResult,
    Topic,
)

logger = logging.getLogger(__name__)


class ChunkStream:
    """Ordered, non-blocking publisher for one stream of text fragments.

    ``push`` only enqueues; a single drain task publishes fragments in the
    order they were pushed. Every stream ends with exactly one
    ``isComplete`` marker, including a producer that failed or was cancelled,
    so consumers can start again from empty on the next stream.
    """

    def __init__(
        self,
        projector: "ProgressProjector",
        topic: Topic,
        build: Callable[[str, bool], EventPayload],
    ) -> None:
        self._projector = projector
        self._topic = topic
        self._build = build
        self._queue: asyncio.Queue[Optional[EventPayload]] = asyncio.Queue()
        self._drain_task = asyncio.create_task(self._drain())
        self._ended = False
        self.text = ""

    def push(self, chunk: str) -> None:
        if not chunk or self._ended:
            return
        self.text += chunk
        self._queue.put_nowait(self._build(chunk, False))

    def end(self) -> None:
        """Queue the end-of-stream marker without waiting for it to be published.

        Safe to call more than once and from a cancelled task; the drain task
        finishes on its own once the marker is out.
        """
        if self._ended:
            return
        self._ended = True
        self._queue.put_nowait(self._build("", True))
        self._queue.put_nowait(None)

    async def finish(self) -> str:
        """End the stream and wait until every fragment has been published."""
        self.end()
        await self._drain_task
        return self.text

    async def _drain(self) -> None:
        while True:
            payload = await self._queue.get()
            if payload is None:
                return
            await self._projector.emit(self._topic, payload)


class ProgressProjector:
    """Map internal transitions of one session to typed bus events.

    Every method is safe to call from workflow code: publish failures are
    logged and swallowed.
    """

    def __init__(self, bus: BaseEventBus, session_id: str) -> None:
        self.bus = bus
        self.session_id = session_id

    async def emit(self, topic: Topic, payload: EventPayload) -> bool:
        try:
            await self.bus.publish(self.session_id, topic, payload.to_payload())
            return True
        except Exception:
            logger.exception(
                f"Failed to publish {topic} event for session_id={self.session_id}"
            )
            return False

    # ------------------------------------------------------------------
    # Run and attempt lifecycle
    async def run_started(self, run: WorkflowRun) -> None:
        await self.progress(
            "initialization",
            "completed",
            f'Starting research query: "{run.query}"',
            metadata={"userId": run.user_id},
        )

    async def attempt_started(self, run: WorkflowRun, max_attempts: int) -> None:
        await self.progress(
            "attempt",
            "starting",
            f"Attempt {run.attempt + 1}/{max_attempts + 1}",
            metadata={"attempt": run.attempt, "maxAttempts": max_attempts},
        )

    async def attempt_retry(self, run: WorkflowRun, reason: str, delay: float) -> None:
        await self.metadata(
            "retry",
            f"Restarting run after attempt {run.attempt + 1}: {reason}",
            details={
                "attempt": run.attempt,
                "nextAttempt": run.attempt + 1,
                "delaySeconds": round(delay, 3),
            },
        )

    async def run_succeeded(self, run: WorkflowRun, answer: ResearchAnswer) -> None:
        await self.emit(
            "result",
            FinalResult(
                answer=answer.answer,
                model=answer.model,
                tokens_used=answer.tokens_used,
                contexts_used=answer.contexts_used,
                attempts=run.attempt + 1,
                quality=answer.quality,
            ),
        )

    async def run_failed(self, step: str, error: str) -> None:
        await self.emit("error", ErrorNotice(step=step, error=error, recoverable=False))

    # ------------------------------------------------------------------
    # Steps and quality gate
    async def step_started(self, name: str) -> None:
        await self.progress(name, "starting", f"Running {name}")

    async def step_completed(self, name: str) -> None:
        await self.progress(name, "completed", f"Completed {name}")

    async def step_failed(self, name: str, reason: str) -> None:
        await self.progress(name, "failed", reason)

    async def step_retrying(self, name: str, reason: str, retry: int, retries: int) -> None:
        await self.progress(
            name,
            "in_progress",
            f"Retry {retry}/{retries}: {reason}",
            metadata={"retry": retry, "maxRetries": retries},
        )

    async def quality_assessed(
        self, assessment: QualityAssessment, will_retry: bool
    ) -> None:
        metadata = {
            "measure": assessment.measure,
            "threshold": assessment.threshold,
            "willRetry": will_retry,
        }
        if assessment.passed:
            await self.progress("quality-gate", "completed", assessment.reason, metadata)
        elif will_retry:
            await self.progress("quality-gate", "failed", assessment.reason, metadata)
        else:
            await self.progress(
                "quality-gate",
                "completed",
                f"{assessment.reason}. Proceeding with low quality.",
                metadata,
            )

    # ------------------------------------------------------------------
    # Sources and generation
    async def source_result(
        self,
        source: str,
        success: bool,
        count: Optional[int] = None,
        error: Optional[str] = None,
    ) -> None:
        await self.emit(
            "source-result",
            SourceResult(source=source, success=success, count=count, error=error),
        )

    async def contexts(self, total_found: int, top: List[ContextItem]) -> None:
        await self.emit("contexts", ContextsUpdate(total_found=total_found, top_contexts=top))

    def answer_stream(self) -> ChunkStream:
        return ChunkStream(
            self,
            "ai-chunk",
            lambda chunk, done: AIChunk(chunk=chunk, is_complete=done),
        )

    # ------------------------------------------------------------------
    # Agents
    async def agent_update(
        self,
        agent: str,
        status: AgentStatus,
        message: str,
        duration: Optional[int] = None,
        retry_count: Optional[int] = None,
    ) -> None:
        await self.emit(
            "agent-update",
            AgentUpdate(
                agent=agent,
                status=status,
                message=message,
                duration=duration,
                retry_count=retry_count,
            ),
        )

    def agent_stream(self, agent: str) -> ChunkStream:
        return ChunkStream(
            self,
            "agent-chunk",
            lambda chunk, done: AgentChunk(agent=agent, chunk=chunk, is_complete=done),
        )

    async def agent_result(
        self, agent: str, response: str, model: str, duration: Optional[int] = None
    ) -> None:
        await self.emit(
            "agent-result",
            AgentResultEvent(agent=agent, response=response, model=model, duration=duration),
        )

    # ------------------------------------------------------------------
    # Generic topics
    async def progress(
        self,
        step: str,
        status: ProgressStatus,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        await self.emit(
            "progress",
            ProgressUpdate(step=step, status=status, message=message, metadata=metadata),
        )

    async def metadata(
        self,
        type: MetadataType,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        await self.emit("metadata", MetadataUpdate(type=type, message=message, details=details))
