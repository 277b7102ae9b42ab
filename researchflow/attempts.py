"""Attempt state machine for one research run."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from .config import BackoffConfig
from .constants import DEFAULT_MAX_ATTEMPTS, DEFAULT_STEP_RETRIES
from .contracts import (
    ResearchAnswer,
    RetryableFailure,
    StepOutcome,
    TerminalFailure,
    WorkflowRun,
)
from .persistence import StepStore
from .projector import ProgressProjector
from .quality import QualityGate
from .steps import StepExecutor
from .utils.retry import backoff_from_config

logger = logging.getLogger(__name__)


class AttemptContext:
    """Everything one attempt of a run needs: its steps and its budget."""

    def __init__(
        self,
        run: WorkflowRun,
        max_attempts: int,
        steps: StepExecutor,
        projector: ProgressProjector,
    ) -> None:
        self.run = run
        self.max_attempts = max_attempts
        self.steps = steps
        self.projector = projector

    @property
    def attempt(self) -> int:
        return self.run.attempt

    @property
    def attempts_remaining(self) -> int:
        return self.max_attempts - self.run.attempt

    async def gate(self, gate: QualityGate, result: Any) -> StepOutcome:
        """Apply ``gate`` to ``result``.

        Returns ``ok("high")`` when the gate passes, a retryable outcome when
        it fails and attempts remain, and ``ok("low")`` once attempts are
        exhausted so the run continues with what it has.
        """
        assessment = gate.evaluate(result)
        will_retry = not assessment.passed and self.attempts_remaining > 0
        await self.projector.quality_assessed(assessment, will_retry)
        if assessment.passed:
            return StepOutcome.ok("high", step="quality-gate")
        if will_retry:
            logger.warning(
                f"{assessment.reason}; will retry (attempt {self.attempt + 1}/{self.max_attempts}) "
                f"for session_id={self.run.session_id}"
            )
            return StepOutcome.retryable(assessment.reason, step="quality-gate")
        logger.warning(
            f"{assessment.reason}; proceeding with low quality after "
            f"{self.attempt + 1} attempts for session_id={self.run.session_id}"
        )
        return StepOutcome.ok("low", step="quality-gate")


AttemptBody = Callable[[AttemptContext], Awaitable[StepOutcome]]


class AttemptController:
    """Drive a run through ``Attempt(0..max_attempts)`` to a terminal state.

    A retryable outcome restarts the whole body with a fresh
    ``StepExecutor`` while attempts remain. The controller publishes exactly
    one ``result`` or one ``error`` event per run.
    """

    def __init__(
        self,
        projector: ProgressProjector,
        store: StepStore,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff: Optional[BackoffConfig] = None,
        step_retries: int = DEFAULT_STEP_RETRIES,
        step_timeout: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.projector = projector
        self.store = store
        self.max_attempts = max_attempts
        self.backoff = backoff or BackoffConfig()
        self.step_retries = step_retries
        self.step_timeout = step_timeout
        self._sleep = sleep

    def _context(self, run: WorkflowRun) -> AttemptContext:
        steps = StepExecutor(
            run.run_id,
            run.attempt,
            self.store,
            projector=self.projector,
            retries=self.step_retries,
            backoff=self.backoff,
            timeout=self.step_timeout,
            sleep=self._sleep,
        )
        return AttemptContext(run, self.max_attempts, steps, self.projector)

    async def execute(self, run: WorkflowRun, body: AttemptBody) -> WorkflowRun:
        """Run ``body`` until it succeeds, fails terminally or attempts run out."""
        if run.is_terminal:
            logger.info(f"Run {run.run_id} already {run.status}; nothing to do")
            return run

        run.status = "running"
        await self.store.save_run(run)

        while True:
            logger.info(
                f"Starting attempt {run.attempt + 1}/{self.max_attempts + 1} "
                f"for session_id={run.session_id}"
            )
            await self.projector.attempt_started(run, self.max_attempts)
            try:
                outcome = await body(self._context(run))
            except RetryableFailure as e:
                outcome = StepOutcome.retryable(e.reason, step="workflow")
            except TerminalFailure as e:
                outcome = StepOutcome.terminal(e.reason, step="workflow")
            except Exception as e:
                logger.exception(f"Unhandled error in run for session_id={run.session_id}")
                outcome = StepOutcome.terminal(f"Unexpected error: {e}", step="workflow")

            if outcome.is_ok and not isinstance(outcome.value, ResearchAnswer):
                outcome = StepOutcome.terminal(
                    "Workflow finished without producing an answer", step=outcome.step
                )

            if outcome.is_ok:
                return await self._succeed(run, outcome.value)

            if outcome.is_retryable and run.attempt < self.max_attempts:
                delay = backoff_from_config(run.attempt + 1, self.backoff)
                await self.projector.attempt_retry(run, outcome.reason or "", delay)
                await self._sleep(delay)
                run.attempt += 1
                await self.store.save_run(run)
                continue

            return await self._fail(run, outcome)

    async def _succeed(self, run: WorkflowRun, answer: ResearchAnswer) -> WorkflowRun:
        run.status = "succeeded"
        run.quality = answer.quality
        await self.store.save_run(run)
        await self.store.clear_steps(run.run_id)
        logger.info(
            f"Run succeeded after {run.attempt + 1} attempts with {run.quality} quality "
            f"for session_id={run.session_id}"
        )
        await self.projector.run_succeeded(run, answer)
        return run

    async def _fail(self, run: WorkflowRun, outcome: StepOutcome) -> WorkflowRun:
        reason = outcome.reason or "unknown failure"
        run.status = "failed"
        run.error = reason
        await self.store.save_run(run)
        await self.store.clear_steps(run.run_id)
        logger.error(
            f"Run failed at step {outcome.step} after {run.attempt + 1} attempts "
            f"for session_id={run.session_id}: {reason}"
        )
        await self.projector.run_failed(outcome.step or "workflow", reason)
        return run
