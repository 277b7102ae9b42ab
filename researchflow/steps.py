"""Memoized step execution for researchflow runs."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import TypeAdapter
from pydantic_core import to_jsonable_python

from .config import BackoffConfig
from .contracts import (
    RetryableFailure,
    StepOutcome,
    StepRecord,
    TerminalFailure,
)
from .persistence import StepStore
from .projector import ProgressProjector
from .utils.retry import backoff_from_config

logger = logging.getLogger(__name__)

StepFn = Callable[[], Awaitable[Any]]


class StepExecutor:
    """Runs named steps of one attempt, each at most once to completion.

    Results are checkpointed in ``store`` under ``(run_id, attempt, name)``.
    A new attempt gets a new executor and therefore never sees results of an
    earlier attempt. Exceptions other than ``RetryableFailure`` and
    ``TerminalFailure`` are treated as transient and retried locally up to
    ``retries`` times before the step reports a retryable outcome.
    """

    def __init__(
        self,
        run_id: str,
        attempt: int,
        store: StepStore,
        projector: Optional[ProgressProjector] = None,
        retries: int = 2,
        backoff: Optional[BackoffConfig] = None,
        timeout: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.run_id = run_id
        self.attempt = attempt
        self._store = store
        self._projector = projector
        self._retries = retries
        self._backoff = backoff or BackoffConfig()
        self._timeout = timeout
        self._sleep = sleep
        self._results: Dict[str, Any] = {}

    async def run(
        self,
        name: str,
        fn: StepFn,
        *,
        result_type: Any = None,
        retries: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> StepOutcome:
        """Execute ``fn`` as step ``name`` and return its tagged outcome.

        Args:
            name: Step name, unique within the attempt
            fn: Zero-argument coroutine function doing the work
            result_type: Type used to rebuild a checkpointed result
            retries: Override for the local transient retry count
            timeout: Seconds before one invocation counts as a transient failure
        """
        if name in self._results:
            logger.debug(f"Step {name} already completed for run_id={self.run_id}")
            return StepOutcome.ok(self._results[name], step=name)

        record = await self._store.get_step(self.run_id, self.attempt, name)
        if record is not None:
            value = record.result
            if result_type is not None:
                value = TypeAdapter(result_type).validate_python(value)
            logger.info(
                f"Reusing checkpoint of step {name} for run_id={self.run_id} attempt={self.attempt}"
            )
            self._results[name] = value
            return StepOutcome.ok(value, step=name)

        if self._projector is not None:
            await self._projector.step_started(name)

        outcome = await self._invoke(
            name,
            fn,
            self._retries if retries is None else retries,
            timeout if timeout is not None else self._timeout,
        )

        if outcome.is_ok:
            self._results[name] = outcome.value
            await self._store.save_step(
                StepRecord(
                    run_id=self.run_id,
                    attempt=self.attempt,
                    name=name,
                    result=to_jsonable_python(outcome.value),
                )
            )
            if self._projector is not None:
                await self._projector.step_completed(name)
        elif self._projector is not None:
            await self._projector.step_failed(name, outcome.reason or "unknown failure")
        return outcome

    async def _invoke(
        self, name: str, fn: StepFn, retries: int, timeout: Optional[float]
    ) -> StepOutcome:
        tries = 0
        while True:
            try:
                if timeout is not None:
                    value = await asyncio.wait_for(fn(), timeout=timeout)
                else:
                    value = await fn()
            except RetryableFailure as e:
                return StepOutcome.retryable(e.reason, step=name)
            except TerminalFailure as e:
                return StepOutcome.terminal(e.reason, step=name)
            except asyncio.TimeoutError:
                reason = f"Step {name} timed out after {timeout}s"
            except Exception as e:
                reason = f"Step {name} failed: {e}"
            else:
                if isinstance(value, StepOutcome):
                    return value.model_copy(update={"step": value.step or name})
                return StepOutcome.ok(value, step=name)

            if tries >= retries:
                logger.warning(
                    f"{reason}; giving up after {tries + 1} tries for run_id={self.run_id}"
                )
                return StepOutcome.retryable(reason, step=name)
            tries += 1
            delay = backoff_from_config(tries, self._backoff)
            logger.info(
                f"{reason}; retry {tries}/{retries} in {delay:.2f}s for run_id={self.run_id}"
            )
            if self._projector is not None:
                await self._projector.step_retrying(name, reason, tries, retries)
            await self._sleep(delay)
