"""Attempt controller tests."""

import pytest

from researchflow.attempts import AttemptController
from researchflow.bus.inmemory import InMemoryEventBus
from researchflow.contracts import (
    ConfigurationError,
    ResearchAnswer,
    StepOutcome,
    WorkflowRun,
)
from researchflow.persistence import InMemoryStepStore
from researchflow.projector import ProgressProjector
from researchflow.quality import QualityGate
from tests.fixtures.fakes import no_sleep, of_topic


def make_controller(max_attempts=2, store=None):
    bus = InMemoryEventBus(history_size=500)
    projector = ProgressProjector(bus, "session-1")
    controller = AttemptController(
        projector, store or InMemoryStepStore(), max_attempts=max_attempts, sleep=no_sleep
    )
    return bus, controller


def make_run():
    return WorkflowRun(session_id="session-1", query="transformer architectures")


class GatedBody:
    """Gathers ``counts[attempt]`` items through a step, then gates them."""

    def __init__(self, counts):
        self.counts = counts
        self.seen_attempts = []
        self.step_calls = 0

    async def __call__(self, ctx):
        self.seen_attempts.append(ctx.attempt)

        async def gather():
            self.step_calls += 1
            return list(range(self.counts[min(ctx.attempt, len(self.counts) - 1)]))

        gathered = await ctx.steps.run("gather", gather)
        if not gathered.is_ok:
            return gathered
        quality = await ctx.gate(QualityGate(3), gathered.value)
        if not quality.is_ok:
            return quality
        return StepOutcome.ok(
            ResearchAnswer(
                answer="answer",
                model="fake",
                contexts_used=len(gathered.value),
                quality=quality.value,
            )
        )


@pytest.mark.asyncio
async def test_quality_failure_restarts_with_next_attempt():
    bus, controller = make_controller()
    body = GatedBody([1, 3])

    run = await controller.execute(make_run(), body)

    assert run.status == "succeeded"
    assert run.attempt == 1
    assert run.quality == "high"
    assert body.seen_attempts == [0, 1]
    assert body.step_calls == 2

    [result] = of_topic(bus.history("session-1"), "result")
    assert result["attempts"] == 2
    assert result["quality"] == "high"


@pytest.mark.asyncio
async def test_exhausted_attempts_fail_open_with_low_quality():
    bus, controller = make_controller(max_attempts=2)
    body = GatedBody([1])

    run = await controller.execute(make_run(), body)

    assert run.status == "succeeded"
    assert run.quality == "low"
    assert body.seen_attempts == [0, 1, 2]

    events = bus.history("session-1")
    [result] = of_topic(events, "result")
    assert result["attempts"] == 3
    assert result["quality"] == "low"
    assert of_topic(events, "error") == []


@pytest.mark.asyncio
@pytest.mark.parametrize("max_attempts", [0, 1, 3])
async def test_attempts_never_exceed_max_plus_one(max_attempts):
    _, controller = make_controller(max_attempts=max_attempts)

    async def always_retry(ctx):
        return StepOutcome.retryable("upstream flaky", step="fetch")

    calls = []

    async def body(ctx):
        calls.append(ctx.attempt)
        return await always_retry(ctx)

    run = await controller.execute(make_run(), body)

    assert run.status == "failed"
    assert calls == list(range(max_attempts + 1))


@pytest.mark.asyncio
async def test_terminal_outcome_fails_without_retry():
    bus, controller = make_controller()
    calls = []

    async def body(ctx):
        calls.append(ctx.attempt)
        return StepOutcome.terminal("no model configured", step="generate")

    run = await controller.execute(make_run(), body)

    assert run.status == "failed"
    assert run.error == "no model configured"
    assert calls == [0]
    [error] = of_topic(bus.history("session-1"), "error")
    assert error == {
        "step": "generate",
        "error": "no model configured",
        "recoverable": False,
        "timestamp": error["timestamp"],
    }


@pytest.mark.asyncio
async def test_raised_configuration_error_is_terminal():
    _, controller = make_controller()

    async def body(ctx):
        raise ConfigurationError("No context sources configured")

    run = await controller.execute(make_run(), body)
    assert run.status == "failed"
    assert run.attempt == 0


@pytest.mark.asyncio
async def test_unexpected_exception_becomes_single_error_event():
    bus, controller = make_controller()

    async def body(ctx):
        raise KeyError("boom")

    run = await controller.execute(make_run(), body)

    events = bus.history("session-1")
    assert run.status == "failed"
    assert len(of_topic(events, "error")) == 1
    assert of_topic(events, "result") == []


@pytest.mark.asyncio
@pytest.mark.parametrize("counts", [[3], [1, 3], [1], [0]])
async def test_exactly_one_terminal_event(counts):
    bus, controller = make_controller()
    await controller.execute(make_run(), GatedBody(counts))

    events = bus.history("session-1")
    terminal = [e for e in events if e.topic in ("result", "error")]
    assert len(terminal) == 1
    assert events[-1].topic == "result"


@pytest.mark.asyncio
async def test_quality_failure_surfaces_progress_then_retry_metadata():
    bus, controller = make_controller()
    await controller.execute(make_run(), GatedBody([1, 3]))

    events = bus.history("session-1")
    gate_events = [
        e.payload for e in events
        if e.topic == "progress" and e.payload["step"] == "quality-gate"
    ]
    assert gate_events[0]["status"] == "failed"
    assert "Insufficient" in gate_events[0]["message"]
    assert gate_events[1]["status"] == "completed"

    [retry] = of_topic(events, "metadata")
    assert retry["type"] == "retry"
    assert retry["details"]["nextAttempt"] == 1


@pytest.mark.asyncio
async def test_run_state_checkpointed_and_steps_cleared():
    store = InMemoryStepStore()
    _, controller = make_controller(store=store)
    run = make_run()

    await controller.execute(run, GatedBody([1, 3]))

    stored = await store.get_run(run.run_id)
    assert stored.status == "succeeded"
    assert stored.attempt == 1
    assert await store.get_step(run.run_id, 1, "gather") is None


@pytest.mark.asyncio
async def test_terminal_run_is_not_executed_again():
    _, controller = make_controller()
    run = make_run()
    run.status = "succeeded"
    calls = []

    async def body(ctx):
        calls.append(ctx.attempt)

    assert (await controller.execute(run, body)).status == "succeeded"
    assert calls == []
