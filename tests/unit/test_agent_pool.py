"""Agent pool tests."""

import asyncio

import pytest

from researchflow.agents import AgentPool, AgentRequest, AgentSpec, build_specialists, synthesis_prompt
from researchflow.bus.inmemory import InMemoryEventBus
from researchflow.config import AgentsConfig
from researchflow.projector import ProgressProjector
from researchflow.throttle import Throttle
from tests.fixtures.fakes import (
    FakeGenerator,
    SlowGenerator,
    make_items,
    no_sleep,
    of_topic,
    pending_drains,
)


def make_pool():
    bus = InMemoryEventBus(history_size=1000)
    pool = AgentPool(ProgressProjector(bus, "s"), sleep=no_sleep)
    return bus, pool


def make_request():
    return AgentRequest(
        query="transformer architectures",
        session_id="s",
        user_id="alice",
        contexts=make_items(3),
    )


def statuses(events, agent):
    return [p["status"] for p in of_topic(events, "agent-update") if p["agent"] == agent]


@pytest.mark.asyncio
async def test_one_failing_agent_does_not_cancel_siblings():
    bus, pool = make_pool()
    specs = [
        AgentSpec("analyst", FakeGenerator(["analysis"]), "Analyse."),
        AgentSpec("summarizer", FakeGenerator(["summary"]), "Summarise."),
        AgentSpec("factChecker", FakeGenerator(failures=99), "Check.", max_retries=2),
        AgentSpec("classifier", FakeGenerator(["topics"]), "Classify."),
    ]

    results = await pool.run_all(specs, make_request())

    assert [r.agent for r in results] == ["analyst", "summarizer", "factChecker", "classifier"]
    failed = [r for r in results if not r.succeeded]
    assert len(failed) == 1
    assert failed[0].agent == "factChecker"
    assert failed[0].response is None
    assert failed[0].retry_count == 2
    assert [r.response for r in results if r.succeeded] == ["analysis", "summary", "topics"]


@pytest.mark.asyncio
async def test_agent_status_transitions_are_published():
    bus, pool = make_pool()
    flaky = FakeGenerator(["ok"], failures=1)
    broken = FakeGenerator(failures=99)
    specs = [
        AgentSpec("flaky", flaky, "Do it.", max_retries=2),
        AgentSpec("broken", broken, "Do it.", max_retries=2),
    ]

    await pool.run_all(specs, make_request())

    events = bus.history("s")
    assert statuses(events, "flaky") == [
        "starting", "running", "retrying", "running", "completed",
    ]
    assert statuses(events, "broken") == [
        "starting", "running", "retrying", "running", "retrying", "running", "failed",
    ]
    retries = [
        p["retryCount"] for p in of_topic(events, "agent-update")
        if p["agent"] == "broken" and p["status"] == "retrying"
    ]
    assert retries == [1, 2]
    assert broken.calls == 3

    results = of_topic(events, "agent-result")
    assert [r["agent"] for r in results] == ["flaky"]
    assert results[0]["response"] == "ok"


@pytest.mark.asyncio
async def test_chunks_streamed_in_order_with_completion_marker():
    bus, pool = make_pool()
    specs = [
        AgentSpec("a", FakeGenerator(["1", "2", "3"]), "A."),
        AgentSpec("b", FakeGenerator(["x", "y"]), "B."),
    ]

    await pool.run_all(specs, make_request())

    chunks = of_topic(bus.history("s"), "agent-chunk")
    a_chunks = [(c["chunk"], c["isComplete"]) for c in chunks if c["agent"] == "a"]
    assert a_chunks == [("1", False), ("2", False), ("3", False), ("", True)]

    events = bus.history("s")
    a_topics = [
        e.topic for e in events
        if e.payload.get("agent") == "a" and e.topic in ("agent-chunk", "agent-result")
    ]
    assert a_topics[-1] == "agent-result"


@pytest.mark.asyncio
async def test_prompt_contains_query_and_numbered_contexts():
    generator = FakeGenerator()
    _, pool = make_pool()

    await pool.run_all([AgentSpec("a", generator, "Be brief.")], make_request())

    [prompt] = generator.prompts
    assert prompt.startswith("Be brief.")
    assert "Query: transformer architectures" in prompt
    assert "[1] arxiv: Abstract of paper 0" in prompt


@pytest.mark.asyncio
async def test_throttle_is_charged_per_user():
    throttle = Throttle(limit=5, period=60)
    _, pool = make_pool()
    spec = AgentSpec("a", FakeGenerator(), "A.", throttle=throttle)

    await pool.run_all([spec], make_request())
    await pool.run_all([spec], make_request())

    assert throttle.in_window("alice") == 2
    assert throttle.in_window("bob") == 0


def test_build_specialists_uses_config():
    specs = build_specialists(
        lambda name: FakeGenerator(model_name=f"model-{name}"),
        AgentsConfig(max_retries=1, throttle_limit=3),
    )

    assert [s.name for s in specs] == ["analyst", "summarizer", "factChecker", "classifier"]
    assert all(s.max_retries == 1 for s in specs)
    assert all(s.throttle.limit == 3 for s in specs)
    assert specs[0].generator.model_name == "model-analyst"


@pytest.mark.asyncio
async def test_synthesis_prompt_marks_missing_agents():
    _, pool = make_pool()
    specs = [
        AgentSpec("analyst", FakeGenerator(["deep"]), "A."),
        AgentSpec("classifier", FakeGenerator(failures=99), "C.", max_retries=0),
    ]
    results = await pool.run_all(specs, make_request())

    prompt = synthesis_prompt("transformer architectures", results)

    assert "## analyst\ndeep" in prompt
    assert "## classifier\n(unavailable:" in prompt


@pytest.mark.asyncio
async def test_retried_agent_restarts_its_stream_from_empty():
    bus, pool = make_pool()
    flaky = FakeGenerator(["full answer"], failures=1, partial=["half"])

    [result] = await pool.run_all([AgentSpec("flaky", flaky, "Do it.")], make_request())

    events = bus.history("s")
    chunks = [(p["chunk"], p["isComplete"]) for p in of_topic(events, "agent-chunk")]
    assert chunks == [("half", False), ("", True), ("full answer", False), ("", True)]
    assert result.response == "full answer"

    order = [
        "marker" if e.topic == "agent-chunk" and e.payload["isComplete"] else e.payload.get("status")
        for e in events
        if e.topic in ("agent-chunk", "agent-update")
    ]
    assert order.index("marker") < order.index("retrying")


@pytest.mark.asyncio
async def test_cancelled_pool_leaves_no_stream_running():
    bus, pool = make_pool()
    specs = [
        AgentSpec("slow", SlowGenerator(), "S."),
        AgentSpec("slower", SlowGenerator(), "S."),
    ]

    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(pool.run_all(specs, make_request()), timeout=0.05)
    await asyncio.sleep(0.01)

    assert pending_drains() == []
    markers = [p["agent"] for p in of_topic(bus.history("s"), "agent-chunk") if p["isComplete"]]
    assert sorted(markers) == ["slow", "slower"]
