"""Command line interface for running and following research queries."""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import List, Optional

import typer

from researchflow import (
    ResearchDispatcher,
    ResearchWorkflow,
    get_event_bus,
    get_step_store,
    load_config,
)
from researchflow.agents import build_specialists
from researchflow.config import ResearchflowConfig
from researchflow.constants import TERMINAL_TOPICS
from researchflow.contracts import ConfigurationError, WorkflowRun
from researchflow.events import BusEvent
from researchflow.generation import PydanticAIGenerator
from researchflow.security import InvalidSubscriptionToken, SubscriptionTokenIssuer
from researchflow.sources import ArxivSource

app = typer.Typer(help="CLI for researchflow")


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", help="Python logging level"),
) -> None:
    """Researchflow CLI entry point."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def format_event(event: BusEvent) -> str:
    """Render one bus event as a single line."""
    payload = event.payload
    if event.topic == "progress":
        return f"[progress] {payload.get('step')} {payload.get('status')}: {payload.get('message')}"
    if event.topic in ("ai-chunk", "agent-chunk"):
        if payload.get("isComplete"):
            return f"[{event.topic}] {payload.get('agent', 'answer')} done"
        return f"[{event.topic}] {payload.get('chunk')!r}"
    if event.topic == "agent-update":
        return f"[agent-update] {payload.get('agent')} {payload.get('status')}: {payload.get('message')}"
    if event.topic == "result":
        return (
            f"[result] quality={payload.get('quality')} attempts={payload.get('attempts')} "
            f"model={payload.get('model')}\n{payload.get('answer')}"
        )
    if event.topic == "error":
        return f"[error] {payload.get('step')}: {payload.get('error')}"
    details = {k: v for k, v in payload.items() if k != "timestamp"}
    return f"[{event.topic}] {details}"


def build_workflow(
    config: ResearchflowConfig,
    model: Optional[str] = None,
    agents: Optional[bool] = None,
    max_results: int = 5,
) -> ResearchWorkflow:
    """Assemble a workflow from configuration with arXiv as the context source."""
    model_name = model or config.models.default
    use_agents = config.agents.enabled if agents is None else agents
    specs = (
        build_specialists(lambda name: PydanticAIGenerator(model_name), config.agents)
        if use_agents
        else None
    )
    synthesizer = PydanticAIGenerator(config.models.synthesizer or model_name)
    return ResearchWorkflow(
        get_event_bus(config=config),
        [ArxivSource(max_results=max_results)],
        PydanticAIGenerator(model_name),
        store=get_step_store(config=config),
        agents=specs,
        synthesizer=synthesizer,
        config=config.workflow,
    )


async def _run_and_follow(
    workflow: ResearchWorkflow, query: str, session_id: str, user_id: str
) -> WorkflowRun:
    events = workflow.bus.subscribe(session_id, replay=True)
    dispatcher = ResearchDispatcher(workflow)
    await dispatcher.submit(query, session_id=session_id, user_id=user_id)

    async def follow() -> None:
        async for event in events:
            typer.echo(format_event(event))
            if event.topic in TERMINAL_TOPICS:
                break

    follower = asyncio.create_task(follow())
    run = await dispatcher.wait(session_id)
    try:
        await asyncio.wait_for(follower, timeout=5)
    except asyncio.TimeoutError:
        follower.cancel()
    await workflow.bus.disconnect()
    return run


@app.command("run")
def run_query(
    query: str,
    user_id: str = typer.Option("cli", help="User submitting the query"),
    session_id: Optional[str] = typer.Option(None, help="Session id (random UUID by default)"),
    agents: Optional[bool] = typer.Option(
        None, "--agents/--no-agents", help="Run the specialist agents before synthesis"
    ),
    model: Optional[str] = typer.Option(None, help="pydantic-ai model identifier"),
    max_results: int = typer.Option(5, help="Papers requested from arXiv"),
) -> None:
    """
    Run one research query and print its events as they arrive.

    Example:
        researchflow run "transformer architectures"
        researchflow run "graph neural networks" --agents --model openai:gpt-4o
    """
    config = load_config()
    workflow = build_workflow(config, model=model, agents=agents, max_results=max_results)
    session_id = session_id or str(uuid.uuid4())
    typer.echo(f"Session: {session_id}")
    run = asyncio.run(_run_and_follow(workflow, query, session_id, user_id))
    if run.status != "succeeded":
        raise typer.Exit(code=1)


@app.command("watch")
def watch(
    session_id: str,
    lifespan: Optional[float] = typer.Option(None, help="Stop after this many seconds"),
    token: Optional[str] = typer.Option(None, help="Subscription token to check first"),
    replay: bool = typer.Option(False, help="Replay buffered history first"),
) -> None:
    """
    Follow the events of a session published by another process.

    Example:
        researchflow watch 2b7c... --replay
    """
    config = load_config()
    if token is not None:
        try:
            SubscriptionTokenIssuer.from_config(config).verify(token, session_id)
        except InvalidSubscriptionToken as e:
            typer.secho(f"Invalid token: {e}", fg=typer.colors.RED)
            raise typer.Exit(code=1)

    bus = get_event_bus(config=config)

    async def follow() -> None:
        typer.echo("Connecting...")
        async for event in bus.subscribe(session_id, lifespan=lifespan, replay=replay):
            typer.echo(format_event(event))
            if event.topic in TERMINAL_TOPICS:
                break
        await bus.disconnect()

    asyncio.run(follow())


@app.command("token")
def token(
    session_id: str,
    topic: Optional[List[str]] = typer.Option(None, help="Limit the token to these topics"),
) -> None:
    """Print a subscription token for the session channel."""
    config = load_config()
    try:
        issuer = SubscriptionTokenIssuer.from_config(config)
        typer.echo(issuer.issue(session_id, topics=topic or None))
    except (ConfigurationError, ValueError) as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(code=1)
