"""Run one research query against a local corpus and print its events.

Uses pydantic-ai's offline ``test`` model, so no API key is needed.
"""

import asyncio

from researchflow import ResearchDispatcher, ResearchWorkflow, get_event_bus
from researchflow.contracts import ContextItem
from researchflow.generation import PydanticAIGenerator
from researchflow.sources import StaticSource

NOTES = [
    ContextItem(
        source="notes",
        title="Attention Is All You Need",
        text="The Transformer relies entirely on self-attention.",
        relevance=0.9,
    ),
    ContextItem(
        source="notes",
        title="BERT",
        text="Bidirectional encoders pre-trained with masked language modelling.",
        relevance=0.8,
    ),
    ContextItem(
        source="notes",
        title="Vision Transformer",
        text="Images split into patches can be processed by a plain Transformer.",
        relevance=0.7,
    ),
]


async def main():
    bus = get_event_bus("inmemory")
    await bus.connect()

    workflow = ResearchWorkflow(
        bus,
        [StaticSource("notes", NOTES)],
        PydanticAIGenerator("test"),
    )
    dispatcher = ResearchDispatcher(workflow)

    session_id = "demo-session"
    events = bus.subscribe(session_id)
    await dispatcher.submit("How do transformers work?", session_id=session_id)

    async for event in events:
        print(f"[{event.topic}] {event.payload}")
        if event.topic in ("result", "error"):
            break

    run = await dispatcher.wait(session_id)
    print(f"Run {run.run_id} finished: {run.status} ({run.quality} quality)")
    await bus.disconnect()


if __name__ == "__main__":
    asyncio.run(main())
