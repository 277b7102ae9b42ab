"""Default specialist agents and the synthesis prompt."""

from __future__ import annotations

from typing import Callable, List, Sequence

from ..config import AgentsConfig
from ..generation import TextGenerator
from ..throttle import Throttle
from .pool import AgentResult, AgentSpec

SPECIALISTS = {
    "analyst": (
        "Analyst",
        "You are a deep analysis specialist. Provide a comprehensive, detailed "
        "analysis of the following query based on the provided context. Be "
        "thorough and insightful.",
    ),
    "summarizer": (
        "Summarizer",
        "You are a summarization specialist. Give a concise summary of the key "
        "points the context offers about the query.",
    ),
    "factChecker": (
        "Fact-Checker",
        "You are a fact-checking specialist. Identify the claims relevant to the "
        "query, say which ones the context supports and flag anything doubtful.",
    ),
    "classifier": (
        "Classifier",
        "You are a classification specialist. Categorize the query and identify "
        "key topics, themes, and relevant domains.",
    ),
}


def build_specialists(
    generator_for: Callable[[str], TextGenerator],
    config: AgentsConfig | None = None,
) -> List[AgentSpec]:
    """Create one ``AgentSpec`` per default specialist.

    ``generator_for`` maps an agent name to the generator it should use. Each
    specialist gets its own per-user throttle.
    """
    config = config or AgentsConfig()
    return [
        AgentSpec(
            name=name,
            generator=generator_for(name),
            instructions=instructions,
            label=label,
            max_retries=config.max_retries,
            throttle=Throttle(config.throttle_limit, config.throttle_period),
        )
        for name, (label, instructions) in SPECIALISTS.items()
    ]


def synthesis_prompt(query: str, results: Sequence[AgentResult]) -> str:
    """Prompt combining every agent output; failed agents are listed as missing."""
    sections = []
    for result in results:
        if result.succeeded:
            sections.append(f"## {result.agent}\n{result.response}")
        else:
            sections.append(f"## {result.agent}\n(unavailable: {result.error})")
    joined = "\n\n".join(sections)
    return (
        "You are a research synthesizer. Combine the specialist reports below "
        "into one well-structured answer to the query. Ignore reports marked "
        "unavailable and do not speculate about their content.\n\n"
        f"Query: {query}\n\n"
        f"{joined}"
    )
