"""Text generation collaborators."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Callable, Optional, Protocol

from pydantic import BaseModel
from pydantic_ai import Agent

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[str], None]


class Generation(BaseModel):
    """Complete text produced by one generation call."""

    text: str
    model: str
    tokens_used: Optional[int] = None


class TextGenerator(Protocol):
    """Streams a completion for a prompt through ``on_chunk``."""

    model_name: str

    async def generate(
        self, prompt: str, on_chunk: Optional[ChunkCallback] = None
    ) -> Generation:
        """Generate text for ``prompt``, forwarding each fragment to ``on_chunk``."""


@lru_cache(maxsize=None)
def get_agent(model_name: str) -> Agent:
    """Return the process-wide agent for ``model_name``, created on first use."""
    logger.info(f"Initializing generation agent for model={model_name}")
    return Agent(model_name)


class PydanticAIGenerator:
    """Generate text with a pydantic-ai agent.

    The underlying agent is shared by every run using the same model and
    holds no per-run state.
    """

    def __init__(self, model_name: str) -> None:
        self.model_name = model_name

    async def generate(
        self, prompt: str, on_chunk: Optional[ChunkCallback] = None
    ) -> Generation:
        agent = get_agent(self.model_name)
        text = ""
        async with agent.run_stream(prompt) as result:
            async for delta in result.stream_text(delta=True):
                text += delta
                if on_chunk is not None:
                    on_chunk(delta)
            usage = result.usage()
        return Generation(
            text=text,
            model=self.model_name,
            tokens_used=getattr(usage, "total_tokens", None),
        )
