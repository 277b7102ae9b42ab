"""Context sources and the concurrent gather helper."""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Sequence

from pydantic import BaseModel, Field

from ..contracts import ContextItem
from .arxiv import ArxivSource
from .base import ContextSource
from .static import StaticSource

logger = logging.getLogger(__name__)


class SourceReport(BaseModel):
    """Outcome of one source during a gather."""

    source: str
    success: bool
    count: Optional[int] = None
    error: Optional[str] = None


class GatherResult(BaseModel):
    """Items collected across sources plus a report per source."""

    items: List[ContextItem] = Field(default_factory=list)
    reports: List[SourceReport] = Field(default_factory=list)


async def gather_sources(sources: Sequence[ContextSource], query: str) -> GatherResult:
    """Query every source concurrently; a failing source only loses its items."""
    results = await asyncio.gather(
        *(source.fetch(query) for source in sources), return_exceptions=True
    )
    gathered = GatherResult()
    for source, result in zip(sources, results):
        if isinstance(result, BaseException):
            logger.warning(f"Source {source.name} failed: {result}")
            gathered.reports.append(
                SourceReport(source=source.name, success=False, error=str(result))
            )
            continue
        gathered.items.extend(result)
        gathered.reports.append(
            SourceReport(source=source.name, success=True, count=len(result))
        )
    return gathered


def rank_contexts(items: Sequence[ContextItem]) -> List[ContextItem]:
    """Order items by relevance, keeping source order for ties and unscored items."""
    return sorted(
        items,
        key=lambda item: item.relevance if item.relevance is not None else 0.0,
        reverse=True,
    )


__all__ = [
    "ArxivSource",
    "ContextSource",
    "GatherResult",
    "SourceReport",
    "StaticSource",
    "gather_sources",
    "rank_contexts",
]
