"""Context source interface."""

from __future__ import annotations

from typing import List, Protocol, runtime_checkable

from ..contracts import ContextItem


@runtime_checkable
class ContextSource(Protocol):
    """Anything that returns context items for a query."""

    name: str

    async def fetch(self, query: str) -> List[ContextItem]:
        """Return context items relevant to ``query``."""
