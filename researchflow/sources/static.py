"""Source returning a fixed list of items."""

from __future__ import annotations

from typing import Iterable, List

from ..contracts import ContextItem


class StaticSource:
    """Serve pre-loaded context items, e.g. for demos and local corpora."""

    def __init__(self, name: str, items: Iterable[ContextItem]) -> None:
        self.name = name
        self.items = list(items)

    async def fetch(self, query: str) -> List[ContextItem]:
        return [item.model_copy() for item in self.items]
