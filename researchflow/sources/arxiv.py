"""arXiv search through the public Atom API."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from typing import List, Optional

import httpx

from ..contracts import ContextItem

logger = logging.getLogger(__name__)

ARXIV_API_URL = "https://export.arxiv.org/api/query"
ATOM_NS = {"atom": "http://www.w3.org/2005/Atom"}


def parse_feed(xml_text: str) -> List[ContextItem]:
    """Turn an arXiv Atom feed into context items, in feed order."""
    root = ET.fromstring(xml_text)
    items: List[ContextItem] = []
    for entry in root.findall("atom:entry", ATOM_NS):
        title = " ".join((entry.findtext("atom:title", "", ATOM_NS)).split())
        summary = " ".join((entry.findtext("atom:summary", "", ATOM_NS)).split())
        published = entry.findtext("atom:published", "", ATOM_NS)
        url = entry.findtext("atom:id", None, ATOM_NS)
        text = f"{title}\n\n{summary}"
        if published:
            text = f"{text}\n\nPublished: {published[:10]}"
        items.append(ContextItem(source="arxiv", text=text, title=title, url=url))
    return items


class ArxivSource:
    """Fetch papers matching a query from arXiv."""

    name = "arxiv"

    def __init__(
        self,
        max_results: int = 5,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.max_results = max_results
        self.timeout = timeout
        self._client = client

    async def fetch(self, query: str) -> List[ContextItem]:
        params = {
            "search_query": f"all:{query}",
            "start": 0,
            "max_results": self.max_results,
            "sortBy": "relevance",
        }
        if self._client is not None:
            response = await self._client.get(ARXIV_API_URL, params=params)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(ARXIV_API_URL, params=params)
        response.raise_for_status()
        items = parse_feed(response.text)
        for index, item in enumerate(items):
            item.relevance = 1 - index * 0.1
        logger.info(f"arXiv returned {len(items)} papers for query={query!r}")
        return items
