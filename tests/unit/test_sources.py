"""Context source tests."""

import httpx
import pytest

from researchflow.contracts import ContextItem
from researchflow.sources import (
    ArxivSource,
    StaticSource,
    gather_sources,
    rank_contexts,
)
from researchflow.sources.arxiv import ARXIV_API_URL, parse_feed
from tests.fixtures.fakes import BrokenSource, ScriptedSource

FEED = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <entry>
    <id>http://arxiv.org/abs/1706.03762v7</id>
    <published>2017-06-12T17:57:34Z</published>
    <title>Attention Is All
      You Need</title>
    <summary>  The dominant sequence transduction models are based on
      complex recurrent networks.</summary>
  </entry>
  <entry>
    <id>http://arxiv.org/abs/1810.04805v2</id>
    <published>2018-10-11T00:50:01Z</published>
    <title>BERT</title>
    <summary>We introduce a new language representation model.</summary>
  </entry>
</feed>
"""


def test_parse_feed_normalises_whitespace():
    items = parse_feed(FEED)

    assert [i.title for i in items] == ["Attention Is All You Need", "BERT"]
    assert items[0].url == "http://arxiv.org/abs/1706.03762v7"
    assert "based on complex recurrent networks." in items[0].text
    assert items[0].text.endswith("Published: 2017-06-12")


@pytest.mark.asyncio
async def test_arxiv_source_queries_api():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, text=FEED)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        items = await ArxivSource(max_results=2, client=client).fetch("attention")

    assert seen["url"].startswith(ARXIV_API_URL)
    assert seen["params"]["search_query"] == "all:attention"
    assert seen["params"]["max_results"] == "2"
    assert [round(i.relevance, 2) for i in items] == [1.0, 0.9]


@pytest.mark.asyncio
async def test_arxiv_source_raises_on_http_error():
    transport = httpx.MockTransport(lambda request: httpx.Response(503))

    async with httpx.AsyncClient(transport=transport) as client:
        with pytest.raises(httpx.HTTPStatusError):
            await ArxivSource(client=client).fetch("attention")


@pytest.mark.asyncio
async def test_gather_tolerates_failing_source():
    result = await gather_sources([ScriptedSource([2]), BrokenSource("github")], "q")

    assert len(result.items) == 2
    ok, broken = result.reports
    assert (ok.source, ok.success, ok.count) == ("arxiv", True, 2)
    assert (broken.source, broken.success) == ("github", False)
    assert "github unavailable" in broken.error


@pytest.mark.asyncio
async def test_static_source_returns_copies():
    item = ContextItem(source="notes", text="local")
    source = StaticSource("notes", [item])

    fetched = await source.fetch("anything")
    fetched[0].relevance = 0.5

    assert item.relevance is None


def test_rank_contexts_orders_by_relevance():
    items = [
        ContextItem(source="a", text="low", relevance=0.1),
        ContextItem(source="b", text="none"),
        ContextItem(source="c", text="high", relevance=0.9),
    ]

    assert [i.text for i in rank_contexts(items)] == ["high", "low", "none"]
