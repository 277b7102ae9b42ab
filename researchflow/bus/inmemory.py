"""In-process event bus for tests and single-process deployments."""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from datetime import timedelta
from typing import Any, AsyncIterator, Deque, Dict, List, Optional, Set

from ..contracts import utcnow
from ..events import BusEvent, Topic
from .base import BaseEventBus


class InMemoryEventBus(BaseEventBus):
    """Fan events out to per-subscriber queues.

    Queues are unbounded so a slow subscriber never blocks a publisher.
    When ``history_size`` is positive the bus keeps a bounded buffer per
    session that late subscribers can replay, limited to events younger than
    ``history_ttl`` seconds.
    """

    def __init__(self, history_size: int = 0, history_ttl: float = 30.0) -> None:
        self.history_size = history_size
        self.history_ttl = history_ttl
        self._subscribers: Dict[str, Set[asyncio.Queue[BusEvent]]] = defaultdict(set)
        self._history: Dict[str, Deque[BusEvent]] = defaultdict(
            lambda: deque(maxlen=self.history_size or None)
        )

    async def publish(
        self, session_id: str, topic: Topic, payload: Dict[str, Any]
    ) -> BusEvent:
        event = BusEvent(session_id=session_id, topic=topic, payload=payload)
        if self.history_size:
            self._evict_expired()
            self._history[session_id].append(event)
        for queue in list(self._subscribers.get(session_id, ())):
            queue.put_nowait(event)
        return event

    def _evict_expired(self) -> None:
        """Drop events past the retention window and sessions left with none."""
        cutoff = utcnow() - timedelta(seconds=self.history_ttl)
        for session_id in list(self._history):
            events = self._history[session_id]
            while events and events[0].published_at < cutoff:
                events.popleft()
            if not events:
                del self._history[session_id]

    def history(self, session_id: str) -> List[BusEvent]:
        """Return buffered events for ``session_id`` within the retention window."""
        if not self.history_size:
            return []
        cutoff = utcnow() - timedelta(seconds=self.history_ttl)
        return [e for e in self._history.get(session_id, ()) if e.published_at >= cutoff]

    def subscribe(
        self,
        session_id: str,
        lifespan: Optional[float] = None,
        replay: bool = False,
    ) -> AsyncIterator[BusEvent]:
        # Register before returning so events published right after this call
        # are not lost while the caller has not started iterating yet.
        queue: asyncio.Queue[BusEvent] = asyncio.Queue()
        if replay:
            for event in self.history(session_id):
                queue.put_nowait(event)
        self._subscribers[session_id].add(queue)
        return self._iterate(session_id, queue, lifespan)

    async def _iterate(
        self,
        session_id: str,
        queue: asyncio.Queue[BusEvent],
        lifespan: Optional[float],
    ) -> AsyncIterator[BusEvent]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + lifespan if lifespan is not None else None
        try:
            while True:
                if deadline is None:
                    yield await queue.get()
                    continue
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=remaining)
                except asyncio.TimeoutError:
                    break
                yield event
        finally:
            subscribers = self._subscribers.get(session_id)
            if subscribers is not None:
                subscribers.discard(queue)
                if not subscribers:
                    del self._subscribers[session_id]
