"""Sliding-window throttles shared across runs."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict, deque
from typing import Callable, Deque, Dict

logger = logging.getLogger(__name__)


class Throttle:
    """Allow at most ``limit`` acquisitions per key within ``period`` seconds.

    The check and the increment happen under one lock, so two runs for the
    same key can never both take the last free slot.
    """

    def __init__(
        self,
        limit: int,
        period: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if limit < 1:
            raise ValueError("Throttle limit must be at least 1")
        self.limit = limit
        self.period = period
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)
        self._lock = asyncio.Lock()

    def _prune(self, key: str, now: float) -> int:
        """Drop hits of ``key`` outside the window; forget the key once empty."""
        hits = self._hits.get(key)
        if hits is None:
            return 0
        while hits and now - hits[0] >= self.period:
            hits.popleft()
        if not hits:
            del self._hits[key]
        return len(hits)

    async def try_acquire(self, key: str) -> float:
        """Take a slot for ``key``.

        Returns 0 when a slot was taken, otherwise the number of seconds until
        the oldest hit leaves the window.
        """
        async with self._lock:
            now = self._clock()
            for other in list(self._hits):
                self._prune(other, now)
            if len(self._hits.get(key, ())) < self.limit:
                self._hits[key].append(now)
                return 0.0
            return self.period - (now - self._hits[key][0])

    async def acquire(self, key: str) -> float:
        """Wait until a slot for ``key`` is available; return the time waited."""
        waited = 0.0
        while True:
            wait = await self.try_acquire(key)
            if wait <= 0:
                return waited
            logger.info(f"Throttled key={key}; waiting {wait:.2f}s")
            await asyncio.sleep(wait)
            waited += wait

    def in_window(self, key: str) -> int:
        """Number of hits for ``key`` within the current window."""
        return self._prune(key, self._clock())
