"""Redis pub/sub event bus for cross-process observers."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, Optional

try:
    import redis.asyncio as redis
except ImportError:
    redis = None

from pydantic import ValidationError

from ..constants import channel_name
from ..events import BusEvent, Topic
from .base import BaseEventBus

logger = logging.getLogger(__name__)


class RedisEventBus(BaseEventBus):
    """Redis-based event bus; one pub/sub channel per session."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        history_size: int = 0,
        history_ttl: float = 30.0,
    ) -> None:
        if redis is None:
            raise ImportError("redis package is required for RedisEventBus")

        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.history_size = history_size
        self.history_ttl = history_ttl
        self._redis: Optional[Any] = None

    async def connect(self) -> None:
        """Connect to Redis."""
        self._redis = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        await self._redis.ping()

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    @staticmethod
    def _history_key(session_id: str) -> str:
        return f"researchflow:history:{channel_name(session_id)}"

    async def publish(
        self, session_id: str, topic: Topic, payload: Dict[str, Any]
    ) -> BusEvent:
        """Publish event on the session channel and append it to the history."""
        if not self._redis:
            await self.connect()

        event = BusEvent(session_id=session_id, topic=topic, payload=payload)
        data = event.to_json()
        if self.history_size:
            key = self._history_key(session_id)
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.rpush(key, data)
                pipe.ltrim(key, -self.history_size, -1)
                pipe.expire(key, max(1, int(self.history_ttl)))
                await pipe.execute()
        await self._redis.publish(channel_name(session_id), data)
        return event

    async def subscribe(
        self,
        session_id: str,
        lifespan: Optional[float] = None,
        replay: bool = False,
    ) -> AsyncIterator[BusEvent]:
        """Subscribe to the session channel."""
        if not self._redis:
            await self.connect()

        pubsub = self._redis.pubsub()
        await pubsub.subscribe(channel_name(session_id))
        start_time = asyncio.get_event_loop().time()
        try:
            if replay and self.history_size:
                for data in await self._redis.lrange(self._history_key(session_id), 0, -1):
                    event = self._parse(data)
                    if event is not None:
                        yield event

            while True:
                if lifespan is not None:
                    elapsed = asyncio.get_event_loop().time() - start_time
                    if elapsed >= lifespan:
                        break

                message = await pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=1.0
                )
                if message is None:
                    continue
                event = self._parse(message["data"])
                if event is not None:
                    yield event
        finally:
            await pubsub.unsubscribe(channel_name(session_id))
            await pubsub.aclose()

    @staticmethod
    def _parse(data: str) -> Optional[BusEvent]:
        try:
            return BusEvent.from_json(data)
        except ValidationError as e:
            logger.warning(f"Failed to parse event: {e}")
            return None
