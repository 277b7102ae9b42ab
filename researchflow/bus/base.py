"""Base event bus interface for researchflow sessions."""

from __future__ import annotations

import abc
from typing import Any, AsyncIterator, Dict, Optional

from ..events import BusEvent, Topic


class BaseEventBus(metaclass=abc.ABCMeta):
    """Abstract session-scoped publish/subscribe channel."""

    async def connect(self) -> None:
        """Open connection to broker (no-op by default)."""
        pass

    async def disconnect(self) -> None:
        """Close connection to broker (no-op by default)."""
        pass

    @abc.abstractmethod
    async def publish(
        self, session_id: str, topic: Topic, payload: Dict[str, Any]
    ) -> BusEvent:
        """Publish ``payload`` on ``topic`` of the session channel."""
        raise NotImplementedError

    @abc.abstractmethod
    def subscribe(
        self,
        session_id: str,
        lifespan: Optional[float] = None,
        replay: bool = False,
    ) -> AsyncIterator[BusEvent]:
        """Yield events published to the session channel.

        Args:
            session_id: The session whose channel to follow
            lifespan: Maximum time in seconds to keep listening. If None, runs indefinitely.
            replay: Deliver the buffered history first, when the bus keeps one.
        """
        raise NotImplementedError
