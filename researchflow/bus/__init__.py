"""Event bus factory and initialization."""

from __future__ import annotations

import os
from typing import Optional

from ..config import ResearchflowConfig, load_config
from .base import BaseEventBus
from .inmemory import InMemoryEventBus


def get_event_bus(
    backend: Optional[str] = None, config: Optional[ResearchflowConfig] = None
) -> BaseEventBus:
    """Factory function to get the configured event bus."""

    config = config or load_config()
    bus_conf = config.event_bus
    backend = (
        backend
        or os.getenv("RESEARCHFLOW_EVENT_BUS")
        or bus_conf.backend
    ).lower()

    if backend == "inmemory":
        return InMemoryEventBus(
            history_size=bus_conf.history_size, history_ttl=bus_conf.history_ttl
        )
    elif backend == "redis":
        from .redis import RedisEventBus

        redis_conf = bus_conf.redis
        return RedisEventBus(
            host=redis_conf.host,
            port=redis_conf.port,
            db=redis_conf.db,
            password=redis_conf.password,
            history_size=bus_conf.history_size,
            history_ttl=bus_conf.history_ttl,
        )
    else:
        raise ValueError(f"Unsupported event bus backend: {backend}")


__all__ = ["BaseEventBus", "InMemoryEventBus", "get_event_bus"]
