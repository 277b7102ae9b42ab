"""Run-lifetime checkpoint storage for researchflow."""

from __future__ import annotations

import os
from typing import Optional

from ..config import ResearchflowConfig, load_config
from .inmemory import InMemoryStepStore
from .repository import StepStore
from .sqlite import SQLiteStepStore


def get_step_store(
    database_url: Optional[str] = None, config: Optional[ResearchflowConfig] = None
) -> StepStore:
    """Factory function to obtain a step store.

    The backend is selected from ``database_url`` which can be provided
    explicitly, via environment variable ``RESEARCHFLOW_DATABASE_URL``, or from
    loaded configuration. When no database is configured, an in-memory store
    is returned.
    """

    if database_url is None:
        config = config or load_config()
        database_url = os.getenv("RESEARCHFLOW_DATABASE_URL") or config.database_url

    if not database_url:
        return InMemoryStepStore()

    if database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        return SQLiteStepStore(path)
    raise ValueError(f"Unsupported database backend: {database_url}")


__all__ = [
    "StepStore",
    "InMemoryStepStore",
    "SQLiteStepStore",
    "get_step_store",
]
