"""Typed payloads published on a research session channel."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .contracts import ContextItem, Quality, utcnow

Topic = Literal[
    "progress",
    "source-result",
    "contexts",
    "ai-chunk",
    "result",
    "metadata",
    "error",
    "agent-update",
    "agent-chunk",
    "agent-result",
]
ProgressStatus = Literal["starting", "in_progress", "completed", "failed"]
AgentStatus = Literal["idle", "starting", "running", "completed", "failed", "retrying"]
MetadataType = Literal["rate_limit", "concurrency", "throttle", "retry", "info"]


def timestamp() -> str:
    return utcnow().isoformat()


class EventPayload(BaseModel):
    """Base for every topic payload; serialised with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    timestamp: str = Field(default_factory=timestamp)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ProgressUpdate(EventPayload):
    step: str
    status: ProgressStatus
    message: str
    metadata: Optional[Dict[str, Any]] = None


class SourceResult(EventPayload):
    source: str
    success: bool
    count: Optional[int] = None
    error: Optional[str] = None


class ContextsUpdate(EventPayload):
    total_found: int
    top_contexts: List[ContextItem] = Field(default_factory=list)


class AIChunk(EventPayload):
    chunk: str
    is_complete: bool = False


class AgentUpdate(EventPayload):
    agent: str
    status: AgentStatus
    message: str
    duration: Optional[int] = None
    retry_count: Optional[int] = None


class AgentChunk(EventPayload):
    agent: str
    chunk: str
    is_complete: bool = False


class AgentResultEvent(EventPayload):
    agent: str
    response: str
    model: str
    duration: Optional[int] = None


class FinalResult(EventPayload):
    answer: str
    model: str
    tokens_used: Optional[int] = None
    contexts_used: int
    attempts: int
    quality: Quality


class ErrorNotice(EventPayload):
    step: str
    error: str
    recoverable: bool


class MetadataUpdate(EventPayload):
    type: MetadataType
    message: str
    details: Optional[Dict[str, Any]] = None


class BusEvent(BaseModel):
    """Envelope carried by the event bus."""

    session_id: str
    topic: Topic
    payload: Dict[str, Any] = Field(default_factory=dict)
    published_at: datetime = Field(default_factory=utcnow)

    def to_json(self) -> str:
        """Serialize event to JSON."""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> "BusEvent":
        """Deserialize event from JSON."""
        return cls.model_validate_json(data)
