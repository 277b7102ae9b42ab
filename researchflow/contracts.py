"""Core data contracts for researchflow runs."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

RunStatus = Literal["pending", "running", "succeeded", "failed"]
OutcomeStatus = Literal["ok", "retryable", "terminal"]
Quality = Literal["high", "low"]

RUN_NAMESPACE = uuid.UUID("5b0f7a52-7c55-4a43-9d35-3f8a1c2e9b61")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def run_id_for(session_id: str) -> str:
    """Deterministic run id of the session, so a re-delivered trigger resumes its run."""
    return str(uuid.uuid5(RUN_NAMESPACE, session_id))


class WorkflowError(Exception):
    """Base class for failures raised inside researchflow steps."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class RetryableFailure(WorkflowError):
    """Raised by a step body to request a retry of the whole run."""


class TerminalFailure(WorkflowError):
    """Raised by a step body to abort the run without further attempts."""


class ConfigurationError(TerminalFailure):
    """A mandatory capability has no configuration."""


class QuerySubmitted(BaseModel):
    """Inbound trigger for one research request."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    query: str
    session_id: str
    user_id: str = "anonymous"


class ContextItem(BaseModel):
    """A single piece of context returned by a source."""

    source: str
    text: str
    title: Optional[str] = None
    url: Optional[str] = None
    relevance: Optional[float] = None


class WorkflowRun(BaseModel):
    """State of one query execution, mutated only by the attempt controller."""

    session_id: str
    query: str
    user_id: str = "anonymous"
    run_id: str = ""
    attempt: int = 0
    status: RunStatus = "pending"
    quality: Optional[Quality] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    def model_post_init(self, __context: Any) -> None:
        if not self.run_id:
            self.run_id = run_id_for(self.session_id)

    @classmethod
    def from_trigger(cls, trigger: QuerySubmitted) -> "WorkflowRun":
        return cls(
            session_id=trigger.session_id,
            query=trigger.query,
            user_id=trigger.user_id,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in ("succeeded", "failed")


class StepRecord(BaseModel):
    """Memoized result of a completed step."""

    run_id: str
    attempt: int
    name: str
    result: Any = None
    completed_at: datetime = Field(default_factory=utcnow)


class StepOutcome(BaseModel):
    """Tagged result of a step: ``ok``, ``retryable`` or ``terminal``."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    status: OutcomeStatus
    value: Any = None
    reason: Optional[str] = None
    step: Optional[str] = None

    @classmethod
    def ok(cls, value: Any = None, step: Optional[str] = None) -> "StepOutcome":
        return cls(status="ok", value=value, step=step)

    @classmethod
    def retryable(cls, reason: str, step: Optional[str] = None) -> "StepOutcome":
        return cls(status="retryable", reason=reason, step=step)

    @classmethod
    def terminal(cls, reason: str, step: Optional[str] = None) -> "StepOutcome":
        return cls(status="terminal", reason=reason, step=step)

    @property
    def is_ok(self) -> bool:
        return self.status == "ok"

    @property
    def is_retryable(self) -> bool:
        return self.status == "retryable"

    @property
    def is_terminal(self) -> bool:
        return self.status == "terminal"


class QualityAssessment(BaseModel):
    """Judgement of a gated step's output against a threshold."""

    passed: bool
    measure: float
    threshold: float
    reason: str


class ResearchAnswer(BaseModel):
    """Final answer produced by the last step of a successful attempt."""

    answer: str
    model: str
    tokens_used: Optional[int] = None
    contexts_used: int = 0
    quality: Quality = "high"
    top_contexts: list[ContextItem] = Field(default_factory=list)
