"""researchflow: durable, quality-gated research runs with live progress events."""

from .attempts import AttemptContext, AttemptController
from .bus import get_event_bus
from .config import load_config
from .contracts import (
    ContextItem,
    QuerySubmitted,
    ResearchAnswer,
    RetryableFailure,
    StepOutcome,
    TerminalFailure,
    WorkflowRun,
)
from .dispatch import ResearchDispatcher
from .persistence import get_step_store
from .projector import ProgressProjector
from .quality import QualityGate
from .steps import StepExecutor
from .workflow import ResearchWorkflow

__version__ = "0.1.0"
__all__ = [
    "AttemptContext",
    "AttemptController",
    "ContextItem",
    "ProgressProjector",
    "QualityGate",
    "QuerySubmitted",
    "ResearchAnswer",
    "ResearchDispatcher",
    "ResearchWorkflow",
    "RetryableFailure",
    "StepExecutor",
    "StepOutcome",
    "TerminalFailure",
    "WorkflowRun",
    "get_event_bus",
    "get_step_store",
    "load_config",
]
