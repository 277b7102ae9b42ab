"""Parallel specialist agents."""

from .pool import AgentPool, AgentRequest, AgentResult, AgentSpec, AgentTask
from .specialists import SPECIALISTS, build_specialists, synthesis_prompt

__all__ = [
    "AgentPool",
    "AgentRequest",
    "AgentResult",
    "AgentSpec",
    "AgentTask",
    "SPECIALISTS",
    "build_specialists",
    "synthesis_prompt",
]
