from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel

from .constants import (
    DEFAULT_AGENT_RETRIES,
    DEFAULT_AGENT_THROTTLE_LIMIT,
    DEFAULT_AGENT_THROTTLE_PERIOD,
    DEFAULT_CONCURRENCY_LIMIT,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MIN_CONTEXTS,
    DEFAULT_RATE_LIMIT,
    DEFAULT_RATE_PERIOD,
    DEFAULT_STEP_RETRIES,
    DEFAULT_TOP_CONTEXTS,
)


class RedisConfig(BaseModel):
    """Configuration for the Redis event bus."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None


class EventBusConfig(BaseModel):
    """Event bus configuration settings."""

    backend: Literal["inmemory", "redis"] = "inmemory"
    redis: RedisConfig = RedisConfig()
    history_size: int = 0
    history_ttl: float = 30.0


class BackoffConfig(BaseModel):
    """Spacing between retries of a run or a step."""

    strategy: Literal["exponential", "linear", "fixed"] = "exponential"
    base: float = 1.5
    jitter: float = 0.5
    max_delay: float = 30.0


class WorkflowConfig(BaseModel):
    """Limits applied to every research run."""

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    min_contexts: int = DEFAULT_MIN_CONTEXTS
    top_contexts: int = DEFAULT_TOP_CONTEXTS
    step_retries: int = DEFAULT_STEP_RETRIES
    step_timeout: Optional[float] = None
    concurrency_limit: int = DEFAULT_CONCURRENCY_LIMIT
    rate_limit: int = DEFAULT_RATE_LIMIT
    rate_period: float = DEFAULT_RATE_PERIOD
    backoff: BackoffConfig = BackoffConfig()


class AgentsConfig(BaseModel):
    """Settings for the parallel specialist agents."""

    enabled: bool = False
    max_retries: int = DEFAULT_AGENT_RETRIES
    throttle_limit: int = DEFAULT_AGENT_THROTTLE_LIMIT
    throttle_period: float = DEFAULT_AGENT_THROTTLE_PERIOD


class ModelsConfig(BaseModel):
    """pydantic-ai model identifiers used for generation."""

    default: str = "openai:gpt-4o-mini"
    synthesizer: Optional[str] = None


class TokenConfig(BaseModel):
    """Subscription token settings."""

    secret: Optional[str] = None
    issuer: str = "researchflow"
    ttl_seconds: int = 3600


class ResearchflowConfig(BaseModel):
    """Top-level configuration model."""

    event_bus: EventBusConfig = EventBusConfig()
    database_url: Optional[str] = None
    workflow: WorkflowConfig = WorkflowConfig()
    agents: AgentsConfig = AgentsConfig()
    models: ModelsConfig = ModelsConfig()
    tokens: TokenConfig = TokenConfig()


def load_config(path: Optional[str] = None) -> ResearchflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to RESEARCHFLOW_CONFIG
            env variable or 'researchflow.yaml' in the current directory.
    """

    config_path = path or os.getenv("RESEARCHFLOW_CONFIG", "researchflow.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = ResearchflowConfig(**data)
    else:
        config = ResearchflowConfig()

    env_db_url = os.getenv("RESEARCHFLOW_DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    env_secret = os.getenv("RESEARCHFLOW_TOKEN_SECRET")
    if env_secret:
        config.tokens.secret = env_secret
    return config
