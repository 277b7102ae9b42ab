from __future__ import annotations

import random

from ..config import BackoffConfig


def compute_backoff(
    attempt: int,
    base: float = 1.5,
    jitter: float = 0.5,
    strategy: str = "exponential",
    max_delay: float = 30.0,
) -> float:
    """Compute a capped backoff delay with jitter for retry number ``attempt``.

    ``attempt`` starts at 1 for the first retry. Exponential and linear
    strategies never shrink as ``attempt`` grows.
    """
    attempt = max(1, attempt)
    if strategy == "exponential":
        delay = base ** attempt
    elif strategy == "linear":
        delay = base * attempt
    elif strategy == "fixed":
        delay = base
    else:
        raise ValueError(f"Unsupported backoff strategy: {strategy}")
    delay = min(delay, max_delay)
    return delay + random.uniform(0, jitter)


def backoff_from_config(attempt: int, config: BackoffConfig) -> float:
    return compute_backoff(
        attempt,
        base=config.base,
        jitter=config.jitter,
        strategy=config.strategy,
        max_delay=config.max_delay,
    )

