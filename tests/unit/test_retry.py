import pytest

from researchflow.config import BackoffConfig
from researchflow.utils.retry import backoff_from_config, compute_backoff


def test_exponential_backoff_grows():
    delays = [compute_backoff(n, base=2, jitter=0, max_delay=100) for n in range(1, 5)]
    assert delays == [2, 4, 8, 16]


def test_linear_and_fixed_strategies():
    assert compute_backoff(3, base=1.5, jitter=0, strategy="linear") == pytest.approx(4.5)
    assert compute_backoff(3, base=1.5, jitter=0, strategy="fixed") == 1.5


def test_backoff_is_capped_and_jittered():
    delay = compute_backoff(20, base=2, jitter=0.5, max_delay=30)
    assert 30 <= delay <= 30.5


def test_attempt_is_clamped_to_first_retry():
    assert compute_backoff(0, base=2, jitter=0) == 2


def test_invalid_strategy():
    with pytest.raises(ValueError):
        compute_backoff(1, strategy="random")


def test_backoff_from_config():
    config = BackoffConfig(strategy="fixed", base=0.25, jitter=0)
    assert backoff_from_config(5, config) == 0.25
