"""Subscription token tests."""

import pytest

from researchflow.config import ResearchflowConfig
from researchflow.contracts import ConfigurationError
from researchflow.security import InvalidSubscriptionToken, SubscriptionTokenIssuer

SECRET = "test-secret-that-is-long-enough-for-hs256"


def test_issue_and_verify_round_trip():
    issuer = SubscriptionTokenIssuer(SECRET)
    token = issuer.issue("session-1")

    claims = issuer.verify(token, "session-1", topic="ai-chunk")

    assert claims["channel"] == "research-session-session-1"
    assert "result" in claims["topics"]


def test_token_is_bound_to_its_session():
    issuer = SubscriptionTokenIssuer(SECRET)
    token = issuer.issue("session-1")

    with pytest.raises(InvalidSubscriptionToken, match="different session"):
        issuer.verify(token, "session-2")


def test_topic_restriction():
    issuer = SubscriptionTokenIssuer(SECRET)
    token = issuer.issue("session-1", topics=["progress", "result"])

    issuer.verify(token, "session-1", topic="result")
    with pytest.raises(InvalidSubscriptionToken, match="agent-chunk"):
        issuer.verify(token, "session-1", topic="agent-chunk")


def test_expired_and_foreign_tokens_are_rejected():
    expired = SubscriptionTokenIssuer(SECRET, ttl_seconds=-10).issue("session-1")
    foreign = SubscriptionTokenIssuer("another-secret-that-is-long-enough-too").issue("session-1")
    issuer = SubscriptionTokenIssuer(SECRET)

    with pytest.raises(InvalidSubscriptionToken):
        issuer.verify(expired, "session-1")
    with pytest.raises(InvalidSubscriptionToken):
        issuer.verify(foreign, "session-1")
    with pytest.raises(InvalidSubscriptionToken):
        issuer.verify("not-a-token", "session-1")


def test_unknown_topic_is_refused():
    with pytest.raises(ValueError, match="Unknown topics"):
        SubscriptionTokenIssuer(SECRET).issue("session-1", topics=["gossip"])


def test_secret_is_required():
    with pytest.raises(ConfigurationError):
        SubscriptionTokenIssuer.from_config(ResearchflowConfig())


def test_from_config_uses_token_settings():
    config = ResearchflowConfig()
    config.tokens.secret = SECRET
    config.tokens.issuer = "lab"

    issuer = SubscriptionTokenIssuer.from_config(config)

    assert issuer.verify(issuer.issue("s"), "s")["iss"] == "lab"
