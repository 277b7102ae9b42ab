"""Tokens authorizing a client to follow one session channel."""

from __future__ import annotations

import time
from typing import Any, Dict, Optional, Sequence

import jwt

from ..config import ResearchflowConfig, TokenConfig
from ..constants import TOPICS, channel_name
from ..contracts import ConfigurationError

ALGORITHM = "HS256"
AUDIENCE = "researchflow-subscriber"


class InvalidSubscriptionToken(Exception):
    """Token is malformed, expired, or scoped to another channel."""


class SubscriptionTokenIssuer:
    """Issue and verify HS256 tokens bound to a session channel and topics."""

    def __init__(self, secret: str, issuer: str = "researchflow", ttl_seconds: int = 3600) -> None:
        if not secret:
            raise ConfigurationError("A token secret is required to issue subscription tokens")
        self.secret = secret
        self.issuer = issuer
        self.ttl_seconds = ttl_seconds

    @classmethod
    def from_config(cls, config: ResearchflowConfig | TokenConfig) -> "SubscriptionTokenIssuer":
        tokens = config.tokens if isinstance(config, ResearchflowConfig) else config
        return cls(tokens.secret or "", issuer=tokens.issuer, ttl_seconds=tokens.ttl_seconds)

    def issue(self, session_id: str, topics: Optional[Sequence[str]] = None) -> str:
        """Return a token allowing subscription to ``topics`` of the session."""
        topics = list(topics or TOPICS)
        unknown = [t for t in topics if t not in TOPICS]
        if unknown:
            raise ValueError(f"Unknown topics: {', '.join(unknown)}")
        now = int(time.time())
        claims = {
            "iss": self.issuer,
            "aud": AUDIENCE,
            "iat": now,
            "exp": now + self.ttl_seconds,
            "channel": channel_name(session_id),
            "topics": topics,
        }
        return jwt.encode(claims, self.secret, algorithm=ALGORITHM)

    def verify(self, token: str, session_id: str, topic: Optional[str] = None) -> Dict[str, Any]:
        """Validate ``token`` for the session (and ``topic``) and return its claims."""
        try:
            claims = jwt.decode(
                token,
                self.secret,
                algorithms=[ALGORITHM],
                audience=AUDIENCE,
                issuer=self.issuer,
            )
        except jwt.PyJWTError as e:
            raise InvalidSubscriptionToken(str(e)) from e
        if claims.get("channel") != channel_name(session_id):
            raise InvalidSubscriptionToken("Token is scoped to a different session")
        if topic is not None and topic not in claims.get("topics", []):
            raise InvalidSubscriptionToken(f"Token does not grant topic {topic}")
        return claims
