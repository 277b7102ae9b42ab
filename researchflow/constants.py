"""Default values shared across researchflow modules."""

DEFAULT_MAX_ATTEMPTS = 2
DEFAULT_MIN_CONTEXTS = 3
DEFAULT_TOP_CONTEXTS = 10
DEFAULT_STEP_RETRIES = 2
DEFAULT_AGENT_RETRIES = 2
DEFAULT_AGENT_THROTTLE_LIMIT = 10
DEFAULT_AGENT_THROTTLE_PERIOD = 60.0
DEFAULT_CONCURRENCY_LIMIT = 50
DEFAULT_RATE_LIMIT = 100
DEFAULT_RATE_PERIOD = 60.0

CHANNEL_PREFIX = "research-session-"

TOPICS = (
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
)
TERMINAL_TOPICS = ("result", "error")


def channel_name(session_id: str) -> str:
    """Return the event channel name for ``session_id``."""
    return f"{CHANNEL_PREFIX}{session_id}"
