"""Connection state machine primitives.

Pure functions and value types; no I/O. The supervisor applies them.
"""

from dataclasses import dataclass
from enum import Enum

from offerbridge.whatsapp.transport import STATUS_BAD_SESSION, STATUS_LOGGED_OUT

MAX_RECONNECT_ATTEMPTS = 5
BACKOFF_STEP_SECONDS = 2.0
BACKOFF_CAP_SECONDS = 10.0

TERMINAL_STATUS_CODES: frozenset[int] = frozenset({STATUS_LOGGED_OUT, STATUS_BAD_SESSION})


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_ENROLLMENT = "awaiting_enrollment"
    OPEN = "open"
    CLOSING = "closing"


@dataclass(frozen=True)
class ConnectionStatus:
    """Snapshot published to observers on every visible transition."""

    state: ConnectionState
    enrollment_code: str | None = None
    enrollment_image: str | None = None
    reconnect_attempts: int = 0

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "enrollmentCode": self.enrollment_code,
            "enrollmentImage": self.enrollment_image,
            "reconnectAttempts": self.reconnect_attempts,
        }


def next_delay(attempt: int) -> float:
    """Backoff before reconnect attempt `attempt` (1-based): linear, capped at 10s."""
    return min(BACKOFF_CAP_SECONDS, attempt * BACKOFF_STEP_SECONDS)


def is_terminal_reason(status_code: int | None) -> bool:
    """Explicit logout and corrupted session are never retried."""
    return status_code in TERMINAL_STATUS_CODES


def should_retry(
    status_code: int | None,
    attempts: int,
    max_attempts: int = MAX_RECONNECT_ATTEMPTS,
) -> bool:
    """Decide retry vs terminal for a close with `attempts` retries already spent."""
    return not is_terminal_reason(status_code) and attempts < max_attempts
