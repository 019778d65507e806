"""Notification sink for connection status observers (dashboard, logs)."""

from __future__ import annotations

import threading
from typing import Callable, Protocol

from offerbridge.observability.logging import get_logger
from offerbridge.observability.redaction import safe_log_context

from .state import ConnectionState, ConnectionStatus

logger = get_logger(__name__)

Subscriber = Callable[[ConnectionStatus], None]


class NotificationSink(Protocol):
    """Protocol for status publishers."""

    def publish(self, status: ConnectionStatus) -> None:
        """Publish a status change to observers."""
        ...


class StatusBroadcaster:
    """Keeps the latest status and fans it out to subscribers.

    The latest snapshot is what `GET /status` serves, so a dashboard that
    connects late still gets the current enrollment code.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._latest = ConnectionStatus(state=ConnectionState.DISCONNECTED)
        self._subscribers: list[Subscriber] = []

    @property
    def latest(self) -> ConnectionStatus:
        with self._lock:
            return self._latest

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback; returns a function that unregisters it."""
        with self._lock:
            self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe

    def publish(self, status: ConnectionStatus) -> None:
        with self._lock:
            self._latest = status
            subscribers = list(self._subscribers)

        logger.info(
            "connection status changed",
            extra={
                "extra_fields": safe_log_context(
                    state=status.state.value,
                    has_enrollment_code=status.enrollment_code is not None,
                    reconnect_attempts=status.reconnect_attempts,
                )
            },
        )

        for callback in subscribers:
            try:
                callback(status)
            except Exception:
                logger.exception("status subscriber failed")
