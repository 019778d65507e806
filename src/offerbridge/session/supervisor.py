"""Connection session supervisor.

Owns the chat transport for the process lifetime and drives the connection
state machine:

    DISCONNECTED -> CONNECTING -> (AWAITING_ENROLLMENT) -> OPEN
    OPEN -> DISCONNECTED (retry, linear backoff capped at 10s)
    OPEN -> DISCONNECTED (terminal: credentials purged, wait for start())
    any  -> CLOSING -> DISCONNECTED (stop())

Every transition runs on one single-thread dispatch executor, so state is
never touched concurrently. Transport callbacks only enqueue work there.
Pipeline processing runs on a separate worker pool so a slow offer lookup
never delays connection events.
"""

from __future__ import annotations

import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Any, Callable, Protocol

from offerbridge.infra.hashing import hash_identifier
from offerbridge.observability.correlation import correlation_scope
from offerbridge.observability.logging import get_logger
from offerbridge.observability.redaction import safe_log_context
from offerbridge.offers.pipeline import OfferPipeline
from offerbridge.whatsapp.models import InboundMessage, OutboundMessage
from offerbridge.whatsapp.transport import Transport, TransportError

from .credential_store import ConcurrentClearConflict, CredentialStore, StoreUnavailable
from .enrollment import render_enrollment_image
from .notifications import NotificationSink
from .state import (
    MAX_RECONNECT_ATTEMPTS,
    ConnectionState,
    ConnectionStatus,
    next_delay,
    should_retry,
)

logger = get_logger(__name__)

# Seconds stop() waits for logout and teardown
STOP_TIMEOUT = 30


class Cancellable(Protocol):
    def cancel(self) -> None: ...


Scheduler = Callable[[float, Callable[[], None]], Cancellable]


def timer_scheduler(delay: float, callback: Callable[[], None]) -> Cancellable:
    """Run `callback` after `delay` seconds on a daemon timer thread."""
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer


class SessionSupervisor:
    """Keeps one authenticated chat session alive.

    Public control surface is `start()` and `stop()`; everything else is
    driven by transport events delivered through the TransportListener
    callbacks.
    """

    def __init__(
        self,
        *,
        transport: Transport,
        store: CredentialStore,
        sink: NotificationSink,
        pipeline: OfferPipeline,
        session_key: str,
        max_reconnect_attempts: int = MAX_RECONNECT_ATTEMPTS,
        dispatcher: Executor | None = None,
        workers: Executor | None = None,
        scheduler: Scheduler = timer_scheduler,
    ) -> None:
        self._transport = transport
        self._store = store
        self._sink = sink
        self._pipeline = pipeline
        self._session_key = session_key
        self._max_attempts = max_reconnect_attempts
        self._dispatcher = dispatcher or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="session"
        )
        self._workers = workers or ThreadPoolExecutor(
            max_workers=4, thread_name_prefix="pipeline"
        )
        self._scheduler = scheduler

        self._state = ConnectionState.DISCONNECTED
        self._attempts = 0
        self._enrollment_code: str | None = None
        self._enrollment_image: str | None = None
        self._retry_timer: Cancellable | None = None
        # Bumped by stop(); retries scheduled under an older generation are void
        self._generation = 0
        self._connected_once = False

    # -- queries ---------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def reconnect_attempts(self) -> int:
        return self._attempts

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.OPEN

    @property
    def status(self) -> ConnectionStatus:
        return ConnectionStatus(
            state=self._state,
            enrollment_code=self._enrollment_code,
            enrollment_image=self._enrollment_image,
            reconnect_attempts=self._attempts,
        )

    # -- commands --------------------------------------------------------

    def start(self) -> bool:
        """Begin supervision. Returns False if a session is already active."""
        if self._state != ConnectionState.DISCONNECTED:
            return False
        self._submit(self._do_start)
        return True

    def stop(self) -> bool:
        """Log out and tear down. Returns False if there was nothing to stop.

        Raises:
            TransportError: If the logout call failed (teardown still happens).
        """
        if self._state == ConnectionState.DISCONNECTED and self._retry_timer is None:
            return False
        self._submit(self._do_stop).result(timeout=STOP_TIMEOUT)
        return True

    def send(self, conversation_id: str, message: OutboundMessage) -> None:
        """Deliver an outbound message through the open session.

        Raises:
            TransportError: If the session is not open or the send fails.
        """
        if self._state != ConnectionState.OPEN:
            raise TransportError(f"session not open (state={self._state.value})")
        if message.has_image:
            self._transport.send_image(conversation_id, message.image_url, message.text)
        else:
            self._transport.send_text(conversation_id, message.text)

    def session_cleared(self) -> None:
        """Persisted credentials were wiped externally; the next open is logged anew."""
        self._submit(self._reset_connected_log)

    def shutdown(self) -> None:
        """Release timers and executors at process exit. No logout."""
        self._generation += 1
        self._cancel_retry()
        self._dispatcher.shutdown(wait=False)
        self._workers.shutdown(wait=False)

    # -- TransportListener -----------------------------------------------

    def on_enrollment_code(self, code: str, image: str | None) -> None:
        self._submit(self._handle_enrollment, code, image)

    def on_open(self) -> None:
        self._submit(self._handle_open)

    def on_close(self, status_code: int | None) -> None:
        self._submit(self._handle_close, status_code)

    def on_message(self, message: InboundMessage) -> None:
        self._submit(self._handle_message, message)

    def on_credentials_updated(self, fragments: dict[str, str]) -> None:
        self._submit(self._handle_credentials, fragments)

    # -- dispatch --------------------------------------------------------

    def _submit(self, fn: Callable[..., Any], *args: Any) -> Future:
        return self._dispatcher.submit(self._guarded, fn, *args)

    @staticmethod
    def _guarded(fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        except Exception:
            logger.exception(
                "supervisor job failed",
                extra={"extra_fields": safe_log_context(job=getattr(fn, "__name__", "?"))},
            )
            raise

    def _publish(self) -> None:
        self._sink.publish(self.status)

    def _set_state(self, state: ConnectionState) -> None:
        self._state = state
        self._publish()

    def _cancel_retry(self) -> None:
        if self._retry_timer is not None:
            self._retry_timer.cancel()
            self._retry_timer = None

    def _schedule_retry(self, delay: float) -> None:
        generation = self._generation

        def _fire() -> None:
            self._submit(self._retry, generation)

        self._retry_timer = self._scheduler(delay, _fire)

    # -- transitions (dispatch thread only) ------------------------------

    def _do_start(self) -> None:
        if self._state != ConnectionState.DISCONNECTED:
            return
        self._cancel_retry()
        self._connect()

    def _retry(self, generation: int) -> None:
        if generation != self._generation or self._state != ConnectionState.DISCONNECTED:
            return
        self._retry_timer = None
        self._connect()

    def _connect(self) -> None:
        self._set_state(ConnectionState.CONNECTING)

        try:
            fragments = self._store.restore(self._session_key)
        except StoreUnavailable as e:
            logger.warning(
                "credential restore failed, continuing without a prior session",
                extra={"extra_fields": safe_log_context(error=str(e))},
            )
            fragments = {}

        if not fragments:
            logger.info("no persisted session, a fresh enrollment will be required")

        try:
            self._transport.connect(fragments, self)
        except TransportError as e:
            logger.warning(
                "transport connect failed",
                extra={"extra_fields": safe_log_context(error=str(e))},
            )
            self._handle_close(None)

    def _handle_enrollment(self, code: str, image: str | None) -> None:
        if self._state in (ConnectionState.DISCONNECTED, ConnectionState.CLOSING):
            # Gateway keeps emitting codes after a terminal close; wait for start()
            return
        self._attempts = 0
        self._enrollment_code = code
        # Gateways that only send the raw code get a locally rendered QR
        self._enrollment_image = image or render_enrollment_image(code)
        self._set_state(ConnectionState.AWAITING_ENROLLMENT)

    def _handle_open(self) -> None:
        if self._state == ConnectionState.CLOSING:
            return
        self._cancel_retry()
        self._attempts = 0
        self._enrollment_code = None
        self._enrollment_image = None
        self._set_state(ConnectionState.OPEN)
        if not self._connected_once:
            logger.info("chat session connected")
            self._connected_once = True

    def _reset_connected_log(self) -> None:
        self._connected_once = False

    def _handle_close(self, status_code: int | None) -> None:
        if self._state == ConnectionState.CLOSING:
            self._set_state(ConnectionState.DISCONNECTED)
            return
        if self._state == ConnectionState.DISCONNECTED:
            return

        if should_retry(status_code, self._attempts, self._max_attempts):
            self._attempts += 1
            delay = next_delay(self._attempts)
            logger.warning(
                "connection closed, reconnecting",
                extra={
                    "extra_fields": safe_log_context(
                        status_code=status_code, attempt=self._attempts, delay_seconds=delay
                    )
                },
            )
            self._set_state(ConnectionState.DISCONNECTED)
            self._schedule_retry(delay)
            return

        logger.warning(
            "connection closed for good, purging session; waiting for start()",
            extra={
                "extra_fields": safe_log_context(
                    status_code=status_code, attempts=self._attempts
                )
            },
        )
        self._purge_credentials()
        self._attempts = 0
        self._enrollment_code = None
        self._enrollment_image = None
        self._set_state(ConnectionState.DISCONNECTED)

    def _purge_credentials(self) -> None:
        try:
            self._store.clear(self._session_key)
        except ConcurrentClearConflict:
            logger.info("session purge skipped: a clear is already running")
        except StoreUnavailable as e:
            logger.error(
                "session purge failed",
                extra={"extra_fields": safe_log_context(error=str(e))},
            )

    def _handle_credentials(self, fragments: dict[str, str]) -> None:
        try:
            self._store.persist(self._session_key, fragments)
        except ConcurrentClearConflict:
            logger.warning(
                "credential update rejected: session clear in progress",
                extra={"extra_fields": safe_log_context(fragment_count=len(fragments))},
            )
        except StoreUnavailable as e:
            logger.error(
                "credential update not persisted",
                extra={"extra_fields": safe_log_context(error=str(e))},
            )

    def _handle_message(self, message: InboundMessage) -> None:
        if not self._pipeline.accept(message):
            return
        logger.info(
            "message accepted",
            extra={
                "extra_fields": safe_log_context(
                    message_hash=hash_identifier(message.message_id),
                    sender_hash=hash_identifier(message.sender_conversation_id),
                    text_len=len(message.text),
                )
            },
        )
        self._workers.submit(self._guarded, self._process, message)

    def _process(self, message: InboundMessage) -> None:
        # One correlation id per message; worker threads start with none
        with correlation_scope():
            self._pipeline.process(message, self)

    def _do_stop(self) -> None:
        self._generation += 1
        self._cancel_retry()
        was_active = self._state != ConnectionState.DISCONNECTED
        self._set_state(ConnectionState.CLOSING)

        try:
            if was_active:
                self._transport.logout()
                # A logged-out session cannot be restored; drop its fragments
                self._purge_credentials()
        finally:
            self._attempts = 0
            self._enrollment_code = None
            self._enrollment_image = None
            self._set_state(ConnectionState.DISCONNECTED)
