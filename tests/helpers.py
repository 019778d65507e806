"""Shared test doubles for offerbridge tests.

These are NOT fixtures - they are regular classes and functions imported by
conftest.py and individual test modules.
"""

from __future__ import annotations

from concurrent.futures import Executor, Future
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock

from offerbridge.config import Settings
from offerbridge.runtime import Runtime
from offerbridge.session.notifications import StatusBroadcaster
from offerbridge.session.supervisor import SessionSupervisor
from offerbridge.whatsapp.models import InboundMessage

MONITORED_JID = "120363000000000001@g.us"
TARGET_JID = "120363000000000002@g.us"


class InlineExecutor(Executor):
    """Runs submitted callables immediately on the calling thread."""

    def __init__(self) -> None:
        self.submitted = 0

    def submit(self, fn, /, *args, **kwargs) -> Future:
        self.submitted += 1
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except BaseException as e:  # noqa: BLE001 - mirror executor semantics
            future.set_exception(e)
        return future

    def shutdown(self, wait: bool = True, *, cancel_futures: bool = False) -> None:
        pass


class ScheduledCall:
    def __init__(self, delay: float, callback) -> None:
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if not self.cancelled and not self.fired:
            self.fired = True
            self.callback()


class ManualScheduler:
    """Scheduler double: records delays, fires only when the test says so."""

    def __init__(self) -> None:
        self.calls: list[ScheduledCall] = []

    def __call__(self, delay: float, callback) -> ScheduledCall:
        call = ScheduledCall(delay, callback)
        self.calls.append(call)
        return call

    @property
    def delays(self) -> list[float]:
        return [call.delay for call in self.calls]

    @property
    def pending(self) -> list[ScheduledCall]:
        return [c for c in self.calls if not c.cancelled and not c.fired]

    def fire_next(self) -> None:
        self.pending[0].fire()


class FakeTransport:
    def __init__(self) -> None:
        self.listener = None
        self.connect_calls: list[dict[str, str]] = []
        self.sent: list[tuple] = []
        self.logouts = 0
        self.connect_error: Exception | None = None
        self.logout_error: Exception | None = None

    def connect(self, fragments, listener) -> None:
        self.connect_calls.append(dict(fragments))
        self.listener = listener
        if self.connect_error is not None:
            raise self.connect_error

    def send_text(self, conversation_id: str, text: str) -> None:
        self.sent.append(("text", conversation_id, text))

    def send_image(self, conversation_id: str, image_url: str, caption: str) -> None:
        self.sent.append(("image", conversation_id, image_url, caption))

    def logout(self) -> None:
        self.logouts += 1
        if self.logout_error is not None:
            raise self.logout_error


class FakeStore:
    def __init__(self) -> None:
        self.fragments: dict[str, str] = {}
        self.restore_error: Exception | None = None
        self.persist_error: Exception | None = None
        self.clear_error: Exception | None = None
        self.persisted: list[dict[str, str]] = []
        self.clears = 0

    def restore(self, session_key: str) -> dict[str, str]:
        if self.restore_error is not None:
            raise self.restore_error
        return dict(self.fragments)

    def persist(self, session_key: str, fragments: dict[str, str]) -> None:
        if self.persist_error is not None:
            raise self.persist_error
        self.persisted.append(dict(fragments))
        self.fragments.update(fragments)

    def clear(self, session_key: str) -> None:
        if self.clear_error is not None:
            raise self.clear_error
        self.clears += 1
        self.fragments = {}


class RecordingSink:
    def __init__(self) -> None:
        self.statuses = []

    def publish(self, status) -> None:
        self.statuses.append(status)

    @property
    def states(self) -> list[str]:
        return [s.state.value for s in self.statuses]


class LogRecorder:
    """Simple recorder to capture log calls deterministically."""

    def __init__(self):
        self.calls: list[tuple[str, tuple, dict]] = []

    def _record(self, level: str, *args, **kwargs):
        self.calls.append((level, args, kwargs))

    def info(self, *args, **kwargs):
        self._record("info", *args, **kwargs)

    def warning(self, *args, **kwargs):
        self._record("warning", *args, **kwargs)

    def error(self, *args, **kwargs):
        self._record("error", *args, **kwargs)

    def exception(self, *args, **kwargs):
        self._record("exception", *args, **kwargs)

    def debug(self, *args, **kwargs):
        self._record("debug", *args, **kwargs)

    def get_all_logged_content(self) -> str:
        parts = []
        for _, args, kwargs in self.calls:
            parts.append(str(args))
            parts.append(str(kwargs))
        return " ".join(parts)

    def has_extra_field(self, key: str) -> bool:
        """Check if any call has the given key in extra_fields."""
        for _, _, kwargs in self.calls:
            extra = kwargs.get("extra", {})
            if key in extra.get("extra_fields", {}):
                return True
        return False


def make_message(
    message_id: str = "MSG001",
    text: str = "olha isso https://shopee.com.br/product/123/456",
    sender: str = MONITORED_JID,
    from_self: bool = False,
) -> InboundMessage:
    return InboundMessage(
        message_id=message_id,
        sender_conversation_id=sender,
        is_from_self=from_self,
        text=text,
        received_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )


def make_runtime(transport=None, pipeline=None, **settings_overrides):
    """Runtime wired with inline executors and a manual scheduler."""
    transport = transport if transport is not None else FakeTransport()
    if pipeline is None:
        pipeline = MagicMock()
        pipeline.accept.return_value = True
    store = FakeStore()
    broadcaster = StatusBroadcaster()
    supervisor = SessionSupervisor(
        transport=transport,
        store=store,
        sink=broadcaster,
        pipeline=pipeline,
        session_key="default",
        dispatcher=InlineExecutor(),
        workers=InlineExecutor(),
        scheduler=ManualScheduler(),
    )
    return Runtime(
        settings=make_settings(**settings_overrides),
        store=store,
        broadcaster=broadcaster,
        transport=transport,
        supervisor=supervisor,
    )


def make_settings(**overrides) -> Settings:
    values = dict(
        monitored_conversation_id=MONITORED_JID,
        target_conversation_id=TARGET_JID,
        session_key="default",
        session_cache_dir=Path("auth_info_baileys"),
        credentials_key="00" * 32,
        shopee_app_id="app-1",
        shopee_secret="secret-1",
        shopee_api_url="https://affiliate.example/graphql",
        gemini_api_key="gem-key",
        gemini_model="gemini-1.5-flash",
        commerce_keywords=("shopee", "shope.ee", "s.shopee.com.br"),
        max_reconnect_attempts=5,
        auto_connect=False,
        pipeline_workers=2,
    )
    values.update(overrides)
    return Settings(**values)


__all__ = [
    "FakeStore",
    "FakeTransport",
    "InlineExecutor",
    "LogRecorder",
    "ManualScheduler",
    "RecordingSink",
    "make_message",
    "make_runtime",
    "make_settings",
]
