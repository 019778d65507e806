"""Evolution API adapter - validate and normalize webhook payloads into transport events."""

from typing import Any

from offerbridge.infra.time import from_unix

from .models import (
    ConnectionClosed,
    ConnectionOpened,
    EnrollmentCodeIssued,
    InboundMessage,
    MessageReceived,
    TransportEvent,
)
from .transport import STATUS_LOGGED_OUT


class InvalidPayloadError(Exception):
    """Raised when Evolution payload has invalid shape."""

    pass


def _event_name(payload: dict[str, Any]) -> str:
    # v1 sends MESSAGES_UPSERT, v2 sends messages.upsert
    raw = payload.get("event")
    if not raw or not isinstance(raw, str):
        raise InvalidPayloadError("missing event name")
    return raw.strip().lower().replace("_", ".")


def _extract_text(data: dict[str, Any]) -> str:
    message = data.get("message") or {}
    text = message.get("conversation")
    if not text:
        text = (message.get("extendedTextMessage") or {}).get("text")
    if not text:
        text = (message.get("imageMessage") or {}).get("caption")
    return text or ""


def _status_reason(raw: Any) -> int | None:
    if raw is None:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError) as e:
        raise InvalidPayloadError("invalid statusReason") from e


def normalize_message(data: dict[str, Any]) -> InboundMessage:
    """Normalize a messages.upsert data block.

    Args:
        data: The `data` object of the webhook payload.

    Returns:
        InboundMessage with sender id and text (PII, memory only).

    Raises:
        InvalidPayloadError: If required fields are missing or invalid.
    """
    key = data.get("key") or {}

    message_id = key.get("id")
    if not message_id or not isinstance(message_id, str):
        raise InvalidPayloadError("missing or invalid message_id")

    remote_jid = key.get("remoteJid", "")
    if not remote_jid:
        raise InvalidPayloadError("missing remoteJid")

    return InboundMessage(
        message_id=message_id,
        sender_conversation_id=remote_jid,
        is_from_self=bool(key.get("fromMe", False)),
        text=_extract_text(data),
        received_at=from_unix(data.get("messageTimestamp")),
    )


def parse_event(payload: dict[str, Any]) -> TransportEvent | None:
    """Parse an Evolution webhook payload.

    Returns:
        The typed transport event, or None for events the supervisor does not
        track (e.g. `connection.update` with state "connecting", presence, ...).

    Raises:
        InvalidPayloadError: If the payload shape is invalid.
    """
    event = _event_name(payload)
    data = payload.get("data")
    if not isinstance(data, dict):
        raise InvalidPayloadError("missing data object")

    if event == "messages.upsert":
        # Some gateway versions batch messages under data.messages
        messages = data.get("messages")
        if isinstance(messages, list):
            if not messages:
                raise InvalidPayloadError("empty messages batch")
            data = messages[0]
        return MessageReceived(normalize_message(data))

    if event == "qrcode.updated":
        qrcode = data.get("qrcode") or {}
        code = qrcode.get("code") or qrcode.get("pairingCode")
        if not code:
            raise InvalidPayloadError("missing qrcode code")
        return EnrollmentCodeIssued(code=code, image=qrcode.get("base64"))

    if event == "connection.update":
        state = data.get("state")
        if state == "open":
            return ConnectionOpened()
        if state == "close":
            return ConnectionClosed(status_code=_status_reason(data.get("statusReason")))
        return None

    if event == "logout.instance":
        return ConnectionClosed(status_code=STATUS_LOGGED_OUT)

    return None
