"""WhatsApp message and transport event models."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class InboundMessage:
    """Normalized inbound message.

    ATENÇÃO PII:
    - `sender_conversation_id` and `text` are PII
    - Keep in memory only, NEVER log
    """

    message_id: str
    sender_conversation_id: str
    is_from_self: bool
    text: str
    received_at: datetime


@dataclass(frozen=True)
class OutboundMessage:
    """Message to publish. With `image_url`, `text` is sent as the image caption."""

    text: str
    image_url: str | None = None

    @property
    def has_image(self) -> bool:
        return bool(self.image_url)


@dataclass(frozen=True)
class EnrollmentCodeIssued:
    """Gateway produced a pairing code (QR) for a new session."""

    code: str
    image: str | None = None  # data:image/png;base64,... when the gateway renders it


@dataclass(frozen=True)
class ConnectionOpened:
    pass


@dataclass(frozen=True)
class ConnectionClosed:
    status_code: int | None = None


@dataclass(frozen=True)
class MessageReceived:
    message: InboundMessage


@dataclass(frozen=True)
class CredentialsUpdated:
    fragments: dict[str, str] = field(default_factory=dict)


TransportEvent = (
    EnrollmentCodeIssued
    | ConnectionOpened
    | ConnectionClosed
    | MessageReceived
    | CredentialsUpdated
)
