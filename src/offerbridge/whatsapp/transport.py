"""Chat transport capability.

The supervisor only depends on these protocols. A concrete transport (see
evolution_transport) pushes connection events into a TransportListener and
exposes send/logout operations.
"""

from typing import Protocol

from .models import (
    ConnectionClosed,
    ConnectionOpened,
    CredentialsUpdated,
    EnrollmentCodeIssued,
    InboundMessage,
    MessageReceived,
    TransportEvent,
)

# Close status codes (WhatsApp Web DisconnectReason values)
STATUS_LOGGED_OUT = 401
STATUS_BAD_SESSION = 500
STATUS_CONNECTION_CLOSED = 428
STATUS_CONNECTION_LOST = 408
STATUS_RESTART_REQUIRED = 515


class TransportError(Exception):
    """Raised on connectivity or authentication failures of the chat transport."""

    pass


class TransportListener(Protocol):
    """Receiver of transport-originated events."""

    def on_enrollment_code(self, code: str, image: str | None) -> None: ...

    def on_open(self) -> None: ...

    def on_close(self, status_code: int | None) -> None: ...

    def on_message(self, message: InboundMessage) -> None: ...

    def on_credentials_updated(self, fragments: dict[str, str]) -> None: ...


class Transport(Protocol):
    """Chat transport operations."""

    def connect(self, fragments: dict[str, str], listener: TransportListener) -> None:
        """Open a session with the given credential fragments.

        Raises:
            TransportError: If the session cannot be opened.
        """
        ...

    def send_text(self, conversation_id: str, text: str) -> None: ...

    def send_image(self, conversation_id: str, image_url: str, caption: str) -> None: ...

    def logout(self) -> None: ...


def deliver(event: TransportEvent, listener: TransportListener) -> None:
    """Route a typed transport event to the matching listener callback."""
    if isinstance(event, EnrollmentCodeIssued):
        listener.on_enrollment_code(event.code, event.image)
    elif isinstance(event, ConnectionOpened):
        listener.on_open()
    elif isinstance(event, ConnectionClosed):
        listener.on_close(event.status_code)
    elif isinstance(event, MessageReceived):
        listener.on_message(event.message)
    elif isinstance(event, CredentialsUpdated):
        listener.on_credentials_updated(event.fragments)
    else:
        raise TypeError(f"unknown transport event: {type(event).__name__}")
