"""Chat transport backed by an Evolution API gateway.

Outbound operations are REST calls; inbound events arrive on the webhook
route and are handed to `handle_webhook`.

Security: NEVER log conversation ids or text. Only log hashes and lengths.
"""

from __future__ import annotations

import os
import time
from typing import Any

import requests

from offerbridge.infra.hashing import hash_identifier
from offerbridge.observability.logging import get_logger
from offerbridge.observability.redaction import safe_log_context

from .evolution_adapter import parse_event
from .transport import TransportError, TransportListener, deliver

logger = get_logger(__name__)

# Timeout for HTTP requests (seconds)
HTTP_TIMEOUT = 10

# Retry config
MAX_RETRIES = 1
RETRY_DELAY = 0.2


def _get_config() -> dict[str, str]:
    """Get Evolution API config from environment.

    Required env vars:
    - EVOLUTION_BASE_URL: Base URL (e.g., http://localhost:8080)
    - EVOLUTION_INSTANCE: Instance name
    - EVOLUTION_API_KEY: API token
    """
    base_url = os.environ.get("EVOLUTION_BASE_URL", "")
    instance = os.environ.get("EVOLUTION_INSTANCE", "")
    api_key = os.environ.get("EVOLUTION_API_KEY", "")

    if not base_url or not instance or not api_key:
        raise RuntimeError(
            "Missing Evolution config: EVOLUTION_BASE_URL, EVOLUTION_INSTANCE, EVOLUTION_API_KEY"
        )

    return {
        "base_url": base_url.rstrip("/"),
        "instance": instance,
        "api_key": api_key,
    }


def _do_request(
    method: str, url: str, headers: dict[str, str], payload: dict[str, Any] | None = None
) -> dict[str, Any]:
    """Execute HTTP request. Raises on error."""
    response = requests.request(method, url, json=payload, headers=headers, timeout=HTTP_TIMEOUT)
    response.raise_for_status()
    if not response.content:
        return {}
    return response.json()


def _is_retryable(error: requests.RequestException) -> bool:
    if isinstance(error, (requests.ConnectionError, requests.Timeout)):
        return True
    status = getattr(error.response, "status_code", None)
    return status is not None and 500 <= status < 600


class EvolutionTransport:
    """Transport implementation for the Evolution API WhatsApp gateway.

    The gateway keeps the device key material itself, so `connect` ignores the
    credential fragments and never reports credential updates.
    """

    def __init__(self, config: dict[str, str] | None = None) -> None:
        self._config = config or _get_config()
        self._listener: TransportListener | None = None

    def _url(self, path: str) -> str:
        return f"{self._config['base_url']}{path}/{self._config['instance']}"

    def _call(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
        **log_fields: Any,
    ) -> dict[str, Any]:
        headers = {
            "Content-Type": "application/json",
            "apikey": self._config["api_key"],
        }
        log_ctx = safe_log_context(path=path, **log_fields)

        for attempt in range(MAX_RETRIES + 1):
            try:
                return _do_request(method, self._url(path), headers, payload)
            except requests.RequestException as e:
                if attempt < MAX_RETRIES and _is_retryable(e):
                    logger.warning(
                        "evolution request failed, retrying",
                        extra={
                            "extra_fields": safe_log_context(
                                **log_ctx, attempt=attempt, error_type=type(e).__name__
                            )
                        },
                    )
                    time.sleep(RETRY_DELAY)
                    continue

                logger.error(
                    "evolution request failed",
                    extra={
                        "extra_fields": safe_log_context(
                            **log_ctx, attempt=attempt, error_type=type(e).__name__
                        )
                    },
                )
                raise TransportError(f"evolution {path} failed: {type(e).__name__}") from e

        raise TransportError(f"evolution {path} failed")

    def connect(self, fragments: dict[str, str], listener: TransportListener) -> None:
        """Ask the gateway to open the instance session.

        The answer is either a pairing code (new enrollment) or the instance
        already being open. Later changes arrive through the webhook.
        """
        self._listener = listener
        body = self._call("GET", "/instance/connect")

        state = (body.get("instance") or {}).get("state")
        if state == "open":
            listener.on_open()
            return

        code = body.get("code") or body.get("pairingCode")
        if code:
            listener.on_enrollment_code(code, body.get("base64"))

    def handle_webhook(self, payload: dict[str, Any]) -> bool:
        """Parse a webhook payload and deliver it to the current listener.

        Returns:
            True if an event was delivered.

        Raises:
            InvalidPayloadError: If the payload shape is invalid.
        """
        event = parse_event(payload)
        if event is None:
            return False
        if self._listener is None:
            logger.warning(
                "evolution event dropped: no active listener",
                extra={"extra_fields": safe_log_context(event_type=type(event).__name__)},
            )
            return False
        deliver(event, self._listener)
        return True

    def send_text(self, conversation_id: str, text: str) -> None:
        self._call(
            "POST",
            "/message/sendText",
            {"number": conversation_id, "text": text},
            to_hash=hash_identifier(conversation_id),
            text_len=len(text),
        )
        logger.info(
            "outbound text sent",
            extra={"extra_fields": safe_log_context(to_hash=hash_identifier(conversation_id))},
        )

    def send_image(self, conversation_id: str, image_url: str, caption: str) -> None:
        self._call(
            "POST",
            "/message/sendMedia",
            {
                "number": conversation_id,
                "mediatype": "image",
                "media": image_url,
                "caption": caption,
            },
            to_hash=hash_identifier(conversation_id),
            caption_len=len(caption),
        )
        logger.info(
            "outbound image sent",
            extra={"extra_fields": safe_log_context(to_hash=hash_identifier(conversation_id))},
        )

    def logout(self) -> None:
        self._call("DELETE", "/instance/logout")
