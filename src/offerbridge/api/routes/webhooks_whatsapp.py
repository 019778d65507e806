"""WhatsApp webhook routes - Evolution API gateway events.

Security:
- Requests must carry X-Webhook-Secret matching EVOLUTION_WEBHOOK_SECRET
- Fail-closed when the secret is not configured
- Logs contain NO PII (no jid, no text)
"""

import hmac
import os
from typing import Any

from fastapi import APIRouter, Depends, Header, Request, Response

from offerbridge.observability.correlation import get_correlation_id
from offerbridge.observability.logging import get_logger
from offerbridge.observability.redaction import safe_log_context
from offerbridge.runtime import Runtime
from offerbridge.whatsapp.evolution_adapter import InvalidPayloadError

from ..deps import get_runtime

router = APIRouter(prefix="/webhooks/whatsapp", tags=["webhooks"])

logger = get_logger(__name__)


@router.post("/evolution")
async def evolution_webhook(
    request: Request,
    runtime: Runtime = Depends(get_runtime),
    x_webhook_secret: str | None = Header(None, alias="X-Webhook-Secret"),
) -> Response:
    """Receive an Evolution API webhook and hand it to the transport.

    Returns:
        200 OK if processed or ignored.
        400 Bad Request if payload invalid.
        401 Unauthorized if secret validation fails.
    """
    correlation_id = get_correlation_id()

    expected_secret = os.environ.get("EVOLUTION_WEBHOOK_SECRET", "")
    if not expected_secret:
        logger.error(
            "EVOLUTION_WEBHOOK_SECRET not configured - rejecting webhook (fail-closed)",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return Response(status_code=401, content="unauthorized")
    if not x_webhook_secret or not hmac.compare_digest(x_webhook_secret, expected_secret):
        logger.warning(
            "evolution webhook secret mismatch",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return Response(status_code=401, content="unauthorized")

    try:
        payload: dict[str, Any] = await request.json()
    except Exception:
        logger.warning(
            "invalid json body",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return Response(status_code=400, content="invalid json")

    if not isinstance(payload, dict):
        return Response(status_code=400, content="invalid payload shape")

    try:
        delivered = runtime.transport.handle_webhook(payload)
    except InvalidPayloadError as e:
        logger.warning(
            "invalid evolution payload shape",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id, error=str(e))},
        )
        return Response(status_code=400, content="invalid payload shape")

    logger.info(
        "evolution webhook received",
        extra={
            "extra_fields": safe_log_context(
                correlationId=correlation_id,
                event=payload.get("event"),
                delivered=delivered,
            )
        },
    )
    return Response(status_code=200, content="ok")
