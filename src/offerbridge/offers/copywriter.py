"""Promotional copy via the Gemini text-generation REST API."""

from __future__ import annotations

from typing import Any

import requests

from offerbridge.observability.logging import get_logger
from offerbridge.observability.redaction import safe_log_context

logger = get_logger(__name__)

# Timeout for HTTP requests (seconds)
HTTP_TIMEOUT = 15

GENERATE_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

PROMPT_TEMPLATE = (
    "Escreva um parágrafo curto e persuasivo, em português do Brasil, para divulgar "
    'o produto "{product_name}" em um grupo de ofertas no WhatsApp. '
    "Use no máximo duas frases e até dois emojis. Não mencione preços nem links."
)

FALLBACK_COPY = "Oferta por tempo limitado! Garanta o seu antes que acabe. 🔥"


def _do_request(url: str, params: dict[str, str], payload: dict[str, Any]) -> dict[str, Any]:
    """Execute HTTP POST request. Raises on error."""
    response = requests.post(url, params=params, json=payload, timeout=HTTP_TIMEOUT)
    response.raise_for_status()
    return response.json()


def _first_candidate_text(body: dict[str, Any]) -> str:
    return str(body["candidates"][0]["content"]["parts"][0]["text"]).strip()


class Copywriter:
    """Generates a promotional paragraph for a product name. Never raises."""

    def __init__(self, api_key: str, model: str) -> None:
        self._api_key = api_key
        self._model = model

    def generate(self, product_name: str) -> str:
        if not self._api_key:
            logger.warning("GEMINI_API_KEY not configured - using fallback copy")
            return FALLBACK_COPY

        payload = {
            "contents": [
                {"parts": [{"text": PROMPT_TEMPLATE.format(product_name=product_name)}]}
            ]
        }
        try:
            body = _do_request(
                GENERATE_URL.format(model=self._model), {"key": self._api_key}, payload
            )
            text = _first_candidate_text(body)
        except (requests.RequestException, ValueError, KeyError, IndexError, TypeError) as e:
            # Exception text may embed the request URL (and the key); log only the type
            logger.warning(
                "copy generation failed, using fallback",
                extra={"extra_fields": safe_log_context(error_type=type(e).__name__)},
            )
            return FALLBACK_COPY

        if not text:
            logger.warning("copy generation returned empty text, using fallback")
            return FALLBACK_COPY
        return text
