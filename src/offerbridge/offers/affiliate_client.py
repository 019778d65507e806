"""Signed client for the Shopee affiliate GraphQL API.

Every request is signed with SHA-256 over app id, timestamp, payload and
secret. The exact serialized payload that was signed is the one sent.
"""

from __future__ import annotations

import hashlib
import json
import time
from typing import Any

import requests

from offerbridge.observability.logging import get_logger
from offerbridge.observability.redaction import safe_log_context

from .models import ApiFailure, MissKind, OfferRecord, StageResult
from .pricing import normalize

logger = get_logger(__name__)

# Timeout for HTTP requests (seconds)
HTTP_TIMEOUT = 30

PRODUCT_OFFER_QUERY = (
    "query {{ productOfferV2(itemId: {item_id}, shopId: {shop_id}) {{ nodes {{ "
    "itemId shopId productName price priceMin priceDiscountRate imageUrl offerLink "
    "}} }} }}"
)


def build_payload(item_id: str, shop_id: str) -> str:
    """Serialize the GraphQL body compactly. IDs are validated as integers."""
    query = PRODUCT_OFFER_QUERY.format(item_id=int(item_id), shop_id=int(shop_id))
    return json.dumps({"query": query}, separators=(",", ":"))


def sign(app_id: str, timestamp: int, payload: str, secret: str) -> str:
    base = f"{app_id}{timestamp}{payload}{secret}"
    return hashlib.sha256(base.encode("utf-8")).hexdigest()


def build_authorization(app_id: str, timestamp: int, payload: str, secret: str) -> str:
    signature = sign(app_id, timestamp, payload, secret)
    return f"SHA256 Credential={app_id}, Timestamp={timestamp}, Signature={signature}"


def _do_request(url: str, data: bytes, headers: dict[str, str]) -> dict[str, Any]:
    """Execute HTTP POST request. Raises on error."""
    response = requests.post(url, data=data, headers=headers, timeout=HTTP_TIMEOUT)
    response.raise_for_status()
    return response.json()


def _extract_nodes(body: dict[str, Any]) -> list[dict[str, Any]]:
    """Walk data.productOfferV2.nodes. Raises ApiFailure on any other shape."""
    nodes: Any = body
    for key in ("data", "productOfferV2", "nodes"):
        if nodes is None:
            return []
        if not isinstance(nodes, dict):
            raise ApiFailure(f"unexpected {key} container")
        nodes = nodes.get(key)
    if nodes is None:
        return []
    if not isinstance(nodes, list):
        raise ApiFailure("unexpected nodes shape")
    if nodes and not isinstance(nodes[0], dict):
        raise ApiFailure("unexpected node shape")
    return nodes


def _to_offer(node: dict[str, Any], item_id: str, shop_id: str) -> OfferRecord:
    quote = normalize(
        node.get("price") or node.get("priceMin"),
        node.get("priceDiscountRate"),
    )
    return OfferRecord(
        item_id=str(node.get("itemId") or item_id),
        shop_id=str(node.get("shopId") or shop_id),
        product_name=str(node.get("productName") or "").strip(),
        current_price=quote.current,
        original_price=quote.original,
        discount_percent=quote.discount_percent,
        offer_link=str(node.get("offerLink") or ""),
        image_url=node.get("imageUrl") or None,
    )


class AffiliateClient:
    """Client for product offer lookups.

    Usage:
        client = AffiliateClient(app_id="123", secret="s3cr3t")
        offer = client.fetch_offer(item_id="456", shop_id="123")
    """

    def __init__(self, app_id: str, secret: str, endpoint: str) -> None:
        self._app_id = app_id
        self._secret = secret
        self._endpoint = endpoint

    def _post(self, payload: str) -> dict[str, Any]:
        timestamp = int(time.time())
        headers = {
            "Content-Type": "application/json",
            "Authorization": build_authorization(self._app_id, timestamp, payload, self._secret),
        }
        try:
            body = _do_request(self._endpoint, payload.encode("utf-8"), headers)
        except (requests.RequestException, ValueError) as e:
            raise ApiFailure(type(e).__name__) from e

        if not isinstance(body, dict):
            raise ApiFailure("unexpected response shape")
        if body.get("errors"):
            raise ApiFailure(f"graphql errors: {len(body['errors'])}")
        return body

    def lookup(self, item_id: str, shop_id: str) -> StageResult[OfferRecord]:
        """Fetch one product offer. Failures are returned, not raised."""
        log_ctx = safe_log_context(item_id=item_id, shop_id=shop_id)
        try:
            payload = build_payload(item_id, shop_id)
            nodes = _extract_nodes(self._post(payload))
        except (ApiFailure, ValueError) as e:
            logger.warning(
                "affiliate lookup failed",
                extra={"extra_fields": safe_log_context(**log_ctx, error=str(e))},
            )
            return StageResult.fail(MissKind.API_FAILURE)

        if not nodes:
            logger.info("affiliate lookup returned no nodes", extra={"extra_fields": log_ctx})
            return StageResult.fail(MissKind.NO_RESULTS)

        return StageResult.ok(_to_offer(nodes[0], item_id, shop_id))

    def fetch_offer(self, item_id: str, shop_id: str) -> OfferRecord | None:
        return self.lookup(item_id, shop_id).value
