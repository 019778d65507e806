"""Offer resolution pipeline.

Turns a monitored-group message carrying a commerce link into a formatted
offer in the target group:

    filter -> dedup -> extract link -> resolve -> affiliate lookup
           -> copy generation -> caption -> send

Any stage miss degrades to a plain fallback text naming the detected link,
so a detected link is never dropped silently.
"""

from __future__ import annotations

import dataclasses
from typing import Callable, Iterable, Protocol

from offerbridge.infra.hashing import hash_identifier
from offerbridge.observability.logging import get_logger
from offerbridge.observability.redaction import safe_log_context
from offerbridge.whatsapp.models import InboundMessage, OutboundMessage
from offerbridge.whatsapp.transport import TransportError

from .affiliate_client import AffiliateClient
from .copywriter import Copywriter
from .dedup import SeenMessageWindow
from .links import find_commerce_urls, resolve
from .models import ItemRef, MissKind, OfferRecord, StageResult
from .templates import render, render_offer_caption

logger = get_logger(__name__)


class MessageSender(Protocol):
    def send(self, conversation_id: str, message: OutboundMessage) -> None:
        """Deliver a message.

        Raises:
            TransportError: If the message cannot be delivered.
        """
        ...


class OfferPipeline:
    """Stateless per message, apart from the seen-message window."""

    def __init__(
        self,
        *,
        monitored_conversation_id: str,
        target_conversation_id: str,
        keywords: Iterable[str],
        affiliate: AffiliateClient,
        copywriter: Copywriter,
        resolver: Callable[[str], ItemRef] = resolve,
        seen: SeenMessageWindow | None = None,
    ) -> None:
        self._monitored = monitored_conversation_id
        self._target = target_conversation_id
        self._keywords = tuple(keywords)
        self._affiliate = affiliate
        self._copywriter = copywriter
        self._resolver = resolver
        self._seen = seen if seen is not None else SeenMessageWindow()

    def accept(self, message: InboundMessage) -> bool:
        """Eligibility filter. Records the id before any processing happens.

        Self-authored and empty messages are rejected without touching the
        seen window.
        """
        if message.is_from_self or not message.text.strip():
            return False
        if not self._seen.check_and_add(message.message_id):
            logger.info(
                "duplicate message ignored",
                extra={
                    "extra_fields": safe_log_context(
                        message_hash=hash_identifier(message.message_id)
                    )
                },
            )
            return False
        return True

    def _resolve(self, url: str) -> StageResult[ItemRef]:
        ref = self._resolver(url)
        if not ref.is_resolved:
            return StageResult.fail(MissKind.RESOLUTION_MISS)
        return StageResult.ok(ref)

    def _fallback(self, url: str, miss: MissKind | None) -> OutboundMessage:
        logger.info(
            "offer resolution missed, sending fallback",
            extra={"extra_fields": safe_log_context(miss=miss.value if miss else None)},
        )
        return OutboundMessage(text=render("offer_fallback", {"url": url}))

    def build_outbound(self, url: str) -> OutboundMessage:
        """Resolve one commerce link into the message to publish."""
        ref = self._resolve(url)
        if not ref.is_ok:
            return self._fallback(url, ref.miss)

        offer = self._affiliate.lookup(ref.value.item_id, ref.value.shop_id)
        if not offer.is_ok:
            return self._fallback(url, offer.miss)

        record: OfferRecord = offer.value
        if not record.offer_link:
            record = dataclasses.replace(record, offer_link=url)

        promo_copy = self._copywriter.generate(record.product_name)
        caption = render_offer_caption(record, promo_copy)
        return OutboundMessage(text=caption, image_url=record.image_url)

    def process(self, message: InboundMessage, sender: MessageSender) -> OutboundMessage | None:
        """Run the pipeline for an accepted message.

        Returns:
            The message that was sent (or attempted), or None when the message
            is not from the monitored group or carries no commerce link.
        """
        if message.sender_conversation_id != self._monitored:
            return None

        urls = find_commerce_urls(message.text, self._keywords)
        if not urls:
            return None

        # First link only; later links in the same message are ignored
        outbound = self.build_outbound(urls[0])

        log_ctx = safe_log_context(
            message_hash=hash_identifier(message.message_id),
            to_hash=hash_identifier(self._target),
            has_image=outbound.has_image,
            links_found=len(urls),
        )
        try:
            sender.send(self._target, outbound)
        except TransportError as e:
            logger.error(
                "offer publish failed",
                extra={"extra_fields": safe_log_context(**log_ctx, error=str(e))},
            )
            return outbound

        logger.info("offer published", extra={"extra_fields": log_ctx})
        return outbound

    def handle(self, message: InboundMessage, sender: MessageSender) -> OutboundMessage | None:
        if not self.accept(message):
            return None
        return self.process(message, sender)
