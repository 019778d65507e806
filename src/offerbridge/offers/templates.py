"""Outbound message templates.

Text is rendered only in-memory at send time, never persisted.
"""

from typing import Any

from .models import OfferRecord
from .pricing import format_brl

TEMPLATES: dict[str, dict[str, Any]] = {
    "offer_caption": {
        "text": (
            "*{product_name}*\n\n"
            "~De R$ {original_price}~\n"
            "_Por R$ {current_price}_ 🔥 {discount_percent}% OFF\n\n"
            "{promo_copy}\n\n"
            "🛒 Compre aqui: {offer_link}\n\n"
            "_Preços e disponibilidade sujeitos a alteração._"
        ),
        "allowed_params": [
            "product_name",
            "original_price",
            "current_price",
            "discount_percent",
            "promo_copy",
            "offer_link",
        ],
    },
    "offer_fallback": {
        "text": "🛒 Oferta Shopee: {url}",
        "allowed_params": ["url"],
    },
}


def render(template_key: str, params: dict[str, Any]) -> str:
    """Render template with params. Validates allowed_params.

    Raises:
        ValueError: If template_key unknown or params contains disallowed keys.
    """
    if template_key not in TEMPLATES:
        raise ValueError(f"Unknown template: {template_key}")

    template = TEMPLATES[template_key]
    allowed = set(template["allowed_params"])
    provided = set(params.keys())

    extras = provided - allowed
    if extras:
        raise ValueError(f"Disallowed params for {template_key}: {extras}")

    return template["text"].format(**params)


def render_offer_caption(offer: OfferRecord, promo_copy: str) -> str:
    return render(
        "offer_caption",
        {
            "product_name": offer.product_name,
            "original_price": format_brl(offer.original_price),
            "current_price": format_brl(offer.current_price),
            "discount_percent": round(offer.discount_percent),
            "promo_copy": promo_copy,
            "offer_link": offer.offer_link,
        },
    )
