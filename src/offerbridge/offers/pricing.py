"""Price normalization for affiliate API product nodes.

Prices may arrive in minor units (x100) or as plain values, with no unit flag.
The rule used here is a heuristic: any parsed value >= 1000 is treated as
minor units and divided by 100. A genuine R$ 1.000+ item sent as a plain
value is therefore shown 100x cheaper; there is no field to tell them apart.
"""

import math
from dataclasses import dataclass
from typing import Any

MINOR_UNIT_THRESHOLD = 1000


@dataclass(frozen=True)
class PriceQuote:
    current: float
    original: float
    discount_percent: float


def _to_float(value: Any) -> float:
    """Parse a numeric field; anything non-numeric becomes 0.0."""
    if isinstance(value, bool) or value is None:
        return 0.0
    try:
        result = float(str(value).strip())
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(result) or math.isinf(result):
        return 0.0
    return result


def normalize_price(raw_price: Any) -> float:
    value = _to_float(raw_price)
    if value >= MINOR_UNIT_THRESHOLD:
        value = value / 100
    return round(value, 2)


def normalize(raw_price: Any, raw_discount_percent: Any) -> PriceQuote:
    """Build (current, original, discount) from raw API fields.

    The original price is derived from the discount and clamped so it is never
    below the current price, whatever the discount field contains.
    """
    current = normalize_price(raw_price)
    discount = _to_float(raw_discount_percent)

    if 0 < discount < 100:
        original = current / (1 - discount / 100)
    else:
        original = current
    original = max(round(original, 2), current)

    return PriceQuote(current=current, original=original, discount_percent=max(discount, 0.0))


def format_brl(value: float) -> str:
    """Format as Brazilian currency digits: 1875.0 -> '1.875,00'."""
    return f"{value:,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")
