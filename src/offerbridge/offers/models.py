"""Offer domain models and typed stage results."""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class ApiFailure(Exception):
    """Raised inside API clients for transport errors, bad status or GraphQL errors."""

    pass


class MissKind(str, Enum):
    """Why a pipeline stage produced no value."""

    RESOLUTION_MISS = "resolution_miss"  # link is not an offer identity
    API_FAILURE = "api_failure"  # affiliate API error or timeout
    NO_RESULTS = "no_results"  # API answered with zero product nodes


@dataclass(frozen=True)
class StageResult(Generic[T]):
    value: T | None = None
    miss: MissKind | None = None

    @property
    def is_ok(self) -> bool:
        return self.miss is None and self.value is not None

    @classmethod
    def ok(cls, value: T) -> "StageResult[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, miss: MissKind) -> "StageResult[T]":
        return cls(miss=miss)


@dataclass(frozen=True)
class ItemRef:
    """Offer identity extracted from a commerce link. Both None when unresolvable."""

    item_id: str | None = None
    shop_id: str | None = None

    @property
    def is_resolved(self) -> bool:
        return bool(self.item_id and self.shop_id)


@dataclass(frozen=True)
class OfferRecord:
    """Priced product offer. original_price >= current_price always."""

    item_id: str
    shop_id: str
    product_name: str
    current_price: float
    original_price: float
    discount_percent: float
    offer_link: str
    image_url: str | None = None
