"""Domain types shared by the rule miner and the online merge layer."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

COMPLETED_STATUS = "completed"


class SuggestionSource(str, Enum):
    """Where a suggestion came from, in descending merge priority."""

    AI = "ai"
    RULE = "rule"
    PERSONALIZED = "personalized"
    POPULAR = "popular"


@dataclass
class OrderItem:
    order_id: str
    item_id: str
    quantity: int = 1


@dataclass
class Order:
    id: str
    status: str
    created_at: dt.datetime
    items: List[OrderItem] = field(default_factory=list)

    @property
    def is_completed(self) -> bool:
        return self.status == COMPLETED_STATUS


@dataclass
class MenuItem:
    id: str
    name: str
    category: Optional[str] = None
    price: float = 0.0
    is_active: bool = True


@dataclass
class UserItemStat:
    """Per-user purchase statistics, owned by order fulfillment."""

    user_id: str
    item_id: str
    purchases: int
    last_purchased_at: Optional[dt.datetime] = None


@dataclass(frozen=True)
class RecommendationEdge:
    """Directed association rule ``item_id -> recommended_item_id``."""

    item_id: str
    recommended_item_id: str
    support: float
    confidence: float
    lift: float

    def as_row(self) -> Dict[str, object]:
        return {
            "item_id": self.item_id,
            "recommended_item_id": self.recommended_item_id,
            "support": self.support,
            "confidence": self.confidence,
            "lift": self.lift,
        }


@dataclass
class ItemsetCounts:
    """Singleton and pairwise presence counts over completed orders.

    Pair keys are sorted tuples ``(a, b)`` with ``a < b``.
    """

    item_counts: Dict[str, int] = field(default_factory=dict)
    pair_counts: Dict[Tuple[str, str], int] = field(default_factory=dict)
    total_orders: int = 0
    skipped_records: int = 0

    @property
    def is_empty(self) -> bool:
        return self.total_orders == 0


@dataclass
class Suggestion:
    id: str
    score: float
    source: SuggestionSource
    rationale: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        data: Dict[str, object] = {
            "id": self.id,
            "score": self.score,
            "source": self.source.value,
        }
        if self.rationale is not None:
            data["rationale"] = self.rationale
        return data


@dataclass
class SuggestionResponse:
    suggestions: List[Suggestion]
    used_fallback: bool
    cart_fingerprint: str = ""

    @property
    def ids(self) -> List[str]:
        return [s.id for s in self.suggestions]


def cart_fingerprint(cart_item_ids) -> str:
    """Stable key for a cart's content, independent of order and repeats."""
    return "|".join(sorted({str(item_id) for item_id in cart_item_ids}))
