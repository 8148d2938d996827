"""Association rule mining module.

This module derives directed "customers who bought X also bought Y" rules
from completed orders. It computes support, confidence and lift for every
co-occurring item pair, keeps the directions that clear the configured
thresholds, and publishes the resulting edge set to the recommendation store
in a single swap.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from basketrec.exceptions import DataError
from basketrec.recommender.itemsets import count_itemsets
from basketrec.recommender.models import ItemsetCounts, RecommendationEdge
from basketrec.recommender.sources import OrderLedger
from basketrec.recommender.store import RecommendationStore
from basketrec.recommender.utils import save_snapshot

# Configure module logger
logger = logging.getLogger(__name__)

# Rule thresholds
DEFAULT_MIN_SUPPORT = 0.01
DEFAULT_MIN_CONFIDENCE = 0.10
TOP_RULES_IN_SUMMARY = 5

# Refresh outcomes
STATUS_PUBLISHED = "published"
STATUS_NO_ORDERS = "no_orders"
STATUS_NO_QUALIFYING_RULES = "no_qualifying_rules"


@dataclass
class RefreshResult:
    """Outcome of one rule refresh run."""

    status: str
    message: str
    edges_published: int = 0
    total_orders: int = 0
    unique_items: int = 0
    item_pairs: int = 0
    skipped_records: int = 0
    min_support: float = DEFAULT_MIN_SUPPORT
    min_confidence: float = DEFAULT_MIN_CONFIDENCE
    store_version: int = 0
    persisted: bool = False
    duration_ms: float = 0.0
    top_rules: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def published(self) -> bool:
        return self.status == STATUS_PUBLISHED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "message": self.message,
            "recommendations_updated": self.edges_published,
            "store_version": self.store_version,
            "persisted": self.persisted,
            "duration_ms": self.duration_ms,
            "analysis": {
                "total_orders": self.total_orders,
                "unique_items": self.unique_items,
                "item_pairs": self.item_pairs,
                "skipped_records": self.skipped_records,
                "min_support": self.min_support,
                "min_confidence": self.min_confidence,
                "top_recommendations": self.top_rules,
            },
        }


def _validate_thresholds(min_support: float, min_confidence: float) -> None:
    if not 0.0 <= min_support <= 1.0:
        raise ValueError(f"min_support must be within [0, 1], got {min_support}")
    if not 0.0 <= min_confidence <= 1.0:
        raise ValueError(f"min_confidence must be within [0, 1], got {min_confidence}")


def generate_rules(
    counts: ItemsetCounts,
    min_support: float = DEFAULT_MIN_SUPPORT,
    min_confidence: float = DEFAULT_MIN_CONFIDENCE,
) -> List[RecommendationEdge]:
    """Generate directed recommendation edges from itemset counts.

    For each counted pair (A, B) both directions are evaluated
    independently. A -> B is kept when supportAB >= min_support,
    confidenceAB >= min_confidence and liftAB > 1.

    Args:
        counts: Output of ``count_itemsets``.
        min_support: Minimum fraction of orders containing the pair.
        min_confidence: Minimum P(B | A) for the edge A -> B.

    Returns:
        List of edges. Empty when there is no order history or nothing
        clears the thresholds.

    Raises:
        ValueError: If a threshold is outside [0, 1].

    Example:
        >>> counts = count_itemsets(ledger.completed_order_items())
        >>> edges = generate_rules(counts, min_support=0.02, min_confidence=0.2)
    """
    _validate_thresholds(min_support, min_confidence)

    total = counts.total_orders
    if total == 0:
        return []

    edges: List[RecommendationEdge] = []

    for (item_a, item_b), count_ab in sorted(counts.pair_counts.items()):
        count_a = counts.item_counts.get(item_a, 0)
        count_b = counts.item_counts.get(item_b, 0)
        if count_a == 0 or count_b == 0:
            logger.warning(
                "Pair counted without singleton counts, skipping",
                extra={"item_a": item_a, "item_b": item_b},
            )
            continue

        support_a = count_a / total
        support_b = count_b / total
        support_ab = count_ab / total

        if support_ab < min_support:
            continue

        confidence_ab = support_ab / support_a
        confidence_ba = support_ab / support_b
        lift_ab = confidence_ab / support_b
        lift_ba = confidence_ba / support_a

        # lift > 1 is decided on the integer counts to avoid float noise
        positive = count_ab * total > count_a * count_b

        if positive and confidence_ab >= min_confidence:
            edges.append(
                RecommendationEdge(
                    item_id=item_a,
                    recommended_item_id=item_b,
                    support=support_ab,
                    confidence=confidence_ab,
                    lift=lift_ab,
                )
            )

        if positive and confidence_ba >= min_confidence:
            edges.append(
                RecommendationEdge(
                    item_id=item_b,
                    recommended_item_id=item_a,
                    support=support_ab,
                    confidence=confidence_ba,
                    lift=lift_ba,
                )
            )

    logger.info(
        f"Generated {len(edges)} recommendation edges from {len(counts.pair_counts)} pairs",
        extra={"min_support": min_support, "min_confidence": min_confidence},
    )

    return edges


def summarize_top_rules(
    edges: List[RecommendationEdge], limit: int = TOP_RULES_IN_SUMMARY
) -> List[Dict[str, Any]]:
    """Strongest edges by lift, rounded for reporting."""
    strongest = sorted(
        edges, key=lambda e: (-e.lift, -e.confidence, e.item_id, e.recommended_item_id)
    )[:limit]
    return [
        {
            "item_id": edge.item_id,
            "recommended_item_id": edge.recommended_item_id,
            "support": round(edge.support, 3),
            "confidence": round(edge.confidence, 3),
            "lift": round(edge.lift, 3),
        }
        for edge in strongest
    ]


class RuleGenerator:
    """Runs rule refreshes from an order ledger into a recommendation store.

    Refreshes are serialized: a second caller waits for the running refresh
    to finish before starting its own.
    """

    def __init__(
        self,
        ledger: OrderLedger,
        store: RecommendationStore,
        min_support: float = DEFAULT_MIN_SUPPORT,
        min_confidence: float = DEFAULT_MIN_CONFIDENCE,
        snapshot_dir: Optional[str] = None,
    ):
        _validate_thresholds(min_support, min_confidence)
        self.ledger = ledger
        self.store = store
        self.min_support = min_support
        self.min_confidence = min_confidence
        self.snapshot_dir = snapshot_dir
        self._refresh_lock = threading.Lock()

    @property
    def ledger_name(self) -> str:
        return str(getattr(self.ledger, "csv_path", type(self.ledger).__name__))

    def refresh(self) -> RefreshResult:
        """Mine the ledger and publish the new edge set.

        Returns:
            RefreshResult describing the outcome. When there are no orders or
            no qualifying rules the store keeps its previous snapshot.

        Raises:
            DataError: If the ledger cannot be read. The store is untouched.
        """
        with self._refresh_lock:
            return self._refresh_locked()

    def _refresh_locked(self) -> RefreshResult:
        start_time = time.time()

        logger.info("=" * 60)
        logger.info("Starting market basket refresh")
        logger.info("=" * 60)

        try:
            records = list(self.ledger.completed_order_items())
        except Exception as e:
            logger.error(
                "Order ledger unavailable, refresh aborted",
                extra={"source": self.ledger_name, "error": str(e)},
                exc_info=True,
            )
            raise DataError(self.ledger_name, e) from e

        counts = count_itemsets(records)
        edges = generate_rules(counts, self.min_support, self.min_confidence)

        result = RefreshResult(
            status=STATUS_PUBLISHED,
            message="Recommendations updated successfully",
            total_orders=counts.total_orders,
            unique_items=len(counts.item_counts),
            item_pairs=len(counts.pair_counts),
            skipped_records=counts.skipped_records,
            min_support=self.min_support,
            min_confidence=self.min_confidence,
            store_version=self.store.version,
        )

        if counts.is_empty:
            result.status = STATUS_NO_ORDERS
            result.message = "No completed orders found to analyze"
        elif not edges:
            result.status = STATUS_NO_QUALIFYING_RULES
            result.message = "No qualifying recommendations found with current thresholds"
        else:
            snapshot = self.store.publish(edges, total_orders=counts.total_orders)
            result.edges_published = len(snapshot)
            result.store_version = snapshot.version
            result.top_rules = summarize_top_rules(edges)

            if self.snapshot_dir:
                try:
                    save_snapshot(snapshot, self.snapshot_dir)
                    result.persisted = True
                except OSError as e:
                    logger.error(
                        f"Failed to persist recommendation snapshot: {e}",
                        extra={"snapshot_dir": self.snapshot_dir},
                    )

        result.duration_ms = round((time.time() - start_time) * 1000, 2)

        if result.published:
            logger.info(
                "Market basket refresh completed",
                extra={
                    "edges": result.edges_published,
                    "store_version": result.store_version,
                    "duration_ms": result.duration_ms,
                },
            )
        else:
            logger.warning(
                f"{result.message}; keeping previous recommendations",
                extra={
                    "status": result.status,
                    "store_version": result.store_version,
                    "kept_edges": len(self.store),
                },
            )

        return result
