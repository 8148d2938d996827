"""Recommendation store with atomic snapshot swaps.

The store serves the directed edge set produced by the rule generator to the
online request path. Every published edge set is an immutable
``EdgeSnapshot``; publishing builds the new snapshot off to the side and then
replaces the active reference in a single assignment. Readers take the
current reference once per lookup and never observe a half-written graph.
"""

import datetime as dt
import logging
import threading
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import pandas as pd

from basketrec.recommender.models import RecommendationEdge

# Configure module logger
logger = logging.getLogger(__name__)

EDGE_COLUMNS = ["item_id", "recommended_item_id", "support", "confidence", "lift"]


def _edge_rank(edge: RecommendationEdge) -> Tuple[float, float, str]:
    return (-edge.confidence, -edge.lift, edge.recommended_item_id)


@dataclass(frozen=True)
class EdgeSnapshot:
    """One complete, immutable generation of the recommendation graph."""

    edges: Tuple[RecommendationEdge, ...] = ()
    version: int = 0
    generated_at: Optional[dt.datetime] = None
    total_orders: int = 0
    by_source: Mapping[str, Tuple[RecommendationEdge, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )

    @classmethod
    def build(
        cls,
        edges: Iterable[RecommendationEdge],
        version: int,
        generated_at: Optional[dt.datetime] = None,
        total_orders: int = 0,
    ) -> "EdgeSnapshot":
        grouped: Dict[str, List[RecommendationEdge]] = {}
        for edge in edges:
            grouped.setdefault(edge.item_id, []).append(edge)

        by_source = {
            item_id: tuple(sorted(item_edges, key=_edge_rank))
            for item_id, item_edges in grouped.items()
        }
        ordered = tuple(edge for item_id in sorted(by_source) for edge in by_source[item_id])

        return cls(
            edges=ordered,
            version=version,
            generated_at=generated_at,
            total_orders=total_orders,
            by_source=MappingProxyType(by_source),
        )

    def __len__(self) -> int:
        return len(self.edges)


class RecommendationStore:
    """Read-mostly directed edge table keyed by source item.

    Only the rule generator writes; any number of request handlers read
    concurrently without locking.
    """

    def __init__(self, snapshot: Optional[EdgeSnapshot] = None):
        self._active: EdgeSnapshot = snapshot if snapshot is not None else EdgeSnapshot()
        self._write_lock = threading.Lock()

    @property
    def snapshot(self) -> EdgeSnapshot:
        return self._active

    @property
    def version(self) -> int:
        return self._active.version

    def __len__(self) -> int:
        return len(self._active)

    def is_empty(self) -> bool:
        return len(self._active) == 0

    def publish(
        self,
        edges: Iterable[RecommendationEdge],
        total_orders: int = 0,
        generated_at: Optional[dt.datetime] = None,
    ) -> EdgeSnapshot:
        """Replace the whole edge set in one swap.

        The new snapshot is fully built before it becomes visible; the
        previous snapshot stays valid for readers still holding it.
        """
        staged = list(edges)
        with self._write_lock:
            snapshot = EdgeSnapshot.build(
                staged,
                version=self._active.version + 1,
                generated_at=generated_at or dt.datetime.now(dt.timezone.utc),
                total_orders=total_orders,
            )
            previous = self._active
            self._active = snapshot

        logger.info(
            "Published recommendation snapshot",
            extra={
                "version": snapshot.version,
                "edges": len(snapshot),
                "previous_version": previous.version,
                "previous_edges": len(previous),
            },
        )
        return snapshot

    def restore(self, snapshot: EdgeSnapshot) -> None:
        """Install a previously persisted snapshot as the active one."""
        with self._write_lock:
            self._active = snapshot
        logger.info(
            "Restored recommendation snapshot",
            extra={"version": snapshot.version, "edges": len(snapshot)},
        )

    def edges_for(self, item_id: str) -> List[RecommendationEdge]:
        """Outgoing edges of one item, confidence descending."""
        return list(self._active.by_source.get(item_id, ()))

    def edges_for_items(self, item_ids: Iterable[str]) -> List[RecommendationEdge]:
        """Union of outgoing edges for several items, confidence descending.

        All lookups are served from the same snapshot.
        """
        snapshot = self._active
        edges = [
            edge
            for item_id in dict.fromkeys(item_ids)
            for edge in snapshot.by_source.get(item_id, ())
        ]
        return sorted(edges, key=_edge_rank)

    def all_edges(self) -> List[RecommendationEdge]:
        return list(self._active.edges)

    def to_frame(self) -> pd.DataFrame:
        """Export the active edge set as rows for persistence or reporting."""
        rows = [edge.as_row() for edge in self._active.edges]
        return pd.DataFrame(rows, columns=EDGE_COLUMNS)
