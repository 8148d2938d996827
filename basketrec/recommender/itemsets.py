"""Itemset counting for market basket analysis.

Turns a stream of ``(order_id, item_id)`` records from completed orders into
presence-based singleton and pairwise counts. Each order is reduced to the
set of distinct items it contains, so quantities and repeated lines never
inflate the counts.
"""

import logging
import math
from collections.abc import Mapping
from typing import Any, Dict, Iterable, Set, Tuple

import numpy as np
from scipy import sparse
from sklearn.preprocessing import MultiLabelBinarizer

from basketrec.exceptions import ComputeError
from basketrec.recommender.models import ItemsetCounts

# Configure module logger
logger = logging.getLogger(__name__)


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


def _normalize_record(record: Any) -> Tuple[str, str]:
    """Extract a clean ``(order_id, item_id)`` pair from a ledger record.

    Accepts mappings with ``order_id``/``item_id`` keys or 2-sequences.

    Raises:
        ComputeError: If the record is malformed.
    """
    if isinstance(record, Mapping):
        order_id = record.get("order_id")
        item_id = record.get("item_id")
    elif isinstance(record, (str, bytes)):
        raise ComputeError(record, "expected an (order_id, item_id) pair")
    else:
        try:
            order_id, item_id = record
        except (TypeError, ValueError):
            raise ComputeError(record, "expected an (order_id, item_id) pair")

    if _is_missing(order_id) or _is_missing(item_id):
        raise ComputeError(record, "missing order_id or item_id")

    order_id = str(order_id).strip()
    item_id = str(item_id).strip()
    if not order_id or not item_id:
        raise ComputeError(record, "blank order_id or item_id")

    return order_id, item_id


def group_baskets(records: Iterable[Any]) -> Tuple[Dict[str, Set[str]], int]:
    """Group ledger records into one item set per order.

    Malformed records are logged and skipped.

    Returns:
        A tuple of (order_id -> set of item ids, number of skipped records).
    """
    baskets: Dict[str, Set[str]] = {}
    skipped = 0

    for record in records:
        try:
            order_id, item_id = _normalize_record(record)
        except ComputeError as e:
            skipped += 1
            logger.warning("Skipping malformed order record", extra=e.details)
            continue
        baskets.setdefault(order_id, set()).add(item_id)

    return baskets, skipped


def count_itemsets(records: Iterable[Any]) -> ItemsetCounts:
    """Count item and item-pair occurrences across completed orders.

    Baskets are one-hot encoded into a sparse order-by-item matrix ``X``.
    Column sums of ``X`` give per-item order counts and the strict upper
    triangle of ``X^T X`` gives the co-occurrence count of every unordered
    pair of distinct items, so an order with k distinct items contributes
    exactly C(k, 2) pair increments.

    Args:
        records: Iterable of ``(order_id, item_id)`` pairs or mappings with
            those keys, restricted to completed orders by the caller.

    Returns:
        ItemsetCounts. An empty ledger yields zero counts and
        ``total_orders == 0``.
    """
    baskets, skipped = group_baskets(records)

    if not baskets:
        logger.info("No completed orders to count", extra={"skipped_records": skipped})
        return ItemsetCounts(skipped_records=skipped)

    binarizer = MultiLabelBinarizer(sparse_output=True)
    basket_matrix = sparse.csr_matrix(binarizer.fit_transform(list(baskets.values())))
    item_ids = [str(item_id) for item_id in binarizer.classes_]

    item_totals = np.asarray(basket_matrix.sum(axis=0)).ravel()
    item_counts = {
        item_id: int(count) for item_id, count in zip(item_ids, item_totals)
    }

    # classes_ are sorted, so row < col yields a sorted pair key
    co_occurrence = sparse.triu(basket_matrix.T @ basket_matrix, k=1, format="coo")
    pair_counts = {
        (item_ids[row], item_ids[col]): int(count)
        for row, col, count in zip(co_occurrence.row, co_occurrence.col, co_occurrence.data)
        if count > 0
    }

    counts = ItemsetCounts(
        item_counts=item_counts,
        pair_counts=pair_counts,
        total_orders=len(baskets),
        skipped_records=skipped,
    )

    logger.info(
        "Itemsets counted",
        extra={
            "total_orders": counts.total_orders,
            "unique_items": len(item_counts),
            "item_pairs": len(pair_counts),
            "skipped_records": skipped,
        },
    )

    return counts
