"""Collaborators the recommendation engine reads from.

The order ledger, the menu catalog and the per-user purchase statistics are
owned by other parts of the system. The engine only depends on the small
protocols below; in-memory and CSV-backed implementations are provided for
tests, scripts and the demo API.
"""

import logging
from typing import Dict, Iterable, Iterator, List, Optional, Protocol, Tuple

import pandas as pd

from basketrec.recommender.models import (
    COMPLETED_STATUS,
    MenuItem,
    Order,
    UserItemStat,
)
from basketrec.recommender.utils import read_csv_checked

# Configure module logger
logger = logging.getLogger(__name__)


class OrderLedger(Protocol):
    def completed_order_items(self) -> Iterable[Tuple[str, str]]:
        """Yield ``(order_id, item_id)`` for every line of a completed order."""
        ...


class MenuCatalog(Protocol):
    def active_items(self) -> List[MenuItem]:
        ...


class UserStatsSource(Protocol):
    def stats_for_user(self, user_id: str) -> List[UserItemStat]:
        ...


class InMemoryOrderLedger:
    def __init__(self, orders: Optional[List[Order]] = None):
        self.orders = list(orders or [])

    def add(self, order: Order) -> None:
        self.orders.append(order)

    def completed_order_items(self) -> Iterator[Tuple[str, str]]:
        for order in self.orders:
            if not order.is_completed:
                continue
            for item in order.items:
                yield order.id, item.item_id


class CsvOrderLedger:
    """Order ledger backed by a CSV of order lines.

    Expected columns: ``order_id``, ``item_id`` and optionally ``status``.
    When a status column is present only completed orders are returned.
    """

    def __init__(self, csv_path: str):
        self.csv_path = csv_path

    def completed_order_items(self) -> List[Tuple[str, str]]:
        df = read_csv_checked(self.csv_path, ["order_id", "item_id"])
        if "status" in df.columns:
            df = df[df["status"] == COMPLETED_STATUS]
        return list(df[["order_id", "item_id"]].itertuples(index=False, name=None))


class InMemoryMenuCatalog:
    def __init__(self, items: Optional[List[MenuItem]] = None):
        self._items: Dict[str, MenuItem] = {item.id: item for item in items or []}

    def active_items(self) -> List[MenuItem]:
        return [item for item in self._items.values() if item.is_active]

    def get(self, item_id: str) -> Optional[MenuItem]:
        return self._items.get(item_id)


class CsvMenuCatalog:
    """Menu catalog backed by a CSV with ``id``, ``name`` and optional
    ``category``, ``price`` and ``is_active`` columns."""

    def __init__(self, csv_path: str):
        self.csv_path = csv_path

    def active_items(self) -> List[MenuItem]:
        df = read_csv_checked(self.csv_path, ["id", "name"])
        items = []
        for row in df.to_dict(orient="records"):
            is_active = str(row.get("is_active", "true")).strip().lower() not in ("false", "0", "no")
            if not is_active:
                continue
            price = row.get("price")
            items.append(
                MenuItem(
                    id=str(row["id"]),
                    name=str(row["name"]),
                    category=row.get("category") if pd.notna(row.get("category")) else None,
                    price=float(price) if pd.notna(price) else 0.0,
                    is_active=True,
                )
            )
        return items


class InMemoryUserStats:
    def __init__(self, stats: Optional[List[UserItemStat]] = None):
        self._by_user: Dict[str, List[UserItemStat]] = {}
        for stat in stats or []:
            self._by_user.setdefault(stat.user_id, []).append(stat)

    def stats_for_user(self, user_id: str) -> List[UserItemStat]:
        return list(self._by_user.get(user_id, []))


class CsvUserStats:
    """User purchase statistics backed by a CSV with ``user_id``, ``item_id``,
    ``purchases`` and ``last_purchased_at`` columns."""

    def __init__(self, csv_path: str):
        self.csv_path = csv_path

    def stats_for_user(self, user_id: str) -> List[UserItemStat]:
        df = read_csv_checked(self.csv_path, ["user_id", "item_id", "purchases"])
        df = df[df["user_id"] == str(user_id)]
        if df.empty:
            return []

        if "last_purchased_at" in df.columns:
            last_purchased = pd.to_datetime(df["last_purchased_at"], utc=True, errors="coerce")
        else:
            last_purchased = pd.Series(pd.NaT, index=df.index)
        purchases = pd.to_numeric(df["purchases"], errors="coerce").fillna(0).astype(int)

        stats = []
        for (_, row), count, purchased_at in zip(df.iterrows(), purchases, last_purchased):
            stats.append(
                UserItemStat(
                    user_id=str(row["user_id"]),
                    item_id=str(row["item_id"]),
                    purchases=int(count),
                    last_purchased_at=None if pd.isna(purchased_at) else purchased_at.to_pydatetime(),
                )
            )
        return stats
