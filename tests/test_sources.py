"""Tests for the in-memory and CSV-backed collaborators."""

import datetime as dt
from pathlib import Path

import pandas as pd
import pytest

from basketrec.recommender.models import MenuItem, Order, OrderItem
from basketrec.recommender.sources import (
    CsvMenuCatalog,
    CsvOrderLedger,
    CsvUserStats,
    InMemoryMenuCatalog,
    InMemoryOrderLedger,
)
from basketrec.recommender.utils import read_csv_checked


@pytest.fixture
def orders_csv(tmp_path: Path) -> Path:
    df = pd.DataFrame(
        [
            {"order_id": "o1", "item_id": "burger", "status": "completed"},
            {"order_id": "o1", "item_id": "fries", "status": "completed"},
            {"order_id": "o2", "item_id": "cola", "status": "cancelled"},
            {"order_id": "o3", "item_id": "cola", "status": "pending"},
        ]
    )
    path = tmp_path / "orders.csv"
    df.to_csv(path, index=False)
    return path


def test_csv_order_ledger_keeps_completed_orders(orders_csv: Path) -> None:
    ledger = CsvOrderLedger(str(orders_csv))

    assert ledger.completed_order_items() == [("o1", "burger"), ("o1", "fries")]


def test_csv_order_ledger_without_status_column(tmp_path: Path) -> None:
    path = tmp_path / "lines.csv"
    pd.DataFrame([{"order_id": 1, "item_id": 7}]).to_csv(path, index=False)

    assert CsvOrderLedger(str(path)).completed_order_items() == [("1", "7")]


def test_csv_order_ledger_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        CsvOrderLedger(str(tmp_path / "missing.csv")).completed_order_items()


def test_read_csv_checked_missing_columns(tmp_path: Path) -> None:
    path = tmp_path / "bad.csv"
    pd.DataFrame([{"order_id": "o1"}]).to_csv(path, index=False)

    with pytest.raises(ValueError, match="missing required columns"):
        read_csv_checked(str(path), ["order_id", "item_id"])


def test_read_csv_checked_allows_header_only(tmp_path: Path) -> None:
    path = tmp_path / "empty.csv"
    path.write_text("order_id,item_id\n")

    df = read_csv_checked(str(path), ["order_id", "item_id"])

    assert df.empty


def test_in_memory_ledger_skips_unfinished_orders() -> None:
    now = dt.datetime.now(dt.timezone.utc)
    ledger = InMemoryOrderLedger(
        [
            Order("o1", "completed", now, [OrderItem("o1", "burger"), OrderItem("o1", "cola")]),
            Order("o2", "cancelled", now, [OrderItem("o2", "fries")]),
        ]
    )

    assert list(ledger.completed_order_items()) == [("o1", "burger"), ("o1", "cola")]


def test_csv_menu_catalog_skips_inactive_items(tmp_path: Path) -> None:
    path = tmp_path / "menu.csv"
    pd.DataFrame(
        [
            {"id": "burger", "name": "Burger", "category": "mains", "price": "11.5", "is_active": "true"},
            {"id": "soup", "name": "Soup", "category": "", "price": "", "is_active": "false"},
            {"id": "cola", "name": "Cola", "category": "", "price": "", "is_active": "True"},
        ]
    ).to_csv(path, index=False)

    items = CsvMenuCatalog(str(path)).active_items()

    assert [item.id for item in items] == ["burger", "cola"]
    assert items[0].price == 11.5
    assert items[0].category == "mains"
    assert items[1].category is None
    assert items[1].price == 0.0


def test_in_memory_catalog_filters_inactive() -> None:
    catalog = InMemoryMenuCatalog(
        [MenuItem("a", "A"), MenuItem("b", "B", is_active=False)]
    )

    assert [item.id for item in catalog.active_items()] == ["a"]
    assert catalog.get("b").name == "B"


def test_csv_user_stats_parses_counts_and_dates(tmp_path: Path) -> None:
    path = tmp_path / "stats.csv"
    pd.DataFrame(
        [
            {"user_id": "u1", "item_id": "burger", "purchases": "4", "last_purchased_at": "2024-05-01T12:00:00Z"},
            {"user_id": "u1", "item_id": "cola", "purchases": "", "last_purchased_at": ""},
            {"user_id": "u2", "item_id": "fries", "purchases": "1", "last_purchased_at": "2024-05-02"},
        ]
    ).to_csv(path, index=False)

    stats = CsvUserStats(str(path)).stats_for_user("u1")

    assert [(s.item_id, s.purchases) for s in stats] == [("burger", 4), ("cola", 0)]
    assert stats[0].last_purchased_at == dt.datetime(2024, 5, 1, 12, tzinfo=dt.timezone.utc)
    assert stats[1].last_purchased_at is None
    assert CsvUserStats(str(path)).stats_for_user("nobody") == []
