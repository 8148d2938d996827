"""End-to-end tests for the BasketRec API.

Tests the full cycle over CSV files: rule refresh from the order ledger,
snapshot persistence, service restart from the snapshot and suggestion
requests with a mocked AI provider.
"""

import json
import logging
from pathlib import Path
from typing import Dict

import httpx
import pandas as pd
import pytest
from fastapi.testclient import TestClient

from basketrec.api.deps import build_default_service, get_service
from basketrec.api.main import app
from basketrec.config import Settings
from basketrec.recommender.utils import check_snapshot_exists

# Configure logging for tests
logging.basicConfig(level=logging.WARNING)

BASKETS = [
    ["burger", "fries", "cola"],
    ["burger", "fries"],
    ["burger", "fries", "cola"],
    ["burger", "cola"],
    ["salad", "lemonade"],
    ["salad", "lemonade"],
    ["salad"],
    ["cola"],
    ["brownie"],
    ["burger", "fries", "brownie"],
]


@pytest.fixture
def data_settings(tmp_path: Path) -> Settings:
    """Write menu, orders and user stats CSVs and point settings at them."""
    orders = [
        {"order_id": f"o{n}", "item_id": item, "status": "completed"}
        for n, basket in enumerate(BASKETS)
        for item in basket
    ]
    orders.append({"order_id": "x1", "item_id": "salad", "status": "cancelled"})
    orders.append({"order_id": "x1", "item_id": "brownie", "status": "cancelled"})
    pd.DataFrame(orders).to_csv(tmp_path / "orders.csv", index=False)

    menu = [
        {"id": "burger", "name": "Burger", "category": "mains", "price": 11.5},
        {"id": "fries", "name": "Fries", "category": "sides", "price": 4.0},
        {"id": "cola", "name": "Cola", "category": "drinks", "price": 2.5},
        {"id": "salad", "name": "Salad", "category": "mains", "price": 9.0},
        {"id": "lemonade", "name": "Lemonade", "category": "drinks", "price": 3.0},
        {"id": "brownie", "name": "Brownie", "category": "desserts", "price": 5.0},
    ]
    pd.DataFrame(menu).to_csv(tmp_path / "menu.csv", index=False)

    stats = [
        {"user_id": "u1", "item_id": "salad", "purchases": 4, "last_purchased_at": "2024-01-01T00:00:00Z"},
    ]
    pd.DataFrame(stats).to_csv(tmp_path / "user_item_stats.csv", index=False)

    return Settings(
        AI_API_KEY="test-key",
        MIN_SUPPORT=0.1,
        MIN_CONFIDENCE=0.3,
        ORDERS_CSV_PATH=str(tmp_path / "orders.csv"),
        MENU_CSV_PATH=str(tmp_path / "menu.csv"),
        USER_STATS_CSV_PATH=str(tmp_path / "user_item_stats.csv"),
        SNAPSHOT_DIR=str(tmp_path / "models"),
    )


def provider_returning(payload: Dict) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        content = json.dumps(payload)
        return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})

    return httpx.MockTransport(handler)


def test_refresh_persist_restart_and_recommend(data_settings: Settings) -> None:
    service = build_default_service(data_settings)
    service.ai_suggester._transport = provider_returning(
        {"item_ids": ["brownie", "unknown-item"], "rationale": "Save room for dessert"}
    )
    app.dependency_overrides[get_service] = lambda: service
    client = TestClient(app)

    try:
        refresh = client.post("/rules/refresh")
        assert refresh.status_code == 200
        assert refresh.json()["status"] == "published"
        assert refresh.json()["persisted"] is True
        assert refresh.json()["analysis"]["total_orders"] == len(BASKETS)
        assert check_snapshot_exists(data_settings.SNAPSHOT_DIR)

        response = client.post(
            "/recommend",
            json={"cart_item_ids": ["burger"], "user_id": "u1"},
            headers={"X-Session-ID": "e2e"},
        )
        assert response.status_code == 200
        data = response.json()
        ids = [s["id"] for s in data["suggestions"]]
        assert ids[0] == "brownie"
        assert data["suggestions"][0]["source"] == "ai"
        assert data["suggestions"][0]["rationale"] == "Save room for dessert"
        assert "fries" in ids
        assert "burger" not in ids
        assert "unknown-item" not in ids
        assert data["used_fallback"] is False
        assert data["notify_fallback"] is False
    finally:
        app.dependency_overrides.clear()

    # A fresh service picks the persisted rules back up
    restarted = build_default_service(data_settings)
    assert restarted.store.version == service.store.version
    assert restarted.store.snapshot.edges == service.store.snapshot.edges
