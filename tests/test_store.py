"""Tests for the recommendation store and snapshot persistence."""

import threading
from typing import List

import pandas as pd
import pytest

from basketrec.recommender.models import RecommendationEdge
from basketrec.recommender.store import EDGE_COLUMNS, EdgeSnapshot, RecommendationStore
from basketrec.recommender.utils import (
    check_snapshot_exists,
    get_snapshot_path,
    load_snapshot,
    save_snapshot,
)


def edge(source: str, target: str, confidence: float, lift: float = 1.5, support: float = 0.2):
    return RecommendationEdge(
        item_id=source,
        recommended_item_id=target,
        support=support,
        confidence=confidence,
        lift=lift,
    )


@pytest.fixture
def edges() -> List[RecommendationEdge]:
    return [
        edge("burger", "fries", 0.6),
        edge("burger", "cola", 0.8),
        edge("burger", "sundae", 0.6, lift=2.0),
        edge("fries", "cola", 0.7),
        edge("fries", "burger", 0.5),
    ]


def test_new_store_is_empty() -> None:
    store = RecommendationStore()

    assert store.is_empty()
    assert store.version == 0
    assert store.edges_for("burger") == []


def test_publish_swaps_in_a_new_version(edges) -> None:
    store = RecommendationStore()

    snapshot = store.publish(edges, total_orders=42)

    assert snapshot.version == 1
    assert snapshot.total_orders == 42
    assert snapshot.generated_at is not None
    assert len(store) == 5
    assert store.snapshot is snapshot


def test_edges_for_orders_by_confidence_then_lift(edges) -> None:
    store = RecommendationStore()
    store.publish(edges)

    targets = [e.recommended_item_id for e in store.edges_for("burger")]

    assert targets == ["cola", "sundae", "fries"]


def test_edges_for_items_unions_and_sorts(edges) -> None:
    store = RecommendationStore()
    store.publish(edges)

    result = store.edges_for_items(["fries", "burger", "fries"])

    assert len(result) == 5
    confidences = [e.confidence for e in result]
    assert confidences == sorted(confidences, reverse=True)


def test_held_snapshot_survives_republish(edges) -> None:
    store = RecommendationStore()
    store.publish(edges)
    held = store.snapshot

    store.publish([edge("cola", "brownie", 0.3)])

    assert len(held) == 5
    assert "burger" in held.by_source
    assert store.edges_for("burger") == []
    assert store.version == 2


def test_snapshot_mapping_is_read_only(edges) -> None:
    snapshot = EdgeSnapshot.build(edges, version=1)

    with pytest.raises(TypeError):
        snapshot.by_source["cola"] = ()


def test_to_frame_exports_edge_rows(edges) -> None:
    store = RecommendationStore()
    store.publish(edges)

    df = store.to_frame()

    assert isinstance(df, pd.DataFrame)
    assert list(df.columns) == EDGE_COLUMNS
    assert len(df) == 5


def test_readers_never_observe_a_mixed_edge_set() -> None:
    first = [edge("a", f"x{i}", 0.5) for i in range(50)]
    second = [edge("b", f"y{i}", 0.5) for i in range(80)]
    store = RecommendationStore()
    store.publish(first)

    seen_sizes = set()
    errors = []
    stop = threading.Event()

    def reader() -> None:
        while not stop.is_set():
            snapshot = store.snapshot
            sources = set(snapshot.by_source)
            if sources not in ({"a"}, {"b"}):
                errors.append(sources)
            if sum(len(v) for v in snapshot.by_source.values()) != len(snapshot):
                errors.append("by_source out of sync with edges")
            seen_sizes.add(len(snapshot))

    threads = [threading.Thread(target=reader) for _ in range(4)]
    for thread in threads:
        thread.start()
    for i in range(200):
        store.publish(second if i % 2 == 0 else first)
    stop.set()
    for thread in threads:
        thread.join()

    assert errors == []
    assert seen_sizes <= {50, 80}


def test_snapshot_round_trip(edges, tmp_path) -> None:
    store = RecommendationStore()
    snapshot = store.publish(edges, total_orders=10)

    path = save_snapshot(snapshot, str(tmp_path))
    loaded = load_snapshot(str(tmp_path))

    assert path == get_snapshot_path(str(tmp_path))
    assert check_snapshot_exists(str(tmp_path))
    assert loaded.version == 1
    assert loaded.total_orders == 10
    assert loaded.generated_at == snapshot.generated_at
    assert loaded.edges == snapshot.edges
    assert [e.recommended_item_id for e in loaded.by_source["burger"]] == [
        "cola",
        "sundae",
        "fries",
    ]


def test_load_snapshot_missing_returns_none(tmp_path) -> None:
    assert load_snapshot(str(tmp_path)) is None
    assert not check_snapshot_exists(str(tmp_path))


def test_restore_installs_snapshot(edges) -> None:
    snapshot = EdgeSnapshot.build(edges, version=7)
    store = RecommendationStore()

    store.restore(snapshot)

    assert store.version == 7
    assert len(store) == 5

    store.publish(edges)
    assert store.version == 8
