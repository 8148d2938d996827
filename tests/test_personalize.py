"""Tests for the personalization scorer."""

import datetime as dt
from typing import List

import pytest

from basketrec.recommender.models import RecommendationEdge, SuggestionSource, UserItemStat
from basketrec.recommender.personalize import PersonalizationScorer, recency_weight
from basketrec.recommender.sources import InMemoryUserStats
from basketrec.recommender.store import RecommendationStore

NOW = dt.datetime(2024, 6, 1, 12, 0, tzinfo=dt.timezone.utc)


def edge(source: str, target: str, confidence: float, support: float = 0.1, lift: float = 1.5):
    return RecommendationEdge(source, target, support, confidence, lift)


class BrokenUserStats:
    def stats_for_user(self, user_id: str) -> List[UserItemStat]:
        raise TimeoutError("stats service timed out")


@pytest.fixture
def store() -> RecommendationStore:
    store = RecommendationStore()
    store.publish(
        [
            edge("burger", "fries", 0.5, support=0.30, lift=1.4),
            edge("burger", "cola", 0.4, support=0.20, lift=1.2),
            edge("salad", "lemonade", 0.5, support=0.10, lift=2.5),
            edge("salad", "fries", 0.9, support=0.05, lift=1.1),
            edge("fries", "burger", 0.6, support=0.30, lift=1.4),
        ]
    )
    return store


def days_ago(days: float) -> dt.datetime:
    return NOW - dt.timedelta(days=days)


def test_recency_weight_decays_linearly_with_floor() -> None:
    assert recency_weight(None, NOW) == 1.0
    assert recency_weight(NOW, NOW) == 1.0
    assert recency_weight(days_ago(15), NOW) == pytest.approx(0.5)
    assert recency_weight(days_ago(40), NOW) == pytest.approx(0.1)
    assert recency_weight(days_ago(29), NOW) == pytest.approx(0.1, abs=0.1)


def test_recency_weight_uses_whole_days() -> None:
    assert recency_weight(days_ago(1.9), NOW) == pytest.approx(1 - 1 / 30)
    assert recency_weight(days_ago(0.5), NOW) == 1.0


def test_recency_weight_accepts_naive_datetimes() -> None:
    naive = (NOW - dt.timedelta(days=3)).replace(tzinfo=None)

    assert recency_weight(naive, NOW) == pytest.approx(1 - 3 / 30)


def test_recent_purchase_outranks_old_purchase(store) -> None:
    stats = InMemoryUserStats(
        [
            UserItemStat("u1", "burger", 3, days_ago(1)),
            UserItemStat("u1", "salad", 3, days_ago(40)),
        ]
    )
    scorer = PersonalizationScorer(store, stats, limit=3)

    suggestions = scorer.score("u1", now=NOW)

    assert [s.id for s in suggestions][:2] == ["fries", "cola"]
    assert all(s.source == SuggestionSource.PERSONALIZED for s in suggestions)


def test_duplicate_candidates_keep_highest_score(store) -> None:
    stats = InMemoryUserStats(
        [
            UserItemStat("u1", "burger", 5, days_ago(0)),
            UserItemStat("u1", "salad", 2, days_ago(40)),
        ]
    )
    scorer = PersonalizationScorer(store, stats, limit=3)

    suggestions = scorer.score("u1", now=NOW)
    scores = {s.id: s.score for s in suggestions}

    # burger -> fries (0.5 * 1.0) beats salad -> fries (0.9 * 0.1)
    assert scores["fries"] == pytest.approx(0.5)
    assert [s.id for s in suggestions].count("fries") == 1


def test_excluded_items_are_not_suggested(store) -> None:
    stats = InMemoryUserStats([UserItemStat("u1", "burger", 2, days_ago(1))])
    scorer = PersonalizationScorer(store, stats, limit=3)

    suggestions = scorer.score("u1", exclude=["fries"], now=NOW)

    assert "fries" not in [s.id for s in suggestions]
    assert suggestions[0].id == "cola"


def test_short_list_is_backfilled_with_popular_items(store) -> None:
    stats = InMemoryUserStats([UserItemStat("u1", "fries", 1, days_ago(2))])
    scorer = PersonalizationScorer(store, stats, limit=3)

    suggestions = scorer.score("u1", now=NOW)

    assert suggestions[0].id == "burger"
    assert suggestions[0].source == SuggestionSource.PERSONALIZED
    assert [s.source for s in suggestions[1:]] == [SuggestionSource.POPULAR] * 2
    assert len({s.id for s in suggestions}) == 3


def test_unknown_user_gets_popular_items(store) -> None:
    scorer = PersonalizationScorer(store, InMemoryUserStats(), limit=3)

    suggestions = scorer.score("stranger", now=NOW)

    assert [s.id for s in suggestions] == ["burger", "fries", "cola"]
    assert all(s.source == SuggestionSource.POPULAR for s in suggestions)
    assert suggestions[0].score == pytest.approx(0.30 * 1.4)


def test_anonymous_user_gets_popular_items(store) -> None:
    scorer = PersonalizationScorer(store, InMemoryUserStats(), limit=2)

    assert [s.id for s in scorer.score(None)] == ["burger", "fries"]


def test_failing_stats_source_falls_back_to_popular(store) -> None:
    scorer = PersonalizationScorer(store, BrokenUserStats(), limit=2)

    suggestions = scorer.score("u1", now=NOW)

    assert [s.source for s in suggestions] == [SuggestionSource.POPULAR] * 2


def test_top_items_ranks_by_purchases_then_recency(store) -> None:
    scorer = PersonalizationScorer(store, InMemoryUserStats(), top_k=2)
    stats = [
        UserItemStat("u1", "old", 5, days_ago(20)),
        UserItemStat("u1", "new", 5, days_ago(1)),
        UserItemStat("u1", "rare", 1, days_ago(0)),
        UserItemStat("u1", "never", 0, None),
    ]

    assert [s.item_id for s in scorer.top_items(stats)] == ["new", "old"]


def test_empty_store_returns_nothing() -> None:
    scorer = PersonalizationScorer(RecommendationStore(), InMemoryUserStats())

    assert scorer.score("u1") == []
    assert scorer.popular() == []


def test_non_positive_limit_returns_nothing(store) -> None:
    stats = InMemoryUserStats([UserItemStat("u1", "burger", 3, days_ago(1))])
    scorer = PersonalizationScorer(store, stats, limit=3)

    assert scorer.score("u1", limit=-1, now=NOW) == []
    assert scorer.score("u1", limit=0, now=NOW) == []
    assert scorer.score(None, limit=-1) == []
