"""Personalized recommendation module.

Ranks rule-based candidates for a specific user from the items they buy most,
weighting each candidate by how recently the user bought the item it was
derived from. Users without history get global popularity instead.
"""

import datetime as dt
import logging
import math
from typing import Dict, Iterable, List, Optional, Set

from basketrec.recommender.models import Suggestion, SuggestionSource, UserItemStat
from basketrec.recommender.sources import UserStatsSource
from basketrec.recommender.store import RecommendationStore

# Configure module logger
logger = logging.getLogger(__name__)

# Default parameters
DEFAULT_TOP_K = 3
DEFAULT_LIMIT = 3
DEFAULT_RECENCY_WINDOW_DAYS = 30.0
DEFAULT_RECENCY_FLOOR = 0.1

_EPOCH = dt.datetime(1970, 1, 1, tzinfo=dt.timezone.utc)


def _as_utc(value: Optional[dt.datetime]) -> Optional[dt.datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def recency_weight(
    last_purchased_at: Optional[dt.datetime],
    now: dt.datetime,
    window_days: float = DEFAULT_RECENCY_WINDOW_DAYS,
    floor: float = DEFAULT_RECENCY_FLOOR,
) -> float:
    """Linear decay over ``window_days`` whole days, never below ``floor``.

    An unknown purchase time counts as fully recent.
    """
    last = _as_utc(last_purchased_at)
    if last is None:
        return 1.0

    days_since = max(0, math.floor((_as_utc(now) - last).total_seconds() / 86400))
    return max(floor, 1.0 - days_since / window_days)


class PersonalizationScorer:
    """Scores rule candidates for a user from their purchase statistics."""

    def __init__(
        self,
        store: RecommendationStore,
        user_stats: UserStatsSource,
        top_k: int = DEFAULT_TOP_K,
        limit: int = DEFAULT_LIMIT,
        recency_window_days: float = DEFAULT_RECENCY_WINDOW_DAYS,
        recency_floor: float = DEFAULT_RECENCY_FLOOR,
    ):
        self.store = store
        self.user_stats = user_stats
        self.top_k = top_k
        self.limit = limit
        self.recency_window_days = recency_window_days
        self.recency_floor = recency_floor

    def top_items(self, stats: List[UserItemStat]) -> List[UserItemStat]:
        """User's top-K items by purchases, ties broken by most recent purchase."""
        ranked = sorted(
            (s for s in stats if s.purchases > 0),
            key=lambda s: (s.purchases, _as_utc(s.last_purchased_at) or _EPOCH),
            reverse=True,
        )
        return ranked[: self.top_k]

    def score(
        self,
        user_id: Optional[str],
        exclude: Iterable[str] = (),
        limit: Optional[int] = None,
        now: Optional[dt.datetime] = None,
    ) -> List[Suggestion]:
        """Get personalized suggestions for a user.

        Args:
            user_id: User to personalize for. None means anonymous.
            exclude: Item ids that must not be suggested (e.g. cart items).
            limit: Number of suggestions (default: the scorer's limit).
            now: Reference time for recency, defaults to the current time.

        Returns:
            Up to ``limit`` suggestions, personalized first and then
            backfilled from global popularity.
        """
        limit = self.limit if limit is None else limit
        if limit <= 0:
            return []

        excluded: Set[str] = set(exclude)
        now = now or dt.datetime.now(dt.timezone.utc)

        if user_id is None:
            return self.popular(exclude=excluded, limit=limit)

        try:
            stats = self.user_stats.stats_for_user(user_id)
        except Exception as e:
            logger.warning(
                "User statistics unavailable, using global popularity",
                extra={"user_id": user_id, "error": str(e), "error_type": type(e).__name__},
            )
            return self.popular(exclude=excluded, limit=limit)

        top = self.top_items(stats)
        if not top:
            logger.info(
                "No purchase history, using global popularity",
                extra={"user_id": user_id, "strategy": "popular"},
            )
            return self.popular(exclude=excluded, limit=limit)

        snapshot = self.store.snapshot

        best: Dict[str, float] = {}
        for stat in top:
            weight = recency_weight(
                stat.last_purchased_at,
                now,
                window_days=self.recency_window_days,
                floor=self.recency_floor,
            )
            for edge in snapshot.by_source.get(stat.item_id, ()):
                candidate = edge.recommended_item_id
                if candidate in excluded:
                    continue
                candidate_score = edge.confidence * weight
                if candidate_score > best.get(candidate, float("-inf")):
                    best[candidate] = candidate_score

        ranked = sorted(best.items(), key=lambda x: (-x[1], x[0]))[:limit]
        suggestions = [
            Suggestion(id=item_id, score=item_score, source=SuggestionSource.PERSONALIZED)
            for item_id, item_score in ranked
        ]

        if len(suggestions) < limit:
            taken = excluded | {s.id for s in suggestions}
            suggestions.extend(self.popular(exclude=taken, limit=limit - len(suggestions)))

        logger.debug(
            "Personalized suggestions computed",
            extra={
                "user_id": user_id,
                "top_items": [s.item_id for s in top],
                "num_suggestions": len(suggestions),
            },
        )

        return suggestions

    def popular(self, exclude: Iterable[str] = (), limit: Optional[int] = None) -> List[Suggestion]:
        """Global popularity: edges ranked by support then lift, descending.

        Each recommended item appears once, scored ``support * lift``.
        """
        limit = self.limit if limit is None else limit
        if limit <= 0:
            return []

        excluded = set(exclude)
        edges = sorted(
            self.store.all_edges(),
            key=lambda e: (-e.support, -e.lift, e.recommended_item_id, e.item_id),
        )

        suggestions: List[Suggestion] = []
        for edge in edges:
            candidate = edge.recommended_item_id
            if candidate in excluded:
                continue
            excluded.add(candidate)
            suggestions.append(
                Suggestion(
                    id=candidate,
                    score=edge.support * edge.lift,
                    source=SuggestionSource.POPULAR,
                )
            )
            if len(suggestions) >= limit:
                break

        return suggestions
