"""Merge and rank module.

Combines AI, rule-based and personalized candidates into one deduplicated
suggestion list. Source priority is ai > rule > personalized/popular: a
candidate is kept at the position of the highest-priority source that
produced it. The three sources are fetched concurrently and each one is
bounded by the request timeout, so a slow or failing AI provider only costs
its own contribution.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Iterable, List, Optional, Sequence

from basketrec.exceptions import InvalidRequestError
from basketrec.recommender.ai import AIResult, AISuggester, AISuggestions, AIUnavailable
from basketrec.recommender.models import (
    RecommendationEdge,
    Suggestion,
    SuggestionResponse,
    SuggestionSource,
    cart_fingerprint,
)
from basketrec.recommender.personalize import PersonalizationScorer
from basketrec.recommender.store import RecommendationStore

# Configure module logger
logger = logging.getLogger(__name__)

VIEW_DETAIL = "detail"
VIEW_CART = "cart"

DEFAULT_DETAIL_VIEW_CAP = 3
DEFAULT_CART_VIEW_CAP = 6
DEFAULT_REQUEST_TIMEOUT_SECONDS = 6.0
AI_SCORE = 1.0


def merge_candidates(
    cart_item_ids: Iterable[str],
    ai_result: Optional[AIResult],
    rule_edges: Sequence[RecommendationEdge],
    personalized: Sequence[Suggestion],
    cap: int,
) -> List[Suggestion]:
    """Merge candidates by source priority.

    Walks AI ids first (score 1.0, with rationale), then rule edges in the
    given order (score = confidence), then personalized/popular suggestions.
    An id is added only if it is not in the cart and not already taken by a
    higher-priority source. The result holds at most ``cap`` items.

    Example:
        AI ``[X, Y]`` and rules ``[Y, Z, W]`` with cap 3 give ``[X, Y, Z]``.
    """
    seen = set(cart_item_ids)
    merged: List[Suggestion] = []

    def _add(suggestion: Suggestion) -> None:
        if len(merged) >= cap or suggestion.id in seen:
            return
        seen.add(suggestion.id)
        merged.append(suggestion)

    if isinstance(ai_result, AISuggestions):
        for item_id in ai_result.item_ids:
            _add(
                Suggestion(
                    id=item_id,
                    score=AI_SCORE,
                    source=SuggestionSource.AI,
                    rationale=ai_result.rationale,
                )
            )

    for edge in rule_edges:
        _add(
            Suggestion(
                id=edge.recommended_item_id,
                score=edge.confidence,
                source=SuggestionSource.RULE,
            )
        )

    for suggestion in personalized:
        _add(suggestion)

    return merged


class MergeEngine:
    """Produces the final suggestion list for a cart and an optional user."""

    def __init__(
        self,
        store: RecommendationStore,
        scorer: PersonalizationScorer,
        ai_suggester: Optional[AISuggester] = None,
        detail_view_cap: int = DEFAULT_DETAIL_VIEW_CAP,
        cart_view_cap: int = DEFAULT_CART_VIEW_CAP,
        request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
    ):
        self.store = store
        self.scorer = scorer
        self.ai_suggester = ai_suggester
        self.detail_view_cap = detail_view_cap
        self.cart_view_cap = cart_view_cap
        self.request_timeout_seconds = request_timeout_seconds

    def cap_for(self, view: str) -> int:
        if view == VIEW_DETAIL:
            return self.detail_view_cap
        if view == VIEW_CART:
            return self.cart_view_cap
        raise InvalidRequestError(
            f"Unknown view '{view}'", {"view": view, "allowed": [VIEW_DETAIL, VIEW_CART]}
        )

    async def _bounded(self, awaitable: Awaitable[Any], source: str) -> Optional[Any]:
        """Await one sub-call; a timeout or error yields None."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self.request_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                f"{source} sub-call timed out",
                extra={"source": source, "timeout_seconds": self.request_timeout_seconds},
            )
        except Exception as e:
            logger.error(
                f"{source} sub-call failed",
                extra={"source": source, "error": str(e), "error_type": type(e).__name__},
                exc_info=True,
            )
        return None

    async def _ask_ai(self, cart: List[str], user_id: Optional[str]) -> AIResult:
        if self.ai_suggester is None:
            return AIUnavailable(reason="AI suggester not configured")
        return await self.ai_suggester.suggest(cart, user_id)

    async def recommend(
        self,
        cart_item_ids: Sequence[str],
        user_id: Optional[str] = None,
        view: str = VIEW_CART,
    ) -> SuggestionResponse:
        """Get merged suggestions for a cart.

        Args:
            cart_item_ids: Items currently in the cart, possibly empty.
            user_id: Optional user for personalization.
            view: ``"detail"`` (single item page) or ``"cart"``.

        Returns:
            SuggestionResponse. ``used_fallback`` is set when the AI
            contribution was unavailable, failed or timed out.

        Raises:
            InvalidRequestError: If ``view`` is unknown.
        """
        start_time = time.time()
        cap = self.cap_for(view)
        cart = [str(item_id) for item_id in dict.fromkeys(cart_item_ids)]
        fingerprint = cart_fingerprint(cart)

        if not cart:
            personalized = await self._bounded(
                asyncio.to_thread(self.scorer.score, user_id, ()), "personalization"
            )
            suggestions = list(personalized or [])[:cap]
            logger.info(
                "Empty cart, returning personalized suggestions",
                extra={"user_id": user_id, "num_suggestions": len(suggestions)},
            )
            return SuggestionResponse(
                suggestions=suggestions, used_fallback=False, cart_fingerprint=fingerprint
            )

        ai_result, rule_edges, personalized = await asyncio.gather(
            self._bounded(self._ask_ai(cart, user_id), "ai"),
            self._bounded(asyncio.to_thread(self.store.edges_for_items, cart), "rules"),
            self._bounded(
                asyncio.to_thread(self.scorer.score, user_id, cart), "personalization"
            ),
        )

        used_fallback = not isinstance(ai_result, AISuggestions)
        suggestions = merge_candidates(
            cart, ai_result, rule_edges or [], personalized or [], cap
        )

        logger.info(
            "Suggestions merged",
            extra={
                "cart_fingerprint": fingerprint,
                "user_id": user_id,
                "view": view,
                "used_fallback": used_fallback,
                "num_suggestions": len(suggestions),
                "total_time_ms": round((time.time() - start_time) * 1000, 2),
            },
        )

        return SuggestionResponse(
            suggestions=suggestions,
            used_fallback=used_fallback,
            cart_fingerprint=fingerprint,
        )
