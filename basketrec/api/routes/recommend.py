"""Recommendation endpoints for the BasketRec API.

This module provides API endpoints for menu item suggestions: the merged
cart/detail suggestions (AI, association rules, personalization) and the
personalized list for a user.
"""

import logging
import time
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Query
from pydantic import BaseModel, Field

from basketrec.api.deps import RecommendationService, get_service
from basketrec.api.metrics import metrics_service
from basketrec.recommender.merge import VIEW_CART, VIEW_DETAIL
from basketrec.recommender.models import Suggestion, SuggestionResponse
from basketrec.recommender.session import CoordinatedResponse

# Configure module logger
logger = logging.getLogger(__name__)

# Create API router
router = APIRouter(
    prefix="/recommend",
    tags=["recommendations"],
)


class RecommendRequest(BaseModel):
    """Request body for merged suggestions.

    Attributes:
        cart_item_ids: Items currently in the cart, possibly empty.
        user_id: Optional user for personalization.
        view: "cart" (up to 6 suggestions) or "detail" (up to 3).
    """

    cart_item_ids: List[str] = Field(default_factory=list, description="Items in the cart")
    user_id: Optional[str] = Field(default=None, description="User to personalize for")
    view: str = Field(default=VIEW_CART, description="'cart' or 'detail'")


class SuggestionModel(BaseModel):
    id: str
    score: float
    source: str
    rationale: Optional[str] = None

    @classmethod
    def from_suggestion(cls, suggestion: Suggestion) -> "SuggestionModel":
        return cls(
            id=suggestion.id,
            score=suggestion.score,
            source=suggestion.source.value,
            rationale=suggestion.rationale,
        )


class RecommendResponse(BaseModel):
    """Response model for merged suggestions.

    Attributes:
        suggestions: Ranked suggestions, highest priority source first.
        used_fallback: True when the AI contribution was unavailable.
        notify_fallback: True when the client should show the fallback
            notice; at most once per cart state and session.
        stale: True when a newer cart superseded this request.
        cart_fingerprint: Key of the cart state the suggestions belong to.
    """

    suggestions: List[SuggestionModel] = Field(default_factory=list)
    used_fallback: bool = False
    notify_fallback: bool = False
    stale: bool = False
    cart_fingerprint: str = ""

    @classmethod
    def from_coordinated(cls, coordinated: CoordinatedResponse) -> "RecommendResponse":
        response = coordinated.response
        return cls(
            suggestions=[SuggestionModel.from_suggestion(s) for s in response.suggestions],
            used_fallback=response.used_fallback,
            notify_fallback=coordinated.notify_fallback,
            stale=coordinated.stale,
            cart_fingerprint=response.cart_fingerprint,
        )


class UserRecommendationResponse(BaseModel):
    user_id: str
    suggestions: List[SuggestionModel] = Field(default_factory=list)


async def _suggest(
    service: RecommendationService,
    cart_item_ids: List[str],
    user_id: Optional[str],
    view: str,
    session_id: Optional[str],
) -> RecommendResponse:
    """Run one suggestion request, through the session coordinator if any."""
    start_time = time.time()

    # Reject unknown views before anything is scheduled
    service.engine.cap_for(view)

    if session_id:
        coordinated = await service.sessions.get(session_id).request(
            cart_item_ids, user_id, view
        )
    else:
        response: SuggestionResponse = await service.engine.recommend(
            cart_item_ids, user_id, view
        )
        coordinated = CoordinatedResponse(
            response=response, notify_fallback=response.used_fallback
        )

    latency_ms = (time.time() - start_time) * 1000
    metrics_service.record_request(latency_ms, coordinated.response.used_fallback)

    logger.info(
        "Served suggestions",
        extra={
            "session_id": session_id,
            "view": view,
            "num_suggestions": len(coordinated.response.suggestions),
            "used_fallback": coordinated.response.used_fallback,
            "stale": coordinated.stale,
            "coalesced": coordinated.coalesced,
            "latency_ms": round(latency_ms, 2),
        },
    )

    return RecommendResponse.from_coordinated(coordinated)


@router.post("", response_model=RecommendResponse)
async def recommend(
    body: RecommendRequest,
    x_session_id: Optional[str] = Header(default=None),
    service: RecommendationService = Depends(get_service),
) -> RecommendResponse:
    """Get merged suggestions for a cart.

    Combines AI suggestions, association rules and personalization. Sessions
    identified by ``X-Session-ID`` get request coalescing, stale-result
    detection and a once-per-cart fallback notice.

    Example:
        POST /recommend {"cart_item_ids": ["burger"], "user_id": "u1"}
    """
    return await _suggest(
        service, body.cart_item_ids, body.user_id, body.view, x_session_id
    )


@router.get("/item/{item_id}", response_model=RecommendResponse)
async def recommend_for_item(
    item_id: str,
    user_id: Optional[str] = None,
    x_session_id: Optional[str] = Header(default=None),
    service: RecommendationService = Depends(get_service),
) -> RecommendResponse:
    """Suggestions shown on a single item's detail page (up to 3)."""
    return await _suggest(service, [item_id], user_id, VIEW_DETAIL, x_session_id)


@router.get("/user/{user_id}", response_model=UserRecommendationResponse)
def recommend_for_user(
    user_id: str,
    limit: Optional[int] = Query(default=None, ge=1),
    service: RecommendationService = Depends(get_service),
) -> UserRecommendationResponse:
    """Personalized suggestions for a user, backfilled from popularity.

    Example:
        GET /recommend/user/u1?limit=5
    """
    logger.info(f"Generating personalized suggestions for user {user_id}")

    suggestions = service.scorer.score(user_id, limit=limit)
    return UserRecommendationResponse(
        user_id=user_id,
        suggestions=[SuggestionModel.from_suggestion(s) for s in suggestions],
    )
