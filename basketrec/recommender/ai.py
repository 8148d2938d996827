"""AI suggestion adapter.

Wraps a third-party generative model behind a strict contract. The provider
gets a small JSON context (menu sample, rules for the cart, user preference
summary) and must answer with ``{"item_ids": [...], "rationale": "..."}``.
Anything else, including timeouts, auth failures and HTTP errors, becomes an
``AIUnavailable`` result so the merge layer can fall back. Returned ids are
checked against the active menu catalog before they reach ranking.
"""

import asyncio
import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

import httpx
from pydantic import BaseModel, ConfigDict, StrictStr, ValidationError

from basketrec.exceptions import AIProviderError, CatalogValidationError
from basketrec.recommender.models import MenuItem, RecommendationEdge, UserItemStat
from basketrec.recommender.sources import MenuCatalog, UserStatsSource
from basketrec.recommender.store import RecommendationStore

# Configure module logger
logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_MODEL = "gpt-4o"
DEFAULT_TEMPERATURE = 0.3
DEFAULT_MAX_TOKENS = 500
DEFAULT_TIMEOUT_SECONDS = 4.0
DEFAULT_MENU_SAMPLE_SIZE = 10
DEFAULT_RULE_CONTEXT_SIZE = 6
DEFAULT_MAX_SUGGESTIONS = 3
DEFAULT_RATIONALE = "AI-powered recommendations based on your preferences"

SYSTEM_PROMPT = """You are a restaurant recommender. Given cart items, market basket rules and user history, return up to {max_suggestions} menu item ids to suggest.

Guidelines:
- Prefer complementary items (drinks with meals, desserts with mains)
- Never suggest items already in the cart
- Stay within the user's typical price band if available
- Use the market basket rules as primary guidance
- Consider the user's favorite categories

Output strictly as JSON: {{"item_ids": [id, ...], "rationale": "short reason why these items work well together"}}

Context: {context}"""


class ProviderPayload(BaseModel):
    """Shape the provider must answer with."""

    model_config = ConfigDict(extra="ignore")

    item_ids: List[StrictStr]
    rationale: Optional[StrictStr] = None


@dataclass
class AISuggestions:
    item_ids: List[str]
    rationale: str
    dropped_ids: List[str] = field(default_factory=list)


@dataclass
class AIUnavailable:
    reason: str


AIResult = Union[AISuggestions, AIUnavailable]


def parse_provider_payload(content: str) -> ProviderPayload:
    """Parse the model's message content into a validated payload.

    Tolerates text or code fences around the JSON object.

    Raises:
        AIProviderError: If no valid payload can be extracted.
    """
    if not content:
        raise AIProviderError("empty response")

    start = content.find("{")
    end = content.rfind("}")
    if start == -1 or end <= start:
        raise AIProviderError("response is not JSON", {"content": content[:200]})

    try:
        data = json.loads(content[start : end + 1])
    except ValueError as e:
        raise AIProviderError("malformed JSON", {"error": str(e)}) from e

    try:
        return ProviderPayload.model_validate(data)
    except ValidationError as e:
        raise AIProviderError("unexpected payload shape", {"error": str(e)}) from e


def summarize_user_preferences(
    stats: Sequence[UserItemStat], catalog: Dict[str, MenuItem]
) -> Optional[Dict[str, Any]]:
    """Top categories, price band and order volume of a user."""
    known = [(s, catalog[s.item_id]) for s in stats if s.item_id in catalog]
    if not known:
        return None

    categories = Counter(item.category for _, item in known if item.category)
    prices = [item.price for _, item in known]

    return {
        "top_categories": [cat for cat, _ in categories.most_common(3)],
        "avg_price_band": {"min": min(prices), "max": max(prices)},
        "distinct_items": len(known),
        "total_purchases": sum(s.purchases for s, _ in known),
    }


def build_context(
    cart_item_ids: Sequence[str],
    catalog: Dict[str, MenuItem],
    rule_edges: Sequence[RecommendationEdge],
    user_stats: Optional[Sequence[UserItemStat]] = None,
    menu_sample_size: int = DEFAULT_MENU_SAMPLE_SIZE,
    rule_context_size: int = DEFAULT_RULE_CONTEXT_SIZE,
) -> Dict[str, Any]:
    """Build the bounded JSON context sent with each provider call.

    The menu sample lists rule-recommended items first, then the rest of the
    active menu by name, skipping items already in the cart.
    """
    cart = set(cart_item_ids)
    edges = list(rule_edges)[:rule_context_size]

    sample_ids: List[str] = []
    for edge in edges:
        if edge.recommended_item_id in catalog and edge.recommended_item_id not in cart:
            sample_ids.append(edge.recommended_item_id)
    for item in sorted(catalog.values(), key=lambda i: (i.name, i.id)):
        if item.id not in cart:
            sample_ids.append(item.id)
    sample_ids = list(dict.fromkeys(sample_ids))[:menu_sample_size]

    def _name(item_id: str) -> str:
        item = catalog.get(item_id)
        return item.name if item else "Unknown"

    return {
        "menu_items": [
            {
                "id": catalog[item_id].id,
                "name": catalog[item_id].name,
                "category": catalog[item_id].category,
                "price": catalog[item_id].price,
            }
            for item_id in sample_ids
        ],
        "mba_recommendations": [
            {
                "base_item": _name(edge.item_id),
                "recommended_item": _name(edge.recommended_item_id),
                "recommended_id": edge.recommended_item_id,
                "confidence": round(edge.confidence, 3),
            }
            for edge in edges
        ],
        "user_preferences": summarize_user_preferences(user_stats or [], catalog),
        "cart_items": len(cart),
    }


class AISuggester:
    """Calls an OpenAI-compatible chat completions endpoint for suggestions."""

    def __init__(
        self,
        catalog: MenuCatalog,
        store: Optional[RecommendationStore] = None,
        user_stats: Optional[UserStatsSource] = None,
        api_key: Optional[str] = None,
        api_url: str = DEFAULT_API_URL,
        model: str = DEFAULT_MODEL,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        menu_sample_size: int = DEFAULT_MENU_SAMPLE_SIZE,
        rule_context_size: int = DEFAULT_RULE_CONTEXT_SIZE,
        max_suggestions: int = DEFAULT_MAX_SUGGESTIONS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.catalog = catalog
        self.store = store
        self.user_stats = user_stats
        self.api_key = api_key
        self.api_url = api_url
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout_seconds = timeout_seconds
        self.menu_sample_size = menu_sample_size
        self.rule_context_size = rule_context_size
        self.max_suggestions = max_suggestions
        self._transport = transport

    async def suggest(
        self,
        cart_item_ids: Sequence[str],
        user_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> AIResult:
        """Ask the provider for complementary items.

        Never raises for provider problems; those come back as
        ``AIUnavailable``. Zero valid ids is an ``AISuggestions`` with an
        empty list.
        """
        cart = list(dict.fromkeys(cart_item_ids))

        try:
            if not self.api_key:
                raise AIProviderError("API key not configured")

            catalog = await asyncio.to_thread(self._load_catalog)
            if context is None:
                context = await asyncio.to_thread(self._build_context, cart, user_id, catalog)

            content = await self._complete(context)
            payload = parse_provider_payload(content)
        except AIProviderError as e:
            logger.warning(
                "AI suggestions unavailable, falling back",
                extra={"reason": e.reason, "cart_size": len(cart), "user_id": user_id},
            )
            return AIUnavailable(reason=e.reason)

        return self._filter_to_catalog(payload, catalog, set(cart))

    def _load_catalog(self) -> Dict[str, MenuItem]:
        try:
            return {item.id: item for item in self.catalog.active_items()}
        except Exception as e:
            raise AIProviderError("menu catalog unavailable", {"error": str(e)}) from e

    def _build_context(
        self, cart: List[str], user_id: Optional[str], catalog: Dict[str, MenuItem]
    ) -> Dict[str, Any]:
        rule_edges = self.store.edges_for_items(cart) if self.store is not None else []

        stats: List[UserItemStat] = []
        if user_id is not None and self.user_stats is not None:
            try:
                stats = self.user_stats.stats_for_user(user_id)
            except Exception as e:
                logger.warning(
                    "User statistics unavailable for AI context",
                    extra={"user_id": user_id, "error": str(e)},
                )

        return build_context(
            cart,
            catalog,
            rule_edges,
            user_stats=stats,
            menu_sample_size=self.menu_sample_size,
            rule_context_size=self.rule_context_size,
        )

    async def _complete(self, context: Dict[str, Any]) -> str:
        """POST one chat completion and return the message content."""
        cart_items = context.get("cart_items", 0)
        body = {
            "model": self.model,
            "messages": [
                {
                    "role": "system",
                    "content": SYSTEM_PROMPT.format(
                        max_suggestions=self.max_suggestions,
                        context=json.dumps(context, ensure_ascii=False),
                    ),
                },
                {
                    "role": "user",
                    "content": f"Current cart has {cart_items} items. Suggest complementary items.",
                },
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "response_format": {"type": "json_object"},
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self._transport
            ) as client:
                resp = await asyncio.wait_for(
                    client.post(self.api_url, json=body, headers=headers),
                    timeout=self.timeout_seconds,
                )
                resp.raise_for_status()
                data = resp.json()
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise AIProviderError("timeout", {"timeout_seconds": self.timeout_seconds}) from e
        except httpx.HTTPStatusError as e:
            raise AIProviderError(
                f"provider returned HTTP {e.response.status_code}",
                {"status_code": e.response.status_code},
            ) from e
        except httpx.RequestError as e:
            raise AIProviderError("provider unreachable", {"error": str(e)}) from e
        except ValueError as e:
            raise AIProviderError("malformed JSON", {"error": str(e)}) from e

        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise AIProviderError("unexpected response shape") from e

    def _filter_to_catalog(
        self, payload: ProviderPayload, catalog: Dict[str, MenuItem], cart: set
    ) -> AISuggestions:
        accepted: List[str] = []
        dropped: List[str] = []

        for item_id in payload.item_ids:
            if item_id in cart or item_id in accepted:
                continue
            try:
                self._check_in_catalog(item_id, catalog)
            except CatalogValidationError as e:
                dropped.append(e.item_id)
                continue
            accepted.append(item_id)

        if dropped:
            logger.info(
                "Dropped AI suggestions outside the active menu",
                extra={"dropped_ids": dropped, "accepted": len(accepted)},
            )

        rationale = (payload.rationale or "").strip() or DEFAULT_RATIONALE
        return AISuggestions(
            item_ids=accepted[: self.max_suggestions],
            rationale=rationale,
            dropped_ids=dropped,
        )

    @staticmethod
    def _check_in_catalog(item_id: str, catalog: Dict[str, MenuItem]) -> None:
        if item_id not in catalog:
            raise CatalogValidationError(item_id)
