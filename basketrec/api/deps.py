"""Service wiring for the API.

Builds the recommendation components once from ``Settings`` and hands them
to route handlers through the ``get_service`` dependency. Tests replace the
service with ``app.dependency_overrides[get_service]``.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from basketrec.config import Settings, get_settings
from basketrec.recommender.ai import AISuggester
from basketrec.recommender.merge import MergeEngine
from basketrec.recommender.personalize import PersonalizationScorer
from basketrec.recommender.rules import RuleGenerator
from basketrec.recommender.session import SessionRegistry
from basketrec.recommender.sources import (
    CsvMenuCatalog,
    CsvOrderLedger,
    CsvUserStats,
    MenuCatalog,
    OrderLedger,
    UserStatsSource,
)
from basketrec.recommender.store import RecommendationStore
from basketrec.recommender.utils import load_snapshot

# Configure module logger
logger = logging.getLogger(__name__)


@dataclass
class RecommendationService:
    settings: Settings
    ledger: OrderLedger
    catalog: MenuCatalog
    user_stats: UserStatsSource
    store: RecommendationStore
    rule_generator: RuleGenerator
    scorer: PersonalizationScorer
    ai_suggester: AISuggester
    engine: MergeEngine
    sessions: SessionRegistry


def build_service(
    settings: Settings,
    ledger: OrderLedger,
    catalog: MenuCatalog,
    user_stats: UserStatsSource,
    store: Optional[RecommendationStore] = None,
    snapshot_dir: Optional[str] = None,
) -> RecommendationService:
    """Wire all recommendation components from settings and collaborators."""
    if store is None:
        store = RecommendationStore()

    rule_generator = RuleGenerator(
        ledger=ledger,
        store=store,
        min_support=settings.MIN_SUPPORT,
        min_confidence=settings.MIN_CONFIDENCE,
        snapshot_dir=snapshot_dir,
    )
    scorer = PersonalizationScorer(
        store=store,
        user_stats=user_stats,
        top_k=settings.PERSONALIZATION_TOP_K,
        limit=settings.PERSONALIZATION_LIMIT,
        recency_window_days=settings.RECENCY_WINDOW_DAYS,
        recency_floor=settings.RECENCY_FLOOR,
    )
    ai_suggester = AISuggester(
        catalog=catalog,
        store=store,
        user_stats=user_stats,
        api_key=settings.AI_API_KEY,
        api_url=settings.AI_API_URL,
        model=settings.AI_MODEL,
        temperature=settings.AI_TEMPERATURE,
        max_tokens=settings.AI_MAX_TOKENS,
        timeout_seconds=settings.AI_TIMEOUT_SECONDS,
        menu_sample_size=settings.AI_MENU_SAMPLE_SIZE,
        rule_context_size=settings.AI_RULE_CONTEXT_SIZE,
        max_suggestions=settings.AI_MAX_SUGGESTIONS,
    )
    engine = MergeEngine(
        store=store,
        scorer=scorer,
        ai_suggester=ai_suggester,
        detail_view_cap=settings.DETAIL_VIEW_CAP,
        cart_view_cap=settings.CART_VIEW_CAP,
        request_timeout_seconds=settings.REQUEST_TIMEOUT_SECONDS,
    )

    return RecommendationService(
        settings=settings,
        ledger=ledger,
        catalog=catalog,
        user_stats=user_stats,
        store=store,
        rule_generator=rule_generator,
        scorer=scorer,
        ai_suggester=ai_suggester,
        engine=engine,
        sessions=SessionRegistry(engine, max_sessions=settings.SESSION_CACHE_SIZE),
    )


def build_default_service(settings: Settings) -> RecommendationService:
    """Service backed by the CSV files and snapshot directory in settings."""
    store = RecommendationStore()
    snapshot = load_snapshot(settings.SNAPSHOT_DIR)
    if snapshot is not None:
        store.restore(snapshot)

    return build_service(
        settings,
        ledger=CsvOrderLedger(settings.ORDERS_CSV_PATH),
        catalog=CsvMenuCatalog(settings.MENU_CSV_PATH),
        user_stats=CsvUserStats(settings.USER_STATS_CSV_PATH),
        store=store,
        snapshot_dir=settings.SNAPSHOT_DIR,
    )


_service: Optional[RecommendationService] = None
_service_lock = threading.Lock()


def get_service() -> RecommendationService:
    """FastAPI dependency returning the process-wide service."""
    global _service

    if _service is None:
        with _service_lock:
            if _service is None:
                logger.info("Building recommendation service")
                _service = build_default_service(get_settings())
    return _service
