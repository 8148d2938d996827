"""Rule management endpoints for the BasketRec API.

Triggers a market basket refresh from the order ledger and reports which
recommendation snapshot is currently served.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends

from basketrec.api.deps import RecommendationService, get_service
from basketrec.api.metrics import metrics_service
from basketrec.exceptions import DataError

# Configure module logger
logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/rules",
    tags=["rules"],
)


@router.post("/refresh")
def refresh_rules(
    service: RecommendationService = Depends(get_service),
) -> Dict[str, Any]:
    """Recompute association rules and swap them in.

    Runs in the threadpool; concurrent calls wait for each other. When the
    ledger has no orders or nothing clears the thresholds, the previous rules
    stay in place and the response says so.

    Raises:
        DataError: If the order ledger cannot be read (503).
    """
    try:
        result = service.rule_generator.refresh()
    except DataError:
        metrics_service.record_refresh(succeeded=False)
        raise

    metrics_service.record_refresh(succeeded=True)
    return result.to_dict()


@router.get("/status")
def rules_status(
    service: RecommendationService = Depends(get_service),
) -> Dict[str, Any]:
    """Version, size and age of the served recommendation snapshot."""
    snapshot = service.store.snapshot
    return {
        "rules_loaded": len(snapshot) > 0,
        "store_version": snapshot.version,
        "edges": len(snapshot),
        "generated_at": snapshot.generated_at.isoformat() if snapshot.generated_at else None,
        "total_orders": snapshot.total_orders,
        "min_support": service.rule_generator.min_support,
        "min_confidence": service.rule_generator.min_confidence,
        "ai_configured": bool(service.settings.AI_API_KEY),
        "active_sessions": len(service.sessions),
    }
