"""FastAPI application main module.

This module defines the main FastAPI application instance and core API endpoints
for the BasketRec suggestion service. It wires logging, the error handler and
the recommendation and rule routers, and serves as the entry point for the API
server.
"""

import logging
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from basketrec import __version__
from basketrec.api.logging_config import RequestLoggingMiddleware, setup_logging
from basketrec.api.metrics import metrics_service
from basketrec.api.routes import recommend, rules
from basketrec.config import get_settings
from basketrec.exceptions import BasketRecException

setup_logging(get_settings().LOG_LEVEL)

# Configure module logger
logger = logging.getLogger(__name__)

# Create FastAPI application instance
app = FastAPI(
    title="BasketRec API",
    description="Menu item suggestions from association rules, personalization and AI",
    version=__version__,
)

app.add_middleware(RequestLoggingMiddleware)

# Include routers
app.include_router(recommend.router)
app.include_router(rules.router)


@app.exception_handler(BasketRecException)
async def basketrec_exception_handler(
    request: Request, exc: BasketRecException
) -> JSONResponse:
    """Turn domain exceptions into a consistent JSON error payload."""
    logger.warning(
        f"{type(exc).__name__}: {exc.message}",
        extra={
            "path": str(request.url.path),
            "status_code": exc.status_code,
            "error_type": type(exc).__name__,
        },
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": type(exc).__name__,
            "message": exc.message,
            "details": exc.details,
        },
    )


@app.get("/ping")
def ping() -> Dict[str, str]:
    """Health check endpoint.

    Returns:
        Dictionary with status key set to "ok".

    Example:
        >>> response = client.get("/ping")
        >>> assert response.json() == {"status": "ok"}
    """
    return {"status": "ok"}


@app.get("/metrics")
def metrics() -> Dict[str, Any]:
    """Request, fallback and refresh counters since process start."""
    return metrics_service.get_metrics()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "basketrec.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
