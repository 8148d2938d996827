"""Custom exceptions for BasketRec.

Defines specific exception types for the rule miner, the AI suggester and
the API layer. Each carries an HTTP status code so the API can turn it into
a consistent error payload.
"""

from typing import Any, Dict, Optional


class BasketRecException(Exception):
    """Base exception for BasketRec errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        """Initialize exception.

        Args:
            message: Human-readable error message
            status_code: HTTP status code for API responses
            details: Additional error details for debugging
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details or {}


class DataError(BasketRecException):
    """Raised when the order ledger cannot be read during a rule refresh."""

    def __init__(self, source: str, error: Exception):
        message = f"Failed to read order ledger '{source}': {str(error)}"
        super().__init__(
            message=message,
            status_code=503,
            details={
                "source": source,
                "error": str(error),
                "error_type": type(error).__name__,
            },
        )


class ComputeError(BasketRecException):
    """Raised when a single order record is malformed.

    The itemset counter skips the offending record and keeps going.
    """

    def __init__(self, record: Any, reason: str):
        message = f"Malformed order record {record!r}: {reason}"
        super().__init__(
            message=message,
            status_code=422,
            details={"record": repr(record), "reason": reason},
        )


class AIProviderError(BasketRecException):
    """Raised when the AI suggestion provider fails.

    Never escapes the suggester adapter; it is converted into an
    "unavailable" result there.
    """

    def __init__(self, reason: str, details: Optional[Dict[str, Any]] = None):
        message = f"AI provider unavailable: {reason}"
        super().__init__(
            message=message,
            status_code=502,
            details=details or {"reason": reason},
        )
        self.reason = reason


class CatalogValidationError(BasketRecException):
    """Raised when an item id is not part of the active menu catalog."""

    def __init__(self, item_id: str):
        message = f"Item '{item_id}' is not in the active menu catalog"
        super().__init__(
            message=message,
            status_code=422,
            details={"item_id": item_id},
        )
        self.item_id = item_id


class InvalidRequestError(BasketRecException):
    """Raised when a recommendation request is malformed."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, status_code=422, details=details)
