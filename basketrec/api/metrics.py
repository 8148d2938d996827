"""Metrics service for tracking recommendation traffic.

Singleton service counting suggestion requests, AI fallbacks, request
latency and rule refreshes.
"""

import threading
from typing import Dict


class MetricsService:
    """Singleton service for tracking API metrics.

    Thread-safe counters and latency tracking for suggestion requests.
    """

    _instance = None
    _lock = threading.Lock()

    def __new__(cls):
        """Create singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super(MetricsService, cls).__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        """Initialize metrics counters."""
        if self._initialized:
            return

        self._lock = threading.Lock()
        self._reset_counters()
        self._initialized = True

    def _reset_counters(self) -> None:
        self._request_count = 0
        self._fallback_count = 0
        self._total_latency_ms = 0.0
        self._min_latency_ms = float('inf')
        self._max_latency_ms = 0.0
        self._refresh_count = 0
        self._refresh_failures = 0

    def record_request(self, latency_ms: float, used_fallback: bool) -> None:
        """Record a suggestion request with its latency.

        Args:
            latency_ms: Latency in milliseconds
            used_fallback: Whether the AI contribution was unavailable
        """
        with self._lock:
            self._request_count += 1
            if used_fallback:
                self._fallback_count += 1
            self._total_latency_ms += latency_ms

            if latency_ms < self._min_latency_ms:
                self._min_latency_ms = latency_ms

            if latency_ms > self._max_latency_ms:
                self._max_latency_ms = latency_ms

    def record_refresh(self, succeeded: bool) -> None:
        with self._lock:
            self._refresh_count += 1
            if not succeeded:
                self._refresh_failures += 1

    def get_metrics(self) -> Dict:
        """Get current metrics.

        Returns:
            Dictionary with request_count, fallback_count, fallback_rate,
            average/min/max latency in milliseconds, refresh_count and
            refresh_failures.
        """
        with self._lock:
            avg_latency = (
                self._total_latency_ms / self._request_count
                if self._request_count > 0
                else 0.0
            )
            fallback_rate = (
                self._fallback_count / self._request_count
                if self._request_count > 0
                else 0.0
            )

            return {
                "request_count": self._request_count,
                "fallback_count": self._fallback_count,
                "fallback_rate": round(fallback_rate, 4),
                "average_latency_ms": round(avg_latency, 2),
                "min_latency_ms": round(self._min_latency_ms, 2) if self._min_latency_ms != float('inf') else 0.0,
                "max_latency_ms": round(self._max_latency_ms, 2),
                "refresh_count": self._refresh_count,
                "refresh_failures": self._refresh_failures,
            }

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        with self._lock:
            self._reset_counters()


# Global singleton instance
metrics_service = MetricsService()
