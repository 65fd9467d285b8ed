#!/usr/bin/env python3
"""
Metrics Collector with Prometheus Integration

This module provides request metrics for the client layer:
- In-process counters (requests, errors, cache hits/misses)
- A bounded rolling window of recent latencies for a live average
- Atomic snapshot and reset
- Prometheus mirrors of every recording for scraping

Recording contract: the orchestrator calls ``record_request`` exactly once
per logical request, whichever layer (cache, retry, breaker) served it.

Architectural Decision: prometheus-client for industry-standard metrics
- Compatible with Grafana dashboards
- Histogram buckets for latency percentiles
"""

import threading
from collections import deque
from dataclasses import asdict, dataclass

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Histogram,
    generate_latest,
)

from src.core.config.constants import RequestStatus, Stage
from src.core.config.settings import get_settings
from src.core.logging.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# Metric Definitions
# ============================================================================

REQUEST_COUNT = Counter(
    'resilient_client_requests_total',
    'Total number of logical requests executed',
    ['status']
)

REQUEST_LATENCY = Histogram(
    'resilient_client_request_latency_seconds',
    'End-to-end request latency in seconds',
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)
)

ERRORS = Counter(
    'resilient_client_errors_total',
    'Total failed requests by error type',
    ['error_type']
)

CACHE_LOOKUPS = Counter(
    'resilient_client_cache_lookups_total',
    'Response cache lookups',
    ['result']  # hit or miss
)


@dataclass(frozen=True)
class MetricsSnapshot:
    """Read-only view of the collector at one instant."""

    request_count: int
    error_count: int
    latencies_ms: tuple[float, ...]
    cache_hits: int
    cache_misses: int

    @property
    def average_latency_ms(self) -> float:
        if not self.latencies_ms:
            return 0.0
        return sum(self.latencies_ms) / len(self.latencies_ms)

    @property
    def cache_hit_rate(self) -> float:
        lookups = self.cache_hits + self.cache_misses
        return self.cache_hits / lookups if lookups else 0.0

    @property
    def error_rate(self) -> float:
        return self.error_count / self.request_count if self.request_count else 0.0

    def to_dict(self) -> dict:
        data = asdict(self)
        data["latencies_ms"] = list(self.latencies_ms)
        data["average_latency_ms"] = round(self.average_latency_ms, 3)
        data["cache_hit_rate"] = round(self.cache_hit_rate, 4)
        data["error_rate"] = round(self.error_rate, 4)
        return data


class MetricsCollector:
    """
    Centralized, thread-safe metrics collector.

    STAGE-M: Metrics collection

    Usage:
        metrics = MetricsCollector(latency_window=100)
        metrics.record_request(12.5, error=False, cache_hit=True)
        snapshot = metrics.get_metrics()
        snapshot.average_latency_ms, snapshot.cache_hit_rate
    """

    def __init__(self, latency_window: int | None = None):
        self.latency_window = latency_window or get_settings().metrics.METRICS_LATENCY_WINDOW
        self._lock = threading.Lock()
        self._request_count = 0
        self._error_count = 0
        self._latencies: deque[float] = deque(maxlen=self.latency_window)
        self._cache_hits = 0
        self._cache_misses = 0

        logger.info("Metrics collector initialized", stage=Stage.METRICS, latency_window=self.latency_window)

    # =========================================================================
    # Recording
    # =========================================================================

    def record_request(
        self,
        latency_ms: float,
        *,
        error: bool = False,
        error_type: str | None = None,
        cache_hit: bool | None = None,
        status: RequestStatus | None = None,
    ) -> None:
        """
        Record one logical request.

        Args:
            latency_ms: End-to-end latency in milliseconds
            error: Whether the request failed
            error_type: Exception class name, for the Prometheus error counter
            cache_hit: True/False when the request was cacheable, None otherwise
            status: Outcome label; derived from ``error`` when omitted
        """
        status = status or (RequestStatus.FAILURE if error else RequestStatus.SUCCESS)

        with self._lock:
            self._request_count += 1
            if error:
                self._error_count += 1
            self._latencies.append(latency_ms)
            if cache_hit is True:
                self._cache_hits += 1
            elif cache_hit is False:
                self._cache_misses += 1

        REQUEST_COUNT.labels(status=status.value).inc()
        REQUEST_LATENCY.observe(latency_ms / 1000)
        if error:
            ERRORS.labels(error_type=error_type or "unknown").inc()
        if cache_hit is not None:
            CACHE_LOOKUPS.labels(result="hit" if cache_hit else "miss").inc()

    # =========================================================================
    # Export
    # =========================================================================

    def get_metrics(self) -> MetricsSnapshot:
        """Return a consistent, immutable snapshot. Never mutates state."""
        with self._lock:
            return MetricsSnapshot(
                request_count=self._request_count,
                error_count=self._error_count,
                latencies_ms=tuple(self._latencies),
                cache_hits=self._cache_hits,
                cache_misses=self._cache_misses,
            )

    def reset(self) -> None:
        """Zero every in-process counter atomically. Prometheus counters are monotonic and untouched."""
        with self._lock:
            self._request_count = 0
            self._error_count = 0
            self._latencies.clear()
            self._cache_hits = 0
            self._cache_misses = 0
        logger.info("Metrics reset", stage=Stage.METRICS)

    def get_prometheus_metrics(self) -> bytes:
        """
        Get Prometheus metrics output.

        Returns:
            bytes: Prometheus text format metrics
        """
        return generate_latest(REGISTRY)

    def get_content_type(self) -> str:
        """Get Prometheus content type."""
        return CONTENT_TYPE_LATEST
