#!/usr/bin/env python3
"""
Resilient Client Orchestrator

Composition root wiring every resilience layer around one entry point:

    await orchestrator.execute(identity, request)

REQUEST LIFECYCLE:
------------------
1. Request ID bound to the logging context
2. MiddlewarePipeline: logging → cache → rate limit
3. Pipeline tail:
       pool.execute_with_connection(identity,
           breaker.execute(
               retry.execute(
                   transport.perform(...) + raise_for_status)))
4. Metrics recorded exactly once, whichever layer decided the outcome

The orchestrator is shared: many callers may execute concurrently. All shared
state lives in the collaborators, each guarding its own structure.
"""

import asyncio
import time
import uuid
from collections.abc import Callable, Mapping
from typing import Any

from src.client.transport import Transport, TransportResponse, raise_for_status
from src.core.config.constants import HEADER_REQUEST_ID, CacheOutcome, RequestStatus, Stage
from src.core.config.settings import Settings, get_settings
from src.core.exceptions import (
    CircuitBreakerOpenError,
    RateLimitExceededError,
    ResilienceBaseError,
)
from src.core.logging.logger import (
    clear_request_id,
    fingerprint,
    get_logger,
    get_request_id,
    set_request_id,
)
from src.core.resilience.circuit_breaker import CircuitBreakerManager
from src.core.resilience.connection_pool_manager import ConnectionLease, ConnectionPoolManager
from src.core.resilience.rate_limiter import SlidingWindowRateLimiter
from src.core.resilience.retry import RetryPolicy, RetryStrategy
from src.infrastructure.cache.response_cache import ResponseCache
from src.infrastructure.monitoring.metrics_collector import MetricsCollector, MetricsSnapshot
from src.pipeline.middleware import CacheMiddleware, RateLimitMiddleware, RequestLoggingMiddleware
from src.pipeline.middleware_pipeline import MiddlewarePipeline
from src.pipeline.models import OperationRequest, RequestContext

logger = get_logger(__name__)


class Orchestrator:
    """
    Executes remote operations through the full resilience stack.

    Every collaborator is optional; missing ones are built from ``settings``.
    A custom ``pipeline`` is used as given, so it must include whatever
    middlewares the caller wants (the defaults are not added to it).

    Usage:
        async with Orchestrator(HttpxTransport("https://api.example.com")) as client:
            data = await client.execute("key-123", {"method": "GET", "endpoint": "/memories"})
    """

    def __init__(
        self,
        transport: Transport,
        *,
        pool: ConnectionPoolManager | None = None,
        pipeline: MiddlewarePipeline | None = None,
        breakers: CircuitBreakerManager | None = None,
        retry: RetryStrategy | None = None,
        rate_limiter: SlidingWindowRateLimiter | None = None,
        cache: ResponseCache | None = None,
        metrics: MetricsCollector | None = None,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        self.settings = settings or get_settings()
        s = self.settings
        self.transport = transport

        self.pool = pool or ConnectionPoolManager(
            s.POOL_MAX_CONNECTIONS,
            idle_timeout=s.POOL_IDLE_TIMEOUT,
            poll_interval=s.POOL_POLL_INTERVAL,
            acquire_timeout=s.POOL_ACQUIRE_TIMEOUT,
            sweep_interval=s.POOL_SWEEP_INTERVAL,
            clock=clock,
        )
        self.breakers = breakers or CircuitBreakerManager(
            failure_threshold=s.CB_FAILURE_THRESHOLD,
            timeout=s.CB_TIMEOUT,
            reset_timeout=s.CB_RECOVERY_TIMEOUT,
            max_breakers=s.CB_MAX_BREAKERS,
            clock=clock,
        )
        self.retry = retry or RetryStrategy(
            RetryPolicy(
                max_attempts=s.RETRY_MAX_ATTEMPTS,
                base_delay=s.RETRY_BASE_DELAY,
                max_delay=s.RETRY_MAX_DELAY,
                backoff_factor=s.RETRY_BACKOFF_FACTOR,
            ),
            sleep=sleep,
        )
        self.rate_limiter = rate_limiter or SlidingWindowRateLimiter.from_limit_string(
            s.RATE_LIMIT_DEFAULT,
            max_keys=s.RATE_LIMIT_MAX_KEYS,
            sweep_interval=s.RATE_LIMIT_SWEEP_INTERVAL,
            clock=clock,
        )
        if cache is None and s.ENABLE_CACHING:
            cache = ResponseCache(ttl=s.CACHE_RESPONSE_TTL, max_size=s.CACHE_MAX_SIZE, clock=clock)
        self.cache = cache
        self.metrics = metrics or MetricsCollector(latency_window=s.METRICS_LATENCY_WINDOW)
        self.pipeline = pipeline or self._build_default_pipeline()

        logger.info(
            "Orchestrator initialized",
            stage=Stage.INITIALIZATION,
            middlewares=len(self.pipeline),
            caching=self.cache is not None,
        )

    def _build_default_pipeline(self) -> MiddlewarePipeline:
        pipeline = MiddlewarePipeline().use(RequestLoggingMiddleware())
        if self.cache is not None:
            pipeline.use(CacheMiddleware(self.cache))
        return pipeline.use(RateLimitMiddleware(self.rate_limiter))

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def __aenter__(self) -> "Orchestrator":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def start(self) -> None:
        """Start the background sweeps (pool idle eviction, rate-limit key cleanup)."""
        self.pool.start()
        self.rate_limiter.start()

    async def close(self) -> None:
        """Stop the sweeps and release pool leases. The transport is left open."""
        await self.rate_limiter.stop()
        await self.pool.close()
        logger.info("Orchestrator closed", stage=Stage.CLEANUP)

    # =========================================================================
    # Execution
    # =========================================================================

    async def execute(self, identity: str, request: OperationRequest | Mapping[str, Any]) -> Any:
        """
        Execute one remote operation on behalf of ``identity``.

        Args:
            identity: Opaque partition key for pool, rate limiter and cache
            request: `OperationRequest` or a mapping with the same fields

        Returns:
            The decoded response data

        Raises:
            RateLimitExceededError: Identity over its rate
            CircuitBreakerOpenError: Operation class failing fast
            ClientError: Remote 4xx (not retried)
            ServerError / TransportError: Remote or network failure after retries
            ConnectionPoolExhaustedError: No lease capacity within the acquire timeout
        """
        if not isinstance(request, OperationRequest):
            request = OperationRequest.model_validate(request)

        request_id = request.headers.get(HEADER_REQUEST_ID) or str(uuid.uuid4())
        previous_request_id = get_request_id()
        set_request_id(request_id)

        metadata: dict[str, Any] = {}
        status = RequestStatus.SUCCESS
        error_type: str | None = None
        start_time = time.perf_counter()

        try:
            return await self.pipeline.execute(
                request,
                self._perform,
                identity=identity,
                metadata=metadata,
                request_id=request_id,
            )
        except asyncio.CancelledError:
            status = RequestStatus.CANCELLED
            raise
        except Exception as e:
            if isinstance(e, RateLimitExceededError):
                status = RequestStatus.RATE_LIMITED
            elif isinstance(e, CircuitBreakerOpenError):
                status = RequestStatus.CIRCUIT_OPEN
            else:
                status = RequestStatus.FAILURE
            error_type = type(e).__name__
            if isinstance(e, ResilienceBaseError) and e.request_id is None:
                e.request_id = request_id
            raise
        finally:
            latency_ms = (time.perf_counter() - start_time) * 1000
            self.metrics.record_request(
                latency_ms,
                error=status not in (RequestStatus.SUCCESS, RequestStatus.CANCELLED),
                error_type=error_type,
                cache_hit=_cache_flag(metadata),
                status=status,
            )
            if previous_request_id:
                set_request_id(previous_request_id)
            else:
                clear_request_id()

    async def _perform(self, context: RequestContext) -> TransportResponse:
        """Pipeline tail: lease → breaker → retry → transport."""
        breaker = self.breakers.get_breaker(context.request.operation_class)

        async def call_with_lease(lease: ConnectionLease) -> TransportResponse:
            return await breaker.execute(
                lambda: self.retry.execute(lambda: self._call_transport(context, lease))
            )

        logger.debug(
            "Leasing connection",
            stage=Stage.CONNECTION_LEASE,
            identity=fingerprint(context.identity),
            operation=breaker.name,
        )
        return await self.pool.execute_with_connection(context.identity, call_with_lease)

    async def _call_transport(self, context: RequestContext, lease: ConnectionLease) -> TransportResponse:
        headers = dict(context.headers)
        if isinstance(lease.context, Mapping):
            headers.update(lease.context)
        headers.setdefault(HEADER_REQUEST_ID, context.request_id)

        response = await self.transport.perform(
            context.method,
            context.endpoint,
            headers=headers,
            body=context.body,
            query=context.request.query,
        )
        return raise_for_status(response, endpoint=context.endpoint, request_id=context.request_id)

    # =========================================================================
    # Introspection
    # =========================================================================

    def get_metrics(self) -> MetricsSnapshot:
        return self.metrics.get_metrics()

    def get_stats(self) -> dict[str, Any]:
        return {
            "metrics": self.metrics.get_metrics().to_dict(),
            "circuit_breakers": self.breakers.get_all_stats(),
            "pool": self.pool.get_stats(),
            "rate_limiter": self.rate_limiter.get_stats(),
            "cache": self.cache.get_stats() if self.cache is not None else None,
        }


def _cache_flag(metadata: Mapping[str, Any]) -> bool | None:
    outcome = metadata.get("cache")
    if outcome is None:
        return None
    return outcome == CacheOutcome.HIT.value


def create_orchestrator(transport: Transport, settings: Settings | None = None, **kwargs) -> Orchestrator:
    """Build an orchestrator with every collaborator defaulted from settings."""
    return Orchestrator(transport, settings=settings, **kwargs)
