"""
Connection Pool Manager for Per-Identity Leases.

This module provides a bounded map of identity -> ConnectionLease with:
- Atomic get-or-create under a single asyncio.Lock
- Bounded capacity with polling backpressure and an overall acquire timeout
- Scoped usage tracking (active request count) that is released on every exit path
- Idle eviction by a periodic sweep comparing ``last_used_at`` to ``idle_timeout``
- Comprehensive stage-based logging

STAGE-CP: Connection Pool Management
-------------------------------------
CP.1: Lease acquisition
CP.2: Capacity wait
CP.3: Scoped usage tracking
CP.4: Idle eviction
CP.5: Statistics

Identities are opaque strings. They are used as map keys and handed to the
context factory, never parsed; logs carry a fingerprint instead of the value.
"""

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, TypeVar

from src.core.config.constants import HEADER_AUTHORIZATION, Stage
from src.core.config.settings import get_settings
from src.core.exceptions.connection_pool import ConnectionPoolExhaustedError
from src.core.logging.logger import fingerprint, get_logger
from src.core.resilience.sweeper import PeriodicSweeper

logger = get_logger(__name__)

T = TypeVar("T")


def default_context_factory(identity: str) -> dict[str, str]:
    """Auth context attached to every call made under a lease: a bearer header."""
    return {HEADER_AUTHORIZATION: f"Bearer {identity}"}


@dataclass
class ConnectionLease:
    """Pool-owned binding between one identity and its reusable call context."""

    identity_key: str
    context: Any
    created_at: float
    last_used_at: float
    active_requests: int = 0

    @property
    def is_idle(self) -> bool:
        return self.active_requests == 0


class ConnectionPoolManager:
    """
    Bounded per-identity lease pool.

    STAGE-CP.0: Connection Pool Manager Initialization

    Invariants:
    - ``size() <= max_connections`` at every observation point
    - ``active_requests`` is never negative
    - A lease is evicted only when ``active_requests == 0`` and it has been
      idle for at least ``idle_timeout``
    """

    def __init__(
        self,
        max_connections: int | None = None,
        *,
        idle_timeout: float | None = None,
        poll_interval: float | None = None,
        acquire_timeout: float | None = None,
        sweep_interval: float | None = None,
        context_factory: Callable[[str], Any] = default_context_factory,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize connection pool manager.

        Args:
            max_connections: Maximum number of distinct identities held at once
            idle_timeout: Seconds without use before an idle lease is evicted
            poll_interval: Seconds between capacity checks while waiting
            acquire_timeout: Overall bound on the capacity wait
            sweep_interval: Seconds between background idle sweeps
            context_factory: Builds the opaque context handle for a new lease
            clock: Time source for idle accounting
        """
        settings = get_settings().pool
        self.max_connections = max_connections or settings.POOL_MAX_CONNECTIONS
        self.idle_timeout = idle_timeout or settings.POOL_IDLE_TIMEOUT
        self.poll_interval = poll_interval or settings.POOL_POLL_INTERVAL
        self.acquire_timeout = acquire_timeout or settings.POOL_ACQUIRE_TIMEOUT
        self._context_factory = context_factory
        self._clock = clock

        self._leases: dict[str, ConnectionLease] = {}
        self._lock = asyncio.Lock()
        self._evicted_total = 0

        self._sweeper = PeriodicSweeper(
            "pool-idle",
            sweep_interval or settings.POOL_SWEEP_INTERVAL,
            self.sweep_idle,
        )

        logger.info(
            "Connection pool manager initialized",
            stage=Stage.POOL,
            max_connections=self.max_connections,
            idle_timeout=self.idle_timeout,
            acquire_timeout=self.acquire_timeout,
        )

    # =========================================================================
    # Acquisition
    # =========================================================================

    async def acquire(self, identity: str, timeout: float | None = None) -> ConnectionLease:
        """
        Return the lease for ``identity``, creating it if capacity allows.

        STAGE-CP.1: Lease acquisition

        The returned lease is not marked active; use ``execute_with_connection``
        (or ``lease``) to keep it safe from idle eviction while in use.

        Raises:
            ConnectionPoolExhaustedError: If no capacity frees up within ``timeout``
        """
        return await self._checkout(identity, timeout, mark_active=False)

    async def _checkout(self, identity: str, timeout: float | None, mark_active: bool) -> ConnectionLease:
        timeout = self.acquire_timeout if timeout is None else timeout
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        waited = False

        while True:
            async with self._lock:
                lease = self._try_checkout_locked(identity, mark_active)
                if lease is not None:
                    if waited:
                        logger.info(
                            "Capacity freed, lease acquired after wait",
                            stage=Stage.POOL,
                            identity=fingerprint(identity),
                        )
                    return lease
                size = len(self._leases)

            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.error(
                    "Connection pool exhausted",
                    stage=Stage.POOL,
                    identity=fingerprint(identity),
                    total_leases=size,
                    max_connections=self.max_connections,
                    timeout=timeout,
                )
                raise ConnectionPoolExhaustedError(
                    details={"max_connections": self.max_connections, "timeout": timeout}
                )

            if not waited:
                logger.warning(
                    "Connection pool at capacity, waiting",
                    stage=Stage.POOL,
                    identity=fingerprint(identity),
                    total_leases=size,
                )
                waited = True
            await asyncio.sleep(min(self.poll_interval, remaining))

    def _try_checkout_locked(self, identity: str, mark_active: bool) -> ConnectionLease | None:
        """Existence check, capacity check and insert. Caller holds the lock."""
        lease = self._leases.get(identity)

        if lease is None:
            if len(self._leases) >= self.max_connections:
                self._evict_idle_locked(self._clock())
            if len(self._leases) >= self.max_connections:
                return None

            now = self._clock()
            lease = ConnectionLease(
                identity_key=identity,
                context=self._context_factory(identity),
                created_at=now,
                last_used_at=now,
            )
            self._leases[identity] = lease
            logger.info(
                "Lease created",
                stage=Stage.POOL,
                identity=fingerprint(identity),
                total_leases=len(self._leases),
                max_connections=self.max_connections,
            )

        if mark_active:
            lease.active_requests += 1
        lease.last_used_at = self._clock()
        return lease

    # =========================================================================
    # Scoped Usage
    # =========================================================================

    @asynccontextmanager
    async def lease(self, identity: str, timeout: float | None = None) -> AsyncIterator[ConnectionLease]:
        """
        Hold the lease for ``identity`` for the duration of the block.

        STAGE-CP.3: Scoped usage tracking

        The active count is incremented in the same critical section that
        finds or creates the lease and is decremented on every exit path,
        including errors and cancellation.
        """
        lease = await self._checkout(identity, timeout, mark_active=True)
        try:
            yield lease
        finally:
            # No await: the release cannot be interrupted by cancellation.
            lease.active_requests = max(0, lease.active_requests - 1)
            lease.last_used_at = self._clock()

    async def execute_with_connection(
        self, identity: str, operation: Callable[[ConnectionLease], Awaitable[T]]
    ) -> T:
        """Run ``operation(lease)`` while holding the identity's lease."""
        async with self.lease(identity) as lease:
            return await operation(lease)

    # =========================================================================
    # Idle Eviction
    # =========================================================================

    async def sweep_idle(self) -> int:
        """
        Evict every lease that is inactive and idle for at least ``idle_timeout``.

        STAGE-CP.4: Idle eviction

        Returns:
            Number of leases evicted
        """
        async with self._lock:
            return self._evict_idle_locked(self._clock())

    def _evict_idle_locked(self, now: float) -> int:
        expired = [
            key
            for key, lease in self._leases.items()
            if lease.is_idle and now - lease.last_used_at >= self.idle_timeout
        ]
        for key in expired:
            del self._leases[key]
            logger.info("Idle lease evicted", stage=Stage.POOL, identity=fingerprint(key))

        self._evicted_total += len(expired)
        return len(expired)

    def start(self) -> None:
        """Start the background idle sweep."""
        self._sweeper.start()

    async def close(self) -> None:
        """Stop the sweep and drop every lease."""
        await self._sweeper.stop()
        async with self._lock:
            self._leases.clear()
        logger.info("Connection pool closed", stage=Stage.POOL)

    # =========================================================================
    # Statistics
    # =========================================================================

    def size(self) -> int:
        return len(self._leases)

    def get_lease(self, identity: str) -> ConnectionLease | None:
        return self._leases.get(identity)

    def get_stats(self) -> dict:
        """
        Get pool statistics.

        STAGE-CP.5: Statistics
        """
        total = len(self._leases)
        active = sum(1 for lease in self._leases.values() if not lease.is_idle)
        return {
            "total_leases": total,
            "active_leases": active,
            "max_connections": self.max_connections,
            "utilization_percent": round(total / self.max_connections * 100, 2),
            "evicted_total": self._evicted_total,
        }
