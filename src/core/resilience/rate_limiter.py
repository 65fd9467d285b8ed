"""
Rate Limiter

Per-key sliding-window admission control.

Algorithm (sliding window log):
1. Prune the key's timestamp log to entries newer than ``now - window``
2. If fewer than ``max_requests`` remain, record ``now`` and admit
3. Otherwise reject with RateLimitExceededError (retry_after = time until
   the oldest entry leaves the window)

Unlike a fixed window this never admits a burst of 2x the limit across a
window boundary: exactly ``max_requests`` calls succeed in any rolling window.

Key-set bound:
- Keys whose log is empty after pruning are dropped by ``sweep()``
- The key set is LRU-bounded by ``max_keys``; the least recently admitted key
  is evicted first
"""

import asyncio
import time
from collections import OrderedDict, deque
from collections.abc import Callable

from limits import parse

from src.core.config.constants import Stage
from src.core.config.settings import get_settings
from src.core.exceptions import ConfigurationError, RateLimitExceededError
from src.core.logging.logger import get_logger
from src.core.resilience.sweeper import PeriodicSweeper

logger = get_logger(__name__)


class SlidingWindowRateLimiter:
    """
    In-memory sliding-window rate limiter keyed by an opaque string.

    All read-prune-append sequences for every key run under a single
    asyncio.Lock, so concurrent callers cannot both observe ``count < max``
    and overshoot the limit.
    """

    def __init__(
        self,
        max_requests: int,
        window: float,
        *,
        max_keys: int | None = None,
        sweep_interval: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_requests <= 0 or window <= 0:
            raise ConfigurationError(
                "Rate limiter requires a positive limit and window",
                details={"max_requests": max_requests, "window": window},
            )

        settings = get_settings()
        self.max_requests = max_requests
        self.window = window
        self.max_keys = max_keys or settings.rate_limit.RATE_LIMIT_MAX_KEYS
        self._clock = clock

        self._windows: OrderedDict[str, deque[float]] = OrderedDict()
        self._lock = asyncio.Lock()

        self._allowed = 0
        self._rejected = 0

        self._sweeper = PeriodicSweeper(
            "rate-limit",
            sweep_interval or settings.rate_limit.RATE_LIMIT_SWEEP_INTERVAL,
            self.sweep,
        )

        logger.info(
            "Rate limiter initialized",
            stage=Stage.RATE_LIMITING,
            max_requests=max_requests,
            window=window,
            max_keys=self.max_keys,
        )

    @classmethod
    def from_limit_string(cls, limit_string: str, **kwargs) -> "SlidingWindowRateLimiter":
        """
        Build a limiter from slowapi-style notation, e.g. ``"100/minute"``.
        """
        try:
            item = parse(limit_string)
        except ValueError as e:
            raise ConfigurationError.from_exception(e, limit=limit_string)
        return cls(item.amount, float(item.get_expiry()), **kwargs)

    # =========================================================================
    # Admission
    # =========================================================================

    async def check_limit(self, key: str) -> float:
        """
        Admit one request for ``key`` or raise.

        Returns:
            The recorded admission timestamp (pass it to ``release`` to refund).

        Raises:
            RateLimitExceededError: If ``max_requests`` admissions already
                fall inside the current window.
        """
        async with self._lock:
            now = self._clock()
            log = self._windows.get(key)
            if log is None:
                log = deque()
                self._windows[key] = log
            self._prune(log, now)

            if len(log) >= self.max_requests:
                self._rejected += 1
                retry_after = max(0.0, log[0] + self.window - now)
                logger.warning(
                    "Rate limit exceeded",
                    stage=Stage.RATE_LIMITING,
                    limit=self.max_requests,
                    window=self.window,
                    retry_after=retry_after,
                )
                raise RateLimitExceededError(self.max_requests, self.window, retry_after)

            log.append(now)
            self._windows.move_to_end(key)
            self._allowed += 1

            if len(self._windows) > self.max_keys:
                self._enforce_key_bound(now)

            return now

    async def release(self, key: str, timestamp: float) -> None:
        """Refund an admission previously returned by ``check_limit``."""
        async with self._lock:
            log = self._windows.get(key)
            if not log:
                return
            try:
                log.remove(timestamp)
            except ValueError:
                return
            self._allowed = max(0, self._allowed - 1)
            if not log:
                del self._windows[key]

    async def remaining(self, key: str) -> int:
        async with self._lock:
            log = self._windows.get(key)
            if log is None:
                return self.max_requests
            self._prune(log, self._clock())
            return max(0, self.max_requests - len(log))

    # =========================================================================
    # Maintenance
    # =========================================================================

    async def sweep(self) -> int:
        """
        Drop keys with no admissions left inside the window.

        Returns:
            Number of keys removed
        """
        async with self._lock:
            now = self._clock()
            stale = []
            for key, log in self._windows.items():
                self._prune(log, now)
                if not log:
                    stale.append(key)
            for key in stale:
                del self._windows[key]

        if stale:
            logger.debug("Rate limit sweep", stage=Stage.RATE_LIMITING, evicted=len(stale))
        return len(stale)

    def start(self) -> None:
        self._sweeper.start()

    async def stop(self) -> None:
        await self._sweeper.stop()

    async def clear(self) -> None:
        async with self._lock:
            self._windows.clear()
        logger.info("Rate limiter cleared", stage=Stage.RATE_LIMITING)

    def key_count(self) -> int:
        return len(self._windows)

    def get_stats(self) -> dict:
        return {
            "max_requests": self.max_requests,
            "window": self.window,
            "tracked_keys": len(self._windows),
            "allowed": self._allowed,
            "rejected": self._rejected,
        }

    def _enforce_key_bound(self, now: float) -> None:
        """
        Shrink the key set back to ``max_keys``. Caller holds the lock.

        Keys with no admissions inside the window go first, oldest first.
        Only when every tracked key is live is the least recently used one
        dropped; that key's budget restarts (fails open) rather than new
        identities being refused.
        """
        for key in list(self._windows):
            if len(self._windows) <= self.max_keys:
                return
            log = self._windows[key]
            self._prune(log, now)
            if not log:
                del self._windows[key]

        while len(self._windows) > self.max_keys:
            self._windows.popitem(last=False)
            logger.warning(
                "Live rate limit key evicted (key bound reached)",
                stage=Stage.RATE_LIMITING,
                max_keys=self.max_keys,
            )

    def _prune(self, log: deque[float], now: float) -> None:
        cutoff = now - self.window
        while log and log[0] <= cutoff:
            log.popleft()


def create_rate_limiter(limit_string: str | None = None, **kwargs) -> SlidingWindowRateLimiter:
    """Create a limiter from the configured default rate (``RATE_LIMIT_DEFAULT``)."""
    limit_string = limit_string or get_settings().rate_limit.RATE_LIMIT_DEFAULT
    return SlidingWindowRateLimiter.from_limit_string(limit_string, **kwargs)
