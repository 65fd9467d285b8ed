"""
Circuit Breaker for Remote Operations.

This module implements an in-process circuit breaker, one instance per
logical operation class, shared by every caller for the process lifetime.

MECHANISM OF ACTION:
-------------------
1.  **State Transitions** (the only legal edges):
    - **CLOSED -> OPEN**: failures increment a counter; once it reaches
      ``failure_threshold`` the circuit opens and the failure time is recorded.
    - **OPEN -> HALF-OPEN**: calls are rejected with `CircuitBreakerOpenError`
      until ``now - last_failure_at > reset_timeout``; the next call then moves
      the circuit to HALF-OPEN and is admitted as the trial.
    - **HALF-OPEN -> CLOSED**: the trial succeeds; the counter resets to 0.
    - **HALF-OPEN -> OPEN**: the trial fails; the reset timer restarts.

2.  **Single Trial**:
    While HALF-OPEN, exactly one trial call is in flight at a time. Other
    callers are rejected as if the circuit were open.

3.  **Per-Call Timeout**:
    ``execute`` runs the operation under an ``asyncio.timeout`` deadline. The
    operation is cancelled when the deadline wins and the call counts as a
    failure (`OperationTimeoutError`). A ``TimeoutError`` raised by the
    operation itself still counts as a failure but propagates unchanged.

4.  **Cancellation**:
    A cancelled call is neither a success nor a failure. The trial slot is
    released and the cancellation propagates.

5.  **Retry Composition**:
    Retries run *inside* one ``execute`` call (see `RetryStrategy`), so the
    breaker records one outcome per top-level invocation. With
    ``max_attempts=3`` and ``failure_threshold=5`` it takes five exhausted
    calls (up to fifteen transport attempts) to trip.

All read-check-transition sequences run under one asyncio.Lock per breaker.
"""

import asyncio
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, TypeVar

from src.core.config.constants import CircuitState, Stage
from src.core.config.settings import get_settings
from src.core.exceptions import CircuitBreakerOpenError, OperationTimeoutError
from src.core.logging.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class CircuitBreaker:
    """
    Failure-tripped gate around calls to one class of remote operation.

    Usage:
        breaker = CircuitBreaker("memories", failure_threshold=5, timeout=60, reset_timeout=30)
        result = await breaker.execute(lambda: transport.perform(...))
    """

    def __init__(
        self,
        name: str,
        *,
        failure_threshold: int | None = None,
        timeout: float | None = None,
        reset_timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        settings = get_settings().circuit_breaker
        self.name = name
        self.failure_threshold = failure_threshold or settings.CB_FAILURE_THRESHOLD
        self.timeout = timeout or settings.CB_TIMEOUT
        self.reset_timeout = settings.CB_RECOVERY_TIMEOUT if reset_timeout is None else reset_timeout
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_at: float | None = None
        self._trial_in_flight = False
        self._lock = asyncio.Lock()

    # =========================================================================
    # Introspection
    # =========================================================================

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def last_failure_at(self) -> float | None:
        return self._last_failure_at

    @property
    def is_healthy(self) -> bool:
        return self._state == CircuitState.CLOSED and self._failure_count == 0 and not self._trial_in_flight

    def get_state(self) -> CircuitState:
        return self._state

    def get_stats(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "state": self._state.value,
            "failures": self._failure_count,
            "failure_threshold": self.failure_threshold,
            "last_failure_at": self._last_failure_at,
            "trial_in_flight": self._trial_in_flight,
        }

    # =========================================================================
    # Execution
    # =========================================================================

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run ``operation`` through the breaker.

        Raises:
            CircuitBreakerOpenError: Circuit is OPEN, or HALF-OPEN with a trial
                already in flight. ``operation`` is not invoked.
            OperationTimeoutError: ``operation`` exceeded ``timeout``.
            Exception: Whatever ``operation`` raised.
        """
        is_trial = await self._admit()
        deadline = asyncio.timeout(self.timeout)

        try:
            async with deadline:
                result = await operation()
        except asyncio.CancelledError:
            self._on_cancelled(is_trial)
            raise
        except TimeoutError as e:
            await self._record_failure(is_trial)
            if not deadline.expired():
                # Raised by the operation itself, not by our deadline.
                raise
            raise OperationTimeoutError(self.timeout, details={"circuit": self.name}) from e
        except Exception:
            await self._record_failure(is_trial)
            raise

        await self._record_success(is_trial)
        return result

    async def _admit(self) -> bool:
        """
        Decide whether a call may proceed.

        Returns:
            True when the admitted call is the HALF-OPEN trial.
        """
        async with self._lock:
            if self._state == CircuitState.OPEN:
                elapsed = self._clock() - (self._last_failure_at or 0.0)
                if elapsed > self.reset_timeout:
                    self._transition(CircuitState.HALF_OPEN)
                else:
                    raise self._open_error(retry_after=self.reset_timeout - elapsed)

            if self._state == CircuitState.HALF_OPEN:
                if self._trial_in_flight:
                    raise self._open_error(retry_after=None)
                self._trial_in_flight = True
                logger.info(
                    f"Circuit '{self.name}' trial call admitted",
                    stage=Stage.CIRCUIT_BREAKER,
                    circuit=self.name,
                )
                return True

            return False

    async def _record_success(self, is_trial: bool) -> None:
        async with self._lock:
            if is_trial:
                self._trial_in_flight = False
            if self._state == CircuitState.HALF_OPEN:
                logger.info(
                    f"Circuit '{self.name}' recovered! Resetting to CLOSED.",
                    stage=Stage.CIRCUIT_BREAKER,
                    circuit=self.name,
                )
                self._transition(CircuitState.CLOSED)
            self._failure_count = 0

    async def _record_failure(self, is_trial: bool) -> None:
        async with self._lock:
            self._failure_count += 1
            self._last_failure_at = self._clock()

            logger.warning(
                f"Circuit '{self.name}' recorded failure "
                f"({self._failure_count}/{self.failure_threshold})",
                stage=Stage.CIRCUIT_BREAKER,
                circuit=self.name,
            )

            if is_trial:
                self._trial_in_flight = False

            if self._state == CircuitState.HALF_OPEN:
                logger.error(
                    f"Circuit '{self.name}' trial failed. Re-opening circuit.",
                    stage=Stage.CIRCUIT_BREAKER,
                    circuit=self.name,
                )
                self._transition(CircuitState.OPEN)
            elif self._state == CircuitState.CLOSED and self._failure_count >= self.failure_threshold:
                logger.error(
                    f"Circuit '{self.name}' tripped! Opening circuit.",
                    stage=Stage.CIRCUIT_BREAKER,
                    circuit=self.name,
                )
                self._transition(CircuitState.OPEN)

    def _on_cancelled(self, is_trial: bool) -> None:
        # No await here: runs to completion even while the task is being cancelled.
        if is_trial:
            self._trial_in_flight = False

    def _transition(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        logger.info(
            f"Circuit '{self.name}' changed state to {new_state.value}",
            stage=Stage.CIRCUIT_BREAKER,
            circuit=self.name,
            from_state=old_state.value,
            to_state=new_state.value,
        )

    def _open_error(self, retry_after: float | None) -> CircuitBreakerOpenError:
        details: dict[str, Any] = {"circuit": self.name}
        if retry_after is not None:
            details["retry_after"] = round(max(retry_after, 0.0), 3)
        return CircuitBreakerOpenError(
            message=f"Circuit open for {self.name}",
            details=details,
        )

    async def reset(self) -> None:
        """Force the breaker back to CLOSED with a zero failure count."""
        async with self._lock:
            if self._state != CircuitState.CLOSED:
                self._transition(CircuitState.CLOSED)
            self._failure_count = 0
            self._last_failure_at = None
            self._trial_in_flight = False


# ============================================================================
# Manager & Factory
# ============================================================================


class CircuitBreakerManager:
    """
    Factory for per-operation-class circuit breaker instances.

    The registry is bounded by ``max_breakers``. Past the bound, the least
    recently used *healthy* breaker (CLOSED, no failures, no trial) is
    dropped; a breaker carrying failure state is never forgotten, so the
    registry may exceed the bound while many circuits are unhealthy.
    Endpoints with ID-like first segments (``/users/42``) should pass an
    explicit ``operation`` to keep the number of classes small.
    """

    def __init__(
        self,
        *,
        failure_threshold: int | None = None,
        timeout: float | None = None,
        reset_timeout: float | None = None,
        max_breakers: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._breaker_kwargs = {
            "failure_threshold": failure_threshold,
            "timeout": timeout,
            "reset_timeout": reset_timeout,
            "clock": clock,
        }
        self.max_breakers = max_breakers or get_settings().circuit_breaker.CB_MAX_BREAKERS
        self._breakers: OrderedDict[str, CircuitBreaker] = OrderedDict()

    def get_breaker(self, name: str) -> CircuitBreaker:
        # No await between the check and the insert, so this is atomic on the event loop.
        breaker = self._breakers.get(name)
        if breaker is None:
            breaker = CircuitBreaker(name, **self._breaker_kwargs)
            self._breakers[name] = breaker
            self._evict_healthy()
        self._breakers.move_to_end(name)
        return breaker

    def _evict_healthy(self) -> None:
        excess = len(self._breakers) - self.max_breakers
        if excess <= 0:
            return
        # Newest entry is the one just created; never evict it.
        candidates = list(self._breakers.items())[:-1]
        for name, breaker in candidates:
            if excess <= 0:
                break
            if breaker.is_healthy:
                del self._breakers[name]
                excess -= 1
                logger.debug(f"Circuit '{name}' evicted (registry bound)", stage=Stage.CIRCUIT_BREAKER)

        if excess > 0:
            logger.warning(
                "Circuit breaker registry above bound; all older circuits carry failure state",
                stage=Stage.CIRCUIT_BREAKER,
                tracked=len(self._breakers),
                max_breakers=self.max_breakers,
            )

    def __len__(self) -> int:
        return len(self._breakers)

    def get_all_stats(self) -> dict[str, dict[str, Any]]:
        return {name: breaker.get_stats() for name, breaker in self._breakers.items()}

    async def reset_all(self) -> None:
        for breaker in self._breakers.values():
            await breaker.reset()


# Global Instance
_cb_manager: CircuitBreakerManager | None = None


def get_circuit_breaker_manager() -> CircuitBreakerManager:
    global _cb_manager
    if _cb_manager is None:
        _cb_manager = CircuitBreakerManager()
    return _cb_manager


# ============================================================================
# Decorator Utility
# ============================================================================


def with_circuit_breaker(name: str, manager: CircuitBreakerManager | None = None):
    """Protect a single coroutine function with the named breaker."""

    def decorator(func: Callable[..., Awaitable[T]]):
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            breaker = (manager or get_circuit_breaker_manager()).get_breaker(name)
            return await breaker.execute(lambda: func(*args, **kwargs))

        return wrapper

    return decorator
