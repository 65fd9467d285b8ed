"""
Retry Strategy

Bounded exponential backoff around one call, built on tenacity.

Delay before attempt n+1 (n = attempts already made):

    min(base_delay * backoff_factor ** (n - 1), max_delay)

Classification:
- ClientError, RateLimitExceededError, CircuitBreakerOpenError: raised
  immediately, no further attempts
- Cancellation (and any other BaseException that is not an Exception):
  propagated immediately, never retried
- ServerError, TransportError and other exceptions: retried until the attempt
  budget is spent, then re-raised with ``attempts`` set. Exceptions from
  outside this package leave as a TransportError chained to the original.

The strategy runs inside `CircuitBreaker.execute`, so the breaker sees one
outcome per top-level call however many attempts were made.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from pydantic import BaseModel, ConfigDict, Field
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from src.core.config.constants import Stage
from src.core.config.settings import get_settings
from src.core.exceptions import (
    CircuitBreakerOpenError,
    ClientError,
    RateLimitExceededError,
    ResilienceBaseError,
    TransportError,
)
from src.core.logging.logger import get_logger

logger = get_logger(__name__)

# Tenacity needs std lib logger
_std_logger = logging.getLogger(__name__)

T = TypeVar("T")

NON_RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    ClientError,
    RateLimitExceededError,
    CircuitBreakerOpenError,
)


class RetryPolicy(BaseModel):
    """
    Immutable retry configuration.

    ``is_non_retryable`` lets callers mark additional errors as permanent on
    top of the built-in classification.
    """

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, gt=0, description="Total attempts, including the first")
    base_delay: float = Field(default=1.0, ge=0, description="Delay before the second attempt (seconds)")
    max_delay: float = Field(default=30.0, ge=0, description="Upper bound for any single delay")
    backoff_factor: float = Field(default=2.0, ge=1, description="Multiplier applied per attempt")
    is_non_retryable: Callable[[BaseException], bool] | None = None

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        settings = get_settings().retry
        return cls(
            max_attempts=settings.RETRY_MAX_ATTEMPTS,
            base_delay=settings.RETRY_BASE_DELAY,
            max_delay=settings.RETRY_MAX_DELAY,
            backoff_factor=settings.RETRY_BACKOFF_FACTOR,
        )

    def delay_for(self, attempt: int) -> float:
        """Delay slept after failed attempt number ``attempt`` (1-based)."""
        return min(self.base_delay * self.backoff_factor ** (attempt - 1), self.max_delay)


class RetryStrategy:
    """
    Runs an async operation under a `RetryPolicy`.

    Usage:
        strategy = RetryStrategy(RetryPolicy(max_attempts=3, base_delay=0.5))
        data = await strategy.execute(lambda: transport.perform(...))
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.policy = policy or RetryPolicy.from_settings()
        self._sleep = sleep

    def is_retryable(self, error: BaseException) -> bool:
        if not isinstance(error, Exception):
            return False
        if isinstance(error, NON_RETRYABLE_ERRORS):
            return False
        if self.policy.is_non_retryable is not None and self.policy.is_non_retryable(error):
            return False
        return True

    def _build_retrying(self) -> AsyncRetrying:
        policy = self.policy
        return AsyncRetrying(
            stop=stop_after_attempt(policy.max_attempts),
            wait=wait_exponential(
                multiplier=policy.base_delay,
                exp_base=policy.backoff_factor,
                max=policy.max_delay,
            ),
            retry=retry_if_exception(self.is_retryable),
            before_sleep=before_sleep_log(_std_logger, logging.WARNING),
            sleep=self._sleep,
            reraise=True,
        )

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Attempt ``operation`` up to ``max_attempts`` times.

        Raises:
            The last error raised by ``operation``, with ``attempts`` set.
            Exceptions from outside this package are wrapped in
            `TransportError` (the original is kept as ``__cause__``).
        """
        attempts = 0
        try:
            async for attempt in self._build_retrying():
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    result = await operation()
        except Exception as e:
            error = e if isinstance(e, ResilienceBaseError) else TransportError.from_exception(e)
            error.attempts = attempts
            if attempts > 1:
                logger.warning(
                    "Retries exhausted" if self.is_retryable(e) else "Non-retryable error after retries",
                    stage=Stage.RETRY,
                    attempts=attempts,
                    error_type=type(e).__name__,
                )
            if error is e:
                raise
            raise error from e

        if attempts > 1:
            logger.info("Call succeeded after retry", stage=Stage.RETRY, attempts=attempts)
        return result
