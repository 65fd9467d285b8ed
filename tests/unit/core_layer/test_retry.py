"""
Unit Tests for RetryStrategy

Covers classification (retryable vs permanent), the backoff schedule and
the attempt count carried by the final error.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from pydantic import ValidationError

from src.core.exceptions import (
    CircuitBreakerOpenError,
    ClientError,
    RateLimitExceededError,
    ServerError,
    TransportError,
)
from src.core.resilience.retry import RetryPolicy, RetryStrategy


@pytest.fixture
def strategy(recording_sleep):
    policy = RetryPolicy(max_attempts=3, base_delay=1.0, max_delay=30.0, backoff_factor=2.0)
    return RetryStrategy(policy, sleep=recording_sleep)


@pytest.mark.unit
class TestRetryPolicy:
    def test_delay_schedule(self):
        policy = RetryPolicy(base_delay=1.0, backoff_factor=2.0, max_delay=30.0)
        assert [policy.delay_for(n) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]

    def test_delay_capped_at_max(self):
        policy = RetryPolicy(base_delay=1.0, backoff_factor=10.0, max_delay=5.0)
        assert policy.delay_for(3) == 5.0

    def test_policy_is_immutable(self):
        policy = RetryPolicy()
        with pytest.raises(ValidationError):
            policy.max_attempts = 10

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValidationError):
            RetryPolicy(max_attempts=0)


@pytest.mark.unit
class TestRetryStrategy:
    @pytest.mark.asyncio
    async def test_success_on_first_attempt(self, strategy, recording_sleep):
        op = AsyncMock(return_value="data")
        assert await strategy.execute(op) == "data"
        assert op.await_count == 1
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self, strategy, recording_sleep):
        op = AsyncMock(side_effect=ClientError("bad request", status=400))

        with pytest.raises(ClientError) as exc_info:
            await strategy.execute(op)

        assert op.await_count == 1
        assert exc_info.value.attempts == 1
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            RateLimitExceededError(limit=1, window=60.0, retry_after=10.0),
            CircuitBreakerOpenError("open"),
        ],
    )
    async def test_local_rejections_not_retried(self, strategy, error):
        op = AsyncMock(side_effect=error)
        with pytest.raises(type(error)):
            await strategy.execute(op)
        assert op.await_count == 1

    @pytest.mark.asyncio
    async def test_server_error_retried_with_backoff(self, strategy, recording_sleep):
        op = AsyncMock(side_effect=ServerError("unavailable", status=503))

        with pytest.raises(ServerError) as exc_info:
            await strategy.execute(op)

        assert op.await_count == 3
        assert exc_info.value.attempts == 3
        assert recording_sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failure(self, strategy, recording_sleep):
        op = AsyncMock(side_effect=[TransportError("reset"), "data"])

        assert await strategy.execute(op) == "data"
        assert op.await_count == 2
        assert recording_sleep.delays == [1.0]

    @pytest.mark.asyncio
    async def test_foreign_error_wrapped_with_attempts(self, strategy, recording_sleep):
        original = ConnectionResetError("peer reset")
        op = AsyncMock(side_effect=original)

        with pytest.raises(TransportError) as exc_info:
            await strategy.execute(op)

        assert op.await_count == 3
        assert exc_info.value.attempts == 3
        assert exc_info.value.__cause__ is original
        assert exc_info.value.details["original_error"] == "ConnectionResetError"
        assert recording_sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_permanent_foreign_error_wrapped_after_one_attempt(self, recording_sleep):
        policy = RetryPolicy(max_attempts=5, is_non_retryable=lambda e: isinstance(e, KeyError))
        strategy = RetryStrategy(policy, sleep=recording_sleep)
        op = AsyncMock(side_effect=KeyError("missing"))

        with pytest.raises(TransportError) as exc_info:
            await strategy.execute(op)

        assert op.await_count == 1
        assert exc_info.value.attempts == 1
        assert isinstance(exc_info.value.__cause__, KeyError)

    @pytest.mark.asyncio
    async def test_caller_predicate_marks_error_permanent(self, recording_sleep):
        policy = RetryPolicy(max_attempts=5, is_non_retryable=lambda e: "fatal" in str(e))
        strategy = RetryStrategy(policy, sleep=recording_sleep)
        op = AsyncMock(side_effect=ServerError("fatal corruption", status=500))

        with pytest.raises(ServerError):
            await strategy.execute(op)

        assert op.await_count == 1

    @pytest.mark.asyncio
    async def test_cancellation_propagates_without_retry(self, strategy):
        op = AsyncMock(side_effect=asyncio.CancelledError())

        with pytest.raises(asyncio.CancelledError):
            await strategy.execute(op)

        assert op.await_count == 1

    def test_is_retryable_classification(self, strategy):
        assert strategy.is_retryable(ServerError("x", status=500))
        assert strategy.is_retryable(TransportError("x"))
        assert strategy.is_retryable(ValueError("x"))
        assert not strategy.is_retryable(ClientError("x", status=404))
        assert not strategy.is_retryable(asyncio.CancelledError())
