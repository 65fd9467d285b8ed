"""
Unit Tests for the bundled middlewares: cache, rate limit and request logging.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from src.core.exceptions import RateLimitExceededError
from src.core.resilience.rate_limiter import SlidingWindowRateLimiter
from src.infrastructure.cache.response_cache import ResponseCache
from src.pipeline.middleware import (
    CacheMiddleware,
    RateLimitMiddleware,
    RequestLoggingMiddleware,
    sanitize_headers,
)
from src.pipeline.middleware_pipeline import MiddlewarePipeline
from src.pipeline.models import ResponseData

GET = {"method": "GET", "endpoint": "/memories"}
POST = {"method": "POST", "endpoint": "/memories", "body": {"text": "hi"}}


@pytest.fixture
def cache(fake_clock):
    return ResponseCache(ttl=5.0, max_size=100, clock=fake_clock)


@pytest.fixture
def limiter(fake_clock):
    return SlidingWindowRateLimiter(2, 60.0, clock=fake_clock)


@pytest.mark.unit
class TestCacheMiddleware:
    @pytest.mark.asyncio
    async def test_miss_then_hit(self, cache):
        terminal = AsyncMock(return_value={"items": [1]})
        pipeline = MiddlewarePipeline().use(CacheMiddleware(cache))

        first_meta: dict = {}
        second_meta: dict = {}
        first = await pipeline.execute(GET, terminal, identity="alice", metadata=first_meta)
        second = await pipeline.execute(GET, terminal, identity="alice", metadata=second_meta)

        assert first == second == {"items": [1]}
        assert terminal.await_count == 1
        assert first_meta["cache"] == "miss"
        assert second_meta["cache"] == "hit"

    @pytest.mark.asyncio
    async def test_body_with_non_string_keys_is_cached(self, cache):
        terminal = AsyncMock(return_value="data")
        pipeline = MiddlewarePipeline().use(CacheMiddleware(cache))
        request = {"method": "GET", "endpoint": "/memories", "body": {1: "a"}}

        await pipeline.execute(request, terminal, identity="alice")
        meta: dict = {}
        assert await pipeline.execute(request, terminal, identity="alice", metadata=meta) == "data"

        assert terminal.await_count == 1
        assert meta["cache"] == "hit"

    @pytest.mark.asyncio
    async def test_identities_do_not_share_entries(self, cache):
        terminal = AsyncMock(return_value="data")
        pipeline = MiddlewarePipeline().use(CacheMiddleware(cache))

        await pipeline.execute(GET, terminal, identity="alice")
        await pipeline.execute(GET, terminal, identity="bob")

        assert terminal.await_count == 2

    @pytest.mark.asyncio
    async def test_entry_expires(self, cache, fake_clock):
        terminal = AsyncMock(return_value="data")
        pipeline = MiddlewarePipeline().use(CacheMiddleware(cache))

        await pipeline.execute(GET, terminal, identity="alice")
        fake_clock.advance(5.0)
        meta: dict = {}
        await pipeline.execute(GET, terminal, identity="alice", metadata=meta)

        assert terminal.await_count == 2
        assert meta["cache"] == "miss"

    @pytest.mark.asyncio
    async def test_non_idempotent_bypasses_cache(self, cache):
        terminal = AsyncMock(return_value="created")
        pipeline = MiddlewarePipeline().use(CacheMiddleware(cache))
        meta: dict = {}

        await pipeline.execute(POST, terminal, identity="alice", metadata=meta)
        await pipeline.execute(POST, terminal, identity="alice")

        assert terminal.await_count == 2
        assert "cache" not in meta
        assert cache.size() == 0

    @pytest.mark.asyncio
    async def test_non_success_response_not_stored(self, cache):
        terminal = AsyncMock(return_value=ResponseData(status=304, data=None))
        pipeline = MiddlewarePipeline().use(CacheMiddleware(cache))

        await pipeline.execute(GET, terminal, identity="alice")
        assert cache.size() == 0

    @pytest.mark.asyncio
    async def test_error_not_stored(self, cache):
        terminal = AsyncMock(side_effect=RuntimeError("down"))
        pipeline = MiddlewarePipeline().use(CacheMiddleware(cache))

        with pytest.raises(RuntimeError):
            await pipeline.execute(GET, terminal, identity="alice")
        assert cache.size() == 0


@pytest.mark.unit
class TestRateLimitMiddleware:
    @pytest.mark.asyncio
    async def test_rejects_before_terminal(self, limiter):
        terminal = AsyncMock(return_value="ok")
        pipeline = MiddlewarePipeline().use(RateLimitMiddleware(limiter))

        await pipeline.execute(POST, terminal, identity="alice")
        await pipeline.execute(POST, terminal, identity="alice")
        with pytest.raises(RateLimitExceededError):
            await pipeline.execute(POST, terminal, identity="alice")

        assert terminal.await_count == 2

    @pytest.mark.asyncio
    async def test_keyed_on_identity(self, limiter):
        terminal = AsyncMock(return_value="ok")
        pipeline = MiddlewarePipeline().use(RateLimitMiddleware(limiter))

        for identity in ("alice", "alice", "bob", "bob"):
            await pipeline.execute(POST, terminal, identity=identity)

    @pytest.mark.asyncio
    async def test_failed_call_still_counts(self, limiter):
        terminal = AsyncMock(side_effect=RuntimeError("remote down"))
        pipeline = MiddlewarePipeline().use(RateLimitMiddleware(limiter))

        with pytest.raises(RuntimeError):
            await pipeline.execute(POST, terminal, identity="alice")
        assert await limiter.remaining("alice") == 1

    @pytest.mark.asyncio
    async def test_cancelled_call_refunds_admission(self, limiter):
        started = asyncio.Event()

        async def terminal(context):
            started.set()
            await asyncio.sleep(10)

        pipeline = MiddlewarePipeline().use(RateLimitMiddleware(limiter))
        task = asyncio.create_task(pipeline.execute(POST, terminal, identity="alice"))
        await started.wait()
        assert await limiter.remaining("alice") == 1

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert await limiter.remaining("alice") == 2

    @pytest.mark.asyncio
    async def test_cache_hits_before_rate_limit_spend_no_budget(self, cache, limiter):
        terminal = AsyncMock(return_value="data")
        pipeline = MiddlewarePipeline().use(CacheMiddleware(cache)).use(RateLimitMiddleware(limiter))

        for _ in range(5):
            await pipeline.execute(GET, terminal, identity="alice")

        assert terminal.await_count == 1
        assert await limiter.remaining("alice") == 1


@pytest.mark.unit
class TestRequestLoggingMiddleware:
    def test_sanitize_headers(self):
        sanitized = sanitize_headers({"Authorization": "Bearer secret", "X-Trace": "abc"})
        assert sanitized == {"Authorization": "[REDACTED]", "X-Trace": "abc"}

    @pytest.mark.asyncio
    async def test_logs_without_raw_identity_or_secrets(self):
        terminal = AsyncMock(return_value="ok")
        pipeline = MiddlewarePipeline().use(RequestLoggingMiddleware())

        with patch("src.pipeline.middleware.request_logging.logger") as mock_logger:
            await pipeline.execute(
                {"method": "GET", "endpoint": "/m", "headers": {"Authorization": "Bearer secret"}},
                terminal,
                identity="sk-raw-identity",
            )

        logged = repr(mock_logger.info.call_args_list)
        assert "sk-raw-identity" not in logged
        assert "Bearer secret" not in logged
        assert mock_logger.info.call_count == 2

    @pytest.mark.asyncio
    async def test_error_logged_and_reraised(self):
        terminal = AsyncMock(side_effect=RuntimeError("boom"))
        pipeline = MiddlewarePipeline().use(RequestLoggingMiddleware())

        with patch("src.pipeline.middleware.request_logging.logger") as mock_logger:
            with pytest.raises(RuntimeError):
                await pipeline.execute(GET, terminal, identity="alice")

        mock_logger.error.assert_called_once()
        assert mock_logger.error.call_args.kwargs["error_type"] == "RuntimeError"
