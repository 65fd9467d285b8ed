"""
Unit Tests for ConnectionPoolManager

Covers get-or-create, the capacity bound under concurrency, scoped usage
tracking on every exit path, the acquire timeout and idle eviction.
"""

import asyncio
from unittest.mock import patch

import pytest

from src.core.config.constants import Stage
from src.core.exceptions import ConnectionPoolExhaustedError
from src.core.resilience.connection_pool_manager import ConnectionPoolManager


@pytest.fixture
def pool(fake_clock):
    return ConnectionPoolManager(
        2,
        idle_timeout=300.0,
        poll_interval=0.01,
        acquire_timeout=0.05,
        clock=fake_clock,
    )


@pytest.mark.unit
class TestAcquire:
    @pytest.mark.asyncio
    async def test_creates_lease_with_auth_context(self, pool):
        lease = await pool.acquire("key-123")
        assert lease.identity_key == "key-123"
        assert lease.context == {"Authorization": "Bearer key-123"}
        assert lease.active_requests == 0
        assert pool.size() == 1

    @pytest.mark.asyncio
    async def test_reuses_existing_lease(self, pool):
        first = await pool.acquire("key-123")
        second = await pool.acquire("key-123")
        assert first is second
        assert pool.size() == 1

    @pytest.mark.asyncio
    async def test_custom_context_factory(self, fake_clock):
        pool = ConnectionPoolManager(1, context_factory=lambda identity: f"ctx:{identity}", clock=fake_clock)
        lease = await pool.acquire("abc")
        assert lease.context == "ctx:abc"

    @pytest.mark.asyncio
    async def test_concurrent_acquire_same_identity_creates_one_lease(self, pool):
        leases = await asyncio.gather(*(pool.acquire("same") for _ in range(20)))
        assert all(lease is leases[0] for lease in leases)
        assert pool.size() == 1

    @pytest.mark.asyncio
    async def test_exhausted_after_timeout(self, pool):
        async with pool.lease("a"), pool.lease("b"):
            with pytest.raises(ConnectionPoolExhaustedError) as exc_info:
                await pool.acquire("c")

        assert exc_info.value.details["max_connections"] == 2
        assert pool.size() == 2

    @pytest.mark.asyncio
    async def test_full_pool_evicts_idle_lease_to_make_room(self, pool, fake_clock):
        await pool.acquire("a")
        await pool.acquire("b")
        fake_clock.advance(301.0)

        lease = await pool.acquire("c")

        assert lease.identity_key == "c"
        assert pool.size() <= 2
        assert pool.get_lease("c") is lease

    @pytest.mark.asyncio
    async def test_waiter_proceeds_when_capacity_frees(self, fake_clock):
        pool = ConnectionPoolManager(1, idle_timeout=10.0, poll_interval=0.01, acquire_timeout=1.0, clock=fake_clock)
        release = asyncio.Event()

        async def hold(lease):
            await release.wait()

        holder = asyncio.create_task(pool.execute_with_connection("a", hold))
        await asyncio.sleep(0)
        waiter = asyncio.create_task(pool.acquire("b"))
        await asyncio.sleep(0.02)
        assert not waiter.done()

        release.set()
        await holder
        fake_clock.advance(10.0)

        lease = await waiter
        assert lease.identity_key == "b"
        assert pool.size() == 1


@pytest.mark.unit
class TestScopedUsage:
    @pytest.mark.asyncio
    async def test_active_count_returns_to_zero_after_concurrent_calls(self, pool):
        async def op(lease):
            await asyncio.sleep(0)
            return lease.active_requests

        observed = await asyncio.gather(*(pool.execute_with_connection("k", op) for _ in range(25)))

        assert max(observed) >= 1
        assert pool.get_lease("k").active_requests == 0

    @pytest.mark.asyncio
    async def test_released_on_error(self, pool):
        async def op(lease):
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await pool.execute_with_connection("k", op)

        assert pool.get_lease("k").active_requests == 0

    @pytest.mark.asyncio
    async def test_released_on_cancellation(self, pool):
        started = asyncio.Event()

        async def op(lease):
            started.set()
            await asyncio.sleep(10)

        task = asyncio.create_task(pool.execute_with_connection("k", op))
        await started.wait()
        assert pool.get_lease("k").active_requests == 1

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert pool.get_lease("k").active_requests == 0

    @pytest.mark.asyncio
    async def test_usage_refreshes_last_used_at(self, pool, fake_clock):
        lease = await pool.acquire("k")
        fake_clock.advance(50.0)

        async def op(lease):
            return None

        await pool.execute_with_connection("k", op)
        assert lease.last_used_at == fake_clock.now


@pytest.mark.unit
class TestIdleEviction:
    @pytest.mark.asyncio
    async def test_sweep_evicts_only_idle_expired_leases(self, pool, fake_clock):
        await pool.acquire("idle")
        fake_clock.advance(299.0)
        await pool.acquire("recent")
        fake_clock.advance(1.0)

        assert await pool.sweep_idle() == 1
        assert pool.get_lease("idle") is None
        assert pool.get_lease("recent") is not None

    @pytest.mark.asyncio
    async def test_active_lease_never_evicted(self, pool, fake_clock):
        async with pool.lease("busy"):
            fake_clock.advance(1000.0)
            assert await pool.sweep_idle() == 0
            assert pool.get_lease("busy") is not None

    @pytest.mark.asyncio
    async def test_stats(self, pool):
        async with pool.lease("a"):
            stats = pool.get_stats()
        assert stats["total_leases"] == 1
        assert stats["active_leases"] == 1
        assert stats["max_connections"] == 2
        assert stats["utilization_percent"] == 50.0

    @pytest.mark.asyncio
    async def test_close_drops_leases(self, pool):
        pool.start()
        await pool.acquire("a")
        await pool.close()
        assert pool.size() == 0

    @pytest.mark.asyncio
    async def test_eviction_logged_under_pool_stage(self, pool, fake_clock):
        await pool.acquire("a")
        fake_clock.advance(300.0)

        with patch("src.core.resilience.connection_pool_manager.logger") as mock_logger:
            assert await pool.sweep_idle() == 1

        assert mock_logger.info.call_args.kwargs["stage"] == Stage.POOL
