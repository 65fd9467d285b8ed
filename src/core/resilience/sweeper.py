"""
Periodic Sweeper

Background loop that invokes a maintenance coroutine at a fixed interval.
Used for idle-lease eviction in the connection pool and stale-key eviction
in the rate limiter.

Lifecycle:
    sweeper = PeriodicSweeper("pool-idle", 30.0, pool.sweep_idle)
    sweeper.start()      # schedules the loop on the running event loop
    ...
    await sweeper.stop() # signals shutdown, cancels if it does not exit promptly
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from src.core.logging.logger import get_logger

logger = get_logger(__name__)


class PeriodicSweeper:
    """Runs ``callback`` every ``interval`` seconds until stopped."""

    def __init__(self, name: str, interval: float, callback: Callable[[], Awaitable[Any]]):
        self.name = name
        self.interval = interval
        self._callback = callback
        self._task: asyncio.Task | None = None
        self._shutdown_event = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._shutdown_event.clear()
        self._task = asyncio.create_task(self._run(), name=f"sweeper:{self.name}")
        logger.info("Sweeper started", sweeper=self.name, interval=self.interval)

    async def stop(self, timeout: float = 5.0) -> None:
        if self._task is None:
            return

        self._shutdown_event.set()
        try:
            await asyncio.wait_for(self._task, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Sweeper shutdown timeout, cancelling task", sweeper=self.name)
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        finally:
            self._task = None
        logger.info("Sweeper stopped", sweeper=self.name)

    async def _run(self) -> None:
        while not self._shutdown_event.is_set():
            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=self.interval)
                break
            except asyncio.TimeoutError:
                pass

            try:
                await self._callback()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Next tick retries.
                logger.error("Sweep failed", sweeper=self.name, error=str(e))
