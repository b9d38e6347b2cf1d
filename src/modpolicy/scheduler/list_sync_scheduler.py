"""Scheduler for the periodic full resync of watched policy lists.

Batched notifications keep lists current while events flow in, but events can
be missed (a dropped connection, a restart). The scheduler reconciles every
list on a fixed interval as a backstop. Handles lifecycle (start/shutdown) and
standard error handling.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from modpolicy.util.logger import get_logger

logger = get_logger("sync_scheduler")


class ListSyncScheduler:
    """
    Runs a sync coroutine on a fixed interval in a background task.

    Args:
        name: Human-readable name for logging (e.g., "policy lists").
        sync_coro: Async callable run once per interval, e.g. ``PolicyListManager.sync_all``.
        get_interval: Callable returning the interval in seconds (called at start).
    """

    def __init__(
        self,
        name: str,
        sync_coro: Callable[[], Awaitable[Any]],
        get_interval: Callable[[], float],
    ) -> None:
        self._name = name
        self._sync_coro = sync_coro
        self._get_interval = get_interval
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run_loop(self, interval: float) -> None:
        """Infinite loop: sync, sleep, repeat."""
        logger.info("[%s] Starting periodic sync (interval=%.1fs)", self._name, interval)
        try:
            while True:
                try:
                    await self._sync_coro()
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    logger.error("[%s] Unexpected error during sync: %s", self._name, exc)
                await asyncio.sleep(interval)
        except asyncio.CancelledError:
            logger.info("[%s] Periodic sync cancelled", self._name)
            raise

    def start(self) -> None:
        """Start the background sync task if not already running."""
        if self.is_running:
            logger.warning("[%s] Sync task already running", self._name)
            return
        interval = self._get_interval()
        logger.info("[%s] Creating sync task with interval %.1fs", self._name, interval)
        self._task = asyncio.create_task(self._run_loop(interval))

    async def shutdown(self) -> None:
        """Stop the task and wait for it to finish."""
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

        logger.info("[%s] Scheduler shutdown complete", self._name)
