from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from .sync_engine import OfflineSyncEngine

logger = logging.getLogger(__name__)

Housekeeping = Callable[[], object]


class ConnectivityMonitor:
    """Background loops that keep the sync engine's view of the network honest.

    Three asyncio tasks run once ``start()`` is awaited: a liveness probe,
    a periodic sync pass while online, and an optional housekeeping callback
    (shift watchdog plus hold expiry sweep).
    """

    def __init__(
        self,
        engine: OfflineSyncEngine,
        *,
        probe_interval_seconds: float = 30,
        sync_interval_seconds: float = 120,
        housekeeping_interval_seconds: float = 5,
        housekeeping: Housekeeping | None = None,
    ) -> None:
        self.engine = engine
        self.probe_interval_seconds = probe_interval_seconds
        self.sync_interval_seconds = sync_interval_seconds
        self.housekeeping_interval_seconds = housekeeping_interval_seconds
        self.housekeeping = housekeeping
        self.running = False
        self._tasks: list[asyncio.Task] = []
        self._pending_syncs: set[asyncio.Task] = set()

    def notify(self, online: bool) -> asyncio.Task | None:
        """Host-level online/offline notification.

        Returns the scheduled sync task on an offline -> online edge.
        Must be called from inside a running event loop.
        """
        if not self.engine.set_online(online):
            return None
        logger.info("connection restored, starting sync")
        task = asyncio.get_running_loop().create_task(self.engine.trigger_sync())
        self._pending_syncs.add(task)
        task.add_done_callback(self._pending_syncs.discard)
        return task

    async def check_connection(self) -> bool:
        restored = await self.engine.check_connection()
        if restored:
            logger.info("probe succeeded after offline period, starting sync")
            await self.engine.trigger_sync()
        return self.engine.is_online

    async def start(self) -> None:
        if self.running:
            return
        self.running = True
        self._tasks.append(asyncio.create_task(self._every(self.probe_interval_seconds, self.check_connection, "probe")))
        self._tasks.append(asyncio.create_task(self._every(self.sync_interval_seconds, self._periodic_sync, "sync")))
        if self.housekeeping is not None:
            self._tasks.append(
                asyncio.create_task(self._every(self.housekeeping_interval_seconds, self._run_housekeeping, "housekeeping"))
            )
        logger.info("connectivity monitor started with %s loop(s)", len(self._tasks))

    async def stop(self) -> None:
        self.running = False
        tasks = self._tasks + list(self._pending_syncs)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks = []
        self._pending_syncs.clear()
        logger.info("connectivity monitor stopped")

    async def _periodic_sync(self) -> None:
        if self.engine.is_online:
            await self.engine.trigger_sync()

    async def _run_housekeeping(self) -> None:
        if self.housekeeping is not None:
            self.housekeeping()

    async def _every(self, interval: float, job: Callable[[], Awaitable[object]], name: str) -> None:
        while self.running:
            try:
                await asyncio.sleep(interval)
                await job()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("%s loop iteration failed", name)
