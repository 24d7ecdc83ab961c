"""Background refresh of gauge metrics."""

from __future__ import annotations

import asyncio
from contextlib import suppress
from typing import Optional

from core import get_logger
from core.constants import SchedulerDefaults
from core.exceptions import StorageError
from database.store import Store
from utils.performance import PerformanceMonitor, monitor as default_monitor

logger = get_logger(__name__)


class MetricsUpdater:
    """Updates the active-users gauge and host metrics on an interval."""

    def __init__(
        self,
        store: Store,
        monitor: Optional[PerformanceMonitor] = None,
        interval: float = SchedulerDefaults.METRICS_INTERVAL,
        active_days: int = SchedulerDefaults.ACTIVE_USERS_DAYS,
    ) -> None:
        self.store = store
        self.monitor = monitor or default_monitor
        self.interval = interval
        self.active_days = active_days
        self.running = False
        self._task: Optional[asyncio.Task] = None

    async def refresh(self) -> int:
        active = await self.store.list_active_users_since(self.active_days)
        self.monitor.record_active_users(len(active))
        self.monitor.gather_host_metrics()
        return len(active)

    async def _loop(self) -> None:
        while self.running:
            try:
                await self.refresh()
            except StorageError as e:
                logger.warning(f"Metrics refresh failed: {e}")
            await asyncio.sleep(self.interval)

    async def start(self) -> None:
        if self.running:
            return
        self.running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("📊 Metrics updater started")

    async def stop(self) -> None:
        self.running = False
        if self._task:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None
