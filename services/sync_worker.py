"""Outbox consumer that keeps the spreadsheet mirror up to date."""

from __future__ import annotations

import asyncio
import json
from contextlib import suppress
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional

from core import get_logger
from core.constants import SyncDefaults, SyncTaskKind
from core.exceptions import StorageError
from database.models import Booking, SyncTask
from database.store import Store
from services.booking_service import schedule_window
from services.mirror import MirrorSink
from utils.performance import PerformanceMonitor, monitor as default_monitor

logger = get_logger(__name__)


class InvalidTaskError(ValueError):
    """Raised when a task payload cannot be interpreted; never retried."""
    pass


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff: base_delay * 2^(attempt-1), capped at max_delay."""

    max_retries: int = SyncDefaults.MAX_RETRIES
    base_delay: float = SyncDefaults.BASE_DELAY
    max_delay: float = 60.0

    def next_delay(self, attempt: int) -> float:
        attempt = max(attempt, 1)
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)


class SyncWorker:
    """Drives the mirror from the outbox with at-least-once delivery.

    One loop runs per task kind. Tasks of one booking are serialised by a
    per-booking lock on top of the ordering the lease query provides.
    """

    def __init__(
        self,
        store: Store,
        sink: MirrorSink,
        retry_policy: Optional[RetryPolicy] = None,
        poll_interval: float = SyncDefaults.POLL_INTERVAL,
        batch_size: int = SyncDefaults.BATCH_SIZE,
        clock: Callable[[], datetime] = datetime.now,
        monitor: Optional[PerformanceMonitor] = None,
    ) -> None:
        self.store = store
        self.sink = sink
        self.retry_policy = retry_policy or RetryPolicy()
        self.poll_interval = poll_interval
        self.batch_size = batch_size
        self.clock = clock
        self.monitor = monitor or default_monitor
        self._booking_locks: Dict[int, asyncio.Lock] = {}
        self._tasks: List[asyncio.Task] = []
        self.running = False

    async def start(self) -> None:
        if self.running:
            logger.warning("Sync worker already running")
            return
        self.running = True
        self._tasks = [
            asyncio.create_task(self._loop(kind.value), name=f"sync-{kind.value}")
            for kind in SyncTaskKind
        ]
        logger.info(f"🔄 Sync worker started ({len(self._tasks)} loops)")

    async def stop(self) -> None:
        self.running = False
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with suppress(asyncio.CancelledError):
                await task
        self._tasks = []
        logger.info("Sync worker stopped")

    async def _loop(self, kind: str) -> None:
        while self.running:
            try:
                processed = await self.run_once(kind)
            except StorageError as e:
                logger.error(f"Sync loop {kind} failed to lease tasks: {e}", exc_info=True, extra={"kind": kind})
                processed = 0
            except Exception:
                logger.exception(f"Sync loop {kind} hit an unexpected error", extra={"kind": kind})
                processed = 0
            if processed == 0:
                await asyncio.sleep(self.poll_interval)

    async def run_once(self, kind: Optional[str] = None) -> int:
        """Lease one batch of due tasks and process them in order."""
        tasks = await self.store.lease_due_pending_tasks(self.batch_size, self.clock(), kind=kind)
        for task in tasks:
            await self.process_task(task)
        return len(tasks)

    async def process_task(self, task: SyncTask) -> None:
        """Apply one task to the mirror and record the outcome.

        Cancellation leaves the row untouched so it is picked up again on
        the next start.
        """
        key = task.booking_id if task.booking_id is not None else 0
        lock = self._booking_lock(key)
        try:
            async with lock:
                try:
                    await self._apply(task)
                except InvalidTaskError as e:
                    logger.error(f"Sync task {task.id} is invalid: {e}", extra={"task_id": task.id})
                    await self.store.mark_failed(task.id, str(e))
                    self.monitor.record_sync(task.kind, "failed")
                    return
                except Exception as e:
                    await self._retry_or_fail(task, e)
                    return
        finally:
            self._release_booking_lock(key, lock)

        await self.store.mark_completed(task.id)
        self.monitor.record_sync(task.kind, "completed")
        logger.debug(f"Sync task {task.id} ({task.kind}) completed", extra={"task_id": task.id})

    def _booking_lock(self, key: int) -> asyncio.Lock:
        lock = self._booking_locks.get(key)
        if lock is None:
            lock = self._booking_locks[key] = asyncio.Lock()
        return lock

    def _release_booking_lock(self, key: int, lock: asyncio.Lock) -> None:
        # Drop the entry once nobody holds or awaits it.
        if not lock.locked() and not getattr(lock, "_waiters", None):
            if self._booking_locks.get(key) is lock:
                del self._booking_locks[key]

    async def _retry_or_fail(self, task: SyncTask, cause: Exception) -> None:
        attempt = task.retry_count + 1
        if attempt > self.retry_policy.max_retries:
            logger.error(
                f"Sync task {task.id} ({task.kind}) failed permanently: {cause}",
                extra={"task_id": task.id, "booking_id": task.booking_id},
            )
            await self.store.mark_failed(task.id, str(cause))
            self.monitor.record_sync(task.kind, "failed")
            return

        next_at = self.clock() + timedelta(seconds=self.retry_policy.next_delay(attempt))
        logger.warning(
            f"Sync task {task.id} ({task.kind}) attempt {attempt} failed: {cause}; retry at {next_at:%H:%M:%S}",
            extra={"task_id": task.id, "booking_id": task.booking_id},
        )
        await self.store.mark_retry(task.id, next_at, str(cause))
        self.monitor.record_sync(task.kind, "retry")

    async def _apply(self, task: SyncTask) -> None:
        if task.kind == SyncTaskKind.UPSERT.value:
            await self.sink.upsert_booking(self._decode_booking(task))
        elif task.kind == SyncTaskKind.UPDATE_STATUS.value:
            if task.booking_id is None or not task.booking_status:
                raise InvalidTaskError("booking id or status missing")
            await self.sink.update_booking_status(task.booking_id, task.booking_status)
        elif task.kind == SyncTaskKind.SYNC_SCHEDULE.value:
            start, end = self._decode_window(task)
            daily = await self.store.daily_bookings_in_range(start, end)
            items = await self.store.list_active_items_sorted()
            await self.sink.update_schedule_sheet(start, end, daily, items)
        elif task.kind == SyncTaskKind.REPLACE_BOOKINGS.value:
            start, end = self._decode_window(task)
            await self.sink.replace_bookings_sheet(await self.store.list_bookings_in_range(start, end))
            await self.sink.update_users_sheet(await self.store.list_all_users())
        else:
            raise InvalidTaskError(f"unknown task type: {task.kind}")

    @staticmethod
    def _decode_booking(task: SyncTask) -> Booking:
        try:
            return Booking.from_dict(json.loads(task.payload or ""))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise InvalidTaskError(f"bad booking payload: {e}") from e

    def _decode_window(self, task: SyncTask) -> tuple[date, date]:
        if not task.payload:
            return schedule_window(self.clock().date())
        try:
            data = json.loads(task.payload)
            return date.fromisoformat(data["start"]), date.fromisoformat(data["end"])
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise InvalidTaskError(f"bad schedule payload: {e}") from e
