"""Booking lifecycle: validation, availability, transitions, events and outbox."""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from datetime import date, datetime, time, timedelta
from typing import Callable, List, Optional, Tuple

from core import get_logger
from core.constants import (
    BookingDefaults,
    BookingStatus,
    EventType,
    SyncDefaults,
    SyncTaskKind,
)
from core.exceptions import (
    BookingError,
    DateTooFarError,
    NotAvailableError,
    PastDateError,
    StorageError,
)
from database.models import Booking
from database.store import Store
from services.event_bus import EventBus, booking_event_payload
from utils.performance import PerformanceMonitor, monitor as default_monitor

logger = get_logger(__name__)


@dataclass(slots=True)
class FailedDate:
    """A date that could not be booked during a bulk creation."""

    date: date
    error: BookingError


def schedule_window(today: date) -> Tuple[date, date]:
    """Default mirror schedule window: one month back, two months ahead."""
    return (
        today - timedelta(days=SyncDefaults.SCHEDULE_DAYS_BEHIND),
        today + timedelta(days=SyncDefaults.SCHEDULE_DAYS_AHEAD),
    )


class BookingService:
    """Drives bookings through their lifecycle.

    This service is the only writer of the outbox: every successful
    mutation is followed by the matching sync tasks.
    """

    def __init__(
        self,
        store: Store,
        event_bus: EventBus,
        max_booking_days: int = BookingDefaults.MAX_BOOKING_DAYS,
        min_booking_advance_hours: int = 0,
        clock: Callable[[], datetime] = datetime.now,
        monitor: Optional[PerformanceMonitor] = None,
    ) -> None:
        self.store = store
        self.event_bus = event_bus
        self.max_booking_days = max_booking_days
        self.min_booking_advance_hours = min_booking_advance_hours
        self.clock = clock
        self.monitor = monitor or default_monitor

    def today(self) -> date:
        return self.clock().date()

    def validate_date(self, booking_date: date) -> None:
        """Check the date against the booking horizon.

        Raises:
            PastDateError: If the date is before today, or its start is
                within ``min_booking_advance_hours`` from now
            DateTooFarError: If the date is more than ``max_booking_days`` ahead
        """
        if isinstance(booking_date, datetime):
            booking_date = booking_date.date()
        now = self.clock()
        today = now.date()

        if self.min_booking_advance_hours > 0:
            day_start = datetime.combine(booking_date, time.min)
            if day_start < now + timedelta(hours=self.min_booking_advance_hours):
                raise PastDateError(f"{booking_date} is within the advance window")
        elif booking_date < today:
            raise PastDateError(f"{booking_date} is in the past")

        if booking_date > today + timedelta(days=self.max_booking_days):
            raise DateTooFarError(f"{booking_date} is beyond {self.max_booking_days} days")

    async def check_availability(self, item_id: int, booking_date: date) -> bool:
        return await self.store.check_availability(item_id, booking_date)

    async def get_booking(self, booking_id: int) -> Booking:
        return await self.store.get_booking(booking_id)

    async def user_bookings(self, user_id: int) -> List[Booking]:
        since = self.today() - timedelta(days=BookingDefaults.USER_HISTORY_DAYS)
        return await self.store.user_bookings(user_id, since)

    async def manager_bookings(self) -> List[Booking]:
        today = self.today()
        return await self.store.list_bookings_in_range(
            today - timedelta(days=BookingDefaults.MANAGER_LIST_DAYS_BEHIND),
            today + timedelta(days=BookingDefaults.MANAGER_LIST_DAYS_AHEAD),
        )

    async def create_booking(self, booking: Booking, changed_by_id: Optional[int] = None) -> Booking:
        """Validate and persist a new booking.

        Raises:
            PastDateError, DateTooFarError: On an out-of-horizon date
            NotAvailableError: If the item is fully booked
            ConcurrentModificationError: If the write lock kept failing
        """
        self.validate_date(booking.date)
        if not await self.check_availability(booking.item_id, booking.date):
            raise NotAvailableError(f"Item {booking.item_id} is fully booked on {booking.date}")

        with self.monitor.track_booking(booking.item_name or str(booking.item_id)):
            created = await self.store.create_booking_with_lock(booking)

        logger.info(
            f"Booking #{created.id} created for {created.date} ({created.status})",
            extra={"booking_id": created.id, "user_id": created.user_id},
        )
        await self.event_bus.publish_json(
            EventType.BOOKING_CREATED,
            booking_event_payload(created, changed_by=created.user_name, changed_by_id=changed_by_id),
        )
        await self._enqueue_upsert(created)
        return created

    async def create_manager_bookings(
        self,
        template: Booking,
        dates: List[date],
        manager_id: Optional[int] = None,
    ) -> Tuple[List[Booking], List[FailedDate]]:
        """Create one confirmed booking per date.

        Dates that fail validation or are saturated are collected rather
        than aborting the whole batch.
        """
        created: List[Booking] = []
        failed: List[FailedDate] = []
        for booking_date in dates:
            booking = replace(
                template,
                id=None,
                date=booking_date,
                status=BookingStatus.CONFIRMED.value,
                version=1,
                created_at=None,
                updated_at=None,
            )
            try:
                created.append(await self.create_booking(booking, changed_by_id=manager_id))
            except BookingError as e:
                logger.info(f"Manager booking on {booking_date} skipped: {e}")
                failed.append(FailedDate(date=booking_date, error=e))
        return created, failed

    async def confirm(self, booking_id: int, version: int, manager_id: int) -> Booking:
        return await self._transition(
            booking_id, version, BookingStatus.CONFIRMED.value, EventType.BOOKING_CONFIRMED, manager_id
        )

    async def reject(self, booking_id: int, version: int, manager_id: int) -> Booking:
        return await self._transition(
            booking_id, version, BookingStatus.CANCELED.value, EventType.BOOKING_CANCELED, manager_id
        )

    async def complete(self, booking_id: int, version: int, manager_id: int) -> Booking:
        return await self._transition(
            booking_id, version, BookingStatus.COMPLETED.value, EventType.BOOKING_COMPLETED, manager_id
        )

    async def reopen(self, booking_id: int, version: int, manager_id: int) -> Booking:
        return await self._transition(booking_id, version, BookingStatus.PENDING.value, None, manager_id)

    async def reschedule(self, booking_id: int, version: int, manager_id: int) -> Booking:
        return await self._transition(booking_id, version, BookingStatus.RESCHEDULED.value, None, manager_id)

    async def change_item(self, booking_id: int, version: int, new_item_id: int, manager_id: int) -> Booking:
        """Move a booking to another item and mark it ``changed``.

        Raises:
            NotAvailableError: If the new item has no free unit on that date
            ConcurrentModificationError: If the booking version is stale
            InvalidTransitionError: If the booking cannot become ``changed``
        """
        booking, available = await self.store.get_booking_with_availability(booking_id, new_item_id)
        if not available:
            raise NotAvailableError(f"Item {new_item_id} is fully booked on {booking.date}")
        new_item = await self.store.get_item_by_id(new_item_id)

        updated = await self.store.update_booking_item_and_status_with_version(
            booking_id, version, new_item.id, new_item.name, BookingStatus.CHANGED.value
        )
        logger.info(
            f"Booking #{booking_id} moved to item {new_item.name}",
            extra={"booking_id": booking_id, "user_id": manager_id},
        )
        await self.event_bus.publish_json(
            EventType.BOOKING_ITEM_CHANGED,
            booking_event_payload(updated, changed_by="manager", changed_by_id=manager_id),
        )
        await self._enqueue_upsert(updated)
        return updated

    async def request_full_resync(self) -> None:
        """Queue a rewrite of the whole bookings sheet and the schedule grid."""
        await self._enqueue(SyncTaskKind.REPLACE_BOOKINGS)
        await self._enqueue_schedule()

    async def request_schedule_resync(self) -> None:
        await self._enqueue_schedule()

    async def _transition(
        self,
        booking_id: int,
        version: int,
        new_status: str,
        event_type: Optional[EventType],
        manager_id: int,
    ) -> Booking:
        updated = await self.store.update_booking_status_with_version(booking_id, version, new_status)
        logger.info(
            f"Booking #{booking_id} -> {new_status} (v{updated.version})",
            extra={"booking_id": booking_id, "user_id": manager_id},
        )
        if event_type is not None:
            await self.event_bus.publish_json(
                event_type,
                booking_event_payload(updated, changed_by="manager", changed_by_id=manager_id),
            )
        await self._enqueue(
            SyncTaskKind.UPDATE_STATUS,
            booking_id=updated.id,
            booking_status=updated.status,
        )
        await self._enqueue_schedule()
        return updated

    async def _enqueue_upsert(self, booking: Booking) -> None:
        await self._enqueue(
            SyncTaskKind.UPSERT,
            booking_id=booking.id,
            payload=json.dumps(booking.to_dict(), ensure_ascii=False),
        )
        await self._enqueue_schedule()

    async def _enqueue_schedule(self) -> None:
        start, end = schedule_window(self.today())
        await self._enqueue(
            SyncTaskKind.SYNC_SCHEDULE,
            payload=json.dumps({"start": start.isoformat(), "end": end.isoformat()}),
        )

    async def _enqueue(
        self,
        kind: SyncTaskKind,
        booking_id: Optional[int] = None,
        payload: Optional[str] = None,
        booking_status: Optional[str] = None,
    ) -> None:
        # The booking row is already committed; a lost task is recovered by a full resync
        try:
            await self.store.enqueue_task(
                kind.value, booking_id=booking_id, payload=payload, booking_status=booking_status
            )
        except StorageError as e:
            logger.error(
                f"Failed to enqueue {kind.value} task: {e}",
                exc_info=True,
                extra={"booking_id": booking_id, "kind": kind.value},
            )
