"""Daily reminders about tomorrow's bookings."""

from __future__ import annotations

import asyncio
from contextlib import suppress
from datetime import datetime, time, timedelta
from typing import Awaitable, Callable, Optional, Tuple

from core import get_logger
from core.constants import BookingStatus, STATUS_LABELS
from database.store import Store
from utils.validators import format_date

logger = get_logger(__name__)

REMINDER_STATUSES = (BookingStatus.CONFIRMED.value, BookingStatus.CHANGED.value)

SendMessage = Callable[[int, str], Awaitable[None]]


def seconds_until_next_run(now: datetime, hour: int, minute: int) -> float:
    """Seconds from ``now`` to the next HH:MM (today if still ahead, else tomorrow)."""
    target = datetime.combine(now.date(), time(hour=hour, minute=minute))
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


class ReminderService:
    """Sends one message per confirmed booking scheduled for tomorrow."""

    def __init__(
        self,
        store: Store,
        send_message: SendMessage,
        reminder_time: Tuple[int, int] = (9, 0),
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.send_message = send_message
        self.hour, self.minute = reminder_time
        self.clock = clock
        self.running = False
        self._task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        if self.running:
            logger.warning("Reminder service already running")
            return
        self.running = True
        self._task = asyncio.create_task(self._loop())
        logger.info(f"⏰ Reminder service started (daily at {self.hour:02d}:{self.minute:02d})")

    async def stop(self) -> None:
        self.running = False
        if self._task:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        logger.info("Reminder service stopped")

    async def _loop(self) -> None:
        while self.running:
            delay = seconds_until_next_run(self.clock(), self.hour, self.minute)
            await asyncio.sleep(delay)
            try:
                sent = await self.send_reminders()
                logger.info(f"Sent {sent} booking reminders")
            except Exception as e:
                logger.error(f"Reminder run failed: {e}", exc_info=True)

    async def send_reminders(self) -> int:
        """Notify owners of tomorrow's confirmed or changed bookings."""
        tomorrow = self.clock().date() + timedelta(days=1)
        bookings = await self.store.bookings_for_date(tomorrow, REMINDER_STATUSES)
        sent = 0
        for booking in bookings:
            text = (
                f"Напоминание: завтра у вас бронь {booking.item_name} на {format_date(booking.date)}. "
                f"Статус: {STATUS_LABELS.get(booking.status, booking.status)}"
            )
            try:
                await self.send_message(booking.user_id, text)
                sent += 1
            except Exception as e:
                logger.error(
                    f"Failed to send reminder: {e}",
                    exc_info=True,
                    extra={"booking_id": booking.id, "user_id": booking.user_id},
                )
        return sent
