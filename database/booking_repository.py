"""Repository for bookings and availability."""

from __future__ import annotations

import asyncio
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

import aiosqlite

from core.constants import ACTIVE_STATUSES, BOOKING_TRANSITIONS, DatabaseDefaults
from core.exceptions import (
    ConcurrentModificationError,
    InvalidTransitionError,
    NotAvailableError,
    NotFoundError,
    StorageError,
)
from core.logger import get_logger
from database.base_repository import BaseRepository
from database.models import Availability, Booking

logger = get_logger(__name__)

_ACTIVE_PARAMS = tuple(sorted(ACTIVE_STATUSES))
_ACTIVE_PLACEHOLDERS = ",".join("?" * len(_ACTIVE_PARAMS))

_COUNT_ACTIVE_SQL = (
    f"SELECT COUNT(*) FROM bookings WHERE item_id=? AND date=? AND status IN ({_ACTIVE_PLACEHOLDERS})"
)


def _is_lock_error(exc: aiosqlite.Error) -> bool:
    if isinstance(exc, aiosqlite.IntegrityError):
        return True
    if isinstance(exc, aiosqlite.OperationalError):
        message = str(exc).lower()
        return "locked" in message or "busy" in message
    return False


class BookingRepository(BaseRepository):
    """Repository for booking operations.

    Every mutation goes through a versioned UPDATE so concurrent writers
    cannot silently overwrite each other.
    """

    async def get_booking(self, booking_id: int) -> Booking:
        row = await self.fetch_one("SELECT * FROM bookings WHERE id=?", (booking_id,))
        if row is None:
            raise NotFoundError(f"Booking {booking_id} not found")
        return Booking.from_row(row)

    async def list_bookings_in_range(self, start: date, end: date) -> List[Booking]:
        """Bookings with start <= date <= end, sorted by date then id."""
        rows = await self.fetch_all(
            "SELECT * FROM bookings WHERE date>=? AND date<=? ORDER BY date ASC, id ASC",
            (start.isoformat(), end.isoformat()),
        )
        return [Booking.from_row(row) for row in rows]

    async def daily_bookings_in_range(self, start: date, end: date) -> Dict[date, List[Booking]]:
        """Group bookings by day; every day of the range gets a key."""
        daily: Dict[date, List[Booking]] = {}
        current = start
        while current <= end:
            daily[current] = []
            current += timedelta(days=1)
        for booking in await self.list_bookings_in_range(start, end):
            daily.setdefault(booking.date, []).append(booking)
        return daily

    async def bookings_for_date(self, day: date, statuses: Iterable[str]) -> List[Booking]:
        statuses = tuple(statuses)
        placeholders = ",".join("?" * len(statuses))
        rows = await self.fetch_all(
            f"SELECT * FROM bookings WHERE date=? AND status IN ({placeholders}) ORDER BY id",
            (day.isoformat(), *statuses),
        )
        return [Booking.from_row(row) for row in rows]

    async def booked_count(self, item_id: int, day: date) -> int:
        """Count ACTIVE bookings of an item on one day."""
        value = await self.fetch_value(_COUNT_ACTIVE_SQL, (item_id, day.isoformat(), *_ACTIVE_PARAMS))
        return int(value or 0)

    async def check_availability(self, item_id: int, day: date) -> bool:
        row = await self.fetch_one("SELECT total_quantity FROM items WHERE id=?", (item_id,))
        if row is None:
            raise NotFoundError(f"Item {item_id} not found")
        return await self.booked_count(item_id, day) < row["total_quantity"]

    async def availability_for_period(self, item_id: int, start: date, days: int) -> List[Availability]:
        """Per-day availability of an item for ``days`` days from ``start``."""
        total = await self.fetch_value("SELECT total_quantity FROM items WHERE id=?", (item_id,))
        if total is None:
            raise NotFoundError(f"Item {item_id} not found")
        end = start + timedelta(days=days - 1)
        rows = await self.fetch_all(
            f"""
            SELECT date, COUNT(*) AS cnt FROM bookings
            WHERE item_id=? AND date>=? AND date<=? AND status IN ({_ACTIVE_PLACEHOLDERS})
            GROUP BY date
            """,
            (item_id, start.isoformat(), end.isoformat(), *_ACTIVE_PARAMS),
        )
        counts = {row["date"]: row["cnt"] for row in rows}
        return [
            Availability(
                date=start + timedelta(days=offset),
                booked=counts.get((start + timedelta(days=offset)).isoformat(), 0),
                total=int(total),
            )
            for offset in range(days)
        ]

    async def user_bookings(self, user_id: int, since: date) -> List[Booking]:
        rows = await self.fetch_all(
            "SELECT * FROM bookings WHERE user_id=? AND date>=? ORDER BY date ASC, id ASC",
            (user_id, since.isoformat()),
        )
        return [Booking.from_row(row) for row in rows]

    async def booking_summary(self, start: date, end: date) -> Dict[str, int]:
        """Count bookings per status for start <= date <= end."""
        rows = await self.fetch_all(
            "SELECT status, COUNT(*) AS cnt FROM bookings WHERE date>=? AND date<=? GROUP BY status",
            (start.isoformat(), end.isoformat()),
        )
        return {row["status"]: row["cnt"] for row in rows}

    async def create_booking_with_lock(self, booking: Booking) -> Booking:
        """Insert a booking after re-checking capacity under the write lock.

        The count and the insert run inside one ``BEGIN IMMEDIATE``
        transaction, so two writers cannot both take the last unit.

        Raises:
            NotFoundError: If the item does not exist or was deactivated
            NotAvailableError: If the item is fully booked on that date
            ConcurrentModificationError: If the lock could not be obtained
                after the configured number of attempts
        """
        last_error: Optional[Exception] = None
        for attempt in range(1, DatabaseDefaults.LOCK_RETRIES + 1):
            try:
                return await self._insert_booking(booking)
            except aiosqlite.Error as exc:
                if not _is_lock_error(exc):
                    logger.error(f"Booking insert failed: {exc}", exc_info=True)
                    raise StorageError(str(exc)) from exc
                last_error = exc
                logger.warning(
                    f"Booking insert contention (attempt {attempt}): {exc}",
                    extra={"user_id": booking.user_id},
                )
                await asyncio.sleep(DatabaseDefaults.LOCK_RETRY_DELAY * attempt)
        raise ConcurrentModificationError(f"Could not create booking: {last_error}")

    async def _insert_booking(self, booking: Booking) -> Booking:
        now = datetime.now()
        async with self.transaction(immediate=True) as conn:
            cursor = await conn.execute(
                "SELECT total_quantity, is_active FROM items WHERE id=?", (booking.item_id,)
            )
            row = await cursor.fetchone()
            if row is None or not row["is_active"]:
                raise NotFoundError(f"Item {booking.item_id} not found")

            cursor = await conn.execute(
                _COUNT_ACTIVE_SQL, (booking.item_id, booking.date.isoformat(), *_ACTIVE_PARAMS)
            )
            booked = (await cursor.fetchone())[0]
            if booked >= row["total_quantity"]:
                raise NotAvailableError(
                    f"Item {booking.item_id} is fully booked on {booking.date.isoformat()}"
                )

            cursor = await conn.execute(
                """
                INSERT INTO bookings (
                    user_id, user_name, user_nickname, phone, item_id, item_name,
                    date, status, comment, version, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 1, ?, ?)
                """,
                (
                    booking.user_id,
                    booking.user_name,
                    booking.user_nickname,
                    booking.phone,
                    booking.item_id,
                    booking.item_name,
                    booking.date.isoformat(),
                    booking.status,
                    booking.comment,
                    now.isoformat(),
                    now.isoformat(),
                ),
            )
            booking_id = cursor.lastrowid

        booking.id = booking_id
        booking.version = 1
        booking.created_at = now
        booking.updated_at = now
        return booking

    async def update_booking_status_with_version(
        self, booking_id: int, expected_version: int, new_status: str
    ) -> Booking:
        """Move a booking to ``new_status`` if its version still matches.

        Returns:
            The updated booking with the bumped version

        Raises:
            NotFoundError: If the booking does not exist
            ConcurrentModificationError: If the version is stale
            InvalidTransitionError: If the status change is not permitted
        """
        try:
            async with self.transaction(immediate=True) as conn:
                current = await self._load_for_update(conn, booking_id, expected_version)
                self._check_transition(current.status, new_status)
                await self._versioned_update(
                    conn,
                    "UPDATE bookings SET status=?, version=version+1, updated_at=? WHERE id=? AND version=?",
                    (new_status, datetime.now().isoformat(), booking_id, expected_version),
                )
        except aiosqlite.Error as exc:
            raise self._wrap_update_error(exc) from exc
        return await self.get_booking(booking_id)

    async def update_booking_item_and_status_with_version(
        self,
        booking_id: int,
        expected_version: int,
        new_item_id: int,
        new_item_name: str,
        new_status: str,
    ) -> Booking:
        """Swap the booked item and status in one versioned update.

        Capacity of the new item is re-checked inside the transaction.
        """
        try:
            async with self.transaction(immediate=True) as conn:
                current = await self._load_for_update(conn, booking_id, expected_version)
                self._check_transition(current.status, new_status)

                if new_item_id != current.item_id:
                    cursor = await conn.execute("SELECT total_quantity FROM items WHERE id=?", (new_item_id,))
                    item_row = await cursor.fetchone()
                    if item_row is None:
                        raise NotFoundError(f"Item {new_item_id} not found")
                    cursor = await conn.execute(
                        _COUNT_ACTIVE_SQL, (new_item_id, current.date.isoformat(), *_ACTIVE_PARAMS)
                    )
                    booked = (await cursor.fetchone())[0]
                    if booked >= item_row["total_quantity"]:
                        raise NotAvailableError(
                            f"Item {new_item_id} is fully booked on {current.date.isoformat()}"
                        )

                await self._versioned_update(
                    conn,
                    """
                    UPDATE bookings
                    SET item_id=?, item_name=?, status=?, version=version+1, updated_at=?
                    WHERE id=? AND version=?
                    """,
                    (
                        new_item_id,
                        new_item_name,
                        new_status,
                        datetime.now().isoformat(),
                        booking_id,
                        expected_version,
                    ),
                )
        except aiosqlite.Error as exc:
            raise self._wrap_update_error(exc) from exc
        return await self.get_booking(booking_id)

    async def get_booking_with_availability(self, booking_id: int, new_item_id: int) -> Tuple[Booking, bool]:
        """Read a booking and whether ``new_item_id`` has a free unit on its date.

        Both reads happen in one transaction so they see the same snapshot.
        """
        try:
            async with self.transaction() as conn:
                cursor = await conn.execute("SELECT * FROM bookings WHERE id=?", (booking_id,))
                row = await cursor.fetchone()
                if row is None:
                    raise NotFoundError(f"Booking {booking_id} not found")
                booking = Booking.from_row(row)

                cursor = await conn.execute("SELECT total_quantity FROM items WHERE id=?", (new_item_id,))
                item_row = await cursor.fetchone()
                if item_row is None:
                    raise NotFoundError(f"Item {new_item_id} not found")

                cursor = await conn.execute(
                    _COUNT_ACTIVE_SQL, (new_item_id, booking.date.isoformat(), *_ACTIVE_PARAMS)
                )
                booked = (await cursor.fetchone())[0]
        except aiosqlite.Error as exc:
            raise StorageError(str(exc)) from exc

        if new_item_id == booking.item_id and booking.is_active:
            # The booking already holds one unit of this item
            booked -= 1
        return booking, booked < item_row["total_quantity"]

    async def _load_for_update(self, conn: aiosqlite.Connection, booking_id: int, expected_version: int) -> Booking:
        cursor = await conn.execute("SELECT * FROM bookings WHERE id=?", (booking_id,))
        row = await cursor.fetchone()
        if row is None:
            raise NotFoundError(f"Booking {booking_id} not found")
        booking = Booking.from_row(row)
        if booking.version != expected_version:
            raise ConcurrentModificationError(
                f"Booking {booking_id} is at version {booking.version}, expected {expected_version}"
            )
        return booking

    @staticmethod
    def _check_transition(current: str, target: str) -> None:
        if target not in BOOKING_TRANSITIONS.get(current, frozenset()):
            raise InvalidTransitionError(current, target)

    @staticmethod
    async def _versioned_update(conn: aiosqlite.Connection, query: str, params: tuple) -> None:
        cursor = await conn.execute(query, params)
        if cursor.rowcount == 0:
            raise ConcurrentModificationError("Booking was modified concurrently")

    @staticmethod
    def _wrap_update_error(exc: aiosqlite.Error) -> Exception:
        if _is_lock_error(exc):
            return ConcurrentModificationError(str(exc))
        return StorageError(str(exc))
