"""Spreadsheet mirror of bookings, users and the schedule grid."""

from __future__ import annotations

import asyncio
from datetime import date
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol

from openpyxl import Workbook, load_workbook
from openpyxl.worksheet.worksheet import Worksheet

from core import get_logger
from core.exceptions import RemoteSinkError
from database.models import Booking, Item, User
from services.export_service import USER_HEADERS, render_schedule, user_row, write_header

logger = get_logger(__name__)

BOOKINGS_SHEET = "Bookings"
USERS_SHEET = "Users"
SCHEDULE_SHEET = "Schedule"

BOOKING_HEADERS = (
    "ID", "User ID", "Имя", "Телефон", "Аппарат", "Дата",
    "Статус", "Комментарий", "Создано", "Обновлено",
)
_STATUS_COLUMN = BOOKING_HEADERS.index("Статус") + 1


class MirrorSink(Protocol):
    """Operations the sync worker needs from a mirror.

    Implementations must be idempotent per booking id.
    """

    async def append_booking(self, booking: Booking) -> None: ...

    async def upsert_booking(self, booking: Booking) -> None: ...

    async def update_booking_status(self, booking_id: int, status: str) -> None: ...

    async def replace_bookings_sheet(self, bookings: List[Booking]) -> None: ...

    async def update_users_sheet(self, users: List[User]) -> None: ...

    async def update_schedule_sheet(
        self,
        start: date,
        end: date,
        daily_bookings: Dict[date, List[Booking]],
        items: List[Item],
    ) -> None: ...


def booking_row(booking: Booking) -> list:
    return [
        booking.id,
        booking.user_id,
        booking.user_name,
        booking.phone,
        booking.item_name,
        booking.date.strftime("%d.%m.%Y"),
        booking.status,
        booking.comment,
        booking.created_at.strftime("%d.%m.%Y %H:%M") if booking.created_at else "",
        booking.updated_at.strftime("%d.%m.%Y %H:%M") if booking.updated_at else "",
    ]


class ExcelMirrorSink:
    """Mirror kept in a local .xlsx workbook.

    The workbook is loaded once and saved after every change. All access
    is serialised by a lock and runs in a worker thread.
    """

    def __init__(self, path: str) -> None:
        self.path = Path(path)
        self._lock = asyncio.Lock()
        self._workbook: Optional[Workbook] = None
        # booking id -> row number in the bookings sheet
        self._row_cache: Dict[int, int] = {}

    async def append_booking(self, booking: Booking) -> None:
        await self._apply(lambda wb: self._append(wb, booking))

    async def upsert_booking(self, booking: Booking) -> None:
        await self._apply(lambda wb: self._upsert(wb, booking))

    async def update_booking_status(self, booking_id: int, status: str) -> None:
        await self._apply(lambda wb: self._set_status(wb, booking_id, status))

    async def replace_bookings_sheet(self, bookings: List[Booking]) -> None:
        await self._apply(lambda wb: self._replace_bookings(wb, bookings))

    async def update_users_sheet(self, users: List[User]) -> None:
        await self._apply(lambda wb: self._replace_users(wb, users))

    async def update_schedule_sheet(
        self,
        start: date,
        end: date,
        daily_bookings: Dict[date, List[Booking]],
        items: List[Item],
    ) -> None:
        def rewrite(wb: Workbook) -> None:
            ws = self._fresh_sheet(wb, SCHEDULE_SHEET)
            render_schedule(ws, start, end, daily_bookings, items)

        await self._apply(rewrite)

    async def _apply(self, mutation: Callable[[Workbook], None]) -> None:
        async with self._lock:
            try:
                await asyncio.to_thread(self._mutate_and_save, mutation)
            except RemoteSinkError:
                raise
            except (OSError, ValueError, KeyError) as exc:
                # Cached rows may no longer match the file
                self._workbook = None
                self._row_cache.clear()
                raise RemoteSinkError(f"Mirror write failed: {exc}") from exc

    def _mutate_and_save(self, mutation: Callable[[Workbook], None]) -> None:
        wb = self._load()
        mutation(wb)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        wb.save(self.path)

    def _load(self) -> Workbook:
        if self._workbook is None:
            if self.path.exists():
                self._workbook = load_workbook(self.path)
            else:
                self._workbook = Workbook()
                self._workbook.active.title = BOOKINGS_SHEET
                write_header(self._workbook.active, BOOKING_HEADERS)
            self._rebuild_row_cache(self._bookings_sheet(self._workbook))
        return self._workbook

    def _bookings_sheet(self, wb: Workbook) -> Worksheet:
        if BOOKINGS_SHEET not in wb.sheetnames:
            ws = wb.create_sheet(BOOKINGS_SHEET, 0)
            write_header(ws, BOOKING_HEADERS)
            return ws
        return wb[BOOKINGS_SHEET]

    @staticmethod
    def _fresh_sheet(wb: Workbook, title: str) -> Worksheet:
        if title in wb.sheetnames:
            del wb[title]
        return wb.create_sheet(title)

    def _rebuild_row_cache(self, ws: Worksheet) -> None:
        self._row_cache.clear()
        for row_index in range(2, ws.max_row + 1):
            value = ws.cell(row=row_index, column=1).value
            if value is not None:
                self._row_cache[int(value)] = row_index

    def _append(self, wb: Workbook, booking: Booking) -> None:
        ws = self._bookings_sheet(wb)
        ws.append(booking_row(booking))
        self._row_cache[booking.id] = ws.max_row

    def _upsert(self, wb: Workbook, booking: Booking) -> None:
        ws = self._bookings_sheet(wb)
        row_index = self._row_cache.get(booking.id)
        if row_index is None:
            self._append(wb, booking)
            return
        for column, value in enumerate(booking_row(booking), start=1):
            ws.cell(row=row_index, column=column, value=value)

    def _set_status(self, wb: Workbook, booking_id: int, status: str) -> None:
        ws = self._bookings_sheet(wb)
        row_index = self._row_cache.get(booking_id)
        if row_index is None:
            raise RemoteSinkError(f"Booking {booking_id} is not in the mirror", booking_id=booking_id)
        ws.cell(row=row_index, column=_STATUS_COLUMN, value=status)

    def _replace_bookings(self, wb: Workbook, bookings: List[Booking]) -> None:
        ws = self._fresh_sheet(wb, BOOKINGS_SHEET)
        wb.move_sheet(ws, offset=-wb.index(ws))
        write_header(ws, BOOKING_HEADERS)
        self._row_cache.clear()
        for booking in bookings:
            ws.append(booking_row(booking))
            self._row_cache[booking.id] = ws.max_row

    def _replace_users(self, wb: Workbook, users: List[User]) -> None:
        ws = self._fresh_sheet(wb, USERS_SHEET)
        write_header(ws, USER_HEADERS)
        for user in users:
            ws.append(user_row(user))
