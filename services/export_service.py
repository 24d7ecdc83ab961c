"""Excel exports of users and the booking schedule."""

from __future__ import annotations

import asyncio
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Dict, List, Sequence

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from core import get_logger
from core.constants import ACTIVE_STATUSES, BookingStatus
from database.models import Booking, Item, User
from database.store import Store

logger = get_logger(__name__)

HEADER_FILL = PatternFill(start_color="366092", end_color="366092", fill_type="solid")
HEADER_FONT = Font(bold=True, color="FFFFFF")
FREE_FILL = PatternFill(start_color="FFFFFF", end_color="FFFFFF", fill_type="solid")
CONFIRMED_FILL = PatternFill(start_color="C6EFCE", end_color="C6EFCE", fill_type="solid")
UNCONFIRMED_FILL = PatternFill(start_color="FFEB9C", end_color="FFEB9C", fill_type="solid")
FULL_FILL = PatternFill(start_color="FFC7CE", end_color="FFC7CE", fill_type="solid")
CELL_ALIGNMENT = Alignment(horizontal="left", vertical="top", wrap_text=True)

USER_HEADERS = (
    "ID", "Telegram ID", "Username", "Имя", "Фамилия", "Телефон",
    "Менеджер", "Черный список", "Язык", "Последняя активность", "Дата регистрации",
)

_UNCONFIRMED = {BookingStatus.PENDING.value, BookingStatus.CHANGED.value}
_STATUS_ICONS = {
    BookingStatus.CONFIRMED.value: "✅",
    BookingStatus.COMPLETED.value: "✅",
    BookingStatus.PENDING.value: "⏳",
    BookingStatus.CHANGED.value: "⏳",
    BookingStatus.RESCHEDULED.value: "📅",
    BookingStatus.CANCELED.value: "❌",
}


def _fmt_dt(value) -> str:
    return value.strftime("%d.%m.%Y %H:%M") if value else ""


def write_header(ws: Worksheet, headers: Sequence[str]) -> None:
    ws.append(list(headers))
    for cell in ws[1]:
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT


def user_row(user: User) -> list:
    return [
        user.id,
        user.telegram_id,
        user.username or "",
        user.first_name,
        user.last_name,
        user.phone or "",
        "Да" if user.is_manager else "Нет",
        "Да" if user.is_blacklisted else "Нет",
        user.language_code or "",
        _fmt_dt(user.last_activity),
        _fmt_dt(user.created_at),
    ]


def schedule_cell(item: Item, bookings: List[Booking]) -> tuple[str, PatternFill]:
    """Text and fill for one item/day cell.

    White when free, green when every active booking is confirmed, yellow
    while something awaits confirmation, red when confirmed and full.
    """
    active = [booking for booking in bookings if booking.status in ACTIVE_STATUSES]
    if not active:
        return f"Свободно\n\nДоступно: {item.total_quantity}/{item.total_quantity}", FREE_FILL

    lines = []
    for booking in active:
        icon = _STATUS_ICONS.get(booking.status, "❓")
        lines.append(f"[№{booking.id}] {icon} {booking.user_name} ({booking.phone})")
        if booking.comment:
            lines.append(f"   💬 {booking.comment}")
    lines.append("")
    lines.append(f"Занято: {len(active)}/{item.total_quantity}")

    if any(booking.status in _UNCONFIRMED for booking in active):
        fill = UNCONFIRMED_FILL
    elif len(active) >= item.total_quantity:
        fill = FULL_FILL
    else:
        fill = CONFIRMED_FILL
    return "\n".join(lines), fill


def render_schedule(
    ws: Worksheet,
    start: date,
    end: date,
    daily: Dict[date, List[Booking]],
    items: List[Item],
) -> None:
    """Fill ``ws`` with an item x day grid for start..end."""
    days = (end - start).days + 1
    ws.append(["Аппарат"] + [(start + timedelta(days=offset)).strftime("%d.%m") for offset in range(days)])
    for cell in ws[1]:
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT

    if not items:
        ws.append(["Нет доступных аппаратов"])
        return

    for row_index, item in enumerate(items, start=2):
        ws.cell(row=row_index, column=1, value=f"{item.name} ({item.total_quantity})").font = Font(bold=True)
        for offset in range(days):
            day = start + timedelta(days=offset)
            item_bookings = [b for b in daily.get(day, []) if b.item_id == item.id]
            text, fill = schedule_cell(item, item_bookings)
            cell = ws.cell(row=row_index, column=offset + 2, value=text)
            cell.fill = fill
            cell.alignment = CELL_ALIGNMENT

    ws.column_dimensions["A"].width = 25
    for offset in range(days):
        ws.column_dimensions[get_column_letter(offset + 2)].width = 30
    ws.freeze_panes = "B2"


class ExportService:
    """Builds .xlsx files in the exports directory."""

    def __init__(self, store: Store, exports_path: str) -> None:
        self.store = store
        self.exports_path = Path(exports_path)

    def _target(self, prefix: str) -> Path:
        self.exports_path.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        return self.exports_path / f"{prefix}_{timestamp}.xlsx"

    async def export_users(self) -> Path:
        users = await self.store.list_all_users()
        path = self._target("users")
        await asyncio.to_thread(self._write_users, users, path)
        logger.info(f"Exported {len(users)} users to {path}")
        return path

    async def export_schedule(self, start: date, end: date) -> Path:
        daily = await self.store.daily_bookings_in_range(start, end)
        items = await self.store.list_active_items_sorted()
        path = self._target("schedule")
        await asyncio.to_thread(self._write_schedule, start, end, daily, items, path)
        logger.info(f"Exported schedule {start}..{end} to {path}")
        return path

    @staticmethod
    def _write_users(users: List[User], path: Path) -> None:
        wb = Workbook()
        ws = wb.active
        ws.title = "Пользователи"
        write_header(ws, USER_HEADERS)
        for user in users:
            ws.append(user_row(user))
        for index in range(1, len(USER_HEADERS) + 1):
            ws.column_dimensions[get_column_letter(index)].width = 18
        wb.save(path)

    @staticmethod
    def _write_schedule(start: date, end: date, daily, items: List[Item], path: Path) -> None:
        wb = Workbook()
        ws = wb.active
        ws.title = "Расписание"
        render_schedule(ws, start, end, daily, items)
        wb.save(path)
