"""Paginated inline lists of items and bookings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup

from bot import callbacks
from core.constants import BookingStatus, PaginationDefaults
from database.models import Booking, Item

BTN_PREV = "⬅️ Назад"
BTN_NEXT = "Вперед ➡️"
BTN_BACK_TO_MENU = "⬅️ Назад в меню"

STATUS_EMOJI = {
    BookingStatus.CONFIRMED.value: "✅",
    BookingStatus.CANCELED.value: "❌",
    BookingStatus.CHANGED.value: "🔄",
    BookingStatus.COMPLETED.value: "🏁",
    BookingStatus.RESCHEDULED.value: "📅",
}

Rows = List[List[InlineKeyboardButton]]


def status_emoji(status: str) -> str:
    return STATUS_EMOJI.get(status, "⏳")


@dataclass(frozen=True)
class Page:
    """Slice bounds of one page; ``number`` is 0-indexed."""

    number: int
    start: int
    end: int
    total_pages: int
    total_count: int

    @property
    def has_prev(self) -> bool:
        return self.number > 0

    @property
    def has_next(self) -> bool:
        return self.end < self.total_count


def paginate(total_count: int, page: int, page_size: int) -> Page:
    """Compute page bounds, clamping ``page`` into the valid range."""
    if page_size <= 0:
        page_size = PaginationDefaults.ITEMS_PAGE_SIZE
    total_pages = (total_count + page_size - 1) // page_size
    page = max(page, 0)
    if total_pages and page >= total_pages:
        page = total_pages - 1
    start = page * page_size
    end = min(start + page_size, total_count)
    return Page(number=page, start=start, end=end, total_pages=total_pages, total_count=total_count)


def render_page(
    title: str,
    page: Page,
    content: str,
    rows: Rows,
    page_tag: str,
    back_callback: Optional[str] = None,
) -> Tuple[str, InlineKeyboardMarkup]:
    """Assemble the text and keyboard of one page.

    Args:
        title: Heading shown above the list
        page: Bounds returned by :func:`paginate`
        content: Rendered list entries
        rows: One button row per entry
        page_tag: Callback tag used for prev/next
        back_callback: Callback of the back-to-menu button, if any

    Returns:
        Message text and inline keyboard
    """
    text = f"{title}\n\n"
    if page.total_pages > 1:
        text += f"Страница {page.number + 1} из {page.total_pages}\n\n"
    text += content

    keyboard = list(rows)
    nav = []
    if page.has_prev:
        nav.append(InlineKeyboardButton(text=BTN_PREV, callback_data=callbacks.with_int(page_tag, page.number - 1)))
    if page.has_next:
        nav.append(InlineKeyboardButton(text=BTN_NEXT, callback_data=callbacks.with_int(page_tag, page.number + 1)))
    if nav:
        keyboard.append(nav)
    if back_callback:
        keyboard.append([InlineKeyboardButton(text=BTN_BACK_TO_MENU, callback_data=back_callback)])
    return text, InlineKeyboardMarkup(inline_keyboard=keyboard)


def render_items_page(
    items: Sequence[Item],
    page: int,
    title: str,
    item_tag: str,
    page_tag: str,
    back_callback: Optional[str] = None,
    page_size: int = PaginationDefaults.ITEMS_PAGE_SIZE,
    show_capacity: bool = False,
) -> Tuple[str, InlineKeyboardMarkup]:
    bounds = paginate(len(items), page, page_size)
    lines: List[str] = []
    rows: Rows = []
    for number, item in enumerate(items[bounds.start:bounds.end], start=bounds.start + 1):
        lines.append(f"{number}. *{item.name}*")
        if item.description:
            lines.append(f"   📝 {item.description}")
        if show_capacity:
            lines.append(f"   👥 Всего: {item.total_quantity}")
        lines.append("")
        rows.append([
            InlineKeyboardButton(
                text=f"{number}. {item.name}",
                callback_data=callbacks.with_int(item_tag, item.id),
            )
        ])
    return render_page(title, bounds, "\n".join(lines), rows, page_tag, back_callback)


def render_bookings_page(
    bookings: Sequence[Booking],
    page: int,
    title: str,
    page_tag: str,
    back_callback: Optional[str] = None,
    page_size: int = PaginationDefaults.BOOKINGS_PAGE_SIZE,
    item_tag: str = callbacks.Tags.SHOW_BOOKING,
    describe: Optional[Callable[[Booking], str]] = None,
) -> Tuple[str, InlineKeyboardMarkup]:
    """Bookings list; page size never exceeds the bookings default."""
    page_size = min(page_size, PaginationDefaults.BOOKINGS_PAGE_SIZE)
    bounds = paginate(len(bookings), page, page_size)
    describe = describe or manager_booking_entry
    entries: List[str] = []
    rows: Rows = []
    for booking in bookings[bounds.start:bounds.end]:
        entries.append(describe(booking))
        rows.append([
            InlineKeyboardButton(
                text=f"#{booking.id}: {booking.user_name} ({booking.date.strftime('%d.%m')})",
                callback_data=callbacks.with_int(item_tag, booking.id),
            )
        ])
    return render_page(title, bounds, "".join(entries), rows, page_tag, back_callback)


def manager_booking_entry(booking: Booking) -> str:
    return (
        f"{status_emoji(booking.status)} *Заявка #{booking.id}*\n"
        f"   👤 {booking.user_name}\n"
        f"   🏢 {booking.item_name}\n"
        f"   📅 {booking.date.strftime('%d.%m.%Y')}\n"
        f"   🔗 /manager_booking_{booking.id}\n\n"
    )
