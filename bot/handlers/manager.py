"""Manager surface: booking lists, booking card actions, stats and exports."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from aiogram import F, Router, types
from aiogram.filters import Command
from aiogram.types import FSInputFile

from bot.callbacks import CallbackDispatcher, CallbackEvent, Tags
from bot.error_handler import STALE_BOOKING, handle_bot_errors
from bot.filters import ManagerFilter
from bot.keyboards import (
    get_booking_detail_keyboard,
    get_call_keyboard,
    get_change_item_keyboard,
    render_bookings_page,
)
from bot.keyboards.main_menu import (
    BTN_ALL_BOOKINGS,
    BTN_EXPORT_SCHEDULE,
    BTN_SYNC_BOOKINGS,
    BTN_SYNC_SCHEDULE,
)
from core import get_logger
from core.constants import STATUS_LABELS, BookingStatus, PaginationDefaults
from core.exceptions import (
    BookingError,
    ConcurrentModificationError,
    InvalidTransitionError,
    NotFoundError,
)
from database.models import Booking
from services.booking_service import BookingService, schedule_window
from services.export_service import ExportService
from services.item_service import ItemService
from services.notification_service import NotificationService
from services.user_service import UserService, UserStats
from utils.validators import format_date, format_phone, normalize_phone

logger = get_logger(__name__)

BOOKINGS_TITLE = "📊 *Все заявки на квартал вперед:*"
NO_BOOKINGS_TEXT = "Заявок не найдено"
BOOKING_NOT_FOUND_TEXT = "Заявка не найдена"

ACTION_REPLIES = {
    "confirm": "✅ Бронирование подтверждено",
    "reject": "❌ Бронирование отменено",
    "complete": "✅ Заявка завершена",
    "reopen": "✅ Заявка возвращена в работу",
    "reschedule": "🔄 Пользователю предложено выбрать другую дату",
}

STATUS_ORDER = (
    BookingStatus.PENDING.value,
    BookingStatus.CONFIRMED.value,
    BookingStatus.CHANGED.value,
    BookingStatus.RESCHEDULED.value,
    BookingStatus.COMPLETED.value,
    BookingStatus.CANCELED.value,
)


def _fmt_dt(value: Optional[datetime]) -> str:
    return value.strftime("%d.%m.%Y %H:%M") if value else "-"


def booking_detail_text(booking: Booking) -> str:
    """Plain-text booking card shown to managers."""
    return (
        f"📋 Заявка #{booking.id}\n\n"
        f"👤 Клиент: {booking.user_name}\n"
        f"📱 Телефон: {format_phone(booking.phone) or '-'}\n"
        f"🏢 Позиция: {booking.item_name}\n"
        f"📅 Дата: {format_date(booking.date)}\n"
        f"📊 Статус: {STATUS_LABELS.get(booking.status, booking.status)}\n"
        f"💬 Комментарий: {booking.comment or '-'}\n"
        f"🕐 Создана: {_fmt_dt(booking.created_at)}\n"
        f"✏️ Обновлена: {_fmt_dt(booking.updated_at)}"
    )


def call_text(booking: Booking) -> str:
    text = (
        "📞 *Информация для связи*\n\n"
        f"👤 *Клиент:* {booking.user_name}\n"
        f"📱 *Телефон:* `{format_phone(booking.phone)}`\n"
        f"🏢 *Аппарат:* {booking.item_name}\n"
        f"📅 *Дата:* {format_date(booking.date)}\n"
    )
    if booking.comment:
        text += f"💬 *Комментарий:* {booking.comment}\n"
    return text


def summary_line(counts: Dict[str, int]) -> str:
    """Compact ``всего N | статусы [...]`` block for one period."""
    total = sum(counts.values())
    if not total:
        return "нет данных"
    parts = [f"{status}:{counts[status]}" for status in STATUS_ORDER if counts.get(status)]
    return f"всего {total} | статусы [{', '.join(parts)}]"


def stats_text(stats: UserStats) -> str:
    lines: List[str] = [
        "📊 *Статистика*",
        "",
        "👥 *Пользователи*",
        f"Всего: *{stats.total_users}*",
        f"Активных (30д): *{stats.active_users}*",
        f"Менеджеров: *{stats.managers}*",
        f"В черном списке: *{stats.blacklisted}*",
        "",
        "Последние пользователи:",
    ]
    for user in stats.recent_users:
        emoji = "👤"
        if user.is_manager:
            emoji = "👨‍💼"
        elif user.is_blacklisted:
            emoji = "🚫"
        seen = user.last_activity.strftime("%d.%m.%Y") if user.last_activity else "-"
        lines.append(f"{emoji} {user.first_name} {user.last_name} - {seen}")
    lines.extend([
        "",
        "📅 *Бронирования*",
        f"Сегодня: {summary_line(stats.bookings_today)}",
        f"7 дней: {summary_line(stats.bookings_week)}",
        f"30 дней: {summary_line(stats.bookings_month)}",
    ])
    return "\n".join(lines)


def stats_keyboard() -> types.InlineKeyboardMarkup:
    return types.InlineKeyboardMarkup(inline_keyboard=[[
        types.InlineKeyboardButton(text="📤 Экспорт пользователей", callback_data=Tags.EXPORT_USERS),
    ]])


class ManagerHandlers:
    """Booking review for managers.

    Action callbacks carry the booking version they were rendered with;
    a stale version is rejected by the booking service.
    """

    def __init__(
        self,
        booking_service: BookingService,
        item_service: ItemService,
        user_service: UserService,
        export_service: ExportService,
        notification_service: NotificationService,
        page_size: int = PaginationDefaults.BOOKINGS_PAGE_SIZE,
    ) -> None:
        self.router = Router(name="manager")
        self.router.message.filter(ManagerFilter())
        self.booking_service = booking_service
        self.item_service = item_service
        self.user_service = user_service
        self.export_service = export_service
        self.notification_service = notification_service
        self.page_size = page_size
        self._register()

    def setup(self, dispatcher) -> None:
        dispatcher.include_router(self.router)

    def register_callbacks(self, callbacks: CallbackDispatcher) -> None:
        callbacks.register(Tags.MANAGER_BOOKINGS_PAGE, self.on_bookings_page, managers_only=True)
        callbacks.register(Tags.SHOW_BOOKING, self.on_show_booking, managers_only=True)
        callbacks.register(Tags.BOOKING_ACTION, self.on_booking_action, managers_only=True)
        callbacks.register(Tags.CHANGE_TO, self.on_change_to, managers_only=True)
        callbacks.register(Tags.CALL_BOOKING, self.on_call_booking, managers_only=True)
        callbacks.register(Tags.EXPORT_USERS, self.on_export_users, managers_only=True)

    def _register(self) -> None:
        self.router.message.register(self.all_bookings, Command("get_all"))
        self.router.message.register(self.all_bookings, F.text == BTN_ALL_BOOKINGS)
        self.router.message.register(self.stats, Command("stats"))
        self.router.message.register(self.booking_detail, F.text.regexp(r"^/manager_booking_(\d+)$").as_("match"))
        self.router.message.register(self.sync_bookings, F.text == BTN_SYNC_BOOKINGS)
        self.router.message.register(self.sync_schedule, F.text == BTN_SYNC_SCHEDULE)
        self.router.message.register(self.export_schedule, F.text == BTN_EXPORT_SCHEDULE)

    async def send_bookings_page(self, message: types.Message, page: int = 0, edit: bool = False) -> None:
        bookings = await self.booking_service.manager_bookings()
        if not bookings:
            await message.answer(NO_BOOKINGS_TEXT)
            return
        text, markup = render_bookings_page(
            bookings,
            page,
            title=BOOKINGS_TITLE,
            page_tag=Tags.MANAGER_BOOKINGS_PAGE,
            back_callback=Tags.BACK_TO_MAIN,
            page_size=self.page_size,
        )
        if edit:
            await message.edit_text(text, reply_markup=markup, parse_mode="Markdown")
        else:
            await message.answer(text, reply_markup=markup, parse_mode="Markdown")

    async def send_booking_detail(self, message: types.Message, booking_id: int) -> None:
        try:
            booking = await self.booking_service.get_booking(booking_id)
        except NotFoundError:
            await message.answer(BOOKING_NOT_FOUND_TEXT)
            return
        await message.answer(booking_detail_text(booking), reply_markup=get_booking_detail_keyboard(booking))

    # Messages

    @handle_bot_errors("Ошибка при получении заявок")
    async def all_bookings(self, message: types.Message) -> None:
        await self.send_bookings_page(message)

    @handle_bot_errors("Ошибка при получении данных")
    async def stats(self, message: types.Message) -> None:
        stats = await self.user_service.collect_stats(self.booking_service.today())
        await message.answer(stats_text(stats), reply_markup=stats_keyboard(), parse_mode="Markdown")

    @handle_bot_errors()
    async def booking_detail(self, message: types.Message, match) -> None:
        await self.send_booking_detail(message, int(match.group(1)))

    @handle_bot_errors()
    async def sync_bookings(self, message: types.Message) -> None:
        await self.booking_service.request_full_resync()
        await message.answer("✅ Синхронизация бронирований поставлена в очередь")

    @handle_bot_errors()
    async def sync_schedule(self, message: types.Message) -> None:
        await self.booking_service.request_schedule_resync()
        await message.answer("✅ Синхронизация расписания поставлена в очередь")

    @handle_bot_errors("Ошибка при формировании расписания")
    async def export_schedule(self, message: types.Message) -> None:
        start, end = schedule_window(self.booking_service.today())
        path = await self.export_service.export_schedule(start, end)
        await message.answer_document(
            FSInputFile(path),
            caption=f"📅 Расписание {format_date(start)} - {format_date(end)}",
        )

    # Callbacks

    @handle_bot_errors()
    async def on_bookings_page(self, event: CallbackEvent, callback: types.CallbackQuery, is_manager: bool = False) -> None:
        await self.send_bookings_page(callback.message, page=event.arg(), edit=True)

    @handle_bot_errors()
    async def on_show_booking(self, event: CallbackEvent, callback: types.CallbackQuery, is_manager: bool = False) -> None:
        await self.send_booking_detail(callback.message, event.arg())

    @handle_bot_errors()
    async def on_booking_action(self, event: CallbackEvent, callback: types.CallbackQuery, is_manager: bool = False) -> None:
        action, booking_id, version = event.args
        message = callback.message
        try:
            booking = await self.booking_service.get_booking(booking_id)
        except NotFoundError:
            await message.answer(BOOKING_NOT_FOUND_TEXT)
            return

        if action == "change_item":
            items = await self.item_service.list_active()
            await message.answer(
                f"Выберите новый аппарат для заявки #{booking.id}:",
                reply_markup=get_change_item_keyboard(booking, items),
            )
            return

        # Cards rendered before versions were attached act on the current one
        if version is None:
            version = booking.version
        mutate = getattr(self.booking_service, action)
        try:
            updated = await mutate(booking_id, version, callback.from_user.id)
        except ConcurrentModificationError:
            await message.answer(STALE_BOOKING)
            return
        except InvalidTransitionError as e:
            await message.answer(
                f"Действие недоступно: заявка в статусе «{STATUS_LABELS.get(e.current, e.current)}»"
            )
            return

        if action == "reopen":
            await self.notification_service.notify_reopened(updated)
        elif action == "reschedule":
            await self.notification_service.notify_rescheduled(updated)

        await message.answer(ACTION_REPLIES[action])
        await message.answer(booking_detail_text(updated), reply_markup=get_booking_detail_keyboard(updated))

    @handle_bot_errors()
    async def on_change_to(self, event: CallbackEvent, callback: types.CallbackQuery, is_manager: bool = False) -> None:
        booking_id, item_id = event.args
        message = callback.message
        try:
            booking = await self.booking_service.get_booking(booking_id)
            updated = await self.booking_service.change_item(
                booking_id, booking.version, item_id, callback.from_user.id
            )
        except ConcurrentModificationError:
            await message.answer(STALE_BOOKING)
            return
        except BookingError as e:
            logger.info(f"Item change for booking #{booking_id} failed: {e}", extra={"booking_id": booking_id})
            await message.answer(f"Ошибка при изменении аппарата: {e}")
            return

        await message.answer("✅ Аппарат успешно изменен")
        await message.answer(booking_detail_text(updated), reply_markup=get_booking_detail_keyboard(updated))

    @handle_bot_errors()
    async def on_call_booking(self, event: CallbackEvent, callback: types.CallbackQuery, is_manager: bool = False) -> None:
        message = callback.message
        try:
            booking = await self.booking_service.get_booking(event.arg())
        except NotFoundError:
            await message.answer("❌ Заявка не найдена")
            return
        digits = normalize_phone(booking.phone)
        if not digits:
            await message.answer("❌ Номер телефона не указан в заявке")
            return
        await message.answer(
            call_text(booking),
            reply_markup=get_call_keyboard(booking, digits),
            parse_mode="Markdown",
        )

    @handle_bot_errors("Ошибка при получении данных пользователей")
    async def on_export_users(self, event: CallbackEvent, callback: types.CallbackQuery, is_manager: bool = False) -> None:
        path = await self.export_service.export_users()
        await callback.message.answer_document(FSInputFile(path), caption="📊 Экспорт данных пользователей")


def setup_manager_handlers(dispatcher, *args, **kwargs) -> ManagerHandlers:
    handler = ManagerHandlers(*args, **kwargs)
    handler.setup(dispatcher)
    return handler
