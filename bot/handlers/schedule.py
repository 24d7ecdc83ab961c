"""Read-only availability views for a chosen item."""

from __future__ import annotations

from typing import List, Optional, Sequence

from aiogram import F, Router, types

from bot.callbacks import CallbackDispatcher, CallbackEvent, Tags
from bot.error_handler import handle_bot_errors
from bot.handlers.booking import BookingHandlers
from bot.handlers.common import CommonHandlers
from bot.keyboards import get_create_order_keyboard, get_schedule_keyboard, get_step_keyboard, render_items_page
from bot.keyboards.main_menu import (
    BTN_BACK_TO_ITEMS,
    BTN_BOOK_THIS_ITEM,
    BTN_SCHEDULE,
    BTN_SCHEDULE_30_DAYS,
    BTN_SPECIFIC_DATE,
)
from bot.states import ScheduleStates
from core import get_logger
from core.constants import BookingDefaults, PaginationDefaults
from core.exceptions import NotFoundError, ValidationError
from database.models import Availability, Item, UserState
from database.store import Store
from services.booking_service import BookingService
from services.item_service import ItemService
from services.state_manager import ConversationStateManager, Steps
from utils.validators import format_date, parse_date

logger = get_logger(__name__)

SCHEDULE_ITEMS_TITLE = "🏢 *Выберите аппарат для просмотра расписания:*"
CHOOSE_ITEM_FIRST_TEXT = "Сначала выберите аппарат для просмотра расписания"
SPECIFIC_DATE_PROMPT = "Введите дату в формате ДД.ММ.ГГГГ (например, 25.12.2025):"
BAD_DATE_TEXT = "Неверный формат даты. Используйте ДД.ММ.ГГГГ (например, 25.12.2025)"


def schedule_table(item_name: str, days: Sequence[Availability]) -> str:
    """Markdown block with one line per day."""
    lines: List[str] = [
        f"📅 *Расписание {item_name}*",
        f"На ближайшие {len(days)} дней:",
        "",
        "```",
        "Дата     Статус",
        "───────  ──────────",
    ]
    for day in days:
        status = "✅ Свободно" if day.is_available else "❌ Занято"
        lines.append(f"{day.date.strftime('%d.%m')}   {status}  ")
    lines.append("```")
    return "\n".join(lines)


def day_availability_text(item_name: str, day: Availability) -> str:
    status = "✅ Доступно" if day.is_available else "❌ Недоступно"
    return (
        f"📅 Доступность *{item_name}* на {format_date(day.date)}:\n\n"
        f"{status}\n\n"
        f"Забронировано: {day.booked}/{day.total}"
    )


class ScheduleHandlers:
    def __init__(
        self,
        store: Store,
        booking_service: BookingService,
        item_service: ItemService,
        state_manager: ConversationStateManager,
        booking: BookingHandlers,
        common: CommonHandlers,
        page_size: int = PaginationDefaults.ITEMS_PAGE_SIZE,
    ) -> None:
        self.router = Router(name="schedule")
        self.store = store
        self.booking_service = booking_service
        self.item_service = item_service
        self.state_manager = state_manager
        self.booking = booking
        self.page_size = page_size
        self._register()

        common.register_prompt(Steps.SCHEDULE_SELECT_ITEM, self.prompt_select_item)
        common.register_prompt(Steps.VIEW_SCHEDULE, self.prompt_view_schedule)

    def setup(self, dispatcher) -> None:
        dispatcher.include_router(self.router)

    def register_callbacks(self, callbacks: CallbackDispatcher) -> None:
        callbacks.register(Tags.SCHEDULE_ITEMS_PAGE, self.on_items_page)
        callbacks.register(Tags.SCHEDULE_SELECT_ITEM, self.on_select_item)
        callbacks.register(Tags.START_THE_ORDER_ITEM, self.on_book_this_item)

    def _register(self) -> None:
        self.router.message.register(self.start_schedule, F.text == BTN_SCHEDULE)
        self.router.message.register(self.back_to_items, F.text == BTN_BACK_TO_ITEMS)
        self.router.message.register(self.show_month, F.text == BTN_SCHEDULE_30_DAYS)
        self.router.message.register(self.ask_specific_date, F.text == BTN_SPECIFIC_DATE)
        self.router.message.register(self.book_this_item, F.text == BTN_BOOK_THIS_ITEM)
        self.router.message.register(self.enter_specific_date, ScheduleStates.waiting_specific_date, F.text)

    async def show_items(self, message: types.Message, page: int = 0, edit: bool = False) -> None:
        items = await self.item_service.list_active()
        text, markup = render_items_page(
            items,
            page,
            title=SCHEDULE_ITEMS_TITLE,
            item_tag=Tags.SCHEDULE_SELECT_ITEM,
            page_tag=Tags.SCHEDULE_ITEMS_PAGE,
            back_callback=Tags.BACK_TO_MAIN_FROM_SCHEDULE,
            page_size=self.page_size,
        )
        if edit:
            await message.edit_text(text, reply_markup=markup, parse_mode="Markdown")
        else:
            await message.answer(text, reply_markup=markup, parse_mode="Markdown")

    async def prompt_select_item(self, message: types.Message, state: UserState) -> None:
        await self.show_items(message)

    async def prompt_view_schedule(self, message: types.Message, state: UserState) -> None:
        item = await self._selected_item(message, state)
        if item is not None:
            await message.answer(
                f"Выбран аппарат: {item.name}\n\nВыберите период или введите дату:",
                reply_markup=get_schedule_keyboard(),
            )

    async def _selected_item(self, message: types.Message, state: UserState) -> Optional[Item]:
        """Item remembered in the scratch data, or None after re-offering the list."""
        item_id = state.get_int("item_id")
        if item_id is not None:
            try:
                return await self.item_service.get_item(item_id)
            except NotFoundError:
                logger.info(f"Selected item {item_id} no longer exists", extra={"user_id": state.user_id})
        await self.state_manager.set(state.user_id, Steps.SCHEDULE_SELECT_ITEM)
        await message.answer(CHOOSE_ITEM_FIRST_TEXT)
        await self.show_items(message)
        return None

    @handle_bot_errors()
    async def start_schedule(self, message: types.Message) -> None:
        await self.state_manager.set(message.from_user.id, Steps.SCHEDULE_SELECT_ITEM)
        await self.show_items(message)

    @handle_bot_errors()
    async def back_to_items(self, message: types.Message) -> None:
        await self.start_schedule(message)

    @handle_bot_errors()
    async def show_month(self, message: types.Message) -> None:
        state = await self.state_manager.get(message.from_user.id)
        item = await self._selected_item(message, state)
        if item is None:
            return
        days = await self.store.availability_for_period(
            item.id, self.booking_service.today(), BookingDefaults.SCHEDULE_VIEW_DAYS
        )
        await message.answer(
            schedule_table(item.name, days),
            reply_markup=get_create_order_keyboard(Tags.START_THE_ORDER_ITEM, "📋 СОЗДАТЬ ЗАЯВКУ НА ЭТОТ АППАРАТ"),
            parse_mode="Markdown",
        )

    @handle_bot_errors()
    async def ask_specific_date(self, message: types.Message) -> None:
        state = await self.state_manager.get(message.from_user.id)
        item = await self._selected_item(message, state)
        if item is None:
            return
        await self.state_manager.set(message.from_user.id, Steps.WAITING_SPECIFIC_DATE, {"item_id": item.id})
        await message.answer(SPECIFIC_DATE_PROMPT, reply_markup=get_step_keyboard())

    @handle_bot_errors()
    async def enter_specific_date(self, message: types.Message) -> None:
        state = await self.state_manager.get(message.from_user.id)
        item = await self._selected_item(message, state)
        if item is None:
            return
        try:
            day = parse_date(message.text)
        except ValidationError:
            await message.answer(BAD_DATE_TEXT)
            return

        availability = (await self.store.availability_for_period(item.id, day, 1))[0]
        await self.state_manager.set(message.from_user.id, Steps.VIEW_SCHEDULE, {"item_id": item.id})
        await message.answer(
            day_availability_text(item.name, availability),
            reply_markup=get_schedule_keyboard(),
            parse_mode="Markdown",
        )

    @handle_bot_errors()
    async def book_this_item(self, message: types.Message) -> None:
        state = await self.state_manager.get(message.from_user.id)
        item = await self._selected_item(message, state)
        if item is not None:
            await self.booking.start_date_step(message, message.from_user.id, item)

    @handle_bot_errors()
    async def on_items_page(self, event: CallbackEvent, callback: types.CallbackQuery, is_manager: bool = False) -> None:
        await self.show_items(callback.message, page=event.arg(), edit=True)

    @handle_bot_errors()
    async def on_select_item(self, event: CallbackEvent, callback: types.CallbackQuery, is_manager: bool = False) -> None:
        state = await self.state_manager.set(
            callback.from_user.id, Steps.VIEW_SCHEDULE, {"item_id": event.arg()}
        )
        await self.prompt_view_schedule(callback.message, state)

    @handle_bot_errors()
    async def on_book_this_item(self, event: CallbackEvent, callback: types.CallbackQuery, is_manager: bool = False) -> None:
        state = await self.state_manager.get(callback.from_user.id)
        item = await self._selected_item(callback.message, state)
        if item is not None:
            await self.booking.start_date_step(callback.message, callback.from_user.id, item)


def setup_schedule_handlers(dispatcher, *args, **kwargs) -> ScheduleHandlers:
    handler = ScheduleHandlers(*args, **kwargs)
    handler.setup(dispatcher)
    return handler
