"""Manager-created bookings on behalf of a client, for one date or a range."""

from __future__ import annotations

from datetime import date
from typing import List, Optional

from aiogram import F, Router, types
from aiogram.filters import Command

from bot.callbacks import CallbackDispatcher, CallbackEvent, Tags
from bot.error_handler import error_reply, handle_bot_errors
from bot.filters import ManagerFilter
from bot.handlers.common import STALE_SESSION_TEXT, CommonHandlers, send_main_menu
from bot.keyboards import (
    get_date_type_keyboard,
    get_manager_confirm_keyboard,
    get_step_keyboard,
    render_items_page,
)
from bot.keyboards.main_menu import BTN_CONFIRM_CREATE, BTN_MANAGER_CREATE
from bot.states import ManagerBookingStates
from core import get_logger
from core.constants import PaginationDefaults
from core.exceptions import (
    BookingError,
    DateTooFarError,
    NotAvailableError,
    NotFoundError,
    PastDateError,
    ValidationError,
)
from database.models import Booking, Item, UserState
from services.booking_service import BookingService, FailedDate
from services.item_service import ItemService
from services.state_manager import ConversationStateManager, Steps
from utils.validators import (
    date_range,
    format_date,
    normalize_phone,
    parse_date,
    sanitize_input,
    validate_name,
)

logger = get_logger(__name__)

START_TEXT = "📋 Создание заявки от имени клиента\n\nВведите Имя клиента:"
PHONE_PROMPT = "📱 Введите телефон клиента:"
BAD_PHONE_TEXT = (
    "Неверный формат номера телефона. Пожалуйста, введите номер в формате "
    "+7XXXXXXXXXX или 8XXXXXXXXXX"
)
ITEMS_TITLE = "🏢 *Выберите аппарат:*"
DATE_TYPE_PROMPT = "📅 Выберите тип бронирования:"
SINGLE_DATE_PROMPT = "📅 Введите дату бронирования в формате ДД.ММ.ГГГГ (например, 25.12.2024):"
START_DATE_PROMPT = "📅 Введите начальную дату интервала в формате ДД.ММ.ГГГГ (например, 25.12.2024):"
END_DATE_PROMPT = "📅 Введите конечную дату интервала в формате ДД.ММ.ГГГГ:"
BAD_DATE_TEXT = "Неверный формат даты. Используйте ДД.ММ.ГГГГ (например, 25.12.2024)"
COMMENT_PROMPT = (
    "💬 Введите комментарий к заявке "
    "(например: 'Техническое обслуживание', 'Обучение персонала' или любой другой текст):"
)

FAILURE_REASONS = {
    NotAvailableError: "недоступно",
    PastDateError: "прошедшая дата",
    DateTooFarError: "слишком далеко",
}


def failure_reason(failed: FailedDate) -> str:
    for error_type, reason in FAILURE_REASONS.items():
        if isinstance(failed.error, error_type):
            return reason
    return "ошибка"


def confirmation_text(state: UserState, item: Item) -> str:
    dates = state.get_dates("dates")
    lines = [
        "📋 Подтверждение заявки:",
        "",
        f"👤 Клиент: {state.get_str('client_name')}",
        f"📱 Телефон: {state.get_str('client_phone')}",
        f"🏢 Аппарат: {item.name}",
    ]
    if len(dates) == 1:
        lines.append(f"📅 Дата: {format_date(dates[0])}")
    else:
        lines.append(f"📅 Интервал: {format_date(dates[0])} - {format_date(dates[-1])} ({len(dates)} дней)")
    lines.append(f"💬 Комментарий: {state.get_str('comment') or '-'}")
    return "\n".join(lines)


def result_text(created: List[Booking], failed: List[FailedDate]) -> str:
    lines = ["📊 Результат создания заявок:", ""]
    if created:
        lines.append(f"✅ Успешно создано: {len(created)} заявок")
        lines.extend(f"   • {format_date(b.date)} (№{b.id})" for b in created)
        lines.append("")
    if failed:
        lines.append(f"❌ Не удалось создать: {len(failed)} заявок")
        lines.extend(f"   • {format_date(f.date)} ({failure_reason(f)})" for f in failed)
    return "\n".join(lines)


class ManagerBookingHandlers:
    """Conversation that ends in one confirmed booking per chosen date."""

    def __init__(
        self,
        booking_service: BookingService,
        item_service: ItemService,
        state_manager: ConversationStateManager,
        common: CommonHandlers,
        page_size: int = PaginationDefaults.ITEMS_PAGE_SIZE,
    ) -> None:
        self.router = Router(name="manager_booking")
        self.router.message.filter(ManagerFilter())
        self.booking_service = booking_service
        self.item_service = item_service
        self.state_manager = state_manager
        self.page_size = page_size
        self._register()

        common.register_prompt(Steps.MANAGER_CLIENT_NAME, self.prompt_client_name)
        common.register_prompt(Steps.MANAGER_CLIENT_PHONE, self.prompt_client_phone)
        common.register_prompt(Steps.MANAGER_ITEM_SELECTION, self.prompt_item)
        common.register_prompt(Steps.MANAGER_DATE_TYPE, self.prompt_date_type)
        common.register_prompt(Steps.MANAGER_SINGLE_DATE, self.prompt_single_date)
        common.register_prompt(Steps.MANAGER_START_DATE, self.prompt_start_date)
        common.register_prompt(Steps.MANAGER_END_DATE, self.prompt_end_date)
        common.register_prompt(Steps.MANAGER_COMMENT, self.prompt_comment)

    def setup(self, dispatcher) -> None:
        dispatcher.include_router(self.router)

    def register_callbacks(self, callbacks: CallbackDispatcher) -> None:
        callbacks.register(Tags.MANAGER_ITEMS_PAGE, self.on_items_page, managers_only=True)
        callbacks.register(Tags.MANAGER_SELECT_ITEM, self.on_select_item, managers_only=True)
        callbacks.register(Tags.MANAGER_SINGLE_DATE, self.on_single_date, managers_only=True)
        callbacks.register(Tags.MANAGER_DATE_RANGE, self.on_date_range, managers_only=True)

    def _register(self) -> None:
        self.router.message.register(self.start, Command("start_booking"))
        self.router.message.register(self.start, F.text == BTN_MANAGER_CREATE)
        self.router.message.register(self.client_name, ManagerBookingStates.manager_waiting_client_name, F.text)
        self.router.message.register(self.client_phone, ManagerBookingStates.manager_waiting_client_phone, F.text)
        self.router.message.register(self.single_date, ManagerBookingStates.manager_waiting_single_date, F.text)
        self.router.message.register(self.start_date, ManagerBookingStates.manager_waiting_start_date, F.text)
        self.router.message.register(self.end_date, ManagerBookingStates.manager_waiting_end_date, F.text)
        self.router.message.register(self.comment, ManagerBookingStates.manager_waiting_comment, F.text)
        self.router.message.register(
            self.confirm, ManagerBookingStates.manager_confirm_booking, F.text == BTN_CONFIRM_CREATE
        )

    # Prompts

    async def prompt_client_name(self, message: types.Message, state: UserState) -> None:
        await message.answer(START_TEXT, reply_markup=get_step_keyboard())

    async def prompt_client_phone(self, message: types.Message, state: UserState) -> None:
        await message.answer(PHONE_PROMPT, reply_markup=get_step_keyboard())

    async def prompt_item(self, message: types.Message, state: UserState) -> None:
        await self.show_items(message)

    async def prompt_date_type(self, message: types.Message, state: UserState) -> None:
        await message.answer(DATE_TYPE_PROMPT, reply_markup=get_date_type_keyboard())

    async def prompt_single_date(self, message: types.Message, state: UserState) -> None:
        await message.answer(SINGLE_DATE_PROMPT, reply_markup=get_step_keyboard())

    async def prompt_start_date(self, message: types.Message, state: UserState) -> None:
        await message.answer(START_DATE_PROMPT, reply_markup=get_step_keyboard())

    async def prompt_end_date(self, message: types.Message, state: UserState) -> None:
        await message.answer(END_DATE_PROMPT, reply_markup=get_step_keyboard())

    async def prompt_comment(self, message: types.Message, state: UserState) -> None:
        count = len(state.get_dates("dates"))
        if count > 1:
            await message.answer(f"💬 Введите комментарий к заявке (будет применен ко всем {count} дням):")
        else:
            await message.answer(COMMENT_PROMPT)

    async def show_items(self, message: types.Message, page: int = 0, edit: bool = False) -> None:
        items = await self.item_service.list_active()
        text, markup = render_items_page(
            items,
            page,
            title=ITEMS_TITLE,
            item_tag=Tags.MANAGER_SELECT_ITEM,
            page_tag=Tags.MANAGER_ITEMS_PAGE,
            back_callback=Tags.BACK_TO_MAIN,
            page_size=self.page_size,
            show_capacity=True,
        )
        if edit:
            await message.edit_text(text, reply_markup=markup, parse_mode="Markdown")
        else:
            await message.answer(text, reply_markup=markup, parse_mode="Markdown")

    async def _load(self, message: types.Message, user_id: int, step: str) -> Optional[UserState]:
        state = await self.state_manager.load_consistent(user_id, (step,))
        if state is None:
            await message.answer(STALE_SESSION_TEXT)
            await send_main_menu(message, is_manager=True)
        return state

    async def _parse_bookable_date(self, message: types.Message) -> Optional[date]:
        """Parsed date, or None after replying with the problem."""
        try:
            value = parse_date(message.text)
        except ValidationError:
            await message.answer(BAD_DATE_TEXT)
            return None
        try:
            self.booking_service.validate_date(value)
        except BookingError as e:
            await message.answer(error_reply(e))
            return None
        return value

    # Messages

    @handle_bot_errors()
    async def start(self, message: types.Message) -> None:
        state = await self.state_manager.set(
            message.from_user.id, Steps.MANAGER_CLIENT_NAME, {"is_manager_booking": True}
        )
        await self.prompt_client_name(message, state)

    @handle_bot_errors()
    async def client_name(self, message: types.Message) -> None:
        user_id = message.from_user.id
        if await self._load(message, user_id, Steps.MANAGER_CLIENT_NAME) is None:
            return
        try:
            name = validate_name(message.text)
        except ValidationError as e:
            await message.answer(str(e))
            return
        state = await self.state_manager.advance(user_id, Steps.MANAGER_CLIENT_PHONE, client_name=name)
        await self.prompt_client_phone(message, state)

    @handle_bot_errors()
    async def client_phone(self, message: types.Message) -> None:
        user_id = message.from_user.id
        if await self._load(message, user_id, Steps.MANAGER_CLIENT_PHONE) is None:
            return
        phone = normalize_phone(message.text)
        if not phone:
            await message.answer(BAD_PHONE_TEXT)
            return
        state = await self.state_manager.advance(user_id, Steps.MANAGER_ITEM_SELECTION, client_phone=phone)
        await self.prompt_item(message, state)

    @handle_bot_errors()
    async def single_date(self, message: types.Message) -> None:
        user_id = message.from_user.id
        if await self._load(message, user_id, Steps.MANAGER_SINGLE_DATE) is None:
            return
        value = await self._parse_bookable_date(message)
        if value is None:
            return
        state = await self.state_manager.advance(user_id, Steps.MANAGER_COMMENT, dates=[value])
        await self.prompt_comment(message, state)

    @handle_bot_errors()
    async def start_date(self, message: types.Message) -> None:
        user_id = message.from_user.id
        if await self._load(message, user_id, Steps.MANAGER_START_DATE) is None:
            return
        value = await self._parse_bookable_date(message)
        if value is None:
            return
        state = await self.state_manager.advance(user_id, Steps.MANAGER_END_DATE, start_date=value)
        await self.prompt_end_date(message, state)

    @handle_bot_errors()
    async def end_date(self, message: types.Message) -> None:
        user_id = message.from_user.id
        state = await self._load(message, user_id, Steps.MANAGER_END_DATE)
        if state is None:
            return
        try:
            end = parse_date(message.text)
        except ValidationError:
            await message.answer(BAD_DATE_TEXT)
            return
        try:
            dates = date_range(state.get_date("start_date"), end)
        except ValidationError as e:
            await message.answer(str(e))
            return
        state = await self.state_manager.advance(user_id, Steps.MANAGER_COMMENT, dates=dates)
        await self.prompt_comment(message, state)

    @handle_bot_errors()
    async def comment(self, message: types.Message) -> None:
        user_id = message.from_user.id
        if await self._load(message, user_id, Steps.MANAGER_COMMENT) is None:
            return
        state = await self.state_manager.advance(
            user_id, Steps.MANAGER_CONFIRM, comment=sanitize_input(message.text)
        )
        try:
            item = await self.item_service.get_item(state.get_int("item_id"))
        except NotFoundError:
            await self.state_manager.clear(user_id)
            await message.answer("Аппарат не найден")
            await send_main_menu(message, is_manager=True)
            return
        await message.answer(confirmation_text(state, item), reply_markup=get_manager_confirm_keyboard())

    @handle_bot_errors("Не удалось создать заявки")
    async def confirm(self, message: types.Message) -> None:
        user_id = message.from_user.id
        state = await self._load(message, user_id, Steps.MANAGER_CONFIRM)
        if state is None:
            return
        item = await self.item_service.get_item(state.get_int("item_id"))
        dates = state.get_dates("dates")
        client_name = state.get_str("client_name") or ""
        template = Booking(
            user_id=user_id,
            item_id=item.id,
            item_name=item.name,
            date=dates[0],
            user_name=client_name,
            user_nickname=client_name,
            phone=state.get_str("client_phone") or "",
            comment=state.get_str("comment") or "",
        )
        created, failed = await self.booking_service.create_manager_bookings(template, dates, manager_id=user_id)
        logger.info(
            f"Manager bookings: {len(created)} created, {len(failed)} failed",
            extra={"user_id": user_id},
        )
        await self.state_manager.clear(user_id)
        await message.answer(result_text(created, failed))
        await send_main_menu(message, is_manager=True)

    # Callbacks

    @handle_bot_errors()
    async def on_items_page(self, event: CallbackEvent, callback: types.CallbackQuery, is_manager: bool = False) -> None:
        await self.show_items(callback.message, page=event.arg(), edit=True)

    @handle_bot_errors()
    async def on_select_item(self, event: CallbackEvent, callback: types.CallbackQuery, is_manager: bool = False) -> None:
        user_id = callback.from_user.id
        if await self._load(callback.message, user_id, Steps.MANAGER_ITEM_SELECTION) is None:
            return
        try:
            item = await self.item_service.get_active_item(event.arg())
        except NotFoundError:
            await callback.message.answer("Аппарат не найден")
            return
        state = await self.state_manager.advance(user_id, Steps.MANAGER_DATE_TYPE, item_id=item.id)
        await self.prompt_date_type(callback.message, state)

    @handle_bot_errors()
    async def on_single_date(self, event: CallbackEvent, callback: types.CallbackQuery, is_manager: bool = False) -> None:
        user_id = callback.from_user.id
        if await self._load(callback.message, user_id, Steps.MANAGER_DATE_TYPE) is None:
            return
        await self.state_manager.advance(user_id, Steps.MANAGER_SINGLE_DATE, date_type="single")
        await callback.message.edit_text(SINGLE_DATE_PROMPT)

    @handle_bot_errors()
    async def on_date_range(self, event: CallbackEvent, callback: types.CallbackQuery, is_manager: bool = False) -> None:
        user_id = callback.from_user.id
        if await self._load(callback.message, user_id, Steps.MANAGER_DATE_TYPE) is None:
            return
        await self.state_manager.advance(user_id, Steps.MANAGER_START_DATE, date_type="range")
        await callback.message.edit_text(START_DATE_PROMPT)


def setup_manager_booking_handlers(dispatcher, *args, **kwargs) -> ManagerBookingHandlers:
    handler = ManagerBookingHandlers(*args, **kwargs)
    handler.setup(dispatcher)
    return handler
