"""End-user booking capture: item, date, name, phone, confirmation."""

from __future__ import annotations

from typing import Optional

from aiogram import F, Router, types

from bot.callbacks import CallbackDispatcher, CallbackEvent, Tags
from bot.error_handler import error_reply, handle_bot_errors
from bot.handlers.common import STALE_SESSION_TEXT, CommonHandlers, send_main_menu
from bot.keyboards import (
    get_name_input_keyboard,
    get_phone_input_keyboard,
    get_step_keyboard,
    render_items_page,
)
from bot.keyboards.main_menu import BTN_CREATE_BOOKING
from bot.states import BookingStates
from core import get_logger
from core.constants import PaginationDefaults
from core.exceptions import BookingError, NotFoundError, ValidationError
from database.models import Booking, Item, UserState
from services.booking_service import BookingService
from services.item_service import ItemService
from services.state_manager import ConversationStateManager, Steps
from services.user_service import UserService
from utils.validators import format_date, normalize_phone, parse_date, validate_name

logger = get_logger(__name__)

ITEMS_TITLE = "🏢 *Доступные аппараты*"
NO_ITEMS_TEXT = "Нет доступных аппаратов"
ITEM_NOT_FOUND_TEXT = "Аппарат не найден"
DATE_PROMPT = "Введите дату в формате ДД.ММ.ГГГГ (например, 25.12.2024):"
BAD_DATE_TEXT = "Неверный формат даты. Используйте ДД.ММ.ГГГГ (например, 25.12.2024)"
UNAVAILABLE_TEXT = "К сожалению, на выбранную дату позиция недоступна. Выберите другую дату."
NAME_PROMPT = "Пожалуйста, введите ваше ФИО для заявки:"
PHONE_PROMPT = (
    "Пожалуйста, предоставьте ваш номер телефона для связи:\n"
    "Вы можете предоставить разрешение на использование номера из контакта телеграмм\n"
    "Либо введите номер телефона для связи"
)
BAD_PHONE_TEXT = (
    "Неверный формат номера телефона. Пожалуйста, введите номер в формате "
    "+7XXXXXXXXXX или 8XXXXXXXXXX"
)
MISSING_ITEM_TEXT = "Ошибка: выбранная позиция не найдена."


def telegram_nickname(user: types.User) -> str:
    return f"{user.first_name or ''} {user.last_name or ''}".strip()


def booking_summary_text(item_name: str, state: UserState) -> str:
    booking_date = state.get_date("date")
    return (
        "📋 Подтверждение заявки:\n\n"
        f"🏢 Позиция: {item_name}\n"
        f"📅 Дата: {format_date(booking_date) if booking_date else '-'}\n"
        f"👤 Имя: {state.get_str('user_name') or '-'}\n"
        f"📱 Телефон: {state.get_str('phone') or '-'}"
    )


class BookingHandlers:
    """User-side conversation that ends in a ``pending`` booking."""

    def __init__(
        self,
        booking_service: BookingService,
        item_service: ItemService,
        user_service: UserService,
        state_manager: ConversationStateManager,
        common: CommonHandlers,
        page_size: int = PaginationDefaults.ITEMS_PAGE_SIZE,
    ) -> None:
        self.router = Router(name="booking")
        self.booking_service = booking_service
        self.item_service = item_service
        self.user_service = user_service
        self.state_manager = state_manager
        self.page_size = page_size
        self._register()

        common.register_prompt(Steps.SELECT_ITEM, self.prompt_select_item)
        common.register_prompt(Steps.WAITING_DATE, self.prompt_date)
        common.register_prompt(Steps.ENTER_NAME, self.prompt_name)
        common.register_prompt(Steps.PHONE_NUMBER, self.prompt_phone)

    def setup(self, dispatcher) -> None:
        dispatcher.include_router(self.router)

    def register_callbacks(self, callbacks: CallbackDispatcher) -> None:
        callbacks.register(Tags.ITEMS_PAGE, self.on_items_page)
        callbacks.register(Tags.SELECT_ITEM, self.on_select_item)
        callbacks.register(Tags.START_THE_ORDER, self.on_start_the_order)

    def _register(self) -> None:
        self.router.message.register(self.start_booking, F.text == BTN_CREATE_BOOKING)
        self.router.message.register(self.enter_date, BookingStates.waiting_date, F.text)
        self.router.message.register(self.enter_name, BookingStates.enter_name, F.text)
        self.router.message.register(self.enter_contact, BookingStates.phone_number, F.contact)
        self.router.message.register(self.enter_phone, BookingStates.phone_number, F.text)

    # Prompts

    async def show_items(self, message: types.Message, page: int = 0, edit: bool = False) -> None:
        items = await self.item_service.list_active()
        if not items:
            await message.answer(NO_ITEMS_TEXT)
            return
        text, markup = render_items_page(
            items,
            page,
            title=ITEMS_TITLE,
            item_tag=Tags.SELECT_ITEM,
            page_tag=Tags.ITEMS_PAGE,
            back_callback=Tags.BACK_TO_MAIN,
            page_size=self.page_size,
        )
        if edit:
            await message.edit_text(text, reply_markup=markup, parse_mode="Markdown")
        else:
            await message.answer(text, reply_markup=markup, parse_mode="Markdown")

    async def start_date_step(self, message: types.Message, user_id: int, item: Item) -> None:
        """Remember the chosen item and ask for the date."""
        await self.state_manager.set(user_id, Steps.WAITING_DATE, {"item_id": item.id})
        await message.answer(f"Вы выбрали: {item.name}\n\n{DATE_PROMPT}", reply_markup=get_step_keyboard())

    async def prompt_select_item(self, message: types.Message, state: UserState) -> None:
        await self.show_items(message)

    async def prompt_date(self, message: types.Message, state: UserState) -> None:
        await message.answer(DATE_PROMPT, reply_markup=get_step_keyboard())

    async def prompt_name(self, message: types.Message, state: UserState) -> None:
        await message.answer(NAME_PROMPT, reply_markup=get_name_input_keyboard())

    async def prompt_phone(self, message: types.Message, state: UserState) -> None:
        await message.answer(PHONE_PROMPT, reply_markup=get_phone_input_keyboard())

    async def _stale(self, message: types.Message, is_manager: bool) -> None:
        await message.answer(STALE_SESSION_TEXT)
        await send_main_menu(message, is_manager)

    # Messages

    @handle_bot_errors()
    async def start_booking(self, message: types.Message) -> None:
        await self.state_manager.set(message.from_user.id, Steps.SELECT_ITEM)
        await self.show_items(message)

    @handle_bot_errors()
    async def enter_date(self, message: types.Message, is_manager: bool = False) -> None:
        user_id = message.from_user.id
        state = await self.state_manager.load_consistent(user_id, (Steps.WAITING_DATE,))
        if state is None:
            await self._stale(message, is_manager)
            return

        try:
            booking_date = parse_date(message.text)
        except ValidationError:
            await message.answer(BAD_DATE_TEXT)
            return

        try:
            self.booking_service.validate_date(booking_date)
        except BookingError as e:
            await message.answer(error_reply(e))
            return

        if not await self.booking_service.check_availability(state.get_int("item_id"), booking_date):
            await message.answer(UNAVAILABLE_TEXT)
            return

        next_state = await self.state_manager.advance(user_id, Steps.ENTER_NAME, date=booking_date)
        await self.prompt_name(message, next_state)

    @handle_bot_errors()
    async def enter_name(self, message: types.Message, is_manager: bool = False) -> None:
        user_id = message.from_user.id
        state = await self.state_manager.load_consistent(user_id, (Steps.ENTER_NAME,))
        if state is None:
            await self._stale(message, is_manager)
            return

        try:
            name = validate_name(message.text)
        except ValidationError as e:
            await message.answer(str(e))
            return

        next_state = await self.state_manager.advance(user_id, Steps.PHONE_NUMBER, user_name=name)
        await self.prompt_phone(message, next_state)

    @handle_bot_errors()
    async def enter_phone(self, message: types.Message, is_manager: bool = False) -> None:
        await self._accept_phone(message, message.text, is_manager)

    @handle_bot_errors()
    async def enter_contact(self, message: types.Message, is_manager: bool = False) -> None:
        await self._accept_phone(message, message.contact.phone_number, is_manager)

    async def _accept_phone(self, message: types.Message, raw_phone: Optional[str], is_manager: bool) -> None:
        user_id = message.from_user.id
        state = await self.state_manager.load_consistent(user_id, (Steps.PHONE_NUMBER,))
        if state is None:
            await self._stale(message, is_manager)
            return

        phone = normalize_phone(raw_phone)
        if not phone:
            await message.answer(BAD_PHONE_TEXT)
            return

        await self.user_service.update_phone(user_id, phone)
        state = await self.state_manager.advance(user_id, Steps.CONFIRMATION, phone=phone)

        try:
            item = await self.item_service.get_item(state.get_int("item_id"))
        except NotFoundError:
            await self.state_manager.clear(user_id)
            await message.answer(MISSING_ITEM_TEXT)
            await send_main_menu(message, is_manager)
            return

        await message.answer(booking_summary_text(item.name, state))
        await self.finalize(message, state, item, is_manager)

    async def finalize(self, message: types.Message, state: UserState, item: Item, is_manager: bool) -> None:
        """Create the booking from the confirmed scratch data."""
        user = message.from_user
        booking = Booking(
            user_id=user.id,
            item_id=item.id,
            item_name=item.name,
            date=state.get_date("date"),
            user_name=state.get_str("user_name") or "",
            user_nickname=telegram_nickname(user),
            phone=state.get_str("phone") or "",
        )
        try:
            created = await self.booking_service.create_booking(booking)
        except BookingError as e:
            logger.info(f"Booking rejected: {e}", extra={"user_id": user.id})
            await self.state_manager.clear(user.id)
            await send_main_menu(message, is_manager, error_reply(e))
            return

        await self.state_manager.clear(user.id)
        await message.answer(
            f"⏳ Ваша заявка #{created.id} на позицию {created.item_name} успешно создана. \n"
            "Ожидайте подтверждения."
        )
        await send_main_menu(message, is_manager)

    # Callbacks

    @handle_bot_errors()
    async def on_items_page(self, event: CallbackEvent, callback: types.CallbackQuery, is_manager: bool = False) -> None:
        await self.show_items(callback.message, page=event.arg(), edit=True)

    @handle_bot_errors()
    async def on_select_item(self, event: CallbackEvent, callback: types.CallbackQuery, is_manager: bool = False) -> None:
        try:
            item = await self.item_service.get_active_item(event.arg())
        except NotFoundError:
            await callback.message.answer(ITEM_NOT_FOUND_TEXT)
            return
        await self.start_date_step(callback.message, callback.from_user.id, item)

    @handle_bot_errors()
    async def on_start_the_order(self, event: CallbackEvent, callback: types.CallbackQuery, is_manager: bool = False) -> None:
        await self.state_manager.set(callback.from_user.id, Steps.SELECT_ITEM)
        await self.show_items(callback.message)


def setup_booking_handlers(dispatcher, *args, **kwargs) -> BookingHandlers:
    handler = BookingHandlers(*args, **kwargs)
    handler.setup(dispatcher)
    return handler
