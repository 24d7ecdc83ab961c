"""Main menu, navigation and informational handlers."""

from __future__ import annotations

from typing import Awaitable, Callable, Dict, Iterable, List, Sequence

from aiogram import F, Router, types
from aiogram.filters import Command, CommandStart

from bot.callbacks import CallbackDispatcher, CallbackEvent, Tags
from bot.error_handler import handle_bot_errors
from bot.keyboards import get_create_order_keyboard, get_main_menu_keyboard, status_emoji
from bot.keyboards.main_menu import (
    BTN_ASSORTMENT,
    BTN_BACK,
    BTN_BACK_TO_MENU,
    BTN_CANCEL,
    BTN_CONTACTS,
    BTN_MY_BOOKINGS,
    RESET_WORDS,
)
from core import get_logger
from database.models import Booking, Item, UserState
from services.booking_service import BookingService
from services.item_service import ItemService
from services.state_manager import ConversationStateManager, Steps, is_consistent
from utils.validators import format_date

logger = get_logger(__name__)

WELCOME_TEXT = "Добро пожаловать! Выберите действие:"
STALE_SESSION_TEXT = "Сессия устарела. Начните заново."
MANAGER_CANCELLED_TEXT = "❌ Создание заявки отменено"

StepPrompt = Callable[[types.Message, UserState], Awaitable[None]]


async def send_main_menu(message: types.Message, is_manager: bool, text: str = WELCOME_TEXT) -> None:
    await message.answer(text, reply_markup=get_main_menu_keyboard(is_manager))


def contacts_text(contacts: Iterable[str]) -> str:
    lines = ["📞 Контакты менеджера:", ""]
    lines.extend(f"🔹 {contact}" for contact in contacts)
    lines.append("")
    lines.append("По любым интересующим Вас вопросам, дадим ответ.")
    return "\n".join(lines)


def user_bookings_text(bookings: Sequence[Booking]) -> str:
    """Plain-text history of the user's recent and upcoming bookings."""
    parts: List[str] = ["📊 Ваши заявки (за последние 2 недели и предстоящие):\n\n"]
    for booking in bookings:
        parts.append(
            f"{status_emoji(booking.status)} Заявка #{booking.id}\n"
            f"   🏢 {booking.item_name}\n"
            f"   📅 {format_date(booking.date)}\n"
            f"   📊 Статус: {booking.status}\n\n"
        )
    if not bookings:
        parts.append("У вас пока нет заявок")
    return "".join(parts)


def assortment_text(items: Sequence[Item]) -> str:
    parts = ["🏢 Доступные позиции:\n\n"]
    for item in items:
        parts.append(f"🔹 {item.name}\n")
        if item.description:
            parts.append(f"   {item.description}\n")
        parts.append("\n")
    return "".join(parts)


class CommonHandlers:
    """Entry points that work from any conversation step.

    Step-specific handlers register a prompt per step so that
    ``⬅️ Назад`` can re-ask the question of the step it returns to.
    """

    def __init__(
        self,
        booking_service: BookingService,
        item_service: ItemService,
        state_manager: ConversationStateManager,
        managers_contacts: Sequence[str] = (),
    ) -> None:
        self.router = Router(name="common")
        self.booking_service = booking_service
        self.item_service = item_service
        self.state_manager = state_manager
        self.managers_contacts = tuple(managers_contacts)
        self.prompts: Dict[str, StepPrompt] = {}
        self._register()

    def setup(self, dispatcher) -> None:
        dispatcher.include_router(self.router)

    def register_prompt(self, step: str, prompt: StepPrompt) -> None:
        self.prompts[step] = prompt

    def register_callbacks(self, callbacks: CallbackDispatcher) -> None:
        callbacks.register(Tags.BACK_TO_MAIN, self.on_back_to_main)
        callbacks.register(Tags.BACK_TO_MAIN_FROM_SCHEDULE, self.on_back_to_main)

    def _register(self) -> None:
        self.router.message.register(self.start, CommandStart())
        self.router.message.register(self.start, F.text.lower().in_(RESET_WORDS))
        self.router.message.register(self.help, Command("help"))
        self.router.message.register(self.cancel, F.text == BTN_CANCEL)
        self.router.message.register(self.back_to_menu, F.text == BTN_BACK_TO_MENU)
        self.router.message.register(self.back, F.text == BTN_BACK)
        self.router.message.register(self.contacts, F.text == BTN_CONTACTS)
        self.router.message.register(self.my_bookings, F.text == BTN_MY_BOOKINGS)
        self.router.message.register(self.assortment, F.text == BTN_ASSORTMENT)

    @handle_bot_errors()
    async def start(self, message: types.Message, is_manager: bool = False) -> None:
        await self.state_manager.clear(message.from_user.id)
        await send_main_menu(message, is_manager)

    @handle_bot_errors()
    async def help(self, message: types.Message, is_manager: bool = False) -> None:
        text = (
            "ℹ️ Бот для бронирования аппаратов.\n\n"
            "/start: главное меню\n"
            "сброс: начать заново из любого шага"
        )
        if is_manager:
            text += (
                "\n\nКоманды менеджера:\n"
                "/get_all: все заявки\n"
                "/start_booking: заявка от имени клиента\n"
                "/stats: статистика\n"
                "/list_items, /add_item, /edit_item, /disable_item\n"
                "/set_item_order, /move_item_up, /move_item_down"
            )
        await message.answer(text)

    @handle_bot_errors()
    async def cancel(self, message: types.Message, is_manager: bool = False) -> None:
        current = await self.state_manager.get(message.from_user.id)
        await self.state_manager.clear(message.from_user.id)
        if current.step.startswith("manager_"):
            await message.answer(MANAGER_CANCELLED_TEXT)
        await send_main_menu(message, is_manager)

    @handle_bot_errors()
    async def back_to_menu(self, message: types.Message, is_manager: bool = False) -> None:
        await self.state_manager.clear(message.from_user.id)
        await send_main_menu(message, is_manager)

    @handle_bot_errors()
    async def back(self, message: types.Message, is_manager: bool = False) -> None:
        user_id = message.from_user.id
        current = await self.state_manager.get(user_id)
        if current.step == Steps.MAIN_MENU:
            await send_main_menu(message, is_manager)
            return

        previous = await self.state_manager.back(user_id)
        prompt = self.prompts.get(previous.step)
        if previous.step == Steps.MAIN_MENU or prompt is None or not is_consistent(previous):
            await self.state_manager.clear(user_id)
            await send_main_menu(message, is_manager)
            return
        await prompt(message, previous)

    @handle_bot_errors()
    async def contacts(self, message: types.Message) -> None:
        await message.answer(contacts_text(self.managers_contacts))

    @handle_bot_errors("Ошибка при получении заявок")
    async def my_bookings(self, message: types.Message) -> None:
        bookings = await self.booking_service.user_bookings(message.from_user.id)
        await message.answer(user_bookings_text(bookings))

    @handle_bot_errors()
    async def assortment(self, message: types.Message) -> None:
        items = await self.item_service.list_active()
        await message.answer(assortment_text(items), reply_markup=get_create_order_keyboard())

    @handle_bot_errors()
    async def on_back_to_main(
        self,
        event: CallbackEvent,
        callback: types.CallbackQuery,
        is_manager: bool = False,
    ) -> None:
        await self.state_manager.clear(callback.from_user.id)
        await send_main_menu(callback.message, is_manager)


def setup_common_handlers(
    dispatcher,
    booking_service: BookingService,
    item_service: ItemService,
    state_manager: ConversationStateManager,
    managers_contacts: Sequence[str] = (),
) -> CommonHandlers:
    handler = CommonHandlers(booking_service, item_service, state_manager, managers_contacts)
    handler.setup(dispatcher)
    return handler
