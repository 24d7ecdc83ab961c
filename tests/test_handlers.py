"""Tests for message and callback handlers driven with mocked Telegram objects."""

from datetime import date, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from aiogram.filters import CommandObject

from bot import callbacks
from bot.callbacks import CallbackDispatcher, Tags
from bot.error_handler import ERROR_REPLIES, STALE_BOOKING
from bot.handlers.booking import (
    BAD_DATE_TEXT,
    DATE_PROMPT,
    ITEM_NOT_FOUND_TEXT,
    NAME_PROMPT,
    PHONE_PROMPT,
    UNAVAILABLE_TEXT,
    BookingHandlers,
)
from bot.handlers.callbacks import CallbackRouter
from bot.handlers.common import MANAGER_CANCELLED_TEXT, STALE_SESSION_TEXT, WELCOME_TEXT, CommonHandlers
from bot.handlers.fallback import UNKNOWN_COMMAND_TEXT, FallbackHandler
from bot.handlers.items import ItemCommandHandlers
from bot.handlers.manager import ACTION_REPLIES, ManagerHandlers
from bot.handlers.manager_booking import ManagerBookingHandlers
from core.exceptions import PastDateError
from database.models import Booking, User
from services.item_service import ItemService
from services.state_manager import Steps
from services.user_service import UserService

DAY = date(2030, 1, 20)
USER_ID = 100
MANAGER_ID = 1


class MockUser:
    def __init__(self, user_id=USER_ID):
        self.id = user_id
        self.first_name = "Иван"
        self.last_name = "Петров"
        self.username = "ivan"


class MockMessage:
    def __init__(self, text="", user_id=USER_ID):
        self.text = text
        self.from_user = MockUser(user_id)
        self.contact = None
        self.answer = AsyncMock()
        self.edit_text = AsyncMock()
        self.answer_document = AsyncMock()

    def replies(self):
        return [call.args[0] for call in self.answer.call_args_list]


class MockCallbackQuery:
    def __init__(self, data="", user_id=USER_ID):
        self.data = data
        self.from_user = MockUser(user_id)
        self.message = MockMessage(user_id=user_id)
        self.answer = AsyncMock()


@pytest.fixture
def item_service(store):
    return ItemService(store)


@pytest.fixture
def user_service(store):
    return UserService(store, managers=[MANAGER_ID])


@pytest.fixture
def common(booking_service, item_service, state_manager):
    return CommonHandlers(booking_service, item_service, state_manager, ["@manager"])


@pytest.fixture
def booking_handlers(booking_service, item_service, user_service, state_manager, common):
    return BookingHandlers(booking_service, item_service, user_service, state_manager, common)


@pytest.fixture
def manager_handlers(booking_service, item_service, user_service):
    return ManagerHandlers(booking_service, item_service, user_service, MagicMock(), AsyncMock())


@pytest.fixture
def manager_booking(booking_service, item_service, state_manager, common):
    return ManagerBookingHandlers(booking_service, item_service, state_manager, common)


async def pending_booking(booking_service, item):
    return await booking_service.create_booking(Booking(
        user_id=USER_ID,
        item_id=item.id,
        item_name=item.name,
        date=DAY,
        user_name="Иван Петров",
        phone="79991234567",
    ))


class TestCommonHandlers:

    @pytest.mark.asyncio
    async def test_start_clears_state(self, common, state_manager):
        await state_manager.set(USER_ID, Steps.WAITING_DATE, {"item_id": 1})
        message = MockMessage("/start")

        await common.start(message)

        assert (await state_manager.get(USER_ID)).step == Steps.MAIN_MENU
        assert message.replies() == [WELCOME_TEXT]

    @pytest.mark.asyncio
    async def test_cancel_manager_flow(self, common, state_manager):
        await state_manager.set(MANAGER_ID, Steps.MANAGER_CLIENT_NAME, {"is_manager_booking": True})
        message = MockMessage("❌ Отмена", user_id=MANAGER_ID)

        await common.cancel(message, is_manager=True)

        assert message.replies() == [MANAGER_CANCELLED_TEXT, WELCOME_TEXT]

    @pytest.mark.asyncio
    async def test_back_reasks_previous_question(self, common, booking_handlers, state_manager, item):
        await state_manager.set(USER_ID, Steps.ENTER_NAME, {"item_id": item.id, "date": DAY})
        message = MockMessage("⬅️ Назад")

        await common.back(message)

        state = await state_manager.get(USER_ID)
        assert state.step == Steps.WAITING_DATE
        assert state.get_int("item_id") == item.id
        assert message.replies() == [DATE_PROMPT]

    @pytest.mark.asyncio
    async def test_back_from_main_menu(self, common):
        message = MockMessage("⬅️ Назад")
        await common.back(message)
        assert message.replies() == [WELCOME_TEXT]

    @pytest.mark.asyncio
    async def test_contacts(self, common):
        message = MockMessage()
        await common.contacts(message)
        assert "🔹 @manager" in message.replies()[0]

    @pytest.mark.asyncio
    async def test_back_to_main_callback(self, common, state_manager):
        await state_manager.set(USER_ID, Steps.SELECT_ITEM)
        callback = MockCallbackQuery(Tags.BACK_TO_MAIN)

        await common.on_back_to_main(callbacks.parse(Tags.BACK_TO_MAIN), callback)

        assert (await state_manager.get(USER_ID)).step == Steps.MAIN_MENU
        assert callback.message.replies() == [WELCOME_TEXT]


class TestBookingFlow:

    @pytest.mark.asyncio
    async def test_bad_date_format(self, booking_handlers, state_manager, item):
        await state_manager.set(USER_ID, Steps.WAITING_DATE, {"item_id": item.id})
        message = MockMessage("20-01-2030")

        await booking_handlers.enter_date(message)

        assert message.replies() == [BAD_DATE_TEXT]
        assert (await state_manager.get(USER_ID)).step == Steps.WAITING_DATE

    @pytest.mark.asyncio
    async def test_past_date(self, booking_handlers, state_manager, item):
        await state_manager.set(USER_ID, Steps.WAITING_DATE, {"item_id": item.id})
        message = MockMessage("10.01.2030")

        await booking_handlers.enter_date(message)

        assert message.replies() == [ERROR_REPLIES[PastDateError]]
        assert (await state_manager.get(USER_ID)).step == Steps.WAITING_DATE

    @pytest.mark.asyncio
    async def test_unavailable_date(self, booking_handlers, booking_service, state_manager, item):
        await pending_booking(booking_service, item)
        await pending_booking(booking_service, item)
        await state_manager.set(USER_ID, Steps.WAITING_DATE, {"item_id": item.id})
        message = MockMessage("20.01.2030")

        await booking_handlers.enter_date(message)

        assert message.replies() == [UNAVAILABLE_TEXT]

    @pytest.mark.asyncio
    async def test_stale_session(self, booking_handlers, state_manager):
        await state_manager.set(USER_ID, Steps.WAITING_DATE)
        message = MockMessage("20.01.2030")

        await booking_handlers.enter_date(message)

        assert message.replies() == [STALE_SESSION_TEXT, WELCOME_TEXT]
        assert (await state_manager.get(USER_ID)).step == Steps.MAIN_MENU

    @pytest.mark.asyncio
    async def test_select_item_callback(self, booking_handlers, state_manager, item):
        callback = MockCallbackQuery(f"select_item:{item.id}")

        await booking_handlers.on_select_item(callbacks.parse(callback.data), callback)

        state = await state_manager.get(USER_ID)
        assert state.step == Steps.WAITING_DATE
        assert state.get_int("item_id") == item.id
        assert callback.message.replies() == [f"Вы выбрали: {item.name}\n\n{DATE_PROMPT}"]

    @pytest.mark.asyncio
    async def test_select_deactivated_item(self, booking_handlers, state_manager, store, item):
        await state_manager.set(USER_ID, Steps.SELECT_ITEM)
        await store.deactivate_item(item.id)
        callback = MockCallbackQuery(f"select_item:{item.id}")

        await booking_handlers.on_select_item(callbacks.parse(callback.data), callback)

        assert callback.message.replies() == [ITEM_NOT_FOUND_TEXT]
        assert (await state_manager.get(USER_ID)).step == Steps.SELECT_ITEM

    @pytest.mark.asyncio
    async def test_full_flow_creates_pending_booking(
        self, booking_handlers, user_service, state_manager, store, item
    ):
        await user_service.save_user(User(telegram_id=USER_ID, first_name="Иван"))
        await state_manager.set(USER_ID, Steps.WAITING_DATE, {"item_id": item.id})

        message = MockMessage("20.01.2030")
        await booking_handlers.enter_date(message)
        assert message.replies() == [NAME_PROMPT]

        message = MockMessage("Иван Петров")
        await booking_handlers.enter_name(message)
        assert message.replies() == [PHONE_PROMPT]

        message = MockMessage("8 (999) 123-45-67")
        await booking_handlers.enter_phone(message)

        replies = message.replies()
        assert "Подтверждение заявки" in replies[0]
        assert "успешно создана" in replies[1]
        assert replies[2] == WELCOME_TEXT
        assert (await state_manager.get(USER_ID)).step == Steps.MAIN_MENU

        bookings = await store.user_bookings(USER_ID, date(2030, 1, 1))
        assert len(bookings) == 1
        assert bookings[0].status == "pending"
        assert bookings[0].phone == "79991234567"
        assert bookings[0].user_nickname == "Иван Петров"
        assert (await user_service.get_user(USER_ID)).phone == "79991234567"

    @pytest.mark.asyncio
    async def test_bad_phone_keeps_step(self, booking_handlers, state_manager, item):
        await state_manager.set(
            USER_ID, Steps.PHONE_NUMBER, {"item_id": item.id, "date": DAY, "user_name": "Иван"}
        )
        message = MockMessage("12345")

        await booking_handlers.enter_phone(message)

        assert "Неверный формат номера" in message.replies()[0]
        assert (await state_manager.get(USER_ID)).step == Steps.PHONE_NUMBER


class TestManagerActions:

    @pytest.mark.asyncio
    async def test_confirm(self, manager_handlers, booking_service, item):
        booking = await pending_booking(booking_service, item)
        callback = MockCallbackQuery(callbacks.booking_action("confirm", booking.id, booking.version), MANAGER_ID)

        await manager_handlers.on_booking_action(callbacks.parse(callback.data), callback, is_manager=True)

        replies = callback.message.replies()
        assert replies[0] == ACTION_REPLIES["confirm"]
        assert f"📋 Заявка #{booking.id}" in replies[1]
        assert (await booking_service.get_booking(booking.id)).status == "confirmed"

    @pytest.mark.asyncio
    async def test_stale_version(self, manager_handlers, booking_service, item):
        booking = await pending_booking(booking_service, item)
        callback = MockCallbackQuery(callbacks.booking_action("confirm", booking.id, booking.version + 5), MANAGER_ID)

        await manager_handlers.on_booking_action(callbacks.parse(callback.data), callback, is_manager=True)

        assert callback.message.replies() == [STALE_BOOKING]
        assert (await booking_service.get_booking(booking.id)).status == "pending"

    @pytest.mark.asyncio
    async def test_invalid_transition(self, manager_handlers, booking_service, item):
        booking = await pending_booking(booking_service, item)
        callback = MockCallbackQuery(callbacks.booking_action("complete", booking.id, booking.version), MANAGER_ID)

        await manager_handlers.on_booking_action(callbacks.parse(callback.data), callback, is_manager=True)

        assert callback.message.replies() == ["Действие недоступно: заявка в статусе «⏳ Ожидает подтверждения»"]

    @pytest.mark.asyncio
    async def test_reschedule_notifies_user(self, manager_handlers, booking_service, item):
        booking = await pending_booking(booking_service, item)
        callback = MockCallbackQuery(callbacks.booking_action("reschedule", booking.id, booking.version), MANAGER_ID)

        await manager_handlers.on_booking_action(callbacks.parse(callback.data), callback, is_manager=True)

        manager_handlers.notification_service.notify_rescheduled.assert_awaited_once()
        assert callback.message.replies()[0] == ACTION_REPLIES["reschedule"]

    @pytest.mark.asyncio
    async def test_unknown_booking(self, manager_handlers):
        callback = MockCallbackQuery(callbacks.booking_action("confirm", 999, 1), MANAGER_ID)
        await manager_handlers.on_booking_action(callbacks.parse(callback.data), callback, is_manager=True)
        assert callback.message.replies() == ["Заявка не найдена"]

    @pytest.mark.asyncio
    async def test_sync_bookings_enqueues(self, manager_handlers, store):
        message = MockMessage(user_id=MANAGER_ID)

        await manager_handlers.sync_bookings(message)

        tasks = await store.lease_due_pending_tasks(10, now=datetime(2031, 1, 1))
        assert [task.kind for task in tasks] == ["replace_bookings", "sync_schedule"]
        assert "поставлена в очередь" in message.replies()[0]


class TestCallbackRouter:

    @pytest.fixture
    def router(self, common, booking_handlers, manager_handlers):
        dispatcher = CallbackDispatcher()
        common.register_callbacks(dispatcher)
        booking_handlers.register_callbacks(dispatcher)
        manager_handlers.register_callbacks(dispatcher)
        return CallbackRouter(dispatcher)

    @pytest.mark.asyncio
    async def test_bad_data_is_answered_and_ignored(self, router):
        callback = MockCallbackQuery("spin_wheel:1")

        await router.handle(callback)

        callback.answer.assert_awaited_once_with()
        callback.message.answer.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_manager_only_denied(self, router, booking_service, item):
        booking = await pending_booking(booking_service, item)
        callback = MockCallbackQuery(callbacks.booking_action("confirm", booking.id, booking.version))

        await router.handle(callback, is_manager=False)

        callback.message.answer.assert_not_awaited()
        assert (await booking_service.get_booking(booking.id)).status == "pending"

    @pytest.mark.asyncio
    async def test_dispatches_to_owner(self, router, state_manager):
        await state_manager.set(USER_ID, Steps.SELECT_ITEM)
        callback = MockCallbackQuery(Tags.BACK_TO_MAIN)

        await router.handle(callback)

        callback.answer.assert_awaited_once_with()
        assert callback.message.replies() == [WELCOME_TEXT]


class TestManagerBooking:

    @pytest.mark.asyncio
    async def test_confirm_reports_each_date(self, manager_booking, state_manager, store, item):
        await state_manager.set(MANAGER_ID, Steps.MANAGER_CONFIRM, {
            "is_manager_booking": True,
            "client_name": "Анна",
            "client_phone": "79990000000",
            "item_id": item.id,
            "date_type": "range",
            "dates": [date(2030, 1, 10), DAY],
            "comment": "Обучение",
        })
        message = MockMessage("✅ Подтвердить создание", user_id=MANAGER_ID)

        await manager_booking.confirm(message)

        result = message.replies()[0]
        assert "✅ Успешно создано: 1 заявок" in result
        assert "10.01.2030 (прошедшая дата)" in result
        bookings = await store.user_bookings(MANAGER_ID, date(2030, 1, 1))
        assert [b.status for b in bookings] == ["confirmed"]
        assert bookings[0].comment == "Обучение"
        assert (await state_manager.get(MANAGER_ID)).step == Steps.MAIN_MENU

    @pytest.mark.asyncio
    async def test_client_name_advances(self, manager_booking, state_manager):
        await state_manager.set(MANAGER_ID, Steps.MANAGER_CLIENT_NAME, {"is_manager_booking": True})
        message = MockMessage("Анна", user_id=MANAGER_ID)

        await manager_booking.client_name(message)

        state = await state_manager.get(MANAGER_ID)
        assert state.step == Steps.MANAGER_CLIENT_PHONE
        assert state.get_str("client_name") == "Анна"

    @pytest.mark.asyncio
    async def test_select_deactivated_item(self, manager_booking, state_manager, store, item):
        await state_manager.set(MANAGER_ID, Steps.MANAGER_ITEM_SELECTION, {
            "is_manager_booking": True,
            "client_name": "Анна",
            "client_phone": "79990000000",
        })
        await store.deactivate_item(item.id)
        callback = MockCallbackQuery(f"select_item:{item.id}", user_id=MANAGER_ID)

        await manager_booking.on_select_item(callbacks.parse(callback.data), callback)

        assert callback.message.replies() == [ITEM_NOT_FOUND_TEXT]
        assert (await state_manager.get(MANAGER_ID)).step == Steps.MANAGER_ITEM_SELECTION

    @pytest.mark.asyncio
    async def test_end_before_start(self, manager_booking, state_manager, item):
        await state_manager.set(MANAGER_ID, Steps.MANAGER_END_DATE, {
            "is_manager_booking": True,
            "client_name": "Анна",
            "client_phone": "79990000000",
            "item_id": item.id,
            "date_type": "range",
            "start_date": DAY,
        })
        message = MockMessage("18.01.2030", user_id=MANAGER_ID)

        await manager_booking.end_date(message)

        assert (await state_manager.get(MANAGER_ID)).step == Steps.MANAGER_END_DATE
        assert len(message.replies()) == 1


class TestItemCommands:

    @pytest.mark.asyncio
    async def test_add_item_with_spaces(self, item_service):
        handlers = ItemCommandHandlers(item_service)
        message = MockMessage("/add_item Кофемашина Pro 3", user_id=MANAGER_ID)

        await handlers.add_item(message, CommandObject(command="add_item", args="Кофемашина Pro 3"))

        item = await item_service.get_by_name("Кофемашина Pro")
        assert item.total_quantity == 3
        assert message.replies()[0].startswith("✅ Аппарат 'Кофемашина Pro' добавлен")

    @pytest.mark.asyncio
    async def test_add_duplicate_item(self, item_service, item):
        handlers = ItemCommandHandlers(item_service)
        message = MockMessage("/add_item кофемашина 1", user_id=MANAGER_ID)

        await handlers.add_item(message, CommandObject(command="add_item", args="кофемашина 1"))

        assert message.replies() == ["Не удалось создать аппарат: Аппарат с названием «кофемашина» уже существует"]

    @pytest.mark.asyncio
    async def test_add_item_usage(self, item_service):
        handlers = ItemCommandHandlers(item_service)
        message = MockMessage("/add_item", user_id=MANAGER_ID)

        await handlers.add_item(message, CommandObject(command="add_item", args=None))

        assert message.replies() == ["Использование: /add_item <название> <количество>"]

    @pytest.mark.asyncio
    async def test_edit_unknown_item(self, item_service):
        handlers = ItemCommandHandlers(item_service)
        message = MockMessage(user_id=MANAGER_ID)

        await handlers.edit_item(message, CommandObject(command="edit_item", args="Миксер 2"))

        assert message.replies() == ["Аппарат 'Миксер' не найден"]


@pytest.mark.asyncio
async def test_fallback_sends_menu():
    message = MockMessage("что-то непонятное")
    await FallbackHandler().handle_unexpected_text(message)
    assert message.replies() == [UNKNOWN_COMMAND_TEXT]
