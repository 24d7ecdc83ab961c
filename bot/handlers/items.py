"""Item catalogue commands for managers."""

from __future__ import annotations

from aiogram import Router, types
from aiogram.filters import Command, CommandObject

from bot.error_handler import handle_bot_errors
from bot.filters import ManagerFilter
from core import get_logger
from core.exceptions import BookingError, NotFoundError, StorageError, ValidationError
from services.item_service import ItemService
from utils.validators import parse_trailing_int

logger = get_logger(__name__)


class ItemCommandHandlers:
    """``/add_item``, ``/edit_item`` and the other catalogue commands.

    Names may contain spaces; the numeric argument is always the last token.
    """

    def __init__(self, item_service: ItemService) -> None:
        self.router = Router(name="items")
        self.router.message.filter(ManagerFilter())
        self.item_service = item_service
        self._register()

    def setup(self, dispatcher) -> None:
        dispatcher.include_router(self.router)

    def _register(self) -> None:
        self.router.message.register(self.add_item, Command("add_item"))
        self.router.message.register(self.edit_item, Command("edit_item"))
        self.router.message.register(self.list_items, Command("list_items"))
        self.router.message.register(self.disable_item, Command("disable_item"))
        self.router.message.register(self.set_item_order, Command("set_item_order"))
        self.router.message.register(self.move_item_up, Command("move_item_up"))
        self.router.message.register(self.move_item_down, Command("move_item_down"))

    @handle_bot_errors()
    async def add_item(self, message: types.Message, command: CommandObject) -> None:
        try:
            name, quantity = parse_trailing_int(command.args or "")
        except ValidationError:
            await message.answer("Использование: /add_item <название> <количество>")
            return
        if quantity <= 0:
            await message.answer("Количество должно быть положительным числом")
            return
        try:
            item = await self.item_service.create_item(name, quantity)
        except (ValidationError, BookingError, StorageError) as e:
            await message.answer(f"Не удалось создать аппарат: {e}")
            return
        await message.answer(
            f"✅ Аппарат '{item.name}' добавлен (кол-во: {item.total_quantity}, порядок: {item.sort_order})"
        )

    @handle_bot_errors()
    async def edit_item(self, message: types.Message, command: CommandObject) -> None:
        try:
            name, quantity = parse_trailing_int(command.args or "")
        except ValidationError:
            await message.answer("Использование: /edit_item <название> <новое_количество>")
            return
        if quantity <= 0:
            await message.answer("Количество должно быть положительным числом")
            return
        try:
            item = await self.item_service.get_by_name(name)
        except NotFoundError:
            await message.answer(f"Аппарат '{name}' не найден")
            return
        try:
            item = await self.item_service.update_item(item.id, total_quantity=quantity)
        except (ValidationError, BookingError, StorageError) as e:
            await message.answer(f"Не удалось обновить аппарат: {e}")
            return
        await message.answer(f"✅ Аппарат '{item.name}' обновлён (кол-во: {item.total_quantity})")

    @handle_bot_errors("Ошибка загрузки списка")
    async def list_items(self, message: types.Message) -> None:
        items = await self.item_service.list_active()
        if not items:
            await message.answer("Активные аппараты отсутствуют")
            return
        lines = ["📋 Список активных аппаратов:"]
        lines.extend(f"• {it.name}: qty {it.total_quantity}, order {it.sort_order}" for it in items)
        await message.answer("\n".join(lines))

    @handle_bot_errors()
    async def disable_item(self, message: types.Message, command: CommandObject) -> None:
        name = (command.args or "").strip()
        if not name:
            await message.answer("Использование: /disable_item <название>")
            return
        try:
            item = await self.item_service.get_by_name(name)
        except NotFoundError:
            await message.answer(f"Аппарат '{name}' не найден")
            return
        await self.item_service.deactivate_item(item.id)
        await message.answer(f"🛑 Аппарат '{item.name}' деактивирован")

    @handle_bot_errors()
    async def set_item_order(self, message: types.Message, command: CommandObject) -> None:
        try:
            name, order = parse_trailing_int(command.args or "")
        except ValidationError:
            await message.answer("Использование: /set_item_order <название> <порядок>")
            return
        if order <= 0:
            await message.answer("Порядок должен быть положительным числом")
            return
        try:
            item = await self.item_service.get_by_name(name)
        except NotFoundError:
            await message.answer(f"Аппарат '{name}' не найден")
            return
        order = await self.item_service.reorder_item(item.id, order)
        await message.answer(f"↕️ Порядок '{item.name}' установлен на {order}")

    @handle_bot_errors()
    async def move_item_up(self, message: types.Message, command: CommandObject) -> None:
        await self._move(message, command, -1)

    @handle_bot_errors()
    async def move_item_down(self, message: types.Message, command: CommandObject) -> None:
        await self._move(message, command, 1)

    async def _move(self, message: types.Message, command: CommandObject, delta: int) -> None:
        name = (command.args or "").strip()
        if not name:
            await message.answer("Использование: /move_item_up|/move_item_down <название>")
            return
        try:
            item = await self.item_service.get_by_name(name)
        except NotFoundError:
            await message.answer(f"Аппарат '{name}' не найден")
            return
        order = await self.item_service.move_item(item.id, delta)
        direction = "вверх" if delta < 0 else "вниз"
        await message.answer(f"↕️ Аппарат '{item.name}' перемещён {direction} (новый порядок: {order})")


def setup_item_handlers(dispatcher, item_service: ItemService) -> ItemCommandHandlers:
    handler = ItemCommandHandlers(item_service)
    handler.setup(dispatcher)
    return handler
