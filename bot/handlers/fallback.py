"""Fallback-обработчики для сообщений, не распознанных другими роутерами."""

from __future__ import annotations

from aiogram import F, Router, types

from bot.error_handler import handle_bot_errors
from bot.handlers.common import send_main_menu
from core import get_logger

logger = get_logger(__name__)

UNKNOWN_COMMAND_TEXT = "Неизвестная команда. Используйте меню."
UNSUPPORTED_CONTENT_TEXT = "Я понимаю только текст и кнопки меню."


class FallbackHandler:
    """Lowest-priority router; must be included last."""

    def __init__(self) -> None:
        self.router = Router(name="fallback")
        self._register_handlers()

    def setup(self, dispatcher) -> None:
        dispatcher.include_router(self.router)

    def _register_handlers(self) -> None:
        self.router.message.register(self.handle_unexpected_text, F.text)
        self.router.message.register(self.handle_unexpected_content)

    @handle_bot_errors()
    async def handle_unexpected_text(self, message: types.Message, is_manager: bool = False) -> None:
        logger.debug(f"Unrecognised text: {message.text[:50]!r}", extra={"user_id": message.from_user.id})
        await send_main_menu(message, is_manager, UNKNOWN_COMMAND_TEXT)

    @handle_bot_errors()
    async def handle_unexpected_content(self, message: types.Message, is_manager: bool = False) -> None:
        await send_main_menu(message, is_manager, UNSUPPORTED_CONTENT_TEXT)


def setup_fallback_handlers(dispatcher) -> FallbackHandler:
    handler = FallbackHandler()
    handler.setup(dispatcher)
    return handler
