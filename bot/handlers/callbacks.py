"""Single entry point for inline-button callbacks."""

from __future__ import annotations

from aiogram import Router, types
from aiogram.exceptions import TelegramAPIError

from bot import callbacks
from bot.callbacks import CallbackDataError, CallbackDispatcher
from core import get_logger

logger = get_logger(__name__)


class CallbackRouter:
    """Parses callback data and hands it to the handler owning the tag.

    Every callback is answered first so the client spinner stops even when
    the handler is slow or the data is stale.
    """

    def __init__(self, dispatcher: CallbackDispatcher | None = None) -> None:
        self.router = Router(name="callbacks")
        self.callbacks = dispatcher or CallbackDispatcher()
        self.router.callback_query.register(self.handle)

    def setup(self, dispatcher) -> None:
        dispatcher.include_router(self.router)

    async def handle(self, callback: types.CallbackQuery, is_manager: bool = False) -> None:
        try:
            await callback.answer()
        except TelegramAPIError as e:
            logger.debug(f"Failed to answer callback: {e}")

        try:
            event = callbacks.parse(callback.data)
        except CallbackDataError as e:
            logger.warning(f"Ignored callback: {e}", extra={"user_id": callback.from_user.id})
            return

        handled = await self.callbacks.dispatch(event, callback, is_manager=is_manager)
        if not handled:
            logger.info(f"Callback {event.raw!r} was not handled", extra={"user_id": callback.from_user.id})
