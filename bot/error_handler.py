"""Centralized error handling for bot handlers."""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable

from aiogram import types
from aiogram.exceptions import TelegramAPIError
from aiogram.types import ErrorEvent

from core import get_logger
from core.exceptions import (
    ConcurrentModificationError,
    DateTooFarError,
    NotAvailableError,
    PastDateError,
)
from utils.performance import monitor

logger = get_logger(__name__)

GENERIC_ERROR = (
    "❌ Произошла ошибка при обработке вашего запроса. "
    "Пожалуйста, попробуйте позже или обратитесь к менеджеру."
)
STALE_BOOKING = "Заявка уже изменена. Обновите данные и попробуйте снова."

ERROR_REPLIES = {
    NotAvailableError: (
        "⚠️ Извините, этот аппарат уже забронирован на выбранную дату. "
        "Пожалуйста, выберите другое время или аппарат."
    ),
    PastDateError: "⚠️ Нельзя создавать бронирование на прошедшую дату.",
    DateTooFarError: (
        "⚠️ Вы не можете бронировать так далеко в будущем. "
        "Пожалуйста, выберите более раннюю дату."
    ),
    ConcurrentModificationError: (
        "⚠️ Произошла ошибка при сохранении (конфликт версий). "
        "Пожалуйста, попробуйте еще раз."
    ),
}


def error_reply(error: BaseException) -> str:
    """User-facing text for a domain error"""
    for error_type, text in ERROR_REPLIES.items():
        if isinstance(error, error_type):
            return text
    return GENERIC_ERROR


def _find_update(args) -> Any:
    # Callback handlers receive the parsed event first and the query second
    for arg in args:
        if isinstance(arg, (types.Message, types.CallbackQuery)):
            return arg
    return None


def _event_context(message_or_callback: Any):
    if isinstance(message_or_callback, types.Message):
        return message_or_callback, message_or_callback.from_user.id
    if isinstance(message_or_callback, types.CallbackQuery):
        return message_or_callback.message, message_or_callback.from_user.id
    return None, None


def handle_bot_errors(error_message: str = GENERIC_ERROR):
    """Decorator для обработки ошибок в хендлерах бота.

    Unexpected exceptions are logged, counted in ``errors_total`` and
    answered with ``error_message``; the update is then dropped.

    Usage:
        @handle_bot_errors("Не удалось создать заявку")
        async def enter_name(self, message, state):
            ...
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(self, message_or_callback: Any, *args, **kwargs):
            try:
                return await func(self, message_or_callback, *args, **kwargs)
            except Exception as e:
                update = _find_update((message_or_callback, *args))
                event, user_id = _event_context(update)
                logger.error(
                    f"Error in {func.__name__}: {e}",
                    exc_info=True,
                    extra={"handler": func.__name__, "user_id": user_id},
                )
                monitor.record_error()

                if isinstance(update, types.CallbackQuery):
                    try:
                        await update.answer()
                    except TelegramAPIError as answer_error:
                        logger.debug(f"Failed to answer callback: {answer_error}")
                if event is not None:
                    try:
                        await event.answer(error_message)
                    except TelegramAPIError as send_error:
                        logger.error(f"Failed to send error message: {send_error}")
        return wrapper
    return decorator


async def on_dispatcher_error(event: ErrorEvent) -> bool:
    """Last-resort guard: log, count and drop the update"""
    update_id = event.update.update_id if event.update else None
    logger.error(
        f"Unhandled error for update {update_id}: {event.exception}",
        exc_info=event.exception,
    )
    monitor.record_error()
    return True


def setup_error_handlers(dispatcher) -> None:
    dispatcher.errors.register(on_dispatcher_error)
