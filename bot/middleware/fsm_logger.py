"""Middleware для логирования переходов между шагами диалога."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from aiogram import BaseMiddleware
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery, Message, TelegramObject

from bot.states import state_to_step
from core import get_logger
from services.state_manager import Steps

logger = get_logger(__name__)


def describe_event(event: TelegramObject) -> Tuple[Optional[int], str]:
    """User id and a short label of the triggering event."""
    if isinstance(event, Message):
        user_id = event.from_user.id if event.from_user else None
        return user_id, (event.text or f"[{event.content_type}]")[:50]
    if isinstance(event, CallbackQuery):
        return event.from_user.id, f"callback:{event.data}"[:50]
    return None, ""


class FSMLoggingMiddleware(BaseMiddleware):
    """Logs step changes; the step before the update is attached to handler errors."""

    def __init__(self, log_level: int = logging.INFO) -> None:
        self.log_level = log_level
        super().__init__()

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        state: Optional[FSMContext] = data.get("state")
        user_id, label = describe_event(event)
        if state is None or user_id is None:
            return await handler(event, data)

        before = state_to_step(await state.get_state()) or Steps.MAIN_MENU
        try:
            result = await handler(event, data)
        except Exception as e:
            logger.error(
                f"Handler failed at step {before} on {label!r}: {e}",
                extra={"user_id": user_id},
            )
            raise

        after = state_to_step(await state.get_state()) or Steps.MAIN_MENU
        if before != after:
            logger.log(self.log_level, f"Step {before} → {after} on {label!r}", extra={"user_id": user_id})
        return result
