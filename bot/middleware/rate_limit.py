"""Per-user rate limiting middleware backed by the store."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict

from aiogram import BaseMiddleware
from aiogram.exceptions import TelegramAPIError
from aiogram.types import CallbackQuery, Message, TelegramObject
from cachetools import TTLCache

from core import get_logger
from services.state_manager import ConversationStateManager

logger = get_logger(__name__)

THROTTLE_NOTICE = "⏱️ Слишком много запросов. Пожалуйста, подождите немного и попробуйте снова."


class RateLimitMiddleware(BaseMiddleware):
    """Sliding-window limiter for non-managers.

    Counters live in the ``rate_limits`` table so limits survive restarts.
    Over-limit updates are dropped; the notice is sent once per window.
    """

    def __init__(self, state_manager: ConversationStateManager) -> None:
        super().__init__()
        self.state_manager = state_manager
        self._notified: TTLCache = TTLCache(maxsize=10_000, ttl=max(state_manager.rate_limit_window, 1))

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        from_user = event.from_user if isinstance(event, (Message, CallbackQuery)) else None
        if from_user is None:
            return await handler(event, data)

        allowed = await self.state_manager.check_rate_limit(from_user.id, data.get("is_manager", False))
        if allowed:
            return await handler(event, data)

        logger.info("Rate limit exceeded", extra={"user_id": from_user.id})
        if from_user.id not in self._notified:
            self._notified[from_user.id] = True
            try:
                await event.answer(THROTTLE_NOTICE)
            except TelegramAPIError as e:
                logger.debug(f"Failed to send throttle notice: {e}")
        elif isinstance(event, CallbackQuery):
            # Callback spinners must still be stopped
            try:
                await event.answer()
            except TelegramAPIError as e:
                logger.debug(f"Failed to answer throttled callback: {e}")
        return None
