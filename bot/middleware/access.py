"""User bookkeeping and blacklist filtering for incoming updates."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict

from aiogram import BaseMiddleware
from aiogram.types import CallbackQuery, Message, TelegramObject
from cachetools import TTLCache

from core import get_logger
from database.models import User
from services.user_service import UserService

logger = get_logger(__name__)


class AccessMiddleware(BaseMiddleware):
    """Drops blacklisted users and keeps the user table current.

    A full profile upsert happens at most once per ``profile_ttl`` seconds
    per user; in between only ``last_activity`` is touched. Handlers
    receive ``is_manager`` in their data.
    """

    def __init__(self, user_service: UserService, profile_ttl: float = 600.0) -> None:
        super().__init__()
        self.user_service = user_service
        self._saved: TTLCache = TTLCache(maxsize=10_000, ttl=profile_ttl)

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        from_user = event.from_user if isinstance(event, (Message, CallbackQuery)) else None
        if from_user is None:
            return await handler(event, data)

        if self.user_service.is_blacklisted(from_user.id):
            logger.info("Dropped update from blacklisted user", extra={"user_id": from_user.id})
            return None

        if from_user.id in self._saved:
            await self.user_service.touch_activity(from_user.id)
        else:
            await self.user_service.save_user(User(
                telegram_id=from_user.id,
                username=from_user.username,
                first_name=from_user.first_name or "",
                last_name=from_user.last_name or "",
                language_code=from_user.language_code,
            ))
            self._saved[from_user.id] = True

        data["is_manager"] = self.user_service.is_manager(from_user.id)
        return await handler(event, data)
