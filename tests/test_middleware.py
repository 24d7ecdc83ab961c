"""Tests for bot middleware."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from aiogram.types import CallbackQuery, Message

from bot.middleware import AccessMiddleware, RateLimitMiddleware, UpdateGuardMiddleware
from bot.middleware.rate_limit import THROTTLE_NOTICE
from services.state_manager import ConversationStateManager
from services.user_service import UserService


def make_message(user_id=100):
    message = MagicMock(spec=Message)
    message.from_user = MagicMock()
    message.from_user.id = user_id
    message.from_user.username = "ivan"
    message.from_user.first_name = "Иван"
    message.from_user.last_name = None
    message.from_user.language_code = "ru"
    message.answer = AsyncMock()
    return message


def make_callback(user_id=100):
    callback = MagicMock(spec=CallbackQuery)
    callback.from_user = MagicMock()
    callback.from_user.id = user_id
    callback.answer = AsyncMock()
    return callback


class TestAccessMiddleware:

    @pytest.mark.asyncio
    async def test_blacklisted_user_is_dropped(self, store):
        middleware = AccessMiddleware(UserService(store, blacklist=[100]))
        handler = AsyncMock()

        assert await middleware(handler, make_message(), {}) is None
        handler.assert_not_awaited()
        assert await store.count_users() == 0

    @pytest.mark.asyncio
    async def test_saves_user_and_sets_role(self, store):
        middleware = AccessMiddleware(UserService(store, managers=[100]))
        handler = AsyncMock(return_value="ok")
        data = {}

        assert await middleware(handler, make_message(), data) == "ok"
        assert data["is_manager"] is True
        user = await store.get_user_by_platform_id(100)
        assert user.username == "ivan"
        assert user.last_name == ""

    @pytest.mark.asyncio
    async def test_profile_saved_once_per_ttl(self):
        user_service = MagicMock()
        user_service.is_blacklisted.return_value = False
        user_service.is_manager.return_value = False
        user_service.save_user = AsyncMock()
        user_service.touch_activity = AsyncMock()
        middleware = AccessMiddleware(user_service)

        for _ in range(3):
            await middleware(AsyncMock(), make_message(), {})
        user_service.save_user.assert_awaited_once()
        assert user_service.touch_activity.await_count == 2

    @pytest.mark.asyncio
    async def test_other_events_pass_through(self):
        handler = AsyncMock(return_value="ok")
        middleware = AccessMiddleware(MagicMock())
        assert await middleware(handler, object(), {}) == "ok"


class TestRateLimitMiddleware:

    @pytest.mark.asyncio
    async def test_notice_sent_once(self, store):
        middleware = RateLimitMiddleware(ConversationStateManager(store, rate_limit_messages=1, rate_limit_window=60))
        handler = AsyncMock()
        message = make_message()

        for _ in range(3):
            await middleware(handler, message, {"is_manager": False})

        handler.assert_awaited_once()
        message.answer.assert_awaited_once_with(THROTTLE_NOTICE)

    @pytest.mark.asyncio
    async def test_throttled_callback_is_answered(self, store):
        middleware = RateLimitMiddleware(ConversationStateManager(store, rate_limit_messages=1, rate_limit_window=60))
        callback = make_callback()

        for _ in range(3):
            await middleware(AsyncMock(), callback, {})

        assert callback.answer.await_count == 2
        assert callback.answer.call_args_list[0].args == (THROTTLE_NOTICE,)
        assert callback.answer.call_args_list[1].args == ()

    @pytest.mark.asyncio
    async def test_managers_bypass(self, store):
        middleware = RateLimitMiddleware(ConversationStateManager(store, rate_limit_messages=1, rate_limit_window=60))
        handler = AsyncMock()
        for _ in range(5):
            await middleware(handler, make_message(), {"is_manager": True})
        assert handler.await_count == 5


class TestUpdateGuardMiddleware:

    @pytest.mark.asyncio
    async def test_passes_result(self):
        monitor = MagicMock()
        middleware = UpdateGuardMiddleware(timeout=1.0, monitor=monitor)
        assert await middleware(AsyncMock(return_value=5), object(), {}) == 5
        monitor.track_update.assert_called_once_with(is_command=False)

    @pytest.mark.asyncio
    async def test_timeout_drops_update(self):
        monitor = MagicMock()
        middleware = UpdateGuardMiddleware(timeout=0.01, monitor=monitor)

        async def slow(event, data):
            await asyncio.sleep(1)

        assert await middleware(slow, object(), {}) is None
        monitor.record_error.assert_called_once()
