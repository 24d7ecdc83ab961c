"""Telegram bot wrapper around aiogram with a throttled outbound queue."""

from __future__ import annotations

import asyncio
from contextlib import suppress
from typing import Awaitable, Callable, List, Optional

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.exceptions import TelegramAPIError
from aiogram.fsm.storage.base import BaseStorage
from aiogram.fsm.storage.memory import MemoryStorage
from asyncio_throttle import Throttler

from core import get_logger
from core.exceptions import TransportError

logger = get_logger(__name__)


class OptimizedBot:
    def __init__(
        self,
        token: str,
        rate_limit: int,
        worker_threads: int,
        message_queue_size: int,
        storage: Optional[BaseStorage] = None,
    ) -> None:
        # Plain text by default; list views opt into Markdown per message
        self.bot = Bot(token=token, default=DefaultBotProperties(link_preview_is_disabled=True))
        self.storage = storage or MemoryStorage()
        self.dispatcher = Dispatcher(storage=self.storage)
        self.rate_limit = rate_limit
        self.worker_threads = worker_threads
        self.message_queue: asyncio.Queue[Callable[[], Awaitable[None]]] = asyncio.Queue(
            maxsize=message_queue_size
        )
        self.throttler = Throttler(rate_limit=rate_limit, period=1.0)
        self.workers: List[asyncio.Task] = []

    async def start(self) -> None:
        self.workers = [asyncio.create_task(self._worker_loop()) for _ in range(self.worker_threads)]
        await self.dispatcher.start_polling(self.bot)

    async def stop(self) -> None:
        for worker in self.workers:
            worker.cancel()
        for worker in self.workers:
            with suppress(asyncio.CancelledError):
                await worker
        self.workers = []
        await self.dispatcher.storage.close()
        await self.bot.session.close()

    async def enqueue(self, task: Callable[[], Awaitable[None]]) -> None:
        await self.message_queue.put(task)

    async def send_text(self, chat_id: int, text: str, reply_markup=None) -> None:
        """Send one message within the outbound rate limit.

        Raises:
            TransportError: If the Telegram API rejects the message
        """
        try:
            async with self.throttler:
                await self.bot.send_message(chat_id, text, reply_markup=reply_markup)
        except TelegramAPIError as e:
            raise TransportError(f"Failed to send message to {chat_id}: {e}") from e

    async def enqueue_text(self, chat_id: int, text: str, reply_markup=None) -> None:
        """Queue a message for background delivery; failures are only logged."""

        async def deliver() -> None:
            await self.send_text(chat_id, text, reply_markup=reply_markup)

        await self.enqueue(deliver)

    async def _worker_loop(self) -> None:
        while True:
            task = await self.message_queue.get()
            try:
                await task()
            except Exception as e:
                logger.error(f"Outbound task failed: {e}", exc_info=True)
            finally:
                self.message_queue.task_done()
