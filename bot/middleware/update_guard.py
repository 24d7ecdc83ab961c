"""Per-update deadline and processing metrics."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

from aiogram import BaseMiddleware
from aiogram.types import TelegramObject, Update

from core import get_logger
from core.constants import SchedulerDefaults
from utils.performance import PerformanceMonitor, monitor as default_monitor

logger = get_logger(__name__)


def _is_command(event: TelegramObject) -> bool:
    message = event.message if isinstance(event, Update) else None
    return bool(message and message.text and message.text.startswith("/"))


class UpdateGuardMiddleware(BaseMiddleware):
    """Outer update middleware: times each update and enforces a deadline."""

    def __init__(
        self,
        timeout: float = SchedulerDefaults.UPDATE_TIMEOUT,
        monitor: Optional[PerformanceMonitor] = None,
    ) -> None:
        super().__init__()
        self.timeout = timeout
        self.monitor = monitor or default_monitor

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        with self.monitor.track_update(is_command=_is_command(event)):
            try:
                return await asyncio.wait_for(handler(event, data), timeout=self.timeout)
            except asyncio.TimeoutError:
                update_id = event.update_id if isinstance(event, Update) else None
                logger.warning(f"Update {update_id} exceeded {self.timeout}s and was dropped")
                self.monitor.record_error()
                return None
