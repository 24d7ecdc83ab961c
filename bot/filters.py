"""Custom handler filters."""

from __future__ import annotations

from typing import Union

from aiogram import types
from aiogram.filters import BaseFilter


class ManagerFilter(BaseFilter):
    """Passes only for users listed as managers.

    ``is_manager`` is put into the handler data by the access middleware.
    """

    async def __call__(  # type: ignore[override]
        self,
        event: Union[types.Message, types.CallbackQuery],
        is_manager: bool = False,
    ) -> bool:
        return is_manager
