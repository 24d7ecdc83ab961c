"""aiogram FSM storage backed by the ``user_states`` table."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from aiogram.fsm.state import State
from aiogram.fsm.storage.base import BaseStorage, StateType, StorageKey

from bot.states import state_to_step, step_to_state
from core import get_logger
from database.models import UserState
from database.store import Store
from services.state_manager import Steps

logger = get_logger(__name__)


class StoreStorage(BaseStorage):
    """FSM storage sharing rows with :class:`ConversationStateManager`.

    The row is keyed by user id only, so the same conversation continues
    whichever chat the user writes from. ``main_menu`` is reported to
    aiogram as "no state".
    """

    def __init__(self, store: Store) -> None:
        self.store = store

    async def _load(self, key: StorageKey) -> Optional[UserState]:
        return await self.store.get_state(key.user_id)

    async def set_state(self, key: StorageKey, state: StateType = None) -> None:
        raw = state.state if isinstance(state, State) else state
        step = state_to_step(raw)
        current = await self._load(key)
        data = dict(current.data) if current else {}

        if step is None:
            if current is None:
                return
            if not data:
                await self.store.clear_state(key.user_id)
                return
            step = Steps.MAIN_MENU

        await self.store.set_state(UserState(user_id=key.user_id, step=step, data=data))

    async def get_state(self, key: StorageKey) -> Optional[str]:
        current = await self._load(key)
        if current is None or current.step == Steps.MAIN_MENU:
            return None
        resolved = step_to_state(current.step)
        if resolved is None:
            logger.warning(f"Unknown stored step {current.step!r}", extra={"user_id": key.user_id})
        return resolved

    async def set_data(self, key: StorageKey, data: Mapping[str, Any]) -> None:
        current = await self._load(key)
        step = current.step if current else Steps.MAIN_MENU
        if not data and step == Steps.MAIN_MENU:
            if current is not None:
                await self.store.clear_state(key.user_id)
            return
        await self.store.set_state(UserState(user_id=key.user_id, step=step, data=dict(data)))

    async def get_data(self, key: StorageKey) -> Dict[str, Any]:
        current = await self._load(key)
        return dict(current.data) if current else {}

    async def close(self) -> None:
        # The store is owned and closed by the application
        pass
