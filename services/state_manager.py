"""Per-user conversation step machine backed by the store."""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, FrozenSet, Iterable, Optional

from core import get_logger
from core.constants import RateLimitDefaults
from database.models import UserState
from database.store import Store

logger = get_logger(__name__)


class Steps:
    """Conversation step names."""

    MAIN_MENU = "main_menu"

    # End-user booking capture
    SELECT_ITEM = "select_item"
    WAITING_DATE = "waiting_date"
    ENTER_NAME = "enter_name"
    PHONE_NUMBER = "phone_number"
    CONFIRMATION = "confirmation"

    # Manager booking creation
    MANAGER_CLIENT_NAME = "manager_waiting_client_name"
    MANAGER_CLIENT_PHONE = "manager_waiting_client_phone"
    MANAGER_ITEM_SELECTION = "manager_waiting_item_selection"
    MANAGER_DATE_TYPE = "manager_waiting_date_type"
    MANAGER_SINGLE_DATE = "manager_waiting_single_date"
    MANAGER_START_DATE = "manager_waiting_start_date"
    MANAGER_END_DATE = "manager_waiting_end_date"
    MANAGER_COMMENT = "manager_waiting_comment"
    MANAGER_CONFIRM = "manager_confirm_booking"

    # Schedule inspection
    SCHEDULE_SELECT_ITEM = "schedule_select_item"
    VIEW_SCHEDULE = "view_schedule"
    WAITING_SPECIFIC_DATE = "waiting_specific_date"


_USER_CONTACT = ("item_id", "date", "user_name")
_MANAGER_BASE = ("client_name", "client_phone")

# Scratch keys each step needs before it can accept input
REQUIRED_FIELDS: Dict[str, FrozenSet[str]] = {
    Steps.MAIN_MENU: frozenset(),
    Steps.SELECT_ITEM: frozenset(),
    Steps.WAITING_DATE: frozenset({"item_id"}),
    Steps.ENTER_NAME: frozenset({"item_id", "date"}),
    Steps.PHONE_NUMBER: frozenset(_USER_CONTACT),
    Steps.CONFIRMATION: frozenset({*_USER_CONTACT, "phone"}),
    Steps.MANAGER_CLIENT_NAME: frozenset({"is_manager_booking"}),
    Steps.MANAGER_CLIENT_PHONE: frozenset({"is_manager_booking", "client_name"}),
    Steps.MANAGER_ITEM_SELECTION: frozenset({"is_manager_booking", *_MANAGER_BASE}),
    Steps.MANAGER_DATE_TYPE: frozenset({"is_manager_booking", *_MANAGER_BASE, "item_id"}),
    Steps.MANAGER_SINGLE_DATE: frozenset({"is_manager_booking", *_MANAGER_BASE, "item_id", "date_type"}),
    Steps.MANAGER_START_DATE: frozenset({"is_manager_booking", *_MANAGER_BASE, "item_id", "date_type"}),
    Steps.MANAGER_END_DATE: frozenset({"is_manager_booking", *_MANAGER_BASE, "item_id", "date_type", "start_date"}),
    Steps.MANAGER_COMMENT: frozenset({"is_manager_booking", *_MANAGER_BASE, "item_id", "date_type", "dates"}),
    Steps.MANAGER_CONFIRM: frozenset({"is_manager_booking", *_MANAGER_BASE, "item_id", "date_type", "dates", "comment"}),
    Steps.SCHEDULE_SELECT_ITEM: frozenset(),
    Steps.VIEW_SCHEDULE: frozenset({"item_id"}),
    Steps.WAITING_SPECIFIC_DATE: frozenset({"item_id"}),
}

PREVIOUS_STEP: Dict[str, str] = {
    Steps.SELECT_ITEM: Steps.MAIN_MENU,
    Steps.WAITING_DATE: Steps.SELECT_ITEM,
    Steps.ENTER_NAME: Steps.WAITING_DATE,
    Steps.PHONE_NUMBER: Steps.ENTER_NAME,
    Steps.CONFIRMATION: Steps.PHONE_NUMBER,
    Steps.MANAGER_CLIENT_NAME: Steps.MAIN_MENU,
    Steps.MANAGER_CLIENT_PHONE: Steps.MANAGER_CLIENT_NAME,
    Steps.MANAGER_ITEM_SELECTION: Steps.MANAGER_CLIENT_PHONE,
    Steps.MANAGER_DATE_TYPE: Steps.MANAGER_ITEM_SELECTION,
    Steps.MANAGER_SINGLE_DATE: Steps.MANAGER_DATE_TYPE,
    Steps.MANAGER_START_DATE: Steps.MANAGER_DATE_TYPE,
    Steps.MANAGER_END_DATE: Steps.MANAGER_START_DATE,
    Steps.MANAGER_CONFIRM: Steps.MANAGER_COMMENT,
    Steps.SCHEDULE_SELECT_ITEM: Steps.MAIN_MENU,
    Steps.VIEW_SCHEDULE: Steps.SCHEDULE_SELECT_ITEM,
    Steps.WAITING_SPECIFIC_DATE: Steps.VIEW_SCHEDULE,
}

KNOWN_STEPS: FrozenSet[str] = frozenset(REQUIRED_FIELDS)


def missing_fields(state: UserState) -> FrozenSet[str]:
    """Required keys absent (or None) in the state's scratch data."""
    required = REQUIRED_FIELDS.get(state.step, frozenset())
    return frozenset(key for key in required if state.data.get(key) is None)


def is_consistent(state: UserState) -> bool:
    return state.step in KNOWN_STEPS and not missing_fields(state)


def previous_step(state: UserState) -> str:
    if state.step == Steps.MANAGER_COMMENT:
        if state.data.get("date_type") == "range":
            return Steps.MANAGER_END_DATE
        return Steps.MANAGER_SINGLE_DATE
    return PREVIOUS_STEP.get(state.step, Steps.MAIN_MENU)


def _encode(value: Any) -> Any:
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [_encode(item) for item in value]
    return value


class ConversationStateManager:
    """Reads and advances the per-user step machine.

    Every write replaces the whole row, so a step and its scratch data are
    always stored together.
    """

    def __init__(
        self,
        store: Store,
        rate_limit_messages: int = RateLimitDefaults.MAX_MESSAGES,
        rate_limit_window: int = RateLimitDefaults.WINDOW_SECONDS,
    ) -> None:
        self.store = store
        self.rate_limit_messages = rate_limit_messages
        self.rate_limit_window = rate_limit_window

    async def get(self, user_id: int) -> UserState:
        """Current state, or an empty main-menu state for a new user."""
        state = await self.store.get_state(user_id)
        if state is None:
            return UserState(user_id=user_id, step=Steps.MAIN_MENU, data={})
        return state

    async def load_consistent(self, user_id: int, expected_steps: Optional[Iterable[str]] = None) -> Optional[UserState]:
        """Return the state if it is usable, otherwise reset to the main menu.

        Args:
            user_id: Telegram user ID
            expected_steps: Steps the caller is able to handle

        Returns:
            The state, or None when it was reset
        """
        state = await self.get(user_id)
        expected = frozenset(expected_steps) if expected_steps is not None else None
        if is_consistent(state) and (expected is None or state.step in expected):
            return state
        logger.warning(
            f"Inconsistent conversation state {state.step!r}, missing={sorted(missing_fields(state))}",
            extra={"user_id": user_id},
        )
        await self.clear(user_id)
        return None

    async def set(self, user_id: int, step: str, data: Optional[Dict[str, Any]] = None) -> UserState:
        """Replace step and data."""
        state = UserState(user_id=user_id, step=step, data={k: _encode(v) for k, v in (data or {}).items()})
        await self.store.set_state(state)
        return state

    async def advance(self, user_id: int, step: str, **updates: Any) -> UserState:
        """Move to ``step`` merging ``updates`` into the existing scratch data."""
        current = await self.get(user_id)
        data = dict(current.data)
        data.update({key: _encode(value) for key, value in updates.items()})
        state = UserState(user_id=user_id, step=step, data=data)
        await self.store.set_state(state)
        logger.debug(f"Step {current.step} -> {step}", extra={"user_id": user_id})
        return state

    async def set_step(self, user_id: int, step: str) -> UserState:
        return await self.advance(user_id, step)

    async def set_data(self, user_id: int, **updates: Any) -> UserState:
        current = await self.get(user_id)
        return await self.advance(user_id, current.step, **updates)

    async def clear(self, user_id: int) -> None:
        await self.store.clear_state(user_id)

    async def back(self, user_id: int) -> UserState:
        """Go to the preceding step, keeping the scratch data."""
        current = await self.get(user_id)
        target = previous_step(current)
        if target == Steps.MAIN_MENU:
            await self.clear(user_id)
            return UserState(user_id=user_id, step=Steps.MAIN_MENU, data={})
        state = UserState(user_id=user_id, step=target, data=dict(current.data))
        await self.store.set_state(state)
        return state

    async def check_rate_limit(self, user_id: int, is_manager: bool = False) -> bool:
        """Count an attempt; managers are never limited."""
        if is_manager:
            return True
        return await self.store.check_rate_limit(
            user_id, self.rate_limit_messages, self.rate_limit_window
        )
