"""Finite-state machine definitions for the booking conversations.

State attribute names equal the step names stored in ``user_states``.
"""

from typing import Dict, Optional

from aiogram.fsm.state import State, StatesGroup


class BookingStates(StatesGroup):
    select_item = State()
    waiting_date = State()
    enter_name = State()
    phone_number = State()
    confirmation = State()


class ManagerBookingStates(StatesGroup):
    manager_waiting_client_name = State()
    manager_waiting_client_phone = State()
    manager_waiting_item_selection = State()
    manager_waiting_date_type = State()
    manager_waiting_single_date = State()
    manager_waiting_start_date = State()
    manager_waiting_end_date = State()
    manager_waiting_comment = State()
    manager_confirm_booking = State()


class ScheduleStates(StatesGroup):
    schedule_select_item = State()
    view_schedule = State()
    waiting_specific_date = State()


ALL_GROUPS = (BookingStates, ManagerBookingStates, ScheduleStates)

# "select_item" -> "BookingStates:select_item"
STEP_TO_STATE: Dict[str, str] = {
    state.state.split(":", 1)[1]: state.state
    for group in ALL_GROUPS
    for state in group.__all_states__
}


def step_to_state(step: Optional[str]) -> Optional[str]:
    if not step:
        return None
    return STEP_TO_STATE.get(step)


def state_to_step(state: Optional[str]) -> Optional[str]:
    if not state:
        return None
    _, _, name = state.partition(":")
    return name or state
