"""Tests for the aiogram FSM storage over user_states."""

import pytest
from aiogram.fsm.storage.base import StorageKey

from bot.states import BookingStates, STEP_TO_STATE, state_to_step, step_to_state
from bot.storage import StoreStorage
from services.state_manager import Steps

KEY = StorageKey(bot_id=1, chat_id=5, user_id=5)


def test_every_step_has_a_state():
    for step in (Steps.WAITING_DATE, Steps.MANAGER_CONFIRM, Steps.WAITING_SPECIFIC_DATE):
        assert state_to_step(step_to_state(step)) == step
    assert Steps.MAIN_MENU not in STEP_TO_STATE


@pytest.mark.asyncio
async def test_set_and_get_state(store):
    storage = StoreStorage(store)
    await storage.set_state(KEY, BookingStates.waiting_date)

    assert await storage.get_state(KEY) == "BookingStates:waiting_date"
    assert (await store.get_state(5)).step == Steps.WAITING_DATE


@pytest.mark.asyncio
async def test_state_manager_rows_are_visible(store, state_manager):
    await state_manager.set(5, Steps.ENTER_NAME, {"item_id": 1, "date": "2030-01-20"})
    storage = StoreStorage(store)

    assert await storage.get_state(KEY) == BookingStates.enter_name.state
    assert await storage.get_data(KEY) == {"item_id": 1, "date": "2030-01-20"}


@pytest.mark.asyncio
async def test_data_survives_state_change(store):
    storage = StoreStorage(store)
    await storage.set_state(KEY, BookingStates.waiting_date)
    await storage.set_data(KEY, {"item_id": 3})
    await storage.set_state(KEY, BookingStates.enter_name)

    assert await storage.get_data(KEY) == {"item_id": 3}


@pytest.mark.asyncio
async def test_clearing(store):
    storage = StoreStorage(store)
    await storage.set_state(KEY, BookingStates.waiting_date)
    await storage.set_state(KEY, None)
    # Data is empty, so the row goes away
    assert await store.get_state(5) is None
    assert await storage.get_state(KEY) is None


@pytest.mark.asyncio
async def test_main_menu_with_data(store):
    storage = StoreStorage(store)
    await storage.set_data(KEY, {"page": 2})

    assert await storage.get_state(KEY) is None
    assert await storage.get_data(KEY) == {"page": 2}
    await storage.set_data(KEY, {})
    assert await store.get_state(5) is None


@pytest.mark.asyncio
async def test_unknown_step(store, state_manager):
    await state_manager.set(5, "retired_step")
    assert await StoreStorage(store).get_state(KEY) is None
