"""Pytest configuration and fixtures."""

from datetime import date, datetime

import pytest
import pytest_asyncio

from database import open_store
from services.booking_service import BookingService
from services.event_bus import EventBus
from services.state_manager import ConversationStateManager

# Far enough ahead that the real clock never overtakes booking dates
FIXED_NOW = datetime(2030, 1, 15, 10, 0)
TODAY = FIXED_NOW.date()
BOOKING_DAY = date(2030, 1, 20)


@pytest_asyncio.fixture
async def store(tmp_path):
    """Fresh migrated store in a temporary directory."""
    store = await open_store(str(tmp_path / "bookings.sqlite"), pool_size=3, busy_timeout_ms=5000)
    yield store
    await store.close()


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def booking_service(store, event_bus, clock):
    return BookingService(store, event_bus, max_booking_days=365, clock=clock)


@pytest.fixture
def state_manager(store):
    return ConversationStateManager(store, rate_limit_messages=3, rate_limit_window=60)


@pytest_asyncio.fixture
async def item(store):
    """Active item with two units."""
    return await store.create_item("Кофемашина", 2, 1)
