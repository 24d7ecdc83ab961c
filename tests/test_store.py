"""Tests for the SQLite store: capacity, versioning, outbox and state."""

import asyncio
from datetime import date, datetime, timedelta

import aiosqlite
import pytest

from core.constants import BookingStatus, SyncTaskKind
from core.exceptions import (
    BookingError,
    CapacityConflictError,
    ConcurrentModificationError,
    InvalidTransitionError,
    NotAvailableError,
    NotFoundError,
    ValidationError,
)
from database import open_store
from database.models import Booking, User, UserState

BOOKING_DAY = date(2030, 1, 20)


def make_booking(item, user_id=100, day=BOOKING_DAY, status="pending"):
    return Booking(
        user_id=user_id,
        item_id=item.id,
        item_name=item.name,
        date=day,
        user_name="Иван",
        phone="+7 (999) 123-45-67",
        status=status,
    )


class TestItems:

    @pytest.mark.asyncio
    async def test_list_sorted_and_find_by_name(self, store):
        await store.create_item("Бета", 1, 2)
        await store.create_item("Альфа", 1, 1)
        await store.create_item("Гамма", 1, 2)

        names = [item.name for item in await store.list_active_items_sorted()]
        assert names == ["Альфа", "Бета", "Гамма"]
        assert (await store.get_item_by_name("  альфа ")).name == "Альфа"
        assert await store.get_max_sort_order() == 2

    @pytest.mark.asyncio
    async def test_deactivated_items_are_hidden(self, store, item):
        await store.deactivate_item(item.id)
        assert await store.list_active_items_sorted() == []
        with pytest.raises(NotFoundError):
            await store.get_item_by_name(item.name)

    @pytest.mark.asyncio
    async def test_duplicate_name_ignores_case(self, store):
        await store.create_item("Проектор", 1, 1)
        with pytest.raises(ValidationError, match="уже существует"):
            await store.create_item("проектор", 1, 2)
        assert [item.name for item in await store.list_active_items_sorted()] == ["Проектор"]
        assert (await store.get_item_by_name("ПРОЕКТОР")).name == "Проектор"

    @pytest.mark.asyncio
    async def test_name_is_free_after_deactivation(self, store, item):
        await store.deactivate_item(item.id)
        again = await store.create_item(item.name.upper(), 1, 1)
        assert (await store.get_item_by_name(item.name)).id == again.id

    @pytest.mark.asyncio
    async def test_rename_to_taken_name(self, store, item):
        other = await store.create_item("Проектор", 1, 2)
        with pytest.raises(ValidationError):
            await store.update_item(other.id, name="КОФЕМАШИНА")
        assert (await store.get_item_by_id(other.id)).name == "Проектор"

    @pytest.mark.asyncio
    async def test_legacy_items_table_is_upgraded(self, tmp_path):
        path = str(tmp_path / "legacy.sqlite")
        async with aiosqlite.connect(path) as conn:
            await conn.execute(
                """
                CREATE TABLE items (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    description TEXT,
                    total_quantity INTEGER NOT NULL DEFAULT 1 CHECK (total_quantity >= 1),
                    sort_order INTEGER NOT NULL DEFAULT 0,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            await conn.execute(
                "CREATE UNIQUE INDEX idx_items_active_name ON items(name) WHERE is_active = 1"
            )
            await conn.execute(
                "INSERT INTO items (name, total_quantity, sort_order, created_at, updated_at) "
                "VALUES ('Генератор', 1, 1, '2030-01-01T00:00:00', '2030-01-01T00:00:00')"
            )
            await conn.commit()

        upgraded = await open_store(path, pool_size=1)
        try:
            assert (await upgraded.get_item_by_name("генератор")).name == "Генератор"
            with pytest.raises(ValidationError):
                await upgraded.create_item("ГЕНЕРАТОР", 1, 2)
        finally:
            await upgraded.close()

    @pytest.mark.asyncio
    async def test_missing_item(self, store):
        with pytest.raises(NotFoundError):
            await store.get_item_by_id(999)
        with pytest.raises(NotFoundError):
            await store.reorder_item(999, 1)

    @pytest.mark.asyncio
    async def test_capacity_decrease_conflict(self, store, item):
        await store.create_booking_with_lock(make_booking(item, user_id=1))
        await store.create_booking_with_lock(make_booking(item, user_id=2))

        with pytest.raises(CapacityConflictError) as exc_info:
            await store.update_item(item.id, total_quantity=1)
        assert exc_info.value.booked == 2
        assert (await store.get_item_by_id(item.id)).total_quantity == 2

    @pytest.mark.asyncio
    async def test_capacity_decrease_allowed(self, store, item):
        await store.create_booking_with_lock(make_booking(item))
        updated = await store.update_item(item.id, name="Новая", total_quantity=1)
        assert updated.total_quantity == 1
        assert updated.name == "Новая"


class TestBookings:

    @pytest.mark.asyncio
    async def test_create_assigns_id_and_version(self, store, item):
        booking = await store.create_booking_with_lock(make_booking(item))
        assert booking.id is not None
        assert booking.version == 1
        stored = await store.get_booking(booking.id)
        assert stored.date == BOOKING_DAY
        assert stored.status == "pending"

    @pytest.mark.asyncio
    async def test_capacity_is_enforced(self, store, item):
        await store.create_booking_with_lock(make_booking(item, user_id=1))
        await store.create_booking_with_lock(make_booking(item, user_id=2))
        with pytest.raises(NotAvailableError):
            await store.create_booking_with_lock(make_booking(item, user_id=3))
        assert await store.booked_count(item.id, BOOKING_DAY) == 2
        assert not await store.check_availability(item.id, BOOKING_DAY)

    @pytest.mark.asyncio
    async def test_deactivated_item_cannot_be_booked(self, store, item):
        await store.deactivate_item(item.id)
        with pytest.raises(NotFoundError):
            await store.create_booking_with_lock(make_booking(item))
        assert await store.booked_count(item.id, BOOKING_DAY) == 0
        assert await store.user_bookings(100, date(2030, 1, 1)) == []

    @pytest.mark.asyncio
    async def test_concurrent_creates_never_overbook(self, store, item):
        results = await asyncio.gather(
            *(store.create_booking_with_lock(make_booking(item, user_id=n)) for n in range(6)),
            return_exceptions=True,
        )
        created = [r for r in results if isinstance(r, Booking)]
        assert len(created) == 2
        assert all(isinstance(r, BookingError) for r in results if not isinstance(r, Booking))
        assert await store.booked_count(item.id, BOOKING_DAY) == 2

    @pytest.mark.asyncio
    async def test_canceled_booking_frees_capacity(self, store, item):
        first = await store.create_booking_with_lock(make_booking(item, user_id=1))
        await store.create_booking_with_lock(make_booking(item, user_id=2))

        await store.update_booking_status_with_version(first.id, 1, BookingStatus.CANCELED.value)
        assert await store.check_availability(item.id, BOOKING_DAY)

    @pytest.mark.asyncio
    async def test_stale_version(self, store, item):
        booking = await store.create_booking_with_lock(make_booking(item))
        updated = await store.update_booking_status_with_version(booking.id, 1, "confirmed")
        assert updated.version == 2

        with pytest.raises(ConcurrentModificationError):
            await store.update_booking_status_with_version(booking.id, 1, "completed")
        assert (await store.get_booking(booking.id)).status == "confirmed"

    @pytest.mark.asyncio
    async def test_invalid_transition(self, store, item):
        booking = await store.create_booking_with_lock(make_booking(item))
        await store.update_booking_status_with_version(booking.id, 1, "canceled")
        with pytest.raises(InvalidTransitionError) as exc_info:
            await store.update_booking_status_with_version(booking.id, 2, "confirmed")
        assert exc_info.value.current == "canceled"

    @pytest.mark.asyncio
    async def test_change_item_checks_new_capacity(self, store, item):
        other = await store.create_item("Проектор", 1, 2)
        await store.create_booking_with_lock(make_booking(other, user_id=1))
        booking = await store.create_booking_with_lock(make_booking(item, user_id=2))

        with pytest.raises(NotAvailableError):
            await store.update_booking_item_and_status_with_version(
                booking.id, 1, other.id, other.name, "changed"
            )

        third = await store.create_item("Экран", 1, 3)
        changed = await store.update_booking_item_and_status_with_version(
            booking.id, 1, third.id, third.name, "changed"
        )
        assert changed.item_id == third.id
        assert changed.item_name == "Экран"
        assert changed.status == "changed"
        assert changed.version == 2

    @pytest.mark.asyncio
    async def test_booking_with_availability_counts_own_unit(self, store, item):
        booking = await store.create_booking_with_lock(make_booking(item, user_id=1))
        await store.create_booking_with_lock(make_booking(item, user_id=2))

        loaded, available = await store.get_booking_with_availability(booking.id, item.id)
        assert loaded.id == booking.id
        assert available is True

    @pytest.mark.asyncio
    async def test_availability_for_period(self, store, item):
        await store.create_booking_with_lock(make_booking(item, user_id=1))
        await store.create_booking_with_lock(make_booking(item, user_id=2))
        await store.create_booking_with_lock(make_booking(item, day=BOOKING_DAY + timedelta(days=1)))

        period = await store.availability_for_period(item.id, BOOKING_DAY - timedelta(days=1), 3)
        assert [(a.booked, a.available) for a in period] == [(0, 2), (2, 0), (1, 1)]
        assert not period[1].is_available

    @pytest.mark.asyncio
    async def test_daily_bookings_has_every_day(self, store, item):
        await store.create_booking_with_lock(make_booking(item))
        daily = await store.daily_bookings_in_range(BOOKING_DAY, BOOKING_DAY + timedelta(days=2))
        assert len(daily) == 3
        assert len(daily[BOOKING_DAY]) == 1
        assert daily[BOOKING_DAY + timedelta(days=1)] == []

    @pytest.mark.asyncio
    async def test_summary_and_filters(self, store, item):
        first = await store.create_booking_with_lock(make_booking(item, user_id=1))
        await store.create_booking_with_lock(make_booking(item, user_id=2))
        await store.update_booking_status_with_version(first.id, 1, "confirmed")

        assert await store.booking_summary(BOOKING_DAY, BOOKING_DAY) == {"confirmed": 1, "pending": 1}
        confirmed = await store.bookings_for_date(BOOKING_DAY, ["confirmed"])
        assert [b.id for b in confirmed] == [first.id]
        assert [b.user_id for b in await store.user_bookings(2, BOOKING_DAY)] == [2]


class TestUsers:

    @pytest.mark.asyncio
    async def test_upsert_keeps_phone(self, store):
        await store.upsert_user(User(telegram_id=5, first_name="Анна", phone="79991234567"))
        user = await store.upsert_user(User(telegram_id=5, first_name="Анна-Мария"))
        assert user.first_name == "Анна-Мария"
        assert user.phone == "79991234567"
        assert await store.count_users() == 1

    @pytest.mark.asyncio
    async def test_update_phone_unknown_user(self, store):
        with pytest.raises(NotFoundError):
            await store.update_user_phone(404, "79991234567")

    @pytest.mark.asyncio
    async def test_active_users(self, store):
        await store.upsert_user(User(telegram_id=1))
        await store.upsert_user(User(telegram_id=2, last_activity=datetime.now() - timedelta(days=60)))
        active = await store.list_active_users_since(30)
        assert [user.telegram_id for user in active] == [1]


class TestOutbox:

    @pytest.mark.asyncio
    async def test_schedule_tasks_are_deduplicated(self, store):
        payload = '{"start": "2030-01-01", "end": "2030-02-01"}'
        first = await store.enqueue_task(SyncTaskKind.SYNC_SCHEDULE.value, payload=payload)
        second = await store.enqueue_task(SyncTaskKind.SYNC_SCHEDULE.value, payload=payload)
        assert first == second

        await store.mark_completed(first)
        third = await store.enqueue_task(SyncTaskKind.SYNC_SCHEDULE.value, payload=payload)
        assert third != first

    @pytest.mark.asyncio
    async def test_unknown_kind(self, store):
        with pytest.raises(ValueError):
            await store.enqueue_task("drop_everything")

    @pytest.mark.asyncio
    async def test_lease_keeps_booking_order(self, store):
        upsert = await store.enqueue_task(SyncTaskKind.UPSERT.value, booking_id=1, payload="{}")
        status = await store.enqueue_task(SyncTaskKind.UPDATE_STATUS.value, booking_id=1, booking_status="confirmed")
        other = await store.enqueue_task(SyncTaskKind.UPSERT.value, booking_id=2, payload="{}")

        leased = [task.id for task in await store.lease_due_pending_tasks(10)]
        assert leased == [upsert, other]

        await store.mark_completed(upsert)
        leased = [task.id for task in await store.lease_due_pending_tasks(10)]
        assert leased == [status, other]

    @pytest.mark.asyncio
    async def test_lease_by_kind_and_retry_time(self, store):
        task_id = await store.enqueue_task(SyncTaskKind.UPSERT.value, booking_id=1, payload="{}")
        now = datetime.now()
        await store.mark_retry(task_id, now + timedelta(minutes=5), "boom")

        assert await store.lease_due_pending_tasks(10, now=now) == []
        due = await store.lease_due_pending_tasks(10, now=now + timedelta(minutes=6), kind="upsert")
        assert [task.retry_count for task in due] == [1]
        assert await store.lease_due_pending_tasks(10, now=now + timedelta(minutes=6), kind="sync_schedule") == []

    @pytest.mark.asyncio
    async def test_failed_tasks(self, store):
        task_id = await store.enqueue_task(SyncTaskKind.UPSERT.value, booking_id=1, payload="{}")
        await store.mark_failed(task_id, "bad payload")

        failed = await store.list_failed()
        assert [task.last_error for task in failed] == ["bad payload"]
        assert await store.count_tasks_by_status() == {"failed": 1}
        assert await store.lease_due_pending_tasks(10) == []


class TestStateAndRateLimit:

    @pytest.mark.asyncio
    async def test_state_round_trip(self, store):
        await store.set_state(UserState(user_id=1, step="enter_name", data={"item_id": 3, "date": "2030-01-20"}))
        state = await store.get_state(1)
        assert state.step == "enter_name"
        assert state.get_int("item_id") == 3
        assert state.get_date("date") == BOOKING_DAY

        await store.clear_state(1)
        assert await store.get_state(1) is None

    @pytest.mark.asyncio
    async def test_rate_limit_window(self, store):
        assert await store.check_rate_limit(1, limit=2, window=60, now=1000.0)
        assert await store.check_rate_limit(1, limit=2, window=60, now=1010.0)
        assert not await store.check_rate_limit(1, limit=2, window=60, now=1020.0)
        assert await store.check_rate_limit(2, limit=2, window=60, now=1020.0)
        assert await store.check_rate_limit(1, limit=2, window=60, now=1060.0)
