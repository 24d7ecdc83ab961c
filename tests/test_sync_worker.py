"""Tests for the outbox consumer and the spreadsheet mirror."""

import asyncio
import json
from contextlib import suppress
from datetime import date, datetime, timedelta

import pytest
from openpyxl import load_workbook

from core.constants import SyncTaskKind
from core.exceptions import RemoteSinkError
from database.models import Booking, User
from services.mirror import BOOKINGS_SHEET, SCHEDULE_SHEET, USERS_SHEET, ExcelMirrorSink
from services.sync_worker import RetryPolicy, SyncWorker

NOW = datetime(2030, 1, 15, 10, 0)
DAY = date(2030, 1, 20)


def booking_payload(booking_id=1, status="pending"):
    return json.dumps({
        "id": booking_id,
        "user_id": 100,
        "user_name": "Иван",
        "phone": "+7 (999) 123-45-67",
        "item_id": 1,
        "item_name": "Кофемашина",
        "date": DAY.isoformat(),
        "status": status,
    })


class FakeSink:
    """Records calls; fails the first ``failures`` of them."""

    def __init__(self, failures=0):
        self.failures = failures
        self.calls = []

    def _record(self, name, *args):
        if self.failures > 0:
            self.failures -= 1
            raise RemoteSinkError("mirror unavailable")
        self.calls.append((name, *args))

    async def append_booking(self, booking):
        self._record("append", booking.id)

    async def upsert_booking(self, booking):
        self._record("upsert", booking.id, booking.status)

    async def update_booking_status(self, booking_id, status):
        self._record("status", booking_id, status)

    async def replace_bookings_sheet(self, bookings):
        self._record("replace", [b.id for b in bookings])

    async def update_users_sheet(self, users):
        self._record("users", [u.telegram_id for u in users])

    async def update_schedule_sheet(self, start, end, daily_bookings, items):
        self._record("schedule", start, end, len(daily_bookings), [i.id for i in items])


def make_worker(store, sink, now=NOW, max_retries=2):
    return SyncWorker(
        store,
        sink,
        retry_policy=RetryPolicy(max_retries=max_retries, base_delay=1.0),
        clock=lambda: now,
    )


class TestRetryPolicy:

    def test_exponential_backoff(self):
        policy = RetryPolicy(max_retries=5, base_delay=2.0, max_delay=60.0)
        assert [policy.next_delay(n) for n in (1, 2, 3, 4)] == [2.0, 4.0, 8.0, 16.0]

    def test_capped(self):
        assert RetryPolicy(base_delay=2.0, max_delay=60.0).next_delay(10) == 60.0


class TestSyncWorker:

    @pytest.mark.asyncio
    async def test_processes_tasks_in_order(self, store):
        sink = FakeSink()
        await store.enqueue_task(SyncTaskKind.UPSERT.value, booking_id=1, payload=booking_payload())
        await store.enqueue_task(SyncTaskKind.UPDATE_STATUS.value, booking_id=1, booking_status="confirmed")
        worker = make_worker(store, sink)

        assert await worker.run_once() == 1
        assert await worker.run_once() == 1
        assert await worker.run_once() == 0
        assert sink.calls == [("upsert", 1, "pending"), ("status", 1, "confirmed")]
        assert await store.count_tasks_by_status() == {"completed": 2}

    @pytest.mark.asyncio
    async def test_failure_schedules_retry(self, store):
        sink = FakeSink(failures=1)
        task_id = await store.enqueue_task(SyncTaskKind.UPSERT.value, booking_id=1, payload=booking_payload())
        worker = make_worker(store, sink)

        await worker.run_once()

        task = await store.get_task(task_id)
        assert task.status == "retry"
        assert task.retry_count == 1
        assert task.last_error == "mirror unavailable"
        assert task.next_retry_at == NOW + timedelta(seconds=1)
        # Not due yet
        assert await worker.run_once() == 0

        later = make_worker(store, sink, now=NOW + timedelta(seconds=2))
        assert await later.run_once() == 1
        assert (await store.get_task(task_id)).status == "completed"

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, store):
        sink = FakeSink(failures=10)
        task_id = await store.enqueue_task(SyncTaskKind.UPSERT.value, booking_id=1, payload=booking_payload())

        for offset in range(3):
            await make_worker(store, sink, now=NOW + timedelta(hours=offset), max_retries=2).run_once()

        task = await store.get_task(task_id)
        assert task.status == "failed"
        assert task.retry_count == 2

    @pytest.mark.asyncio
    async def test_retry_blocks_later_tasks_of_same_booking(self, store):
        sink = FakeSink(failures=1)
        await store.enqueue_task(SyncTaskKind.UPSERT.value, booking_id=1, payload=booking_payload())
        await store.enqueue_task(SyncTaskKind.UPDATE_STATUS.value, booking_id=1, booking_status="confirmed")
        worker = make_worker(store, sink)

        await worker.run_once()
        await worker.run_once()
        assert sink.calls == []

    @pytest.mark.asyncio
    async def test_invalid_payload_fails_immediately(self, store):
        sink = FakeSink()
        task_id = await store.enqueue_task(SyncTaskKind.UPSERT.value, booking_id=1, payload="not json")
        await make_worker(store, sink).run_once()

        task = await store.get_task(task_id)
        assert task.status == "failed"
        assert task.retry_count == 0

    @pytest.mark.asyncio
    async def test_status_task_without_status_fails(self, store):
        task_id = await store.enqueue_task(SyncTaskKind.UPDATE_STATUS.value, booking_id=1)
        await make_worker(store, FakeSink()).run_once()
        assert (await store.get_task(task_id)).status == "failed"

    @pytest.mark.asyncio
    async def test_schedule_task_reads_store(self, store, item):
        sink = FakeSink()
        payload = json.dumps({"start": "2030-01-01", "end": "2030-01-10"})
        await store.enqueue_task(SyncTaskKind.SYNC_SCHEDULE.value, payload=payload)

        await make_worker(store, sink).run_once(SyncTaskKind.SYNC_SCHEDULE.value)
        assert sink.calls == [("schedule", date(2030, 1, 1), date(2030, 1, 10), 10, [item.id])]

    @pytest.mark.asyncio
    async def test_replace_rewrites_bookings_and_users(self, store, booking_service, item):
        created = await booking_service.create_booking(Booking(
            user_id=100, item_id=item.id, item_name=item.name, date=DAY, user_name="Иван",
        ))
        await store.upsert_user(User(telegram_id=100, first_name="Иван"))
        await store.enqueue_task(SyncTaskKind.REPLACE_BOOKINGS.value)
        sink = FakeSink()

        await make_worker(store, sink).run_once(SyncTaskKind.REPLACE_BOOKINGS.value)
        assert sink.calls == [("replace", [created.id]), ("users", [100])]

    @pytest.mark.asyncio
    async def test_booking_locks_are_released(self, store):
        sink = FakeSink(failures=1)
        await store.enqueue_task(SyncTaskKind.UPSERT.value, booking_id=1, payload=booking_payload(1))
        await store.enqueue_task(SyncTaskKind.UPSERT.value, booking_id=2, payload=booking_payload(2))
        worker = make_worker(store, sink)

        await worker.run_once()
        await worker.run_once()
        assert worker._booking_locks == {}

    @pytest.mark.asyncio
    async def test_loop_survives_unexpected_error(self, store):
        worker = SyncWorker(store, FakeSink(), poll_interval=0.01)
        calls = []

        async def flaky_run_once(kind=None):
            calls.append(kind)
            if len(calls) == 1:
                raise RuntimeError("boom")
            return 0

        worker.run_once = flaky_run_once
        worker.running = True
        loop_task = asyncio.create_task(worker._loop(SyncTaskKind.UPSERT.value))
        for _ in range(100):
            if len(calls) >= 2:
                break
            await asyncio.sleep(0.01)
        worker.running = False
        loop_task.cancel()
        with suppress(asyncio.CancelledError):
            await loop_task

        assert len(calls) >= 2

    @pytest.mark.asyncio
    async def test_start_and_stop(self, store):
        worker = SyncWorker(store, FakeSink(), poll_interval=0.01)
        await worker.start()
        assert worker.running
        assert len(worker._tasks) == len(SyncTaskKind)
        await worker.stop()
        assert not worker.running


class TestExcelMirrorSink:

    @pytest.mark.asyncio
    async def test_upsert_is_idempotent(self, tmp_path):
        sink = ExcelMirrorSink(str(tmp_path / "mirror.xlsx"))
        booking = Booking.from_dict(json.loads(booking_payload()))

        await sink.upsert_booking(booking)
        booking.status = "confirmed"
        await sink.upsert_booking(booking)

        ws = load_workbook(tmp_path / "mirror.xlsx")[BOOKINGS_SHEET]
        assert ws.max_row == 2
        assert ws.cell(row=2, column=1).value == 1
        assert ws.cell(row=2, column=7).value == "confirmed"

    @pytest.mark.asyncio
    async def test_update_status(self, tmp_path):
        sink = ExcelMirrorSink(str(tmp_path / "mirror.xlsx"))
        await sink.upsert_booking(Booking.from_dict(json.loads(booking_payload())))
        await sink.update_booking_status(1, "canceled")

        ws = load_workbook(tmp_path / "mirror.xlsx")[BOOKINGS_SHEET]
        assert ws.cell(row=2, column=7).value == "canceled"

    @pytest.mark.asyncio
    async def test_update_status_of_unknown_booking(self, tmp_path):
        sink = ExcelMirrorSink(str(tmp_path / "mirror.xlsx"))
        with pytest.raises(RemoteSinkError) as exc_info:
            await sink.update_booking_status(42, "confirmed")
        assert exc_info.value.booking_id == 42

    @pytest.mark.asyncio
    async def test_reopened_file_keeps_row_index(self, tmp_path):
        path = str(tmp_path / "mirror.xlsx")
        await ExcelMirrorSink(path).upsert_booking(Booking.from_dict(json.loads(booking_payload())))

        sink = ExcelMirrorSink(path)
        await sink.update_booking_status(1, "confirmed")
        ws = load_workbook(path)[BOOKINGS_SHEET]
        assert ws.max_row == 2
        assert ws.cell(row=2, column=7).value == "confirmed"

    @pytest.mark.asyncio
    async def test_replace_users_and_schedule(self, tmp_path, item):
        path = tmp_path / "mirror.xlsx"
        sink = ExcelMirrorSink(str(path))
        booking = Booking.from_dict(json.loads(booking_payload()))
        booking.item_id = item.id

        await sink.replace_bookings_sheet([booking])
        await sink.update_users_sheet([User(telegram_id=100, id=1, first_name="Иван")])
        await sink.update_schedule_sheet(DAY, DAY, {DAY: [booking]}, [item])

        wb = load_workbook(path)
        assert wb.sheetnames[0] == BOOKINGS_SHEET
        assert wb[BOOKINGS_SHEET].max_row == 2
        assert wb[USERS_SHEET].cell(row=2, column=2).value == 100
        schedule = wb[SCHEDULE_SHEET]
        assert schedule.cell(row=2, column=1).value == "Кофемашина (2)"
        assert "Занято: 1/2" in schedule.cell(row=2, column=2).value
