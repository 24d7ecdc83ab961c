"""Repository for the synchronisation outbox."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from core.constants import SyncTaskKind, SyncTaskStatus
from core.exceptions import NotFoundError
from database.base_repository import BaseRepository
from database.models import SyncTask

_UNFINISHED = (SyncTaskStatus.PENDING.value, SyncTaskStatus.RETRY.value)


class OutboxRepository(BaseRepository):
    """Durable queue of mirror synchronisation tasks."""

    async def enqueue_task(
        self,
        kind: str,
        booking_id: Optional[int] = None,
        payload: Optional[str] = None,
        booking_status: Optional[str] = None,
    ) -> int:
        """Append a task and return its id.

        A schedule resync identical to one that is still waiting is not
        duplicated; the id of the waiting task is returned instead.
        """
        kind = SyncTaskKind(kind).value
        if kind == SyncTaskKind.SYNC_SCHEDULE.value:
            existing = await self.fetch_value(
                """
                SELECT id FROM sync_queue
                WHERE task_type=? AND status='pending' AND retry_count=0
                  AND COALESCE(payload, '')=COALESCE(?, '')
                ORDER BY id LIMIT 1
                """,
                (kind, payload),
            )
            if existing is not None:
                return int(existing)

        return await self.insert(
            """
            INSERT INTO sync_queue (task_type, booking_id, payload, booking_status, status, retry_count, created_at)
            VALUES (?, ?, ?, ?, 'pending', 0, ?)
            """,
            (kind, booking_id, payload, booking_status, datetime.now().isoformat()),
        )

    async def lease_due_pending_tasks(
        self,
        limit: int,
        now: Optional[datetime] = None,
        kind: Optional[str] = None,
    ) -> List[SyncTask]:
        """Return due tasks in id order without changing them.

        A task is skipped while an earlier unfinished task exists for the
        same booking, which keeps per-booking order across retries.
        """
        now = now or datetime.now()
        query = """
            SELECT q.* FROM sync_queue q
            WHERE q.status IN (?, ?)
              AND (q.next_retry_at IS NULL OR q.next_retry_at <= ?)
              AND (
                  q.booking_id IS NULL OR NOT EXISTS (
                      SELECT 1 FROM sync_queue prev
                      WHERE prev.booking_id = q.booking_id
                        AND prev.id < q.id
                        AND prev.status IN (?, ?)
                  )
              )
        """
        params: list = [*_UNFINISHED, now.isoformat(), *_UNFINISHED]
        if kind is not None:
            query += " AND q.task_type = ?"
            params.append(SyncTaskKind(kind).value)
        query += " ORDER BY q.id ASC LIMIT ?"
        params.append(limit)

        rows = await self.fetch_all(query, params)
        return [SyncTask.from_row(row) for row in rows]

    async def get_task(self, task_id: int) -> SyncTask:
        row = await self.fetch_one("SELECT * FROM sync_queue WHERE id=?", (task_id,))
        if row is None:
            raise NotFoundError(f"Sync task {task_id} not found")
        return SyncTask.from_row(row)

    async def mark_completed(self, task_id: int) -> None:
        await self.execute(
            "UPDATE sync_queue SET status='completed', last_error=NULL, processed_at=? WHERE id=?",
            (datetime.now().isoformat(), task_id),
        )

    async def mark_retry(self, task_id: int, next_at: datetime, error: str) -> None:
        await self.execute(
            """
            UPDATE sync_queue
            SET status='retry', retry_count=retry_count+1, last_error=?, next_retry_at=?
            WHERE id=?
            """,
            (error, next_at.isoformat(), task_id),
        )

    async def mark_failed(self, task_id: int, error: str) -> None:
        await self.execute(
            "UPDATE sync_queue SET status='failed', last_error=?, processed_at=? WHERE id=?",
            (error, datetime.now().isoformat(), task_id),
        )

    async def list_failed(self, limit: int = 100) -> List[SyncTask]:
        rows = await self.fetch_all(
            "SELECT * FROM sync_queue WHERE status='failed' ORDER BY id DESC LIMIT ?",
            (limit,),
        )
        return [SyncTask.from_row(row) for row in rows]

    async def count_tasks_by_status(self) -> dict:
        rows = await self.fetch_all("SELECT status, COUNT(*) AS cnt FROM sync_queue GROUP BY status")
        return {row["status"]: row["cnt"] for row in rows}
