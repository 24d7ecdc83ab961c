"""Repository for conversation state and rate limit counters."""

from __future__ import annotations

import json
import time
from datetime import date, datetime
from typing import Any, Optional

import aiosqlite

from core.exceptions import StorageError
from database.base_repository import BaseRepository
from database.models import UserState


def _json_default(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    raise TypeError(f"Cannot serialise {type(value).__name__}")


class StateRepository(BaseRepository):
    """Per-user conversation scratch and sliding-window counters."""

    async def get_state(self, user_id: int) -> Optional[UserState]:
        row = await self.fetch_one("SELECT * FROM user_states WHERE user_id=?", (user_id,))
        if row is None:
            return None
        try:
            data = json.loads(row["data"] or "{}")
        except json.JSONDecodeError:
            data = {}
        return UserState(
            user_id=row["user_id"],
            step=row["step"],
            data=data if isinstance(data, dict) else {},
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    async def set_state(self, state: UserState) -> None:
        """Replace the whole state row in a single statement."""
        now = datetime.now()
        await self.execute(
            """
            INSERT INTO user_states (user_id, step, data, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                step=excluded.step,
                data=excluded.data,
                updated_at=excluded.updated_at
            """,
            (
                state.user_id,
                state.step,
                json.dumps(state.data, ensure_ascii=False, default=_json_default),
                now.isoformat(),
            ),
        )
        state.updated_at = now

    async def clear_state(self, user_id: int) -> None:
        await self.execute("DELETE FROM user_states WHERE user_id=?", (user_id,))

    async def check_rate_limit(
        self,
        user_id: int,
        limit: int,
        window: float,
        now: Optional[float] = None,
    ) -> bool:
        """Count one attempt and report whether it is within the limit.

        The counter restarts at 1 once ``window`` seconds have passed since
        the window start. Read and write happen under one write lock.
        """
        now = time.time() if now is None else now
        try:
            async with self.transaction(immediate=True) as conn:
                cursor = await conn.execute(
                    "SELECT window_start, count FROM rate_limits WHERE user_id=?",
                    (user_id,),
                )
                row = await cursor.fetchone()
                if row is None or now - row["window_start"] >= window:
                    count = 1
                    await conn.execute(
                        """
                        INSERT INTO rate_limits (user_id, window_start, count) VALUES (?, ?, 1)
                        ON CONFLICT(user_id) DO UPDATE SET window_start=excluded.window_start, count=1
                        """,
                        (user_id, now),
                    )
                else:
                    count = row["count"] + 1
                    await conn.execute(
                        "UPDATE rate_limits SET count=? WHERE user_id=?",
                        (count, user_id),
                    )
        except aiosqlite.Error as exc:
            raise StorageError(str(exc)) from exc
        return count <= limit
