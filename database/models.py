"""Data access layer models implemented with handcrafted queries."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from core.constants import ACTIVE_STATUSES


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _parse_date(value: str) -> date:
    return date.fromisoformat(value)


def item_name_key(name: str) -> str:
    """Case-folded item name; SQLite lower() only folds ASCII."""
    return name.strip().casefold()


@dataclass(slots=True)
class Item:
    id: int
    name: str
    total_quantity: int
    sort_order: int
    is_active: bool = True
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row) -> "Item":
        return cls(
            id=row["id"],
            name=row["name"],
            total_quantity=row["total_quantity"],
            sort_order=row["sort_order"],
            is_active=bool(row["is_active"]),
            description=row["description"],
            created_at=_parse_dt(row["created_at"]),
            updated_at=_parse_dt(row["updated_at"]),
        )


@dataclass(slots=True)
class User:
    telegram_id: int
    id: Optional[int] = None
    username: Optional[str] = None
    first_name: str = ""
    last_name: str = ""
    phone: Optional[str] = None
    is_manager: bool = False
    is_blacklisted: bool = False
    language_code: Optional[str] = None
    last_activity: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        full = f"{self.first_name} {self.last_name}".strip()
        return full or (self.username or str(self.telegram_id))

    @classmethod
    def from_row(cls, row) -> "User":
        return cls(
            id=row["id"],
            telegram_id=row["telegram_id"],
            username=row["username"],
            first_name=row["first_name"] or "",
            last_name=row["last_name"] or "",
            phone=row["phone"],
            is_manager=bool(row["is_manager"]),
            is_blacklisted=bool(row["is_blacklisted"]),
            language_code=row["language_code"],
            last_activity=_parse_dt(row["last_activity"]),
            created_at=_parse_dt(row["created_at"]),
            updated_at=_parse_dt(row["updated_at"]),
        )


@dataclass(slots=True)
class Booking:
    user_id: int
    item_id: int
    date: date
    user_name: str = ""
    user_nickname: Optional[str] = None
    phone: str = ""
    item_name: str = ""
    status: str = "pending"
    comment: str = ""
    id: Optional[int] = None
    version: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        """Serializable snapshot used by outbox tasks and events."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "user_nickname": self.user_nickname,
            "phone": self.phone,
            "item_id": self.item_id,
            "item_name": self.item_name,
            "date": self.date.isoformat(),
            "status": self.status,
            "comment": self.comment,
            "version": self.version,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Booking":
        return cls(
            id=data.get("id"),
            user_id=int(data["user_id"]),
            user_name=data.get("user_name") or "",
            user_nickname=data.get("user_nickname"),
            phone=data.get("phone") or "",
            item_id=int(data["item_id"]),
            item_name=data.get("item_name") or "",
            date=_parse_date(data["date"]),
            status=data.get("status") or "pending",
            comment=data.get("comment") or "",
            version=int(data.get("version") or 1),
            created_at=_parse_dt(data.get("created_at")),
            updated_at=_parse_dt(data.get("updated_at")),
        )

    @classmethod
    def from_row(cls, row) -> "Booking":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            user_name=row["user_name"] or "",
            user_nickname=row["user_nickname"],
            phone=row["phone"] or "",
            item_id=row["item_id"],
            item_name=row["item_name"] or "",
            date=_parse_date(row["date"]),
            status=row["status"],
            comment=row["comment"] or "",
            version=row["version"],
            created_at=_parse_dt(row["created_at"]),
            updated_at=_parse_dt(row["updated_at"]),
        )


@dataclass(slots=True)
class SyncTask:
    id: int
    kind: str
    booking_id: Optional[int]
    payload: Optional[str]
    booking_status: Optional[str]
    status: str
    retry_count: int
    last_error: Optional[str]
    next_retry_at: Optional[datetime]
    created_at: Optional[datetime]
    processed_at: Optional[datetime]

    @classmethod
    def from_row(cls, row) -> "SyncTask":
        return cls(
            id=row["id"],
            kind=row["task_type"],
            booking_id=row["booking_id"],
            payload=row["payload"],
            booking_status=row["booking_status"],
            status=row["status"],
            retry_count=row["retry_count"],
            last_error=row["last_error"],
            next_retry_at=_parse_dt(row["next_retry_at"]),
            created_at=_parse_dt(row["created_at"]),
            processed_at=_parse_dt(row["processed_at"]),
        )


@dataclass(slots=True)
class UserState:
    """Conversation step plus scratch data for one user."""

    user_id: int
    step: str
    data: Dict[str, Any] = field(default_factory=dict)
    updated_at: Optional[datetime] = None

    def get_int(self, key: str) -> Optional[int]:
        value = self.data.get(key)
        if value is None or isinstance(value, bool):
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    def get_str(self, key: str) -> Optional[str]:
        value = self.data.get(key)
        return value if isinstance(value, str) and value else None

    def get_bool(self, key: str) -> bool:
        return bool(self.data.get(key))

    def get_date(self, key: str) -> Optional[date]:
        value = self.data.get(key)
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            try:
                return date.fromisoformat(value[:10])
            except ValueError:
                return None
        return None

    def get_dates(self, key: str) -> List[date]:
        values = self.data.get(key) or []
        result = []
        for value in values:
            try:
                result.append(date.fromisoformat(str(value)[:10]))
            except ValueError:
                continue
        return result


@dataclass(slots=True)
class Availability:
    """Free units of an item on one day."""

    date: date
    booked: int
    total: int

    @property
    def available(self) -> int:
        return max(self.total - self.booked, 0)

    @property
    def is_available(self) -> bool:
        return self.booked < self.total
