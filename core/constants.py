"""Application-wide constants and configuration values."""

from __future__ import annotations

from enum import Enum


# Telegram limits
class TelegramLimits:
    """Telegram API limits."""
    MESSAGE_MAX_LENGTH = 4096
    CALLBACK_DATA_MAX_BYTES = 64


# Database constants
class DatabaseDefaults:
    """Default database configuration."""
    POOL_SIZE = 5
    BUSY_TIMEOUT = 5000  # milliseconds
    LOCK_RETRIES = 3
    LOCK_RETRY_DELAY = 0.05  # seconds


# Status enums
class BookingStatus(str, Enum):
    """Booking lifecycle status."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CHANGED = "changed"
    RESCHEDULED = "rescheduled"
    CANCELED = "canceled"
    COMPLETED = "completed"


# Statuses counted against item capacity
ACTIVE_STATUSES = frozenset({
    BookingStatus.PENDING.value,
    BookingStatus.CONFIRMED.value,
    BookingStatus.CHANGED.value,
    BookingStatus.RESCHEDULED.value,
})

INACTIVE_STATUSES = frozenset({
    BookingStatus.CANCELED.value,
    BookingStatus.COMPLETED.value,
})

# from-status -> allowed to-statuses
BOOKING_TRANSITIONS = {
    BookingStatus.PENDING.value: frozenset({
        BookingStatus.CONFIRMED.value,
        BookingStatus.CANCELED.value,
        BookingStatus.CHANGED.value,
        BookingStatus.RESCHEDULED.value,
    }),
    BookingStatus.CONFIRMED.value: frozenset({
        BookingStatus.COMPLETED.value,
        BookingStatus.PENDING.value,
        BookingStatus.CHANGED.value,
        BookingStatus.RESCHEDULED.value,
    }),
    BookingStatus.CHANGED.value: frozenset({
        BookingStatus.CONFIRMED.value,
        BookingStatus.CANCELED.value,
    }),
}

STATUS_LABELS = {
    BookingStatus.PENDING.value: "⏳ Ожидает подтверждения",
    BookingStatus.CONFIRMED.value: "✅ Подтверждено",
    BookingStatus.CHANGED.value: "🔄 Изменено",
    BookingStatus.RESCHEDULED.value: "📅 Перенос",
    BookingStatus.CANCELED.value: "❌ Отменено",
    BookingStatus.COMPLETED.value: "🏁 Завершено",
}


class EventType(str, Enum):
    """Domain event types published on the event bus."""
    BOOKING_CREATED = "booking_created"
    BOOKING_CONFIRMED = "booking_confirmed"
    BOOKING_CANCELED = "booking_canceled"
    BOOKING_ITEM_CHANGED = "booking_item_changed"
    BOOKING_COMPLETED = "booking_completed"


class SyncTaskKind(str, Enum):
    """Outbox task kinds."""
    UPSERT = "upsert"
    UPDATE_STATUS = "update_status"
    SYNC_SCHEDULE = "sync_schedule"
    REPLACE_BOOKINGS = "replace_bookings"


class SyncTaskStatus(str, Enum):
    """Outbox row status."""
    PENDING = "pending"
    RETRY = "retry"
    COMPLETED = "completed"
    FAILED = "failed"


# Sync worker
class SyncDefaults:
    """Outbox processing defaults."""
    POLL_INTERVAL = 2.0  # seconds
    BATCH_SIZE = 20
    BASE_DELAY = 2.0  # seconds
    MAX_RETRIES = 5
    SCHEDULE_DAYS_BEHIND = 30
    SCHEDULE_DAYS_AHEAD = 60


# Booking rules
class BookingDefaults:
    """Booking rules and list windows."""
    MAX_BOOKING_DAYS = 365
    MAX_RANGE_DAYS = 31  # dates in one manager range
    USER_HISTORY_DAYS = 14
    MANAGER_LIST_DAYS_BEHIND = 7
    MANAGER_LIST_DAYS_AHEAD = 60
    SCHEDULE_VIEW_DAYS = 30
    DATE_FORMAT = "%d.%m.%Y"


# Rate limiting
class RateLimitDefaults:
    """Rate limiting configuration."""
    MAX_MESSAGES = 20  # per window
    WINDOW_SECONDS = 60


# Pagination
class PaginationDefaults:
    """Page sizes for inline lists."""
    ITEMS_PAGE_SIZE = 8
    BOOKINGS_PAGE_SIZE = 5


# Text input limits
class InputLimits:
    """Sanitisation limits for free text."""
    MAX_TEXT_LENGTH = 500
    NAME_MIN_LENGTH = 2
    NAME_MAX_LENGTH = 150


# Background loops
class SchedulerDefaults:
    """Timings for background loops."""
    UPDATE_TIMEOUT = 30.0  # seconds per update
    METRICS_INTERVAL = 300.0  # seconds
    REMINDER_TIME = "09:00"
    ACTIVE_USERS_DAYS = 30


# Backup configuration
class BackupDefaults:
    """Backup service configuration."""
    INTERVAL_HOURS = 24
    RETENTION_DAYS = 7
