"""Core application components."""

from core.logger import setup_logger, get_logger
from core.constants import (
    ACTIVE_STATUSES,
    BOOKING_TRANSITIONS,
    INACTIVE_STATUSES,
    STATUS_LABELS,
    BookingDefaults,
    BookingStatus,
    DatabaseDefaults,
    EventType,
    InputLimits,
    PaginationDefaults,
    RateLimitDefaults,
    SchedulerDefaults,
    SyncDefaults,
    SyncTaskKind,
    SyncTaskStatus,
    TelegramLimits,
)
from core.exceptions import (
    ApplicationError,
    BookingError,
    CapacityConflictError,
    ConcurrentModificationError,
    ConfigurationError,
    DatabaseError,
    DateTooFarError,
    InvalidTransitionError,
    NotAvailableError,
    NotFoundError,
    PastDateError,
    RemoteSinkError,
    StorageError,
    TransportError,
    ValidationError,
)

# ApplicationInitializer lives in core.app_initializer and is imported from
# there directly: it depends on config, which itself imports core.exceptions.

__all__ = [
    # Logging
    'setup_logger',
    'get_logger',
    # Constants
    'ACTIVE_STATUSES',
    'BOOKING_TRANSITIONS',
    'INACTIVE_STATUSES',
    'STATUS_LABELS',
    'BookingDefaults',
    'BookingStatus',
    'DatabaseDefaults',
    'EventType',
    'InputLimits',
    'PaginationDefaults',
    'RateLimitDefaults',
    'SchedulerDefaults',
    'SyncDefaults',
    'SyncTaskKind',
    'SyncTaskStatus',
    'TelegramLimits',
    # Exceptions
    'ApplicationError',
    'BookingError',
    'CapacityConflictError',
    'ConcurrentModificationError',
    'ConfigurationError',
    'DatabaseError',
    'DateTooFarError',
    'InvalidTransitionError',
    'NotAvailableError',
    'NotFoundError',
    'PastDateError',
    'RemoteSinkError',
    'StorageError',
    'TransportError',
    'ValidationError',
]
