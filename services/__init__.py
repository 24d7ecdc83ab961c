"""Services package."""

from .backup_service import BackupService
from .booking_service import BookingService, FailedDate, schedule_window
from .event_bus import Event, EventBus
from .export_service import ExportService
from .item_service import ItemService
from .metrics_service import MetricsUpdater
from .mirror import ExcelMirrorSink, MirrorSink
from .notification_service import NotificationService
from .reminder_service import ReminderService
from .state_manager import ConversationStateManager, Steps
from .sync_worker import RetryPolicy, SyncWorker
from .user_service import UserService, UserStats

__all__ = [
    "BackupService",
    "BookingService",
    "FailedDate",
    "schedule_window",
    "Event",
    "EventBus",
    "ExportService",
    "ItemService",
    "MetricsUpdater",
    "ExcelMirrorSink",
    "MirrorSink",
    "NotificationService",
    "ReminderService",
    "ConversationStateManager",
    "Steps",
    "RetryPolicy",
    "SyncWorker",
    "UserService",
    "UserStats",
]
