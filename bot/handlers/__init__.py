"""Aggregate bot handlers for dispatch registration."""

from .booking import BookingHandlers
from .callbacks import CallbackRouter
from .common import CommonHandlers, send_main_menu
from .fallback import FallbackHandler, setup_fallback_handlers
from .items import ItemCommandHandlers, setup_item_handlers
from .manager import ManagerHandlers
from .manager_booking import ManagerBookingHandlers
from .schedule import ScheduleHandlers

__all__ = [
    "BookingHandlers",
    "CallbackRouter",
    "CommonHandlers",
    "FallbackHandler",
    "ItemCommandHandlers",
    "ManagerBookingHandlers",
    "ManagerHandlers",
    "ScheduleHandlers",
    "send_main_menu",
    "setup_fallback_handlers",
    "setup_item_handlers",
]
