"""Keyboard builders."""

from .booking import (
    get_booking_detail_keyboard,
    get_call_keyboard,
    get_change_item_keyboard,
    get_create_order_keyboard,
    get_date_type_keyboard,
)
from .main_menu import (
    get_main_menu_keyboard,
    get_manager_confirm_keyboard,
    get_name_input_keyboard,
    get_phone_input_keyboard,
    get_schedule_keyboard,
    get_step_keyboard,
)
from .pagination import paginate, render_bookings_page, render_items_page, status_emoji

__all__ = [
    "get_booking_detail_keyboard",
    "get_call_keyboard",
    "get_change_item_keyboard",
    "get_create_order_keyboard",
    "get_date_type_keyboard",
    "get_main_menu_keyboard",
    "get_manager_confirm_keyboard",
    "get_name_input_keyboard",
    "get_phone_input_keyboard",
    "get_schedule_keyboard",
    "get_step_keyboard",
    "paginate",
    "render_bookings_page",
    "render_items_page",
    "status_emoji",
]
