"""Inline keyboards for manager booking cards."""

from __future__ import annotations

from typing import Sequence

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup

from bot import callbacks
from bot.callbacks import Tags
from core.constants import BookingStatus
from database.models import Booking, Item


def _action(text: str, action: str, booking: Booking) -> InlineKeyboardButton:
    return InlineKeyboardButton(
        text=text,
        callback_data=callbacks.booking_action(action, booking.id, booking.version),
    )


def get_booking_detail_keyboard(booking: Booking) -> InlineKeyboardMarkup | None:
    """Actions available for the booking's current status, or None."""
    rows = []
    if booking.status in (BookingStatus.PENDING.value, BookingStatus.CHANGED.value):
        rows.append([
            _action("✅ Подтвердить", "confirm", booking),
            _action("❌ Отклонить", "reject", booking),
        ])
    if booking.status == BookingStatus.CONFIRMED.value:
        rows.extend([
            [
                _action("🔄 Вернуть в работу", "reopen", booking),
                _action("🏁 Завершить", "complete", booking),
            ],
            [
                _action("✏️ Изменить аппарат", "change_item", booking),
                _action("🔄 Предложить выбрать другую дату", "reschedule", booking),
            ],
            [
                InlineKeyboardButton(
                    text="📞 Позвонить",
                    callback_data=callbacks.with_int(Tags.CALL_BOOKING, booking.id),
                ),
            ],
        ])
    if not rows:
        return None
    return InlineKeyboardMarkup(inline_keyboard=rows)


def get_change_item_keyboard(booking: Booking, items: Sequence[Item]) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text=item.name, callback_data=callbacks.change_to(booking.id, item.id))]
        for item in items
    ])


def get_call_keyboard(booking: Booking, phone_digits: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[
        [
            InlineKeyboardButton(text="💬 WhatsApp", url=f"https://wa.me/{phone_digits}"),
            InlineKeyboardButton(text="✉️ Telegram", url=f"https://t.me/+{phone_digits}"),
        ],
        [
            InlineKeyboardButton(
                text="⬅️ Назад к заявке",
                callback_data=callbacks.with_int(Tags.SHOW_BOOKING, booking.id),
            ),
        ],
    ])


def get_date_type_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[[
        InlineKeyboardButton(text="📅 Одна дата", callback_data=Tags.MANAGER_SINGLE_DATE),
        InlineKeyboardButton(text="📆 Интервал дат", callback_data=Tags.MANAGER_DATE_RANGE),
    ]])


def get_create_order_keyboard(tag: str = Tags.START_THE_ORDER, text: str = "📋 СОЗДАТЬ ЗАЯВКУ") -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[[InlineKeyboardButton(text=text, callback_data=tag)]])
