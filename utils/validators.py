"""Input validation helpers."""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from typing import List, Optional

from core.constants import BookingDefaults, InputLimits
from core.exceptions import ValidationError

_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_WHITESPACE_RE = re.compile(r"\s+")
_NON_DIGIT_RE = re.compile(r"\D")

# & is left alone so repeated sanitising stays stable
_ESCAPES = {
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#39;",
}


def sanitize_input(value: Optional[str], max_length: int = InputLimits.MAX_TEXT_LENGTH) -> str:
    """Strip control chars, escape HTML brackets and quotes, collapse whitespace."""
    if not value:
        return ""
    cleaned = _CONTROL_RE.sub("", value)
    cleaned = "".join(_ESCAPES.get(char, char) for char in cleaned)
    cleaned = _WHITESPACE_RE.sub(" ", cleaned).strip()
    return cleaned[:max_length]


def validate_name(value: Optional[str]) -> str:
    """Return the sanitised name or raise ValidationError."""
    name = sanitize_input(value)
    if not (InputLimits.NAME_MIN_LENGTH <= len(name) <= InputLimits.NAME_MAX_LENGTH):
        raise ValidationError(
            f"Имя должно содержать от {InputLimits.NAME_MIN_LENGTH} "
            f"до {InputLimits.NAME_MAX_LENGTH} символов"
        )
    return name


def normalize_phone(value: Optional[str]) -> str:
    """Normalize a Russian phone number to 11 digits starting with 7.

    Returns an empty string when the number cannot be normalised.
    """
    if not value:
        return ""

    digits = _NON_DIGIT_RE.sub("", value)

    if len(digits) == 11 and digits.startswith("8"):
        return "7" + digits[1:]
    if len(digits) == 11 and digits.startswith("7"):
        return digits
    if len(digits) == 10:
        return "7" + digits
    return ""


def validate_phone(value: Optional[str]) -> bool:
    return bool(normalize_phone(value))


def format_phone(value: Optional[str]) -> str:
    """Format as +7 (DDD) DDD-DD-DD, or return the input unchanged."""
    phone = normalize_phone(value)
    if not phone:
        return value or ""
    return f"+7 ({phone[1:4]}) {phone[4:7]}-{phone[7:9]}-{phone[9:11]}"


def parse_date(value: Optional[str]) -> date:
    """Parse DD.MM.YYYY.

    Raises:
        ValidationError: If the text is not a valid date
    """
    try:
        return datetime.strptime((value or "").strip(), BookingDefaults.DATE_FORMAT).date()
    except ValueError as exc:
        raise ValidationError("Неверный формат даты. Используйте ДД.ММ.ГГГГ") from exc


def format_date(value: date) -> str:
    return value.strftime(BookingDefaults.DATE_FORMAT)


def date_range(start: date, end: date) -> List[date]:
    """Inclusive list of days from start to end.

    Raises:
        ValidationError: If end precedes start or the range is longer
            than the allowed number of days
    """
    if end < start:
        raise ValidationError("Дата окончания не может быть раньше даты начала")
    span = (end - start).days + 1
    if span > BookingDefaults.MAX_RANGE_DAYS:
        raise ValidationError(f"Период не может превышать {BookingDefaults.MAX_RANGE_DAYS} дней")
    return [start + timedelta(days=offset) for offset in range(span)]


def parse_trailing_int(args: str) -> tuple[str, int]:
    """Split ``"<name...> <number>"`` into the name and the trailing integer.

    Raises:
        ValidationError: If there is no name or the last token is not an int
    """
    parts = (args or "").split()
    if len(parts) < 2:
        raise ValidationError("Не хватает аргументов")
    try:
        number = int(parts[-1])
    except ValueError as exc:
        raise ValidationError(f"Ожидалось число, получено {parts[-1]!r}") from exc
    return " ".join(parts[:-1]), number
