"""Callback data grammar: builders, parser and tag dispatch."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from core import get_logger
from core.constants import TelegramLimits

logger = get_logger(__name__)


class Tags:
    """Callback tags understood by the dispatcher."""

    BACK_TO_MAIN = "back_to_main"
    BACK_TO_MAIN_FROM_SCHEDULE = "back_to_main_from_schedule"
    ITEMS_PAGE = "items_page"
    SELECT_ITEM = "select_item"
    SCHEDULE_ITEMS_PAGE = "schedule_items_page"
    SCHEDULE_SELECT_ITEM = "schedule_select_item"
    MANAGER_ITEMS_PAGE = "manager_items_page"
    MANAGER_SELECT_ITEM = "manager_select_item"
    MANAGER_SINGLE_DATE = "manager_single_date"
    MANAGER_DATE_RANGE = "manager_date_range"
    MANAGER_BOOKINGS_PAGE = "manager_bookings_page"
    BOOKING_ACTION = "booking_action"
    CHANGE_TO = "change_to"
    CALL_BOOKING = "call_booking"
    SHOW_BOOKING = "show_booking"
    EXPORT_USERS = "export_users"
    START_THE_ORDER = "start_the_order"
    START_THE_ORDER_ITEM = "start_the_order_item"


BOOKING_ACTIONS = ("confirm", "reject", "reschedule", "reopen", "complete", "change_item")

_PLAIN_TAGS = frozenset({
    Tags.BACK_TO_MAIN,
    Tags.BACK_TO_MAIN_FROM_SCHEDULE,
    Tags.MANAGER_SINGLE_DATE,
    Tags.MANAGER_DATE_RANGE,
    Tags.EXPORT_USERS,
    Tags.START_THE_ORDER,
    Tags.START_THE_ORDER_ITEM,
})

_INT_TAGS = frozenset({
    Tags.ITEMS_PAGE,
    Tags.SELECT_ITEM,
    Tags.SCHEDULE_ITEMS_PAGE,
    Tags.SCHEDULE_SELECT_ITEM,
    Tags.MANAGER_ITEMS_PAGE,
    Tags.MANAGER_SELECT_ITEM,
    Tags.MANAGER_BOOKINGS_PAGE,
    Tags.CALL_BOOKING,
    Tags.SHOW_BOOKING,
})

# change_item must be tried before the shorter alternatives
_ACTION_RE = re.compile(r"^(change_item|confirm|reject|reschedule|reopen|complete)_(\d+)(?:@(\d+))?$")
_CHANGE_TO_RE = re.compile(r"^change_to_(\d+)_(\d+)$")


class CallbackDataError(ValueError):
    """Raised when callback data does not match the grammar."""
    pass


@dataclass(frozen=True)
class CallbackEvent:
    """Parsed callback: a tag plus typed arguments."""

    tag: str
    args: Tuple[Any, ...] = ()
    raw: str = ""

    def arg(self, index: int = 0) -> Any:
        return self.args[index]


def _checked(data: str) -> str:
    if len(data.encode("utf-8")) > TelegramLimits.CALLBACK_DATA_MAX_BYTES:
        raise CallbackDataError(f"Callback data too long: {data!r}")
    return data


def parse(data: Optional[str]) -> CallbackEvent:
    """Parse callback data into a :class:`CallbackEvent`.

    Raises:
        CallbackDataError: If the string is not part of the grammar
    """
    if not data:
        raise CallbackDataError("Empty callback data")

    if data in _PLAIN_TAGS:
        return CallbackEvent(tag=data, raw=data)

    match = _CHANGE_TO_RE.match(data)
    if match:
        return CallbackEvent(tag=Tags.CHANGE_TO, args=(int(match.group(1)), int(match.group(2))), raw=data)

    match = _ACTION_RE.match(data)
    if match:
        version = int(match.group(3)) if match.group(3) else None
        return CallbackEvent(
            tag=Tags.BOOKING_ACTION,
            args=(match.group(1), int(match.group(2)), version),
            raw=data,
        )

    tag, sep, value = data.partition(":")
    if sep and tag in _INT_TAGS:
        try:
            return CallbackEvent(tag=tag, args=(int(value),), raw=data)
        except ValueError as exc:
            raise CallbackDataError(f"Bad numeric argument in {data!r}") from exc

    raise CallbackDataError(f"Unknown callback data: {data!r}")


# Builders

def with_int(tag: str, value: int) -> str:
    return _checked(f"{tag}:{value}")


def booking_action(action: str, booking_id: int, version: Optional[int] = None) -> str:
    if action not in BOOKING_ACTIONS:
        raise CallbackDataError(f"Unknown booking action: {action}")
    suffix = f"@{version}" if version is not None else ""
    return _checked(f"{action}_{booking_id}{suffix}")


def change_to(booking_id: int, item_id: int) -> str:
    return _checked(f"change_to_{booking_id}_{item_id}")


CallbackHandler = Callable[..., Awaitable[Any]]


@dataclass
class _Route:
    handler: CallbackHandler
    managers_only: bool = False


@dataclass
class CallbackDispatcher:
    """Registry of one handler per tag."""

    routes: Dict[str, _Route] = field(default_factory=dict)

    def register(self, tag: str, handler: CallbackHandler, managers_only: bool = False) -> None:
        if tag in self.routes:
            raise ValueError(f"Handler for {tag!r} already registered")
        self.routes[tag] = _Route(handler=handler, managers_only=managers_only)

    def is_registered(self, tag: str) -> bool:
        return tag in self.routes

    async def dispatch(self, event: CallbackEvent, *args: Any, is_manager: bool = False, **kwargs: Any) -> bool:
        """Run the handler for ``event.tag``.

        The handler receives ``is_manager`` as a keyword argument.

        Returns:
            False when no handler exists or access is denied
        """
        route = self.routes.get(event.tag)
        if route is None:
            logger.warning(f"No handler for callback tag {event.tag!r}")
            return False
        if route.managers_only and not is_manager:
            logger.warning(f"Manager-only callback {event.raw!r} from non-manager")
            return False
        await route.handler(event, *args, is_manager=is_manager, **kwargs)
        return True
