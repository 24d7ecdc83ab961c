"""In-process publish/subscribe for booking events."""

from __future__ import annotations

import inspect
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from core import get_logger
from core.constants import EventType

logger = get_logger(__name__)


@dataclass(slots=True)
class Event:
    """Domain event: type tag, JSON payload and creation time."""

    type: str
    payload: str
    created_at: datetime = field(default_factory=datetime.now)

    def data(self) -> Dict[str, Any]:
        return json.loads(self.payload)


def _event_key(event_type: Union[str, EventType]) -> str:
    return event_type.value if isinstance(event_type, EventType) else event_type


Handler = Callable[[Event], Union[None, Awaitable[None]]]


def booking_event_payload(booking, changed_by: str = "", changed_by_id: Optional[int] = None) -> Dict[str, Any]:
    """Build the standard payload for a booking event."""
    return {
        "booking_id": booking.id,
        "user_id": booking.user_id,
        "user_name": booking.user_name,
        "item_id": booking.item_id,
        "item_name": booking.item_name,
        "status": booking.status,
        "date": booking.date.isoformat(),
        "comment": booking.comment,
        "changed_by": changed_by,
        "changed_by_id": changed_by_id,
        "booking": booking.to_dict(),
    }


class EventBus:
    """Fan-out of events to subscribed handlers.

    Handlers run one after another in the publisher's task. A failing
    handler is logged and does not stop delivery to the others.
    """

    def __init__(self) -> None:
        self._subscribers: Dict[str, List[Handler]] = {}

    def subscribe(self, event_type: Union[str, EventType], handler: Handler) -> None:
        key = _event_key(event_type)
        self._subscribers.setdefault(key, []).append(handler)

    def unsubscribe(self, event_type: Union[str, EventType], handler: Handler) -> None:
        key = _event_key(event_type)
        handlers = self._subscribers.get(key, [])
        if handler in handlers:
            handlers.remove(handler)

    def subscriber_count(self, event_type: Union[str, EventType]) -> int:
        key = _event_key(event_type)
        return len(self._subscribers.get(key, []))

    async def publish(self, event: Event) -> None:
        # Snapshot so handlers may (un)subscribe while being called
        handlers = list(self._subscribers.get(event.type, []))
        for handler in handlers:
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(
                    f"Event handler {getattr(handler, '__name__', handler)!r} failed for {event.type}: {e}",
                    exc_info=True,
                )

    async def publish_json(self, event_type: Union[str, EventType], payload: Dict[str, Any]) -> Event:
        """Encode ``payload`` as JSON, publish it and return the event."""
        key = _event_key(event_type)
        event = Event(type=key, payload=json.dumps(payload, ensure_ascii=False, default=str))
        await self.publish(event)
        return event
