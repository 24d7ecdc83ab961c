"""Read-only availability API for external systems."""

from __future__ import annotations

import json
from datetime import date
from typing import Any, Dict, List

from aiohttp import web

from core.exceptions import NotFoundError
from core.logger import get_logger
from database.models import Item
from database.store import Store
from web.auth import json_error

from .health import STORE_KEY

logger = get_logger(__name__)

DATE_FORMAT_ERROR = "invalid date format; expected YYYY-MM-DD"


class BadRequest(ValueError):
    """Rejected query; the message is returned to the caller."""


def _parse_day(raw: str) -> date:
    try:
        return date.fromisoformat(raw.strip())
    except ValueError as exc:
        raise BadRequest(f"invalid date format: {raw.strip()}") from exc


def _split_csv(raw: str) -> List[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


async def _availability(store: Store, item: Item, day: date) -> Dict[str, Any]:
    (entry,) = await store.availability_for_period(item.id, day, 1)
    return {
        "item_name": item.name,
        "date": day.isoformat(),
        "available": entry.is_available,
        "booked_count": entry.booked,
        "total": entry.total,
    }


async def item_availability(request: web.Request) -> web.Response:
    """GET /api/v1/availability/{item}?date=YYYY-MM-DD"""
    store = request.app[STORE_KEY]
    name = request.match_info["item"].strip()
    if not name:
        return json_error(400, "item_name is required")
    raw_date = request.query.get("date", "").strip()
    if not raw_date:
        return json_error(400, "date is required")
    try:
        day = date.fromisoformat(raw_date)
    except ValueError:
        return json_error(400, DATE_FORMAT_ERROR)

    try:
        item = await store.get_item_by_name(name)
    except NotFoundError:
        return json_error(404, "item not found")
    return web.json_response(await _availability(store, item, day))


async def _bulk_query(request: web.Request) -> tuple[List[str], List[str]]:
    if request.method == "GET":
        return _split_csv(request.query.get("items", "")), _split_csv(request.query.get("dates", ""))
    try:
        body = await request.json()
    except json.JSONDecodeError as exc:
        raise BadRequest("invalid JSON body") from exc
    if not isinstance(body, dict) or set(body) - {"items", "dates"}:
        raise BadRequest("invalid JSON body")
    items, dates = body.get("items") or [], body.get("dates") or []
    if not isinstance(items, list) or not isinstance(dates, list):
        raise BadRequest("invalid JSON body")
    return [str(i).strip() for i in items if str(i).strip()], [str(d).strip() for d in dates if str(d).strip()]


async def bulk_availability(request: web.Request) -> web.Response:
    """Availability for every item x date pair; unknown items are skipped."""
    store = request.app[STORE_KEY]
    try:
        names, raw_dates = await _bulk_query(request)
        if not names:
            raise BadRequest("items is required")
        if not raw_dates:
            raise BadRequest("dates is required")
        days = [_parse_day(raw) for raw in raw_dates]
    except BadRequest as e:
        return json_error(400, str(e))

    results = []
    for name in names:
        try:
            item = await store.get_item_by_name(name)
        except NotFoundError:
            logger.debug(f"Bulk availability skips unknown item {name!r}")
            continue
        for day in days:
            results.append(await _availability(store, item, day))
    return web.json_response({"results": results})


async def list_items(request: web.Request) -> web.Response:
    items = await request.app[STORE_KEY].list_active_items_sorted()
    return web.json_response({
        "items": [
            {
                "id": item.id,
                "name": item.name,
                "description": item.description,
                "total_quantity": item.total_quantity,
                "sort_order": item.sort_order,
            }
            for item in items
        ]
    })
