"""Route registration for the monitoring app."""

from __future__ import annotations

from aiohttp import web

from .api import bulk_availability, item_availability, list_items
from .health import healthz, metrics


def register_routes(app: web.Application) -> None:
    app.router.add_get("/healthz", healthz)
    app.router.add_get("/metrics", metrics)
    # The fixed bulk path must precede the {item} pattern
    app.router.add_route("GET", "/api/v1/availability/bulk", bulk_availability)
    app.router.add_route("POST", "/api/v1/availability/bulk", bulk_availability)
    app.router.add_get("/api/v1/availability/{item}", item_availability)
    app.router.add_get("/api/v1/items", list_items)
