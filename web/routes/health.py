"""Health and metrics endpoints."""

from __future__ import annotations

from aiohttp import web
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from core.exceptions import StorageError
from core.logger import get_logger
from database.store import Store
from utils.performance import PerformanceMonitor

logger = get_logger(__name__)

STORE_KEY = web.AppKey("store", Store)
MONITOR_KEY = web.AppKey("monitor", PerformanceMonitor)


async def healthz(request: web.Request) -> web.Response:
    store = request.app[STORE_KEY]
    data = {"status": "ok", "database": "ok"}
    status = 200
    try:
        await store.fetch_value("SELECT 1")
    except StorageError as e:
        logger.error(f"Health check failed: {e}")
        data["status"] = "degraded"
        data["database"] = str(e)
        status = 503
    data["host"] = request.app[MONITOR_KEY].gather_host_metrics()
    return web.json_response(data, status=status)


async def metrics(request: web.Request) -> web.Response:
    body = generate_latest()
    # aiohttp rejects a charset inside content_type
    content_type, _, _ = CONTENT_TYPE_LATEST.partition(";")
    return web.Response(body=body, content_type=content_type.strip(), charset="utf-8")
