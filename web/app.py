"""aiohttp application exposing health, Prometheus metrics and the availability API."""

from __future__ import annotations

from typing import Optional

from aiohttp import web

from core.logger import get_logger
from database.store import Store
from utils.performance import PerformanceMonitor, monitor as default_monitor
from web.auth import ApiKeyAuth
from web.routes import register_routes
from web.routes.health import MONITOR_KEY, STORE_KEY

logger = get_logger(__name__)


def create_app(
    store: Store,
    monitor: PerformanceMonitor = default_monitor,
    api_auth: Optional[ApiKeyAuth] = None,
) -> web.Application:
    """Create the monitoring and availability API application.

    Args:
        store: Booking store behind the health and API endpoints
        monitor: Source of host metrics
        api_auth: Key check for ``/api/`` routes; without it every API
            call is refused

    Returns:
        Configured aiohttp application
    """
    auth = api_auth or ApiKeyAuth()
    app = web.Application(middlewares=[auth.middleware])
    app[STORE_KEY] = store
    app[MONITOR_KEY] = monitor
    register_routes(app)
    return app


async def start_web_server(app: web.Application, host: str, port: int) -> web.AppRunner:
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info(f"🚀 Monitoring server started on http://{host}:{port}")
    return runner
