"""API-key authentication and per-client throttling for the HTTP API.

Only paths under ``/api/`` are guarded; health and metrics stay open for
scrapers. A request must carry one of the configured keys in the
``X-API-Key`` header. With no keys configured every API call is refused.
"""

from __future__ import annotations

import hmac
import time
from typing import Awaitable, Callable, Iterable

from aiohttp import web
from asyncio_throttle import Throttler
from cachetools import TTLCache

from core.logger import get_logger

logger = get_logger(__name__)

API_PREFIX = "/api/"
API_KEY_HEADER = "X-API-Key"

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def json_error(status: int, message: str) -> web.Response:
    return web.json_response({"error": message}, status=status)


class ApiKeyAuth:
    """Checks API keys and spaces out requests of each client.

    Requests above ``rate_limit`` per second are delayed by the client's
    ``Throttler`` rather than rejected.
    """

    def __init__(self, api_keys: Iterable[str] = (), rate_limit: int = 20, idle_ttl: float = 600.0) -> None:
        self.api_keys = tuple(key for key in api_keys if key)
        self.rate_limit = rate_limit
        # Throttlers of clients idle for idle_ttl seconds are forgotten
        self._throttlers: TTLCache = TTLCache(maxsize=1024, ttl=idle_ttl)

    def is_valid(self, candidate: str) -> bool:
        matched = False
        for key in self.api_keys:
            # Compare against every key so timing does not leak which one matched
            if hmac.compare_digest(key.encode(), candidate.encode()):
                matched = True
        return matched

    def throttler_for(self, client: str) -> Throttler:
        throttler = self._throttlers.get(client)
        if throttler is None:
            throttler = Throttler(rate_limit=self.rate_limit, period=1.0)
        # Re-inserting refreshes the idle timer
        self._throttlers[client] = throttler
        return throttler

    @web.middleware
    async def middleware(self, request: web.Request, handler: Handler) -> web.StreamResponse:
        if not request.path.startswith(API_PREFIX):
            return await handler(request)

        started = time.perf_counter()
        api_key = request.headers.get(API_KEY_HEADER, "").strip()
        if not api_key:
            response: web.StreamResponse = json_error(401, "missing api key")
        elif not self.is_valid(api_key):
            logger.warning(f"Rejected API call to {request.path} with an unknown key")
            response = json_error(401, "invalid api key")
        else:
            async with self.throttler_for(api_key):
                response = await handler(request)

        logger.debug(
            f"http method={request.method} path={request.path} status={response.status} "
            f"dur={time.perf_counter() - started:.3f}s"
        )
        return response
