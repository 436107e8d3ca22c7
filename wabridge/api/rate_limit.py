"""Per-client request rate limiting.

Fixed window per client address, in memory (resets on restart).
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from wabridge.api.schemas import error_body

logger = logging.getLogger(__name__)

MAX_TRACKED_CLIENTS = 10_000


class FixedWindowLimiter:
    """Counts hits per key within fixed windows of `window` seconds."""

    def __init__(
        self,
        limit: int = 100,
        window: float = 900,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limit = limit
        self.window = window
        self._clock = clock
        self._windows: dict[str, tuple[float, int]] = {}
        self._next_prune = float("-inf")

    def hit(self, key: str) -> bool:
        """Record a request. Returns False when the key is over its limit."""
        now = self._clock()
        if len(self._windows) > MAX_TRACKED_CLIENTS and now >= self._next_prune:
            self.prune()
        started, count = self._windows.get(key, (now, 0))
        if now - started >= self.window:
            started, count = now, 0
        if count >= self.limit:
            self._windows[key] = (started, count)
            return False
        self._windows[key] = (started, count + 1)
        if count + 1 == int(self.limit * 0.8):
            logger.warning("Client %s at %d/%d requests in window", key, count + 1, self.limit)
        return True

    def prune(self) -> None:
        """Forget windows that have expired.

        Nothing can expire again before the oldest remaining window does,
        so the next prune is deferred until then.
        """
        now = self._clock()
        for key, (started, _) in list(self._windows.items()):
            if now - started >= self.window:
                del self._windows[key]
        oldest = min((started for started, _ in self._windows.values()), default=now)
        self._next_prune = oldest + self.window


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, limiter: FixedWindowLimiter, exempt_paths: tuple[str, ...] = ()) -> None:
        super().__init__(app)
        self.limiter = limiter
        self.exempt_paths = exempt_paths

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path in self.exempt_paths:
            return await call_next(request)
        client = request.client.host if request.client else "unknown"
        if not self.limiter.hit(client):
            return JSONResponse(
                error_body(429, "Too many requests, please try again later."),
                status_code=429,
            )
        return await call_next(request)
