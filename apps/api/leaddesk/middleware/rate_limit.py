from __future__ import annotations

import math
import threading
import time
from collections import deque

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from leaddesk.core.config import get_settings
from leaddesk.core.context import resolve_client_ip
from leaddesk.core.responses import error_response

PUBLIC_INTAKE_PATH = "/api/leads/from-site"
WINDOW_SECONDS = 60
SWEEP_EVERY_HITS = 1000


class SlidingWindowLimiter:
    """Remembers accepted hits per client for the last ``window_seconds``.

    A client whose window has drained is forgotten, so the table only holds
    clients seen within the last window.
    """

    def __init__(self, window_seconds: int = WINDOW_SECONDS) -> None:
        self.window_seconds = window_seconds
        self._lock = threading.Lock()
        self._hits: dict[str, deque[float]] = {}
        self._since_sweep = 0

    def hit(self, client_key: str, limit: int) -> int:
        """Record a hit and return 0, or the seconds to wait when ``limit`` is already used up."""
        now = time.monotonic()
        with self._lock:
            self._since_sweep += 1
            if self._since_sweep >= SWEEP_EVERY_HITS:
                self._sweep(now)

            hits = self._hits.pop(client_key, None) or deque()
            self._drain(hits, now)
            if len(hits) >= max(limit, 0):
                if not hits:
                    return self.window_seconds
                self._hits[client_key] = hits
                return max(1, math.ceil(self.window_seconds - (now - hits[0])))
            hits.append(now)
            self._hits[client_key] = hits
            return 0

    def tracked_clients(self) -> int:
        with self._lock:
            return len(self._hits)

    def clear(self) -> None:
        with self._lock:
            self._hits.clear()
            self._since_sweep = 0

    def _drain(self, hits: deque[float], now: float) -> None:
        while hits and now - hits[0] >= self.window_seconds:
            hits.popleft()

    def _sweep(self, now: float) -> None:
        self._since_sweep = 0
        for key in list(self._hits):
            hits = self._hits[key]
            self._drain(hits, now)
            if not hits:
                del self._hits[key]


_limiter = SlidingWindowLimiter()


def rate_limit_key(request: Request) -> str:
    """The socket peer, unless a trusted proxy is configured to pass the client along."""
    if get_settings().rate_limit_trust_forwarded_for:
        forwarded = resolve_client_ip(request)
        if forwarded:
            return forwarded
    if request.client is not None and request.client.host:
        return request.client.host
    return "anonymous"


class PublicIntakeRateLimitMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        settings = get_settings()
        if (
            settings.rate_limit_disabled
            or request.method != "POST"
            or request.url.path.rstrip("/") != PUBLIC_INTAKE_PATH
        ):
            return await call_next(request)

        retry_after = _limiter.hit(rate_limit_key(request), settings.rate_limit_public_leads_per_minute)
        if not retry_after:
            return await call_next(request)

        response = error_response(request, status_code=429, message="Too many requests")
        response.headers["Retry-After"] = str(retry_after)
        return response


def reset_rate_limiter() -> None:
    _limiter.clear()


def tracked_rate_limit_clients() -> int:
    return _limiter.tracked_clients()
