from __future__ import annotations

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from leaddesk.metrics import observe_http_request, resolve_http_path_label


logger = logging.getLogger("leaddesk.request")

# Health checks and scrapes are counted in metrics but kept out of the request log.
UNLOGGED_PATHS = frozenset({"/health", "/metrics"})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            self._observe(request, 500, started, failed=True)
            raise
        self._observe(request, response.status_code, started)
        return response

    def _observe(self, request: Request, status_code: int, started: float, failed: bool = False) -> None:
        elapsed = time.perf_counter() - started
        # Route templates are only known after routing, so the label is resolved here.
        path = resolve_http_path_label(request)
        observe_http_request(method=request.method, path=path, status=status_code, duration=elapsed)
        if path in UNLOGGED_PATHS:
            return

        context = getattr(request.state, "context", None)
        fields = {
            "method": request.method,
            "path": path,
            "status_code": status_code,
            "duration_ms": round(elapsed * 1000, 2),
            "user_id": getattr(context, "user_id", None),
        }
        if failed:
            logger.error("http.error", exc_info=True, extra=fields)
        elif status_code >= 500:
            logger.warning("http.request", extra=fields)
        else:
            logger.info("http.request", extra=fields)
