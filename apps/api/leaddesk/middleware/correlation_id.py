from __future__ import annotations

import re
import uuid
from collections.abc import Mapping

from opentelemetry import trace
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from leaddesk.context import correlation_scope

CORRELATION_HEADERS = ("x-correlation-id", "x-request-id")
_ACCEPTED_ID_RE = re.compile(r"^[A-Za-z0-9._:\-]{1,128}$")


def accepted_correlation_id(headers: Mapping[str, str]) -> str | None:
    """First well-formed id among the accepted headers, if the caller sent one."""
    for header in CORRELATION_HEADERS:
        candidate = (headers.get(header) or "").strip()
        if candidate and _ACCEPTED_ID_RE.match(candidate):
            return candidate
    return None


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        correlation_id = accepted_correlation_id(request.headers) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id
        span = trace.get_current_span()
        if span.is_recording():
            span.set_attribute("correlation_id", correlation_id)

        with correlation_scope(correlation_id):
            response = await call_next(request)
        response.headers["X-Correlation-Id"] = correlation_id
        return response
