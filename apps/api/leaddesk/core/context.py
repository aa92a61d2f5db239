from __future__ import annotations

from dataclasses import dataclass

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request


@dataclass
class RequestContext:
    correlation_id: str
    client_ip: str | None
    user_agent: str | None
    referrer: str | None
    user_id: str | None = None


def resolve_client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for", "")
    first_hop = forwarded.split(",")[0].strip()
    if first_hop:
        return first_hop
    real_ip = request.headers.get("x-real-ip", "").strip()
    if real_ip:
        return real_ip
    return request.client.host if request.client else None


def build_request_context(request: Request) -> RequestContext:
    return RequestContext(
        correlation_id=getattr(request.state, "correlation_id", None) or "",
        client_ip=resolve_client_ip(request),
        user_agent=request.headers.get("user-agent"),
        referrer=request.headers.get("referer") or request.headers.get("referrer"),
    )


def request_context(request: Request) -> RequestContext:
    """Dependency returning the context attached by ``RequestContextMiddleware``."""
    context = getattr(request.state, "context", None)
    if context is None:
        context = build_request_context(request)
        request.state.context = context
    return context


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        request.state.context = build_request_context(request)
        return await call_next(request)
