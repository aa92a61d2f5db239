from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request

http_requests_total = Counter("http_requests_total", "Total HTTP requests", ["method", "path", "status"])
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

leads_created_total = Counter("leads_created_total", "Leads created, by source", ["source"])
lead_bulk_items_total = Counter(
    "lead_bulk_items_total",
    "Items submitted to lead bulk operations, by outcome",
    ["operation", "outcome"],
)
auth_login_attempts_total = Counter("auth_login_attempts_total", "Login attempts, by outcome", ["outcome"])
department_reconciliation_total = Counter(
    "department_reconciliation_total",
    "Steps taken to keep a department manager and the manager's user row in sync",
    ["step", "outcome"],
)

_TEMPLATE_PARAM_RE = re.compile(r"\{[^{}]+\}")
_RAW_UUID_RE = re.compile(r"[0-9a-fA-F]{8}-(?:[0-9a-fA-F]{4}-){3}[0-9a-fA-F]{12}")


def resolve_http_path_label(request: Request) -> str:
    """Route template with every parameter shown as ``{id}``, so label cardinality stays bounded."""
    route = request.scope.get("route")
    template = getattr(route, "path_format", None) or getattr(route, "path", None)
    if isinstance(template, str) and template:
        return _TEMPLATE_PARAM_RE.sub("{id}", template)
    return _RAW_UUID_RE.sub("{id}", request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    http_requests_total.labels(method=method, path=path, status=str(status)).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_lead_created(source: str, count: int = 1) -> None:
    if count > 0:
        leads_created_total.labels(source=source).inc(count)


def observe_bulk_items(operation: str, applied: int, skipped: int) -> None:
    for outcome, amount in (("applied", applied), ("skipped", skipped)):
        if amount > 0:
            lead_bulk_items_total.labels(operation=operation, outcome=outcome).inc(amount)


def observe_login_attempt(outcome: str) -> None:
    auth_login_attempts_total.labels(outcome=outcome).inc()


def observe_department_reconciliation(step: str, outcome: str) -> None:
    department_reconciliation_total.labels(step=step, outcome=outcome).inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
