"""Correlation id of the request being served, readable from logging, audit and event code."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

_current_correlation_id: ContextVar[str | None] = ContextVar("leaddesk_correlation_id", default=None)


def get_correlation_id() -> str | None:
    return _current_correlation_id.get()


@contextmanager
def correlation_scope(correlation_id: str | None) -> Iterator[str | None]:
    token = _current_correlation_id.set(correlation_id)
    try:
        yield correlation_id
    finally:
        _current_correlation_id.reset(token)
