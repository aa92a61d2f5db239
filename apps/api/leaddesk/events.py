from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from leaddesk.context import get_correlation_id
from leaddesk.core.events import event_bus

ENVELOPE_VERSION = 1

DOMAIN_EVENT_TYPES = (
    "user.created",
    "department.manager_changed",
    "lead.created",
    "lead.updated",
    "lead.deleted",
)

published_events: list[dict[str, Any]] = []


def emit(event_type: str, actor_user_id: uuid.UUID | str | None, payload: dict[str, Any]) -> dict[str, Any]:
    """Wrap ``payload`` in a versioned envelope and hand it to in-process subscribers."""
    if event_type not in DOMAIN_EVENT_TYPES:
        raise ValueError(f"Unknown domain event: {event_type}")

    envelope = {
        "event_id": str(uuid.uuid4()),
        "event_type": event_type,
        "version": ENVELOPE_VERSION,
        "occurred_at": datetime.now(timezone.utc).isoformat(),
        "actor_user_id": str(actor_user_id) if actor_user_id is not None else None,
        "correlation_id": get_correlation_id(),
        "payload": payload,
    }
    published_events.append(envelope)
    event_bus.publish(event_type, envelope)
    return envelope
