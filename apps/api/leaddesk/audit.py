from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from leaddesk.context import get_correlation_id

if TYPE_CHECKING:
    from leaddesk.core.auth import ActorUser

# Never copied into an audit snapshot.
SECRET_FIELDS = frozenset({"password", "password_hash", "token", "refresh_token"})

audit_entries: list[dict[str, Any]] = []


def _snapshot(state: dict[str, Any] | None) -> dict[str, Any] | None:
    if state is None:
        return None
    return {key: value for key, value in state.items() if key not in SECRET_FIELDS}


def _changed_fields(before: dict[str, Any] | None, after: dict[str, Any] | None) -> list[str]:
    if before is None or after is None:
        return []
    return sorted(key for key in before.keys() | after.keys() if before.get(key) != after.get(key))


def record(
    actor: ActorUser,
    entity_type: str,
    entity_id: uuid.UUID | str,
    action: str,
    *,
    before: dict[str, Any] | None = None,
    after: dict[str, Any] | None = None,
) -> dict[str, Any]:
    before_state = _snapshot(before)
    after_state = _snapshot(after)
    entry = {
        "id": str(uuid.uuid4()),
        "actor_user_id": str(actor.user_id),
        "actor_role": actor.role.value,
        "entity_type": entity_type,
        "entity_id": str(entity_id),
        "action": action,
        "before": before_state,
        "after": after_state,
        "changed_fields": _changed_fields(before_state, after_state),
        "correlation_id": actor.correlation_id or get_correlation_id(),
        "occurred_at": datetime.now(timezone.utc).isoformat(),
    }
    audit_entries.append(entry)
    return entry
