from __future__ import annotations

import uuid
from collections.abc import Mapping
from enum import Enum
from types import MappingProxyType


class Role(str, Enum):
    SUPER = "super"
    ADMIN = "admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"


CREATABLE_ROLES: Mapping[Role, frozenset[Role]] = MappingProxyType(
    {
        Role.SUPER: frozenset({Role.SUPER, Role.ADMIN, Role.MANAGER, Role.EMPLOYEE}),
        Role.ADMIN: frozenset({Role.ADMIN, Role.MANAGER, Role.EMPLOYEE}),
        Role.MANAGER: frozenset({Role.EMPLOYEE}),
        Role.EMPLOYEE: frozenset(),
    }
)

GLOBAL_READ_ROLES = frozenset({Role.SUPER, Role.ADMIN})
BULK_LEAD_ROLES = frozenset({Role.SUPER, Role.MANAGER})
EXPORT_ROLES = frozenset({Role.SUPER, Role.ADMIN, Role.MANAGER})
NOTE_MODERATOR_ROLES = frozenset({Role.SUPER, Role.ADMIN, Role.MANAGER})


def can_create_role(creator: Role | str, target: Role | str) -> bool:
    return Role(target) in CREATABLE_ROLES.get(Role(creator), frozenset())


def can_manage_department(role: Role | str, user_id: uuid.UUID, manager_id: uuid.UUID | None) -> bool:
    if Role(role) is Role.SUPER:
        return True
    return manager_id is not None and manager_id == user_id


def can_view_department(
    role: Role | str,
    user_id: uuid.UUID,
    department_id: uuid.UUID,
    manager_id: uuid.UUID | None,
    actor_department_id: uuid.UUID | None,
) -> bool:
    if Role(role) in GLOBAL_READ_ROLES:
        return True
    if can_manage_department(role, user_id, manager_id):
        return True
    return Role(role) is Role.EMPLOYEE and actor_department_id is not None and actor_department_id == department_id


def can_create_in_department(
    role: Role | str,
    user_id: uuid.UUID,
    department_id: uuid.UUID,
    manager_id: uuid.UUID | None,
    actor_department_id: uuid.UUID | None,
) -> bool:
    if can_manage_department(role, user_id, manager_id):
        return True
    return Role(role) is Role.EMPLOYEE and actor_department_id is not None and actor_department_id == department_id


def can_edit_lead(
    role: Role | str,
    user_id: uuid.UUID,
    department_id: uuid.UUID,
    manager_id: uuid.UUID | None,
    actor_department_id: uuid.UUID | None,
) -> bool:
    return can_view_department(role, user_id, department_id, manager_id, actor_department_id)


def may_bulk_edit_leads(role: Role | str) -> bool:
    return Role(role) in BULK_LEAD_ROLES


def may_export_leads(role: Role | str) -> bool:
    return Role(role) in EXPORT_ROLES


def may_manage_task_board(role: Role | str) -> bool:
    return Role(role) is Role.SUPER


def may_list_users(role: Role | str) -> bool:
    return Role(role) in GLOBAL_READ_ROLES


def may_moderate_notes(role: Role | str) -> bool:
    return Role(role) in NOTE_MODERATOR_ROLES


def outranks_for_edit(actor_role: Role | str, target_role: Role | str) -> bool:
    actor = Role(actor_role)
    if actor is Role.SUPER:
        return True
    if actor is Role.ADMIN:
        return Role(target_role) not in GLOBAL_READ_ROLES
    return False
