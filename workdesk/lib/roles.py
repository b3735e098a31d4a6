"""
Role authority for workdesk.

Resolves an authenticated user to exactly one role and derives the
capabilities every operation checks. Capabilities are role-wide; there are
no per-record ACLs.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from workdesk.lib.errors import Forbidden, ValidationFailed

logger = logging.getLogger(__name__)


class Role(Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    STAFF = "staff"


# Stored role strings that predate the current names
LEGACY_ROLE_NAMES = {
    "employee": Role.STAFF,
}

DEFAULT_ROLE = Role.STAFF


@dataclass(frozen=True)
class Capabilities:
    """Permissions derived from a role."""
    can_manage_clients: bool
    can_manage_staff: bool
    can_assign_tasks: bool
    can_edit_any_task: bool
    can_manage_billing: bool
    can_edit_own_assigned_task_status: bool = True


_PRIVILEGED = Capabilities(
    can_manage_clients=True,
    can_manage_staff=True,
    can_assign_tasks=True,
    can_edit_any_task=True,
    can_manage_billing=True,
)

_STAFF = Capabilities(
    can_manage_clients=False,
    can_manage_staff=False,
    can_assign_tasks=False,
    can_edit_any_task=False,
    can_manage_billing=False,
)

ROLE_CAPABILITIES = {
    Role.ADMIN: _PRIVILEGED,
    Role.MANAGER: _PRIVILEGED,
    Role.STAFF: _STAFF,
}


def parse_role(value) -> Role:
    """Parse a stored role string into Role.

    Raises:
        ValidationFailed: If the string names no known role
    """
    if isinstance(value, Role):
        return value
    if isinstance(value, str):
        key = value.strip().lower()
        if key in LEGACY_ROLE_NAMES:
            return LEGACY_ROLE_NAMES[key]
        for role in Role:
            if role.value == key:
                return role
    raise ValidationFailed(f"unknown role '{value}'", field="role")


def capabilities_of(subject) -> Capabilities:
    """Return capabilities for an Actor or a Role."""
    role = subject if isinstance(subject, Role) else subject.role
    return ROLE_CAPABILITIES[role]


def require(actor, capability: str, action: str) -> None:
    """Raise Forbidden unless the actor's role grants the capability."""
    if not getattr(capabilities_of(actor), capability):
        logger.info(f"[AUTH] {actor.id} ({actor.role.value}) denied: {action}")
        raise Forbidden(action, actor.id, f"role '{actor.role.value}' lacks {capability}")


def resolve_actor(store, user_id: str, display_name: str = ""):
    """Resolve an authenticated user id to an immutable Actor.

    Reads the user's role grant and employee record. Users without a grant
    get the default staff role. The returned Actor is fixed for the session;
    a role change takes effect when the next session resolves again.
    """
    from workdesk.lib.constants import EMPLOYEES, USER_ROLES
    from workdesk.lib.types import Actor

    grants = store.select(USER_ROLES, where={"user_id": user_id})
    if grants:
        role = parse_role(grants[0]["role"])
    else:
        logger.debug(f"[AUTH] {user_id}: no role grant, defaulting to {DEFAULT_ROLE.value}")
        role = DEFAULT_ROLE

    employees = store.select(EMPLOYEES, where={"user_id": user_id})
    employee_id = employees[0]["id"] if employees else None
    if not display_name and employees:
        display_name = employees[0]["full_name"]

    return Actor(id=user_id, role=role, display_name=display_name, employee_id=employee_id)
