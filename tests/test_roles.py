"""Tests for workdesk.lib.roles module."""

import pytest

from workdesk.lib.constants import EMPLOYEES, USER_ROLES
from workdesk.lib.errors import Forbidden, ValidationFailed
from workdesk.lib.roles import (
    Role,
    capabilities_of,
    parse_role,
    require,
    resolve_actor,
)
from workdesk.lib.types import Actor


MANAGEMENT_CAPABILITIES = [
    "can_manage_clients",
    "can_manage_staff",
    "can_assign_tasks",
    "can_edit_any_task",
    "can_manage_billing",
]


class TestCapabilities:
    """Tests for capabilities_of()."""

    @pytest.mark.parametrize("role", [Role.ADMIN, Role.MANAGER])
    def test_privileged_roles_have_everything(self, role):
        caps = capabilities_of(role)
        for name in MANAGEMENT_CAPABILITIES:
            assert getattr(caps, name) is True
        assert caps.can_edit_own_assigned_task_status is True

    def test_staff_has_only_own_status(self):
        caps = capabilities_of(Role.STAFF)
        for name in MANAGEMENT_CAPABILITIES:
            assert getattr(caps, name) is False
        assert caps.can_edit_own_assigned_task_status is True

    def test_accepts_actor(self, staff):
        assert capabilities_of(staff) == capabilities_of(Role.STAFF)


class TestParseRole:
    """Tests for parse_role()."""

    def test_parse_valid_roles(self):
        assert parse_role("admin") == Role.ADMIN
        assert parse_role("Manager") == Role.MANAGER
        assert parse_role(Role.STAFF) == Role.STAFF

    def test_legacy_employee_maps_to_staff(self):
        """Older role grants stored 'employee'."""
        assert parse_role("employee") == Role.STAFF

    def test_unknown_role_rejected(self):
        with pytest.raises(ValidationFailed):
            parse_role("superuser")


class TestRequire:
    """Tests for require()."""

    def test_allows_capability(self, manager):
        require(manager, "can_manage_billing", "record payments")

    def test_denies_with_forbidden(self, staff):
        with pytest.raises(Forbidden) as exc_info:
            require(staff, "can_manage_billing", "record payments")
        assert exc_info.value.action == "record payments"
        assert exc_info.value.actor_id == "u-staff"
        assert "Forbidden" in str(exc_info.value)


class TestResolveActor:
    """Tests for resolve_actor()."""

    def test_resolves_role_and_employee(self, store):
        store.insert(USER_ROLES, {"id": "r1", "user_id": "u1", "role": "manager"})
        store.insert(EMPLOYEES, {
            "id": "e1", "user_id": "u1", "full_name": "Mira", "email": "m@example.com", "active": True,
        })

        actor = resolve_actor(store, "u1")
        assert actor == Actor(id="u1", role=Role.MANAGER, display_name="Mira", employee_id="e1")

    def test_missing_grant_defaults_to_staff(self, store):
        actor = resolve_actor(store, "nobody", "Guest")
        assert actor.role == Role.STAFF
        assert actor.employee_id is None
        assert actor.display_name == "Guest"

    def test_actor_is_immutable(self, staff):
        with pytest.raises(AttributeError):
            staff.role = Role.ADMIN
