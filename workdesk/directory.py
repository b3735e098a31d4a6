"""
Plain lookup tables: clients, employees and role grants.

No lifecycle here, only insert/update/delete gated by role. Clients need
can_manage_clients; employees and role grants need can_manage_staff.
"""

import logging
from dataclasses import replace
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from workdesk.lib import validate
from workdesk.lib.constants import CLIENTS, EMPLOYEES, USER_ROLES
from workdesk.lib.errors import ValidationFailed, not_found
from workdesk.lib.roles import Role, parse_role, require
from workdesk.lib.types import Actor, Client, Employee, RoleGrant
from workdesk.store.records import RecordStore, new_id
from workdesk.workflow.state_machine import ClientStatus, parse_client_status

logger = logging.getLogger(__name__)


class ClientInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    client_code: str = Field(min_length=1)
    contact_person: str | None = None
    contact_phone: str | None = None
    contact_email: str | None = None
    pan_number: str | None = None
    gst_number: str | None = None
    status: ClientStatus = ClientStatus.ACTIVE
    notes: str | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, v):
        return parse_client_status(v)


class EmployeeInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(min_length=1)
    full_name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    phone: str | None = None
    designation: str | None = "Staff"
    active: bool = True


# Fields an update may change
CLIENT_EDITABLE = (
    "name", "client_code", "contact_person", "contact_phone", "contact_email",
    "pan_number", "gst_number", "status", "notes",
)
EMPLOYEE_EDITABLE = ("full_name", "phone", "designation", "active")


class Directory:
    """Client roster, staff roster and role grants."""

    def __init__(self, store: RecordStore):
        self.store = store

    # -- clients --

    def list_clients(self) -> list[Client]:
        rows = self.store.select(CLIENTS, order_by="created_at", descending=True)
        return [Client.from_row(row) for row in rows]

    def get_client(self, client_id: str) -> Client:
        row = self.store.get(CLIENTS, client_id)
        if row is None:
            raise not_found(CLIENTS, client_id)
        return Client.from_row(row)

    def create_client(self, actor: Actor, data: ClientInput | dict, now: datetime) -> Client:
        require(actor, "can_manage_clients", "create clients")
        data = validate.parse_input(ClientInput, data)
        client = Client(id=new_id(), created_at=now, **data.model_dump())
        self.store.insert(CLIENTS, client.to_row())
        logger.info(f"[DIR] client {client.client_code}: created by {actor.id}")
        return client

    def update_client(self, client_id: str, changes: dict, actor: Actor) -> Client:
        require(actor, "can_manage_clients", "edit clients")
        client = self.get_client(client_id)
        unknown = set(changes) - set(CLIENT_EDITABLE)
        if unknown:
            raise ValidationFailed(f"not editable: {', '.join(sorted(unknown))}")
        # Re-validate the merged record through the input model
        merged = {name: getattr(client, name) for name in CLIENT_EDITABLE} | changes
        data = validate.parse_input(ClientInput, merged)
        client = replace(client, **data.model_dump())
        row = client.to_row()
        self.store.update(CLIENTS, client_id, {name: row[name] for name in changes})
        logger.info(f"[DIR] client {client.client_code}: updated by {actor.id}")
        return client

    def delete_client(self, client_id: str, actor: Actor) -> None:
        require(actor, "can_manage_clients", "delete clients")
        self.store.delete(CLIENTS, client_id)
        logger.info(f"[DIR] client {client_id}: deleted by {actor.id}")

    # -- employees --

    def list_employees(self) -> list[Employee]:
        rows = self.store.select(EMPLOYEES, order_by="created_at", descending=True)
        return [Employee.from_row(row) for row in rows]

    def get_employee(self, employee_id: str) -> Employee:
        row = self.store.get(EMPLOYEES, employee_id)
        if row is None:
            raise not_found(EMPLOYEES, employee_id)
        return Employee.from_row(row)

    def employee_for_user(self, user_id: str) -> Employee | None:
        rows = self.store.select(EMPLOYEES, where={"user_id": user_id})
        return Employee.from_row(rows[0]) if rows else None

    def create_employee(
        self,
        actor: Actor,
        data: EmployeeInput | dict,
        now: datetime,
        role: Role | str = Role.STAFF,
    ) -> Employee:
        """Add an employee record and grant the user a role."""
        require(actor, "can_manage_staff", "create employees")
        data = validate.parse_input(EmployeeInput, data)
        if self.employee_for_user(data.user_id) is not None:
            raise ValidationFailed(f"user '{data.user_id}' already has an employee record", field="user_id")

        employee = Employee(id=new_id(), created_at=now, **data.model_dump())
        self.store.insert(EMPLOYEES, employee.to_row())
        self.grant_role(actor, employee.user_id, role)
        logger.info(f"[DIR] employee {employee.full_name}: created by {actor.id}")
        return employee

    def update_employee(self, employee_id: str, changes: dict, actor: Actor) -> Employee:
        require(actor, "can_manage_staff", "edit employees")
        employee = self.get_employee(employee_id)
        unknown = set(changes) - set(EMPLOYEE_EDITABLE)
        if unknown:
            raise ValidationFailed(f"not editable: {', '.join(sorted(unknown))}")
        merged = {
            "user_id": employee.user_id,
            "email": employee.email,
            **{name: getattr(employee, name) for name in EMPLOYEE_EDITABLE},
            **changes,
        }
        data = validate.parse_input(EmployeeInput, merged)
        employee = replace(employee, **data.model_dump())
        row = employee.to_row()
        self.store.update(EMPLOYEES, employee_id, {name: row[name] for name in changes})
        logger.info(f"[DIR] employee {employee.full_name}: updated by {actor.id}")
        return employee

    def delete_employee(self, employee_id: str, actor: Actor) -> None:
        require(actor, "can_manage_staff", "delete employees")
        self.store.delete(EMPLOYEES, employee_id)
        logger.info(f"[DIR] employee {employee_id}: deleted by {actor.id}")

    # -- role grants --

    def grant_role(self, actor: Actor, user_id: str, role: Role | str) -> RoleGrant:
        """Set the user's single role. Applies from their next session."""
        require(actor, "can_manage_staff", "grant roles")
        role = parse_role(role)
        rows = self.store.select(USER_ROLES, where={"user_id": user_id})
        if rows:
            row = self.store.update(USER_ROLES, rows[0]["id"], {"role": role.value})
        else:
            row = self.store.insert(USER_ROLES, RoleGrant(id=new_id(), user_id=user_id, role=role).to_row())
        logger.info(f"[DIR] user {user_id}: role {role.value} granted by {actor.id}")
        return RoleGrant.from_row(row)
