"""
Record types shared across workdesk.

Each record converts to and from a store row: a flat dict of JSON-compatible
values with ISO-8601 strings for dates and enum values for statuses.
"""

from dataclasses import dataclass, fields
from datetime import date, datetime
from enum import Enum

from workdesk.lib.roles import Role
from workdesk.workflow.state_machine import (
    ClientStatus,
    InvoiceStatus,
    Priority,
    TaskStatus,
)


def to_iso(value):
    """Serialize dates, datetimes and enums for a store row."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def parse_date(value) -> date | None:
    if value is None or isinstance(value, date) and not isinstance(value, datetime):
        return value
    if isinstance(value, datetime):
        return value.date()
    return date.fromisoformat(value[:10])


def parse_datetime(value) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


class Record:
    """Mixin for row conversion.

    Subclasses list their typed columns in DATE_FIELDS, DATETIME_FIELDS and
    ENUM_FIELDS; everything else passes through unchanged.
    """

    DATE_FIELDS: tuple = ()
    DATETIME_FIELDS: tuple = ()
    ENUM_FIELDS: dict = {}

    def to_row(self) -> dict:
        return {f.name: to_iso(getattr(self, f.name)) for f in fields(self)}

    @classmethod
    def from_row(cls, row: dict):
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in row.items():
            if key not in known:
                continue
            if key in cls.DATE_FIELDS:
                value = parse_date(value)
            elif key in cls.DATETIME_FIELDS:
                value = parse_datetime(value)
            elif key in cls.ENUM_FIELDS and value is not None:
                value = cls.ENUM_FIELDS[key](value)
            values[key] = value
        return cls(**values)


@dataclass(frozen=True)
class Actor:
    """The authenticated user performing an operation.

    Immutable for the session; role changes apply on the next session.
    """
    id: str
    role: Role
    display_name: str = ""
    employee_id: str | None = None  # Employee row linked to this user, if any


@dataclass
class Client(Record):
    id: str
    name: str
    client_code: str
    contact_person: str | None = None
    contact_phone: str | None = None
    contact_email: str | None = None
    pan_number: str | None = None
    gst_number: str | None = None
    status: ClientStatus = ClientStatus.ACTIVE
    notes: str | None = None
    created_at: datetime | None = None

    DATETIME_FIELDS = ("created_at",)
    ENUM_FIELDS = {"status": ClientStatus}


@dataclass
class Employee(Record):
    id: str
    user_id: str
    full_name: str
    email: str
    phone: str | None = None
    designation: str | None = "Staff"
    active: bool = True
    created_at: datetime | None = None

    DATETIME_FIELDS = ("created_at",)


@dataclass
class RoleGrant(Record):
    id: str
    user_id: str
    role: Role

    ENUM_FIELDS = {"role": Role}


@dataclass
class Task(Record):
    id: str
    client_id: str
    title: str
    due_date: date
    assignee_id: str | None = None
    description: str | None = None
    status: TaskStatus = TaskStatus.NOT_STARTED
    priority: Priority = Priority.MEDIUM
    completed_at: datetime | None = None
    created_at: datetime | None = None

    DATE_FIELDS = ("due_date",)
    DATETIME_FIELDS = ("completed_at", "created_at")
    ENUM_FIELDS = {"status": TaskStatus, "priority": Priority}


@dataclass
class Invoice(Record):
    id: str
    invoice_number: str
    amount: float
    due_date: date
    issue_date: date
    created_by: str
    client_id: str | None = None
    task_id: str | None = None
    status: InvoiceStatus = InvoiceStatus.DRAFT
    paid_date: date | None = None
    description: str | None = None
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    DATE_FIELDS = ("due_date", "issue_date", "paid_date")
    DATETIME_FIELDS = ("created_at", "updated_at")
    ENUM_FIELDS = {"status": InvoiceStatus}


@dataclass
class Payment(Record):
    id: str
    invoice_id: str
    amount: float
    payment_date: date
    created_by: str
    method: str | None = None
    reference: str | None = None
    notes: str | None = None
    created_at: datetime | None = None

    DATE_FIELDS = ("payment_date",)
    DATETIME_FIELDS = ("created_at",)


@dataclass
class Document(Record):
    id: str
    uploaded_by: str
    file_name: str
    location_ref: str
    task_id: str | None = None
    client_id: str | None = None
    file_type: str | None = None
    uploaded_at: datetime | None = None

    DATETIME_FIELDS = ("uploaded_at",)
