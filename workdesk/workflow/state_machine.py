"""Status domains for tasks and invoices.

Enum values match the FSM state strings in fsm.py and the values persisted
in the record store.

Usage:
    from workdesk.workflow.state_machine import TaskStatus, parse_task_status

    parse_task_status("in_progress")  # TaskStatus.IN_PROGRESS
"""

from enum import Enum

from workdesk.lib.errors import ValidationFailed


class TaskStatus(Enum):
    """Work item statuses. No ordering is enforced between them."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    WAITING_ON_CLIENT = "waiting_on_client"
    COMPLETED = "completed"


class InvoiceStatus(Enum):
    """Invoice statuses."""

    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class Priority(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ClientStatus(Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


# Display labels shown in the office front end
TASK_STATUS_LABELS = {
    "not started": TaskStatus.NOT_STARTED,
    "in progress": TaskStatus.IN_PROGRESS,
    "waiting for client": TaskStatus.WAITING_ON_CLIENT,
    "completed": TaskStatus.COMPLETED,
}

OPEN_TASK_STATUSES = (TaskStatus.NOT_STARTED, TaskStatus.IN_PROGRESS)
PENDING_INVOICE_STATUSES = (InvoiceStatus.DRAFT, InvoiceStatus.SENT)


def _parse(enum_cls, value, field: str):
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        for member in enum_cls:
            if member.value == value:
                return member
    raise ValidationFailed(f"unknown {field} '{value}'", field=field)


def parse_task_status(value) -> TaskStatus:
    """Parse a stored value or a display label into TaskStatus.

    Raises:
        ValidationFailed: If the value names no status
    """
    if isinstance(value, str) and value.strip().lower() in TASK_STATUS_LABELS:
        return TASK_STATUS_LABELS[value.strip().lower()]
    return _parse(TaskStatus, value, "status")


def parse_invoice_status(value) -> InvoiceStatus:
    """Parse a stored value (case-insensitive) into InvoiceStatus."""
    if isinstance(value, str):
        value = value.strip().lower()
    return _parse(InvoiceStatus, value, "status")


def parse_priority(value) -> Priority:
    if isinstance(value, str):
        value = value.strip().lower()
    return _parse(Priority, value, "priority")


def parse_client_status(value) -> ClientStatus:
    if isinstance(value, str):
        value = value.strip().lower()
    return _parse(ClientStatus, value, "status")
