"""Summary figures for the dashboard and the billing page."""

from dataclasses import dataclass
from datetime import datetime

from workdesk.lib.constants import CLIENTS, INVOICES, TASKS
from workdesk.lib.roles import capabilities_of, require
from workdesk.lib.types import Actor, Invoice, Task
from workdesk.store.records import RecordStore
from workdesk.workflow.lock import is_overdue
from workdesk.workflow.state_machine import (
    OPEN_TASK_STATUSES,
    PENDING_INVOICE_STATUSES,
    ClientStatus,
    InvoiceStatus,
    TaskStatus,
)


@dataclass
class DashboardStats:
    active_clients: int
    open_tasks: int
    overdue_tasks: int


@dataclass
class InvoiceStats:
    total_invoices: int
    total_paid: float
    total_pending: float  # draft + sent
    total_overdue: float


def dashboard_stats(store: RecordStore, actor: Actor, now: datetime) -> DashboardStats:
    """Counts for the actor's dashboard.

    Staff see only their own tasks and no client count.
    """
    if capabilities_of(actor).can_edit_any_task:
        tasks = [Task.from_row(row) for row in store.select(TASKS)]
        active_clients = len(store.select(CLIENTS, where={"status": ClientStatus.ACTIVE.value}))
    else:
        tasks = []
        if actor.employee_id is not None:
            rows = store.select(TASKS, where={"assignee_id": actor.employee_id})
            tasks = [Task.from_row(row) for row in rows]
        active_clients = 0

    return DashboardStats(
        active_clients=active_clients,
        open_tasks=sum(1 for t in tasks if t.status in OPEN_TASK_STATUSES),
        overdue_tasks=sum(
            1 for t in tasks
            if t.status is not TaskStatus.COMPLETED and is_overdue(t.due_date, now)
        ),
    )


def invoice_stats(store: RecordStore, actor: Actor) -> InvoiceStats:
    require(actor, "can_manage_billing", "view billing totals")
    invoices = [Invoice.from_row(row) for row in store.select(INVOICES)]

    def total(statuses) -> float:
        return sum(i.amount for i in invoices if i.status in statuses)

    return InvoiceStats(
        total_invoices=len(invoices),
        total_paid=total((InvoiceStatus.PAID,)),
        total_pending=total(PENDING_INVOICE_STATUSES),
        total_overdue=total((InvoiceStatus.OVERDUE,)),
    )
