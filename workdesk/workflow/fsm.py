"""Status state machines using the transitions library.

Tasks and invoices have no transition graph: every status is reachable from
every other status. The guards that matter (who may write, and when) live in
tasks.py and billing.py. The machines own the side effects that must travel
with a status change:

- Task: completed_at is set on entering completed and cleared otherwise.
- Invoice: paid_date is cleared on leaving paid, and is only ever set by
  the mark_paid trigger carrying a paid_on date.

Usage:
    from workdesk.workflow.fsm import TaskFSM

    fsm = TaskFSM(task)
    fsm.complete(now=now)  # task.status == COMPLETED, task.completed_at == now
    fsm.start(now=now)     # task.completed_at is None again
"""

import logging
from datetime import date, datetime
from typing import Callable

from transitions import Machine

from workdesk.lib.types import Invoice, Task
from workdesk.workflow.state_machine import InvoiceStatus, TaskStatus

logger = logging.getLogger(__name__)


TASK_STATES = [s.value for s in TaskStatus]

# Wildcard source: any status can move to any status
TASK_TRANSITIONS = [
    {"trigger": "reset", "source": "*", "dest": "not_started"},
    {"trigger": "start", "source": "*", "dest": "in_progress"},
    {"trigger": "wait_on_client", "source": "*", "dest": "waiting_on_client"},
    {"trigger": "complete", "source": "*", "dest": "completed"},
]

INVOICE_STATES = [s.value for s in InvoiceStatus]

INVOICE_TRANSITIONS = [
    {"trigger": "mark_draft", "source": "*", "dest": "draft"},
    {"trigger": "send", "source": "*", "dest": "sent"},
    {"trigger": "mark_paid", "source": "*", "dest": "paid"},
    {"trigger": "mark_overdue", "source": "*", "dest": "overdue"},
    {"trigger": "cancel", "source": "*", "dest": "cancelled"},
]


# Pre-computed lookup: dest -> trigger name
def _build_trigger_lookup(transitions: list[dict]) -> dict[str, str]:
    """Build lookup from destination state -> trigger name."""
    return {t["dest"]: t["trigger"] for t in transitions}


TASK_TRIGGER_FOR = _build_trigger_lookup(TASK_TRANSITIONS)
INVOICE_TRIGGER_FOR = _build_trigger_lookup(INVOICE_TRANSITIONS)


class TaskFSM:
    """State machine for one task's status.

    Mutates the wrapped Task in place; persistence is the caller's job.
    """

    def __init__(self, task: Task, on_transition: Callable[[str, str, str], None] | None = None):
        """Initialize FSM for a task.

        Args:
            task: Task to drive
            on_transition: Optional callback(from_state, to_state, trigger) called after transitions
        """
        self.task = task
        self.on_transition = on_transition

        self.machine = Machine(
            model=self,
            states=TASK_STATES,
            transitions=TASK_TRANSITIONS,
            initial=task.status.value,
            auto_transitions=False,
            send_event=True,
            after_state_change="on_state_change",
        )

    def on_state_change(self, event) -> None:
        """Apply the completion timestamp rule after any transition.

        Triggers must be called with now=<datetime>.
        """
        from_state = event.transition.source
        to_state = event.transition.dest
        trigger = event.event.name
        now: datetime | None = event.kwargs.get("now")

        status = TaskStatus(to_state)
        if status is TaskStatus.COMPLETED:
            if now is None:
                raise ValueError("completing a task requires now=<datetime>")
            self.task.completed_at = now
        else:
            self.task.completed_at = None
        self.task.status = status

        logger.info(f"[FSM] task {self.task.id}: {from_state} -> {to_state} ({trigger})")

        if self.on_transition:
            self.on_transition(from_state, to_state, trigger)

    def apply(self, status: TaskStatus, now: datetime) -> Task:
        """Move to status via its trigger and return the task."""
        getattr(self, TASK_TRIGGER_FOR[status.value])(now=now)
        return self.task


class InvoiceFSM:
    """State machine for one invoice's status."""

    def __init__(self, invoice: Invoice, on_transition: Callable[[str, str, str], None] | None = None):
        self.invoice = invoice
        self.on_transition = on_transition

        self.machine = Machine(
            model=self,
            states=INVOICE_STATES,
            transitions=INVOICE_TRANSITIONS,
            initial=invoice.status.value,
            auto_transitions=False,
            send_event=True,
            after_state_change="on_state_change",
        )

    def on_state_change(self, event) -> None:
        """Keep paid_date consistent with the new status.

        mark_paid(paid_on=<date>) records the payment date; mark_paid without
        it (a direct status edit) leaves any existing paid_date alone.
        """
        from_state = event.transition.source
        to_state = event.transition.dest
        trigger = event.event.name
        paid_on: date | None = event.kwargs.get("paid_on")

        status = InvoiceStatus(to_state)
        if status is not InvoiceStatus.PAID:
            self.invoice.paid_date = None
        elif paid_on is not None:
            self.invoice.paid_date = paid_on
        self.invoice.status = status

        logger.info(f"[FSM] invoice {self.invoice.invoice_number}: {from_state} -> {to_state} ({trigger})")

        if self.on_transition:
            self.on_transition(from_state, to_state, trigger)

    def apply(self, status: InvoiceStatus) -> Invoice:
        """Move to status as a direct edit (no payment date)."""
        getattr(self, INVOICE_TRIGGER_FOR[status.value])()
        return self.invoice

    def mark_paid_on(self, paid_on: date) -> Invoice:
        """Mark paid as of a payment date. Only the ledger's payment path calls this."""
        self.mark_paid(paid_on=paid_on)
        return self.invoice
