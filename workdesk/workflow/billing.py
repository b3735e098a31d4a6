"""Billing ledger: invoices, payments, and the link between them.

Every operation requires can_manage_billing.

Recording a payment is the only path that marks an invoice paid with a paid
date. It closes the invoice whatever the amount: a single partial payment
settles it. That matches how the firm has always used the ledger and is kept
until partial-payment tracking is actually asked for.

Recording a payment is two independent writes (insert payment, then update
invoice). A failure between them leaves a payment against an invoice that
still looks unpaid.
"""

import logging
import secrets
from dataclasses import replace
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from workdesk.lib import validate
from workdesk.lib.config import WorkdeskConfig
from workdesk.lib.constants import CLIENTS, INVOICE_DATE_STAMP, INVOICES, PAYMENTS, TASKS
from workdesk.lib.errors import StoreFailure, ValidationFailed, not_found
from workdesk.lib.roles import require
from workdesk.lib.types import Actor, Invoice, Payment, to_iso
from workdesk.store.records import RecordStore, UniqueViolation, new_id
from workdesk.workflow.fsm import InvoiceFSM
from workdesk.workflow.state_machine import InvoiceStatus, parse_invoice_status

logger = logging.getLogger(__name__)


class InvoiceDraft(BaseModel):
    """Input for creating an invoice."""
    model_config = ConfigDict(extra="forbid")

    client_id: str = Field(min_length=1)
    amount: float = Field(gt=0)
    due_date: date
    task_id: str | None = None
    issue_date: date | None = None  # Defaults to today
    description: str | None = None
    notes: str | None = None
    status: InvoiceStatus = InvoiceStatus.DRAFT

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, v):
        return parse_invoice_status(v)


class InvoicePatch(BaseModel):
    """Free-form edit of an invoice.

    paid_date and invoice_number are not editable; extra fields are refused.
    """
    model_config = ConfigDict(extra="forbid")

    client_id: str | None = None
    task_id: str | None = None
    amount: float | None = Field(default=None, gt=0)
    status: InvoiceStatus | None = None
    issue_date: date | None = None
    due_date: date | None = None
    description: str | None = None
    notes: str | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, v):
        return None if v is None else parse_invoice_status(v)


class PaymentInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount: float = Field(gt=0)
    method: str | None = None
    reference: str | None = None
    notes: str | None = None


REQUIRED_INVOICE_FIELDS = ("amount", "status", "issue_date", "due_date")


def generate_invoice_number(now: datetime, prefix: str = "INV") -> str:
    """Human-readable number: PREFIX-YYYYMMDD-NNN with a random suffix.

    Not unique by construction; the store's unique column catches collisions.
    """
    return f"{prefix}-{now.strftime(INVOICE_DATE_STAMP)}-{secrets.randbelow(1000):03d}"


class BillingLedger:
    """Invoice and payment operations against a shared record store."""

    def __init__(self, store: RecordStore, config: WorkdeskConfig | None = None):
        self.store = store
        self.config = config or WorkdeskConfig()

    # -- reads --

    def _load_invoice(self, invoice_id: str) -> Invoice:
        row = self.store.get(INVOICES, invoice_id)
        if row is None:
            raise not_found(INVOICES, invoice_id)
        return Invoice.from_row(row)

    def _payments(self, invoice_id: str | None) -> list[Payment]:
        where = {"invoice_id": invoice_id} if invoice_id else None
        rows = self.store.select(PAYMENTS, where=where, order_by="payment_date", descending=True)
        return [Payment.from_row(row) for row in rows]

    def get_invoice(self, invoice_id: str, actor: Actor) -> Invoice:
        require(actor, "can_manage_billing", "view invoices")
        return self._load_invoice(invoice_id)

    def list_invoices(self, actor: Actor) -> list[Invoice]:
        """Newest first."""
        require(actor, "can_manage_billing", "view invoices")
        rows = self.store.select(INVOICES, order_by="created_at", descending=True)
        return [Invoice.from_row(row) for row in rows]

    def list_payments(self, actor: Actor, invoice_id: str | None = None) -> list[Payment]:
        require(actor, "can_manage_billing", "view payments")
        return self._payments(invoice_id)

    def amount_paid(self, invoice_id: str, actor: Actor) -> float:
        """Sum of payments recorded against an invoice. Informational only."""
        require(actor, "can_manage_billing", "view payments")
        return sum(p.amount for p in self._payments(invoice_id))

    # -- writes --

    def _check_refs(self, client_id: str | None, task_id: str | None) -> None:
        if client_id is not None and self.store.get(CLIENTS, client_id) is None:
            raise ValidationFailed(f"client '{client_id}' not found", field="client_id")
        if task_id is not None and self.store.get(TASKS, task_id) is None:
            raise ValidationFailed(f"task '{task_id}' not found", field="task_id")

    def create_invoice(self, actor: Actor, draft: InvoiceDraft | dict, now: datetime) -> Invoice:
        """Create an invoice with a freshly generated number.

        A number that collides with an existing invoice is regenerated, up to
        invoice_number_attempts times.
        """
        require(actor, "can_manage_billing", "create invoices")
        draft = validate.parse_input(InvoiceDraft, draft)
        self._check_refs(draft.client_id, draft.task_id)

        invoice = Invoice(
            id=new_id(),
            invoice_number="",
            amount=draft.amount,
            due_date=draft.due_date,
            issue_date=draft.issue_date or now.date(),
            created_by=actor.id,
            client_id=draft.client_id,
            task_id=draft.task_id,
            description=draft.description,
            notes=draft.notes,
            created_at=now,
            updated_at=now,
        )
        if draft.status is not InvoiceStatus.DRAFT:
            invoice = InvoiceFSM(invoice).apply(draft.status)

        attempts = max(1, self.config.invoice_number_attempts)
        for attempt in range(1, attempts + 1):
            invoice.invoice_number = generate_invoice_number(now, self.config.invoice_prefix)
            try:
                self.store.insert(INVOICES, invoice.to_row())
                break
            except UniqueViolation:
                logger.warning(
                    f"[LEDGER] invoice number {invoice.invoice_number} taken "
                    f"(attempt {attempt}/{attempts})"
                )
        else:
            raise StoreFailure(f"could not allocate a unique invoice number after {attempts} attempts")

        logger.info(
            f"[LEDGER] {invoice.invoice_number}: created by {actor.id}, "
            f"amount {invoice.amount}, due {invoice.due_date}"
        )
        return invoice

    def update_invoice(self, invoice_id: str, patch: InvoicePatch | dict, actor: Actor, now: datetime) -> Invoice:
        """Apply a field patch. Status may be set to any value directly.

        Leaving paid clears paid_date. Setting paid here does not set one.
        """
        require(actor, "can_manage_billing", "edit invoices")
        patch = validate.parse_input(InvoicePatch, patch)
        changes = patch.model_dump(exclude_unset=True)
        for name in REQUIRED_INVOICE_FIELDS:
            if name in changes and changes[name] is None:
                raise ValidationFailed(f"{name} cannot be cleared", field=name)
        self._check_refs(changes.get("client_id"), changes.get("task_id"))

        invoice = self._load_invoice(invoice_id)
        new_status = changes.pop("status", None)
        invoice = replace(invoice, **changes, updated_at=now)
        if new_status is not None:
            invoice = InvoiceFSM(invoice).apply(new_status)

        row = invoice.to_row()
        written = {name: row[name] for name in changes}
        written["updated_at"] = row["updated_at"]
        if new_status is not None:
            written["status"] = row["status"]
            written["paid_date"] = row["paid_date"]
        self.store.update(INVOICES, invoice_id, written)

        logger.info(f"[LEDGER] {invoice.invoice_number}: updated by {actor.id}: {sorted(written)}")
        return invoice

    def record_payment(
        self,
        invoice_id: str,
        amount: float,
        actor: Actor,
        now: datetime,
        method: str | None = None,
        reference: str | None = None,
        notes: str | None = None,
    ) -> tuple[Invoice, Payment]:
        """Append a payment and mark the invoice paid as of today.

        Any positive amount closes the invoice. Calling twice leaves the
        invoice paid with two payment rows.

        Returns:
            (invoice, payment) as persisted
        """
        require(actor, "can_manage_billing", "record payments")
        data = validate.parse_input(PaymentInput, {
            "amount": amount,
            "method": method,
            "reference": reference,
            "notes": notes,
        })
        invoice = self._load_invoice(invoice_id)

        payment = Payment(
            id=new_id(),
            invoice_id=invoice_id,
            amount=data.amount,
            payment_date=now.date(),
            created_by=actor.id,
            method=data.method,
            reference=data.reference,
            notes=data.notes,
            created_at=now,
        )
        self.store.insert(PAYMENTS, payment.to_row())

        invoice = InvoiceFSM(replace(invoice, updated_at=now)).mark_paid_on(now.date())
        self.store.update(INVOICES, invoice_id, {
            "status": invoice.status.value,
            "paid_date": to_iso(invoice.paid_date),
            "updated_at": to_iso(invoice.updated_at),
        })

        paid_total = sum(p.amount for p in self._payments(invoice_id))
        if paid_total < invoice.amount:
            logger.warning(
                f"[LEDGER] {invoice.invoice_number}: marked paid with {paid_total} of {invoice.amount} received"
            )
        logger.info(f"[LEDGER] {invoice.invoice_number}: payment {payment.amount} recorded by {actor.id}")
        return invoice, payment

    def delete_invoice(self, invoice_id: str, actor: Actor) -> Invoice:
        """Delete an invoice. Its payments stay as orphaned rows."""
        require(actor, "can_manage_billing", "delete invoices")
        invoice = Invoice.from_row(self.store.delete(INVOICES, invoice_id))

        orphans = self.store.select(PAYMENTS, where={"invoice_id": invoice_id})
        if orphans:
            logger.info(f"[LEDGER] {invoice.invoice_number}: deleted, {len(orphans)} payments left orphaned")
        else:
            logger.info(f"[LEDGER] {invoice.invoice_number}: deleted by {actor.id}")
        return invoice
