"""Tests for workdesk.stats module."""

from datetime import datetime

import pytest

from workdesk.lib.constants import CLIENTS, INVOICES
from workdesk.lib.errors import Forbidden
from workdesk.stats import DashboardStats, InvoiceStats, dashboard_stats, invoice_stats
from workdesk.workflow.state_machine import TaskStatus

from conftest import NOW

NEXT_DAY = datetime(2024, 1, 11, 9, 0)


@pytest.fixture
def board(store, tasks, admin, task):
    """Three tasks: the staff task, a completed one and one for other staff."""
    done = tasks.create_task(admin, {
        "client_id": "c1", "title": "Closed", "due_date": "2024-01-01",
        "assignee_id": "e-staff", "status": "completed",
    }, NOW)
    other = tasks.create_task(admin, {
        "client_id": "c1", "title": "Other", "due_date": "2024-01-31", "assignee_id": "e-other",
    }, NOW)
    store.insert(CLIENTS, {"id": "c2", "name": "Dormant", "client_code": "DRM", "status": "inactive"})
    return task, done, other


class TestDashboardStats:
    """Tests for dashboard_stats()."""

    def test_privileged_counts(self, store, admin, board):
        stats = dashboard_stats(store, admin, NOW)
        assert stats == DashboardStats(active_clients=1, open_tasks=2, overdue_tasks=0)

    def test_overdue_after_due_day(self, store, admin, board):
        stats = dashboard_stats(store, admin, NEXT_DAY)
        assert stats.overdue_tasks == 1

    def test_staff_sees_own_tasks(self, store, staff, board):
        stats = dashboard_stats(store, staff, NEXT_DAY)
        assert stats == DashboardStats(active_clients=0, open_tasks=1, overdue_tasks=1)

    def test_waiting_is_not_open(self, store, tasks, admin, board):
        task = board[0]
        tasks.set_status(task.id, TaskStatus.WAITING_ON_CLIENT, admin, NOW)
        assert dashboard_stats(store, admin, NOW).open_tasks == 1


class TestInvoiceStats:
    """Tests for invoice_stats()."""

    def _invoice(self, store, invoice_id, amount, status):
        store.insert(INVOICES, {
            "id": invoice_id, "invoice_number": f"INV-{invoice_id}", "amount": amount,
            "status": status, "issue_date": "2024-01-10", "due_date": "2024-02-10",
            "created_by": "u-admin",
        })

    def test_totals(self, store, admin):
        self._invoice(store, "1", 1000, "draft")
        self._invoice(store, "2", 2000, "sent")
        self._invoice(store, "3", 500, "paid")
        self._invoice(store, "4", 300, "overdue")
        self._invoice(store, "5", 99, "cancelled")

        stats = invoice_stats(store, admin)
        assert stats == InvoiceStats(total_invoices=5, total_paid=500, total_pending=3000, total_overdue=300)

    def test_staff_forbidden(self, store, staff):
        with pytest.raises(Forbidden):
            invoice_stats(store, staff)
