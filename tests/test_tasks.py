"""Tests for workdesk.workflow.tasks module."""

from datetime import datetime, timedelta

import pytest

from workdesk.lib.constants import DOCUMENTS, INVOICES, TASKS
from workdesk.lib.errors import Forbidden, OverdueLocked, ValidationFailed
from workdesk.lib.roles import Role
from workdesk.lib.types import Actor
from workdesk.workflow.state_machine import Priority, TaskStatus
from workdesk.workflow.tasks import TaskPatch, transition_status

from conftest import DUE, NOW

LAST_SECOND = datetime(2024, 1, 10, 23, 59, 58)
NEXT_DAY = datetime(2024, 1, 11, 0, 0, 1)


class TestSetStatus:
    """Tests for the who/when guards on status changes."""

    def test_assignee_before_deadline(self, tasks, task, staff):
        updated = tasks.set_status(task.id, TaskStatus.IN_PROGRESS, staff, LAST_SECOND)
        assert updated.status is TaskStatus.IN_PROGRESS
        assert tasks.get_task(task.id).status is TaskStatus.IN_PROGRESS

    def test_assignee_after_deadline_locked(self, tasks, task, staff):
        with pytest.raises(OverdueLocked) as exc_info:
            tasks.set_status(task.id, TaskStatus.IN_PROGRESS, staff, NEXT_DAY)

        assert exc_info.value.task_id == task.id
        assert "contact your manager" in str(exc_info.value)
        assert tasks.get_task(task.id).status is TaskStatus.NOT_STARTED

    def test_manager_after_deadline_allowed(self, tasks, task, manager):
        updated = tasks.set_status(task.id, TaskStatus.COMPLETED, manager, NEXT_DAY)
        assert updated.status is TaskStatus.COMPLETED
        assert updated.completed_at == NEXT_DAY

    def test_other_staff_forbidden(self, tasks, task, other_staff):
        with pytest.raises(Forbidden):
            tasks.set_status(task.id, TaskStatus.IN_PROGRESS, other_staff, NOW)

    def test_forbidden_checked_before_lock(self, tasks, task, other_staff):
        """A non-assignee gets Forbidden even when the task is also overdue."""
        with pytest.raises(Forbidden):
            tasks.set_status(task.id, TaskStatus.IN_PROGRESS, other_staff, NEXT_DAY)

    def test_complete_then_reopen(self, tasks, task, staff):
        done = tasks.set_status(task.id, "completed", staff, NOW)
        assert done.completed_at == NOW
        assert tasks.get_task(task.id).completed_at == NOW

        reopened = tasks.set_status(task.id, "Waiting for client", staff, NOW)
        assert reopened.status is TaskStatus.WAITING_ON_CLIENT
        assert tasks.get_task(task.id).completed_at is None

    def test_unknown_status_rejected(self, tasks, task, staff):
        with pytest.raises(ValidationFailed):
            tasks.set_status(task.id, "archived", staff, NOW)

    def test_unknown_task(self, tasks, staff):
        with pytest.raises(ValidationFailed):
            tasks.set_status("missing", TaskStatus.COMPLETED, staff, NOW)

    def test_writes_only_status_fields(self, tasks, task, staff, store):
        store.update(TASKS, task.id, {"title": "Renamed elsewhere"})

        tasks.set_status(task.id, TaskStatus.IN_PROGRESS, staff, NOW)

        assert store.get(TASKS, task.id)["title"] == "Renamed elsewhere"

    def test_last_write_wins(self, tasks, task, staff, manager):
        tasks.set_status(task.id, TaskStatus.COMPLETED, manager, NOW)
        tasks.set_status(task.id, TaskStatus.IN_PROGRESS, staff, NOW + timedelta(seconds=1))

        final = tasks.get_task(task.id)
        assert final.status is TaskStatus.IN_PROGRESS
        assert final.completed_at is None


class TestTransitionStatus:
    """Tests for the pure transition_status()."""

    def test_input_unchanged(self, task, staff):
        result = transition_status(task, TaskStatus.COMPLETED, staff, NOW)
        assert result.status is TaskStatus.COMPLETED
        assert task.status is TaskStatus.NOT_STARTED
        assert task.completed_at is None

    def test_staff_without_employee_forbidden(self, task):
        guest = Actor(id="u-guest", role=Role.STAFF)
        with pytest.raises(Forbidden):
            transition_status(task, TaskStatus.COMPLETED, guest, NOW)


class TestCreateTask:
    """Tests for create_task()."""

    def test_creates_with_defaults(self, task, store):
        assert task.status is TaskStatus.NOT_STARTED
        assert task.priority is Priority.MEDIUM
        assert task.due_date == DUE
        assert store.get(TASKS, task.id)["due_date"] == "2024-01-10"

    def test_staff_cannot_create(self, tasks, staff, client_row):
        with pytest.raises(Forbidden):
            tasks.create_task(staff, {"client_id": "c1", "title": "x", "due_date": DUE}, NOW)

    def test_missing_title(self, tasks, admin, client_row):
        with pytest.raises(ValidationFailed) as exc_info:
            tasks.create_task(admin, {"client_id": "c1", "due_date": DUE}, NOW)
        assert exc_info.value.field == "title"

    def test_unknown_client(self, tasks, admin):
        with pytest.raises(ValidationFailed) as exc_info:
            tasks.create_task(admin, {"client_id": "nope", "title": "x", "due_date": DUE}, NOW)
        assert exc_info.value.field == "client_id"

    def test_unknown_assignee(self, tasks, admin, client_row):
        with pytest.raises(ValidationFailed) as exc_info:
            tasks.create_task(admin, {
                "client_id": "c1", "title": "x", "due_date": DUE, "assignee_id": "e-ghost",
            }, NOW)
        assert exc_info.value.field == "assignee_id"

    def test_misspelled_field_rejected(self, tasks, admin, client_row, employees, store):
        with pytest.raises(ValidationFailed) as exc_info:
            tasks.create_task(admin, {
                "client_id": "c1", "title": "x", "due_date": DUE, "assignee": "e-staff",
            }, NOW)
        assert exc_info.value.field == "assignee"
        assert store.select(TASKS) == []

    def test_created_completed_has_timestamp(self, tasks, admin, client_row):
        task = tasks.create_task(admin, {
            "client_id": "c1", "title": "Filed", "due_date": "2024-01-05",
            "status": "Completed", "priority": "high",
        }, NOW)
        assert task.status is TaskStatus.COMPLETED
        assert task.completed_at == NOW
        assert task.priority is Priority.HIGH


class TestListTasks:
    """Tests for list_tasks()."""

    @pytest.fixture
    def second_task(self, tasks, admin, task):
        return tasks.create_task(admin, {
            "client_id": "c1", "title": "TDS filing", "due_date": DUE, "assignee_id": "e-other",
        }, NOW + timedelta(hours=1))

    def test_privileged_sees_all_newest_first(self, tasks, admin, task, second_task):
        listed = tasks.list_tasks(admin)
        assert [t.id for t in listed] == [second_task.id, task.id]

    def test_staff_sees_own(self, tasks, staff, other_staff, task, second_task):
        assert [t.id for t in tasks.list_tasks(staff)] == [task.id]
        assert [t.id for t in tasks.list_tasks(other_staff)] == [second_task.id]

    def test_staff_without_employee_sees_nothing(self, tasks, task):
        assert tasks.list_tasks(Actor(id="u-guest", role=Role.STAFF)) == []


class TestUpdateTask:
    """Tests for update_task()."""

    def test_manager_edits_fields(self, tasks, task, manager, store):
        updated = tasks.update_task(task.id, {"title": "GST return Q4", "assignee_id": "e-other"}, manager, NOW)
        assert updated.title == "GST return Q4"
        row = store.get(TASKS, task.id)
        assert row["title"] == "GST return Q4"
        assert row["assignee_id"] == "e-other"

    def test_staff_cannot_edit(self, tasks, task, staff):
        with pytest.raises(Forbidden):
            tasks.update_task(task.id, {"title": "Mine now"}, staff, NOW)

    def test_cannot_clear_required_field(self, tasks, task, manager):
        with pytest.raises(ValidationFailed) as exc_info:
            tasks.update_task(task.id, {"title": None}, manager, NOW)
        assert exc_info.value.field == "title"

    def test_unknown_field_rejected(self, tasks, task, manager):
        with pytest.raises(ValidationFailed):
            tasks.update_task(task.id, {"completed_at": NOW}, manager, NOW)

    def test_status_through_patch(self, tasks, task, manager, store):
        updated = tasks.update_task(task.id, TaskPatch(status=TaskStatus.COMPLETED), manager, NOW)
        assert updated.completed_at == NOW
        assert store.get(TASKS, task.id)["completed_at"] == NOW.isoformat()

    def test_due_date_extension(self, tasks, task, manager, staff):
        tasks.update_task(task.id, {"due_date": "2024-01-20"}, manager, NOW)
        updated = tasks.set_status(task.id, TaskStatus.IN_PROGRESS, staff, NEXT_DAY)
        assert updated.status is TaskStatus.IN_PROGRESS


class TestDeleteTask:
    """Tests for delete_task()."""

    def _add_document(self, store, doc_id, task_id):
        store.insert(DOCUMENTS, {
            "id": doc_id, "task_id": task_id, "uploaded_by": "u-staff",
            "file_name": f"{doc_id}.pdf", "location_ref": f"acme/{doc_id}.pdf",
        })

    def test_cascades_documents_only(self, tasks, task, admin, store):
        self._add_document(store, "d1", task.id)
        self._add_document(store, "d2", task.id)
        self._add_document(store, "d3", None)
        store.insert(INVOICES, {
            "id": "i1", "invoice_number": "INV-20240110-001", "amount": 5000, "status": "sent",
            "issue_date": "2024-01-10", "due_date": "2024-02-10", "created_by": "u-admin",
            "task_id": task.id,
        })

        removed = tasks.delete_task(task.id, admin)

        assert removed == 2
        assert store.get(TASKS, task.id) is None
        assert [row["id"] for row in store.select(DOCUMENTS)] == ["d3"]
        assert store.get(INVOICES, "i1")["task_id"] == task.id

    def test_staff_cannot_delete(self, tasks, task, staff, store):
        with pytest.raises(Forbidden):
            tasks.delete_task(task.id, staff)
        assert store.get(TASKS, task.id) is not None

    def test_unknown_task(self, tasks, admin):
        with pytest.raises(ValidationFailed):
            tasks.delete_task("missing", admin)
