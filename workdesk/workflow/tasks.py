"""Task lifecycle: who may change a task, when, and what follows.

There is no transition graph. The guards are:

1. Who: anyone who can edit any task, or the task's own assignee.
2. When: past the due day, only actors who can edit any task.

Every accepted write is persisted to the store, which announces it on the
tasks topic so open sessions re-fetch.

Usage:
    from workdesk.workflow.tasks import TaskService

    tasks = TaskService(store)
    tasks.set_status(task_id, TaskStatus.IN_PROGRESS, actor, now)
"""

import logging
from dataclasses import replace
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from workdesk.lib import validate
from workdesk.lib.constants import CLIENTS, DOCUMENTS, EMPLOYEES, INVOICES, TASKS
from workdesk.lib.errors import Forbidden, OverdueLocked, ValidationFailed, not_found
from workdesk.lib.roles import capabilities_of, require
from workdesk.lib.types import Actor, Task, to_iso
from workdesk.store.records import RecordStore, new_id
from workdesk.workflow.fsm import TaskFSM
from workdesk.workflow.lock import is_locked
from workdesk.workflow.state_machine import (
    Priority,
    TaskStatus,
    parse_priority,
    parse_task_status,
)

logger = logging.getLogger(__name__)


class TaskDraft(BaseModel):
    """Input for creating a task. Client, title and due date are mandatory."""
    model_config = ConfigDict(extra="forbid")

    client_id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    due_date: date
    assignee_id: str | None = None
    description: str | None = None
    status: TaskStatus = TaskStatus.NOT_STARTED
    priority: Priority = Priority.MEDIUM

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, v):
        return parse_task_status(v)

    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, v):
        return parse_priority(v)


class TaskPatch(BaseModel):
    """Partial edit of a task. Only fields that are set are applied."""
    model_config = ConfigDict(extra="forbid")

    client_id: str | None = Field(default=None, min_length=1)
    title: str | None = Field(default=None, min_length=1)
    due_date: date | None = None
    assignee_id: str | None = None
    description: str | None = None
    status: TaskStatus | None = None
    priority: Priority | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, v):
        return None if v is None else parse_task_status(v)

    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, v):
        return None if v is None else parse_priority(v)


# Fields a patch may not null out
REQUIRED_TASK_FIELDS = ("client_id", "title", "due_date", "status", "priority")


def is_assignee(task: Task, actor: Actor) -> bool:
    return actor.employee_id is not None and actor.employee_id == task.assignee_id


def transition_status(task: Task, new_status: TaskStatus, actor: Actor, now: datetime) -> Task:
    """Decide and apply a status change without touching storage.

    Returns a new Task; the input is left unchanged.

    Raises:
        Forbidden: Actor can't edit any task and isn't the assignee
        OverdueLocked: Past the due day and actor isn't privileged
    """
    caps = capabilities_of(actor)
    may_write = caps.can_edit_any_task or (
        caps.can_edit_own_assigned_task_status and is_assignee(task, actor)
    )
    if not may_write:
        raise Forbidden("change task status", actor.id, f"task {task.id} is not assigned to them")

    if is_locked(task.due_date, now, caps):
        logger.info(f"[TASK] {task.id}: status change by {actor.id} refused, due {task.due_date}")
        raise OverdueLocked(task.id, task.due_date)

    return TaskFSM(replace(task)).apply(new_status, now)


class TaskService:
    """Task operations against a shared record store."""

    def __init__(self, store: RecordStore):
        self.store = store

    def get_task(self, task_id: str) -> Task:
        row = self.store.get(TASKS, task_id)
        if row is None:
            raise not_found(TASKS, task_id)
        return Task.from_row(row)

    def list_tasks(self, actor: Actor) -> list[Task]:
        """Newest first. Staff see only tasks assigned to them."""
        if capabilities_of(actor).can_edit_any_task:
            where = None
        elif actor.employee_id is None:
            return []
        else:
            where = {"assignee_id": actor.employee_id}
        rows = self.store.select(TASKS, where=where, order_by="created_at", descending=True)
        return [Task.from_row(row) for row in rows]

    def _check_refs(self, client_id: str | None, assignee_id: str | None) -> None:
        if client_id is not None and self.store.get(CLIENTS, client_id) is None:
            raise ValidationFailed(f"client '{client_id}' not found", field="client_id")
        if assignee_id is not None and self.store.get(EMPLOYEES, assignee_id) is None:
            raise ValidationFailed(f"employee '{assignee_id}' not found", field="assignee_id")

    def create_task(self, actor: Actor, draft: TaskDraft | dict, now: datetime) -> Task:
        """Create a task. Requires can_assign_tasks."""
        require(actor, "can_assign_tasks", "create tasks")
        draft = validate.parse_input(TaskDraft, draft)
        self._check_refs(draft.client_id, draft.assignee_id)

        task = Task(
            id=new_id(),
            client_id=draft.client_id,
            title=draft.title,
            due_date=draft.due_date,
            assignee_id=draft.assignee_id,
            description=draft.description,
            priority=draft.priority,
            created_at=now,
        )
        if draft.status is not TaskStatus.NOT_STARTED:
            task = TaskFSM(task).apply(draft.status, now)

        self.store.insert(TASKS, task.to_row())
        logger.info(f"[TASK] {task.id}: created by {actor.id} for client {task.client_id}, due {task.due_date}")
        return task

    def set_status(self, task_id: str, new_status: TaskStatus | str, actor: Actor, now: datetime) -> Task:
        """Change a task's status.

        Writes only status and completed_at; a concurrent write to the same
        task simply overwrites or is overwritten (last write wins).
        """
        new_status = parse_task_status(new_status)
        task = transition_status(self.get_task(task_id), new_status, actor, now)
        self.store.update(TASKS, task_id, {
            "status": task.status.value,
            "completed_at": to_iso(task.completed_at),
        })
        logger.info(f"[TASK] {task_id}: status {task.status.value} by {actor.id}")
        return task

    def update_task(self, task_id: str, patch: TaskPatch | dict, actor: Actor, now: datetime) -> Task:
        """Edit any field of a task. Requires can_edit_any_task."""
        require(actor, "can_edit_any_task", "edit tasks")
        patch = validate.parse_input(TaskPatch, patch)
        changes = patch.model_dump(exclude_unset=True)
        for name in REQUIRED_TASK_FIELDS:
            if name in changes and changes[name] is None:
                raise ValidationFailed(f"{name} cannot be cleared", field=name)

        self._check_refs(changes.get("client_id"), changes.get("assignee_id"))

        task = self.get_task(task_id)
        new_status = changes.pop("status", None)
        task = replace(task, **changes)
        if new_status is not None:
            task = TaskFSM(task).apply(new_status, now)

        row = task.to_row()
        written = {name: row[name] for name in changes}
        if new_status is not None:
            written["status"] = row["status"]
            written["completed_at"] = row["completed_at"]
        if written:
            self.store.update(TASKS, task_id, written)
        logger.info(f"[TASK] {task_id}: updated by {actor.id}: {sorted(written)}")
        return task

    def delete_task(self, task_id: str, actor: Actor) -> int:
        """Delete a task and every document attached to it.

        Invoices that reference the task are left in place.

        Returns:
            Number of documents deleted
        """
        require(actor, "can_edit_any_task", "delete tasks")
        self.get_task(task_id)

        documents = self.store.delete_where(DOCUMENTS, {"task_id": task_id})
        self.store.delete(TASKS, task_id)

        invoices = self.store.select(INVOICES, where={"task_id": task_id})
        if invoices:
            numbers = ", ".join(row["invoice_number"] for row in invoices)
            logger.info(f"[TASK] {task_id}: deleted; invoices still reference it: {numbers}")
        logger.info(f"[TASK] {task_id}: deleted by {actor.id} with {len(documents)} documents")
        return len(documents)
