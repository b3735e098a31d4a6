"""Shared fixtures: an in-memory store with one client, two staff and one task."""

from datetime import date, datetime

import pytest

from workdesk.lib.constants import CLIENTS, EMPLOYEES
from workdesk.lib.roles import Role
from workdesk.lib.types import Actor, Client, Employee
from workdesk.realtime.feed import ChangeFeed
from workdesk.store.records import RecordStore
from workdesk.workflow.tasks import TaskService

NOW = datetime(2024, 1, 10, 12, 0, 0)
DUE = date(2024, 1, 10)


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def store(feed):
    return RecordStore(feed)


@pytest.fixture
def admin():
    return Actor(id="u-admin", role=Role.ADMIN, display_name="Asha Admin", employee_id="e-admin")


@pytest.fixture
def manager():
    return Actor(id="u-manager", role=Role.MANAGER, display_name="Milan Manager")


@pytest.fixture
def staff():
    return Actor(id="u-staff", role=Role.STAFF, display_name="Sam Staff", employee_id="e-staff")


@pytest.fixture
def other_staff():
    return Actor(id="u-other", role=Role.STAFF, display_name="Olu Other", employee_id="e-other")


@pytest.fixture
def client_row(store):
    client = Client(id="c1", name="Acme & Sons", client_code="ACME", created_at=NOW)
    return store.insert(CLIENTS, client.to_row())


@pytest.fixture
def employees(store):
    rows = []
    for emp_id, user_id, name in [
        ("e-staff", "u-staff", "Sam Staff"),
        ("e-other", "u-other", "Olu Other"),
    ]:
        employee = Employee(id=emp_id, user_id=user_id, full_name=name, email=f"{user_id}@example.com")
        rows.append(store.insert(EMPLOYEES, employee.to_row()))
    return rows


@pytest.fixture
def tasks(store):
    return TaskService(store)


@pytest.fixture
def task(tasks, admin, client_row, employees):
    """Task due 2024-01-10, assigned to the staff actor."""
    return tasks.create_task(admin, {
        "client_id": "c1",
        "title": "GST return Q3",
        "due_date": DUE,
        "assignee_id": "e-staff",
    }, NOW)
