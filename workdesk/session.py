"""Composition root and user sessions.

Workdesk wires one store, one change feed and the services over them. Each
signed-in user gets a Session: their resolved Actor plus a SessionView whose
page snapshots re-fetch whenever a watched collection changes.

Usage:
    desk = Workdesk.from_config(load_config(config_dir))
    session = desk.open_session(user_id)
    tasks = session.open_tasks_page()
    session.desk.tasks.set_status(task_id, "in_progress", session.actor, session.now())
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from workdesk.directory import Directory
from workdesk.lib.config import WorkdeskConfig, configure_logging
from workdesk.lib.constants import CLIENTS, DOCUMENTS, EMPLOYEES, INVOICES, PAYMENTS, TASKS
from workdesk.lib.roles import require, resolve_actor
from workdesk.lib.types import Actor
from workdesk.realtime.feed import ChangeFeed, RowFilter
from workdesk.realtime.sync import SessionView
from workdesk.stats import dashboard_stats, invoice_stats
from workdesk.storage.objects import LocalObjectStorage
from workdesk.store.files import JsonFileStore
from workdesk.store.records import RecordStore
from workdesk.workflow.billing import BillingLedger
from workdesk.workflow.documents import DocumentService
from workdesk.workflow.tasks import TaskService

logger = logging.getLogger(__name__)


@dataclass
class Workdesk:
    """Shared services for every session in the process."""
    store: RecordStore
    storage: LocalObjectStorage
    config: WorkdeskConfig = field(default_factory=WorkdeskConfig)
    clock: Callable[[], datetime] = datetime.now

    def __post_init__(self):
        if self.store.feed is None:
            self.store.feed = ChangeFeed()
        self.tasks = TaskService(self.store)
        self.billing = BillingLedger(self.store, self.config)
        self.documents = DocumentService(self.store, self.storage, self.config)
        self.directory = Directory(self.store)

    @property
    def feed(self) -> ChangeFeed:
        return self.store.feed

    @classmethod
    def from_config(cls, config: WorkdeskConfig, in_memory: bool = False) -> "Workdesk":
        """Build a Workdesk over a file store in config.data_dir (or in memory)."""
        configure_logging(config)
        feed = ChangeFeed()
        store = RecordStore(feed) if in_memory else JsonFileStore(config.data_dir, feed)
        storage = LocalObjectStorage(config.storage_root, config.storage_base_url, config.signing_secret)
        return cls(store=store, storage=storage, config=config)

    def open_session(self, user_id: str, display_name: str = "") -> "Session":
        actor = resolve_actor(self.store, user_id, display_name)
        view = SessionView(self.feed, f"session-{user_id}")
        logger.info(f"[SESSION] {user_id} signed in as {actor.role.value}")
        return Session(desk=self, actor=actor, view=view)


@dataclass
class Session:
    """One signed-in user's open pages."""
    desk: Workdesk
    actor: Actor
    view: SessionView

    def now(self) -> datetime:
        return self.desk.clock()

    # -- pages --

    def open_tasks_page(self) -> Any:
        return self.view.watch_collection(TASKS, lambda: self.desk.tasks.list_tasks(self.actor))

    def open_task_detail(self, task_id: str) -> Any:
        """Watch one task and its documents."""
        task = self.view.watch_record(TASKS, task_id, lambda: self.desk.tasks.get_task(task_id), key="task")
        self.view.watch(
            "task_documents",
            lambda: self.desk.documents.list_documents(task_id),
            (DOCUMENTS,),
            row_filter=RowFilter("task_id", task_id),
        )
        return task

    def open_invoices_page(self) -> Any:
        """Invoices, payments and totals, refreshed by either collection."""
        require(self.actor, "can_manage_billing", "view invoices")

        def load():
            return {
                "invoices": self.desk.billing.list_invoices(self.actor),
                "payments": self.desk.billing.list_payments(self.actor),
                "stats": invoice_stats(self.desk.store, self.actor),
            }
        return self.view.watch("invoices", load, (INVOICES, PAYMENTS))

    def open_dashboard(self) -> Any:
        return self.view.watch(
            "dashboard",
            lambda: dashboard_stats(self.desk.store, self.actor, self.now()),
            (TASKS, CLIENTS),
        )

    def open_clients_page(self) -> Any:
        return self.view.watch_collection(CLIENTS, self.desk.directory.list_clients)

    def open_employees_page(self) -> Any:
        return self.view.watch_collection(EMPLOYEES, self.desk.directory.list_employees)

    def close(self) -> None:
        self.view.close()
        logger.info(f"[SESSION] {self.actor.id} closed")
