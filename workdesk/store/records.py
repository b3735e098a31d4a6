"""
Relational record store.

Six flat collections of rows (plus role grants), each row a dict keyed by an
opaque string id. Every write is a single-row operation: it is validated
against the collection's JSON Schema, checked against unique columns, stored,
and then announced on the change feed. Nothing spans more than one row, and
there is no version check: the last write wins.
"""

import logging
import threading
import uuid
from contextlib import contextmanager
from typing import Iterator

from workdesk.lib import validate
from workdesk.lib.constants import COLLECTIONS, DELETE, INSERT, UNIQUE_COLUMNS, UPDATE
from workdesk.lib.errors import StoreFailure, not_found
from workdesk.realtime.feed import ChangeEvent, ChangeFeed

logger = logging.getLogger(__name__)


class UniqueViolation(StoreFailure):
    """A write would duplicate a value in a unique column."""

    def __init__(self, collection: str, column: str, value):
        self.collection = collection
        self.column = column
        self.value = value
        super().__init__(f"duplicate value for {collection}.{column}: '{value}'")


def new_id() -> str:
    """Generate a stable opaque identifier."""
    return uuid.uuid4().hex


def _matches(row: dict, where: dict | None) -> bool:
    if not where:
        return True
    return all(row.get(column) == value for column, value in where.items())


class RecordStore:
    """In-memory store shared by every session in the process.

    Args:
        feed: Change feed to publish writes on. None disables notification.
    """

    def __init__(self, feed: ChangeFeed | None = None):
        self.feed = feed
        self._tables: dict[str, dict[str, dict]] = {c: {} for c in COLLECTIONS}
        self._lock = threading.RLock()

    # -- table access hooks (overridden by file-backed stores) --

    def _load_table(self, collection: str) -> dict[str, dict]:
        return self._tables[collection]

    def _save_table(self, collection: str, table: dict[str, dict]) -> None:
        self._tables[collection] = table

    @contextmanager
    def _write_lock(self) -> Iterator[None]:
        with self._lock:
            yield

    # -- helpers --

    def _check_collection(self, collection: str) -> None:
        if collection not in COLLECTIONS:
            raise StoreFailure(f"unknown collection '{collection}'")

    def _check_unique(self, collection: str, table: dict[str, dict], row: dict) -> None:
        for column in UNIQUE_COLUMNS.get(collection, ()):
            value = row.get(column)
            if value is None:
                continue
            for other_id, other in table.items():
                if other_id != row["id"] and other.get(column) == value:
                    raise UniqueViolation(collection, column, value)

    def _publish(self, event: ChangeEvent) -> None:
        if self.feed is None:
            return
        self.feed.publish(event)

    # -- writes --

    def insert(self, collection: str, row: dict) -> dict:
        """Insert a row, assigning an id if it has none. Returns the stored row."""
        self._check_collection(collection)
        row = dict(row)
        row.setdefault("id", new_id())

        with self._write_lock():
            table = dict(self._load_table(collection))
            if row["id"] in table:
                raise StoreFailure(f"{collection} record '{row['id']}' already exists")
            validate.validate_before_write(row, collection, row["id"])
            self._check_unique(collection, table, row)
            table[row["id"]] = row
            self._save_table(collection, table)

        logger.debug(f"[STORE] insert {collection} {row['id']}")
        self._publish(ChangeEvent(collection, INSERT, new=dict(row)))
        return dict(row)

    def update(self, collection: str, record_id: str, changes: dict) -> dict:
        """Merge changes into an existing row. Returns the stored row.

        Raises:
            ValidationFailed: If the row doesn't exist
            StoreFailure: If the merged row is invalid or breaks uniqueness
        """
        self._check_collection(collection)

        with self._write_lock():
            table = dict(self._load_table(collection))
            old = table.get(record_id)
            if old is None:
                raise not_found(collection, record_id)
            new = {**old, **changes, "id": record_id}
            validate.validate_before_write(new, collection, record_id)
            self._check_unique(collection, table, new)
            table[record_id] = new
            self._save_table(collection, table)

        logger.debug(f"[STORE] update {collection} {record_id}: {sorted(changes)}")
        self._publish(ChangeEvent(collection, UPDATE, new=dict(new), old=dict(old)))
        return dict(new)

    def delete(self, collection: str, record_id: str) -> dict:
        """Delete a row. Returns the deleted row."""
        self._check_collection(collection)

        with self._write_lock():
            table = dict(self._load_table(collection))
            old = table.pop(record_id, None)
            if old is None:
                raise not_found(collection, record_id)
            self._save_table(collection, table)

        logger.debug(f"[STORE] delete {collection} {record_id}")
        self._publish(ChangeEvent(collection, DELETE, old=dict(old)))
        return dict(old)

    def delete_where(self, collection: str, where: dict) -> list[dict]:
        """Delete every row matching where. Each deletion is published separately."""
        self._check_collection(collection)

        with self._write_lock():
            table = dict(self._load_table(collection))
            removed = [row for row in table.values() if _matches(row, where)]
            for row in removed:
                del table[row["id"]]
            if removed:
                self._save_table(collection, table)

        for row in removed:
            self._publish(ChangeEvent(collection, DELETE, old=dict(row)))
        if removed:
            logger.debug(f"[STORE] delete {len(removed)} {collection} where {where}")
        return [dict(row) for row in removed]

    # -- reads --

    def get(self, collection: str, record_id: str) -> dict | None:
        self._check_collection(collection)
        row = self._load_table(collection).get(record_id)
        return dict(row) if row is not None else None

    def select(
        self,
        collection: str,
        where: dict | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[dict]:
        """Return copies of every row matching where (column equality).

        Rows missing the order_by column sort first.
        """
        self._check_collection(collection)
        rows = [dict(row) for row in self._load_table(collection).values() if _matches(row, where)]
        if order_by:
            rows.sort(
                key=lambda r: (r.get(order_by) is not None, r.get(order_by) or ""),
                reverse=descending,
            )
        return rows
