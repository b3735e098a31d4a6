"""
File-backed record store.

Each collection lives in <data_dir>/<collection>.json. Reads always go to
disk, and each write holds the store flock for the read-modify-write of one
table, so several processes sharing a data directory see each other's writes.
Change events are still published only on this process's feed.
"""

import json
import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from workdesk.lib.errors import StoreFailure
from workdesk.realtime.feed import ChangeFeed
from workdesk.store.locking import store_lock
from workdesk.store.records import RecordStore

logger = logging.getLogger(__name__)


class JsonFileStore(RecordStore):
    """RecordStore persisted as one JSON file per collection."""

    def __init__(self, data_dir: Path, feed: ChangeFeed | None = None, lock_timeout: float = 10):
        super().__init__(feed)
        self.data_dir = Path(data_dir)
        self.lock_timeout = lock_timeout
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _table_path(self, collection: str) -> Path:
        return self.data_dir / f"{collection}.json"

    def _load_table(self, collection: str) -> dict[str, dict]:
        path = self._table_path(collection)
        if not path.exists():
            return {}
        try:
            rows = json.loads(path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise StoreFailure(f"Could not read {path}: {e}") from e
        return {row["id"]: row for row in rows}

    def _save_table(self, collection: str, table: dict[str, dict]) -> None:
        path = self._table_path(collection)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            tmp_path.write_text(json.dumps(list(table.values()), indent=2))
            os.replace(tmp_path, path)
        except OSError as e:
            raise StoreFailure(f"Could not write {path}: {e}") from e

    @contextmanager
    def _write_lock(self) -> Iterator[None]:
        with self._lock, store_lock(self.data_dir, self.lock_timeout):
            yield
