"""Record stores for workdesk.

RecordStore keeps rows in memory for one process; JsonFileStore persists them
to a data directory that several processes can share.
"""

from workdesk.store.files import JsonFileStore
from workdesk.store.locking import LockTimeout, store_lock
from workdesk.store.records import RecordStore, UniqueViolation, new_id

__all__ = [
    "JsonFileStore",
    "LockTimeout",
    "RecordStore",
    "new_id",
    "UniqueViolation",
    "store_lock",
]
