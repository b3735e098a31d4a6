"""
Lock management for file-backed stores.

Uses flock on a lock file inside the data directory so that separate
processes serialize their single-row writes.
"""

import fcntl
import os
import time
from contextlib import contextmanager
from pathlib import Path

from workdesk.lib.errors import StoreFailure


class LockTimeout(StoreFailure):
    """Lock acquisition timed out."""
    pass


LOCK_POLL_SECONDS = 0.05


@contextmanager
def _acquire_lock(lock_file: Path, timeout: float, lock_name: str):
    """
    Internal helper to acquire an exclusive file lock.

    Args:
        lock_file: Path to the lock file
        timeout: Seconds to wait for lock
        lock_name: Human-readable name for error messages
    """
    lock_file.parent.mkdir(parents=True, exist_ok=True)

    # Lock files are never deleted: deleting one lets two processes hold
    # "exclusive" locks on different inodes with the same path.
    fd = open(lock_file, 'a')
    start = time.monotonic()

    while True:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            break
        except BlockingIOError:
            if time.monotonic() - start > timeout:
                fd.close()
                raise LockTimeout(f"Could not acquire {lock_name} within {timeout}s")
            time.sleep(LOCK_POLL_SECONDS)

    try:
        fd.truncate(0)
        fd.write(f"{os.getpid()}\n")
        fd.flush()
        yield
    finally:
        fcntl.flock(fd, fcntl.LOCK_UN)
        fd.close()


@contextmanager
def store_lock(data_dir: Path, timeout: float = 10):
    """
    Acquire the store-wide write lock, yield, release on exit.
    """
    lock_file = data_dir / "locks" / "store.lock"
    with _acquire_lock(lock_file, timeout, f"store lock for {data_dir}"):
        yield
