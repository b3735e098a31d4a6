"""Realtime synchronizer: per-session views that re-fetch on change.

A SessionView holds the snapshots one open page is showing. Each snapshot
has a loader that reads ground truth from the store. Any change event on a
watched collection, including one caused by this session's own write,
re-runs the loader and replaces the snapshot. No patching, no diffing.

After a disconnect the session has missed events it will never receive, so
reconnect() re-fetches everything instead of replaying.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from workdesk.lib.constants import ANY_EVENT
from workdesk.lib.errors import ValidationFailed
from workdesk.realtime.feed import ChangeEvent, ChangeFeed, RowFilter

logger = logging.getLogger(__name__)


@dataclass
class Watch:
    """One snapshot and the loader that refreshes it."""
    key: str
    loader: Callable[[], Any]
    collections: tuple[str, ...]
    row_filter: RowFilter | None = None
    handler: Callable[[ChangeEvent], None] | None = None  # Attached to the session channel
    refetches: int = 0
    last_error: Exception | None = None


@dataclass
class SessionView:
    """Snapshots of shared state for one session.

    Attributes:
        feed: Feed shared by every session
        name: Channel name, used in logs
    """
    feed: ChangeFeed
    name: str
    watches: dict[str, Watch] = field(default_factory=dict)
    snapshots: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.channel = self.feed.channel(self.name).subscribe()

    @property
    def connected(self) -> bool:
        return self.channel.connected

    def watch(
        self,
        key: str,
        loader: Callable[[], Any],
        collections: tuple[str, ...] | list[str],
        row_filter: RowFilter | str | None = None,
        event: str = ANY_EVENT,
    ) -> Any:
        """Register a snapshot refreshed by changes to any of the collections.

        Loads the snapshot immediately and returns it. Watching a key that is
        already watched replaces the earlier watch and its subscriptions.
        """
        if isinstance(row_filter, str):
            row_filter = RowFilter.parse(row_filter)

        if key in self.watches:
            self.unwatch(key)

        watch = Watch(
            key=key,
            loader=loader,
            collections=tuple(collections),
            row_filter=row_filter,
            handler=self._handler_for(key),
        )
        try:
            for collection in watch.collections:
                self.channel.on(collection, watch.handler, event=event, row_filter=row_filter)
        except ValidationFailed:
            self.channel.off(watch.handler)
            raise
        self.watches[key] = watch

        self.refetch(key)
        return self.snapshots.get(key)

    def unwatch(self, key: str) -> None:
        """Stop refreshing a snapshot and drop it."""
        watch = self.watches.pop(key, None)
        if watch is None:
            return
        removed = self.channel.off(watch.handler)
        self.snapshots.pop(key, None)
        logger.debug(f"[SYNC] {self.name}: unwatched {key} ({removed} subscriptions)")

    def watch_collection(self, collection: str, loader: Callable[[], Any], key: str | None = None) -> Any:
        """Watch a whole collection (list pages)."""
        return self.watch(key or collection, loader, (collection,))

    def watch_record(
        self,
        collection: str,
        record_id: str,
        loader: Callable[[], Any],
        key: str | None = None,
    ) -> Any:
        """Watch a single record (detail pages)."""
        return self.watch(key or f"{collection}:{record_id}", loader, (collection,), RowFilter("id", record_id))

    def _handler_for(self, key: str) -> Callable[[ChangeEvent], None]:
        def handler(event: ChangeEvent) -> None:
            # Delivery iterates a copy, so a replaced watch can still be called once
            if self.watches.get(key) is None or self.watches[key].handler is not handler:
                return
            logger.debug(f"[SYNC] {self.name}: {event.collection} {event.kind}, re-fetching {key}")
            self.refetch(key)
        return handler

    def refetch(self, key: str) -> bool:
        """Re-run a loader. On failure, keep the previous snapshot.

        Returns True if the snapshot was replaced.
        """
        watch = self.watches[key]
        try:
            value = watch.loader()
        except Exception as e:
            watch.last_error = e
            logger.warning(f"[SYNC] {self.name}: re-fetch of {key} failed: {e}")
            return False

        watch.refetches += 1
        watch.last_error = None
        self.snapshots[key] = value
        return True

    def refetch_all(self) -> None:
        for key in list(self.watches):
            self.refetch(key)

    def get(self, key: str, default: Any = None) -> Any:
        return self.snapshots.get(key, default)

    def disconnect(self) -> None:
        """Drop the subscription. Events published meanwhile are lost."""
        self.channel.unsubscribe()
        logger.info(f"[SYNC] {self.name}: disconnected")

    def reconnect(self) -> None:
        """Resubscribe and re-read every snapshot from ground truth."""
        self.channel.subscribe()
        logger.info(f"[SYNC] {self.name}: reconnected, re-fetching {len(self.watches)} views")
        self.refetch_all()

    def close(self) -> None:
        self.feed.remove_channel(self.channel)
        self.watches.clear()
        self.snapshots.clear()
