"""Change-notification feed.

One topic per collection. Sessions group their subscriptions into a named
Channel, the way a browser page opens one realtime channel and attaches a
handler per table:

    channel = (
        feed.channel("task-detail")
        .on("tasks", reload_task, row_filter=RowFilter("id", task_id))
        .on("documents", reload_documents, row_filter=RowFilter("task_id", task_id))
        .subscribe()
    )

Delivery is at-least-once while a channel is subscribed and nothing while it
is not. There is no ordering guarantee across topics and no replay: a channel
that resubscribes has missed whatever was published in between.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable

from workdesk.lib.constants import ANY_EVENT, ANY_EVENT_ALIAS, COLLECTIONS, EVENT_KINDS
from workdesk.lib.errors import ValidationFailed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChangeEvent:
    """A single insert, update or delete on a collection."""
    collection: str
    kind: str  # "insert", "update", "delete"
    new: dict | None = None  # Row after the write (None for delete)
    old: dict | None = None  # Row before the write (None for insert)

    @property
    def record_id(self) -> str | None:
        row = self.new or self.old or {}
        return row.get("id")


@dataclass(frozen=True)
class RowFilter:
    """Equality filter on one column, e.g. RowFilter("task_id", "t1")."""
    column: str
    value: str

    @classmethod
    def parse(cls, expression: str) -> "RowFilter":
        """Parse a "column=eq.value" expression."""
        column, sep, rest = expression.partition("=")
        if not sep or not rest.startswith("eq.") or not column:
            raise ValidationFailed(f"unsupported row filter '{expression}'", field="row_filter")
        return cls(column.strip(), rest[3:])

    def matches(self, event: ChangeEvent) -> bool:
        # Either side of an update may match: a row moving out of the filter
        # still concerns the watcher.
        for row in (event.new, event.old):
            if row is not None and self.column in row and str(row[self.column]) == self.value:
                return True
        return False

    def __str__(self) -> str:
        return f"{self.column}=eq.{self.value}"


@dataclass
class Subscription:
    collection: str
    handler: Callable[[ChangeEvent], None]
    event: str = ANY_EVENT
    row_filter: RowFilter | None = None

    def matches(self, event: ChangeEvent) -> bool:
        if event.collection != self.collection:
            return False
        if self.event != ANY_EVENT and self.event != event.kind:
            return False
        return self.row_filter is None or self.row_filter.matches(event)


@dataclass(eq=False)
class Channel:
    """Named group of subscriptions owned by one session."""
    feed: "ChangeFeed"
    name: str
    subscriptions: list[Subscription] = field(default_factory=list)
    connected: bool = False

    def on(
        self,
        collection: str,
        handler: Callable[[ChangeEvent], None],
        event: str = ANY_EVENT,
        row_filter: RowFilter | str | None = None,
    ) -> "Channel":
        """Attach a handler for changes to a collection. Returns self for chaining.

        event is one of insert, update, delete, or "*" / "any" for all three.
        """
        if collection not in COLLECTIONS:
            raise ValidationFailed(f"unknown collection '{collection}'", field="collection")
        if event == ANY_EVENT_ALIAS:
            event = ANY_EVENT
        if event != ANY_EVENT and event not in EVENT_KINDS:
            raise ValidationFailed(f"unknown event kind '{event}'", field="event")
        if isinstance(row_filter, str):
            row_filter = RowFilter.parse(row_filter)
        self.subscriptions.append(Subscription(collection, handler, event, row_filter))
        return self

    def off(self, handler: Callable[[ChangeEvent], None]) -> int:
        """Detach every subscription using handler. Returns how many were removed."""
        kept = [sub for sub in self.subscriptions if sub.handler is not handler]
        removed = len(self.subscriptions) - len(kept)
        self.subscriptions[:] = kept
        return removed

    def subscribe(self) -> "Channel":
        """Start receiving events."""
        self.feed._attach(self)
        self.connected = True
        logger.debug(f"[FEED] {self.name}: subscribed ({len(self.subscriptions)} handlers)")
        return self

    def unsubscribe(self) -> None:
        """Stop receiving events. Events published meanwhile are not replayed."""
        self.connected = False
        self.feed._detach(self)
        logger.debug(f"[FEED] {self.name}: unsubscribed")

    def deliver(self, event: ChangeEvent) -> int:
        """Run every matching handler. Returns number of handlers run."""
        if not self.connected:
            return 0

        delivered = 0
        for sub in list(self.subscriptions):
            if not sub.matches(event):
                continue
            delivered += 1
            try:
                sub.handler(event)
            except Exception as e:
                # A failing session must not break the writer or other sessions
                logger.warning(
                    f"[FEED] {self.name}: handler for {event.collection} {event.kind} failed: {e}"
                )
        return delivered


class ChangeFeed:
    """In-process change-notification hub shared by all sessions."""

    def __init__(self):
        self._channels: list[Channel] = []
        self._lock = threading.Lock()

    def channel(self, name: str) -> Channel:
        """Create a channel. Call subscribe() on it to start delivery."""
        return Channel(feed=self, name=name)

    def remove_channel(self, channel: Channel) -> None:
        channel.unsubscribe()

    def _attach(self, channel: Channel) -> None:
        with self._lock:
            if channel not in self._channels:
                self._channels.append(channel)

    def _detach(self, channel: Channel) -> None:
        with self._lock:
            if channel in self._channels:
                self._channels.remove(channel)

    @property
    def channels(self) -> list[Channel]:
        with self._lock:
            return list(self._channels)

    def publish(self, event: ChangeEvent) -> int:
        """Deliver an event to every connected channel.

        Returns the number of handlers that ran.
        """
        if event.kind not in EVENT_KINDS:
            raise ValidationFailed(f"unknown event kind '{event.kind}'", field="kind")

        delivered = 0
        for channel in self.channels:
            delivered += channel.deliver(event)

        logger.debug(
            f"[FEED] {event.collection} {event.kind} {event.record_id}: {delivered} handlers"
        )
        return delivered
