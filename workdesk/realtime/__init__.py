"""Realtime change propagation between sessions.

Writes publish a ChangeEvent on the collection's topic; every session that
watches the collection re-reads it from the store.
"""

from workdesk.realtime.feed import (
    ChangeEvent,
    ChangeFeed,
    Channel,
    RowFilter,
    Subscription,
)
from workdesk.realtime.sync import (
    SessionView,
    Watch,
)

__all__ = [
    "ChangeEvent",
    "ChangeFeed",
    "Channel",
    "RowFilter",
    "Subscription",
    "SessionView",
    "Watch",
]
