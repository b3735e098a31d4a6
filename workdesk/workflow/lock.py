"""Temporal lock on task status changes.

A task is overdue once the whole due day has passed: a task due on a date
stays editable through 23:59:59 of that date. An overdue task can only have
its status changed by an actor who can edit any task, so stalled work gets
escalated to management instead of being quietly self-extended by staff.

The lock gates status transitions only. Reads and document uploads are never
locked.
"""

from datetime import date, datetime, time

from workdesk.lib.roles import Capabilities

END_OF_DAY = time(23, 59, 59)


def day_boundary(due_date: date, tzinfo=None) -> datetime:
    """Last editable instant of the due date."""
    return datetime.combine(due_date, END_OF_DAY, tzinfo=tzinfo)


def is_overdue(due_date: date, now: datetime) -> bool:
    """True once now is past the end of the due day.

    An aware now is compared against the boundary in its own timezone.
    """
    return now > day_boundary(due_date, now.tzinfo)


def is_locked(due_date: date, now: datetime, capabilities: Capabilities) -> bool:
    """True if a status change must be refused for these capabilities."""
    if capabilities.can_edit_any_task:
        return False
    return is_overdue(due_date, now)
