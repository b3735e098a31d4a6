"""Tests for workdesk.workflow.lock module."""

from datetime import date, datetime, timedelta, timezone

from workdesk.lib.roles import Role, capabilities_of
from workdesk.workflow.lock import day_boundary, is_locked, is_overdue

DUE = date(2024, 1, 10)


class TestIsOverdue:
    """Tests for the due-day boundary."""

    def test_boundary_is_end_of_day(self):
        assert day_boundary(DUE) == datetime(2024, 1, 10, 23, 59, 59)

    def test_earlier_in_due_day_not_overdue(self):
        assert is_overdue(DUE, datetime(2024, 1, 10, 0, 0, 0)) is False
        assert is_overdue(DUE, datetime(2024, 1, 10, 23, 59, 58)) is False

    def test_last_second_not_overdue(self):
        assert is_overdue(DUE, datetime(2024, 1, 10, 23, 59, 59)) is False

    def test_next_day_overdue(self):
        assert is_overdue(DUE, datetime(2024, 1, 11, 0, 0, 1)) is True

    def test_aware_now_uses_its_own_timezone(self):
        ist = timezone(timedelta(hours=5, minutes=30))
        assert is_overdue(DUE, datetime(2024, 1, 10, 23, 0, tzinfo=ist)) is False
        assert is_overdue(DUE, datetime(2024, 1, 11, 0, 30, tzinfo=ist)) is True


class TestIsLocked:
    """Tests for is_locked()."""

    def test_staff_locked_after_due_day(self):
        now = datetime(2024, 1, 11, 0, 0, 1)
        assert is_locked(DUE, now, capabilities_of(Role.STAFF)) is True

    def test_staff_unlocked_within_due_day(self):
        now = datetime(2024, 1, 10, 23, 59, 58)
        assert is_locked(DUE, now, capabilities_of(Role.STAFF)) is False

    def test_privileged_never_locked(self):
        now = datetime(2030, 1, 1)
        assert is_locked(DUE, now, capabilities_of(Role.ADMIN)) is False
        assert is_locked(DUE, now, capabilities_of(Role.MANAGER)) is False
