"""
Routine scheduling rules and RoutineService instances.
"""

import os
import time
from datetime import date

import pytest

from lib.errors import BadRequestError, NotFoundError
from lib.routine_service import RoutineService
from lib.routines import get_missed_dates_until_next_due, get_next_due_date, get_overdue_dates, is_due_on_date

MONDAY = date(2026, 1, 5)


@pytest.fixture
def pacific():
    if not hasattr(time, "tzset"):
        pytest.skip("needs time.tzset")
    previous = os.environ.get("TZ")
    os.environ["TZ"] = "PST8PDT"
    time.tzset()
    yield
    if previous is None:
        os.environ.pop("TZ", None)
    else:
        os.environ["TZ"] = previous
    time.tzset()


class TestIsDueOnDate:
    def test_daily(self):
        """Daily routines are due every day."""
        assert is_due_on_date({"recurrence_rule": "daily"}, MONDAY)

    def test_weekly_defaults_to_monday(self):
        """Weekly without days means Mondays."""
        routine = {"recurrence_rule": "weekly"}
        assert is_due_on_date(routine, MONDAY)
        assert not is_due_on_date(routine, date(2026, 1, 6))

    def test_weekly_days_from_json(self):
        """Day names may be stored as JSON text and are matched on prefix."""
        routine = {"recurrence_rule": "weekly", "recurrence_days": '["Tuesday", "fri"]'}
        assert is_due_on_date(routine, date(2026, 1, 6))
        assert is_due_on_date(routine, date(2026, 1, 9))
        assert not is_due_on_date(routine, MONDAY)

    def test_monthly(self):
        """Monthly routines fall on listed days, the 1st by default."""
        assert is_due_on_date({"recurrence_rule": "monthly"}, date(2026, 2, 1))
        routine = {"recurrence_rule": "monthly", "recurrence_days": [15]}
        assert is_due_on_date(routine, date(2026, 2, 15))
        assert not is_due_on_date(routine, date(2026, 2, 1))

    def test_bimonthly(self):
        """Bimonthly is the 1st of even months unless months are given."""
        assert is_due_on_date({"recurrence_rule": "bimonthly"}, date(2026, 2, 1))
        assert not is_due_on_date({"recurrence_rule": "bimonthly"}, date(2026, 3, 1))
        odd = {"recurrence_rule": "bimonthly", "recurrence_months": [1, 3]}
        assert is_due_on_date(odd, date(2026, 3, 1))
        assert not is_due_on_date(odd, date(2026, 3, 2))

    def test_yearly_and_custom(self):
        """Yearly takes [month, day]; custom takes explicit dates."""
        assert is_due_on_date({"recurrence_rule": "yearly", "recurrence_days": [4, 15]}, date(2026, 4, 15))
        custom = {"recurrence_rule": "custom", "recurrence_days": ["2026-01-07"]}
        assert is_due_on_date(custom, date(2026, 1, 7))
        assert not is_due_on_date(custom, MONDAY)

    def test_unknown_rule(self):
        """Unrecognised rules are never due."""
        assert not is_due_on_date({"recurrence_rule": "hourly"}, MONDAY)


class TestSchedules:
    def test_next_due_date(self):
        """The next due date is on or after the reference date."""
        routine = {"recurrence_rule": "weekly", "recurrence_days": ["thu"]}
        assert get_next_due_date(routine, MONDAY) == date(2026, 1, 8)
        assert get_next_due_date(routine, date(2026, 1, 8)) == date(2026, 1, 8)

    def test_next_due_falls_back_to_reference(self):
        """With nothing due in the scan window the reference date is returned."""
        routine = {"recurrence_rule": "custom", "recurrence_days": ["2020-01-01"]}
        assert get_next_due_date(routine, MONDAY) == MONDAY

    def test_overdue_respects_creation_and_instances(self):
        """Days before creation and resolved days are not overdue."""
        routine = {"recurrence_rule": "daily", "created_at": "2026-01-01T08:00:00.000Z"}
        overdue = get_overdue_dates(routine, MONDAY, completed={"2026-01-03"}, skipped={"2026-01-02"})
        assert overdue == ["2026-01-04", "2026-01-01"]

    def test_overdue_counts_from_local_creation_day(self, pacific):
        """A routine created on a local evening is due from that local day."""
        routine = {"recurrence_rule": "daily", "created_at": "2026-01-02T03:00:00.000Z"}
        assert get_overdue_dates(routine, MONDAY) == ["2026-01-04", "2026-01-03", "2026-01-02", "2026-01-01"]

    def test_missed_dates_until_next_due(self):
        """Missed dates run from creation up to the next due date."""
        routine = {"recurrence_rule": "daily", "created_at": "2026-01-01T08:00:00.000Z"}
        dates, next_due = get_missed_dates_until_next_due(routine, MONDAY)
        assert dates == ["2026-01-01", "2026-01-02", "2026-01-03", "2026-01-04"]
        assert next_due == MONDAY


# ============================================================
# Service
# ============================================================


@pytest.fixture
def routines(conn):
    return RoutineService(conn)


@pytest.fixture
def daily(routines, conn):
    created = routines.create({"title": "Inbox zero", "recurrence_rule": "daily", "project_id": 2})
    conn.execute(
        "UPDATE items SET created_at = '2026-01-01T08:00:00.000Z' WHERE id = ?", (created["id"],)
    )
    return created["id"]


class TestRoutineService:
    def test_create_requires_rule(self, routines):
        """A routine needs a valid recurrence rule."""
        with pytest.raises(BadRequestError):
            routines.create({"title": "x"})
        with pytest.raises(BadRequestError):
            routines.create({"title": "x", "recurrence_rule": "hourly"})

    def test_list_all(self, routines, daily):
        """Listings include the next due date for the reference day."""
        listed = routines.list_all("2026-01-05")
        assert listed["count"] == 1
        routine = listed["routines"][0]
        assert routine["next_due"] == "2026-01-05"
        assert routine["project_full_path"] == "website"

    def test_stored_as_routine_items(self, routines, daily, conn):
        """Routines are stored as items with their own type."""
        row = conn.execute("SELECT item_type FROM items WHERE id = ?", (daily,)).fetchone()
        assert row["item_type"] == "routine"

    def test_due_splits_pending_and_completed(self, routines, daily):
        """Completing today's instance moves the routine to completed."""
        assert routines.due(MONDAY)["pending_count"] == 1
        routines.complete(daily, MONDAY)
        due = routines.due(MONDAY)
        assert due["pending_count"] == 0
        assert due["completed"][0]["completed_today"] is True

    def test_complete_twice(self, routines, daily):
        """A second completion for the same day is reported, not duplicated."""
        first = routines.complete(daily, "2026-01-05")
        second = routines.complete(daily, "2026-01-05")
        assert first["already_completed"] is False
        assert second["already_completed"] is True
        assert second["completion_id"] == first["completion_id"]

    def test_complete_logs_diary(self, routines, daily, kb_root):
        """Completions are written to the day's diary entry."""
        result = routines.complete(daily, "2026-01-05")
        assert result["diary_sync"]["synced"] is True
        assert (kb_root / result["diary_sync"]["diary_path"]).exists()

    def test_uncomplete_and_unskip(self, routines, daily):
        """Instances can be undone."""
        routines.complete(daily, "2026-01-05")
        assert routines.uncomplete(daily, "2026-01-05")["was_completed"] is True
        assert routines.uncomplete(daily, "2026-01-05")["was_completed"] is False
        routines.skip(daily, "2026-01-05")
        assert routines.skip(daily, "2026-01-05")["already_skipped"] is True
        assert routines.unskip(daily, "2026-01-05")["was_skipped"] is True

    def test_overdue(self, routines, daily):
        """Missed days since creation are overdue."""
        routines.complete(daily, "2026-01-02")
        overdue = routines.overdue("2026-01-05")
        assert overdue["total_overdue"] == 1
        assert overdue["routines"][0]["overdue_dates"] == ["2026-01-04", "2026-01-03", "2026-01-01"]

    def test_skip_all_overdue(self, routines, daily):
        """Bulk skip clears the backlog."""
        result = routines.skip_all_overdue(daily, "2026-01-05")
        assert result["skipped_count"] == 4
        assert result["next_due"] == "2026-01-05"
        assert routines.overdue("2026-01-05")["total_overdue"] == 0

    def test_complete_all_overdue(self, routines, daily):
        """Bulk complete records a completion per missed day."""
        assert routines.complete_all_overdue(daily, "2026-01-05")["completed_count"] == 4
        assert routines.get(daily)["completion_count"] == 4

    def test_update_and_delete(self, routines, daily):
        """Updates validate the rule; delete removes history."""
        routines.update(daily, {"recurrence_rule": "weekly", "recurrence_days": ["mon"]})
        assert routines.get(daily)["recurrence_rule"] == "weekly"
        with pytest.raises(BadRequestError):
            routines.update(daily, {})
        routines.complete(daily, "2026-01-05")
        assert routines.delete(daily) == {"deleted": True}
        with pytest.raises(NotFoundError):
            routines.get(daily)
