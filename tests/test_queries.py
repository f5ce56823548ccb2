"""
Read-only views over open tasks.
"""

from datetime import date, timedelta

import pytest

from lib import queries
from lib.items import ItemService


@pytest.fixture
def dated(conn):
    """T-1 due today, T-2 overdue by a day, plus a routine due today."""
    service = ItemService(conn)
    service.update(1, {"due_date": date.today().isoformat()})
    service.update(2, {"due_date": (date.today() - timedelta(days=1)).isoformat()})
    conn.execute(
        "INSERT INTO items (title, item_type, status, due_date) VALUES ('Water plants', 'routine', 'pending', ?)",
        (date.today().isoformat(),),
    )
    return service


class TestDateViews:
    def test_due_today(self, conn, dated):
        """Only tasks due today, routines excluded."""
        result = queries.due_today(conn)
        assert [i["id"] for i in result["items"]] == [1]
        assert result["date"] == date.today().isoformat()

    def test_due_today_by_owner(self, conn, dated):
        """The owner filter is a contains match."""
        assert queries.due_today(conn, owner_name="bob")["count"] == 0

    def test_overdue(self, conn, dated):
        """Tasks due before today are overdue."""
        assert [i["id"] for i in queries.overdue(conn)["items"]] == [2]

    def test_upcoming_groups_by_date(self, conn, dated):
        """Upcoming runs from today for the given number of days."""
        service = dated
        service.update(2, {"due_date": (date.today() + timedelta(days=3)).isoformat()})
        result = queries.upcoming(conn, days=7)
        assert result["total"] == 2
        assert [g["date"] for g in result["grouped"]] == sorted(g["date"] for g in result["grouped"])

    def test_dashboard_counts(self, conn, dated):
        """Dashboard counts open tasks only."""
        assert queries.dashboard(conn) == {
            "total": 2,
            "overdue": 1,
            "due_today": 1,
            "high_priority": 1,
            "blocked": 0,
        }

    def test_closed_items_never_count(self, conn, dated):
        """Completing a task removes it from every open view."""
        dated.complete(1)
        assert queries.due_today(conn)["count"] == 0
        assert queries.dashboard(conn)["total"] == 1


class TestOtherViews:
    def test_waiting_grouped_by_person(self, conn):
        """waiting_on relations are grouped under the person."""
        service = ItemService(conn)
        service.add_person(1, "waiting_on", person_id=3)
        service.add_person(2, "waiting_on", person_id=3)
        result = queries.waiting(conn)
        assert result["total"] == 2
        assert result["by_person"][0]["person"] == {"id": 3, "name": "Carol White"}

    def test_search_includes_completed_on_request(self, conn):
        """Search covers closed items only when asked."""
        assert queries.search(conn, "invoices")["count"] == 0
        assert queries.search(conn, "invoices", include_completed=True)["count"] == 1

    def test_high_priority(self, conn):
        """Priority 1 and 2 only."""
        assert [i["id"] for i in queries.high_priority(conn)["items"]] == [1]

    def test_blocked_lists_blockers(self, conn):
        """Blocked tasks carry their blockers."""
        ItemService(conn).add_blocker(1, 2)
        result = queries.blocked(conn)
        assert result["items"][0]["blockers"][0]["display_id"] == "T-2"
        assert result["items"][0]["blocker_count"] == 1

    def test_in_progress(self, conn):
        """Only in-progress tasks."""
        assert [i["id"] for i in queries.in_progress(conn)["items"]] == [2]

    def test_activity_feed_newest_first(self, conn):
        """Activities come back newest first with their item."""
        service = ItemService(conn)
        service.add_note(1, "first")
        service.add_note(2, "second")
        feed = queries.activity_feed(conn, limit=2)
        assert [a["detail"] for a in feed["activities"]] == ["second", "first"]
        assert feed["activities"][0]["item"]["display_id"] == "T-2"

    def test_deleted_items_hidden(self, conn):
        """Soft-deleted items leave every view."""
        ItemService(conn).delete(2)
        assert queries.in_progress(conn)["count"] == 0
        assert queries.search(conn, "analytics")["count"] == 0
