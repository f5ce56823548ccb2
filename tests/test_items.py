"""
ItemService tests against the seeded fixture DB.
"""

from datetime import date, timedelta

import pytest

from lib.errors import BadRequestError, ConflictError, NotFoundError
from lib.items import ItemService


@pytest.fixture
def service(conn):
    return ItemService(conn, actor="tester")


def _activities(conn, item_id):
    return [
        r["action"]
        for r in conn.execute("SELECT action FROM activities WHERE item_id = ? ORDER BY id", (item_id,))
    ]


class TestListItems:
    def test_default_hides_closed_items(self, service):
        """Complete items are excluded unless asked for."""
        result = service.list_items()
        assert [i["id"] for i in result["items"]] == [1, 2]
        assert result["total"] == 2

    def test_include_completed(self, service):
        """include_completed brings back closed items."""
        assert service.list_items(include_completed=True)["total"] == 3

    def test_priority_orders_first(self, service):
        """P1 sorts ahead of P3."""
        titles = [i["title"] for i in service.list_items()["items"]]
        assert titles == ["Draft homepage copy", "Review analytics"]

    def test_filters(self, service):
        """Owner, project and search filters narrow the listing."""
        assert [i["id"] for i in service.list_items(owner_name="bob")["items"]] == [2]
        assert service.list_items(project_slug="website")["total"] == 2
        assert [i["id"] for i in service.list_items(search="homepage")["items"]] == [1]
        assert [i["id"] for i in service.list_items(status=["complete"])["items"]] == [3]

    def test_rows_carry_display_fields(self, service):
        """Listings are joined with owner, project and org."""
        item = service.list_items(search="homepage")["items"][0]
        assert item["display_id"] == "T-1"
        assert item["owner_name"] == "Alice Smith"
        assert item["project_org"] == "acme-corp"
        assert item["project_full_path"] == "website"

    def test_pagination(self, service):
        """limit and offset page through the result."""
        page = service.list_items(limit=1, offset=1)
        assert page["total"] == 2
        assert [i["id"] for i in page["items"]] == [2]


class TestLifecycle:
    def test_create_defaults(self, service, conn):
        """A new item is a pending task with a created activity."""
        item = service.create({"title": "Ship it", "project_id": 2, "due_date": "2026-02-01"})
        assert item["status"] == "pending"
        assert item["item_type"] == "task"
        assert item["due_date"] == "2026-02-01"
        assert _activities(conn, item["id"]) == ["created"]

    def test_create_validation(self, service):
        """Bad titles, priorities and periods are rejected."""
        with pytest.raises(BadRequestError):
            service.create({"title": ""})
        with pytest.raises(BadRequestError):
            service.create({"title": "x", "priority": 9})
        with pytest.raises(BadRequestError):
            service.create({"title": "x", "target_period": "someday"})

    def test_update_logs_each_change(self, service, conn):
        """Status and priority changes each leave an activity."""
        updated = service.update(1, {"status": "in_progress", "priority": 2})
        assert updated["status"] == "in_progress"
        actions = _activities(conn, 1)
        assert "status_changed" in actions
        assert "priority_changed" in actions

    def test_update_owner_change_logged_by_name(self, service, conn):
        """Owner changes record the old and new names."""
        service.update(1, {"owner_id": 3})
        row = conn.execute(
            "SELECT old_value, new_value FROM activities WHERE item_id = 1 AND action = 'owner_changed'"
        ).fetchone()
        assert (row["old_value"], row["new_value"]) == ("Alice Smith", "Carol White")

    def test_update_requires_fields(self, service):
        """An empty update is a bad request."""
        with pytest.raises(BadRequestError):
            service.update(1, {"unknown": 1})

    def test_unknown_item(self, service):
        """Missing items are 404s."""
        with pytest.raises(NotFoundError, match="T-99"):
            service.get(99)

    def test_soft_delete_and_restore(self, service):
        """Deleted items leave listings and come back on restore."""
        assert service.delete(1)["deleted"] is True
        assert 1 not in [i["id"] for i in service.list_items()["items"]]
        with pytest.raises(NotFoundError):
            service.delete(1)
        restored = service.restore(1)
        assert restored["restored"] is True
        with pytest.raises(BadRequestError):
            service.restore(1)

    def test_note(self, service):
        """Notes are stored as activities and show up in get()."""
        note = service.add_note(2, "Waiting on export")
        assert note["update_type"] == "note"
        detail = service.get(2)
        assert detail["updates"][0]["note"] == "Waiting on export"


class TestComplete:
    def test_complete_sets_status_and_timestamp(self, service):
        """complete() stamps completed_at and reports the previous status."""
        result = service.complete(2, note="done")
        assert result["item"]["status"] == "complete"
        assert result["item"]["completed_at"]
        assert result["previous_status"] == "in_progress"

    def test_complete_without_source_file(self, service):
        """Items created directly have nothing to write back."""
        result = service.complete(1)
        assert result["markdown_sync"]["source_type"] is None
        assert result["markdown_sync"]["message"] == "No source file to sync (task created directly)"

    def test_complete_is_idempotent(self, service):
        """Completing twice is allowed."""
        service.complete(3)
        assert service.complete(3)["previous_status"] == "complete"

    def test_complete_unblocks_dependents(self, service):
        """Removing the last blocker returns the item to pending."""
        service.add_blocker(1, 2)
        assert service.get(1)["status"] == "blocked"
        result = service.complete(2)
        assert result["unblocked_tasks"] == [{"id": 1, "display_id": "T-1", "title": "Draft homepage copy"}]
        assert service.get(1)["status"] == "pending"

    def test_complete_keeps_block_from_other_items(self, service):
        """An item with two blockers stays blocked until both are done."""
        other = service.create({"title": "Legal review"})
        service.add_blocker(1, 2)
        service.add_blocker(1, other["id"])
        assert service.complete(2)["unblocked_tasks"] == []
        assert service.get(1)["status"] == "blocked"

    def test_complete_clears_checkins(self, service):
        """Pending check-ins are closed on completion."""
        service.add_checkin(1, "2026-01-10")
        assert service.complete(1)["cleared_check_ins"] == 1

    def test_complete_writes_diary(self, service, kb_root):
        """With a KB configured, completion is logged in the diary."""
        service.complete(1)
        entries = list((kb_root / "diary").rglob("*.md"))
        assert len(entries) == 1
        assert 'T-1: "Draft homepage copy"' in entries[0].read_text()


class TestCheckins:
    def test_add_and_list(self, service):
        """Check-ins are listed in date order."""
        service.add_checkin(1, "2026-03-02")
        service.add_checkin(1, "2026-03-01", note="first")
        dates = [c["date"] for c in service.list_checkins(1)["checkins"]]
        assert dates == ["2026-03-01", "2026-03-02"]

    def test_due_checkins_excludes_future(self, service):
        """Only check-ins on or before today are due by default."""
        past = (date.today() - timedelta(days=1)).isoformat()
        future = (date.today() + timedelta(days=5)).isoformat()
        service.add_checkin(1, past)
        service.add_checkin(2, future)
        assert [c["id"] for c in service.due_checkins()] == [1]
        assert len(service.due_checkins(include_future=True)) == 2

    def test_reschedule_clears_previous(self, service):
        """Rescheduling completes old check-ins and adds a new one."""
        service.add_checkin(1, "2026-01-01")
        result = service.reschedule_checkin(1, "2026-02-01")
        assert result["cleared_previous"] == 1
        assert [c["date"] for c in service.list_checkins(1)["checkins"]] == ["2026-02-01"]

    def test_update_and_delete(self, service):
        """Single check-ins can be edited and removed."""
        checkin = service.add_checkin(1, "2026-01-01")
        updated = service.update_checkin(checkin["id"], completed=True)
        assert updated["completed"] is True
        assert service.delete_checkin(checkin["id"]) == {"deleted": True, "id": checkin["id"]}
        with pytest.raises(NotFoundError):
            service.delete_checkin(checkin["id"])

    def test_date_required(self, service):
        """An empty date is rejected."""
        with pytest.raises(BadRequestError):
            service.add_checkin(1, "")


class TestRelations:
    def test_blocker_round_trip(self, service):
        """Blockers appear on both sides and can be removed."""
        service.add_blocker(1, 2)
        assert [b["id"] for b in service.get_blockers(1)["blockers"]] == [2]
        assert [b["id"] for b in service.get_blocking(2)["blocking"]] == [1]
        assert service.remove_blocker(1, 2)["deleted"] is True
        assert service.get_blockers(1)["count"] == 0

    def test_blocker_rules(self, service):
        """Self-blocks and duplicates are refused."""
        with pytest.raises(BadRequestError):
            service.add_blocker(1, 1)
        service.add_blocker(1, 2)
        with pytest.raises(ConflictError):
            service.add_blocker(1, 2)

    def test_blocking_a_closed_item_keeps_status(self, service):
        """Complete items are not flipped to blocked."""
        service.add_blocker(3, 1)
        assert service.get(3)["status"] == "complete"

    def test_links(self, service):
        """Links are typed and visible from both ends."""
        service.add_link(1, 2, "related")
        assert service.get_links(1)["outgoing"][0]["target_id"] == 2
        assert service.get_links(2)["incoming"][0]["source_id"] == 1
        with pytest.raises(BadRequestError):
            service.add_link(1, 2, "friends")

    def test_people_by_name(self, service):
        """People can be attached by partial name."""
        link = service.add_person(1, "stakeholder", person_name="Carol")
        assert link["person_id"] == 3
        with pytest.raises(ConflictError):
            service.add_person(1, "stakeholder", person_id=3)
        assert service.remove_person(1, "stakeholder", person_id=3)["deleted"] is True

    def test_tags_created_on_demand(self, service):
        """Tagging by an unknown name creates the tag."""
        first = service.add_tag(1, tag_name="urgent")
        second = service.add_tag(2, tag_name="urgent")
        assert first["tag_id"] == second["tag_id"]
        assert [t["name"] for t in service.get_tags(1)["tags"]] == ["urgent"]
        assert service.remove_tag(1, tag_name="urgent")["deleted"] is True

    def test_get_includes_relations(self, service):
        """get() gathers people, tags and counts."""
        service.add_person(2, "reviewer", person_id=1)
        service.add_tag(2, tag_name="q1")
        detail = service.get(2)
        assert detail["people"][0]["person_name"] == "Alice Smith"
        assert detail["tags"][0]["name"] == "q1"
        assert detail["counts"]["total_subtasks"] == 0
