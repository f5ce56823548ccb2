"""
Markdown <-> database sync: workstreams, projects, READMEs, meetings, diary.

Every test lays out a small knowledge base under kb_root and runs against
the seeded fixture DB.
"""

from datetime import datetime
from pathlib import Path

import pytest

from lib import diary_sync, file_sync, meeting_parser, meeting_sync, project_sync, readme_parser
from lib.errors import BadRequestError, NotFoundError
from lib.items import ItemService
from lib.markdown_io import read_markdown
from lib.markdown_sync import sync_task_to_source
from lib.status_constants import map_db_status_to_file, map_workstream_status
from lib.sync_service import SyncService
from tests.fixtures import write_kb_file

WORKSTREAM = "acme-corp/projects/website/seo.md"
README = "acme-corp/projects/website/README.md"
MEETING = "acme-corp/meetings/2026/01/kickoff.md"


@pytest.fixture
def workstream(kb_root):
    return write_kb_file(
        kb_root,
        WORKSTREAM,
        """\
        ---
        type: workstream
        title: SEO audit
        status: active
        priority: 2
        ---
        # SEO audit
        """,
    )


@pytest.fixture
def readme(kb_root):
    return write_kb_file(
        kb_root,
        README,
        """\
        ---
        title: Website
        ---
        # Website

        ## Workstreams

        - 🟢 **Inventory import** — nightly CSV pull
        - [ ] Email the auditors
        - [x] Book venue

        ## Sub-projects

        | Status | Project | Notes |
        |--------|---------|-------|
        | 🟡 | [[acme-corp/projects/website/launch|Launch]] | Q3 rework |
        """,
    )


@pytest.fixture
def meeting(kb_root):
    return write_kb_file(
        kb_root,
        MEETING,
        """\
        ---
        title: Website kickoff
        date: 2026-01-12
        attendees: [Alice Smith, Dana Park]
        projects: [website]
        ---
        # Website kickoff

        ## Actions

        | Owner | Action | Due | Status |
        |-------|--------|-----|--------|
        | Alice & Bob | Draft the sitemap | 14 Jan | Pending |
        | Carol | Book the photographer | | In Progress |
        | Bob | Send the agenda | 10 Jan | Done |
        """,
    )


def _insert_readme_task(conn, title, status, source_type, line):
    cursor = conn.execute(
        """INSERT INTO items (title, item_type, status, project_id, source_type, source_path, source_line)
           VALUES (?, 'task', ?, 2, ?, ?, ?)""",
        (title, status, source_type, README, line),
    )
    return cursor.lastrowid


# ============================================================
# Status vocabularies
# ============================================================


class TestStatusMaps:
    def test_workstream_to_db(self):
        """File statuses map onto item statuses, pending by default."""
        assert map_workstream_status(None) == "pending"
        assert map_workstream_status("Completed") == "complete"
        assert map_workstream_status("maintenance") == "active"
        assert map_workstream_status("weird") == "pending"

    def test_db_to_file(self):
        """Item statuses map back, active by default."""
        assert map_db_status_to_file("complete") == "completed"
        assert map_db_status_to_file("pending") == "planning"
        assert map_db_status_to_file("blocked") == "active"
        assert map_db_status_to_file(None) == "active"


# ============================================================
# Workstream files
# ============================================================


class TestWorkstreamSync:
    def test_find_workstream_files(self, workstream, kb_root):
        """Only typed files beside a README-level project count."""
        write_kb_file(kb_root, "acme-corp/projects/website/notes.md", "# just notes\n")
        found = file_sync.find_workstream_files(["acme-corp"])
        assert [w["file_path"] for w in found] == [WORKSTREAM]
        assert found[0]["status"] == "active"
        assert found[0]["priority"] == 2
        assert found[0]["parent_project_slug"] == "website"

    def test_create_then_skip(self, conn, workstream):
        """The first sync creates the item; an unchanged file is skipped."""
        first = file_sync.sync_filesystem_to_db(conn, ["acme-corp"])
        assert (first["created"], first["synced"]) == (1, 1)
        row = conn.execute("SELECT * FROM items WHERE file_path = ?", (WORKSTREAM,)).fetchone()
        assert row["item_type"] == "workstream"
        assert row["project_id"] == 2
        assert row["title"] == "SEO audit"
        assert row["updated_at"] == row["last_synced_at"]

        second = file_sync.sync_filesystem_to_db(conn, ["acme-corp"])
        assert (second["created"], second["skipped"]) == (0, 1)

    def test_file_edit_updates_item(self, conn, workstream):
        """A changed file flows into the row."""
        file_sync.sync_filesystem_to_db(conn, ["acme-corp"])
        workstream.write_text(workstream.read_text().replace("status: active", "status: completed"))
        result = file_sync.sync_filesystem_to_db(conn, ["acme-corp"])
        assert result["updated"] == 1
        row = conn.execute("SELECT status FROM items WHERE file_path = ?", (WORKSTREAM,)).fetchone()
        assert row["status"] == "complete"

    def test_both_sides_changed_is_conflict(self, conn, workstream):
        """Edits on both sides are reported and nothing is written."""
        file_sync.sync_filesystem_to_db(conn, ["acme-corp"])
        workstream.write_text(workstream.read_text().replace("status: active", "status: paused"))
        conn.execute("UPDATE items SET updated_at = '2099-01-01T00:00:00.000Z' WHERE file_path = ?", (WORKSTREAM,))

        result = file_sync.sync_filesystem_to_db(conn, ["acme-corp"])
        assert len(result["conflicts"]) == 1
        assert result["updated"] == 0
        row = conn.execute("SELECT status FROM items WHERE file_path = ?", (WORKSTREAM,)).fetchone()
        assert row["status"] == "active"
        assert file_sync.detect_all_conflicts(conn)[0]["reason"] == "Both file and database modified since last sync"

    def test_missing_parent_is_reported(self, conn, kb_root):
        """Files under unknown projects are skipped with an error."""
        write_kb_file(
            kb_root,
            "acme-corp/projects/ghost/haunt.md",
            """\
            ---
            type: workstream
            title: Haunt
            ---
            """,
        )
        result = file_sync.sync_filesystem_to_db(conn, ["acme-corp"])
        assert result["skipped"] == 1
        assert result["errors"] == [
            {"path": "acme-corp/projects/ghost/haunt.md", "error": "Parent project not found: ghost"}
        ]

    def test_item_to_file(self, conn, workstream):
        """DB edits are written into the frontmatter."""
        file_sync.sync_filesystem_to_db(conn, ["acme-corp"])
        item_id = conn.execute("SELECT id FROM items WHERE file_path = ?", (WORKSTREAM,)).fetchone()["id"]
        conn.execute(
            "UPDATE items SET status = 'complete', priority = 1, updated_at = '2099-01-01T00:00:00.000Z' WHERE id = ?",
            (item_id,),
        )
        assert file_sync.sync_item_to_file(conn, item_id) == {"success": True, "file_path": WORKSTREAM}
        metadata, body, _ = read_markdown(workstream)
        assert metadata["status"] == "completed"
        assert metadata["priority"] == 1
        assert metadata["type"] == "workstream"
        assert body.strip() == "# SEO audit"

    def test_item_to_file_refuses_changed_file(self, conn, workstream):
        """A file edited since the last sync is not overwritten."""
        file_sync.sync_filesystem_to_db(conn, ["acme-corp"])
        item_id = conn.execute("SELECT id FROM items WHERE file_path = ?", (WORKSTREAM,)).fetchone()["id"]
        workstream.write_text(workstream.read_text() + "\nmore\n")
        result = file_sync.sync_item_to_file(conn, item_id)
        assert result["success"] is False
        assert result["reason"] == "conflict"

    def test_item_to_file_requires_workstream(self, conn):
        """Plain tasks have no file to write."""
        result = file_sync.sync_item_to_file(conn, 1)
        assert result["success"] is False

    def test_missing_file_is_conflict(self, conn, workstream):
        """A deleted file shows up as file_missing."""
        file_sync.sync_filesystem_to_db(conn, ["acme-corp"])
        workstream.unlink()
        conflicts = file_sync.detect_all_conflicts(conn)
        assert [c["reason"] for c in conflicts] == ["file_missing"]

    def test_undecodable_file_is_reported(self, conn, workstream):
        """Non-UTF-8 bytes are recorded per file instead of raising."""
        file_sync.sync_filesystem_to_db(conn, ["acme-corp"])
        item_id = conn.execute("SELECT id FROM items WHERE file_path = ?", (WORKSTREAM,)).fetchone()["id"]
        workstream.write_bytes(b"---\ntitle: \xff\xfe\n---\n")

        conflicts = file_sync.detect_all_conflicts(conn)
        assert conflicts[0]["reason"].startswith("Error reading file")
        for push in (file_sync.sync_item_to_file, file_sync.force_db_sync_to_file):
            result = push(conn, item_id)
            assert result["success"] is False
            assert result["error"].startswith("Error reading file")


# ============================================================
# Project directories
# ============================================================


class TestProjectSync:
    def test_normalizers(self):
        """Status aliases and out-of-range priorities are cleaned up."""
        assert project_sync.normalize_status("maintenance") == "active"
        assert project_sync.normalize_status("Done") == "completed"
        assert project_sync.normalize_status("weird") is None
        assert project_sync.normalize_priority(2) == 2
        assert project_sync.normalize_priority(5) is None
        assert project_sync.normalize_priority(True) is None

    def test_extract_project_name(self):
        """Title wins, then the first heading, then the slug."""
        assert project_sync.extract_project_name({"title": "T"}, "# H", "s") == "T"
        assert project_sync.extract_project_name({}, "intro\n# Heading", "s") == "Heading"
        assert project_sync.extract_project_name({}, "", "mobile-app") == "Mobile App"

    def test_sync_creates_projects_and_sub_projects(self, conn, kb_root):
        """Folders, sub-project files and standalone files become projects."""
        write_kb_file(
            kb_root,
            README,
            """\
            ---
            title: Website
            status: active
            priority: 2
            ---
            """,
        )
        write_kb_file(kb_root, "acme-corp/projects/mobile/README.md", "# Mobile App\n")
        write_kb_file(
            kb_root,
            "acme-corp/projects/mobile/ios.md",
            """\
            ---
            type: sub-project
            title: iOS
            status: planning
            ---
            """,
        )
        write_kb_file(kb_root, "acme-corp/projects/ideas.md", "some ideas\n")
        write_kb_file(kb_root, "acme-corp/projects/research-prompt-q1.md", "prompt\n")

        result = project_sync.sync_projects(conn, ["acme-corp"])
        assert result == {"projects_found": 4, "projects_created": 3, "projects_updated": 0, "errors": []}

        rows = {
            r["slug"]: r
            for r in conn.execute("SELECT slug, name, status, parent_id FROM projects WHERE org_id = 1")
        }
        assert rows["mobile"]["name"] == "Mobile App"
        assert rows["ideas"]["name"] == "Ideas"
        assert rows["ios"]["parent_id"] == conn.execute(
            "SELECT id FROM projects WHERE slug = 'mobile'"
        ).fetchone()["id"]
        assert rows["ios"]["status"] == "planning"

    def test_sync_updates_changed_project(self, conn, kb_root):
        """A renamed README updates the existing row."""
        write_kb_file(kb_root, README, "# Marketing Site\n")
        result = project_sync.sync_projects(conn, ["acme-corp"])
        assert result["projects_updated"] == 1
        assert conn.execute("SELECT name FROM projects WHERE id = 2").fetchone()["name"] == "Marketing Site"

    def test_unknown_org_is_created(self, conn, kb_root):
        """Org folders without a row get one."""
        write_kb_file(kb_root, "globex/projects/alpha/README.md", "# Alpha\n")
        project_sync.sync_projects(conn, ["globex"])
        org = conn.execute("SELECT name FROM organizations WHERE slug = 'globex'").fetchone()
        assert org["name"] == "Globex"


# ============================================================
# READMEs
# ============================================================


class TestReadmeParser:
    def test_parse_readme(self, readme, kb_root):
        """All three task shapes are extracted with file line numbers."""
        parsed = readme_parser.parse_readme(readme, kb_root)
        assert parsed["project_slug"] == "website"
        assert parsed["org"] == "acme-corp"
        assert parsed["title"] == "Website"

        tasks = parsed["tasks"]
        assert [(t.source_type, t.title, t.status, t.source_line) for t in tasks] == [
            ("status_emoji", "Inventory import", "active", 8),
            ("checkbox", "Email the auditors", "pending", 9),
            ("checkbox", "Book venue", "completed", 10),
            ("sub_project", "Launch", "pending", 16),
        ]
        assert tasks[0].id == "website-readme-1"
        assert tasks[0].description == "nightly CSV pull"
        assert tasks[0].section == "Workstreams"
        assert tasks[3].linked_project == "launch"
        assert tasks[3].is_sub_project is True

    def test_only_project_readmes_found(self, readme, kb_root):
        """READMEs outside projects/ are ignored."""
        write_kb_file(kb_root, "acme-corp/README.md", "- [ ] not a project task\n")
        assert readme_parser.find_project_readmes(kb_root) == [readme]

    def test_parse_all_and_filter(self, readme, kb_root):
        """Completed tasks and sub-project rows are not importable."""
        parsed = readme_parser.parse_all_readmes(kb_root)
        assert parsed["summary"]["by_type"] == {"status_emoji": 1, "checkbox": 2, "sub_project": 1}
        importable = readme_parser.filter_tasks_for_import(parsed["tasks"])
        assert [t.title for t in importable] == ["Inventory import", "Email the auditors"]


class TestSourceWriteBack:
    def test_complete_ticks_checkbox(self, conn, readme):
        """Completing a checkbox task ticks it in the README."""
        item_id = _insert_readme_task(conn, "Email the auditors", "pending", "checkbox", 9)
        result = ItemService(conn).complete(item_id)
        assert result["markdown_sync"]["synced"] is True
        assert result["markdown_sync"]["source_type"] == "checkbox"
        assert readme.read_text().split("\n")[8] == "- [x] Email the auditors"

    def test_checkbox_found_by_title_when_line_moved(self, conn, readme):
        """A stale line number falls back to a title search."""
        item_id = _insert_readme_task(conn, "Email the auditors", "complete", "checkbox", 2)
        result = sync_task_to_source(conn, item_id)
        assert len(result["changes"]) == 1
        assert "- [x] Email the auditors" in readme.read_text()

    def test_emoji_line_updated(self, conn, readme):
        """Status emoji lines get the emoji for the new status."""
        item_id = _insert_readme_task(conn, "Inventory import", "blocked", "status_emoji", 8)
        result = sync_task_to_source(conn, item_id)
        assert result["changes"] == ["Line 8: 🟢 -> 🔴"]
        assert readme.read_text().split("\n")[7] == "- 🔴 **Inventory import** — nightly CSV pull"

    def test_sub_project_row_updated(self, conn, readme):
        """Sub-project table rows get their emoji cell replaced."""
        item_id = _insert_readme_task(conn, "Launch", "complete", "sub_project", 16)
        sync_task_to_source(conn, item_id)
        assert readme.read_text().split("\n")[15].startswith("| ✅ | [[acme-corp/projects/website/launch|Launch]]")

    def test_matching_status_is_noop(self, conn, readme):
        """Nothing is written when the file already agrees."""
        item_id = _insert_readme_task(conn, "Book venue", "complete", "checkbox", 10)
        before = readme.read_text()
        result = sync_task_to_source(conn, item_id)
        assert result["changes"] == []
        assert readme.read_text() == before

    def test_undecodable_source_file_is_reported(self, conn, readme):
        """A README that is not UTF-8 fails the write-back without raising."""
        item_id = _insert_readme_task(conn, "Email the auditors", "complete", "checkbox", 10)
        readme.write_bytes(b"- [ ] Email the auditors \xff\n")
        result = sync_task_to_source(conn, item_id)
        assert result["success"] is False
        assert result["message"].startswith("Failed to update source file")

    def test_readme_reference_not_synced(self, conn, readme):
        """Plain README references are tracked in the database only."""
        item_id = _insert_readme_task(conn, "Website", "complete", "readme", 1)
        result = sync_task_to_source(conn, item_id)
        assert result["skipped"] is True


# ============================================================
# Meetings
# ============================================================


class TestMeetingParser:
    def test_parse_due_date(self):
        """Due cells accept several day/month spellings."""
        assert meeting_parser.parse_due_date("14 Jan", 2026) == "2026-01-14"
        assert meeting_parser.parse_due_date("14 January 2027", 2026) == "2027-01-14"
        assert meeting_parser.parse_due_date("Jan 14", 2025) == "2025-01-14"
        assert meeting_parser.parse_due_date("January 14, 2026") == "2026-01-14"
        assert meeting_parser.parse_due_date("2026-03-01") == "2026-03-01"
        assert meeting_parser.parse_due_date("31 Feb", 2026) is None
        assert meeting_parser.parse_due_date("soon") is None
        assert meeting_parser.parse_due_date("") is None

    def test_map_action_status(self):
        """Status cells map onto item statuses."""
        assert meeting_parser.map_action_status("Done") == "complete"
        assert meeting_parser.map_action_status("In Progress") == "in_progress"
        assert meeting_parser.map_action_status("canceled") == "cancelled"
        assert meeting_parser.map_action_status("") == "pending"

    def test_extract_sections(self):
        """Text before the first heading is dropped."""
        assert meeting_parser.extract_sections("intro\n## A\nx\n## B\ny") == {"A": "x", "B": "y"}

    def test_action_table_project_column(self):
        """An empty Project cell falls back to the meeting's project."""
        table = (
            "| Owner | Action | Due | Status | Project |\n"
            "|---|---|---|---|---|\n"
            "| Sam | Send quote | | | pricing |\n"
            "| Kim | Call back | | | |"
        )
        actions = meeting_parser.parse_action_table(table, "website")
        assert [(a.owner, a.project, a.status) for a in actions] == [
            ("Sam", "pricing", "Pending"),
            ("Kim", "website", "Pending"),
        ]

    def test_parse_meeting_file(self, meeting):
        """Frontmatter and the Actions table are read together."""
        parsed = meeting_parser.parse_meeting_file(meeting)
        assert parsed.path == MEETING
        assert parsed.date == "2026-01-12"
        assert parsed.attendees == ["Alice Smith", "Dana Park"]
        assert parsed.primary_project == "website"
        assert [a.action for a in parsed.actions] == ["Draft the sitemap", "Book the photographer", "Send the agenda"]
        assert parsed.actions[1].due is None

    def test_find_meeting_files(self, meeting, kb_root):
        """Only YYYY/MM folders are scanned."""
        write_kb_file(kb_root, "acme-corp/meetings/templates/blank.md", "# Blank\n")
        assert meeting_parser.find_meeting_files("acme-corp") == [meeting]


class TestMeetingSync:
    def test_split_owner_names(self):
        """Owners split on commas, ampersands and the word and."""
        assert meeting_sync.split_owner_names("Alice, Bob and Carol & Dana") == ["Alice", "Bob", "Carol", "Dana"]
        assert meeting_sync.split_owner_names("Sandy and Bo") == ["Sandy", "Bo"]

    def test_sync_creates_tasks(self, conn, meeting):
        """Open actions become tasks; done actions are skipped."""
        result = meeting_sync.sync_meeting_file(conn, MEETING)
        assert (result["actions_found"], result["created"], result["skipped"]) == (3, 2, 1)

        sitemap = conn.execute("SELECT * FROM items WHERE title = 'Draft the sitemap'").fetchone()
        assert sitemap["owner_id"] == 1
        assert sitemap["due_date"] == "2026-01-14"
        assert sitemap["project_id"] == 2
        assert sitemap["source_type"] == "meeting"
        assert sitemap["source_meeting_id"] == result["meeting_id"]
        assignees = conn.execute(
            "SELECT person_id FROM item_people WHERE item_id = ? AND role = 'assignee'", (sitemap["id"],)
        ).fetchall()
        assert [r["person_id"] for r in assignees] == [2]

        photographer = conn.execute("SELECT * FROM items WHERE title = 'Book the photographer'").fetchone()
        assert photographer["status"] == "in_progress"
        assert photographer["owner_id"] == 3

    def test_attendees_created_by_exact_name(self, conn, meeting):
        """Unknown attendees are added as people."""
        result = meeting_sync.sync_meeting_file(conn, MEETING)
        detail = meeting_sync.get_meeting(conn, result["meeting_id"])
        assert [a["name"] for a in detail["attendees"]] == ["Alice Smith", "Dana Park"]
        assert [(p["slug"], p["is_primary"]) for p in detail["projects"]] == [("website", 1)]
        assert len(detail["tasks"]) == 2

    def test_resync_is_stable(self, conn, meeting):
        """A second sync creates nothing new."""
        meeting_sync.sync_meeting_file(conn, MEETING)
        again = meeting_sync.sync_meeting_file(conn, MEETING)
        assert (again["created"], again["updated"], again["skipped"]) == (0, 0, 3)
        assert conn.execute("SELECT COUNT(*) FROM meetings").fetchone()[0] == 1

    def test_resync_moves_status_but_never_completes(self, conn, meeting):
        """File status changes flow in, except completion."""
        meeting_sync.sync_meeting_file(conn, MEETING)
        meeting.write_text(meeting.read_text().replace("| 14 Jan | Pending |", "| 14 Jan | Blocked |"))
        assert meeting_sync.sync_meeting_file(conn, MEETING)["updated"] == 1
        meeting.write_text(meeting.read_text().replace("| 14 Jan | Blocked |", "| 14 Jan | Done |"))
        meeting_sync.sync_meeting_file(conn, MEETING)
        row = conn.execute("SELECT status FROM items WHERE title = 'Draft the sitemap'").fetchone()
        assert row["status"] == "blocked"

    def test_complete_writes_status_cell(self, conn, meeting):
        """Completing a meeting task rewrites its Status cell."""
        result = meeting_sync.sync_meeting_file(conn, MEETING)
        sitemap_id = result["task_ids"][0]
        completed = ItemService(conn).complete(sitemap_id)
        assert completed["markdown_sync"]["synced"] is True
        assert "| Alice & Bob | Draft the sitemap | 14 Jan | Complete |" in meeting.read_text()

    def test_status_cell_rewrite_keeps_empty_cells(self, conn, kb_root):
        """Blank Due cells and the Project column survive a status write."""
        path = write_kb_file(
            kb_root,
            MEETING,
            """\
            ---
            title: Sitemap review
            date: 2026-01-20
            ---
            ## Actions

            | Owner | Action | Due | Status | Project |
            |-------|--------|-----|--------|---------|
            | Alice | Draft the sitemap |  | Pending | website |
            """,
        )
        task_id = meeting_sync.sync_meeting_file(conn, MEETING)["task_ids"][0]
        ItemService(conn).complete(task_id)
        assert "| Alice | Draft the sitemap |  | Complete | website |" in path.read_text().splitlines()

    def test_unwritable_meeting_file_is_reported(self, conn, meeting, monkeypatch):
        """A failed write comes back as success=False."""
        task_id = meeting_sync.sync_meeting_file(conn, MEETING)["task_ids"][0]
        conn.execute("UPDATE items SET status = 'complete' WHERE id = ?", (task_id,))

        def fail(*args, **kwargs):
            raise PermissionError("read-only")

        monkeypatch.setattr(Path, "write_text", fail)
        result = sync_task_to_source(conn, task_id)
        assert result["success"] is False
        assert "read-only" in result["message"]

    def test_preview_does_not_write(self, conn, meeting):
        """Preview reports actions and whether they already exist."""
        preview = meeting_sync.preview_meeting(conn, MEETING)
        assert preview["is_synced"] is False
        assert conn.execute("SELECT COUNT(*) FROM meetings").fetchone()[0] == 0

        meeting_sync.sync_meeting_file(conn, MEETING)
        preview = meeting_sync.preview_meeting(conn, MEETING)
        assert preview["is_synced"] is True
        assert preview["actions"][0]["existing_task_id"] is not None
        assert preview["actions"][2]["existing_task_id"] is None

    def test_missing_meeting(self, conn, kb_root):
        """Unknown paths are 404s."""
        with pytest.raises(NotFoundError):
            meeting_sync.sync_meeting_file(conn, "acme-corp/meetings/2026/01/nope.md")

    def test_sync_all_and_list(self, conn, meeting):
        """Bulk sync totals across files; listings carry task counts."""
        totals = meeting_sync.sync_all_meetings(conn, "acme-corp")
        assert (totals["meetings"], totals["created"]) == (1, 2)
        listed = meeting_sync.list_meetings(conn, org="acme-corp")
        assert listed["total"] == 1
        assert listed["items"][0]["task_count"] == 2
        assert meeting_sync.list_meetings(conn, org="personal")["total"] == 0


# ============================================================
# Diary
# ============================================================


class TestDiary:
    def test_ordinal_suffix(self):
        assert [diary_sync.ordinal_suffix(d) for d in (1, 2, 3, 4, 11, 12, 13, 22, 23)] == [
            "st", "nd", "rd", "th", "th", "th", "th", "nd", "rd",
        ]  # fmt: skip

    def test_log_task_activity_creates_entry(self, kb_root):
        """The day's entry is created from the template and appended to."""
        when = datetime(2026, 1, 5, 14, 30)
        result = diary_sync.log_task_activity({"id": 7, "title": "Ship", "project_name": "Website"}, "completed", when)
        assert result["diary_path"] == "diary/2026/01/05-Mon.md"
        text = (kb_root / result["diary_path"]).read_text()
        assert text.startswith("# Mon 5th January 2026")
        assert text.rstrip().endswith('- 14:30 — Completed T-7: "Ship" (Website)')

    def test_entries_append_in_order(self, kb_root):
        """Later events follow earlier ones."""
        diary_sync.log_task_activity({"id": 1, "title": "A"}, "started", datetime(2026, 1, 5, 9, 0))
        result = diary_sync.log_routine_completion("Inbox zero", datetime(2026, 1, 5, 9, 5))
        text = (kb_root / result["diary_path"]).read_text()
        assert text.index('Started T-1: "A"') < text.index('Routine: "Inbox zero"')

    def test_append_lands_inside_section(self, kb_root):
        """Events go into Task Activity, not after a later section."""
        when = datetime(2026, 1, 6, 8, 0)
        path = diary_sync.diary_path(when)
        path.parent.mkdir(parents=True)
        path.write_text("# Day\n\n## Task Activity\n\n## Notes\nfree text\n")
        diary_sync.log_task_activity({"id": 2, "title": "B"}, "blocked", when)
        text = path.read_text()
        assert text.index('Blocked T-2: "B"') < text.index("## Notes")
        assert text.endswith("free text\n")

    def test_append_after_last_entry_keeps_own_line(self, kb_root):
        """A heading right after the last entry does not swallow the new one."""
        when = datetime(2026, 1, 7, 8, 0)
        path = diary_sync.diary_path(when)
        path.parent.mkdir(parents=True)
        path.write_text("# Day\n\n## Task Activity\n- 07:00 — earlier\n## Notes\n")
        diary_sync.log_task_activity({"id": 2, "title": "B"}, "blocked", when)
        lines = path.read_text().splitlines()
        assert "- 07:00 — earlier" in lines
        assert lines[lines.index("- 07:00 — earlier") + 1].startswith("- 08:00 — Blocked T-2")
        assert "## Notes" in lines


# ============================================================
# SyncService
# ============================================================


class TestSyncService:
    def test_status(self, conn, workstream):
        """Counts workstreams, synced ones and conflicts."""
        service = SyncService(conn)
        service.filesystem_to_db(["acme-corp"])
        assert service.status() == {"workstreams": 1, "synced": 1, "conflicts": 0}

    def test_all_runs_every_sync(self, conn, workstream, meeting, kb_root):
        """Projects, workstreams and meetings in one pass."""
        write_kb_file(kb_root, "acme-corp/projects/mobile/README.md", "# Mobile\n")
        result = SyncService(conn).all(["acme-corp"])
        assert result["projects"]["projects_created"] == 1
        assert result["workstreams"]["created"] == 1
        assert result["meetings"]["created"] == 2

    def test_projects_preview(self, conn, kb_root):
        """Preview lists projects without writing."""
        write_kb_file(kb_root, "acme-corp/projects/mobile/README.md", "# Mobile\n")
        preview = SyncService(conn).projects_preview(["acme-corp"])
        assert preview["total"] == 1
        assert preview["projects"][0]["name"] == "Mobile"
        assert conn.execute("SELECT COUNT(*) FROM projects WHERE slug = 'mobile'").fetchone()[0] == 0

    def test_readmes(self, conn, readme):
        """README parsing is reported, not imported."""
        result = SyncService(conn).readmes()
        assert result["readmes"] == 1
        assert result["importable"] == 2
        assert result["errors"] == []

    def test_meeting_dry_run(self, conn, meeting):
        """dry_run previews instead of syncing."""
        service = SyncService(conn)
        assert service.meeting(MEETING, dry_run=True)["dry_run"] is True
        assert conn.execute("SELECT COUNT(*) FROM meetings").fetchone()[0] == 0
        assert service.meeting(MEETING)["created"] == 2

    def test_resolve_conflict_validation(self, conn):
        """Unknown items, items without files and bad directions are refused."""
        service = SyncService(conn)
        with pytest.raises(NotFoundError):
            service.resolve_conflict(99)
        with pytest.raises(BadRequestError):
            service.resolve_conflict(1)
        with pytest.raises(BadRequestError):
            service.resolve_conflict(1, direction="sideways")

    @pytest.mark.parametrize("direction,expected", [("file", "paused"), ("db", "active")])
    def test_resolve_conflict(self, conn, workstream, direction, expected):
        """Either side can win; afterwards the pair is clean."""
        service = SyncService(conn)
        service.filesystem_to_db(["acme-corp"])
        workstream.write_text(workstream.read_text().replace("status: active", "status: paused"))
        conn.execute("UPDATE items SET updated_at = '2099-01-01T00:00:00.000Z' WHERE file_path = ?", (WORKSTREAM,))
        item_id = service.conflicts()["conflicts"][0]["item_id"]

        result = service.resolve_conflict(item_id, direction)
        assert result["success"] is True
        assert result["direction"] == direction
        row = conn.execute("SELECT status FROM items WHERE id = ?", (item_id,)).fetchone()
        metadata, _, _ = read_markdown(workstream)
        assert row["status"] == expected
        assert metadata["status"] == expected
        assert service.conflicts()["count"] == 0
