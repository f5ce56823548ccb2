"""
Sync entry points used by the API and CLI.

Wraps the file, project, meeting and README sync modules behind one
connection-scoped service.
"""

import logging
import sqlite3

from lib import file_sync, meeting_sync, project_sync, readme_parser
from lib.errors import BadRequestError, NotFoundError
from lib.models import format_task_id

logger = logging.getLogger(__name__)

RESOLVE_DIRECTIONS = ("file", "db")


class SyncService:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def status(self) -> dict:
        """How many workstreams exist, how many are linked to a file, and how many conflict."""
        total = self.conn.execute(
            "SELECT COUNT(*) FROM items WHERE item_type = 'workstream' AND deleted_at IS NULL"
        ).fetchone()[0]
        synced = self.conn.execute(
            """SELECT COUNT(*) FROM items WHERE item_type = 'workstream' AND deleted_at IS NULL
               AND file_path IS NOT NULL AND last_synced_at IS NOT NULL"""
        ).fetchone()[0]
        conflicts = file_sync.detect_all_conflicts(self.conn)
        return {"workstreams": total, "synced": synced, "conflicts": len(conflicts)}

    def filesystem_to_db(self, orgs: list[str] | None = None) -> dict:
        result = file_sync.sync_filesystem_to_db(self.conn, orgs)
        logger.info(
            "Workstream sync: %d created, %d updated, %d skipped, %d conflicts, %d errors",
            result["created"],
            result["updated"],
            result["skipped"],
            len(result["conflicts"]),
            len(result["errors"]),
        )
        return result

    def file_to_db(self, file_path: str) -> dict:
        return file_sync.sync_workstream_file_to_db(self.conn, file_path)

    def item_to_file(self, item_id: int) -> dict:
        return file_sync.sync_item_to_file(self.conn, item_id)

    def projects(self, orgs: list[str] | None = None) -> dict:
        return project_sync.sync_projects(self.conn, orgs)

    def projects_preview(self, orgs: list[str] | None = None) -> dict:
        found = project_sync.scan_projects(orgs)
        return {
            "total": len(found),
            "projects": [
                {
                    "slug": p.slug,
                    "name": p.name,
                    "org": p.org,
                    "status": p.status,
                    "is_sub_project": p.is_sub_project,
                    "parent_slug": p.parent_slug,
                }
                for p in found
            ],
        }

    def meetings(self, org: str | None = None) -> dict:
        return meeting_sync.sync_all_meetings(self.conn, org)

    def meeting(self, path: str, dry_run: bool = False) -> dict:
        if dry_run:
            preview = meeting_sync.preview_meeting(self.conn, path)
            return {**preview, "dry_run": True}
        return {**meeting_sync.sync_meeting_file(self.conn, path), "dry_run": False}

    def readmes(self) -> dict:
        """Parse project READMEs and report what they hold. Nothing is written."""
        parsed = readme_parser.parse_all_readmes()
        importable = readme_parser.filter_tasks_for_import(parsed["tasks"])
        return {
            "readmes": len(parsed["readmes"]),
            "summary": parsed["summary"],
            "importable": len(importable),
            "errors": [
                {"path": r["path"], "error": e} for r in parsed["readmes"] for e in r["errors"]
            ],
        }

    def conflicts(self) -> dict:
        found = file_sync.detect_all_conflicts(self.conn)
        return {"conflicts": found, "count": len(found)}

    def resolve_conflict(self, item_id: int, direction: str = "file") -> dict:
        """
        Settle a conflict by letting one side win.

        direction="file" overwrites the item from its file;
        direction="db" overwrites the file from the item.
        """
        if direction not in RESOLVE_DIRECTIONS:
            raise BadRequestError(f"Invalid direction '{direction}'. Expected one of: file, db")
        row = self.conn.execute("SELECT id, file_path FROM items WHERE id = ?", (item_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Item {format_task_id(item_id)} not found")
        if not row["file_path"]:
            raise BadRequestError(f"Item {format_task_id(item_id)} has no file_path")

        if direction == "file":
            result = file_sync.force_file_sync_to_db(self.conn, row["file_path"])
        else:
            result = file_sync.force_db_sync_to_file(self.conn, item_id)
        logger.info("Resolved conflict on %s from %s: %s", format_task_id(item_id), direction, result["success"])
        return {**result, "item_id": item_id, "direction": direction}

    def all(self, orgs: list[str] | None = None) -> dict:
        """Projects first so workstreams and meetings can find their parents."""
        return {
            "projects": self.projects(orgs),
            "workstreams": self.filesystem_to_db(orgs),
            "meetings": self.meetings(),
        }
