"""
KW OS - Item Service

Tasks, workstreams, goals and routines share the items table. This service
covers the task-facing operations: filtering, lifecycle, notes, check-ins,
blockers, links, people and tags. Every mutation leaves an activities row.
"""

import json
import logging
import sqlite3
from datetime import date, datetime

from lib import config, diary_sync
from lib.errors import BadRequestError, ConflictError, KnowledgeBaseNotConfigured, NotFoundError
from lib.markdown_sync import sync_task_to_source
from lib.models import (
    CLOSED_STATUSES,
    ItemStatus,
    ItemType,
    LinkType,
    PersonRole,
    format_task_id,
    json_dict,
    validate_choice,
    validate_priority,
    validate_target_period,
)
from lib.time_utils import now_iso, parse_date, today

logger = logging.getLogger(__name__)

# =============================================================================
# Row shape shared by every item listing
# =============================================================================

ITEM_COLUMNS = """
    i.*,
    pe.name AS owner_name,
    p.slug AS project_slug, p.name AS project_name, p.is_general AS project_is_general,
    pp.slug AS project_parent_slug,
    o.slug AS project_org, o.short_name AS project_org_short_name, o.color AS project_org_color,
    m.title AS source_meeting_title, m.path AS source_meeting_path,
    (SELECT COUNT(*) FROM items c WHERE c.parent_id = i.id AND c.deleted_at IS NULL)
      AS subtask_count,
    (SELECT COUNT(*) FROM items c WHERE c.parent_id = i.id AND c.deleted_at IS NULL
       AND c.status = 'complete') AS subtasks_complete,
    (SELECT ci.id FROM check_ins ci WHERE ci.item_id = i.id AND ci.completed = 0
       ORDER BY ci.date LIMIT 1) AS checkin_id,
    (SELECT ci.date FROM check_ins ci WHERE ci.item_id = i.id AND ci.completed = 0
       ORDER BY ci.date LIMIT 1) AS checkin_by
"""

ITEM_FROM = """
    FROM items i
    LEFT JOIN people pe ON pe.id = i.owner_id
    LEFT JOIN projects p ON p.id = i.project_id
    LEFT JOIN projects pp ON pp.id = p.parent_id
    LEFT JOIN organizations o ON o.id = p.org_id
    LEFT JOIN meetings m ON m.id = i.source_meeting_id
"""

ITEM_SELECT = "SELECT" + ITEM_COLUMNS + ITEM_FROM

ITEM_ORDER = """
    ORDER BY (i.priority IS NULL), i.priority,
             (i.due_date IS NULL), i.due_date,
             i.created_at DESC
"""

_UPDATABLE = (
    "title",
    "description",
    "status",
    "priority",
    "due_date",
    "target_period",
    "owner_id",
    "project_id",
    "parent_id",
    "source_meeting_id",
    "metadata",
)


def format_item(row: sqlite3.Row | dict) -> dict:
    item = dict(row)
    item["display_id"] = format_task_id(item["id"])
    if "metadata" in item:
        item["metadata"] = json_dict(item["metadata"]) or None
    if "project_is_general" in item:
        item["project_is_general"] = bool(item["project_is_general"])
    slug = item.get("project_slug")
    parent = item.get("project_parent_slug")
    item["project_full_path"] = f"{parent}/{slug}" if slug and parent else slug
    return item


def _blank_to_none(value):
    return None if value == "" else value


def _parse_date_arg(value) -> date | None:
    try:
        return parse_date(value)
    except ValueError as e:
        raise BadRequestError(f"Invalid date: {value}") from e


class ItemService:
    """Task lifecycle on top of a sqlite3 connection."""

    def __init__(self, conn: sqlite3.Connection, actor: str | None = None):
        self.conn = conn
        self.actor = actor or config.configured_actor()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _row(self, item_id: int) -> sqlite3.Row:
        row = self.conn.execute("SELECT * FROM items WHERE id = ?", (item_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Item {format_task_id(item_id)} not found")
        return row

    def _fetch(self, item_id: int) -> dict:
        row = self.conn.execute(ITEM_SELECT + " WHERE i.id = ?", (item_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Item {format_task_id(item_id)} not found")
        return format_item(row)

    def log_activity(
        self,
        item_id: int,
        action: str,
        detail: str | None = None,
        old_value=None,
        new_value=None,
        created_by: str | None = None,
    ) -> int:
        cursor = self.conn.execute(
            """INSERT INTO activities (item_id, action, detail, old_value, new_value, created_by, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                item_id,
                action,
                detail,
                None if old_value is None else str(old_value),
                None if new_value is None else str(new_value),
                created_by or self.actor,
                now_iso(),
            ),
        )
        return cursor.lastrowid

    def _resolve_person(self, person_id: int | None, person_name: str | None) -> sqlite3.Row:
        if person_id is None and person_name:
            row = self.conn.execute(
                "SELECT id, name FROM people WHERE name LIKE ? ORDER BY id LIMIT 1",
                (f"%{person_name}%",),
            ).fetchone()
            if row is None:
                raise NotFoundError(f"Person not found: {person_name}")
            return row
        if person_id is None:
            raise BadRequestError("Either person_id or person_name required")
        row = self.conn.execute("SELECT id, name FROM people WHERE id = ?", (person_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Person with ID {person_id} not found")
        return row

    # =========================================================================
    # Queries
    # =========================================================================

    def list_items(
        self,
        status: str | list[str] | None = None,
        item_type: str | list[str] | None = None,
        owner_id: int | None = None,
        owner_name: str | None = None,
        project_id: int | None = None,
        project_slug: str | None = None,
        org_slug: str | None = None,
        parent_id: int | None = None,
        source_meeting_id: int | None = None,
        due_before: str | None = None,
        due_after: str | None = None,
        target_period: str | None = None,
        search: str | None = None,
        include_completed: bool = False,
        limit: int = 100,
        offset: int = 0,
    ) -> dict:
        """
        Filtered, paginated item listing.

        Without a status filter, complete and cancelled items are hidden
        unless include_completed is set. Deleted items never appear.

        Returns:
            {"items": [...], "total": n, "limit": limit, "offset": offset}
        """
        where = ["i.deleted_at IS NULL"]
        params: list = []

        def _in(column: str, values) -> None:
            values = values if isinstance(values, (list, tuple)) else [values]
            where.append(f"{column} IN ({', '.join('?' for _ in values)})")
            params.extend(values)

        if status:
            _in("i.status", status)
        elif not include_completed:
            where.append("i.status NOT IN (?, ?)")
            params.extend(CLOSED_STATUSES)
        if item_type:
            _in("i.item_type", item_type)
        if owner_id is not None:
            where.append("i.owner_id = ?")
            params.append(owner_id)
        if owner_name:
            where.append("pe.name LIKE ?")
            params.append(f"%{owner_name}%")
        if project_id is not None:
            where.append("i.project_id = ?")
            params.append(project_id)
        if project_slug:
            where.append("p.slug = ?")
            params.append(project_slug)
        if org_slug:
            where.append("o.slug = ?")
            params.append(org_slug)
        if parent_id is not None:
            where.append("i.parent_id = ?")
            params.append(parent_id)
        if source_meeting_id is not None:
            where.append("i.source_meeting_id = ?")
            params.append(source_meeting_id)
        if due_before:
            where.append("i.due_date <= ?")
            params.append(due_before)
        if due_after:
            where.append("i.due_date >= ?")
            params.append(due_after)
        if target_period:
            where.append("i.target_period = ?")
            params.append(target_period)
        if search:
            where.append("(i.title LIKE ? OR i.description LIKE ?)")
            params.extend([f"%{search}%", f"%{search}%"])

        clause = " AND ".join(where)
        base = ITEM_SELECT + f" WHERE {clause}"
        total = self.conn.execute(f"SELECT COUNT(*) FROM ({base})", params).fetchone()[0]  # nosec B608
        rows = self.conn.execute(base + ITEM_ORDER + " LIMIT ? OFFSET ?", [*params, limit, offset]).fetchall()
        return {"items": [format_item(r) for r in rows], "total": total, "limit": limit, "offset": offset}

    def get(self, item_id: int, activities_limit: int = 50, children_limit: int = 100) -> dict:
        """Item with its updates, attachments, people, subtasks, check-ins and blockers."""
        item = self._fetch(item_id)

        item["updates"] = [
            {
                "id": a["id"],
                "item_id": a["item_id"],
                "note": a["detail"] or "",
                "update_type": a["action"],
                "old_value": a["old_value"],
                "new_value": a["new_value"],
                "created_by": a["created_by"],
                "created_at": a["created_at"],
            }
            for a in self.conn.execute(
                "SELECT * FROM activities WHERE item_id = ? ORDER BY created_at DESC, id DESC LIMIT ?",
                (item_id, activities_limit),
            )
        ]
        item["attachments"] = [
            dict(r)
            for r in self.conn.execute(
                "SELECT * FROM item_attachments WHERE item_id = ? ORDER BY id", (item_id,)
            )
        ]
        item["people"] = self.get_people(item_id)["people"]
        item["subtasks"] = [
            format_item(r)
            for r in self.conn.execute(
                ITEM_SELECT + " WHERE i.parent_id = ? AND i.deleted_at IS NULL ORDER BY i.id LIMIT ?",
                (item_id, children_limit),
            )
        ]
        item["check_ins"] = self.list_checkins(item_id, include_completed=True)["checkins"]
        item["blockers"] = self.get_blockers(item_id)["blockers"]
        item["blocking"] = self.get_blocking(item_id)["blocking"]
        item["tags"] = self.get_tags(item_id)["tags"]

        total_activities = self.conn.execute(
            "SELECT COUNT(*) FROM activities WHERE item_id = ?", (item_id,)
        ).fetchone()[0]
        item["counts"] = {
            "total_activities": total_activities,
            "total_subtasks": item["subtask_count"],
            "has_more_activities": total_activities > len(item["updates"]),
            "has_more_subtasks": item["subtask_count"] > len(item["subtasks"]),
        }
        return item

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def create(self, data: dict) -> dict:
        if not data.get("title"):
            raise BadRequestError("Title is required")
        item_type = validate_choice(data.get("item_type") or "task", ItemType, "item_type")
        status = validate_choice(data.get("status") or "pending", ItemStatus, "status")
        due = _parse_date_arg(_blank_to_none(data.get("due_date")))
        metadata = data.get("metadata")

        now = now_iso()
        cursor = self.conn.execute(
            """INSERT INTO items
               (title, description, item_type, status, priority, due_date, target_period,
                owner_id, project_id, parent_id, source_meeting_id, source_type, source_path,
                file_path, metadata, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                data["title"],
                data.get("description"),
                item_type,
                status,
                validate_priority(data.get("priority")),
                due.isoformat() if due else None,
                validate_target_period(_blank_to_none(data.get("target_period"))),
                data.get("owner_id"),
                data.get("project_id"),
                data.get("parent_id"),
                data.get("source_meeting_id"),
                data.get("source_type"),
                data.get("source_path"),
                data.get("file_path"),
                json.dumps(metadata) if metadata else None,
                now,
                now,
            ),
        )
        item_id = cursor.lastrowid
        self.log_activity(item_id, "created")
        logger.info("Created %s %s", item_type, format_task_id(item_id))
        return self._fetch(item_id)

    def update(self, item_id: int, data: dict) -> dict:
        """
        Apply a partial update and log one activity per meaningful change.

        Raises:
            NotFoundError: unknown item
            BadRequestError: no updatable fields, or an invalid value
        """
        old = self._fetch(item_id)
        fields = {k: data[k] for k in _UPDATABLE if k in data}
        if not fields:
            raise BadRequestError("No fields to update")

        if "status" in fields:
            fields["status"] = validate_choice(fields["status"], ItemStatus, "status")
        if "priority" in fields:
            fields["priority"] = validate_priority(fields["priority"])
        if "due_date" in fields:
            due = _parse_date_arg(_blank_to_none(fields["due_date"]))
            fields["due_date"] = due.isoformat() if due else None
        if "target_period" in fields:
            fields["target_period"] = validate_target_period(_blank_to_none(fields["target_period"]))
        if "metadata" in fields:
            fields["metadata"] = json.dumps(fields["metadata"]) if fields["metadata"] else None
        if fields.get("status") == ItemStatus.COMPLETE and old["status"] != ItemStatus.COMPLETE:
            fields["completed_at"] = now_iso()

        fields["updated_at"] = now_iso()
        assignments = ", ".join(f"{k} = ?" for k in fields)
        self.conn.execute(
            f"UPDATE items SET {assignments} WHERE id = ?",  # nosec B608
            [*fields.values(), item_id],
        )

        simple_changes = (
            ("status", "status_changed"),
            ("priority", "priority_changed"),
            ("due_date", "due_date_changed"),
            ("title", "title_changed"),
        )
        for key, action in simple_changes:
            if key in fields and fields[key] != old[key]:
                self.log_activity(item_id, action, old_value=old[key], new_value=fields[key])

        if "owner_id" in fields and fields["owner_id"] != old["owner_id"]:
            new_owner = self.conn.execute(
                "SELECT name FROM people WHERE id = ?", (fields["owner_id"],)
            ).fetchone()
            self.log_activity(
                item_id, "owner_changed", old_value=old["owner_name"], new_value=new_owner["name"] if new_owner else None
            )
        if "project_id" in fields and fields["project_id"] != old["project_id"]:
            new_project = self.conn.execute(
                "SELECT name FROM projects WHERE id = ?", (fields["project_id"],)
            ).fetchone()
            self.log_activity(
                item_id,
                "project_changed",
                old_value=old["project_name"],
                new_value=new_project["name"] if new_project else None,
            )

        return self._fetch(item_id)

    def complete(self, item_id: int, note: str | None = None) -> dict:
        """
        Mark an item complete and ripple the change outward.

        Clears pending check-ins, removes the item's outgoing "blocks" links
        (returning fully unblocked items to pending), logs the status change,
        writes the status back to the source markdown and logs it in the
        diary. Completing an already-complete item is allowed.
        """
        item = self._fetch(item_id)
        previous = item["status"]
        now = now_iso()

        self.conn.execute(
            "UPDATE items SET status = 'complete', completed_at = ?, updated_at = ? WHERE id = ?",
            (now, now, item_id),
        )
        cleared = self.conn.execute(
            "UPDATE check_ins SET completed = 1 WHERE item_id = ? AND completed = 0", (item_id,)
        ).rowcount

        unblocked = []
        links = self.conn.execute(
            """SELECT l.id, l.to_id, t.title, t.status FROM item_links l
               JOIN items t ON t.id = l.to_id
               WHERE l.from_id = ? AND l.link_type = 'blocks'""",
            (item_id,),
        ).fetchall()
        for link in links:
            self.conn.execute("DELETE FROM item_links WHERE id = ?", (link["id"],))
            remaining = self.conn.execute(
                "SELECT COUNT(*) FROM item_links WHERE to_id = ? AND link_type = 'blocks'",
                (link["to_id"],),
            ).fetchone()[0]
            if remaining == 0 and link["status"] == ItemStatus.BLOCKED:
                self.conn.execute(
                    "UPDATE items SET status = 'pending', updated_at = ? WHERE id = ?", (now, link["to_id"])
                )
                self.log_activity(
                    link["to_id"],
                    "unblocked",
                    detail=f"Auto-unblocked: {format_task_id(item_id)} was completed",
                    old_value="blocked",
                    new_value="pending",
                    created_by="system",
                )
                unblocked.append(
                    {"id": link["to_id"], "display_id": format_task_id(link["to_id"]), "title": link["title"]}
                )

        self.log_activity(item_id, "status_changed", detail=note, old_value=previous, new_value="complete")

        try:
            source = sync_task_to_source(self.conn, item_id)
            markdown_sync = {
                "synced": source["success"],
                "source_type": source["source_type"],
                "message": source["message"],
            }
        except KnowledgeBaseNotConfigured as e:
            markdown_sync = {"synced": False, "source_type": None, "message": e.message}

        try:
            diary_sync.log_task_activity(
                {"id": item_id, "title": item["title"], "project_name": item["project_name"]},
                "completed",
                datetime.now(),
            )
        except (OSError, KnowledgeBaseNotConfigured) as e:
            logger.warning("Diary log failed for %s: %s", format_task_id(item_id), e)

        logger.info("Completed %s (was %s)", format_task_id(item_id), previous)
        return {
            "item": self._fetch(item_id),
            "previous_status": previous,
            "markdown_sync": markdown_sync,
            "unblocked_tasks": unblocked,
            "cleared_check_ins": cleared,
        }

    def delete(self, item_id: int) -> dict:
        """Soft delete."""
        cursor = self.conn.execute(
            "UPDATE items SET deleted_at = ?, updated_at = ? WHERE id = ? AND deleted_at IS NULL",
            (now_iso(), now_iso(), item_id),
        )
        if cursor.rowcount == 0:
            raise NotFoundError(f"Item {format_task_id(item_id)} not found or already deleted")
        return {"deleted": True, "id": item_id, "display_id": format_task_id(item_id)}

    def restore(self, item_id: int) -> dict:
        row = self._row(item_id)
        if not row["deleted_at"]:
            raise BadRequestError(f"Item {format_task_id(item_id)} is not deleted")
        self.conn.execute(
            "UPDATE items SET deleted_at = NULL, updated_at = ? WHERE id = ?", (now_iso(), item_id)
        )
        return {"restored": True, **self._fetch(item_id)}

    def add_note(self, item_id: int, note: str, update_type: str = "note") -> dict:
        if not note:
            raise BadRequestError("Note is required")
        self._row(item_id)
        activity_id = self.log_activity(item_id, update_type, detail=note)
        row = self.conn.execute("SELECT * FROM activities WHERE id = ?", (activity_id,)).fetchone()
        return {
            "id": activity_id,
            "item_id": item_id,
            "display_id": format_task_id(item_id),
            "note": row["detail"],
            "update_type": row["action"],
            "created_at": row["created_at"],
        }

    # =========================================================================
    # Check-ins
    # =========================================================================

    def add_checkin(self, item_id: int, on_date: str, note: str | None = None) -> dict:
        item = self._row(item_id)
        day = _parse_date_arg(on_date)
        if day is None:
            raise BadRequestError("Check-in date is required")
        cursor = self.conn.execute(
            "INSERT INTO check_ins (item_id, date, note, completed, created_at) VALUES (?, ?, ?, 0, ?)",
            (item_id, day.isoformat(), note, now_iso()),
        )
        return {
            "id": cursor.lastrowid,
            "item_id": item_id,
            "item_display_id": format_task_id(item_id),
            "item_title": item["title"],
            "date": day.isoformat(),
            "note": note,
            "completed": False,
        }

    def list_checkins(self, item_id: int, include_completed: bool = False) -> dict:
        sql = "SELECT * FROM check_ins WHERE item_id = ?"
        if not include_completed:
            sql += " AND completed = 0"
        rows = self.conn.execute(sql + " ORDER BY date, id", (item_id,)).fetchall()
        return {
            "item_id": item_id,
            "display_id": format_task_id(item_id),
            "checkins": [{**dict(r), "completed": bool(r["completed"])} for r in rows],
        }

    def update_checkin(
        self,
        checkin_id: int,
        on_date: str | None = None,
        note: str | None = None,
        completed: bool | None = None,
    ) -> dict:
        fields = {}
        if on_date is not None:
            day = _parse_date_arg(on_date)
            fields["date"] = day.isoformat() if day else None
        if note is not None:
            fields["note"] = note
        if completed is not None:
            fields["completed"] = 1 if completed else 0
        if not fields:
            raise BadRequestError("No fields to update")

        assignments = ", ".join(f"{k} = ?" for k in fields)
        cursor = self.conn.execute(
            f"UPDATE check_ins SET {assignments} WHERE id = ?",  # nosec B608
            [*fields.values(), checkin_id],
        )
        if cursor.rowcount == 0:
            raise NotFoundError(f"Check-in {checkin_id} not found")
        row = self.conn.execute(
            """SELECT c.*, i.title AS item_title FROM check_ins c
               JOIN items i ON i.id = c.item_id WHERE c.id = ?""",
            (checkin_id,),
        ).fetchone()
        return {
            **dict(row),
            "item_display_id": format_task_id(row["item_id"]),
            "completed": bool(row["completed"]),
        }

    def reschedule_checkin(self, item_id: int, new_date: str, clear_completed: bool = True) -> dict:
        """Close out pending check-ins (optionally) and add one on *new_date*."""
        self._row(item_id)
        cleared = 0
        if clear_completed:
            cleared = self.conn.execute(
                "UPDATE check_ins SET completed = 1 WHERE item_id = ? AND completed = 0", (item_id,)
            ).rowcount
        created = self.add_checkin(item_id, new_date)
        created["cleared_previous"] = cleared
        return created

    def delete_checkin(self, checkin_id: int) -> dict:
        cursor = self.conn.execute("DELETE FROM check_ins WHERE id = ?", (checkin_id,))
        if cursor.rowcount == 0:
            raise NotFoundError(f"Check-in {checkin_id} not found")
        return {"deleted": True, "id": checkin_id}

    def complete_checkin(self, item_id: int, checkin_id: int | None = None, clear: bool = False) -> dict:
        """Complete one check-in by id, or every pending one when *clear* is set."""
        self._row(item_id)
        if checkin_id is not None:
            cursor = self.conn.execute(
                "UPDATE check_ins SET completed = 1 WHERE id = ? AND item_id = ?", (checkin_id, item_id)
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"Check-in {checkin_id} not found")
        elif clear:
            self.conn.execute(
                "UPDATE check_ins SET completed = 1 WHERE item_id = ? AND completed = 0", (item_id,)
            )
        return {"item_id": item_id, "display_id": format_task_id(item_id), "completed": True}

    def due_checkins(self, include_future: bool = False) -> list[dict]:
        """Open items with a pending check-in, earliest first."""
        sql = (
            "SELECT"
            + ITEM_COLUMNS
            + ", due.id AS due_checkin_id, due.date AS due_checkin_date, due.note AS checkin_note"
            + ITEM_FROM
            + " JOIN check_ins due ON due.item_id = i.id"
            + " WHERE due.completed = 0 AND i.deleted_at IS NULL AND i.status NOT IN (?, ?)"
        )
        params: list = list(CLOSED_STATUSES)
        if not include_future:
            sql += " AND due.date <= ?"
            params.append(today().isoformat())
        rows = self.conn.execute(sql + " ORDER BY due.date, due.id", params).fetchall()

        out = []
        for row in rows:
            item = format_item(row)
            item["checkin_id"] = item.pop("due_checkin_id")
            item["checkin_by"] = item.pop("due_checkin_date")
            item["is_checkin"] = True
            out.append(item)
        return out

    # =========================================================================
    # Blockers and links
    # =========================================================================

    def get_blockers(self, item_id: int) -> dict:
        """Items that must complete before this one can proceed."""
        rows = self.conn.execute(
            """SELECT l.id AS link_id, f.id, f.title, f.status FROM item_links l
               JOIN items f ON f.id = l.from_id
               WHERE l.to_id = ? AND l.link_type = 'blocks' ORDER BY l.id""",
            (item_id,),
        ).fetchall()
        blockers = [{**dict(r), "display_id": format_task_id(r["id"])} for r in rows]
        return {"item_id": item_id, "display_id": format_task_id(item_id), "blockers": blockers, "count": len(blockers)}

    def get_blocking(self, item_id: int) -> dict:
        """Items waiting on this one."""
        rows = self.conn.execute(
            """SELECT l.id AS link_id, t.id, t.title, t.status FROM item_links l
               JOIN items t ON t.id = l.to_id
               WHERE l.from_id = ? AND l.link_type = 'blocks' ORDER BY l.id""",
            (item_id,),
        ).fetchall()
        blocking = [{**dict(r), "display_id": format_task_id(r["id"])} for r in rows]
        return {"item_id": item_id, "display_id": format_task_id(item_id), "blocking": blocking, "count": len(blocking)}

    def add_blocker(self, item_id: int, blocker_id: int) -> dict:
        """
        Record that *blocker_id* blocks *item_id*.

        An open item becomes blocked; complete and cancelled items keep
        their status.
        """
        item = self._row(item_id)
        try:
            blocker = self._row(blocker_id)
        except NotFoundError:
            raise NotFoundError(f"Blocker {format_task_id(blocker_id)} not found") from None
        if item_id == blocker_id:
            raise BadRequestError("An item cannot block itself")

        try:
            cursor = self.conn.execute(
                "INSERT INTO item_links (from_id, to_id, link_type, created_at) VALUES (?, ?, 'blocks', ?)",
                (blocker_id, item_id, now_iso()),
            )
        except sqlite3.IntegrityError:
            raise ConflictError(
                f"{format_task_id(blocker_id)} already blocks {format_task_id(item_id)}"
            ) from None

        if item["status"] not in CLOSED_STATUSES and item["status"] != ItemStatus.BLOCKED:
            self.conn.execute(
                "UPDATE items SET status = 'blocked', updated_at = ? WHERE id = ?", (now_iso(), item_id)
            )
        self.log_activity(
            item_id,
            "blocked",
            detail=f"Blocked by {format_task_id(blocker_id)}: {blocker['title']}",
            old_value=item["status"],
            new_value=ItemStatus.BLOCKED.value if item["status"] not in CLOSED_STATUSES else item["status"],
        )
        return {
            "link_id": cursor.lastrowid,
            "item_id": item_id,
            "item_display_id": format_task_id(item_id),
            "blocker_id": blocker_id,
            "blocker_display_id": format_task_id(blocker_id),
            "blocker_title": blocker["title"],
        }

    def remove_blocker(self, item_id: int, blocker_id: int) -> dict:
        deleted = self.conn.execute(
            "DELETE FROM item_links WHERE from_id = ? AND to_id = ? AND link_type = 'blocks'",
            (blocker_id, item_id),
        ).rowcount
        if deleted:
            self.log_activity(item_id, "unblocked", detail=f"No longer blocked by {format_task_id(blocker_id)}")
        return {
            "deleted": deleted > 0,
            "item_id": item_id,
            "item_display_id": format_task_id(item_id),
            "blocker_id": blocker_id,
            "blocker_display_id": format_task_id(blocker_id),
        }

    def add_link(self, from_id: int, to_id: int, link_type: str) -> dict:
        link_type = validate_choice(link_type, LinkType, "link_type")
        source = self._row(from_id)
        target = self._row(to_id)
        try:
            cursor = self.conn.execute(
                "INSERT INTO item_links (from_id, to_id, link_type, created_at) VALUES (?, ?, ?, ?)",
                (from_id, to_id, link_type, now_iso()),
            )
        except sqlite3.IntegrityError:
            raise ConflictError(
                f"Link already exists: {format_task_id(from_id)} {link_type} {format_task_id(to_id)}"
            ) from None
        return {
            "id": cursor.lastrowid,
            "from_id": from_id,
            "from_display_id": format_task_id(from_id),
            "from_title": source["title"],
            "to_id": to_id,
            "to_display_id": format_task_id(to_id),
            "to_title": target["title"],
            "link_type": link_type,
        }

    def remove_link(self, from_id: int, to_id: int, link_type: str) -> dict:
        link_type = validate_choice(link_type, LinkType, "link_type")
        deleted = self.conn.execute(
            "DELETE FROM item_links WHERE from_id = ? AND to_id = ? AND link_type = ?",
            (from_id, to_id, link_type),
        ).rowcount
        return {"deleted": deleted > 0, "from_id": from_id, "to_id": to_id, "link_type": link_type}

    def get_links(self, item_id: int) -> dict:
        outgoing = self.conn.execute(
            """SELECT l.id, l.link_type, t.id AS target_id, t.title AS target_title, t.status AS target_status
               FROM item_links l JOIN items t ON t.id = l.to_id WHERE l.from_id = ? ORDER BY l.id""",
            (item_id,),
        ).fetchall()
        incoming = self.conn.execute(
            """SELECT l.id, l.link_type, f.id AS source_id, f.title AS source_title, f.status AS source_status
               FROM item_links l JOIN items f ON f.id = l.from_id WHERE l.to_id = ? ORDER BY l.id""",
            (item_id,),
        ).fetchall()
        return {
            "item_id": item_id,
            "display_id": format_task_id(item_id),
            "outgoing": [{**dict(r), "target_display_id": format_task_id(r["target_id"])} for r in outgoing],
            "incoming": [{**dict(r), "source_display_id": format_task_id(r["source_id"])} for r in incoming],
        }

    # =========================================================================
    # People
    # =========================================================================

    def add_person(
        self, item_id: int, role: str, person_id: int | None = None, person_name: str | None = None
    ) -> dict:
        role = validate_choice(role, PersonRole, "role")
        person = self._resolve_person(person_id, person_name)
        self._row(item_id)
        try:
            cursor = self.conn.execute(
                "INSERT INTO item_people (item_id, person_id, role, created_at) VALUES (?, ?, ?, ?)",
                (item_id, person["id"], role, now_iso()),
            )
        except sqlite3.IntegrityError:
            raise ConflictError(
                f"{person['name']} already has role {role} on {format_task_id(item_id)}"
            ) from None
        return {
            "id": cursor.lastrowid,
            "item_id": item_id,
            "item_display_id": format_task_id(item_id),
            "person_id": person["id"],
            "person_name": person["name"],
            "role": role,
        }

    def remove_person(
        self, item_id: int, role: str, person_id: int | None = None, person_name: str | None = None
    ) -> dict:
        role = validate_choice(role, PersonRole, "role")
        person = self._resolve_person(person_id, person_name)
        deleted = self.conn.execute(
            "DELETE FROM item_people WHERE item_id = ? AND person_id = ? AND role = ?",
            (item_id, person["id"], role),
        ).rowcount
        return {"deleted": deleted > 0, "item_id": item_id, "person_id": person["id"], "role": role}

    def get_people(self, item_id: int) -> dict:
        rows = self.conn.execute(
            """SELECT ip.id, ip.person_id, pe.name AS person_name, pe.email AS person_email,
                      o.slug AS person_org, ip.role, ip.created_at
               FROM item_people ip
               JOIN people pe ON pe.id = ip.person_id
               LEFT JOIN organizations o ON o.id = pe.org_id
               WHERE ip.item_id = ? ORDER BY ip.role, pe.name""",
            (item_id,),
        ).fetchall()
        return {"item_id": item_id, "display_id": format_task_id(item_id), "people": [dict(r) for r in rows]}

    # =========================================================================
    # Tags
    # =========================================================================

    def add_tag(self, item_id: int, tag_id: int | None = None, tag_name: str | None = None) -> dict:
        """Attach a tag by id or name; an unknown name creates the tag."""
        item = self._row(item_id)
        if tag_id is not None:
            tag = self.conn.execute("SELECT * FROM tags WHERE id = ?", (tag_id,)).fetchone()
            if tag is None:
                raise NotFoundError(f"Tag with ID {tag_id} not found")
        elif tag_name:
            tag = self.conn.execute("SELECT * FROM tags WHERE name = ?", (tag_name,)).fetchone()
            if tag is None:
                self.conn.execute("INSERT INTO tags (name, created_at) VALUES (?, ?)", (tag_name, now_iso()))
                tag = self.conn.execute("SELECT * FROM tags WHERE name = ?", (tag_name,)).fetchone()
        else:
            raise BadRequestError("Either tag_id or tag_name required")

        try:
            self.conn.execute("INSERT INTO item_tags (item_id, tag_id) VALUES (?, ?)", (item_id, tag["id"]))
        except sqlite3.IntegrityError:
            raise ConflictError(
                f'Item {format_task_id(item_id)} already has tag "{tag["name"]}"'
            ) from None
        return {
            "item_id": item_id,
            "item_display_id": format_task_id(item_id),
            "item_title": item["title"],
            "tag_id": tag["id"],
            "tag_name": tag["name"],
            "tag_color": tag["color"],
        }

    def remove_tag(self, item_id: int, tag_id: int | None = None, tag_name: str | None = None) -> dict:
        if tag_id is None and tag_name:
            tag = self.conn.execute("SELECT id FROM tags WHERE name = ?", (tag_name,)).fetchone()
            if tag is None:
                raise NotFoundError(f"Tag not found: {tag_name}")
            tag_id = tag["id"]
        if tag_id is None:
            raise BadRequestError("Either tag_id or tag_name required")
        deleted = self.conn.execute(
            "DELETE FROM item_tags WHERE item_id = ? AND tag_id = ?", (item_id, tag_id)
        ).rowcount
        return {"deleted": deleted > 0, "item_id": item_id, "item_display_id": format_task_id(item_id), "tag_id": tag_id}

    def get_tags(self, item_id: int) -> dict:
        rows = self.conn.execute(
            """SELECT t.id, t.name, t.color, t.description FROM item_tags it
               JOIN tags t ON t.id = it.tag_id WHERE it.item_id = ? ORDER BY t.name""",
            (item_id,),
        ).fetchall()
        return {"item_id": item_id, "display_id": format_task_id(item_id), "tags": [dict(r) for r in rows]}
