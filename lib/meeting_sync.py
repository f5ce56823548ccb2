"""
Meeting notes -> meetings, attendees and action items.
"""

import logging
import re
import sqlite3

from lib.errors import NotFoundError
from lib.meeting_parser import (
    ParsedMeeting,
    find_meeting_files,
    get_meeting_by_path,
    map_action_status,
    parse_due_date,
    parse_meeting_file,
)
from lib.time_utils import now_iso

logger = logging.getLogger(__name__)

_OWNER_SPLIT_RE = re.compile(r"[,&]|\band\b", re.IGNORECASE)


def split_owner_names(owner: str) -> list[str]:
    return [n.strip() for n in _OWNER_SPLIT_RE.split(owner or "") if n.strip()]


def _find_project(conn: sqlite3.Connection, slug: str, org: str | None) -> sqlite3.Row | None:
    if org:
        row = conn.execute(
            """SELECT p.id FROM projects p JOIN organizations o ON o.id = p.org_id
               WHERE p.slug = ? AND o.slug = ?""",
            (slug, org),
        ).fetchone()
        if row:
            return row
    return conn.execute("SELECT id FROM projects WHERE slug = ? ORDER BY id LIMIT 1", (slug,)).fetchone()


def _person_id(conn: sqlite3.Connection, name: str, exact: bool) -> int:
    if exact:
        row = conn.execute("SELECT id FROM people WHERE name = ? ORDER BY id LIMIT 1", (name,)).fetchone()
    else:
        row = conn.execute(
            "SELECT id FROM people WHERE name LIKE ? ORDER BY id LIMIT 1", (f"%{name}%",)
        ).fetchone()
    if row:
        return row["id"]
    now = now_iso()
    cursor = conn.execute(
        "INSERT INTO people (name, created_at, updated_at) VALUES (?, ?, ?)", (name, now, now)
    )
    logger.info("Created person %s", name)
    return cursor.lastrowid


def _upsert_meeting(conn: sqlite3.Connection, meeting: ParsedMeeting) -> int:
    org = meeting.path.split("/")[0] or None
    now = now_iso()
    row = conn.execute("SELECT id FROM meetings WHERE path = ?", (meeting.path,)).fetchone()
    if row:
        conn.execute(
            "UPDATE meetings SET title = ?, date = ?, location = ?, updated_at = ? WHERE id = ?",
            (meeting.title, meeting.date, meeting.location, now, row["id"]),
        )
        meeting_id = row["id"]
    else:
        cursor = conn.execute(
            """INSERT INTO meetings (title, date, path, location, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (meeting.title, meeting.date, meeting.path, meeting.location, now, now),
        )
        meeting_id = cursor.lastrowid
        logger.info("Created meeting %s", meeting.path)

    for index, slug in enumerate(meeting.projects):
        project = _find_project(conn, slug, org)
        if project:
            conn.execute(
                """INSERT OR IGNORE INTO meeting_projects (meeting_id, project_id, is_primary)
                   VALUES (?, ?, ?)""",
                (meeting_id, project["id"], 1 if index == 0 else 0),
            )

    for name in meeting.attendees:
        conn.execute(
            "INSERT OR IGNORE INTO meeting_attendees (meeting_id, person_id) VALUES (?, ?)",
            (meeting_id, _person_id(conn, name, exact=True)),
        )

    return meeting_id


def sync_meeting_actions(conn: sqlite3.Connection, meeting: ParsedMeeting) -> dict:
    """
    Upsert the meeting and turn its open actions into tasks.

    Existing tasks (same meeting, same title) only have their status moved,
    and never to complete; completing is done from the task side.
    """
    meeting_id = _upsert_meeting(conn, meeting)
    org = meeting.path.split("/")[0] or None
    ref_year = int(meeting.date[:4]) if meeting.date[:4].isdigit() else None
    result = {
        "meeting_id": meeting_id,
        "meeting_path": meeting.path,
        "meeting_title": meeting.title,
        "actions_found": len(meeting.actions),
        "created": 0,
        "updated": 0,
        "skipped": 0,
        "errors": [],
        "task_ids": [],
    }

    for action in meeting.actions:
        try:
            status = map_action_status(action.status)
            existing = conn.execute(
                "SELECT id, status, deleted_at FROM items WHERE source_meeting_id = ? AND title = ?",
                (meeting_id, action.action),
            ).fetchone()

            if existing:
                if existing["deleted_at"]:
                    result["skipped"] += 1
                    continue
                result["task_ids"].append(existing["id"])
                if existing["status"] != status and status != "complete":
                    conn.execute(
                        "UPDATE items SET status = ?, updated_at = ? WHERE id = ?",
                        (status, now_iso(), existing["id"]),
                    )
                    result["updated"] += 1
                else:
                    result["skipped"] += 1
                continue

            if status in ("complete", "cancelled"):
                result["skipped"] += 1
                continue

            names = split_owner_names(action.owner)
            person_ids = [_person_id(conn, name, exact=False) for name in names]
            owner_id = person_ids[0] if person_ids else None

            project_id = None
            project_slug = action.project or meeting.primary_project
            if project_slug:
                project = _find_project(conn, project_slug, org)
                project_id = project["id"] if project else None

            now = now_iso()
            cursor = conn.execute(
                """INSERT INTO items
                   (title, item_type, status, due_date, owner_id, project_id, source_meeting_id,
                    source_type, source_path, created_at, updated_at)
                   VALUES (?, 'task', ?, ?, ?, ?, ?, 'meeting', ?, ?, ?)""",
                (
                    action.action,
                    status,
                    parse_due_date(action.due, ref_year),
                    owner_id,
                    project_id,
                    meeting_id,
                    meeting.path,
                    now,
                    now,
                ),
            )
            task_id = cursor.lastrowid
            for person_id in person_ids[1:]:
                conn.execute(
                    """INSERT OR IGNORE INTO item_people (item_id, person_id, role, created_at)
                       VALUES (?, ?, 'assignee', ?)""",
                    (task_id, person_id, now),
                )
            result["created"] += 1
            result["task_ids"].append(task_id)
            logger.info("Created T-%d from meeting %s", task_id, meeting.path)
        except sqlite3.Error as e:
            logger.warning("Failed to process action %r: %s", action.action, e)
            result["errors"].append(f'Failed to process action "{action.action}": {e}')

    return result


def sync_meeting_file(conn: sqlite3.Connection, relative_path: str) -> dict:
    meeting = get_meeting_by_path(relative_path)
    if meeting is None:
        raise NotFoundError(f"Meeting not found at path: {relative_path}")
    return sync_meeting_actions(conn, meeting)


def sync_all_meetings(conn: sqlite3.Connection, org: str | None = None) -> dict:
    """Sync every meeting note. Per-file failures are collected."""
    totals = {"meetings": 0, "created": 0, "updated": 0, "skipped": 0, "errors": []}
    for path in find_meeting_files(org):
        meeting = parse_meeting_file(path)
        if meeting is None:
            totals["errors"].append({"path": str(path), "error": "Could not parse meeting file"})
            continue
        result = sync_meeting_actions(conn, meeting)
        totals["meetings"] += 1
        for key in ("created", "updated", "skipped"):
            totals[key] += result[key]
        totals["errors"].extend({"path": meeting.path, "error": e} for e in result["errors"])
    return totals


def preview_meeting(conn: sqlite3.Connection, relative_path: str) -> dict:
    """What syncing this meeting would do, without writing."""
    meeting = get_meeting_by_path(relative_path)
    if meeting is None:
        raise NotFoundError(f"Meeting not found at path: {relative_path}")

    record = conn.execute("SELECT id FROM meetings WHERE path = ?", (meeting.path,)).fetchone()
    actions = []
    for action in meeting.actions:
        existing = None
        if record:
            existing = conn.execute(
                "SELECT id, status FROM items WHERE source_meeting_id = ? AND title = ?",
                (record["id"], action.action),
            ).fetchone()
        actions.append(
            {
                "owner": action.owner,
                "action": action.action,
                "due": action.due,
                "due_date": parse_due_date(action.due),
                "status": map_action_status(action.status),
                "project": action.project,
                "existing_task_id": existing["id"] if existing else None,
            }
        )

    return {
        "path": meeting.path,
        "title": meeting.title,
        "date": meeting.date,
        "attendees": meeting.attendees,
        "projects": meeting.projects,
        "primary_project": meeting.primary_project,
        "actions": actions,
        "is_synced": record is not None,
    }


# ============================================================
# Reads
# ============================================================


def list_meetings(
    conn: sqlite3.Connection,
    org: str | None = None,
    project_id: int | None = None,
    limit: int = 50,
    offset: int = 0,
) -> dict:
    where = ["1=1"]
    params: list = []
    if org:
        where.append("m.path LIKE ?")
        params.append(f"{org}/%")
    if project_id is not None:
        where.append("m.id IN (SELECT meeting_id FROM meeting_projects WHERE project_id = ?)")
        params.append(project_id)
    clause = " AND ".join(where)

    total = conn.execute(f"SELECT COUNT(*) FROM meetings m WHERE {clause}", params).fetchone()[0]  # nosec B608
    rows = conn.execute(
        f"""SELECT m.*,
               (SELECT COUNT(*) FROM items i WHERE i.source_meeting_id = m.id AND i.deleted_at IS NULL)
                 AS task_count
            FROM meetings m WHERE {clause}
            ORDER BY m.date DESC, m.id DESC LIMIT ? OFFSET ?""",  # nosec B608
        [*params, limit, offset],
    ).fetchall()
    return {"items": [dict(r) for r in rows], "total": total, "limit": limit, "offset": offset}


def get_meeting(conn: sqlite3.Connection, meeting_id: int) -> dict:
    row = conn.execute("SELECT * FROM meetings WHERE id = ?", (meeting_id,)).fetchone()
    if row is None:
        raise NotFoundError(f"Meeting {meeting_id} not found")
    meeting = dict(row)
    meeting["projects"] = [
        dict(r)
        for r in conn.execute(
            """SELECT p.id, p.slug, p.name, mp.is_primary FROM meeting_projects mp
               JOIN projects p ON p.id = mp.project_id WHERE mp.meeting_id = ?
               ORDER BY mp.is_primary DESC, p.name""",
            (meeting_id,),
        )
    ]
    meeting["attendees"] = [
        dict(r)
        for r in conn.execute(
            """SELECT pe.id, pe.name, pe.email FROM meeting_attendees ma
               JOIN people pe ON pe.id = ma.person_id WHERE ma.meeting_id = ? ORDER BY pe.name""",
            (meeting_id,),
        )
    ]
    meeting["tasks"] = [
        dict(r)
        for r in conn.execute(
            """SELECT i.id, i.title, i.status, i.due_date, pe.name AS owner_name FROM items i
               LEFT JOIN people pe ON pe.id = i.owner_id
               WHERE i.source_meeting_id = ? AND i.deleted_at IS NULL ORDER BY i.id""",
            (meeting_id,),
        )
    ]
    return meeting
