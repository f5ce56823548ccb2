"""Query helpers for common access patterns.

Every view skips deleted items. All views except search() cover open tasks
only (item_type 'task', status not complete/cancelled); routines have their
own views in lib.routine_service.
"""

import sqlite3
from datetime import timedelta
from typing import Any

from lib.items import ITEM_COLUMNS, ITEM_FROM, ITEM_ORDER, ITEM_SELECT, format_item
from lib.models import CLOSED_STATUSES, format_task_id
from lib.time_utils import today

_OPEN_TASKS = "i.deleted_at IS NULL AND i.item_type = 'task' AND i.status NOT IN (?, ?)"


def _open_tasks(
    conn: sqlite3.Connection,
    extra: str = "",
    params: tuple = (),
    owner_name: str | None = None,
    order: str = ITEM_ORDER,
    limit: int | None = None,
) -> list[dict]:
    sql = ITEM_SELECT + f" WHERE {_OPEN_TASKS}"
    args: list = list(CLOSED_STATUSES)
    if extra:
        sql += f" AND {extra}"
        args.extend(params)
    if owner_name:
        sql += " AND pe.name LIKE ?"
        args.append(f"%{owner_name}%")
    sql += order
    if limit is not None:
        sql += " LIMIT ?"
        args.append(limit)
    return [format_item(r) for r in conn.execute(sql, args).fetchall()]


def due_today(conn: sqlite3.Connection, owner_name: str | None = None) -> dict[str, Any]:
    """Open tasks due today."""
    day = today().isoformat()
    items = _open_tasks(conn, "i.due_date = ?", (day,), owner_name)
    return {"date": day, "items": items, "count": len(items)}


def overdue(conn: sqlite3.Connection, owner_name: str | None = None) -> dict[str, Any]:
    """Open tasks past due, oldest first."""
    items = _open_tasks(
        conn,
        "i.due_date < ?",
        (today().isoformat(),),
        owner_name,
        order=" ORDER BY i.due_date, (i.priority IS NULL), i.priority",
    )
    return {"items": items, "count": len(items)}


def waiting(conn: sqlite3.Connection) -> dict[str, Any]:
    """Open tasks with someone in the waiting_on role, grouped by that person."""
    rows = conn.execute(
        f"""SELECT wp.id AS waiting_person_id, wp.name AS waiting_person_name, {ITEM_COLUMNS} {ITEM_FROM}
            JOIN item_people ip ON ip.item_id = i.id AND ip.role = 'waiting_on'
            JOIN people wp ON wp.id = ip.person_id
            WHERE {_OPEN_TASKS}
            ORDER BY (i.due_date IS NULL), i.due_date, i.id""",  # nosec B608
        CLOSED_STATUSES,
    ).fetchall()

    by_person: dict[int, dict] = {}
    for row in rows:
        item = format_item(row)
        person_id = item.pop("waiting_person_id")
        name = item.pop("waiting_person_name")
        group = by_person.setdefault(person_id, {"person": {"id": person_id, "name": name}, "items": []})
        group["items"].append(item)
    return {"total": len(rows), "by_person": list(by_person.values())}


def search(
    conn: sqlite3.Connection, query: str, include_completed: bool = False, limit: int = 50
) -> dict[str, Any]:
    """Items of any type whose title or description contains *query*."""
    sql = ITEM_SELECT + " WHERE i.deleted_at IS NULL AND (i.title LIKE ? OR i.description LIKE ?)"
    args: list = [f"%{query}%", f"%{query}%"]
    if not include_completed:
        sql += " AND i.status NOT IN (?, ?)"
        args.extend(CLOSED_STATUSES)
    sql += " ORDER BY (i.priority IS NULL), i.priority, i.updated_at DESC LIMIT ?"
    args.append(limit)
    items = [format_item(r) for r in conn.execute(sql, args).fetchall()]
    return {"query": query, "items": items, "count": len(items)}


def high_priority(conn: sqlite3.Connection, owner_name: str | None = None, limit: int = 20) -> dict[str, Any]:
    """Open tasks at priority 1 or 2."""
    items = _open_tasks(
        conn,
        "i.priority IN (1, 2)",
        owner_name=owner_name,
        order=" ORDER BY i.priority, (i.due_date IS NULL), i.due_date",
        limit=limit,
    )
    return {"items": items, "count": len(items)}


def dashboard(conn: sqlite3.Connection, owner_name: str | None = None) -> dict[str, int]:
    """Open-task counts for the dashboard header."""
    day = today().isoformat()
    where = f"FROM items i LEFT JOIN people pe ON pe.id = i.owner_id WHERE {_OPEN_TASKS}"
    base: list = list(CLOSED_STATUSES)
    if owner_name:
        where += " AND pe.name LIKE ?"
        base.append(f"%{owner_name}%")

    def _count(extra: str = "", params: tuple = ()) -> int:
        sql = f"SELECT COUNT(*) {where}" + (f" AND {extra}" if extra else "")  # nosec B608
        return conn.execute(sql, [*base, *params]).fetchone()[0]

    return {
        "total": _count(),
        "overdue": _count("i.due_date < ?", (day,)),
        "due_today": _count("i.due_date = ?", (day,)),
        "high_priority": _count("i.priority IN (1, 2)"),
        "blocked": _count("i.status = 'blocked'"),
    }


def activity_feed(conn: sqlite3.Connection, limit: int = 30, offset: int = 0) -> dict[str, Any]:
    """Most recent activities on live items."""
    rows = conn.execute(
        """SELECT a.id, a.action, a.detail, a.old_value, a.new_value, a.created_at, a.created_by,
                  i.id AS item_id, i.title AS item_title, i.status AS item_status,
                  p.slug AS project_slug, p.name AS project_name, o.slug AS project_org
           FROM activities a
           JOIN items i ON i.id = a.item_id
           LEFT JOIN projects p ON p.id = i.project_id
           LEFT JOIN organizations o ON o.id = p.org_id
           WHERE i.deleted_at IS NULL
           ORDER BY a.created_at DESC, a.id DESC LIMIT ? OFFSET ?""",
        (limit, offset),
    ).fetchall()

    activities = []
    for r in rows:
        activities.append(
            {
                "id": r["id"],
                "action": r["action"],
                "detail": r["detail"],
                "old_value": r["old_value"],
                "new_value": r["new_value"],
                "created_at": r["created_at"],
                "created_by": r["created_by"],
                "item": {
                    "id": r["item_id"],
                    "display_id": format_task_id(r["item_id"]),
                    "title": r["item_title"],
                    "status": r["item_status"],
                    "project_slug": r["project_slug"],
                    "project_name": r["project_name"],
                    "project_org": r["project_org"],
                },
            }
        )
    return {"activities": activities, "count": len(activities)}


def upcoming(conn: sqlite3.Connection, days: int = 7, owner_name: str | None = None) -> dict[str, Any]:
    """Open tasks due from today through the next *days* days, grouped by date."""
    start = today()
    end = start + timedelta(days=days)
    items = _open_tasks(
        conn,
        "i.due_date >= ? AND i.due_date < ?",
        (start.isoformat(), end.isoformat()),
        owner_name,
        order=" ORDER BY i.due_date, (i.priority IS NULL), i.priority",
    )

    grouped: dict[str, list] = {}
    for item in items:
        grouped.setdefault(item["due_date"], []).append(item)
    return {
        "start_date": start.isoformat(),
        "end_date": end.isoformat(),
        "days": days,
        "grouped": [{"date": d, "items": grouped[d]} for d in sorted(grouped)],
        "total": len(items),
    }


def blocked(conn: sqlite3.Connection, limit: int = 20) -> dict[str, Any]:
    """Blocked tasks with the items blocking them."""
    items = _open_tasks(conn, "i.status = 'blocked'", limit=limit)
    for item in items:
        blockers = conn.execute(
            """SELECT f.id, f.title, f.status FROM item_links l JOIN items f ON f.id = l.from_id
               WHERE l.to_id = ? AND l.link_type = 'blocks' ORDER BY l.id""",
            (item["id"],),
        ).fetchall()
        item["blockers"] = [{**dict(b), "display_id": format_task_id(b["id"])} for b in blockers]
        item["blocker_count"] = len(blockers)
    return {"items": items, "count": len(items)}


def in_progress(conn: sqlite3.Connection, limit: int = 10) -> dict[str, Any]:
    """Tasks currently in progress."""
    items = _open_tasks(conn, "i.status = 'in_progress'", limit=limit)
    return {"items": items, "count": len(items)}
