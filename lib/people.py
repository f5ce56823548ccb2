"""
People: task owners, meeting attendees and anyone an item waits on.
"""

import logging
import sqlite3

from lib.errors import BadRequestError, NotFoundError
from lib.models import CLOSED_STATUSES, format_task_id
from lib.time_utils import now_iso

logger = logging.getLogger(__name__)

_PERSON_SELECT = """
    SELECT pe.id, pe.name, pe.email, o.slug AS org, pe.notes, pe.created_at, pe.updated_at
    FROM people pe
    LEFT JOIN organizations o ON o.id = pe.org_id
"""

_OPEN = "i.deleted_at IS NULL AND i.status NOT IN (?, ?)"


class PeopleService:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def _person(self, person_id: int) -> dict:
        row = self.conn.execute(_PERSON_SELECT + " WHERE pe.id = ?", (person_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Person with ID {person_id} not found")
        return dict(row)

    def _org_id(self, slug: str | None) -> int | None:
        """Unknown org slugs resolve to no org."""
        if not slug:
            return None
        row = self.conn.execute("SELECT id FROM organizations WHERE slug = ?", (slug,)).fetchone()
        return row["id"] if row else None

    def list_all(self, search: str | None = None, org: str | None = None, limit: int = 100, offset: int = 0) -> dict:
        """People by name, each with open owned and waiting-on task counts."""
        where = ["1=1"]
        params: list = []
        if search:
            where.append("(pe.name LIKE ? OR pe.email LIKE ?)")
            params.extend([f"%{search}%", f"%{search}%"])
        if org:
            where.append("o.slug = ?")
            params.append(org)
        clause = " AND ".join(where)

        total = self.conn.execute(
            f"SELECT COUNT(*) FROM people pe LEFT JOIN organizations o ON o.id = pe.org_id WHERE {clause}",  # nosec B608
            params,
        ).fetchone()[0]
        rows = self.conn.execute(
            f"""SELECT pe.id, pe.name, pe.email, o.slug AS org, pe.notes, pe.created_at, pe.updated_at,
                   (SELECT COUNT(*) FROM items i WHERE i.owner_id = pe.id AND {_OPEN}) AS owned_tasks,
                   (SELECT COUNT(*) FROM item_people ip JOIN items i ON i.id = ip.item_id
                      WHERE ip.person_id = pe.id AND ip.role = 'waiting_on' AND {_OPEN}) AS waiting_on_tasks
                FROM people pe
                LEFT JOIN organizations o ON o.id = pe.org_id
                WHERE {clause}
                ORDER BY pe.name LIMIT ? OFFSET ?""",  # nosec B608
            [*CLOSED_STATUSES, *CLOSED_STATUSES, *params, limit, offset],
        ).fetchall()
        return {"people": [dict(r) for r in rows], "total": total, "limit": limit, "offset": offset}

    def get(self, person_id: int) -> dict:
        person = self._person(person_id)

        owned = self.conn.execute(
            f"""SELECT i.id, i.title, i.status, i.priority, i.due_date,
                       p.slug AS project_slug, p.name AS project_name
                FROM items i LEFT JOIN projects p ON p.id = i.project_id
                WHERE i.owner_id = ? AND {_OPEN}
                ORDER BY (i.priority IS NULL), i.priority, (i.due_date IS NULL), i.due_date""",  # nosec B608
            (person_id, *CLOSED_STATUSES),
        ).fetchall()
        waiting = self.conn.execute(
            f"""SELECT i.id, i.title, i.status, i.priority, i.due_date, owner.name AS owner_name,
                       p.slug AS project_slug, p.name AS project_name
                FROM item_people ip
                JOIN items i ON i.id = ip.item_id
                LEFT JOIN people owner ON owner.id = i.owner_id
                LEFT JOIN projects p ON p.id = i.project_id
                WHERE ip.person_id = ? AND ip.role = 'waiting_on' AND {_OPEN}
                ORDER BY i.id""",  # nosec B608
            (person_id, *CLOSED_STATUSES),
        ).fetchall()

        person["owned_tasks"] = [{**dict(r), "display_id": format_task_id(r["id"])} for r in owned]
        person["waiting_on_tasks"] = [{**dict(r), "display_id": format_task_id(r["id"])} for r in waiting]
        return person

    def create(self, name: str, email: str | None = None, org: str | None = None, notes: str | None = None) -> dict:
        if not name:
            raise BadRequestError("Name is required")
        now = now_iso()
        cursor = self.conn.execute(
            "INSERT INTO people (name, email, org_id, notes, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?)",
            (name, email or None, self._org_id(org), notes or None, now, now),
        )
        logger.info("Created person %s", name)
        return self._person(cursor.lastrowid)

    def update(self, person_id: int, data: dict) -> dict:
        self._person(person_id)
        fields = {k: data[k] for k in ("name", "email", "notes") if k in data}
        if "org" in data:
            fields["org_id"] = self._org_id(data["org"])
        if "name" in fields and not fields["name"]:
            raise BadRequestError("Name cannot be empty")
        if fields:
            fields["updated_at"] = now_iso()
            assignments = ", ".join(f"{k} = ?" for k in fields)
            self.conn.execute(
                f"UPDATE people SET {assignments} WHERE id = ?",  # nosec B608
                [*fields.values(), person_id],
            )
        return self._person(person_id)

    def find_by_name(self, name: str) -> dict | None:
        row = self.conn.execute(
            _PERSON_SELECT + " WHERE pe.name LIKE ? ORDER BY pe.id LIMIT 1", (f"%{name}%",)
        ).fetchone()
        return dict(row) if row else None

    def delete(self, person_id: int) -> dict:
        """Delete a person, clearing their ownership and relations first."""
        self._person(person_id)
        self.conn.execute("UPDATE items SET owner_id = NULL WHERE owner_id = ?", (person_id,))
        self.conn.execute("DELETE FROM item_people WHERE person_id = ?", (person_id,))
        self.conn.execute("DELETE FROM meeting_attendees WHERE person_id = ?", (person_id,))
        self.conn.execute("DELETE FROM people WHERE id = ?", (person_id,))
        return {"deleted": True}
