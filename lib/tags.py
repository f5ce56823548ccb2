"""
Free-form tags attached to items.
"""

import sqlite3

from lib.errors import BadRequestError, ConflictError, NotFoundError
from lib.time_utils import now_iso


def _tag(row: sqlite3.Row) -> dict:
    return {"id": row["id"], "name": row["name"], "color": row["color"], "description": row["description"]}


class TagService:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def list_all(self, search: str | None = None, limit: int = 100) -> list[dict]:
        """Tags by name with how many items carry each."""
        sql = """SELECT t.*, (SELECT COUNT(*) FROM item_tags it WHERE it.tag_id = t.id) AS item_count
                 FROM tags t"""
        params: list = []
        if search:
            sql += " WHERE t.name LIKE ? OR t.description LIKE ?"
            params.extend([f"%{search}%", f"%{search}%"])
        rows = self.conn.execute(sql + " ORDER BY t.name LIMIT ?", [*params, limit]).fetchall()
        return [{**_tag(r), "item_count": r["item_count"]} for r in rows]

    def get(self, tag_id: int | None = None, name: str | None = None) -> dict:
        if tag_id is None and not name:
            raise BadRequestError("Either id or name required")
        if tag_id is not None:
            row = self.conn.execute("SELECT * FROM tags WHERE id = ?", (tag_id,)).fetchone()
        else:
            row = self.conn.execute("SELECT * FROM tags WHERE name = ?", (name,)).fetchone()
        if row is None:
            raise NotFoundError(f"Tag not found: {tag_id if tag_id is not None else name}")

        items = self.conn.execute(
            """SELECT i.id, i.title, i.status, i.item_type FROM item_tags it
               JOIN items i ON i.id = it.item_id WHERE it.tag_id = ? ORDER BY i.id""",
            (row["id"],),
        ).fetchall()
        return {**_tag(row), "items": [dict(i) for i in items]}

    def create(self, name: str, color: str | None = None, description: str | None = None) -> dict:
        if not name:
            raise BadRequestError("Name is required")
        try:
            cursor = self.conn.execute(
                "INSERT INTO tags (name, color, description, created_at) VALUES (?, ?, ?, ?)",
                (name, color, description, now_iso()),
            )
        except sqlite3.IntegrityError:
            raise ConflictError(f"Tag already exists: {name}") from None
        return _tag(self.conn.execute("SELECT * FROM tags WHERE id = ?", (cursor.lastrowid,)).fetchone())

    def update(self, tag_id: int, data: dict) -> dict:
        fields = {k: data[k] for k in ("name", "color", "description") if k in data}
        if not fields:
            raise BadRequestError("No fields to update")
        if "name" in fields and not fields["name"]:
            raise BadRequestError("Name cannot be empty")
        assignments = ", ".join(f"{k} = ?" for k in fields)
        try:
            cursor = self.conn.execute(
                f"UPDATE tags SET {assignments} WHERE id = ?",  # nosec B608
                [*fields.values(), tag_id],
            )
        except sqlite3.IntegrityError:
            raise ConflictError(f"Tag name already exists: {fields.get('name')}") from None
        if cursor.rowcount == 0:
            raise NotFoundError(f"Tag {tag_id} not found")
        return _tag(self.conn.execute("SELECT * FROM tags WHERE id = ?", (tag_id,)).fetchone())

    def delete(self, tag_id: int) -> dict:
        self.conn.execute("DELETE FROM item_tags WHERE tag_id = ?", (tag_id,))
        if self.conn.execute("DELETE FROM tags WHERE id = ?", (tag_id,)).rowcount == 0:
            raise NotFoundError(f"Tag {tag_id} not found")
        return {"deleted": True, "id": tag_id}
