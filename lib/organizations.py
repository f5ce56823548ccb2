"""
Organizations: the top level of the knowledge base ({org}/projects/...).

Creating an organization also creates its `_general` project, both in the
database and as a README under the knowledge base.
"""

import logging
import sqlite3

from lib import paths
from lib.errors import BadRequestError, ConflictError, KnowledgeBaseNotConfigured, NotFoundError, PreconditionFailedError
from lib.markdown_io import write_markdown
from lib.models import ORG_COLORS, SLUG_RE
from lib.time_utils import now_iso

logger = logging.getLogger(__name__)

GENERAL_SLUG = "_general"

_UPDATABLE = ("name", "short_name", "description", "color")


def _general_readme(slug: str, name: str) -> None:
    """Write {slug}/projects/_general/README.md."""
    general_dir = paths.resolve_kb_path(f"{slug}/projects/{GENERAL_SLUG}")
    general_dir.mkdir(parents=True, exist_ok=True)
    write_markdown(
        general_dir / "README.md",
        {"type": "project", "title": name, "status": "active", "is_general": True},
        f"# {name}\n\nGeneral tasks and activities for {name} that aren't tied to a specific project.",
    )


class OrganizationService:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def _row(self, slug: str) -> sqlite3.Row:
        row = self.conn.execute("SELECT * FROM organizations WHERE slug = ?", (slug,)).fetchone()
        if row is None:
            raise NotFoundError(f"Organization not found: {slug}")
        return row

    def _counts(self, org_id: int) -> tuple[int, int]:
        projects = self.conn.execute(
            "SELECT COUNT(*) FROM projects WHERE org_id = ?", (org_id,)
        ).fetchone()[0]
        people = self.conn.execute("SELECT COUNT(*) FROM people WHERE org_id = ?", (org_id,)).fetchone()[0]
        return projects, people

    def list_all(self) -> dict:
        rows = self.conn.execute("SELECT * FROM organizations ORDER BY name").fetchall()
        return {"organizations": [dict(r) for r in rows], "count": len(rows)}

    def get(self, slug: str) -> dict:
        org = dict(self._row(slug))
        org["project_count"], org["people_count"] = self._counts(org["id"])
        return org

    def create(self, slug: str, name: str, short_name: str | None = None, description: str | None = None) -> dict:
        """
        Create an organization and its `_general` project.

        Raises:
            BadRequestError: slug is not lowercase alphanumeric with hyphens
            ConflictError: slug already taken
        """
        if not slug or not SLUG_RE.match(slug):
            raise BadRequestError("Slug must be lowercase alphanumeric with hyphens")
        if not name:
            raise BadRequestError("Name is required")
        if self.conn.execute("SELECT 1 FROM organizations WHERE slug = ?", (slug,)).fetchone():
            raise ConflictError(f"Organization with slug '{slug}' already exists")

        now = now_iso()
        cursor = self.conn.execute(
            """INSERT INTO organizations (slug, name, short_name, description, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (slug, name, short_name or None, description or None, now, now),
        )
        org_id = cursor.lastrowid
        self.conn.execute(
            """INSERT INTO projects (slug, name, org_id, status, is_general, created_at, updated_at)
               VALUES (?, ?, ?, 'active', 1, ?, ?)""",
            (GENERAL_SLUG, name, org_id, now, now),
        )

        try:
            _general_readme(slug, name)
        except (OSError, KnowledgeBaseNotConfigured) as e:
            logger.warning("Failed to create filesystem for %s/%s: %s", slug, GENERAL_SLUG, e)

        logger.info("Created organization %s", slug)
        return dict(self._row(slug))

    def update(self, slug: str, data: dict) -> dict:
        org = self._row(slug)
        fields = {k: data[k] for k in _UPDATABLE if k in data}
        if "name" in fields and not fields["name"]:
            raise BadRequestError("Name cannot be empty")
        if fields.get("color") is not None and fields["color"] not in ORG_COLORS:
            raise BadRequestError(f"Invalid color '{fields['color']}'. Expected one of: {', '.join(ORG_COLORS)}")
        if fields:
            fields["updated_at"] = now_iso()
            assignments = ", ".join(f"{k} = ?" for k in fields)
            self.conn.execute(
                f"UPDATE organizations SET {assignments} WHERE id = ?",  # nosec B608
                [*fields.values(), org["id"]],
            )
        return dict(self._row(slug))

    def delete(self, slug: str) -> dict:
        """Delete an organization nothing references."""
        org = self._row(slug)
        projects, people = self._counts(org["id"])
        if projects or people:
            raise PreconditionFailedError(
                f"Cannot delete organization with {projects} projects and {people} people"
            )
        self.conn.execute("DELETE FROM organizations WHERE id = ?", (org["id"],))
        return {"deleted": True}

    def delete_force(self, slug: str, delete_items: bool = True, delete_people: bool = False) -> dict:
        """
        Delete an organization and everything under it.

        Items in its projects are soft-deleted (when *delete_items*) and
        detached, projects are deleted, and people are deleted or unlinked.
        """
        org = self._row(slug)
        org_id = org["id"]
        project_count, people_count = self._counts(org_id)
        now = now_iso()
        in_org = "SELECT id FROM projects WHERE org_id = ?"

        if delete_items:
            self.conn.execute(
                f"UPDATE items SET deleted_at = ?, updated_at = ? WHERE project_id IN ({in_org}) AND deleted_at IS NULL",  # nosec B608
                (now, now, org_id),
            )
        self.conn.execute(f"UPDATE items SET project_id = NULL WHERE project_id IN ({in_org})", (org_id,))  # nosec B608
        self.conn.execute(f"DELETE FROM meeting_projects WHERE project_id IN ({in_org})", (org_id,))  # nosec B608
        self.conn.execute("DELETE FROM projects WHERE org_id = ?", (org_id,))

        in_people = "SELECT id FROM people WHERE org_id = ?"
        if delete_people:
            self.conn.execute(f"UPDATE items SET owner_id = NULL WHERE owner_id IN ({in_people})", (org_id,))  # nosec B608
            self.conn.execute(f"DELETE FROM item_people WHERE person_id IN ({in_people})", (org_id,))  # nosec B608
            self.conn.execute(f"DELETE FROM meeting_attendees WHERE person_id IN ({in_people})", (org_id,))  # nosec B608
            self.conn.execute("DELETE FROM people WHERE org_id = ?", (org_id,))
        else:
            self.conn.execute("UPDATE people SET org_id = NULL WHERE org_id = ?", (org_id,))

        self.conn.execute("DELETE FROM organizations WHERE id = ?", (org_id,))
        logger.info("Force-deleted organization %s (%d projects, %d people)", slug, project_count, people_count)
        return {"deleted": True, "projects_deleted": project_count, "people_affected": people_count}
