"""
Project Registry

Projects belong to an organization and may nest one level under a parent
(sub-projects). The `_general` project of each organization holds tasks that
aren't tied to a specific project.
"""

import logging
import sqlite3
from datetime import datetime, time, timedelta

from lib import safe_sql
from lib.errors import BadRequestError, NotFoundError, PreconditionFailedError
from lib.models import CLOSED_STATUSES, ORG_COLORS, SLUG_RE, ProjectStatus, validate_choice, validate_priority
from lib.time_utils import now_iso, to_iso, today

logger = logging.getLogger(__name__)

DELETE_POLICIES = ("fail", "orphan", "cascade")

_STAT_STATUSES = ("pending", "in_progress", "complete", "blocked", "cancelled")

_PROJECT_SELECT = """
    SELECT p.*,
           parent.slug AS parent_slug, parent.name AS parent_name,
           o.slug AS org, o.name AS organization_name,
           o.short_name AS organization_short_name, o.color AS organization_color,
           (SELECT COUNT(*) FROM projects c WHERE c.parent_id = p.id) AS child_count
    FROM projects p
    LEFT JOIN projects parent ON parent.id = p.parent_id
    LEFT JOIN organizations o ON o.id = p.org_id
"""

_PROJECT_ORDER = " ORDER BY (p.priority IS NULL), p.priority, p.name"


def format_project(row: sqlite3.Row | dict) -> dict:
    project = dict(row)
    project["org"] = project.get("org") or "other"
    project["is_general"] = bool(project.get("is_general"))
    parent = project.get("parent_slug")
    project["full_path"] = f"{parent}/{project['slug']}" if parent else project["slug"]
    if project.get("organization_color") not in ORG_COLORS:
        project["organization_color"] = None
    return project


class ProjectService:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    # =========================================================================
    # Helpers
    # =========================================================================

    def _find(self, slug: str, org: str | None = None) -> sqlite3.Row | None:
        sql = _PROJECT_SELECT + " WHERE p.slug = ?"
        params: list = [slug]
        if org:
            sql += " AND o.slug = ?"
            params.append(org)
        return self.conn.execute(sql + " ORDER BY p.id LIMIT 1", params).fetchone()

    def _by_id(self, project_id: int) -> dict:
        row = self.conn.execute(_PROJECT_SELECT + " WHERE p.id = ?", (project_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Project with ID {project_id} not found")
        return format_project(row)

    def _org_id(self, slug: str) -> int:
        row = self.conn.execute("SELECT id FROM organizations WHERE slug = ?", (slug,)).fetchone()
        if row is None:
            raise NotFoundError(f"Organization '{slug}' not found. Create the organization first.")
        return row["id"]

    def task_stats(self, project_id: int) -> dict:
        """Live item counts by status."""
        stats = {"total": 0, **{s: 0 for s in _STAT_STATUSES}}
        for row in self.conn.execute(
            "SELECT status, COUNT(*) AS n FROM items WHERE project_id = ? AND deleted_at IS NULL GROUP BY status",
            (project_id,),
        ):
            stats["total"] += row["n"]
            if row["status"] in stats:
                stats[row["status"]] = row["n"]
        return stats

    def _descendant_ids(self, project_id: int) -> list[int]:
        ids = []
        for row in self.conn.execute("SELECT id FROM projects WHERE parent_id = ?", (project_id,)).fetchall():
            ids.append(row["id"])
            ids.extend(self._descendant_ids(row["id"]))
        return ids

    # =========================================================================
    # Reads
    # =========================================================================

    def list_all(
        self,
        org: str | None = None,
        status: str | None = None,
        include_children: bool = True,
        limit: int = 100,
        offset: int = 0,
    ) -> dict:
        where = ["1=1"]
        params: list = []
        if org:
            where.append("o.slug = ?")
            params.append(org)
        if status:
            where.append("p.status = ?")
            params.append(status)
        if not include_children:
            where.append("p.parent_id IS NULL")
        base = _PROJECT_SELECT + f" WHERE {' AND '.join(where)}"

        total = self.conn.execute(f"SELECT COUNT(*) FROM ({base})", params).fetchone()[0]  # nosec B608
        rows = self.conn.execute(base + _PROJECT_ORDER + " LIMIT ? OFFSET ?", [*params, limit, offset]).fetchall()
        return {"projects": [format_project(r) for r in rows], "total": total, "limit": limit, "offset": offset}

    def get(self, slug: str, org: str | None = None) -> dict:
        row = self._find(slug, org)
        if row is None:
            raise NotFoundError(f'Project "{slug}" not found')
        project = format_project(row)
        project["children"] = [
            dict(r)
            for r in self.conn.execute(
                "SELECT id, slug, name, status FROM projects WHERE parent_id = ? ORDER BY name",
                (project["id"],),
            )
        ]
        project["task_stats"] = self.task_stats(project["id"])
        return project

    def resolve_path(self, slug: str, org: str | None = None) -> dict | None:
        """Where a project lives under {org}/projects/, or None if unknown."""
        row = self._find(slug, org)
        if row is None:
            return None
        project = format_project(row)
        return {
            "org": project["org"],
            "slug": project["slug"],
            "parent_slug": project["parent_slug"],
            "full_path": project["full_path"],
        }

    def with_task_stats(self, status: str | None = None, sort_by: str = "activity", limit: int = 20) -> dict:
        """
        Projects with progress numbers for a dashboard.

        activity_score = recent activities + 2 * recent completions
                         + in_progress + 0.5 * blocked, over the last 7 days.
        """
        sql = _PROJECT_SELECT
        params: list = []
        if status:
            sql += " WHERE p.status = ?"
            params.append(status)
        projects = [format_project(r) for r in self.conn.execute(sql + _PROJECT_ORDER, params).fetchall()]

        start = today()
        tomorrow = (start + timedelta(days=1)).isoformat()
        week_end = (start + timedelta(days=8)).isoformat()
        week_ago = to_iso(datetime.combine(start - timedelta(days=7), time.min).astimezone())

        for project in projects:
            pid = project["id"]
            stats = self.task_stats(pid)
            recent_activity = self.conn.execute(
                """SELECT COUNT(*) FROM activities a JOIN items i ON i.id = a.item_id
                   WHERE i.project_id = ? AND i.deleted_at IS NULL AND a.created_at >= ?""",
                (pid, week_ago),
            ).fetchone()[0]
            recent_completions = self.conn.execute(
                """SELECT COUNT(*) FROM items WHERE project_id = ? AND deleted_at IS NULL
                   AND status = 'complete' AND completed_at >= ?""",
                (pid, week_ago),
            ).fetchone()[0]

            def _due(lo: str, hi: str) -> int:
                return self.conn.execute(
                    """SELECT COUNT(*) FROM items WHERE project_id = ? AND deleted_at IS NULL
                       AND status NOT IN (?, ?) AND due_date >= ? AND due_date < ?""",
                    (pid, *CLOSED_STATUSES, lo, hi),
                ).fetchone()[0]

            def _checkins(lo: str, hi: str) -> int:
                return self.conn.execute(
                    """SELECT COUNT(*) FROM check_ins c JOIN items i ON i.id = c.item_id
                       WHERE i.project_id = ? AND i.deleted_at IS NULL AND c.completed = 0
                       AND c.date >= ? AND c.date < ?""",
                    (pid, lo, hi),
                ).fetchone()[0]

            project.update(
                {
                    "task_stats": stats,
                    "recent_activity_count": recent_activity,
                    "recent_completions": recent_completions,
                    "due_today": _due(start.isoformat(), tomorrow),
                    "due_this_week": _due(tomorrow, week_end),
                    "checkins_today": _checkins(start.isoformat(), tomorrow),
                    "checkins_this_week": _checkins(tomorrow, week_end),
                    "activity_score": recent_activity
                    + recent_completions * 2
                    + stats["in_progress"]
                    + stats["blocked"] * 0.5,
                }
            )

        if sort_by == "activity":
            projects.sort(key=lambda p: p["activity_score"], reverse=True)
        elif sort_by == "name":
            projects.sort(key=lambda p: p["name"].lower())
        elif sort_by == "priority":
            projects.sort(key=lambda p: p["priority"] if p["priority"] is not None else 999)
        else:
            raise BadRequestError(f"Invalid sort_by '{sort_by}'. Expected one of: activity, name, priority")

        return {"projects": projects[:limit], "total": len(projects)}

    # =========================================================================
    # Writes
    # =========================================================================

    def create(self, data: dict) -> dict:
        slug = data.get("slug")
        if not slug or not SLUG_RE.match(slug):
            raise BadRequestError("Slug must be lowercase alphanumeric with hyphens")
        if not data.get("name"):
            raise BadRequestError("Name is required")
        if not data.get("org"):
            raise BadRequestError("Organization is required")
        org_id = self._org_id(data["org"])

        now = now_iso()
        try:
            cursor = self.conn.execute(
                """INSERT INTO projects (slug, name, org_id, status, priority, parent_id, description,
                                         created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    slug,
                    data["name"],
                    org_id,
                    validate_choice(data.get("status") or None, ProjectStatus, "status"),
                    validate_priority(data.get("priority")),
                    data.get("parent_id"),
                    data.get("description") or None,
                    now,
                    now,
                ),
            )
        except sqlite3.IntegrityError as e:
            raise BadRequestError(f"Cannot create project {data['org']}/{slug}: {e}") from None
        logger.info("Created project %s/%s", data["org"], slug)
        return self._by_id(cursor.lastrowid)

    def update(self, project_id: int, data: dict) -> dict:
        self._by_id(project_id)
        fields = {k: data[k] for k in ("slug", "name", "status", "priority", "description", "parent_id") if k in data}
        if "org" in data:
            fields["org_id"] = self._org_id(data["org"])
        if "slug" in fields and not SLUG_RE.match(fields["slug"] or ""):
            raise BadRequestError("Slug must be lowercase alphanumeric with hyphens")
        if "status" in fields:
            fields["status"] = validate_choice(fields["status"], ProjectStatus, "status")
        if "priority" in fields:
            fields["priority"] = validate_priority(fields["priority"])
        if fields.get("parent_id") == project_id:
            raise BadRequestError("A project cannot be its own parent")
        if fields:
            fields["updated_at"] = now_iso()
            assignments = ", ".join(f"{k} = ?" for k in fields)
            self.conn.execute(
                f"UPDATE projects SET {assignments} WHERE id = ?",  # nosec B608
                [*fields.values(), project_id],
            )
        return self._by_id(project_id)

    def delete(self, project_id: int, on_items: str = "fail", on_children: str = "fail") -> dict:
        """
        Delete a project.

        on_items / on_children:
            fail     refuse while live items / child projects exist
            orphan   move them to this project's parent (or unset)
            cascade  soft-delete the items / delete every descendant project
        """
        for name, policy in (("on_items", on_items), ("on_children", on_children)):
            if policy not in DELETE_POLICIES:
                raise BadRequestError(f"Invalid {name} '{policy}'. Expected one of: {', '.join(DELETE_POLICIES)}")

        project = self._by_id(project_id)
        parent_id = project["parent_id"]
        item_count = self.conn.execute(
            "SELECT COUNT(*) FROM items WHERE project_id = ? AND deleted_at IS NULL", (project_id,)
        ).fetchone()[0]
        child_count = project["child_count"]

        if item_count and on_items == "fail":
            raise PreconditionFailedError(
                f"Cannot delete project with {item_count} items. Use --cascade-items or --orphan-items"
            )
        if child_count and on_children == "fail":
            raise PreconditionFailedError(
                f"Cannot delete project with {child_count} child projects. "
                "Use --cascade-children or --orphan-children"
            )

        now = now_iso()
        if item_count and on_items == "orphan":
            self.conn.execute(
                "UPDATE items SET project_id = ?, updated_at = ? WHERE project_id = ? AND deleted_at IS NULL",
                (parent_id, now, project_id),
            )

        doomed = [project_id]
        if child_count and on_children == "orphan":
            self.conn.execute("UPDATE projects SET parent_id = ? WHERE parent_id = ?", (parent_id, project_id))
        elif child_count and on_children == "cascade":
            doomed.extend(self._descendant_ids(project_id))

        marks = safe_sql.in_placeholders(len(doomed))
        self.conn.execute(
            f"UPDATE items SET deleted_at = ?, updated_at = ? WHERE project_id IN ({marks}) AND deleted_at IS NULL",  # nosec B608
            [now, now, *doomed],
        )
        self.conn.execute(f"UPDATE items SET project_id = NULL WHERE project_id IN ({marks})", doomed)  # nosec B608
        self.conn.execute(f"DELETE FROM meeting_projects WHERE project_id IN ({marks})", doomed)  # nosec B608
        for pid in reversed(doomed):
            self.conn.execute("DELETE FROM projects WHERE id = ?", (pid,))

        logger.info("Deleted project %s/%s", project["org"], project["slug"])
        return {
            "deleted": True,
            "slug": project["slug"],
            "org": project["org"],
            "items_affected": item_count,
            "children_affected": child_count,
        }
