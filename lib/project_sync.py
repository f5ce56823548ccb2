"""
Project directory scan -> projects table.

A project is either a folder under {org}/projects/ holding a README.md, or a
standalone {org}/projects/*.md file. Markdown files inside a project folder
whose frontmatter says `type: sub-project` become child projects.
"""

import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path

import yaml

from lib import config, paths
from lib.markdown_io import first_heading, parse_markdown
from lib.models import ProjectStatus
from lib.time_utils import now_iso

logger = logging.getLogger(__name__)

_STATUS_ALIASES = {
    "maintenance": "active",
    "done": "completed",
    "inactive": "paused",
}

_SUBPROJECT_EXCLUDE = ("README.md", "next-steps.md")


@dataclass
class ProjectInfo:
    slug: str
    name: str
    org: str
    status: str | None
    priority: int | None
    is_sub_project: bool = False
    parent_slug: str | None = None


def normalize_status(status) -> str | None:
    """Map frontmatter status onto a ProjectStatus value, or None."""
    if not status:
        return None
    value = str(status).strip().lower()
    value = _STATUS_ALIASES.get(value, value)
    try:
        return ProjectStatus(value).value
    except ValueError:
        return None


def normalize_priority(priority) -> int | None:
    if isinstance(priority, bool) or not isinstance(priority, int):
        return None
    return priority if 1 <= priority <= 4 else None


def extract_project_name(metadata: dict, body: str, fallback_slug: str) -> str:
    if metadata.get("title"):
        return str(metadata["title"])
    heading = first_heading(body)
    if heading:
        return heading
    return fallback_slug.replace("-", " ").title()


def _project_from_file(path: Path, org: str, slug: str, **extra) -> ProjectInfo:
    metadata, body = parse_markdown(path.read_text(encoding="utf-8"))
    return ProjectInfo(
        slug=slug,
        name=extract_project_name(metadata, body, slug),
        org=org,
        status=normalize_status(metadata.get("status")),
        priority=normalize_priority(metadata.get("priority")),
        **extra,
    )


def _scan_sub_projects(project_dir: Path, org: str) -> list[ProjectInfo]:
    found = []
    for entry in sorted(project_dir.glob("*.md")):
        if entry.name in _SUBPROJECT_EXCLUDE:
            continue
        try:
            metadata, _ = parse_markdown(entry.read_text(encoding="utf-8"))
            if metadata.get("type") != "sub-project":
                continue
            found.append(
                _project_from_file(
                    entry, org, entry.stem, is_sub_project=True, parent_slug=project_dir.name
                )
            )
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.warning("Skipping unreadable sub-project %s: %s", entry, e)
    return found


def scan_projects(orgs: list[str] | None = None) -> list[ProjectInfo]:
    """Walk each org's projects/ folder and describe every project found."""
    root = paths.knowledge_base_path()
    projects: list[ProjectInfo] = []

    for org in orgs or config.configured_orgs():
        projects_dir = root / org / "projects"
        if not projects_dir.is_dir():
            continue

        for entry in sorted(projects_dir.iterdir()):
            try:
                if entry.is_dir():
                    readme = entry / "README.md"
                    if not readme.is_file():
                        continue
                    projects.append(_project_from_file(readme, org, entry.name))
                    projects.extend(_scan_sub_projects(entry, org))
                elif entry.suffix == ".md" and "research-prompt" not in entry.name:
                    projects.append(_project_from_file(entry, org, entry.stem))
            except (OSError, ValueError, yaml.YAMLError) as e:
                logger.warning("Skipping unreadable project %s: %s", entry, e)

    return projects


# ============================================================
# DB upsert
# ============================================================


def _ensure_org(conn: sqlite3.Connection, slug: str, cache: dict[str, int]) -> int:
    if slug in cache:
        return cache[slug]
    row = conn.execute("SELECT id FROM organizations WHERE slug = ?", (slug,)).fetchone()
    if row:
        cache[slug] = row["id"]
    else:
        now = now_iso()
        cursor = conn.execute(
            "INSERT INTO organizations (slug, name, created_at, updated_at) VALUES (?, ?, ?, ?)",
            (slug, slug.replace("-", " ").title(), now, now),
        )
        cache[slug] = cursor.lastrowid
        logger.info("Created organization %s", slug)
    return cache[slug]


def _find(conn: sqlite3.Connection, slug: str, org_id: int) -> sqlite3.Row | None:
    return conn.execute(
        "SELECT id, name, status, priority, parent_id FROM projects WHERE slug = ? AND org_id = ?",
        (slug, org_id),
    ).fetchone()


def sync_projects(conn: sqlite3.Connection, orgs: list[str] | None = None) -> dict:
    """
    Upsert scanned projects. Parents first, then sub-projects with parent_id.

    Returns {projects_found, projects_created, projects_updated, errors}.
    """
    projects = scan_projects(orgs)
    result = {
        "projects_found": len(projects),
        "projects_created": 0,
        "projects_updated": 0,
        "errors": [],
    }
    org_ids: dict[str, int] = {}

    for project in [p for p in projects if not p.is_sub_project]:
        try:
            org_id = _ensure_org(conn, project.org, org_ids)
            existing = _find(conn, project.slug, org_id)
            now = now_iso()
            if existing is None:
                conn.execute(
                    """INSERT INTO projects (slug, name, org_id, status, priority, created_at, updated_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?)""",
                    (project.slug, project.name, org_id, project.status, project.priority, now, now),
                )
                result["projects_created"] += 1
                logger.info("Created project %s/%s", project.org, project.slug)
            elif (existing["name"], existing["status"], existing["priority"]) != (
                project.name,
                project.status,
                project.priority,
            ):
                conn.execute(
                    "UPDATE projects SET name = ?, status = ?, priority = ?, updated_at = ? WHERE id = ?",
                    (project.name, project.status, project.priority, now, existing["id"]),
                )
                result["projects_updated"] += 1
                logger.info("Updated project %s/%s", project.org, project.slug)
        except sqlite3.Error as e:
            logger.warning("Failed to sync project %s: %s", project.slug, e)
            result["errors"].append(f"Failed to sync project {project.slug}: {e}")

    for project in [p for p in projects if p.is_sub_project]:
        try:
            org_id = _ensure_org(conn, project.org, org_ids)
            parent = _find(conn, project.parent_slug, org_id) if project.parent_slug else None
            parent_id = parent["id"] if parent else None
            existing = _find(conn, project.slug, org_id)
            now = now_iso()
            if existing is None:
                conn.execute(
                    """INSERT INTO projects
                       (slug, name, org_id, status, priority, parent_id, created_at, updated_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                    (project.slug, project.name, org_id, project.status, project.priority, parent_id, now, now),
                )
                result["projects_created"] += 1
                logger.info("Created sub-project %s/%s", project.org, project.slug)
            elif (existing["name"], existing["status"], existing["priority"], existing["parent_id"]) != (
                project.name,
                project.status,
                project.priority,
                parent_id,
            ):
                conn.execute(
                    """UPDATE projects SET name = ?, status = ?, priority = ?, parent_id = ?,
                       updated_at = ? WHERE id = ?""",
                    (project.name, project.status, project.priority, parent_id, now, existing["id"]),
                )
                result["projects_updated"] += 1
        except sqlite3.Error as e:
            logger.warning("Failed to sync sub-project %s: %s", project.slug, e)
            result["errors"].append(f"Failed to sync sub-project {project.slug}: {e}")

    return result
