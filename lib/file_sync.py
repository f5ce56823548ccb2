"""
Workstream file <-> Item synchronization.

Workstreams live as markdown files beside a project's README:

    {org}/projects/{project}/{workstream}.md   (frontmatter type: workstream)

Each file mirrors one items row (item_type='workstream'). The row stores the
file's content hash and the time of the last sync, which lets both sides
detect edits made since then. When both sides changed, nothing is written
and the pair is reported as a conflict.
"""

import logging
import sqlite3
from pathlib import Path

import yaml

from lib import config, paths
from lib.hash_utils import compute_hash, detect_conflict
from lib.markdown_io import parse_markdown, render_markdown
from lib.status_constants import map_db_status_to_file, map_workstream_status
from lib.time_utils import now_iso

logger = logging.getLogger(__name__)

WORKSTREAM_TYPES = ("workstream", "sub-project")


# ============================================================
# Scanning
# ============================================================


def _read_workstream(path: Path, project_slug: str | None = None) -> dict | None:
    """Parse one candidate file. Returns None if it is not a workstream."""
    content = path.read_text(encoding="utf-8")
    metadata, _body = parse_markdown(content)
    if metadata.get("type") not in WORKSTREAM_TYPES:
        return None

    rel = paths.relative_kb_path(path)
    parts = rel.split("/")
    org = parts[0]
    if project_slug is None:
        project_slug = parts[2] if len(parts) > 3 else path.parent.name

    priority = metadata.get("priority")
    return {
        "file_path": rel,
        "absolute_path": path,
        "frontmatter": metadata,
        "title": str(metadata.get("title") or path.stem),
        "status": map_workstream_status(metadata.get("status")),
        "priority": priority if isinstance(priority, int) and not isinstance(priority, bool) else None,
        "content": content,
        "content_hash": compute_hash(content),
        "parent_project_slug": metadata.get("parent") or project_slug,
        "org": org,
    }


def find_workstream_files(orgs: list[str] | None = None) -> list[dict]:
    """Scan {org}/projects/*/ for workstream files."""
    root = paths.knowledge_base_path()
    found = []
    for org in orgs or config.configured_orgs():
        projects_dir = root / org / "projects"
        if not projects_dir.is_dir():
            continue
        for project_dir in sorted(projects_dir.iterdir()):
            if not project_dir.is_dir():
                continue
            for entry in sorted(project_dir.glob("*.md")):
                if entry.name == "README.md" or not entry.is_file():
                    continue
                try:
                    workstream = _read_workstream(entry, project_dir.name)
                except (OSError, ValueError, yaml.YAMLError) as e:
                    logger.warning("Error parsing %s: %s", entry, e)
                    continue
                if workstream:
                    found.append(workstream)
    return found


def scan_workstream_file(file_path: str) -> dict | None:
    """Read a single workstream by KB-relative or absolute path."""
    path = Path(file_path)
    if not path.is_absolute():
        path = paths.resolve_kb_path(file_path)
    if not path.is_file():
        return None
    try:
        return _read_workstream(path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        logger.warning("Error parsing %s: %s", path, e)
        return None


# ============================================================
# File -> DB
# ============================================================


def _find_parent_project(conn: sqlite3.Connection, slug: str, org: str) -> sqlite3.Row | None:
    row = conn.execute(
        """SELECT p.* FROM projects p JOIN organizations o ON o.id = p.org_id
           WHERE p.slug = ? AND o.slug = ?""",
        (slug, org),
    ).fetchone()
    if row:
        return row
    return conn.execute(
        "SELECT * FROM projects WHERE slug = ? ORDER BY id LIMIT 1", (slug,)
    ).fetchone()


def _write_item_from_file(conn, item_id: int | None, workstream: dict, project_id: int) -> int:
    now = now_iso()
    if item_id is None:
        cursor = conn.execute(
            """INSERT INTO items
               (title, item_type, status, priority, project_id, file_path, file_hash,
                last_synced_at, source_type, source_path, created_at, updated_at)
               VALUES (?, 'workstream', ?, ?, ?, ?, ?, ?, 'file', ?, ?, ?)""",
            (
                workstream["title"],
                workstream["status"],
                workstream["priority"],
                project_id,
                workstream["file_path"],
                workstream["content_hash"],
                now,
                workstream["file_path"],
                now,
                now,
            ),
        )
        return cursor.lastrowid

    conn.execute(
        """UPDATE items SET title = ?, status = ?, priority = ?, file_hash = ?,
           last_synced_at = ?, updated_at = ? WHERE id = ?""",
        (
            workstream["title"],
            workstream["status"],
            workstream["priority"],
            workstream["content_hash"],
            now,
            now,
            item_id,
        ),
    )
    return item_id


def sync_workstream_to_db(conn: sqlite3.Connection, workstream: dict) -> dict:
    """
    Reconcile one parsed workstream with its items row.

    Returns {"action": created|updated|skipped|conflict, "item_id": ..., ...}.
    """
    project = _find_parent_project(conn, workstream["parent_project_slug"], workstream["org"])
    if project is None:
        return {
            "action": "skipped",
            "error": f"Parent project not found: {workstream['parent_project_slug']}",
        }

    existing = conn.execute(
        "SELECT * FROM items WHERE file_path = ? ORDER BY id LIMIT 1",
        (workstream["file_path"],),
    ).fetchone()

    if existing is None:
        item_id = _write_item_from_file(conn, None, workstream, project["id"])
        logger.info("Created workstream T-%d from %s", item_id, workstream["file_path"])
        return {"action": "created", "item_id": item_id}

    conflict = detect_conflict(
        existing["file_hash"],
        workstream["content_hash"],
        existing["updated_at"],
        existing["last_synced_at"],
    )
    if conflict["has_conflict"]:
        logger.info("Conflict on %s (T-%d)", workstream["file_path"], existing["id"])
        return {"action": "conflict", "item_id": existing["id"], "conflict": conflict}

    if conflict["file_changed"]:
        _write_item_from_file(conn, existing["id"], workstream, project["id"])
        logger.info("Updated workstream T-%d from %s", existing["id"], workstream["file_path"])
        return {"action": "updated", "item_id": existing["id"]}

    return {"action": "skipped", "item_id": existing["id"]}


def sync_workstream_file_to_db(conn: sqlite3.Connection, file_path: str) -> dict:
    workstream = scan_workstream_file(file_path)
    if workstream is None:
        return {"action": "skipped", "error": f"Not a workstream file: {file_path}"}
    return sync_workstream_to_db(conn, workstream)


def sync_filesystem_to_db(conn: sqlite3.Connection, orgs: list[str] | None = None) -> dict:
    """Sync every workstream file into the DB. Per-file failures are collected."""
    result = {
        "synced": 0,
        "created": 0,
        "updated": 0,
        "skipped": 0,
        "conflicts": [],
        "errors": [],
    }

    for workstream in find_workstream_files(orgs):
        try:
            outcome = sync_workstream_to_db(conn, workstream)
        except sqlite3.Error as e:
            logger.warning("Failed to sync %s: %s", workstream["file_path"], e)
            result["errors"].append({"path": workstream["file_path"], "error": str(e)})
            continue

        action = outcome["action"]
        if action in ("created", "updated"):
            result[action] += 1
            result["synced"] += 1
        elif action == "skipped":
            result["skipped"] += 1
            if outcome.get("error"):
                result["errors"].append({"path": workstream["file_path"], "error": outcome["error"]})
        elif action == "conflict":
            result["conflicts"].append(
                {
                    "file_path": workstream["file_path"],
                    "item_id": outcome["item_id"],
                    "reason": "Both file and database modified since last sync",
                    "file_hash": workstream["content_hash"],
                }
            )

    return result


def force_file_sync_to_db(conn: sqlite3.Connection, file_path: str) -> dict:
    """Overwrite the DB row from the file, ignoring DB-side edits."""
    workstream = scan_workstream_file(file_path)
    if workstream is None:
        return {"success": False, "error": "Invalid workstream file"}

    project = _find_parent_project(conn, workstream["parent_project_slug"], workstream["org"])
    if project is None:
        return {
            "success": False,
            "error": f"Parent project not found: {workstream['parent_project_slug']}",
        }

    existing = conn.execute(
        "SELECT id FROM items WHERE file_path = ? ORDER BY id LIMIT 1",
        (workstream["file_path"],),
    ).fetchone()
    item_id = _write_item_from_file(conn, existing["id"] if existing else None, workstream, project["id"])
    return {"success": True, "item_id": item_id}


# ============================================================
# DB -> File
# ============================================================


def _write_file_from_item(conn: sqlite3.Connection, item: sqlite3.Row, path: Path, body: str, metadata: dict) -> None:
    metadata = dict(metadata)
    metadata["title"] = item["title"]
    metadata["status"] = map_db_status_to_file(item["status"])
    if item["priority"]:
        metadata["priority"] = item["priority"]
    else:
        metadata.pop("priority", None)

    text = render_markdown(metadata, body)
    path.write_text(text, encoding="utf-8")

    now = now_iso()
    conn.execute(
        "UPDATE items SET file_hash = ?, last_synced_at = ?, updated_at = ? WHERE id = ?",
        (compute_hash(text), now, now, item["id"]),
    )


def sync_item_to_file(conn: sqlite3.Connection, item_id: int) -> dict:
    """
    Push an item's title/status/priority into its workstream file.

    Refuses when the file changed since the last sync; resolve the conflict
    first with force_file_sync_to_db or force_db_sync_to_file.
    """
    item = conn.execute("SELECT * FROM items WHERE id = ?", (item_id,)).fetchone()
    if item is None:
        return {"success": False, "file_path": "", "error": f"Item not found: {item_id}"}
    if item["item_type"] != "workstream":
        return {"success": False, "file_path": "", "error": f"Item is not a workstream: {item['item_type']}"}
    if not item["file_path"]:
        return {"success": False, "file_path": "", "error": "Item has no file_path", "reason": "no_file"}

    path = paths.resolve_kb_path(item["file_path"])
    if not path.is_file():
        return {
            "success": False,
            "file_path": item["file_path"],
            "error": "File not found on disk",
            "reason": "no_file",
        }

    try:
        content = path.read_text(encoding="utf-8")
        metadata, body = parse_markdown(content)
    except (OSError, ValueError, yaml.YAMLError) as e:
        logger.warning("Cannot read %s: %s", item["file_path"], e)
        return {"success": False, "file_path": item["file_path"], "error": f"Error reading file: {e}"}

    conflict = detect_conflict(item["file_hash"], compute_hash(content), item["updated_at"], item["last_synced_at"])
    if conflict["file_changed"]:
        return {
            "success": False,
            "file_path": item["file_path"],
            "error": "File has been modified since last sync - resolve conflict first",
            "reason": "conflict",
            "had_conflict": True,
        }

    _write_file_from_item(conn, item, path, body, metadata)
    logger.info("Wrote T-%d to %s", item_id, item["file_path"])
    return {"success": True, "file_path": item["file_path"]}


def force_db_sync_to_file(conn: sqlite3.Connection, item_id: int) -> dict:
    """Overwrite the file's frontmatter from the DB row, ignoring file edits."""
    item = conn.execute("SELECT * FROM items WHERE id = ?", (item_id,)).fetchone()
    if item is None or not item["file_path"]:
        return {"success": False, "file_path": "", "error": "Item not found or has no file path"}

    path = paths.resolve_kb_path(item["file_path"])
    if not path.is_file():
        return {"success": False, "file_path": item["file_path"], "error": "File not found on disk"}

    try:
        metadata, body = parse_markdown(path.read_text(encoding="utf-8"))
    except (OSError, ValueError, yaml.YAMLError) as e:
        logger.warning("Cannot read %s: %s", item["file_path"], e)
        return {"success": False, "file_path": item["file_path"], "error": f"Error reading file: {e}"}

    _write_file_from_item(conn, item, path, body, metadata)
    return {"success": True, "file_path": item["file_path"]}


# ============================================================
# Conflicts
# ============================================================


def detect_all_conflicts(conn: sqlite3.Connection) -> list[dict]:
    """Workstream rows whose file and row both changed, or whose file is gone."""
    conflicts = []
    rows = conn.execute(
        """SELECT * FROM items WHERE item_type = 'workstream'
           AND file_path IS NOT NULL AND deleted_at IS NULL ORDER BY id"""
    ).fetchall()

    for item in rows:
        path = paths.resolve_kb_path(item["file_path"])
        if not path.is_file():
            conflicts.append(
                {
                    "file_path": item["file_path"],
                    "item_id": item["id"],
                    "reason": "file_missing",
                    "file_hash": "",
                    "db_hash": item["file_hash"],
                }
            )
            continue
        try:
            current = compute_hash(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            conflicts.append(
                {
                    "file_path": item["file_path"],
                    "item_id": item["id"],
                    "reason": f"Error reading file: {e}",
                    "file_hash": "",
                    "db_hash": item["file_hash"],
                }
            )
            continue

        conflict = detect_conflict(item["file_hash"], current, item["updated_at"], item["last_synced_at"])
        if conflict["has_conflict"]:
            conflicts.append(
                {
                    "file_path": item["file_path"],
                    "item_id": item["id"],
                    "reason": "Both file and database modified since last sync",
                    "file_hash": current,
                    "db_hash": item["file_hash"],
                }
            )

    return conflicts
