"""
Write item status back to the markdown it was imported from.

Meeting actions get their Status cell rewritten; README checkboxes are
ticked or cleared; emoji status lines and sub-project rows get a new emoji.
"""

import logging
import re
import sqlite3

from lib import paths
from lib.status_constants import STATUS_TO_ACTION_STATUS, STATUS_TO_EMOJI

logger = logging.getLogger(__name__)

_CHECKBOX_RE = re.compile(r"^([-*]\s*)\[([ xX])\](\s*.+)$")
_EMOJI_LINE_RE = re.compile(r"^([-*]\s*)(✅|🟢|🟡|🔴|🔵|⏳|❌)(\s*.+)$")
_TABLE_EMOJI_RE = re.compile(r"^(\|\s*)(✅|🟢|🟡|🔴|🔵|⏳|❌)(\s*\|.+)$")
_TABLE_SEPARATOR_RE = re.compile(r"^\|[-\s|:]+\|$")

_CHECKED_STATUSES = ("complete", "completed", "cancelled")
_NO_SYNC_TYPES = ("readme", "next_steps")

TITLE_MATCH_CHARS = 30


def _result(success: bool, item, message: str, **extra) -> dict:
    out = {
        "success": success,
        "source_type": item["source_type"] if item else None,
        "source_path": item["source_path"] if item else None,
        "message": message,
        "changes": [],
    }
    out.update(extra)
    return out


def _skipped(item, message: str) -> dict:
    return _result(True, item, message, skipped=True, reason="no_sync_needed")


def sync_task_to_source(conn: sqlite3.Connection, item_id: int) -> dict:
    """
    Reflect the item's current status in its source file.

    Never raises for file problems: failures come back as success=False.
    """
    item = conn.execute(
        """SELECT id, title, status, source_type, source_path, source_line, source_meeting_id
           FROM items WHERE id = ?""",
        (item_id,),
    ).fetchone()
    if item is None:
        return _result(False, None, f"Task {item_id} not found")

    if item["source_meeting_id"]:
        return _sync_to_meeting(conn, item)
    if item["source_path"] and item["source_type"]:
        return _sync_to_source_file(item)
    return _skipped(item, "No source file to sync (task created directly)")


# ============================================================
# Meeting action tables
# ============================================================


def _sync_to_meeting(conn: sqlite3.Connection, item) -> dict:
    meeting = conn.execute(
        "SELECT path FROM meetings WHERE id = ?", (item["source_meeting_id"],)
    ).fetchone()
    if meeting is None or not meeting["path"]:
        return _result(
            False,
            item,
            f"Meeting {item['source_meeting_id']} not found or has no file path",
            source_type="meeting",
        )

    path = paths.resolve_kb_path(meeting["path"])
    try:
        lines = path.read_text(encoding="utf-8").split("\n")
    except (OSError, ValueError) as e:
        logger.warning("Cannot read meeting file %s: %s", path, e)
        return _result(False, item, f"Failed to update meeting file: {e}", source_type="meeting", source_path=meeting["path"])

    action_status = STATUS_TO_ACTION_STATUS.get(item["status"], item["status"])
    needle = item["title"].lower().strip()[:TITLE_MATCH_CHARS]
    changes = []
    in_table = False

    for i, line in enumerate(lines):
        if "| Owner |" in line and "| Action |" in line and "| Status |" in line:
            in_table = True
            continue
        if not in_table:
            continue
        if _TABLE_SEPARATOR_RE.match(line):
            continue
        if not line.startswith("|") or not line.strip():
            in_table = False
            continue
        cells = [c.strip() for c in line.rstrip().split("|")][1:]
        if cells and cells[-1] == "":
            cells = cells[:-1]
        # Owner | Action | Due | Status | Project
        if len(cells) < 4 or needle not in cells[1].lower():
            continue
        if cells[3] != action_status:
            changes.append(f'Line {i + 1}: "{cells[3]}" -> "{action_status}"')
            cells[3] = action_status
            lines[i] = "| " + " | ".join(cells) + " |"

    if not changes:
        return _result(
            True,
            item,
            "No matching action found in meeting file",
            source_type="meeting",
            source_path=meeting["path"],
        )

    try:
        path.write_text("\n".join(lines), encoding="utf-8")
    except OSError as e:
        logger.warning("Cannot write meeting file %s: %s", path, e)
        return _result(False, item, f"Failed to update meeting file: {e}", source_type="meeting", source_path=meeting["path"])
    logger.info("Synced T-%d status to %s", item["id"], meeting["path"])
    return _result(
        True, item, "Updated meeting action status", source_type="meeting", source_path=meeting["path"], changes=changes
    )


# ============================================================
# README lines
# ============================================================


def _valid_line(item, lines: list[str]) -> int | None:
    line_no = item["source_line"]
    if line_no and 0 < line_no <= len(lines):
        return line_no - 1
    return None


def _set_checkbox(lines: list[str], index: int, mark: str) -> str | None:
    match = _CHECKBOX_RE.match(lines[index])
    if not match:
        return None
    prefix, old, rest = match.groups()
    if old.lower() == mark:
        return None
    lines[index] = f"{prefix}[{mark}]{rest}"
    return f"Line {index + 1}: [{old}] -> [{mark}]"


def _set_emoji(lines: list[str], index: int, pattern: re.Pattern, emoji: str) -> str | None:
    match = pattern.match(lines[index])
    if not match:
        return None
    prefix, old, rest = match.groups()
    if old == emoji:
        return None
    lines[index] = f"{prefix}{emoji}{rest}"
    return f"Line {index + 1}: {old} -> {emoji}"


def _sync_to_source_file(item) -> dict:
    source_type = item["source_type"]
    if source_type in _NO_SYNC_TYPES:
        return _skipped(item, "README task reference, status tracked in the database")
    if source_type not in ("checkbox", "status_emoji", "sub_project"):
        return _skipped(item, f'Source type "{source_type}" does not require sync-back')

    path = paths.resolve_kb_path(item["source_path"])
    try:
        lines = path.read_text(encoding="utf-8").split("\n")
    except (OSError, ValueError) as e:
        logger.warning("Cannot read source file %s: %s", path, e)
        return _result(False, item, f"Failed to update source file: {e}")

    index = _valid_line(item, lines)
    changes = []

    if source_type == "checkbox":
        mark = "x" if item["status"] in _CHECKED_STATUSES else " "
        change = None
        if index is not None and _CHECKBOX_RE.match(lines[index]):
            change = _set_checkbox(lines, index, mark)
        else:
            needle = item["title"].lower()[:TITLE_MATCH_CHARS]
            for i, line in enumerate(lines):
                if needle in line.lower() and _CHECKBOX_RE.match(line):
                    change = _set_checkbox(lines, i, mark)
                    if change:
                        break
        if change:
            changes.append(change)
    elif index is not None:
        emoji = STATUS_TO_EMOJI.get(item["status"], "🟡")
        pattern = _EMOJI_LINE_RE if source_type == "status_emoji" else _TABLE_EMOJI_RE
        change = _set_emoji(lines, index, pattern, emoji)
        if change:
            changes.append(change)

    if not changes:
        return _result(True, item, "No changes needed (status already matches or line not found)")

    try:
        path.write_text("\n".join(lines), encoding="utf-8")
    except OSError as e:
        logger.warning("Cannot write source file %s: %s", path, e)
        return _result(False, item, f"Failed to update source file: {e}")
    logger.info("Synced T-%d status to %s", item["id"], item["source_path"])
    return _result(True, item, "Updated source file", changes=changes)
