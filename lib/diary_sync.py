"""
Daily diary notes.

Entries live at diary/YYYY/MM/DD-Dow.md. Task and routine events are appended
to the entry's "## Task Activity" section.
"""

import logging
from datetime import datetime
from pathlib import Path

from lib import paths

logger = logging.getLogger(__name__)

TASK_ACTIVITY_HEADER = "## Task Activity"

ACTION_VERBS = {
    "completed": "Completed",
    "started": "Started",
    "blocked": "Blocked",
    "deferred": "Deferred",
    "cancelled": "Cancelled",
}

_AUTO_COMMENT = "<!-- AUTO-GENERATED: Task status changes from the task system -->"


def ordinal_suffix(day: int) -> str:
    if 11 <= day <= 13:
        return "th"
    return {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")


def diary_path(when: datetime) -> Path:
    return paths.diary_dir() / f"{when:%Y}" / f"{when:%m}" / f"{when:%d}-{when:%a}.md"


def render_template(when: datetime) -> str:
    return (
        f"# {when:%a} {when.day}{ordinal_suffix(when.day)} {when:%B} {when.year}\n"
        "\n"
        "## Summary\n"
        "\n"
        "<!-- Brief summary of the day -->\n"
        "\n"
        "## Work Log\n"
        "\n"
        "<!-- Key activities, decisions, progress -->\n"
        "\n"
        "## Meetings\n"
        "\n"
        "<!-- Links to meeting notes -->\n"
        "\n"
        f"{TASK_ACTIVITY_HEADER}\n"
        "\n"
        f"{_AUTO_COMMENT}\n"
    )


def ensure_diary_entry(when: datetime | None = None) -> Path:
    """Create the day's entry from the template if it does not exist."""
    when = when or datetime.now()
    path = diary_path(when)
    if not path.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(render_template(when), encoding="utf-8")
        logger.info("Created diary entry %s", path)
    return path


def _append_activity(path: Path, line: str) -> None:
    content = path.read_text(encoding="utf-8")
    index = content.find(TASK_ACTIVITY_HEADER)

    if index == -1:
        content = f"{content.rstrip()}\n\n{TASK_ACTIVITY_HEADER}\n\n{_AUTO_COMMENT}\n{line}\n"
    else:
        after = index + len(TASK_ACTIVITY_HEADER)
        next_section = content.find("\n## ", after)
        if next_section == -1:
            content = f"{content.rstrip()}\n{line}\n"
        else:
            head = content[:next_section]
            if not head.endswith("\n"):
                head += "\n"
            content = f"{head}{line}\n{content[next_section:]}"

    path.write_text(content, encoding="utf-8")


def log_task_activity(item: dict, action: str, when: datetime | None = None) -> dict:
    """
    Append `- HH:MM — Verb T-id: "title" (project)` to the day's entry.

    *item* needs id and title; project_name is optional.
    """
    when = when or datetime.now()
    path = ensure_diary_entry(when)
    verb = ACTION_VERBS.get(action, action.capitalize())
    line = f'- {when:%H:%M} — {verb} T-{item["id"]}: "{item["title"]}"'
    if item.get("project_name"):
        line += f" ({item['project_name']})"
    _append_activity(path, line)
    return {
        "success": True,
        "diary_path": paths.relative_kb_path(path),
        "message": f"Logged {action} for T-{item['id']} to diary",
    }


def log_routine_completion(title: str, when: datetime | None = None) -> dict:
    when = when or datetime.now()
    path = ensure_diary_entry(when)
    _append_activity(path, f'- {when:%H:%M} — Routine: "{title}"')
    return {"success": True, "diary_path": paths.relative_kb_path(path)}
