"""
Meeting note parsing.

Meeting notes live at {org}/meetings/YYYY/MM/*.md. Their frontmatter names
the attendees and projects; an "## Actions" table lists follow-ups:

    | Owner | Action | Due | Status | Project |
    |-------|--------|-----|--------|---------|
    | Sam   | Send the revised quote | 14 Jan | Pending | pricing |
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path

import yaml

from lib import config, paths
from lib.markdown_io import parse_markdown

logger = logging.getLogger(__name__)

MONTHS = {
    "jan": 1, "january": 1, "feb": 2, "february": 2, "mar": 3, "march": 3,
    "apr": 4, "april": 4, "may": 5, "jun": 6, "june": 6,
    "jul": 7, "july": 7, "aug": 8, "august": 8, "sep": 9, "september": 9,
    "oct": 10, "october": 10, "nov": 11, "november": 11, "dec": 12, "december": 12,
}  # fmt: skip

_ISO_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_DAY_MONTH_RE = re.compile(r"^(\d{1,2})\s+(\w+)(?:\s+(\d{4}))?$")
_MONTH_DAY_RE = re.compile(r"^(\w+)\s+(\d{1,2})(?:,?\s+(\d{4}))?$")
_H2_RE = re.compile(r"^## (.+)$")


@dataclass
class ParsedAction:
    owner: str
    action: str
    status: str = "Pending"
    due: str | None = None
    project: str | None = None


@dataclass
class ParsedMeeting:
    path: str
    title: str
    date: str
    attendees: list[str] = field(default_factory=list)
    projects: list[str] = field(default_factory=list)
    primary_project: str | None = None
    status: str = "completed"
    location: str | None = None
    actions: list[ParsedAction] = field(default_factory=list)


# ============================================================
# Helpers
# ============================================================


def map_action_status(status: str | None) -> str:
    """Action table Status cell -> items.status."""
    lower = (status or "").strip().lower()
    if lower in ("done", "complete", "completed"):
        return "complete"
    if lower in ("cancelled", "canceled"):
        return "cancelled"
    if lower in ("in progress", "in-progress", "active"):
        return "in_progress"
    if lower == "blocked":
        return "blocked"
    if lower == "deferred":
        return "deferred"
    return "pending"


def parse_due_date(text: str | None, ref_year: int | None = None) -> str | None:
    """
    Parse an action's Due cell to YYYY-MM-DD.

    Accepts 2026-01-14, "14 Jan", "14 January 2026", "Jan 14" and
    "January 14, 2026". A missing year falls back to *ref_year*.
    """
    if not text or not text.strip():
        return None
    value = text.strip()
    if _ISO_RE.match(value):
        return value

    year_default = ref_year or date.today().year
    for pattern, day_group, month_group in ((_DAY_MONTH_RE, 1, 2), (_MONTH_DAY_RE, 2, 1)):
        match = pattern.match(value)
        if not match:
            continue
        month = MONTHS.get(match.group(month_group).lower())
        if month is None:
            continue
        year = int(match.group(3)) if match.group(3) else year_default
        try:
            return date(year, month, int(match.group(day_group))).isoformat()
        except ValueError:
            return None
    return None


def extract_sections(body: str) -> dict[str, str]:
    """Map each `## ` heading to the text beneath it."""
    sections: dict[str, str] = {}
    current = None
    buffer: list[str] = []
    for line in body.split("\n"):
        match = _H2_RE.match(line)
        if match:
            if current is not None:
                sections[current] = "\n".join(buffer).strip()
            current = match.group(1).strip()
            buffer = []
        elif current is not None:
            buffer.append(line)
    if current is not None:
        sections[current] = "\n".join(buffer).strip()
    return sections


def parse_action_table(table: str, default_project: str | None = None) -> list[ParsedAction]:
    lines = table.split("\n")
    header = next((row for row in lines if row.startswith("|") and "owner" in row.lower()), None)
    has_project = bool(header and "project" in header.lower())

    actions = []
    for row in lines:
        if not row.startswith("|") or "---" in row or "owner" in row.lower():
            continue
        cells = [c.strip() for c in row.split("|")]
        cells += [""] * (6 - len(cells))
        owner, action = cells[1], cells[2]
        if not owner or not action:
            continue
        project = cells[5] if has_project and cells[5] else default_project
        actions.append(
            ParsedAction(
                owner=owner,
                action=action,
                due=cells[3] or None,
                status=cells[4] or "Pending",
                project=project or None,
            )
        )
    return actions


def _as_list(value) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    return [str(v).strip() for v in value if str(v).strip()]


# ============================================================
# Files
# ============================================================


def parse_meeting_file(path: Path) -> ParsedMeeting | None:
    try:
        metadata, body = parse_markdown(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError, yaml.YAMLError) as e:
        logger.warning("Error parsing meeting file %s: %s", path, e)
        return None

    raw_date = metadata.get("date")
    if isinstance(raw_date, (date, datetime)):
        date_text = raw_date.isoformat()[:10]
    else:
        date_text = str(raw_date) if raw_date else ""

    projects = _as_list(metadata.get("projects"))
    if not projects and metadata.get("project"):
        projects = [str(metadata["project"])]
    primary = projects[0] if projects else None

    sections = extract_sections(body)
    actions_text = sections.get("Actions")

    return ParsedMeeting(
        path=paths.relative_kb_path(path),
        title=str(metadata.get("title") or Path(path).stem),
        date=date_text,
        attendees=_as_list(metadata.get("attendees")),
        projects=projects,
        primary_project=primary,
        status=str(metadata.get("status") or "completed"),
        location=metadata.get("location"),
        actions=parse_action_table(actions_text, primary) if actions_text else [],
    )


def find_meeting_files(org: str | None = None) -> list[Path]:
    """Glob {org}/meetings/YYYY/MM/*.md for one org or all configured orgs."""
    root = paths.knowledge_base_path()
    files = []
    for org_slug in [org] if org else config.configured_orgs():
        meetings_dir = root / org_slug / "meetings"
        if not meetings_dir.is_dir():
            continue
        for path in sorted(meetings_dir.glob("[0-9][0-9][0-9][0-9]/[0-9][0-9]/*.md")):
            if path.is_file():
                files.append(path)
    return files


def get_meeting_by_path(relative: str) -> ParsedMeeting | None:
    path = paths.resolve_kb_path(relative)
    if not path.is_file():
        return None
    return parse_meeting_file(path)
