"""
README task extraction.

Project READMEs carry work in three shapes:

    - 🟢 **Inventory import** — nightly CSV pull       (status_emoji)
    - [ ] Email the auditors                           (checkbox)
    | 🟡 | [[acme-corp/projects/x/pricing|Pricing]] | Q3 rework |   (sub_project)

Line numbers are 1-based positions in the file itself (frontmatter included)
so markdown_sync can write status changes back to the same line.
"""

import logging
import re
from dataclasses import asdict, dataclass
from pathlib import Path

import yaml

from lib import paths
from lib.markdown_io import parse_markdown

logger = logging.getLogger(__name__)

STATUS_EMOJI_MAP = {
    "✅": "completed",
    "🟢": "active",
    "🟡": "pending",
    "🔴": "blocked",
    "🔵": "planning",
    "⏳": "pending",
    "❌": "cancelled",
}

_EMOJI = "✅|🟢|🟡|🔴|🔵|⏳|❌"
STATUS_LINE_PATTERN = re.compile(rf"^[-*]\s*({_EMOJI})\s*\*{{0,2}}([^*—]+)\*{{0,2}}\s*—?\s*(.*)$")
CHECKBOX_PATTERN = re.compile(r"^[-*]\s*\[([ xX])\]\s*(.+)$")
SUB_PROJECT_TABLE_PATTERN = re.compile(
    rf"^\|\s*({_EMOJI})\s*\|\s*\[\[([^\]|]+)(?:\|([^\]]+))?\]\]\s*\|\s*(.+)\s*\|$"
)
_PHASE_RE = re.compile(r"^Phase\s+\d+", re.IGNORECASE)

SKIP_DIRS = {"node_modules", ".git", "context", "meetings", ".claude"}


@dataclass
class ExtractedTask:
    id: str
    title: str
    status: str
    source_type: str
    source_path: str
    source_line: int
    project_slug: str
    org: str
    description: str | None = None
    section: str | None = None
    phase: str | None = None
    is_sub_project: bool = False
    linked_project: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


def _frontmatter_line_count(text: str) -> int:
    """Lines taken by a leading --- frontmatter block (0 if none)."""
    lines = text.split("\n")
    if not lines or lines[0].strip() != "---":
        return 0
    for i in range(1, len(lines)):
        if lines[i].strip() == "---":
            return i + 1
    return 0


def find_project_readmes(root: Path | None = None) -> list[Path]:
    """Every README.md beneath a projects/ directory."""
    root = root or paths.knowledge_base_path()
    readmes = []

    def scan(directory: Path) -> None:
        try:
            entries = sorted(directory.iterdir())
        except OSError:
            return
        for entry in entries:
            if entry.is_dir():
                if entry.name not in SKIP_DIRS:
                    scan(entry)
            elif entry.name == "README.md":
                rel = entry.relative_to(root).as_posix()
                if "/projects/" in rel:
                    readmes.append(entry)

    scan(root)
    return readmes


def parse_readme(path: Path, root: Path | None = None) -> dict:
    """
    Extract tasks from one README.

    Returns {path, project_slug, org, title, tasks: [ExtractedTask], errors}.
    """
    root = root or paths.knowledge_base_path()
    rel = Path(path).relative_to(root).as_posix()
    parts = rel.split("/")
    org = parts[0] if parts else "unknown"
    project_slug = "unknown"
    if "projects" in parts:
        idx = parts.index("projects")
        if idx + 1 < len(parts) - 1:
            project_slug = parts[idx + 1]

    result = {"path": rel, "project_slug": project_slug, "org": org, "title": None, "tasks": [], "errors": []}

    try:
        text = Path(path).read_text(encoding="utf-8")
        metadata, _ = parse_markdown(text)
    except (OSError, ValueError, yaml.YAMLError) as e:
        result["errors"].append(f"Failed to parse {rel}: {e}")
        return result

    result["title"] = metadata.get("title") or project_slug
    lines = text.split("\n")
    start = _frontmatter_line_count(text)
    section = None
    phase = None
    counter = 0

    for index in range(start, len(lines)):
        line = lines[index]
        line_no = index + 1

        if line.startswith("## "):
            section = line[3:].strip()
            phase = None
        elif line.startswith("### "):
            heading = line[4:].strip()
            if _PHASE_RE.match(heading):
                phase = heading

        common = {
            "source_path": rel,
            "source_line": line_no,
            "project_slug": project_slug,
            "org": org,
            "section": section,
        }

        match = STATUS_LINE_PATTERN.match(line)
        if match:
            emoji, title, description = match.groups()
            counter += 1
            result["tasks"].append(
                ExtractedTask(
                    id=f"{project_slug}-readme-{counter}",
                    title=title.strip(),
                    description=description.strip() or None,
                    status=STATUS_EMOJI_MAP.get(emoji, "pending"),
                    source_type="status_emoji",
                    phase=phase,
                    **common,
                )
            )
            continue

        match = CHECKBOX_PATTERN.match(line)
        if match:
            checked, title = match.groups()
            counter += 1
            result["tasks"].append(
                ExtractedTask(
                    id=f"{project_slug}-readme-{counter}",
                    title=title.strip(),
                    status="completed" if checked.lower() == "x" else "pending",
                    source_type="checkbox",
                    phase=phase,
                    **common,
                )
            )
            continue

        match = SUB_PROJECT_TABLE_PATTERN.match(line)
        if match:
            emoji, linked_path, display_name, description = match.groups()
            linked_slug = linked_path.split("/")[-1] or linked_path
            counter += 1
            result["tasks"].append(
                ExtractedTask(
                    id=f"{project_slug}-readme-{counter}",
                    title=(display_name or "").strip() or linked_slug,
                    description=description.strip() or None,
                    status=STATUS_EMOJI_MAP.get(emoji, "pending"),
                    source_type="sub_project",
                    is_sub_project=True,
                    linked_project=linked_slug,
                    **common,
                )
            )

    return result


def parse_all_readmes(root: Path | None = None) -> dict:
    """Parse every project README. Returns {readmes, tasks, summary}."""
    root = root or paths.knowledge_base_path()
    readmes = [parse_readme(p, root) for p in find_project_readmes(root)]
    tasks = [task for readme in readmes for task in readme["tasks"]]

    summary = {"total": len(tasks), "by_status": {}, "by_org": {}, "by_type": {}}
    for task in tasks:
        summary["by_status"][task.status] = summary["by_status"].get(task.status, 0) + 1
        summary["by_org"][task.org] = summary["by_org"].get(task.org, 0) + 1
        summary["by_type"][task.source_type] = summary["by_type"].get(task.source_type, 0) + 1

    return {"readmes": readmes, "tasks": tasks, "summary": summary}


def filter_tasks_for_import(tasks: list[ExtractedTask]) -> list[ExtractedTask]:
    """Drop completed tasks and sub-project references."""
    return [t for t in tasks if t.status != "completed" and not t.is_sub_project]
