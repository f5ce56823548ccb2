"""
Read-only browser over the knowledge base.

Every path is KB-relative and must resolve inside the KB root.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path

import yaml

from lib import paths
from lib.errors import BadRequestError, NotFoundError
from lib.markdown_io import parse_markdown
from lib.time_utils import to_iso

logger = logging.getLogger(__name__)

EXCLUDED_NAMES = frozenset({"node_modules", "venv", ".venv", "__pycache__", ".git", ".DS_Store", "Thumbs.db"})


def should_exclude(name: str, include_hidden: bool = False) -> bool:
    return name in EXCLUDED_NAMES or (not include_hidden and name.startswith("."))


def validate_path(relative: str) -> Path:
    absolute = paths.resolve_kb_path(relative or "")
    if not paths.is_within_kb(absolute):
        raise BadRequestError("Path is outside knowledge base")
    return absolute


def _mtime(stat) -> str:
    return to_iso(datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc))


def frontmatter_title(path: Path) -> str | None:
    if path.suffix != ".md":
        return None
    try:
        metadata, _ = parse_markdown(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, ValueError, yaml.YAMLError):
        return None
    title = metadata.get("title")
    return str(title) if title else None


def to_entry(path: Path, parent: str) -> dict:
    """Describe one directory entry. Symlinks are followed; broken ones count as files."""
    relative = f"{parent}/{path.name}" if parent else path.name
    is_file = not path.is_dir()
    entry = {"name": path.name, "path": relative, "type": "file" if is_file else "folder"}
    try:
        stat = path.stat()
    except OSError:
        return entry
    entry["mtime"] = _mtime(stat)
    if is_file:
        entry["size"] = stat.st_size
        entry["extension"] = path.suffix.lower()
        if entry["extension"] == ".md":
            entry["frontmatter_title"] = frontmatter_title(path)
    return entry


def _sorted_children(directory: Path, include_hidden: bool) -> list[Path]:
    children = [c for c in directory.iterdir() if not should_exclude(c.name, include_hidden)]
    return sorted(children, key=lambda c: (not c.is_dir(), c.name.lower()))


def _existing_dir(relative: str) -> Path:
    absolute = validate_path(relative)
    if not absolute.exists():
        raise NotFoundError(f"Directory not found: {relative}")
    if not absolute.is_dir():
        raise BadRequestError("Path is not a directory")
    return absolute


# ============================================================
# Operations
# ============================================================


def list_dir(path: str = "", include_hidden: bool = False) -> dict:
    """Entries of one directory, folders first."""
    directory = _existing_dir(path)
    entries = [to_entry(c, path) for c in _sorted_children(directory, include_hidden)]
    return {"path": path, "entries": entries, "total": len(entries)}


def get_file(path: str) -> dict:
    """File content; markdown comes back with its frontmatter split off."""
    absolute = validate_path(path)
    if not absolute.exists():
        raise NotFoundError(f"File not found: {path}")
    if absolute.is_dir():
        raise BadRequestError("Path is a directory, not a file")

    stat = absolute.stat()
    extension = absolute.suffix.lower()
    is_markdown = extension == ".md"
    content = absolute.read_text(encoding="utf-8", errors="replace")
    metadata = None
    if is_markdown:
        try:
            metadata, content = parse_markdown(content)
        except (ValueError, yaml.YAMLError) as e:
            logger.warning("Unreadable frontmatter in %s: %s", path, e)

    return {
        "path": path,
        "content": content,
        "frontmatter": metadata,
        "metadata": {
            "size": stat.st_size,
            "mtime": _mtime(stat),
            "extension": extension,
            "is_markdown": is_markdown,
        },
    }


def _build_tree(directory: Path, relative: str, depth: int, include_hidden: bool) -> list[dict]:
    if depth <= 0:
        return []
    try:
        children = _sorted_children(directory, include_hidden)
    except OSError:
        return []

    nodes = []
    for child in children:
        node = to_entry(child, relative)
        if node["type"] == "folder" and depth > 1:
            node["children"] = _build_tree(child, node["path"], depth - 1, include_hidden)
        nodes.append(node)
    return nodes


def tree(path: str = "", depth: int = 2, include_hidden: bool = False) -> dict:
    directory = _existing_dir(path)
    return {"path": path, "nodes": _build_tree(directory, path, depth, include_hidden)}


def fuzzy_match(query: str, text: str) -> dict | None:
    """
    Score *text* against *query*, case-insensitively.

    Exact match scores 100 and a substring scores 80 minus its position.
    Otherwise every query character must appear in order: 1 point per
    character plus 2 when it directly follows the previous match.
    Returns {"score", "matches": [{"start", "end"}]} or None.
    """
    q = query.lower()
    t = text.lower()
    if t == q:
        return {"score": 100, "matches": [{"start": 0, "end": len(text)}]}

    index = t.find(q)
    if index != -1:
        return {"score": 80 - index, "matches": [{"start": index, "end": index + len(q)}]}

    score = 0
    qi = 0
    last = -2
    spans: list[dict] = []
    for i, ch in enumerate(t):
        if qi == len(q):
            break
        if ch != q[qi]:
            continue
        score += 1
        if i == last + 1:
            score += 2
            spans[-1]["end"] = i + 1
        else:
            spans.append({"start": i, "end": i + 1})
        last = i
        qi += 1

    if qi != len(q):
        return None
    return {"score": score, "matches": spans}


def search(
    query: str,
    path: str = "",
    extensions: list[str] | None = None,
    limit: int = 50,
    include_hidden: bool = False,
) -> dict:
    """Files under *path* whose names fuzzy-match *query*, best first."""
    if not query:
        raise BadRequestError("Query is required")
    root = _existing_dir(path)
    wanted = {e.lower() if e.startswith(".") else f".{e.lower()}" for e in extensions} if extensions else None

    results: list[dict] = []

    def _walk(directory: Path) -> None:
        try:
            children = sorted(directory.iterdir(), key=lambda c: c.name)
        except OSError:
            return
        for child in children:
            if len(results) >= limit:
                return
            if should_exclude(child.name, include_hidden):
                continue
            if child.is_dir():
                _walk(child)
                continue
            if wanted is not None and child.suffix.lower() not in wanted:
                continue
            match = fuzzy_match(query, child.name)
            if match:
                parent = paths.relative_kb_path(child.parent)
                results.append({"entry": to_entry(child, "" if parent == "." else parent), **match})

    _walk(root)
    results.sort(key=lambda r: r["score"], reverse=True)
    return {"query": query, "results": results[:limit], "total": len(results)}
