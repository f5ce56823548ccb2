"""
Markdown files with YAML frontmatter.
"""

from pathlib import Path

import frontmatter


def parse_markdown(text: str) -> tuple[dict, str]:
    """Split *text* into (frontmatter metadata, body)."""
    post = frontmatter.loads(text)
    return dict(post.metadata), post.content


def read_markdown(path: str | Path) -> tuple[dict, str, str]:
    """Return (metadata, body, raw text) for the file at *path*."""
    text = Path(path).read_text(encoding="utf-8")
    metadata, body = parse_markdown(text)
    return metadata, body, text


def render_markdown(metadata: dict, body: str) -> str:
    post = frontmatter.Post(body)
    post.metadata.update(metadata)
    return frontmatter.dumps(post, sort_keys=False) + "\n"


def write_markdown(path: str | Path, metadata: dict, body: str) -> str:
    """Write *metadata* + *body* to *path*. Returns the text written."""
    text = render_markdown(metadata, body)
    Path(path).write_text(text, encoding="utf-8")
    return text


def first_heading(body: str) -> str | None:
    """Text of the first level-1 heading, if any."""
    for line in body.splitlines():
        if line.startswith("# "):
            return line[2:].strip() or None
    return None
