"""
Content hashing and change detection for markdown/DB sync.
"""

import hashlib
from pathlib import Path


def compute_hash(text: str) -> str:
    """SHA-256 hex digest of *text* encoded as UTF-8."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def compute_file_hash(path: str | Path) -> str | None:
    """Hash of a file's text, or None if the file does not exist."""
    p = Path(path)
    if not p.is_file():
        return None
    return compute_hash(p.read_text(encoding="utf-8"))


def detect_conflict(
    stored_hash: str | None,
    current_hash: str | None,
    updated_at: str | None,
    last_synced_at: str | None,
) -> dict:
    """
    Compare both sides of a synced pair.

    The file side changed if its hash moved since the last sync. The DB side
    changed if the row was updated after the last sync; with either timestamp
    missing the DB side is treated as unchanged. Both changing is a conflict.
    """
    file_changed = stored_hash != current_hash
    db_changed = bool(updated_at and last_synced_at and updated_at > last_synced_at)
    return {
        "file_changed": file_changed,
        "db_changed": db_changed,
        "has_conflict": file_changed and db_changed,
    }
