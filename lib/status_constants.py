"""
Status vocabularies shared by the sync engine.

Workstream files, meeting action tables and README emoji lines each spell
status differently from the items table. These maps translate between them.
"""

STATUS_TO_EMOJI: dict[str, str] = {
    "pending": "🟡",
    "in_progress": "🟢",
    "active": "🟢",
    "blocked": "🔴",
    "complete": "✅",
    "completed": "✅",
    "cancelled": "❌",
    "planning": "🔵",
}

STATUS_TO_ACTION_STATUS: dict[str, str] = {
    "pending": "Pending",
    "in_progress": "In Progress",
    "active": "In Progress",
    "blocked": "Blocked",
    "complete": "Complete",
    "completed": "Complete",
    "cancelled": "Cancelled",
}

_WORKSTREAM_TO_DB = {
    "active": "active",
    "paused": "paused",
    "completed": "complete",
    "complete": "complete",
    "planning": "pending",
    "maintenance": "active",
}

_DB_TO_WORKSTREAM = {
    "active": "active",
    "in_progress": "active",
    "paused": "paused",
    "complete": "completed",
    "completed": "completed",
    "pending": "planning",
}


def map_workstream_status(file_status: str | None) -> str:
    """Workstream frontmatter status -> items.status (default pending)."""
    if not file_status:
        return "pending"
    return _WORKSTREAM_TO_DB.get(str(file_status).strip().lower(), "pending")


def map_db_status_to_file(db_status: str | None) -> str:
    """items.status -> workstream frontmatter status (default active)."""
    if not db_status:
        return "active"
    return _DB_TO_WORKSTREAM.get(db_status, "active")
