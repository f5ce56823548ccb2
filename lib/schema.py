"""
Declarative Schema Definition - the single source of truth.

Every table, column, index, and data migration for KW OS lives here.
Nothing else defines schema. The schema_engine reads this and converges
any database to match.

Adding a column = add one line here. The engine handles the rest.

Column definitions use CREATE TABLE syntax. The schema_engine knows how
to derive ALTER TABLE ADD COLUMN DDL (strips PK, adjusts NOT NULL, etc.).
"""

from collections import OrderedDict

# =============================================================================
# Schema version - bump when you change this file
# =============================================================================
SCHEMA_VERSION = 3

_TS = "TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))"

# =============================================================================
# Table Definitions
#
# Format: TABLES[name] = {"columns": [(col_name, col_ddl), ...],
#                         "unique": [(col, col), ...]}
# =============================================================================

TABLES: dict[str, dict] = OrderedDict()

# ---------------------------------------------------------------------------
# Organizations
# ---------------------------------------------------------------------------
TABLES["organizations"] = {
    "columns": [
        ("id", "INTEGER PRIMARY KEY AUTOINCREMENT"),
        ("slug", "TEXT NOT NULL UNIQUE"),
        ("name", "TEXT NOT NULL"),
        ("short_name", "TEXT"),
        ("description", "TEXT"),
        ("color", "TEXT"),
        ("created_at", _TS),
        ("updated_at", _TS),
    ],
}

# ---------------------------------------------------------------------------
# People
# ---------------------------------------------------------------------------
TABLES["people"] = {
    "columns": [
        ("id", "INTEGER PRIMARY KEY AUTOINCREMENT"),
        ("name", "TEXT NOT NULL"),
        ("email", "TEXT"),
        ("org_id", "INTEGER REFERENCES organizations(id)"),
        ("notes", "TEXT"),
        ("created_at", _TS),
        ("updated_at", _TS),
    ],
}

# ---------------------------------------------------------------------------
# Projects (parent_id makes a project a sub-project)
# ---------------------------------------------------------------------------
TABLES["projects"] = {
    "columns": [
        ("id", "INTEGER PRIMARY KEY AUTOINCREMENT"),
        ("slug", "TEXT NOT NULL"),
        ("name", "TEXT NOT NULL"),
        ("org_id", "INTEGER REFERENCES organizations(id)"),
        ("status", "TEXT"),
        ("priority", "INTEGER"),
        ("parent_id", "INTEGER REFERENCES projects(id)"),
        ("description", "TEXT"),
        ("is_general", "INTEGER NOT NULL DEFAULT 0"),
        ("created_at", _TS),
        ("updated_at", _TS),
    ],
    "unique": [("org_id", "slug")],
}

# ---------------------------------------------------------------------------
# Meetings
# ---------------------------------------------------------------------------
TABLES["meetings"] = {
    "columns": [
        ("id", "INTEGER PRIMARY KEY AUTOINCREMENT"),
        ("title", "TEXT NOT NULL"),
        ("date", "TEXT NOT NULL"),
        ("path", "TEXT NOT NULL UNIQUE"),
        ("location", "TEXT"),
        ("notes", "TEXT"),
        ("created_at", _TS),
        ("updated_at", _TS),
    ],
}

TABLES["meeting_projects"] = {
    "columns": [
        ("id", "INTEGER PRIMARY KEY AUTOINCREMENT"),
        ("meeting_id", "INTEGER NOT NULL REFERENCES meetings(id)"),
        ("project_id", "INTEGER NOT NULL REFERENCES projects(id)"),
        ("is_primary", "INTEGER NOT NULL DEFAULT 0"),
    ],
    "unique": [("meeting_id", "project_id")],
}

TABLES["meeting_attendees"] = {
    "columns": [
        ("id", "INTEGER PRIMARY KEY AUTOINCREMENT"),
        ("meeting_id", "INTEGER NOT NULL REFERENCES meetings(id)"),
        ("person_id", "INTEGER NOT NULL REFERENCES people(id)"),
    ],
    "unique": [("meeting_id", "person_id")],
}

# ---------------------------------------------------------------------------
# Items: tasks, workstreams, goals, routines
# ---------------------------------------------------------------------------
TABLES["items"] = {
    "columns": [
        ("id", "INTEGER PRIMARY KEY AUTOINCREMENT"),
        ("title", "TEXT NOT NULL"),
        ("description", "TEXT"),
        ("item_type", "TEXT NOT NULL DEFAULT 'task'"),
        ("status", "TEXT NOT NULL DEFAULT 'pending'"),
        ("priority", "INTEGER"),
        ("due_date", "TEXT"),
        ("target_period", "TEXT"),
        ("owner_id", "INTEGER REFERENCES people(id)"),
        ("project_id", "INTEGER REFERENCES projects(id)"),
        ("parent_id", "INTEGER REFERENCES items(id)"),
        ("source_meeting_id", "INTEGER REFERENCES meetings(id)"),
        # Markdown source this item was imported from
        ("source_type", "TEXT"),
        ("source_path", "TEXT"),
        ("source_line", "INTEGER"),
        # Workstream file sync
        ("file_path", "TEXT"),
        ("file_hash", "TEXT"),
        ("last_synced_at", "TEXT"),
        # Routines
        ("routine_parent_id", "INTEGER"),
        ("recurrence_rule", "TEXT"),
        ("recurrence_time", "TEXT"),
        ("recurrence_days", "TEXT"),
        ("recurrence_months", "TEXT"),
        ("metadata", "TEXT"),
        ("created_at", _TS),
        ("updated_at", _TS),
        ("completed_at", "TEXT"),
        ("deleted_at", "TEXT"),
    ],
}

TABLES["activities"] = {
    "columns": [
        ("id", "INTEGER PRIMARY KEY AUTOINCREMENT"),
        ("item_id", "INTEGER NOT NULL REFERENCES items(id)"),
        ("action", "TEXT NOT NULL"),
        ("detail", "TEXT"),
        ("old_value", "TEXT"),
        ("new_value", "TEXT"),
        ("created_by", "TEXT"),
        ("created_at", _TS),
    ],
}

TABLES["item_attachments"] = {
    "columns": [
        ("id", "INTEGER PRIMARY KEY AUTOINCREMENT"),
        ("item_id", "INTEGER NOT NULL REFERENCES items(id)"),
        ("path", "TEXT NOT NULL"),
        ("label", "TEXT"),
        ("created_at", _TS),
    ],
}

TABLES["item_people"] = {
    "columns": [
        ("id", "INTEGER PRIMARY KEY AUTOINCREMENT"),
        ("item_id", "INTEGER NOT NULL REFERENCES items(id)"),
        ("person_id", "INTEGER NOT NULL REFERENCES people(id)"),
        ("role", "TEXT NOT NULL"),
        ("created_at", _TS),
    ],
    "unique": [("item_id", "person_id", "role")],
}

TABLES["item_links"] = {
    "columns": [
        ("id", "INTEGER PRIMARY KEY AUTOINCREMENT"),
        ("from_id", "INTEGER NOT NULL REFERENCES items(id)"),
        ("to_id", "INTEGER NOT NULL REFERENCES items(id)"),
        ("link_type", "TEXT NOT NULL"),
        ("created_at", _TS),
    ],
    "unique": [("from_id", "to_id", "link_type")],
}

TABLES["check_ins"] = {
    "columns": [
        ("id", "INTEGER PRIMARY KEY AUTOINCREMENT"),
        ("item_id", "INTEGER NOT NULL REFERENCES items(id)"),
        ("date", "TEXT NOT NULL"),
        ("note", "TEXT"),
        ("completed", "INTEGER NOT NULL DEFAULT 0"),
        ("created_at", _TS),
    ],
}

TABLES["tags"] = {
    "columns": [
        ("id", "INTEGER PRIMARY KEY AUTOINCREMENT"),
        ("name", "TEXT NOT NULL UNIQUE"),
        ("color", "TEXT"),
        ("description", "TEXT"),
        ("created_at", _TS),
    ],
}

TABLES["item_tags"] = {
    "columns": [
        ("id", "INTEGER PRIMARY KEY AUTOINCREMENT"),
        ("item_id", "INTEGER NOT NULL REFERENCES items(id)"),
        ("tag_id", "INTEGER NOT NULL REFERENCES tags(id)"),
    ],
    "unique": [("item_id", "tag_id")],
}

# ---------------------------------------------------------------------------
# Routine instances
# ---------------------------------------------------------------------------
TABLES["routine_completions"] = {
    "columns": [
        ("id", "INTEGER PRIMARY KEY AUTOINCREMENT"),
        ("routine_id", "INTEGER NOT NULL REFERENCES items(id)"),
        ("completed_date", "TEXT NOT NULL"),
        ("notes", "TEXT"),
        ("created_at", _TS),
    ],
    "unique": [("routine_id", "completed_date")],
}

TABLES["routine_skips"] = {
    "columns": [
        ("id", "INTEGER PRIMARY KEY AUTOINCREMENT"),
        ("routine_id", "INTEGER NOT NULL REFERENCES items(id)"),
        ("skip_date", "TEXT NOT NULL"),
        ("notes", "TEXT"),
        ("created_at", _TS),
    ],
    "unique": [("routine_id", "skip_date")],
}

# =============================================================================
# Index Definitions
#
# Format: (index_name, table_name, column_expression, optional_where_clause)
# =============================================================================

INDEXES: list[tuple[str, str, str, str | None]] = [
    # Items
    ("idx_items_status", "items", "status", None),
    ("idx_items_type", "items", "item_type", None),
    ("idx_items_due", "items", "due_date", None),
    ("idx_items_project", "items", "project_id", None),
    ("idx_items_owner", "items", "owner_id", None),
    ("idx_items_parent", "items", "parent_id", None),
    ("idx_items_meeting", "items", "source_meeting_id", None),
    ("idx_items_file_path", "items", "file_path", "file_path IS NOT NULL"),
    ("idx_items_live", "items", "deleted_at", None),
    # Relations
    ("idx_activities_item", "activities", "item_id, created_at", None),
    ("idx_item_people_person", "item_people", "person_id, role", None),
    ("idx_item_links_to", "item_links", "to_id, link_type", None),
    ("idx_check_ins_item", "check_ins", "item_id, completed", None),
    # Projects / people
    ("idx_projects_parent", "projects", "parent_id", None),
    ("idx_people_org", "people", "org_id", None),
    # Routines
    ("idx_routine_completions_date", "routine_completions", "completed_date", None),
    ("idx_routine_skips_date", "routine_skips", "skip_date", None),
]

# =============================================================================
# Data Migrations
#
# Executed as: UPDATE table SET target_column = source_expression WHERE condition
# Idempotent - only updates rows where target is NULL and source is NOT NULL.
# =============================================================================

DATA_MIGRATIONS: list[tuple[str, str, str, str]] = [
    # Items imported before source_path existed kept the path in file_path
    ("items", "source_path", "file_path", "source_path IS NULL AND source_type = 'workstream'"),
]
