"""
Centralized SQL construction with validated identifiers.

All dynamic SQL assembly lives here. Table and column names are validated
against _SAFE_IDENTIFIER_RE before interpolation. Values are always passed
as parameterized ? and never interpolated.

SQLite does not support parameterized identifiers (? works only for
values, not table/column names). Every f-string in this file is a
validated-identifier interpolation.
"""

# ruff: noqa: S608

from __future__ import annotations

import re

_SAFE_IDENTIFIER_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


def _validate(name: str) -> str:
    """Validate that *name* is a safe SQL identifier.

    Returns the name unchanged if valid; raises ValueError otherwise.
    """
    if not _SAFE_IDENTIFIER_RE.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return name


# ────────────────────────────────────────────────────────────
# PRAGMA helpers
# ────────────────────────────────────────────────────────────


def pragma_table_info(table: str) -> str:
    return f"PRAGMA table_info([{_validate(table)}])"


def pragma_user_version_set(version: int) -> str:
    """PRAGMA user_version = N with int validation."""
    if not isinstance(version, int) or version < 0:
        raise ValueError(f"Invalid schema version: {version!r}")
    return f"PRAGMA user_version = {version}"


# ────────────────────────────────────────────────────────────
# DML
# ────────────────────────────────────────────────────────────


def select_count(table: str, where: str | None = None) -> str:
    """Build SELECT COUNT(*) with validated table name."""
    sql = f"SELECT COUNT(*) as c FROM {_validate(table)}"
    if where:
        sql += f" WHERE {where}"
    return sql


# ────────────────────────────────────────────────────────────
# DDL
# ────────────────────────────────────────────────────────────


def alter_add_column(table: str, column: str, column_type: str) -> str:
    """Build ALTER TABLE ADD COLUMN with validated identifiers."""
    _validate(table)
    _validate(column)
    # column_type comes from lib/schema, not from input
    return f"ALTER TABLE [{table}] ADD COLUMN [{column}] {column_type}"


def drop_table(name: str) -> str:
    return f"DROP TABLE IF EXISTS [{_validate(name)}]"


def update_set_where_simple(table: str, target_col: str, source_expr: str, where_cond: str) -> str:
    """Build UPDATE [table] SET [target_col] = [source_expr] WHERE where_cond."""
    return (
        f"UPDATE [{_validate(table)}] SET [{_validate(target_col)}] = "
        f"[{_validate(source_expr)}] WHERE {where_cond}"
    )


# ────────────────────────────────────────────────────────────
# Helpers
# ────────────────────────────────────────────────────────────


def in_placeholders(count: int) -> str:
    """Return ``?,?,?`` for use in ``IN (...)`` clauses."""
    if count <= 0:
        raise ValueError(f"IN clause needs at least 1 placeholder, got {count}")
    return ",".join("?" for _ in range(count))
