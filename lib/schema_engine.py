"""
Schema Convergence Engine - introspect, diff, apply.

Reads TABLES / INDEXES / DATA_MIGRATIONS from lib/schema and brings a
SQLite database in line with them:

  converge(conn)     - existing DBs: add missing tables, columns and indexes,
                       then run data migrations.
  create_fresh(conn) - new DBs and test fixtures: drop every table and
                       build the schema from scratch.

Converge only ever adds. Columns removed from lib/schema stay in old
databases until someone drops them by hand.
"""

import logging
import re
import sqlite3

from lib import safe_sql, schema

logger = logging.getLogger(__name__)


# ────────────────────────────────────────────────────────────
# ALTER TABLE ADD COLUMN rewriting
# ────────────────────────────────────────────────────────────

_ADD_COLUMN_FORBIDDEN = [
    re.compile(r"\bPRIMARY\s+KEY\b", re.IGNORECASE),
    re.compile(r"\bAUTOINCREMENT\b", re.IGNORECASE),
    re.compile(r"\bUNIQUE\b", re.IGNORECASE),
    re.compile(r"\bREFERENCES\s+\w+\s*\([^)]*\)", re.IGNORECASE),
    re.compile(r"\bCHECK\s*\([^)]*\)", re.IGNORECASE),
]

# e.g. the strftime() default on created_at / updated_at
_EXPR_DEFAULT = re.compile(r"\bDEFAULT\s*\(.*\)\s*$", re.IGNORECASE)


def make_alter_safe(col_def: str) -> str:
    """
    Rewrite a CREATE TABLE column definition for ALTER TABLE ADD COLUMN.

    SQLite refuses added columns that are keys, unique, foreign keys or
    checked, and only takes constant defaults. A NOT NULL column left
    without a default gets DEFAULT ''.

        >>> make_alter_safe("TEXT NOT NULL DEFAULT (strftime('%s', 'now'))")
        "TEXT NOT NULL DEFAULT ''"
    """
    safe = col_def
    for pattern in _ADD_COLUMN_FORBIDDEN:
        safe = pattern.sub("", safe)
    safe = _EXPR_DEFAULT.sub("", safe)
    safe = re.sub(r"\s{2,}", " ", safe).strip()

    if re.search(r"\bNOT\s+NULL\b", safe, re.IGNORECASE) and not re.search(r"\bDEFAULT\b", safe, re.IGNORECASE):
        safe += " DEFAULT ''"
    return safe


# ────────────────────────────────────────────────────────────
# Introspection
# ────────────────────────────────────────────────────────────


def existing_tables(conn: sqlite3.Connection) -> set[str]:
    rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%'")
    return {row[0] for row in rows}


def existing_columns(conn: sqlite3.Connection, table: str) -> set[str]:
    return {row[1] for row in conn.execute(safe_sql.pragma_table_info(table))}


def existing_indexes(conn: sqlite3.Connection) -> set[str]:
    rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'index' AND name NOT LIKE 'sqlite_%'")
    return {row[0] for row in rows}


def declared_columns(table: str) -> list[str]:
    return [name for name, _ in schema.TABLES[table]["columns"]]


def missing_columns(conn: sqlite3.Connection) -> dict[str, list[str]]:
    """Declared columns absent from existing tables, by table. Missing tables are not listed."""
    present = existing_tables(conn)
    gaps = {}
    for table in schema.TABLES:
        if table not in present:
            continue
        have = existing_columns(conn, table)
        absent = [col for col in declared_columns(table) if col not in have]
        if absent:
            gaps[table] = absent
    return gaps


# ────────────────────────────────────────────────────────────
# DDL
# ────────────────────────────────────────────────────────────


def create_table_sql(table_name: str) -> str:
    table_def = schema.TABLES[table_name]
    parts = [f"    {name} {ddl}" for name, ddl in table_def["columns"]]
    parts.extend(f"    UNIQUE({', '.join(cols)})" for cols in table_def.get("unique", []))
    body = ",\n".join(parts)
    return f"CREATE TABLE IF NOT EXISTS [{table_name}] (\n{body}\n)"


def create_index_sql(name: str, table: str, columns: str, where: str | None) -> str:
    sql = f"CREATE INDEX IF NOT EXISTS [{name}] ON [{table}]({columns})"
    return f"{sql} WHERE {where}" if where else sql


def _apply(conn: sqlite3.Connection, sql: str, label: str, results: dict) -> bool:
    """Run one DDL statement, recording a failure in results["errors"]."""
    try:
        conn.execute(sql)
        return True
    except sqlite3.OperationalError as e:
        err = f"{label}: {e}"
        results["errors"].append(err)
        logger.warning("schema_engine: %s", err)
        return False


# ────────────────────────────────────────────────────────────
# Convergence phases
# ────────────────────────────────────────────────────────────


def _converge_tables(conn: sqlite3.Connection, results: dict) -> None:
    present = existing_tables(conn)
    for table in schema.TABLES:
        if table in present:
            continue
        if _apply(conn, create_table_sql(table), f"CREATE TABLE {table}", results):
            results["tables_created"].append(table)
            logger.info("schema_engine: created table %s", table)

    ddl = {table: dict(schema.TABLES[table]["columns"]) for table in schema.TABLES}
    for table, columns in missing_columns(conn).items():
        for col in columns:
            sql = safe_sql.alter_add_column(table, col, make_alter_safe(ddl[table][col]))
            if _apply(conn, sql, f"ADD COLUMN {table}.{col}", results):
                results["columns_added"].append(f"{table}.{col}")
                logger.info("schema_engine: added column %s.%s", table, col)


def _converge_indexes(conn: sqlite3.Connection, results: dict) -> None:
    present = existing_indexes(conn)
    tables = existing_tables(conn)
    for name, table, columns, where in schema.INDEXES:
        if name in present or table not in tables:
            continue
        if _apply(conn, create_index_sql(name, table, columns, where), f"CREATE INDEX {name}", results):
            results["indexes_created"].append(name)


def _run_data_migrations(conn: sqlite3.Connection, results: dict) -> None:
    tables = existing_tables(conn)
    for table, target, source, where in schema.DATA_MIGRATIONS:
        if table not in tables:
            continue
        have = existing_columns(conn, table)
        if target not in have or source not in have:
            continue
        try:
            cursor = conn.execute(safe_sql.update_set_where_simple(table, target, source, where))
        except sqlite3.OperationalError as e:
            err = f"DATA MIGRATION {table}.{target}: {e}"
            results["errors"].append(err)
            logger.warning("schema_engine: %s", err)
            continue
        if cursor.rowcount > 0:
            ref = f"{table}.{target} <- {source}"
            results["data_migrations_run"].append(f"{ref} ({cursor.rowcount} rows)")
            logger.info("schema_engine: data migration %s updated %d rows", ref, cursor.rowcount)


# ────────────────────────────────────────────────────────────
# Entry points
# ────────────────────────────────────────────────────────────


def converge(conn: sqlite3.Connection) -> dict:
    """
    Converge an existing database to lib/schema.

    Phases run in order: tables and columns, indexes, data migrations,
    then PRAGMA user_version. A failing statement is logged and recorded
    in results["errors"]; the remaining statements still run.
    """
    results = {
        "tables_created": [],
        "columns_added": [],
        "indexes_created": [],
        "data_migrations_run": [],
        "errors": [],
    }

    _converge_tables(conn, results)
    _converge_indexes(conn, results)
    _run_data_migrations(conn, results)

    conn.execute(safe_sql.pragma_user_version_set(schema.SCHEMA_VERSION))
    results["schema_version"] = schema.SCHEMA_VERSION
    return results


def create_fresh(conn: sqlite3.Connection) -> dict:
    """
    Drop every table and build the declared schema. Destroys data; only
    for brand-new databases and test fixtures.
    """
    results = {"tables_created": [], "indexes_created": [], "errors": []}

    conn.execute("PRAGMA foreign_keys=OFF")
    for table in existing_tables(conn):
        conn.execute(safe_sql.drop_table(table))
    conn.execute("PRAGMA foreign_keys=ON")

    for table in schema.TABLES:
        if _apply(conn, create_table_sql(table), f"CREATE TABLE {table}", results):
            results["tables_created"].append(table)
    for name, table, columns, where in schema.INDEXES:
        if _apply(conn, create_index_sql(name, table, columns, where), f"CREATE INDEX {name}", results):
            results["indexes_created"].append(name)

    conn.execute(safe_sql.pragma_user_version_set(schema.SCHEMA_VERSION))
    results["schema_version"] = schema.SCHEMA_VERSION
    return results
