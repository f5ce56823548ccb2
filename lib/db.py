"""
Centralized Database Access for KW OS.

Single source of truth for:
- DB path resolution
- Connection factory
- Schema convergence (delegated to schema_engine)
- Startup validation

Schema is declared in lib/schema. Convergence logic lives in lib/schema_engine.
This module wires them together and provides the public API that the rest of
the codebase calls.
"""

import logging
import sqlite3
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from lib import paths, safe_sql, schema, schema_engine

logger = logging.getLogger(__name__)

# ============================================================
# DB PATH RESOLUTION
# ============================================================


def get_db_path() -> Path:
    """
    Get the canonical DB path. ALL code must use this.

    Resolution order:
    1. KW_OS_DB env var (explicit override)
    2. ~/.kw_os/data/kw_os.db (default via paths.db_path())
    """
    return paths.db_path()


# ============================================================
# CONNECTION FACTORY
# ============================================================


def connect(db_path: str | Path | None = None) -> sqlite3.Connection:
    """Open a connection with row factory and foreign keys enabled."""
    path = Path(db_path) if db_path else get_db_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


@contextmanager
def get_connection(db_path: str | Path | None = None) -> Generator[sqlite3.Connection, None, None]:
    """
    Get a database connection with proper setup.

    Commits on normal exit, rolls back if the block raises.

    Usage:
        with get_connection() as conn:
            conn.execute(...)
    """
    conn = connect(db_path)
    try:
        yield conn
        conn.commit()
    except BaseException:
        conn.rollback()
        raise
    finally:
        conn.close()


# ============================================================
# SCHEMA INTROSPECTION
# ============================================================


def table_exists(conn: sqlite3.Connection, table: str) -> bool:
    cursor = conn.execute("SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,))
    return cursor.fetchone() is not None


def get_schema_version(conn: sqlite3.Connection) -> int:
    """Get current schema version from PRAGMA user_version."""
    return conn.execute("PRAGMA user_version").fetchone()[0]


# ============================================================
# SCHEMA CONVERGENCE
# ============================================================


def run_migrations(conn: sqlite3.Connection) -> dict:
    """Converge the database schema to match lib/schema declarations."""
    previous_version = get_schema_version(conn)
    results = schema_engine.converge(conn)
    results["previous_version"] = previous_version
    return results


_migrated_paths: set[str] = set()


def run_startup_migrations(db_path: str | Path | None = None) -> dict:
    """
    Run schema convergence at startup. Safe to call multiple times.
    Logs comprehensive startup info.
    """
    path = Path(db_path) if db_path else get_db_path()

    logger.info("=" * 50)
    logger.info("KW OS Database Startup")
    logger.info("=" * 50)
    logger.info("Resolved DB path: %s", path)
    logger.info("DB exists: %s", path.exists())
    logger.info("Target SCHEMA_VERSION: %s", schema.SCHEMA_VERSION)

    with get_connection(path) as conn:
        version_before = get_schema_version(conn)
        logger.info("Current user_version: %s", version_before)

        if version_before >= schema.SCHEMA_VERSION and str(path) in _migrated_paths:
            logger.info("Schema already converged, skipping")
            return {"status": "skipped", "schema_version": version_before}

        results = run_migrations(conn)

        if results.get("tables_created"):
            logger.info("Tables created: %s", results["tables_created"])
        if results.get("columns_added"):
            logger.info("Columns added: %s", results["columns_added"])
        if results.get("indexes_created"):
            logger.info("Indexes created: %d", len(results["indexes_created"]))
        if results.get("data_migrations_run"):
            logger.info("Data migrations: %s", results["data_migrations_run"])
        if results.get("errors"):
            logger.warning("Convergence errors: %s", results["errors"])

        absent_tables = [t for t in schema.TABLES if not table_exists(conn, t)]
        if absent_tables:
            logger.error("MISSING tables after convergence: %s", absent_tables)
        for table, columns in schema_engine.missing_columns(conn).items():
            logger.error("MISSING columns on %s: %s", table, columns)

        logger.info("Final user_version: %s", results.get("schema_version"))
        logger.info("=" * 50)

    _migrated_paths.add(str(path))
    return results


def ensure_migrations(db_path: str | Path | None = None):
    """Ensure schema has converged. Called by StateStore and other entry points."""
    path = Path(db_path) if db_path else get_db_path()
    if str(path) not in _migrated_paths:
        run_startup_migrations(path)


# ============================================================
# DEBUG INFO
# ============================================================


def get_db_info() -> dict:
    """DB info for the /api/health endpoint and `kw status`."""
    path = get_db_path()
    info = {
        "path": str(path),
        "exists": path.exists(),
        "target_version": schema.SCHEMA_VERSION,
        "tables": {},
    }
    if not path.exists():
        return info

    with get_connection(path) as conn:
        info["schema_version"] = get_schema_version(conn)
        for table in schema.TABLES:
            if table_exists(conn, table):
                row = conn.execute(safe_sql.select_count(table)).fetchone()
                info["tables"][table] = row[0]
    return info
