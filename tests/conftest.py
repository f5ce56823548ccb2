"""
Test configuration: repo root on sys.path, live-DB guard and shared fixtures.

Every test runs with KW_OS_HOME pointed at a temp dir, so nothing can
fall back to the real ~/.kw_os database, and KNOWLEDGE_BASE_PATH unset
unless the test asks for kb_root.
"""

import sqlite3
import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from lib import paths  # noqa: E402
from lib.state_store import StateStore  # noqa: E402
from tests.fixtures import create_fixture_db  # noqa: E402

# =============================================================================
# DETERMINISM GUARD: Block live database access
# =============================================================================

HOME_DB_ABSOLUTE = Path.home() / ".kw_os" / "data" / "kw_os.db"

_original_sqlite_connect = sqlite3.connect


def _guarded_sqlite_connect(database, *args, **kwargs):
    """Intercept sqlite3.connect to block live DB access."""
    db_str = str(database)
    if db_str != ":memory:" and (db_str == str(HOME_DB_ABSOLUTE) or ".kw_os/data/kw_os.db" in db_str):
        raise RuntimeError(
            f"DETERMINISM VIOLATION: Test attempted to access live DB at {database}.\n"
            "Tests must use the conn/db_path fixtures from tests/conftest.py."
        )
    return _original_sqlite_connect(database, *args, **kwargs)


@pytest.fixture(autouse=True)
def guard_live_db_access(monkeypatch):
    """Automatically guard all tests against live DB access."""
    monkeypatch.setattr(sqlite3, "connect", _guarded_sqlite_connect)


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Temp app home, no knowledge base and a fresh StateStore for every test."""
    monkeypatch.setenv("KW_OS_HOME", str(tmp_path / "home"))
    monkeypatch.delenv("KW_OS_DB", raising=False)
    monkeypatch.delenv("KNOWLEDGE_BASE_PATH", raising=False)
    StateStore.reset()
    yield
    StateStore.reset()


# =============================================================================
# FIXTURE DB / KNOWLEDGE BASE
# =============================================================================


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    """Seeded fixture DB, installed as the process DB via lib.paths.db_path."""
    path = tmp_path / "kw_os_test.db"
    create_fixture_db(path).close()
    monkeypatch.setattr(paths, "db_path", lambda: path)
    return path


@pytest.fixture
def conn(db_path):
    """Open connection to the fixture DB. Tests commit nothing; it is thrown away."""
    from lib import db as db_module

    connection = db_module.connect(db_path)
    yield connection
    connection.close()


@pytest.fixture
def kb_root(tmp_path, monkeypatch):
    """Empty knowledge base with KNOWLEDGE_BASE_PATH pointing at it."""
    root = tmp_path / "kb"
    root.mkdir()
    monkeypatch.setenv("KNOWLEDGE_BASE_PATH", str(root))
    return root.resolve()
