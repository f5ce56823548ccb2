"""
Test fixtures for deterministic testing.

- create_fixture_db: fresh temp SQLite DB with pinned seed rows
- write_kb_file: helper for laying out a temp knowledge base
"""

from .fixture_db import FIXTURE_COUNTS, create_fixture_db, guard_no_live_db
from .kb import write_kb_file

__all__ = ["FIXTURE_COUNTS", "create_fixture_db", "guard_no_live_db", "write_kb_file"]
