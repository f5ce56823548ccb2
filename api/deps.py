"""
FastAPI dependencies shared by the routers.
"""

import sqlite3
from collections.abc import Generator

from lib import db as db_module
from lib.models import parse_task_id


def get_conn() -> Generator[sqlite3.Connection, None, None]:
    """One connection per request; committed when the handler returns normally."""
    with db_module.get_connection() as conn:
        yield conn


def item_id_param(item_id: str) -> int:
    """Accept both 12 and T-12 in item paths."""
    return parse_task_id(item_id)
