"""
State Store - shared entry point to the KW OS database.
CLI commands and scripts open connections for the domain services here.
"""

import logging
import sqlite3
import threading
from collections.abc import Generator
from contextlib import contextmanager

from lib import db as db_module

logger = logging.getLogger(__name__)


class StateStore:
    """
    Central state store over SQLite.
    Every component connects through here.
    """

    _instance = None
    _lock = threading.Lock()

    def __new__(cls, db_path: str = None):
        """Singleton - one store, one truth."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self, db_path: str = None):
        if self._initialized:
            return

        self.db_path = db_path or str(db_module.get_db_path())
        logger.info("StateStore initializing with DB: %s", self.db_path)

        db_module.ensure_migrations(self.db_path)

        self._initialized = True

    @classmethod
    def reset(cls):
        """Drop the singleton so the next call rebinds to the current DB path."""
        global _store
        with cls._lock:
            cls._instance = None
            _store = None

    @contextmanager
    def connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Connection for domain services; commits on success."""
        with db_module.get_connection(self.db_path) as conn:
            yield conn


# Singleton accessor
_store: StateStore | None = None


def get_store(db_path: str = None) -> StateStore:
    """Get the singleton state store."""
    global _store
    if _store is None:
        _store = StateStore(db_path)
    return _store
