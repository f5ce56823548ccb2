from __future__ import annotations

import os
from pathlib import Path

from lib.errors import KnowledgeBaseNotConfigured

APP_ENV_HOME = "KW_OS_HOME"
APP_ENV_DB = "KW_OS_DB"
KB_ENV = "KNOWLEDGE_BASE_PATH"


def app_home() -> Path:
    """
    User-writable home for KW OS.
    Override with KW_OS_HOME.
    """
    if os.environ.get(APP_ENV_HOME):
        return Path(os.environ[APP_ENV_HOME]).expanduser().resolve()
    return (Path.home() / ".kw_os").resolve()


def data_dir() -> Path:
    d = app_home() / "data"
    d.mkdir(parents=True, exist_ok=True)
    return d


def db_path() -> Path:
    """
    Canonical DB path for kw_os.

    Resolution order:
    1. KW_OS_DB env var (explicit override)
    2. ~/.kw_os/data/kw_os.db (default)
    """
    if os.environ.get(APP_ENV_DB):
        return Path(os.environ[APP_ENV_DB]).expanduser().resolve()
    return data_dir() / "kw_os.db"


# ============================================================
# Knowledge base
# ============================================================


def knowledge_base_path() -> Path:
    """
    Root of the markdown knowledge base.

    KNOWLEDGE_BASE_PATH is required; there is no default because every
    file written by the sync engine lands under it.
    """
    value = os.environ.get(KB_ENV)
    if not value:
        raise KnowledgeBaseNotConfigured(
            f"{KB_ENV} environment variable is not set. "
            "Point it at the root of your knowledge base."
        )
    return Path(value).expanduser().resolve()


def resolve_kb_path(relative: str | Path) -> Path:
    """Resolve a KB-relative path to an absolute path."""
    rel = str(relative).lstrip("/")
    return (knowledge_base_path() / rel).resolve()


def relative_kb_path(absolute: str | Path) -> str:
    """Return *absolute* relative to the KB root, using forward slashes."""
    return Path(absolute).resolve().relative_to(knowledge_base_path()).as_posix()


def is_within_kb(absolute: str | Path) -> bool:
    """True if *absolute* is the KB root or somewhere beneath it."""
    root = knowledge_base_path()
    target = Path(absolute).resolve()
    return target == root or root in target.parents


def diary_dir() -> Path:
    return knowledge_base_path() / "diary"
