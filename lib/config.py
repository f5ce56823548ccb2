"""
Centralized configuration for KW OS.

All values that vary by deployment belong here.
Override via environment variables where marked, or via the optional
YAML settings file at <home>/config/kw_os.yaml.
"""

import logging
import os
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

# ============================================================
# Knowledge base layout
# ============================================================

DEFAULT_ORGS: list[str] = [
    o.strip()
    for o in os.environ.get(
        "KW_OS_ORGS", "acme-corp,example-org,consulting,personal,other"
    ).split(",")
    if o.strip()
]
"""Organization folders scanned by project sync when none are given."""

ACTOR: str = os.environ.get("KW_OS_ACTOR", "user")
"""Name recorded in activities.created_by for changes made by this install."""

TIMECARD_PATH: str = os.environ.get("KW_OS_TIMECARD_PATH", "personal/invoicing/timecard.csv")
"""KB-relative hours log read by lib.timecard."""

# ============================================================
# API server
# ============================================================

API_HOST: str = os.environ.get("KW_OS_HOST", "127.0.0.1")
"""Interface the API server binds to."""

API_PORT: int = int(os.environ.get("KW_OS_PORT", "3002"))
"""Port the API server listens on."""

CORS_ORIGINS: str = os.environ.get("CORS_ORIGINS", "*")
"""Comma-separated allowed origins, or * for any."""

LOG_LEVEL: str = os.environ.get("KW_OS_LOG_LEVEL", "INFO")
"""Root log level for the CLI and server."""

# ============================================================
# Google
# ============================================================

GMAIL_CREDENTIALS_PATH: str | None = os.environ.get("GMAIL_CREDENTIALS_PATH")
"""OAuth client credentials JSON. Defaults to <KB>/.data/gmail-credentials.json."""

GMAIL_TOKEN_PATH: str | None = os.environ.get("GMAIL_TOKEN_PATH")
"""Authorized-user token JSON. Defaults to <KB>/.data/gmail-tokens.json."""

# ============================================================
# Limits
# ============================================================

ROUTINE_SCAN_DAYS = 365
"""Maximum days scanned forward when looking for a routine's next due date."""

ROUTINE_OVERDUE_LOOKBACK_DAYS = 30
"""How far back routines are checked for missed instances."""

ROUTINE_HISTORY_LIMIT = 30
"""Completions/skips returned with a routine."""


# ============================================================
# Settings file
# ============================================================


def settings_path() -> Path:
    from lib import paths

    return paths.app_home() / "config" / "kw_os.yaml"


def load_settings(path: str | None = None) -> dict:
    """
    Load optional YAML settings.

    Returns:
        {"orgs": [...], "actor": "..."}

    Raises:
        yaml.YAMLError if the file is invalid YAML.
        ValueError if the document is not a mapping.
    """
    config_path = Path(path) if path else settings_path()
    settings = {"orgs": list(DEFAULT_ORGS), "actor": ACTOR}
    if not config_path.exists():
        return settings

    with open(config_path) as f:
        data = yaml.safe_load(f)

    if data is None:
        return settings
    if not isinstance(data, dict):
        raise ValueError(f"{config_path.name} must contain a mapping")

    orgs = data.get("orgs")
    if isinstance(orgs, list) and orgs:
        settings["orgs"] = [str(o) for o in orgs]
    elif orgs is not None:
        logger.warning("Ignoring invalid orgs setting: %r", orgs)

    if data.get("actor"):
        settings["actor"] = str(data["actor"])

    return settings


def configured_orgs() -> list[str]:
    """Organization folders to scan: the settings file, else DEFAULT_ORGS."""
    return load_settings()["orgs"]


def configured_actor() -> str:
    return load_settings()["actor"]
