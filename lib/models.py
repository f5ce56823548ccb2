"""
KW OS domain enums and identifier helpers.
"""

import json
import re
from enum import StrEnum
from typing import Any

from lib.errors import BadRequestError

# =============================================================================
# ENUMS
# =============================================================================


class ItemStatus(StrEnum):
    """Lifecycle status of an item."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    BLOCKED = "blocked"
    CANCELLED = "cancelled"
    DEFERRED = "deferred"
    ACTIVE = "active"
    PAUSED = "paused"


class ItemType(StrEnum):
    TASK = "task"
    WORKSTREAM = "workstream"
    GOAL = "goal"
    ROUTINE = "routine"


class ProjectStatus(StrEnum):
    ACTIVE = "active"
    PLANNING = "planning"
    PAUSED = "paused"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class PersonRole(StrEnum):
    """Role a person plays on an item."""

    ASSIGNEE = "assignee"
    WAITING_ON = "waiting_on"
    STAKEHOLDER = "stakeholder"
    REVIEWER = "reviewer"
    CC = "cc"


class LinkType(StrEnum):
    BLOCKS = "blocks"
    RELATED = "related"
    DUPLICATE = "duplicate"


class RecurrenceRule(StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    BIMONTHLY = "bimonthly"
    YEARLY = "yearly"
    CUSTOM = "custom"


ORG_COLORS = ("indigo", "teal", "rose", "orange")

CLOSED_STATUSES = (ItemStatus.COMPLETE.value, ItemStatus.CANCELLED.value)
"""Statuses hidden from open-work views."""

# =============================================================================
# VALIDATION
# =============================================================================

TARGET_PERIOD_RE = re.compile(r"^(\d{4}|\d{4}-(0[1-9]|1[0-2])|\d{4}-Q[1-4]|\d{4}-H[1-2])$")
SLUG_RE = re.compile(r"^[a-z0-9-]+$")
_TASK_ID_RE = re.compile(r"^T-(\d+)$", re.IGNORECASE)


def validate_target_period(value: str | None) -> str | None:
    """Accept YYYY, YYYY-MM, YYYY-Qn or YYYY-Hn."""
    if value is None:
        return None
    if not TARGET_PERIOD_RE.match(value):
        raise BadRequestError(
            f"Invalid target period '{value}'. Use YYYY, YYYY-MM, YYYY-Q1..4 or YYYY-H1..2"
        )
    return value


def validate_choice(value: str | None, enum_cls, field: str) -> str | None:
    if value is None:
        return None
    try:
        return enum_cls(value).value
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise BadRequestError(f"Invalid {field} '{value}'. Expected one of: {allowed}") from None


def validate_priority(value: int | None) -> int | None:
    if value is None:
        return None
    if not isinstance(value, int) or isinstance(value, bool) or not 1 <= value <= 4:
        raise BadRequestError(f"Priority must be 1-4, got {value!r}")
    return value


# =============================================================================
# TASK IDS
# =============================================================================


def format_task_id(item_id: int) -> str:
    return f"T-{item_id}"


def parse_task_id(value: int | str) -> int:
    """
    Resolve an item ID from its accepted forms.

    123 -> 123, "T-123" -> 123, "t-123" -> 123, "123" -> 123
    """
    if isinstance(value, bool):
        raise BadRequestError(f"Invalid item ID: {value!r}")
    if isinstance(value, int):
        return value
    text = str(value).strip()
    match = _TASK_ID_RE.match(text)
    if match:
        return int(match.group(1))
    if text.isdigit():
        return int(text)
    raise BadRequestError(f"Invalid item ID: {value}")


# =============================================================================
# JSON COLUMNS
# =============================================================================


def json_list(value: Any) -> list:
    """Decode a JSON list column; anything unparseable is an empty list."""
    if value is None or value == "":
        return []
    if isinstance(value, list):
        return value
    try:
        decoded = json.loads(value)
    except (TypeError, ValueError):
        return []
    return decoded if isinstance(decoded, list) else []


def json_dict(value: Any) -> dict:
    if not value:
        return {}
    if isinstance(value, dict):
        return value
    try:
        decoded = json.loads(value)
    except (TypeError, ValueError):
        return {}
    return decoded if isinstance(decoded, dict) else {}
