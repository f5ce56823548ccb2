"""
Time Utilities.

All timestamps are stored as ISO 8601 UTC with millisecond precision and a
Z suffix (24 chars), so lexical order equals chronological order.
Calendar dates are stored as YYYY-MM-DD.
"""

import re
from datetime import date, datetime, timezone

ISO_TIMESTAMP_REGEX = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$")
ISO_DATE_REGEX = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def to_iso(dt: datetime) -> str:
    """Format *dt* as YYYY-MM-DDTHH:MM:SS.sssZ (naive values are taken as UTC)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


def parse_iso(value: str) -> datetime:
    """Parse a stored timestamp (or any fromisoformat-compatible string)."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def today() -> date:
    """Local calendar date."""
    return date.today()


def parse_date(value: str | date | None) -> date | None:
    """Accept a date, YYYY-MM-DD, or a full ISO timestamp."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value)
    if ISO_DATE_REGEX.match(text):
        return date.fromisoformat(text)
    return parse_iso(text).date()


def local_date(value: str | None) -> date | None:
    """Local calendar day of a stored UTC timestamp. Plain dates pass through."""
    if not value:
        return None
    if ISO_DATE_REGEX.match(value):
        return date.fromisoformat(value)
    return parse_iso(value).astimezone().date()
