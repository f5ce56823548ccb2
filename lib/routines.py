"""
Routine schedule logic.

Pure functions over a routine mapping with recurrence_rule, recurrence_days
and recurrence_months (JSON text or already-decoded lists). No DB access.

    daily      every day
    weekly     recurrence_days = ["mon", "thu"]      (default Monday)
    monthly    recurrence_days = [1, 15]             (default the 1st)
    bimonthly  recurrence_months = [1, 3, 5]         (default even months, on the 1st)
    yearly     recurrence_days = [month, day]
    custom     recurrence_days = ["2026-03-01", ...]
"""

from datetime import date, timedelta

from lib import config
from lib.models import json_list
from lib.time_utils import local_date

_WEEKDAYS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")


def _ints(values: list) -> list[int]:
    out = []
    for v in values:
        try:
            out.append(int(v))
        except (TypeError, ValueError):
            continue
    return out


def is_due_on_date(routine: dict, day: date) -> bool:
    rule = routine.get("recurrence_rule")
    days = json_list(routine.get("recurrence_days"))
    months = json_list(routine.get("recurrence_months"))

    if rule == "daily":
        return True

    if rule == "weekly":
        if days:
            wanted = {str(d).lower()[:3] for d in days}
            return _WEEKDAYS[day.weekday()] in wanted
        return day.weekday() == 0

    if rule == "monthly":
        if days:
            return day.day in _ints(days)
        return day.day == 1

    if rule == "bimonthly":
        if day.day != 1:
            return False
        if months:
            return day.month in _ints(months)
        return day.month % 2 == 0

    if rule == "yearly":
        parts = _ints(days)
        return len(parts) == 2 and (day.month, day.day) == (parts[0], parts[1])

    if rule == "custom":
        return day.isoformat() in {str(d) for d in days}

    return False


def get_next_due_date(routine: dict, from_date: date) -> date:
    """First due date on or after *from_date*, scanning at most a year ahead."""
    check = from_date
    for _ in range(config.ROUTINE_SCAN_DAYS):
        if is_due_on_date(routine, check):
            return check
        check += timedelta(days=1)
    return from_date


def get_overdue_dates(
    routine: dict,
    today: date,
    completed: set[str] | None = None,
    skipped: set[str] | None = None,
) -> list[str]:
    """
    Due dates in the last 30 days (today excluded) with neither a
    completion nor a skip, newest first. Dates before the routine existed
    are never overdue.
    """
    completed = completed or set()
    skipped = skipped or set()
    created = local_date(routine.get("created_at"))

    overdue = []
    for offset in range(1, config.ROUTINE_OVERDUE_LOOKBACK_DAYS + 1):
        check = today - timedelta(days=offset)
        if created and check < created:
            continue
        key = check.isoformat()
        if is_due_on_date(routine, check) and key not in completed and key not in skipped:
            overdue.append(key)
    return overdue


def get_missed_dates_until_next_due(
    routine: dict,
    today: date,
    completed: set[str] | None = None,
    skipped: set[str] | None = None,
) -> tuple[list[str], date]:
    """
    Every unresolved due date from creation up to the next due date.

    Returns (dates, next_due). Used to bulk-skip or bulk-complete a routine
    that fell behind.
    """
    completed = completed or set()
    skipped = skipped or set()
    next_due = get_next_due_date(routine, today)
    check = local_date(routine.get("created_at")) or today

    dates = []
    while check < next_due:
        key = check.isoformat()
        if is_due_on_date(routine, check) and key not in completed and key not in skipped:
            dates.append(key)
        check += timedelta(days=1)
    return dates, next_due
