"""
Hours log kept as a CSV in the knowledge base.

Columns are positional: date, client, hours, tasks. The first row is a
header and is skipped. Quoted fields may contain commas. Read-only.
"""

import csv
import logging
from collections import defaultdict
from dataclasses import asdict, dataclass

from lib import config, paths
from lib.errors import BadRequestError, NotFoundError, ServiceError
from lib.time_utils import ISO_DATE_REGEX

logger = logging.getLogger(__name__)


@dataclass
class TimecardEntry:
    date: str
    client: str
    hours: float
    tasks: str = ""


def _hours(text: str) -> float:
    try:
        return float(text)
    except ValueError:
        return 0.0


def _round(hours: float) -> float:
    return round(hours, 1)


def read_entries() -> list[TimecardEntry]:
    """
    All rows with a date and a client, newest first.

    Raises:
        NotFoundError if the CSV does not exist.
        ServiceError if it cannot be read.
    """
    path = paths.resolve_kb_path(config.TIMECARD_PATH)
    if not path.is_file():
        raise NotFoundError("Timecard CSV file not found")

    try:
        with open(path, newline="", encoding="utf-8") as f:
            rows = list(csv.reader(f))
    except (OSError, ValueError, csv.Error) as e:
        logger.warning("Cannot read timecard %s: %s", path, e)
        raise ServiceError(f"Cannot read timecard CSV: {e}") from e

    entries = []
    for row in rows[1:]:
        cells = [c.strip() for c in row] + [""] * 4
        day, client, hours, tasks = cells[:4]
        if not day or not client:
            continue
        entries.append(TimecardEntry(date=day, client=client, hours=_hours(hours), tasks=tasks))

    entries.sort(key=lambda e: e.date, reverse=True)
    return entries


def _check_date(value: str | None, name: str) -> None:
    if value and not ISO_DATE_REGEX.match(value):
        raise BadRequestError(f"{name} must be YYYY-MM-DD")


def _in_range(entries: list[TimecardEntry], start_date: str | None, end_date: str | None) -> list[TimecardEntry]:
    _check_date(start_date, "start_date")
    _check_date(end_date, "end_date")
    if start_date:
        entries = [e for e in entries if e.date >= start_date]
    if end_date:
        entries = [e for e in entries if e.date <= end_date]
    return entries


def list_entries(
    start_date: str | None = None,
    end_date: str | None = None,
    client: str | None = None,
    limit: int = 1000,
) -> dict:
    entries = _in_range(read_entries(), start_date, end_date)
    if client:
        entries = [e for e in entries if e.client == client]
    return {"entries": [asdict(e) for e in entries[:limit]], "total": len(entries)}


def summary(start_date: str | None = None, end_date: str | None = None) -> dict:
    """
    Hours per client and per month.

    Client totals are sorted by hours, largest first; months newest first.
    Hours are rounded to one decimal.
    """
    entries = _in_range(read_entries(), start_date, end_date)

    by_client: dict[str, list] = defaultdict(lambda: [0.0, 0])
    by_month: dict[str, dict[str, list]] = defaultdict(lambda: defaultdict(lambda: [0.0, 0]))
    for entry in entries:
        by_client[entry.client][0] += entry.hours
        by_client[entry.client][1] += 1
        month = by_month[entry.date[:7]][entry.client]
        month[0] += entry.hours
        month[1] += 1

    client_summaries = sorted(
        (
            {"client": client, "total_hours": _round(hours), "entry_count": count}
            for client, (hours, count) in by_client.items()
        ),
        key=lambda c: c["total_hours"],
        reverse=True,
    )

    monthly_summaries = []
    for month in sorted(by_month, reverse=True):
        clients = [
            {"client": client, "total_hours": _round(hours), "entry_count": count}
            for client, (hours, count) in sorted(by_month[month].items())
        ]
        monthly_summaries.append(
            {"month": month, "clients": clients, "total_hours": _round(sum(c["total_hours"] for c in clients))}
        )

    return {
        "total_hours": _round(sum(e.hours for e in entries)),
        "entry_count": len(entries),
        "clients": sorted(by_client),
        "client_summaries": client_summaries,
        "monthly_summaries": monthly_summaries,
    }
