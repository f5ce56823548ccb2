"""
KW OS - Routine Service

Routines are items with item_type='routine'. Each day they are due can be
completed or skipped; those instances live in routine_completions and
routine_skips keyed by YYYY-MM-DD.
"""

import json
import logging
import sqlite3
from datetime import date, datetime

from lib import config, diary_sync
from lib.errors import BadRequestError, KnowledgeBaseNotConfigured, NotFoundError
from lib.models import RecurrenceRule, validate_choice, validate_priority
from lib.routines import get_missed_dates_until_next_due, get_next_due_date, get_overdue_dates, is_due_on_date
from lib.time_utils import now_iso, parse_date, today

logger = logging.getLogger(__name__)

_ROUTINE_SELECT = """
    SELECT i.*, pe.name AS owner_name, p.slug AS project_slug, p.name AS project_name,
           pp.slug AS project_parent_slug, o.slug AS project_org,
           (SELECT MAX(completed_date) FROM routine_completions rc WHERE rc.routine_id = i.id)
             AS last_completed,
           (SELECT COUNT(*) FROM routine_completions rc WHERE rc.routine_id = i.id)
             AS completion_count
    FROM items i
    LEFT JOIN people pe ON pe.id = i.owner_id
    LEFT JOIN projects p ON p.id = i.project_id
    LEFT JOIN projects pp ON pp.id = p.parent_id
    LEFT JOIN organizations o ON o.id = p.org_id
    WHERE i.item_type = 'routine' AND i.deleted_at IS NULL
"""

_UPDATABLE = (
    "title",
    "description",
    "priority",
    "owner_id",
    "project_id",
    "recurrence_rule",
    "recurrence_time",
    "recurrence_days",
    "recurrence_months",
)


def _as_date(value: date | str | None) -> date:
    try:
        return parse_date(value) or today()
    except ValueError as e:
        raise BadRequestError(f"Invalid date: {value}") from e


def _json_or_none(value) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return json.dumps(value)


def format_routine(row: sqlite3.Row) -> dict:
    routine = dict(row)
    if routine.get("project_slug"):
        parent = routine.pop("project_parent_slug", None)
        routine["project_full_path"] = f"{parent}/{routine['project_slug']}" if parent else routine["project_slug"]
    else:
        routine.pop("project_parent_slug", None)
        routine["project_full_path"] = None
    return routine


class RoutineService:
    """Routine templates and their per-day completions and skips."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    # =========================================================================
    # Reads
    # =========================================================================

    def _get_row(self, routine_id: int) -> sqlite3.Row:
        row = self.conn.execute(_ROUTINE_SELECT + " AND i.id = ?", (routine_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Routine {routine_id} not found")
        return row

    def _instance_dates(self, table: str, column: str, routine_id: int) -> set[str]:
        rows = self.conn.execute(
            f"SELECT {column} FROM {table} WHERE routine_id = ?",  # nosec B608
            (routine_id,),
        ).fetchall()
        return {r[0] for r in rows}

    def list_all(self, on_date: date | str | None = None) -> dict:
        """All routines ordered by title, each with its next due date."""
        ref = _as_date(on_date)
        routines = []
        for row in self.conn.execute(_ROUTINE_SELECT + " ORDER BY i.title"):
            routine = format_routine(row)
            routine["next_due"] = get_next_due_date(routine, ref).isoformat()
            routine["is_due_today"] = is_due_on_date(routine, ref)
            routines.append(routine)
        return {"routines": routines, "count": len(routines)}

    def due(self, on_date: date | str | None = None) -> dict:
        """Routines due on a date, split by whether that day is completed."""
        day = _as_date(on_date)
        key = day.isoformat()
        completed_ids = {
            r[0]
            for r in self.conn.execute(
                "SELECT routine_id FROM routine_completions WHERE completed_date = ?", (key,)
            )
        }

        pending, completed = [], []
        rows = self.conn.execute(
            _ROUTINE_SELECT + " AND i.recurrence_rule IS NOT NULL ORDER BY i.recurrence_time, i.title"
        )
        for row in rows:
            routine = format_routine(row)
            if not is_due_on_date(routine, day):
                continue
            routine["is_due_today"] = True
            routine["completed_today"] = routine["id"] in completed_ids
            (completed if routine["completed_today"] else pending).append(routine)

        return {
            "date": key,
            "total": len(pending) + len(completed),
            "pending_count": len(pending),
            "completed_count": len(completed),
            "pending": pending,
            "completed": completed,
        }

    def overdue(self, as_of: date | str | None = None) -> dict:
        """Routines with missed instances in the last 30 days."""
        day = _as_date(as_of)
        routines = []
        for row in self.conn.execute(_ROUTINE_SELECT + " AND i.recurrence_rule IS NOT NULL ORDER BY i.title"):
            routine = format_routine(row)
            dates = get_overdue_dates(
                routine,
                day,
                completed=self._instance_dates("routine_completions", "completed_date", routine["id"]),
                skipped=self._instance_dates("routine_skips", "skip_date", routine["id"]),
            )
            if dates:
                routines.append(
                    {
                        "id": routine["id"],
                        "title": routine["title"],
                        "recurrence_rule": routine["recurrence_rule"],
                        "project_name": routine["project_name"],
                        "overdue_dates": dates,
                        "days_overdue": len(dates),
                    }
                )
        return {
            "total_overdue": len(routines),
            "total_missed_instances": sum(r["days_overdue"] for r in routines),
            "routines": routines,
        }

    def get(self, routine_id: int) -> dict:
        routine = format_routine(self._get_row(routine_id))
        limit = config.ROUTINE_HISTORY_LIMIT
        routine["history"] = [
            dict(r)
            for r in self.conn.execute(
                """SELECT id, completed_date, notes, created_at AS completed_at
                   FROM routine_completions WHERE routine_id = ?
                   ORDER BY completed_date DESC LIMIT ?""",
                (routine_id, limit),
            )
        ]
        routine["skips"] = [
            dict(r)
            for r in self.conn.execute(
                """SELECT id, skip_date, notes, created_at FROM routine_skips
                   WHERE routine_id = ? ORDER BY skip_date DESC LIMIT ?""",
                (routine_id, limit),
            )
        ]
        routine["next_due"] = get_next_due_date(routine, today()).isoformat()
        return routine

    # =========================================================================
    # Writes
    # =========================================================================

    def create(self, data: dict) -> dict:
        if not data.get("title"):
            raise BadRequestError("Title is required")
        rule = validate_choice(data.get("recurrence_rule"), RecurrenceRule, "recurrence_rule")
        if rule is None:
            raise BadRequestError("recurrence_rule is required")

        now = now_iso()
        cursor = self.conn.execute(
            """INSERT INTO items
               (title, description, item_type, status, priority, owner_id, project_id,
                recurrence_rule, recurrence_time, recurrence_days, recurrence_months,
                created_at, updated_at)
               VALUES (?, ?, 'routine', 'pending', ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                data["title"],
                data.get("description"),
                validate_priority(data.get("priority")),
                data.get("owner_id"),
                data.get("project_id"),
                rule,
                data.get("recurrence_time"),
                _json_or_none(data.get("recurrence_days")),
                _json_or_none(data.get("recurrence_months")),
                now,
                now,
            ),
        )
        logger.info("Created routine %d (%s)", cursor.lastrowid, rule)
        return {"id": cursor.lastrowid, "title": data["title"], "recurrence_rule": rule}

    def update(self, routine_id: int, data: dict) -> dict:
        """
        Update routine fields. Keys absent from *data* are left alone; keys
        present with None are cleared.

        Raises:
            NotFoundError: unknown or deleted routine
            BadRequestError: nothing to update, or an invalid value
        """
        self._get_row(routine_id)
        fields = {k: data[k] for k in _UPDATABLE if k in data}
        if not fields:
            raise BadRequestError("No fields to update")
        if "recurrence_rule" in fields:
            fields["recurrence_rule"] = validate_choice(fields["recurrence_rule"], RecurrenceRule, "recurrence_rule")
        if "priority" in fields:
            fields["priority"] = validate_priority(fields["priority"])
        for key in ("recurrence_days", "recurrence_months"):
            if key in fields:
                fields[key] = _json_or_none(fields[key] or None)

        fields["updated_at"] = now_iso()
        assignments = ", ".join(f"{k} = ?" for k in fields)
        self.conn.execute(
            f"UPDATE items SET {assignments} WHERE id = ?",  # nosec B608
            [*fields.values(), routine_id],
        )
        return {"id": routine_id}

    def delete(self, routine_id: int) -> dict:
        """Remove the routine and its completion and skip history."""
        self._get_row(routine_id)
        self.conn.execute("DELETE FROM routine_completions WHERE routine_id = ?", (routine_id,))
        self.conn.execute("DELETE FROM routine_skips WHERE routine_id = ?", (routine_id,))
        self.conn.execute("DELETE FROM activities WHERE item_id = ?", (routine_id,))
        self.conn.execute("DELETE FROM items WHERE id = ?", (routine_id,))
        logger.info("Deleted routine %d", routine_id)
        return {"deleted": True}

    # =========================================================================
    # Instances
    # =========================================================================

    def complete(self, routine_id: int, on_date: date | str | None = None, notes: str | None = None) -> dict:
        """
        Mark one day of a routine done and note it in the diary.

        Completing a day twice is not an error; the second call reports
        already_completed and writes nothing.
        """
        routine = self._get_row(routine_id)
        day = _as_date(on_date)
        key = day.isoformat()

        existing = self.conn.execute(
            "SELECT id FROM routine_completions WHERE routine_id = ? AND completed_date = ?",
            (routine_id, key),
        ).fetchone()
        if existing:
            return {
                "routine_id": routine_id,
                "completion_id": existing["id"],
                "date": key,
                "already_completed": True,
                "diary_sync": {"synced": False, "diary_path": ""},
            }

        cursor = self.conn.execute(
            """INSERT INTO routine_completions (routine_id, completed_date, notes, created_at)
               VALUES (?, ?, ?, ?)""",
            (routine_id, key, notes, now_iso()),
        )

        diary = {"synced": False, "diary_path": ""}
        when = datetime.combine(day, datetime.now().time())
        try:
            logged = diary_sync.log_routine_completion(routine["title"], when)
            diary = {"synced": logged["success"], "diary_path": logged["diary_path"]}
        except (OSError, KnowledgeBaseNotConfigured) as e:
            logger.warning("Diary log failed for routine %d: %s", routine_id, e)

        return {
            "routine_id": routine_id,
            "completion_id": cursor.lastrowid,
            "date": key,
            "already_completed": False,
            "diary_sync": diary,
        }

    def uncomplete(self, routine_id: int, on_date: date | str | None = None) -> dict:
        key = _as_date(on_date).isoformat()
        cursor = self.conn.execute(
            "DELETE FROM routine_completions WHERE routine_id = ? AND completed_date = ?",
            (routine_id, key),
        )
        return {"routine_id": routine_id, "date": key, "was_completed": cursor.rowcount > 0}

    def skip(self, routine_id: int, on_date: date | str | None = None, notes: str | None = None) -> dict:
        self._get_row(routine_id)
        key = _as_date(on_date).isoformat()
        existing = self.conn.execute(
            "SELECT id FROM routine_skips WHERE routine_id = ? AND skip_date = ?",
            (routine_id, key),
        ).fetchone()
        if existing:
            return {"routine_id": routine_id, "skip_id": existing["id"], "date": key, "already_skipped": True}

        cursor = self.conn.execute(
            "INSERT INTO routine_skips (routine_id, skip_date, notes, created_at) VALUES (?, ?, ?, ?)",
            (routine_id, key, notes, now_iso()),
        )
        return {"routine_id": routine_id, "skip_id": cursor.lastrowid, "date": key, "already_skipped": False}

    def unskip(self, routine_id: int, on_date: date | str | None = None) -> dict:
        key = _as_date(on_date).isoformat()
        cursor = self.conn.execute(
            "DELETE FROM routine_skips WHERE routine_id = ? AND skip_date = ?",
            (routine_id, key),
        )
        return {"routine_id": routine_id, "date": key, "was_skipped": cursor.rowcount > 0}

    def _missed_dates(self, routine_id: int, as_of: date | str | None) -> tuple[list[str], date]:
        routine = format_routine(self._get_row(routine_id))
        return get_missed_dates_until_next_due(
            routine,
            _as_date(as_of),
            completed=self._instance_dates("routine_completions", "completed_date", routine_id),
            skipped=self._instance_dates("routine_skips", "skip_date", routine_id),
        )

    def skip_all_overdue(self, routine_id: int, as_of: date | str | None = None) -> dict:
        """Skip every missed instance so the routine is next due on its next scheduled day."""
        dates, next_due = self._missed_dates(routine_id, as_of)
        now = now_iso()
        for key in dates:
            self.conn.execute(
                """INSERT OR IGNORE INTO routine_skips (routine_id, skip_date, notes, created_at)
                   VALUES (?, ?, 'Skipped to advance to next due date', ?)""",
                (routine_id, key, now),
            )
        return {
            "routine_id": routine_id,
            "skipped_count": len(dates),
            "dates_skipped": dates,
            "next_due": next_due.isoformat(),
        }

    def complete_all_overdue(self, routine_id: int, as_of: date | str | None = None) -> dict:
        dates, next_due = self._missed_dates(routine_id, as_of)
        now = now_iso()
        for key in dates:
            self.conn.execute(
                """INSERT OR IGNORE INTO routine_completions (routine_id, completed_date, notes, created_at)
                   VALUES (?, ?, 'Completed retroactively', ?)""",
                (routine_id, key, now),
            )
        return {
            "routine_id": routine_id,
            "completed_count": len(dates),
            "dates_completed": dates,
            "next_due": next_due.isoformat(),
        }
