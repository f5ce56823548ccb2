"""
Timecard API Router - read-only view of the hours CSV.
"""

from fastapi import APIRouter, Query

from lib import timecard

timecard_router = APIRouter(prefix="/timecard", tags=["Timecard"])


@timecard_router.get("")
def list_entries(
    start_date: str | None = None,
    end_date: str | None = None,
    client: str | None = None,
    limit: int = Query(1000, ge=1, le=10000),
) -> dict:
    return timecard.list_entries(start_date=start_date, end_date=end_date, client=client, limit=limit)


@timecard_router.get("/summary")
def get_summary(start_date: str | None = None, end_date: str | None = None) -> dict:
    return timecard.summary(start_date=start_date, end_date=end_date)
