"""
Calendar API Router - read-only Google Calendar events.
"""

from fastapi import APIRouter, Depends, Query

from api.response_models import IntegrationStatus
from lib.integrations import CalendarClient

calendar_router = APIRouter(prefix="/calendar", tags=["Calendar"])


def get_calendar() -> CalendarClient:
    return CalendarClient()


@calendar_router.get("/status", response_model=IntegrationStatus)
def calendar_status(calendar: CalendarClient = Depends(get_calendar)) -> dict:
    return calendar.status()


@calendar_router.get("/events")
def list_events(
    time_min: str | None = None,
    time_max: str | None = None,
    max_results: int = Query(50, ge=1, le=250),
    calendar_id: str = "primary",
    q: str | None = None,
    calendar: CalendarClient = Depends(get_calendar),
) -> dict:
    return calendar.list_events(
        time_min=time_min, time_max=time_max, max_results=max_results, calendar_id=calendar_id, query=q
    )


@calendar_router.get("/search")
def search_events(
    q: str = Query(..., min_length=1),
    time_min: str | None = None,
    time_max: str | None = None,
    max_results: int = Query(20, ge=1, le=250),
    calendar_id: str = "primary",
    calendar: CalendarClient = Depends(get_calendar),
) -> dict:
    return calendar.search(q, time_min=time_min, time_max=time_max, max_results=max_results, calendar_id=calendar_id)


@calendar_router.get("/events/{event_id}")
def get_event(event_id: str, calendar_id: str = "primary", calendar: CalendarClient = Depends(get_calendar)) -> dict:
    return calendar.get(event_id, calendar_id=calendar_id)
