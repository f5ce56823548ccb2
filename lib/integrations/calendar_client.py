"""
Calendar Client - read-only Google Calendar events.

Shares GoogleAuth with the Gmail client; the token must carry the
calendar.readonly scope.
"""

import logging

from googleapiclient.errors import HttpError

from lib.errors import NotFoundError, PreconditionFailedError

from .gmail_client import http_status
from .google_auth import GoogleAuth

logger = logging.getLogger(__name__)

NOT_CONFIGURED = "Calendar not configured. Run: kw google-auth"
SCOPE_NOT_AUTHORIZED = "Calendar scope not authorized. Re-run kw google-auth to add calendar permission."


def format_event(event: dict) -> dict:
    start = event.get("start") or {}
    end = event.get("end") or {}
    organizer = event.get("organizer")
    return {
        "id": event.get("id") or "",
        "summary": event.get("summary"),
        "description": event.get("description"),
        "location": event.get("location"),
        "start": start.get("dateTime") or start.get("date") or "",
        "end": end.get("dateTime") or end.get("date") or "",
        "start_date": start.get("date"),
        "end_date": end.get("date"),
        "is_all_day": bool(start.get("date") and not start.get("dateTime")),
        "status": event.get("status"),
        "html_link": event.get("htmlLink"),
        "organizer": (
            {
                "email": organizer.get("email") or "",
                "display_name": organizer.get("displayName"),
                "self": bool(organizer.get("self")),
            }
            if organizer
            else None
        ),
        "attendees": [
            {
                "email": a.get("email") or "",
                "display_name": a.get("displayName"),
                "response_status": a.get("responseStatus"),
                "self": bool(a.get("self")),
                "organizer": bool(a.get("organizer")),
            }
            for a in event.get("attendees") or []
        ],
        "recurring_event_id": event.get("recurringEventId"),
    }


class CalendarClient:
    def __init__(self, auth: GoogleAuth | None = None):
        self.auth = auth or GoogleAuth()
        self._service = None

    def _get_service(self):
        if self._service is None:
            self._service = self.auth.build("calendar", "v3")
            if self._service is None:
                raise PreconditionFailedError(NOT_CONFIGURED)
        return self._service

    def status(self) -> dict:
        if not self.auth.is_configured():
            error = (
                "Google credentials not found. Run: kw google-auth"
                if not self.auth.has_credentials()
                else "Google not authenticated. Run: kw google-auth"
            )
            return {"configured": False, "authenticated": False, "email": None, "error": error}

        try:
            entry = self._get_service().calendarList().get(calendarId="primary").execute()
            email = entry.get("id")
        except (HttpError, PreconditionFailedError) as e:
            logger.warning("Calendar lookup failed: %s", e)
            email = None
        return {
            "configured": True,
            "authenticated": bool(email),
            "email": email,
            "error": None if email else "Failed to verify Google authentication. May need to re-auth with calendar scope.",
        }

    def _events(self, calendar_id: str, **params) -> dict:
        params = {k: v for k, v in params.items() if v is not None}
        try:
            response = (
                self._get_service()
                .events()
                .list(calendarId=calendar_id, singleEvents=True, orderBy="startTime", **params)
                .execute()
            )
        except HttpError as e:
            if http_status(e) == 403:
                raise PreconditionFailedError(SCOPE_NOT_AUTHORIZED) from e
            raise
        return {
            "events": [format_event(e) for e in response.get("items") or []],
            "next_page_token": response.get("nextPageToken"),
        }

    def list_events(
        self,
        time_min: str | None = None,
        time_max: str | None = None,
        max_results: int = 50,
        calendar_id: str = "primary",
        query: str | None = None,
    ) -> dict:
        """Events in [time_min, time_max) expanded from recurrences, by start time."""
        return self._events(
            calendar_id, timeMin=time_min, timeMax=time_max, maxResults=max_results, q=query or None
        )

    def search(
        self,
        query: str,
        time_min: str | None = None,
        time_max: str | None = None,
        max_results: int = 20,
        calendar_id: str = "primary",
    ) -> dict:
        return self._events(calendar_id, q=query, timeMin=time_min, timeMax=time_max, maxResults=max_results)

    def get(self, event_id: str, calendar_id: str = "primary") -> dict:
        try:
            event = self._get_service().events().get(calendarId=calendar_id, eventId=event_id).execute()
        except HttpError as e:
            if http_status(e) == 404:
                raise NotFoundError(f"Calendar event {event_id} not found") from e
            raise
        return format_event(event)
