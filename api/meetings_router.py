"""
Meetings API Router.
"""

import sqlite3

from fastapi import APIRouter, Depends, Query

from api.deps import get_conn
from api.response_models import ListResponse
from lib import meeting_sync

meetings_router = APIRouter(prefix="/meetings", tags=["Meetings"])


@meetings_router.get("", response_model=ListResponse)
def list_meetings(
    org: str | None = None,
    project_id: int | None = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict:
    return meeting_sync.list_meetings(conn, org=org, project_id=project_id, limit=limit, offset=offset)


@meetings_router.get("/preview")
def preview_meeting(path: str = Query(..., min_length=1), conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return meeting_sync.preview_meeting(conn, path)


@meetings_router.get("/{meeting_id}")
def get_meeting(meeting_id: int, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return meeting_sync.get_meeting(conn, meeting_id)
