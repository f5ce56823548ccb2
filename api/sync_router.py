"""
Sync API Router.

Runs the knowledge-base sync passes: workstream files, project folders,
meeting notes and READMEs.
"""

import logging
import sqlite3

from fastapi import APIRouter, Depends, Query

from api.deps import get_conn
from api.request_models import MeetingSyncBody, ResolveConflictBody, SyncFileBody, SyncOrgsBody
from lib.models import parse_task_id
from lib.sync_service import SyncService

logger = logging.getLogger(__name__)

sync_router = APIRouter(prefix="/sync", tags=["Sync"])


@sync_router.get("/status")
def sync_status(conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return SyncService(conn).status()


@sync_router.post("/workstreams")
def sync_workstreams(body: SyncOrgsBody | None = None, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return SyncService(conn).filesystem_to_db(body.orgs if body else None)


@sync_router.post("/file")
def sync_file(body: SyncFileBody, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return SyncService(conn).file_to_db(body.path)


@sync_router.post("/items/{item_id}/file")
def sync_item_to_file(item_id: str, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return SyncService(conn).item_to_file(parse_task_id(item_id))


@sync_router.get("/projects/preview")
def preview_projects(org: list[str] | None = Query(None), conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return SyncService(conn).projects_preview(org)


@sync_router.post("/projects")
def sync_projects(body: SyncOrgsBody | None = None, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return SyncService(conn).projects(body.orgs if body else None)


@sync_router.post("/meetings")
def sync_meetings(org: str | None = None, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return SyncService(conn).meetings(org)


@sync_router.post("/meeting")
def sync_meeting(body: MeetingSyncBody, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return SyncService(conn).meeting(body.path, dry_run=body.dry_run)


@sync_router.get("/readmes")
def parse_readmes(conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return SyncService(conn).readmes()


@sync_router.get("/conflicts")
def list_conflicts(conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return SyncService(conn).conflicts()


@sync_router.post("/conflicts/resolve")
def resolve_conflict(body: ResolveConflictBody, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return SyncService(conn).resolve_conflict(parse_task_id(body.item_id), direction=body.direction)


@sync_router.post("/all")
def sync_all(body: SyncOrgsBody | None = None, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    result = SyncService(conn).all(body.orgs if body else None)
    logger.info("Full sync finished")
    return result
