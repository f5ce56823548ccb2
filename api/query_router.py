"""
Query API Router - read-only task views for dashboards.
"""

import sqlite3

from fastapi import APIRouter, Depends, Query

from api.deps import get_conn
from lib import queries

query_router = APIRouter(prefix="/query", tags=["Query"])


@query_router.get("/today")
def due_today(owner: str | None = None, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return queries.due_today(conn, owner_name=owner)


@query_router.get("/overdue")
def overdue(owner: str | None = None, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return queries.overdue(conn, owner_name=owner)


@query_router.get("/waiting")
def waiting(conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return queries.waiting(conn)


@query_router.get("/search")
def search(
    q: str = Query(..., min_length=1),
    include_completed: bool = False,
    limit: int = Query(50, ge=1, le=500),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict:
    return queries.search(conn, q, include_completed=include_completed, limit=limit)


@query_router.get("/high-priority")
def high_priority(
    owner: str | None = None,
    limit: int = Query(20, ge=1, le=200),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict:
    return queries.high_priority(conn, owner_name=owner, limit=limit)


@query_router.get("/dashboard")
def dashboard(owner: str | None = None, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return queries.dashboard(conn, owner_name=owner)


@query_router.get("/activity")
def activity_feed(
    limit: int = Query(30, ge=1, le=500),
    offset: int = Query(0, ge=0),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict:
    return queries.activity_feed(conn, limit=limit, offset=offset)


@query_router.get("/upcoming")
def upcoming(
    days: int = Query(7, ge=1, le=365),
    owner: str | None = None,
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict:
    return queries.upcoming(conn, days=days, owner_name=owner)


@query_router.get("/blocked")
def blocked(limit: int = Query(20, ge=1, le=200), conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return queries.blocked(conn, limit=limit)


@query_router.get("/in-progress")
def in_progress(limit: int = Query(10, ge=1, le=200), conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return queries.in_progress(conn, limit=limit)
