"""
Routines API Router.

Recurring items with per-date completions and skips.
"""

import sqlite3

from fastapi import APIRouter, Depends

from api.deps import get_conn
from api.request_models import RoutineCreate, RoutineDateBody, RoutineUpdate
from api.response_models import DeletedResponse
from lib.routine_service import RoutineService

routines_router = APIRouter(prefix="/routines", tags=["Routines"])


@routines_router.get("")
def list_routines(date: str | None = None, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return RoutineService(conn).list_all(date)


@routines_router.get("/due")
def due_routines(date: str | None = None, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return RoutineService(conn).due(date)


@routines_router.get("/overdue")
def overdue_routines(as_of: str | None = None, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return RoutineService(conn).overdue(as_of)


@routines_router.get("/{routine_id}")
def get_routine(routine_id: int, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return RoutineService(conn).get(routine_id)


@routines_router.post("", status_code=201)
def create_routine(body: RoutineCreate, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return RoutineService(conn).create(body.model_dump())


@routines_router.patch("/{routine_id}")
def update_routine(routine_id: int, body: RoutineUpdate, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return RoutineService(conn).update(routine_id, body.model_dump(exclude_unset=True))


@routines_router.delete("/{routine_id}", response_model=DeletedResponse)
def delete_routine(routine_id: int, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return RoutineService(conn).delete(routine_id)


# ==== Completions and skips ====


@routines_router.post("/{routine_id}/complete")
def complete_routine(
    routine_id: int, body: RoutineDateBody | None = None, conn: sqlite3.Connection = Depends(get_conn)
) -> dict:
    body = body or RoutineDateBody()
    return RoutineService(conn).complete(routine_id, body.date, notes=body.notes)


@routines_router.post("/{routine_id}/uncomplete")
def uncomplete_routine(
    routine_id: int, body: RoutineDateBody | None = None, conn: sqlite3.Connection = Depends(get_conn)
) -> dict:
    return RoutineService(conn).uncomplete(routine_id, body.date if body else None)


@routines_router.post("/{routine_id}/skip")
def skip_routine(
    routine_id: int, body: RoutineDateBody | None = None, conn: sqlite3.Connection = Depends(get_conn)
) -> dict:
    body = body or RoutineDateBody()
    return RoutineService(conn).skip(routine_id, body.date, notes=body.notes)


@routines_router.post("/{routine_id}/unskip")
def unskip_routine(
    routine_id: int, body: RoutineDateBody | None = None, conn: sqlite3.Connection = Depends(get_conn)
) -> dict:
    return RoutineService(conn).unskip(routine_id, body.date if body else None)


@routines_router.post("/{routine_id}/skip-overdue")
def skip_all_overdue(routine_id: int, as_of: str | None = None, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return RoutineService(conn).skip_all_overdue(routine_id, as_of)


@routines_router.post("/{routine_id}/complete-overdue")
def complete_all_overdue(
    routine_id: int, as_of: str | None = None, conn: sqlite3.Connection = Depends(get_conn)
) -> dict:
    return RoutineService(conn).complete_all_overdue(routine_id, as_of)
