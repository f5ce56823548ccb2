"""
People API Router.
"""

import sqlite3

from fastapi import APIRouter, Depends, Query

from api.deps import get_conn
from api.request_models import PersonCreate, PersonUpdate
from api.response_models import DeletedResponse, ListResponse
from lib.people import PeopleService

people_router = APIRouter(prefix="/people", tags=["People"])


@people_router.get("", response_model=ListResponse)
def list_people(
    search: str | None = None,
    org: str | None = None,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict:
    result = PeopleService(conn).list_all(search=search, org=org, limit=limit, offset=offset)
    return {**result, "items": result["people"]}


@people_router.get("/{person_id}")
def get_person(person_id: int, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return PeopleService(conn).get(person_id)


@people_router.post("", status_code=201)
def create_person(body: PersonCreate, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return PeopleService(conn).create(body.name, email=body.email, org=body.org, notes=body.notes)


@people_router.patch("/{person_id}")
def update_person(person_id: int, body: PersonUpdate, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return PeopleService(conn).update(person_id, body.model_dump(exclude_unset=True))


@people_router.delete("/{person_id}", response_model=DeletedResponse)
def delete_person(person_id: int, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return PeopleService(conn).delete(person_id)
