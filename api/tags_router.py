"""
Tags API Router.
"""

import sqlite3

from fastapi import APIRouter, Depends, Query

from api.deps import get_conn
from api.request_models import TagCreate, TagUpdate
from api.response_models import DeletedResponse
from lib.tags import TagService

tags_router = APIRouter(prefix="/tags", tags=["Tags"])


@tags_router.get("")
def list_tags(
    search: str | None = None,
    limit: int = Query(100, ge=1, le=1000),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict:
    tags = TagService(conn).list_all(search=search, limit=limit)
    return {"tags": tags, "count": len(tags)}


@tags_router.get("/by-name/{name}")
def get_tag_by_name(name: str, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return TagService(conn).get(name=name)


@tags_router.get("/{tag_id}")
def get_tag(tag_id: int, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return TagService(conn).get(tag_id=tag_id)


@tags_router.post("", status_code=201)
def create_tag(body: TagCreate, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return TagService(conn).create(body.name, color=body.color, description=body.description)


@tags_router.patch("/{tag_id}")
def update_tag(tag_id: int, body: TagUpdate, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return TagService(conn).update(tag_id, body.model_dump(exclude_unset=True))


@tags_router.delete("/{tag_id}", response_model=DeletedResponse)
def delete_tag(tag_id: int, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return TagService(conn).delete(tag_id)
