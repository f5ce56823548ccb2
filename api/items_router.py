"""
Items API Router.

Tasks, workstreams and goals, plus their notes, check-ins, blockers,
links, people and tags. Item paths accept both ``12`` and ``T-12``.
"""

import logging
import sqlite3

from fastapi import APIRouter, Depends, Query

from api.deps import get_conn, item_id_param
from api.request_models import (
    BlockerBody,
    CheckinComplete,
    CheckinCreate,
    CheckinReschedule,
    CheckinUpdate,
    CompleteBody,
    ItemCreate,
    ItemUpdate,
    LinkBody,
    NoteBody,
    PersonLink,
    TagLink,
)
from api.response_models import DeletedResponse, ListResponse
from lib.items import ItemService
from lib.models import parse_task_id

logger = logging.getLogger(__name__)

items_router = APIRouter(prefix="/items", tags=["Items"])


@items_router.get("", response_model=ListResponse)
def list_items(
    status: list[str] | None = Query(None),
    item_type: list[str] | None = Query(None),
    owner_id: int | None = None,
    owner_name: str | None = None,
    project_id: int | None = None,
    project_slug: str | None = None,
    org_slug: str | None = None,
    parent_id: int | None = None,
    source_meeting_id: int | None = None,
    due_before: str | None = None,
    due_after: str | None = None,
    target_period: str | None = None,
    search: str | None = None,
    include_completed: bool = False,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict:
    return ItemService(conn).list_items(
        status=status,
        item_type=item_type,
        owner_id=owner_id,
        owner_name=owner_name,
        project_id=project_id,
        project_slug=project_slug,
        org_slug=org_slug,
        parent_id=parent_id,
        source_meeting_id=source_meeting_id,
        due_before=due_before,
        due_after=due_after,
        target_period=target_period,
        search=search,
        include_completed=include_completed,
        limit=limit,
        offset=offset,
    )


@items_router.post("", status_code=201)
def create_item(body: ItemCreate, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return ItemService(conn).create(body.model_dump())


# ==== Check-ins across items ====


@items_router.get("/checkins/due")
def due_checkins(include_future: bool = False, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    checkins = ItemService(conn).due_checkins(include_future=include_future)
    return {"checkins": checkins, "count": len(checkins)}


@items_router.patch("/checkins/{checkin_id}")
def update_checkin(checkin_id: int, body: CheckinUpdate, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return ItemService(conn).update_checkin(checkin_id, on_date=body.date, note=body.note, completed=body.completed)


@items_router.delete("/checkins/{checkin_id}", response_model=DeletedResponse)
def delete_checkin(checkin_id: int, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return ItemService(conn).delete_checkin(checkin_id)


# ==== Single item ====


@items_router.get("/{item_id}")
def get_item(item: int = Depends(item_id_param), conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return ItemService(conn).get(item)


@items_router.patch("/{item_id}")
def update_item(
    body: ItemUpdate, item: int = Depends(item_id_param), conn: sqlite3.Connection = Depends(get_conn)
) -> dict:
    return ItemService(conn).update(item, body.model_dump(exclude_unset=True))


@items_router.post("/{item_id}/complete")
def complete_item(
    body: CompleteBody | None = None,
    item: int = Depends(item_id_param),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict:
    return ItemService(conn).complete(item, note=body.note if body else None)


@items_router.delete("/{item_id}", response_model=DeletedResponse)
def delete_item(item: int = Depends(item_id_param), conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return ItemService(conn).delete(item)


@items_router.post("/{item_id}/restore")
def restore_item(item: int = Depends(item_id_param), conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return ItemService(conn).restore(item)


@items_router.post("/{item_id}/notes", status_code=201)
def add_note(body: NoteBody, item: int = Depends(item_id_param), conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return ItemService(conn).add_note(item, body.note, update_type=body.update_type)


# ==== Check-ins ====


@items_router.get("/{item_id}/checkins")
def list_checkins(
    include_completed: bool = False,
    item: int = Depends(item_id_param),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict:
    return ItemService(conn).list_checkins(item, include_completed=include_completed)


@items_router.post("/{item_id}/checkins", status_code=201)
def add_checkin(
    body: CheckinCreate, item: int = Depends(item_id_param), conn: sqlite3.Connection = Depends(get_conn)
) -> dict:
    return ItemService(conn).add_checkin(item, body.date, note=body.note)


@items_router.post("/{item_id}/checkins/reschedule")
def reschedule_checkin(
    body: CheckinReschedule, item: int = Depends(item_id_param), conn: sqlite3.Connection = Depends(get_conn)
) -> dict:
    return ItemService(conn).reschedule_checkin(item, body.date, clear_completed=body.clear_completed)


@items_router.post("/{item_id}/checkins/complete")
def complete_checkin(
    body: CheckinComplete | None = None,
    item: int = Depends(item_id_param),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict:
    body = body or CheckinComplete()
    return ItemService(conn).complete_checkin(item, checkin_id=body.checkin_id, clear=body.clear)


# ==== Blockers and links ====


@items_router.get("/{item_id}/blockers")
def get_blockers(item: int = Depends(item_id_param), conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return ItemService(conn).get_blockers(item)


@items_router.get("/{item_id}/blocking")
def get_blocking(item: int = Depends(item_id_param), conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return ItemService(conn).get_blocking(item)


@items_router.post("/{item_id}/blockers", status_code=201)
def add_blocker(
    body: BlockerBody, item: int = Depends(item_id_param), conn: sqlite3.Connection = Depends(get_conn)
) -> dict:
    return ItemService(conn).add_blocker(item, parse_task_id(body.blocker_id))


@items_router.delete("/{item_id}/blockers/{blocker_id}")
def remove_blocker(
    blocker_id: str, item: int = Depends(item_id_param), conn: sqlite3.Connection = Depends(get_conn)
) -> dict:
    return ItemService(conn).remove_blocker(item, parse_task_id(blocker_id))


@items_router.get("/{item_id}/links")
def get_links(item: int = Depends(item_id_param), conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return ItemService(conn).get_links(item)


@items_router.post("/{item_id}/links", status_code=201)
def add_link(body: LinkBody, item: int = Depends(item_id_param), conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return ItemService(conn).add_link(item, parse_task_id(body.to_id), body.link_type)


@items_router.delete("/{item_id}/links/{to_id}")
def remove_link(
    to_id: str,
    link_type: str = "related",
    item: int = Depends(item_id_param),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict:
    return ItemService(conn).remove_link(item, parse_task_id(to_id), link_type)


# ==== People and tags ====


@items_router.get("/{item_id}/people")
def get_people(item: int = Depends(item_id_param), conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return ItemService(conn).get_people(item)


@items_router.post("/{item_id}/people", status_code=201)
def add_person(
    body: PersonLink, item: int = Depends(item_id_param), conn: sqlite3.Connection = Depends(get_conn)
) -> dict:
    return ItemService(conn).add_person(item, body.role, person_id=body.person_id, person_name=body.person_name)


@items_router.delete("/{item_id}/people/{person_id}")
def remove_person(
    person_id: int,
    role: str,
    item: int = Depends(item_id_param),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict:
    return ItemService(conn).remove_person(item, role, person_id=person_id)


@items_router.get("/{item_id}/tags")
def get_tags(item: int = Depends(item_id_param), conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return ItemService(conn).get_tags(item)


@items_router.post("/{item_id}/tags", status_code=201)
def add_tag(body: TagLink, item: int = Depends(item_id_param), conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return ItemService(conn).add_tag(item, tag_id=body.tag_id, tag_name=body.tag_name)


@items_router.delete("/{item_id}/tags/{tag_id}")
def remove_tag(tag_id: int, item: int = Depends(item_id_param), conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return ItemService(conn).remove_tag(item, tag_id=tag_id)
