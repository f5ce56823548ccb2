"""
Projects API Router.
"""

import sqlite3

from fastapi import APIRouter, Depends, Query

from api.deps import get_conn
from api.request_models import ProjectCreate, ProjectUpdate
from api.response_models import DeletedResponse, ListResponse
from lib.errors import NotFoundError
from lib.projects import ProjectService

projects_router = APIRouter(prefix="/projects", tags=["Projects"])


@projects_router.get("", response_model=ListResponse)
def list_projects(
    org: str | None = None,
    status: str | None = None,
    include_children: bool = True,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict:
    result = ProjectService(conn).list_all(
        org=org, status=status, include_children=include_children, limit=limit, offset=offset
    )
    return {**result, "items": result["projects"]}


@projects_router.get("/stats")
def projects_with_task_stats(
    status: str | None = None,
    sort_by: str = "activity",
    limit: int = Query(20, ge=1, le=200),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict:
    return ProjectService(conn).with_task_stats(status=status, sort_by=sort_by, limit=limit)


@projects_router.get("/{slug}/path")
def resolve_project_path(slug: str, org: str | None = None, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    resolved = ProjectService(conn).resolve_path(slug, org)
    if resolved is None:
        raise NotFoundError(f'Project "{slug}" not found')
    return resolved


@projects_router.get("/{slug}")
def get_project(slug: str, org: str | None = None, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return ProjectService(conn).get(slug, org)


@projects_router.post("", status_code=201)
def create_project(body: ProjectCreate, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return ProjectService(conn).create(body.model_dump())


@projects_router.patch("/{project_id}")
def update_project(project_id: int, body: ProjectUpdate, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return ProjectService(conn).update(project_id, body.model_dump(exclude_unset=True))


@projects_router.delete("/{project_id}", response_model=DeletedResponse)
def delete_project(
    project_id: int,
    on_items: str = Query("fail", description="fail, orphan or cascade"),
    on_children: str = Query("fail", description="fail, orphan or cascade"),
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict:
    return ProjectService(conn).delete(project_id, on_items=on_items, on_children=on_children)
