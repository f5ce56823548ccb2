"""
Organizations API Router.
"""

import sqlite3

from fastapi import APIRouter, Depends

from api.deps import get_conn
from api.request_models import OrganizationCreate, OrganizationUpdate
from api.response_models import DeletedResponse
from lib.organizations import OrganizationService

organizations_router = APIRouter(prefix="/organizations", tags=["Organizations"])


@organizations_router.get("")
def list_organizations(conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return OrganizationService(conn).list_all()


@organizations_router.get("/{slug}")
def get_organization(slug: str, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return OrganizationService(conn).get(slug)


@organizations_router.post("", status_code=201)
def create_organization(body: OrganizationCreate, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return OrganizationService(conn).create(
        body.slug, body.name, short_name=body.short_name, description=body.description
    )


@organizations_router.patch("/{slug}")
def update_organization(slug: str, body: OrganizationUpdate, conn: sqlite3.Connection = Depends(get_conn)) -> dict:
    return OrganizationService(conn).update(slug, body.model_dump(exclude_unset=True))


@organizations_router.delete("/{slug}", response_model=DeletedResponse)
def delete_organization(
    slug: str,
    force: bool = False,
    delete_items: bool = True,
    delete_people: bool = False,
    conn: sqlite3.Connection = Depends(get_conn),
) -> dict:
    service = OrganizationService(conn)
    if force:
        return service.delete_force(slug, delete_items=delete_items, delete_people=delete_people)
    return service.delete(slug)
