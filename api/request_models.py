"""
Pydantic request bodies for the API routers.

Update models are sent as partial documents: routers call
``model_dump(exclude_unset=True)`` so omitted fields stay untouched and
explicit nulls clear the column.
"""

from typing import Any

from pydantic import BaseModel, Field

# ==== Items ====


class ItemCreate(BaseModel):
    title: str = Field(min_length=1)
    description: str | None = None
    item_type: str = "task"
    status: str = "pending"
    priority: int | None = Field(default=None, ge=1, le=4)
    due_date: str | None = None
    target_period: str | None = None
    owner_id: int | None = None
    project_id: int | None = None
    parent_id: int | None = None
    source_meeting_id: int | None = None
    metadata: dict[str, Any] | None = None


class ItemUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    status: str | None = None
    priority: int | None = Field(default=None, ge=1, le=4)
    due_date: str | None = None
    target_period: str | None = None
    owner_id: int | None = None
    project_id: int | None = None
    parent_id: int | None = None
    source_meeting_id: int | None = None
    metadata: dict[str, Any] | None = None


class CompleteBody(BaseModel):
    note: str | None = None


class NoteBody(BaseModel):
    note: str = Field(min_length=1)
    update_type: str = "note"


class CheckinCreate(BaseModel):
    date: str
    note: str | None = None


class CheckinUpdate(BaseModel):
    date: str | None = None
    note: str | None = None
    completed: bool | None = None


class CheckinReschedule(BaseModel):
    date: str
    clear_completed: bool = True


class CheckinComplete(BaseModel):
    checkin_id: int | None = None
    clear: bool = False


class BlockerBody(BaseModel):
    blocker_id: str = Field(description="Blocking item, as 12 or T-12")


class LinkBody(BaseModel):
    to_id: str
    link_type: str = "related"


class PersonLink(BaseModel):
    role: str
    person_id: int | None = None
    person_name: str | None = None


class TagLink(BaseModel):
    tag_id: int | None = None
    tag_name: str | None = None


# ==== Routines ====


class RoutineCreate(BaseModel):
    title: str = Field(min_length=1)
    recurrence_rule: str
    description: str | None = None
    priority: int | None = Field(default=None, ge=1, le=4)
    owner_id: int | None = None
    project_id: int | None = None
    recurrence_time: str | None = None
    recurrence_days: list[Any] | None = None
    recurrence_months: list[int] | None = None


class RoutineUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    priority: int | None = Field(default=None, ge=1, le=4)
    owner_id: int | None = None
    project_id: int | None = None
    recurrence_rule: str | None = None
    recurrence_time: str | None = None
    recurrence_days: list[Any] | None = None
    recurrence_months: list[int] | None = None


class RoutineDateBody(BaseModel):
    date: str | None = None
    notes: str | None = None


# ==== Projects / people / organizations / tags ====


class ProjectCreate(BaseModel):
    slug: str
    name: str
    org: str
    status: str | None = None
    priority: int | None = Field(default=None, ge=1, le=4)
    parent_id: int | None = None
    description: str | None = None


class ProjectUpdate(BaseModel):
    slug: str | None = None
    name: str | None = None
    org: str | None = None
    status: str | None = None
    priority: int | None = Field(default=None, ge=1, le=4)
    parent_id: int | None = None
    description: str | None = None


class PersonCreate(BaseModel):
    name: str = Field(min_length=1)
    email: str | None = None
    org: str | None = None
    notes: str | None = None


class PersonUpdate(BaseModel):
    name: str | None = None
    email: str | None = None
    org: str | None = None
    notes: str | None = None


class OrganizationCreate(BaseModel):
    slug: str
    name: str
    short_name: str | None = None
    description: str | None = None


class OrganizationUpdate(BaseModel):
    name: str | None = None
    short_name: str | None = None
    description: str | None = None
    color: str | None = None


class TagCreate(BaseModel):
    name: str = Field(min_length=1)
    color: str | None = None
    description: str | None = None


class TagUpdate(BaseModel):
    name: str | None = None
    color: str | None = None
    description: str | None = None


# ==== Sync ====


class SyncOrgsBody(BaseModel):
    orgs: list[str] | None = None


class SyncFileBody(BaseModel):
    path: str


class MeetingSyncBody(BaseModel):
    path: str
    dry_run: bool = False


class ResolveConflictBody(BaseModel):
    item_id: str
    direction: str = "file"


# ==== Google ====


class AuthCodeBody(BaseModel):
    code: str = Field(min_length=1)
