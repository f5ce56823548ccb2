"""
Shared Pydantic response models for API endpoints.

Most endpoints return the service dicts directly; these models cover the
envelopes that several routers share so the OpenAPI schema is not empty.
"""

from typing import Any

from pydantic import BaseModel, Field

# ==== List Envelope ====
# Shape: {items, total, limit, offset}


class ListResponse(BaseModel):
    """Paginated list result."""

    items: list[Any] = Field(default_factory=list, description="Result rows")
    total: int = Field(description="Rows matching the filters, ignoring limit/offset")
    limit: int | None = None
    offset: int | None = None

    model_config = {"extra": "allow"}


# ==== Deletion ====


class DeletedResponse(BaseModel):
    deleted: bool = Field(description="Whether a row was removed or soft-deleted")

    model_config = {"extra": "allow"}


# ==== Health Check ====


class HealthResponse(BaseModel):
    """Health check result."""

    status: str = Field(description="ok or error")
    timestamp: str = Field(description="ISO timestamp")
    database: dict[str, Any] = Field(default_factory=dict, description="Path, schema version and row counts")


# ==== Google ====


class IntegrationStatus(BaseModel):
    """Configured/authenticated state of a Google integration."""

    configured: bool
    authenticated: bool
    email: str | None = None
    error: str | None = None
