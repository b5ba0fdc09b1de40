"""Project schemas."""

from uuid import UUID

from pydantic import Field

from app.db.models import ProjectStatus
from app.schemas.base import BaseSchema, IDMixin, TimestampMixin


class ProjectCreate(BaseSchema):
    """Schema for a faculty member creating a project."""

    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    positions_available: int = Field(0, ge=0)


class ProjectRead(BaseSchema, IDMixin, TimestampMixin):
    """Schema for reading project data."""

    faculty_id: UUID
    title: str
    description: str | None = None
    positions_available: int
    status: ProjectStatus
