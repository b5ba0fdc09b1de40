"""Application schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import Field

from app.db.models import ApplicationStatus
from app.schemas.base import BaseSchema, IDMixin, TimestampMixin


class ApplicationCreate(BaseSchema):
    """Schema for a student applying to a project."""

    cover_letter: str | None = Field(None, max_length=10000)
    resume_url: str | None = Field(None, max_length=2048)


class ApplicationStatusUpdate(BaseSchema):
    """Faculty decision on an application."""

    status: ApplicationStatus


class ApplicationRead(BaseSchema, IDMixin, TimestampMixin):
    """Schema for reading application data."""

    project_id: UUID
    user_id: UUID
    status: ApplicationStatus
    cover_letter: str | None = None
    resume_url: str | None = None


class ApplicationDecisionResponse(BaseSchema):
    """Result of a decision; positions_available is the committed value."""

    message: str
    changed: bool
    positions_available: int
    application: ApplicationRead


class ParticipantRead(BaseSchema):
    """Membership row in the relational store."""

    project_id: UUID
    user_id: UUID
    joined_at: datetime
