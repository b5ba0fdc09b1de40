"""User schemas."""

from uuid import UUID

from pydantic import BaseModel

from app.db.models import Role
from app.schemas.base import BaseSchema


class UserRead(BaseSchema):
    """Public profile fields of a user."""

    id: UUID
    name: str
    role: Role
    profile_pic_url: str | None = None
    department: str | None = None


class Identity(BaseModel):
    """
    Caller identity decoded from a bearer token.

    faculty_id is only present for FACULTY tokens.
    """

    user_id: UUID
    role: Role
    faculty_id: UUID | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN
