"""Pydantic schemas for API request/response validation."""

from app.schemas.user import Identity, UserRead
from app.schemas.projects import ProjectCreate, ProjectRead
from app.schemas.applications import (
    ApplicationCreate,
    ApplicationDecisionResponse,
    ApplicationRead,
    ApplicationStatusUpdate,
    ParticipantRead,
)
from app.schemas.chat import (
    ChatEvent,
    ChatEventKind,
    ChatRoom,
    ChatRoomSnapshot,
    Message,
    ParticipantSnapshot,
)

__all__ = [
    # User
    "Identity",
    "UserRead",
    # Projects
    "ProjectCreate",
    "ProjectRead",
    # Applications
    "ApplicationCreate",
    "ApplicationDecisionResponse",
    "ApplicationRead",
    "ApplicationStatusUpdate",
    "ParticipantRead",
    # Chat
    "ChatEvent",
    "ChatEventKind",
    "ChatRoom",
    "ChatRoomSnapshot",
    "Message",
    "ParticipantSnapshot",
]
