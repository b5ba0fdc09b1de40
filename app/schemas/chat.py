"""Pydantic schemas for the project chat aggregate and its API."""

import base64
from datetime import datetime
from enum import Enum as PyEnum
from typing import Any

from pydantic import BaseModel, Field, field_serializer

from app.schemas.base import DocumentSchema


# Document shapes (also returned by the API)
class ParticipantSnapshot(DocumentSchema):
    """Copy of a user's profile held inside the chat room."""

    id: str
    name: str
    role: str
    profile_pic_url: str | None = None


class FacultyRef(DocumentSchema):
    """Owning faculty member of the room."""

    id: str
    name: str


class UnreadCount(DocumentSchema):
    """Cached count of messages the user has not read yet."""

    user_id: str
    count: int = Field(0, ge=0)


class EmbeddedFile(DocumentSchema):
    """Small attachment stored inline in the message."""

    data: bytes
    content_type: str
    filename: str
    size: int

    @field_serializer("data", when_used="json")
    def _encode_data(self, data: bytes) -> str:
        return base64.b64encode(data).decode("ascii")


class Attachment(DocumentSchema):
    """Large attachment kept in object storage; only the URL lives here."""

    url: str
    type: str  # 'image', 'video', 'application', ...
    filename: str
    size: int


class Reaction(DocumentSchema):
    user_id: str
    emoji: str


class ReadReceipt(DocumentSchema):
    user_id: str
    read_at: datetime


class Message(DocumentSchema):
    """
    A chat message.

    Immutable once appended, except reactions and read_by which only change
    by single-element toggles/inserts.
    """

    id: str
    sender: ParticipantSnapshot
    content: str | None = None
    embedded_files: list[EmbeddedFile] = Field(default_factory=list)
    attachments: list[Attachment] = Field(default_factory=list)
    reactions: list[Reaction] = Field(default_factory=list)
    read_by: list[ReadReceipt] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class ChatRoom(DocumentSchema):
    """One document per project."""

    project_id: str
    project_title: str
    faculty: FacultyRef
    participants: list[ParticipantSnapshot] = Field(default_factory=list)
    unread_counts: list[UnreadCount] = Field(default_factory=list)
    messages: list[Message] = Field(default_factory=list)
    last_activity: datetime
    created_at: datetime
    updated_at: datetime

    def unread_count_for(self, user_id: str) -> int:
        for entry in self.unread_counts:
            if entry.user_id == user_id:
                return entry.count
        return 0

    def participant(self, user_id: str) -> ParticipantSnapshot | None:
        for participant in self.participants:
            if participant.id == user_id:
                return participant
        return None


class RoomMembership(DocumentSchema):
    """Roster and unread counters of a room, read together."""

    participants: list[ParticipantSnapshot] = Field(default_factory=list)
    unread_counts: list[UnreadCount] = Field(default_factory=list)

    def event_payload(self) -> dict[str, Any]:
        return {
            "participants": [p.model_dump(mode="json") for p in self.participants],
            "unread_counts": [u.model_dump(mode="json") for u in self.unread_counts],
        }


# Request schemas
class ReactionRequest(BaseModel):
    """Request to toggle a reaction on a message."""

    emoji: str = Field(..., min_length=1, max_length=32)


# Response schemas
class ChatRoomSnapshot(BaseModel):
    """Room as seen by one participant, with their own unread count."""

    project_id: str
    project_title: str
    faculty: FacultyRef
    participants: list[ParticipantSnapshot]
    messages: list[Message]
    unread_count: int
    last_activity: datetime
    created_at: datetime
    updated_at: datetime


class SendMessageResponse(BaseModel):
    message: Message


class ReactionResponse(BaseModel):
    message_id: str
    reactions: list[Reaction]


class MarkAllReadResponse(BaseModel):
    messages_marked_as_read: int
    unread_count: int


class MarkOneReadResponse(BaseModel):
    message_id: str
    marked: bool
    unread_count: int


class UnreadSummaryItem(BaseModel):
    project_id: str
    project_title: str
    unread_count: int


class UnreadSummaryResponse(BaseModel):
    """Unread counters for every room the caller participates in."""

    unread_counts: list[UnreadSummaryItem]


class ReconcileReport(BaseModel):
    """What one reconciliation pass changed in a room."""

    project_id: str
    room_created: bool = False
    added: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.room_created or bool(self.added) or bool(self.removed)


# Realtime events
class ChatEventKind(str, PyEnum):
    """Event names published on a project's realtime topic."""

    PARTICIPANT_ADDED = "participant-added"
    PARTICIPANT_REMOVED = "participant-removed"
    NEW_MESSAGE = "new-message"
    MESSAGE_READ = "message-read"
    MESSAGES_READ = "messages-read"
    REACTION_UPDATED = "reaction-updated"


class ChatEvent(BaseModel):
    """Self-contained event: payloads carry full sets, never deltas."""

    project_id: str
    kind: ChatEventKind
    payload: dict[str, Any]
