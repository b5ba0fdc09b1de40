"""Room-level chat operations: creation, participant snapshots and reactions."""

import logging

from app.db.models import Project, User
from app.schemas.chat import (
    ChatEventKind,
    ChatRoom,
    ChatRoomSnapshot,
    ParticipantSnapshot,
    ReactionResponse,
)
from app.services.chat_store import ChatRoomStore
from app.services.errors import NotFound, PermissionDenied
from app.services.realtime import RealtimePublisher
from app.services.roster_sync import participant_snapshot

logger = logging.getLogger(__name__)


class ChatRooms:
    """Entry point for reading rooms and the operations that are not message sends or reads."""

    def __init__(self, chat_store: ChatRoomStore, publisher: RealtimePublisher):
        self.chat_store = chat_store
        self.publisher = publisher

    async def initialize_room(self, project: Project, faculty_user: User) -> ChatRoom | None:
        """
        Create the room for a freshly created project.

        Best-effort: the project row is already committed, so a failure is
        logged and left for reconciliation instead of failing the request.
        """
        try:
            return await self.chat_store.create_room(
                str(project.id), project.title, participant_snapshot(faculty_user)
            )
        except Exception:
            logger.exception("Failed to initialize chat room for project %s", project.id)
            return None

    async def require_participant(self, project_id: str, user_id: str) -> ParticipantSnapshot:
        participant = await self.chat_store.get_participant(project_id, user_id)
        if participant is None:
            raise PermissionDenied("You are not a participant in this chat")
        return participant

    async def get_snapshot(self, project_id: str, user_id: str) -> ChatRoomSnapshot:
        """Full room as seen by user_id, including their own unread count."""
        room = await self.chat_store.get_room(project_id)
        if room is None:
            raise NotFound("Chat room not found")
        if room.participant(user_id) is None:
            raise PermissionDenied("You are not a participant in this chat")

        return ChatRoomSnapshot(
            project_id=room.project_id,
            project_title=room.project_title,
            faculty=room.faculty,
            participants=room.participants,
            messages=room.messages,
            unread_count=room.unread_count_for(user_id),
            last_activity=room.last_activity,
            created_at=room.created_at,
            updated_at=room.updated_at,
        )

    async def toggle_reaction(
        self,
        project_id: str,
        message_id: str,
        user_id: str,
        emoji: str,
    ) -> ReactionResponse:
        await self.require_participant(project_id, user_id)
        reactions = await self.chat_store.toggle_reaction(project_id, message_id, user_id, emoji)

        await self.publisher.publish(
            project_id,
            ChatEventKind.REACTION_UPDATED,
            {
                "message_id": message_id,
                "user_id": user_id,
                "emoji": emoji,
                "reactions": [r.model_dump() for r in reactions],
            },
        )
        return ReactionResponse(message_id=message_id, reactions=reactions)
