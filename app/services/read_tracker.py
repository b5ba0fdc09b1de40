"""Read receipts and per-user unread counters."""

import logging

from app.schemas.chat import (
    ChatEventKind,
    MarkAllReadResponse,
    MarkOneReadResponse,
    UnreadCount,
    UnreadSummaryResponse,
)
from app.services.chat_store import ChatRoomStore
from app.services.errors import PermissionDenied
from app.services.realtime import RealtimePublisher

logger = logging.getLogger(__name__)


def _count_for(counts: list[UnreadCount], user_id: str) -> int:
    for entry in counts:
        if entry.user_id == user_id:
            return entry.count
    return 0


class ReadTracker:
    """
    Keeps read_by receipts and unread counters in lockstep.

    The counter is a cache of how many messages lack a receipt for the user.
    Both operations are idempotent: repeating them never decrements twice.
    """

    def __init__(self, chat_store: ChatRoomStore, publisher: RealtimePublisher):
        self.chat_store = chat_store
        self.publisher = publisher

    async def _require_participant(self, project_id: str, user_id: str) -> None:
        if await self.chat_store.get_participant(project_id, user_id) is None:
            raise PermissionDenied("You are not a participant in this chat")

    async def mark_all_read(self, project_id: str, user_id: str) -> MarkAllReadResponse:
        await self._require_participant(project_id, user_id)
        marked, counts = await self.chat_store.mark_all_read(project_id, user_id)

        if marked:
            logger.debug("User %s read %d messages in project %s", user_id, marked, project_id)
            await self.publisher.publish(
                project_id,
                ChatEventKind.MESSAGES_READ,
                {
                    "user_id": user_id,
                    "count": marked,
                    "unread_counts": [entry.model_dump() for entry in counts],
                },
            )
        return MarkAllReadResponse(messages_marked_as_read=marked, unread_count=_count_for(counts, user_id))

    async def mark_one_read(self, project_id: str, user_id: str, message_id: str) -> MarkOneReadResponse:
        await self._require_participant(project_id, user_id)
        marked, counts = await self.chat_store.mark_one_read(project_id, user_id, message_id)

        if marked:
            await self.publisher.publish(
                project_id,
                ChatEventKind.MESSAGE_READ,
                {
                    "message_id": message_id,
                    "user_id": user_id,
                    "unread_counts": [entry.model_dump() for entry in counts],
                },
            )
        return MarkOneReadResponse(
            message_id=message_id,
            marked=marked,
            unread_count=_count_for(counts, user_id),
        )

    async def unread_summary(self, user_id: str) -> UnreadSummaryResponse:
        return UnreadSummaryResponse(unread_counts=await self.chat_store.unread_summary(user_id))
