"""
Chat aggregate store (one MongoDB document per project).

Every mutation is a single targeted update ($push, $pull, $inc, $set on
array elements, or a server-side update pipeline). Nothing here reads a
room, modifies it in Python and writes it back, because many senders,
readers and the roster synchronizer write to the same document at once.
"""

import logging
from datetime import datetime, timezone

from pymongo import ReturnDocument
from pymongo.asynchronous.collection import AsyncCollection
from pymongo.errors import DuplicateKeyError

from app.schemas.chat import (
    ChatRoom,
    FacultyRef,
    Message,
    ParticipantSnapshot,
    Reaction,
    RoomMembership,
    UnreadCount,
    UnreadSummaryItem,
)
from app.services.errors import NotFound, PermissionDenied

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _unread_counts(doc: dict | None) -> list[UnreadCount]:
    if not doc:
        return []
    return [UnreadCount.model_validate(entry) for entry in doc.get("unread_counts", [])]


class ChatRoomStore:
    """Targeted read/write operations on the chat_rooms collection."""

    def __init__(self, collection: AsyncCollection):
        self.collection = collection

    async def ensure_indexes(self) -> None:
        await self.collection.create_index("project_id", unique=True)
        await self.collection.create_index("participants.id")

    # =========================================================================
    # ROOMS
    # =========================================================================

    async def create_room(
        self,
        project_id: str,
        project_title: str,
        faculty: ParticipantSnapshot,
    ) -> ChatRoom:
        """
        Create the room for a project, seeded with the faculty owner.

        Idempotent: if the room already exists it is returned unchanged.
        """
        now = _now()
        doc = {
            "project_id": project_id,
            "project_title": project_title,
            "faculty": FacultyRef(id=faculty.id, name=faculty.name).model_dump(),
            "participants": [faculty.model_dump()],
            "unread_counts": [{"user_id": faculty.id, "count": 0}],
            "messages": [],
            "last_activity": now,
            "created_at": now,
            "updated_at": now,
        }
        try:
            await self.collection.insert_one(doc)
        except DuplicateKeyError:
            logger.info("Chat room for project %s already exists", project_id)
            existing = await self.get_room(project_id)
            if existing is None:
                raise
            return existing
        logger.info("Chat room initialized for project %s", project_id)
        return ChatRoom.model_validate(doc)

    async def get_room(self, project_id: str) -> ChatRoom | None:
        doc = await self.collection.find_one({"project_id": project_id})
        return ChatRoom.model_validate(doc) if doc else None

    async def _ensure_room(self, project_id: str) -> None:
        if await self.collection.count_documents({"project_id": project_id}, limit=1) == 0:
            raise NotFound("Chat room not found")

    async def list_project_ids(self) -> set[str]:
        return set(await self.collection.distinct("project_id"))

    # =========================================================================
    # PARTICIPANTS
    # =========================================================================

    async def get_participant(self, project_id: str, user_id: str) -> ParticipantSnapshot | None:
        """Return the caller's participant entry, or None if they are not in the room."""
        doc = await self.collection.find_one(
            {"project_id": project_id},
            projection={"_id": 0, "participants": {"$elemMatch": {"id": user_id}}},
        )
        if doc is None:
            raise NotFound("Chat room not found")
        matches = doc.get("participants") or []
        return ParticipantSnapshot.model_validate(matches[0]) if matches else None

    async def get_roster(self, project_id: str) -> list[ParticipantSnapshot] | None:
        """Participants in room order, or None when the room does not exist."""
        doc = await self.collection.find_one(
            {"project_id": project_id},
            projection={"_id": 0, "participants": 1},
        )
        if doc is None:
            return None
        return [ParticipantSnapshot.model_validate(p) for p in doc.get("participants", [])]

    async def get_membership(self, project_id: str) -> RoomMembership | None:
        """Participants and unread counters in one read, or None when the room does not exist."""
        doc = await self.collection.find_one(
            {"project_id": project_id},
            projection={"_id": 0, "participants": 1, "unread_counts": 1},
        )
        return RoomMembership.model_validate(doc) if doc is not None else None

    async def add_participant(self, project_id: str, participant: ParticipantSnapshot) -> bool:
        """
        Append a participant and their unread counter.

        The initial counter equals the room's current message count, computed
        by the server in the same update. Returns False if the user was
        already a participant.
        """
        entry = participant.model_dump()
        result = await self.collection.update_one(
            {"project_id": project_id, "participants.id": {"$ne": participant.id}},
            [
                {
                    "$set": {
                        "participants": {
                            "$concatArrays": [
                                {"$ifNull": ["$participants", []]},
                                [{"$literal": entry}],
                            ]
                        },
                        "unread_counts": {
                            "$concatArrays": [
                                {
                                    "$filter": {
                                        "input": {"$ifNull": ["$unread_counts", []]},
                                        "cond": {"$ne": ["$$this.user_id", {"$literal": participant.id}]},
                                    }
                                },
                                [
                                    {
                                        "user_id": {"$literal": participant.id},
                                        "count": {"$size": {"$ifNull": ["$messages", []]}},
                                    }
                                ],
                            ]
                        },
                        "updated_at": _now(),
                    }
                }
            ],
        )
        if result.matched_count == 0:
            await self._ensure_room(project_id)
            return False
        return True

    async def remove_participant(self, project_id: str, user_id: str) -> bool:
        """Pull the user's participant and unread entries. Returns False if neither existed."""
        result = await self.collection.update_one(
            {
                "project_id": project_id,
                "$or": [{"participants.id": user_id}, {"unread_counts.user_id": user_id}],
            },
            {
                "$pull": {
                    "participants": {"id": user_id},
                    "unread_counts": {"user_id": user_id},
                },
                "$set": {"updated_at": _now()},
            },
        )
        if result.matched_count == 0:
            await self._ensure_room(project_id)
            return False
        return True

    # =========================================================================
    # MESSAGES
    # =========================================================================

    async def append_message(self, project_id: str, message: Message) -> list[UnreadCount]:
        """
        Append a message and bump every other participant's unread counter.

        Both happen in one update, guarded by the sender still being a
        participant. Returns the room's unread counters after the update.
        """
        now = _now()
        updated = await self.collection.find_one_and_update(
            {"project_id": project_id, "participants.id": message.sender.id},
            {
                "$push": {"messages": message.model_dump()},
                "$inc": {"unread_counts.$[other].count": 1},
                "$set": {"last_activity": now, "updated_at": now},
            },
            array_filters=[{"other.user_id": {"$ne": message.sender.id}}],
            projection={"_id": 0, "unread_counts": 1},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            await self._ensure_room(project_id)
            raise PermissionDenied("You are not a participant in this chat")
        return _unread_counts(updated)

    async def toggle_reaction(
        self,
        project_id: str,
        message_id: str,
        user_id: str,
        emoji: str,
    ) -> list[Reaction]:
        """Remove the (user, emoji) reaction if present, otherwise add it."""
        reaction = {"user_id": user_id, "emoji": emoji}
        now = _now()
        removed = await self.collection.update_one(
            {
                "project_id": project_id,
                "messages": {"$elemMatch": {"id": message_id, "reactions": {"$elemMatch": reaction}}},
            },
            {
                "$pull": {"messages.$.reactions": reaction},
                "$set": {"messages.$.updated_at": now},
            },
        )
        if removed.matched_count == 0:
            added = await self.collection.update_one(
                {"project_id": project_id, "messages.id": message_id},
                {
                    "$addToSet": {"messages.$.reactions": reaction},
                    "$set": {"messages.$.updated_at": now},
                },
            )
            if added.matched_count == 0:
                await self._ensure_room(project_id)
                raise NotFound("Message not found")

        doc = await self.collection.find_one(
            {"project_id": project_id},
            projection={"_id": 0, "messages.id": 1, "messages.reactions": 1},
        )
        for message in (doc or {}).get("messages", []):
            if message.get("id") == message_id:
                return [Reaction.model_validate(r) for r in message.get("reactions", [])]
        raise NotFound("Message not found")

    # =========================================================================
    # READ RECEIPTS
    # =========================================================================

    async def mark_one_read(
        self,
        project_id: str,
        user_id: str,
        message_id: str,
    ) -> tuple[bool, list[UnreadCount]]:
        """
        Add a read receipt for one message and decrement the user's counter (floor 0).

        Matches only while the message lacks a receipt for the user, so a
        repeated call changes nothing. Returns (marked, unread counters).
        """
        updated = await self.collection.find_one_and_update(
            {
                "project_id": project_id,
                "messages": {"$elemMatch": {"id": message_id, "read_by.user_id": {"$ne": user_id}}},
            },
            {
                "$push": {"messages.$[msg].read_by": {"user_id": user_id, "read_at": _now()}},
                "$inc": {"unread_counts.$[me].count": -1},
            },
            array_filters=[
                {"msg.id": message_id},
                {"me.user_id": user_id, "me.count": {"$gt": 0}},
            ],
            projection={"_id": 0, "unread_counts": 1},
            return_document=ReturnDocument.AFTER,
        )
        if updated is not None:
            return True, _unread_counts(updated)

        doc = await self.collection.find_one(
            {"project_id": project_id, "messages.id": message_id},
            projection={"_id": 0, "unread_counts": 1},
        )
        if doc is None:
            await self._ensure_room(project_id)
            raise NotFound("Message not found")
        return False, _unread_counts(doc)

    async def mark_all_read(self, project_id: str, user_id: str) -> tuple[int, list[UnreadCount]]:
        """
        Add a read receipt to every message the user has not read and zero their counter.

        Returns (number of messages newly marked, unread counters after the update).
        """
        before = await self.collection.find_one_and_update(
            {"project_id": project_id},
            {
                "$push": {"messages.$[unread].read_by": {"user_id": user_id, "read_at": _now()}},
                "$set": {"unread_counts.$[me].count": 0},
            },
            array_filters=[
                {"unread.read_by.user_id": {"$ne": user_id}},
                {"me.user_id": user_id},
            ],
            projection={"_id": 0, "unread_counts": 1, "messages.read_by.user_id": 1},
            return_document=ReturnDocument.BEFORE,
        )
        if before is None:
            raise NotFound("Chat room not found")

        marked = sum(
            1
            for message in before.get("messages", [])
            if not any(r.get("user_id") == user_id for r in message.get("read_by", []))
        )
        counts = [
            UnreadCount(user_id=entry.user_id, count=0 if entry.user_id == user_id else entry.count)
            for entry in _unread_counts(before)
        ]
        return marked, counts

    async def unread_summary(self, user_id: str) -> list[UnreadSummaryItem]:
        """The user's unread counter in every room they participate in."""
        cursor = self.collection.find(
            {"participants.id": user_id},
            projection={
                "_id": 0,
                "project_id": 1,
                "project_title": 1,
                "unread_counts": {"$elemMatch": {"user_id": user_id}},
            },
        )
        items = []
        async for doc in cursor:
            counts = doc.get("unread_counts") or []
            items.append(
                UnreadSummaryItem(
                    project_id=doc["project_id"],
                    project_title=doc.get("project_title", ""),
                    unread_count=counts[0]["count"] if counts else 0,
                )
            )
        return items
