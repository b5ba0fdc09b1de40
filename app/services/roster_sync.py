"""
Roster synchronizer: mirrors committed membership changes into the chat room.

Runs after the relational transaction has committed. It is best-effort and
idempotent: a failure never rolls back the decision, is retried a bounded
number of times with exponential backoff, and is finally logged as a
SyncFailure for the reconciliation pass to repair.

Changes for the same (project, user) run one at a time in scheduling order,
and each one re-reads project_participants before touching the room. A
stale ADD whose row is already gone, or a REMOVE for someone who is a member
again (or owns the project), is skipped.
"""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.models import Faculty, Project, ProjectParticipant, User
from app.schemas.chat import ChatEventKind, ParticipantSnapshot
from app.services.capacity_ledger import RosterAction, RosterChange
from app.services.chat_store import ChatRoomStore
from app.services.errors import NotFound, SyncFailure
from app.services.realtime import RealtimePublisher

logger = logging.getLogger(__name__)


def participant_snapshot(user: User) -> ParticipantSnapshot:
    """Profile fields copied into the chat room for a user."""
    return ParticipantSnapshot(
        id=str(user.id),
        name=user.name,
        role=user.role.value,
        profile_pic_url=user.profile_pic_url,
    )


class RosterSynchronizer:
    """Applies RosterChanges to the chat store in tracked background tasks."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        chat_store: ChatRoomStore,
        publisher: RealtimePublisher,
        max_attempts: int = 3,
        base_delay: float = 0.5,
    ):
        self.session_factory = session_factory
        self.chat_store = chat_store
        self.publisher = publisher
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._tasks: set[asyncio.Task] = set()
        # (project_id, user_id) -> [lock, holders + waiters]
        self._locks: dict[tuple[str, str], list] = {}

    def schedule(self, change: RosterChange | None) -> asyncio.Task | None:
        """Start syncing a change without waiting for it."""
        if change is None:
            return None
        task = asyncio.create_task(self.sync(change))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for every scheduled sync to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @contextlib.asynccontextmanager
    async def _serialized(self, change: RosterChange) -> AsyncIterator[None]:
        key = (str(change.project_id), str(change.user_id))
        entry = self._locks.setdefault(key, [asyncio.Lock(), 0])
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    async def sync(self, change: RosterChange) -> bool:
        """
        Apply one change, retrying transient failures.

        Returns True once the chat room reflects the change, False if every
        attempt failed. Never raises.
        """
        async with self._serialized(change):
            return await self._sync_with_retry(change)

    async def _sync_with_retry(self, change: RosterChange) -> bool:
        for attempt in range(self.max_attempts):
            try:
                await self._apply(change)
                return True
            except Exception as e:
                if attempt < self.max_attempts - 1:
                    delay = self.base_delay * (2 ** attempt)
                    logger.warning(
                        "Roster sync %s for user %s in project %s failed (attempt %d/%d), retrying in %.1fs: %s",
                        change.action.value, change.user_id, change.project_id,
                        attempt + 1, self.max_attempts, delay, str(e),
                    )
                    await asyncio.sleep(delay)
                else:
                    failure = SyncFailure(
                        f"Could not {change.action.value} user {change.user_id} "
                        f"in chat for project {change.project_id}"
                    )
                    logger.error("%s after %d attempts: %s", failure.message, self.max_attempts, str(e))
        return False

    async def _membership_state(self, change: RosterChange) -> tuple[bool, UUID | None]:
        """Whether the user is still a relational member, and the project's faculty user id."""
        async with self.session_factory() as db:
            member = await db.get(ProjectParticipant, (change.project_id, change.user_id))
            result = await db.execute(
                select(Faculty.user_id)
                .join(Project, Project.faculty_id == Faculty.id)
                .where(Project.id == change.project_id)
            )
            faculty_user_id = result.scalar_one_or_none()
        return member is not None, faculty_user_id

    async def _apply(self, change: RosterChange) -> None:
        project_id = str(change.project_id)
        is_member, faculty_user_id = await self._membership_state(change)

        if change.action == RosterAction.REMOVE:
            # A later accept or the project owner keeps the seat
            if is_member or change.user_id == faculty_user_id:
                logger.info(
                    "Skipping chat removal of user %s in project %s: still a member",
                    change.user_id, change.project_id,
                )
                return
            removed = await self.chat_store.remove_participant(project_id, str(change.user_id))
            if removed:
                await self._announce(project_id, ChatEventKind.PARTICIPANT_REMOVED, {"user_id": str(change.user_id)})
            return

        if not is_member:
            logger.info(
                "Skipping chat add of user %s in project %s: no longer a member",
                change.user_id, change.project_id,
            )
            return

        async with self.session_factory() as db:
            user = await db.get(User, change.user_id)
        if user is None:
            raise NotFound(f"User {change.user_id} not found")

        participant = participant_snapshot(user)
        if await self.chat_store.add_participant(project_id, participant):
            await self._announce(
                project_id, ChatEventKind.PARTICIPANT_ADDED, {"participant": participant.model_dump(mode="json")}
            )

    async def _announce(self, project_id: str, kind: ChatEventKind, payload: dict) -> None:
        membership = await self.chat_store.get_membership(project_id)
        if membership is not None:
            payload.update(membership.event_payload())
        await self.publisher.publish(project_id, kind, payload)
