"""
Reconciliation of chat rosters against the relational membership tables.

The relational store is authoritative. For each project the room must list
exactly the faculty owner plus every project_participants row. Missing rooms
(legacy projects) are created, missing members added, extra members removed.
"""

import asyncio
import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.models import Faculty, Project, ProjectParticipant, User
from app.schemas.chat import ChatEventKind, ReconcileReport, RoomMembership
from app.services.chat_store import ChatRoomStore
from app.services.errors import NotFound
from app.services.realtime import RealtimePublisher
from app.services.roster_sync import participant_snapshot

logger = logging.getLogger(__name__)


class Reconciler:
    """Recomputes room rosters from project_participants."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        chat_store: ChatRoomStore,
        publisher: RealtimePublisher,
    ):
        self.session_factory = session_factory
        self.chat_store = chat_store
        self.publisher = publisher

    async def _load_expected(self, project_id: UUID):
        async with self.session_factory() as db:
            project = await db.get(Project, project_id)
            if project is None:
                raise NotFound("Project not found")
            faculty = await db.get(Faculty, project.faculty_id)
            faculty_user = await db.get(User, faculty.user_id) if faculty else None
            if faculty_user is None:
                raise NotFound(f"Faculty owner of project {project_id} not found")

            result = await db.execute(
                select(User)
                .join(ProjectParticipant, ProjectParticipant.user_id == User.id)
                .where(ProjectParticipant.project_id == project_id)
                .order_by(ProjectParticipant.joined_at)
            )
            members = list(result.scalars().all())
        return project.title, participant_snapshot(faculty_user), [participant_snapshot(u) for u in members]

    async def reconcile_project(self, project_id: UUID) -> ReconcileReport:
        title, faculty, members = await self._load_expected(project_id)
        pid = str(project_id)
        report = ReconcileReport(project_id=pid)

        roster = await self.chat_store.get_roster(pid)
        if roster is None:
            room = await self.chat_store.create_room(pid, title, faculty)
            report.room_created = True
            roster = room.participants

        expected = {faculty.id: faculty}
        for member in members:
            expected.setdefault(member.id, member)
        current = {p.id for p in roster}

        for user_id, snapshot in expected.items():
            if user_id not in current and await self.chat_store.add_participant(pid, snapshot):
                report.added.append(user_id)
        for user_id in current - expected.keys():
            if await self.chat_store.remove_participant(pid, user_id):
                report.removed.append(user_id)

        if report.added or report.removed:
            await self._announce(report)
            logger.info(
                "Reconciled chat for project %s (added=%d, removed=%d)",
                pid, len(report.added), len(report.removed),
            )
        return report

    async def _announce(self, report: ReconcileReport) -> None:
        membership = await self.chat_store.get_membership(report.project_id) or RoomMembership()
        state = membership.event_payload()
        by_id = {p["id"]: p for p in state["participants"]}
        for user_id in report.added:
            await self.publisher.publish(
                report.project_id,
                ChatEventKind.PARTICIPANT_ADDED,
                {"participant": by_id.get(user_id), **state},
            )
        for user_id in report.removed:
            await self.publisher.publish(
                report.project_id,
                ChatEventKind.PARTICIPANT_REMOVED,
                {"user_id": user_id, **state},
            )

    async def reconcile_all(self) -> list[ReconcileReport]:
        """
        Reconcile every project. A failing project is logged and skipped.

        Rooms whose project row is gone are reported, not deleted.
        """
        async with self.session_factory() as db:
            project_ids = list((await db.execute(select(Project.id))).scalars().all())

        reports = []
        for project_id in project_ids:
            try:
                reports.append(await self.reconcile_project(project_id))
            except Exception:
                logger.exception("Reconciliation failed for project %s", project_id)
        orphans = await self.chat_store.list_project_ids() - {str(pid) for pid in project_ids}
        if orphans:
            logger.warning("Chat rooms without a project: %s", ", ".join(sorted(orphans)))

        changed = sum(1 for r in reports if r.changed)
        logger.info("Reconciliation pass done: %d projects, %d changed", len(project_ids), changed)
        return reports

    async def run_periodically(self, interval: float) -> None:
        """Sweep forever, sleeping interval seconds between passes. Stop by cancelling."""
        while True:
            await asyncio.sleep(interval)
            try:
                await self.reconcile_all()
            except Exception:
                logger.exception("Periodic reconciliation pass failed")
