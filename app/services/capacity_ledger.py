"""
Capacity ledger and application decision state machine.

positions_available on a project is a semaphore: each ACCEPTED application
holds exactly one unit, so at all times

    positions_available == initial - count(applications currently ACCEPTED)

Transitions:
    PENDING  -> ACCEPTED   take a unit, insert participant row
    PENDING  -> REJECTED   status only
    ACCEPTED -> REJECTED   release the unit, delete participant row
    ACCEPTED -> PENDING    release the unit, delete participant row
    REJECTED -> ACCEPTED   take a unit, insert participant row
    REJECTED -> PENDING    status only

The status write, the counter write and the membership write run in one
transaction with the project and application rows locked (SELECT ... FOR
UPDATE), so two concurrent accepts cannot both observe a free unit. The
decrement itself is conditional (positions_available > 0) as a second guard.

Authorization happens before the transaction opens. The chat roster is not
touched here: the outcome carries a RosterChange for the roster synchronizer
to apply after commit.
"""

import logging
from dataclasses import dataclass
from enum import Enum as PyEnum
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Application, ApplicationStatus, Faculty, Project, ProjectParticipant, Role
from app.schemas.user import Identity
from app.services.errors import CapacityExhausted, NotFound, PermissionDenied, ValidationFailed

logger = logging.getLogger(__name__)


class RosterAction(str, PyEnum):
    """What the chat roster must do after a committed decision."""

    ADD = "add"
    REMOVE = "remove"


@dataclass(frozen=True)
class RosterChange:
    project_id: UUID
    user_id: UUID
    action: RosterAction


@dataclass
class DecisionOutcome:
    """Committed result of a decision or removal."""

    application: Application | None
    positions_available: int
    changed: bool
    roster_change: RosterChange | None = None


def parse_status(value: ApplicationStatus | str) -> ApplicationStatus:
    """Coerce a raw status value, rejecting anything outside the state machine."""
    try:
        return ApplicationStatus(value)
    except ValueError:
        raise ValidationFailed(f"Invalid status: {value!r}") from None


def ensure_can_manage(project: Project, identity: Identity) -> None:
    """Only the owning faculty member or an admin may decide on a project."""
    if identity.is_admin:
        return
    if (
        identity.role == Role.FACULTY
        and identity.faculty_id is not None
        and identity.faculty_id == project.faculty_id
    ):
        return
    raise PermissionDenied("You do not have permission to manage this project")


async def _lock(db: AsyncSession, model: type, ident: UUID):
    """Re-read a row with a row lock, overwriting any stale identity-map copy."""
    result = await db.execute(
        select(model)
        .where(model.id == ident)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    row = result.scalar_one_or_none()
    if row is None:
        raise NotFound(f"{model.__name__} not found")
    return row


async def _take_position(db: AsyncSession, project: Project) -> None:
    result = await db.execute(
        update(Project)
        .where(Project.id == project.id, Project.positions_available > 0)
        .values(positions_available=Project.positions_available - 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise CapacityExhausted("No positions available for this project")


async def _release_position(db: AsyncSession, project: Project) -> None:
    await db.execute(
        update(Project)
        .where(Project.id == project.id)
        .values(positions_available=Project.positions_available + 1)
        .execution_options(synchronize_session=False)
    )


async def _add_membership(db: AsyncSession, project_id: UUID, user_id: UUID) -> None:
    existing = await db.get(ProjectParticipant, (project_id, user_id))
    if existing is None:
        db.add(ProjectParticipant(project_id=project_id, user_id=user_id))


async def _drop_membership(db: AsyncSession, project_id: UUID, user_id: UUID) -> int:
    result = await db.execute(
        delete(ProjectParticipant)
        .where(
            ProjectParticipant.project_id == project_id,
            ProjectParticipant.user_id == user_id,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


async def _transition(
    db: AsyncSession,
    application_id: UUID,
    project_id: UUID,
    target: ApplicationStatus,
) -> DecisionOutcome:
    # Lock order is always project, then application
    project = await _lock(db, Project, project_id)
    application = await _lock(db, Application, application_id)
    current = application.status

    if current == target:
        return DecisionOutcome(application, project.positions_available, changed=False)

    roster_change = None
    if target == ApplicationStatus.ACCEPTED:
        await _take_position(db, project)
        await _add_membership(db, project_id, application.user_id)
        roster_change = RosterChange(project_id, application.user_id, RosterAction.ADD)
    elif current == ApplicationStatus.ACCEPTED:
        await _release_position(db, project)
        await _drop_membership(db, project_id, application.user_id)
        roster_change = RosterChange(project_id, application.user_id, RosterAction.REMOVE)

    application.status = target
    await db.flush()
    return DecisionOutcome(application, project.positions_available, changed=True, roster_change=roster_change)


async def apply_decision(
    db: AsyncSession,
    application_id: UUID,
    target_status: ApplicationStatus | str,
    identity: Identity,
) -> DecisionOutcome:
    """
    Move an application to target_status.

    Re-applying the status the application already has is a no-op.

    Raises:
        ValidationFailed: target_status is not a known status
        NotFound: application or project does not exist
        PermissionDenied: caller does not own the project
        CapacityExhausted: accepting with no positions left (nothing is written)
    """
    target = parse_status(target_status)

    application = await db.get(Application, application_id)
    if application is None:
        raise NotFound("Application not found")
    project = await db.get(Project, application.project_id)
    if project is None:
        raise NotFound("Project not found")
    ensure_can_manage(project, identity)

    try:
        outcome = await _transition(db, application.id, project.id, target)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    # Read back committed values (updated_at and the counter are server-side)
    await db.refresh(project)
    await db.refresh(application)
    outcome.positions_available = project.positions_available

    if outcome.changed:
        logger.info(
            "Application %s -> %s (project=%s, positions_available=%d)",
            application.id, target.value, project.id, project.positions_available,
        )
    return outcome


async def remove_participant(
    db: AsyncSession,
    project_id: UUID,
    user_id: UUID,
    identity: Identity,
) -> DecisionOutcome:
    """
    Explicitly remove a student from a project.

    A student holding an ACCEPTED application is moved to REJECTED through the
    state machine, which releases their unit. A bare membership row without an
    accepted application (legacy data) is simply deleted.
    The project's faculty owner is not a member and cannot be removed.
    """
    project = await db.get(Project, project_id)
    if project is None:
        raise NotFound("Project not found")
    ensure_can_manage(project, identity)
    faculty = await db.get(Faculty, project.faculty_id)
    if faculty is not None and faculty.user_id == user_id:
        raise ValidationFailed("The project owner cannot be removed from the project")

    result = await db.execute(
        select(Application).where(
            Application.project_id == project_id,
            Application.user_id == user_id,
        )
    )
    application = result.scalar_one_or_none()
    if application is not None and application.status == ApplicationStatus.ACCEPTED:
        return await apply_decision(db, application.id, ApplicationStatus.REJECTED, identity)

    try:
        removed = await _drop_membership(db, project_id, user_id)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    await db.refresh(project)

    # The room may still list the user even when no row was left here
    return DecisionOutcome(
        application,
        project.positions_available,
        changed=removed > 0,
        roster_change=RosterChange(project_id, user_id, RosterAction.REMOVE),
    )
