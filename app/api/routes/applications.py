"""Application routes: submission, listing and the faculty decision."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select

from app.api.deps import CurrentIdentity, DbSession, RosterSyncDep, require_roles
from app.db.models import Application, ApplicationStatus, Project, ProjectStatus, Role
from app.schemas.applications import (
    ApplicationCreate,
    ApplicationDecisionResponse,
    ApplicationRead,
    ApplicationStatusUpdate,
)
from app.schemas.user import Identity
from app.services.capacity_ledger import apply_decision, ensure_can_manage

router = APIRouter(prefix="/applications", tags=["applications"])


async def _get_project_or_404(db, project_id: UUID) -> Project:
    project = await db.get(Project, project_id)
    if project is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
    return project


@router.post(
    "/project/{project_id}/apply",
    response_model=ApplicationRead,
    status_code=status.HTTP_201_CREATED,
)
async def submit_application(
    project_id: UUID,
    data: ApplicationCreate,
    identity: Annotated[Identity, Depends(require_roles(Role.USER))],
    db: DbSession,
) -> ApplicationRead:
    """Apply to a project. One application per student and project; created PENDING."""
    project = await _get_project_or_404(db, project_id)
    if project.status != ProjectStatus.OPEN:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="This project is not accepting applications",
        )

    existing = await db.execute(
        select(Application.id).where(
            Application.project_id == project_id,
            Application.user_id == identity.user_id,
        )
    )
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="You have already applied to this project",
        )

    application = Application(
        project_id=project_id,
        user_id=identity.user_id,  # From auth, NEVER from request
        status=ApplicationStatus.PENDING,
        **data.model_dump(),
    )
    db.add(application)
    await db.commit()
    await db.refresh(application)
    return ApplicationRead.model_validate(application)


@router.get("/me", response_model=list[ApplicationRead])
async def list_my_applications(
    identity: CurrentIdentity,
    db: DbSession,
) -> list[ApplicationRead]:
    """List the caller's own applications, newest first."""
    result = await db.execute(
        select(Application)
        .where(Application.user_id == identity.user_id)
        .order_by(Application.created_at.desc())
    )
    return [ApplicationRead.model_validate(a) for a in result.scalars()]


@router.get("/project/{project_id}", response_model=list[ApplicationRead])
async def list_project_applications(
    project_id: UUID,
    identity: CurrentIdentity,
    db: DbSession,
    status_filter: Annotated[ApplicationStatus | None, Query(alias="status")] = None,
) -> list[ApplicationRead]:
    """List applications to a project (owning faculty or admin), optionally by status."""
    project = await _get_project_or_404(db, project_id)
    ensure_can_manage(project, identity)

    query = select(Application).where(Application.project_id == project_id)
    if status_filter is not None:
        query = query.where(Application.status == status_filter)
    query = query.order_by(Application.created_at)

    result = await db.execute(query)
    return [ApplicationRead.model_validate(a) for a in result.scalars()]


@router.get("/{application_id}", response_model=ApplicationRead)
async def get_application(
    application_id: UUID,
    identity: CurrentIdentity,
    db: DbSession,
) -> ApplicationRead:
    """Get one application (the applicant, the owning faculty or an admin)."""
    application = await db.get(Application, application_id)
    if application is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Application not found")

    if application.user_id != identity.user_id:
        project = await _get_project_or_404(db, application.project_id)
        ensure_can_manage(project, identity)
    return ApplicationRead.model_validate(application)


@router.api_route(
    "/{application_id}/status",
    methods=["POST", "PUT"],
    response_model=ApplicationDecisionResponse,
)
async def update_application_status(
    application_id: UUID,
    data: ApplicationStatusUpdate,
    identity: Annotated[Identity, Depends(require_roles(Role.FACULTY, Role.ADMIN))],
    db: DbSession,
    roster_sync: RosterSyncDep,
) -> ApplicationDecisionResponse:
    """
    Accept, reject or reset an application.

    The relational change commits before this returns; the chat roster is
    updated afterwards in the background.
    """
    outcome = await apply_decision(db, application_id, data.status, identity)
    roster_sync.schedule(outcome.roster_change)

    if outcome.changed:
        message = f"Application {outcome.application.status.value.lower()}"
    else:
        message = f"Application already {outcome.application.status.value.lower()}"
    return ApplicationDecisionResponse(
        message=message,
        changed=outcome.changed,
        positions_available=outcome.positions_available,
        application=ApplicationRead.model_validate(outcome.application),
    )
