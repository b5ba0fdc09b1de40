"""Project routes that touch membership: creation (with its chat room) and participants."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select

from app.api.deps import ChatRoomsDep, CurrentIdentity, DbSession, RosterSyncDep, require_roles
from app.db.models import Faculty, Project, ProjectParticipant, Role, User
from app.schemas.applications import ParticipantRead
from app.schemas.projects import ProjectCreate, ProjectRead
from app.schemas.user import Identity
from app.services.capacity_ledger import remove_participant

router = APIRouter(prefix="/projects", tags=["projects"])


@router.post("/", response_model=ProjectRead, status_code=status.HTTP_201_CREATED)
async def create_project(
    data: ProjectCreate,
    identity: Annotated[Identity, Depends(require_roles(Role.FACULTY))],
    db: DbSession,
    chat_rooms: ChatRoomsDep,
) -> ProjectRead:
    """Create a project owned by the caller and open its chat room."""
    faculty = await db.get(Faculty, identity.faculty_id) if identity.faculty_id else None
    if faculty is None or faculty.user_id != identity.user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="A faculty profile is required to create projects",
        )
    faculty_user = await db.get(User, faculty.user_id)

    project = Project(faculty_id=faculty.id, **data.model_dump())
    db.add(project)
    await db.commit()
    await db.refresh(project)

    await chat_rooms.initialize_room(project, faculty_user)
    return ProjectRead.model_validate(project)


@router.get("/{project_id}/participants", response_model=list[ParticipantRead])
async def list_participants(
    project_id: UUID,
    identity: CurrentIdentity,
    db: DbSession,
) -> list[ParticipantRead]:
    """List the project's accepted participants, oldest first."""
    if await db.get(Project, project_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")

    result = await db.execute(
        select(ProjectParticipant)
        .where(ProjectParticipant.project_id == project_id)
        .order_by(ProjectParticipant.joined_at)
    )
    return [ParticipantRead.model_validate(p) for p in result.scalars()]


@router.delete("/{project_id}/participants/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_participant(
    project_id: UUID,
    user_id: UUID,
    identity: Annotated[Identity, Depends(require_roles(Role.FACULTY, Role.ADMIN))],
    db: DbSession,
    roster_sync: RosterSyncDep,
) -> None:
    """Remove a student from the project, releasing their position."""
    outcome = await remove_participant(db, project_id, user_id, identity)
    roster_sync.schedule(outcome.roster_change)
