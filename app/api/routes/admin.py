"""Admin-only maintenance routes."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends

from app.api.deps import ReconcilerDep, require_roles
from app.db.models import Role
from app.schemas.chat import ReconcileReport
from app.schemas.user import Identity

router = APIRouter(prefix="/admin", tags=["admin"])

AdminIdentity = Annotated[Identity, Depends(require_roles(Role.ADMIN))]


@router.post("/chat/reconcile", response_model=list[ReconcileReport])
async def reconcile_all_rooms(
    identity: AdminIdentity,
    reconciler: ReconcilerDep,
) -> list[ReconcileReport]:
    """Bring every chat roster in line with project_participants."""
    return await reconciler.reconcile_all()


@router.post("/chat/reconcile/{project_id}", response_model=ReconcileReport)
async def reconcile_room(
    project_id: UUID,
    identity: AdminIdentity,
    reconciler: ReconcilerDep,
) -> ReconcileReport:
    """Bring one project's chat roster in line with project_participants (creating the room if missing)."""
    return await reconciler.reconcile_project(project_id)
