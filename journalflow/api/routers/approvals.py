"""Approval inbox endpoint."""

from typing import List

from fastapi import APIRouter, Depends

from journalflow.api.deps import get_current_actor, get_coordinator
from journalflow.api.routers.journals import ApprovalStateResponse
from journalflow.core.approval.coordinator import ApprovalCoordinator
from journalflow.db.models import User

router = APIRouter(prefix="/approvals", tags=["approvals"])


@router.get("/inbox", response_model=List[ApprovalStateResponse])
async def approval_inbox(
    current_actor: User = Depends(get_current_actor),
    coordinator: ApprovalCoordinator = Depends(get_coordinator),
):
    """Journals waiting on a step that belongs to one of the actor's organizations."""
    return coordinator.pending_for(current_actor.user_id)
