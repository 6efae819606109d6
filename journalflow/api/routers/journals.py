"""Journal approval API endpoints.

The transition endpoints are plain functions so FastAPI runs them in its
threadpool; webhook delivery after commit blocks on the network.
"""

from typing import List, Optional
from datetime import date, datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from journalflow.api.deps import get_db, get_current_actor, get_coordinator, http_error
from journalflow.core.approval.coordinator import ApprovalCoordinator
from journalflow.core.approval.states import ApprovalDecision
from journalflow.core.errors import WorkflowError
from journalflow.db.models import User
from journalflow.services.masters import JournalService

router = APIRouter(prefix="/journals", tags=["journals"])


# Schemas
class JournalCreate(BaseModel):
    journal_number: str = Field(..., min_length=1, max_length=20)
    journal_date: Optional[date] = None
    description: Optional[str] = None
    total_amount: Decimal = Decimal("0")


class JournalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    journal_number: str
    journal_date: date
    description: Optional[str]
    total_amount: Decimal
    created_by: Optional[str]
    approval_status: str
    current_step: Optional[int]
    route_code: Optional[str]
    version: int


class SubmitRequest(BaseModel):
    route_code: str = Field(..., min_length=1, max_length=20)
    expected_version: Optional[int] = None


class DecisionRequest(BaseModel):
    step_number: Optional[int] = None
    expected_version: Optional[int] = None
    comment: Optional[str] = None


class RecallRequest(BaseModel):
    expected_version: Optional[int] = None


class ApprovalStateResponse(BaseModel):
    journal_number: str
    status: str
    current_step: Optional[int]
    step_count: int
    organization_code: Optional[str]
    submitted_by: Optional[str]
    completed_steps: List[int]
    route_code: Optional[str]
    route_version: Optional[int]
    version: int
    eligible_actors: List[str]


class TransitionResponse(ApprovalStateResponse):
    actor_id: str
    decision: str
    comment: Optional[str] = None


class HistoryEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    sequence: Optional[int]
    decision: ApprovalDecision
    step_number: int
    actor_id: str
    comment: Optional[str]
    acted_at: Optional[datetime]


# Endpoints
@router.post("", response_model=JournalResponse, status_code=status.HTTP_201_CREATED)
async def create_journal(
    journal_data: JournalCreate,
    db: Session = Depends(get_db),
    current_actor: User = Depends(get_current_actor),
):
    """Create a draft journal owned by the current actor."""
    try:
        journal = JournalService(db).create_journal(
            journal_data.journal_number,
            current_actor.user_id,
            journal_date=journal_data.journal_date,
            description=journal_data.description,
            total_amount=journal_data.total_amount,
        )
        db.commit()
    except WorkflowError as e:
        db.rollback()
        raise http_error(e)

    return JournalResponse.model_validate(journal)


@router.get("/{journal_number}/approval", response_model=ApprovalStateResponse)
async def get_approval_state(
    journal_number: str,
    current_actor: User = Depends(get_current_actor),
    coordinator: ApprovalCoordinator = Depends(get_coordinator),
):
    """Get the derived approval state and row version of a journal."""
    try:
        return coordinator.get_state(journal_number)
    except WorkflowError as e:
        raise http_error(e)


@router.get("/{journal_number}/approval/history", response_model=List[HistoryEntryResponse])
async def get_approval_history(
    journal_number: str,
    current_actor: User = Depends(get_current_actor),
    coordinator: ApprovalCoordinator = Depends(get_coordinator),
):
    """Get the ordered approval audit trail of a journal."""
    try:
        history = coordinator.history(journal_number)
    except WorkflowError as e:
        raise http_error(e)

    return [HistoryEntryResponse.model_validate(h) for h in history]


@router.post("/{journal_number}/submit", response_model=TransitionResponse)
def submit_journal(
    journal_number: str,
    request: SubmitRequest,
    current_actor: User = Depends(get_current_actor),
    coordinator: ApprovalCoordinator = Depends(get_coordinator),
):
    """Submit a draft journal for approval on a route."""
    try:
        return coordinator.submit(
            journal_number,
            request.route_code,
            current_actor.user_id,
            expected_version=request.expected_version,
        )
    except WorkflowError as e:
        raise http_error(e)


@router.post("/{journal_number}/approve", response_model=TransitionResponse)
def approve_journal(
    journal_number: str,
    request: DecisionRequest,
    current_actor: User = Depends(get_current_actor),
    coordinator: ApprovalCoordinator = Depends(get_coordinator),
):
    """Approve the journal's pending step."""
    try:
        return coordinator.act(
            journal_number,
            current_actor.user_id,
            ApprovalDecision.APPROVE,
            step_number=request.step_number,
            expected_version=request.expected_version,
            comment=request.comment,
        )
    except WorkflowError as e:
        raise http_error(e)


@router.post("/{journal_number}/reject", response_model=TransitionResponse)
def reject_journal(
    journal_number: str,
    request: DecisionRequest,
    current_actor: User = Depends(get_current_actor),
    coordinator: ApprovalCoordinator = Depends(get_coordinator),
):
    """Reject the journal at its pending step."""
    try:
        return coordinator.act(
            journal_number,
            current_actor.user_id,
            ApprovalDecision.REJECT,
            step_number=request.step_number,
            expected_version=request.expected_version,
            comment=request.comment,
        )
    except WorkflowError as e:
        raise http_error(e)


@router.post("/{journal_number}/recall", response_model=TransitionResponse)
def recall_journal(
    journal_number: str,
    request: RecallRequest,
    current_actor: User = Depends(get_current_actor),
    coordinator: ApprovalCoordinator = Depends(get_coordinator),
):
    """Recall a submitted journal back to draft."""
    try:
        return coordinator.recall(
            journal_number,
            current_actor.user_id,
            expected_version=request.expected_version,
        )
    except WorkflowError as e:
        raise http_error(e)
