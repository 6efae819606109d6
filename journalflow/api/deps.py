from typing import Generator

from fastapi import Depends, HTTPException, status
from fastapi.security import APIKeyHeader
from sqlalchemy.orm import Session

from journalflow.core.approval.coordinator import ApprovalCoordinator
from journalflow.core.config import Settings, get_settings
from journalflow.core.errors import (
    ConcurrencyConflictError,
    IllegalTransitionError,
    MasterDataError,
    NotEligibleError,
    NotFoundError,
    PersistenceError,
    StructureError,
    WorkflowError,
)
from journalflow.db.session import SessionLocal
from journalflow.db.models import User
from journalflow.services.notifications import NotificationService

actor_header = APIKeyHeader(name="X-Actor-Id", auto_error=False)


def get_db() -> Generator:
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_actor(
    db: Session = Depends(get_db),
    actor_id: str = Depends(actor_header),
) -> User:
    """Resolve the acting user from the X-Actor-Id header."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unknown or missing actor",
    )

    if not actor_id:
        raise credentials_exception

    user = db.query(User).filter(User.user_id == actor_id).first()
    if user and user.is_active:
        return user

    raise credentials_exception


def get_coordinator(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> ApprovalCoordinator:
    return ApprovalCoordinator(db, settings=settings, notifier=NotificationService(db, settings))


def http_error(exc: WorkflowError) -> HTTPException:
    """Translate a workflow error into the matching HTTP error."""
    detail = {"message": str(exc), "retryable": exc.retryable}

    if isinstance(exc, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, NotEligibleError):
        code = status.HTTP_403_FORBIDDEN
    elif isinstance(exc, (IllegalTransitionError, ConcurrencyConflictError, MasterDataError)):
        code = status.HTTP_409_CONFLICT
    elif isinstance(exc, StructureError):
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
        detail["errors"] = exc.errors
    elif isinstance(exc, PersistenceError):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        code = status.HTTP_400_BAD_REQUEST

    return HTTPException(status_code=code, detail=detail)
