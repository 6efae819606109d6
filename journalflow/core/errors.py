"""Error taxonomy for the approval workflow engine.

Every error raised by routing, the state machine or the coordinator derives
from ``WorkflowError``. The ``retryable`` flag tells callers whether re-fetching
state and resubmitting the same command can succeed.
"""

from typing import Optional, Sequence


class WorkflowError(Exception):
    """Base class for workflow engine errors."""

    retryable = False


class StructureError(WorkflowError):
    """Raised when a route configuration is malformed."""

    def __init__(self, message: str, errors: Optional[Sequence[str]] = None):
        super().__init__(message)
        self.errors = list(errors or [message])


class NotFoundError(WorkflowError):
    """Raised for an unknown route, step, organization or journal."""

    def __init__(self, kind: str, key):
        super().__init__(f"{kind} {key} not found")
        self.kind = kind
        self.key = key


class IllegalTransitionError(WorkflowError):
    """Raised when an action does not apply to the journal's current state."""

    def __init__(self, message: str, status=None, decision=None):
        super().__init__(message)
        self.status = status
        self.decision = decision


class NotEligibleError(WorkflowError):
    """Raised when the actor may not act on the current step."""

    def __init__(self, actor_id: str, organization_code: Optional[str] = None, reason: Optional[str] = None):
        if reason is None:
            reason = f"actor {actor_id} is not a member of organization {organization_code}"
        super().__init__(reason)
        self.actor_id = actor_id
        self.organization_code = organization_code


class ConcurrencyConflictError(WorkflowError):
    """Raised when another transaction changed the journal first."""

    retryable = True

    def __init__(self, journal_number: str, message: Optional[str] = None):
        super().__init__(message or f"journal {journal_number} was modified concurrently")
        self.journal_number = journal_number


class PersistenceError(WorkflowError):
    """Raised when storage fails while recording a transition."""

    retryable = True


class MasterDataError(WorkflowError):
    """Raised when a master maintenance operation breaks a business rule."""
