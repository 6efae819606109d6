"""Journal approval workflow.

The coordinator lives in ``journalflow.core.approval.coordinator`` and is not
re-exported here, since the database models import this package's states.
"""

from .machine import ApprovalStateMachine
from .states import (
    ACTOR_DECISIONS,
    TERMINAL_STATES,
    Actor,
    ActorRule,
    ApprovalActionRecord,
    ApprovalDecision,
    ApprovalStatus,
    AuthorizationResult,
    JournalApprovalState,
    TransitionRule,
    can_transition,
    get_transition_rule,
)

__all__ = [
    "ApprovalStateMachine",
    "ACTOR_DECISIONS",
    "TERMINAL_STATES",
    "Actor",
    "ActorRule",
    "ApprovalActionRecord",
    "ApprovalDecision",
    "ApprovalStatus",
    "AuthorizationResult",
    "JournalApprovalState",
    "TransitionRule",
    "can_transition",
    "get_transition_rule",
]
