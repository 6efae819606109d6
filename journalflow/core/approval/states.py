"""Journal approval statuses, decisions and transitions.

State Machine Diagram:

    ┌───────┐  submit   ┌──────────────────┐  approve/skip  ┌──────────────────┐
    │ DRAFT │──────────►│ PENDING (step 1) │───────────────►│ PENDING (step k) │ ...
    └───▲───┘           └───┬──────────┬───┘                └────┬────────┬────┘
        │     recall        │          │ reject                  │        │ approve/skip at N
        └───────────────────┘          │                 reject  │        ▼
                                       │                         │   ┌──────────┐
                                       ▼                         ▼   │ APPROVED │
                                  ┌──────────┐◄──────────────────┘   └──────────┘
                                  │ REJECTED │
                                  └──────────┘

APPROVED and REJECTED are terminal: no further action is accepted.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Iterable, NamedTuple, Optional, Set


class ApprovalStatus(str, Enum):
    """Aggregate approval status of a journal."""

    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalDecision(str, Enum):
    """Kinds of recorded approval actions."""

    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    RECALL = "recall"
    SKIP = "skip"           # optional step auto-advanced by the coordinator


class ActorRule(str, Enum):
    """Who may perform a transition."""

    ANYONE = "anyone"
    STEP_MEMBER = "step_member"     # member of the current step's organization
    SUBMITTER = "submitter"         # actor who submitted the journal
    SYSTEM = "system"               # coordinator only


class TransitionRule(NamedTuple):
    """Defines a valid transition from a status."""
    from_status: ApprovalStatus
    decision: ApprovalDecision
    to_status: ApprovalStatus
    actor_rule: ActorRule
    advances_step: bool = False
    first_step_only: bool = False


TRANSITION_RULES: list[TransitionRule] = [
    TransitionRule(ApprovalStatus.DRAFT, ApprovalDecision.SUBMIT, ApprovalStatus.PENDING, ActorRule.ANYONE),
    TransitionRule(ApprovalStatus.PENDING, ApprovalDecision.APPROVE, ApprovalStatus.PENDING,
                   ActorRule.STEP_MEMBER, advances_step=True),
    TransitionRule(ApprovalStatus.PENDING, ApprovalDecision.SKIP, ApprovalStatus.PENDING,
                   ActorRule.SYSTEM, advances_step=True),
    TransitionRule(ApprovalStatus.PENDING, ApprovalDecision.REJECT, ApprovalStatus.REJECTED, ActorRule.STEP_MEMBER),
    TransitionRule(ApprovalStatus.PENDING, ApprovalDecision.RECALL, ApprovalStatus.DRAFT,
                   ActorRule.SUBMITTER, first_step_only=True),
]

VALID_TRANSITIONS: Dict[ApprovalStatus, Set[ApprovalDecision]] = {}
TRANSITION_TARGETS: Dict[tuple[ApprovalStatus, ApprovalDecision], TransitionRule] = {}

for rule in TRANSITION_RULES:
    VALID_TRANSITIONS.setdefault(rule.from_status, set()).add(rule.decision)
    TRANSITION_TARGETS[(rule.from_status, rule.decision)] = rule


TERMINAL_STATES: Set[ApprovalStatus] = {
    ApprovalStatus.APPROVED,
    ApprovalStatus.REJECTED,
}

# Decisions a person may request through the coordinator's act()
ACTOR_DECISIONS: Set[ApprovalDecision] = {
    ApprovalDecision.APPROVE,
    ApprovalDecision.REJECT,
}


def can_transition(from_status: ApprovalStatus, decision: ApprovalDecision) -> bool:
    """Check if a decision is valid from the given status."""
    return decision in VALID_TRANSITIONS.get(from_status, set())


def get_transition_rule(from_status: ApprovalStatus, decision: ApprovalDecision) -> Optional[TransitionRule]:
    """Get the transition rule for a status/decision combination."""
    return TRANSITION_TARGETS.get((from_status, decision))


@dataclass(frozen=True)
class Actor:
    """A user acting on a journal, with the organizations they belong to."""

    actor_id: str
    organization_codes: FrozenSet[str] = frozenset()

    @classmethod
    def of(cls, actor_id: str, organization_codes: Iterable[str] = ()) -> "Actor":
        return cls(actor_id=str(actor_id), organization_codes=frozenset(organization_codes))


@dataclass(frozen=True)
class ApprovalActionRecord:
    """One recorded decision, as replayed by the state machine."""

    decision: ApprovalDecision
    step_number: int
    actor_id: str
    comment: Optional[str] = None
    acted_at: Optional[datetime] = None
    sequence: Optional[int] = None


@dataclass(frozen=True)
class JournalApprovalState:
    """Approval state derived from a route and an action history."""

    status: ApprovalStatus
    current_step: Optional[int] = None
    step_count: int = 0
    organization_code: Optional[str] = None
    submitted_by: Optional[str] = None
    completed_steps: tuple = field(default_factory=tuple)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    def to_dict(self) -> Dict[str, object]:
        return {
            "status": self.status.value,
            "current_step": self.current_step,
            "step_count": self.step_count,
            "organization_code": self.organization_code,
            "submitted_by": self.submitted_by,
            "completed_steps": list(self.completed_steps),
        }


@dataclass(frozen=True)
class AuthorizationResult:
    """Outcome of a successful legality check."""

    decision: ApprovalDecision
    step_number: int
    resulting_state: JournalApprovalState
