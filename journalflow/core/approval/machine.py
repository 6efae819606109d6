"""Approval state machine implementation.

Derives a journal's approval state by replaying its recorded actions against a
route, and decides whether a requested action is legal. The machine holds no
mutable state and performs no I/O; organization membership is injected.
"""

from typing import Callable, Iterable, List, Optional, Sequence

from journalflow.core.errors import IllegalTransitionError, NotEligibleError, StructureError
from journalflow.core.routing.graph import RouteGraph

from .states import (
    ActorRule,
    Actor,
    ApprovalActionRecord,
    ApprovalDecision,
    ApprovalStatus,
    AuthorizationResult,
    JournalApprovalState,
    TransitionRule,
    get_transition_rule,
)


MembersLookup = Callable[[str], Iterable[str]]


class ApprovalStateMachine:
    """
    State machine for multi-step journal approval.

    The state is always a pure function of (route, ordered actions):
    - submit moves DRAFT to PENDING at step 1
    - approve (or skip) at step k moves to step k+1, or to APPROVED at the last step
    - reject moves any pending step to REJECTED
    - recall moves PENDING at step 1 back to DRAFT
    """

    def __init__(self, route: RouteGraph, *, members_of: Optional[MembersLookup] = None):
        """
        Initialize the state machine.

        Args:
            route: Route the journal is bound to
            members_of: Returns the active actor ids of an organization. Needed
                only for skip decisions and eligible-actor listings.
        """
        self.route = route
        self.members_of = members_of

    def initial_state(self) -> JournalApprovalState:
        return JournalApprovalState(status=ApprovalStatus.DRAFT, step_count=self.route.step_count())

    def current_status(self, actions: Sequence[ApprovalActionRecord]) -> JournalApprovalState:
        """
        Replay ``actions`` in order and return the resulting state.

        Raises:
            IllegalTransitionError: If a recorded action does not fit the
                replayed state (wrong status or out-of-order step)
        """
        state = self.initial_state()
        for position, action in enumerate(actions, start=1):
            rule = get_transition_rule(state.status, action.decision)
            if rule is None:
                raise IllegalTransitionError(
                    f"Action #{position} ({action.decision.value}) is not valid from status {state.status.value}",
                    state.status,
                    action.decision,
                )
            expected_step = self._target_step(state, rule)
            if action.step_number != expected_step:
                raise IllegalTransitionError(
                    f"Action #{position} ({action.decision.value}) targets step {action.step_number} "
                    f"but the journal is at step {expected_step}",
                    state.status,
                    action.decision,
                )
            if rule.first_step_only and state.current_step != 1:
                raise IllegalTransitionError(
                    f"Action #{position} ({action.decision.value}) is only valid at step 1",
                    state.status,
                    action.decision,
                )
            state = self._next_state(state, rule, action.actor_id)
        return state

    def can_act(
        self,
        actions: Sequence[ApprovalActionRecord],
        actor: Actor,
        decision: ApprovalDecision,
        *,
        step_number: Optional[int] = None,
    ) -> AuthorizationResult:
        """
        Check whether ``actor`` may perform ``decision`` now.

        Args:
            actions: Ordered action history of the journal
            actor: Acting user and their organizations
            decision: Requested decision
            step_number: Step the caller believes is current; a stale value
                is rejected, which makes repeated clicks harmless

        Returns:
            The step the action resolves and the state it leads to

        Raises:
            IllegalTransitionError: If the journal is terminal or the decision
                does not apply to the current state
            NotEligibleError: If the actor may not act on the current step
        """
        state = self.current_status(actions)

        if state.is_terminal:
            raise IllegalTransitionError(
                f"Journal is already {state.status.value}; no further actions are accepted",
                state.status,
                decision,
            )

        rule = get_transition_rule(state.status, decision)
        if rule is None:
            raise IllegalTransitionError(
                f"Cannot {decision.value} a journal in status {state.status.value}",
                state.status,
                decision,
            )

        target_step = self._target_step(state, rule)
        if step_number is not None and step_number != target_step:
            raise IllegalTransitionError(
                f"Step {step_number} is not the current step ({target_step})",
                state.status,
                decision,
            )

        if rule.first_step_only and state.current_step != 1:
            raise IllegalTransitionError(
                f"{decision.value} is only possible before step 1 is approved (current step {state.current_step})",
                state.status,
                decision,
            )

        self._check_actor(rule, state, actor)

        resulting = self._next_state(state, rule, actor.actor_id)
        return AuthorizationResult(decision=decision, step_number=target_step, resulting_state=resulting)

    def is_skippable(self, step_number: int) -> bool:
        """True when the step is optional and its organization has no active member."""
        step = self.route.step_at(step_number)
        if step.is_required or self.members_of is None:
            return False
        return not any(True for _ in self.members_of(step.organization_code))

    def eligible_actors(self, actions: Sequence[ApprovalActionRecord]) -> List[str]:
        """Actor ids allowed to approve or reject the pending step."""
        state = self.current_status(actions)
        if state.status != ApprovalStatus.PENDING or self.members_of is None:
            return []
        return sorted(set(self.members_of(state.organization_code)))

    def _check_actor(self, rule: TransitionRule, state: JournalApprovalState, actor: Actor) -> None:
        if rule.actor_rule == ActorRule.STEP_MEMBER:
            if state.organization_code not in actor.organization_codes:
                raise NotEligibleError(actor.actor_id, state.organization_code)
        elif rule.actor_rule == ActorRule.SUBMITTER:
            if actor.actor_id != state.submitted_by:
                raise NotEligibleError(
                    actor.actor_id,
                    state.organization_code,
                    reason=f"only the submitter ({state.submitted_by}) may {rule.decision.value} this journal",
                )
        elif rule.actor_rule == ActorRule.SYSTEM:
            raise NotEligibleError(
                actor.actor_id,
                state.organization_code,
                reason=f"{rule.decision.value} is recorded by the workflow engine only",
            )

    def _target_step(self, state: JournalApprovalState, rule: TransitionRule) -> int:
        if rule.decision == ApprovalDecision.SUBMIT:
            return 1
        return state.current_step

    def _pending(self, step_number: int, submitted_by: Optional[str], completed: tuple) -> JournalApprovalState:
        return JournalApprovalState(
            status=ApprovalStatus.PENDING,
            current_step=step_number,
            step_count=self.route.step_count(),
            organization_code=self.route.step_at(step_number).organization_code,
            submitted_by=submitted_by,
            completed_steps=completed,
        )

    def _next_state(self, state: JournalApprovalState, rule: TransitionRule, actor_id: str) -> JournalApprovalState:
        count = self.route.step_count()

        if rule.decision == ApprovalDecision.SUBMIT:
            if count == 0:
                raise StructureError(f"Route {self.route.route_code} has no steps")
            return self._pending(1, actor_id, ())

        if rule.advances_step:
            completed = state.completed_steps + (state.current_step,)
            if self.route.is_terminal(state.current_step):
                return JournalApprovalState(
                    status=ApprovalStatus.APPROVED,
                    step_count=count,
                    submitted_by=state.submitted_by,
                    completed_steps=completed,
                )
            return self._pending(state.current_step + 1, state.submitted_by, completed)

        if rule.to_status == ApprovalStatus.REJECTED:
            return JournalApprovalState(
                status=ApprovalStatus.REJECTED,
                current_step=state.current_step,
                step_count=count,
                submitted_by=state.submitted_by,
                completed_steps=state.completed_steps,
            )

        return self.initial_state()
