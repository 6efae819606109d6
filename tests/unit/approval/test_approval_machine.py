"""Tests for the approval state machine.

The machine is pure, so these tests need no database: routes are built in
memory and histories are plain lists of action records.
"""

import pytest

from journalflow.core.approval.machine import ApprovalStateMachine
from journalflow.core.approval.states import (
    Actor,
    ApprovalActionRecord,
    ApprovalDecision,
    ApprovalStatus,
)
from journalflow.core.errors import IllegalTransitionError, NotEligibleError, StructureError
from journalflow.core.routing.graph import RouteGraph, StepDefinition


def make_route(*organizations, optional=()):
    return RouteGraph(
        [
            StepDefinition(step_number=i, organization_code=code, is_required=i not in optional)
            for i, code in enumerate(organizations, start=1)
        ],
        route_code="R",
    )


def action(decision, step, actor="alice"):
    return ApprovalActionRecord(decision=ApprovalDecision(decision), step_number=step, actor_id=actor)


def approvals_through(n, submitter="alice"):
    history = [action("submit", 1, submitter)]
    history += [action("approve", k, f"approver-{k}") for k in range(1, n + 1)]
    return history


SUBMITTER = Actor.of("alice", ["ORG1"])


class TestReplay:
    """current_status derives the state from the action list alone."""

    def test_empty_history_is_draft(self):
        state = ApprovalStateMachine(make_route("ORG1")).current_status([])
        assert state.status == ApprovalStatus.DRAFT
        assert state.current_step is None

    def test_submit_moves_to_step_one(self):
        state = ApprovalStateMachine(make_route("ORG1", "ORG2")).current_status([action("submit", 1)])
        assert state.status == ApprovalStatus.PENDING
        assert state.current_step == 1
        assert state.organization_code == "ORG1"
        assert state.submitted_by == "alice"

    @pytest.mark.parametrize("n", [1, 2, 3, 5])
    def test_n_approvals_finish_an_n_step_route(self, n):
        route = make_route(*[f"ORG{i}" for i in range(1, n + 1)])
        state = ApprovalStateMachine(route).current_status(approvals_through(n))
        assert state.status == ApprovalStatus.APPROVED
        assert state.current_step is None
        assert state.completed_steps == tuple(range(1, n + 1))

    def test_partial_approvals_stay_pending(self):
        route = make_route("ORG1", "ORG2", "ORG3")
        state = ApprovalStateMachine(route).current_status(approvals_through(2))
        assert state.status == ApprovalStatus.PENDING
        assert state.current_step == 3
        assert state.organization_code == "ORG3"

    @pytest.mark.parametrize("k", [1, 2, 3])
    def test_reject_at_any_step_is_final(self, k):
        route = make_route("ORG1", "ORG2", "ORG3")
        history = approvals_through(k - 1) + [action("reject", k, "rejecter")]
        state = ApprovalStateMachine(route).current_status(history)
        assert state.status == ApprovalStatus.REJECTED
        assert state.current_step == k

    def test_recall_returns_to_draft(self):
        state = ApprovalStateMachine(make_route("ORG1", "ORG2")).current_status(
            [action("submit", 1), action("recall", 1)]
        )
        assert state.status == ApprovalStatus.DRAFT

    def test_resubmission_after_recall(self):
        history = [action("submit", 1), action("recall", 1), action("submit", 1), action("approve", 1, "x")]
        state = ApprovalStateMachine(make_route("ORG1", "ORG2")).current_status(history)
        assert state.status == ApprovalStatus.PENDING
        assert state.current_step == 2

    def test_skip_advances_like_approve(self):
        route = make_route("ORG1", "ORG2", "ORG3", optional=(2,))
        history = [action("submit", 1), action("approve", 1, "x"), action("skip", 2, "system")]
        state = ApprovalStateMachine(route).current_status(history)
        assert state.current_step == 3

    def test_replay_is_deterministic(self):
        route = make_route("ORG1", "ORG2", "ORG3")
        history = approvals_through(2)
        first = ApprovalStateMachine(route).current_status(history)
        machine = ApprovalStateMachine(route)
        assert machine.current_status(history) == first
        assert machine.current_status(history) == first

    def test_out_of_order_step_in_history(self):
        history = [action("submit", 1), action("approve", 2, "x")]
        with pytest.raises(IllegalTransitionError):
            ApprovalStateMachine(make_route("ORG1", "ORG2")).current_status(history)

    def test_action_after_terminal_in_history(self):
        history = approvals_through(1) + [action("approve", 1, "x")]
        with pytest.raises(IllegalTransitionError):
            ApprovalStateMachine(make_route("ORG1")).current_status(history)

    def test_recall_after_step_one_in_history(self):
        history = approvals_through(1) + [action("recall", 2)]
        with pytest.raises(IllegalTransitionError):
            ApprovalStateMachine(make_route("ORG1", "ORG2")).current_status(history)

    def test_submit_on_unbound_route(self):
        unbound = RouteGraph.from_snapshot([], route_code="R")
        with pytest.raises(StructureError):
            ApprovalStateMachine(unbound).current_status([action("submit", 1)])


class TestCanAct:
    """can_act checks legality and eligibility without side effects."""

    def test_member_may_approve_current_step(self):
        machine = ApprovalStateMachine(make_route("ORG1", "ORG2"))
        result = machine.can_act([action("submit", 1)], Actor.of("bob", ["ORG1"]), ApprovalDecision.APPROVE)
        assert result.step_number == 1
        assert result.resulting_state.current_step == 2

    def test_non_member_is_not_eligible(self):
        machine = ApprovalStateMachine(make_route("ORG1", "ORG2"))
        with pytest.raises(NotEligibleError) as exc_info:
            machine.can_act([action("submit", 1)], Actor.of("carol", ["ORG2"]), ApprovalDecision.APPROVE)
        assert exc_info.value.organization_code == "ORG1"

    def test_member_of_next_step_cannot_act_early(self):
        machine = ApprovalStateMachine(make_route("ORG1", "ORG2"))
        with pytest.raises(NotEligibleError):
            machine.can_act([action("submit", 1)], Actor.of("bob", ["ORG2"]), ApprovalDecision.REJECT)

    def test_stale_step_number_is_refused(self):
        machine = ApprovalStateMachine(make_route("ORG1", "ORG2"))
        history = approvals_through(1)
        with pytest.raises(IllegalTransitionError):
            machine.can_act(history, Actor.of("x", ["ORG1", "ORG2"]), ApprovalDecision.APPROVE, step_number=1)

    def test_matching_step_number_is_accepted(self):
        machine = ApprovalStateMachine(make_route("ORG1", "ORG2"))
        result = machine.can_act(
            approvals_through(1), Actor.of("x", ["ORG2"]), ApprovalDecision.APPROVE, step_number=2
        )
        assert result.resulting_state.status == ApprovalStatus.APPROVED

    @pytest.mark.parametrize("decision", list(ApprovalDecision))
    def test_nothing_is_accepted_after_reject(self, decision):
        machine = ApprovalStateMachine(make_route("ORG1", "ORG2"))
        history = [action("submit", 1), action("reject", 1, "x")]
        with pytest.raises(IllegalTransitionError):
            machine.can_act(history, Actor.of("alice", ["ORG1", "ORG2"]), decision)

    @pytest.mark.parametrize("decision", list(ApprovalDecision))
    def test_nothing_is_accepted_after_approval(self, decision):
        machine = ApprovalStateMachine(make_route("ORG1"))
        with pytest.raises(IllegalTransitionError):
            machine.can_act(approvals_through(1), Actor.of("alice", ["ORG1"]), decision)

    def test_approve_on_draft_is_illegal(self):
        machine = ApprovalStateMachine(make_route("ORG1"))
        with pytest.raises(IllegalTransitionError):
            machine.can_act([], SUBMITTER, ApprovalDecision.APPROVE)

    def test_submit_twice_is_illegal(self):
        machine = ApprovalStateMachine(make_route("ORG1"))
        with pytest.raises(IllegalTransitionError):
            machine.can_act([action("submit", 1)], SUBMITTER, ApprovalDecision.SUBMIT)

    def test_can_act_does_not_change_replayed_state(self):
        machine = ApprovalStateMachine(make_route("ORG1", "ORG2"))
        history = [action("submit", 1)]
        before = machine.current_status(history)
        machine.can_act(history, Actor.of("bob", ["ORG1"]), ApprovalDecision.APPROVE)
        assert machine.current_status(history) == before
        assert len(history) == 1


class TestRecall:
    """Recall is possible only at step 1 and only for the submitter."""

    def test_submitter_recalls_at_step_one(self):
        machine = ApprovalStateMachine(make_route("ORG1", "ORG2"))
        result = machine.can_act([action("submit", 1)], SUBMITTER, ApprovalDecision.RECALL)
        assert result.resulting_state.status == ApprovalStatus.DRAFT

    def test_recall_after_step_one_is_illegal(self):
        machine = ApprovalStateMachine(make_route("ORG1", "ORG2"))
        with pytest.raises(IllegalTransitionError):
            machine.can_act(approvals_through(1), SUBMITTER, ApprovalDecision.RECALL)

    def test_recall_on_draft_is_illegal(self):
        machine = ApprovalStateMachine(make_route("ORG1"))
        with pytest.raises(IllegalTransitionError):
            machine.can_act([], SUBMITTER, ApprovalDecision.RECALL)

    def test_only_submitter_may_recall(self):
        machine = ApprovalStateMachine(make_route("ORG1"))
        with pytest.raises(NotEligibleError):
            machine.can_act([action("submit", 1)], Actor.of("dave", ["ORG1"]), ApprovalDecision.RECALL)


class TestSkipAndEligibility:
    """Optional steps and the eligible actor listing."""

    def test_skip_cannot_be_requested_by_a_person(self):
        machine = ApprovalStateMachine(make_route("ORG1"))
        with pytest.raises(NotEligibleError):
            machine.can_act([action("submit", 1)], Actor.of("alice", ["ORG1"]), ApprovalDecision.SKIP)

    def test_optional_step_without_members_is_skippable(self):
        members = {"ORG1": ["alice"], "ORG2": []}
        machine = ApprovalStateMachine(make_route("ORG1", "ORG2", optional=(2,)), members_of=members.get)
        assert machine.is_skippable(2)
        assert not machine.is_skippable(1)

    def test_required_step_is_never_skippable(self):
        machine = ApprovalStateMachine(make_route("ORG1"), members_of=lambda code: [])
        assert not machine.is_skippable(1)

    def test_optional_step_with_members_is_not_skippable(self):
        machine = ApprovalStateMachine(make_route("ORG1", optional=(1,)), members_of=lambda code: ["bob"])
        assert not machine.is_skippable(1)

    def test_without_lookup_nothing_is_skippable(self):
        assert not ApprovalStateMachine(make_route("ORG1", optional=(1,))).is_skippable(1)

    def test_eligible_actors(self):
        members = {"ORG1": ["dave", "alice", "alice"], "ORG2": ["bob"]}
        machine = ApprovalStateMachine(make_route("ORG1", "ORG2"), members_of=members.get)
        assert machine.eligible_actors([action("submit", 1)]) == ["alice", "dave"]
        assert machine.eligible_actors([]) == []
