"""Integration tests for the approval coordinator against a real database."""

from unittest.mock import Mock, patch

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from journalflow.core.approval.coordinator import ApprovalCoordinator
from journalflow.core.approval.states import ApprovalDecision
from journalflow.core.errors import (
    ConcurrencyConflictError,
    IllegalTransitionError,
    NotEligibleError,
    NotFoundError,
    PersistenceError,
    StructureError,
)
from journalflow.db.models import ApprovalAction, JournalHeader, NotificationEventType
from journalflow.db.repositories import ActionLedger
from journalflow.services.masters import OrganizationService, RouteService

from tests.factories import add_member, create_journal, create_organization, create_route


APPROVE = ApprovalDecision.APPROVE
REJECT = ApprovalDecision.REJECT


@pytest.fixture
def coordinator(db_session, settings):
    return ApprovalCoordinator(db_session, settings=settings)


def decisions(coordinator, journal_number):
    return [(r.decision.value, r.step_number, r.actor_id) for r in coordinator.history(journal_number)]


@pytest.mark.integration
class TestAccountingRoute:
    """Full walk through the two-step K-001 accounting route."""

    def test_submit_moves_to_step_one(self, coordinator, k001):
        result = coordinator.submit("J-100", "K-001", "alice")

        assert result["status"] == "pending"
        assert result["current_step"] == 1
        assert result["organization_code"] == "K001"
        assert result["route_version"] == 1
        assert result["eligible_actors"] == ["alice", "dave"]

        journal = coordinator.db.get(JournalHeader, "J-100")
        assert journal.approval_status == "pending"
        assert journal.route_snapshot[1]["organization_code"] == "K002"

    def test_full_approval(self, coordinator, k001):
        coordinator.submit("J-100", "K-001", "alice")

        with pytest.raises(NotEligibleError):
            coordinator.act("J-100", "carol", APPROVE)

        step_two = coordinator.act("J-100", "dave", APPROVE)
        assert step_two["current_step"] == 2
        assert step_two["eligible_actors"] == ["bob", "erin"]

        with pytest.raises(NotEligibleError):
            coordinator.act("J-100", "dave", APPROVE)

        done = coordinator.act("J-100", "bob", APPROVE, comment="OK")
        assert done["status"] == "approved"
        assert done["current_step"] is None

        with pytest.raises(IllegalTransitionError):
            coordinator.act("J-100", "erin", APPROVE)

        journal = coordinator.db.get(JournalHeader, "J-100")
        assert journal.approval_status == "approved"
        assert journal.approved_by == "bob"
        assert journal.approved_at is not None
        assert decisions(coordinator, "J-100") == [
            ("submit", 1, "alice"),
            ("approve", 1, "dave"),
            ("approve", 2, "bob"),
        ]

    def test_submitter_may_approve_own_step(self, coordinator, k001):
        coordinator.submit("J-100", "K-001", "alice")
        assert coordinator.act("J-100", "alice", APPROVE)["current_step"] == 2

    def test_reject_is_final(self, coordinator, k001):
        coordinator.submit("J-100", "K-001", "alice")
        coordinator.act("J-100", "dave", APPROVE)

        result = coordinator.act("J-100", "bob", REJECT, comment="amount is wrong")
        assert result["status"] == "rejected"
        assert result["current_step"] == 2

        journal = coordinator.db.get(JournalHeader, "J-100")
        assert journal.rejected_reason == "amount is wrong"

        for actor_id, decision in (("erin", APPROVE), ("bob", REJECT)):
            with pytest.raises(IllegalTransitionError):
                coordinator.act("J-100", actor_id, decision)
        with pytest.raises(IllegalTransitionError):
            coordinator.recall("J-100", "alice")
        with pytest.raises(IllegalTransitionError):
            coordinator.submit("J-100", "K-001", "alice")

    def test_stale_step_number(self, coordinator, k001):
        coordinator.submit("J-100", "K-001", "alice")
        coordinator.act("J-100", "dave", APPROVE, step_number=1)

        with pytest.raises(IllegalTransitionError):
            coordinator.act("J-100", "alice", APPROVE, step_number=1)

    def test_submit_twice(self, coordinator, k001):
        coordinator.submit("J-100", "K-001", "alice")
        with pytest.raises(IllegalTransitionError):
            coordinator.submit("J-100", "K-001", "alice")

    def test_skip_cannot_be_requested(self, coordinator, k001):
        coordinator.submit("J-100", "K-001", "alice")
        with pytest.raises(IllegalTransitionError):
            coordinator.act("J-100", "alice", ApprovalDecision.SKIP)

    def test_unknown_journal_and_route(self, coordinator, k001):
        with pytest.raises(NotFoundError):
            coordinator.submit("J-404", "K-001", "alice")
        with pytest.raises(NotFoundError):
            coordinator.submit("J-100", "K-404", "alice")
        with pytest.raises(NotFoundError):
            coordinator.get_state("J-404")
        with pytest.raises(NotFoundError):
            coordinator.history("J-404")


@pytest.mark.integration
class TestRecall:
    def test_recall_and_resubmit(self, coordinator, k001):
        coordinator.submit("J-100", "K-001", "alice")

        result = coordinator.recall("J-100", "alice")
        assert result["status"] == "draft"
        assert result["current_step"] is None

        again = coordinator.submit("J-100", "K-001", "alice")
        assert again["status"] == "pending"
        assert [d for d, _, _ in decisions(coordinator, "J-100")] == ["submit", "recall", "submit"]

    def test_only_submitter_may_recall(self, coordinator, k001):
        coordinator.submit("J-100", "K-001", "alice")
        with pytest.raises(NotEligibleError):
            coordinator.recall("J-100", "dave")

    def test_recall_after_first_approval(self, coordinator, k001):
        coordinator.submit("J-100", "K-001", "alice")
        coordinator.act("J-100", "dave", APPROVE)
        with pytest.raises(IllegalTransitionError):
            coordinator.recall("J-100", "alice")

    def test_recall_of_draft(self, coordinator, k001):
        with pytest.raises(IllegalTransitionError):
            coordinator.recall("J-100", "alice")


@pytest.mark.integration
class TestConcurrency:
    """Two approvers racing on the same step: exactly one wins."""

    def test_expected_version_mismatch(self, coordinator, k001):
        submitted = coordinator.submit("J-100", "K-001", "alice")
        seen = submitted["version"]

        coordinator.act("J-100", "dave", APPROVE, step_number=1, expected_version=seen)

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            coordinator.act("J-100", "alice", APPROVE, step_number=1, expected_version=seen)
        assert exc_info.value.retryable

        step_one = [d for d in decisions(coordinator, "J-100") if d[0] == "approve" and d[1] == 1]
        assert step_one == [("approve", 1, "dave")]

    def test_version_increases_with_each_command(self, coordinator, k001):
        first = coordinator.submit("J-100", "K-001", "alice")
        second = coordinator.act("J-100", "dave", APPROVE, expected_version=first["version"])
        assert second["version"] == first["version"] + 1
        assert coordinator.get_state("J-100")["version"] == second["version"]

    def test_concurrent_write_is_detected(self, coordinator, db_session, k001):
        coordinator.submit("J-100", "K-001", "alice")
        original = ActionLedger.history_of

        def racing(self, journal_number):
            # Another approver commits between our read and our write
            self.db.execute(
                text("UPDATE journal_headers SET version = version + 1 WHERE journal_number = :n"),
                {"n": journal_number},
            )
            return original(self, journal_number)

        with patch.object(ActionLedger, "history_of", racing):
            with pytest.raises(ConcurrencyConflictError):
                coordinator.act("J-100", "dave", APPROVE)

        assert [d[0] for d in decisions(coordinator, "J-100")] == ["submit"]

        # Retry after re-reading succeeds exactly once
        coordinator.act("J-100", "dave", APPROVE)
        step_one = [d for d in decisions(coordinator, "J-100") if d[:2] == ("approve", 1)]
        assert len(step_one) == 1

    def test_duplicate_sequence_is_a_conflict(self, coordinator, db_session, k001):
        coordinator.submit("J-100", "K-001", "alice")
        original_append = ActionLedger.append_action

        def duplicate_row(self, journal_number, record, *, sequence):
            # A writer that read the ledger before the latest append reuses its sequence
            return original_append(self, journal_number, record, sequence=1)

        with patch.object(ActionLedger, "append_action", duplicate_row):
            with pytest.raises(ConcurrencyConflictError):
                coordinator.act("J-100", "dave", APPROVE)

        assert db_session.query(ApprovalAction).count() == 1


@pytest.mark.integration
class TestPersistenceFailures:
    def test_commit_failure_rolls_back(self, coordinator, db_session, k001):
        coordinator.submit("J-100", "K-001", "alice")

        with patch.object(db_session, "commit", side_effect=OperationalError("COMMIT", {}, Exception("disk full"))):
            with pytest.raises(PersistenceError) as exc_info:
                coordinator.act("J-100", "dave", APPROVE)
        assert exc_info.value.retryable

        assert [d[0] for d in decisions(coordinator, "J-100")] == ["submit"]
        assert coordinator.get_state("J-100")["current_step"] == 1

    def test_notifier_failure_does_not_undo_the_transition(self, db_session, settings, k001):
        notifier = Mock()
        notifier.notify.side_effect = RuntimeError("webhook down")
        coordinator = ApprovalCoordinator(db_session, settings=settings, notifier=notifier)

        result = coordinator.submit("J-100", "K-001", "alice")

        assert result["status"] == "pending"
        notifier.notify.assert_called_once()
        event_type, payload = notifier.notify.call_args[0]
        assert event_type == NotificationEventType.JOURNAL_SUBMITTED
        assert payload["journal_number"] == "J-100"
        assert coordinator.get_state("J-100")["status"] == "pending"

    def test_events_follow_the_outcome(self, db_session, settings, k001):
        notifier = Mock()
        coordinator = ApprovalCoordinator(db_session, settings=settings, notifier=notifier)

        coordinator.submit("J-100", "K-001", "alice")
        coordinator.act("J-100", "dave", APPROVE)
        coordinator.act("J-100", "bob", APPROVE)

        events = [c[0][0] for c in notifier.notify.call_args_list]
        assert events == [
            NotificationEventType.JOURNAL_SUBMITTED,
            NotificationEventType.JOURNAL_STEP_ADVANCED,
            NotificationEventType.JOURNAL_APPROVED,
        ]

    def test_refused_command_sends_nothing(self, db_session, settings, k001):
        notifier = Mock()
        coordinator = ApprovalCoordinator(db_session, settings=settings, notifier=notifier)
        coordinator.submit("J-100", "K-001", "alice")
        notifier.reset_mock()

        with pytest.raises(NotEligibleError):
            coordinator.act("J-100", "carol", APPROVE)
        notifier.notify.assert_not_called()


@pytest.mark.integration
class TestRouteChecksOnSubmit:
    def test_inactive_route(self, coordinator, db_session, k001):
        create_route(db_session, code="R-OFF", steps=["K001"], is_active=False)
        db_session.commit()
        with pytest.raises(StructureError):
            coordinator.submit("J-100", "R-OFF", "alice")
        assert coordinator.get_state("J-100")["status"] == "draft"

    def test_route_with_inactive_organization(self, coordinator, db_session, k001):
        create_organization(db_session, code="K009", is_active=False)
        create_route(db_session, code="R-BAD", steps=["K001", "K009"])
        db_session.commit()

        with pytest.raises(StructureError) as exc_info:
            coordinator.submit("J-100", "R-BAD", "alice")
        assert any("K009" in e for e in exc_info.value.errors)

    def test_snapshot_survives_route_edits(self, coordinator, db_session, settings, k001):
        create_organization(db_session, code="K003")
        create_route(db_session, code="R-EDIT", steps=["K001", "K002"])
        db_session.commit()
        coordinator.submit("J-100", "R-EDIT", "alice")

        RouteService(db_session, settings).replace_steps(
            "R-EDIT",
            [
                {"step_number": 1, "organization_code": "K002"},
                {"step_number": 2, "organization_code": "K003"},
                {"step_number": 3, "organization_code": "K001"},
            ],
        )
        db_session.commit()

        state = coordinator.get_state("J-100")
        assert state["step_count"] == 2
        assert state["route_version"] == 1
        assert state["organization_code"] == "K001"

        coordinator.act("J-100", "dave", APPROVE)
        assert coordinator.act("J-100", "bob", APPROVE)["status"] == "approved"


@pytest.mark.integration
class TestOptionalSteps:
    """Optional steps whose organization has nobody in it are skipped."""

    @pytest.fixture
    def empty_org(self, db_session, k001):
        org = create_organization(db_session, code="K003", name="監査")
        db_session.commit()
        return org

    def test_empty_optional_step_is_skipped(self, coordinator, db_session, empty_org):
        create_route(db_session, code="R-OPT", steps=["K001", ("K003", False), "K002"])
        db_session.commit()
        coordinator.submit("J-100", "R-OPT", "alice")

        result = coordinator.act("J-100", "dave", APPROVE)

        assert result["current_step"] == 3
        assert result["organization_code"] == "K002"
        assert decisions(coordinator, "J-100")[-1] == ("skip", 2, "system")

    def test_leading_optional_step_is_skipped_on_submit(self, coordinator, db_session, empty_org):
        create_route(db_session, code="R-LEAD", steps=[("K003", False), "K002"])
        db_session.commit()

        result = coordinator.submit("J-100", "R-LEAD", "alice")
        assert result["current_step"] == 2
        assert coordinator.pending_for("bob")[0]["journal_number"] == "J-100"

    def test_all_steps_skipped_approves(self, db_session, settings, empty_org):
        create_route(db_session, code="R-ALL", steps=[("K003", False)])
        db_session.commit()
        notifier = Mock()
        coordinator = ApprovalCoordinator(db_session, settings=settings, notifier=notifier)

        result = coordinator.submit("J-100", "R-ALL", "alice")

        assert result["status"] == "approved"
        assert notifier.notify.call_args[0][0] == NotificationEventType.JOURNAL_APPROVED

    def test_step_with_members_is_not_skipped(self, coordinator, db_session, empty_org, k001):
        add_member(db_session, org=empty_org, user=k001.carol)
        create_route(db_session, code="R-OPT", steps=["K001", ("K003", False), "K002"])
        db_session.commit()
        coordinator.submit("J-100", "R-OPT", "alice")

        result = coordinator.act("J-100", "dave", APPROVE)
        assert result["current_step"] == 2
        assert result["eligible_actors"] == ["carol"]

    def test_required_empty_step_waits(self, coordinator, db_session, empty_org):
        create_route(db_session, code="R-REQ", steps=["K001", "K003"])
        db_session.commit()
        coordinator.submit("J-100", "R-REQ", "alice")

        result = coordinator.act("J-100", "dave", APPROVE)
        assert result["status"] == "pending"
        assert result["current_step"] == 2
        assert result["eligible_actors"] == []

    def test_auto_skip_disabled(self, db_session, settings, empty_org):
        create_route(db_session, code="R-OPT", steps=["K001", ("K003", False), "K002"])
        db_session.commit()
        no_skip = settings.model_copy(update={"auto_skip_optional_steps": False})
        coordinator = ApprovalCoordinator(db_session, settings=no_skip)
        coordinator.submit("J-100", "R-OPT", "alice")

        result = coordinator.act("J-100", "dave", APPROVE)
        assert result["current_step"] == 2


@pytest.mark.integration
class TestQueries:
    def test_draft_state(self, coordinator, k001):
        state = coordinator.get_state("J-100")
        assert state["status"] == "draft"
        assert state["route_code"] is None
        assert state["eligible_actors"] == []

    def test_inbox(self, coordinator, db_session, k001):
        create_journal(db_session, journal_number="J-101", created_by=k001.alice)
        db_session.commit()
        coordinator.submit("J-100", "K-001", "alice")
        coordinator.submit("J-101", "K-001", "alice")
        coordinator.act("J-101", "dave", APPROVE)

        assert [j["journal_number"] for j in coordinator.pending_for("dave")] == ["J-100"]
        assert [j["journal_number"] for j in coordinator.pending_for("erin")] == ["J-101"]
        assert coordinator.pending_for("carol") == []

    def test_inbox_ignores_inactive_membership(self, coordinator, db_session, k001):
        coordinator.submit("J-100", "K-001", "alice")
        OrganizationService(db_session).remove_user("K001", "dave")
        db_session.commit()

        assert coordinator.pending_for("dave") == []
        with pytest.raises(NotEligibleError):
            coordinator.act("J-100", "dave", APPROVE)

    def test_history_keeps_comments(self, coordinator, k001):
        coordinator.submit("J-100", "K-001", "alice")
        coordinator.act("J-100", "dave", APPROVE, comment="checked")

        history = coordinator.history("J-100")
        assert [r.sequence for r in history] == [1, 2]
        assert history[1].comment == "checked"
        assert history[1].acted_at is not None
