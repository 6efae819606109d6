"""Approval coordinator.

Drives journal approvals against the database: loads the journal and its
action history, asks the state machine whether a command is legal, appends the
resulting actions and writes the derived status back onto the journal in one
transaction. Notifications are sent after the commit.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from journalflow.core.config import Settings, get_settings
from journalflow.core.errors import (
    ConcurrencyConflictError,
    IllegalTransitionError,
    NotEligibleError,
    NotFoundError,
    PersistenceError,
    StructureError,
    WorkflowError,
)
from journalflow.core.routing.graph import RouteGraph
from journalflow.core.routing.validator import RouteValidator
from journalflow.db.models import JournalHeader, NotificationEventType
from journalflow.db.repositories import ActionLedger, OrganizationDirectory, RouteRepository

from .machine import ApprovalStateMachine
from .states import (
    ACTOR_DECISIONS,
    Actor,
    ApprovalActionRecord,
    ApprovalDecision,
    ApprovalStatus,
    AuthorizationResult,
    JournalApprovalState,
)

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(self, event_type: NotificationEventType, payload: Dict[str, Any]) -> None:
        ...


class ApprovalCoordinator:
    """
    Transactional entry point for journal approvals.

    Every command either records all of its actions and the new journal status,
    or nothing at all. The coordinator commits its own transaction.
    """

    def __init__(
        self,
        db: Session,
        *,
        settings: Optional[Settings] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.notifier = notifier
        self.routes = RouteRepository(db)
        self.directory = OrganizationDirectory(db)
        self.ledger = ActionLedger(db)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def submit(
        self,
        journal_number: str,
        route_code: str,
        actor_id: str,
        *,
        expected_version: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Submit a draft journal for approval on a route.

        The route is validated, bound to the journal as a snapshot, and the
        journal moves to step 1 (or beyond, when leading optional steps are
        skipped).

        Raises:
            NotFoundError: Unknown journal or route
            StructureError: Route inactive or invalid
            IllegalTransitionError: Journal is not a draft
            ConcurrencyConflictError: Journal changed since ``expected_version``
        """

        def operation(journal: JournalHeader) -> Dict[str, Any]:
            route = self.routes.get_route(route_code)
            if not route.is_active:
                raise StructureError(f"Route {route_code} is not active")
            self._validator().validate(self.routes.candidate(route)).raise_for_errors(route_code)

            history = self.ledger.history_of(journal_number)
            actor = self.directory.actor(actor_id)

            bound = self._machine(self._bound_graph(journal))
            if bound.current_status(history).status != ApprovalStatus.DRAFT:
                # Raises for pending and terminal journals
                self._authorize(journal_number, bound, history, actor, ApprovalDecision.SUBMIT)

            graph = self.routes.load_graph(route_code)
            machine = self._machine(graph)
            result = self._authorize(journal_number, machine, history, actor, ApprovalDecision.SUBMIT)

            journal.route_code = route.route_code
            journal.route_version = route.version
            journal.route_snapshot = graph.to_snapshot()
            journal.approved_by = None
            journal.approved_at = None
            journal.rejected_reason = None

            state = self._record(journal, machine, history, result, actor_id)
            event = (
                NotificationEventType.JOURNAL_APPROVED
                if state.status == ApprovalStatus.APPROVED
                else NotificationEventType.JOURNAL_SUBMITTED
            )
            return self._outcome(journal, machine, state, event, actor_id, ApprovalDecision.SUBMIT)

        return self._execute(journal_number, expected_version, operation)

    def act(
        self,
        journal_number: str,
        actor_id: str,
        decision: ApprovalDecision,
        step_number: Optional[int] = None,
        expected_version: Optional[int] = None,
        comment: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Approve or reject the journal's pending step.

        Args:
            journal_number: Journal to act on
            actor_id: Acting user
            decision: APPROVE or REJECT
            step_number: Step the caller saw as current; stale values are refused
            expected_version: Journal version the caller read
            comment: Free text kept with the action; the rejection reason on reject

        Raises:
            IllegalTransitionError: Decision not applicable now
            NotEligibleError: Actor not in the current step's organization
            ConcurrencyConflictError: Another command won the race
        """
        decision = ApprovalDecision(decision)
        if decision not in ACTOR_DECISIONS:
            raise IllegalTransitionError(
                f"{decision.value} cannot be requested through act()",
                decision=decision,
            )

        def operation(journal: JournalHeader) -> Dict[str, Any]:
            machine = self._machine(self._bound_graph(journal))
            history = self.ledger.history_of(journal_number)
            actor = self.directory.actor(actor_id)
            result = self._authorize(journal_number, machine, history, actor, decision, step_number)

            state = self._record(journal, machine, history, result, actor_id, comment)
            if state.status == ApprovalStatus.APPROVED:
                event = NotificationEventType.JOURNAL_APPROVED
            elif state.status == ApprovalStatus.REJECTED:
                event = NotificationEventType.JOURNAL_REJECTED
            else:
                event = NotificationEventType.JOURNAL_STEP_ADVANCED
            return self._outcome(journal, machine, state, event, actor_id, decision, comment)

        return self._execute(journal_number, expected_version, operation)

    def recall(
        self,
        journal_number: str,
        actor_id: str,
        expected_version: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Withdraw a submitted journal back to draft before step 1 is approved."""

        def operation(journal: JournalHeader) -> Dict[str, Any]:
            machine = self._machine(self._bound_graph(journal))
            history = self.ledger.history_of(journal_number)
            actor = self.directory.actor(actor_id)
            result = self._authorize(journal_number, machine, history, actor, ApprovalDecision.RECALL)

            state = self._record(journal, machine, history, result, actor_id)
            return self._outcome(
                journal, machine, state, NotificationEventType.JOURNAL_RECALLED, actor_id, ApprovalDecision.RECALL
            )

        return self._execute(journal_number, expected_version, operation)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_state(self, journal_number: str) -> Dict[str, Any]:
        """Derived approval state of a journal plus its row version."""
        journal = self._get_journal(journal_number)
        machine = self._machine(self._bound_graph(journal))
        history = self.ledger.history_of(journal_number)
        state = machine.current_status(history)
        return self._view(journal, machine, state)

    def history(self, journal_number: str) -> List[ApprovalActionRecord]:
        """Ordered audit trail of a journal."""
        self._get_journal(journal_number)
        return self.ledger.history_of(journal_number)

    def pending_for(self, actor_id: str) -> List[Dict[str, Any]]:
        """Journals whose pending step belongs to one of the actor's organizations."""
        organizations = self.directory.organizations_of(actor_id)
        if not organizations:
            return []

        journals = (
            self.db.query(JournalHeader)
            .filter(JournalHeader.approval_status == ApprovalStatus.PENDING.value)
            .order_by(JournalHeader.journal_date.asc(), JournalHeader.journal_number.asc())
            .all()
        )

        inbox = []
        for journal in journals:
            graph = self._bound_graph(journal)
            if journal.current_step is None or journal.current_step > graph.step_count():
                continue
            if graph.step_at(journal.current_step).organization_code not in organizations:
                continue
            machine = self._machine(graph)
            history = self.ledger.history_of(journal.journal_number)
            inbox.append(self._view(journal, machine, machine.current_status(history)))
        return inbox

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _validator(self) -> RouteValidator:
        return RouteValidator(
            self.directory.is_active_organization,
            allow_duplicate_organizations=self.settings.allow_duplicate_step_organizations,
        )

    def _machine(self, graph: RouteGraph) -> ApprovalStateMachine:
        return ApprovalStateMachine(graph, members_of=self.directory.members_of)

    def _bound_graph(self, journal: JournalHeader) -> RouteGraph:
        return RouteGraph.from_snapshot(
            journal.route_snapshot or [],
            route_code=journal.route_code or "",
            version=journal.route_version or 1,
        )

    def _get_journal(self, journal_number: str, *, for_update: bool = False) -> JournalHeader:
        query = self.db.query(JournalHeader).filter(JournalHeader.journal_number == journal_number)
        if for_update:
            query = query.with_for_update().populate_existing()
        journal = query.first()
        if journal is None:
            raise NotFoundError("journal", journal_number)
        return journal

    def _authorize(
        self,
        journal_number: str,
        machine: ApprovalStateMachine,
        history: Sequence[ApprovalActionRecord],
        actor: Actor,
        decision: ApprovalDecision,
        step_number: Optional[int] = None,
    ) -> AuthorizationResult:
        try:
            return machine.can_act(history, actor, decision, step_number=step_number)
        except (IllegalTransitionError, NotEligibleError) as exc:
            logger.warning(
                f"Refused {decision.value} on journal {journal_number} by {actor.actor_id}: {exc}"
            )
            raise

    def _record(
        self,
        journal: JournalHeader,
        machine: ApprovalStateMachine,
        history: Sequence[ApprovalActionRecord],
        result: AuthorizationResult,
        actor_id: str,
        comment: Optional[str] = None,
    ) -> JournalApprovalState:
        """Append the authorized action plus any auto-skips and project the state."""
        now = datetime.utcnow()
        actions = list(history)
        sequence = len(actions)

        record = ApprovalActionRecord(
            decision=result.decision,
            step_number=result.step_number,
            actor_id=actor_id,
            comment=comment,
            acted_at=now,
        )
        sequence += 1
        self.ledger.append_action(journal.journal_number, record, sequence=sequence)
        actions.append(record)
        state = result.resulting_state

        if self.settings.auto_skip_optional_steps:
            while state.status == ApprovalStatus.PENDING and machine.is_skippable(state.current_step):
                skip = ApprovalActionRecord(
                    decision=ApprovalDecision.SKIP,
                    step_number=state.current_step,
                    actor_id=self.settings.system_actor_id,
                    comment=f"organization {state.organization_code} has no active members",
                    acted_at=now,
                )
                sequence += 1
                self.ledger.append_action(journal.journal_number, skip, sequence=sequence)
                actions.append(skip)
                logger.info(f"Journal {journal.journal_number}: skipped optional step {skip.step_number}")
                state = machine.current_status(actions)

        journal.approval_status = state.status.value
        journal.current_step = state.current_step
        journal.updated_at = now
        if state.status == ApprovalStatus.APPROVED:
            journal.approved_by = actor_id
            journal.approved_at = now
        elif state.status == ApprovalStatus.REJECTED:
            journal.rejected_reason = comment

        return state

    def _execute(self, journal_number: str, expected_version: Optional[int], operation) -> Dict[str, Any]:
        """Run ``operation`` on the locked journal inside one transaction."""
        try:
            journal = self._get_journal(journal_number, for_update=True)
            if expected_version is not None and journal.version != expected_version:
                raise ConcurrencyConflictError(
                    journal_number,
                    f"journal {journal_number} is at version {journal.version}, expected {expected_version}",
                )
            outcome = operation(journal)
            self.db.commit()
        except WorkflowError:
            self.db.rollback()
            raise
        except (StaleDataError, IntegrityError) as exc:
            self.db.rollback()
            logger.warning(f"Concurrent modification of journal {journal_number}: {exc}")
            raise ConcurrencyConflictError(journal_number) from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(f"Failed to record approval of journal {journal_number}: {exc}")
            raise PersistenceError(f"could not record approval of journal {journal_number}") from exc

        outcome["version"] = journal.version
        logger.info(
            f"Journal {journal_number}: {outcome['decision']} by {outcome['actor_id']} "
            f"-> {outcome['status']} (step {outcome['current_step']})"
        )
        self._notify(outcome.pop("event"), outcome)
        return outcome

    def _outcome(
        self,
        journal: JournalHeader,
        machine: ApprovalStateMachine,
        state: JournalApprovalState,
        event: NotificationEventType,
        actor_id: str,
        decision: ApprovalDecision,
        comment: Optional[str] = None,
    ) -> Dict[str, Any]:
        outcome = self._view(journal, machine, state)
        outcome.update(
            {
                "event": event,
                "actor_id": actor_id,
                "decision": decision.value,
                "comment": comment,
            }
        )
        return outcome

    def _view(
        self,
        journal: JournalHeader,
        machine: ApprovalStateMachine,
        state: JournalApprovalState,
    ) -> Dict[str, Any]:
        view = state.to_dict()
        view.update(
            {
                "journal_number": journal.journal_number,
                "route_code": journal.route_code,
                "route_version": journal.route_version,
                "version": journal.version,
                "eligible_actors": (
                    sorted(set(machine.members_of(state.organization_code)))
                    if state.status == ApprovalStatus.PENDING
                    else []
                ),
            }
        )
        return view

    def _notify(self, event_type: NotificationEventType, payload: Dict[str, Any]) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.notify(event_type, payload)
        except Exception:
            logger.exception(f"Notification {event_type.value} for journal {payload.get('journal_number')} failed")
