"""SQLAlchemy adapters for the collaborators the approval engine consumes.

- RouteRepository: routes and their steps
- OrganizationDirectory: organization status and membership
- ActionLedger: the append-only approval action history

All of them work inside the caller's session and never commit.
"""

from datetime import datetime
from typing import List, Optional, Set

from sqlalchemy import and_, func
from sqlalchemy.orm import Session

from journalflow.core.approval.states import Actor, ApprovalActionRecord
from journalflow.core.errors import NotFoundError
from journalflow.core.routing.graph import RouteGraph, StepDefinition
from journalflow.core.routing.validator import RouteCandidate
from journalflow.db.models import (
    ApprovalAction,
    User,
    WorkflowOrganization,
    WorkflowOrganizationUser,
    WorkflowRoute,
    WorkflowRouteStep,
)


class RouteRepository:
    """Loads and stores workflow routes."""

    def __init__(self, db: Session):
        self.db = db

    def find_route(self, route_code: str) -> Optional[WorkflowRoute]:
        return self.db.query(WorkflowRoute).filter(WorkflowRoute.route_code == route_code).first()

    def get_route(self, route_code: str) -> WorkflowRoute:
        route = self.find_route(route_code)
        if route is None:
            raise NotFoundError("route", route_code)
        return route

    def list_steps(self, route_code: str) -> List[WorkflowRouteStep]:
        return (
            self.db.query(WorkflowRouteStep)
            .filter(WorkflowRouteStep.route_code == route_code)
            .order_by(WorkflowRouteStep.step_number.asc())
            .all()
        )

    def save_route(self, route: WorkflowRoute) -> WorkflowRoute:
        self.db.add(route)
        self.db.flush()
        return route

    def step_definitions(self, route_code: str) -> List[StepDefinition]:
        return [
            StepDefinition(
                step_number=s.step_number,
                organization_code=s.organization_code,
                step_name=s.step_name,
                is_required=bool(s.is_required),
            )
            for s in self.list_steps(route_code)
        ]

    def load_graph(self, route_code: str) -> RouteGraph:
        """Build the execution graph of a stored route."""
        route = self.get_route(route_code)
        return RouteGraph(self.step_definitions(route_code), route_code=route.route_code, version=route.version)

    def candidate(self, route: WorkflowRoute) -> RouteCandidate:
        return RouteCandidate(
            route_code=route.route_code,
            steps=self.step_definitions(route.route_code),
            layout=route.flow_config,
        )


class OrganizationDirectory:
    """Answers organization status and membership questions."""

    def __init__(self, db: Session):
        self.db = db

    def is_active_organization(self, organization_code: str) -> bool:
        org = self.db.query(WorkflowOrganization).filter(
            WorkflowOrganization.organization_code == organization_code
        ).first()
        return bool(org and org.is_active)

    def members_of(self, organization_code: str) -> List[str]:
        """Active users with an active membership in the organization."""
        rows = (
            self.db.query(WorkflowOrganizationUser.user_id)
            .join(User, User.user_id == WorkflowOrganizationUser.user_id)
            .filter(
                and_(
                    WorkflowOrganizationUser.organization_code == organization_code,
                    WorkflowOrganizationUser.is_active == True,
                    User.is_active == True,
                )
            )
            .order_by(WorkflowOrganizationUser.user_id.asc())
            .all()
        )
        return [row.user_id for row in rows]

    def organizations_of(self, actor_id: str) -> Set[str]:
        """Active organizations the actor currently belongs to."""
        rows = (
            self.db.query(WorkflowOrganizationUser.organization_code)
            .join(
                WorkflowOrganization,
                WorkflowOrganization.organization_code == WorkflowOrganizationUser.organization_code,
            )
            .join(User, User.user_id == WorkflowOrganizationUser.user_id)
            .filter(
                and_(
                    WorkflowOrganizationUser.user_id == actor_id,
                    WorkflowOrganizationUser.is_active == True,
                    WorkflowOrganization.is_active == True,
                    User.is_active == True,
                )
            )
            .all()
        )
        return {row.organization_code for row in rows}

    def actor(self, actor_id: str) -> Actor:
        return Actor.of(actor_id, self.organizations_of(actor_id))


class ActionLedger:
    """Append-only store of approval actions."""

    def __init__(self, db: Session):
        self.db = db

    def history_of(self, journal_number: str) -> List[ApprovalActionRecord]:
        rows = (
            self.db.query(ApprovalAction)
            .filter(ApprovalAction.journal_number == journal_number)
            .order_by(ApprovalAction.sequence.asc())
            .all()
        )
        return [row.to_record() for row in rows]

    def last_sequence(self, journal_number: str) -> int:
        value = (
            self.db.query(func.max(ApprovalAction.sequence))
            .filter(ApprovalAction.journal_number == journal_number)
            .scalar()
        )
        return value or 0

    def append_action(
        self,
        journal_number: str,
        record: ApprovalActionRecord,
        *,
        sequence: int,
    ) -> ApprovalAction:
        """Stage a new action row; the caller's transaction commits it."""
        action = ApprovalAction(
            journal_number=journal_number,
            sequence=sequence,
            step_number=record.step_number,
            actor_id=record.actor_id,
            decision=record.decision.value,
            comment=record.comment,
            acted_at=record.acted_at or datetime.utcnow(),
        )
        self.db.add(action)
        return action
