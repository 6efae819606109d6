"""Master maintenance for workflow organizations, routes and journals.

The services flush but never commit; the caller owns the transaction.
"""

import logging
import re
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from sqlalchemy import or_
from sqlalchemy.orm import Session

from journalflow.core.config import Settings, get_settings
from journalflow.core.errors import MasterDataError, NotFoundError, StructureError
from journalflow.core.routing.graph import StepDefinition, check_step_numbers
from journalflow.core.routing.layout import FlowLayout
from journalflow.core.routing.validator import RouteValidator, ValidationResult
from journalflow.db.models import (
    JournalHeader,
    User,
    WorkflowOrganization,
    WorkflowOrganizationUser,
    WorkflowRoute,
    WorkflowRouteStep,
)
from journalflow.db.repositories import OrganizationDirectory, RouteRepository

logger = logging.getLogger(__name__)

StepInput = Union[StepDefinition, Mapping[str, Any]]

CODE_PATTERN = r"^[A-Za-z0-9_-]+$"
MAX_CODE_LENGTH = 20
MAX_DESCRIPTION_LENGTH = 1000
MAX_SORT_ORDER = 999999
MAX_STEP_NUMBER = 999
MAX_ROUTE_STEPS = 100


def check_master_fields(
    subject: str,
    *,
    code: Optional[str] = None,
    description: Optional[str] = None,
    sort_order: Optional[int] = None,
) -> None:
    """Raise StructureError listing every field outside the master data limits."""
    problems = []
    if code is not None:
        if not 1 <= len(code) <= MAX_CODE_LENGTH:
            problems.append(f"code must be 1-{MAX_CODE_LENGTH} characters")
        if not re.match(CODE_PATTERN, code):
            problems.append("code may only contain letters, digits, hyphens and underscores")
    if description is not None and len(description) > MAX_DESCRIPTION_LENGTH:
        problems.append(f"description must be at most {MAX_DESCRIPTION_LENGTH} characters")
    if sort_order is not None and not 0 <= sort_order <= MAX_SORT_ORDER:
        problems.append(f"sort_order must be between 0 and {MAX_SORT_ORDER}")
    if problems:
        raise StructureError(f"{subject} is invalid", problems)


class OrganizationService:
    """Maintains workflow organizations and their members."""

    def __init__(self, db: Session):
        self.db = db

    def list_organizations(self, *, search: Optional[str] = None, active_only: bool = False) -> List[WorkflowOrganization]:
        query = self.db.query(WorkflowOrganization)
        if search:
            pattern = f"%{search}%"
            query = query.filter(
                or_(
                    WorkflowOrganization.organization_code.ilike(pattern),
                    WorkflowOrganization.organization_name.ilike(pattern),
                )
            )
        if active_only:
            query = query.filter(WorkflowOrganization.is_active == True)
        return query.order_by(
            WorkflowOrganization.sort_order.asc(), WorkflowOrganization.organization_code.asc()
        ).all()

    def get_organization(self, organization_code: str) -> WorkflowOrganization:
        org = self.db.query(WorkflowOrganization).filter(
            WorkflowOrganization.organization_code == organization_code
        ).first()
        if org is None:
            raise NotFoundError("organization", organization_code)
        return org

    def create_organization(
        self,
        organization_code: str,
        organization_name: str,
        *,
        description: Optional[str] = None,
        is_active: bool = True,
        sort_order: Optional[int] = None,
    ) -> WorkflowOrganization:
        check_master_fields(
            f"Organization {organization_code}",
            code=organization_code,
            description=description,
            sort_order=sort_order,
        )
        existing = self.db.query(WorkflowOrganization).filter(
            WorkflowOrganization.organization_code == organization_code
        ).first()
        if existing:
            raise MasterDataError(f"Organization {organization_code} already exists")

        org = WorkflowOrganization(
            organization_code=organization_code,
            organization_name=organization_name,
            description=description,
            is_active=is_active,
            sort_order=sort_order,
        )
        self.db.add(org)
        self.db.flush()
        logger.info(f"Created organization {organization_code}")
        return org

    def update_organization(self, organization_code: str, **changes: Any) -> WorkflowOrganization:
        org = self.get_organization(organization_code)
        check_master_fields(
            f"Organization {organization_code}",
            description=changes.get("description"),
            sort_order=changes.get("sort_order"),
        )
        for field in ("organization_name", "description", "is_active", "sort_order"):
            if field in changes and changes[field] is not None:
                setattr(org, field, changes[field])
        self.db.flush()
        return org

    def delete_organization(self, organization_code: str) -> None:
        org = self.get_organization(organization_code)
        in_use = self.db.query(WorkflowRouteStep).filter(
            WorkflowRouteStep.organization_code == organization_code
        ).count()
        if in_use:
            raise MasterDataError(
                f"Organization {organization_code} is used by {in_use} route step(s) and cannot be deleted"
            )
        self.db.delete(org)
        self.db.flush()
        logger.info(f"Deleted organization {organization_code}")

    def list_members(self, organization_code: str, *, include_inactive: bool = False) -> List[WorkflowOrganizationUser]:
        self.get_organization(organization_code)
        query = self.db.query(WorkflowOrganizationUser).filter(
            WorkflowOrganizationUser.organization_code == organization_code
        )
        if not include_inactive:
            query = query.filter(WorkflowOrganizationUser.is_active == True)
        return query.order_by(WorkflowOrganizationUser.user_id.asc()).all()

    def assign_user(self, organization_code: str, user_id: str) -> WorkflowOrganizationUser:
        """Add a user to an organization, reactivating a removed membership."""
        self.get_organization(organization_code)
        user = self.db.query(User).filter(User.user_id == user_id).first()
        if user is None:
            raise NotFoundError("user", user_id)

        membership = self.db.query(WorkflowOrganizationUser).filter(
            WorkflowOrganizationUser.organization_code == organization_code,
            WorkflowOrganizationUser.user_id == user_id,
        ).first()
        if membership is not None:
            if membership.is_active:
                raise MasterDataError(f"User {user_id} is already a member of {organization_code}")
            membership.is_active = True
        else:
            membership = WorkflowOrganizationUser(organization_code=organization_code, user_id=user_id)
            self.db.add(membership)
        self.db.flush()
        logger.info(f"Assigned user {user_id} to organization {organization_code}")
        return membership

    def remove_user(self, organization_code: str, user_id: str) -> WorkflowOrganizationUser:
        membership = self.db.query(WorkflowOrganizationUser).filter(
            WorkflowOrganizationUser.organization_code == organization_code,
            WorkflowOrganizationUser.user_id == user_id,
            WorkflowOrganizationUser.is_active == True,
        ).first()
        if membership is None:
            raise NotFoundError("membership", f"{organization_code}:{user_id}")
        membership.is_active = False
        self.db.flush()
        logger.info(f"Removed user {user_id} from organization {organization_code}")
        return membership


class RouteService:
    """
    Maintains workflow routes.

    Routes are created inactive. Replacing the steps or the layout bumps the
    route version; journals already submitted keep the snapshot they were
    bound to. An active route must stay valid, so edits to it are validated
    before they are accepted.
    """

    def __init__(self, db: Session, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()
        self.repository = RouteRepository(db)
        self.directory = OrganizationDirectory(db)

    def list_routes(self, *, search: Optional[str] = None, active_only: bool = False) -> List[WorkflowRoute]:
        query = self.db.query(WorkflowRoute)
        if search:
            pattern = f"%{search}%"
            query = query.filter(
                or_(WorkflowRoute.route_code.ilike(pattern), WorkflowRoute.route_name.ilike(pattern))
            )
        if active_only:
            query = query.filter(WorkflowRoute.is_active == True)
        return query.order_by(WorkflowRoute.sort_order.asc(), WorkflowRoute.route_code.asc()).all()

    def get_route(self, route_code: str) -> WorkflowRoute:
        return self.repository.get_route(route_code)

    def create_route(
        self,
        route_code: str,
        route_name: str,
        *,
        description: Optional[str] = None,
        sort_order: Optional[int] = None,
        steps: Optional[Iterable[StepInput]] = None,
        flow_config: Optional[Dict[str, Any]] = None,
    ) -> WorkflowRoute:
        check_master_fields(f"Route {route_code}", code=route_code, description=description, sort_order=sort_order)
        if self.repository.find_route(route_code) is not None:
            raise MasterDataError(f"Route {route_code} already exists")

        new_steps = self._build_steps(route_code, steps or [])

        route = WorkflowRoute(
            route_code=route_code,
            route_name=route_name,
            description=description,
            sort_order=sort_order,
            is_active=False,
            version=1,
        )
        if flow_config is not None:
            route.flow_config = FlowLayout.parse(flow_config).to_dict()
        self.repository.save_route(route)

        if new_steps:
            route.steps.extend(new_steps)
            self.db.flush()

        logger.info(f"Created route {route_code}")
        return route

    def update_route(self, route_code: str, **changes: Any) -> WorkflowRoute:
        route = self.get_route(route_code)
        check_master_fields(
            f"Route {route_code}", description=changes.get("description"), sort_order=changes.get("sort_order")
        )
        for field in ("route_name", "description", "sort_order"):
            if field in changes and changes[field] is not None:
                setattr(route, field, changes[field])
        self.db.flush()
        return route

    def replace_steps(self, route_code: str, steps: Iterable[StepInput]) -> WorkflowRoute:
        """Replace the whole step list and bump the route version."""
        route = self.get_route(route_code)
        new_steps = self._build_steps(route_code, steps)
        if not new_steps:
            raise StructureError(f"Route {route_code} needs at least one step", ["route must have at least one step"])

        route.steps.clear()
        # Old rows must be gone before the (route_code, step_number) inserts
        self.db.flush()
        route.steps.extend(new_steps)
        route.version = (route.version or 0) + 1
        self.db.flush()

        self._revalidate_if_active(route)
        logger.info(f"Replaced steps of route {route_code} (now version {route.version})")
        return route

    def update_layout(self, route_code: str, flow_config: Optional[Dict[str, Any]]) -> WorkflowRoute:
        route = self.get_route(route_code)
        layout = FlowLayout.parse(flow_config)
        route.flow_config = layout.to_dict() if layout is not None else None
        route.version = (route.version or 0) + 1
        self.db.flush()

        self._revalidate_if_active(route)
        return route

    def validate_route(self, route_code: str) -> ValidationResult:
        route = self.get_route(route_code)
        return self._validator().validate(self.repository.candidate(route))

    def activate_route(self, route_code: str) -> WorkflowRoute:
        route = self.get_route(route_code)
        self._validator().validate(self.repository.candidate(route)).raise_for_errors(route_code)
        route.is_active = True
        self.db.flush()
        logger.info(f"Activated route {route_code}")
        return route

    def deactivate_route(self, route_code: str) -> WorkflowRoute:
        route = self.get_route(route_code)
        route.is_active = False
        self.db.flush()
        logger.info(f"Deactivated route {route_code}")
        return route

    def delete_route(self, route_code: str) -> None:
        route = self.get_route(route_code)
        in_use = self.db.query(JournalHeader).filter(JournalHeader.route_code == route_code).count()
        if in_use:
            raise MasterDataError(f"Route {route_code} is referenced by {in_use} journal(s) and cannot be deleted")
        self.db.delete(route)
        self.db.flush()
        logger.info(f"Deleted route {route_code}")

    def _validator(self) -> RouteValidator:
        return RouteValidator(
            self.directory.is_active_organization,
            allow_duplicate_organizations=self.settings.allow_duplicate_step_organizations,
        )

    def _revalidate_if_active(self, route: WorkflowRoute) -> None:
        if route.is_active:
            self._validator().validate(self.repository.candidate(route)).raise_for_errors(route.route_code)

    def _build_steps(self, route_code: str, steps: Iterable[StepInput]) -> List[WorkflowRouteStep]:
        definitions = [s if isinstance(s, StepDefinition) else StepDefinition.from_mapping(s) for s in steps]

        if len(definitions) > MAX_ROUTE_STEPS:
            raise StructureError(
                f"Route {route_code} has too many steps", [f"a route may have at most {MAX_ROUTE_STEPS} steps"]
            )

        problems = check_step_numbers([d.step_number for d in definitions])
        problems.extend(
            f"step number {n} must be at most {MAX_STEP_NUMBER}"
            for n in sorted({d.step_number for d in definitions if d.step_number > MAX_STEP_NUMBER})
        )
        if problems:
            raise StructureError(f"Route {route_code} has a malformed step sequence", problems)

        for definition in definitions:
            exists = self.db.query(WorkflowOrganization).filter(
                WorkflowOrganization.organization_code == definition.organization_code
            ).first()
            if exists is None:
                raise NotFoundError("organization", definition.organization_code)

        return [
            WorkflowRouteStep(
                route_code=route_code,
                step_number=d.step_number,
                organization_code=d.organization_code,
                step_name=d.step_name,
                is_required=d.is_required,
            )
            for d in sorted(definitions, key=lambda d: d.step_number)
        ]


class JournalService:
    """Creates and looks up journal headers."""

    def __init__(self, db: Session):
        self.db = db

    def get_journal(self, journal_number: str) -> JournalHeader:
        journal = self.db.query(JournalHeader).filter(JournalHeader.journal_number == journal_number).first()
        if journal is None:
            raise NotFoundError("journal", journal_number)
        return journal

    def create_journal(
        self,
        journal_number: str,
        created_by: str,
        *,
        journal_date: Optional[date] = None,
        description: Optional[str] = None,
        total_amount: Decimal = Decimal("0"),
    ) -> JournalHeader:
        """Create a draft journal."""
        exists = self.db.query(JournalHeader).filter(JournalHeader.journal_number == journal_number).first()
        if exists:
            raise MasterDataError(f"Journal {journal_number} already exists")

        journal = JournalHeader(
            journal_number=journal_number,
            journal_date=journal_date or date.today(),
            description=description,
            total_amount=total_amount,
            created_by=created_by,
            approval_status="draft",
        )
        self.db.add(journal)
        self.db.flush()
        return journal
