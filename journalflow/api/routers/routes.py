"""Workflow route master API endpoints."""

from typing import Any, Dict, List, Optional
from datetime import datetime

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from journalflow.api.deps import get_db, get_current_actor, http_error
from journalflow.core.config import Settings, get_settings
from journalflow.core.errors import WorkflowError
from journalflow.db.models import User
from journalflow.services.masters import (
    CODE_PATTERN,
    MAX_CODE_LENGTH,
    MAX_DESCRIPTION_LENGTH,
    MAX_ROUTE_STEPS,
    MAX_SORT_ORDER,
    MAX_STEP_NUMBER,
    RouteService,
)

router = APIRouter(prefix="/routes", tags=["routes"])


# Schemas
class StepPayload(BaseModel):
    step_number: int = Field(..., ge=1, le=MAX_STEP_NUMBER)
    organization_code: str = Field(..., min_length=1, max_length=MAX_CODE_LENGTH)
    step_name: Optional[str] = Field(None, max_length=100)
    is_required: bool = True


class RouteCreate(BaseModel):
    route_code: str = Field(..., min_length=1, max_length=MAX_CODE_LENGTH, pattern=CODE_PATTERN)
    route_name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    sort_order: Optional[int] = Field(None, ge=0, le=MAX_SORT_ORDER)
    steps: List[StepPayload] = Field(default_factory=list, max_length=MAX_ROUTE_STEPS)
    flow_config: Optional[Dict[str, Any]] = None


class RouteUpdate(BaseModel):
    route_name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    sort_order: Optional[int] = Field(None, ge=0, le=MAX_SORT_ORDER)


class StepsReplace(BaseModel):
    steps: List[StepPayload] = Field(..., min_length=1, max_length=MAX_ROUTE_STEPS)


class LayoutUpdate(BaseModel):
    flow_config: Optional[Dict[str, Any]] = None


class StepResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    step_number: int
    organization_code: str
    step_name: Optional[str]
    is_required: bool


class RouteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    route_code: str
    route_name: str
    description: Optional[str]
    is_active: bool
    sort_order: Optional[int]
    version: int
    flow_config: Optional[Dict[str, Any]]
    steps: List[StepResponse]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


class ValidationIssueResponse(BaseModel):
    code: str
    message: str


class ValidationResponse(BaseModel):
    route_code: str
    ok: bool
    errors: List[ValidationIssueResponse]


# Endpoints
@router.get("", response_model=List[RouteResponse])
async def list_routes(
    db: Session = Depends(get_db),
    current_actor: User = Depends(get_current_actor),
    settings: Settings = Depends(get_settings),
    search: Optional[str] = None,
    active_only: bool = False,
):
    """List approval routes."""
    routes = RouteService(db, settings).list_routes(search=search, active_only=active_only)
    return [RouteResponse.model_validate(r) for r in routes]


@router.post("", response_model=RouteResponse, status_code=status.HTTP_201_CREATED)
async def create_route(
    route_data: RouteCreate,
    db: Session = Depends(get_db),
    current_actor: User = Depends(get_current_actor),
    settings: Settings = Depends(get_settings),
):
    """Create an inactive approval route."""
    try:
        route = RouteService(db, settings).create_route(
            route_data.route_code,
            route_data.route_name,
            description=route_data.description,
            sort_order=route_data.sort_order,
            steps=[s.model_dump() for s in route_data.steps],
            flow_config=route_data.flow_config,
        )
        db.commit()
    except WorkflowError as e:
        db.rollback()
        raise http_error(e)

    return RouteResponse.model_validate(route)


@router.get("/{route_code}", response_model=RouteResponse)
async def get_route(
    route_code: str,
    db: Session = Depends(get_db),
    current_actor: User = Depends(get_current_actor),
    settings: Settings = Depends(get_settings),
):
    """Get an approval route with its steps."""
    try:
        route = RouteService(db, settings).get_route(route_code)
    except WorkflowError as e:
        raise http_error(e)

    return RouteResponse.model_validate(route)


@router.put("/{route_code}", response_model=RouteResponse)
async def update_route(
    route_code: str,
    route_data: RouteUpdate,
    db: Session = Depends(get_db),
    current_actor: User = Depends(get_current_actor),
    settings: Settings = Depends(get_settings),
):
    """Update route name, description or ordering."""
    try:
        route = RouteService(db, settings).update_route(route_code, **route_data.model_dump(exclude_unset=True))
        db.commit()
    except WorkflowError as e:
        db.rollback()
        raise http_error(e)

    return RouteResponse.model_validate(route)


@router.delete("/{route_code}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_route(
    route_code: str,
    db: Session = Depends(get_db),
    current_actor: User = Depends(get_current_actor),
    settings: Settings = Depends(get_settings),
):
    """Delete a route no journal refers to."""
    try:
        RouteService(db, settings).delete_route(route_code)
        db.commit()
    except WorkflowError as e:
        db.rollback()
        raise http_error(e)

    return None


@router.put("/{route_code}/steps", response_model=RouteResponse)
async def replace_steps(
    route_code: str,
    steps_data: StepsReplace,
    db: Session = Depends(get_db),
    current_actor: User = Depends(get_current_actor),
    settings: Settings = Depends(get_settings),
):
    """
    Replace the step list of a route.

    The route version is bumped. Journals already submitted keep the steps
    they were bound to.
    """
    try:
        route = RouteService(db, settings).replace_steps(route_code, [s.model_dump() for s in steps_data.steps])
        db.commit()
    except WorkflowError as e:
        db.rollback()
        raise http_error(e)

    return RouteResponse.model_validate(route)


@router.put("/{route_code}/layout", response_model=RouteResponse)
async def update_layout(
    route_code: str,
    layout_data: LayoutUpdate,
    db: Session = Depends(get_db),
    current_actor: User = Depends(get_current_actor),
    settings: Settings = Depends(get_settings),
):
    """Store the route editor's node/edge layout."""
    try:
        route = RouteService(db, settings).update_layout(route_code, layout_data.flow_config)
        db.commit()
    except WorkflowError as e:
        db.rollback()
        raise http_error(e)

    return RouteResponse.model_validate(route)


@router.post("/{route_code}/validate", response_model=ValidationResponse)
async def validate_route(
    route_code: str,
    db: Session = Depends(get_db),
    current_actor: User = Depends(get_current_actor),
    settings: Settings = Depends(get_settings),
):
    """Report every problem that would block activating the route."""
    try:
        result = RouteService(db, settings).validate_route(route_code)
    except WorkflowError as e:
        raise http_error(e)

    return ValidationResponse(
        route_code=route_code,
        ok=result.ok,
        errors=[ValidationIssueResponse(code=i.code, message=i.message) for i in result.errors],
    )


@router.post("/{route_code}/activate", response_model=RouteResponse)
async def activate_route(
    route_code: str,
    db: Session = Depends(get_db),
    current_actor: User = Depends(get_current_actor),
    settings: Settings = Depends(get_settings),
):
    """Validate and activate a route."""
    try:
        route = RouteService(db, settings).activate_route(route_code)
        db.commit()
    except WorkflowError as e:
        db.rollback()
        raise http_error(e)

    return RouteResponse.model_validate(route)


@router.post("/{route_code}/deactivate", response_model=RouteResponse)
async def deactivate_route(
    route_code: str,
    db: Session = Depends(get_db),
    current_actor: User = Depends(get_current_actor),
    settings: Settings = Depends(get_settings),
):
    """Deactivate a route; journals already submitted on it are unaffected."""
    try:
        route = RouteService(db, settings).deactivate_route(route_code)
        db.commit()
    except WorkflowError as e:
        db.rollback()
        raise http_error(e)

    return RouteResponse.model_validate(route)
