"""Workflow organization master API endpoints."""

from typing import List, Optional
from datetime import datetime

from fastapi import APIRouter, Depends, status, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from journalflow.api.deps import get_db, get_current_actor, http_error
from journalflow.core.errors import WorkflowError
from journalflow.db.models import User
from journalflow.services.masters import (
    CODE_PATTERN,
    MAX_CODE_LENGTH,
    MAX_DESCRIPTION_LENGTH,
    MAX_SORT_ORDER,
    OrganizationService,
)

router = APIRouter(prefix="/organizations", tags=["organizations"])


# Schemas
class OrganizationCreate(BaseModel):
    organization_code: str = Field(..., min_length=1, max_length=MAX_CODE_LENGTH, pattern=CODE_PATTERN)
    organization_name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    is_active: bool = True
    sort_order: Optional[int] = Field(None, ge=0, le=MAX_SORT_ORDER)


class OrganizationUpdate(BaseModel):
    organization_name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    is_active: Optional[bool] = None
    sort_order: Optional[int] = Field(None, ge=0, le=MAX_SORT_ORDER)


class OrganizationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    organization_code: str
    organization_name: str
    description: Optional[str]
    is_active: bool
    sort_order: Optional[int]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


class MemberAssign(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=64)


class MemberResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    organization_code: str
    user_id: str
    is_active: bool


# Endpoints
@router.get("", response_model=List[OrganizationResponse])
async def list_organizations(
    db: Session = Depends(get_db),
    current_actor: User = Depends(get_current_actor),
    search: Optional[str] = None,
    active_only: bool = False,
):
    """List workflow organizations."""
    orgs = OrganizationService(db).list_organizations(search=search, active_only=active_only)
    return [OrganizationResponse.model_validate(o) for o in orgs]


@router.post("", response_model=OrganizationResponse, status_code=status.HTTP_201_CREATED)
async def create_organization(
    org_data: OrganizationCreate,
    db: Session = Depends(get_db),
    current_actor: User = Depends(get_current_actor),
):
    """Create a workflow organization."""
    try:
        org = OrganizationService(db).create_organization(
            org_data.organization_code,
            org_data.organization_name,
            description=org_data.description,
            is_active=org_data.is_active,
            sort_order=org_data.sort_order,
        )
        db.commit()
    except WorkflowError as e:
        db.rollback()
        raise http_error(e)

    return OrganizationResponse.model_validate(org)


@router.get("/{organization_code}", response_model=OrganizationResponse)
async def get_organization(
    organization_code: str,
    db: Session = Depends(get_db),
    current_actor: User = Depends(get_current_actor),
):
    """Get a workflow organization."""
    try:
        org = OrganizationService(db).get_organization(organization_code)
    except WorkflowError as e:
        raise http_error(e)

    return OrganizationResponse.model_validate(org)


@router.put("/{organization_code}", response_model=OrganizationResponse)
async def update_organization(
    organization_code: str,
    org_data: OrganizationUpdate,
    db: Session = Depends(get_db),
    current_actor: User = Depends(get_current_actor),
):
    """Update a workflow organization."""
    try:
        org = OrganizationService(db).update_organization(
            organization_code, **org_data.model_dump(exclude_unset=True)
        )
        db.commit()
    except WorkflowError as e:
        db.rollback()
        raise http_error(e)

    return OrganizationResponse.model_validate(org)


@router.delete("/{organization_code}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_organization(
    organization_code: str,
    db: Session = Depends(get_db),
    current_actor: User = Depends(get_current_actor),
):
    """Delete a workflow organization that no route step uses."""
    try:
        OrganizationService(db).delete_organization(organization_code)
        db.commit()
    except WorkflowError as e:
        db.rollback()
        raise http_error(e)

    return None


@router.get("/{organization_code}/members", response_model=List[MemberResponse])
async def list_members(
    organization_code: str,
    db: Session = Depends(get_db),
    current_actor: User = Depends(get_current_actor),
    include_inactive: bool = False,
):
    """List members of a workflow organization."""
    try:
        members = OrganizationService(db).list_members(organization_code, include_inactive=include_inactive)
    except WorkflowError as e:
        raise http_error(e)

    return [MemberResponse.model_validate(m) for m in members]


@router.post("/{organization_code}/members", response_model=MemberResponse, status_code=status.HTTP_201_CREATED)
async def assign_member(
    organization_code: str,
    member: MemberAssign,
    db: Session = Depends(get_db),
    current_actor: User = Depends(get_current_actor),
):
    """Assign a user to a workflow organization."""
    try:
        membership = OrganizationService(db).assign_user(organization_code, member.user_id)
        db.commit()
    except WorkflowError as e:
        db.rollback()
        raise http_error(e)

    return MemberResponse.model_validate(membership)


@router.delete("/{organization_code}/members", response_model=MemberResponse)
async def remove_member(
    organization_code: str,
    user_id: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
    current_actor: User = Depends(get_current_actor),
):
    """Remove a user from a workflow organization."""
    try:
        membership = OrganizationService(db).remove_user(organization_code, user_id)
        db.commit()
    except WorkflowError as e:
        db.rollback()
        raise http_error(e)

    return MemberResponse.model_validate(membership)
