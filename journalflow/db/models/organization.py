"""Workflow organization master models.

A workflow organization is a group of users (typically a department) that
approves one step of a route.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Boolean, Integer, Text, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from journalflow.db.base import Base


class WorkflowOrganization(Base):
    __tablename__ = "workflow_organizations"

    organization_code = Column(String(20), primary_key=True)
    organization_name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    sort_order = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    memberships = relationship("WorkflowOrganizationUser", back_populates="organization", cascade="all, delete-orphan")
    route_steps = relationship("WorkflowRouteStep", back_populates="organization")

    def __repr__(self) -> str:
        return f"<WorkflowOrganization {self.organization_code} [{'active' if self.is_active else 'inactive'}]>"


class WorkflowOrganizationUser(Base):
    """
    Membership of a user in a workflow organization.

    Removing a user deactivates the row instead of deleting it.
    """
    __tablename__ = "workflow_organization_users"
    __table_args__ = (
        UniqueConstraint("organization_code", "user_id", name="uq_workflow_organization_users_org_user"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_code = Column(
        String(20),
        ForeignKey("workflow_organizations.organization_code", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(String(64), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    organization = relationship("WorkflowOrganization", back_populates="memberships")
    user = relationship("User", back_populates="memberships")

    def __repr__(self) -> str:
        return f"<WorkflowOrganizationUser {self.organization_code}:{self.user_id}>"
