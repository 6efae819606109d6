"""Workflow route master models.

A route owns an ordered list of steps. The optional ``flow_config`` holds the
editor's node/edge layout and is never used to decide execution order.
"""

from datetime import datetime
from sqlalchemy import Column, String, DateTime, Boolean, Integer, Text, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from journalflow.db.base import Base


class WorkflowRoute(Base):
    __tablename__ = "workflow_routes"

    route_code = Column(String(20), primary_key=True)
    route_name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=False)
    sort_order = Column(Integer, nullable=True)

    # Bumped whenever the step list is replaced
    version = Column(Integer, nullable=False, default=1)

    flow_config = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    steps = relationship(
        "WorkflowRouteStep",
        back_populates="route",
        cascade="all, delete-orphan",
        order_by="WorkflowRouteStep.step_number",
    )

    def __repr__(self) -> str:
        return f"<WorkflowRoute {self.route_code} v{self.version} [{'active' if self.is_active else 'inactive'}]>"


class WorkflowRouteStep(Base):
    __tablename__ = "workflow_route_steps"
    __table_args__ = (
        UniqueConstraint("route_code", "step_number", name="uq_workflow_route_steps_route_step"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    route_code = Column(
        String(20),
        ForeignKey("workflow_routes.route_code", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    step_number = Column(Integer, nullable=False)
    organization_code = Column(
        String(20),
        ForeignKey("workflow_organizations.organization_code", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    step_name = Column(String(100), nullable=True)
    is_required = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    route = relationship("WorkflowRoute", back_populates="steps")
    organization = relationship("WorkflowOrganization", back_populates="route_steps")

    def __repr__(self) -> str:
        return f"<WorkflowRouteStep {self.route_code}#{self.step_number} -> {self.organization_code}>"
