"""Journal header model.

Only the fields the approval workflow reads or writes are modelled here. The
approval columns are a cached projection of the action ledger and are only
written by the approval coordinator.
"""

from datetime import date, datetime
from decimal import Decimal
from sqlalchemy import Column, String, DateTime, Date, Integer, Numeric, Text, JSON, ForeignKey
from sqlalchemy.orm import relationship

from journalflow.db.base import Base


class JournalHeader(Base):
    __tablename__ = "journal_headers"

    journal_number = Column(String(20), primary_key=True)
    journal_date = Column(Date, nullable=False, default=date.today)
    description = Column(Text, nullable=True)
    total_amount = Column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    created_by = Column(String(64), ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True)

    # Workflow state
    approval_status = Column(String(20), nullable=False, default="draft", index=True)
    current_step = Column(Integer, nullable=True)
    route_code = Column(
        String(20),
        ForeignKey("workflow_routes.route_code", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )
    route_version = Column(Integer, nullable=True)
    route_snapshot = Column(JSON, nullable=True)

    # Outcome tracking
    approved_by = Column(String(64), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    rejected_reason = Column(Text, nullable=True)

    # Optimistic lock, checked on every UPDATE
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    route = relationship("WorkflowRoute")

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<JournalHeader {self.journal_number} [{self.approval_status}]>"
