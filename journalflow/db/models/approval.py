"""Approval action ledger model.

Every decision on a journal is appended here. Rows are never updated or
deleted by the application; the journal's approval status is derived from
them.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, Text, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from journalflow.core.approval.states import ApprovalActionRecord, ApprovalDecision
from journalflow.db.base import Base


class ApprovalAction(Base):
    __tablename__ = "approval_actions"
    __table_args__ = (
        # Two writers appending on the same pre-state collide here
        UniqueConstraint("journal_number", "sequence", name="uq_approval_actions_journal_sequence"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    journal_number = Column(
        String(20),
        ForeignKey("journal_headers.journal_number", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    sequence = Column(Integer, nullable=False)
    step_number = Column(Integer, nullable=False)
    actor_id = Column(String(64), nullable=False)
    decision = Column(String(20), nullable=False)
    comment = Column(Text, nullable=True)
    acted_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    # Relationships
    journal = relationship("JournalHeader")

    def to_record(self) -> ApprovalActionRecord:
        return ApprovalActionRecord(
            decision=ApprovalDecision(self.decision),
            step_number=self.step_number,
            actor_id=self.actor_id,
            comment=self.comment,
            acted_at=self.acted_at,
            sequence=self.sequence,
        )

    def __repr__(self) -> str:
        return f"<ApprovalAction {self.journal_number}#{self.sequence} {self.decision}@{self.step_number}>"
