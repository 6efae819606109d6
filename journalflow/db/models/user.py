from datetime import datetime
from sqlalchemy import Column, String, DateTime, Boolean
from sqlalchemy.orm import relationship

from journalflow.db.base import Base


class User(Base):
    __tablename__ = "users"

    user_id = Column(String(64), primary_key=True)
    user_code = Column(String(20), unique=True, nullable=False, index=True)
    user_name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    memberships = relationship("WorkflowOrganizationUser", back_populates="user", cascade="all, delete-orphan")
