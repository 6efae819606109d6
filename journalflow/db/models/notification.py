"""Webhook subscriptions and notification history models."""

import uuid
from datetime import datetime
from enum import Enum
from sqlalchemy import Column, String, DateTime, JSON, ForeignKey, Boolean, Text, Integer, Uuid
from sqlalchemy.orm import relationship

from journalflow.db.base import Base


class NotificationEventType(str, Enum):
    """Events that can trigger notifications."""
    JOURNAL_SUBMITTED = "journal_submitted"
    JOURNAL_STEP_ADVANCED = "journal_step_advanced"
    JOURNAL_APPROVED = "journal_approved"
    JOURNAL_REJECTED = "journal_rejected"
    JOURNAL_RECALLED = "journal_recalled"


class WebhookConfig(Base):
    """
    Webhook configuration for external integrations.

    Receives approval status changes, e.g. to refresh an approval inbox or
    post to a chat channel.
    """
    __tablename__ = "webhook_configs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # Basic info
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    # Webhook configuration
    url = Column(Text, nullable=False)
    method = Column(String(10), default="POST")  # POST, PUT

    # Authentication
    auth_type = Column(String(50), nullable=True)  # bearer, header
    auth_value = Column(Text, nullable=True)

    # Custom headers
    headers = Column(JSON, default=dict)

    # Event subscriptions (list of event type values; empty = all events)
    subscribed_events = Column(JSON, default=list)

    # Payload template (Jinja2 template rendering a JSON document)
    payload_template = Column(Text, nullable=True)

    # Status
    is_active = Column(Boolean, default=True)
    last_triggered_at = Column(DateTime, nullable=True)
    last_error = Column(Text, nullable=True)
    failure_count = Column(Integer, default=0)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def wants(self, event_type: NotificationEventType) -> bool:
        return not self.subscribed_events or event_type.value in self.subscribed_events

    def __repr__(self) -> str:
        return f"<WebhookConfig {self.name}>"


class NotificationLog(Base):
    """
    Log of sent notifications for audit and debugging.
    """
    __tablename__ = "notification_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # Notification details
    event_type = Column(String(50), nullable=False)
    recipient = Column(String(255), nullable=False)  # webhook name

    # Related entities
    webhook_id = Column(Uuid, ForeignKey("webhook_configs.id", ondelete="SET NULL"), nullable=True)
    journal_number = Column(String(20), nullable=True, index=True)

    # Payload
    payload = Column(JSON, nullable=True)

    # Status
    status = Column(String(50), nullable=False, default="pending")  # pending, sent, failed
    error_message = Column(Text, nullable=True)
    attempts = Column(Integer, default=0)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    sent_at = Column(DateTime, nullable=True)

    # Relationships
    webhook = relationship("WebhookConfig")

    def __repr__(self) -> str:
        return f"<NotificationLog {self.event_type} to {self.recipient}>"
