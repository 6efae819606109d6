"""Database models for journalflow."""

from journalflow.db.models.user import User
from journalflow.db.models.organization import WorkflowOrganization, WorkflowOrganizationUser
from journalflow.db.models.route import WorkflowRoute, WorkflowRouteStep
from journalflow.db.models.journal import JournalHeader
from journalflow.db.models.approval import ApprovalAction
from journalflow.db.models.notification import (
    WebhookConfig,
    NotificationLog,
    NotificationEventType,
)

__all__ = [
    "User",
    "WorkflowOrganization",
    "WorkflowOrganizationUser",
    "WorkflowRoute",
    "WorkflowRouteStep",
    "JournalHeader",
    "ApprovalAction",
    "WebhookConfig",
    "NotificationLog",
    "NotificationEventType",
]
