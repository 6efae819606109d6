"""Application services for journalflow."""

from journalflow.services.masters import JournalService, OrganizationService, RouteService
from journalflow.services.notifications import NotificationService

__all__ = [
    "JournalService",
    "OrganizationService",
    "RouteService",
    "NotificationService",
]
