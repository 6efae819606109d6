"""API routers for journalflow."""

from . import organizations
from . import routes
from . import journals
from . import approvals

__all__ = [
    "organizations",
    "routes",
    "journals",
    "approvals",
]
