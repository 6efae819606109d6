"""Approval route definitions for journalflow.

Routes are ordered chains of steps bound to workflow organizations.
"""

from .graph import RouteGraph, StepDefinition, check_step_numbers
from .layout import FlowLayout
from .validator import RouteCandidate, RouteValidator, ValidationIssue, ValidationResult

__all__ = [
    "RouteGraph",
    "StepDefinition",
    "check_step_numbers",
    "FlowLayout",
    "RouteCandidate",
    "RouteValidator",
    "ValidationIssue",
    "ValidationResult",
]
