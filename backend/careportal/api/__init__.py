"""API routes for CarePortal."""

from careportal.api import (
    assignments,
    audit,
    dashboard,
    health,
    patients,
    records,
    staff,
)

__all__ = [
    "assignments",
    "audit",
    "dashboard",
    "health",
    "patients",
    "records",
    "staff",
]
