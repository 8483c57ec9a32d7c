"""Pydantic schemas for API request/response validation."""

from careportal.schemas.assignment import (
    AssignmentCreate,
    AssignmentResponse,
    CandidateResponse,
)
from careportal.schemas.audit import AuditLogResponse
from careportal.schemas.patient import (
    DashboardResponse,
    PatientBase,
    PatientCreate,
    PatientResponse,
    PatientSummary,
)
from careportal.schemas.records import (
    RecordBase,
    RecordCreate,
    RecordResponse,
)
from careportal.schemas.staff import (
    PrincipalResponse,
    ProfileUpdate,
    RoleUpdate,
    RoleUpdateResponse,
    StaffMemberResponse,
)

__all__ = [
    "AssignmentCreate",
    "AssignmentResponse",
    "CandidateResponse",
    "AuditLogResponse",
    "DashboardResponse",
    "PatientBase",
    "PatientCreate",
    "PatientResponse",
    "PatientSummary",
    "RecordBase",
    "RecordCreate",
    "RecordResponse",
    "PrincipalResponse",
    "ProfileUpdate",
    "RoleUpdate",
    "RoleUpdateResponse",
    "StaffMemberResponse",
]
