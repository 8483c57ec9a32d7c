"""Pydantic schemas for patient assignments."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from careportal.models.role_grant import StaffRole


class AssignmentCreate(BaseModel):
    staff_id: uuid.UUID = Field(..., description="Staff member to assign")
    notes: Optional[str] = Field(None, max_length=2000)


class AssignmentResponse(BaseModel):
    """Assignment joined with the assignee's display name and roles."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    patient_id: uuid.UUID
    staff_id: uuid.UUID
    assigned_by: Optional[uuid.UUID] = None
    assigned_at: datetime
    notes: Optional[str] = None
    staff_name: Optional[str] = None
    staff_email: Optional[str] = None
    roles: list[StaffRole] = []


class CandidateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    full_name: str
    email: str
    roles: list[StaffRole] = []
