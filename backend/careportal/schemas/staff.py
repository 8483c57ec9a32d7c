"""Pydantic schemas for staff identities and role management."""

import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from careportal.models.role_grant import StaffRole


class PrincipalResponse(BaseModel):
    """The caller as seen by the portal."""

    model_config = ConfigDict(from_attributes=True)

    staff_id: uuid.UUID
    email: str
    full_name: str
    roles: list[StaffRole]
    status: Literal["active", "pending_approval"]


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(None, min_length=1, max_length=255)
    department: Optional[str] = Field(None, max_length=255)


class StaffMemberResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    full_name: str
    department: Optional[str] = None
    roles: list[StaffRole]
    created_at: Optional[datetime] = None


class RoleUpdate(BaseModel):
    """``role`` of ``"none"`` removes every grant."""

    role: StaffRole | Literal["none"]

    def as_role(self) -> StaffRole | None:
        return None if self.role == "none" else StaffRole(self.role)


class RoleUpdateResponse(BaseModel):
    staff_id: uuid.UUID
    roles: list[StaffRole]
