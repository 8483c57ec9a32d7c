import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class PatientBase(BaseModel):
    """Base schema for patient data."""

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    date_of_birth: date
    gender: str = Field(..., min_length=1, max_length=20)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = Field(None, max_length=200)
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=50)
    zip_code: Optional[str] = Field(None, max_length=20)
    emergency_contact_name: Optional[str] = Field(None, max_length=100)
    emergency_contact_phone: Optional[str] = Field(None, max_length=20)
    emergency_contact_relationship: Optional[str] = Field(None, max_length=50)


class PatientCreate(PatientBase):
    """Schema for registering a new patient."""
    pass


class PatientResponse(PatientBase):
    """Schema for patient response."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    created_by: Optional[uuid.UUID] = None
    created_at: datetime

    full_name: str
    age: Optional[int] = None


class PatientSummary(BaseModel):
    """Brief patient summary for lists."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    first_name: str
    last_name: str
    full_name: str
    date_of_birth: date
    age: Optional[int] = None
    gender: str
    email: Optional[str] = None
    phone: Optional[str] = None
    created_at: datetime


class DashboardResponse(BaseModel):
    total_patients: int
    total_records: int
    recent_patients: list[PatientSummary]
