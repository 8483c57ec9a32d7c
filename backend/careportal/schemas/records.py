import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from careportal.models.medical_record import RecordType


class RecordBase(BaseModel):
    """Base schema for medical records."""

    record_type: RecordType
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)


class RecordCreate(RecordBase):
    """Schema for appending a medical record to a patient's history."""
    pass


class RecordResponse(RecordBase):
    """Schema for medical record response."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    patient_id: uuid.UUID
    recorded_by: Optional[uuid.UUID] = None
    recorded_by_name: Optional[str] = None
    recorded_at: datetime
