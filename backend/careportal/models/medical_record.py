import uuid
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from careportal.models.base import Base, utcnow

if TYPE_CHECKING:
    from careportal.models.patient import Patient


class RecordType(StrEnum):
    diagnosis = "diagnosis"
    treatment = "treatment"
    medication = "medication"
    note = "note"


class MedicalRecord(Base):
    """Append-only clinical history entry for a patient.

    Records are never updated or deleted; they disappear only with their patient.
    """

    __tablename__ = "medical_records"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    patient_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("patients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    record_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    recorded_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("staff_identities.id", ondelete="SET NULL"),
        nullable=True,
    )
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    patient: Mapped["Patient"] = relationship(back_populates="medical_records")

    __table_args__ = (
        Index("ix_medical_records_patient_recorded", "patient_id", "recorded_at"),
    )

    def __repr__(self) -> str:
        return f"<MedicalRecord(id={self.id}, patient_id={self.patient_id}, type='{self.record_type}')>"
