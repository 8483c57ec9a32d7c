"""Patient assignment: links a responsible staff member to a patient."""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from careportal.models.base import Base, utcnow

if TYPE_CHECKING:
    from careportal.models.patient import Patient


class PatientAssignment(Base):
    __tablename__ = "patient_assignments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    patient_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("patients.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    staff_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("staff_identities.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    assigned_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("staff_identities.id", ondelete="SET NULL"),
        nullable=True,
        comment="Admin or doctor who created the assignment",
    )
    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("patient_id", "staff_id", name="uq_patient_assignments_pair"),
    )

    patient: Mapped["Patient"] = relationship(back_populates="assignments")

    def __repr__(self) -> str:
        return f"<PatientAssignment(patient_id={self.patient_id}, staff_id={self.staff_id})>"
