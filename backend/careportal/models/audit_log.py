"""Append-only audit trail of actions taken on portal resources."""

import uuid
from datetime import datetime
from enum import StrEnum

from sqlalchemy import JSON, DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from careportal.models.base import Base, utcnow


class AuditAction(StrEnum):
    view = "view"
    create = "create"
    update = "update"
    delete = "delete"


class ResourceType(StrEnum):
    patient = "patient"
    medical_record = "medical_record"
    patient_assignment = "patient_assignment"
    staff_role = "staff_role"
    staff_identity = "staff_identity"
    audit_log = "audit_log"


class AuditLog(Base):
    """Who did what to which resource, and when. Rows are never updated."""

    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("staff_identities.id", ondelete="SET NULL"),
        index=True,
        nullable=True,
        comment="Acting staff member; null for system actions",
    )
    action: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    # Not a foreign key: entries outlive the resources they describe.
    resource_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    details: Mapped[dict[str, str] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, index=True
    )

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, action={self.action}, resource_type={self.resource_type})>"
