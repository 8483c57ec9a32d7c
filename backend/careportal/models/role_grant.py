"""Role grants: which staff roles an identity holds."""

import uuid
from enum import StrEnum
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from careportal.models.base import Base

if TYPE_CHECKING:
    from careportal.models.staff import StaffIdentity


class StaffRole(StrEnum):
    admin = "admin"
    doctor = "doctor"
    nurse = "nurse"


def ordered_roles(roles) -> list[StaffRole]:
    """Roles in declaration order (admin, doctor, nurse)."""
    order = list(StaffRole)
    return sorted((StaffRole(role) for role in roles), key=order.index)


class RoleGrant(Base):
    """One (staff, role) pair. Holding at least one grant makes an identity staff."""

    __tablename__ = "role_grants"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    staff_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("staff_identities.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="Staff role: admin, doctor, nurse",
    )

    __table_args__ = (
        UniqueConstraint("staff_id", "role", name="uq_role_grants_staff_role"),
    )

    staff: Mapped["StaffIdentity"] = relationship(back_populates="role_grants")

    def __repr__(self) -> str:
        return f"<RoleGrant(staff_id={self.staff_id}, role={self.role})>"
