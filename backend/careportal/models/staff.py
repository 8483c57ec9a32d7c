import uuid
from typing import TYPE_CHECKING

from sqlalchemy import String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from careportal.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from careportal.models.role_grant import RoleGrant


class StaffIdentity(Base, TimestampMixin):
    """Profile of an authenticated staff member.

    The id is the subject issued by the identity provider. Identities are never
    deleted; a member without role grants is simply pending approval.
    """

    __tablename__ = "staff_identities"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    email: Mapped[str] = mapped_column(
        String(255),
        index=True,
        nullable=False,
        comment="Staff email address",
    )
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    department: Mapped[str | None] = mapped_column(String(255), nullable=True)

    __table_args__ = (UniqueConstraint("email", name="uq_staff_identities_email"),)

    role_grants: Mapped[list["RoleGrant"]] = relationship(
        back_populates="staff", cascade="all, delete-orphan"
    )

    @property
    def display_name(self) -> str:
        return self.full_name or self.email

    def __repr__(self) -> str:
        return f"<StaffIdentity(id={self.id}, email='{self.email}')>"
