"""The authenticated actor of a single request."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field

from careportal.models.role_grant import StaffRole


@dataclass(frozen=True)
class Principal:
    """Who is acting and with which roles.

    Built once per request and passed explicitly to every policy and audit
    call; nothing keeps it around after the request ends.
    """

    staff_id: uuid.UUID
    email: str = ""
    full_name: str = ""
    roles: frozenset[StaffRole] = field(default_factory=frozenset)

    @property
    def is_staff(self) -> bool:
        return bool(self.roles)

    @property
    def is_admin(self) -> bool:
        return StaffRole.admin in self.roles

    @property
    def is_doctor(self) -> bool:
        return StaffRole.doctor in self.roles

    @property
    def is_nurse(self) -> bool:
        return StaffRole.nurse in self.roles

    @property
    def status(self) -> str:
        return "active" if self.is_staff else "pending_approval"
