"""Staff identities, role grants and the admin role manager."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional, Protocol

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from careportal.errors import Forbidden, NotFound
from careportal.models import AuditAction, ResourceType, RoleGrant, StaffIdentity, StaffRole
from careportal.models.base import utcnow
from careportal.services.policy import PolicyContext, PolicyEngine
from careportal.services.principal import Principal

logger = logging.getLogger("careportal.services.roles")


class RoleStore(Protocol):
    async def get_identity(self, staff_id: uuid.UUID):
        ...

    async def ensure_identity(self, staff_id: uuid.UUID, email: str, full_name: str):
        ...

    async def update_identity(
        self, staff_id: uuid.UUID, full_name: Optional[str], department: Optional[str]
    ):
        ...

    async def list_identities(self) -> list:
        ...

    async def get_identities(self, staff_ids: Iterable[uuid.UUID]) -> dict:
        ...

    async def list_staff_ids(self) -> set[uuid.UUID]:
        ...

    async def grants_for(self, staff_id: uuid.UUID) -> frozenset[StaffRole]:
        ...

    async def grants_for_many(
        self, staff_ids: Iterable[uuid.UUID]
    ) -> dict[uuid.UUID, frozenset[StaffRole]]:
        ...

    async def replace_grants(self, staff_id: uuid.UUID, role: Optional[StaffRole]) -> None:
        ...


class SQLRoleStore:
    """Role store backed by SQLAlchemy."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_identity(self, staff_id: uuid.UUID) -> Optional[StaffIdentity]:
        result = await self.db.execute(
            select(StaffIdentity).where(StaffIdentity.id == staff_id)
        )
        return result.scalar_one_or_none()

    async def ensure_identity(
        self, staff_id: uuid.UUID, email: str, full_name: str
    ) -> StaffIdentity:
        now = utcnow()
        await self.db.execute(
            insert(StaffIdentity)
            .values(
                id=staff_id,
                email=email,
                full_name=full_name,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=[StaffIdentity.id])
        )
        identity = await self.get_identity(staff_id)
        if identity is None:
            raise NotFound("staff_identity", staff_id)
        return identity

    async def update_identity(
        self, staff_id: uuid.UUID, full_name: Optional[str], department: Optional[str]
    ) -> StaffIdentity:
        identity = await self.get_identity(staff_id)
        if identity is None:
            raise NotFound("staff_identity", staff_id)
        if full_name is not None:
            identity.full_name = full_name
        if department is not None:
            identity.department = department or None
        await self.db.flush()
        await self.db.refresh(identity)
        return identity

    async def list_identities(self) -> list[StaffIdentity]:
        result = await self.db.execute(
            select(StaffIdentity).order_by(StaffIdentity.full_name, StaffIdentity.email)
        )
        return list(result.scalars().all())

    async def get_identities(
        self, staff_ids: Iterable[uuid.UUID]
    ) -> dict[uuid.UUID, StaffIdentity]:
        ids = list(set(staff_ids))
        if not ids:
            return {}
        result = await self.db.execute(
            select(StaffIdentity).where(StaffIdentity.id.in_(ids))
        )
        return {identity.id: identity for identity in result.scalars().all()}

    async def list_staff_ids(self) -> set[uuid.UUID]:
        result = await self.db.execute(select(RoleGrant.staff_id).distinct())
        return set(result.scalars().all())

    async def grants_for(self, staff_id: uuid.UUID) -> frozenset[StaffRole]:
        grants = await self.grants_for_many([staff_id])
        return grants.get(staff_id, frozenset())

    async def grants_for_many(
        self, staff_ids: Iterable[uuid.UUID]
    ) -> dict[uuid.UUID, frozenset[StaffRole]]:
        ids = list(set(staff_ids))
        if not ids:
            return {}
        result = await self.db.execute(
            select(RoleGrant.staff_id, RoleGrant.role).where(RoleGrant.staff_id.in_(ids))
        )
        grants: dict[uuid.UUID, set[StaffRole]] = {}
        for staff_id, role in result.all():
            grants.setdefault(staff_id, set()).add(StaffRole(role))
        return {staff_id: frozenset(roles) for staff_id, roles in grants.items()}

    async def replace_grants(self, staff_id: uuid.UUID, role: Optional[StaffRole]) -> None:
        """Swap the grant set of ``staff_id`` inside one savepoint.

        The identity row is locked first so two concurrent replaces run one
        after the other and the survivor's grants are never mixed with the
        loser's.
        """
        async with self.db.begin_nested():
            locked = await self.db.execute(
                select(StaffIdentity.id)
                .where(StaffIdentity.id == staff_id)
                .with_for_update()
            )
            if locked.scalar_one_or_none() is None:
                raise NotFound("staff_identity", staff_id)
            await self.db.execute(delete(RoleGrant).where(RoleGrant.staff_id == staff_id))
            if role is not None:
                self.db.add(RoleGrant(staff_id=staff_id, role=StaffRole(role).value))
            await self.db.flush()


@dataclass
class InMemoryStaffIdentity:
    id: uuid.UUID
    email: str
    full_name: str
    department: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def display_name(self) -> str:
        return self.full_name or self.email


class InMemoryRoleStore:
    """In-memory role store for tests and local demos."""

    def __init__(self):
        self._identities: dict[uuid.UUID, InMemoryStaffIdentity] = {}
        self._grants: dict[uuid.UUID, frozenset[StaffRole]] = {}
        self._lock = asyncio.Lock()

    def add_staff(
        self,
        email: str,
        full_name: str,
        roles: Iterable[StaffRole] = (),
        staff_id: Optional[uuid.UUID] = None,
        department: Optional[str] = None,
    ) -> InMemoryStaffIdentity:
        """Seed an identity with grants."""
        identity = InMemoryStaffIdentity(
            id=staff_id or uuid.uuid4(),
            email=email,
            full_name=full_name,
            department=department,
        )
        self._identities[identity.id] = identity
        granted = frozenset(StaffRole(r) for r in roles)
        if granted:
            self._grants[identity.id] = granted
        return identity

    async def get_identity(self, staff_id: uuid.UUID) -> Optional[InMemoryStaffIdentity]:
        return self._identities.get(staff_id)

    async def ensure_identity(
        self, staff_id: uuid.UUID, email: str, full_name: str
    ) -> InMemoryStaffIdentity:
        async with self._lock:
            identity = self._identities.get(staff_id)
            if identity is None:
                identity = InMemoryStaffIdentity(id=staff_id, email=email, full_name=full_name)
                self._identities[staff_id] = identity
            return identity

    async def update_identity(
        self, staff_id: uuid.UUID, full_name: Optional[str], department: Optional[str]
    ) -> InMemoryStaffIdentity:
        identity = self._identities.get(staff_id)
        if identity is None:
            raise NotFound("staff_identity", staff_id)
        if full_name is not None:
            identity.full_name = full_name
        if department is not None:
            identity.department = department or None
        identity.updated_at = utcnow()
        return identity

    async def list_identities(self) -> list[InMemoryStaffIdentity]:
        return sorted(self._identities.values(), key=lambda i: (i.full_name, i.email))

    async def get_identities(
        self, staff_ids: Iterable[uuid.UUID]
    ) -> dict[uuid.UUID, InMemoryStaffIdentity]:
        return {
            staff_id: self._identities[staff_id]
            for staff_id in set(staff_ids)
            if staff_id in self._identities
        }

    async def list_staff_ids(self) -> set[uuid.UUID]:
        return {staff_id for staff_id, roles in self._grants.items() if roles}

    async def grants_for(self, staff_id: uuid.UUID) -> frozenset[StaffRole]:
        return self._grants.get(staff_id, frozenset())

    async def grants_for_many(
        self, staff_ids: Iterable[uuid.UUID]
    ) -> dict[uuid.UUID, frozenset[StaffRole]]:
        return {
            staff_id: self._grants[staff_id]
            for staff_id in set(staff_ids)
            if staff_id in self._grants
        }

    async def replace_grants(self, staff_id: uuid.UUID, role: Optional[StaffRole]) -> None:
        async with self._lock:
            if staff_id not in self._identities:
                raise NotFound("staff_identity", staff_id)
            if role is None:
                self._grants.pop(staff_id, None)
            else:
                self._grants[staff_id] = frozenset({StaffRole(role)})


@dataclass(frozen=True)
class StaffMember:
    """Directory row: an identity with its current roles."""

    id: uuid.UUID
    email: str
    full_name: str
    department: Optional[str]
    roles: frozenset[StaffRole]
    created_at: Optional[datetime] = None


class RoleManager:
    """Admin operations over role grants and staff profiles."""

    def __init__(self, store: RoleStore, audit, policy: PolicyEngine | None = None):
        self.store = store
        self.audit = audit
        self.policy = policy or PolicyEngine()

    async def load_principal(
        self, staff_id: uuid.UUID, email: str = "", full_name: str = ""
    ) -> Principal:
        """Resolve the request principal, provisioning the identity on first sight."""
        identity = await self.store.ensure_identity(
            staff_id, email, full_name or email
        )
        roles = await self.store.grants_for(staff_id)
        return Principal(
            staff_id=identity.id,
            email=identity.email,
            full_name=identity.full_name,
            roles=roles,
        )

    async def grants_for(self, staff_id: uuid.UUID) -> frozenset[StaffRole]:
        return await self.store.grants_for(staff_id)

    async def list_staff(self, actor: Principal) -> list[StaffMember]:
        self.policy.authorize(actor, AuditAction.view, ResourceType.staff_role)
        identities = await self.store.list_identities()
        grants = await self.store.grants_for_many(i.id for i in identities)
        return [
            StaffMember(
                id=identity.id,
                email=identity.email,
                full_name=identity.full_name,
                department=identity.department,
                roles=grants.get(identity.id, frozenset()),
                created_at=identity.created_at,
            )
            for identity in identities
        ]

    async def replace_role(
        self,
        actor: Principal,
        staff_id: uuid.UUID,
        new_role: Optional[StaffRole],
    ) -> frozenset[StaffRole]:
        """Make ``new_role`` the only grant of ``staff_id`` (``None`` removes all)."""
        self.policy.authorize(
            actor,
            AuditAction.update,
            ResourceType.staff_role,
            PolicyContext(target_staff_id=staff_id),
        )
        role = StaffRole(new_role) if new_role is not None else None
        await self.store.replace_grants(staff_id, role)
        logger.info(
            "Staff %s set role of %s to %s",
            actor.staff_id,
            staff_id,
            role.value if role else "none",
        )
        self.audit.log_audit_event(
            actor,
            AuditAction.update,
            ResourceType.staff_role,
            staff_id,
            {"role": role.value if role else "none"},
        )
        return await self.store.grants_for(staff_id)

    async def update_profile(
        self,
        actor: Principal,
        staff_id: uuid.UUID,
        full_name: Optional[str] = None,
        department: Optional[str] = None,
    ):
        """Only the identity owner or an admin may edit a profile."""
        if actor.staff_id != staff_id and not actor.is_admin:
            logger.warning(
                "Staff %s denied profile update of %s", actor.staff_id, staff_id
            )
            raise Forbidden("only the profile owner or an admin may edit this profile")
        identity = await self.store.update_identity(staff_id, full_name, department)
        changed = {
            key: value
            for key, value in (("full_name", full_name), ("department", department))
            if value is not None
        }
        self.audit.log_audit_event(
            actor,
            AuditAction.update,
            ResourceType.staff_identity,
            staff_id,
            changed,
        )
        return identity
