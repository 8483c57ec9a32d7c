"""Staff-to-patient assignments.

At most one assignment exists per (patient, staff) pair. Only admins and
doctors may create or remove assignments; every staff member may read them.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Protocol

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from careportal.errors import DuplicateAssignment, NotFound, ValidationFailed
from careportal.models import (
    AuditAction,
    PatientAssignment,
    ResourceType,
    StaffRole,
    ordered_roles,
)
from careportal.models.base import utcnow
from careportal.services.policy import PolicyEngine
from careportal.services.principal import Principal


class AssignmentRepository(Protocol):
    async def add_assignment(
        self,
        patient_id: uuid.UUID,
        staff_id: uuid.UUID,
        assigned_by: uuid.UUID,
        notes: Optional[str],
    ):
        ...

    async def get_assignment(self, assignment_id: uuid.UUID):
        ...

    async def remove_assignment(self, assignment_id: uuid.UUID) -> bool:
        ...

    async def list_assignments(self, patient_id: uuid.UUID) -> list:
        ...


class SQLAssignmentRepository:
    """Assignment repository backed by SQLAlchemy.

    The unique constraint on (patient_id, staff_id) decides races: the losing
    insert fails inside its savepoint and surfaces as ``DuplicateAssignment``.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def add_assignment(
        self,
        patient_id: uuid.UUID,
        staff_id: uuid.UUID,
        assigned_by: uuid.UUID,
        notes: Optional[str],
    ) -> PatientAssignment:
        assignment = PatientAssignment(
            patient_id=patient_id,
            staff_id=staff_id,
            assigned_by=assigned_by,
            notes=notes,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(assignment)
                await self.db.flush()
        except IntegrityError as exc:
            raise DuplicateAssignment(patient_id, staff_id) from exc
        await self.db.refresh(assignment)
        return assignment

    async def get_assignment(self, assignment_id: uuid.UUID) -> Optional[PatientAssignment]:
        result = await self.db.execute(
            select(PatientAssignment).where(PatientAssignment.id == assignment_id)
        )
        return result.scalar_one_or_none()

    async def remove_assignment(self, assignment_id: uuid.UUID) -> bool:
        result = await self.db.execute(
            delete(PatientAssignment).where(PatientAssignment.id == assignment_id)
        )
        return bool(result.rowcount)

    async def list_assignments(self, patient_id: uuid.UUID) -> list[PatientAssignment]:
        result = await self.db.execute(
            select(PatientAssignment)
            .where(PatientAssignment.patient_id == patient_id)
            .order_by(PatientAssignment.assigned_at, PatientAssignment.id)
        )
        return list(result.scalars().all())


@dataclass
class InMemoryAssignment:
    id: uuid.UUID
    patient_id: uuid.UUID
    staff_id: uuid.UUID
    assigned_by: Optional[uuid.UUID]
    notes: Optional[str] = None
    assigned_at: datetime = field(default_factory=utcnow)


class InMemoryAssignmentRepository:
    """In-memory repository for tests and local demos."""

    def __init__(self):
        self._assignments: list[InMemoryAssignment] = []
        self._lock = asyncio.Lock()

    async def add_assignment(
        self,
        patient_id: uuid.UUID,
        staff_id: uuid.UUID,
        assigned_by: uuid.UUID,
        notes: Optional[str],
    ) -> InMemoryAssignment:
        async with self._lock:
            for existing in self._assignments:
                if existing.patient_id == patient_id and existing.staff_id == staff_id:
                    raise DuplicateAssignment(patient_id, staff_id)
            assignment = InMemoryAssignment(
                id=uuid.uuid4(),
                patient_id=patient_id,
                staff_id=staff_id,
                assigned_by=assigned_by,
                notes=notes,
            )
            self._assignments.append(assignment)
            return assignment

    async def get_assignment(self, assignment_id: uuid.UUID) -> Optional[InMemoryAssignment]:
        for assignment in self._assignments:
            if assignment.id == assignment_id:
                return assignment
        return None

    async def remove_assignment(self, assignment_id: uuid.UUID) -> bool:
        async with self._lock:
            for idx, assignment in enumerate(self._assignments):
                if assignment.id == assignment_id:
                    del self._assignments[idx]
                    return True
            return False

    async def list_assignments(self, patient_id: uuid.UUID) -> list[InMemoryAssignment]:
        return [a for a in self._assignments if a.patient_id == patient_id]

    def purge_patient(self, patient_id: uuid.UUID) -> None:
        self._assignments = [a for a in self._assignments if a.patient_id != patient_id]

    def clear(self) -> None:
        self._assignments.clear()


@dataclass(frozen=True)
class AssignmentView:
    """Assignment joined with the assignee for presentation."""

    id: uuid.UUID
    patient_id: uuid.UUID
    staff_id: uuid.UUID
    assigned_by: Optional[uuid.UUID]
    assigned_at: datetime
    notes: Optional[str]
    staff_name: Optional[str]
    staff_email: Optional[str]
    roles: tuple[StaffRole, ...]


@dataclass(frozen=True)
class Candidate:
    id: uuid.UUID
    full_name: str
    email: str
    roles: tuple[StaffRole, ...]


class AssignmentRegistry:
    """Creates, removes and lists assignments."""

    def __init__(
        self,
        assignments: AssignmentRepository,
        patients,
        role_store,
        audit,
        policy: PolicyEngine | None = None,
    ):
        self.assignments = assignments
        self.patients = patients
        self.role_store = role_store
        self.audit = audit
        self.policy = policy or PolicyEngine()

    async def _require_patient(self, patient_id: uuid.UUID):
        patient = await self.patients.get_patient(patient_id)
        if patient is None:
            raise NotFound("patient", patient_id)
        return patient

    async def assign(
        self,
        principal: Principal,
        patient_id: uuid.UUID,
        staff_id: uuid.UUID,
        notes: Optional[str] = None,
    ) -> uuid.UUID:
        self.policy.authorize(principal, AuditAction.create, ResourceType.patient_assignment)
        await self._require_patient(patient_id)
        if await self.role_store.get_identity(staff_id) is None:
            raise NotFound("staff_identity", staff_id)
        if not await self.role_store.grants_for(staff_id):
            raise ValidationFailed("staff_id", "is not an active staff member")

        assignment = await self.assignments.add_assignment(
            patient_id, staff_id, principal.staff_id, notes
        )
        self.audit.log_audit_event(
            principal,
            AuditAction.create,
            ResourceType.patient_assignment,
            patient_id,
            {"staff_id": staff_id, "assignment_id": assignment.id},
        )
        return assignment.id

    async def unassign(self, principal: Principal, assignment_id: uuid.UUID) -> None:
        self.policy.authorize(principal, AuditAction.delete, ResourceType.patient_assignment)
        assignment = await self.assignments.get_assignment(assignment_id)
        if assignment is None:
            raise NotFound("patient_assignment", assignment_id)
        patient_id, staff_id = assignment.patient_id, assignment.staff_id
        if not await self.assignments.remove_assignment(assignment_id):
            raise NotFound("patient_assignment", assignment_id)
        self.audit.log_audit_event(
            principal,
            AuditAction.delete,
            ResourceType.patient_assignment,
            patient_id,
            {"assignment_id": assignment_id, "staff_id": staff_id},
        )

    async def list_for_patient(
        self,
        principal: Principal,
        patient_id: uuid.UUID,
        newest_first: bool = False,
    ) -> list[AssignmentView]:
        """Assignments in assignment order, joined with name and roles."""
        self.policy.authorize(principal, AuditAction.view, ResourceType.patient_assignment)
        await self._require_patient(patient_id)
        assignments = await self.assignments.list_assignments(patient_id)
        staff_ids = [a.staff_id for a in assignments]
        identities = await self.role_store.get_identities(staff_ids)
        grants = await self.role_store.grants_for_many(staff_ids)

        views = []
        for assignment in assignments:
            identity = identities.get(assignment.staff_id)
            views.append(
                AssignmentView(
                    id=assignment.id,
                    patient_id=assignment.patient_id,
                    staff_id=assignment.staff_id,
                    assigned_by=assignment.assigned_by,
                    assigned_at=assignment.assigned_at,
                    notes=assignment.notes,
                    staff_name=identity.full_name if identity else None,
                    staff_email=identity.email if identity else None,
                    roles=tuple(ordered_roles(grants.get(assignment.staff_id, ()))),
                )
            )
        if newest_first:
            views.reverse()
        return views

    async def list_candidates(
        self, principal: Principal, patient_id: uuid.UUID
    ) -> list[Candidate]:
        """Staff with at least one role who are not yet assigned to the patient."""
        self.policy.authorize(principal, AuditAction.create, ResourceType.patient_assignment)
        await self._require_patient(patient_id)
        assigned = {a.staff_id for a in await self.assignments.list_assignments(patient_id)}
        staff_ids = await self.role_store.list_staff_ids() - assigned
        identities = await self.role_store.get_identities(staff_ids)
        grants = await self.role_store.grants_for_many(staff_ids)
        candidates = [
            Candidate(
                id=identity.id,
                full_name=identity.full_name,
                email=identity.email,
                roles=tuple(ordered_roles(grants.get(identity.id, ()))),
            )
            for identity in identities.values()
        ]
        return sorted(candidates, key=lambda c: (c.full_name, c.email))
