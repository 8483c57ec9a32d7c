"""Patient repositories and the registrar service."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Optional, Protocol

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from careportal.errors import NotFound
from careportal.models import AuditAction, Patient, ResourceType
from careportal.models.base import icontains, utcnow
from careportal.schemas.patient import PatientCreate
from careportal.services.policy import PolicyEngine
from careportal.services.principal import Principal

logger = logging.getLogger("careportal.services.patients")


class PatientRepository(Protocol):
    async def create_patient(self, data: dict[str, Any], created_by: uuid.UUID):
        ...

    async def get_patient(self, patient_id: uuid.UUID):
        ...

    async def list_patients(self, search: Optional[str], limit: Optional[int] = None) -> list:
        ...

    async def delete_patient(self, patient_id: uuid.UUID) -> bool:
        ...

    async def count_patients(self) -> int:
        ...


class SQLPatientRepository:
    """Patient repository backed by SQLAlchemy.

    Deleting a patient relies on the ``ON DELETE CASCADE`` foreign keys of
    medical records and assignments.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_patient(self, data: dict[str, Any], created_by: uuid.UUID) -> Patient:
        patient = Patient(**data, created_by=created_by)
        self.db.add(patient)
        await self.db.flush()
        await self.db.refresh(patient)
        return patient

    async def get_patient(self, patient_id: uuid.UUID) -> Optional[Patient]:
        result = await self.db.execute(select(Patient).where(Patient.id == patient_id))
        return result.scalar_one_or_none()

    async def list_patients(
        self, search: Optional[str], limit: Optional[int] = None
    ) -> list[Patient]:
        query = select(Patient)
        if search:
            query = query.where(
                or_(
                    icontains(Patient.first_name, search),
                    icontains(Patient.last_name, search),
                    icontains(Patient.email, search),
                    Patient.phone.contains(search, autoescape=True),
                )
            )
        query = query.order_by(Patient.created_at.desc())
        if limit is not None:
            query = query.limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def delete_patient(self, patient_id: uuid.UUID) -> bool:
        result = await self.db.execute(delete(Patient).where(Patient.id == patient_id))
        return bool(result.rowcount)

    async def count_patients(self) -> int:
        result = await self.db.execute(select(func.count()).select_from(Patient))
        return int(result.scalar_one())


@dataclass
class InMemoryPatient:
    id: uuid.UUID
    first_name: str
    last_name: str
    date_of_birth: date
    gender: str
    created_by: Optional[uuid.UUID]
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    emergency_contact_name: Optional[str] = None
    emergency_contact_phone: Optional[str] = None
    emergency_contact_relationship: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def age(self) -> int | None:
        today = date.today()
        return (
            today.year
            - self.date_of_birth.year
            - ((today.month, today.day) < (self.date_of_birth.month, self.date_of_birth.day))
        )


class InMemoryPatientRepository:
    """In-memory repository for tests and local demos.

    Repositories passed as ``dependents`` must expose ``purge_patient`` and
    are purged when a patient is deleted, like the database cascade.
    """

    def __init__(self, dependents: tuple = ()):
        self._patients: list[InMemoryPatient] = []
        self.dependents = list(dependents)

    async def create_patient(
        self, data: dict[str, Any], created_by: uuid.UUID
    ) -> InMemoryPatient:
        patient = InMemoryPatient(id=uuid.uuid4(), created_by=created_by, **data)
        self._patients.append(patient)
        return patient

    async def get_patient(self, patient_id: uuid.UUID) -> Optional[InMemoryPatient]:
        for patient in self._patients:
            if patient.id == patient_id:
                return patient
        return None

    async def list_patients(
        self, search: Optional[str], limit: Optional[int] = None
    ) -> list[InMemoryPatient]:
        patients = list(reversed(self._patients))
        if search:
            needle = search.lower()
            patients = [
                p
                for p in patients
                if needle in p.first_name.lower()
                or needle in p.last_name.lower()
                or (p.email and needle in p.email.lower())
                or (p.phone and search in p.phone)
            ]
        if limit is not None:
            patients = patients[:limit]
        return patients

    async def delete_patient(self, patient_id: uuid.UUID) -> bool:
        for idx, patient in enumerate(self._patients):
            if patient.id == patient_id:
                del self._patients[idx]
                for dependent in self.dependents:
                    dependent.purge_patient(patient_id)
                return True
        return False

    async def count_patients(self) -> int:
        return len(self._patients)

    def clear(self) -> None:
        self._patients.clear()


@dataclass(frozen=True)
class DashboardSummary:
    total_patients: int
    total_records: int
    recent_patients: list


class PatientRegistrar:
    """Registers, shows and removes patients, auditing every action."""

    def __init__(
        self,
        patients: PatientRepository,
        audit,
        records=None,
        policy: PolicyEngine | None = None,
        recent_limit: int = 5,
    ):
        self.patients = patients
        self.records = records
        self.audit = audit
        self.policy = policy or PolicyEngine()
        self.recent_limit = recent_limit

    async def register(self, principal: Principal, data: PatientCreate):
        self.policy.authorize(principal, AuditAction.create, ResourceType.patient)
        patient = await self.patients.create_patient(data.model_dump(), principal.staff_id)
        self.audit.log_audit_event(
            principal,
            AuditAction.create,
            ResourceType.patient,
            patient.id,
            {"patient_name": patient.full_name},
        )
        return patient

    async def get(self, principal: Principal, patient_id: uuid.UUID):
        self.policy.authorize(principal, AuditAction.view, ResourceType.patient)
        patient = await self.patients.get_patient(patient_id)
        if patient is None:
            raise NotFound("patient", patient_id)
        self.audit.log_audit_event(
            principal,
            AuditAction.view,
            ResourceType.patient,
            patient.id,
            {"patient_name": patient.full_name},
        )
        return patient

    async def list_patients(self, principal: Principal, search: Optional[str] = None) -> list:
        """All patients, newest first."""
        self.policy.authorize(principal, AuditAction.view, ResourceType.patient)
        patients = await self.patients.list_patients(search)
        self.audit.log_audit_event(
            principal, AuditAction.view, ResourceType.patient, None, {"action": "list_all"}
        )
        return patients

    async def delete(self, principal: Principal, patient_id: uuid.UUID) -> None:
        """Remove a patient; records and assignments go with it.

        One audit entry covers the whole cascade.
        """
        self.policy.authorize(principal, AuditAction.delete, ResourceType.patient)
        patient = await self.patients.get_patient(patient_id)
        if patient is None:
            raise NotFound("patient", patient_id)
        patient_name = patient.full_name
        if not await self.patients.delete_patient(patient_id):
            raise NotFound("patient", patient_id)
        logger.info("Staff %s deleted patient %s", principal.staff_id, patient_id)
        self.audit.log_audit_event(
            principal,
            AuditAction.delete,
            ResourceType.patient,
            patient_id,
            {"patient_name": patient_name},
        )

    async def dashboard(self, principal: Principal) -> DashboardSummary:
        self.policy.authorize(principal, AuditAction.view, ResourceType.patient)
        total_records = await self.records.count_records() if self.records else 0
        self.audit.log_audit_event(
            principal, AuditAction.view, ResourceType.patient, None, {"action": "dashboard"}
        )
        return DashboardSummary(
            total_patients=await self.patients.count_patients(),
            total_records=total_records,
            recent_patients=await self.patients.list_patients(None, limit=self.recent_limit),
        )
