"""Medical record repository implementations and the record keeper."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Protocol

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from careportal.errors import NotFound
from careportal.models import AuditAction, MedicalRecord, ResourceType, StaffIdentity
from careportal.models.base import utcnow
from careportal.schemas.records import RecordCreate
from careportal.services.policy import PolicyEngine
from careportal.services.principal import Principal


class RecordRepository(Protocol):
    async def create_record(
        self, patient_id: uuid.UUID, record: RecordCreate, recorded_by: uuid.UUID
    ):
        ...

    async def list_records(self, patient_id: uuid.UUID) -> list:
        ...

    async def count_records(self) -> int:
        ...


@dataclass(frozen=True)
class RecordEntry:
    """A medical record with the recorder's display name."""

    id: uuid.UUID
    patient_id: uuid.UUID
    record_type: str
    title: str
    description: Optional[str]
    recorded_by: Optional[uuid.UUID]
    recorded_at: datetime
    recorded_by_name: Optional[str] = None


def _entry(record, recorder_name: Optional[str]) -> RecordEntry:
    return RecordEntry(
        id=record.id,
        patient_id=record.patient_id,
        record_type=record.record_type,
        title=record.title,
        description=record.description,
        recorded_by=record.recorded_by,
        recorded_at=record.recorded_at,
        recorded_by_name=recorder_name,
    )


class SQLRecordRepository:
    """Record repository backed by SQLAlchemy. There is no update or delete."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_record(
        self, patient_id: uuid.UUID, record: RecordCreate, recorded_by: uuid.UUID
    ) -> RecordEntry:
        new_record = MedicalRecord(
            patient_id=patient_id,
            record_type=record.record_type.value,
            title=record.title,
            description=record.description,
            recorded_by=recorded_by,
        )
        self.db.add(new_record)
        await self.db.flush()
        await self.db.refresh(new_record)
        return _entry(new_record, None)

    async def list_records(self, patient_id: uuid.UUID) -> list[RecordEntry]:
        query = (
            select(MedicalRecord, StaffIdentity.full_name)
            .outerjoin(StaffIdentity, StaffIdentity.id == MedicalRecord.recorded_by)
            .where(MedicalRecord.patient_id == patient_id)
            .order_by(MedicalRecord.recorded_at.desc())
        )
        result = await self.db.execute(query)
        return [_entry(record, name) for record, name in result.all()]

    async def count_records(self) -> int:
        result = await self.db.execute(select(func.count()).select_from(MedicalRecord))
        return int(result.scalar_one())


@dataclass
class InMemoryRecord:
    id: uuid.UUID
    patient_id: uuid.UUID
    record_type: str
    title: str
    description: Optional[str]
    recorded_by: Optional[uuid.UUID]
    recorded_at: datetime = field(default_factory=utcnow)


class InMemoryRecordRepository:
    """In-memory repository for tests and local demos."""

    def __init__(self, role_store=None):
        self.role_store = role_store
        self._records: list[InMemoryRecord] = []

    async def create_record(
        self, patient_id: uuid.UUID, record: RecordCreate, recorded_by: uuid.UUID
    ) -> RecordEntry:
        new_record = InMemoryRecord(
            id=uuid.uuid4(),
            patient_id=patient_id,
            record_type=record.record_type.value,
            title=record.title,
            description=record.description,
            recorded_by=recorded_by,
        )
        self._records.append(new_record)
        return _entry(new_record, None)

    async def list_records(self, patient_id: uuid.UUID) -> list[RecordEntry]:
        records = [r for r in reversed(self._records) if r.patient_id == patient_id]
        names: dict = {}
        if self.role_store is not None:
            identities = await self.role_store.get_identities(
                r.recorded_by for r in records if r.recorded_by
            )
            names = {staff_id: identity.full_name for staff_id, identity in identities.items()}
        return [_entry(r, names.get(r.recorded_by)) for r in records]

    async def count_records(self) -> int:
        return len(self._records)

    def purge_patient(self, patient_id: uuid.UUID) -> None:
        self._records = [r for r in self._records if r.patient_id != patient_id]

    def clear(self) -> None:
        self._records.clear()


class RecordKeeper:
    """Appends to and reads a patient's clinical history."""

    def __init__(
        self,
        records: RecordRepository,
        patients,
        audit,
        policy: PolicyEngine | None = None,
    ):
        self.records = records
        self.patients = patients
        self.audit = audit
        self.policy = policy or PolicyEngine()

    async def _require_patient(self, patient_id: uuid.UUID):
        patient = await self.patients.get_patient(patient_id)
        if patient is None:
            raise NotFound("patient", patient_id)
        return patient

    async def add_record(
        self, principal: Principal, patient_id: uuid.UUID, data: RecordCreate
    ) -> RecordEntry:
        self.policy.authorize(principal, AuditAction.create, ResourceType.medical_record)
        await self._require_patient(patient_id)
        record = await self.records.create_record(patient_id, data, principal.staff_id)
        self.audit.log_audit_event(
            principal,
            AuditAction.create,
            ResourceType.medical_record,
            record.id,
            {
                "patient_id": patient_id,
                "record_type": record.record_type,
                "title": record.title,
            },
        )
        return record

    async def list_for_patient(
        self, principal: Principal, patient_id: uuid.UUID
    ) -> list[RecordEntry]:
        """Newest-first history of one patient."""
        self.policy.authorize(principal, AuditAction.view, ResourceType.medical_record)
        await self._require_patient(patient_id)
        records = await self.records.list_records(patient_id)
        self.audit.log_audit_event(
            principal,
            AuditAction.view,
            ResourceType.medical_record,
            None,
            {"patient_id": patient_id, "count": len(records)},
        )
        return records
