import uuid
from datetime import date

import pytest
from pydantic import ValidationError

from careportal.models import (
    AuditLog,
    MedicalRecord,
    Patient,
    PatientAssignment,
    RoleGrant,
    StaffRole,
    ordered_roles,
)
from careportal.schemas import AssignmentCreate, PatientCreate, RecordCreate, RoleUpdate


def _unique_column_sets(model):
    return {
        tuple(column.name for column in constraint.columns)
        for constraint in model.__table__.constraints
        if constraint.__class__.__name__ == "UniqueConstraint"
    }


def test_uniqueness_constraints():
    assert ("patient_id", "staff_id") in _unique_column_sets(PatientAssignment)
    assert ("staff_id", "role") in _unique_column_sets(RoleGrant)


def test_cascade_contract():
    record_fk = next(iter(MedicalRecord.__table__.c.patient_id.foreign_keys))
    assignment_fk = next(iter(PatientAssignment.__table__.c.patient_id.foreign_keys))
    assert record_fk.ondelete == "CASCADE"
    assert assignment_fk.ondelete == "CASCADE"


def test_audit_rows_outlive_their_subjects():
    assert not AuditLog.__table__.c.resource_id.foreign_keys
    user_fk = next(iter(AuditLog.__table__.c.user_id.foreign_keys))
    assert user_fk.ondelete == "SET NULL"
    assert AuditLog.__table__.c.created_at.index


def test_patient_properties():
    patient = Patient(first_name="Ada", last_name="Lovelace", date_of_birth=date(2000, 1, 1), gender="female")
    assert patient.full_name == "Ada Lovelace"
    assert patient.age >= 25


def test_ordered_roles():
    assert ordered_roles({"nurse", StaffRole.admin}) == [StaffRole.admin, StaffRole.nurse]


def test_role_update_accepts_none():
    assert RoleUpdate(role="none").as_role() is None
    assert RoleUpdate(role="doctor").as_role() is StaffRole.doctor
    with pytest.raises(ValidationError):
        RoleUpdate(role="superuser")


def test_record_create_validation():
    with pytest.raises(ValidationError):
        RecordCreate(record_type="lab", title="CBC")
    with pytest.raises(ValidationError):
        RecordCreate(record_type="note", title="")


def test_patient_create_requires_demographics():
    with pytest.raises(ValidationError):
        PatientCreate(first_name="Ada", last_name="Lovelace", gender="female")


def test_assignment_create_requires_uuid():
    assert AssignmentCreate(staff_id=str(uuid.uuid4())).notes is None
    with pytest.raises(ValidationError):
        AssignmentCreate(staff_id="nurse-1")
