"""End-to-end flows across policy, assignments, records and the audit trail."""

import pytest

from careportal.errors import Forbidden
from careportal.models import AuditAction, RecordType, ResourceType, StaffRole
from careportal.schemas.records import RecordCreate
from careportal.services.audit import AuditFilters
from careportal.services.policy import NO_ROLE

from helpers import patient_payload

pytestmark = pytest.mark.anyio


async def test_admin_creates_patient_and_nurse_cannot_delete(
    registrar, recorder, audit_sink, admin, nurse, caplog
):
    patient = await registrar.register(admin, patient_payload())

    with pytest.raises(Forbidden):
        await registrar.delete(nurse, patient.id)
    await recorder.flush()

    entries = await recorder.query(admin)
    creates = [e for e in entries if e.action == "create"]
    assert len(creates) == 1
    assert creates[0].resource_type == "patient"
    assert creates[0].resource_id == patient.id
    assert creates[0].actor_name == "Alice Admin"
    assert await recorder.query(admin, AuditFilters(action_equals=AuditAction.delete)) == []
    # Denials are logged, not audited.
    assert all(e.user_id != nurse.staff_id for e in audit_sink.entries)
    assert "careportal.policy" in {r.name for r in caplog.records}


async def test_assigned_nurse_records_but_still_cannot_delete(
    registrar, registry, keeper, recorder, admin, doctor, nurse
):
    patient = await registrar.register(admin, patient_payload())
    await registry.assign(doctor, patient.id, nurse.staff_id)

    record = await keeper.add_record(
        nurse,
        patient.id,
        RecordCreate(record_type=RecordType.note, title="Shift handover"),
    )
    assert record.recorded_by == nurse.staff_id

    with pytest.raises(Forbidden):
        await registrar.delete(nurse, patient.id)
    assert await registrar.patients.get_patient(patient.id) is not None


async def test_revoked_staff_becomes_pending(
    role_manager, registrar, policy_subjects, admin, doctor_identity
):
    await role_manager.replace_role(admin, doctor_identity.id, None)

    revoked = await role_manager.load_principal(doctor_identity.id)
    assert revoked.status == "pending_approval"
    assert not revoked.is_staff
    for action, resource_type in policy_subjects:
        decision = registrar.policy.decide(revoked, action, resource_type)
        assert not decision
        assert decision.reason == NO_ROLE

    with pytest.raises(Forbidden):
        await registrar.list_patients(revoked)


async def test_promoted_staff_gains_admin_rights(role_manager, admin, nurse_identity):
    await role_manager.replace_role(admin, nurse_identity.id, StaffRole.admin)

    promoted = await role_manager.load_principal(nurse_identity.id)
    assert promoted.is_admin and not promoted.is_nurse
    members = await role_manager.list_staff(promoted)
    assert any(m.id == admin.staff_id for m in members)

    with pytest.raises(Forbidden):
        await role_manager.replace_role(promoted, nurse_identity.id, StaffRole.nurse)


@pytest.fixture()
def policy_subjects():
    return [
        (AuditAction.view, ResourceType.patient),
        (AuditAction.create, ResourceType.patient),
        (AuditAction.create, ResourceType.medical_record),
        (AuditAction.delete, ResourceType.patient),
        (AuditAction.create, ResourceType.patient_assignment),
        (AuditAction.update, ResourceType.staff_role),
        (AuditAction.view, ResourceType.audit_log),
    ]
