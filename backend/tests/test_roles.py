import uuid

import anyio
import pytest

from careportal.errors import Forbidden, NotFound
from careportal.models import AuditAction, ResourceType, StaffRole
from careportal.services.policy import SELF_MODIFICATION

pytestmark = pytest.mark.anyio


async def test_replace_role_swaps_single_grant(role_manager, role_store, admin, nurse_identity):
    granted = await role_manager.replace_role(admin, nurse_identity.id, StaffRole.doctor)

    assert granted == frozenset({StaffRole.doctor})
    assert await role_store.grants_for(nurse_identity.id) == frozenset({StaffRole.doctor})


async def test_replace_role_collapses_multiple_grants(role_manager, role_store, admin):
    busy = role_store.add_staff("b@hospital.test", "Busy", [StaffRole.doctor, StaffRole.nurse])

    await role_manager.replace_role(admin, busy.id, StaffRole.nurse)

    assert await role_store.grants_for(busy.id) == frozenset({StaffRole.nurse})


async def test_replace_role_none_revokes_access(role_manager, role_store, admin, doctor_identity):
    granted = await role_manager.replace_role(admin, doctor_identity.id, None)

    assert granted == frozenset()
    principal = await role_manager.load_principal(doctor_identity.id)
    assert principal.status == "pending_approval"


async def test_replace_role_records_audit(role_manager, recorder, audit_sink, admin, nurse_identity):
    await role_manager.replace_role(admin, nurse_identity.id, None)
    await recorder.flush()

    (entry,) = audit_sink.entries
    assert entry.action == AuditAction.update
    assert entry.resource_type == ResourceType.staff_role
    assert entry.resource_id == nurse_identity.id
    assert entry.user_id == admin.staff_id
    assert entry.details == {"role": "none"}


async def test_admin_cannot_change_own_role(role_manager, role_store, recorder, audit_sink, admin):
    with pytest.raises(Forbidden) as exc_info:
        await role_manager.replace_role(admin, admin.staff_id, StaffRole.nurse)

    assert exc_info.value.reason == SELF_MODIFICATION
    assert await role_store.grants_for(admin.staff_id) == frozenset({StaffRole.admin})
    await recorder.flush()
    assert audit_sink.entries == []


async def test_self_modification_checked_before_role(role_manager, pending):
    with pytest.raises(Forbidden) as exc_info:
        await role_manager.replace_role(pending, pending.staff_id, StaffRole.admin)
    assert exc_info.value.reason == SELF_MODIFICATION


@pytest.mark.parametrize("actor", ["doctor", "nurse", "pending"])
async def test_non_admin_cannot_replace_roles(request, role_manager, role_store, actor, admin_identity):
    principal = request.getfixturevalue(actor)
    with pytest.raises(Forbidden):
        await role_manager.replace_role(principal, admin_identity.id, None)
    assert await role_store.grants_for(admin_identity.id) == frozenset({StaffRole.admin})


async def test_replace_role_unknown_staff(role_manager, admin):
    with pytest.raises(NotFound):
        await role_manager.replace_role(admin, uuid.uuid4(), StaffRole.nurse)


async def test_concurrent_replacements_leave_one_writer_grant(role_manager, role_store, admin, nurse_identity):
    async with anyio.create_task_group() as tg:
        for role in (StaffRole.doctor, StaffRole.admin, None, StaffRole.nurse):
            tg.start_soon(role_manager.replace_role, admin, nurse_identity.id, role)

    grants = await role_store.grants_for(nurse_identity.id)
    assert len(grants) <= 1


async def test_load_principal_provisions_unknown_identity(role_manager, role_store):
    staff_id = uuid.uuid4()

    principal = await role_manager.load_principal(staff_id, "new@hospital.test", "New Hire")

    assert principal.staff_id == staff_id
    assert principal.roles == frozenset()
    assert principal.status == "pending_approval"
    identity = await role_store.get_identity(staff_id)
    assert identity.full_name == "New Hire"


async def test_load_principal_keeps_existing_profile(role_manager, doctor_identity):
    principal = await role_manager.load_principal(
        doctor_identity.id, "other@hospital.test", "Other Name"
    )
    assert principal.full_name == "Dan Doctor"
    assert principal.is_doctor


async def test_list_staff_is_admin_only(role_manager, admin, nurse, doctor_identity, pending_identity):
    members = await role_manager.list_staff(admin)
    by_id = {m.id: m for m in members}
    assert by_id[doctor_identity.id].roles == frozenset({StaffRole.doctor})
    assert by_id[pending_identity.id].roles == frozenset()
    assert [m.full_name for m in members] == sorted(m.full_name for m in members)

    with pytest.raises(Forbidden):
        await role_manager.list_staff(nurse)


async def test_owner_updates_own_profile(role_manager, recorder, audit_sink, nurse):
    identity = await role_manager.update_profile(
        nurse, nurse.staff_id, full_name="Nora N.", department="Cardiology"
    )
    assert identity.full_name == "Nora N."
    assert identity.department == "Cardiology"

    await recorder.flush()
    (entry,) = audit_sink.entries
    assert entry.resource_type == ResourceType.staff_identity
    assert entry.details == {"full_name": "Nora N.", "department": "Cardiology"}


async def test_admin_updates_other_profile(role_manager, admin, doctor_identity):
    identity = await role_manager.update_profile(admin, doctor_identity.id, department="ER")
    assert identity.department == "ER"


async def test_other_staff_cannot_update_profile(role_manager, doctor, nurse_identity):
    with pytest.raises(Forbidden):
        await role_manager.update_profile(doctor, nurse_identity.id, full_name="Hacked")
    assert nurse_identity.full_name == "Nora Nurse"
