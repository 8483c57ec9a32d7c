import uuid

from fastapi import APIRouter, Depends

from careportal.api.deps import get_assignment_registry, require_staff
from careportal.schemas.assignment import (
    AssignmentCreate,
    AssignmentResponse,
    CandidateResponse,
)
from careportal.services.assignments import AssignmentRegistry
from careportal.services.principal import Principal

router = APIRouter(tags=["Assignments"])


@router.get(
    "/patients/{patient_id}/assignments",
    response_model=list[AssignmentResponse],
)
async def list_assignments(
    patient_id: uuid.UUID,
    newest_first: bool = False,
    registry: AssignmentRegistry = Depends(get_assignment_registry),
    principal: Principal = Depends(require_staff),
):
    assignments = await registry.list_for_patient(principal, patient_id, newest_first)
    return [AssignmentResponse.model_validate(a, from_attributes=True) for a in assignments]


@router.post(
    "/patients/{patient_id}/assignments",
    response_model=AssignmentResponse,
    status_code=201,
)
async def create_assignment(
    patient_id: uuid.UUID,
    data: AssignmentCreate,
    registry: AssignmentRegistry = Depends(get_assignment_registry),
    principal: Principal = Depends(require_staff),
):
    """Assign a staff member to the patient (admins and doctors)."""
    assignment_id = await registry.assign(principal, patient_id, data.staff_id, data.notes)
    assignments = await registry.list_for_patient(principal, patient_id)
    created = next(a for a in assignments if a.id == assignment_id)
    return AssignmentResponse.model_validate(created, from_attributes=True)


@router.get(
    "/patients/{patient_id}/assignments/candidates",
    response_model=list[CandidateResponse],
)
async def list_candidates(
    patient_id: uuid.UUID,
    registry: AssignmentRegistry = Depends(get_assignment_registry),
    principal: Principal = Depends(require_staff),
):
    """Staff who could still be assigned to the patient."""
    candidates = await registry.list_candidates(principal, patient_id)
    return [CandidateResponse.model_validate(c, from_attributes=True) for c in candidates]


@router.delete("/assignments/{assignment_id}", status_code=204)
async def delete_assignment(
    assignment_id: uuid.UUID,
    registry: AssignmentRegistry = Depends(get_assignment_registry),
    principal: Principal = Depends(require_staff),
):
    await registry.unassign(principal, assignment_id)
