import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query

from careportal.api.deps import get_patient_registrar, require_staff
from careportal.schemas.patient import PatientCreate, PatientResponse, PatientSummary
from careportal.services.patients import PatientRegistrar
from careportal.services.principal import Principal

router = APIRouter(prefix="/patients", tags=["Patients"])


@router.get("", response_model=list[PatientSummary])
async def list_patients(
    search: Optional[str] = Query(None, max_length=100),
    registrar: PatientRegistrar = Depends(get_patient_registrar),
    principal: Principal = Depends(require_staff),
):
    """List patients newest first, optionally filtered by name, email or phone."""
    patients = await registrar.list_patients(principal, search)
    return [PatientSummary.model_validate(p, from_attributes=True) for p in patients]


@router.post("", response_model=PatientResponse, status_code=201)
async def create_patient(
    patient_data: PatientCreate,
    registrar: PatientRegistrar = Depends(get_patient_registrar),
    principal: Principal = Depends(require_staff),
):
    """Register a new patient."""
    patient = await registrar.register(principal, patient_data)
    return PatientResponse.model_validate(patient, from_attributes=True)


@router.get("/{patient_id}", response_model=PatientResponse)
async def get_patient(
    patient_id: uuid.UUID,
    registrar: PatientRegistrar = Depends(get_patient_registrar),
    principal: Principal = Depends(require_staff),
):
    patient = await registrar.get(principal, patient_id)
    return PatientResponse.model_validate(patient, from_attributes=True)


@router.delete("/{patient_id}", status_code=204)
async def delete_patient(
    patient_id: uuid.UUID,
    registrar: PatientRegistrar = Depends(get_patient_registrar),
    principal: Principal = Depends(require_staff),
):
    """Delete a patient with its records and assignments (admin only)."""
    await registrar.delete(principal, patient_id)
