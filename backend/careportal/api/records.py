import uuid

from fastapi import APIRouter, Depends

from careportal.api.deps import get_record_keeper, require_staff
from careportal.schemas.records import RecordCreate, RecordResponse
from careportal.services.principal import Principal
from careportal.services.records import RecordKeeper

router = APIRouter(prefix="/patients/{patient_id}/records", tags=["Medical Records"])


@router.get("", response_model=list[RecordResponse])
async def list_records(
    patient_id: uuid.UUID,
    keeper: RecordKeeper = Depends(get_record_keeper),
    principal: Principal = Depends(require_staff),
):
    """A patient's medical history, newest first."""
    records = await keeper.list_for_patient(principal, patient_id)
    return [RecordResponse.model_validate(r, from_attributes=True) for r in records]


@router.post("", response_model=RecordResponse, status_code=201)
async def create_record(
    patient_id: uuid.UUID,
    record: RecordCreate,
    keeper: RecordKeeper = Depends(get_record_keeper),
    principal: Principal = Depends(require_staff),
):
    """Append a record. Records cannot be edited or deleted afterwards."""
    created = await keeper.add_record(principal, patient_id, record)
    return RecordResponse.model_validate(created, from_attributes=True)
