from fastapi import APIRouter, Depends

from careportal.api.deps import get_patient_registrar, require_staff
from careportal.schemas.patient import DashboardResponse, PatientSummary
from careportal.services.patients import PatientRegistrar
from careportal.services.principal import Principal

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


@router.get("", response_model=DashboardResponse)
async def get_dashboard(
    registrar: PatientRegistrar = Depends(get_patient_registrar),
    principal: Principal = Depends(require_staff),
):
    """Totals and the most recently registered patients."""
    summary = await registrar.dashboard(principal)
    return DashboardResponse(
        total_patients=summary.total_patients,
        total_records=summary.total_records,
        recent_patients=[
            PatientSummary.model_validate(p, from_attributes=True)
            for p in summary.recent_patients
        ],
    )
