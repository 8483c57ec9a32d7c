from datetime import date

from careportal.models import StaffRole
from careportal.schemas.patient import PatientCreate
from careportal.services.principal import Principal


def principal_for(identity, *roles) -> Principal:
    return Principal(
        staff_id=identity.id,
        email=identity.email,
        full_name=identity.full_name,
        roles=frozenset(StaffRole(r) for r in roles),
    )


def patient_payload(**overrides) -> PatientCreate:
    data = {
        "first_name": "Ada",
        "last_name": "Lovelace",
        "date_of_birth": date(1980, 12, 10),
        "gender": "female",
        "email": "ada@mail.org",
        "phone": "555-0100",
    }
    data.update(overrides)
    return PatientCreate(**data)
