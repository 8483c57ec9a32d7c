"""Shared API dependencies."""

import uuid
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from careportal.config import settings
from careportal.database import get_db
from careportal.errors import Forbidden
from careportal.services.assignments import (
    AssignmentRegistry,
    AssignmentRepository,
    SQLAssignmentRepository,
)
from careportal.services.audit import AuditRecorder
from careportal.services.patients import (
    PatientRegistrar,
    PatientRepository,
    SQLPatientRepository,
)
from careportal.services.principal import Principal
from careportal.services.records import RecordKeeper, RecordRepository, SQLRecordRepository
from careportal.services.roles import RoleManager, RoleStore, SQLRoleStore

security = HTTPBearer()

PENDING_APPROVAL = "pending approval"


@dataclass(frozen=True)
class TokenClaims:
    staff_id: uuid.UUID
    email: str
    full_name: str


def get_token_claims(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> TokenClaims:
    """Verify the identity provider's access token."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
        subject: str | None = payload.get("sub")
        email: str | None = payload.get("email")
        if subject is None or not email:
            raise credentials_exception
        staff_id = uuid.UUID(subject)
    except (JWTError, ValueError):
        raise credentials_exception

    return TokenClaims(
        staff_id=staff_id,
        email=email,
        full_name=payload.get("name") or email,
    )


def get_audit_recorder(request: Request) -> AuditRecorder:
    return request.app.state.audit_recorder


def get_role_store(db: AsyncSession = Depends(get_db)) -> RoleStore:
    return SQLRoleStore(db)


def get_patient_repo(db: AsyncSession = Depends(get_db)) -> PatientRepository:
    return SQLPatientRepository(db)


def get_record_repo(db: AsyncSession = Depends(get_db)) -> RecordRepository:
    return SQLRecordRepository(db)


def get_assignment_repo(db: AsyncSession = Depends(get_db)) -> AssignmentRepository:
    return SQLAssignmentRepository(db)


def get_role_manager(
    store: RoleStore = Depends(get_role_store),
    audit: AuditRecorder = Depends(get_audit_recorder),
) -> RoleManager:
    return RoleManager(store, audit)


def get_patient_registrar(
    patients: PatientRepository = Depends(get_patient_repo),
    records: RecordRepository = Depends(get_record_repo),
    audit: AuditRecorder = Depends(get_audit_recorder),
) -> PatientRegistrar:
    return PatientRegistrar(
        patients,
        audit,
        records=records,
        recent_limit=settings.dashboard_recent_patients,
    )


def get_record_keeper(
    records: RecordRepository = Depends(get_record_repo),
    patients: PatientRepository = Depends(get_patient_repo),
    audit: AuditRecorder = Depends(get_audit_recorder),
) -> RecordKeeper:
    return RecordKeeper(records, patients, audit)


def get_assignment_registry(
    assignments: AssignmentRepository = Depends(get_assignment_repo),
    patients: PatientRepository = Depends(get_patient_repo),
    store: RoleStore = Depends(get_role_store),
    audit: AuditRecorder = Depends(get_audit_recorder),
) -> AssignmentRegistry:
    return AssignmentRegistry(assignments, patients, store, audit)


async def get_principal(
    claims: Annotated[TokenClaims, Depends(get_token_claims)],
    roles: Annotated[RoleManager, Depends(get_role_manager)],
) -> Principal:
    """Resolve the caller once per request; unknown identities are provisioned."""
    return await roles.load_principal(claims.staff_id, claims.email, claims.full_name)


async def require_staff(
    principal: Annotated[Principal, Depends(get_principal)],
) -> Principal:
    """Reject authenticated callers that hold no role yet."""
    if not principal.is_staff:
        raise Forbidden(PENDING_APPROVAL)
    return principal
