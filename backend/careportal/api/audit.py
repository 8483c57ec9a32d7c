from typing import Optional

from fastapi import APIRouter, Depends, Query

from careportal.api.deps import get_audit_recorder, require_staff
from careportal.models import AuditAction
from careportal.schemas.audit import AuditLogResponse
from careportal.services.audit import AuditFilters, AuditRecorder
from careportal.services.principal import Principal

router = APIRouter(prefix="/audit-logs", tags=["Audit"])


@router.get("", response_model=list[AuditLogResponse])
async def list_audit_logs(
    action: Optional[AuditAction] = Query(None, description="Exact action"),
    resource_type: Optional[str] = Query(None, description="Exact resource type"),
    search: Optional[str] = Query(None, description="Actor name, email or details"),
    limit: Optional[int] = Query(None, description="Maximum entries, newest first"),
    recorder: AuditRecorder = Depends(get_audit_recorder),
    principal: Principal = Depends(require_staff),
):
    """Audit trail for admins."""
    filters = AuditFilters(
        action_equals=action,
        resource_type_equals=resource_type or None,
        text_search=search or None,
    )
    entries = await recorder.query(principal, filters, limit)
    return [AuditLogResponse.model_validate(e, from_attributes=True) for e in entries]
