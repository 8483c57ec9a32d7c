"""Caller profile and the admin staff directory."""

import uuid

from fastapi import APIRouter, Depends

from careportal.api.deps import get_principal, get_role_manager, require_staff
from careportal.models import ordered_roles
from careportal.schemas.staff import (
    PrincipalResponse,
    ProfileUpdate,
    RoleUpdate,
    RoleUpdateResponse,
    StaffMemberResponse,
)
from careportal.services.principal import Principal
from careportal.services.roles import RoleManager

router = APIRouter(tags=["Staff"])


@router.get("/me", response_model=PrincipalResponse)
async def get_me(principal: Principal = Depends(get_principal)):
    """The caller, including callers still waiting for a role."""
    return PrincipalResponse(
        staff_id=principal.staff_id,
        email=principal.email,
        full_name=principal.full_name,
        roles=ordered_roles(principal.roles),
        status=principal.status,
    )


@router.patch("/me", response_model=StaffMemberResponse)
async def update_me(
    data: ProfileUpdate,
    roles: RoleManager = Depends(get_role_manager),
    principal: Principal = Depends(get_principal),
):
    identity = await roles.update_profile(
        principal, principal.staff_id, data.full_name, data.department
    )
    return StaffMemberResponse(
        id=identity.id,
        email=identity.email,
        full_name=identity.full_name,
        department=identity.department,
        roles=ordered_roles(principal.roles),
        created_at=identity.created_at,
    )


@router.get("/staff", response_model=list[StaffMemberResponse])
async def list_staff(
    roles: RoleManager = Depends(get_role_manager),
    principal: Principal = Depends(require_staff),
):
    """Every known identity with its roles (admins only)."""
    members = await roles.list_staff(principal)
    return [
        StaffMemberResponse(
            id=member.id,
            email=member.email,
            full_name=member.full_name,
            department=member.department,
            roles=ordered_roles(member.roles),
            created_at=member.created_at,
        )
        for member in members
    ]


@router.put("/staff/{staff_id}/role", response_model=RoleUpdateResponse)
async def replace_role(
    staff_id: uuid.UUID,
    data: RoleUpdate,
    roles: RoleManager = Depends(get_role_manager),
    principal: Principal = Depends(require_staff),
):
    """Make one role the staff member's only grant; ``"none"`` revokes access."""
    granted = await roles.replace_role(principal, staff_id, data.as_role())
    return RoleUpdateResponse(staff_id=staff_id, roles=ordered_roles(granted))
