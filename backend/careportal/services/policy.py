"""Role-based policy decisions for staff actions.

``decide`` is a pure function of the actor's roles, the requested action, the
resource type and a small context. Anything not explicitly allowed is denied.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from typing import Iterable, Optional

from careportal.errors import Forbidden
from careportal.models.audit_log import AuditAction, ResourceType
from careportal.models.role_grant import StaffRole
from careportal.services.principal import Principal

logger = logging.getLogger("careportal.policy")

SELF_MODIFICATION = "self-modification"
NO_ROLE = "no role granted"
NOT_PERMITTED = "role lacks permission for this action"

_ALL_STAFF = frozenset(StaffRole)
_CLINICIANS = frozenset({StaffRole.admin, StaffRole.doctor})
_ADMIN = frozenset({StaffRole.admin})

# (action, resource type) -> roles allowed to perform it.
# Medical records are append-only, so no role may update or delete them.
POLICY_TABLE: dict[tuple[AuditAction, ResourceType], frozenset[StaffRole]] = {
    (AuditAction.view, ResourceType.patient): _ALL_STAFF,
    (AuditAction.create, ResourceType.patient): _ALL_STAFF,
    (AuditAction.delete, ResourceType.patient): _ADMIN,
    (AuditAction.view, ResourceType.medical_record): _ALL_STAFF,
    (AuditAction.create, ResourceType.medical_record): _ALL_STAFF,
    (AuditAction.view, ResourceType.patient_assignment): _ALL_STAFF,
    (AuditAction.create, ResourceType.patient_assignment): _CLINICIANS,
    (AuditAction.delete, ResourceType.patient_assignment): _CLINICIANS,
    (AuditAction.view, ResourceType.staff_role): _ADMIN,
    (AuditAction.update, ResourceType.staff_role): _ADMIN,
    (AuditAction.view, ResourceType.audit_log): _ADMIN,
}

_ROLE_MUTATIONS = frozenset({AuditAction.create, AuditAction.update, AuditAction.delete})


@dataclass(frozen=True)
class PolicyContext:
    """Facts about the target that some rules depend on."""

    actor_id: Optional[uuid.UUID] = None
    target_staff_id: Optional[uuid.UUID] = None


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str = ""

    @classmethod
    def allow(cls) -> "Decision":
        return cls(True)

    @classmethod
    def deny(cls, reason: str) -> "Decision":
        return cls(False, reason)

    def __bool__(self) -> bool:
        return self.allowed


def _coerce_roles(roles: Iterable[StaffRole | str]) -> frozenset[StaffRole]:
    coerced = set()
    for role in roles:
        try:
            coerced.add(StaffRole(role))
        except ValueError:
            # Unknown grants never widen access.
            continue
    return frozenset(coerced)


def decide(
    roles: Iterable[StaffRole | str],
    action: AuditAction | str,
    resource_type: ResourceType | str,
    context: PolicyContext | None = None,
) -> Decision:
    """Evaluate a request against the role table."""
    context = context or PolicyContext()
    try:
        action = AuditAction(action)
        resource_type = ResourceType(resource_type)
    except ValueError:
        return Decision.deny(NOT_PERMITTED)

    # Checked before the table: even an admin may not touch their own grants.
    if (
        resource_type == ResourceType.staff_role
        and action in _ROLE_MUTATIONS
        and context.actor_id is not None
        and context.actor_id == context.target_staff_id
    ):
        return Decision.deny(SELF_MODIFICATION)

    granted = _coerce_roles(roles)
    if not granted:
        return Decision.deny(NO_ROLE)

    allowed_roles = POLICY_TABLE.get((action, resource_type))
    if allowed_roles is None or not (granted & allowed_roles):
        return Decision.deny(NOT_PERMITTED)
    return Decision.allow()


class PolicyEngine:
    """Applies ``decide`` to a request principal."""

    def decide(
        self,
        principal: Principal,
        action: AuditAction | str,
        resource_type: ResourceType | str,
        context: PolicyContext | None = None,
    ) -> Decision:
        context = context or PolicyContext()
        if context.actor_id is None:
            context = replace(context, actor_id=principal.staff_id)
        return decide(principal.roles, action, resource_type, context)

    def authorize(
        self,
        principal: Principal,
        action: AuditAction | str,
        resource_type: ResourceType | str,
        context: PolicyContext | None = None,
    ) -> None:
        """Raise ``Forbidden`` unless the principal may act.

        Denials are logged here and never written to the audit trail.
        """
        decision = self.decide(principal, action, resource_type, context)
        if decision:
            return
        logger.warning(
            "Policy denied %s %s for staff %s: %s",
            action,
            resource_type,
            principal.staff_id,
            decision.reason,
        )
        raise Forbidden(decision.reason)
