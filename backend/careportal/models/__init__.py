from careportal.models.audit_log import AuditAction, AuditLog, ResourceType
from careportal.models.base import Base, TimestampMixin
from careportal.models.medical_record import MedicalRecord, RecordType
from careportal.models.patient import Patient
from careportal.models.patient_assignment import PatientAssignment
from careportal.models.role_grant import RoleGrant, StaffRole, ordered_roles
from careportal.models.staff import StaffIdentity

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    # Authorization
    "StaffIdentity",
    "RoleGrant",
    "StaffRole",
    "ordered_roles",
    # Clinical data
    "Patient",
    "MedicalRecord",
    "RecordType",
    "PatientAssignment",
    # Audit
    "AuditLog",
    "AuditAction",
    "ResourceType",
]
