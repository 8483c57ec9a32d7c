"""Business logic services for CarePortal.

This package intentionally avoids eager imports to prevent circular import
chains during application startup.
"""

from importlib import import_module

__all__ = [
    # Access control
    "Principal",
    "PolicyEngine",
    "RoleManager",
    "SQLRoleStore",
    "InMemoryRoleStore",
    # Audit
    "AuditRecorder",
    "SQLAuditSink",
    "InMemoryAuditSink",
    # Clinical data
    "PatientRegistrar",
    "RecordKeeper",
    "AssignmentRegistry",
]

_LAZY_IMPORTS = {
    "Principal": ("careportal.services.principal", "Principal"),
    "PolicyEngine": ("careportal.services.policy", "PolicyEngine"),
    "RoleManager": ("careportal.services.roles", "RoleManager"),
    "SQLRoleStore": ("careportal.services.roles", "SQLRoleStore"),
    "InMemoryRoleStore": ("careportal.services.roles", "InMemoryRoleStore"),
    "AuditRecorder": ("careportal.services.audit", "AuditRecorder"),
    "SQLAuditSink": ("careportal.services.audit", "SQLAuditSink"),
    "InMemoryAuditSink": ("careportal.services.audit", "InMemoryAuditSink"),
    "PatientRegistrar": ("careportal.services.patients", "PatientRegistrar"),
    "RecordKeeper": ("careportal.services.records", "RecordKeeper"),
    "AssignmentRegistry": ("careportal.services.assignments", "AssignmentRegistry"),
}


def __getattr__(name: str):
    target = _LAZY_IMPORTS.get(name)
    if target is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module_name, attr_name = target
    return getattr(import_module(module_name), attr_name)
