"""Domain errors raised by the portal services.

``Forbidden``, ``NotFound`` and ``DuplicateAssignment`` reach the caller and are
mapped to HTTP responses in ``careportal.main``. ``AuditWriteFailed`` never
leaves the audit recorder.
"""

from __future__ import annotations

from typing import Any


class PortalError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 400
    error_type: str = "bad_request"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class Forbidden(PortalError):
    status_code = 403
    error_type = "forbidden"

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class NotFound(PortalError):
    status_code = 404
    error_type = "not_found"

    def __init__(self, resource: str, identifier: Any = None):
        label = resource.replace("_", " ").capitalize()
        super().__init__(f"{label} not found")
        self.resource = resource
        self.identifier = identifier


class DuplicateAssignment(PortalError):
    status_code = 409
    error_type = "conflict"

    def __init__(self, patient_id: Any, staff_id: Any):
        super().__init__("Staff member is already assigned to this patient")
        self.patient_id = patient_id
        self.staff_id = staff_id


class ValidationFailed(PortalError):
    status_code = 422
    error_type = "validation_error"

    def __init__(self, field: str, reason: str):
        super().__init__(f"{field}: {reason}")
        self.field = field
        self.reason = reason


class AuditWriteFailed(Exception):
    """An audit sink could not persist an entry."""
