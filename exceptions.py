"""
Domain exceptions for CareCompanion
Raised by tools and services, mapped to HTTP responses in app.py
"""

from typing import Any, Optional


class CareCompanionError(Exception):
    """Base class for all domain errors"""


class ScheduleValidationError(CareCompanionError, ValueError):
    """A schedule or notification time is malformed"""

    def __init__(self, field: str, detail: str):
        self.field = field
        self.detail = detail
        super().__init__(f"{field}: {detail}")

    def to_dict(self) -> dict:
        return {"field": self.field, "detail": self.detail}


class NotFoundError(CareCompanionError, LookupError):
    """Requested record does not exist (or is not visible)"""

    def __init__(self, resource: str, resource_id: Any):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} {resource_id} not found")


class AuthorizationError(CareCompanionError, PermissionError):
    """Actor is neither the patient nor a linked caregiver"""

    def __init__(self, message: str = "Access denied."):
        self.message = message
        super().__init__(message)


class MaterializationFailure(CareCompanionError):
    """Expanding a schedule into notification rows failed"""

    def __init__(self, source: str, source_id: Any, cause: Optional[BaseException] = None):
        self.source = source
        self.source_id = source_id
        self.cause = cause
        message = f"Failed to materialize notifications for {source} {source_id}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


__all__ = [
    "CareCompanionError",
    "ScheduleValidationError",
    "NotFoundError",
    "AuthorizationError",
    "MaterializationFailure",
]
