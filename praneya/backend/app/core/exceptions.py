# backend/app/core/exceptions.py
"""
Error taxonomy for the data access layer.

Validation and capacity errors are business errors: their message is safe to
show to the caller. Every other class is internal and is reported to callers as
a generic failure, while the details go to the logs.
"""
from typing import Any, Dict, Optional

GENERIC_FAILURE_MESSAGE = "Operation failed. Please try again later."


class DataAccessError(Exception):
    """Base class for all data access layer errors"""

    error_code = "DATA_ACCESS_ERROR"
    status_code = 500
    user_facing = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def public_message(self) -> str:
        """Message that may be returned to the API caller"""
        if self.user_facing:
            return self.message
        return GENERIC_FAILURE_MESSAGE

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.error_code, "message": self.public_message}


class ValidationError(DataAccessError):
    """Malformed input, rejected before any I/O"""

    error_code = "VALIDATION_ERROR"
    status_code = 400
    user_facing = True


class CapacityExceededError(DataAccessError):
    """A family or account limit has been reached"""

    error_code = "CAPACITY_EXCEEDED"
    status_code = 409
    user_facing = True


class NotFoundError(DataAccessError):
    """
    Resource absent within the caller's tenant scope.

    Raised identically whether the row does not exist or belongs to another
    tenant.
    """

    error_code = "NOT_FOUND"
    status_code = 404

    @property
    def public_message(self) -> str:
        return "Resource not found"


class TenantIsolationViolation(DataAccessError):
    """Cache tag mismatch or cross-tenant access attempt"""

    error_code = "TENANT_ISOLATION_VIOLATION"
    status_code = 403


class TransientStoreError(DataAccessError):
    """Database or cache connectivity failure"""

    error_code = "STORE_UNAVAILABLE"
    status_code = 503


class AuditWriteFailure(DataAccessError):
    """Audit persistence failed; the enclosing transaction is rolled back"""

    error_code = "AUDIT_WRITE_FAILURE"
    status_code = 500
