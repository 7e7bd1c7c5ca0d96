"""Custom exceptions for the entry service.

Every error kind maps to exactly one HTTP status and one machine-readable
code; the API layer renders them with ``to_dict()``.
"""

from typing import Any, Dict, List, Optional


class AwsInfraException(Exception):
    """Base exception for all awsinfra errors."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[List[Dict[str, Any]]] = None,
    ):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details or []
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status_code,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(AwsInfraException):
    """Settings or secrets could not be loaded at startup."""
    code = "configuration_error"


# Client errors
class InvalidInputError(AwsInfraException):
    """Client payload failed validation."""
    status_code = 400
    code = "invalid_input"

    def __init__(
        self,
        message: str = "Invalid input",
        details: Optional[List[Dict[str, Any]]] = None,
    ):
        super().__init__(message, details=details)

    @classmethod
    def for_field(cls, field: str, message: str) -> "InvalidInputError":
        return cls(f"Invalid value for '{field}'", details=[{"field": field, "message": message}])


class AuthenticationFailed(AwsInfraException):
    """Bearer token missing, malformed, expired or not trusted."""
    status_code = 401
    code = "authentication_failed"

    def __init__(self, reason: str = "Invalid or expired token"):
        self.reason = reason
        super().__init__(reason)


class ForbiddenError(AwsInfraException):
    """Authenticated, but the principal lacks the required role."""
    status_code = 403
    code = "forbidden"

    def __init__(self, required_role: str):
        self.required_role = required_role
        super().__init__(f"Missing required role '{required_role}'")


class NotFoundError(AwsInfraException):
    """Resource not found."""
    status_code = 404
    code = "not_found"

    def __init__(self, resource: str, id: str):
        self.resource = resource
        self.resource_id = id
        super().__init__(f"{resource} with id {id} not found")


# Internal / dependency errors
class ConflictError(AwsInfraException):
    """Identifier collision on insert. Never reaches a client directly."""
    status_code = 409
    code = "conflict"


class InternalError(AwsInfraException):
    """Unexpected or unclassified failure."""
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)


class ServiceUnavailable(AwsInfraException):
    """A downstream dependency is unreachable or timed out. Retryable."""
    status_code = 503
    code = "service_unavailable"

    def __init__(self, message: str = "Service temporarily unavailable"):
        super().__init__(message)


class AuthenticationUnavailable(ServiceUnavailable):
    """The signing-key set could not be fetched."""
    code = "authentication_unavailable"

    def __init__(self, message: str = "Signing keys unavailable"):
        super().__init__(message)


class StoreUnavailable(ServiceUnavailable):
    """The entry store could not be reached or timed out."""
    code = "store_unavailable"

    def __init__(self, operation: str, reason: str = "unavailable"):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Entry store {operation} failed: {reason}")
