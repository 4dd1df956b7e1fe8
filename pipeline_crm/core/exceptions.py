"""Custom exceptions for the CRM client."""

import logging
from typing import Any

logger = logging.getLogger(__name__)

# Exception type → safe user-facing message mapping
_SAFE_MESSAGES: dict[str, str] = {
    "NotFoundError": "The requested record was not found.",
    "AuthenticationError": "Your session has expired. Please sign in again.",
    "AuthorizationError": "Access denied. Please contact your administrator for access.",
    "ValidationError": "The provided input is invalid. Please check and try again.",
    "ConflictError": "A record with these details already exists.",
    "DatabaseError": "A database error occurred. Please try again.",
    "NetworkError": "Cannot connect to database. Please check your internet connection.",
    "ProspectAlreadyConvertedError": "This prospect has already been converted.",
    "InvalidTransitionError": "This action is not available right now.",
}

_DEFAULT_MESSAGE = "Something went wrong. Please try again."

# PostgREST / Postgres error codes the UI knows how to explain
PGRST_NO_ROWS = "PGRST116"
PG_UNIQUE_VIOLATION = "23505"
PG_FOREIGN_KEY_VIOLATION = "23503"
PG_INSUFFICIENT_PRIVILEGE = "42501"
PG_INVALID_TEXT_REPRESENTATION = "22P02"
PG_UNDEFINED_FUNCTION = "42883"


def sanitize_error(e: Exception) -> str:
    """Map an exception to a safe, user-facing error message.

    CRM exceptions carry a message already written for the user, so it is
    returned as-is. Anything else is reduced to a generic message by type.

    Args:
        e: The exception to sanitize.

    Returns:
        A safe error message string.
    """
    if isinstance(e, CRMException) and e.message:
        return e.message

    # Walk the MRO to find the most specific matching type
    for cls in type(e).__mro__:
        safe_msg = _SAFE_MESSAGES.get(cls.__name__)
        if safe_msg:
            return safe_msg

    return _DEFAULT_MESSAGE


class CRMException(Exception):
    """Base exception for all CRM client errors."""

    def __init__(
        self,
        message: str,
        code: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize CRM exception.

        Args:
            message: Human-readable error message.
            code: Machine-readable error code.
            details: Additional error details.
        """
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}


class NotFoundError(CRMException):
    """Record not found."""

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        """Initialize not found error.

        Args:
            resource: Name of the resource that was not found.
            resource_id: Optional ID of the resource.
        """
        super().__init__(
            message=f"{resource} not found",
            code="NOT_FOUND",
            details={"resource": resource, "resource_id": resource_id},
        )


class AuthenticationError(CRMException):
    """Missing or expired session."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message=message, code="AUTHENTICATION_ERROR")


class AuthorizationError(CRMException):
    """Row-level security or role check rejected the call."""

    def __init__(
        self,
        message: str = "Access denied. Please contact your administrator for access.",
    ) -> None:
        super().__init__(message=message, code="AUTHORIZATION_ERROR")


class ValidationError(CRMException):
    """Input rejected before any network call."""

    def __init__(
        self, message: str, field: str | None = None, details: dict[str, Any] | None = None
    ) -> None:
        """Initialize validation error.

        Args:
            message: Error message.
            field: Name of the invalid field.
            details: Additional validation details.
        """
        error_details = details or {}
        if field:
            error_details["field"] = field
        super().__init__(message=message, code="VALIDATION_ERROR", details=error_details)
        self.field = field


class ConflictError(CRMException):
    """Unique constraint or similar conflict."""

    def __init__(self, message: str, resource: str | None = None) -> None:
        details = {}
        if resource:
            details["resource"] = resource
        super().__init__(message=message, code="CONFLICT", details=details)


class DatabaseError(CRMException):
    """Backend rejected the request for a reason the client cannot explain."""

    def __init__(
        self, message: str = "A database error occurred", backend_code: str | None = None
    ) -> None:
        super().__init__(
            message=message,
            code="DATABASE_ERROR",
            details={"backend_code": backend_code} if backend_code else {},
        )
        self.backend_code = backend_code


class NetworkError(CRMException):
    """Transport failure: connection loss, timeout, DNS."""

    def __init__(
        self,
        message: str = "Cannot connect to database. Please check your internet connection.",
    ) -> None:
        super().__init__(message=message, code="NETWORK_ERROR")


class ProspectAlreadyConvertedError(CRMException):
    """Conversion attempted on a prospect whose status is already converted."""

    def __init__(self, prospect_id: str) -> None:
        super().__init__(
            message="This prospect has already been converted.",
            code="PROSPECT_ALREADY_CONVERTED",
            details={"prospect_id": prospect_id},
        )


class InvalidTransitionError(CRMException):
    """Wizard event that is not valid for the current step."""

    def __init__(self, step: str, event: str) -> None:
        """Initialize invalid transition error.

        Args:
            step: The wizard step the event arrived in.
            event: Name of the rejected event.
        """
        super().__init__(
            message=f"Cannot handle {event} while in {step} step",
            code="INVALID_TRANSITION",
            details={"step": step, "event": event},
        )


def map_backend_error(
    code: str | None,
    message: str | None,
    resource: str = "Record",
) -> CRMException:
    """Translate a PostgREST/Postgres error into a CRM exception.

    Args:
        code: Backend error code (SQLSTATE or PGRST code).
        message: Backend error message.
        resource: Human name of the entity involved, used in messages.

    Returns:
        The CRM exception that best describes the failure.
    """
    text = message or ""
    if code == PGRST_NO_ROWS:
        return NotFoundError(resource)
    if code == PG_UNIQUE_VIOLATION:
        article = "An" if resource[:1].lower() in "aeiou" else "A"
        return ConflictError(
            f"{article} {resource.lower()} with this name already exists", resource=resource
        )
    if code == PG_FOREIGN_KEY_VIOLATION:
        return ValidationError("Invalid reference - check the linked records")
    if code == PG_INSUFFICIENT_PRIVILEGE or "permission" in text.lower():
        return AuthorizationError()
    if code == PG_INVALID_TEXT_REPRESENTATION:
        return ValidationError(f"Invalid {resource.lower()} ID format", field="id")
    if code == PG_UNDEFINED_FUNCTION:
        return DatabaseError("This feature is not available on the server", backend_code=code)

    logger.warning(
        "Unrecognized backend error",
        extra={"backend_code": code, "backend_message": text},
    )
    error = DatabaseError("A database error occurred. Please try again.", backend_code=code)
    error.details["backend_message"] = text
    return error
