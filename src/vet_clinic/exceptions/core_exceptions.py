"""
Core exceptions for the vet-clinic package.

This module defines the exception hierarchy used throughout the clinic
backend. Every exception carries a machine-readable error code, a details
dictionary and the HTTP-equivalent status code callers should map it to.
"""

import logging
import time
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse, urlunparse


class VetClinicException(Exception):
    """
    Base exception class for all vet-clinic package exceptions.

    Provides a consistent interface for error handling across the package.
    """

    status_code: int = 500

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize the exception.

        Args:
            message: Human-readable error message
            error_code: Machine-readable error code
            details: Additional error details
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary format.

        Returns:
            Dictionary representation of the exception
        """
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "status_code": self.status_code,
            "timestamp": time.time(),
        }

    def log_error(
        self, logger: Optional[logging.Logger] = None, level: int = logging.ERROR
    ) -> None:
        """
        Log the exception with appropriate level and context.

        Args:
            logger: Logger instance to use (creates default if None)
            level: Logging level to use
        """
        if logger is None:
            logger = logging.getLogger(__name__)

        log_data = {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }

        logger.log(
            level,
            f"Exception occurred: {self.message}",
            extra={"exception_data": log_data},
        )

    def __str__(self) -> str:
        """String representation of the exception."""
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message


class DatabaseException(VetClinicException):
    """
    Base exception for store-related errors.

    These are surfaced to callers as a generic server error. The core never
    retries them; retry policy belongs to whoever owns the store.
    """

    status_code = 500

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        """
        Initialize database exception.

        Args:
            message: Human-readable error message
            error_code: Machine-readable error code
            details: Additional error details
            original_error: Original exception that caused this error
        """
        super().__init__(message, error_code, details)
        self.original_error = original_error

        if original_error and "original_error" not in self.details:
            self.details["original_error"] = str(original_error)


class ConnectionException(DatabaseException):
    """Exception raised when the database cannot be reached."""

    def __init__(
        self,
        message: str = "Database connection failed",
        database_url: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        details = {}
        if database_url:
            details["database_url"] = self._sanitize_url(database_url)

        super().__init__(
            message=message,
            error_code="DATABASE_CONNECTION_ERROR",
            details=details,
            original_error=original_error,
        )

    @staticmethod
    def _sanitize_url(url: str) -> str:
        """Remove credentials from database URL for logging."""
        try:
            parsed = urlparse(url)
            if not parsed.hostname:
                return urlunparse(parsed)
            netloc = parsed.hostname
            if parsed.port:
                netloc = f"{netloc}:{parsed.port}"
            return urlunparse(parsed._replace(netloc=netloc))
        except (ValueError, AttributeError) as e:
            return f"[URL_PARSE_ERROR: {e}]"


class TransactionException(DatabaseException):
    """Exception raised when a database transaction fails."""

    def __init__(
        self,
        message: str = "Database transaction failed",
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        details = {}
        if operation:
            details["operation"] = operation

        super().__init__(
            message=message,
            error_code="DATABASE_TRANSACTION_ERROR",
            details=details,
            original_error=original_error,
        )


class ValidationException(VetClinicException):
    """Base exception for data validation errors."""

    status_code = 400

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        value: Optional[Any] = None,
        validation_errors: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize validation exception.

        Args:
            message: Error message
            field: Field that failed validation
            value: Value that failed validation
            validation_errors: Detailed validation errors
        """
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        if validation_errors:
            details["validation_errors"] = validation_errors

        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            details=details,
        )


class SchemaValidationException(ValidationException):
    """Exception raised when Pydantic schema validation fails."""

    def __init__(
        self,
        message: str = "Schema validation failed",
        schema_name: Optional[str] = None,
        validation_errors: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, validation_errors=validation_errors)
        self.error_code = "SCHEMA_VALIDATION_ERROR"
        if schema_name:
            self.details["schema_name"] = schema_name


class NotFoundException(VetClinicException):
    """Base exception for references to records that do not exist."""

    status_code = 404


class ResourceNotFoundException(NotFoundException):
    """Exception raised when a referenced record is absent."""

    def __init__(
        self,
        resource: str,
        resource_id: Optional[Any] = None,
        message: Optional[str] = None,
    ):
        """
        Initialize not-found exception.

        Args:
            resource: Kind of record that was looked up (e.g. "Appointment")
            resource_id: Identifier that was looked up
            message: Optional override for the default message
        """
        details: Dict[str, Any] = {"resource": resource}
        if resource_id is not None:
            details["resource_id"] = str(resource_id)

        super().__init__(
            message=message or f"{resource} not found",
            error_code="RESOURCE_NOT_FOUND",
            details=details,
        )


class NoActiveAppointmentsException(NotFoundException):
    """
    Raised when an existing owner has no pending or accepted appointments.

    Kept distinct from ResourceNotFoundException so that callers can tell
    "nothing booked" apart from "owner does not exist".
    """

    def __init__(self, owner_id: Any, owner_role: str):
        super().__init__(
            message="No active appointments found",
            error_code="NO_ACTIVE_APPOINTMENTS",
            details={"owner_id": str(owner_id), "owner_role": owner_role},
        )


class ConflictException(VetClinicException):
    """Base exception for inputs that collide with existing state."""

    status_code = 409


class SchedulingConflictException(ConflictException):
    """Raised when a requested slot overlaps another active appointment."""

    def __init__(
        self,
        veterinarian_id: Any,
        requested_at: Any,
        conflicting_ids: Optional[List[Any]] = None,
        message: str = "This time slot is unavailable for the selected veterinarian",
    ):
        details: Dict[str, Any] = {
            "veterinarian_id": str(veterinarian_id),
            "requested_at": str(requested_at),
        }
        if conflicting_ids:
            details["conflicting_appointments"] = [str(i) for i in conflicting_ids]

        super().__init__(
            message=message,
            error_code="SLOT_UNAVAILABLE",
            details=details,
        )


class DuplicateResourceException(ConflictException):
    """Raised when a unique field (username, email, animal name...) is taken."""

    def __init__(self, resource: str, field: str, value: Any = None):
        details: Dict[str, Any] = {"resource": resource, "field": field}
        if value is not None:
            details["value"] = str(value)

        super().__init__(
            message=f"{resource} with this {field} already exists",
            error_code="DUPLICATE_RESOURCE",
            details=details,
        )


class DuplicateReviewException(ConflictException):
    """Raised when a client reviews the same veterinarian twice."""

    def __init__(self, client_id: Any, veterinarian_id: Any):
        super().__init__(
            message="You have already reviewed this veterinarian",
            error_code="DUPLICATE_REVIEW",
            details={
                "client_id": str(client_id),
                "veterinarian_id": str(veterinarian_id),
            },
        )


class InvalidStateTransitionException(ConflictException):
    """Raised when an appointment is moved out of a terminal state."""

    def __init__(self, current_status: str, target: str, resource: str = "Appointment"):
        super().__init__(
            message=f"Cannot {target} {resource.lower()} with status {current_status}",
            error_code="INVALID_STATE_TRANSITION",
            details={
                "resource": resource,
                "current_status": current_status,
                "target": target,
            },
        )


class AuthorizationException(VetClinicException):
    """Raised when the caller's role or ownership does not allow an action."""

    status_code = 403

    def __init__(
        self,
        message: str = "You are not allowed to perform this action",
        action: Optional[str] = None,
        user_id: Optional[Any] = None,
    ):
        details: Dict[str, Any] = {}
        if action:
            details["action"] = action
        if user_id is not None:
            details["user_id"] = str(user_id)

        super().__init__(
            message=message,
            error_code="AUTHORIZATION_ERROR",
            details=details,
        )


class ConfigurationException(VetClinicException):
    """Base exception for configuration-related errors."""

    def __init__(
        self,
        message: str = "Configuration error",
        config_key: Optional[str] = None,
        config_value: Optional[str] = None,
    ):
        details = {}
        if config_key:
            details["config_key"] = config_key
        if config_value:
            details["config_value"] = self._sanitize_config_value(
                config_key, config_value
            )

        super().__init__(
            message=message,
            error_code="CONFIGURATION_ERROR",
            details=details,
        )

    @staticmethod
    def _sanitize_config_value(key: Optional[str], value: str) -> str:
        """Sanitize configuration values to avoid exposing secrets."""
        if not key:
            return "[REDACTED]"

        sensitive_keys = ["password", "secret", "key", "token", "credential"]
        if any(sensitive in key.lower() for sensitive in sensitive_keys):
            return "[REDACTED]"

        return value


# Utility functions for exception handling and error formatting


def format_validation_errors(errors: List[Dict[str, Any]]) -> Dict[str, List[str]]:
    """
    Format Pydantic validation errors into a user-friendly structure.

    Args:
        errors: List of Pydantic validation errors

    Returns:
        Dictionary mapping field names to lists of error messages
    """
    formatted_errors: Dict[str, List[str]] = {}

    for error in errors:
        field_path = ".".join(str(loc) for loc in error.get("loc", []))
        if not field_path:
            field_path = "root"

        message = error.get("msg", "Validation error")
        error_type = error.get("type", "unknown")

        if error_type == "value_error":
            formatted_message = message
        elif error_type == "missing":
            formatted_message = "This field is required"
        else:
            formatted_message = f"{message} (type: {error_type})"

        formatted_errors.setdefault(field_path, []).append(formatted_message)

    return formatted_errors


def create_error_response(exception: VetClinicException) -> Dict[str, Any]:
    """
    Create the standard failure envelope from an exception.

    Args:
        exception: The exception to format

    Returns:
        ``{"success": False, "message": ..., "error": {...}}``
    """
    error: Dict[str, Any] = {
        "type": exception.__class__.__name__,
        "code": exception.error_code,
        "status_code": exception.status_code,
    }

    # Store failures never leak their internals to callers
    if isinstance(exception, DatabaseException):
        return {
            "success": False,
            "message": "Internal server error",
            "error": error,
        }

    if exception.details:
        error["details"] = exception.details

    return {
        "success": False,
        "message": exception.message,
        "error": error,
    }


def log_exception_context(
    exception: Exception,
    context: Dict[str, Any],
    logger: Optional[logging.Logger] = None,
    level: int = logging.ERROR,
) -> None:
    """
    Log an exception with additional context information.

    Args:
        exception: The exception to log
        context: Additional context information
        logger: Logger instance to use
        level: Logging level
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    if isinstance(exception, VetClinicException):
        log_data = exception.to_dict()
        log_data["context"] = context
        logger.log(
            level,
            f"Exception with context: {exception.message}",
            extra={"exception_data": log_data},
        )
    else:
        logger.log(
            level,
            f"Non-VetClinic exception: {str(exception)}",
            extra={
                "exception_type": exception.__class__.__name__,
                "exception_message": str(exception),
                "context": context,
            },
        )
