"""
Custom exceptions for the vet clinic package.

This module defines the exception hierarchy and custom exceptions
used throughout the veterinary clinic backend.
"""

from .core_exceptions import (  # Utility functions
    AuthorizationException,
    ConfigurationException,
    ConflictException,
    ConnectionException,
    DatabaseException,
    DuplicateResourceException,
    DuplicateReviewException,
    InvalidStateTransitionException,
    NoActiveAppointmentsException,
    NotFoundException,
    ResourceNotFoundException,
    SchedulingConflictException,
    SchemaValidationException,
    TransactionException,
    ValidationException,
    VetClinicException,
    create_error_response,
    format_validation_errors,
    log_exception_context,
)

__all__ = [
    # Exception classes
    "VetClinicException",
    "DatabaseException",
    "ConnectionException",
    "TransactionException",
    "ValidationException",
    "SchemaValidationException",
    "NotFoundException",
    "ResourceNotFoundException",
    "NoActiveAppointmentsException",
    "ConflictException",
    "SchedulingConflictException",
    "DuplicateResourceException",
    "DuplicateReviewException",
    "InvalidStateTransitionException",
    "AuthorizationException",
    "ConfigurationException",
    # Utility functions
    "format_validation_errors",
    "create_error_response",
    "log_exception_context",
]
