"""
Vet Clinic Core

Backend core of a veterinary clinic: user roles, animal records,
appointment booking with per-practitioner conflict detection, reviews,
chat with per-user unread tracking, and push notifications with an hourly
appointment reminder sweep.

Quick Start:
    >>> from vet_clinic.database import create_engine, initialize_session_manager
    >>> from vet_clinic.models import Base
    >>> from vet_clinic.services import AppointmentService

    >>> engine = create_engine("sqlite+aiosqlite:///./clinic.db")
    >>> manager = initialize_session_manager(engine)
    >>> await manager.initialize_database(Base.metadata)
    >>> appointments = AppointmentService(manager)

Requirements:
    - Python 3.11+
    - SQLAlchemy 2.0+
    - Pydantic 2.5+
"""

__version__ = "0.1.0"

from . import database, exceptions, models, schemas, services, utils

# Convenience imports for common usage patterns
from .database import SessionManager, create_engine, initialize_session_manager
from .exceptions import (
    DatabaseException,
    NotFoundException,
    ValidationException,
    VetClinicException,
)
from .models import Animal, Appointment, Chat, Message, Notification, Review, User
from .utils.config import ClinicSettings

__all__ = [
    "__version__",
    # Core modules
    "database",
    "exceptions",
    "models",
    "schemas",
    "services",
    "utils",
    # Convenience imports
    "SessionManager",
    "create_engine",
    "initialize_session_manager",
    "VetClinicException",
    "ValidationException",
    "NotFoundException",
    "DatabaseException",
    "ClinicSettings",
    "User",
    "Animal",
    "Appointment",
    "Chat",
    "Message",
    "Notification",
    "Review",
]
