"""
Database models for the vet clinic package.

This module contains SQLAlchemy models for all core entities of the
veterinary clinic backend.
"""

from .animal import Animal, AnimalGender
from .appointment import (
    ACTIVE_STATUSES,
    Appointment,
    AppointmentStatus,
    AppointmentType,
)

# Base model will be imported by all other models
from .base import Base, BaseModel
from .chat import Chat, ChatParticipant, make_participant_key
from .message import Message, MessageRead, MessageType
from .notification import Notification
from .review import MAX_RATING, MIN_RATING, Review
from .user import User, UserRole

__all__ = [
    "Base",
    "BaseModel",
    "User",
    "UserRole",
    "Animal",
    "AnimalGender",
    "Appointment",
    "AppointmentStatus",
    "AppointmentType",
    "ACTIVE_STATUSES",
    "Chat",
    "ChatParticipant",
    "make_participant_key",
    "Message",
    "MessageRead",
    "MessageType",
    "Notification",
    "Review",
    "MIN_RATING",
    "MAX_RATING",
]
