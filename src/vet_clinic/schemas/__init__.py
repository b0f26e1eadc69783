"""
Pydantic schemas for validation and serialization.

This module contains the request and response schemas of the clinic
backend, plus the shared response envelope.
"""

from .animal import AnimalBase, AnimalCreate, AnimalResponse, AnimalUpdate
from .appointment import AppointmentCreate, AppointmentResponse, AppointmentUpdate
from .chat import (
    ConversationFilter,
    ConversationResponse,
    MessageCreate,
    MessageResponse,
)
from .common import ApiResponse, Page
from .notification import NotificationResponse
from .review import RatingSummary, ReviewCreate, ReviewResponse, ReviewUpdate
from .user import UserBase, UserCreate, UserResponse, UserSummary

__all__ = [
    # Shared
    "ApiResponse",
    "Page",
    # User schemas
    "UserBase",
    "UserCreate",
    "UserResponse",
    "UserSummary",
    # Animal schemas
    "AnimalBase",
    "AnimalCreate",
    "AnimalUpdate",
    "AnimalResponse",
    # Appointment schemas
    "AppointmentCreate",
    "AppointmentUpdate",
    "AppointmentResponse",
    # Chat schemas
    "MessageCreate",
    "MessageResponse",
    "ConversationResponse",
    "ConversationFilter",
    # Review schemas
    "ReviewCreate",
    "ReviewUpdate",
    "ReviewResponse",
    "RatingSummary",
    # Notification schemas
    "NotificationResponse",
]
