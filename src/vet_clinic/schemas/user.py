"""
User Pydantic schemas for validation and serialization.
"""

import re
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from ..models.user import UserRole


class UserBase(BaseModel):
    """Base User schema with common fields."""

    model_config = ConfigDict(
        from_attributes=True,
        use_enum_values=True,
        validate_assignment=True,
        str_strip_whitespace=True,
    )

    username: str = Field(..., min_length=3, max_length=150)
    email: EmailStr = Field(..., description="User's email address")
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone_number: Optional[str] = Field(None, max_length=20)

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        """Usernames are letters, digits and . _ - only."""
        if not re.match(r"^[A-Za-z0-9._-]+$", v):
            raise ValueError("Username contains invalid characters")
        return v

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower()

    @field_validator("phone_number")
    @classmethod
    def validate_phone_number(cls, v: Optional[str]) -> Optional[str]:
        """Validate phone number format."""
        if v is None or not v:
            return None
        digits = re.sub(r"[\s\-().]", "", v)
        if not re.match(r"^\+?\d{6,15}$", digits):
            raise ValueError("Invalid phone number format")
        return digits


class UserCreate(UserBase):
    """Schema for creating a new user."""

    role: UserRole = Field(UserRole.CLIENT, description="User's role in the clinic")
    external_auth_id: Optional[str] = Field(None, max_length=255)
    veterinarian_id: Optional[UUID] = Field(
        None, description="Practitioner assisted by a secretary"
    )

    @model_validator(mode="after")
    def validate_secretary_link(self) -> "UserCreate":
        """Only secretaries are attached to a practitioner."""
        if self.veterinarian_id is not None and self.role != UserRole.SECRETARY.value:
            raise ValueError("Only secretaries can be attached to a veterinarian")
        return self


class UserResponse(BaseModel):
    """Schema for user response data."""

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    id: UUID
    username: str
    email: str
    first_name: str
    last_name: str
    phone_number: Optional[str] = None
    role: UserRole
    veterinarian_id: Optional[UUID] = None
    rating: float = 0.0
    rating_count: int = 0
    created_at: datetime


class UserSummary(BaseModel):
    """Compact user representation embedded in chat payloads."""

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    id: UUID
    username: str
    first_name: str
    last_name: str
    role: UserRole
