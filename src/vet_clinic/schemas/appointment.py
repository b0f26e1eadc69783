"""
Appointment Pydantic schemas for API validation and serialization.

This module contains the create, update and response schemas for
appointments, with timezone handling for the scheduled date.
"""

from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..models.appointment import AppointmentStatus, AppointmentType


def _check_scheduled_at(v: Optional[datetime]) -> Optional[datetime]:
    if v is None:
        return v
    if v.tzinfo is None:
        raise ValueError("Scheduled time must be timezone-aware")
    return v.astimezone(timezone.utc)


def _check_services(v: Optional[List[str]]) -> Optional[List[str]]:
    if v is None:
        return v
    cleaned = []
    for item in v:
        item = item.strip()
        if item and item not in cleaned:
            cleaned.append(item)
    return cleaned


def _check_text(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    v = v.strip()
    if not v:
        return None
    if len(v) > 2000:
        raise ValueError("Text field is too long (maximum 2000 characters)")
    return v


class AppointmentCreate(BaseModel):
    """Schema for booking a new appointment."""

    model_config = ConfigDict(
        from_attributes=True,
        use_enum_values=True,
        validate_assignment=True,
        str_strip_whitespace=True,
    )

    scheduled_at: datetime = Field(
        ..., description="Scheduled date and time for the appointment"
    )
    animal_id: UUID = Field(..., description="Animal the appointment is for")
    type: AppointmentType = Field(..., description="Home visit or clinic visit")
    veterinarian_id: Optional[UUID] = Field(
        None,
        description="Requested practitioner; assigned automatically when omitted",
    )
    services: List[str] = Field(default_factory=list)
    case_description: Optional[str] = Field(None)

    @field_validator("scheduled_at")
    @classmethod
    def validate_scheduled_at(cls, v: datetime) -> datetime:
        """Require an aware datetime and normalize it to UTC."""
        return _check_scheduled_at(v)

    @field_validator("services")
    @classmethod
    def validate_services(cls, v: List[str]) -> List[str]:
        """Drop blank and repeated service names."""
        return _check_services(v)

    @field_validator("case_description")
    @classmethod
    def validate_case_description(cls, v: Optional[str]) -> Optional[str]:
        return _check_text(v)


class AppointmentUpdate(BaseModel):
    """
    Schema for editing a pending appointment.

    Unknown keys are ignored, so identifiers, timestamps and the status
    can never be changed through an update.
    """

    model_config = ConfigDict(
        from_attributes=True,
        use_enum_values=True,
        validate_assignment=True,
        str_strip_whitespace=True,
        extra="ignore",
    )

    scheduled_at: Optional[datetime] = None
    animal_id: Optional[UUID] = None
    type: Optional[AppointmentType] = None
    veterinarian_id: Optional[UUID] = None
    services: Optional[List[str]] = None
    case_description: Optional[str] = None

    @field_validator("scheduled_at")
    @classmethod
    def validate_scheduled_at(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _check_scheduled_at(v)

    @field_validator("services")
    @classmethod
    def validate_services(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return _check_services(v)

    @field_validator("case_description")
    @classmethod
    def validate_case_description(cls, v: Optional[str]) -> Optional[str]:
        return _check_text(v)

    @model_validator(mode="after")
    def validate_at_least_one_field(self) -> "AppointmentUpdate":
        """Ensure at least one field is provided for update."""
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided for update")
        return self


class AppointmentResponse(BaseModel):
    """Schema for appointment response data."""

    model_config = ConfigDict(
        from_attributes=True,
        use_enum_values=True,
    )

    id: UUID = Field(..., description="Appointment's unique identifier")
    scheduled_at: datetime
    client_id: UUID
    veterinarian_id: UUID
    animal_id: UUID
    type: AppointmentType
    status: AppointmentStatus
    services: List[str] = Field(default_factory=list)
    case_description: Optional[str] = None
    reminder_sent: bool = False
    created_at: datetime
    updated_at: datetime
