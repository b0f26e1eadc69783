"""
Animal Pydantic schemas for validation and serialization.
"""

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..models.animal import AnimalGender


def _check_birth_date(v: Optional[date]) -> Optional[date]:
    if v is not None and v > date.today():
        raise ValueError("Birth date cannot be in the future")
    return v


class AnimalBase(BaseModel):
    """Base Animal schema with common fields."""

    model_config = ConfigDict(
        from_attributes=True,
        use_enum_values=True,
        validate_assignment=True,
        str_strip_whitespace=True,
    )

    name: str = Field(..., min_length=1, max_length=100)
    species: Optional[str] = Field(None, max_length=50)
    breed: Optional[str] = Field(None, max_length=100)
    gender: Optional[AnimalGender] = None
    birth_date: Optional[date] = None

    @field_validator("birth_date")
    @classmethod
    def validate_birth_date(cls, v: Optional[date]) -> Optional[date]:
        return _check_birth_date(v)


class AnimalCreate(AnimalBase):
    """Schema for creating a new animal record."""


class AnimalUpdate(BaseModel):
    """Schema for updating an animal record."""

    model_config = ConfigDict(
        from_attributes=True,
        use_enum_values=True,
        str_strip_whitespace=True,
    )

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    species: Optional[str] = Field(None, max_length=50)
    breed: Optional[str] = Field(None, max_length=100)
    gender: Optional[AnimalGender] = None
    birth_date: Optional[date] = None

    @field_validator("birth_date")
    @classmethod
    def validate_birth_date(cls, v: Optional[date]) -> Optional[date]:
        return _check_birth_date(v)

    @model_validator(mode="after")
    def validate_at_least_one_field(self) -> "AnimalUpdate":
        """Ensure at least one field is provided for update."""
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided for update")
        return self


class AnimalResponse(AnimalBase):
    """Schema for animal response data."""

    id: UUID
    owner_id: UUID
    created_at: datetime
    updated_at: datetime
