"""
Review Pydantic schemas for validation and serialization.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..models.review import MAX_RATING, MIN_RATING


def _check_review_text(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    v = v.strip()
    return v or None


class ReviewCreate(BaseModel):
    """Schema for rating a veterinarian."""

    model_config = ConfigDict(str_strip_whitespace=True)

    veterinarian_id: UUID
    rating: float = Field(..., ge=MIN_RATING, le=MAX_RATING)
    review: Optional[str] = Field(None, max_length=2000)

    @field_validator("review")
    @classmethod
    def validate_review(cls, v: Optional[str]) -> Optional[str]:
        return _check_review_text(v)


class ReviewUpdate(BaseModel):
    """Schema for editing one's own review."""

    model_config = ConfigDict(str_strip_whitespace=True)

    rating: Optional[float] = Field(None, ge=MIN_RATING, le=MAX_RATING)
    review: Optional[str] = Field(None, max_length=2000)

    @field_validator("review")
    @classmethod
    def validate_review(cls, v: Optional[str]) -> Optional[str]:
        return _check_review_text(v)

    @model_validator(mode="after")
    def validate_at_least_one_field(self) -> "ReviewUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided for update")
        return self


class ReviewResponse(BaseModel):
    """Schema for review response data."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    client_id: UUID
    veterinarian_id: UUID
    rating: float
    review: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class RatingSummary(BaseModel):
    """A practitioner's reviews together with the derived aggregate."""

    veterinarian_id: UUID
    average_rating: float = 0.0
    total_reviews: int = 0
    reviews: List[ReviewResponse] = Field(default_factory=list)
