"""
Animal model for the vet-clinic package.
"""

import enum
import uuid
from datetime import date
from typing import Optional

from sqlalchemy import Date, Enum, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel


class AnimalGender(enum.Enum):
    """Enumeration of animal genders."""

    MALE = "male"
    FEMALE = "female"
    UNKNOWN = "unknown"


class Animal(BaseModel):
    """
    Animal record owned by a client.

    An owner cannot have two animals with the same name.
    """

    __tablename__ = "animals"

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    owner_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    species: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    breed: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    gender: Mapped[Optional[AnimalGender]] = mapped_column(
        Enum(AnimalGender), nullable=True
    )

    birth_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    __table_args__ = (
        UniqueConstraint("owner_id", "name", name="uq_animals_owner_name"),
    )

    def __repr__(self) -> str:
        return f"<Animal(id={self.id}, name='{self.name}', owner_id={self.owner_id})>"

    def age_in_years(self, today: Optional[date] = None) -> Optional[int]:
        """Whole years since birth, or None when the birth date is unknown."""
        if self.birth_date is None:
            return None
        today = today or date.today()
        years = today.year - self.birth_date.year
        if (today.month, today.day) < (self.birth_date.month, self.birth_date.day):
            years -= 1
        return max(years, 0)
