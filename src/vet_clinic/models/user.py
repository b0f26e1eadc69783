"""
User model for the vet-clinic package.

This module contains the User SQLAlchemy model with role-based access
control and the derived rating fields of veterinarians.
"""

import enum
import uuid
from typing import Optional

from sqlalchemy import Enum, Float, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel


class UserRole(enum.Enum):
    """Enumeration of user roles in the veterinary clinic."""

    CLIENT = "client"
    VETERINARIAN = "veterinarian"
    SECRETARY = "secretary"
    ADMIN = "admin"


class User(BaseModel):
    """
    User account of any role.

    Credentials live with the external authentication provider; only its
    identifier is stored here. ``rating`` and ``rating_count`` are derived
    from the reviews a veterinarian has received and are only written by
    the review service.
    """

    __tablename__ = "users"

    def __init__(self, **kwargs):
        """Initialize User with default values."""
        kwargs.setdefault("role", UserRole.CLIENT)
        kwargs.setdefault("rating", 0.0)
        kwargs.setdefault("rating_count", 0)
        super().__init__(**kwargs)

    username: Mapped[str] = mapped_column(
        String(150),
        unique=True,
        nullable=False,
        comment="Unique login name",
    )

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        comment="User's email address, stored lower-cased",
    )

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)

    last_name: Mapped[str] = mapped_column(String(100), nullable=False)

    phone_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole),
        nullable=False,
        default=UserRole.CLIENT,
        index=True,
        comment="User's role in the clinic",
    )

    external_auth_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        unique=True,
        nullable=True,
        comment="Identifier from the external credential provider",
    )

    # Secretaries are attached to the practitioner they assist
    veterinarian_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    rating: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=0.0,
        comment="Average review rating, rounded to two decimals",
    )

    rating_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Number of reviews behind the rating",
    )

    __table_args__ = (Index("idx_users_role_created", "role", "created_at"),)

    def __repr__(self) -> str:
        """String representation of the User model."""
        return f"<User(id={self.id}, username='{self.username}', role='{self.role.value}')>"

    @property
    def full_name(self) -> str:
        """Get the user's full name."""
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def display_name(self) -> str:
        """Get a display-friendly name for the user."""
        return self.full_name or self.username

    def is_client(self) -> bool:
        """Check if user is a client (animal owner)."""
        return self.role == UserRole.CLIENT

    def is_veterinarian(self) -> bool:
        """Check if user is a veterinarian."""
        return self.role == UserRole.VETERINARIAN

    def is_secretary(self) -> bool:
        """Check if user is a secretary."""
        return self.role == UserRole.SECRETARY

    def is_admin(self) -> bool:
        """Check if user is an administrator."""
        return self.role == UserRole.ADMIN
