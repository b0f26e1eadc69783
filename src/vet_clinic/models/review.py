"""
Review model for the vet-clinic package.
"""

import uuid
from typing import Optional

from sqlalchemy import CheckConstraint, Float, ForeignKey, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel

MIN_RATING = 0.0
MAX_RATING = 5.0


class Review(BaseModel):
    """
    A client's rating of a veterinarian.

    A client may review a given veterinarian at most once.
    """

    __tablename__ = "reviews"

    client_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    veterinarian_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    rating: Mapped[float] = mapped_column(Float, nullable=False)

    review: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("client_id", "veterinarian_id", name="uq_reviews_client_vet"),
        CheckConstraint(
            f"rating >= {MIN_RATING} AND rating <= {MAX_RATING}",
            name="ck_reviews_rating_range",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Review(id={self.id}, veterinarian_id={self.veterinarian_id}, "
            f"rating={self.rating})>"
        )
