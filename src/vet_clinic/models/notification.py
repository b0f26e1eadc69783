"""
Notification model for the vet-clinic package.
"""

import uuid
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Index, Text, false
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel


class Notification(BaseModel):
    """Persisted user notification, currently produced by appointment reminders."""

    __tablename__ = "notifications"

    def __init__(self, **kwargs):
        kwargs.setdefault("read", False)
        super().__init__(**kwargs)

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    appointment_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("appointments.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    message: Mapped[str] = mapped_column(Text, nullable=False)

    read: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=false(),
    )

    __table_args__ = (Index("idx_notifications_user_created", "user_id", "created_at"),)

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, user_id={self.user_id}, read={self.read})>"

    def mark_read(self) -> None:
        self.read = True
