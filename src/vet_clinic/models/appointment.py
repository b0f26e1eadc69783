"""
Appointment model for the vet-clinic package.

This module contains the Appointment SQLAlchemy model and its state
machine. A booking starts ``pending`` and moves exactly once, to either
``accepted`` or ``rejected``; both are terminal.
"""

import enum
import uuid
from datetime import datetime
from typing import Dict, FrozenSet, List, Optional

from sqlalchemy import Boolean, Enum, ForeignKey, Index, Text, false
from sqlalchemy.orm import Mapped, mapped_column

from ..database.types import JSONType, UTCDateTime
from ..exceptions import InvalidStateTransitionException
from .base import BaseModel


class AppointmentStatus(enum.Enum):
    """Enumeration of appointment statuses."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class AppointmentType(enum.Enum):
    """Where the consultation takes place."""

    DOMICILE = "domicile"
    CABINET = "cabinet"


# Statuses that block the practitioner's calendar
ACTIVE_STATUSES: FrozenSet[AppointmentStatus] = frozenset(
    {AppointmentStatus.PENDING, AppointmentStatus.ACCEPTED}
)

_TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset(
        {AppointmentStatus.ACCEPTED, AppointmentStatus.REJECTED}
    ),
    AppointmentStatus.ACCEPTED: frozenset(),
    AppointmentStatus.REJECTED: frozenset(),
}


class Appointment(BaseModel):
    """
    Appointment between a client's animal and a veterinarian.

    Within one practitioner's calendar no two non-rejected appointments may
    lie less than the conflict window apart; the scheduling service keeps
    that invariant.
    """

    __tablename__ = "appointments"

    def __init__(self, **kwargs):
        """Initialize Appointment with default values."""
        kwargs.setdefault("status", AppointmentStatus.PENDING)
        kwargs.setdefault("services", [])
        kwargs.setdefault("reminder_sent", False)
        super().__init__(**kwargs)

    scheduled_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        index=True,
        comment="Scheduled date and time for the appointment",
    )

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

    animal_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("animals.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    type: Mapped[AppointmentType] = mapped_column(
        Enum(AppointmentType),
        nullable=False,
    )

    status: Mapped[AppointmentStatus] = mapped_column(
        Enum(AppointmentStatus),
        nullable=False,
        default=AppointmentStatus.PENDING,
        index=True,
    )

    services: Mapped[List[str]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
        comment="Requested service names",
    )

    case_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    reminder_sent: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=false(),
        comment="Set once the 24h reminder has been dispatched",
    )

    __table_args__ = (
        Index("idx_appointments_vet_status_date", "veterinarian_id", "status", "scheduled_at"),
        Index("idx_appointments_client_status", "client_id", "status"),
        Index("idx_appointments_reminder", "status", "reminder_sent", "scheduled_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Appointment(id={self.id}, veterinarian_id={self.veterinarian_id}, "
            f"scheduled_at='{self.scheduled_at}', status='{self.status.value}')>"
        )

    @property
    def is_active(self) -> bool:
        """Check if the appointment still holds its slot."""
        return self.status in ACTIVE_STATUSES

    @property
    def is_pending(self) -> bool:
        return self.status == AppointmentStatus.PENDING

    @property
    def is_terminal(self) -> bool:
        """Check if no further transition is possible."""
        return not _TRANSITIONS[self.status]

    def can_transition(self, target: AppointmentStatus) -> bool:
        """Check whether moving to ``target`` is allowed from the current status."""
        return target in _TRANSITIONS[self.status]

    def _transition(self, target: AppointmentStatus, verb: str) -> None:
        if not self.can_transition(target):
            raise InvalidStateTransitionException(
                current_status=self.status.value, target=verb
            )
        self.status = target

    def accept(self) -> None:
        """
        Accept a pending appointment.

        Raises:
            InvalidStateTransitionException: If the appointment is not pending
        """
        self._transition(AppointmentStatus.ACCEPTED, "accept")

    def reject(self) -> None:
        """
        Reject a pending appointment.

        Raises:
            InvalidStateTransitionException: If the appointment is not pending
        """
        self._transition(AppointmentStatus.REJECTED, "reject")

    def ensure_editable(self) -> None:
        """Raise unless the appointment can still be edited by its client."""
        if not self.is_pending:
            raise InvalidStateTransitionException(
                current_status=self.status.value, target="update"
            )
