"""
Scheduling conflict detection.

A practitioner cannot hold two non-rejected appointments less than the
conflict window apart. The window is open at both ends: two bookings
exactly one window apart do not conflict.
"""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncGenerator, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import SchedulingConflictException
from ..models.appointment import Appointment, AppointmentStatus
from ..utils.datetime_utils import ensure_utc, window_around

logger = logging.getLogger(__name__)

DEFAULT_CONFLICT_WINDOW_MINUTES = 20


class ConflictChecker:
    """Answers whether a practitioner is free at a given time."""

    def __init__(self, window_minutes: int = DEFAULT_CONFLICT_WINDOW_MINUTES):
        """
        Initialize the checker.

        Args:
            window_minutes: Half-width of the blocked window around each booking
        """
        if window_minutes <= 0:
            raise ValueError("Conflict window must be positive")
        self.window_minutes = window_minutes

    @property
    def window(self) -> timedelta:
        return timedelta(minutes=self.window_minutes)

    def _conflict_query(
        self,
        veterinarian_id: uuid.UUID,
        candidate_time: datetime,
        exclude_appointment_id: Optional[uuid.UUID] = None,
    ):
        start, end = window_around(candidate_time, self.window_minutes)
        stmt = (
            select(Appointment)
            .where(
                Appointment.veterinarian_id == veterinarian_id,
                Appointment.status != AppointmentStatus.REJECTED,
                Appointment.scheduled_at > start,
                Appointment.scheduled_at < end,
            )
            .order_by(Appointment.scheduled_at)
        )
        if exclude_appointment_id is not None:
            stmt = stmt.where(Appointment.id != exclude_appointment_id)
        return stmt

    async def find_conflicts(
        self,
        session: AsyncSession,
        veterinarian_id: uuid.UUID,
        candidate_time: datetime,
        exclude_appointment_id: Optional[uuid.UUID] = None,
    ) -> List[Appointment]:
        """
        List the active appointments that collide with a candidate time.

        Args:
            session: Open database session
            veterinarian_id: Practitioner whose calendar is checked
            candidate_time: Requested appointment time
            exclude_appointment_id: Appointment being edited, ignored in the check

        Returns:
            Conflicting appointments ordered by time, empty when the slot is free
        """
        result = await session.execute(
            self._conflict_query(
                veterinarian_id, candidate_time, exclude_appointment_id
            )
        )
        return list(result.scalars().all())

    async def has_conflict(
        self,
        session: AsyncSession,
        veterinarian_id: uuid.UUID,
        candidate_time: datetime,
        exclude_appointment_id: Optional[uuid.UUID] = None,
    ) -> bool:
        """Check whether any active appointment collides with the candidate time."""
        stmt = self._conflict_query(
            veterinarian_id, candidate_time, exclude_appointment_id
        ).limit(1)
        result = await session.execute(stmt)
        return result.first() is not None

    async def assert_slot_available(
        self,
        session: AsyncSession,
        veterinarian_id: uuid.UUID,
        candidate_time: datetime,
        exclude_appointment_id: Optional[uuid.UUID] = None,
    ) -> None:
        """
        Require the slot to be free.

        Raises:
            SchedulingConflictException: If another active appointment collides
        """
        conflicts = await self.find_conflicts(
            session, veterinarian_id, candidate_time, exclude_appointment_id
        )
        if conflicts:
            logger.info(
                f"Slot {ensure_utc(candidate_time).isoformat()} unavailable for "
                f"veterinarian {veterinarian_id}: {len(conflicts)} conflict(s)"
            )
            raise SchedulingConflictException(
                veterinarian_id=veterinarian_id,
                requested_at=ensure_utc(candidate_time).isoformat(),
                conflicting_ids=[a.id for a in conflicts],
            )


class BookingLocks:
    """
    Per-practitioner locks serializing check-then-write on a calendar.

    Acquire the lock before opening the transaction that checks and writes,
    never while holding one.
    """

    def __init__(self) -> None:
        self._locks: Dict[uuid.UUID, asyncio.Lock] = {}

    def lock_for(self, veterinarian_id: uuid.UUID) -> asyncio.Lock:
        lock = self._locks.get(veterinarian_id)
        if lock is None:
            lock = self._locks[veterinarian_id] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def hold(self, veterinarian_id: uuid.UUID) -> AsyncGenerator[None, None]:
        async with self.lock_for(veterinarian_id):
            yield
