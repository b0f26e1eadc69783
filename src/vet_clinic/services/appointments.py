"""
Appointment booking and lifecycle.

Bookings are created ``pending`` by clients and decided once by clinic
staff. Every write that places an appointment on a calendar holds the
practitioner's booking lock around the conflict check and the write.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Union

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.session import SessionManager
from ..exceptions import (
    AuthorizationException,
    NoActiveAppointmentsException,
    ResourceNotFoundException,
    SchedulingConflictException,
    ValidationException,
)
from ..models.animal import Animal
from ..models.appointment import (
    ACTIVE_STATUSES,
    Appointment,
    AppointmentStatus,
    AppointmentType,
)
from ..models.user import User, UserRole
from ..schemas.appointment import AppointmentCreate, AppointmentUpdate
from ..utils.config import ClinicSettings
from .access import Permission, authorize, has_permission
from .common import get_or_404, parse_id, parse_schema
from .scheduling import BookingLocks, ConflictChecker

logger = logging.getLogger(__name__)

# Never writable through an update, whatever the caller sends
PROTECTED_FIELDS = frozenset(
    {"id", "client_id", "status", "created_at", "updated_at", "reminder_sent"}
)

# Non-nullable columns: an explicit None in a patch means "leave unchanged"
_REQUIRED_FIELDS = frozenset(
    {"scheduled_at", "animal_id", "type", "veterinarian_id", "services"}
)


class AppointmentService:
    """Books, edits, decides and lists appointments."""

    def __init__(
        self,
        session_manager: SessionManager,
        settings: Optional[ClinicSettings] = None,
        conflict_checker: Optional[ConflictChecker] = None,
        booking_locks: Optional[BookingLocks] = None,
    ):
        self.session_manager = session_manager
        self.settings = settings or ClinicSettings()
        self.conflict_checker = conflict_checker or ConflictChecker(
            self.settings.conflict_window_minutes
        )
        self.booking_locks = booking_locks or BookingLocks()

    async def create(
        self,
        client_id: uuid.UUID,
        data: Union[AppointmentCreate, Mapping[str, Any]],
    ) -> Appointment:
        """
        Book an appointment for one of the client's animals.

        When no veterinarian is requested one is assigned: among the
        veterinarians free at the requested time, the one with the fewest
        active appointments, ties going to the longest-registered account.

        Args:
            client_id: Booking client
            data: Appointment details

        Returns:
            The new pending appointment

        Raises:
            ValidationException: If an id is malformed
            AuthorizationException: If the caller is not a client
            ResourceNotFoundException: If the client, animal or veterinarian
                is unknown, or no veterinarian exists at all
            SchedulingConflictException: If the slot is taken, or no
                veterinarian is free when assigning automatically
        """
        client_id = parse_id(client_id, "client_id")
        data = parse_schema(AppointmentCreate, data)
        scheduled_at = data.scheduled_at
        veterinarian_id = data.veterinarian_id

        if veterinarian_id is None:
            async with self.session_manager.get_transaction("assign_veterinarian") as session:
                await self._load_client(session, client_id)
                veterinarian = await self.choose_veterinarian(session, scheduled_at)
                veterinarian_id = veterinarian.id

        async with self.booking_locks.hold(veterinarian_id):
            async with self.session_manager.get_transaction("create_appointment") as session:
                client = await self._load_client(session, client_id)
                await self._check_animal(session, data.animal_id, client.id)
                await self._load_veterinarian(session, veterinarian_id)
                await self.conflict_checker.assert_slot_available(
                    session, veterinarian_id, scheduled_at
                )

                appointment = Appointment(
                    scheduled_at=scheduled_at,
                    client_id=client.id,
                    veterinarian_id=veterinarian_id,
                    animal_id=data.animal_id,
                    type=AppointmentType(data.type),
                    services=list(data.services),
                    case_description=data.case_description,
                )
                session.add(appointment)
                await session.flush()

        logger.info(
            f"Appointment {appointment.id} booked by client {client_id} with "
            f"veterinarian {veterinarian_id} at {scheduled_at.isoformat()}"
        )
        return appointment

    async def choose_veterinarian(
        self, session: AsyncSession, scheduled_at: datetime
    ) -> User:
        """
        Pick the veterinarian for a booking that did not request one.

        Raises:
            ResourceNotFoundException: If no veterinarian exists
            SchedulingConflictException: If every veterinarian is busy
        """
        result = await session.execute(
            select(User)
            .where(User.role == UserRole.VETERINARIAN)
            .order_by(User.created_at, User.id)
        )
        veterinarians = list(result.scalars().all())
        if not veterinarians:
            raise ResourceNotFoundException(
                "Veterinarian", message="No veterinarian available"
            )

        load_rows = await session.execute(
            select(Appointment.veterinarian_id, func.count(Appointment.id))
            .where(Appointment.status.in_(ACTIVE_STATUSES))
            .group_by(Appointment.veterinarian_id)
        )
        load: Dict[uuid.UUID, int] = {row[0]: row[1] for row in load_rows}

        free = []
        for veterinarian in veterinarians:
            if not await self.conflict_checker.has_conflict(
                session, veterinarian.id, scheduled_at
            ):
                free.append(veterinarian)

        if not free:
            raise SchedulingConflictException(
                veterinarian_id="any",
                requested_at=scheduled_at.isoformat(),
                message="No veterinarian is available at this time",
            )

        # Stable: ``veterinarians`` is already ordered by registration
        return min(free, key=lambda v: load.get(v.id, 0))

    async def update(
        self,
        appointment_id: uuid.UUID,
        patch: Union[AppointmentUpdate, Mapping[str, Any]],
        caller_id: uuid.UUID,
    ) -> Appointment:
        """
        Edit a pending appointment on behalf of its client.

        Identifiers, timestamps, the status and the reminder flag are
        stripped from the patch. Moving the appointment in time or to another
        veterinarian re-runs the conflict check, ignoring the appointment
        itself.

        Raises:
            ValidationException: If an id is malformed
            ResourceNotFoundException: If the appointment or a referenced
                animal/veterinarian is unknown
            AuthorizationException: If the caller is not the owning client
            InvalidStateTransitionException: If the appointment is decided
            SchedulingConflictException: If the new slot is taken
        """
        appointment_id = parse_id(appointment_id, "appointment_id")
        caller_id = parse_id(caller_id, "caller_id")
        changes = self._clean_patch(patch)

        async with self.session_manager.get_transaction("load_appointment") as session:
            appointment = await self._load_editable(session, appointment_id, caller_id)
            target_veterinarian = changes.get(
                "veterinarian_id", appointment.veterinarian_id
            )

        async with self.booking_locks.hold(target_veterinarian):
            async with self.session_manager.get_transaction("update_appointment") as session:
                appointment = await self._load_editable(
                    session, appointment_id, caller_id
                )

                if "animal_id" in changes:
                    await self._check_animal(
                        session, changes["animal_id"], appointment.client_id
                    )
                if "veterinarian_id" in changes:
                    await self._load_veterinarian(session, changes["veterinarian_id"])

                new_time = changes.get("scheduled_at", appointment.scheduled_at)
                moved = (
                    new_time != appointment.scheduled_at
                    or target_veterinarian != appointment.veterinarian_id
                )
                if moved:
                    await self.conflict_checker.assert_slot_available(
                        session,
                        target_veterinarian,
                        new_time,
                        exclude_appointment_id=appointment.id,
                    )

                if "type" in changes:
                    changes["type"] = AppointmentType(changes["type"])
                appointment.update_fields(**changes)
                await session.flush()

        logger.info(
            f"Appointment {appointment_id} updated by {caller_id}: {sorted(changes)}"
        )
        return appointment

    async def accept(
        self, appointment_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None
    ) -> Appointment:
        """
        Accept a pending appointment.

        Without ``actor_id`` the caller is trusted to have been authorized
        upstream; with it the actor's role must allow managing appointments.

        Raises:
            ResourceNotFoundException: If the appointment or actor is unknown
            AuthorizationException: If the actor may not manage appointments
            InvalidStateTransitionException: If the appointment is not pending
        """
        return await self._decide(appointment_id, actor_id, accept=True)

    async def reject(
        self, appointment_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None
    ) -> Appointment:
        """Reject a pending appointment. See ``accept`` for the error cases."""
        return await self._decide(appointment_id, actor_id, accept=False)

    async def _decide(
        self,
        appointment_id: uuid.UUID,
        actor_id: Optional[uuid.UUID],
        accept: bool,
    ) -> Appointment:
        appointment_id = parse_id(appointment_id, "appointment_id")
        if actor_id is not None:
            actor_id = parse_id(actor_id, "actor_id")
        operation = "accept_appointment" if accept else "reject_appointment"
        async with self.session_manager.get_transaction(operation) as session:
            if actor_id is not None:
                actor = await get_or_404(session, User, actor_id, "User")
                authorize(actor, Permission.MANAGE_APPOINTMENTS)

            appointment = await get_or_404(
                session, Appointment, appointment_id, "Appointment"
            )
            if accept:
                appointment.accept()
            else:
                appointment.reject()
            await session.flush()

        logger.info(
            f"Appointment {appointment_id} {appointment.status.value} by {actor_id or 'trusted caller'}"
        )
        return appointment

    async def delete(self, appointment_id: uuid.UUID, actor_id: uuid.UUID) -> None:
        """
        Delete an appointment in any state.

        Allowed for the owning client, the assigned veterinarian and staff
        who may manage appointments.

        Raises:
            ResourceNotFoundException: If the appointment or actor is unknown
            AuthorizationException: If the actor has no claim on it
        """
        appointment_id = parse_id(appointment_id, "appointment_id")
        actor_id = parse_id(actor_id, "actor_id")
        async with self.session_manager.get_transaction("delete_appointment") as session:
            actor = await get_or_404(session, User, actor_id, "User")
            appointment = await get_or_404(
                session, Appointment, appointment_id, "Appointment"
            )
            allowed = (
                appointment.client_id == actor.id
                or appointment.veterinarian_id == actor.id
                or has_permission(actor, Permission.MANAGE_APPOINTMENTS)
                or has_permission(actor, Permission.ADMINISTER)
            )
            if not allowed:
                raise AuthorizationException(
                    message="You cannot delete this appointment",
                    action="delete_appointment",
                    user_id=actor_id,
                )
            await session.delete(appointment)

        logger.info(f"Appointment {appointment_id} deleted by {actor_id}")

    async def get(self, appointment_id: uuid.UUID) -> Appointment:
        """
        Fetch one appointment.

        Raises:
            ValidationException: If the id is malformed
            ResourceNotFoundException: If it does not exist
        """
        async with self.session_manager.get_session() as session:
            return await get_or_404(session, Appointment, appointment_id, "Appointment")

    async def list_active(
        self, owner_id: uuid.UUID, owner_role: Union[UserRole, str]
    ) -> List[Appointment]:
        """
        List the pending and accepted appointments of a client or veterinarian.

        Args:
            owner_id: Client or veterinarian id
            owner_role: Which side of the appointment ``owner_id`` is on

        Returns:
            Appointments sorted by ascending date, never empty

        Raises:
            ValidationException: If ``owner_role`` is neither client nor veterinarian
            ResourceNotFoundException: If no such client/veterinarian exists
            NoActiveAppointmentsException: If the owner has nothing active
        """
        role = self._owner_role(owner_role)
        owner_id = parse_id(owner_id, "owner_id")
        column = (
            Appointment.client_id
            if role == UserRole.CLIENT
            else Appointment.veterinarian_id
        )

        async with self.session_manager.get_session() as session:
            owner = await self._load_owner(session, owner_id, role)
            result = await session.execute(
                select(Appointment)
                .where(column == owner.id, Appointment.status.in_(ACTIVE_STATUSES))
                .order_by(Appointment.scheduled_at)
            )
            appointments = list(result.scalars().all())

        if not appointments:
            raise NoActiveAppointmentsException(owner_id, role.value)
        return appointments

    async def list_pending_requests(self, veterinarian_id: uuid.UUID) -> List[Appointment]:
        """
        List the bookings still awaiting a veterinarian's decision.

        Returns:
            Pending appointments sorted by ascending date, possibly empty

        Raises:
            ResourceNotFoundException: If no such veterinarian exists
        """
        veterinarian_id = parse_id(veterinarian_id, "veterinarian_id")
        async with self.session_manager.get_session() as session:
            veterinarian = await self._load_owner(
                session, veterinarian_id, UserRole.VETERINARIAN
            )
            result = await session.execute(
                select(Appointment)
                .where(
                    Appointment.veterinarian_id == veterinarian.id,
                    Appointment.status == AppointmentStatus.PENDING,
                )
                .order_by(Appointment.scheduled_at)
            )
            return list(result.scalars().all())

    # Internal helpers

    @staticmethod
    def _owner_role(owner_role: Union[UserRole, str]) -> UserRole:
        try:
            role = UserRole(owner_role)
        except ValueError:
            raise ValidationException(
                message="Owner role must be client or veterinarian",
                field="owner_role",
                value=owner_role,
            )
        if role not in (UserRole.CLIENT, UserRole.VETERINARIAN):
            raise ValidationException(
                message="Owner role must be client or veterinarian",
                field="owner_role",
                value=role.value,
            )
        return role

    @staticmethod
    async def _load_owner(
        session: AsyncSession, owner_id: uuid.UUID, role: UserRole
    ) -> User:
        resource = "Client" if role == UserRole.CLIENT else "Veterinarian"
        owner = await get_or_404(session, User, owner_id, resource)
        if owner.role != role:
            raise ResourceNotFoundException(resource, owner_id)
        return owner

    @staticmethod
    async def _load_client(session: AsyncSession, client_id: uuid.UUID) -> User:
        client = await get_or_404(session, User, client_id, "User")
        authorize(client, Permission.BOOK_APPOINTMENT)
        return client

    @staticmethod
    async def _load_veterinarian(
        session: AsyncSession, veterinarian_id: uuid.UUID
    ) -> User:
        veterinarian = await get_or_404(
            session, User, veterinarian_id, "Veterinarian"
        )
        if not veterinarian.is_veterinarian():
            raise ResourceNotFoundException("Veterinarian", veterinarian_id)
        return veterinarian

    @staticmethod
    async def _check_animal(
        session: AsyncSession, animal_id: uuid.UUID, client_id: uuid.UUID
    ) -> Animal:
        animal = await get_or_404(session, Animal, animal_id, "Animal")
        # Someone else's animal is reported exactly like a missing one
        if animal.owner_id != client_id:
            raise ResourceNotFoundException("Animal", animal_id)
        return animal

    @staticmethod
    async def _load_editable(
        session: AsyncSession, appointment_id: uuid.UUID, caller_id: uuid.UUID
    ) -> Appointment:
        appointment = await get_or_404(
            session, Appointment, appointment_id, "Appointment"
        )
        if appointment.client_id != caller_id:
            raise AuthorizationException(
                message="Only the client who booked this appointment can edit it",
                action="update_appointment",
                user_id=caller_id,
            )
        appointment.ensure_editable()
        return appointment

    @staticmethod
    def _clean_patch(
        patch: Union[AppointmentUpdate, Mapping[str, Any]]
    ) -> Dict[str, Any]:
        if not isinstance(patch, AppointmentUpdate):
            raw = dict(patch)
            stripped = PROTECTED_FIELDS & raw.keys()
            if stripped:
                logger.debug(f"Ignoring protected appointment fields: {sorted(stripped)}")
            patch = parse_schema(
                AppointmentUpdate,
                {k: v for k, v in raw.items() if k not in PROTECTED_FIELDS},
            )

        changes = patch.model_dump(exclude_unset=True)
        return {
            field: value
            for field, value in changes.items()
            if not (field in _REQUIRED_FIELDS and value is None)
        }
