"""
Real-time push and appointment reminders.

``ConnectionRegistry`` maps users to their open push connections (one per
device). ``NotificationDispatcher`` persists notifications and runs the
reminder sweep; ``ReminderScheduler`` runs that sweep every hour.
"""

import logging
import uuid
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Protocol

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy import select, update

from ..database.session import SessionManager
from ..exceptions import DatabaseException, ResourceNotFoundException
from ..models.appointment import Appointment, AppointmentStatus
from ..models.notification import Notification
from ..models.user import User
from ..schemas.notification import NotificationResponse
from ..utils.config import ClinicSettings
from ..utils.datetime_utils import ensure_utc, get_current_utc, reminder_window
from .common import get_or_404, parse_id

logger = logging.getLogger(__name__)

# Push event names
NEW_MESSAGE = "newMessage"
NEW_CHAT = "newChat"
MESSAGES_READ = "messagesRead"
NEW_NOTIFICATION = "newNotification"

REMINDER_JOB_ID = "appointment_reminders"


class PushConnection(Protocol):
    """Anything that can deliver a JSON document to one client device."""

    async def send_json(self, data: Any) -> None: ...


class ConnectionRegistry:
    """
    Live push connections, keyed by user.

    Delivery is best effort: a connection that fails to send is dropped and
    the failure logged, and an offline user simply receives nothing.
    """

    def __init__(self) -> None:
        self._connections: Dict[str, List[PushConnection]] = defaultdict(list)

    def register(self, user_id: uuid.UUID, connection: PushConnection) -> None:
        """Attach a connection (device) to a user."""
        connections = self._connections[str(user_id)]
        if connection not in connections:
            connections.append(connection)
        logger.debug(f"User {user_id} connected ({len(connections)} connection(s))")

    def unregister(
        self, user_id: uuid.UUID, connection: Optional[PushConnection] = None
    ) -> None:
        """Detach one connection, or all of the user's connections."""
        key = str(user_id)
        if connection is None:
            self._connections.pop(key, None)
            return
        connections = self._connections.get(key)
        if not connections:
            return
        if connection in connections:
            connections.remove(connection)
        if not connections:
            del self._connections[key]

    def is_connected(self, user_id: uuid.UUID) -> bool:
        return bool(self._connections.get(str(user_id)))

    def connection_count(self, user_id: uuid.UUID) -> int:
        return len(self._connections.get(str(user_id), ()))

    async def emit(self, user_id: uuid.UUID, event: str, payload: Any) -> int:
        """
        Send an event to every connection of one user.

        Args:
            user_id: Recipient
            event: Event name
            payload: JSON-serializable event data

        Returns:
            Number of connections the event reached
        """
        envelope = {"event": event, "data": payload}
        delivered = 0
        for connection in list(self._connections.get(str(user_id), ())):
            try:
                await connection.send_json(envelope)
                delivered += 1
            except Exception as e:
                logger.warning(
                    f"Dropping connection of user {user_id} after failed {event} push: {e}"
                )
                self.unregister(user_id, connection)
        return delivered

    async def emit_many(
        self, user_ids: Iterable[uuid.UUID], event: str, payload: Any
    ) -> int:
        """Send the same event to several users; returns total deliveries."""
        delivered = 0
        for user_id in dict.fromkeys(user_ids):
            delivered += await self.emit(user_id, event, payload)
        return delivered


class NotificationDispatcher:
    """Persists user notifications and dispatches appointment reminders."""

    def __init__(
        self,
        session_manager: SessionManager,
        registry: ConnectionRegistry,
        settings: Optional[ClinicSettings] = None,
    ):
        self.session_manager = session_manager
        self.registry = registry
        self.settings = settings or ClinicSettings()

    @staticmethod
    def reminder_message(client: User, scheduled_at: datetime) -> str:
        when = ensure_utc(scheduled_at).strftime("%Y-%m-%d %H:%M UTC")
        return f"Hello {client.full_name}, your appointment is scheduled for {when}."

    async def run_reminder_sweep(
        self, now: Optional[datetime] = None
    ) -> List[Notification]:
        """
        Remind clients of accepted appointments starting 24 to 25 hours from now.

        Each appointment is claimed by flipping its ``reminder_sent`` flag with
        a conditional update; the notification is only written when that
        update changed the row, in the same transaction. Overlapping or
        repeated sweeps therefore never remind twice.

        Args:
            now: Reference time, defaults to the current UTC time

        Returns:
            Notifications created by this sweep
        """
        now = ensure_utc(now) if now is not None else get_current_utc()
        start, end = reminder_window(
            now,
            self.settings.reminder_lead_hours,
            self.settings.reminder_window_hours,
        )

        async with self.session_manager.get_session() as session:
            result = await session.execute(
                select(Appointment.id)
                .where(
                    Appointment.status == AppointmentStatus.ACCEPTED,
                    Appointment.reminder_sent.is_(False),
                    Appointment.scheduled_at >= start,
                    Appointment.scheduled_at <= end,
                )
                .order_by(Appointment.scheduled_at)
            )
            due = list(result.scalars().all())

        logger.info(f"Reminder sweep at {now.isoformat()}: {len(due)} appointment(s) due")

        sent: List[Notification] = []
        for appointment_id in due:
            try:
                notification = await self._send_reminder(appointment_id)
            except DatabaseException as e:
                # One failing appointment must not block the others
                e.log_error(logger)
                continue
            if notification is None:
                logger.debug(f"Reminder for appointment {appointment_id} already claimed")
                continue
            sent.append(notification)
            await self.push_notification(notification)

        return sent

    async def _send_reminder(self, appointment_id: uuid.UUID) -> Optional[Notification]:
        async with self.session_manager.get_transaction("send_reminder") as session:
            claimed = await session.execute(
                update(Appointment)
                .where(
                    Appointment.id == appointment_id,
                    Appointment.reminder_sent.is_(False),
                )
                .values(reminder_sent=True, updated_at=get_current_utc())
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount != 1:
                return None

            appointment = await session.get(Appointment, appointment_id)
            client = await session.get(User, appointment.client_id)
            notification = Notification(
                user_id=client.id,
                appointment_id=appointment.id,
                message=self.reminder_message(client, appointment.scheduled_at),
            )
            session.add(notification)
            await session.flush()

        logger.info(
            f"Reminder {notification.id} created for appointment {appointment_id}"
        )
        return notification

    async def push_notification(self, notification: Notification) -> int:
        """Push a stored notification to its recipient's devices."""
        payload = NotificationResponse.model_validate(notification).to_event_payload()
        return await self.registry.emit(
            notification.user_id, NEW_NOTIFICATION, payload
        )

    async def list_notifications(
        self, user_id: uuid.UUID, limit: Optional[int] = None
    ) -> List[Notification]:
        """
        List a user's notifications, newest first.

        Args:
            user_id: Recipient
            limit: Maximum number returned, defaults to the configured limit
        """
        limit = limit or self.settings.notification_list_limit
        async with self.session_manager.get_session() as session:
            user = await get_or_404(session, User, user_id, "User")
            result = await session.execute(
                select(Notification)
                .where(Notification.user_id == user.id)
                .order_by(Notification.created_at.desc(), Notification.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def mark_notification_read(
        self, notification_id: uuid.UUID, user_id: uuid.UUID
    ) -> Notification:
        """
        Mark one of the user's notifications as read.

        Raises:
            ValidationException: If an id is malformed
            ResourceNotFoundException: If the notification does not exist or
                belongs to someone else
        """
        user_id = parse_id(user_id, "user_id")
        async with self.session_manager.get_transaction("mark_notification_read") as session:
            notification = await get_or_404(
                session, Notification, notification_id, "Notification"
            )
            if notification.user_id != user_id:
                raise ResourceNotFoundException("Notification", notification_id)
            notification.mark_read()
        return notification


class ReminderScheduler:
    """Runs the reminder sweep at minute 0 of every hour."""

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        self.dispatcher = dispatcher
        self.scheduler = scheduler or AsyncIOScheduler(timezone="UTC")

    def start(self) -> None:
        """Register the hourly job and start the scheduler."""
        self.scheduler.add_job(
            self._run,
            trigger=CronTrigger(minute=0, timezone="UTC"),
            id=REMINDER_JOB_ID,
            name="Appointment reminder sweep",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info("Reminder scheduler started (hourly)")

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Reminder scheduler stopped")

    async def _run(self) -> None:
        try:
            sent = await self.dispatcher.run_reminder_sweep()
        except DatabaseException as e:
            e.log_error(logger)
            return
        logger.info(f"Reminder sweep sent {len(sent)} notification(s)")
