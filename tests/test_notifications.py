"""
Tests for push delivery, the reminder sweep and the hourly scheduler.
"""

import asyncio
import uuid
from datetime import timedelta
from unittest.mock import AsyncMock, Mock

import pytest
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy import func, select

from conftest import AnimalFactory, AppointmentFactory, FakeConnection, UserFactory
from vet_clinic.exceptions import ResourceNotFoundException, TransactionException
from vet_clinic.models import Appointment, AppointmentStatus, Notification
from vet_clinic.services import (
    NEW_NOTIFICATION,
    REMINDER_JOB_ID,
    ConnectionRegistry,
    ReminderScheduler,
)
from vet_clinic.utils.datetime_utils import get_current_utc


class TestConnectionRegistry:
    """Test cases for ConnectionRegistry."""

    async def test_emit_reaches_every_device(self):
        registry = ConnectionRegistry()
        user_id = uuid.uuid4()
        phone, laptop = FakeConnection(), FakeConnection()
        registry.register(user_id, phone)
        registry.register(user_id, laptop)

        delivered = await registry.emit(user_id, "ping", {"n": 1})

        assert delivered == 2
        assert phone.sent == [{"event": "ping", "data": {"n": 1}}]
        assert laptop.sent == phone.sent

    async def test_offline_user_receives_nothing(self):
        registry = ConnectionRegistry()
        assert await registry.emit(uuid.uuid4(), "ping", {}) == 0

    async def test_failing_connection_is_dropped(self, caplog):
        registry = ConnectionRegistry()
        user_id = uuid.uuid4()
        broken, healthy = FakeConnection(fail=True), FakeConnection()
        registry.register(user_id, broken)
        registry.register(user_id, healthy)

        delivered = await registry.emit(user_id, "ping", {})

        assert delivered == 1
        assert registry.connection_count(user_id) == 1
        assert "Dropping connection" in caplog.text

    def test_unregister_single_and_all(self):
        registry = ConnectionRegistry()
        user_id = uuid.uuid4()
        first, second = FakeConnection(), FakeConnection()
        registry.register(user_id, first)
        registry.register(user_id, second)
        registry.register(user_id, second)
        assert registry.connection_count(user_id) == 2

        registry.unregister(user_id, first)
        assert registry.connection_count(user_id) == 1

        registry.unregister(user_id)
        assert not registry.is_connected(user_id)

    async def test_emit_many_deduplicates_recipients(self):
        registry = ConnectionRegistry()
        user_id = uuid.uuid4()
        connection = FakeConnection()
        registry.register(user_id, connection)

        await registry.emit_many([user_id, user_id], "ping", {})
        assert len(connection.sent) == 1


class TestReminderSweep:
    """Test cases for NotificationDispatcher.run_reminder_sweep."""

    @pytest.fixture
    def now(self):
        return get_current_utc().replace(minute=0, second=0, microsecond=0)

    @pytest.fixture
    def schedule(self, session_manager, client, veterinarian):
        async def _schedule(when, status=AppointmentStatus.ACCEPTED, **kwargs):
            animal = await AnimalFactory.create(session_manager, client)
            return await AppointmentFactory.create(
                session_manager, client, veterinarian, animal, when, status=status, **kwargs
            )

        return _schedule

    async def count_notifications(self, session_manager):
        async with session_manager.get_session() as session:
            result = await session.execute(select(func.count(Notification.id)))
            return result.scalar_one()

    async def test_reminds_accepted_appointments_in_window(
        self, dispatcher, session_manager, client, schedule, now, connect
    ):
        socket = connect(client)
        due = await schedule(now + timedelta(hours=24, minutes=30))

        sent = await dispatcher.run_reminder_sweep(now)

        assert len(sent) == 1
        notification = sent[0]
        assert notification.user_id == client.id
        assert notification.appointment_id == due.id
        assert notification.message.startswith(f"Hello {client.full_name}")
        [event] = socket.events(NEW_NOTIFICATION)
        assert event["data"]["appointmentId"] == str(due.id)
        assert event["data"]["read"] is False

        async with session_manager.get_session() as session:
            appointment = await session.get(Appointment, due.id)
        assert appointment.reminder_sent is True

    @pytest.mark.parametrize(
        "offset",
        [timedelta(hours=24), timedelta(hours=25)],
    )
    async def test_window_bounds_are_inclusive(self, dispatcher, schedule, now, offset):
        await schedule(now + offset)
        assert len(await dispatcher.run_reminder_sweep(now)) == 1

    @pytest.mark.parametrize(
        "offset",
        [timedelta(hours=23, minutes=59), timedelta(hours=25, minutes=1), timedelta(hours=2)],
    )
    async def test_outside_window_is_ignored(self, dispatcher, schedule, now, offset):
        await schedule(now + offset)
        assert await dispatcher.run_reminder_sweep(now) == []

    @pytest.mark.parametrize(
        "status", [AppointmentStatus.PENDING, AppointmentStatus.REJECTED]
    )
    async def test_only_accepted_appointments(self, dispatcher, schedule, now, status):
        await schedule(now + timedelta(hours=24, minutes=10), status=status)
        assert await dispatcher.run_reminder_sweep(now) == []

    async def test_repeated_sweep_does_not_duplicate(
        self, dispatcher, session_manager, schedule, now
    ):
        await schedule(now + timedelta(hours=24, minutes=10))

        first = await dispatcher.run_reminder_sweep(now)
        second = await dispatcher.run_reminder_sweep(now + timedelta(minutes=5))

        assert len(first) == 1
        assert second == []
        assert await self.count_notifications(session_manager) == 1

    async def test_overlapping_sweeps_remind_once(
        self, dispatcher, session_manager, schedule, now
    ):
        for minutes in (0, 20, 40):
            await schedule(now + timedelta(hours=24, minutes=minutes))

        results = await asyncio.gather(
            dispatcher.run_reminder_sweep(now),
            dispatcher.run_reminder_sweep(now),
        )

        assert sum(len(r) for r in results) == 3
        assert await self.count_notifications(session_manager) == 3

    async def test_already_reminded_is_skipped(self, dispatcher, schedule, now):
        await schedule(now + timedelta(hours=24, minutes=10), reminder_sent=True)
        assert await dispatcher.run_reminder_sweep(now) == []

    async def test_store_failure_on_one_appointment_does_not_stop_the_rest(
        self, dispatcher, schedule, now, monkeypatch
    ):
        broken = await schedule(now + timedelta(hours=24, minutes=5))
        healthy = await schedule(now + timedelta(hours=24, minutes=45))
        original = dispatcher._send_reminder

        async def flaky(appointment_id):
            if appointment_id == broken.id:
                raise TransactionException("boom", operation="send_reminder")
            return await original(appointment_id)

        monkeypatch.setattr(dispatcher, "_send_reminder", flaky)

        sent = await dispatcher.run_reminder_sweep(now)
        assert [n.appointment_id for n in sent] == [healthy.id]

    def test_reminder_message_format(self, dispatcher, client):
        when = get_current_utc().replace(
            year=2030, month=1, day=2, hour=9, minute=30, second=0, microsecond=0
        )
        assert dispatcher.reminder_message(client, when) == (
            f"Hello {client.full_name}, your appointment is scheduled for 2030-01-02 09:30 UTC."
        )


class TestNotificationInbox:
    """Test cases for listing and reading notifications."""

    async def test_list_newest_first_and_mark_read(
        self, dispatcher, session_manager, client
    ):
        async with session_manager.get_transaction() as session:
            older = Notification(user_id=client.id, message="first")
            session.add(older)
        async with session_manager.get_transaction() as session:
            newer = Notification(user_id=client.id, message="second")
            session.add(newer)

        listed = await dispatcher.list_notifications(client.id)
        assert [n.id for n in listed] == [newer.id, older.id]
        assert len(await dispatcher.list_notifications(client.id, limit=1)) == 1

        marked = await dispatcher.mark_notification_read(older.id, client.id)
        assert marked.read is True

    async def test_someone_elses_notification_is_not_found(
        self, dispatcher, session_manager, client
    ):
        stranger = await UserFactory.create_client(session_manager)
        async with session_manager.get_transaction() as session:
            notification = Notification(user_id=client.id, message="private")
            session.add(notification)

        with pytest.raises(ResourceNotFoundException):
            await dispatcher.mark_notification_read(notification.id, stranger.id)

    async def test_owner_marks_read_with_string_ids(
        self, dispatcher, session_manager, client
    ):
        async with session_manager.get_transaction() as session:
            notification = Notification(user_id=client.id, message="mine")
            session.add(notification)

        marked = await dispatcher.mark_notification_read(
            str(notification.id), str(client.id)
        )

        assert marked.read is True


class TestReminderScheduler:
    """Test cases for ReminderScheduler wiring."""

    def test_start_registers_hourly_job(self):
        scheduler = Mock()
        reminder = ReminderScheduler(Mock(), scheduler=scheduler)

        reminder.start()

        kwargs = scheduler.add_job.call_args.kwargs
        assert kwargs["id"] == REMINDER_JOB_ID
        assert isinstance(kwargs["trigger"], CronTrigger)
        assert str(kwargs["trigger"].fields[6]) == "0"
        assert kwargs["max_instances"] == 1
        assert kwargs["coalesce"] is True
        scheduler.start.assert_called_once()

    def test_shutdown_only_when_running(self):
        scheduler = Mock(running=False)
        ReminderScheduler(Mock(), scheduler=scheduler).shutdown()
        scheduler.shutdown.assert_not_called()

        scheduler.running = True
        ReminderScheduler(Mock(), scheduler=scheduler).shutdown()
        scheduler.shutdown.assert_called_once_with(wait=False)

    async def test_job_runs_the_sweep_and_survives_store_errors(self):
        dispatcher = Mock()
        dispatcher.run_reminder_sweep = AsyncMock(return_value=[])
        reminder = ReminderScheduler(dispatcher, scheduler=Mock())

        await reminder._run()
        dispatcher.run_reminder_sweep.assert_awaited_once()

        dispatcher.run_reminder_sweep.side_effect = TransactionException("down")
        await reminder._run()
