"""
Tests for the SQLAlchemy models and their in-memory behaviour.
"""

import uuid
from datetime import date

import pytest

from conftest import UserFactory, at
from vet_clinic.exceptions import InvalidStateTransitionException
from vet_clinic.models import (
    Animal,
    AnimalGender,
    Appointment,
    AppointmentStatus,
    AppointmentType,
    Chat,
    Message,
    MessageRead,
    MessageType,
    Notification,
    User,
    UserRole,
    make_participant_key,
)


def build_appointment(**overrides):
    data = {
        "scheduled_at": at(10),
        "client_id": uuid.uuid4(),
        "veterinarian_id": uuid.uuid4(),
        "animal_id": uuid.uuid4(),
        "type": AppointmentType.CABINET,
    }
    data.update(overrides)
    return Appointment(**data)


class TestBaseModel:
    """Test cases for the shared model behaviour."""

    def test_defaults_are_set_on_construction(self):
        user = UserFactory.build()

        assert isinstance(user.id, uuid.UUID)
        assert user.created_at.tzinfo is not None
        assert user.created_at == user.updated_at

    def test_to_dict_serializes_values(self):
        appointment = build_appointment(services=["vaccine"])

        data = appointment.to_dict()

        assert data["id"] == str(appointment.id)
        assert data["scheduled_at"] == "2030-06-01T10:00:00+00:00"
        assert data["status"] == "pending"
        assert data["type"] == "cabinet"
        assert data["services"] == ["vaccine"]

    def test_to_dict_exclude(self):
        data = UserFactory.build().to_dict(exclude=["email", "phone_number"])
        assert "email" not in data
        assert "phone_number" not in data
        assert "username" in data

    def test_update_fields(self):
        animal = Animal(name="Rex", owner_id=uuid.uuid4())

        animal.update_fields(breed="Beagle", species="dog")

        assert animal.breed == "Beagle"
        assert animal.species == "dog"

    def test_update_fields_invalid_attribute(self):
        animal = Animal(name="Rex", owner_id=uuid.uuid4())
        with pytest.raises(AttributeError):
            animal.update_fields(colour="brown")

    def test_get_table_name(self):
        assert Appointment.get_table_name() == "appointments"
        assert "Appointment" in repr(build_appointment())


class TestAppointmentModel:
    """Test cases for the appointment state machine."""

    def test_new_appointment_is_pending(self):
        appointment = build_appointment()

        assert appointment.status == AppointmentStatus.PENDING
        assert appointment.is_pending
        assert appointment.is_active
        assert not appointment.is_terminal
        assert appointment.reminder_sent is False

    def test_accept(self):
        appointment = build_appointment()

        appointment.accept()

        assert appointment.status == AppointmentStatus.ACCEPTED
        assert appointment.is_active
        assert appointment.is_terminal

    def test_reject_releases_the_slot(self):
        appointment = build_appointment()

        appointment.reject()

        assert appointment.status == AppointmentStatus.REJECTED
        assert not appointment.is_active
        assert appointment.is_terminal

    @pytest.mark.parametrize(
        "status", [AppointmentStatus.ACCEPTED, AppointmentStatus.REJECTED]
    )
    def test_terminal_states_do_not_move(self, status):
        appointment = build_appointment(status=status)

        for action in (appointment.accept, appointment.reject, appointment.ensure_editable):
            with pytest.raises(InvalidStateTransitionException):
                action()
        assert appointment.status == status

    def test_can_transition(self):
        appointment = build_appointment()
        assert appointment.can_transition(AppointmentStatus.ACCEPTED)
        assert not appointment.can_transition(AppointmentStatus.PENDING)

    def test_pending_is_editable(self):
        build_appointment().ensure_editable()


class TestChatModels:
    """Test cases for conversations and messages."""

    def test_participant_key_is_canonical(self):
        a, b = uuid.uuid4(), uuid.uuid4()
        assert make_participant_key([a, b]) == make_participant_key([b, a, b])
        assert make_participant_key([a, b]).count(",") == 1

    def test_chat_participants(self):
        a, b, outsider = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
        chat = Chat(participant_key=make_participant_key([a, b]))

        assert chat.unread_count == 0
        assert chat.has_participant(a)
        assert not chat.has_participant(outsider)
        assert set(chat.participant_ids) == {a, b}

    def test_message_read_by(self):
        sender, reader = uuid.uuid4(), uuid.uuid4()
        message = Message(
            chat_id=uuid.uuid4(),
            sender_id=sender,
            type=MessageType.TEXT,
            content="hello",
            reads=[MessageRead(user_id=sender), MessageRead(user_id=reader)],
        )
        assert message.read_by == {sender, reader}


class TestUserAndAnimalModels:
    """Test cases for user and animal helpers."""

    def test_user_defaults(self):
        user = User(
            username="jdoe", email="j@example.com", first_name="John", last_name="Doe"
        )

        assert user.role == UserRole.CLIENT
        assert user.is_client()
        assert not user.is_veterinarian()
        assert user.rating == 0.0
        assert user.rating_count == 0
        assert user.full_name == "John Doe"
        assert user.display_name == "John Doe"

    def test_role_checks(self):
        assert UserFactory.build(role=UserRole.VETERINARIAN).is_veterinarian()
        assert UserFactory.build(role=UserRole.SECRETARY).is_secretary()
        assert UserFactory.build(role=UserRole.ADMIN).is_admin()

    @pytest.mark.parametrize(
        "birth,today,expected",
        [
            (date(2020, 5, 1), date(2024, 5, 1), 4),
            (date(2020, 5, 1), date(2024, 4, 30), 3),
            (None, date(2024, 1, 1), None),
        ],
    )
    def test_animal_age(self, birth, today, expected):
        animal = Animal(name="Rex", owner_id=uuid.uuid4(), birth_date=birth)
        assert animal.age_in_years(today) == expected

    def test_animal_gender_enum(self):
        assert AnimalGender("female") == AnimalGender.FEMALE

    def test_notification_mark_read(self):
        notification = Notification(user_id=uuid.uuid4(), message="Reminder")
        assert notification.read is False

        notification.mark_read()

        assert notification.read is True
