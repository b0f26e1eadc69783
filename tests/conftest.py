"""
Pytest configuration and fixtures for vet-clinic tests.

Every test gets its own SQLite database file through aiosqlite, a session
manager bound to it, and factory helpers that persist users, animals and
appointments in committed transactions.
"""

import uuid
from datetime import datetime
from typing import Any, AsyncGenerator, Dict, List, Optional

import pytest
import pytest_asyncio
from faker import Faker
from sqlalchemy.ext.asyncio import AsyncEngine

from vet_clinic.database.connection import create_engine
from vet_clinic.database.session import SessionManager
from vet_clinic.models import (
    Animal,
    Appointment,
    AppointmentStatus,
    AppointmentType,
    User,
    UserRole,
)
from vet_clinic.models.base import Base
from vet_clinic.services import (
    AnimalService,
    AppointmentService,
    ChatService,
    ConnectionRegistry,
    NotificationDispatcher,
    ReviewService,
    UserService,
)
from vet_clinic.utils.config import ClinicSettings
from vet_clinic.utils.datetime_utils import UTC

fake = Faker()


@pytest_asyncio.fixture
async def test_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """SQLite engine on a fresh file database with the full schema."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'vet_clinic_test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_manager(test_engine: AsyncEngine) -> SessionManager:
    return SessionManager(test_engine)


@pytest.fixture
def settings() -> ClinicSettings:
    return ClinicSettings(database_url="sqlite+aiosqlite:///:memory:")


@pytest.fixture
def registry() -> ConnectionRegistry:
    return ConnectionRegistry()


@pytest.fixture
def appointment_service(session_manager, settings) -> AppointmentService:
    return AppointmentService(session_manager, settings)


@pytest.fixture
def chat_service(session_manager, registry, settings) -> ChatService:
    return ChatService(session_manager, registry, settings)


@pytest.fixture
def dispatcher(session_manager, registry, settings) -> NotificationDispatcher:
    return NotificationDispatcher(session_manager, registry, settings)


@pytest.fixture
def review_service(session_manager) -> ReviewService:
    return ReviewService(session_manager)


@pytest.fixture
def animal_service(session_manager) -> AnimalService:
    return AnimalService(session_manager)


@pytest.fixture
def user_service(session_manager) -> UserService:
    return UserService(session_manager)


class FakeConnection:
    """Push connection recording every event sent to it."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[Dict[str, Any]] = []

    async def send_json(self, data: Any) -> None:
        if self.fail:
            raise ConnectionError("socket closed")
        self.sent.append(data)

    def events(self, name: Optional[str] = None) -> List[Dict[str, Any]]:
        return [e for e in self.sent if name is None or e["event"] == name]


@pytest.fixture
def connect(registry):
    """Register a recording connection for a user and return it."""

    def _connect(user: User, fail: bool = False) -> FakeConnection:
        connection = FakeConnection(fail=fail)
        registry.register(user.id, connection)
        return connection

    return _connect


def at(hour: int, minute: int = 0, day: int = 1) -> datetime:
    """An aware UTC datetime on a fixed future date."""
    return datetime(2030, 6, day, hour, minute, tzinfo=UTC)


# Factory classes for creating test entities
class UserFactory:
    """Factory for creating test User instances."""

    @staticmethod
    def build(**kwargs) -> User:
        """Build a User instance without saving to database."""
        suffix = uuid.uuid4().hex[:8]
        defaults = {
            "username": f"user_{suffix}",
            "email": f"test_{suffix}@example.com",
            "first_name": fake.first_name(),
            "last_name": fake.last_name(),
            "role": UserRole.CLIENT,
        }
        defaults.update(kwargs)
        return User(**defaults)

    @staticmethod
    async def create(session_manager: SessionManager, **kwargs) -> User:
        """Create and commit a User."""
        user = UserFactory.build(**kwargs)
        async with session_manager.get_transaction() as session:
            session.add(user)
        return user

    @staticmethod
    async def create_client(session_manager: SessionManager, **kwargs) -> User:
        return await UserFactory.create(session_manager, role=UserRole.CLIENT, **kwargs)

    @staticmethod
    async def create_veterinarian(session_manager: SessionManager, **kwargs) -> User:
        return await UserFactory.create(
            session_manager, role=UserRole.VETERINARIAN, **kwargs
        )

    @staticmethod
    async def create_secretary(
        session_manager: SessionManager, veterinarian: Optional[User] = None, **kwargs
    ) -> User:
        if veterinarian is not None:
            kwargs["veterinarian_id"] = veterinarian.id
        return await UserFactory.create(
            session_manager, role=UserRole.SECRETARY, **kwargs
        )


class AnimalFactory:
    """Factory for creating test Animal instances."""

    @staticmethod
    async def create(session_manager: SessionManager, owner: User, **kwargs) -> Animal:
        defaults = {"name": fake.first_name() + uuid.uuid4().hex[:4], "species": "dog"}
        defaults.update(kwargs)
        animal = Animal(owner_id=owner.id, **defaults)
        async with session_manager.get_transaction() as session:
            session.add(animal)
        return animal


class AppointmentFactory:
    """Factory persisting appointments directly, bypassing the booking rules."""

    @staticmethod
    async def create(
        session_manager: SessionManager,
        client: User,
        veterinarian: User,
        animal: Animal,
        scheduled_at: datetime,
        **kwargs,
    ) -> Appointment:
        defaults = {
            "type": AppointmentType.CABINET,
            "status": AppointmentStatus.PENDING,
        }
        defaults.update(kwargs)
        appointment = Appointment(
            client_id=client.id,
            veterinarian_id=veterinarian.id,
            animal_id=animal.id,
            scheduled_at=scheduled_at,
            **defaults,
        )
        async with session_manager.get_transaction() as session:
            session.add(appointment)
        return appointment


@pytest_asyncio.fixture
async def client(session_manager) -> User:
    return await UserFactory.create_client(session_manager)


@pytest_asyncio.fixture
async def veterinarian(session_manager) -> User:
    return await UserFactory.create_veterinarian(session_manager)


@pytest_asyncio.fixture
async def animal(session_manager, client) -> Animal:
    return await AnimalFactory.create(session_manager, client, name="Rex")


@pytest.fixture
def booking(client, animal, veterinarian):
    """Build booking payloads for the default client, animal and veterinarian."""

    def _booking(scheduled_at: datetime, **overrides) -> Dict[str, Any]:
        data = {
            "scheduled_at": scheduled_at,
            "animal_id": animal.id,
            "veterinarian_id": veterinarian.id,
            "type": "cabinet",
            "services": ["checkup"],
        }
        data.update(overrides)
        return data

    return _booking

