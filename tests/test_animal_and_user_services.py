"""
Tests for AnimalService and UserService.
"""

import uuid
from datetime import date, timedelta

import pytest

from conftest import UserFactory
from vet_clinic.exceptions import (
    AuthorizationException,
    DuplicateResourceException,
    ResourceNotFoundException,
    SchemaValidationException,
    ValidationException,
)
from vet_clinic.models import AnimalGender, UserRole


class TestAnimalService:
    """Test cases for owner-scoped animal records."""

    async def test_create_and_list(self, animal_service, client):
        await animal_service.create(client.id, {"name": "Whiskers", "species": "cat"})
        await animal_service.create(
            client.id, {"name": "Albert", "gender": "male", "birth_date": date(2020, 5, 1)}
        )

        animals = await animal_service.list_for_owner(client.id)

        assert [a.name for a in animals] == ["Albert", "Whiskers"]
        assert animals[0].gender == AnimalGender.MALE

    async def test_name_is_unique_per_owner(self, session_manager, animal_service, client):
        await animal_service.create(client.id, {"name": "Rex"})
        other = await UserFactory.create_client(session_manager)

        with pytest.raises(DuplicateResourceException):
            await animal_service.create(client.id, {"name": "Rex"})
        same_name_elsewhere = await animal_service.create(other.id, {"name": "Rex"})
        assert same_name_elsewhere.owner_id == other.id

    async def test_rename_onto_existing_name_conflicts(self, animal_service, client):
        await animal_service.create(client.id, {"name": "Rex"})
        luna = await animal_service.create(client.id, {"name": "Luna"})

        with pytest.raises(DuplicateResourceException):
            await animal_service.update(luna.id, client.id, {"name": "Rex"})

    async def test_update_and_get(self, animal_service, client):
        luna = await animal_service.create(client.id, {"name": "Luna"})

        await animal_service.update(luna.id, client.id, {"breed": "Siamese"})

        fetched = await animal_service.get(luna.id, client.id)
        assert fetched.breed == "Siamese"
        assert fetched.name == "Luna"

    async def test_foreign_animal_is_not_found(
        self, session_manager, animal_service, client
    ):
        luna = await animal_service.create(client.id, {"name": "Luna"})
        other = await UserFactory.create_client(session_manager)

        with pytest.raises(ResourceNotFoundException):
            await animal_service.get(luna.id, other.id)
        with pytest.raises(ResourceNotFoundException):
            await animal_service.delete(luna.id, other.id)

    async def test_owner_id_as_string(self, animal_service, client):
        luna = await animal_service.create(str(client.id), {"name": "Luna"})

        await animal_service.update(str(luna.id), str(client.id), {"breed": "Siamese"})

        fetched = await animal_service.get(str(luna.id), str(client.id))
        assert fetched.breed == "Siamese"

    async def test_delete(self, animal_service, client):
        luna = await animal_service.create(client.id, {"name": "Luna"})

        await animal_service.delete(luna.id, client.id)

        assert await animal_service.list_for_owner(client.id) == []

    async def test_future_birth_date_is_invalid(self, animal_service, client):
        with pytest.raises(SchemaValidationException):
            await animal_service.create(
                client.id,
                {"name": "Future", "birth_date": date.today() + timedelta(days=1)},
            )

    async def test_veterinarians_do_not_own_animals(self, animal_service, veterinarian):
        with pytest.raises(AuthorizationException):
            await animal_service.create(veterinarian.id, {"name": "Rex"})


class TestUserService:
    """Test cases for user accounts."""

    def payload(self, **overrides):
        data = {
            "username": "jdoe",
            "email": "John.Doe@Example.com",
            "first_name": "John",
            "last_name": "Doe",
            "phone_number": "+1 (555) 123-4567",
            "external_auth_id": "auth|123",
        }
        data.update(overrides)
        return data

    async def test_create_user_normalizes_fields(self, user_service):
        user = await user_service.create_user(self.payload())

        assert user.role == UserRole.CLIENT
        assert user.email == "john.doe@example.com"
        assert user.phone_number == "+15551234567"
        assert user.rating == 0.0
        assert (await user_service.get_by_external_id("auth|123")).id == user.id

    @pytest.mark.parametrize(
        "field,value",
        [("username", "jdoe"), ("email", "JOHN.DOE@example.com")],
    )
    async def test_duplicates_are_rejected(self, user_service, field, value):
        await user_service.create_user(self.payload())
        other = self.payload(
            username="someone", email="someone@example.com", external_auth_id=None
        )
        other[field] = value

        with pytest.raises(DuplicateResourceException) as exc_info:
            await user_service.create_user(other)
        assert exc_info.value.details["field"] == field

    async def test_secretary_attached_to_veterinarian(self, user_service, veterinarian):
        secretary = await user_service.create_user(
            self.payload(role="secretary", veterinarian_id=veterinarian.id)
        )
        assert secretary.veterinarian_id == veterinarian.id

    async def test_secretary_attached_to_non_veterinarian(self, user_service, client):
        with pytest.raises(ValidationException):
            await user_service.create_user(
                self.payload(role="secretary", veterinarian_id=client.id)
            )

    async def test_only_secretaries_are_attached(self, user_service, veterinarian):
        with pytest.raises(SchemaValidationException):
            await user_service.create_user(
                self.payload(role="client", veterinarian_id=veterinarian.id)
            )

    async def test_unknown_user(self, user_service):
        with pytest.raises(ResourceNotFoundException):
            await user_service.get_user(uuid.uuid4())
        with pytest.raises(ValidationException):
            await user_service.get_user("not-a-uuid")

    async def test_list_veterinarians_best_rated_first(
        self, session_manager, user_service, client
    ):
        low = await UserFactory.create_veterinarian(session_manager, rating=2.0)
        high = await UserFactory.create_veterinarian(session_manager, rating=4.8)

        vets = await user_service.list_veterinarians()
        assert [v.id for v in vets] == [high.id, low.id]
        assert [v.id for v in await user_service.list_veterinarians(min_rating=3)] == [high.id]
