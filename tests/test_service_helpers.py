"""
Tests for the helpers shared by the services.
"""

import uuid
from unittest.mock import Mock

import pytest
from sqlalchemy.exc import IntegrityError

from vet_clinic.exceptions import (
    ConfigurationException,
    ResourceNotFoundException,
    ValidationException,
)
from vet_clinic.models import MessageRead, User
from vet_clinic.services.common import (
    get_or_404,
    insert_ignoring_conflicts,
    is_unique_violation,
    parse_id,
    parse_ids,
)


def integrity_error(text):
    return IntegrityError("INSERT INTO reviews ...", {}, Exception(text))


class TestParseId:
    """Test cases for identifier parsing."""

    def test_uuid_and_string_forms(self):
        value = uuid.uuid4()
        assert parse_id(value) is value
        assert parse_id(str(value)) == value
        assert parse_ids([str(value), value]) == [value, value]

    @pytest.mark.parametrize("value", ["bogus", "", None, 42])
    def test_malformed(self, value):
        with pytest.raises(ValidationException) as exc_info:
            parse_id(value, "animal_id")

        assert exc_info.value.status_code == 400
        assert exc_info.value.details["field"] == "animal_id"

    async def test_get_or_404(self, session_manager):
        async with session_manager.get_session() as session:
            with pytest.raises(ValidationException) as exc_info:
                await get_or_404(session, User, "nope", "User")
            assert exc_info.value.details["field"] == "user_id"

            with pytest.raises(ResourceNotFoundException):
                await get_or_404(session, User, str(uuid.uuid4()), "User")


class TestUniqueViolation:
    """Test cases for telling duplicates from other integrity errors."""

    def test_sqlite_unique_failure(self):
        error = integrity_error(
            "UNIQUE constraint failed: reviews.client_id, reviews.veterinarian_id"
        )
        assert is_unique_violation(error, "uq_reviews_client_vet", ("client_id", "veterinarian_id"))

    def test_postgres_unique_failure(self):
        error = integrity_error(
            'duplicate key value violates unique constraint "uq_reviews_client_vet"'
        )
        assert is_unique_violation(error, "uq_reviews_client_vet", ("client_id", "veterinarian_id"))

    @pytest.mark.parametrize(
        "text",
        [
            "FOREIGN KEY constraint failed",
            'insert or update on table "reviews" violates foreign key constraint '
            '"reviews_client_id_fkey"',
            "CHECK constraint failed: ck_reviews_rating_range",
        ],
    )
    def test_other_integrity_failures(self, text):
        assert not is_unique_violation(
            integrity_error(text), "uq_reviews_client_vet", ("client_id", "veterinarian_id")
        )

    def test_unique_on_another_key(self):
        error = integrity_error("UNIQUE constraint failed: users.email")
        assert is_unique_violation(error)
        assert not is_unique_violation(error, "uq_reviews_client_vet", ("client_id",))

    def test_non_integrity_errors(self):
        assert not is_unique_violation(ValueError("UNIQUE"))
        assert not is_unique_violation(None)


def test_conditional_insert_on_unsupported_dialect():
    session = Mock()
    session.get_bind.return_value.dialect.name = "mysql"

    with pytest.raises(ConfigurationException) as exc_info:
        insert_ignoring_conflicts(
            session, MessageRead.__table__, {"message_id": uuid.uuid4()}, ["message_id"]
        )

    assert exc_info.value.details["config_value"] == "mysql"
