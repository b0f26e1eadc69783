"""
Tests for configuration management.
"""

import pytest

from vet_clinic.utils.config import (
    ClinicSettings,
    ConfigError,
    DatabaseURLValidator,
    EnvironmentConfig,
)


class TestEnvironmentConfig:
    """Test cases for typed environment getters."""

    def test_get_str(self, monkeypatch):
        monkeypatch.setenv("VC_NAME", "clinic")
        assert EnvironmentConfig.get_str("VC_NAME") == "clinic"
        assert EnvironmentConfig.get_str("VC_MISSING", "fallback") == "fallback"

    def test_required_missing(self, monkeypatch):
        monkeypatch.delenv("VC_MISSING", raising=False)
        with pytest.raises(ConfigError):
            EnvironmentConfig.get_str("VC_MISSING", required=True)
        with pytest.raises(ConfigError):
            EnvironmentConfig.get_int("VC_MISSING", required=True)

    def test_get_int(self, monkeypatch):
        monkeypatch.setenv("VC_INT", "42")
        assert EnvironmentConfig.get_int("VC_INT") == 42

        monkeypatch.setenv("VC_INT", "forty-two")
        with pytest.raises(ConfigError):
            EnvironmentConfig.get_int("VC_INT")


class TestDatabaseURLValidator:
    """Test cases for database URL validation."""

    def test_postgres_url(self):
        result = DatabaseURLValidator.validate_url(
            "postgresql+asyncpg://user:pw@localhost:5432/clinic"
        )
        assert result["dialect"] == "postgresql"
        assert result["database"] == "clinic"
        assert result["port"] == 5432

    def test_sqlite_url(self):
        result = DatabaseURLValidator.validate_url("sqlite+aiosqlite:///./clinic.db")
        assert result["dialect"] == "sqlite"

    @pytest.mark.parametrize(
        "url",
        ["", "localhost/clinic", "mysql://h/db", "postgresql+asyncpg:///clinic", "postgresql://host"],
    )
    def test_invalid_urls(self, url):
        with pytest.raises(ConfigError):
            DatabaseURLValidator.validate_url(url)


class TestClinicSettings:
    """Test cases for ClinicSettings."""

    def test_defaults(self, monkeypatch):
        for key in (
            "DATABASE_URL",
            "CONFLICT_WINDOW_MINUTES",
            "REMINDER_LEAD_HOURS",
            "REMINDER_WINDOW_HOURS",
            "CONVERSATION_PAGE_SIZE",
            "MESSAGE_PAGE_SIZE",
            "NOTIFICATION_LIST_LIMIT",
        ):
            monkeypatch.delenv(key, raising=False)

        settings = ClinicSettings.from_environment()

        assert settings.conflict_window_minutes == 20
        assert settings.reminder_lead_hours == 24
        assert settings.reminder_window_hours == 1
        assert settings.conversation_page_size == 10
        assert settings.message_page_size == 15
        assert settings.notification_list_limit == 50

    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://u:p@db:5432/clinic")
        monkeypatch.setenv("CONFLICT_WINDOW_MINUTES", "30")

        settings = ClinicSettings.from_environment()

        assert settings.database_url.endswith("/clinic")
        assert settings.conflict_window_minutes == 30

    def test_malformed_variables(self, monkeypatch):
        monkeypatch.setenv("MESSAGE_PAGE_SIZE", "many")
        with pytest.raises(ConfigError):
            ClinicSettings.from_environment()

        monkeypatch.delenv("MESSAGE_PAGE_SIZE")
        monkeypatch.setenv("DATABASE_URL", "mysql://h/db")
        with pytest.raises(ConfigError):
            ClinicSettings.from_environment()

    def test_non_positive_values_are_rejected(self):
        with pytest.raises(ConfigError):
            ClinicSettings(conflict_window_minutes=0)
        with pytest.raises(ConfigError):
            ClinicSettings(reminder_lead_hours=-1)
