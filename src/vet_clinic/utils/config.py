"""
Configuration management utilities.

Environment lookups, database URL checks and the ``ClinicSettings`` object
the services read their limits and time windows from.
"""

import os
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import parse_qs, urlparse


class ConfigError(Exception):
    """Exception raised for configuration-related errors."""

    pass


class EnvironmentConfig:
    """Typed access to environment variables."""

    @staticmethod
    def get_str(
        key: str, default: Optional[str] = None, required: bool = False
    ) -> Optional[str]:
        """
        Read a string variable.

        Raises:
            ConfigError: If ``required`` is set and the variable is absent
        """
        value = os.getenv(key, default)
        if required and value is None:
            raise ConfigError(f"Required environment variable '{key}' is not set")
        return value

    @staticmethod
    def get_int(
        key: str, default: Optional[int] = None, required: bool = False
    ) -> Optional[int]:
        """
        Read an integer variable, falling back to ``default`` when unset.

        Raises:
            ConfigError: If the variable is required and absent, or not an integer
        """
        value = os.getenv(key)
        if value is None:
            if required:
                raise ConfigError(f"Required environment variable '{key}' is not set")
            return default

        try:
            return int(value)
        except ValueError:
            raise ConfigError(
                f"Environment variable '{key}' must be an integer, got: {value}"
            )


class DatabaseURLValidator:
    """Checks a database URL against the drivers the session manager can run."""

    SUPPORTED_DRIVERS = {
        "postgresql": ["postgresql", "postgresql+asyncpg"],
        "sqlite": ["sqlite", "sqlite+aiosqlite"],
    }

    @classmethod
    def validate_url(cls, url: str) -> Dict[str, Any]:
        """
        Validate a database URL and return its parsed components.

        The ``dialect`` key is what ``create_engine`` uses to pick pool and
        pragma settings.

        Raises:
            ConfigError: If the URL is empty, has an unknown driver, or a
                server URL lacks a host or database name
        """
        if not url:
            raise ConfigError("Database URL cannot be empty")

        parsed = urlparse(url)
        if not parsed.scheme:
            raise ConfigError(
                "Database URL must include a scheme (e.g., postgresql+asyncpg://)"
            )

        dialect = next(
            (
                name
                for name, drivers in cls.SUPPORTED_DRIVERS.items()
                if parsed.scheme in drivers
            ),
            None,
        )
        if dialect is None:
            supported = [d for drivers in cls.SUPPORTED_DRIVERS.values() for d in drivers]
            raise ConfigError(
                f"Unsupported database driver '{parsed.scheme}'. Supported: {', '.join(supported)}"
            )

        if dialect != "sqlite":
            if not parsed.hostname:
                raise ConfigError("Database URL must include a hostname")
            if not parsed.path.lstrip("/"):
                raise ConfigError("Database URL must include a database name")

        return {
            "valid": True,
            "dialect": dialect,
            "scheme": parsed.scheme,
            "hostname": parsed.hostname,
            "port": parsed.port,
            "database": parsed.path.lstrip("/") if parsed.path else "",
            "username": parsed.username,
            "query": dict(parse_qs(parsed.query)),
        }


@dataclass
class ClinicSettings:
    """Runtime settings shared by the clinic services."""

    database_url: str = "sqlite+aiosqlite:///./vet_clinic.db"
    conflict_window_minutes: int = 20
    reminder_lead_hours: int = 24
    reminder_window_hours: int = 1
    conversation_page_size: int = 10
    message_page_size: int = 15
    notification_list_limit: int = 50

    def __post_init__(self) -> None:
        positive = {
            "CONFLICT_WINDOW_MINUTES": self.conflict_window_minutes,
            "REMINDER_WINDOW_HOURS": self.reminder_window_hours,
            "CONVERSATION_PAGE_SIZE": self.conversation_page_size,
            "MESSAGE_PAGE_SIZE": self.message_page_size,
            "NOTIFICATION_LIST_LIMIT": self.notification_list_limit,
        }
        for key, value in positive.items():
            if value <= 0:
                raise ConfigError(f"{key} must be positive, got: {value}")
        if self.reminder_lead_hours < 0:
            raise ConfigError(
                f"REMINDER_LEAD_HOURS must not be negative, got: {self.reminder_lead_hours}"
            )

    @classmethod
    def from_environment(cls) -> "ClinicSettings":
        """
        Build settings from environment variables.

        Unset variables keep their defaults.

        Raises:
            ConfigError: If a variable is malformed
        """
        database_url = EnvironmentConfig.get_str("DATABASE_URL", cls.database_url)
        DatabaseURLValidator.validate_url(database_url)

        def number(key: str, default: int) -> int:
            return EnvironmentConfig.get_int(key, default)

        return cls(
            database_url=database_url,
            conflict_window_minutes=number(
                "CONFLICT_WINDOW_MINUTES", cls.conflict_window_minutes
            ),
            reminder_lead_hours=number("REMINDER_LEAD_HOURS", cls.reminder_lead_hours),
            reminder_window_hours=number(
                "REMINDER_WINDOW_HOURS", cls.reminder_window_hours
            ),
            conversation_page_size=number(
                "CONVERSATION_PAGE_SIZE", cls.conversation_page_size
            ),
            message_page_size=number("MESSAGE_PAGE_SIZE", cls.message_page_size),
            notification_list_limit=number(
                "NOTIFICATION_LIST_LIMIT", cls.notification_list_limit
            ),
        )
