"""
Utility functions and helper modules.

This module provides datetime handling and configuration management
shared by the rest of the package.
"""

from .config import (
    ClinicSettings,
    ConfigError,
    DatabaseURLValidator,
    EnvironmentConfig,
)
from .datetime_utils import (
    UTC,
    ensure_utc,
    get_current_utc,
    reminder_window,
    window_around,
)

__all__ = [
    # DateTime utilities
    "UTC",
    "get_current_utc",
    "ensure_utc",
    "window_around",
    "reminder_window",
    # Configuration utilities
    "ConfigError",
    "EnvironmentConfig",
    "DatabaseURLValidator",
    "ClinicSettings",
]
