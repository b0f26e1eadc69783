"""
Database connection and session management.

This module provides async SQLAlchemy engine configuration, session
management and portable column types for the clinic backend.
"""

from .connection import (
    DatabaseConfig,
    check_connection,
    close_engine,
    create_engine,
    wait_for_database,
)
from .session import (
    SessionManager,
    get_session_manager,
    initialize_session_manager,
)
from .types import JSONType, UTCDateTime

__all__ = [
    # Connection utilities
    "DatabaseConfig",
    "create_engine",
    "check_connection",
    "close_engine",
    "wait_for_database",
    # Session management
    "SessionManager",
    "initialize_session_manager",
    "get_session_manager",
    # Column types
    "JSONType",
    "UTCDateTime",
]
