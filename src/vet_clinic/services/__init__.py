"""
Service layer of the clinic backend.

Each service owns its units of work: it opens sessions and transactions
through the ``SessionManager`` it is given and raises the package's
exceptions on failure.
"""

from .access import (
    ROLE_PERMISSIONS,
    Permission,
    authorize,
    can_chat_together,
    has_permission,
)
from .animals import AnimalService
from .appointments import AppointmentService
from .chat import ChatService, cleanup_orphaned_upload
from .notifications import (
    MESSAGES_READ,
    NEW_CHAT,
    NEW_MESSAGE,
    NEW_NOTIFICATION,
    REMINDER_JOB_ID,
    ConnectionRegistry,
    NotificationDispatcher,
    PushConnection,
    ReminderScheduler,
)
from .reviews import ReviewService
from .scheduling import DEFAULT_CONFLICT_WINDOW_MINUTES, BookingLocks, ConflictChecker
from .users import UserService

__all__ = [
    # Role policy
    "Permission",
    "ROLE_PERMISSIONS",
    "authorize",
    "has_permission",
    "can_chat_together",
    # Scheduling
    "ConflictChecker",
    "BookingLocks",
    "DEFAULT_CONFLICT_WINDOW_MINUTES",
    # Services
    "UserService",
    "AnimalService",
    "AppointmentService",
    "ReviewService",
    "ChatService",
    "cleanup_orphaned_upload",
    # Push and reminders
    "ConnectionRegistry",
    "PushConnection",
    "NotificationDispatcher",
    "ReminderScheduler",
    "REMINDER_JOB_ID",
    "NEW_MESSAGE",
    "NEW_CHAT",
    "MESSAGES_READ",
    "NEW_NOTIFICATION",
]
