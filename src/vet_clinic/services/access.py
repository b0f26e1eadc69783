"""
Role policy for the clinic backend.

Roles form a closed set and each carries a fixed set of permissions.
Services ask this table rather than comparing role names, so adding a role
is a one-line change here.
"""

import enum
import logging
from typing import Dict, FrozenSet

from ..exceptions import AuthorizationException
from ..models.user import User, UserRole

logger = logging.getLogger(__name__)


class Permission(enum.Enum):
    """Actions guarded by the role policy."""

    BOOK_APPOINTMENT = "book_appointment"
    MANAGE_APPOINTMENTS = "manage_appointments"
    CHAT = "chat"
    REVIEW = "review"
    RECEIVE_REVIEWS = "receive_reviews"
    OWN_ANIMALS = "own_animals"
    ADMINISTER = "administer"


ROLE_PERMISSIONS: Dict[UserRole, FrozenSet[Permission]] = {
    UserRole.CLIENT: frozenset(
        {
            Permission.BOOK_APPOINTMENT,
            Permission.CHAT,
            Permission.REVIEW,
            Permission.OWN_ANIMALS,
        }
    ),
    UserRole.VETERINARIAN: frozenset(
        {
            Permission.MANAGE_APPOINTMENTS,
            Permission.CHAT,
            Permission.RECEIVE_REVIEWS,
        }
    ),
    UserRole.SECRETARY: frozenset({Permission.MANAGE_APPOINTMENTS}),
    UserRole.ADMIN: frozenset(
        {Permission.MANAGE_APPOINTMENTS, Permission.ADMINISTER}
    ),
}


def has_permission(user: User, permission: Permission) -> bool:
    """Check whether the user's role grants ``permission``."""
    return permission in ROLE_PERMISSIONS.get(user.role, frozenset())


def authorize(user: User, permission: Permission) -> None:
    """
    Require ``permission`` for ``user``.

    Args:
        user: Acting user
        permission: Permission the action needs

    Raises:
        AuthorizationException: If the user's role does not grant it
    """
    if not has_permission(user, permission):
        logger.warning(
            f"User {user.id} with role {user.role.value} denied {permission.value}"
        )
        raise AuthorizationException(
            message=f"Role '{user.role.value}' is not allowed to {permission.value.replace('_', ' ')}",
            action=permission.value,
            user_id=user.id,
        )


def can_chat_together(first: User, second: User) -> bool:
    """
    Two users may open a conversation when both roles may chat and differ.

    With the current table this means one client and one veterinarian.
    """
    return (
        has_permission(first, Permission.CHAT)
        and has_permission(second, Permission.CHAT)
        and first.role != second.role
    )
