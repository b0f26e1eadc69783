"""
User accounts.

Credentials live with the external provider; this service only keeps the
profile, the role and the provider's identifier.
"""

import logging
import uuid
from typing import Any, List, Mapping, Optional, Union

from sqlalchemy import or_, select

from ..database.session import SessionManager
from ..exceptions import (
    DuplicateResourceException,
    ResourceNotFoundException,
    TransactionException,
    ValidationException,
)
from ..models.user import User, UserRole
from ..schemas.user import UserCreate
from .common import get_or_404, is_unique_violation, parse_schema

logger = logging.getLogger(__name__)


class UserService:
    """Create and look up clinic users."""

    def __init__(self, session_manager: SessionManager):
        self.session_manager = session_manager

    async def create_user(self, data: Union[UserCreate, Mapping[str, Any]]) -> User:
        """
        Create a user account.

        Args:
            data: Profile and role of the new user

        Returns:
            The stored user

        Raises:
            SchemaValidationException: If the profile is invalid
            DuplicateResourceException: If the username or email is taken
            ValidationException: If a secretary is attached to a non-veterinarian
        """
        data = parse_schema(UserCreate, data)
        try:
            async with self.session_manager.get_transaction("create_user") as session:
                taken = await session.execute(
                    select(User.username, User.email).where(
                        or_(User.username == data.username, User.email == data.email)
                    )
                )
                for username, _email in taken:
                    field = "username" if username == data.username else "email"
                    value = data.username if field == "username" else data.email
                    raise DuplicateResourceException("User", field, value)

                if data.veterinarian_id is not None:
                    veterinarian = await session.get(User, data.veterinarian_id)
                    if veterinarian is None or not veterinarian.is_veterinarian():
                        raise ValidationException(
                            message="A secretary must be attached to a veterinarian",
                            field="veterinarian_id",
                            value=str(data.veterinarian_id),
                        )

                user = User(
                    username=data.username,
                    email=data.email,
                    first_name=data.first_name,
                    last_name=data.last_name,
                    phone_number=data.phone_number,
                    role=UserRole(data.role),
                    external_auth_id=data.external_auth_id,
                    veterinarian_id=data.veterinarian_id,
                )
                session.add(user)
                await session.flush()
        except TransactionException as e:
            if is_unique_violation(e.original_error):
                raise DuplicateResourceException("User", "username or email") from e
            raise

        logger.info(f"User {user.id} created with role {user.role.value}")
        return user

    async def get_user(self, user_id: uuid.UUID) -> User:
        async with self.session_manager.get_session() as session:
            return await get_or_404(session, User, user_id, "User")

    async def get_by_external_id(self, external_auth_id: str) -> User:
        """
        Resolve the user behind an external provider identity.

        Raises:
            ResourceNotFoundException: If no user carries that identifier
        """
        async with self.session_manager.get_session() as session:
            result = await session.execute(
                select(User).where(User.external_auth_id == external_auth_id)
            )
            user = result.scalar_one_or_none()
        if user is None:
            raise ResourceNotFoundException("User", external_auth_id)
        return user

    async def list_veterinarians(self, min_rating: Optional[float] = None) -> List[User]:
        """List veterinarians, best rated first."""
        async with self.session_manager.get_session() as session:
            stmt = select(User).where(User.role == UserRole.VETERINARIAN)
            if min_rating is not None:
                stmt = stmt.where(User.rating >= min_rating)
            result = await session.execute(
                stmt.order_by(User.rating.desc(), User.last_name, User.first_name)
            )
            return list(result.scalars().all())
