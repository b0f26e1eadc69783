"""
Animal records, scoped to their owner.
"""

import logging
import uuid
from typing import Any, List, Mapping, Union

from sqlalchemy import select

from ..database.session import SessionManager
from ..exceptions import (
    DuplicateResourceException,
    ResourceNotFoundException,
    TransactionException,
)
from ..models.animal import Animal, AnimalGender
from ..models.user import User
from ..schemas.animal import AnimalCreate, AnimalUpdate
from .access import Permission, authorize
from .common import get_or_404, is_unique_violation, parse_id, parse_schema

logger = logging.getLogger(__name__)


class AnimalService:
    """Create, read, update and delete a client's animals."""

    def __init__(self, session_manager: SessionManager):
        self.session_manager = session_manager

    async def create(
        self, owner_id: uuid.UUID, data: Union[AnimalCreate, Mapping[str, Any]]
    ) -> Animal:
        """
        Register an animal for its owner.

        Raises:
            ResourceNotFoundException: If the owner does not exist
            AuthorizationException: If the owner's role cannot own animals
            DuplicateResourceException: If the owner already has an animal of that name
        """
        data = parse_schema(AnimalCreate, data)
        try:
            async with self.session_manager.get_transaction("create_animal") as session:
                owner = await get_or_404(session, User, owner_id, "User")
                authorize(owner, Permission.OWN_ANIMALS)
                await self._check_name_free(session, owner.id, data.name)

                values = data.model_dump()
                if values.get("gender") is not None:
                    values["gender"] = AnimalGender(values["gender"])
                animal = Animal(owner_id=owner.id, **values)
                session.add(animal)
                await session.flush()
        except TransactionException as e:
            if is_unique_violation(
                e.original_error, "uq_animals_owner_name", ("owner_id", "name")
            ):
                raise DuplicateResourceException("Animal", "name", data.name) from e
            raise

        logger.info(f"Animal {animal.id} registered for owner {animal.owner_id}")
        return animal

    async def list_for_owner(self, owner_id: uuid.UUID) -> List[Animal]:
        """List an owner's animals by name."""
        async with self.session_manager.get_session() as session:
            owner = await get_or_404(session, User, owner_id, "User")
            result = await session.execute(
                select(Animal).where(Animal.owner_id == owner.id).order_by(Animal.name)
            )
            return list(result.scalars().all())

    async def get(self, animal_id: uuid.UUID, owner_id: uuid.UUID) -> Animal:
        owner_id = parse_id(owner_id, "owner_id")
        async with self.session_manager.get_session() as session:
            return await self._load_owned(session, animal_id, owner_id)

    async def update(
        self,
        animal_id: uuid.UUID,
        owner_id: uuid.UUID,
        patch: Union[AnimalUpdate, Mapping[str, Any]],
    ) -> Animal:
        """
        Update an owner's animal.

        Raises:
            ResourceNotFoundException: If the animal does not belong to the owner
            DuplicateResourceException: If the new name is already used by the owner
        """
        owner_id = parse_id(owner_id, "owner_id")
        data = parse_schema(AnimalUpdate, patch)
        changes = data.model_dump(exclude_unset=True)
        if changes.get("gender") is not None:
            changes["gender"] = AnimalGender(changes["gender"])

        try:
            async with self.session_manager.get_transaction("update_animal") as session:
                animal = await self._load_owned(session, animal_id, owner_id)
                new_name = changes.get("name")
                if new_name and new_name != animal.name:
                    await self._check_name_free(session, animal.owner_id, new_name)
                animal.update_fields(**changes)
        except TransactionException as e:
            if is_unique_violation(
                e.original_error, "uq_animals_owner_name", ("owner_id", "name")
            ):
                raise DuplicateResourceException("Animal", "name", changes.get("name")) from e
            raise
        return animal

    async def delete(self, animal_id: uuid.UUID, owner_id: uuid.UUID) -> None:
        """Delete an owner's animal along with its appointments."""
        owner_id = parse_id(owner_id, "owner_id")
        async with self.session_manager.get_transaction("delete_animal") as session:
            animal = await self._load_owned(session, animal_id, owner_id)
            await session.delete(animal)
        logger.info(f"Animal {animal_id} deleted")

    @staticmethod
    async def _load_owned(session, animal_id: uuid.UUID, owner_id: uuid.UUID) -> Animal:
        animal = await get_or_404(session, Animal, animal_id, "Animal")
        if animal.owner_id != owner_id:
            raise ResourceNotFoundException("Animal", animal_id)
        return animal

    @staticmethod
    async def _check_name_free(session, owner_id: uuid.UUID, name: str) -> None:
        taken = await session.execute(
            select(Animal.id).where(Animal.owner_id == owner_id, Animal.name == name)
        )
        if taken.first() is not None:
            raise DuplicateResourceException("Animal", "name", name)
