"""
Helpers shared by the service layer.
"""

import uuid
from typing import Any, Iterable, List, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel as SchemaModel
from pydantic import ValidationError
from sqlalchemy import Insert
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import (
    ConfigurationException,
    ResourceNotFoundException,
    SchemaValidationException,
    ValidationException,
    format_validation_errors,
)
from ..models.base import BaseModel

M = TypeVar("M", bound=BaseModel)
S = TypeVar("S", bound=SchemaModel)


async def get_or_404(
    session: AsyncSession, model: Type[M], record_id: Any, resource: str
) -> M:
    """
    Load a record by primary key.

    Raises:
        ValidationException: If ``record_id`` is not a UUID
        ResourceNotFoundException: If no such record exists
    """
    record = await session.get(model, parse_id(record_id, f"{resource.lower()}_id"))
    if record is None:
        raise ResourceNotFoundException(resource, record_id)
    return record


def parse_id(value: Any, field: str = "id") -> uuid.UUID:
    """
    Convert a caller-supplied identifier to a UUID.

    Services call this once at their entry so that ids arriving as strings
    compare equal to the UUIDs loaded from the store.

    Args:
        value: UUID or its string form
        field: Name reported when the value is malformed

    Raises:
        ValidationException: If ``value`` is not a UUID
    """
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        raise ValidationException(
            message=f"Invalid identifier for {field}", field=field, value=value
        )


def parse_ids(values: Iterable[Any], field: str = "ids") -> List[uuid.UUID]:
    """Convert every element of ``values`` with ``parse_id``, keeping order."""
    return [parse_id(value, field) for value in values]


def is_unique_violation(
    error: Any, constraint: Optional[str] = None, columns: Iterable[str] = ()
) -> bool:
    """
    Tell a unique-key violation apart from other integrity errors.

    PostgreSQL names the violated constraint; SQLite lists the columns of
    the key (``UNIQUE constraint failed: reviews.client_id, ...``). Foreign
    key and check failures never match.

    Args:
        error: Error raised by the store, usually ``TransactionException.original_error``
        constraint: Name of the unique constraint expected to fire
        columns: Columns of that key
    """
    if not isinstance(error, IntegrityError):
        return False
    text = str(error.orig)
    if constraint and constraint in text:
        return True
    lowered = text.lower()
    if "unique" not in lowered and "duplicate key" not in lowered:
        return False
    return all(column in text for column in columns)


def parse_schema(schema: Type[S], data: Union[S, Mapping[str, Any]]) -> S:
    """
    Validate caller input against a schema.

    Raises:
        SchemaValidationException: If the input does not validate
    """
    if isinstance(data, schema):
        return data
    if isinstance(data, SchemaModel):
        data = data.model_dump(exclude_unset=True)
    try:
        return schema.model_validate(dict(data))
    except ValidationError as e:
        raise SchemaValidationException(
            message=f"Invalid {schema.__name__} data",
            schema_name=schema.__name__,
            validation_errors=format_validation_errors(e.errors()),
        )


def insert_ignoring_conflicts(
    session: AsyncSession,
    table: Any,
    values: Union[Mapping[str, Any], List[Mapping[str, Any]]],
    index_elements: List[str],
) -> Insert:
    """
    Build an ``INSERT ... ON CONFLICT DO NOTHING`` for the session's dialect.

    Args:
        session: Session whose bind decides the dialect
        table: Model class or Table to insert into
        values: Row or rows to insert
        index_elements: Columns of the unique key guarding the insert

    Returns:
        Insert statement; rows colliding on the key are skipped
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = postgresql.insert(table)
    elif dialect == "sqlite":
        stmt = sqlite.insert(table)
    else:
        raise ConfigurationException(
            message=f"Conditional insert not supported on {dialect}",
            config_key="DATABASE_URL",
            config_value=dialect,
        )
    return stmt.values(values).on_conflict_do_nothing(index_elements=index_elements)
