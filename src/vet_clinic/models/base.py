"""
Base model class for all SQLAlchemy models in the vet-clinic package.

This module provides the foundational base model class that all other models
inherit from, including common fields and utility methods.

The BaseModel class follows SQLAlchemy 2.0 patterns with:
- UUID primary keys generated client-side (portable across PostgreSQL and SQLite)
- Automatic UTC timestamp management
- Common utility methods for data conversion

Example:
    >>> from vet_clinic.models.base import BaseModel
    >>> from sqlalchemy.orm import Mapped, mapped_column
    >>> from sqlalchemy import String

    >>> class MyModel(BaseModel):
    ...     __tablename__ = "my_table"
    ...     name: Mapped[str] = mapped_column(String(100))
"""

import enum
import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, TypeVar

from sqlalchemy import Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ..database.types import UTCDateTime
from ..utils.datetime_utils import get_current_utc

# Type variable for model classes
T = TypeVar("T", bound="BaseModel")


class Base(DeclarativeBase):
    """
    Base declarative class for all SQLAlchemy models.

    Attributes:
        type_annotation_map: Maps Python types to SQLAlchemy column types
    """

    type_annotation_map = {
        uuid.UUID: Uuid(as_uuid=True),
        datetime: UTCDateTime(),
    }


class BaseModel(Base):
    """
    Abstract base model class providing common functionality for all entities.

    Attributes:
        id (UUID): Primary key, automatically generated UUID4
        created_at (datetime): Timestamp when record was created (UTC)
        updated_at (datetime): Timestamp when record was last updated (UTC)

    Note:
        This is an abstract base class and cannot be instantiated directly.
        All concrete models must define a __tablename__ attribute.
    """

    __abstract__ = True

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=get_current_utc,
    )

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=get_current_utc,
        onupdate=get_current_utc,
    )

    def __init__(self, **kwargs: Any):
        # Column defaults only fire on flush; set them now so that freshly
        # built objects can be read and compared before they are persisted.
        kwargs.setdefault("id", uuid.uuid4())
        now = get_current_utc()
        kwargs.setdefault("created_at", now)
        kwargs.setdefault("updated_at", now)
        super().__init__(**kwargs)

    def __repr__(self) -> str:
        """
        Return string representation of the model instance.

        Returns:
            String in format: <ModelName(id=uuid)>
        """
        return f"<{self.__class__.__name__}(id={self.id})>"

    def to_dict(self, exclude: Iterable[str] = ()) -> Dict[str, Any]:
        """
        Convert model instance to a JSON-serializable dictionary.

        Datetimes become ISO strings, UUIDs strings and enums their values.

        Args:
            exclude: Column names to leave out

        Returns:
            Dictionary with column names as keys and serialized values
        """
        skipped = set(exclude)
        result: Dict[str, Any] = {}
        for column in self.__table__.columns:
            if column.key in skipped:
                continue
            value = getattr(self, column.key)
            if isinstance(value, datetime):
                result[column.key] = value.isoformat()
            elif isinstance(value, uuid.UUID):
                result[column.key] = str(value)
            elif isinstance(value, enum.Enum):
                result[column.key] = value.value
            else:
                result[column.key] = value
        return result

    @classmethod
    def get_table_name(cls) -> str:
        """Get the database table name for this model."""
        return cls.__tablename__

    def update_fields(self, **kwargs: Any) -> None:
        """
        Update multiple fields on the model instance in a single operation.

        Args:
            **kwargs: Field names as keys and new values as values.

        Raises:
            AttributeError: If any field name doesn't exist on the model.

        Note:
            This method only modifies the instance. You must commit the
            transaction to persist changes to the database.
        """
        for field, value in kwargs.items():
            if hasattr(self, field):
                setattr(self, field, value)
            else:
                raise AttributeError(
                    f"'{self.__class__.__name__}' has no attribute '{field}'"
                )
