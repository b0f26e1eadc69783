"""
Message model for the vet-clinic package.
"""

import enum
import uuid
from datetime import datetime
from typing import List, Set

from sqlalchemy import Enum, ForeignKey, Index, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..database.types import UTCDateTime
from ..utils.datetime_utils import get_current_utc
from .base import Base, BaseModel


class MessageType(enum.Enum):
    """Enumeration of message payload kinds."""

    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    FILE = "file"


class MessageRead(Base):
    """Read receipt: ``user_id`` has read ``message_id``."""

    __tablename__ = "message_reads"

    message_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("messages.id", ondelete="CASCADE"), primary_key=True
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, index=True
    )

    read_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=get_current_utc
    )


class Message(BaseModel):
    """
    Message posted to a conversation.

    The sender always holds a read receipt for their own message.
    ``content`` is the text body or, for media types, the stored file path.
    """

    __tablename__ = "messages"

    chat_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("chats.id", ondelete="CASCADE"),
        nullable=False,
    )

    sender_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    type: Mapped[MessageType] = mapped_column(
        Enum(MessageType),
        nullable=False,
        default=MessageType.TEXT,
    )

    content: Mapped[str] = mapped_column(Text, nullable=False)

    reads: Mapped[List[MessageRead]] = relationship(
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (Index("idx_messages_chat_created", "chat_id", "created_at"),)

    def __repr__(self) -> str:
        return f"<Message(id={self.id}, chat_id={self.chat_id}, type='{self.type.value}')>"

    @property
    def read_by(self) -> Set[uuid.UUID]:
        """Ids of the users holding a read receipt for this message."""
        return {receipt.user_id for receipt in self.reads}
