"""
Conversation models for the vet-clinic package.

A conversation is identified by its exact participant set. The set is
stored twice: as rows of ``chat_participants`` for membership queries and
as a canonical ``participant_key`` carrying a unique constraint, which is
what makes concurrent first contact converge on a single conversation.
"""

import uuid
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..database.types import UTCDateTime
from ..utils.datetime_utils import get_current_utc
from .base import Base, BaseModel


def make_participant_key(participant_ids: Iterable[uuid.UUID]) -> str:
    """Canonical key of a participant set: sorted, de-duplicated ids joined by commas."""
    return ",".join(sorted({str(pid) for pid in participant_ids}))


class ChatParticipant(Base):
    """Membership row linking a user to a conversation."""

    __tablename__ = "chat_participants"

    chat_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("chats.id", ondelete="CASCADE"), primary_key=True
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, index=True
    )

    joined_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=get_current_utc
    )


class Chat(BaseModel):
    """Conversation between a fixed set of participants."""

    __tablename__ = "chats"

    def __init__(self, **kwargs):
        kwargs.setdefault("unread_count", 0)
        super().__init__(**kwargs)

    participant_key: Mapped[str] = mapped_column(
        String(1024),
        unique=True,
        nullable=False,
        comment="Sorted participant ids joined by ','",
    )

    # Not a foreign key: messages already reference chats
    last_message_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), nullable=True
    )

    unread_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Number of messages posted, never decremented",
    )

    participants: Mapped[List[ChatParticipant]] = relationship(
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Chat(id={self.id}, participants='{self.participant_key}')>"

    @property
    def participant_ids(self) -> List[uuid.UUID]:
        """Participant ids in canonical (sorted) order."""
        return [uuid.UUID(pid) for pid in self.participant_key.split(",")]

    def has_participant(self, user_id: uuid.UUID) -> bool:
        return user_id in self.participant_ids
