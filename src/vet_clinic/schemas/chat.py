"""
Chat Pydantic schemas: messages, conversations and conversation filters.
"""

from datetime import datetime
from typing import List, Optional, Set
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..models.message import MessageType


class MessageCreate(BaseModel):
    """Schema for a message to be posted."""

    model_config = ConfigDict(
        use_enum_values=True,
        str_strip_whitespace=True,
    )

    type: MessageType = Field(MessageType.TEXT)
    content: str = Field(..., description="Text body or stored media path")

    @field_validator("content")
    @classmethod
    def validate_content(cls, v: str) -> str:
        if not v:
            raise ValueError("Message content cannot be empty")
        return v


class MessageResponse(BaseModel):
    """Schema for message response data."""

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    id: UUID
    chat_id: UUID
    sender_id: UUID
    type: MessageType
    content: str
    read_by: Set[UUID] = Field(default_factory=set)
    created_at: datetime


class ConversationResponse(BaseModel):
    """A conversation as seen by one of its participants."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    participant_ids: List[UUID]
    last_message: Optional[MessageResponse] = None
    unread_count: int = Field(0, description="Unread messages for the viewing user")
    updated_at: datetime


class ConversationFilter(BaseModel):
    """
    Optional filters for a user's conversation list.

    Name filters match the other participants case-insensitively; the date
    range keeps conversations having at least one message inside it.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @model_validator(mode="after")
    def validate_date_range(self) -> "ConversationFilter":
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date cannot be after end_date")
        return self

    @property
    def has_name_filter(self) -> bool:
        return bool(self.first_name or self.last_name)

    @property
    def has_date_filter(self) -> bool:
        return self.start_date is not None or self.end_date is not None
