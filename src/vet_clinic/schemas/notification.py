"""
Notification Pydantic schemas.
"""

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class NotificationResponse(BaseModel):
    """Schema for notification response data."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    appointment_id: Optional[UUID] = None
    message: str
    read: bool = False
    created_at: datetime

    def to_event_payload(self) -> Dict[str, Any]:
        """Payload of the ``newNotification`` push event."""
        return {
            "id": str(self.id),
            "appointmentId": str(self.appointment_id) if self.appointment_id else None,
            "message": self.message,
            "read": self.read,
            "createdAt": self.created_at.isoformat(),
        }
