from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..core.enums import NotificationType


@dataclass(frozen=True)
class Notification:
    """In-app notification. Push delivery is handled elsewhere."""

    notification_id: str
    recipient_id: str
    title: str
    message: str
    type: NotificationType
    created_at: datetime
    related_id: Optional[str] = None
    sender_id: Optional[str] = None
    is_read: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.notification_id,
            "recipientId": self.recipient_id,
            "senderId": self.sender_id,
            "title": self.title,
            "message": self.message,
            "type": self.type.value,
            "relatedId": self.related_id,
            "isRead": self.is_read,
            "createdAt": self.created_at.isoformat(),
        }
