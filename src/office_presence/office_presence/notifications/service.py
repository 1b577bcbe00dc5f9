from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Optional, Protocol

from ..common.datetime_utils import utc_now
from ..common.ids import new_id
from ..common.pagination import Page, parse_pagination
from ..core.enums import NotificationType, Role
from ..core.exceptions import AuthorizationError, NotFoundError
from ..users.model import User
from .model import Notification
from .repository import NotificationRepository

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """What the engines call out to. Implementations must never raise."""

    def notify(
        self,
        recipient_id: str,
        title: str,
        message: str,
        type: NotificationType,
        related_id: Optional[str] = None,
        sender_id: Optional[str] = None,
    ) -> Optional[Notification]:
        raise NotImplementedError


class NotificationService(Notifier):
    def __init__(self, notifications: NotificationRepository, *, clock: Callable[[], datetime] = utc_now):
        self._notifications = notifications
        self._clock = clock

    def notify(
        self,
        recipient_id: str,
        title: str,
        message: str,
        type: NotificationType = NotificationType.GENERAL,
        related_id: Optional[str] = None,
        sender_id: Optional[str] = None,
    ) -> Optional[Notification]:
        """Fire-and-forget; a failed write is logged and reported as None."""
        notification = Notification(
            notification_id=new_id(),
            recipient_id=recipient_id,
            title=title,
            message=message,
            type=type,
            related_id=related_id,
            sender_id=sender_id,
            created_at=self._clock(),
        )
        try:
            return self._notifications.create(notification)
        except Exception:
            logger.exception(
                "notification delivery failed",
                extra={"recipient_id": recipient_id, "type": type.value, "related_id": related_id},
            )
            return None

    def list_my_notifications(
        self, actor: User, *, unread_only: bool = False, page: Any = None, limit: Any = None
    ) -> Page[Notification]:
        req = parse_pagination(page, limit)
        items, total = self._notifications.find_for_recipient(actor.user_id, unread_only=unread_only, page=req)
        return Page(items=items, total=total, page=req.page, limit=req.limit)

    def unread_count(self, actor: User) -> int:
        return self._notifications.count_unread(actor.user_id)

    def _get_owned(self, actor: User, notification_id: str) -> Notification:
        notification = self._notifications.get_by_id(notification_id)
        if not notification:
            raise NotFoundError("Notification not found")
        if notification.recipient_id != actor.user_id and actor.role != Role.SUPER_ADMIN:
            raise AuthorizationError("You are not authorized to access this notification")
        return notification

    def mark_read(self, actor: User, notification_id: str) -> None:
        self._get_owned(actor, notification_id)
        self._notifications.mark_read(notification_id)

    def mark_all_read(self, actor: User) -> int:
        return self._notifications.mark_all_read(actor.user_id)

    def delete_notification(self, actor: User, notification_id: str) -> None:
        self._get_owned(actor, notification_id)
        if not self._notifications.delete_by_id(notification_id):
            raise NotFoundError("Notification not found")
