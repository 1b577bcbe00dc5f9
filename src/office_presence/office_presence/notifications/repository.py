from __future__ import annotations

from typing import Optional, Protocol, Sequence

from ..common.pagination import PageRequest
from .model import Notification


class NotificationRepository(Protocol):
    def create(self, notification: Notification) -> Notification:
        raise NotImplementedError

    def get_by_id(self, notification_id: str) -> Optional[Notification]:
        raise NotImplementedError

    def find_for_recipient(
        self, recipient_id: str, *, unread_only: bool, page: PageRequest
    ) -> tuple[Sequence[Notification], int]:
        """Newest first."""

        raise NotImplementedError

    def count_unread(self, recipient_id: str) -> int:
        raise NotImplementedError

    def mark_read(self, notification_id: str) -> bool:
        raise NotImplementedError

    def mark_all_read(self, recipient_id: str) -> int:
        raise NotImplementedError

    def delete_by_id(self, notification_id: str) -> bool:
        raise NotImplementedError
