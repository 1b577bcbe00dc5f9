from __future__ import annotations

from typing import Optional, Sequence

from ..common.datetime_utils import as_utc, to_naive_utc
from ..common.pagination import PageRequest
from ..core.enums import NotificationType
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from .model import Notification
from .repository import NotificationRepository

_COLUMNS = "notification_id, recipient_id, sender_id, title, message, type, related_id, is_read, created_at"


def _row_to_notification(r: dict) -> Notification:
    try:
        ntype = NotificationType(r["type"])
    except ValueError:
        ntype = NotificationType.GENERAL
    return Notification(
        notification_id=r["notification_id"],
        recipient_id=r["recipient_id"],
        sender_id=r.get("sender_id"),
        title=r["title"],
        message=r["message"],
        type=ntype,
        related_id=r.get("related_id"),
        is_read=bool(r.get("is_read")),
        created_at=as_utc(r["created_at"]),
    )


class MySQLNotificationRepository(NotificationRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def create(self, notification: Notification) -> Notification:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO notifications(notification_id, recipient_id, sender_id, title, message, type, related_id, is_read, created_at)
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    notification.notification_id,
                    notification.recipient_id,
                    notification.sender_id,
                    notification.title,
                    notification.message,
                    notification.type.value,
                    notification.related_id,
                    1 if notification.is_read else 0,
                    to_naive_utc(notification.created_at),
                ),
            )
        return notification

    def get_by_id(self, notification_id: str) -> Optional[Notification]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM notifications WHERE notification_id=%s", (notification_id,))
            r = fetchone(cur)
            return _row_to_notification(r) if r else None

    def find_for_recipient(
        self, recipient_id: str, *, unread_only: bool, page: PageRequest
    ) -> tuple[Sequence[Notification], int]:
        where = "WHERE recipient_id=%s" + (" AND is_read=0" if unread_only else "")
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT COUNT(*) AS n FROM notifications {where}", (recipient_id,))
            total = int(fetchone(cur)["n"])
            cur.execute(
                f"SELECT {_COLUMNS} FROM notifications {where} ORDER BY created_at DESC LIMIT %s OFFSET %s",
                (recipient_id, page.limit, page.offset),
            )
            return [_row_to_notification(r) for r in fetchall(cur)], total

    def count_unread(self, recipient_id: str) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT COUNT(*) AS n FROM notifications WHERE recipient_id=%s AND is_read=0", (recipient_id,))
            return int(fetchone(cur)["n"])

    def mark_read(self, notification_id: str) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("UPDATE notifications SET is_read=1 WHERE notification_id=%s", (notification_id,))
            return cur.rowcount > 0

    def mark_all_read(self, recipient_id: str) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("UPDATE notifications SET is_read=1 WHERE recipient_id=%s AND is_read=0", (recipient_id,))
            return int(cur.rowcount)

    def delete_by_id(self, notification_id: str) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("DELETE FROM notifications WHERE notification_id=%s", (notification_id,))
            return cur.rowcount > 0
