from __future__ import annotations

from flask import Flask, request

from ..common.http import API_PREFIX, current_actor, make_login_required, ok, query_args
from ..container import Container


def register(app: Flask, container: Container) -> None:
    login_required = make_login_required(container.auth_service.get_active_user)
    notifications = container.notification_service

    @app.route(f"{API_PREFIX}/notifications", methods=["GET"], endpoint="notifications_list")
    @login_required
    def list_notifications():
        unread_only = (request.args.get("unreadOnly") or "").lower() in ("1", "true", "yes")
        page = notifications.list_my_notifications(current_actor(), unread_only=unread_only, **query_args("page", "limit"))
        return ok(
            {
                "notifications": [n.to_dict() for n in page.items],
                "unreadCount": notifications.unread_count(current_actor()),
                "pagination": page.meta(),
            }
        )

    @app.route(f"{API_PREFIX}/notifications/read-all", methods=["PATCH"], endpoint="notifications_read_all")
    @login_required
    def mark_all_read():
        updated = notifications.mark_all_read(current_actor())
        return ok({"updated": updated})

    @app.route(f"{API_PREFIX}/notifications/<notification_id>/read", methods=["PATCH"], endpoint="notifications_read")
    @login_required
    def mark_read(notification_id: str):
        notifications.mark_read(current_actor(), notification_id)
        return ok(message="Notification marked as read")

    @app.route(f"{API_PREFIX}/notifications/<notification_id>", methods=["DELETE"], endpoint="notifications_delete")
    @login_required
    def delete_notification(notification_id: str):
        notifications.delete_notification(current_actor(), notification_id)
        return ok(message="Notification deleted")
