from __future__ import annotations

from flask import Flask

from ..common.http import API_PREFIX, current_actor, json_body, make_login_required, ok, ok_page, query_args
from ..container import Container


def register(app: Flask, container: Container) -> None:
    login_required = make_login_required(container.auth_service.get_active_user)

    @app.route(f"{API_PREFIX}/attendance/mark", methods=["POST"], endpoint="attendance_mark")
    @login_required
    def mark_attendance():
        body = json_body()
        record = container.attendance_service.mark_attendance(current_actor(), body.get("longitude"), body.get("latitude"))
        return ok({"attendance": record.to_dict()}, status=201, message="Attendance marked successfully")

    @app.route(f"{API_PREFIX}/attendance", methods=["GET"], endpoint="attendance_list")
    @login_required
    def list_attendance():
        page = container.attendance_service.list_attendance(
            current_actor(), **query_args("office_id", "user_id", "start_date", "end_date", "page", "limit")
        )
        return ok_page(page, "records")

    @app.route(f"{API_PREFIX}/attendance/<attendance_id>", methods=["GET"], endpoint="attendance_get")
    @login_required
    def get_attendance(attendance_id: str):
        record = container.attendance_service.get_attendance(current_actor(), attendance_id)
        return ok({"attendance": record.to_dict()})

    @app.route(f"{API_PREFIX}/attendance/<attendance_id>", methods=["DELETE"], endpoint="attendance_delete")
    @login_required
    def delete_attendance(attendance_id: str):
        container.attendance_service.delete_attendance(current_actor(), attendance_id)
        return ok(message="Attendance record deleted")
