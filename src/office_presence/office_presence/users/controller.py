from __future__ import annotations

from flask import Flask, session

from ..common.http import API_PREFIX, current_actor, json_body, make_login_required, ok, ok_page, query_args
from ..core.exceptions import ValidationError
from ..container import Container


def _employee_fields(body: dict) -> dict:
    return {
        "name": body.get("name", ""),
        "email": body.get("email", ""),
        "password": body.get("password", ""),
        "role": body.get("role"),
        "primary_office_id": body.get("primaryOfficeId"),
        "assigned_office_id": body.get("assignedOfficeId"),
        "phone": body.get("phone"),
        "employee_id": body.get("employeeId"),
    }


def register(app: Flask, container: Container) -> None:
    login_required = make_login_required(container.auth_service.get_active_user)

    @app.route(f"{API_PREFIX}/auth/login", methods=["POST"], endpoint="auth_login")
    def login():
        body = json_body()
        user = container.auth_service.authenticate(body.get("email", ""), body.get("password", ""))

        session.clear()
        session.permanent = bool(body.get("rememberMe"))
        session["user_id"] = user.user_id
        session["role"] = user.role.value
        return ok({"user": user.to_dict()}, message="Login successful")

    @app.route(f"{API_PREFIX}/auth/logout", methods=["POST"], endpoint="auth_logout")
    def logout():
        session.clear()
        return ok(message="Logged out")

    @app.route(f"{API_PREFIX}/auth/register", methods=["POST"], endpoint="auth_register")
    def register_user():
        body = json_body()
        user = container.auth_service.register(
            name=body.get("name", ""),
            email=body.get("email", ""),
            password=body.get("password", ""),
            role=body.get("role") or "external",
            primary_office_id=body.get("primaryOfficeId"),
            phone=body.get("phone"),
            employee_id=body.get("employeeId"),
        )
        return ok({"user": user.to_dict()}, status=201, message="Registration successful. Please wait for verification.")

    @app.route(f"{API_PREFIX}/auth/me", methods=["GET"], endpoint="auth_me")
    @login_required
    def me():
        return ok({"user": current_actor().to_dict()})

    @app.route(f"{API_PREFIX}/users/profile", methods=["GET"], endpoint="users_profile")
    @login_required
    def get_profile():
        return ok({"user": container.user_service.get_profile(current_actor()).to_dict()})

    @app.route(f"{API_PREFIX}/users/profile", methods=["PATCH"], endpoint="users_profile_update")
    @login_required
    def update_profile():
        body = json_body()
        fields = {key: body[key] for key in ("name", "phone") if key in body}
        user = container.user_service.update_profile(current_actor(), **fields)
        return ok({"user": user.to_dict()}, message="Profile updated")

    @app.route(f"{API_PREFIX}/users", methods=["GET"], endpoint="users_list")
    @login_required
    def list_users():
        page = container.user_service.list_users(current_actor(), **query_args("role", "search", "page", "limit"))
        return ok_page(page, "users")

    @app.route(f"{API_PREFIX}/users", methods=["POST"], endpoint="users_create")
    @login_required
    def create_user():
        user = container.user_service.create_employee(current_actor(), **_employee_fields(json_body()))
        return ok({"user": user.to_dict()}, status=201, message="Employee created")

    @app.route(f"{API_PREFIX}/users/bulk", methods=["POST"], endpoint="users_bulk_create")
    @login_required
    def bulk_create_users():
        rows = json_body().get("employees")
        if not isinstance(rows, list):
            raise ValidationError("employees must be a list")
        result = container.user_service.create_employees_bulk(
            current_actor(), [_employee_fields(row) for row in rows if isinstance(row, dict)]
        )
        return ok(result.to_dict(), status=201)

    @app.route(f"{API_PREFIX}/users/<user_id>", methods=["GET"], endpoint="users_get")
    @login_required
    def get_user(user_id: str):
        return ok({"user": container.user_service.get_user(current_actor(), user_id).to_dict()})

    @app.route(f"{API_PREFIX}/users/<user_id>", methods=["DELETE"], endpoint="users_delete")
    @login_required
    def delete_user(user_id: str):
        container.user_service.delete_user(current_actor(), user_id)
        return ok(message="User deleted")

    @app.route(f"{API_PREFIX}/users/<user_id>/verify", methods=["PATCH"], endpoint="users_verify")
    @login_required
    def verify_user(user_id: str):
        user = container.user_service.verify_user(current_actor(), user_id)
        return ok({"user": user.to_dict()}, message="User verified")

    @app.route(f"{API_PREFIX}/users/<user_id>/suspend", methods=["PATCH"], endpoint="users_suspend")
    @login_required
    def suspend_user(user_id: str):
        user = container.user_service.suspend_user(current_actor(), user_id)
        return ok({"user": user.to_dict()}, message="User suspended")

    @app.route(f"{API_PREFIX}/users/<user_id>/unsuspend", methods=["PATCH"], endpoint="users_unsuspend")
    @login_required
    def unsuspend_user(user_id: str):
        user = container.user_service.unsuspend_user(current_actor(), user_id)
        return ok({"user": user.to_dict()}, message="User reactivated")

    @app.route(f"{API_PREFIX}/offices/<office_id>/employees", methods=["GET"], endpoint="office_employees")
    @login_required
    def office_employees(office_id: str):
        page = container.user_service.list_office_employees(
            current_actor(), office_id, **query_args("search", "page", "limit")
        )
        return ok_page(page, "employees")
