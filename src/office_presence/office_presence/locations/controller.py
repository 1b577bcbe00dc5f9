from __future__ import annotations

from flask import Flask

from ..common.http import API_PREFIX, current_actor, json_body, make_login_required, ok, ok_page, query_args
from ..core.exceptions import ValidationError
from ..container import Container


def register(app: Flask, container: Container) -> None:
    login_required = make_login_required(container.auth_service.get_active_user)
    locations = container.location_service

    @app.route(f"{API_PREFIX}/locations/share", methods=["POST"], endpoint="locations_share")
    @login_required
    def share_location():
        body = json_body()
        share = locations.share_location(
            current_actor(),
            body.get("longitude"),
            body.get("latitude"),
            reason=body.get("reason"),
            request_id=body.get("requestId"),
        )
        return ok({"location": share.to_dict()}, status=201, message="Location shared successfully")

    @app.route(f"{API_PREFIX}/locations", methods=["GET"], endpoint="locations_list")
    @login_required
    def list_locations():
        page = locations.list_locations(
            current_actor(), **query_args("office_id", "user_id", "start_date", "end_date", "page", "limit")
        )
        return ok_page(page, "records")

    @app.route(f"{API_PREFIX}/locations/requests", methods=["POST"], endpoint="location_requests_create")
    @login_required
    def request_location():
        target_id = json_body().get("targetUserId")
        if not target_id:
            raise ValidationError("targetUserId is required")
        request = locations.request_location(current_actor(), str(target_id))
        return ok({"request": request.to_dict()}, status=201, message="Location request sent")

    @app.route(f"{API_PREFIX}/locations/requests", methods=["GET"], endpoint="location_requests_list")
    @login_required
    def list_requests():
        args = query_args("direction", "status", "page", "limit")
        args["direction"] = args["direction"] or "incoming"
        page = locations.list_location_requests(current_actor(), **args)
        return ok_page(page, "requests")

    @app.route(f"{API_PREFIX}/locations/requests/<request_id>", methods=["GET"], endpoint="location_requests_get")
    @login_required
    def get_request(request_id: str):
        return ok({"request": locations.get_location_request(current_actor(), request_id).to_dict()})

    @app.route(f"{API_PREFIX}/locations/requests/<request_id>/deny", methods=["PATCH"], endpoint="location_requests_deny")
    @login_required
    def deny_request(request_id: str):
        request = locations.deny_location_request(current_actor(), request_id)
        return ok({"request": request.to_dict()}, message="Location request denied")

    @app.route(f"{API_PREFIX}/locations/<location_id>", methods=["GET"], endpoint="locations_get")
    @login_required
    def get_location(location_id: str):
        return ok({"location": locations.get_location(current_actor(), location_id).to_dict()})
