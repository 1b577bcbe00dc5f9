from __future__ import annotations

from flask import Flask

from ..common.http import API_PREFIX, current_actor, json_body, make_login_required, ok, ok_page, query_args
from ..container import Container

_FIELD_NAMES = {
    "name": "name",
    "address": "address",
    "longitude": "longitude",
    "latitude": "latitude",
    "targetHeadcount": "target_headcount",
    "officeType": "office_type",
}


def register(app: Flask, container: Container) -> None:
    login_required = make_login_required(container.auth_service.get_active_user)

    @app.route(f"{API_PREFIX}/offices/public", methods=["GET"], endpoint="offices_public")
    def public_offices():
        offices = container.office_service.list_public_offices()
        return ok({"offices": [{"id": o.office_id, "name": o.name} for o in offices]})

    @app.route(f"{API_PREFIX}/offices/nearby", methods=["GET"], endpoint="offices_nearby")
    @login_required
    def nearby_offices():
        args = query_args("longitude", "latitude", "max_distance")
        nearby = container.office_service.find_nearby_offices(args["longitude"], args["latitude"], args["max_distance"])
        return ok({"offices": [n.to_dict() for n in nearby]})

    @app.route(f"{API_PREFIX}/offices", methods=["GET"], endpoint="offices_list")
    @login_required
    def list_offices():
        page = container.office_service.list_offices(current_actor(), **query_args("search", "page", "limit"))
        return ok_page(page, "offices")

    @app.route(f"{API_PREFIX}/offices", methods=["POST"], endpoint="offices_create")
    @login_required
    def create_office():
        body = json_body()
        office = container.office_service.create_office(
            current_actor(),
            name=body.get("name", ""),
            address=body.get("address", ""),
            longitude=body.get("longitude"),
            latitude=body.get("latitude"),
            target_headcount=body.get("targetHeadcount", 0),
            office_type=body.get("officeType") or "branch",
        )
        return ok({"office": office.to_dict()}, status=201, message="Office created")

    @app.route(f"{API_PREFIX}/offices/<office_id>", methods=["GET"], endpoint="offices_get")
    @login_required
    def get_office(office_id: str):
        return ok({"office": container.office_service.get_office(current_actor(), office_id).to_dict()})

    @app.route(f"{API_PREFIX}/offices/<office_id>", methods=["PATCH"], endpoint="offices_update")
    @login_required
    def update_office(office_id: str):
        body = json_body()
        changes = {field: body[key] for key, field in _FIELD_NAMES.items() if key in body}
        office = container.office_service.update_office(current_actor(), office_id, changes)
        return ok({"office": office.to_dict()}, message="Office updated")

    @app.route(f"{API_PREFIX}/offices/<office_id>", methods=["DELETE"], endpoint="offices_delete")
    @login_required
    def delete_office(office_id: str):
        container.office_service.delete_office(current_actor(), office_id)
        return ok(message="Office deleted")

    @app.route(f"{API_PREFIX}/offices/<office_id>/targets", methods=["GET"], endpoint="offices_targets_list")
    @login_required
    def list_targets(office_id: str):
        targets = container.office_service.list_targets(current_actor(), office_id)
        return ok({"targets": [t.to_dict() for t in targets]})

    @app.route(f"{API_PREFIX}/offices/<office_id>/targets", methods=["POST"], endpoint="offices_targets_add")
    @login_required
    def add_target(office_id: str):
        body = json_body()
        actor = current_actor()
        target = container.office_service.add_target(
            actor, office_id, target_type=body.get("type"), period=body.get("period"), count=body.get("count")
        )
        targets = container.office_service.list_targets(actor, office_id)
        return ok(
            {"target": target.to_dict(), "targets": [t.to_dict() for t in targets]},
            status=201,
            message="Target added",
        )

    @app.route(f"{API_PREFIX}/offices/<office_id>/targets", methods=["PUT"], endpoint="offices_targets_update")
    @login_required
    def update_target(office_id: str):
        body = json_body()
        target = container.office_service.update_target(
            current_actor(), office_id, target_type=body.get("type"), period=body.get("period"), count=body.get("count")
        )
        return ok({"target": target.to_dict()}, message="Target updated")
