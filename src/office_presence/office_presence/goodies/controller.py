from __future__ import annotations

from flask import Flask

from ..common.http import API_PREFIX, current_actor, json_body, make_login_required, ok, ok_page, query_args
from ..core.exceptions import ValidationError
from ..container import Container


def _recipient_fields(row: dict) -> dict:
    return {"name": row.get("name"), "office_id": row.get("officeId"), "employee_id": row.get("employeeId")}


def _distribution_fields(body: dict) -> dict:
    return {
        "office_id": body.get("officeId"),
        "goods_type": body.get("goodiesType", ""),
        "total_quantity": body.get("totalQuantity"),
        "distribution_date": body.get("distributionDate"),
        "is_for_all_employees": body.get("isForAllEmployees", True),
        "target_employee_ids": body.get("targetEmployees") or (),
        "unregistered_recipients": [
            _recipient_fields(r) for r in (body.get("unregisteredRecipients") or ()) if isinstance(r, dict)
        ],
    }


def register(app: Flask, container: Container) -> None:
    login_required = make_login_required(container.auth_service.get_active_user)
    goodies = container.goodies_service

    @app.route(f"{API_PREFIX}/goodies/distributions", methods=["POST"], endpoint="goodies_create")
    @login_required
    def create_distribution():
        distribution = goodies.create_distribution(current_actor(), **_distribution_fields(json_body()))
        return ok({"distribution": distribution.to_dict()}, status=201, message="Distribution created")

    @app.route(f"{API_PREFIX}/goodies/distributions/bulk", methods=["POST"], endpoint="goodies_bulk_create")
    @login_required
    def bulk_create_distributions():
        rows = json_body().get("distributions")
        if not isinstance(rows, list):
            raise ValidationError("distributions must be a list")
        result = goodies.create_distributions_bulk(
            current_actor(), [_distribution_fields(row) for row in rows if isinstance(row, dict)]
        )
        return ok(result.to_dict(), status=201)

    @app.route(f"{API_PREFIX}/goodies/distributions", methods=["GET"], endpoint="goodies_list")
    @login_required
    def list_distributions():
        page = goodies.list_distributions(
            current_actor(), **query_args("office_id", "start_date", "end_date", "search", "page", "limit")
        )
        return ok_page(page, "distributions")

    @app.route(f"{API_PREFIX}/goodies/distributions/<distribution_id>", methods=["GET"], endpoint="goodies_get")
    @login_required
    def get_distribution(distribution_id: str):
        view = goodies.get_distribution(current_actor(), distribution_id)
        return ok({"distribution": view.to_dict()})

    @app.route(f"{API_PREFIX}/goodies/distributions/<distribution_id>", methods=["DELETE"], endpoint="goodies_delete")
    @login_required
    def delete_distribution(distribution_id: str):
        goodies.delete_distribution(current_actor(), distribution_id)
        return ok(message="Distribution deleted")

    @app.route(f"{API_PREFIX}/goodies/distributions/<distribution_id>/summary", methods=["GET"], endpoint="goodies_summary")
    @login_required
    def claim_summary(distribution_id: str):
        return ok({"summary": goodies.get_claim_summary(current_actor(), distribution_id).to_dict()})

    @app.route(
        f"{API_PREFIX}/goodies/distributions/<distribution_id>/eligible-employees",
        methods=["GET"],
        endpoint="goodies_eligible",
    )
    @login_required
    def eligible_employees(distribution_id: str):
        employees = goodies.list_eligible_employees(current_actor(), distribution_id)
        return ok({"employees": [e.to_dict() for e in employees]})

    @app.route(f"{API_PREFIX}/goodies/distributions/<distribution_id>/receive", methods=["POST"], endpoint="goodies_receive")
    @login_required
    def receive(distribution_id: str):
        record = goodies.receive_goodies(current_actor(), distribution_id)
        return ok({"record": record.to_dict()}, status=201, message="Goodies received")

    @app.route(f"{API_PREFIX}/goodies/distributions/<distribution_id>/claims", methods=["POST"], endpoint="goodies_mark_claim")
    @login_required
    def mark_claim(distribution_id: str):
        target_id = json_body().get("employeeId")
        if not target_id:
            raise ValidationError("employeeId is required")
        outcome = goodies.mark_claim_for_employee(current_actor(), distribution_id, str(target_id))
        return ok({"claim": outcome.to_dict()}, status=201, message="Claim recorded")

    @app.route(f"{API_PREFIX}/goodies/received", methods=["GET"], endpoint="goodies_received_list")
    @login_required
    def list_received():
        page = goodies.list_received(
            current_actor(),
            **query_args("office_id", "user_id", "distribution_id", "start_date", "end_date", "page", "limit"),
        )
        return ok_page(page, "records")

    @app.route(f"{API_PREFIX}/goodies/received/<received_id>", methods=["GET"], endpoint="goodies_received_get")
    @login_required
    def get_received(received_id: str):
        return ok({"record": goodies.get_received_record(current_actor(), received_id).to_dict()})

    @app.route(f"{API_PREFIX}/goodies/received/<received_id>", methods=["DELETE"], endpoint="goodies_received_delete")
    @login_required
    def delete_received(received_id: str):
        goodies.delete_received_record(current_actor(), received_id)
        return ok(message="Receipt record deleted")
