from __future__ import annotations

from flask import Flask

from ..common.http import API_PREFIX, current_actor, make_login_required, ok
from ..container import Container


def register(app: Flask, container: Container) -> None:
    login_required = make_login_required(container.auth_service.get_active_user)

    @app.route(f"{API_PREFIX}/dashboard", methods=["GET"], endpoint="dashboard_summary")
    @login_required
    def summary():
        return ok({"summary": container.dashboard_service.summary(current_actor())})

    @app.route(f"{API_PREFIX}/health", methods=["GET"], endpoint="health")
    def health():
        return ok({"status": "ok"})
