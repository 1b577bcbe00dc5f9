from __future__ import annotations

import logging
from functools import wraps
from typing import Any, Callable, Dict, Optional

from flask import Flask, g, jsonify, request, session
from werkzeug.exceptions import HTTPException

from ..core.exceptions import (
    AlreadyClaimedError,
    AlreadyMarkedError,
    AuthenticationError,
    AuthorizationError,
    CapacityExhaustedError,
    ConflictError,
    DomainError,
    DuplicateDistributionError,
    HasDependentsError,
    InvalidStateError,
    NotEligibleError,
    NotFoundError,
    OutOfRangeError,
    ValidationError,
)
from ..users.model import User
from .pagination import Page

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"

# Most specific first.
_STATUS_BY_ERROR = (
    (ValidationError, 400),
    (OutOfRangeError, 400),
    (AuthenticationError, 401),
    (AuthorizationError, 403),
    (NotEligibleError, 403),
    (NotFoundError, 404),
    (AlreadyMarkedError, 409),
    (AlreadyClaimedError, 409),
    (CapacityExhaustedError, 409),
    (DuplicateDistributionError, 409),
    (HasDependentsError, 409),
    (ConflictError, 409),
    (InvalidStateError, 422),
)


def status_for(error: DomainError) -> int:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status
    return 400


def ok(data: Any = None, status: int = 200, message: Optional[str] = None, **extra: Any):
    body: Dict[str, Any] = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    body.update(extra)
    return jsonify(body), status


def ok_page(page: Page, key: str):
    return ok({key: [item.to_dict() for item in page.items], "pagination": page.meta()})


def json_body() -> Dict[str, Any]:
    body = request.get_json(silent=True)
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def query_args(*names: str) -> Dict[str, Optional[str]]:
    """camelCase query parameters as snake_case keyword arguments."""
    out: Dict[str, Optional[str]] = {}
    for name in names:
        camel = "".join(part if i == 0 else part.capitalize() for i, part in enumerate(name.split("_")))
        out[name] = request.args.get(camel, request.args.get(name))
    return out


def current_actor() -> User:
    return g.actor


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(DomainError)
    def handle_domain_error(error: DomainError):
        status = status_for(error)
        body: Dict[str, Any] = {"success": False, "message": str(error)}
        if isinstance(error, OutOfRangeError):
            body["distance"] = round(error.distance_m, 2)
            body["allowedRadius"] = error.radius_m
        return jsonify(body), status

    @app.errorhandler(404)
    def handle_not_found(_error):
        return jsonify({"success": False, "message": "Route not found"}), 404

    @app.errorhandler(405)
    def handle_method_not_allowed(_error):
        return jsonify({"success": False, "message": "Method not allowed"}), 405

    @app.errorhandler(Exception)
    def handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return jsonify({"success": False, "message": error.description}), error.code
        logger.exception("unhandled error", extra={"path": request.path, "method": request.method})
        message = f"Internal server error: {error}" if app.config.get("DEBUG") else "Internal server error"
        return jsonify({"success": False, "message": message}), 500


def make_login_required(load_actor: Callable[[Optional[str]], Optional[User]]):
    """Build a decorator that resolves the session user into g.actor."""

    def login_required(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            actor = load_actor(session.get("user_id"))
            if actor is None:
                session.clear()
                raise AuthenticationError("Please log in to continue")
            g.actor = actor
            return view(*args, **kwargs)

        return wrapper

    return login_required
