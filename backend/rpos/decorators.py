# Overview: Request decorators and envelope-to-response helpers for API routes.

from functools import wraps
from flask import request, jsonify, g

from .errors import AuthenticationError
from .services import session_service


STATUS_BY_CODE = {
    "validation_error": 400,
    "not_found": 404,
    "configuration_error": 422,
    "concurrency_conflict": 409,
    "permission_denied": 403,
    "authentication_required": 401,
    "internal_error": 500,
}


def require_auth(f):
    """
    Require a bearer token and establish the acting principal.

    MULTI-TENANT: Sets g.principal (user_id, restaurant_id, role). Every
    operation scopes its queries by g.principal.restaurant_id.

    Returns 401 if:
    - No Authorization header
    - Invalid, tampered or expired token
    - User deactivated, deleted, or without a restaurant
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify(AuthenticationError("Authentication required").to_dict()), 401

        token = auth_header.split(" ", 1)[1]

        try:
            g.principal = session_service.resolve_token(token)
        except AuthenticationError as e:
            return jsonify(e.to_dict()), 401

        return f(*args, **kwargs)

    return decorated_function


def envelope_response(result: dict, success_status: int = 200):
    """Turn an operation envelope into a (json, status) response."""
    if result.get("success"):
        return jsonify(result), success_status
    return jsonify(result), STATUS_BY_CODE.get(result.get("code"), 400)


def json_body() -> dict:
    """Request JSON as a dict; a missing or non-object body is treated as empty."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}
