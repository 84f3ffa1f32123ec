# Overview: Identity collaborator; resolves bearer tokens into a Principal.

"""
Session / Identity Service

WHY: Every settlement operation needs (user_id, restaurant_id, role) for the
acting principal. Login itself is owned by another system; this module only
signs and verifies the bearer tokens that carry the user id.

DESIGN:
- Tokens are itsdangerous URLSafeTimedSerializer payloads signed with
  SECRET_KEY and limited by AUTH_TOKEN_MAX_AGE_SECONDS.
- Resolution always reloads the user so a deactivated or deleted account,
  or one moved to another restaurant, stops working immediately.
- A principal without a restaurant is rejected: all core operations are
  tenant-scoped.
"""

from dataclasses import dataclass

from flask import current_app
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from ..errors import AuthenticationError
from ..extensions import db
from ..models import User


TOKEN_SALT = "rpos.session"


@dataclass(frozen=True)
class Principal:
    """Acting user and tenant context for one request."""
    user_id: int
    restaurant_id: int
    role: str


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=TOKEN_SALT)


def issue_token(user: User) -> str:
    """Sign a bearer token for user."""
    return _serializer().dumps({"uid": user.id})


def principal_for_user(user: User | None) -> Principal:
    """
    Build the Principal for a loaded user.

    Raises:
        AuthenticationError: If the user is missing, inactive, or has no restaurant
    """
    if user is None or not user.is_active:
        raise AuthenticationError("Invalid or expired session")
    if not user.restaurant_id:
        raise AuthenticationError("Invalid session: missing restaurant context")
    return Principal(user_id=user.id, restaurant_id=user.restaurant_id, role=user.role)


def resolve_token(token: str) -> Principal:
    """
    Verify a bearer token and return the current Principal.

    Raises:
        AuthenticationError: On a bad signature, expiry, or unusable user
    """
    max_age = current_app.config.get("AUTH_TOKEN_MAX_AGE_SECONDS")
    try:
        payload = _serializer().loads(token, max_age=max_age)
    except SignatureExpired:
        raise AuthenticationError("Session expired, please sign in again")
    except BadSignature:
        raise AuthenticationError("Invalid or expired session")

    user = db.session.get(User, payload.get("uid"))
    return principal_for_user(user)
