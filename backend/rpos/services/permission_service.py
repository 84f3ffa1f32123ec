# Overview: Role-based permission checks for the settlement core.

"""
Permission Checker

The core only needs a yes/no answer for (principal, permission). Roles and
their grants come from rpos.permissions; a denial raises
PermissionDeniedError, which the operation boundary surfaces as-is and
never retries.
"""

from __future__ import annotations

from flask import current_app

from ..errors import PermissionDeniedError
from ..permissions import DEFAULT_ROLE_PERMISSIONS
from ..permissions.helpers import is_known_permission


def get_role_permissions(role: str | None) -> frozenset[str]:
    return DEFAULT_ROLE_PERMISSIONS.get((role or "").upper(), frozenset())


def has_permission(principal, permission_code: str) -> bool:
    """Check if the principal's role grants permission_code."""
    if principal is None:
        return False
    return permission_code in get_role_permissions(principal.role)


def require_permission(principal, permission_code: str) -> None:
    """
    Raise PermissionDeniedError unless the principal holds permission_code.

    Unknown codes are a programming error and are denied as well.
    """
    if not is_known_permission(permission_code) or not has_permission(principal, permission_code):
        current_app.logger.info(
            "Permission denied: user=%s role=%s permission=%s",
            getattr(principal, "user_id", None), getattr(principal, "role", None), permission_code,
        )
        raise PermissionDeniedError(
            f"Permission denied: {permission_code}",
            {"required_permission": permission_code},
        )
