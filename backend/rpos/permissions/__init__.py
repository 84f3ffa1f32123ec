# Overview: Permission system package.
# Re-exports all public APIs for convenient imports.

from .categories import PermissionCategory
from .definitions import PERMISSION_DEFINITIONS
from .roles import DEFAULT_ROLE_PERMISSIONS, VALID_ROLES
from .helpers import ALL_PERMISSION_CODES, is_known_permission, describe_permission

__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "DEFAULT_ROLE_PERMISSIONS",
    "VALID_ROLES",
    "ALL_PERMISSION_CODES",
    "is_known_permission",
    "describe_permission",
]
