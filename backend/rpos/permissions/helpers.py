# Overview: Lookups over the permission definitions.

from .definitions import PERMISSION_DEFINITIONS


ALL_PERMISSION_CODES = frozenset(perm[0] for perm in PERMISSION_DEFINITIONS)


def is_known_permission(code: str) -> bool:
    return code in ALL_PERMISSION_CODES


def describe_permission(code: str) -> dict | None:
    """Return {code, name, description, category} for a code, or None."""
    for perm_code, name, description, category in PERMISSION_DEFINITIONS:
        if perm_code == code:
            return {
                "code": perm_code,
                "name": name,
                "description": description,
                "category": category,
            }
    return None
