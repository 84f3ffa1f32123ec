# Overview: Pytest coverage for the role -> permission mapping.

import pytest
from rpos.errors import PermissionDeniedError
from rpos.permissions import (
    ALL_PERMISSION_CODES,
    DEFAULT_ROLE_PERMISSIONS,
    PermissionCategory,
    VALID_ROLES,
    describe_permission,
    is_known_permission,
)
from rpos.services.permission_service import has_permission, require_permission
from rpos.services.session_service import Principal


def _principal(role):
    return Principal(user_id=1, restaurant_id=1, role=role)


def test_every_role_has_a_grant_set():
    assert set(DEFAULT_ROLE_PERMISSIONS) == set(VALID_ROLES)


def test_admin_holds_every_permission():
    assert DEFAULT_ROLE_PERMISSIONS["ADMIN"] == ALL_PERMISSION_CODES


def test_role_grants_only_known_codes():
    for grants in DEFAULT_ROLE_PERMISSIONS.values():
        assert grants <= ALL_PERMISSION_CODES


def test_describe_permission():
    described = describe_permission("payments.refund")
    assert described["category"] == PermissionCategory.PAYMENTS
    assert describe_permission("payments.teleport") is None


@pytest.mark.parametrize("role, permission, expected", [
    ("CASHIER", "payments.create", True),
    ("CASHIER", "payments.refund", False),
    ("WAITER", "orders.cancel", False),
    ("MANAGER", "cash_register.manage", True),
    ("KITCHEN", "orders.update", True),
    ("cashier", "cash_register.open", True),
    (None, "orders.view", False),
])
def test_has_permission(role, permission, expected):
    assert has_permission(_principal(role), permission) is expected


def test_unknown_code_is_denied(app):
    assert not is_known_permission("orders.delete")
    with app.app_context(), pytest.raises(PermissionDeniedError):
        require_permission(_principal("ADMIN"), "orders.delete")
