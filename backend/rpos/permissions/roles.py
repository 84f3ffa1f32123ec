# Overview: Default role -> permission mapping.

from .definitions import (
    PERMISSION_DEFINITIONS,
    ORDERS_CREATE,
    ORDERS_VIEW,
    ORDERS_UPDATE,
    ORDERS_CANCEL,
    PAYMENTS_CREATE,
    PAYMENTS_VIEW,
    PAYMENTS_REFUND,
    CASH_REGISTER_OPEN,
    CASH_REGISTER_CLOSE,
    CASH_REGISTER_VIEW,
    CASH_REGISTER_MANAGE,
    DISCOUNTS_MANAGE,
    SETTINGS_VIEW,
    SETTINGS_UPDATE,
)


ROLE_ADMIN = "ADMIN"
ROLE_MANAGER = "MANAGER"
ROLE_WAITER = "WAITER"
ROLE_CASHIER = "CASHIER"
ROLE_KITCHEN = "KITCHEN"
ROLE_USER = "USER"

VALID_ROLES = [ROLE_ADMIN, ROLE_MANAGER, ROLE_WAITER, ROLE_CASHIER, ROLE_KITCHEN, ROLE_USER]


DEFAULT_ROLE_PERMISSIONS = {
    ROLE_ADMIN: frozenset(perm[0] for perm in PERMISSION_DEFINITIONS),
    ROLE_MANAGER: frozenset([
        ORDERS_CREATE, ORDERS_VIEW, ORDERS_UPDATE, ORDERS_CANCEL,
        PAYMENTS_CREATE, PAYMENTS_VIEW, PAYMENTS_REFUND,
        CASH_REGISTER_VIEW, CASH_REGISTER_MANAGE,
        DISCOUNTS_MANAGE,
        SETTINGS_VIEW, SETTINGS_UPDATE,
    ]),
    ROLE_WAITER: frozenset([
        ORDERS_CREATE, ORDERS_VIEW, ORDERS_UPDATE,
        PAYMENTS_VIEW,
    ]),
    ROLE_CASHIER: frozenset([
        ORDERS_CREATE, ORDERS_VIEW, ORDERS_UPDATE,
        PAYMENTS_CREATE, PAYMENTS_VIEW,
        CASH_REGISTER_OPEN, CASH_REGISTER_CLOSE, CASH_REGISTER_VIEW,
    ]),
    ROLE_KITCHEN: frozenset([
        ORDERS_VIEW, ORDERS_UPDATE,
    ]),
    ROLE_USER: frozenset([
        ORDERS_VIEW,
    ]),
}
