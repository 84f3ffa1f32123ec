# Overview: Permission definitions consulted by the settlement core.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


ORDERS_CREATE = "orders.create"
ORDERS_VIEW = "orders.view"
ORDERS_UPDATE = "orders.update"
ORDERS_CANCEL = "orders.cancel"

PAYMENTS_CREATE = "payments.create"
PAYMENTS_VIEW = "payments.view"
PAYMENTS_REFUND = "payments.refund"

CASH_REGISTER_OPEN = "cash_register.open"
CASH_REGISTER_CLOSE = "cash_register.close"
CASH_REGISTER_VIEW = "cash_register.view"
CASH_REGISTER_MANAGE = "cash_register.manage"

DISCOUNTS_MANAGE = "discounts.manage"

SETTINGS_VIEW = "settings.view"
SETTINGS_UPDATE = "settings.update"


# -- ORDERS --

ORDER_PERMISSIONS = [
    (ORDERS_CREATE, "Create Orders", "Open new orders and seat tables", PermissionCategory.ORDERS),
    (ORDERS_VIEW, "View Orders", "View orders, kitchen queue and pending payments", PermissionCategory.ORDERS),
    (ORDERS_UPDATE, "Update Orders", "Advance order status and apply discount codes", PermissionCategory.ORDERS),
    (ORDERS_CANCEL, "Cancel Orders", "Move an order to CANCELLED", PermissionCategory.ORDERS),
]


# -- PAYMENTS --

PAYMENT_PERMISSIONS = [
    (PAYMENTS_CREATE, "Register Payments", "Record payments against orders", PermissionCategory.PAYMENTS),
    (PAYMENTS_VIEW, "View Payments", "View payment history and receipts", PermissionCategory.PAYMENTS),
    (PAYMENTS_REFUND, "Void Payments", "Void a completed payment", PermissionCategory.PAYMENTS),
]


# -- CASH REGISTER --

CASH_REGISTER_PERMISSIONS = [
    (CASH_REGISTER_OPEN, "Open Shift", "Open a cash register shift", PermissionCategory.CASH_REGISTER),
    (CASH_REGISTER_CLOSE, "Close Shift", "Close and reconcile a shift", PermissionCategory.CASH_REGISTER),
    (CASH_REGISTER_VIEW, "View Shifts", "View shift summaries and history", PermissionCategory.CASH_REGISTER),
    (
        CASH_REGISTER_MANAGE,
        "Manage Shifts",
        "Record manual cash movements and close other users' shifts",
        PermissionCategory.CASH_REGISTER,
    ),
]


# -- DISCOUNTS --

DISCOUNT_PERMISSIONS = [
    (DISCOUNTS_MANAGE, "Manage Discounts", "Create, edit and toggle discount codes", PermissionCategory.DISCOUNTS),
]


# -- SETTINGS --

SETTINGS_PERMISSIONS = [
    (SETTINGS_VIEW, "View Settings", "View receipt series configuration", PermissionCategory.SETTINGS),
    (SETTINGS_UPDATE, "Update Settings", "Create and edit receipt series", PermissionCategory.SETTINGS),
]


PERMISSION_DEFINITIONS = (
    ORDER_PERMISSIONS
    + PAYMENT_PERMISSIONS
    + CASH_REGISTER_PERMISSIONS
    + DISCOUNT_PERMISSIONS
    + SETTINGS_PERMISSIONS
)
