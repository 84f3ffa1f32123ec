# Overview: In-process operation boundary; permission gate plus the uniform result envelope.

"""
Settlement Operations

WHY: Callers (HTTP routes, CLI commands, other in-process code) get one
calling convention for the whole core: pass the acting Principal, get back
{"success": True, "data": ...} or {"success": False, "error": ..., "code": ...}.
Nothing raised inside a service ever escapes this module.

DESIGN:
- Permission checks happen here, before the service runs
- Tenant scoping comes from the principal, never from caller input
- Domain errors are logged at INFO/WARNING and returned as-is
- Anything unexpected is rolled back, logged with its traceback and
  reported as a generic internal error
"""

from __future__ import annotations

from functools import wraps

from flask import current_app

from .errors import ConcurrencyError, ConfigurationError, PermissionDeniedError, SettlementError, ValidationError
from .extensions import db
from .money import require_cents
from .permissions.definitions import (
    CASH_REGISTER_CLOSE,
    CASH_REGISTER_MANAGE,
    CASH_REGISTER_OPEN,
    CASH_REGISTER_VIEW,
    DISCOUNTS_MANAGE,
    ORDERS_CANCEL,
    ORDERS_CREATE,
    ORDERS_UPDATE,
    ORDERS_VIEW,
    PAYMENTS_CREATE,
    PAYMENTS_REFUND,
    PAYMENTS_VIEW,
    SETTINGS_UPDATE,
    SETTINGS_VIEW,
)
from .services import (
    cash_register_service,
    discount_service,
    order_service,
    payment_service,
    receipt_service,
)
from .services.permission_service import has_permission, require_permission
from .time_utils import parse_iso_datetime


INTERNAL_ERROR_CODE = "internal_error"


def ok(data) -> dict:
    return {"success": True, "data": data}


def operation(func):
    """Run an operation and convert its outcome to the result envelope."""
    @wraps(func)
    def wrapper(principal, *args, **kwargs):
        try:
            return ok(func(principal, *args, **kwargs))
        except SettlementError as exc:
            db.session.rollback()
            log = current_app.logger.warning if isinstance(
                exc, (PermissionDeniedError, ConcurrencyError, ConfigurationError)
            ) else current_app.logger.info
            log("%s rejected for user %s: [%s] %s",
                func.__name__, getattr(principal, "user_id", None), exc.code, exc.message)
            return exc.to_dict()
        except Exception:
            db.session.rollback()
            current_app.logger.exception("%s failed unexpectedly", func.__name__)
            return {"success": False, "error": "Internal server error", "code": INTERNAL_ERROR_CODE}

    return wrapper


def _parse_date(value):
    if value is None or hasattr(value, "isoformat"):
        return value
    if not isinstance(value, str):
        raise ValidationError(f"Invalid date: {value!r}")
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"Invalid date: {value}")


# =============================================================================
# ORDERS
# =============================================================================

@operation
def create_order(
    principal,
    subtotal_cents,
    tax_cents=0,
    tip_cents=0,
    order_type="DINE_IN",
    table_id=None,
    customer_name=None,
    notes=None,
):
    require_permission(principal, ORDERS_CREATE)
    order = order_service.create_order(
        restaurant_id=principal.restaurant_id,
        user_id=principal.user_id,
        subtotal_cents=subtotal_cents,
        tax_cents=tax_cents,
        tip_cents=tip_cents,
        order_type=order_type,
        table_id=table_id,
        customer_name=customer_name,
        notes=notes,
    )
    return order.to_dict()


@operation
def get_order(principal, order_id):
    require_permission(principal, ORDERS_VIEW)
    order = order_service.get_restaurant_order(principal.restaurant_id, order_id)
    return order_service.summarize_order(order)


@operation
def get_order_by_payment_code(principal, payment_code):
    require_permission(principal, ORDERS_VIEW)
    order = order_service.get_order_by_payment_code(principal.restaurant_id, payment_code)
    return order_service.summarize_order(order)


@operation
def list_kitchen_orders(principal):
    require_permission(principal, ORDERS_VIEW)
    return [o.to_dict() for o in order_service.get_kitchen_orders(principal.restaurant_id)]


@operation
def list_pending_payment_orders(principal):
    require_permission(principal, ORDERS_VIEW)
    return [o.to_dict() for o in order_service.get_pending_payment_orders(principal.restaurant_id)]


@operation
def transition_order_status(principal, order_id, new_status):
    # Cancelling is a separate grant from moving an order forward
    if (new_status or "").upper() == order_service.ORDER_CANCELLED:
        require_permission(principal, ORDERS_CANCEL)
    else:
        require_permission(principal, ORDERS_UPDATE)
    order = order_service.transition_order_status(principal.restaurant_id, order_id, new_status)
    return order.to_dict()


# =============================================================================
# PAYMENTS
# =============================================================================

@operation
def register_payment(
    principal,
    order_id,
    method,
    amount_cents,
    reference=None,
    receipt_type=None,
    customer_doc=None,
    customer_name=None,
    customer_address=None,
    notes=None,
):
    require_permission(principal, PAYMENTS_CREATE)
    payment, order = payment_service.register_payment(
        restaurant_id=principal.restaurant_id,
        order_id=order_id,
        cashier_user_id=principal.user_id,
        method=method,
        amount_cents=amount_cents,
        reference=reference,
        receipt_type=receipt_type,
        customer_doc=customer_doc,
        customer_name=customer_name,
        customer_address=customer_address,
        notes=notes,
    )
    return {
        "payment": payment.to_dict(),
        "order": order.to_dict(),
        "summary": payment_service.get_payment_summary(principal.restaurant_id, order.id),
    }


@operation
def void_payment(principal, payment_id, reason):
    require_permission(principal, PAYMENTS_REFUND)
    payment, order = payment_service.void_payment(
        principal.restaurant_id, payment_id, principal.user_id, reason,
    )
    return {"payment": payment.to_dict(), "order": order.to_dict()}


@operation
def get_order_payments(principal, order_id, include_voided=False):
    require_permission(principal, PAYMENTS_VIEW)
    payments = payment_service.get_order_payments(principal.restaurant_id, order_id, include_voided=include_voided)
    return {
        "order_id": order_id,
        "payments": [p.to_dict() for p in payments],
        "summary": payment_service.get_payment_summary(principal.restaurant_id, order_id),
    }


@operation
def get_payment_history(principal, page=1, limit=20, search=None, method=None, start_date=None, end_date=None):
    require_permission(principal, PAYMENTS_VIEW)
    return payment_service.get_payment_history(
        principal.restaurant_id,
        page=page,
        limit=limit,
        search=search,
        method=method,
        start_date=_parse_date(start_date),
        end_date=_parse_date(end_date),
    )


# =============================================================================
# DISCOUNTS
# =============================================================================

@operation
def validate_discount_code(principal, code, order_id=None, gross_cents=None):
    """
    Check a code without applying it.

    The amount is computed on the order's gross when order_id is given,
    otherwise on the gross_cents passed by the caller.
    """
    require_permission(principal, ORDERS_VIEW)
    if order_id is not None:
        gross_cents = order_service.get_restaurant_order(principal.restaurant_id, order_id).gross_cents
    gross_cents = require_cents(gross_cents, "gross_cents")
    discount, amount = discount_service.validate_discount_code(principal.restaurant_id, code, gross_cents)
    return {
        "discount_id": discount.id,
        "code": discount.code,
        "name": discount.name,
        "discount_type": discount.discount_type,
        "gross_cents": gross_cents,
        "discount_cents": amount,
        "new_total_cents": gross_cents - amount,
    }


@operation
def apply_discount_to_order(principal, order_id, code):
    require_permission(principal, ORDERS_UPDATE)
    order, discount, amount = discount_service.apply_discount_to_order(principal.restaurant_id, order_id, code)
    return {
        "order": order.to_dict(),
        "discount": discount.to_dict(),
        "discount_cents": amount,
    }


@operation
def create_discount(principal, **fields):
    require_permission(principal, DISCOUNTS_MANAGE)
    for key in ("valid_from", "valid_until"):
        fields[key] = _parse_date(fields.get(key))
    return discount_service.create_discount(principal.restaurant_id, **fields).to_dict()


@operation
def update_discount(principal, discount_id, data):
    require_permission(principal, DISCOUNTS_MANAGE)
    data = dict(data or {})
    for key in ("valid_from", "valid_until"):
        if key in data:
            data[key] = _parse_date(data[key])
    return discount_service.update_discount(principal.restaurant_id, discount_id, data).to_dict()


@operation
def toggle_discount_active(principal, discount_id):
    require_permission(principal, DISCOUNTS_MANAGE)
    return discount_service.toggle_discount_active(principal.restaurant_id, discount_id).to_dict()


@operation
def list_discounts(principal, active=None, discount_type=None):
    require_permission(principal, DISCOUNTS_MANAGE)
    return [d.to_dict() for d in discount_service.list_discounts(principal.restaurant_id, active, discount_type)]


# =============================================================================
# RECEIPT SERIES
# =============================================================================

@operation
def list_receipt_series(principal):
    require_permission(principal, SETTINGS_VIEW)
    return [s.to_dict() for s in receipt_service.list_series(principal.restaurant_id)]


@operation
def create_receipt_series(principal, document_type, series, current_number=0, is_active=True):
    require_permission(principal, SETTINGS_UPDATE)
    row = receipt_service.create_series(
        principal.restaurant_id, document_type, series,
        current_number=current_number, is_active=is_active,
    )
    return row.to_dict()


@operation
def update_receipt_series(principal, series_id, is_active=None, current_number=None):
    require_permission(principal, SETTINGS_UPDATE)
    row = receipt_service.update_series(
        principal.restaurant_id, series_id, is_active=is_active, current_number=current_number,
    )
    return row.to_dict()


@operation
def preview_receipt_number(principal, document_type):
    require_permission(principal, PAYMENTS_VIEW)
    return receipt_service.preview_next_number(principal.restaurant_id, document_type)


# =============================================================================
# CASH REGISTER
# =============================================================================

@operation
def open_shift(principal, opening_cash_cents, turn, notes=None):
    require_permission(principal, CASH_REGISTER_OPEN)
    shift = cash_register_service.open_shift(
        principal.restaurant_id, principal.user_id, opening_cash_cents, turn, notes=notes,
    )
    return shift.to_dict()


@operation
def close_shift(principal, shift_id, counted_cash_cents=None, denominations=None, notes=None):
    manager_override = has_permission(principal, CASH_REGISTER_MANAGE)
    if not manager_override:
        require_permission(principal, CASH_REGISTER_CLOSE)
    shift = cash_register_service.close_shift(
        principal.restaurant_id,
        shift_id,
        closed_by_user_id=principal.user_id,
        counted_cash_cents=counted_cash_cents,
        denominations=denominations,
        notes=notes,
        manager_override=manager_override,
    )
    return shift.to_dict()


@operation
def add_manual_transaction(principal, shift_id, transaction_type, amount_cents, concept, reference=None):
    if not has_permission(principal, CASH_REGISTER_MANAGE):
        require_permission(principal, CASH_REGISTER_OPEN)
    txn = cash_register_service.add_manual_transaction(
        principal.restaurant_id,
        shift_id,
        principal.user_id,
        transaction_type,
        amount_cents,
        concept,
        reference=reference,
    )
    return txn.to_dict()


@operation
def get_current_shift(principal):
    require_permission(principal, CASH_REGISTER_VIEW)
    shift = cash_register_service.get_open_shift(principal.user_id)
    if not shift:
        return None
    return cash_register_service.get_shift_summary(principal.restaurant_id, shift.id)


@operation
def get_shift_summary(principal, shift_id):
    require_permission(principal, CASH_REGISTER_VIEW)
    return cash_register_service.get_shift_summary(principal.restaurant_id, shift_id)


@operation
def get_shift_history(principal, page=1, limit=20, start_date=None, end_date=None):
    require_permission(principal, CASH_REGISTER_MANAGE)
    return cash_register_service.get_shift_history(
        principal.restaurant_id,
        page=page,
        limit=limit,
        start_date=_parse_date(start_date),
        end_date=_parse_date(end_date),
    )
