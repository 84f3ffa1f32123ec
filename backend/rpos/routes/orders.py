# Overview: Flask API routes for the order lifecycle; parses input and returns JSON envelopes.

"""
Order API Routes

WHY: Waiters open orders and advance them through the kitchen flow; the
cashier looks them up by payment code at settlement.

DESIGN:
- Every route delegates to rpos.operations and returns its envelope
- Permission checks live in the operation, not in the route
- GET /by-payment-code is what the customer-facing pay screen uses
"""

from flask import Blueprint, g

from .. import operations
from ..decorators import envelope_response, json_body, require_auth
from . import missing_fields_error


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@require_auth
def create_order_route():
    """
    Create an order.

    Request body:
    {
        "subtotal_cents": 5000,
        "tax_cents": 900,         (optional)
        "tip_cents": 0,           (optional)
        "order_type": "DINE_IN",  (DINE_IN, TAKEOUT, DELIVERY)
        "table_id": 3,            (optional)
        "customer_name": "...",   (optional)
        "notes": "..."            (optional)
    }

    Returns:
        201: Order created (PENDING)
    """
    data = json_body()
    error = missing_fields_error(data, "subtotal_cents")
    if error:
        return envelope_response(error)

    result = operations.create_order(
        g.principal,
        subtotal_cents=data.get("subtotal_cents"),
        tax_cents=data.get("tax_cents", 0),
        tip_cents=data.get("tip_cents", 0),
        order_type=data.get("order_type", "DINE_IN"),
        table_id=data.get("table_id"),
        customer_name=data.get("customer_name"),
        notes=data.get("notes"),
    )
    return envelope_response(result, 201)


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    return envelope_response(operations.get_order(g.principal, order_id))


@orders_bp.get("/by-payment-code/<string:payment_code>")
@require_auth
def get_order_by_payment_code_route(payment_code: str):
    """Look up an order (with its payments) by payment code, case-insensitive."""
    return envelope_response(operations.get_order_by_payment_code(g.principal, payment_code))


@orders_bp.get("/kitchen")
@require_auth
def kitchen_orders_route():
    """Orders still in the kitchen (PENDING..READY), oldest first."""
    return envelope_response(operations.list_kitchen_orders(g.principal))


@orders_bp.get("/pending-payment")
@require_auth
def pending_payment_orders_route():
    """SERVED orders that are not fully paid yet."""
    return envelope_response(operations.list_pending_payment_orders(g.principal))


@orders_bp.post("/<int:order_id>/status")
@require_auth
def transition_order_status_route(order_id: int):
    """
    Move an order to a new status.

    Request body:
    {
        "status": "PREPARING"
    }

    TRANSITIONS:
    - Forward only: PENDING -> CONFIRMED -> PREPARING -> READY -> SERVED -> COMPLETED
    - Steps may be skipped
    - CANCELLED from any non-terminal status (needs orders.cancel)
    """
    data = json_body()
    error = missing_fields_error(data, "status")
    if error:
        return envelope_response(error)

    return envelope_response(operations.transition_order_status(g.principal, order_id, data["status"]))
