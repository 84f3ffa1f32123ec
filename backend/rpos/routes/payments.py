# Overview: Flask API routes for the payment ledger; parses input and returns JSON envelopes.

"""
Payment API Routes

WHY: Orders are settled at the till, in one payment or several.

DESIGN:
- Split payments up to the order total; over-payment is rejected with the
  remaining balance in details.remaining_cents
- Receipt numbers are minted server-side when receipt_type is given
- Voids keep the row (and its receipt number) and recompute the order status
"""

from flask import Blueprint, g, request

from .. import operations
from ..decorators import envelope_response, json_body, require_auth
from . import missing_fields_error


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


# =============================================================================
# PAYMENT CREATION
# =============================================================================

@payments_bp.post("")
@require_auth
def register_payment_route():
    """
    Register a payment against an order.

    Request body:
    {
        "order_id": 123,
        "method": "CASH",            (CASH, CARD, WALLET, TRANSFER, MIXED)
        "amount_cents": 6000,
        "reference": "AUTH-12345",   (optional)
        "receipt_type": "BOLETA",    (optional: BOLETA, FACTURA, NOTA_VENTA, TICKET)
        "customer_doc": "12345678",  (BOLETA/FACTURA)
        "customer_name": "...",      (FACTURA)
        "customer_address": "...",   (optional)
        "notes": "..."               (optional)
    }

    Returns:
        201: Payment, updated order and payment summary
        400: Invalid input or over-payment
        422: No active receipt series for receipt_type
    """
    data = json_body()
    error = missing_fields_error(data, "order_id", "method", "amount_cents")
    if error:
        return envelope_response(error)

    result = operations.register_payment(
        g.principal,
        order_id=data["order_id"],
        method=data["method"],
        amount_cents=data["amount_cents"],
        reference=data.get("reference"),
        receipt_type=data.get("receipt_type"),
        customer_doc=data.get("customer_doc"),
        customer_name=data.get("customer_name"),
        customer_address=data.get("customer_address"),
        notes=data.get("notes"),
    )
    return envelope_response(result, 201)


@payments_bp.post("/<int:payment_id>/void")
@require_auth
def void_payment_route(payment_id: int):
    """
    Void a completed payment.

    Request body:
    {
        "reason": "Charged to the wrong order"
    }
    """
    data = json_body()
    error = missing_fields_error(data, "reason")
    if error:
        return envelope_response(error)

    return envelope_response(operations.void_payment(g.principal, payment_id, data["reason"]))


# =============================================================================
# PAYMENT QUERIES
# =============================================================================

@payments_bp.get("/orders/<int:order_id>")
@require_auth
def get_order_payments_route(order_id: int):
    """
    Payments for an order plus its summary.

    Query params:
    - include_voided: Include voided payments (default: false)
    """
    include_voided = request.args.get("include_voided", "false").lower() == "true"
    return envelope_response(operations.get_order_payments(g.principal, order_id, include_voided=include_voided))


@payments_bp.get("/history")
@require_auth
def payment_history_route():
    """
    Paginated payment history, newest first.

    Query params:
    - page, limit (max 100)
    - search: order number, payment code or reference
    - method: CASH, CARD, ...
    - start_date, end_date: ISO-8601 (both required to filter by date)
    """
    result = operations.get_payment_history(
        g.principal,
        page=request.args.get("page", 1, type=int),
        limit=request.args.get("limit", 20, type=int),
        search=request.args.get("search"),
        method=request.args.get("method"),
        start_date=request.args.get("start_date"),
        end_date=request.args.get("end_date"),
    )
    return envelope_response(result)
