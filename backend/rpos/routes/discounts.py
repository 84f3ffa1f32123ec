# Overview: Flask API routes for discount codes; parses input and returns JSON envelopes.

"""
Discount API Routes

DESIGN:
- Administration (create, update, toggle, list) needs discounts.manage
- /validate previews the amount without touching anything
- /apply mutates the order and consumes one use in a single transaction
- PERCENTAGE values are whole percents (10 = 10%); FIXED_AMOUNT values are cents
"""

from flask import Blueprint, g, request

from .. import operations
from ..decorators import envelope_response, json_body, require_auth
from . import missing_fields_error


discounts_bp = Blueprint("discounts", __name__, url_prefix="/api/discounts")


@discounts_bp.post("")
@require_auth
def create_discount_route():
    """
    Create a discount code.

    Request body:
    {
        "code": "SAVE10",
        "name": "10% off",
        "discount_type": "PERCENTAGE",
        "value": 10,
        "valid_from": "2026-01-01T00:00:00Z",
        "valid_until": "2026-12-31T23:59:59Z",
        "min_order_cents": 2000,       (optional)
        "max_discount_cents": 500,     (optional)
        "usage_limit": 100,            (optional)
        "is_active": true,             (optional)
        "applicable_to": ["ALL"]       (optional)
    }
    """
    data = json_body()
    error = missing_fields_error(data, "code", "name", "discount_type", "value", "valid_from", "valid_until")
    if error:
        return envelope_response(error)

    fields = {
        key: data[key]
        for key in (
            "code", "name", "discount_type", "value", "valid_from", "valid_until",
            "min_order_cents", "max_discount_cents", "usage_limit", "is_active", "applicable_to",
        )
        if key in data
    }
    return envelope_response(operations.create_discount(g.principal, **fields), 201)


@discounts_bp.get("")
@require_auth
def list_discounts_route():
    """
    Query params:
    - active: true/false (optional)
    - type: PERCENTAGE, FIXED_AMOUNT, FREE_ITEM (optional)
    """
    active_param = request.args.get("active")
    active = None if active_param is None else active_param.lower() == "true"
    return envelope_response(operations.list_discounts(g.principal, active, request.args.get("type")))


@discounts_bp.patch("/<int:discount_id>")
@require_auth
def update_discount_route(discount_id: int):
    return envelope_response(operations.update_discount(g.principal, discount_id, json_body()))


@discounts_bp.post("/<int:discount_id>/toggle")
@require_auth
def toggle_discount_route(discount_id: int):
    return envelope_response(operations.toggle_discount_active(g.principal, discount_id))


@discounts_bp.post("/validate")
@require_auth
def validate_discount_route():
    """
    Preview a code against an order (order_id) or an amount (gross_cents).

    Request body:
    {
        "code": "SAVE10",
        "order_id": 123        (or "gross_cents": 10000)
    }
    """
    data = json_body()
    error = missing_fields_error(data, "code")
    if error:
        return envelope_response(error)

    result = operations.validate_discount_code(
        g.principal,
        data["code"],
        order_id=data.get("order_id"),
        gross_cents=data.get("gross_cents"),
    )
    return envelope_response(result)


@discounts_bp.post("/apply")
@require_auth
def apply_discount_route():
    """
    Apply a code to an order, replacing any earlier discount on it.

    Request body:
    {
        "code": "SAVE10",
        "order_id": 123
    }
    """
    data = json_body()
    error = missing_fields_error(data, "code", "order_id")
    if error:
        return envelope_response(error)

    return envelope_response(operations.apply_discount_to_order(g.principal, data["order_id"], data["code"]))
