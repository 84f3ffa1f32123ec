# Overview: Flask API routes for cash register shifts; parses input and returns JSON envelopes.

"""
Cash Register API Routes

WHY: Cashiers open a shift with a float, record manual cash movements, and
close with a count that is reconciled against what the system expects.

DESIGN:
- One open shift per user
- Close accepts counted_cash_cents, a denomination breakdown, or both
- Closed shifts are immutable
"""

from flask import Blueprint, g, request

from .. import operations
from ..decorators import envelope_response, json_body, require_auth
from . import missing_fields_error


cash_register_bp = Blueprint("cash_register", __name__, url_prefix="/api/cash-register")


# =============================================================================
# SHIFT LIFECYCLE
# =============================================================================

@cash_register_bp.post("/open")
@require_auth
def open_shift_route():
    """
    Open a shift for the signed-in user.

    Request body:
    {
        "opening_cash_cents": 20000,
        "turn": "MORNING",
        "notes": "..."     (optional)
    }
    """
    data = json_body()
    error = missing_fields_error(data, "opening_cash_cents", "turn")
    if error:
        return envelope_response(error)

    result = operations.open_shift(
        g.principal,
        data["opening_cash_cents"],
        data["turn"],
        notes=data.get("notes"),
    )
    return envelope_response(result, 201)


@cash_register_bp.get("/current")
@require_auth
def current_shift_route():
    """The signed-in user's open shift with its running summary, or null."""
    return envelope_response(operations.get_current_shift(g.principal))


@cash_register_bp.post("/<int:shift_id>/close")
@require_auth
def close_shift_route(shift_id: int):
    """
    Close a shift and reconcile.

    Request body:
    {
        "counted_cash_cents": 54500,             (optional if denominations given)
        "denominations": {"s100": 5, "c5": 9},   (optional)
        "notes": "..."                           (optional)
    }

    Returns the closed shift with expected_cash_cents and difference_cents
    (negative = shortfall).
    """
    data = json_body()
    result = operations.close_shift(
        g.principal,
        shift_id,
        counted_cash_cents=data.get("counted_cash_cents"),
        denominations=data.get("denominations"),
        notes=data.get("notes"),
    )
    return envelope_response(result)


# =============================================================================
# MANUAL MOVEMENTS
# =============================================================================

@cash_register_bp.post("/<int:shift_id>/transactions")
@require_auth
def add_transaction_route(shift_id: int):
    """
    Request body:
    {
        "transaction_type": "EXPENSE",   (INCOME, EXPENSE, WITHDRAWAL)
        "amount_cents": 1500,
        "concept": "Ice",
        "reference": "..."               (optional)
    }
    """
    data = json_body()
    error = missing_fields_error(data, "transaction_type", "amount_cents", "concept")
    if error:
        return envelope_response(error)

    result = operations.add_manual_transaction(
        g.principal,
        shift_id,
        data["transaction_type"],
        data["amount_cents"],
        data["concept"],
        reference=data.get("reference"),
    )
    return envelope_response(result, 201)


# =============================================================================
# REPORTING
# =============================================================================

@cash_register_bp.get("/<int:shift_id>/summary")
@require_auth
def shift_summary_route(shift_id: int):
    return envelope_response(operations.get_shift_summary(g.principal, shift_id))


@cash_register_bp.get("/history")
@require_auth
def shift_history_route():
    """
    Query params:
    - page, limit (max 100)
    - start_date, end_date: ISO-8601, filters on opened_at
    """
    result = operations.get_shift_history(
        g.principal,
        page=request.args.get("page", 1, type=int),
        limit=request.args.get("limit", 20, type=int),
        start_date=request.args.get("start_date"),
        end_date=request.args.get("end_date"),
    )
    return envelope_response(result)
