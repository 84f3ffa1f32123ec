# Overview: Cash register shifts; open/close, manual cash movements, and reconciliation.

"""
Cash Register Shift Manager

WHY: Each shift is a period of cash accountability for one cashier. At close,
the cash the system expects to be in the drawer is compared with what was
physically counted, and the difference is kept for audit.

DESIGN PRINCIPLES:
- One open shift per user at a time (partial unique index backs the check)
- Shifts are immutable once closed: closing twice is an error, and manual
  transactions are rejected on a closed shift
- expected = opening + income - expense - withdrawal
             + cash payments on orders attributed to the shift,
               created at or after the shift opened
- difference = counted - expected (negative = shortfall)
- Bad close input is rejected before anything is loaded or mutated
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import NotFoundError, PermissionDeniedError, ValidationError
from ..extensions import db
from ..models import CashRegisterShift, CashTransaction, Order, Payment, User
from ..money import format_cents, require_cents
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .payment_service import METHOD_CARD, METHOD_CASH, PAYMENT_COMPLETED


class ShiftError(ValidationError):
    """Raised for shift management errors."""
    pass


class StaleUserError(ValidationError):
    """Raised when the acting user no longer exists or was deactivated."""

    def __init__(self):
        super().__init__("Your session is out of date. Please sign out and sign in again.")


# =============================================================================
# TRANSACTION TYPES (CONSTANTS)
# =============================================================================

TXN_INCOME = "INCOME"
TXN_EXPENSE = "EXPENSE"
TXN_WITHDRAWAL = "WITHDRAWAL"

VALID_TRANSACTION_TYPES = [TXN_INCOME, TXN_EXPENSE, TXN_WITHDRAWAL]
OUTFLOW_TYPES = (TXN_EXPENSE, TXN_WITHDRAWAL)


# =============================================================================
# DENOMINATIONS
# =============================================================================

# Bills and coins in circulation, value in cents
DENOMINATIONS = {
    "s200": 20000,
    "s100": 10000,
    "s50": 5000,
    "s20": 2000,
    "s10": 1000,
    "c5": 500,
    "c2": 200,
    "c1": 100,
    "c050": 50,
    "c020": 20,
    "c010": 10,
}


def validate_denominations(breakdown: dict | None) -> dict | None:
    """
    Check a count-by-denomination dict; missing keys count as zero.

    Raises:
        ShiftError: Unknown key or a count that is not a non-negative integer
    """
    if breakdown is None:
        return None
    if not isinstance(breakdown, dict):
        raise ShiftError("denominations must be an object of counts")

    unknown = sorted(set(breakdown) - set(DENOMINATIONS))
    if unknown:
        raise ShiftError(f"Unknown denominations: {', '.join(unknown)}")

    counts = {}
    for key in DENOMINATIONS:
        count = breakdown.get(key, 0)
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise ShiftError(f"Count for {key} must be a non-negative integer")
        counts[key] = count
    return counts


def denominations_total(breakdown: dict) -> int:
    return sum(DENOMINATIONS[key] * count for key, count in breakdown.items())


# =============================================================================
# SHIFT LIFECYCLE
# =============================================================================

def get_open_shift(user_id: int) -> CashRegisterShift | None:
    """Get the user's currently open shift, if any."""
    return db.session.query(CashRegisterShift).filter(
        CashRegisterShift.user_id == user_id,
        CashRegisterShift.closed_at.is_(None),
    ).first()


def get_restaurant_shift(restaurant_id: int, shift_id: int, *, lock: bool = False) -> CashRegisterShift:
    query = db.session.query(CashRegisterShift).filter_by(id=shift_id, restaurant_id=restaurant_id)
    if lock:
        query = lock_for_update(query)
    shift = query.first()
    if not shift:
        raise NotFoundError("Cash register shift not found")
    return shift


def open_shift(
    restaurant_id: int,
    user_id: int,
    opening_cash_cents: int,
    turn: str,
    notes: str | None = None,
) -> CashRegisterShift:
    """
    Open a shift for a cashier.

    Raises:
        StaleUserError: The user id no longer maps to an active user of
            this restaurant (the client must sign in again)
        ShiftError: The user already holds an open shift, or bad input
    """
    opening_cash_cents = require_cents(opening_cash_cents, "opening_cash_cents")
    turn = (turn or "").strip().upper()
    if not turn:
        raise ShiftError("turn is required")

    user = db.session.get(User, user_id)
    if not user or not user.is_active or user.restaurant_id != restaurant_id:
        current_app.logger.warning("Shift open refused: stale user id %s", user_id)
        raise StaleUserError()

    existing = get_open_shift(user_id)
    if existing:
        raise ShiftError(
            "You already have an open cash register shift. Close it before opening a new one.",
            {"shift_id": existing.id},
        )

    shift = CashRegisterShift(
        restaurant_id=restaurant_id,
        user_id=user_id,
        turn=turn,
        opening_cash_cents=opening_cash_cents,
        opened_at=utcnow(),
        notes=notes,
    )
    db.session.add(shift)
    try:
        db.session.commit()
    except IntegrityError:
        # Lost the race against a concurrent open for the same user
        db.session.rollback()
        raise ShiftError("You already have an open cash register shift. Close it before opening a new one.")

    current_app.logger.info(
        "Shift %s opened by user %s (%s, opening %s)",
        shift.id, user_id, turn, opening_cash_cents,
    )
    return shift


def compute_expected_cash(shift: CashRegisterShift) -> int:
    """
    Cash that should be in the drawer right now for this shift.

    Payments created before the shift opened are left out even when their
    order is attributed to the shift.
    """
    income = _transactions_total(shift.id, (TXN_INCOME,))
    outflow = _transactions_total(shift.id, OUTFLOW_TYPES)
    cash_sales = _shift_payments_total(shift, methods=(METHOD_CASH,))
    return shift.opening_cash_cents + income - outflow + cash_sales


def _transactions_total(shift_id: int, types) -> int:
    return int(db.session.query(
        func.coalesce(func.sum(CashTransaction.amount_cents), 0)
    ).filter(
        CashTransaction.shift_id == shift_id,
        CashTransaction.transaction_type.in_(types),
    ).scalar() or 0)


def _shift_payments_query(shift: CashRegisterShift):
    query = db.session.query(Payment).join(Order, Payment.order_id == Order.id).filter(
        Order.cash_register_shift_id == shift.id,
        Payment.status == PAYMENT_COMPLETED,
        Payment.created_at >= shift.opened_at,
    )
    if shift.closed_at is not None:
        query = query.filter(Payment.created_at <= shift.closed_at)
    return query


def _shift_payments_total(shift: CashRegisterShift, methods=None, exclude_methods=None) -> int:
    query = _shift_payments_query(shift).with_entities(func.coalesce(func.sum(Payment.amount_cents), 0))
    if methods:
        query = query.filter(Payment.method.in_(methods))
    if exclude_methods:
        query = query.filter(Payment.method.notin_(exclude_methods))
    return int(query.scalar() or 0)


def close_shift(
    restaurant_id: int,
    shift_id: int,
    closed_by_user_id: int,
    counted_cash_cents: int | None = None,
    denominations: dict | None = None,
    notes: str | None = None,
    *,
    manager_override: bool = False,
) -> CashRegisterShift:
    """
    Close a shift and reconcile the drawer.

    Args:
        counted_cash_cents: Cash physically counted. When omitted it is
            derived from the denomination breakdown.
        denominations: Optional count by denomination (see DENOMINATIONS)
        manager_override: Allows closing a shift owned by another user

    Raises:
        ShiftError: Missing/negative counted cash, bad breakdown, or the
            shift is already closed (nothing is written)
        NotFoundError: Shift missing or owned by another restaurant
        PermissionDeniedError: Another user's shift without override
    """
    denominations = validate_denominations(denominations)
    if counted_cash_cents is None and denominations is not None:
        counted_cash_cents = denominations_total(denominations)
    if counted_cash_cents is None:
        raise ShiftError("counted_cash_cents is required")
    counted_cash_cents = require_cents(counted_cash_cents, "counted_cash_cents")

    def _op():
        shift = get_restaurant_shift(restaurant_id, shift_id, lock=True)

        if not shift.is_open:
            raise ShiftError("Shift is already closed")

        if shift.user_id != closed_by_user_id and not manager_override:
            raise PermissionDeniedError(
                "Only the shift owner or a manager can close this shift",
                {"required_permission": "cash_register.manage"},
            )

        expected = compute_expected_cash(shift)

        shift.closing_cash_cents = counted_cash_cents
        shift.expected_cash_cents = expected
        shift.difference_cents = counted_cash_cents - expected
        shift.denomination_breakdown = denominations
        shift.closed_at = utcnow()
        shift.closed_by_user_id = closed_by_user_id
        if notes:
            shift.notes = f"{shift.notes}\nClose: {notes}" if shift.notes else f"Close: {notes}"

        db.session.commit()
        return shift

    shift = run_with_retry(_op)

    symbol = current_app.config.get("CURRENCY_SYMBOL", "S/")
    current_app.logger.info(
        "Shift %s closed: expected %s, counted %s, difference %s",
        shift.id,
        format_cents(shift.expected_cash_cents, symbol),
        format_cents(shift.closing_cash_cents, symbol),
        format_cents(shift.difference_cents, symbol),
    )
    if shift.difference_cents:
        current_app.logger.warning(
            "Shift %s (user %s) closed with a cash %s of %s",
            shift.id, shift.user_id,
            "shortfall" if shift.difference_cents < 0 else "overage",
            format_cents(abs(shift.difference_cents), symbol),
        )
    return shift


# =============================================================================
# MANUAL CASH MOVEMENTS
# =============================================================================

def add_manual_transaction(
    restaurant_id: int,
    shift_id: int,
    user_id: int,
    transaction_type: str,
    amount_cents: int,
    concept: str,
    reference: str | None = None,
) -> CashTransaction:
    """
    Record income, an expense or a withdrawal on an open shift.

    Raises:
        ShiftError: Closed shift, unknown type, or empty concept
    """
    transaction_type = (transaction_type or "").upper()
    if transaction_type not in VALID_TRANSACTION_TYPES:
        raise ShiftError(f"Invalid transaction type: {transaction_type}. Must be one of {VALID_TRANSACTION_TYPES}")
    amount_cents = require_cents(amount_cents, "amount_cents", allow_zero=False)
    if not concept or not concept.strip():
        raise ShiftError("concept is required")

    def _op():
        shift = get_restaurant_shift(restaurant_id, shift_id, lock=True)
        if not shift.is_open:
            raise ShiftError("Cannot add transactions to a closed shift")

        txn = CashTransaction(
            shift_id=shift.id,
            created_by_user_id=user_id,
            transaction_type=transaction_type,
            amount_cents=amount_cents,
            concept=concept.strip(),
            reference=reference,
            created_at=utcnow(),
        )
        db.session.add(txn)
        db.session.commit()
        return txn

    txn = run_with_retry(_op)
    current_app.logger.info(
        "Cash %s of %s on shift %s: %s", transaction_type, amount_cents, shift_id, txn.concept,
    )
    return txn


# =============================================================================
# REPORTING
# =============================================================================

def get_shift_summary(restaurant_id: int, shift_id: int) -> dict:
    """
    Get a shift summary.

    Returns:
        - shift: Shift details
        - cash_sales_cents / card_sales_cents / other_sales_cents
        - income_cents / expenses_cents (expenses include withdrawals)
        - current_cash_cents: What the drawer should hold now
        - transactions: Manual movements, oldest first
    """
    shift = get_restaurant_shift(restaurant_id, shift_id)

    cash_sales = _shift_payments_total(shift, methods=(METHOD_CASH,))
    card_sales = _shift_payments_total(shift, methods=(METHOD_CARD,))
    other_sales = _shift_payments_total(shift, exclude_methods=(METHOD_CASH, METHOD_CARD))
    income = _transactions_total(shift.id, (TXN_INCOME,))
    expenses = _transactions_total(shift.id, OUTFLOW_TYPES)

    transactions = db.session.query(CashTransaction).filter_by(
        shift_id=shift.id
    ).order_by(CashTransaction.created_at.asc(), CashTransaction.id.asc()).all()

    return {
        "shift": shift.to_dict(),
        "cash_sales_cents": cash_sales,
        "card_sales_cents": card_sales,
        "other_sales_cents": other_sales,
        "total_sales_cents": cash_sales + card_sales + other_sales,
        "payments_count": _shift_payments_query(shift).count(),
        "income_cents": income,
        "expenses_cents": expenses,
        "current_cash_cents": shift.opening_cash_cents + cash_sales + income - expenses,
        "transactions": [t.to_dict() for t in transactions],
    }


def get_shift_history(
    restaurant_id: int,
    page: int = 1,
    limit: int = 20,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> dict:
    """Paginated shifts for a restaurant, most recently opened first."""
    page = max(int(page or 1), 1)
    limit = min(max(int(limit or 20), 1), 100)

    query = db.session.query(CashRegisterShift).filter_by(restaurant_id=restaurant_id)
    if start_date:
        query = query.filter(CashRegisterShift.opened_at >= start_date)
    if end_date:
        query = query.filter(CashRegisterShift.opened_at <= end_date)

    total = query.count()
    rows = query.order_by(
        CashRegisterShift.opened_at.desc(), CashRegisterShift.id.desc()
    ).offset((page - 1) * limit).limit(limit).all()

    return {
        "data": [s.to_dict() for s in rows],
        "meta": {
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": (total + limit - 1) // limit,
        },
    }
