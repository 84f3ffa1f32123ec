# Overview: Payment ledger; records settlements and derives order payment status.

"""
Payment Ledger

WHY: One order can be paid in several parts and with several methods. The
ledger guarantees the money never exceeds what the order is worth, keeps
the order's payment status in sync, mints receipt numbers, and ties cash
settlements to the cashier's open shift for reconciliation.

DESIGN PRINCIPLES:
- Payments are separate from orders (many-to-one relationship)
- Split payments: any number of partial payments up to the order total
- No over-payment: sum(completed payments) <= order.total, always. A request
  that would exceed it is rejected with the remaining balance
- Payment rows are immutable except COMPLETED -> VOIDED
- order.payment_status / amount_paid_cents are recomputed from the
  authoritative payment sum on every add or void, never trusted on their own
- The order row is locked (and version-checked) for the whole
  read-balance / decide / write sequence
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func, or_, update

from ..errors import ValidationError, NotFoundError
from ..extensions import db
from ..models import CashRegisterShift, Order, Payment
from ..money import format_cents, require_cents
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .order_service import ORDER_SERVED, ORDER_COMPLETED, ORDER_CANCELLED, apply_transition, get_restaurant_order
from .receipt_service import DOC_BOLETA, DOC_FACTURA, VALID_DOCUMENT_TYPES, next_receipt_number


class PaymentError(ValidationError):
    """Raised for payment operation errors."""
    pass


class OverpaymentError(PaymentError):
    """Raised when a payment would exceed the order's remaining balance."""

    def __init__(self, remaining_cents: int, symbol: str = "S/"):
        super().__init__(
            f"Payment exceeds the order balance. Remaining: {format_cents(remaining_cents, symbol)}",
            {"remaining_cents": remaining_cents},
        )
        self.remaining_cents = remaining_cents


# =============================================================================
# PAYMENT METHODS (CONSTANTS)
# =============================================================================

METHOD_CASH = "CASH"
METHOD_CARD = "CARD"
METHOD_WALLET = "WALLET"
METHOD_TRANSFER = "TRANSFER"
METHOD_MIXED = "MIXED"

VALID_PAYMENT_METHODS = [
    METHOD_CASH,
    METHOD_CARD,
    METHOD_WALLET,
    METHOD_TRANSFER,
    METHOD_MIXED,
]


# =============================================================================
# STATUS (CONSTANTS)
# =============================================================================

PAYMENT_COMPLETED = "COMPLETED"
PAYMENT_VOIDED = "VOIDED"

PAYMENT_STATUS_PENDING = "PENDING"
PAYMENT_STATUS_PARTIAL = "PARTIAL"
PAYMENT_STATUS_PAID = "PAID"


def derive_payment_status(total_paid_cents: int, total_cents: int) -> str:
    """
    PAID once the paid sum reaches the total, PARTIAL while something but
    not everything is paid, PENDING otherwise.
    """
    if total_paid_cents >= total_cents and total_paid_cents > 0:
        return PAYMENT_STATUS_PAID
    if total_paid_cents > 0:
        return PAYMENT_STATUS_PARTIAL
    return PAYMENT_STATUS_PENDING


def completed_total(order_id: int) -> int:
    """Authoritative sum of completed payments for an order."""
    return int(db.session.query(
        func.coalesce(func.sum(Payment.amount_cents), 0)
    ).filter(
        Payment.order_id == order_id,
        Payment.status == PAYMENT_COMPLETED,
    ).scalar() or 0)


def _validate_receipt_fields(receipt_type: str | None, customer_doc: str | None, customer_name: str | None) -> str | None:
    if not receipt_type:
        return None
    receipt_type = receipt_type.upper()
    if receipt_type not in VALID_DOCUMENT_TYPES:
        raise PaymentError(f"Invalid receipt type: {receipt_type}. Must be one of {VALID_DOCUMENT_TYPES}")
    if receipt_type == DOC_FACTURA and (not customer_doc or not customer_name):
        raise PaymentError("FACTURA requires the customer's tax id and business name")
    if receipt_type == DOC_BOLETA and not customer_doc:
        raise PaymentError("BOLETA requires the customer's document number")
    return receipt_type


# =============================================================================
# PAYMENT REGISTRATION
# =============================================================================

def register_payment(
    restaurant_id: int,
    order_id: int,
    cashier_user_id: int,
    method: str,
    amount_cents: int,
    reference: str | None = None,
    receipt_type: str | None = None,
    customer_doc: str | None = None,
    customer_name: str | None = None,
    customer_address: str | None = None,
    notes: str | None = None,
) -> tuple[Payment, Order]:
    """
    Record a payment against an order.

    Steps, all in one transaction with the order row locked:
    1. Load the order (tenant-scoped) and the completed-payment sum
    2. Reject if prior + amount > total (OverpaymentError with remaining)
    3. Mint a receipt number when a receipt type is requested
    4. Insert the COMPLETED payment
    5. Update payment status; a PAID + SERVED order auto-completes
    6. Attribute the order to the cashier's open shift (first time only)

    Returns:
        (payment, order)

    Raises:
        NotFoundError: Order missing or owned by another restaurant
        OverpaymentError: Amount exceeds the remaining balance
        PaymentError: Invalid method/amount/receipt data or order state
        NoActiveSeriesError: Receipt type requested but no active series
    """
    method = (method or "").upper()
    if method not in VALID_PAYMENT_METHODS:
        raise PaymentError(f"Invalid payment method: {method}. Must be one of {VALID_PAYMENT_METHODS}")
    amount_cents = require_cents(amount_cents, "amount_cents", allow_zero=False)
    receipt_type = _validate_receipt_fields(receipt_type, customer_doc, customer_name)

    symbol = current_app.config.get("CURRENCY_SYMBOL", "S/")

    def _op():
        minted_number = None
        try:
            order = get_restaurant_order(restaurant_id, order_id, lock=True)

            if order.status == ORDER_CANCELLED:
                raise PaymentError("Cannot add payment to a CANCELLED order")

            prior_paid = completed_total(order.id)
            remaining = order.total_cents - prior_paid
            if prior_paid + amount_cents > order.total_cents:
                raise OverpaymentError(max(remaining, 0), symbol)

            new_paid = prior_paid + amount_cents
            payment_status = derive_payment_status(new_paid, order.total_cents)

            if receipt_type:
                minted_number = next_receipt_number(restaurant_id, receipt_type)

            # Attribution happens before the payment is stamped so a payment
            # that lost the race to a shift close falls outside its window
            if order.cash_register_shift_id is None:
                open_shift = get_user_open_shift(cashier_user_id)
                if open_shift and claim_open_shift(open_shift.id):
                    order.cash_register_shift_id = open_shift.id
            else:
                claim_open_shift(order.cash_register_shift_id)

            payment = Payment(
                restaurant_id=restaurant_id,
                order_id=order.id,
                cashier_user_id=cashier_user_id,
                method=method,
                amount_cents=amount_cents,
                status=PAYMENT_COMPLETED,
                receipt_type=receipt_type,
                receipt_number=minted_number,
                customer_doc=customer_doc,
                customer_name=customer_name,
                customer_address=customer_address,
                reference=reference,
                notes=notes,
                created_at=utcnow(),
            )
            db.session.add(payment)

            order.amount_paid_cents = new_paid
            order.payment_status = payment_status

            if payment_status == PAYMENT_STATUS_PAID and order.status == ORDER_SERVED:
                apply_transition(order, ORDER_COMPLETED)

            db.session.commit()
            return payment, order
        except Exception:
            if minted_number:
                # The rollback returns the counter, but the number may already
                # have been shown to the customer; leave a trace to reconcile.
                current_app.logger.error(
                    "Receipt number %s (%s, restaurant %s) was minted but the payment for order %s "
                    "was not persisted; check the series for a gap",
                    minted_number, receipt_type, restaurant_id, order_id,
                )
            raise

    payment, order = run_with_retry(_op)

    current_app.logger.info(
        "Payment %s registered on order %s: %s %s -> %s",
        payment.id, order.order_number, payment.method, payment.amount_cents, order.payment_status,
    )
    return payment, order


def get_user_open_shift(user_id: int) -> CashRegisterShift | None:
    return db.session.query(CashRegisterShift).filter(
        CashRegisterShift.user_id == user_id,
        CashRegisterShift.closed_at.is_(None),
    ).first()


def claim_open_shift(shift_id: int) -> bool:
    """
    Bump an open shift's version inside the current transaction.

    A close that already read the shift then fails its version check and
    retries with this payment counted. Returns False when the shift was
    closed first; the caller must not attribute anything to it.
    """
    stmt = (
        update(CashRegisterShift)
        .where(
            CashRegisterShift.id == shift_id,
            CashRegisterShift.closed_at.is_(None),
        )
        .values(version_id=CashRegisterShift.version_id + 1)
        .execution_options(synchronize_session=False)
    )
    return bool(db.session.execute(stmt).rowcount)


# =============================================================================
# PAYMENT VOIDS
# =============================================================================

def void_payment(restaurant_id: int, payment_id: int, user_id: int, reason: str) -> tuple[Payment, Order]:
    """
    Void a completed payment and recompute the order's payment status.

    The receipt number stays on the voided row; a lifecycle status that was
    already COMPLETED is left as it is.
    """
    if not reason or not reason.strip():
        raise PaymentError("A reason is required to void a payment")

    def _op():
        payment = lock_for_update(
            db.session.query(Payment).filter_by(id=payment_id, restaurant_id=restaurant_id)
        ).first()
        if not payment:
            raise NotFoundError("Payment not found")
        if payment.status == PAYMENT_VOIDED:
            raise PaymentError(f"Payment {payment_id} already voided")

        order = get_restaurant_order(restaurant_id, payment.order_id, lock=True)

        payment.status = PAYMENT_VOIDED
        payment.voided_at = utcnow()
        payment.voided_by_user_id = user_id
        payment.void_reason = reason.strip()
        db.session.flush()

        _refresh_order_payment_status(order)

        db.session.commit()
        return payment, order

    payment, order = run_with_retry(_op)
    current_app.logger.warning(
        "Payment %s on order %s voided by user %s: %s",
        payment.id, order.order_number, user_id, payment.void_reason,
    )
    return payment, order


def _refresh_order_payment_status(order: Order) -> None:
    """Recompute the materialized payment fields from the payment rows."""
    total_paid = completed_total(order.id)
    order.amount_paid_cents = total_paid
    order.payment_status = derive_payment_status(total_paid, order.total_cents)


# =============================================================================
# REPORTING
# =============================================================================

def get_order_payments(restaurant_id: int, order_id: int, include_voided: bool = False) -> list[Payment]:
    order = get_restaurant_order(restaurant_id, order_id)

    query = db.session.query(Payment).filter_by(order_id=order.id)
    if not include_voided:
        query = query.filter_by(status=PAYMENT_COMPLETED)
    return query.order_by(Payment.created_at.desc(), Payment.id.desc()).all()


def get_payment_summary(restaurant_id: int, order_id: int) -> dict:
    """
    Get payment summary for an order.

    Returns:
        - total_cents: What the order is worth
        - paid_cents: Sum of completed payments
        - remaining_cents: Still owed
        - payment_status: PENDING, PARTIAL, PAID
    """
    order = get_restaurant_order(restaurant_id, order_id)
    paid = completed_total(order.id)
    return {
        "order_id": order.id,
        "total_cents": order.total_cents,
        "paid_cents": paid,
        "remaining_cents": order.total_cents - paid,
        "payment_status": derive_payment_status(paid, order.total_cents),
    }


def get_payment_history(
    restaurant_id: int,
    page: int = 1,
    limit: int = 20,
    search: str | None = None,
    method: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> dict:
    """Paginated payment history, newest first."""
    page = max(int(page or 1), 1)
    limit = min(max(int(limit or 20), 1), 100)

    query = db.session.query(Payment).join(Order, Payment.order_id == Order.id).filter(
        Payment.restaurant_id == restaurant_id
    )
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Order.order_number.ilike(pattern),
            Order.payment_code.ilike(pattern),
            Payment.reference.ilike(pattern),
        ))
    if method:
        query = query.filter(Payment.method == method.upper())
    if start_date and end_date:
        query = query.filter(Payment.created_at >= start_date, Payment.created_at <= end_date)

    total = query.count()
    rows = query.order_by(Payment.created_at.desc(), Payment.id.desc()).offset((page - 1) * limit).limit(limit).all()

    return {
        "data": [p.to_dict() for p in rows],
        "meta": {
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": (total + limit - 1) // limit,
        },
    }
