# Overview: Discount codes; validation, amount computation, and application to orders.

"""
Discount Validator / Applicator

WHY: Promotions are entered at the till as codes. A code is only honoured
inside its validity window, within its usage limit and above its minimum
order amount, and it can never push an order total below zero.

DESIGN PRINCIPLES:
- Validation checks run in a fixed order and stop at the first failure:
  exists -> active -> within dates -> usage left -> minimum amount
- The discount is always computed on the gross amount
  (subtotal + tax + tip), so applying a second code replaces the first
  instead of stacking on top of it
- Applying a code mutates the order and bumps usage_count in ONE
  transaction; the bump is a conditional UPDATE guarded by the usage
  limit, so concurrent applications cannot overshoot it
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Discount
from ..money import clamp, format_cents, percentage_of, require_cents
from ..time_utils import utcnow
from .concurrency import run_with_retry
from .order_service import TERMINAL_STATUSES, get_restaurant_order


class DiscountError(ValidationError):
    """Raised when a discount code is invalid or cannot be applied."""
    pass


# =============================================================================
# DISCOUNT TYPES (CONSTANTS)
# =============================================================================

DISCOUNT_PERCENTAGE = "PERCENTAGE"
DISCOUNT_FIXED_AMOUNT = "FIXED_AMOUNT"
DISCOUNT_FREE_ITEM = "FREE_ITEM"

VALID_DISCOUNT_TYPES = [DISCOUNT_PERCENTAGE, DISCOUNT_FIXED_AMOUNT, DISCOUNT_FREE_ITEM]

MAX_PERCENTAGE = 100


def normalize_code(code: str | None) -> str:
    return (code or "").strip().upper()


# =============================================================================
# ADMINISTRATION
# =============================================================================

def _check_discount_fields(
    discount_type: str,
    value: int,
    valid_from: datetime,
    valid_until: datetime,
    min_order_cents: int | None,
    max_discount_cents: int | None,
    usage_limit: int | None,
) -> None:
    if discount_type not in VALID_DISCOUNT_TYPES:
        raise DiscountError(f"Invalid discount type: {discount_type}. Must be one of {VALID_DISCOUNT_TYPES}")
    require_cents(value, "value")
    if discount_type == DISCOUNT_PERCENTAGE and value > MAX_PERCENTAGE:
        raise DiscountError("Percentage discounts cannot exceed 100%")
    if not valid_from or not valid_until:
        raise DiscountError("valid_from and valid_until are required")
    if valid_until <= valid_from:
        raise DiscountError("valid_until must be later than valid_from")
    if min_order_cents is not None:
        require_cents(min_order_cents, "min_order_cents")
    if max_discount_cents is not None:
        require_cents(max_discount_cents, "max_discount_cents")
    if usage_limit is not None and (isinstance(usage_limit, bool) or not isinstance(usage_limit, int) or usage_limit < 1):
        raise DiscountError("usage_limit must be a positive integer")


def create_discount(
    restaurant_id: int,
    code: str,
    name: str,
    discount_type: str,
    value: int,
    valid_from: datetime,
    valid_until: datetime,
    min_order_cents: int | None = None,
    max_discount_cents: int | None = None,
    usage_limit: int | None = None,
    is_active: bool = True,
    applicable_to: list[str] | None = None,
) -> Discount:
    """
    Create a discount code.

    Args:
        code: Stored upper-case; unique per restaurant
        discount_type: PERCENTAGE (value in whole percent), FIXED_AMOUNT
            (value in cents) or FREE_ITEM
    """
    code = normalize_code(code)
    if not code:
        raise DiscountError("code is required")
    if not name or not name.strip():
        raise DiscountError("name is required")
    discount_type = (discount_type or "").upper()
    _check_discount_fields(discount_type, value, valid_from, valid_until, min_order_cents, max_discount_cents, usage_limit)

    existing = db.session.query(Discount).filter_by(restaurant_id=restaurant_id, code=code).first()
    if existing:
        raise DiscountError("A discount with this code already exists")

    discount = Discount(
        restaurant_id=restaurant_id,
        code=code,
        name=name.strip(),
        discount_type=discount_type,
        value=value,
        min_order_cents=min_order_cents,
        max_discount_cents=max_discount_cents,
        usage_limit=usage_limit,
        usage_count=0,
        valid_from=valid_from,
        valid_until=valid_until,
        is_active=is_active,
        applicable_to=applicable_to or ["ALL"],
    )
    db.session.add(discount)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DiscountError("A discount with this code already exists")
    return discount


UPDATABLE_FIELDS = (
    "code", "name", "discount_type", "value", "min_order_cents", "max_discount_cents",
    "usage_limit", "valid_from", "valid_until", "is_active", "applicable_to",
)


def update_discount(restaurant_id: int, discount_id: int, data: dict) -> Discount:
    discount = get_restaurant_discount(restaurant_id, discount_id)

    changes = {key: data[key] for key in UPDATABLE_FIELDS if key in data}
    if "code" in changes:
        changes["code"] = normalize_code(changes["code"])
        if not changes["code"]:
            raise DiscountError("code is required")
        if changes["code"] != discount.code:
            clash = db.session.query(Discount).filter_by(restaurant_id=restaurant_id, code=changes["code"]).first()
            if clash:
                raise DiscountError("A discount with this code already exists")
    if "discount_type" in changes:
        changes["discount_type"] = (changes["discount_type"] or "").upper()

    merged = {key: changes.get(key, getattr(discount, key)) for key in UPDATABLE_FIELDS}
    _check_discount_fields(
        merged["discount_type"], merged["value"], merged["valid_from"], merged["valid_until"],
        merged["min_order_cents"], merged["max_discount_cents"], merged["usage_limit"],
    )
    if merged["usage_limit"] is not None and merged["usage_limit"] < discount.usage_count:
        raise DiscountError(
            "usage_limit cannot be lower than the current usage count",
            {"usage_count": discount.usage_count},
        )

    for key, value in changes.items():
        setattr(discount, key, value)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DiscountError("A discount with this code already exists")
    return discount


def toggle_discount_active(restaurant_id: int, discount_id: int) -> Discount:
    discount = get_restaurant_discount(restaurant_id, discount_id)
    discount.is_active = not discount.is_active
    db.session.commit()
    return discount


def list_discounts(restaurant_id: int, active: bool | None = None, discount_type: str | None = None) -> list[Discount]:
    query = db.session.query(Discount).filter_by(restaurant_id=restaurant_id)
    if active is not None:
        query = query.filter_by(is_active=active)
    if discount_type:
        query = query.filter_by(discount_type=discount_type.upper())
    return query.order_by(Discount.created_at.desc(), Discount.id.desc()).all()


def get_restaurant_discount(restaurant_id: int, discount_id: int) -> Discount:
    discount = db.session.query(Discount).filter_by(id=discount_id, restaurant_id=restaurant_id).first()
    if not discount:
        raise NotFoundError("Discount not found")
    return discount


# =============================================================================
# VALIDATION
# =============================================================================

def compute_discount_amount(discount: Discount, gross_cents: int) -> int:
    """
    Raw amount by type, capped by max_discount_cents, then by the gross
    amount itself so the total can never go negative.
    """
    if discount.discount_type == DISCOUNT_PERCENTAGE:
        amount = percentage_of(gross_cents, discount.value)
    elif discount.discount_type == DISCOUNT_FIXED_AMOUNT:
        amount = discount.value
    else:
        # FREE_ITEM is comped on the item line, not as an order-level amount
        amount = 0

    if discount.max_discount_cents is not None:
        amount = min(amount, discount.max_discount_cents)
    return clamp(amount, 0, max(gross_cents, 0))


def validate_discount_code(restaurant_id: int, code: str, gross_cents: int, *, now: datetime | None = None) -> tuple[Discount, int]:
    """
    Check a code against an order's gross amount.

    Returns:
        (discount, discount_amount_cents)

    Raises:
        DiscountError: At the first failed check, with a message for the cashier
    """
    gross_cents = require_cents(gross_cents, "gross_cents")
    code = normalize_code(code)
    if not code:
        raise DiscountError("Discount code is required")

    discount = db.session.query(Discount).filter_by(restaurant_id=restaurant_id, code=code).first()
    if not discount:
        raise DiscountError("Discount code not found")

    if not discount.is_active:
        raise DiscountError("This code is no longer active")

    now = now or utcnow()
    if now < discount.valid_from:
        raise DiscountError("This code is not available yet")
    if now > discount.valid_until:
        raise DiscountError("This code has expired")

    if discount.usage_limit is not None and discount.usage_count >= discount.usage_limit:
        raise DiscountError("This code has reached its usage limit")

    min_amount = discount.min_order_cents or 0
    if gross_cents < min_amount:
        symbol = current_app.config.get("CURRENCY_SYMBOL", "S/")
        raise DiscountError(
            f"The minimum order for this code is {format_cents(min_amount, symbol)}",
            {"min_order_cents": min_amount},
        )

    return discount, compute_discount_amount(discount, gross_cents)


# =============================================================================
# APPLICATION
# =============================================================================

def _increment_usage(discount_id: int) -> None:
    """
    usage_count += 1, only while under the limit.

    A zero rowcount means a concurrent application took the last use.
    """
    stmt = (
        update(Discount)
        .where(
            Discount.id == discount_id,
            or_(Discount.usage_limit.is_(None), Discount.usage_count < Discount.usage_limit),
        )
        .values(usage_count=Discount.usage_count + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        raise DiscountError("This code has reached its usage limit")


def apply_discount_to_order(restaurant_id: int, order_id: int, code: str):
    """
    Apply a code to an order, replacing any discount already on it.

    order.discount = computed amount on the gross (subtotal + tax + tip)
    order.total    = gross - discount

    Returns:
        (order, discount, discount_amount_cents)

    Raises:
        NotFoundError: Order missing or owned by another restaurant
        DiscountError: Invalid code, terminal/settled order, or the new
            total would fall below what has already been paid
    """
    def _op():
        order = get_restaurant_order(restaurant_id, order_id, lock=True)

        if order.status in TERMINAL_STATUSES:
            raise DiscountError(f"Cannot apply a discount to a {order.status} order")
        if order.payment_status == "PAID":
            raise DiscountError("Cannot apply a discount to a fully paid order")

        gross = order.gross_cents
        discount, amount = validate_discount_code(restaurant_id, code, gross)

        new_total = gross - amount
        if new_total < order.amount_paid_cents:
            raise DiscountError(
                "The discounted total would be lower than the amount already paid",
                {"amount_paid_cents": order.amount_paid_cents, "new_total_cents": new_total},
            )

        order.discount_cents = amount
        order.total_cents = new_total

        symbol = current_app.config.get("CURRENCY_SYMBOL", "S/")
        note = f"Discount: {discount.code} (-{format_cents(amount, symbol)})"
        current_notes = order.notes or ""
        if discount.code not in current_notes:
            order.notes = f"{current_notes}\n{note}" if current_notes else note

        _increment_usage(discount.id)

        db.session.commit()
        return order, discount, amount

    order, discount, amount = run_with_retry(_op)
    current_app.logger.info(
        "Discount %s applied to order %s: -%s, new total %s",
        discount.code, order.order_number, amount, order.total_cents,
    )
    return order, discount, amount
