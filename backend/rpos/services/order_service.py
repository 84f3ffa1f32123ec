# Overview: Order lifecycle manager; status state machine and table occupancy.

"""
Order Lifecycle Manager

WHY: Orders move through the kitchen and service flow and finally settle.
Every move is stamped, and terminal moves release the table once nobody
else is still using it.

STATE MACHINE:
    PENDING -> CONFIRMED -> PREPARING -> READY -> SERVED -> COMPLETED
    any non-terminal state -> CANCELLED

- Moves only go forward; a step may be skipped (e.g. PENDING -> SERVED for
  a bar order), and only the target state's timestamp is stamped.
- COMPLETED and CANCELLED are terminal; no further moves are accepted.
- Money fields are never touched here (discounts and payments own them).
"""

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import func, update

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import DiningTable, Order, Payment, Restaurant
from ..money import require_cents
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .table_service import TABLE_AVAILABLE, TABLE_OCCUPIED, get_restaurant_table, set_table_status


class OrderError(ValidationError):
    """Raised for order lifecycle errors."""
    pass


# =============================================================================
# ORDER STATUS (CONSTANTS)
# =============================================================================

ORDER_PENDING = "PENDING"
ORDER_CONFIRMED = "CONFIRMED"
ORDER_PREPARING = "PREPARING"
ORDER_READY = "READY"
ORDER_SERVED = "SERVED"
ORDER_COMPLETED = "COMPLETED"
ORDER_CANCELLED = "CANCELLED"

FORWARD_SEQUENCE = [
    ORDER_PENDING,
    ORDER_CONFIRMED,
    ORDER_PREPARING,
    ORDER_READY,
    ORDER_SERVED,
    ORDER_COMPLETED,
]

VALID_ORDER_STATUSES = FORWARD_SEQUENCE + [ORDER_CANCELLED]
TERMINAL_STATUSES = frozenset([ORDER_COMPLETED, ORDER_CANCELLED])
NON_TERMINAL_STATUSES = [s for s in VALID_ORDER_STATUSES if s not in TERMINAL_STATUSES]
KITCHEN_STATUSES = [ORDER_PENDING, ORDER_CONFIRMED, ORDER_PREPARING, ORDER_READY]

STATUS_TIMESTAMP_FIELDS = {
    ORDER_CONFIRMED: "confirmed_at",
    ORDER_PREPARING: "preparing_at",
    ORDER_READY: "ready_at",
    ORDER_SERVED: "served_at",
    ORDER_COMPLETED: "completed_at",
    ORDER_CANCELLED: "cancelled_at",
}

ORDER_TYPE_DINE_IN = "DINE_IN"
ORDER_TYPE_TAKEOUT = "TAKEOUT"
ORDER_TYPE_DELIVERY = "DELIVERY"

VALID_ORDER_TYPES = [ORDER_TYPE_DINE_IN, ORDER_TYPE_TAKEOUT, ORDER_TYPE_DELIVERY]


# =============================================================================
# LOOKUPS
# =============================================================================

def get_restaurant_order(restaurant_id: int, order_id: int, *, lock: bool = False) -> Order:
    """
    Load an order scoped to a restaurant.

    An order owned by another restaurant raises the same NotFoundError as a
    missing one, so existence is never leaked across tenants.
    """
    query = db.session.query(Order).filter_by(id=order_id, restaurant_id=restaurant_id)
    if lock:
        query = lock_for_update(query)
    order = query.first()
    if not order:
        raise NotFoundError("Order not found")
    return order


def get_order_by_payment_code(restaurant_id: int, payment_code: str) -> Order:
    """Find an order by its customer-facing payment code (case-insensitive)."""
    code = (payment_code or "").strip().upper()
    if not code:
        raise ValidationError("payment_code is required")

    order = db.session.query(Order).filter_by(restaurant_id=restaurant_id, payment_code=code).first()
    if not order:
        raise NotFoundError("Order not found")
    return order


def get_kitchen_orders(restaurant_id: int) -> list[Order]:
    """Orders the kitchen still has to work on, oldest first."""
    return db.session.query(Order).filter(
        Order.restaurant_id == restaurant_id,
        Order.status.in_(KITCHEN_STATUSES),
    ).order_by(Order.created_at.asc(), Order.id.asc()).all()


def get_pending_payment_orders(restaurant_id: int) -> list[Order]:
    """Served orders that are not fully paid yet."""
    return db.session.query(Order).filter(
        Order.restaurant_id == restaurant_id,
        Order.status == ORDER_SERVED,
        Order.payment_status != "PAID",
    ).order_by(Order.created_at.asc(), Order.id.asc()).all()


# =============================================================================
# ORDER CREATION
# =============================================================================

def _next_order_sequence(restaurant_id: int) -> int:
    """Advance the restaurant's order counter atomically (no commit)."""
    stmt = (
        update(Restaurant)
        .where(Restaurant.id == restaurant_id)
        .values(order_counter=Restaurant.order_counter + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        raise NotFoundError("Restaurant not found")
    return db.session.query(Restaurant.order_counter).filter_by(id=restaurant_id).scalar()


def create_order(
    restaurant_id: int,
    user_id: int,
    subtotal_cents: int,
    tax_cents: int = 0,
    tip_cents: int = 0,
    order_type: str = ORDER_TYPE_DINE_IN,
    table_id: int | None = None,
    customer_name: str | None = None,
    notes: str | None = None,
) -> Order:
    """
    Create a PENDING order.

    The order number (O-0001) and payment code (PAY-0001) come from the
    same atomic counter, so two waiters can never get the same number.
    The table, if any, is marked OCCUPIED; a table that is already occupied
    simply gets another order (split checks share a table).

    Returns:
        The committed order
    """
    subtotal_cents = require_cents(subtotal_cents, "subtotal_cents")
    tax_cents = require_cents(tax_cents, "tax_cents")
    tip_cents = require_cents(tip_cents, "tip_cents")
    # The gross is re-validated as one amount by discounts and payments
    require_cents(subtotal_cents + tax_cents + tip_cents, "total_cents")

    order_type = (order_type or ORDER_TYPE_DINE_IN).upper()
    if order_type not in VALID_ORDER_TYPES:
        raise OrderError(f"Invalid order type: {order_type}. Must be one of {VALID_ORDER_TYPES}")

    def _op():
        table = None
        if table_id is not None:
            table = get_restaurant_table(restaurant_id, table_id, lock=True)

        sequence = _next_order_sequence(restaurant_id)
        total = subtotal_cents + tax_cents + tip_cents

        order = Order(
            restaurant_id=restaurant_id,
            order_number=f"O-{sequence:04d}",
            payment_code=f"PAY-{sequence:04d}",
            status=ORDER_PENDING,
            order_type=order_type,
            payment_status="PENDING",
            subtotal_cents=subtotal_cents,
            tax_cents=tax_cents,
            tip_cents=tip_cents,
            discount_cents=0,
            total_cents=total,
            amount_paid_cents=0,
            table_id=table.id if table else None,
            created_by_user_id=user_id,
            customer_name=customer_name,
            notes=notes,
            created_at=utcnow(),
        )
        db.session.add(order)

        if table:
            set_table_status(table.id, TABLE_OCCUPIED)

        db.session.commit()
        return order

    order = run_with_retry(_op)
    current_app.logger.info(
        "Order %s created for restaurant %s (total=%s, table=%s)",
        order.order_number, restaurant_id, order.total_cents, order.table_id,
    )
    return order


# =============================================================================
# STATUS TRANSITIONS
# =============================================================================

def validate_transition(current_status: str, new_status: str) -> None:
    """
    Raise OrderError unless current_status -> new_status is allowed.
    """
    if new_status not in VALID_ORDER_STATUSES:
        raise OrderError(f"Invalid order status: {new_status}. Must be one of {VALID_ORDER_STATUSES}")

    if current_status in TERMINAL_STATUSES:
        raise OrderError(f"Order is already {current_status} and cannot change status")

    if new_status == ORDER_CANCELLED:
        return

    if FORWARD_SEQUENCE.index(new_status) <= FORWARD_SEQUENCE.index(current_status):
        raise OrderError(f"Cannot move order from {current_status} to {new_status}")


def apply_transition(order: Order, new_status: str) -> Order:
    """
    Move an order to new_status inside the caller's transaction.

    Stamps the status timestamp and, for terminal statuses, releases the
    table when no other order still holds it. Does not commit.
    """
    validate_transition(order.status, new_status)

    order.status = new_status
    stamp_field = STATUS_TIMESTAMP_FIELDS.get(new_status)
    if stamp_field:
        setattr(order, stamp_field, utcnow())

    if new_status in TERMINAL_STATUSES:
        db.session.flush()
        release_table_if_idle(order)

    return order


def transition_order_status(restaurant_id: int, order_id: int, new_status: str) -> Order:
    """
    Change an order's lifecycle status.

    Raises:
        NotFoundError: If the order is missing or belongs to another restaurant
        OrderError: If the order is terminal, the move goes backwards, or the
            status is unknown
    """
    new_status = (new_status or "").upper()

    def _op():
        order = get_restaurant_order(restaurant_id, order_id, lock=True)
        apply_transition(order, new_status)
        db.session.commit()
        return order

    order = run_with_retry(_op)
    current_app.logger.info("Order %s moved to %s", order.order_number, order.status)
    return order


def release_table_if_idle(order: Order) -> bool:
    """
    Free the order's table unless another order on it is still active.

    Returns:
        True if the table was set to AVAILABLE
    """
    if not order.table_id:
        return False

    # Serializes against create_order seating a new order on the same table
    lock_for_update(db.session.query(DiningTable).filter_by(id=order.table_id)).first()

    still_active = db.session.query(func.count(Order.id)).filter(
        Order.table_id == order.table_id,
        Order.id != order.id,
        Order.status.in_(NON_TERMINAL_STATUSES),
    ).scalar() or 0

    if still_active:
        current_app.logger.info(
            "Table %s kept occupied: %s other active order(s)", order.table_id, still_active,
        )
        return False

    set_table_status(order.table_id, TABLE_AVAILABLE)
    return True


def summarize_order(order: Order) -> dict:
    """Order dict plus its completed payments (the payment-code lookup view)."""
    payments = db.session.query(Payment).filter_by(
        order_id=order.id, status="COMPLETED"
    ).order_by(Payment.created_at.desc()).all()

    data = order.to_dict()
    data["payments"] = [p.to_dict() for p in payments]
    return data


# =============================================================================
# KITCHEN FEED
# =============================================================================

class KitchenOrderWatcher:
    """
    Best-effort poller that reports orders new to the kitchen display.

    Delivery is at-least-once: a watcher that is restarted re-announces
    every active order. It carries no transactional guarantees and never
    writes.
    """

    def __init__(self, restaurant_id: int):
        self.restaurant_id = restaurant_id
        self._seen: set[int] = set()

    def prime(self) -> None:
        """Mark currently active orders as already announced."""
        self._seen = {order.id for order in get_kitchen_orders(self.restaurant_id)}

    def poll(self) -> list[Order]:
        """Return kitchen orders not announced yet, and remember them."""
        orders = get_kitchen_orders(self.restaurant_id)
        active_ids = {order.id for order in orders}
        new_orders = [order for order in orders if order.id not in self._seen]
        # Forget orders that left the kitchen so the set stays bounded
        self._seen = (self._seen & active_ids) | {order.id for order in new_orders}
        return new_orders

    def run(self, on_new_orders, *, interval: float | None = None, max_polls: int | None = None) -> None:
        if interval is None:
            interval = current_app.config.get("KITCHEN_POLL_INTERVAL_SECONDS", 3)

        polls = 0
        while max_polls is None or polls < max_polls:
            new_orders = self.poll()
            if new_orders:
                on_new_orders(new_orders)
            # End the read transaction so the next poll sees fresh rows
            db.session.rollback()
            polls += 1
            if max_polls is None or polls < max_polls:
                time.sleep(interval)
