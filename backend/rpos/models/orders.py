from __future__ import annotations

from ..extensions import db
from rpos.time_utils import to_utc_z


class Order(db.Model):
    """
    Restaurant order.

    LIFECYCLE: PENDING -> CONFIRMED -> PREPARING -> READY -> SERVED -> COMPLETED,
    CANCELLED from any non-terminal state. Orders are never deleted.

    MONEY (cents): total = subtotal + tax + tip - discount, never negative.
    payment_status and amount_paid_cents are a materialized view of the
    completed payments; they are recomputed on every payment or void.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("restaurant_id", "order_number", name="uq_orders_restaurant_number"),
        db.UniqueConstraint("restaurant_id", "payment_code", name="uq_orders_restaurant_payment_code"),
        db.CheckConstraint("total_cents >= 0", name="ck_orders_total_non_negative"),
        db.Index("ix_orders_table_status", "table_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    restaurant_id = db.Column(db.Integer, db.ForeignKey("restaurants.id"), nullable=False, index=True)

    order_number = db.Column(db.String(32), nullable=False)
    payment_code = db.Column(db.String(32), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    order_type = db.Column(db.String(16), nullable=False, default="DINE_IN")  # DINE_IN, TAKEOUT, DELIVERY
    payment_status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)  # PENDING, PARTIAL, PAID

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    tip_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)

    table_id = db.Column(db.Integer, db.ForeignKey("dining_tables.id"), nullable=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    # Set by the first payment taken while the cashier had an open shift
    cash_register_shift_id = db.Column(db.Integer, db.ForeignKey("cash_register_shifts.id"), nullable=True, index=True)

    customer_name = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    preparing_at = db.Column(db.DateTime(timezone=True), nullable=True)
    ready_at = db.Column(db.DateTime(timezone=True), nullable=True)
    served_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    table = db.relationship("DiningTable", backref=db.backref("orders", lazy=True))
    created_by = db.relationship("User", foreign_keys=[created_by_user_id])
    cash_register_shift = db.relationship("CashRegisterShift", backref=db.backref("orders", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def gross_cents(self) -> int:
        return self.subtotal_cents + self.tax_cents + self.tip_cents

    @property
    def amount_due_cents(self) -> int:
        return self.total_cents - self.amount_paid_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "restaurant_id": self.restaurant_id,
            "order_number": self.order_number,
            "payment_code": self.payment_code,
            "status": self.status,
            "order_type": self.order_type,
            "payment_status": self.payment_status,
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "tip_cents": self.tip_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "amount_due_cents": self.amount_due_cents,
            "table_id": self.table_id,
            "created_by_user_id": self.created_by_user_id,
            "cash_register_shift_id": self.cash_register_shift_id,
            "customer_name": self.customer_name,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "confirmed_at": to_utc_z(self.confirmed_at),
            "preparing_at": to_utc_z(self.preparing_at),
            "ready_at": to_utc_z(self.ready_at),
            "served_at": to_utc_z(self.served_at),
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
        }


class Payment(db.Model):
    """
    One settlement event against an order.

    Created once, never edited: the only later mutation is COMPLETED -> VOIDED.
    receipt_number is minted by the receipt sequencer at insert time and is
    kept even if the payment is voided (it is an audit artifact).
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.UniqueConstraint("restaurant_id", "receipt_number", name="uq_payments_restaurant_receipt"),
        db.CheckConstraint("amount_cents > 0", name="ck_payments_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    restaurant_id = db.Column(db.Integer, db.ForeignKey("restaurants.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    cashier_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    method = db.Column(db.String(16), nullable=False, index=True)  # CASH, CARD, WALLET, TRANSFER, MIXED
    amount_cents = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="COMPLETED", index=True)  # COMPLETED, VOIDED

    receipt_type = db.Column(db.String(16), nullable=True)  # BOLETA, FACTURA, NOTA_VENTA, TICKET
    receipt_number = db.Column(db.String(32), nullable=True)

    customer_doc = db.Column(db.String(32), nullable=True)
    customer_name = db.Column(db.String(255), nullable=True)
    customer_address = db.Column(db.String(255), nullable=True)

    reference = db.Column(db.String(128), nullable=True)  # card auth code, wallet operation id
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    voided_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)

    order = db.relationship("Order", backref=db.backref("payments", lazy=True, order_by="Payment.created_at"))
    cashier = db.relationship("User", foreign_keys=[cashier_user_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "restaurant_id": self.restaurant_id,
            "order_id": self.order_id,
            "cashier_user_id": self.cashier_user_id,
            "method": self.method,
            "amount_cents": self.amount_cents,
            "status": self.status,
            "receipt_type": self.receipt_type,
            "receipt_number": self.receipt_number,
            "customer_doc": self.customer_doc,
            "customer_name": self.customer_name,
            "customer_address": self.customer_address,
            "reference": self.reference,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "voided_at": to_utc_z(self.voided_at),
            "voided_by_user_id": self.voided_by_user_id,
            "void_reason": self.void_reason,
        }
