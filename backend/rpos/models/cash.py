from __future__ import annotations

from ..extensions import db
from rpos.time_utils import to_utc_z


class CashRegisterShift(db.Model):
    """
    Cashier shift (cash register session).

    LIFECYCLE:
    - open: closed_at is NULL; manual transactions and cash payments accrue
    - closed: closing/expected/difference are written once, then immutable

    A user holds at most one open shift; the partial unique index on
    (user_id) WHERE closed_at IS NULL closes the check-then-insert race.
    """
    __tablename__ = "cash_register_shifts"
    __table_args__ = (
        db.Index(
            "uq_cash_register_shifts_one_open_per_user",
            "user_id",
            unique=True,
            sqlite_where=db.text("closed_at IS NULL"),
            postgresql_where=db.text("closed_at IS NULL"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    restaurant_id = db.Column(db.Integer, db.ForeignKey("restaurants.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    turn = db.Column(db.String(32), nullable=False)  # MORNING, AFTERNOON, NIGHT, ...

    opening_cash_cents = db.Column(db.Integer, nullable=False, default=0)
    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    # Written once at close
    closing_cash_cents = db.Column(db.Integer, nullable=True)
    expected_cash_cents = db.Column(db.Integer, nullable=True)
    difference_cents = db.Column(db.Integer, nullable=True)  # negative = shortfall
    denomination_breakdown = db.Column(db.JSON, nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("cash_register_shifts", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_open(self) -> bool:
        return self.closed_at is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "restaurant_id": self.restaurant_id,
            "user_id": self.user_id,
            "turn": self.turn,
            "opening_cash_cents": self.opening_cash_cents,
            "opened_at": to_utc_z(self.opened_at),
            "closing_cash_cents": self.closing_cash_cents,
            "expected_cash_cents": self.expected_cash_cents,
            "difference_cents": self.difference_cents,
            "denomination_breakdown": self.denomination_breakdown,
            "closed_at": to_utc_z(self.closed_at),
            "closed_by_user_id": self.closed_by_user_id,
            "notes": self.notes,
            "is_open": self.is_open,
        }


class CashTransaction(db.Model):
    """
    Manual cash movement during a shift (INCOME, EXPENSE, WITHDRAWAL).

    Amounts are always positive; the type decides the sign during
    reconciliation.
    """
    __tablename__ = "cash_transactions"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_cash_transactions_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("cash_register_shifts.id"), nullable=False, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    transaction_type = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    concept = db.Column(db.String(255), nullable=False)
    reference = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    shift = db.relationship(
        "CashRegisterShift",
        backref=db.backref("transactions", lazy=True, order_by="CashTransaction.created_at"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shift_id": self.shift_id,
            "created_by_user_id": self.created_by_user_id,
            "transaction_type": self.transaction_type,
            "amount_cents": self.amount_cents,
            "concept": self.concept,
            "reference": self.reference,
            "created_at": to_utc_z(self.created_at),
        }
