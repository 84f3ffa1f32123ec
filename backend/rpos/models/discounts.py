from __future__ import annotations

from ..extensions import db
from rpos.time_utils import to_utc_z


class Discount(db.Model):
    """
    Discount code.

    Codes are stored upper-case and are unique per restaurant.
    value is cents for FIXED_AMOUNT and whole percent for PERCENTAGE
    (10 = 10%). FREE_ITEM carries no monetary value here.

    usage_count is only advanced by a conditional UPDATE, so the check
    constraint below holds even under concurrent applications.
    """
    __tablename__ = "discounts"
    __table_args__ = (
        db.UniqueConstraint("restaurant_id", "code", name="uq_discounts_restaurant_code"),
        db.CheckConstraint("usage_limit IS NULL OR usage_count <= usage_limit", name="ck_discounts_usage_within_limit"),
        db.CheckConstraint("valid_from < valid_until", name="ck_discounts_validity_window"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    restaurant_id = db.Column(db.Integer, db.ForeignKey("restaurants.id"), nullable=False, index=True)

    code = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)

    discount_type = db.Column(db.String(16), nullable=False)  # PERCENTAGE, FIXED_AMOUNT, FREE_ITEM
    value = db.Column(db.Integer, nullable=False, default=0)

    min_order_cents = db.Column(db.Integer, nullable=True)
    max_discount_cents = db.Column(db.Integer, nullable=True)

    usage_limit = db.Column(db.Integer, nullable=True)
    usage_count = db.Column(db.Integer, nullable=False, default=0)

    valid_from = db.Column(db.DateTime(timezone=True), nullable=False)
    valid_until = db.Column(db.DateTime(timezone=True), nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    applicable_to = db.Column(db.JSON, nullable=False, default=lambda: ["ALL"])

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "restaurant_id": self.restaurant_id,
            "code": self.code,
            "name": self.name,
            "discount_type": self.discount_type,
            "value": self.value,
            "min_order_cents": self.min_order_cents,
            "max_discount_cents": self.max_discount_cents,
            "usage_limit": self.usage_limit,
            "usage_count": self.usage_count,
            "valid_from": to_utc_z(self.valid_from),
            "valid_until": to_utc_z(self.valid_until),
            "is_active": self.is_active,
            "applicable_to": self.applicable_to,
        }
