from __future__ import annotations

from ..extensions import db
from rpos.time_utils import to_utc_z


class Restaurant(db.Model):
    """
    Tenant (restaurant).

    Every settlement entity carries restaurant_id as its partition key.
    order_counter backs order numbers and payment codes; it is only ever
    advanced with a single UPDATE ... SET order_counter = order_counter + 1.
    """
    __tablename__ = "restaurants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=False, unique=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    order_counter = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class User(db.Model):
    """
    Staff member as seen by the settlement core.

    Authentication lives outside this service; only identity, tenant and
    role are needed here.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    restaurant_id = db.Column(db.Integer, db.ForeignKey("restaurants.id"), nullable=True, index=True)

    name = db.Column(db.String(128), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True)
    role = db.Column(db.String(32), nullable=False, default="USER")  # ADMIN, MANAGER, WAITER, CASHIER, KITCHEN, USER
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    restaurant = db.relationship("Restaurant", backref=db.backref("users", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "restaurant_id": self.restaurant_id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "is_active": self.is_active,
        }


class DiningTable(db.Model):
    __tablename__ = "dining_tables"
    __table_args__ = (
        db.UniqueConstraint("restaurant_id", "number", name="uq_dining_tables_restaurant_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    restaurant_id = db.Column(db.Integer, db.ForeignKey("restaurants.id"), nullable=False, index=True)
    number = db.Column(db.String(16), nullable=False)
    capacity = db.Column(db.Integer, nullable=False, default=4)
    status = db.Column(db.String(16), nullable=False, default="AVAILABLE")  # AVAILABLE, OCCUPIED, RESERVED

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "restaurant_id": self.restaurant_id,
            "number": self.number,
            "capacity": self.capacity,
            "status": self.status,
        }
