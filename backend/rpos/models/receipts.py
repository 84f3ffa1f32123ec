from __future__ import annotations

from ..extensions import db
from rpos.time_utils import to_utc_z


class ReceiptSeries(db.Model):
    """
    Numbered receipt series for one document type.

    current_number is the last number handed out (0 = nothing issued yet).
    It is advanced exclusively by receipt_service.next_receipt_number with a
    single atomic UPDATE and never moves backwards.

    At most one series per (restaurant, document_type) may be active; the
    partial unique index enforces it at the storage layer.
    """
    __tablename__ = "receipt_series"
    __table_args__ = (
        db.UniqueConstraint("restaurant_id", "document_type", "series", name="uq_receipt_series_type_code"),
        db.CheckConstraint("current_number >= 0", name="ck_receipt_series_number_non_negative"),
        db.Index(
            "uq_receipt_series_one_active",
            "restaurant_id",
            "document_type",
            unique=True,
            sqlite_where=db.text("is_active = 1"),
            postgresql_where=db.text("is_active"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    restaurant_id = db.Column(db.Integer, db.ForeignKey("restaurants.id"), nullable=False, index=True)

    document_type = db.Column(db.String(16), nullable=False)  # BOLETA, FACTURA, NOTA_VENTA, TICKET
    series = db.Column(db.String(4), nullable=False)  # e.g. B001, F001
    current_number = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "restaurant_id": self.restaurant_id,
            "document_type": self.document_type,
            "series": self.series,
            "current_number": self.current_number,
            "is_active": self.is_active,
            "updated_at": to_utc_z(self.updated_at),
        }
