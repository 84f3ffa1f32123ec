# Overview: Receipt sequencer; atomic, gap-free numbering per document type.

"""
Receipt Sequencer

WHY: Receipt numbers are a legal/audit artifact. For one restaurant and one
document type the numbers handed out must be strictly increasing and never
reused, even when many payments are registered at the same time.

DESIGN PRINCIPLES:
- One active series per (restaurant, document_type); a missing series is a
  configuration problem, not a transient one.
- Increment is a single UPDATE ... SET current_number = current_number + 1,
  never a read-then-write from Python. The row stays write-locked until the
  caller's transaction ends, so the number read back is ours alone.
- next_receipt_number does not commit: the payment ledger mints inside the
  same transaction as the payment insert, so a failed insert rolls the
  counter back with it.
- preview_next_number is advisory only; two previews can show the same value.
"""

from __future__ import annotations

import re

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import ConfigurationError, NotFoundError, ValidationError
from ..extensions import db
from ..models import ReceiptSeries
from .concurrency import run_with_retry


class ReceiptSeriesError(ValidationError):
    """Raised for invalid receipt series configuration requests."""
    pass


class NoActiveSeriesError(ConfigurationError):
    """Raised when no active series exists for a document type."""
    pass


# =============================================================================
# DOCUMENT TYPES (CONSTANTS)
# =============================================================================

DOC_BOLETA = "BOLETA"
DOC_FACTURA = "FACTURA"
DOC_NOTA_VENTA = "NOTA_VENTA"
DOC_TICKET = "TICKET"

VALID_DOCUMENT_TYPES = [DOC_BOLETA, DOC_FACTURA, DOC_NOTA_VENTA, DOC_TICKET]

SERIES_CODE_PATTERN = re.compile(r"^[A-Z0-9]{4}$")


def format_receipt_number(series: str, number: int, pad: int | None = None) -> str:
    """Render e.g. ("B001", 42) as "B001-00000042"."""
    if pad is None:
        pad = current_app.config.get("RECEIPT_NUMBER_PAD", 8)
    return f"{series}-{number:0{pad}d}"


def _validate_document_type(document_type: str | None) -> str:
    if not document_type:
        raise ReceiptSeriesError("document_type is required")
    document_type = document_type.upper()
    if document_type not in VALID_DOCUMENT_TYPES:
        raise ReceiptSeriesError(
            f"Invalid document type: {document_type}. Must be one of {VALID_DOCUMENT_TYPES}"
        )
    return document_type


def get_active_series(restaurant_id: int, document_type: str) -> ReceiptSeries | None:
    return db.session.query(ReceiptSeries).filter_by(
        restaurant_id=restaurant_id,
        document_type=document_type,
        is_active=True,
    ).first()


# =============================================================================
# NUMBER ISSUANCE
# =============================================================================

def next_receipt_number(restaurant_id: int, document_type: str) -> str:
    """
    Atomically advance the active series and return the formatted number.

    Runs inside the caller's transaction and does not commit.

    Raises:
        NoActiveSeriesError: If the restaurant has no active series for the type
    """
    document_type = _validate_document_type(document_type)

    stmt = (
        update(ReceiptSeries)
        .where(
            ReceiptSeries.restaurant_id == restaurant_id,
            ReceiptSeries.document_type == document_type,
            ReceiptSeries.is_active.is_(True),
        )
        .values(current_number=ReceiptSeries.current_number + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)

    if not result.rowcount:
        raise NoActiveSeriesError(
            f"No active receipt series for {document_type}. Configure one in settings before issuing receipts.",
            {"document_type": document_type},
        )

    row = (
        db.session.query(ReceiptSeries.series, ReceiptSeries.current_number)
        .filter_by(restaurant_id=restaurant_id, document_type=document_type, is_active=True)
        .one()
    )
    return format_receipt_number(row.series, row.current_number)


def issue_receipt_number(restaurant_id: int, document_type: str) -> str:
    """Mint a number in its own committed transaction (standalone documents)."""
    def _op() -> str:
        number = next_receipt_number(restaurant_id, document_type)
        db.session.commit()
        return number

    return run_with_retry(_op)


def preview_next_number(restaurant_id: int, document_type: str) -> dict:
    """
    Show the number the next receipt would most likely get.

    ADVISORY: nothing is reserved. A concurrent payment can take this number
    before the caller does.
    """
    document_type = _validate_document_type(document_type)
    series = get_active_series(restaurant_id, document_type)
    if not series:
        raise NoActiveSeriesError(
            f"No active receipt series for {document_type}. Configure one in settings before issuing receipts.",
            {"document_type": document_type},
        )

    next_number = series.current_number + 1
    return {
        "document_type": document_type,
        "series": series.series,
        "next_number": next_number,
        "formatted": format_receipt_number(series.series, next_number),
        "advisory": True,
    }


# =============================================================================
# SERIES ADMINISTRATION
# =============================================================================

def list_series(restaurant_id: int) -> list[ReceiptSeries]:
    return db.session.query(ReceiptSeries).filter_by(
        restaurant_id=restaurant_id
    ).order_by(ReceiptSeries.document_type, ReceiptSeries.series).all()


def create_series(
    restaurant_id: int,
    document_type: str,
    series: str,
    current_number: int = 0,
    is_active: bool = True,
) -> ReceiptSeries:
    """
    Create a receipt series.

    Args:
        document_type: BOLETA, FACTURA, NOTA_VENTA, TICKET
        series: 4 upper-case letters/digits (e.g. "B001")
        current_number: Last number already used elsewhere (0 for a fresh series)
        is_active: Only one active series per document type is allowed
    """
    document_type = _validate_document_type(document_type)
    series = (series or "").strip().upper()
    if not SERIES_CODE_PATTERN.match(series):
        raise ReceiptSeriesError("Series must be exactly 4 upper-case letters or digits")
    if isinstance(current_number, bool) or not isinstance(current_number, int) or current_number < 0:
        raise ReceiptSeriesError("current_number must be a non-negative integer")

    duplicate = db.session.query(ReceiptSeries).filter_by(
        restaurant_id=restaurant_id,
        document_type=document_type,
        series=series,
    ).first()
    if duplicate:
        raise ReceiptSeriesError("A series with this type and code already exists")

    if is_active and get_active_series(restaurant_id, document_type):
        raise ReceiptSeriesError(
            f"{document_type} already has an active series. Deactivate it first."
        )

    row = ReceiptSeries(
        restaurant_id=restaurant_id,
        document_type=document_type,
        series=series,
        current_number=current_number,
        is_active=is_active,
    )
    db.session.add(row)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ReceiptSeriesError("A conflicting receipt series was created concurrently")

    current_app.logger.info(
        "Receipt series %s created for restaurant %s (%s, starts after %s)",
        series, restaurant_id, document_type, current_number,
    )
    return row


def update_series(
    restaurant_id: int,
    series_id: int,
    *,
    is_active: bool | None = None,
    current_number: int | None = None,
) -> ReceiptSeries:
    """
    Activate/deactivate a series or move its counter forward.

    The counter can never be lowered: that would re-issue numbers.
    """
    row = db.session.query(ReceiptSeries).filter_by(id=series_id, restaurant_id=restaurant_id).first()
    if not row:
        raise NotFoundError("Receipt series not found")

    if current_number is not None:
        if isinstance(current_number, bool) or not isinstance(current_number, int):
            raise ReceiptSeriesError("current_number must be an integer")
        if current_number < row.current_number:
            raise ReceiptSeriesError(
                "current_number cannot be lowered; issued numbers would be reused",
                {"current_number": row.current_number},
            )
        row.current_number = current_number

    if is_active is not None and is_active != row.is_active:
        if is_active:
            other = get_active_series(restaurant_id, row.document_type)
            if other and other.id != row.id:
                raise ReceiptSeriesError(
                    f"{row.document_type} already has an active series ({other.series}). Deactivate it first."
                )
        row.is_active = is_active

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ReceiptSeriesError("A conflicting receipt series was activated concurrently")
    return row
