# Overview: Flask API routes for receipt series settings; parses input and returns JSON envelopes.

from flask import Blueprint, g

from .. import operations
from ..decorators import envelope_response, json_body, require_auth
from . import missing_fields_error


receipt_series_bp = Blueprint("receipt_series", __name__, url_prefix="/api/receipt-series")


@receipt_series_bp.get("")
@require_auth
def list_series_route():
    return envelope_response(operations.list_receipt_series(g.principal))


@receipt_series_bp.post("")
@require_auth
def create_series_route():
    """
    Create a receipt series.

    Request body:
    {
        "document_type": "BOLETA",
        "series": "B001",
        "current_number": 0,     (optional: last number already used)
        "is_active": true        (optional)
    }
    """
    data = json_body()
    error = missing_fields_error(data, "document_type", "series")
    if error:
        return envelope_response(error)

    result = operations.create_receipt_series(
        g.principal,
        data["document_type"],
        data["series"],
        current_number=data.get("current_number", 0),
        is_active=data.get("is_active", True),
    )
    return envelope_response(result, 201)


@receipt_series_bp.patch("/<int:series_id>")
@require_auth
def update_series_route(series_id: int):
    """Activate/deactivate a series or move its counter forward."""
    data = json_body()
    result = operations.update_receipt_series(
        g.principal,
        series_id,
        is_active=data.get("is_active"),
        current_number=data.get("current_number"),
    )
    return envelope_response(result)


@receipt_series_bp.get("/preview/<string:document_type>")
@require_auth
def preview_number_route(document_type: str):
    """Advisory next number for a document type; nothing is reserved."""
    return envelope_response(operations.preview_receipt_number(g.principal, document_type))
