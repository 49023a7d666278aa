# Overview: Flask API routes for customer returns; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_principal
from ..errors import TransactionError
from ..responses import error_response, internal_error
from ..services import return_service
from ..validation import coerce_int, parse_line_items


returns_bp = Blueprint("returns", __name__, url_prefix="/api/sales-returns")


@returns_bp.post("/")
@require_principal
def create_sales_return_route():
    """
    Process a multi-item return against an invoice.

    Body: {invoice_id, items: [{product_id, qty}], refund_type, reason}
    A total_refund supplied by the client is ignored; the refund is always
    derived from what was paid on the invoice.
    """
    try:
        data = request.get_json(silent=True) or {}
        result = return_service.create_sales_return(
            tenant_id=g.tenant_id,
            invoice_id=coerce_int(data.get("invoice_id"), "invoice_id", required=True),
            items=parse_line_items(data.get("items")),
            refund_type=data.get("refund_type", "cash"),
            reason=data.get("reason"),
            processed_by=g.principal.id,
        )
        return jsonify(result), 201

    except TransactionError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to process sales return")
