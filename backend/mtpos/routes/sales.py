# Overview: Flask API routes for invoices; parses input and returns JSON responses.

"""Invoice API routes: create, preview, read, tail replay, customer payments."""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_principal
from ..errors import TransactionError
from ..responses import error_response, internal_error
from ..services import payment_service, sales_service
from ..services.deferred_service import run_invoice_tail
from ..validation import coerce_int, parse_line_items


sales_bp = Blueprint("sales", __name__, url_prefix="/api/invoices")


def _cart_from_body(data: dict) -> dict:
    return {
        "items": parse_line_items(data.get("items")),
        "customer_id": coerce_int(data.get("customer_id"), "customer_id"),
        "redeem_points_requested": coerce_int(data.get("redeem_points"), "redeem_points", minimum=0) or 0,
        "coupon_code": (data.get("coupon_code") or "").strip() or None,
        "employee_id": coerce_int(data.get("employee_id"), "employee_id"),
    }


@sales_bp.post("/")
@require_principal
def create_invoice_route():
    """
    Create a sale invoice.

    The synchronous phase commits before the response is sent; ledger, VAT
    and receipt work follows in the deferred tail.
    """
    try:
        data = request.get_json(silent=True) or {}
        cart = _cart_from_body(data)
        payload = sales_service.create_invoice(
            tenant_id=g.tenant_id,
            payment_method=data.get("payment_method", "cash"),
            handled_by=g.principal.id,
            handled_by_name=g.principal.full_name,
            **cart,
        )
        return jsonify(payload), 201

    except TransactionError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to create invoice")


@sales_bp.post("/preview")
@require_principal
def preview_invoice_route():
    """Price a cart without reserving stock, points or a number."""
    try:
        data = request.get_json(silent=True) or {}
        preview = sales_service.preview_invoice(tenant_id=g.tenant_id, **_cart_from_body(data))
        return jsonify(preview), 200

    except TransactionError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to preview invoice")


@sales_bp.get("/<int:invoice_id>")
@require_principal
def get_invoice_route(invoice_id: int):
    try:
        return jsonify(sales_service.get_invoice(g.tenant_id, invoice_id)), 200
    except TransactionError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to load invoice")


@sales_bp.post("/<int:invoice_id>/replay-tail")
@require_principal
def replay_tail_route(invoice_id: int):
    """
    Re-run the deferred tail for an invoice.

    Completed steps are skipped, so this is safe to call repeatedly.
    """
    try:
        sales_service.get_invoice(g.tenant_id, invoice_id)
        outcome = run_invoice_tail(g.tenant_id, invoice_id)
        current_app.logger.info("Tail replayed for invoice %s by principal %s", invoice_id, g.principal.id)
        invoice = sales_service.get_invoice(g.tenant_id, invoice_id)["invoice"]
        return jsonify({"invoice_id": invoice_id, "steps": outcome, "status": invoice["status"]}), 200

    except TransactionError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to replay invoice tail")


@sales_bp.post("/<int:invoice_id>/payments")
@require_principal
def record_payment_route(invoice_id: int):
    """Record a customer payment against a credit invoice."""
    try:
        data = request.get_json(silent=True) or {}
        result = payment_service.record_customer_payment(
            tenant_id=g.tenant_id,
            invoice_id=invoice_id,
            amount=data.get("amount"),
            payment_method=data.get("payment_method", "cash"),
            received_by=g.principal.id,
        )
        return jsonify(result), 201

    except TransactionError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to record customer payment")
