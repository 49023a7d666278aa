# Overview: Flask API routes for purchases, supplier payments and purchase returns.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_principal
from ..errors import TransactionError, TransactionValidationError
from ..responses import error_response, internal_error
from ..services import purchase_service
from ..validation import coerce_amount, coerce_int, coerce_qty, parse_line_items


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")
purchase_returns_bp = Blueprint("purchase_returns", __name__, url_prefix="/api/purchase-returns")


def _purchase_items(raw) -> list[dict]:
    """[{product_id, qty, cost_price?, tax?, reorder_level?, expiry_date?, max_stock?}]"""
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise TransactionValidationError("INVALID_FIELD", "items must be a list", {"field": "items"})

    items = []
    for entry in raw:
        if not isinstance(entry, dict):
            raise TransactionValidationError("INVALID_FIELD", "each item must be an object", {"field": "items"})
        product_id = coerce_int(entry.get("product_id"), "product_id", required=True)
        item = {
            "product_id": product_id,
            "qty": coerce_qty(entry.get("qty", entry.get("quantity")), product_id=product_id),
            "reorder_level": coerce_int(entry.get("reorder_level"), "reorder_level", minimum=0),
            "max_stock": coerce_int(entry.get("max_stock"), "max_stock", minimum=0),
            "expiry_date": entry.get("expiry_date"),
        }
        if entry.get("cost_price") is not None:
            item["cost_price"] = coerce_amount(entry["cost_price"], "cost_price")
        if entry.get("tax") is not None:
            item["tax"] = coerce_amount(entry["tax"], "tax")
        items.append(item)
    return items


@purchases_bp.post("/")
@require_principal
def create_purchase_route():
    """
    Record goods received from a supplier.

    payment_method: cash | bank (paid on receipt) | credit (Accounts Payable)
    """
    try:
        data = request.get_json(silent=True) or {}
        result = purchase_service.create_purchase(
            tenant_id=g.tenant_id,
            supplier_id=coerce_int(data.get("supplier_id"), "supplier_id", required=True),
            items=_purchase_items(data.get("items")),
            payment_method=data.get("payment_method", "credit"),
            invoice_ref=data.get("invoice_ref"),
            created_by=g.principal.id,
        )
        return jsonify(result), 201

    except TransactionError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to record purchase")


@purchases_bp.post("/<int:purchase_id>/payments")
@require_principal
def pay_supplier_route(purchase_id: int):
    try:
        data = request.get_json(silent=True) or {}
        result = purchase_service.pay_supplier(
            tenant_id=g.tenant_id,
            purchase_id=purchase_id,
            amount=data.get("amount"),
            payment_method=data.get("payment_method", "cash"),
            paid_by=g.principal.id,
            note=data.get("note"),
        )
        return jsonify(result), 201

    except TransactionError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to record supplier payment")


@purchase_returns_bp.post("/")
@require_principal
def create_purchase_return_route():
    """Body: {purchase_id, items: [{product_id, qty}], refund_type, reason}"""
    try:
        data = request.get_json(silent=True) or {}
        result = purchase_service.create_purchase_return(
            tenant_id=g.tenant_id,
            purchase_id=coerce_int(data.get("purchase_id"), "purchase_id", required=True),
            items=parse_line_items(data.get("items")),
            refund_type=data.get("refund_type", "cash"),
            reason=data.get("reason"),
            created_by=g.principal.id,
        )
        return jsonify(result), 201

    except TransactionError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to process purchase return")
