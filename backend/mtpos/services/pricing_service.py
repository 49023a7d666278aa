# Overview: Builds authoritative working lines from catalog prices; client prices are never trusted.

from __future__ import annotations

from ..errors import TransactionNotFoundError, TransactionValidationError
from ..extensions import db
from ..models import Product
from ..money import q2, to_decimal


def load_products(tenant_id: int, product_ids) -> dict[int, Product]:
    """Batch fetch; every id must exist for the tenant."""
    wanted = sorted(set(product_ids))
    if not wanted:
        return {}
    rows = (
        db.session.query(Product)
        .filter(Product.tenant_id == tenant_id, Product.id.in_(wanted))
        .all()
    )
    products = {p.id: p for p in rows}
    missing = [pid for pid in wanted if pid not in products]
    if missing:
        raise TransactionNotFoundError(
            "PRODUCT_NOT_FOUND",
            f"Product not found: {missing[0]}",
            {"product_id": missing[0], "missing": missing},
        )
    return products


def normalize_items(tenant_id: int, request_items: list[dict], products: dict[int, Product] | None = None) -> list[dict]:
    """
    [{product_id, qty}] -> working lines with price (VAT-inclusive unit),
    tax (percent) and cost_price taken from the catalog.

    Repeated product ids stay separate lines, in request order.
    """
    if not request_items:
        raise TransactionValidationError("EMPTY_ITEMS", "No items provided")

    for item in request_items:
        qty = item.get("qty")
        if not isinstance(qty, int) or isinstance(qty, bool) or qty <= 0:
            raise TransactionValidationError(
                "INVALID_QTY", "Quantity must be greater than zero", {"product_id": item.get("product_id")}
            )

    if products is None:
        products = load_products(tenant_id, [item["product_id"] for item in request_items])

    lines = []
    for item in request_items:
        product = products[item["product_id"]]
        lines.append({
            "product_id": product.id,
            "name": product.name,
            "qty": item["qty"],
            "price": q2(product.selling_price),
            "tax": to_decimal(product.tax),
            "cost_price": q2(product.cost_price),
        })
    return lines
