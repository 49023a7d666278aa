# Overview: Stock levels and the append-only stock movement journal.

from __future__ import annotations

from collections import OrderedDict

from sqlalchemy import update

from ..errors import TransactionNotFoundError, TransactionValidationError
from ..extensions import db
from ..models import Inventory, StockMovement
from .concurrency import insert_or_ignore


MOVEMENT_SIGNS = {
    "purchase": 1,
    "sale": -1,
    "purchase_return": -1,
    "sale_return": 1,
}


def _aggregate(lines) -> "OrderedDict[int, int]":
    """(product_id, qty) pairs -> per-product totals, first-seen order."""
    totals: "OrderedDict[int, int]" = OrderedDict()
    for product_id, qty in lines:
        totals[product_id] = totals.get(product_id, 0) + qty
    return totals


def get_quantity_on_hand(tenant_id: int, product_id: int) -> int | None:
    return (
        db.session.query(Inventory.quantity)
        .filter_by(tenant_id=tenant_id, product_id=product_id)
        .scalar()
    )


def decrement_stock(tenant_id: int, lines) -> list[dict]:
    """
    Take stock out for each (product_id, qty).

    The decrement is a compare-and-set (quantity >= qty) so two sales racing
    for the last unit cannot both succeed. A missing inventory row refuses
    the whole operation. Returns low-stock alerts for rows left at or below
    their reorder level.
    """
    alerts = []
    for product_id, qty in _aggregate(lines).items():
        row = (
            db.session.query(Inventory.id)
            .filter_by(tenant_id=tenant_id, product_id=product_id)
            .first()
        )
        if row is None:
            raise TransactionNotFoundError(
                "NO_INVENTORY_ROW",
                f"No inventory record for product {product_id}",
                {"product_id": product_id},
            )

        result = db.session.execute(
            update(Inventory)
            .where(
                Inventory.tenant_id == tenant_id,
                Inventory.product_id == product_id,
                Inventory.quantity >= qty,
            )
            .values(quantity=Inventory.quantity - qty)
            .execution_options(synchronize_session=False)
        )
        if not result.rowcount:
            raise TransactionValidationError(
                "INSUFFICIENT_STOCK",
                f"Insufficient stock for product {product_id}",
                {
                    "product_id": product_id,
                    "requested": qty,
                    "available": get_quantity_on_hand(tenant_id, product_id),
                },
            )

        new_qty, reorder_level = (
            db.session.query(Inventory.quantity, Inventory.reorder_level)
            .filter_by(tenant_id=tenant_id, product_id=product_id)
            .one()
        )
        if new_qty <= (reorder_level or 0):
            alerts.append({"product_id": product_id, "newQty": new_qty, "reorder_level": reorder_level})

    return alerts


def increment_stock(tenant_id: int, lines, *, defaults: dict[int, dict] | None = None) -> None:
    """
    Put stock back (purchase, sale return). Creates the row when absent;
    defaults[product_id] may carry reorder_level / expiry_date / max_stock
    for a newly created row and refreshes them on an existing one.
    """
    defaults = defaults or {}
    for product_id, qty in _aggregate(lines).items():
        extra = {k: v for k, v in (defaults.get(product_id) or {}).items() if v is not None}
        insert_or_ignore(
            Inventory,
            {"tenant_id": tenant_id, "product_id": product_id, "quantity": 0, **extra},
            ["tenant_id", "product_id"],
        )
        db.session.execute(
            update(Inventory)
            .where(Inventory.tenant_id == tenant_id, Inventory.product_id == product_id)
            .values(quantity=Inventory.quantity + qty, **extra)
            .execution_options(synchronize_session=False)
        )


def record_movements(
    *,
    tenant_id: int,
    movement_type: str,
    lines,
    reference_table: str,
    reference_id: int,
    created_by: int | None = None,
) -> list[StockMovement]:
    """One movement per line; quantity signed by movement type."""
    sign = MOVEMENT_SIGNS[movement_type]
    movements = []
    for product_id, qty in lines:
        movement = StockMovement(
            tenant_id=tenant_id,
            product_id=product_id,
            movement_type=movement_type,
            quantity=sign * abs(qty),
            reference_table=reference_table,
            reference_id=reference_id,
            created_by=created_by,
        )
        db.session.add(movement)
        movements.append(movement)
    db.session.flush()
    return movements
