from __future__ import annotations

from ..extensions import db
from ..money import as_float
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Catalog product. Read-only from the sales pipeline.

    selling_price is VAT-inclusive; tax is a percent (5 = 5%).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "sku", name="uq_products_tenant_sku"),
        db.Index("ix_products_tenant_id", "tenant_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False)

    sku = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=False)

    cost_price = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    selling_price = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    tax = db.Column(db.Numeric(5, 2), nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "sku": self.sku,
            "name": self.name,
            "cost_price": as_float(self.cost_price),
            "selling_price": as_float(self.selling_price),
            "tax": float(self.tax or 0),
            "is_active": self.is_active,
        }


class Inventory(db.Model):
    """
    On-hand stock per (tenant, product).

    A sale never creates this row: no row means the product is not stocked
    and the sale is refused. Purchases create it on first receipt.
    """
    __tablename__ = "inventory"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "product_id", name="uq_inventory_tenant_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    reorder_level = db.Column(db.Integer, nullable=False, default=0)
    expiry_date = db.Column(db.Date, nullable=True)
    max_stock = db.Column(db.Integer, nullable=True)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "reorder_level": self.reorder_level,
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
            "max_stock": self.max_stock,
        }


class StockMovement(db.Model):
    """
    Append-only journal of every quantity change.

    quantity is signed: negative for sale / purchase_return, positive for
    purchase / sale_return. (reference_table, reference_id) is the source
    document.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_tenant_product", "tenant_id", "product_id"),
        db.Index("ix_stock_movements_reference", "reference_table", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    movement_type = db.Column(db.String(32), nullable=False)  # purchase, sale, purchase_return, sale_return
    quantity = db.Column(db.Integer, nullable=False)

    reference_table = db.Column(db.String(64), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)
    created_by = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "reference_table": self.reference_table,
            "reference_id": self.reference_id,
            "created_at": to_utc_z(self.created_at),
        }
