from __future__ import annotations

from ..extensions import db
from ..money import as_float
from ..time_utils import to_utc_z


class Supplier(db.Model):
    __tablename__ = "suppliers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())


class Purchase(db.Model):
    """
    Goods-inward document from a supplier.

    payment_method:
    - cash / bank: paid on receipt (is_paid = True, one SupplierPayment row)
    - credit:      Cr Accounts Payable; settled later through supplier payments
    """
    __tablename__ = "purchases"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "purchase_number", name="uq_purchases_tenant_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    purchase_number = db.Column(db.String(32), nullable=False)
    invoice_ref = db.Column(db.String(64), nullable=True)  # Supplier's own bill number

    payment_method = db.Column(db.String(16), nullable=False)
    net_total = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    tax_total = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    amount_paid = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    is_paid = db.Column(db.Boolean, nullable=False, default=False)

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    items = db.relationship("PurchaseItem", backref="purchase", lazy=True, order_by="PurchaseItem.id")

    @property
    def outstanding(self):
        return (self.total_amount or 0) - (self.amount_paid or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "purchase_number": self.purchase_number,
            "invoice_ref": self.invoice_ref,
            "payment_method": self.payment_method,
            "net_total": as_float(self.net_total),
            "tax_total": as_float(self.tax_total),
            "total_amount": as_float(self.total_amount),
            "amount_paid": as_float(self.amount_paid),
            "is_paid": self.is_paid,
            "created_at": to_utc_z(self.created_at),
            "items": [item.to_dict() for item in self.items],
        }


class PurchaseItem(db.Model):
    """cost_price is VAT-exclusive; tax is added on top."""
    __tablename__ = "purchase_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    cost_price = db.Column(db.Numeric(14, 2), nullable=False)
    tax = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    net_amount = db.Column(db.Numeric(14, 2), nullable=False)
    tax_amount = db.Column(db.Numeric(14, 2), nullable=False)
    total = db.Column(db.Numeric(14, 2), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "cost_price": as_float(self.cost_price),
            "tax": float(self.tax or 0),
            "net_amount": as_float(self.net_amount),
            "tax_amount": as_float(self.tax_amount),
            "total": as_float(self.total),
        }


class PurchaseReturn(db.Model):
    """Goods sent back to a supplier; refund_type cash or credit_note (reduces payable)."""
    __tablename__ = "purchase_returns"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False)

    refund_type = db.Column(db.String(16), nullable=False)
    reason = db.Column(db.Text, nullable=True)
    net_total = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    tax_total = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_refund = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    items = db.relationship("PurchaseReturnItem", backref="purchase_return", lazy=True, order_by="PurchaseReturnItem.id")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "supplier_id": self.supplier_id,
            "refund_type": self.refund_type,
            "reason": self.reason,
            "net_total": as_float(self.net_total),
            "tax_total": as_float(self.tax_total),
            "total_refund": as_float(self.total_refund),
            "created_at": to_utc_z(self.created_at),
            "items": [
                {
                    "product_id": item.product_id,
                    "quantity": item.quantity,
                    "unit_cost": as_float(item.unit_cost),
                    "net_amount": as_float(item.net_amount),
                    "tax_amount": as_float(item.tax_amount),
                    "total": as_float(item.total),
                }
                for item in self.items
            ],
        }


class PurchaseReturnItem(db.Model):
    __tablename__ = "purchase_return_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    purchase_return_id = db.Column(db.Integer, db.ForeignKey("purchase_returns.id"), nullable=False, index=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_cost = db.Column(db.Numeric(14, 2), nullable=False)
    tax = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    net_amount = db.Column(db.Numeric(14, 2), nullable=False)
    tax_amount = db.Column(db.Numeric(14, 2), nullable=False)
    total = db.Column(db.Numeric(14, 2), nullable=False)


class SupplierPayment(db.Model):
    __tablename__ = "supplier_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False)
    amount = db.Column(db.Numeric(14, 2), nullable=False)
    payment_method = db.Column(db.String(16), nullable=False)
    paid_by = db.Column(db.Integer, nullable=True)
    note = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "supplier_id": self.supplier_id,
            "amount": as_float(self.amount),
            "payment_method": self.payment_method,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
