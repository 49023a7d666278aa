from __future__ import annotations

from ..extensions import db
from ..money import as_float
from ..time_utils import to_utc_z


class SalesReturn(db.Model):
    """
    Customer return against an invoice.

    LIFECYCLE: the header is inserted with total_refund = 0, lines are
    inserted, then the header totals are filled in. Accounting and VAT run
    in the same transaction (returns are not latency critical).

    refund_type:
    - cash:        money handed back; Cr Cash
    - credit_note: customer balance reduced; Cr Accounts Receivable
    """
    __tablename__ = "sales_returns"
    __table_args__ = (
        db.Index("ix_sales_returns_invoice", "tenant_id", "invoice_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True)

    refund_type = db.Column(db.String(16), nullable=False)
    reason = db.Column(db.Text, nullable=True)

    total_refund = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    net_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    cost_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    processed_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    items = db.relationship("SalesReturnItem", backref="sales_return", lazy=True, order_by="SalesReturnItem.id")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "customer_id": self.customer_id,
            "refund_type": self.refund_type,
            "reason": self.reason,
            "total_refund": as_float(self.total_refund),
            "net_amount": as_float(self.net_amount),
            "tax_amount": as_float(self.tax_amount),
            "cost_amount": as_float(self.cost_amount),
            "created_at": to_utc_z(self.created_at),
            "items": [item.to_dict() for item in self.items],
        }


class SalesReturnItem(db.Model):
    __tablename__ = "sales_return_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    return_id = db.Column(db.Integer, db.ForeignKey("sales_returns.id"), nullable=False, index=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Numeric(14, 2), nullable=False)  # VAT-inclusive unit refund
    tax = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    net_amount = db.Column(db.Numeric(14, 2), nullable=False)
    tax_amount = db.Column(db.Numeric(14, 2), nullable=False)
    total = db.Column(db.Numeric(14, 2), nullable=False)  # line_gross
    cost_price = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "price": as_float(self.price),
            "tax": float(self.tax or 0),
            "net_amount": as_float(self.net_amount),
            "tax_amount": as_float(self.tax_amount),
            "total": as_float(self.total),
        }
