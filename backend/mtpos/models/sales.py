from __future__ import annotations

from ..extensions import db
from ..money import as_float
from ..time_utils import to_utc_z


# Invoice lifecycle, in order. The last two transitions happen in the deferred tail.
INVOICE_STATUSES = (
    "DRAFT",
    "NUMBERED",
    "HEADER_INSERTED",
    "LINES_INSERTED",
    "INVENTORY_POSTED",
    "STOCK_JOURNALED",
    "RESPONDED",
    "ACCOUNTED",
    "VAT_AGGREGATED",
)


class Invoice(db.Model):
    """
    Sale header.

    WHY: One row per customer sale. Totals are stored per discount channel so
    final_amount can be re-derived:

        final_amount = subtotal - item - bill - coupon - membership
                       - staff_discount - redeemed_points   (>= 0)

    LIFECYCLE: see INVOICE_STATUSES. Rows are immutable after RESPONDED
    except for the tail bookkeeping columns (*_at, tail_error) and
    amount_paid on credit invoices.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "invoice_number", name="uq_invoices_tenant_number"),
        db.Index("ix_invoices_tenant_created", "tenant_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    invoice_number = db.Column(db.String(32), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True)
    payment_method = db.Column(db.String(16), nullable=False)  # cash, card, upi, bank, credit

    subtotal = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    item_discount_total = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    bill_discount_total = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    coupon_discount_total = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    membership_discount_total = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    staff_discount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    redeemed_points = db.Column(db.Integer, nullable=False, default=0)
    final_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    # Filled in once lines are known (step 18)
    total_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    net_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    cost_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    earned_points = db.Column(db.Integer, nullable=False, default=0)

    # Credit invoices only
    amount_paid = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    status = db.Column(db.String(24), nullable=False, default="DRAFT", index=True)
    handled_by = db.Column(db.Integer, nullable=True)
    handled_by_name = db.Column(db.String(255), nullable=True)
    pdf_url = db.Column(db.String(512), nullable=True)

    # Deferred tail bookkeeping (each step is idempotent on these)
    loyalty_posted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    accounted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    vat_aggregated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    receipt_rendered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    tail_error = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def outstanding(self):
        if self.payment_method != "credit":
            return 0
        return (self.final_amount or 0) - (self.amount_paid or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "invoice_number": self.invoice_number,
            "customer_id": self.customer_id,
            "employee_id": self.employee_id,
            "payment_method": self.payment_method,
            "subtotal": as_float(self.subtotal),
            "item_discount_total": as_float(self.item_discount_total),
            "bill_discount_total": as_float(self.bill_discount_total),
            "coupon_discount_total": as_float(self.coupon_discount_total),
            "membership_discount_total": as_float(self.membership_discount_total),
            "staff_discount": as_float(self.staff_discount),
            "redeemed_points": self.redeemed_points,
            "final_amount": as_float(self.final_amount),
            "total_amount": as_float(self.total_amount),
            "net_amount": as_float(self.net_amount),
            "tax_amount": as_float(self.tax_amount),
            "amount_paid": as_float(self.amount_paid),
            "status": self.status,
            "handled_by": self.handled_by,
            "handled_by_name": self.handled_by_name,
            "pdf_url": self.pdf_url,
            "created_at": to_utc_z(self.created_at),
        }


class InvoiceItem(db.Model):
    """
    Sold line.

    price:           VAT-inclusive unit price after all discounts
    net_price:       VAT-exclusive unit price
    discount_amount: discount per unit
    total:           line VAT-inclusive total; sum(total) == invoice.final_amount
    tax_amount:      total - net_price * quantity
    cost_price:      unit cost at time of sale (COGS and return reversal)
    """
    __tablename__ = "invoice_items"
    __table_args__ = (
        db.Index("ix_invoice_items_invoice", "invoice_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Numeric(14, 2), nullable=False)
    tax = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    net_price = db.Column(db.Numeric(14, 2), nullable=False)
    total = db.Column(db.Numeric(14, 2), nullable=False)
    cost_price = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "price": as_float(self.price),
            "tax": float(self.tax or 0),
            "tax_amount": as_float(self.tax_amount),
            "discount_amount": as_float(self.discount_amount),
            "net_price": as_float(self.net_price),
            "total": as_float(self.total),
        }


class CustomerPayment(db.Model):
    """Payment received against a credit invoice."""
    __tablename__ = "customer_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True)
    amount = db.Column(db.Numeric(14, 2), nullable=False)
    payment_method = db.Column(db.String(16), nullable=False)
    received_by = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "customer_id": self.customer_id,
            "amount": as_float(self.amount),
            "payment_method": self.payment_method,
            "created_at": to_utc_z(self.created_at),
        }
