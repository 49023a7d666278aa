from __future__ import annotations

from ..extensions import db
from ..money import as_float
from ..time_utils import to_utc_z


DISCOUNT_RULE_TYPES = ("item", "bill", "coupon", "tier")


class DiscountRule(db.Model):
    """
    Tenant discount rule.

    TYPES:
    - item:   product_id, percent of line gross or fixed amount per unit
    - bill:   percent or fixed amount off the total after item discounts
    - coupon: code (case-insensitive), max_uses, per_customer_limit
    - tier:   tier matched against customer.membership_tier

    A rule carries at most one of discount_percent / discount_amount;
    percent wins if both are set. min_bill_amount is optional for all types.
    """
    __tablename__ = "discount_rules"
    __table_args__ = (
        db.Index("ix_discount_rules_tenant_active", "tenant_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False)

    type = db.Column(db.String(16), nullable=False)
    name = db.Column(db.String(255), nullable=True)

    discount_percent = db.Column(db.Numeric(5, 2), nullable=True)
    discount_amount = db.Column(db.Numeric(14, 2), nullable=True)
    min_bill_amount = db.Column(db.Numeric(14, 2), nullable=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)
    code = db.Column(db.String(64), nullable=True)
    max_uses = db.Column(db.Integer, nullable=True)
    per_customer_limit = db.Column(db.Integer, nullable=True)
    tier = db.Column(db.String(32), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "name": self.name,
            "discount_percent": float(self.discount_percent) if self.discount_percent is not None else None,
            "discount_amount": as_float(self.discount_amount),
            "min_bill_amount": as_float(self.min_bill_amount),
            "product_id": self.product_id,
            "code": self.code,
            "max_uses": self.max_uses,
            "per_customer_limit": self.per_customer_limit,
            "tier": self.tier,
            "is_active": self.is_active,
        }


class InvoiceDiscount(db.Model):
    """One row per rule that fired on an invoice."""
    __tablename__ = "invoice_discounts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    rule_id = db.Column(db.Integer, db.ForeignKey("discount_rules.id"), nullable=True)
    amount = db.Column(db.Numeric(14, 2), nullable=False)
    description = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {
            "rule_id": self.rule_id,
            "amount": as_float(self.amount),
            "description": self.description,
        }


class CouponUsage(db.Model):
    """Append-only coupon redemption log; counted against max_uses / per_customer_limit."""
    __tablename__ = "coupon_usage"
    __table_args__ = (
        db.Index("ix_coupon_usage_coupon_customer", "coupon_id", "customer_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    coupon_id = db.Column(db.Integer, db.ForeignKey("discount_rules.id"), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False)
    used_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
