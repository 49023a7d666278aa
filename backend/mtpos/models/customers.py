from __future__ import annotations

from ..extensions import db
from ..money import as_float
from ..time_utils import to_utc_z


class Customer(db.Model):
    """
    Customer master data for purchases and loyalty.

    INVARIANTS:
    - loyalty_points >= 0 (redeem is a conditional decrement)
    - lifetime_points only grows (earn), never reduced by redemption
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_tenant_id", "tenant_id"),
        db.CheckConstraint("loyalty_points >= 0", name="ck_customers_points_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False)

    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    membership_tier = db.Column(db.String(32), nullable=True)  # silver, gold, ...

    loyalty_points = db.Column(db.Integer, nullable=False, default=0)
    lifetime_points = db.Column(db.Integer, nullable=False, default=0)

    # Denormalized aggregates (updated after each sale)
    total_purchases = db.Column(db.Integer, nullable=False, default=0)
    total_spent = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    last_purchase_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "membership_tier": self.membership_tier,
            "loyalty_points": self.loyalty_points,
            "lifetime_points": self.lifetime_points,
            "total_purchases": self.total_purchases,
            "total_spent": as_float(self.total_spent),
            "last_purchase_at": to_utc_z(self.last_purchase_at),
        }


class LoyaltyRule(db.Model):
    """Earn rate: points_per_currency points for every currency_unit spent. One active per tenant."""
    __tablename__ = "loyalty_rules"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    points_per_currency = db.Column(db.Numeric(10, 4), nullable=False, default=1)
    currency_unit = db.Column(db.Numeric(14, 2), nullable=False, default=100)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())


class LoyaltyTransaction(db.Model):
    """
    Append-only loyalty ledger.

    points is signed (earn > 0, redeem < 0). invoice_id is null for a
    redemption until the invoice row exists.
    """
    __tablename__ = "loyalty_transactions"
    __table_args__ = (
        db.Index("ix_loyalty_tx_customer", "tenant_id", "customer_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=True, index=True)

    transaction_type = db.Column(db.String(16), nullable=False)  # earn, redeem
    points = db.Column(db.Integer, nullable=False)
    balance_after = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "invoice_id": self.invoice_id,
            "transaction_type": self.transaction_type,
            "points": self.points,
            "balance_after": self.balance_after,
            "created_at": to_utc_z(self.created_at),
        }
