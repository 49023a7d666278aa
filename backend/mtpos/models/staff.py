from __future__ import annotations

from ..extensions import db
from ..money import as_float
from ..time_utils import to_utc_z


class Employee(db.Model):
    """Employee directory entry; only consulted to validate staff purchases."""
    __tablename__ = "employees"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    full_name = db.Column(db.String(255), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())


class EmployeeDiscountRule(db.Model):
    """
    Staff purchase discount.

    discount_percent of the bill, capped per bill by max_discount_amount and
    per calendar month by monthly_limit (sum of usage rows).
    """
    __tablename__ = "employee_discount_rules"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    discount_percent = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    max_discount_amount = db.Column(db.Numeric(14, 2), nullable=True)
    monthly_limit = db.Column(db.Numeric(14, 2), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())


class EmployeeDiscountUsage(db.Model):
    """Staff discount consumed; invoice_id is null until the invoice exists."""
    __tablename__ = "employee_discount_usage"
    __table_args__ = (
        db.Index("ix_employee_discount_usage_employee", "tenant_id", "employee_id", "used_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False)
    rule_id = db.Column(db.Integer, db.ForeignKey("employee_discount_rules.id"), nullable=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=True, index=True)
    discount_amount = db.Column(db.Numeric(14, 2), nullable=False)
    used_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "invoice_id": self.invoice_id,
            "discount_amount": as_float(self.discount_amount),
            "used_at": to_utc_z(self.used_at),
        }
