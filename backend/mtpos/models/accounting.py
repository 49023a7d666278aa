from __future__ import annotations

from ..extensions import db
from ..money import as_float
from ..time_utils import to_utc_z


ACCOUNT_TYPES = ("asset", "liability", "income", "expense", "equity")

# Debit-normal accounts grow with debits; everything else grows with credits.
DEBIT_NORMAL_TYPES = ("asset", "expense")


class Account(db.Model):
    """Chart of Accounts entry. Names are unique per tenant and referenced by name."""
    __tablename__ = "chart_of_accounts"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "name", name="uq_coa_tenant_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)
    type = db.Column(db.String(16), nullable=False)
    parent_id = db.Column(db.Integer, db.ForeignKey("chart_of_accounts.id"), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def is_debit_normal(self) -> bool:
        return self.type in DEBIT_NORMAL_TYPES

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "type": self.type, "parent_id": self.parent_id}


class JournalEntry(db.Model):
    """
    Append-only double-entry row. Source of truth for accounting.

    INVARIANTS: amount > 0, debit_account_id != credit_account_id.
    """
    __tablename__ = "journal_entries"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_journal_amount_positive"),
        db.CheckConstraint("debit_account_id <> credit_account_id", name="ck_journal_distinct_accounts"),
        db.Index("ix_journal_reference", "tenant_id", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    debit_account_id = db.Column(db.Integer, db.ForeignKey("chart_of_accounts.id"), nullable=False)
    credit_account_id = db.Column(db.Integer, db.ForeignKey("chart_of_accounts.id"), nullable=False)
    amount = db.Column(db.Numeric(14, 2), nullable=False)
    description = db.Column(db.String(255), nullable=True)
    reference_type = db.Column(db.String(32), nullable=False, default="general")
    reference_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    debit_account = db.relationship("Account", foreign_keys=[debit_account_id])
    credit_account = db.relationship("Account", foreign_keys=[credit_account_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "debit_account": self.debit_account.name if self.debit_account else None,
            "credit_account": self.credit_account.name if self.credit_account else None,
            "amount": as_float(self.amount),
            "description": self.description,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "created_at": to_utc_z(self.created_at),
        }


class LedgerEntry(db.Model):
    """
    Append-only per-account row carrying the running balance.

    balance_n = balance_{n-1} + debit - credit   (asset, expense)
    balance_n = balance_{n-1} - debit + credit   (liability, income, equity)

    account_type mirrors the account name for legacy readers.
    """
    __tablename__ = "ledger_entries"
    __table_args__ = (
        db.Index("ix_ledger_account_seq", "tenant_id", "account_id", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False)
    account_id = db.Column(db.Integer, db.ForeignKey("chart_of_accounts.id"), nullable=False)
    account_type = db.Column(db.String(128), nullable=False)
    journal_entry_id = db.Column(db.Integer, db.ForeignKey("journal_entries.id"), nullable=True, index=True)

    entry_type = db.Column(db.String(32), nullable=False)
    description = db.Column(db.String(255), nullable=True)
    debit = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    credit = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    balance = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    reference_type = db.Column(db.String(32), nullable=False, default="general")
    reference_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "account_type": self.account_type,
            "entry_type": self.entry_type,
            "description": self.description,
            "debit": as_float(self.debit),
            "credit": as_float(self.credit),
            "balance": as_float(self.balance),
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "created_at": to_utc_z(self.created_at),
        }


class DaybookEntry(db.Model):
    """Human-readable per-event row. Exactly one of debit / credit is non-zero."""
    __tablename__ = "daybook_entries"
    __table_args__ = (
        db.Index("ix_daybook_tenant_created", "tenant_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False)
    entry_type = db.Column(db.String(32), nullable=False)
    description = db.Column(db.String(255), nullable=True)
    debit = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    credit = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    payment_method = db.Column(db.String(16), nullable=True)
    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entry_type": self.entry_type,
            "description": self.description,
            "debit": as_float(self.debit),
            "credit": as_float(self.credit),
            "payment_method": self.payment_method,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "created_at": to_utc_z(self.created_at),
        }


class VatReport(db.Model):
    """Monthly VAT roll-up; one row per (tenant, 'YYYY-MM'), mutated only by atomic increments."""
    __tablename__ = "vat_reports"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "period", name="uq_vat_reports_tenant_period"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    period = db.Column(db.String(7), nullable=False)
    total_sales = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    sales_vat = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_purchases = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    purchase_vat = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    vat_payable = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "period": self.period,
            "total_sales": as_float(self.total_sales),
            "sales_vat": as_float(self.sales_vat),
            "total_purchases": as_float(self.total_purchases),
            "purchase_vat": as_float(self.purchase_vat),
            "vat_payable": as_float(self.vat_payable),
        }
