# Overview: Chart of Accounts bootstrap and name lookup.

from __future__ import annotations

from ..errors import coa_missing
from ..extensions import db
from ..models import Account
from .concurrency import insert_or_ignore


CASH = "Cash"
BANK = "Bank"
INVENTORY = "Inventory"
ACCOUNTS_RECEIVABLE = "Accounts Receivable"
VAT_INPUT = "VAT Input"
EMPLOYEE_ADVANCE = "Employee Advance"
ACCOUNTS_PAYABLE = "Accounts Payable"
VAT_PAYABLE = "VAT Payable"
VAT_OUTPUT = "VAT Output"
SALES = "Sales"
COGS = "Cost of Goods Sold"
DISCOUNT_EXPENSE = "Discount Expense"
SALARY_EXPENSE = "Salary Expense"
STAFF_DISCOUNT_EXPENSE = "Staff Discount Expense"

DEFAULT_ACCOUNTS = (
    (CASH, "asset"),
    (BANK, "asset"),
    (INVENTORY, "asset"),
    (ACCOUNTS_RECEIVABLE, "asset"),
    (VAT_INPUT, "asset"),
    (EMPLOYEE_ADVANCE, "asset"),
    (ACCOUNTS_PAYABLE, "liability"),
    (VAT_PAYABLE, "liability"),
    (VAT_OUTPUT, "liability"),
    (SALES, "income"),
    (COGS, "expense"),
    (DISCOUNT_EXPENSE, "expense"),
    (SALARY_EXPENSE, "expense"),
    (STAFF_DISCOUNT_EXPENSE, "expense"),
)

BANK_METHODS = ("upi", "card", "bank")


def seed_default_coa(tenant_id: int) -> int:
    """
    Seed the default accounts if the tenant has no COA yet.

    Returns the number of accounts created (0 when a COA already exists).
    """
    if db.session.query(Account.id).filter_by(tenant_id=tenant_id).first():
        return 0

    created = 0
    for name, account_type in DEFAULT_ACCOUNTS:
        if insert_or_ignore(
            Account,
            {"tenant_id": tenant_id, "name": name, "type": account_type, "is_active": True},
            ["tenant_id", "name"],
        ):
            created += 1
    return created


class AccountMap:
    """Per-call name -> Account map for one tenant."""

    def __init__(self, tenant_id: int, accounts):
        self.tenant_id = tenant_id
        self._by_name = {a.name: a for a in accounts}

    @classmethod
    def load(cls, tenant_id: int) -> "AccountMap":
        accounts = db.session.query(Account).filter_by(tenant_id=tenant_id, is_active=True).all()
        return cls(tenant_id, accounts)

    def get(self, name: str) -> Account:
        account = self._by_name.get(name)
        if account is None:
            raise coa_missing(name)
        return account

    def __contains__(self, name: str) -> bool:
        return name in self._by_name


def payment_account_name(payment_method: str) -> str:
    """upi / card / bank settle to Bank; credit to Accounts Receivable; anything else is Cash."""
    method = (payment_method or "").lower()
    if method == "credit":
        return ACCOUNTS_RECEIVABLE
    if method in BANK_METHODS:
        return BANK
    return CASH
