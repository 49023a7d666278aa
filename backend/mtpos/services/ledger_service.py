# Overview: Double-entry recorder; journal rows, running-balance ledger rows and daybook rows.

from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..models import Account, DaybookEntry, JournalEntry, LedgerEntry
from ..money import ZERO, q2
from .coa_service import AccountMap
from .concurrency import lock_for_update


REFERENCE_TYPES = (
    "invoice_sale",
    "invoice_vat",
    "invoice_cogs",
    "sales_return",
    "customer_payment",
    "purchase",
    "purchase_return",
    "purchase_payment",
    "salary",
    "general",
)


def _latest_balance(tenant_id: int, account_id: int) -> Decimal:
    balance = (
        db.session.query(LedgerEntry.balance)
        .filter_by(tenant_id=tenant_id, account_id=account_id)
        .order_by(LedgerEntry.id.desc())
        .limit(1)
        .scalar()
    )
    return q2(balance) if balance is not None else ZERO


def append_ledger_row(
    *,
    account: Account,
    debit=ZERO,
    credit=ZERO,
    entry_type: str,
    description: str | None,
    reference_type: str,
    reference_id: int | None,
    journal_entry_id: int | None = None,
) -> LedgerEntry:
    """
    Append one running-balance row.

    The caller must hold the account row lock (see post_journal_entry) so
    the read of the previous balance and the insert are not interleaved with
    another writer on the same account.
    """
    debit = q2(debit)
    credit = q2(credit)
    previous = _latest_balance(account.tenant_id, account.id)
    if account.is_debit_normal:
        balance = previous + debit - credit
    else:
        balance = previous - debit + credit

    row = LedgerEntry(
        tenant_id=account.tenant_id,
        account_id=account.id,
        account_type=account.name,
        journal_entry_id=journal_entry_id,
        entry_type=entry_type,
        description=description,
        debit=debit,
        credit=credit,
        balance=balance,
        reference_type=reference_type,
        reference_id=reference_id,
    )
    db.session.add(row)
    db.session.flush()
    return row


def post_journal_entry(
    accounts: AccountMap,
    *,
    debit: str,
    credit: str,
    amount,
    description: str,
    reference_type: str,
    reference_id: int | None,
    entry_type: str | None = None,
) -> JournalEntry | None:
    """
    Post one double-entry pair plus the two ledger rows it implies.

    Zero amounts post nothing. Account rows are locked in id order before
    any balance is read, which serializes writers per account.
    """
    if reference_type not in REFERENCE_TYPES:
        raise ValueError(f"unknown reference_type {reference_type!r}")

    amount = q2(amount)
    if amount <= 0:
        return None

    debit_account = accounts.get(debit)
    credit_account = accounts.get(credit)
    if debit_account.id == credit_account.id:
        raise ValueError("debit and credit accounts must differ")

    for account_id in sorted((debit_account.id, credit_account.id)):
        lock_for_update(db.session.query(Account).filter_by(id=account_id, tenant_id=accounts.tenant_id)).first()

    entry = JournalEntry(
        tenant_id=accounts.tenant_id,
        debit_account_id=debit_account.id,
        credit_account_id=credit_account.id,
        amount=amount,
        description=description,
        reference_type=reference_type,
        reference_id=reference_id,
    )
    db.session.add(entry)
    db.session.flush()

    entry_type = entry_type or reference_type
    append_ledger_row(
        account=debit_account,
        debit=amount,
        entry_type=entry_type,
        description=description,
        reference_type=reference_type,
        reference_id=reference_id,
        journal_entry_id=entry.id,
    )
    append_ledger_row(
        account=credit_account,
        credit=amount,
        entry_type=entry_type,
        description=description,
        reference_type=reference_type,
        reference_id=reference_id,
        journal_entry_id=entry.id,
    )
    return entry


def record_daybook(
    *,
    tenant_id: int,
    entry_type: str,
    description: str,
    debit=ZERO,
    credit=ZERO,
    payment_method: str | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
) -> DaybookEntry | None:
    """One human-readable row; exactly one side carries the amount."""
    debit = q2(debit)
    credit = q2(credit)
    if debit and credit:
        raise ValueError("daybook rows carry either a debit or a credit")
    if not debit and not credit:
        return None

    row = DaybookEntry(
        tenant_id=tenant_id,
        entry_type=entry_type,
        description=description,
        debit=debit,
        credit=credit,
        payment_method=payment_method,
        reference_type=reference_type,
        reference_id=reference_id,
    )
    db.session.add(row)
    db.session.flush()
    return row

