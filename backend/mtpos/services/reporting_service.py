# Overview: Read-only reports over the journal, ledger, daybook and VAT roll-up.

from __future__ import annotations

import re
from datetime import datetime, timedelta

from sqlalchemy import func

from ..errors import TransactionNotFoundError, TransactionValidationError
from ..extensions import db
from ..models import Account, DaybookEntry, JournalEntry, LedgerEntry, VatReport
from ..money import ZERO, q2, as_float
from ..time_utils import to_utc_z


PERIOD_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def _parse_date(value: str | None, field: str) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).replace(tzinfo=None)
    except ValueError:
        raise TransactionValidationError("INVALID_FIELD", f"{field} must be an ISO date", {"field": field})


def _date_range(start: str | None, end: str | None) -> tuple[datetime | None, datetime | None]:
    start_dt = _parse_date(start, "start")
    end_dt = _parse_date(end, "end")
    # Bare dates include the whole end day
    if end_dt is not None and end and len(end) == 10:
        end_dt = end_dt + timedelta(days=1)
    return start_dt, end_dt


# =============================================================================
# VAT
# =============================================================================

def vat_report(tenant_id: int, period: str | None = None) -> dict:
    if period is not None and not PERIOD_RE.match(period):
        raise TransactionValidationError("INVALID_FIELD", "period must be YYYY-MM", {"field": "period"})

    query = db.session.query(VatReport).filter(VatReport.tenant_id == tenant_id)
    if period:
        query = query.filter(VatReport.period == period)
    rows = query.order_by(VatReport.period.asc()).all()
    return {"period": period, "rows": [row.to_dict() for row in rows]}


# =============================================================================
# Trial balance / balance sheet
# =============================================================================

def _journal_totals(tenant_id: int, end_dt: datetime | None = None) -> dict[int, dict]:
    """account_id -> {"debit", "credit"} summed from journal_entries."""
    totals: dict[int, dict] = {}

    debit_q = db.session.query(JournalEntry.debit_account_id, func.coalesce(func.sum(JournalEntry.amount), 0)).filter(
        JournalEntry.tenant_id == tenant_id
    )
    credit_q = db.session.query(JournalEntry.credit_account_id, func.coalesce(func.sum(JournalEntry.amount), 0)).filter(
        JournalEntry.tenant_id == tenant_id
    )
    if end_dt is not None:
        debit_q = debit_q.filter(JournalEntry.created_at < end_dt)
        credit_q = credit_q.filter(JournalEntry.created_at < end_dt)

    for account_id, amount in debit_q.group_by(JournalEntry.debit_account_id).all():
        totals.setdefault(account_id, {"debit": ZERO, "credit": ZERO})["debit"] = q2(amount)
    for account_id, amount in credit_q.group_by(JournalEntry.credit_account_id).all():
        totals.setdefault(account_id, {"debit": ZERO, "credit": ZERO})["credit"] = q2(amount)
    return totals


def trial_balance(tenant_id: int, as_of: str | None = None) -> dict:
    """
    Per-account debit/credit totals from the journal.

    Each account shows its net on the side it naturally sits; the grand
    totals of both columns are equal whenever every posting was balanced.
    """
    _, end_dt = _date_range(None, as_of)
    accounts = db.session.query(Account).filter_by(tenant_id=tenant_id).order_by(Account.id.asc()).all()
    totals = _journal_totals(tenant_id, end_dt)

    rows = []
    total_debit = ZERO
    total_credit = ZERO
    for account in accounts:
        sums = totals.get(account.id, {"debit": ZERO, "credit": ZERO})
        net = sums["debit"] - sums["credit"]
        debit = net if net > 0 else ZERO
        credit = -net if net < 0 else ZERO
        total_debit += debit
        total_credit += credit
        rows.append({
            "account_id": account.id,
            "account": account.name,
            "type": account.type,
            "debit": as_float(debit),
            "credit": as_float(credit),
        })

    return {
        "as_of": to_utc_z(end_dt) if end_dt else None,
        "rows": rows,
        "total_debit": as_float(total_debit),
        "total_credit": as_float(total_credit),
        "balanced": total_debit == total_credit,
    }


def balance_sheet(tenant_id: int, as_of: str | None = None) -> dict:
    """
    Assets vs liabilities + equity. Income less expense to date is carried
    as current earnings inside equity so the sheet balances.
    """
    _, end_dt = _date_range(None, as_of)
    accounts = db.session.query(Account).filter_by(tenant_id=tenant_id).order_by(Account.id.asc()).all()
    totals = _journal_totals(tenant_id, end_dt)

    sections = {"asset": [], "liability": [], "equity": []}
    section_totals = {"asset": ZERO, "liability": ZERO, "equity": ZERO}
    earnings = ZERO

    for account in accounts:
        sums = totals.get(account.id, {"debit": ZERO, "credit": ZERO})
        balance = sums["debit"] - sums["credit"] if account.is_debit_normal else sums["credit"] - sums["debit"]
        if account.type == "income":
            earnings += balance
            continue
        if account.type == "expense":
            earnings -= balance
            continue
        sections[account.type].append({"account": account.name, "balance": as_float(balance)})
        section_totals[account.type] += balance

    sections["equity"].append({"account": "Current Earnings", "balance": as_float(earnings)})
    section_totals["equity"] += earnings

    return {
        "as_of": to_utc_z(end_dt) if end_dt else None,
        "assets": sections["asset"],
        "liabilities": sections["liability"],
        "equity": sections["equity"],
        "total_assets": as_float(section_totals["asset"]),
        "total_liabilities": as_float(section_totals["liability"]),
        "total_equity": as_float(section_totals["equity"]),
        "balanced": section_totals["asset"] == section_totals["liability"] + section_totals["equity"],
    }


# =============================================================================
# Ledger / daybook listings
# =============================================================================

def account_ledger(
    tenant_id: int,
    *,
    account_id: int | None = None,
    account_name: str | None = None,
    limit: int = 200,
) -> dict:
    query = db.session.query(Account).filter(Account.tenant_id == tenant_id)
    if account_id is not None:
        query = query.filter(Account.id == account_id)
    elif account_name:
        query = query.filter(Account.name == account_name)
    else:
        raise TransactionValidationError("INVALID_FIELD", "account_id or account is required", {"field": "account_id"})

    account = query.first()
    if account is None:
        raise TransactionNotFoundError("ACCOUNT_NOT_FOUND", "Account not found", {"account_id": account_id})

    rows = (
        db.session.query(LedgerEntry)
        .filter_by(tenant_id=tenant_id, account_id=account.id)
        .order_by(LedgerEntry.id.asc())
        .limit(limit)
        .all()
    )
    return {
        "account": account.to_dict(),
        "balance": as_float(rows[-1].balance) if rows else 0.0,
        "rows": [row.to_dict() for row in rows],
    }


def daybook(tenant_id: int, *, start: str | None = None, end: str | None = None, limit: int = 500) -> dict:
    start_dt, end_dt = _date_range(start, end)
    query = db.session.query(DaybookEntry).filter(DaybookEntry.tenant_id == tenant_id)
    if start_dt:
        query = query.filter(DaybookEntry.created_at >= start_dt)
    if end_dt:
        query = query.filter(DaybookEntry.created_at < end_dt)

    rows = query.order_by(DaybookEntry.id.asc()).limit(limit).all()
    total_debit = sum((q2(row.debit) for row in rows), ZERO)
    total_credit = sum((q2(row.credit) for row in rows), ZERO)
    return {
        "rows": [row.to_dict() for row in rows],
        "total_debit": as_float(total_debit),
        "total_credit": as_float(total_credit),
    }
