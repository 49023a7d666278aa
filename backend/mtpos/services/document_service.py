# Overview: Per-tenant document numbering (INV-YYYY-NNNN, PUR-YYYY-NNNN).

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import Purchase, TenantCounter
from ..time_utils import utcnow
from .concurrency import insert_or_ignore


COUNTER_COLUMNS = {
    "sales": TenantCounter.sales_seq,
    "purchase": TenantCounter.purchase_seq,
}


def ensure_counter(tenant_id: int) -> None:
    """Create the tenant's counter row if absent; a concurrent creator is tolerated."""
    insert_or_ignore(TenantCounter, {"tenant_id": tenant_id, "sales_seq": 0, "purchase_seq": 0}, ["tenant_id"])


def allocate_sequence(tenant_id: int, counter: str) -> int:
    """
    Atomically allocate the next value of a tenant counter.

    A single UPDATE ... SET seq = seq + 1 takes the row lock, so concurrent
    transactions queue on it and each sees a distinct value. Runs inside the
    caller's transaction; the number is released if that transaction rolls back.
    """
    column = COUNTER_COLUMNS[counter]
    stmt = (
        update(TenantCounter)
        .where(TenantCounter.tenant_id == tenant_id)
        .values({column.key: column + 1})
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        ensure_counter(tenant_id)
        result = db.session.execute(stmt)
        if not result.rowcount:
            raise RuntimeError(f"tenant counter missing for tenant {tenant_id}")

    return db.session.query(column).filter(TenantCounter.tenant_id == tenant_id).scalar()


def format_number(prefix: str, year: int, seq: int, pad: int = 4) -> str:
    return f"{prefix}-{year:04d}-{seq:0{pad}d}"


def next_invoice_number(tenant_id: int, *, now=None) -> str:
    now = now or utcnow()
    return format_number("INV", now.year, allocate_sequence(tenant_id, "sales"))


def _max_existing_purchase_seq(tenant_id: int, year: int) -> int:
    prefix = f"PUR-{year:04d}-"
    numbers = (
        db.session.query(Purchase.purchase_number)
        .filter(Purchase.tenant_id == tenant_id, Purchase.purchase_number.like(f"{prefix}%"))
        .all()
    )
    highest = 0
    for (number,) in numbers:
        tail = number[len(prefix):]
        if tail.isdigit():
            highest = max(highest, int(tail))
    return highest


def next_purchase_number(tenant_id: int, *, now=None) -> str:
    """
    Counter value, but never below max(existing PUR numbers this year) + 1.

    Purchases imported or keyed in before the counter existed would otherwise
    collide; when they are ahead the counter is moved forward to match.
    """
    now = now or utcnow()
    seq = allocate_sequence(tenant_id, "purchase")
    floor = _max_existing_purchase_seq(tenant_id, now.year) + 1
    if floor > seq:
        db.session.execute(
            update(TenantCounter)
            .where(TenantCounter.tenant_id == tenant_id, TenantCounter.purchase_seq < floor)
            .values(purchase_seq=floor)
        )
        seq = floor
    return format_number("PUR", now.year, seq)
