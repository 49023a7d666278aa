# Overview: Loyalty ledger; redeem before the sale, earn after it.

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import update

from ..errors import TransactionValidationError
from ..extensions import db
from ..models import Customer, LoyaltyRule, LoyaltyTransaction
from ..money import HUNDRED, floor_int, to_decimal


def get_active_rule(tenant_id: int) -> LoyaltyRule | None:
    return (
        db.session.query(LoyaltyRule)
        .filter_by(tenant_id=tenant_id, is_active=True)
        .order_by(LoyaltyRule.id.desc())
        .first()
    )


def compute_earn_points(tenant_id: int, final_gross, rule: LoyaltyRule | None = None) -> int:
    """
    floor(final_gross / currency_unit * points_per_currency).
    Without an active rule: floor(final_gross / 100).
    """
    gross = to_decimal(final_gross)
    if gross <= 0:
        return 0
    if rule is None:
        rule = get_active_rule(tenant_id)
    if rule is None or to_decimal(rule.currency_unit) <= 0:
        return floor_int(gross / HUNDRED)
    return max(0, floor_int(gross / to_decimal(rule.currency_unit) * to_decimal(rule.points_per_currency)))


def redeem_points(*, tenant_id: int, customer: Customer | None, points: int, running_total: Decimal) -> dict:
    """
    Subtract redeemed points (1 point = 1 currency unit) from the running total.

    The balance is decremented with a conditional UPDATE so two sales can
    never spend the same points. lifetime_points is not touched. The redeem
    transaction is written with invoice_id = NULL.
    """
    if not points:
        return {"points": 0, "total": running_total, "transaction": None}
    if points < 0:
        raise TransactionValidationError("INVALID_FIELD", "redeem_points must be >= 0", {"field": "redeem_points"})
    if customer is None:
        raise TransactionValidationError(
            "INSUFFICIENT_POINTS", "Points can only be redeemed by a known customer", {"requested": points}
        )

    result = db.session.execute(
        update(Customer)
        .where(
            Customer.id == customer.id,
            Customer.tenant_id == tenant_id,
            Customer.loyalty_points >= points,
        )
        .values(loyalty_points=Customer.loyalty_points - points)
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        db.session.refresh(customer)
        raise TransactionValidationError(
            "INSUFFICIENT_POINTS",
            "Insufficient loyalty points",
            {"requested": points, "available": customer.loyalty_points},
        )
    db.session.refresh(customer)

    txn = LoyaltyTransaction(
        tenant_id=tenant_id,
        customer_id=customer.id,
        invoice_id=None,
        transaction_type="redeem",
        points=-points,
        balance_after=customer.loyalty_points,
        description=f"Redeemed {points} points",
    )
    db.session.add(txn)
    db.session.flush()

    total = running_total - Decimal(points)
    if total < 0:
        total = Decimal("0.00")
    return {"points": points, "total": total, "transaction": txn}


def attach_to_invoice(transaction_ids: list[int], invoice_id: int) -> None:
    """Patch only the rows created by this sale."""
    if not transaction_ids:
        return
    db.session.execute(
        update(LoyaltyTransaction)
        .where(LoyaltyTransaction.id.in_(transaction_ids), LoyaltyTransaction.invoice_id.is_(None))
        .values(invoice_id=invoice_id)
        .execution_options(synchronize_session=False)
    )


def post_earn(*, tenant_id: int, customer_id: int, invoice_id: int, points: int) -> LoyaltyTransaction | None:
    """
    Credit earned points: both balances grow by `points`, then the earn
    transaction records the new balance. Idempotent per invoice.
    """
    if points <= 0:
        return None

    existing = (
        db.session.query(LoyaltyTransaction)
        .filter_by(tenant_id=tenant_id, invoice_id=invoice_id, transaction_type="earn")
        .first()
    )
    if existing is not None:
        return existing

    db.session.execute(
        update(Customer)
        .where(Customer.id == customer_id, Customer.tenant_id == tenant_id)
        .values(
            loyalty_points=Customer.loyalty_points + points,
            lifetime_points=Customer.lifetime_points + points,
        )
        .execution_options(synchronize_session=False)
    )
    balance = db.session.query(Customer.loyalty_points).filter_by(id=customer_id).scalar()

    txn = LoyaltyTransaction(
        tenant_id=tenant_id,
        customer_id=customer_id,
        invoice_id=invoice_id,
        transaction_type="earn",
        points=points,
        balance_after=balance,
        description=f"Earned {points} points",
    )
    db.session.add(txn)
    db.session.flush()
    return txn
