# Overview: Discount engine; item -> bill -> coupon -> membership tier -> staff, on VAT-inclusive amounts.

from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..errors import (
    AccountingConfigError,
    TransactionConflictError,
    TransactionValidationError,
)
from ..extensions import db
from ..models import (
    CouponUsage,
    DiscountRule,
    Employee,
    EmployeeDiscountRule,
    EmployeeDiscountUsage,
)
from ..money import ZERO, q2, percent_of, to_decimal
from ..time_utils import month_bounds, utcnow
from .concurrency import lock_for_update


# =============================================================================
# Rule loading
# =============================================================================

def load_active_rules(tenant_id: int) -> dict[str, list[DiscountRule]]:
    """Active rules partitioned by type, in id order (application order within a stage)."""
    rules = (
        db.session.query(DiscountRule)
        .filter(DiscountRule.tenant_id == tenant_id, DiscountRule.is_active.is_(True))
        .order_by(DiscountRule.id.asc())
        .all()
    )
    partitioned = {"item": [], "bill": [], "coupon": [], "tier": []}
    for rule in rules:
        if rule.type in partitioned:
            partitioned[rule.type].append(rule)
    return partitioned


def _rule_value(rule, base: Decimal, qty: int = 1) -> Decimal:
    """Percent of base if a percent is set, else the fixed amount (per unit for item rules)."""
    percent = to_decimal(rule.discount_percent)
    if percent > 0:
        return percent_of(base, percent)
    amount = to_decimal(rule.discount_amount)
    if amount > 0:
        return amount * qty
    return ZERO


def _min_bill_blocks(rule, running_total: Decimal) -> bool:
    return rule.min_bill_amount is not None and running_total < to_decimal(rule.min_bill_amount)


def _coupon_use_count(coupon: DiscountRule, customer_id: int | None = None) -> int:
    query = db.session.query(func.count(CouponUsage.id)).filter(
        CouponUsage.tenant_id == coupon.tenant_id,
        CouponUsage.coupon_id == coupon.id,
    )
    if customer_id is not None:
        query = query.filter(CouponUsage.customer_id == customer_id)
    return query.scalar() or 0


# =============================================================================
# Stages 1-4
# =============================================================================

def apply_discounts(
    *,
    tenant_id: int,
    items: list[dict],
    customer=None,
    coupon_code: str | None = None,
    rules: dict[str, list[DiscountRule]] | None = None,
    lock_coupon: bool = False,
) -> dict:
    """
    Run the item, bill, coupon and membership stages.

    Each stage works on the running total left by the previous one and
    rounds it half-up to cents. Returned lines carry:
    - line_gross:       price * qty before discounts
    - line_discount:    item-stage discount for the whole line
    - discount_per_unit line_discount / qty
    - line_after_item:  line_gross - line_discount

    lock_coupon takes a row lock on the matched coupon rule so that the
    usage count read here stays valid until the usage row is inserted.
    """
    if rules is None:
        rules = load_active_rules(tenant_id)

    lines = []
    for item in items:
        price = q2(item["price"])
        qty = item["qty"]
        tax = to_decimal(item.get("tax"))
        gross = price * qty
        unit_base = price / (1 + tax / 100) if tax > 0 else price
        lines.append({
            **item,
            "price": price,
            "tax": tax,
            "unit_base": unit_base,
            "unit_tax": price - unit_base,
            "line_gross": gross,
            "line_discount": ZERO,
        })

    subtotal = q2(sum((line["line_gross"] for line in lines), ZERO))
    invoice_discounts: list[dict] = []

    # 1) Item rules (per matching line, clamped to the line's gross)
    for rule in rules.get("item", []):
        fired = ZERO
        for line in lines:
            if rule.product_id is None or rule.product_id != line["product_id"]:
                continue
            if _min_bill_blocks(rule, subtotal):
                continue
            extra = _rule_value(rule, line["line_gross"], line["qty"])
            remaining = line["line_gross"] - line["line_discount"]
            extra = max(ZERO, min(extra, remaining))
            line["line_discount"] += extra
            fired += extra
        if fired > 0:
            invoice_discounts.append({
                "rule_id": rule.id,
                "amount": q2(fired),
                "description": f"Item discount rule {rule.id}",
            })

    for line in lines:
        line["line_discount"] = q2(line["line_discount"])
        line["discount_per_unit"] = q2(line["line_discount"] / line["qty"])
        line["line_after_item"] = line["line_gross"] - line["line_discount"]

    item_discount_total = sum((line["line_discount"] for line in lines), ZERO)
    total_after_item = q2(subtotal - item_discount_total)

    # 2) Bill rules (against total_after_item, cumulative cap)
    bill_discount_total = ZERO
    for rule in rules.get("bill", []):
        if _min_bill_blocks(rule, total_after_item):
            continue
        amount = _rule_value(rule, total_after_item)
        amount = q2(max(ZERO, min(amount, total_after_item - bill_discount_total)))
        if amount > 0:
            bill_discount_total += amount
            invoice_discounts.append({
                "rule_id": rule.id,
                "amount": amount,
                "description": f"Bill discount rule {rule.id}",
            })
    total_after_bill = q2(total_after_item - bill_discount_total)

    # 3) Coupon (at most one, case-insensitive code)
    coupon_discount_total = ZERO
    applied_coupon = None
    if coupon_code:
        wanted = str(coupon_code).strip().lower()
        coupon = next(
            (r for r in rules.get("coupon", []) if r.code and r.code.strip().lower() == wanted),
            None,
        )
        if coupon is None:
            raise TransactionValidationError("INVALID_COUPON", "Invalid coupon code", {"coupon_code": coupon_code})

        if lock_coupon:
            lock_for_update(db.session.query(DiscountRule).filter_by(id=coupon.id, tenant_id=tenant_id)).first()

        if coupon.min_bill_amount is not None and to_decimal(coupon.min_bill_amount) > total_after_bill:
            raise TransactionValidationError(
                "COUPON_MIN_BILL",
                "Coupon minimum bill not satisfied",
                {"coupon_code": coupon.code, "min_bill_amount": str(q2(coupon.min_bill_amount))},
            )

        if coupon.max_uses:
            if _coupon_use_count(coupon) >= coupon.max_uses:
                raise TransactionValidationError(
                    "COUPON_LIMIT_GLOBAL",
                    "Coupon usage limit reached",
                    {"coupon_code": coupon.code, "max_uses": coupon.max_uses},
                )

        coupon_discount_total = q2(min(_rule_value(coupon, total_after_bill), total_after_bill))
        if coupon_discount_total > 0:
            applied_coupon = coupon
            invoice_discounts.append({
                "rule_id": coupon.id,
                "amount": coupon_discount_total,
                "description": f"Coupon {coupon.code}",
            })
    total_after_coupon = q2(total_after_bill - coupon_discount_total)

    # 4) Membership tier
    membership_discount_total = ZERO
    tier = (customer.membership_tier or "").strip().lower() if customer is not None else ""
    if tier:
        tier_rule = next(
            (r for r in rules.get("tier", []) if r.tier and r.tier.strip().lower() == tier),
            None,
        )
        if tier_rule is not None:
            membership_discount_total = q2(min(_rule_value(tier_rule, total_after_coupon), total_after_coupon))
            if membership_discount_total > 0:
                invoice_discounts.append({
                    "rule_id": tier_rule.id,
                    "amount": membership_discount_total,
                    "description": f"Membership {tier_rule.tier} discount",
                })
    total_before_redeem = q2(total_after_coupon - membership_discount_total)

    return {
        "items": lines,
        "subtotal": subtotal,
        "item_discount_total": q2(item_discount_total),
        "bill_discount_total": q2(bill_discount_total),
        "coupon_discount_total": coupon_discount_total,
        "membership_discount_total": membership_discount_total,
        "total_after_item": total_after_item,
        "total_before_redeem": total_before_redeem,
        "invoice_discounts": invoice_discounts,
        "applied_coupon": applied_coupon,
    }


# =============================================================================
# Coupon usage
# =============================================================================

def check_coupon_customer_limit(coupon: DiscountRule | None, customer_id: int | None) -> None:
    """per_customer_limit is only enforceable when the buyer is known."""
    if coupon is None or customer_id is None or not coupon.per_customer_limit:
        return
    if _coupon_use_count(coupon, customer_id) >= coupon.per_customer_limit:
        raise TransactionValidationError(
            "COUPON_LIMIT_CUSTOMER",
            "Coupon usage limit reached for this customer",
            {"coupon_code": coupon.code, "per_customer_limit": coupon.per_customer_limit},
        )


def record_coupon_usage(*, tenant_id: int, coupon: DiscountRule, customer_id: int | None, invoice_id: int) -> CouponUsage:
    """
    Insert the usage row, then re-count inside the same transaction.

    If another sale slipped in between the stage-3 check and this insert the
    limits are now exceeded and the whole sale is refused.
    """
    usage = CouponUsage(tenant_id=tenant_id, coupon_id=coupon.id, customer_id=customer_id, invoice_id=invoice_id)
    db.session.add(usage)
    db.session.flush()

    if coupon.max_uses and _coupon_use_count(coupon) > coupon.max_uses:
        raise TransactionConflictError(
            "COUPON_USAGE_RACE",
            "Coupon usage limit reached by a concurrent sale",
            {"coupon_code": coupon.code},
        )
    if customer_id is not None and coupon.per_customer_limit:
        if _coupon_use_count(coupon, customer_id) > coupon.per_customer_limit:
            raise TransactionConflictError(
                "COUPON_USAGE_RACE",
                "Coupon customer limit reached by a concurrent sale",
                {"coupon_code": coupon.code},
            )
    return usage


# =============================================================================
# Stage 5: staff discount
# =============================================================================

def _month_usage(tenant_id: int, employee_id: int, now) -> Decimal:
    start, nxt = month_bounds(now)
    used = (
        db.session.query(func.coalesce(func.sum(EmployeeDiscountUsage.discount_amount), 0))
        .filter(
            EmployeeDiscountUsage.tenant_id == tenant_id,
            EmployeeDiscountUsage.employee_id == employee_id,
            EmployeeDiscountUsage.used_at >= start,
            EmployeeDiscountUsage.used_at < nxt,
        )
        .scalar()
    )
    return q2(used)


def calculate_staff_discount(
    *,
    tenant_id: int,
    employee_id: int | None,
    amount: Decimal,
    record: bool = True,
    now=None,
) -> dict:
    """
    Staff purchase discount on the running total.

    percent of amount -> per-bill cap (max_discount_amount) -> remaining
    monthly allowance (monthly_limit - this month's usage) -> running total.

    With record=True a usage row with invoice_id = NULL is inserted; the
    coordinator attaches it to the invoice once the header exists.
    """
    result = {"discount": ZERO, "rule": None, "usage": None, "monthly_remaining": None}
    if not employee_id:
        return result

    employee = (
        db.session.query(Employee)
        .filter_by(id=employee_id, tenant_id=tenant_id, is_active=True)
        .first()
    )
    if employee is None:
        raise TransactionValidationError("INVALID_EMPLOYEE", "Invalid employee ID", {"employee_id": employee_id})

    rule_query = (
        db.session.query(EmployeeDiscountRule)
        .filter_by(tenant_id=tenant_id, is_active=True)
        .order_by(EmployeeDiscountRule.id.asc())
    )
    rule = (lock_for_update(rule_query) if record else rule_query).first()
    if rule is None:
        if current_app.config.get("STAFF_DISCOUNT_RULE_REQUIRED"):
            raise AccountingConfigError(
                "NO_ACTIVE_DISCOUNT_RULE", "No active staff discount rule configured", {"employee_id": employee_id}
            )
        return result
    result["rule"] = rule

    now = now or utcnow()
    discount = percent_of(amount, rule.discount_percent)
    if rule.max_discount_amount is not None and discount > to_decimal(rule.max_discount_amount):
        discount = to_decimal(rule.max_discount_amount)

    if rule.monthly_limit is not None:
        remaining = to_decimal(rule.monthly_limit) - _month_usage(tenant_id, employee_id, now)
        result["monthly_remaining"] = q2(max(remaining, ZERO))
        if remaining <= 0:
            discount = ZERO
        elif discount > remaining:
            discount = remaining

    discount = q2(max(ZERO, min(discount, amount)))
    result["discount"] = discount

    if record and discount > 0:
        usage = EmployeeDiscountUsage(
            tenant_id=tenant_id,
            employee_id=employee_id,
            rule_id=rule.id,
            invoice_id=None,
            discount_amount=discount,
            used_at=now,
        )
        db.session.add(usage)
        db.session.flush()
        if rule.monthly_limit is not None and _month_usage(tenant_id, employee_id, now) > q2(rule.monthly_limit):
            raise TransactionConflictError(
                "STAFF_DISCOUNT_RACE",
                "Monthly staff discount limit reached by a concurrent sale",
                {"employee_id": employee_id},
            )
        result["usage"] = usage

    return result
