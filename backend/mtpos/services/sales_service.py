"""
Sales Service - invoice creation pipeline

WHY: A sale touches discounts, loyalty, numbering, stock, accounting and VAT.
Everything the caller must see (steps 1-19) happens in one database
transaction; accounting, VAT and the receipt run afterwards as the deferred
tail (see deferred_service) and are allowed to lag.

PIPELINE:
 1. validate items             11. attach redeem txn / staff usage to invoice
 2. preload products, customer, 12. insert lines (rounding absorbed by one line)
    chart of accounts           13. insert invoice_discounts
 3. normalize prices           14. insert coupon usage (re-checked)
 4. resolve customer           15. decrement stock, collect low-stock alerts
 5. item/bill/coupon/tier      16. stock movements
 6. staff discount             17. earn points (computed only)
 7. coupon per-customer limit  18. final totals on the header
 8. redeem points              19. response payload
 9. allocate invoice number    20. schedule deferred tail
10. insert header
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import (
    TransactionConflictError,
    TransactionNotFoundError,
    TransactionValidationError,
)
from ..extensions import db, deferred_tail
from ..models import (
    Customer,
    EmployeeDiscountUsage,
    Invoice,
    InvoiceDiscount,
    InvoiceItem,
    LoyaltyTransaction,
)
from ..money import ZERO, HUNDRED, q2, to_decimal
from ..time_utils import utcnow
from ..validation import PAYMENT_METHODS, require_choice
from . import coa_service
from .coa_service import AccountMap
from .concurrency import run_transaction
from .discount_service import (
    apply_discounts,
    calculate_staff_discount,
    check_coupon_customer_limit,
    load_active_rules,
    record_coupon_usage,
)
from .document_service import next_invoice_number
from .inventory_service import decrement_stock, record_movements
from .ledger_service import post_journal_entry, record_daybook
from .loyalty_service import attach_to_invoice, compute_earn_points, redeem_points
from .pricing_service import load_products, normalize_items
from .receipt_service import pdf_url_for


def _required_sale_accounts(payment_method: str) -> tuple[str, ...]:
    return (
        coa_service.payment_account_name(payment_method),
        coa_service.SALES,
        coa_service.VAT_OUTPUT,
        coa_service.COGS,
        coa_service.INVENTORY,
    )


def _load_customer(tenant_id: int, customer_id: int | None) -> Customer | None:
    if customer_id is None:
        return None
    customer = db.session.query(Customer).filter_by(id=customer_id, tenant_id=tenant_id).first()
    if customer is None:
        raise TransactionNotFoundError("CUSTOMER_NOT_FOUND", "Customer not found", {"customer_id": customer_id})
    return customer


# =============================================================================
# Line construction
# =============================================================================

def allocate_line_totals(lines: list[dict], final_amount: Decimal, total_after_item: Decimal) -> list[Decimal]:
    """
    Spread final_amount over the lines in proportion to their after-item totals.

    Bill, coupon, tier, staff and redeem reductions are invoice-level; each
    line carries its share. The cent left over by rounding goes to the first
    line (or the first that can absorb a negative cent) so that
    sum(totals) == final_amount exactly.
    """
    if not lines:
        return []
    if total_after_item <= 0 or final_amount <= 0:
        return [ZERO for _ in lines]

    totals = [q2(line["line_after_item"] * final_amount / total_after_item) for line in lines]
    diff = final_amount - sum(totals, ZERO)
    if diff:
        for idx, total in enumerate(totals):
            if total + diff >= 0:
                totals[idx] = total + diff
                break
    return totals


def build_line_rows(lines: list[dict], totals: list[Decimal]) -> list[dict]:
    """
    Per line:
        price      = total / qty                    (VAT-inclusive unit)
        net_price  = price / (1 + tax/100)
        tax_amount = total - net_price * qty
        discount   = item-stage line discount / qty (per unit)
    """
    rows = []
    for line, total in zip(lines, totals):
        qty = line["qty"]
        tax = to_decimal(line["tax"])
        price = q2(total / qty)
        net_price = q2(price / (1 + tax / HUNDRED)) if tax > 0 else price
        rows.append({
            "product_id": line["product_id"],
            "name": line.get("name"),
            "quantity": qty,
            "price": price,
            "tax": tax,
            "tax_amount": q2(total - net_price * qty),
            "discount_amount": line["discount_per_unit"],
            "net_price": net_price,
            "total": total,
            "cost_price": q2(line.get("cost_price")),
        })
    return rows


def _line_to_response(row: dict) -> dict:
    return {
        "product_id": row["product_id"],
        "name": row["name"],
        "quantity": row["quantity"],
        "price": float(row["price"]),
        "tax": float(row["tax"]),
        "tax_amount": float(row["tax_amount"]),
        "discount_amount": float(row["discount_amount"]),
        "net_price": float(row["net_price"]),
        "total": float(row["total"]),
    }


# =============================================================================
# Create invoice (steps 1-20)
# =============================================================================

def create_invoice(
    *,
    tenant_id: int,
    items: list[dict],
    payment_method: str,
    customer_id: int | None = None,
    redeem_points_requested: int = 0,
    coupon_code: str | None = None,
    employee_id: int | None = None,
    handled_by: int | None = None,
    handled_by_name: str | None = None,
) -> dict:
    """
    Create a sale invoice and return the response payload.

    Raises TransactionError subclasses; on any error nothing is committed.
    """
    # 1) validate
    if not items:
        raise TransactionValidationError("EMPTY_ITEMS", "No items provided")
    payment_method = require_choice(payment_method, "payment_method", PAYMENT_METHODS, "INVALID_PAYMENT_METHOD")
    redeem_requested = int(redeem_points_requested or 0)

    def _op() -> dict:
        now = utcnow()

        # 2) preload
        products = load_products(tenant_id, [item["product_id"] for item in items])
        customer = _load_customer(tenant_id, customer_id)  # 4)
        coa_service.seed_default_coa(tenant_id)
        accounts = AccountMap.load(tenant_id)
        for name in _required_sale_accounts(payment_method):
            accounts.get(name)
        rules = load_active_rules(tenant_id)

        # 3) pricing
        lines = normalize_items(tenant_id, items, products)

        # 5) discount stages 1-4
        discounted = apply_discounts(
            tenant_id=tenant_id,
            items=lines,
            customer=customer,
            coupon_code=coupon_code,
            rules=rules,
            lock_coupon=True,
        )
        running = discounted["total_before_redeem"]

        # 6) staff
        staff = calculate_staff_discount(
            tenant_id=tenant_id, employee_id=employee_id, amount=running, record=True, now=now
        )
        running = q2(running - staff["discount"])

        # 7) coupon per customer
        coupon = discounted["applied_coupon"]
        check_coupon_customer_limit(coupon, customer.id if customer else None)

        # 8) redeem
        redeemed = redeem_points(tenant_id=tenant_id, customer=customer, points=redeem_requested, running_total=running)
        final_amount = q2(max(ZERO, redeemed["total"]))

        # 9) number
        invoice_number = next_invoice_number(tenant_id, now=now)

        # 10) header
        invoice = Invoice(
            tenant_id=tenant_id,
            invoice_number=invoice_number,
            customer_id=customer.id if customer else None,
            employee_id=employee_id,
            payment_method=payment_method,
            subtotal=discounted["subtotal"],
            item_discount_total=discounted["item_discount_total"],
            bill_discount_total=discounted["bill_discount_total"],
            coupon_discount_total=discounted["coupon_discount_total"],
            membership_discount_total=discounted["membership_discount_total"],
            staff_discount=staff["discount"],
            redeemed_points=redeemed["points"],
            final_amount=final_amount,
            total_amount=ZERO,
            status="NUMBERED",
            handled_by=handled_by,
            handled_by_name=handled_by_name,
            created_at=now,
        )
        try:
            with db.session.begin_nested():
                db.session.add(invoice)
                db.session.flush()
        except IntegrityError:
            raise TransactionConflictError(
                "INVOICE_NUMBER_COLLISION",
                "Invoice number already in use, please retry",
                {"invoice_number": invoice_number},
            )
        invoice.status = "HEADER_INSERTED"

        # 11) attach tentative rows
        if redeemed["transaction"] is not None:
            attach_to_invoice([redeemed["transaction"].id], invoice.id)
        if staff["usage"] is not None:
            db.session.execute(
                update(EmployeeDiscountUsage)
                .where(EmployeeDiscountUsage.id == staff["usage"].id)
                .values(invoice_id=invoice.id)
                .execution_options(synchronize_session=False)
            )

        # 12) lines
        totals = allocate_line_totals(discounted["items"], final_amount, discounted["total_after_item"])
        line_rows = build_line_rows(discounted["items"], totals)
        for row in line_rows:
            db.session.add(InvoiceItem(
                tenant_id=tenant_id,
                invoice_id=invoice.id,
                product_id=row["product_id"],
                quantity=row["quantity"],
                price=row["price"],
                tax=row["tax"],
                tax_amount=row["tax_amount"],
                discount_amount=row["discount_amount"],
                net_price=row["net_price"],
                total=row["total"],
                cost_price=row["cost_price"],
            ))
        db.session.flush()
        invoice.status = "LINES_INSERTED"

        # 13) fired rules
        for fired in discounted["invoice_discounts"]:
            db.session.add(InvoiceDiscount(
                tenant_id=tenant_id,
                invoice_id=invoice.id,
                rule_id=fired["rule_id"],
                amount=fired["amount"],
                description=fired["description"],
            ))
        if staff["discount"] > 0:
            db.session.add(InvoiceDiscount(
                tenant_id=tenant_id,
                invoice_id=invoice.id,
                rule_id=None,
                amount=staff["discount"],
                description="Staff discount",
            ))

        # 14) coupon usage
        if coupon is not None:
            record_coupon_usage(
                tenant_id=tenant_id,
                coupon=coupon,
                customer_id=customer.id if customer else None,
                invoice_id=invoice.id,
            )

        # 15) stock
        stock_lines = [(row["product_id"], row["quantity"]) for row in line_rows]
        low_stock = decrement_stock(tenant_id, stock_lines)
        invoice.status = "INVENTORY_POSTED"

        # 16) movements
        record_movements(
            tenant_id=tenant_id,
            movement_type="sale",
            lines=stock_lines,
            reference_table="invoices",
            reference_id=invoice.id,
            created_by=handled_by,
        )
        invoice.status = "STOCK_JOURNALED"

        # 17) earn (persisted by the tail)
        earned = compute_earn_points(tenant_id, final_amount) if customer is not None else 0

        # 18) totals
        net_total = sum((row["net_price"] * row["quantity"] for row in line_rows), ZERO)
        tax_total = sum((row["tax_amount"] for row in line_rows), ZERO)
        invoice.total_amount = final_amount
        invoice.net_amount = q2(net_total)
        invoice.tax_amount = q2(tax_total)
        invoice.cost_amount = q2(sum((row["cost_price"] * row["quantity"] for row in line_rows), ZERO))
        invoice.earned_points = earned
        invoice.pdf_url = pdf_url_for(invoice_number)
        invoice.status = "RESPONDED"
        db.session.flush()

        # 19) payload
        loyalty = None
        if customer is not None:
            loyalty = {
                "earned": earned,
                "redeemed": redeemed["points"],
                "final_balance": customer.loyalty_points + earned,
            }

        return {
            "message": "Invoice created successfully",
            "invoice": invoice.to_dict(),
            "items": [_line_to_response(row) for row in line_rows],
            "lowStockAlerts": low_stock,
            "loyalty": loyalty,
        }

    payload = run_transaction(_op)

    # 20) deferred tail
    schedule_tail(tenant_id, payload["invoice"]["id"])
    return payload


def schedule_tail(tenant_id: int, invoice_id: int) -> None:
    from .deferred_service import run_invoice_tail

    try:
        deferred_tail.submit(run_invoice_tail, tenant_id, invoice_id)
    except RuntimeError:
        # Executor already shut down; replay-tail picks the invoice up later
        current_app.logger.exception("Failed to schedule tail for invoice %s", invoice_id)


# =============================================================================
# Accounting for a committed invoice (deferred tail step c)
# =============================================================================

def post_invoice_accounting(invoice: Invoice, accounts: AccountMap | None = None) -> None:
    """
    Cash / bank sale:  Dr Cash|Bank, Cr Sales (net)     invoice_sale
                       Dr Cash|Bank, Cr VAT Output (tax) invoice_vat
    Credit sale:       the same with Dr Accounts Receivable, no daybook line
    Always:            Dr COGS, Cr Inventory (cost)      invoice_cogs
    """
    accounts = accounts or AccountMap.load(invoice.tenant_id)
    debit_account = coa_service.payment_account_name(invoice.payment_method)
    number = invoice.invoice_number

    post_journal_entry(
        accounts,
        debit=debit_account,
        credit=coa_service.SALES,
        amount=invoice.net_amount,
        description=f"Sales - {number}",
        reference_type="invoice_sale",
        reference_id=invoice.id,
        entry_type="sale",
    )
    post_journal_entry(
        accounts,
        debit=debit_account,
        credit=coa_service.VAT_OUTPUT,
        amount=invoice.tax_amount,
        description=f"VAT Output - {number}",
        reference_type="invoice_vat",
        reference_id=invoice.id,
        entry_type="sale",
    )
    post_journal_entry(
        accounts,
        debit=coa_service.COGS,
        credit=coa_service.INVENTORY,
        amount=invoice.cost_amount,
        description=f"COGS - {number}",
        reference_type="invoice_cogs",
        reference_id=invoice.id,
        entry_type="cogs",
    )

    if invoice.payment_method != "credit":
        record_daybook(
            tenant_id=invoice.tenant_id,
            entry_type="sale",
            description=f"Invoice {number}",
            credit=invoice.final_amount,
            payment_method=invoice.payment_method,
            reference_type="invoice_sale",
            reference_id=invoice.id,
        )


# =============================================================================
# Read side
# =============================================================================

def get_invoice(tenant_id: int, invoice_id: int) -> dict:
    invoice = db.session.query(Invoice).filter_by(id=invoice_id, tenant_id=tenant_id).first()
    if invoice is None:
        raise TransactionNotFoundError("INVOICE_NOT_FOUND", "Invoice not found", {"invoice_id": invoice_id})

    items = (
        db.session.query(InvoiceItem)
        .filter_by(tenant_id=tenant_id, invoice_id=invoice_id)
        .order_by(InvoiceItem.id.asc())
        .all()
    )
    discounts = (
        db.session.query(InvoiceDiscount)
        .filter_by(tenant_id=tenant_id, invoice_id=invoice_id)
        .order_by(InvoiceDiscount.id.asc())
        .all()
    )
    loyalty = (
        db.session.query(LoyaltyTransaction)
        .filter_by(tenant_id=tenant_id, invoice_id=invoice_id)
        .order_by(LoyaltyTransaction.id.asc())
        .all()
    )
    return {
        "invoice": invoice.to_dict(),
        "items": [item.to_dict() for item in items],
        "discounts": [d.to_dict() for d in discounts],
        "loyalty_transactions": [t.to_dict() for t in loyalty],
    }


# =============================================================================
# Preview (no writes)
# =============================================================================

def preview_invoice(
    *,
    tenant_id: int,
    items: list[dict],
    customer_id: int | None = None,
    redeem_points_requested: int = 0,
    coupon_code: str | None = None,
    employee_id: int | None = None,
) -> dict:
    """
    Price a cart exactly as create_invoice would, without reserving a number,
    touching stock or recording any usage. Includes a VAT breakdown by rate
    and a COGS estimate.
    """
    if not items:
        raise TransactionValidationError("EMPTY_ITEMS", "No items provided")
    redeem_requested = int(redeem_points_requested or 0)

    try:
        customer = _load_customer(tenant_id, customer_id)
        lines = normalize_items(tenant_id, items)
        discounted = apply_discounts(
            tenant_id=tenant_id, items=lines, customer=customer, coupon_code=coupon_code
        )
        running = discounted["total_before_redeem"]

        staff = calculate_staff_discount(
            tenant_id=tenant_id, employee_id=employee_id, amount=running, record=False
        )
        running = q2(running - staff["discount"])
        check_coupon_customer_limit(discounted["applied_coupon"], customer.id if customer else None)

        if redeem_requested:
            if customer is None or customer.loyalty_points < redeem_requested:
                raise TransactionValidationError(
                    "INSUFFICIENT_POINTS",
                    "Insufficient loyalty points",
                    {"requested": redeem_requested, "available": customer.loyalty_points if customer else 0},
                )
            running = max(ZERO, running - Decimal(redeem_requested))
        final_amount = q2(running)

        totals = allocate_line_totals(discounted["items"], final_amount, discounted["total_after_item"])
        line_rows = build_line_rows(discounted["items"], totals)

        vat_by_rate: dict[Decimal, dict] = {}
        for row in line_rows:
            bucket = vat_by_rate.setdefault(row["tax"], {"net": ZERO, "tax_amount": ZERO, "gross": ZERO})
            bucket["net"] += row["net_price"] * row["quantity"]
            bucket["tax_amount"] += row["tax_amount"]
            bucket["gross"] += row["total"]

        return {
            "items": [_line_to_response(row) for row in line_rows],
            "subtotal": float(discounted["subtotal"]),
            "item_discount_total": float(discounted["item_discount_total"]),
            "bill_discount_total": float(discounted["bill_discount_total"]),
            "coupon_discount_total": float(discounted["coupon_discount_total"]),
            "membership_discount_total": float(discounted["membership_discount_total"]),
            "staff_discount": float(staff["discount"]),
            "staff_monthly_remaining": float(staff["monthly_remaining"]) if staff["monthly_remaining"] is not None else None,
            "redeem_points": redeem_requested,
            "final_amount": float(final_amount),
            "discounts": [
                {"rule_id": d["rule_id"], "amount": float(d["amount"]), "description": d["description"]}
                for d in discounted["invoice_discounts"]
            ],
            "vat_breakdown": [
                {
                    "tax": float(rate),
                    "net": float(q2(bucket["net"])),
                    "tax_amount": float(q2(bucket["tax_amount"])),
                    "gross": float(q2(bucket["gross"])),
                }
                for rate, bucket in sorted(vat_by_rate.items())
            ],
            "cogs_estimate": float(q2(sum((row["cost_price"] * row["quantity"] for row in line_rows), ZERO))),
            "preview_loyalty_points": compute_earn_points(tenant_id, final_amount),
        }
    finally:
        db.session.rollback()
