"""
Sales Return Service - multi-item customer returns

WHY: A return must undo every effect of the sale it references: stock,
revenue, output VAT and cost of goods. Refund amounts come from what the
customer actually paid on the invoice (line totals after every discount),
not from today's catalog price, so a full return refunds exactly
invoice.final_amount.

DESIGN:
- Cumulative returned quantity per (invoice, product) never exceeds the
  invoiced quantity; the invoice row is locked while this is checked.
- The header is written first with total_refund = 0 and completed once the
  lines are priced.
- Accounting, daybook and VAT are posted in the same transaction.
- Loyalty points earned on the sale are not clawed back.
"""

from __future__ import annotations

from collections import OrderedDict
from decimal import Decimal

from sqlalchemy import func

from ..errors import TransactionNotFoundError, TransactionValidationError
from ..extensions import db
from ..models import Invoice, InvoiceItem, SalesReturn, SalesReturnItem
from ..money import ZERO, q2, split_inclusive, to_decimal
from ..time_utils import utcnow
from ..validation import REFUND_TYPES, require_choice
from . import coa_service
from .coa_service import AccountMap
from .concurrency import lock_for_update, run_transaction
from .inventory_service import increment_stock, record_movements
from .ledger_service import post_journal_entry, record_daybook
from .vat_service import apply_vat_event


def _invoiced_by_product(tenant_id: int, invoice_id: int) -> "OrderedDict[int, dict]":
    """Per product: invoiced qty, paid gross, tax rate and unit cost."""
    items = (
        db.session.query(InvoiceItem)
        .filter_by(tenant_id=tenant_id, invoice_id=invoice_id)
        .order_by(InvoiceItem.id.asc())
        .all()
    )
    summary: "OrderedDict[int, dict]" = OrderedDict()
    for item in items:
        entry = summary.setdefault(item.product_id, {
            "qty": 0,
            "gross": ZERO,
            "cost": ZERO,
            "tax": to_decimal(item.tax),
        })
        entry["qty"] += item.quantity
        entry["gross"] += q2(item.total)
        entry["cost"] += q2(item.cost_price) * item.quantity
    return summary


def _returned_by_product(tenant_id: int, invoice_id: int) -> dict[int, dict]:
    rows = (
        db.session.query(
            SalesReturnItem.product_id,
            func.coalesce(func.sum(SalesReturnItem.quantity), 0),
            func.coalesce(func.sum(SalesReturnItem.total), 0),
        )
        .filter(SalesReturnItem.tenant_id == tenant_id, SalesReturnItem.invoice_id == invoice_id)
        .group_by(SalesReturnItem.product_id)
        .all()
    )
    return {pid: {"qty": int(qty or 0), "gross": q2(gross)} for pid, qty, gross in rows}


def price_return_lines(invoiced: dict, returned: dict, request_items: list[dict]) -> list[dict]:
    """
    Validate requested quantities and price each line.

    line_gross is the invoiced gross prorated by quantity; the return that
    takes the last remaining units gets exactly what is left, so rounding
    never leaves a cent behind.
    """
    wanted: "OrderedDict[int, int]" = OrderedDict()
    for item in request_items:
        qty = item.get("qty")
        if not isinstance(qty, int) or isinstance(qty, bool) or qty <= 0:
            raise TransactionValidationError(
                "INVALID_QTY", "Quantity must be greater than zero", {"product_id": item.get("product_id")}
            )
        wanted[item["product_id"]] = wanted.get(item["product_id"], 0) + qty

    lines = []
    for product_id, qty in wanted.items():
        sold = invoiced.get(product_id)
        if sold is None:
            raise TransactionValidationError(
                "PRODUCT_NOT_ON_INVOICE", f"Product {product_id} is not on this invoice", {"product_id": product_id}
            )
        prior = returned.get(product_id, {"qty": 0, "gross": ZERO})
        returnable = sold["qty"] - prior["qty"]
        if qty > returnable:
            raise TransactionValidationError(
                "EXCEEDS_RETURNABLE",
                f"Return quantity exceeds returnable quantity for product {product_id}",
                {"product_id": product_id, "requested": qty, "returnable": returnable},
            )

        if qty == returnable:
            line_gross = sold["gross"] - prior["gross"]
        else:
            line_gross = q2(sold["gross"] * qty / sold["qty"])
        net, tax_amount = split_inclusive(line_gross, sold["tax"])
        unit_cost = q2(sold["cost"] / sold["qty"])

        lines.append({
            "product_id": product_id,
            "qty": qty,
            "price": q2(line_gross / qty),
            "tax": sold["tax"],
            "line_gross": line_gross,
            "net": net,
            "tax_amount": tax_amount,
            "cost_price": unit_cost,
            "line_cost": q2(unit_cost * qty),
        })
    return lines


def post_return_accounting(accounts: AccountMap, sales_return: SalesReturn, invoice_number: str) -> None:
    """
    Dr Sales (net), Dr VAT Output (tax); Cr Cash or Accounts Receivable (credit note).
    Dr Inventory, Cr COGS (cost).
    """
    refund_account = coa_service.ACCOUNTS_RECEIVABLE if sales_return.refund_type == "credit_note" else coa_service.CASH
    label = f"Sales return #{sales_return.id} - {invoice_number}"

    post_journal_entry(
        accounts,
        debit=coa_service.SALES,
        credit=refund_account,
        amount=sales_return.net_amount,
        description=label,
        reference_type="sales_return",
        reference_id=sales_return.id,
    )
    post_journal_entry(
        accounts,
        debit=coa_service.VAT_OUTPUT,
        credit=refund_account,
        amount=sales_return.tax_amount,
        description=f"{label} (VAT)",
        reference_type="sales_return",
        reference_id=sales_return.id,
    )
    post_journal_entry(
        accounts,
        debit=coa_service.INVENTORY,
        credit=coa_service.COGS,
        amount=sales_return.cost_amount,
        description=f"{label} (COGS reversal)",
        reference_type="sales_return",
        reference_id=sales_return.id,
    )


def create_sales_return(
    *,
    tenant_id: int,
    invoice_id: int,
    items: list[dict],
    refund_type: str,
    reason: str | None = None,
    processed_by: int | None = None,
) -> dict:
    """Process a customer return; everything commits or nothing does."""
    if not items:
        raise TransactionValidationError("EMPTY_ITEMS", "No items provided")
    refund_type = require_choice(refund_type, "refund_type", REFUND_TYPES, "INVALID_REFUND_TYPE")

    def _op() -> dict:
        invoice = lock_for_update(
            db.session.query(Invoice).filter_by(id=invoice_id, tenant_id=tenant_id)
        ).first()
        if invoice is None:
            raise TransactionNotFoundError("INVOICE_NOT_FOUND", "Invoice not found", {"invoice_id": invoice_id})
        if refund_type == "credit_note" and invoice.customer_id is None:
            raise TransactionValidationError(
                "CREDIT_NOTE_REQUIRES_CUSTOMER",
                "A credit note needs an invoice with a customer",
                {"invoice_id": invoice_id},
            )

        accounts = AccountMap.load(tenant_id)
        for name in (coa_service.SALES, coa_service.VAT_OUTPUT, coa_service.INVENTORY, coa_service.COGS,
                     coa_service.ACCOUNTS_RECEIVABLE if refund_type == "credit_note" else coa_service.CASH):
            accounts.get(name)

        lines = price_return_lines(
            _invoiced_by_product(tenant_id, invoice_id),
            _returned_by_product(tenant_id, invoice_id),
            items,
        )

        sales_return = SalesReturn(
            tenant_id=tenant_id,
            invoice_id=invoice.id,
            customer_id=invoice.customer_id,
            refund_type=refund_type,
            reason=reason,
            total_refund=ZERO,
            processed_by=processed_by,
            created_at=utcnow(),
        )
        db.session.add(sales_return)
        db.session.flush()

        for line in lines:
            db.session.add(SalesReturnItem(
                tenant_id=tenant_id,
                return_id=sales_return.id,
                invoice_id=invoice.id,
                product_id=line["product_id"],
                quantity=line["qty"],
                price=line["price"],
                tax=line["tax"],
                net_amount=line["net"],
                tax_amount=line["tax_amount"],
                total=line["line_gross"],
                cost_price=line["cost_price"],
            ))

        sales_return.total_refund = sum((line["line_gross"] for line in lines), ZERO)
        sales_return.net_amount = sum((line["net"] for line in lines), ZERO)
        sales_return.tax_amount = sum((line["tax_amount"] for line in lines), ZERO)
        sales_return.cost_amount = sum((line["line_cost"] for line in lines), ZERO)
        db.session.flush()

        stock_lines = [(line["product_id"], line["qty"]) for line in lines]
        increment_stock(tenant_id, stock_lines)
        record_movements(
            tenant_id=tenant_id,
            movement_type="sale_return",
            lines=stock_lines,
            reference_table="sales_returns",
            reference_id=sales_return.id,
            created_by=processed_by,
        )

        post_return_accounting(accounts, sales_return, invoice.invoice_number)
        record_daybook(
            tenant_id=tenant_id,
            entry_type="sales_return",
            description=f"Sales return for {invoice.invoice_number}",
            credit=sales_return.total_refund,
            payment_method=refund_type,
            reference_type="sales_return",
            reference_id=sales_return.id,
        )
        apply_vat_event(
            tenant_id=tenant_id,
            event="sales_return",
            net=sales_return.net_amount,
            tax=sales_return.tax_amount,
            occurred_at=sales_return.created_at,
        )

        return {"message": "Sales return processed", "sales_return": sales_return.to_dict()}

    return run_transaction(_op)


def credited_amount(tenant_id: int, invoice_id: int) -> Decimal:
    """Sum of credit notes issued against an invoice."""
    total = (
        db.session.query(func.coalesce(func.sum(SalesReturn.total_refund), 0))
        .filter(
            SalesReturn.tenant_id == tenant_id,
            SalesReturn.invoice_id == invoice_id,
            SalesReturn.refund_type == "credit_note",
        )
        .scalar()
    )
    return q2(total)
