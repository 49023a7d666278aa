"""
Purchase Service - goods inward, supplier payments, purchase returns

WHY: The purchase side mirrors the sale pipeline through the same
inventory, accounting and VAT machinery. Supplier cost prices are
VAT-exclusive; input VAT is added on top.

ACCOUNTING:
- purchase:         Dr Inventory (net), Dr VAT Input (tax) / Cr Cash|Bank|Accounts Payable
- supplier payment: Dr Accounts Payable / Cr Cash|Bank
- purchase return:  Dr Cash|Accounts Payable / Cr Inventory (net), Cr VAT Input (tax)
"""

from __future__ import annotations

from collections import OrderedDict
from datetime import date

from sqlalchemy import func

from ..errors import TransactionNotFoundError, TransactionValidationError
from ..extensions import db
from ..models import (
    Purchase,
    PurchaseItem,
    PurchaseReturn,
    PurchaseReturnItem,
    Supplier,
    SupplierPayment,
)
from ..money import ZERO, q2, percent_of, to_decimal
from ..time_utils import utcnow
from ..validation import PURCHASE_PAYMENT_METHODS, REFUND_TYPES, coerce_amount, require_choice
from . import coa_service
from .coa_service import AccountMap
from .concurrency import lock_for_update, run_transaction
from .document_service import next_purchase_number
from .inventory_service import decrement_stock, increment_stock, record_movements
from .ledger_service import post_journal_entry, record_daybook
from .pricing_service import load_products
from .vat_service import apply_vat_event


def _settlement_account(payment_method: str) -> str:
    if payment_method == "credit":
        return coa_service.ACCOUNTS_PAYABLE
    if payment_method == "bank":
        return coa_service.BANK
    return coa_service.CASH


def _load_purchase(tenant_id: int, purchase_id: int, *, lock: bool = False) -> Purchase:
    query = db.session.query(Purchase).filter_by(id=purchase_id, tenant_id=tenant_id)
    purchase = (lock_for_update(query) if lock else query).first()
    if purchase is None:
        raise TransactionNotFoundError("PURCHASE_NOT_FOUND", "Purchase not found", {"purchase_id": purchase_id})
    return purchase


def _parse_expiry(value) -> date | None:
    if value in (None, ""):
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise TransactionValidationError("INVALID_FIELD", "expiry_date must be YYYY-MM-DD", {"field": "expiry_date"})


def normalize_purchase_items(tenant_id: int, raw_items: list[dict]) -> list[dict]:
    """
    line_net = qty * cost_price, line_tax = line_net * tax%, total = net + tax.
    tax defaults to the product's rate.
    """
    if not raw_items:
        raise TransactionValidationError("EMPTY_ITEMS", "No items provided")

    for item in raw_items:
        qty = item.get("qty")
        if not isinstance(qty, int) or isinstance(qty, bool) or qty <= 0:
            raise TransactionValidationError(
                "INVALID_QTY", "Quantity must be greater than zero", {"product_id": item.get("product_id")}
            )

    products = load_products(tenant_id, [item["product_id"] for item in raw_items])
    lines = []
    for item in raw_items:
        product = products[item["product_id"]]
        cost = q2(coerce_amount(item.get("cost_price", product.cost_price), "cost_price"))
        if cost < 0:
            raise TransactionValidationError("INVALID_AMOUNT", "cost_price must be >= 0", {"field": "cost_price"})
        tax = to_decimal(item["tax"]) if item.get("tax") is not None else to_decimal(product.tax)
        net = q2(cost * item["qty"])
        tax_amount = q2(percent_of(net, tax))
        lines.append({
            "product_id": product.id,
            "qty": item["qty"],
            "cost_price": cost,
            "tax": tax,
            "net": net,
            "tax_amount": tax_amount,
            "total": net + tax_amount,
            "stock_defaults": {
                "reorder_level": item.get("reorder_level"),
                "expiry_date": _parse_expiry(item.get("expiry_date")),
                "max_stock": item.get("max_stock"),
            },
        })
    return lines


# =============================================================================
# Purchase
# =============================================================================

def create_purchase(
    *,
    tenant_id: int,
    supplier_id: int,
    items: list[dict],
    payment_method: str = "credit",
    invoice_ref: str | None = None,
    created_by: int | None = None,
) -> dict:
    payment_method = require_choice(payment_method, "payment_method", PURCHASE_PAYMENT_METHODS, "INVALID_PAYMENT_METHOD")

    def _op() -> dict:
        now = utcnow()
        supplier = db.session.query(Supplier).filter_by(id=supplier_id, tenant_id=tenant_id).first()
        if supplier is None:
            raise TransactionNotFoundError("SUPPLIER_NOT_FOUND", "Supplier not found", {"supplier_id": supplier_id})

        coa_service.seed_default_coa(tenant_id)
        accounts = AccountMap.load(tenant_id)
        settle = _settlement_account(payment_method)
        for name in (coa_service.INVENTORY, coa_service.VAT_INPUT, settle):
            accounts.get(name)

        lines = normalize_purchase_items(tenant_id, items)
        net_total = sum((line["net"] for line in lines), ZERO)
        tax_total = sum((line["tax_amount"] for line in lines), ZERO)
        total_amount = net_total + tax_total

        purchase = Purchase(
            tenant_id=tenant_id,
            supplier_id=supplier.id,
            purchase_number=next_purchase_number(tenant_id, now=now),
            invoice_ref=invoice_ref,
            payment_method=payment_method,
            net_total=net_total,
            tax_total=tax_total,
            total_amount=total_amount,
            amount_paid=ZERO,
            is_paid=False,
            created_by=created_by,
            created_at=now,
        )
        db.session.add(purchase)
        db.session.flush()

        for line in lines:
            db.session.add(PurchaseItem(
                tenant_id=tenant_id,
                purchase_id=purchase.id,
                product_id=line["product_id"],
                quantity=line["qty"],
                cost_price=line["cost_price"],
                tax=line["tax"],
                net_amount=line["net"],
                tax_amount=line["tax_amount"],
                total=line["total"],
            ))
        db.session.flush()

        stock_lines = [(line["product_id"], line["qty"]) for line in lines]
        increment_stock(
            tenant_id,
            stock_lines,
            defaults={line["product_id"]: line["stock_defaults"] for line in lines},
        )
        record_movements(
            tenant_id=tenant_id,
            movement_type="purchase",
            lines=stock_lines,
            reference_table="purchases",
            reference_id=purchase.id,
            created_by=created_by,
        )

        label = f"Purchase {purchase.purchase_number}"
        post_journal_entry(
            accounts, debit=coa_service.INVENTORY, credit=settle, amount=net_total,
            description=label, reference_type="purchase", reference_id=purchase.id,
        )
        post_journal_entry(
            accounts, debit=coa_service.VAT_INPUT, credit=settle, amount=tax_total,
            description=f"{label} (VAT)", reference_type="purchase", reference_id=purchase.id,
        )
        record_daybook(
            tenant_id=tenant_id,
            entry_type="purchase",
            description=f"{label} - {supplier.name}",
            debit=total_amount,
            payment_method=payment_method,
            reference_type="purchase",
            reference_id=purchase.id,
        )
        apply_vat_event(tenant_id=tenant_id, event="purchase", net=net_total, tax=tax_total, occurred_at=now)

        # Paid on receipt: record the settlement, the journal above already credited Cash/Bank
        if payment_method != "credit" and total_amount > 0:
            db.session.add(SupplierPayment(
                tenant_id=tenant_id,
                purchase_id=purchase.id,
                supplier_id=supplier.id,
                amount=total_amount,
                payment_method=payment_method,
                paid_by=created_by,
                note="Paid on receipt",
            ))
            purchase.amount_paid = total_amount
        purchase.is_paid = purchase.amount_paid >= total_amount
        db.session.flush()

        return {"message": "Purchase recorded", "purchase": purchase.to_dict()}

    return run_transaction(_op)


# =============================================================================
# Supplier payments
# =============================================================================

def _credited_on_purchase(tenant_id: int, purchase_id: int):
    total = (
        db.session.query(func.coalesce(func.sum(PurchaseReturn.total_refund), 0))
        .filter(
            PurchaseReturn.tenant_id == tenant_id,
            PurchaseReturn.purchase_id == purchase_id,
            PurchaseReturn.refund_type == "credit_note",
        )
        .scalar()
    )
    return q2(total)


def purchase_outstanding(purchase: Purchase):
    if purchase.payment_method != "credit":
        return ZERO
    return q2(purchase.total_amount) - q2(purchase.amount_paid) - _credited_on_purchase(purchase.tenant_id, purchase.id)


def pay_supplier(
    *,
    tenant_id: int,
    purchase_id: int,
    amount,
    payment_method: str = "cash",
    paid_by: int | None = None,
    note: str | None = None,
) -> dict:
    """Settle (part of) a credit purchase."""
    amount = q2(coerce_amount(amount, "amount"))
    if amount <= 0:
        raise TransactionValidationError("INVALID_AMOUNT", "Payment amount must be greater than zero", {"field": "amount"})
    payment_method = require_choice(payment_method, "payment_method", ("cash", "bank"), "INVALID_PAYMENT_METHOD")

    def _op() -> dict:
        purchase = _load_purchase(tenant_id, purchase_id, lock=True)
        outstanding = purchase_outstanding(purchase)
        if amount > outstanding:
            raise TransactionValidationError(
                "PAYMENT_EXCEEDS_OUTSTANDING",
                "Payment exceeds the outstanding balance",
                {"outstanding": str(outstanding), "amount": str(amount)},
            )

        accounts = AccountMap.load(tenant_id)
        payment = SupplierPayment(
            tenant_id=tenant_id,
            purchase_id=purchase.id,
            supplier_id=purchase.supplier_id,
            amount=amount,
            payment_method=payment_method,
            paid_by=paid_by,
            note=note,
        )
        db.session.add(payment)
        db.session.flush()

        purchase.amount_paid = q2(purchase.amount_paid) + amount
        purchase.is_paid = purchase_outstanding(purchase) <= 0

        post_journal_entry(
            accounts,
            debit=coa_service.ACCOUNTS_PAYABLE,
            credit=_settlement_account(payment_method),
            amount=amount,
            description=f"Supplier payment for {purchase.purchase_number}",
            reference_type="purchase_payment",
            reference_id=payment.id,
        )
        record_daybook(
            tenant_id=tenant_id,
            entry_type="supplier_payment",
            description=f"Supplier payment for {purchase.purchase_number}",
            debit=amount,
            payment_method=payment_method,
            reference_type="purchase_payment",
            reference_id=payment.id,
        )
        db.session.flush()

        return {
            "message": "Supplier payment recorded",
            "payment": payment.to_dict(),
            "purchase": purchase.to_dict(),
        }

    return run_transaction(_op)


# =============================================================================
# Purchase returns
# =============================================================================

def _purchased_by_product(tenant_id: int, purchase_id: int) -> "OrderedDict[int, dict]":
    items = (
        db.session.query(PurchaseItem)
        .filter_by(tenant_id=tenant_id, purchase_id=purchase_id)
        .order_by(PurchaseItem.id.asc())
        .all()
    )
    summary: "OrderedDict[int, dict]" = OrderedDict()
    for item in items:
        entry = summary.setdefault(item.product_id, {"qty": 0, "net": ZERO, "tax_amount": ZERO, "tax": to_decimal(item.tax)})
        entry["qty"] += item.quantity
        entry["net"] += q2(item.net_amount)
        entry["tax_amount"] += q2(item.tax_amount)
    return summary


def _purchase_returned_by_product(tenant_id: int, purchase_id: int) -> dict[int, dict]:
    rows = (
        db.session.query(
            PurchaseReturnItem.product_id,
            func.coalesce(func.sum(PurchaseReturnItem.quantity), 0),
            func.coalesce(func.sum(PurchaseReturnItem.net_amount), 0),
            func.coalesce(func.sum(PurchaseReturnItem.tax_amount), 0),
        )
        .filter(PurchaseReturnItem.tenant_id == tenant_id, PurchaseReturnItem.purchase_id == purchase_id)
        .group_by(PurchaseReturnItem.product_id)
        .all()
    )
    return {pid: {"qty": int(qty or 0), "net": q2(net), "tax_amount": q2(tax)} for pid, qty, net, tax in rows}


def create_purchase_return(
    *,
    tenant_id: int,
    purchase_id: int,
    items: list[dict],
    refund_type: str = "cash",
    reason: str | None = None,
    created_by: int | None = None,
) -> dict:
    """
    Send goods back to the supplier.

    cash:        supplier refunds money; Dr Cash
    credit_note: supplier reduces what we owe; Dr Accounts Payable
                 (only for purchases bought on credit)
    """
    if not items:
        raise TransactionValidationError("EMPTY_ITEMS", "No items provided")
    refund_type = require_choice(refund_type, "refund_type", REFUND_TYPES, "INVALID_REFUND_TYPE")

    def _op() -> dict:
        now = utcnow()
        purchase = _load_purchase(tenant_id, purchase_id, lock=True)
        if refund_type == "credit_note" and purchase.payment_method != "credit":
            raise TransactionValidationError(
                "INVALID_REFUND_TYPE",
                "Credit notes apply only to purchases made on credit",
                {"purchase_id": purchase_id},
            )

        accounts = AccountMap.load(tenant_id)
        refund_account = coa_service.ACCOUNTS_PAYABLE if refund_type == "credit_note" else coa_service.CASH
        for name in (coa_service.INVENTORY, coa_service.VAT_INPUT, refund_account):
            accounts.get(name)

        purchased = _purchased_by_product(tenant_id, purchase_id)
        returned = _purchase_returned_by_product(tenant_id, purchase_id)

        wanted: "OrderedDict[int, int]" = OrderedDict()
        for item in items:
            qty = item.get("qty")
            if not isinstance(qty, int) or isinstance(qty, bool) or qty <= 0:
                raise TransactionValidationError(
                    "INVALID_QTY", "Quantity must be greater than zero", {"product_id": item.get("product_id")}
                )
            wanted[item["product_id"]] = wanted.get(item["product_id"], 0) + qty

        lines = []
        for product_id, qty in wanted.items():
            bought = purchased.get(product_id)
            if bought is None:
                raise TransactionValidationError(
                    "PRODUCT_NOT_ON_INVOICE",
                    f"Product {product_id} is not on this purchase",
                    {"product_id": product_id},
                )
            prior = returned.get(product_id, {"qty": 0, "net": ZERO, "tax_amount": ZERO})
            returnable = bought["qty"] - prior["qty"]
            if qty > returnable:
                raise TransactionValidationError(
                    "EXCEEDS_RETURNABLE",
                    f"Return quantity exceeds returnable quantity for product {product_id}",
                    {"product_id": product_id, "requested": qty, "returnable": returnable},
                )
            if qty == returnable:
                net = bought["net"] - prior["net"]
                tax_amount = bought["tax_amount"] - prior["tax_amount"]
            else:
                net = q2(bought["net"] * qty / bought["qty"])
                tax_amount = q2(percent_of(net, bought["tax"]))
            lines.append({
                "product_id": product_id,
                "qty": qty,
                "unit_cost": q2(bought["net"] / bought["qty"]),
                "tax": bought["tax"],
                "net": net,
                "tax_amount": tax_amount,
                "total": net + tax_amount,
            })

        stock_lines = [(line["product_id"], line["qty"]) for line in lines]
        decrement_stock(tenant_id, stock_lines)

        purchase_return = PurchaseReturn(
            tenant_id=tenant_id,
            purchase_id=purchase.id,
            supplier_id=purchase.supplier_id,
            refund_type=refund_type,
            reason=reason,
            net_total=sum((line["net"] for line in lines), ZERO),
            tax_total=sum((line["tax_amount"] for line in lines), ZERO),
            total_refund=sum((line["total"] for line in lines), ZERO),
            created_by=created_by,
            created_at=now,
        )
        db.session.add(purchase_return)
        db.session.flush()

        for line in lines:
            db.session.add(PurchaseReturnItem(
                tenant_id=tenant_id,
                purchase_return_id=purchase_return.id,
                purchase_id=purchase.id,
                product_id=line["product_id"],
                quantity=line["qty"],
                unit_cost=line["unit_cost"],
                tax=line["tax"],
                net_amount=line["net"],
                tax_amount=line["tax_amount"],
                total=line["total"],
            ))
        db.session.flush()

        record_movements(
            tenant_id=tenant_id,
            movement_type="purchase_return",
            lines=stock_lines,
            reference_table="purchase_returns",
            reference_id=purchase_return.id,
            created_by=created_by,
        )

        label = f"Purchase return #{purchase_return.id} - {purchase.purchase_number}"
        post_journal_entry(
            accounts, debit=refund_account, credit=coa_service.INVENTORY, amount=purchase_return.net_total,
            description=label, reference_type="purchase_return", reference_id=purchase_return.id,
        )
        post_journal_entry(
            accounts, debit=refund_account, credit=coa_service.VAT_INPUT, amount=purchase_return.tax_total,
            description=f"{label} (VAT)", reference_type="purchase_return", reference_id=purchase_return.id,
        )
        record_daybook(
            tenant_id=tenant_id,
            entry_type="purchase_return",
            description=label,
            debit=purchase_return.total_refund,
            payment_method=refund_type,
            reference_type="purchase_return",
            reference_id=purchase_return.id,
        )
        apply_vat_event(
            tenant_id=tenant_id,
            event="purchase_return",
            net=purchase_return.net_total,
            tax=purchase_return.tax_total,
            occurred_at=now,
        )
        if refund_type == "credit_note":
            purchase.is_paid = purchase_outstanding(purchase) <= 0

        return {"message": "Purchase return processed", "purchase_return": purchase_return.to_dict()}

    return run_transaction(_op)
