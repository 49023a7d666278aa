# Overview: Post-commit invoice tail; loyalty earn, accounting, VAT roll-up, receipt.

"""
Each step runs in its own transaction under a row lock on the invoice and
stamps a *_at column when done, so the tail can be replayed for an invoice
any number of times without double-posting.

Failures are logged with the invoice id and stored in invoice.tail_error;
they never propagate to the request that created the invoice. The tail
stops at the first failing step so that VAT is never aggregated for an
invoice whose journal is missing.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import update

from ..errors import TransactionNotFoundError
from ..extensions import db
from ..models import Customer, Invoice
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_transaction
from .loyalty_service import post_earn
from .receipt_service import render_receipt
from .sales_service import post_invoice_accounting
from .vat_service import apply_vat_event


TAIL_STEPS = ("loyalty", "accounting", "vat", "receipt")


def _locked_invoice(tenant_id: int, invoice_id: int) -> Invoice:
    invoice = lock_for_update(
        db.session.query(Invoice).filter_by(id=invoice_id, tenant_id=tenant_id)
    ).populate_existing().first()
    if invoice is None:
        raise TransactionNotFoundError("INVOICE_NOT_FOUND", "Invoice not found", {"invoice_id": invoice_id})
    return invoice


def _step_loyalty(tenant_id: int, invoice_id: int) -> str:
    """20a/20b: earn points + customer aggregates."""
    invoice = _locked_invoice(tenant_id, invoice_id)
    if invoice.loyalty_posted_at is not None:
        return "skipped"
    if invoice.customer_id is not None:
        post_earn(
            tenant_id=tenant_id,
            customer_id=invoice.customer_id,
            invoice_id=invoice.id,
            points=invoice.earned_points or 0,
        )
        db.session.execute(
            update(Customer)
            .where(Customer.id == invoice.customer_id, Customer.tenant_id == tenant_id)
            .values(
                total_purchases=Customer.total_purchases + 1,
                total_spent=Customer.total_spent + invoice.final_amount,
                last_purchase_at=invoice.created_at,
            )
            .execution_options(synchronize_session=False)
        )
    invoice.loyalty_posted_at = utcnow()
    return "done"


def _step_accounting(tenant_id: int, invoice_id: int) -> str:
    """20c: journal + ledger + daybook + COGS."""
    invoice = _locked_invoice(tenant_id, invoice_id)
    if invoice.accounted_at is not None:
        return "skipped"
    post_invoice_accounting(invoice)
    invoice.accounted_at = utcnow()
    invoice.status = "ACCOUNTED"
    return "done"


def _step_vat(tenant_id: int, invoice_id: int) -> str:
    """20d: monthly VAT row."""
    invoice = _locked_invoice(tenant_id, invoice_id)
    if invoice.vat_aggregated_at is not None:
        return "skipped"
    apply_vat_event(
        tenant_id=tenant_id,
        event="sale",
        net=invoice.net_amount,
        tax=invoice.tax_amount,
        occurred_at=invoice.created_at,
    )
    invoice.vat_aggregated_at = utcnow()
    invoice.status = "VAT_AGGREGATED"
    invoice.tail_error = None
    return "done"


def _step_receipt(tenant_id: int, invoice_id: int) -> str:
    """20e: hand the receipt record to the renderer."""
    invoice = _locked_invoice(tenant_id, invoice_id)
    if invoice.receipt_rendered_at is not None:
        return "skipped"
    if not render_receipt(invoice):
        return "no_renderer"
    invoice.receipt_rendered_at = utcnow()
    return "done"


STEP_FUNCS = {
    "loyalty": _step_loyalty,
    "accounting": _step_accounting,
    "vat": _step_vat,
    "receipt": _step_receipt,
}


def _record_failure(tenant_id: int, invoice_id: int, step: str, exc: Exception) -> None:
    try:
        db.session.execute(
            update(Invoice)
            .where(Invoice.id == invoice_id, Invoice.tenant_id == tenant_id)
            .values(tail_error=f"{step}: {exc}"[:2000])
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to record tail error for invoice %s", invoice_id)


def run_invoice_tail(tenant_id: int, invoice_id: int) -> dict:
    """
    Run steps 20a-20e for an invoice. Returns {step: outcome}; outcome is
    "done", "skipped" (already applied), "no_renderer" or "failed".
    """
    outcome: dict[str, str] = {}
    current_app.logger.info("Invoice tail started for invoice %s", invoice_id)

    for step in TAIL_STEPS:
        func = STEP_FUNCS[step]
        try:
            outcome[step] = run_transaction(lambda: func(tenant_id, invoice_id))
        except Exception as exc:
            current_app.logger.exception("Invoice tail step %s failed for invoice %s", step, invoice_id)
            _record_failure(tenant_id, invoice_id, step, exc)
            outcome[step] = "failed"
            break

    current_app.logger.info("Invoice tail finished for invoice %s: %s", invoice_id, outcome)
    return outcome
