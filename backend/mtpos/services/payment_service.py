# Overview: Customer settlements against credit invoices.

from __future__ import annotations

from ..errors import TransactionNotFoundError, TransactionValidationError
from ..extensions import db
from ..models import CustomerPayment, Invoice
from ..money import ZERO, q2
from ..validation import coerce_amount, require_choice
from . import coa_service
from .coa_service import AccountMap
from .concurrency import lock_for_update, run_transaction
from .ledger_service import post_journal_entry, record_daybook
from .return_service import credited_amount


SETTLEMENT_METHODS = ("cash", "card", "upi", "bank")


def invoice_outstanding(invoice: Invoice):
    """final_amount - payments - credit notes; zero for invoices paid at the till."""
    if invoice.payment_method != "credit":
        return ZERO
    return q2(invoice.final_amount) - q2(invoice.amount_paid) - credited_amount(invoice.tenant_id, invoice.id)


def record_customer_payment(
    *,
    tenant_id: int,
    invoice_id: int,
    amount,
    payment_method: str = "cash",
    received_by: int | None = None,
) -> dict:
    """
    Dr Cash|Bank / Cr Accounts Receivable.

    Only credit invoices carry a receivable; paying more than is
    outstanding is rejected.
    """
    amount = q2(coerce_amount(amount, "amount"))
    if amount <= 0:
        raise TransactionValidationError("INVALID_AMOUNT", "Payment amount must be greater than zero", {"field": "amount"})
    payment_method = require_choice(payment_method, "payment_method", SETTLEMENT_METHODS, "INVALID_PAYMENT_METHOD")

    def _op() -> dict:
        invoice = lock_for_update(
            db.session.query(Invoice).filter_by(id=invoice_id, tenant_id=tenant_id)
        ).first()
        if invoice is None:
            raise TransactionNotFoundError("INVOICE_NOT_FOUND", "Invoice not found", {"invoice_id": invoice_id})
        if invoice.payment_method != "credit":
            raise TransactionValidationError(
                "INVOICE_NOT_ON_CREDIT",
                "Only credit invoices accept payments",
                {"invoice_id": invoice_id},
            )

        outstanding = invoice_outstanding(invoice)
        if amount > outstanding:
            raise TransactionValidationError(
                "PAYMENT_EXCEEDS_OUTSTANDING",
                "Payment exceeds the outstanding balance",
                {"outstanding": str(outstanding), "amount": str(amount)},
            )

        accounts = AccountMap.load(tenant_id)
        debit_account = coa_service.payment_account_name(payment_method)
        accounts.get(debit_account)
        accounts.get(coa_service.ACCOUNTS_RECEIVABLE)

        payment = CustomerPayment(
            tenant_id=tenant_id,
            invoice_id=invoice.id,
            customer_id=invoice.customer_id,
            amount=amount,
            payment_method=payment_method,
            received_by=received_by,
        )
        db.session.add(payment)
        db.session.flush()
        invoice.amount_paid = q2(invoice.amount_paid) + amount

        post_journal_entry(
            accounts,
            debit=debit_account,
            credit=coa_service.ACCOUNTS_RECEIVABLE,
            amount=amount,
            description=f"Customer payment for {invoice.invoice_number}",
            reference_type="customer_payment",
            reference_id=payment.id,
        )
        record_daybook(
            tenant_id=tenant_id,
            entry_type="customer_payment",
            description=f"Customer payment for {invoice.invoice_number}",
            debit=amount,
            payment_method=payment_method,
            reference_type="customer_payment",
            reference_id=payment.id,
        )
        db.session.flush()

        return {
            "message": "Payment recorded",
            "payment": payment.to_dict(),
            "invoice": invoice.to_dict(),
            "outstanding": float(invoice_outstanding(invoice)),
        }

    return run_transaction(_op)
