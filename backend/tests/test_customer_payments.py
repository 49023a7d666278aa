# Overview: Pytest coverage for customer settlements against credit invoices.

from decimal import Decimal

import pytest

from mtpos.errors import TransactionNotFoundError, TransactionValidationError
from mtpos.models import CustomerPayment, DaybookEntry, Invoice, JournalEntry
from mtpos.services import sales_service
from mtpos.services.payment_service import invoice_outstanding, record_customer_payment
from mtpos.services.return_service import create_sales_return
from tests.conftest import cart


@pytest.fixture
def coffee(tenant_a, make_product):
    return make_product(tenant_a, name="Coffee Beans", price="105", tax="5", cost="60")


@pytest.fixture
def credit_invoice(db_session, tenant_a, coffee, make_customer):
    customer = make_customer(tenant_a, name="Tab Customer")
    return sales_service.create_invoice(
        tenant_id=tenant_a.id, items=cart((coffee, 2)), payment_method="credit", customer_id=customer.id
    )["invoice"]


def test_partial_payment(db_session, tenant_a, credit_invoice):
    result = record_customer_payment(tenant_id=tenant_a.id, invoice_id=credit_invoice["id"], amount="100")

    assert result["message"] == "Payment recorded"
    assert result["outstanding"] == 110.0
    assert result["invoice"]["amount_paid"] == 100.0

    entry = db_session.query(JournalEntry).filter_by(
        reference_type="customer_payment", reference_id=result["payment"]["id"]
    ).one()
    assert (entry.debit_account.name, entry.credit_account.name, entry.amount) == (
        "Cash", "Accounts Receivable", Decimal("100.00")
    )
    daybook = db_session.query(DaybookEntry).filter_by(entry_type="customer_payment").one()
    assert daybook.debit == Decimal("100.00")


def test_card_payment_settles_to_bank(db_session, tenant_a, credit_invoice):
    result = record_customer_payment(
        tenant_id=tenant_a.id, invoice_id=credit_invoice["id"], amount="210", payment_method="card"
    )

    assert result["outstanding"] == 0.0
    entry = db_session.query(JournalEntry).filter_by(reference_type="customer_payment").one()
    assert entry.debit_account.name == "Bank"


def test_overpayment_rejected(db_session, tenant_a, credit_invoice):
    record_customer_payment(tenant_id=tenant_a.id, invoice_id=credit_invoice["id"], amount="200")

    with pytest.raises(TransactionValidationError) as exc_info:
        record_customer_payment(tenant_id=tenant_a.id, invoice_id=credit_invoice["id"], amount="10.01")

    assert exc_info.value.code == "PAYMENT_EXCEEDS_OUTSTANDING"
    assert exc_info.value.details["outstanding"] == "10.00"
    assert db_session.query(CustomerPayment).count() == 1


def test_cash_invoice_has_nothing_outstanding(db_session, tenant_a, coffee):
    invoice = sales_service.create_invoice(tenant_id=tenant_a.id, items=cart((coffee, 1)), payment_method="cash")

    with pytest.raises(TransactionValidationError) as exc_info:
        record_customer_payment(tenant_id=tenant_a.id, invoice_id=invoice["invoice"]["id"], amount="1")

    assert exc_info.value.code == "INVOICE_NOT_ON_CREDIT"


@pytest.mark.parametrize("amount", ["0", "-5"])
def test_non_positive_amount(db_session, tenant_a, credit_invoice, amount):
    with pytest.raises(TransactionValidationError) as exc_info:
        record_customer_payment(tenant_id=tenant_a.id, invoice_id=credit_invoice["id"], amount=amount)
    assert exc_info.value.code == "INVALID_AMOUNT"


def test_unknown_settlement_method(db_session, tenant_a, credit_invoice):
    with pytest.raises(TransactionValidationError) as exc_info:
        record_customer_payment(
            tenant_id=tenant_a.id, invoice_id=credit_invoice["id"], amount="5", payment_method="credit"
        )
    assert exc_info.value.code == "INVALID_PAYMENT_METHOD"


def test_unknown_invoice(db_session, tenant_a):
    with pytest.raises(TransactionNotFoundError) as exc_info:
        record_customer_payment(tenant_id=tenant_a.id, invoice_id=778899, amount="5")
    assert exc_info.value.code == "INVOICE_NOT_FOUND"


def test_credit_note_reduces_outstanding(db_session, tenant_a, credit_invoice, coffee):
    create_sales_return(
        tenant_id=tenant_a.id, invoice_id=credit_invoice["id"], items=cart((coffee, 1)), refund_type="credit_note"
    )

    invoice = db_session.get(Invoice, credit_invoice["id"])
    assert invoice_outstanding(invoice) == Decimal("105.00")

    with pytest.raises(TransactionValidationError):
        record_customer_payment(tenant_id=tenant_a.id, invoice_id=credit_invoice["id"], amount="105.01")

    result = record_customer_payment(tenant_id=tenant_a.id, invoice_id=credit_invoice["id"], amount="105")
    assert result["outstanding"] == 0.0
