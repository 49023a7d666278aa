# Overview: Pytest coverage for multi-item customer returns.

"""
Sales Return Tests

Refunds are derived from what the customer paid on the invoice: a full
return of every line refunds exactly final_amount, and cumulative returns
can never exceed the invoiced quantity.
"""

from decimal import Decimal

import pytest

from mtpos.errors import TransactionNotFoundError, TransactionValidationError
from mtpos.models import (
    Customer,
    Inventory,
    JournalEntry,
    SalesReturn,
    StockMovement,
    VatReport,
)
from mtpos.services import sales_service
from mtpos.services.return_service import create_sales_return, credited_amount
from tests.conftest import cart


@pytest.fixture
def discounted_sale(db_session, tenant_a, make_product, make_customer, make_rule):
    """Two lines with a bill discount so line totals differ from catalog prices."""
    tea = make_product(tenant_a, name="Tea", price="105", tax="5", cost="60", stock=10)
    cake = make_product(tenant_a, name="Cake", price="31.50", tax="5", cost="20", stock=10)
    customer = make_customer(tenant_a, points=0)
    make_rule(tenant_a, "bill", discount_percent=10)

    payload = sales_service.create_invoice(
        tenant_id=tenant_a.id,
        items=cart((tea, 2), (cake, 3)),
        payment_method="credit",
        customer_id=customer.id,
    )
    return {"invoice": payload["invoice"], "tea": tea, "cake": cake, "customer": customer}


def _journal_for_return(db_session, return_id):
    return [
        (e.debit_account.name, e.credit_account.name, e.amount)
        for e in db_session.query(JournalEntry)
        .filter_by(reference_type="sales_return", reference_id=return_id)
        .order_by(JournalEntry.id)
    ]


class TestRefundAmounts:

    def test_full_return_refunds_final_amount(self, db_session, tenant_a, discounted_sale):
        invoice = discounted_sale["invoice"]

        result = create_sales_return(
            tenant_id=tenant_a.id,
            invoice_id=invoice["id"],
            items=cart((discounted_sale["tea"], 2), (discounted_sale["cake"], 3)),
            refund_type="credit_note",
        )

        sales_return = result["sales_return"]
        assert sales_return["total_refund"] == invoice["final_amount"]
        assert sales_return["net_amount"] + sales_return["tax_amount"] == pytest.approx(invoice["final_amount"])

    def test_partial_returns_add_up_to_line_total(self, db_session, tenant_a, discounted_sale):
        invoice_id = discounted_sale["invoice"]["id"]
        cake = discounted_sale["cake"]

        refunds = [
            create_sales_return(tenant_id=tenant_a.id, invoice_id=invoice_id, items=cart((cake, 1)),
                                refund_type="cash")["sales_return"]["total_refund"]
            for _ in range(3)
        ]

        # 3 x 31.50 = 94.50, less 10% bill discount = 85.05
        assert sum(Decimal(str(r)) for r in refunds) == Decimal("85.05")

    def test_client_total_is_ignored(self, client, db_session, tenant_a, discounted_sale):
        from tests.conftest import principal_headers

        response = client.post(
            '/api/sales-returns/',
            json={
                "invoice_id": discounted_sale["invoice"]["id"],
                "items": [{"product_id": discounted_sale["tea"].id, "qty": 1}],
                "refund_type": "cash",
                "total_refund": 9999,
            },
            headers=principal_headers(tenant_a),
        )

        assert response.status_code == 201
        # 105.00 less 10% bill discount
        assert response.json["sales_return"]["total_refund"] == 94.5


class TestLimits:

    def test_cannot_exceed_invoiced_quantity(self, db_session, tenant_a, discounted_sale):
        invoice_id = discounted_sale["invoice"]["id"]
        tea = discounted_sale["tea"]

        create_sales_return(tenant_id=tenant_a.id, invoice_id=invoice_id, items=cart((tea, 1)), refund_type="cash")
        with pytest.raises(TransactionValidationError) as exc_info:
            create_sales_return(tenant_id=tenant_a.id, invoice_id=invoice_id, items=cart((tea, 2)), refund_type="cash")

        assert exc_info.value.code == "EXCEEDS_RETURNABLE"
        assert exc_info.value.details["returnable"] == 1
        assert db_session.query(SalesReturn).count() == 1

    def test_product_not_on_invoice(self, db_session, tenant_a, discounted_sale, make_product):
        stranger = make_product(tenant_a, name="Stranger")

        with pytest.raises(TransactionValidationError) as exc_info:
            create_sales_return(
                tenant_id=tenant_a.id, invoice_id=discounted_sale["invoice"]["id"],
                items=cart((stranger, 1)), refund_type="cash",
            )
        assert exc_info.value.code == "PRODUCT_NOT_ON_INVOICE"

    def test_unknown_invoice(self, db_session, tenant_a, make_product):
        product = make_product(tenant_a)
        with pytest.raises(TransactionNotFoundError) as exc_info:
            create_sales_return(tenant_id=tenant_a.id, invoice_id=987654, items=cart((product, 1)), refund_type="cash")
        assert exc_info.value.code == "INVOICE_NOT_FOUND"

    def test_invalid_refund_type(self, db_session, tenant_a, discounted_sale):
        with pytest.raises(TransactionValidationError) as exc_info:
            create_sales_return(
                tenant_id=tenant_a.id, invoice_id=discounted_sale["invoice"]["id"],
                items=cart((discounted_sale["tea"], 1)), refund_type="voucher",
            )
        assert exc_info.value.code == "INVALID_REFUND_TYPE"

    def test_credit_note_requires_customer(self, db_session, tenant_a, make_product):
        product = make_product(tenant_a, price="10")
        payload = sales_service.create_invoice(tenant_id=tenant_a.id, items=cart((product, 1)), payment_method="cash")

        with pytest.raises(TransactionValidationError) as exc_info:
            create_sales_return(
                tenant_id=tenant_a.id, invoice_id=payload["invoice"]["id"],
                items=cart((product, 1)), refund_type="credit_note",
            )
        assert exc_info.value.code == "CREDIT_NOTE_REQUIRES_CUSTOMER"

    def test_cash_refund_for_anonymous_sale(self, db_session, tenant_a, make_product):
        product = make_product(tenant_a, price="10")
        payload = sales_service.create_invoice(tenant_id=tenant_a.id, items=cart((product, 1)), payment_method="cash")

        result = create_sales_return(
            tenant_id=tenant_a.id, invoice_id=payload["invoice"]["id"], items=cart((product, 1)), refund_type="cash"
        )

        assert result["sales_return"]["customer_id"] is None
        assert result["sales_return"]["total_refund"] == 10.0


class TestSideEffects:

    def test_credit_note_journals_against_receivable(self, db_session, tenant_a, discounted_sale):
        tea = discounted_sale["tea"]

        result = create_sales_return(
            tenant_id=tenant_a.id, invoice_id=discounted_sale["invoice"]["id"],
            items=cart((tea, 1)), refund_type="credit_note",
        )

        assert _journal_for_return(db_session, result["sales_return"]["id"]) == [
            ("Sales", "Accounts Receivable", Decimal("90.00")),
            ("VAT Output", "Accounts Receivable", Decimal("4.50")),
            ("Inventory", "Cost of Goods Sold", Decimal("60.00")),
        ]
        assert credited_amount(tenant_a.id, discounted_sale["invoice"]["id"]) == Decimal("94.50")

    def test_cash_refund_journals_against_cash(self, db_session, tenant_a, discounted_sale):
        result = create_sales_return(
            tenant_id=tenant_a.id, invoice_id=discounted_sale["invoice"]["id"],
            items=cart((discounted_sale["tea"], 1)), refund_type="cash",
        )

        journal = _journal_for_return(db_session, result["sales_return"]["id"])
        assert journal[0][:2] == ("Sales", "Cash")
        assert credited_amount(tenant_a.id, discounted_sale["invoice"]["id"]) == Decimal("0.00")

    def test_stock_and_movements_restored(self, db_session, tenant_a, discounted_sale):
        cake = discounted_sale["cake"]

        result = create_sales_return(
            tenant_id=tenant_a.id, invoice_id=discounted_sale["invoice"]["id"],
            items=cart((cake, 2)), refund_type="cash",
        )

        assert db_session.query(Inventory).filter_by(product_id=cake.id).one().quantity == 9
        movement = db_session.query(StockMovement).filter_by(
            reference_table="sales_returns", reference_id=result["sales_return"]["id"]
        ).one()
        assert movement.movement_type == "sale_return"
        assert movement.quantity == 2

    def test_vat_row_reduced(self, db_session, tenant_a, discounted_sale):
        before = db_session.query(VatReport).filter_by(tenant_id=tenant_a.id).one()
        sales_before, vat_before = before.total_sales, before.sales_vat

        create_sales_return(
            tenant_id=tenant_a.id, invoice_id=discounted_sale["invoice"]["id"],
            items=cart((discounted_sale["tea"], 1)), refund_type="cash",
        )

        after = db_session.query(VatReport).filter_by(tenant_id=tenant_a.id).one()
        db_session.refresh(after)
        assert after.total_sales == sales_before - Decimal("90.00")
        assert after.sales_vat == vat_before - Decimal("4.50")

    def test_loyalty_not_reversed(self, db_session, tenant_a, discounted_sale):
        customer_id = discounted_sale["customer"].id
        points_before = db_session.get(Customer, customer_id).loyalty_points

        create_sales_return(
            tenant_id=tenant_a.id, invoice_id=discounted_sale["invoice"]["id"],
            items=cart((discounted_sale["tea"], 2)), refund_type="credit_note",
        )

        assert db_session.get(Customer, customer_id).loyalty_points == points_before
