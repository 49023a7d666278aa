# Overview: Pytest coverage for purchases, supplier payments and purchase returns.

from datetime import date
from decimal import Decimal

import pytest

from mtpos.errors import TransactionNotFoundError, TransactionValidationError
from mtpos.models import (
    DaybookEntry,
    Inventory,
    JournalEntry,
    Purchase,
    StockMovement,
    SupplierPayment,
    VatReport,
)
from mtpos.services.purchase_service import (
    create_purchase,
    create_purchase_return,
    pay_supplier,
    purchase_outstanding,
)
from mtpos.time_utils import utcnow
from tests.conftest import cart


def _journal(db_session, reference_type, reference_id):
    return [
        (e.debit_account.name, e.credit_account.name, e.amount)
        for e in db_session.query(JournalEntry)
        .filter_by(reference_type=reference_type, reference_id=reference_id)
        .order_by(JournalEntry.id)
    ]


@pytest.fixture
def flour(tenant_a, make_product):
    return make_product(tenant_a, name="Flour", price="84", tax="5", cost="60", stock=0)


@pytest.fixture
def credit_purchase(db_session, tenant_a, supplier_a, flour):
    """10 x 60.00 + 5% VAT on credit: net 600, tax 30, total 630."""
    return create_purchase(
        tenant_id=tenant_a.id,
        supplier_id=supplier_a.id,
        items=[{"product_id": flour.id, "qty": 10}],
        payment_method="credit",
        invoice_ref="WS-1001",
    )["purchase"]


class TestCreatePurchase:

    def test_totals_and_number(self, db_session, credit_purchase):
        assert credit_purchase["net_total"] == 600.0
        assert credit_purchase["tax_total"] == 30.0
        assert credit_purchase["total_amount"] == 630.0
        assert credit_purchase["purchase_number"] == f"PUR-{utcnow().year}-0001"
        assert credit_purchase["is_paid"] is False
        assert credit_purchase["items"][0]["cost_price"] == 60.0

    def test_stock_and_movement(self, db_session, credit_purchase, flour):
        assert db_session.query(Inventory).filter_by(product_id=flour.id).one().quantity == 10
        movement = db_session.query(StockMovement).filter_by(reference_table="purchases").one()
        assert movement.movement_type == "purchase"
        assert movement.quantity == 10

    def test_credit_purchase_journal(self, db_session, credit_purchase):
        assert _journal(db_session, "purchase", credit_purchase["id"]) == [
            ("Inventory", "Accounts Payable", Decimal("600.00")),
            ("VAT Input", "Accounts Payable", Decimal("30.00")),
        ]
        daybook = db_session.query(DaybookEntry).filter_by(entry_type="purchase").one()
        assert daybook.debit == Decimal("630.00")

    def test_vat_input_rolled_up(self, db_session, tenant_a, credit_purchase):
        row = db_session.query(VatReport).filter_by(tenant_id=tenant_a.id).one()
        assert row.total_purchases == Decimal("600.00")
        assert row.purchase_vat == Decimal("30.00")
        assert row.vat_payable == Decimal("-30.00")

    def test_cash_purchase_is_paid_on_receipt(self, db_session, tenant_a, supplier_a, flour):
        purchase = create_purchase(
            tenant_id=tenant_a.id, supplier_id=supplier_a.id,
            items=[{"product_id": flour.id, "qty": 2}], payment_method="cash",
        )["purchase"]

        assert purchase["is_paid"] is True
        assert purchase["amount_paid"] == 126.0
        payment = db_session.query(SupplierPayment).filter_by(purchase_id=purchase["id"]).one()
        assert payment.note == "Paid on receipt"
        assert _journal(db_session, "purchase", purchase["id"])[0][:2] == ("Inventory", "Cash")

    def test_new_product_gets_inventory_row_with_defaults(self, db_session, tenant_a, supplier_a, make_product):
        fresh = make_product(tenant_a, name="Yoghurt", cost="2.50", tax="0", stock=None)

        create_purchase(
            tenant_id=tenant_a.id, supplier_id=supplier_a.id, payment_method="bank",
            items=[{
                "product_id": fresh.id, "qty": 24, "cost_price": "2.40",
                "reorder_level": 6, "expiry_date": "2030-01-31", "max_stock": 48,
            }],
        )

        row = db_session.query(Inventory).filter_by(product_id=fresh.id).one()
        assert row.quantity == 24
        assert row.reorder_level == 6
        assert row.expiry_date == date(2030, 1, 31)
        assert row.max_stock == 48

    def test_unknown_supplier(self, db_session, tenant_a, flour):
        with pytest.raises(TransactionNotFoundError) as exc_info:
            create_purchase(tenant_id=tenant_a.id, supplier_id=424242, items=[{"product_id": flour.id, "qty": 1}])
        assert exc_info.value.code == "SUPPLIER_NOT_FOUND"

    def test_invalid_payment_method(self, db_session, tenant_a, supplier_a, flour):
        with pytest.raises(TransactionValidationError) as exc_info:
            create_purchase(
                tenant_id=tenant_a.id, supplier_id=supplier_a.id,
                items=[{"product_id": flour.id, "qty": 1}], payment_method="upi",
            )
        assert exc_info.value.code == "INVALID_PAYMENT_METHOD"

    def test_numbering_skips_past_imported_numbers(self, db_session, tenant_a, supplier_a, flour):
        year = utcnow().year
        db_session.add(Purchase(
            tenant_id=tenant_a.id, supplier_id=supplier_a.id, purchase_number=f"PUR-{year}-0007",
            payment_method="cash", net_total=0, tax_total=0, total_amount=0, amount_paid=0, is_paid=True,
        ))
        db_session.commit()

        purchase = create_purchase(
            tenant_id=tenant_a.id, supplier_id=supplier_a.id, items=[{"product_id": flour.id, "qty": 1}]
        )["purchase"]

        assert purchase["purchase_number"] == f"PUR-{year}-0008"


class TestSupplierPayments:

    def test_partial_then_full_payment(self, db_session, tenant_a, credit_purchase):
        first = pay_supplier(tenant_id=tenant_a.id, purchase_id=credit_purchase["id"], amount="200")
        second = pay_supplier(
            tenant_id=tenant_a.id, purchase_id=credit_purchase["id"], amount="430", payment_method="bank"
        )

        assert first["purchase"]["is_paid"] is False
        assert second["purchase"]["is_paid"] is True
        assert second["purchase"]["amount_paid"] == 630.0
        assert _journal(db_session, "purchase_payment", second["payment"]["id"]) == [
            ("Accounts Payable", "Bank", Decimal("430.00")),
        ]

    def test_overpayment_rejected(self, db_session, tenant_a, credit_purchase):
        with pytest.raises(TransactionValidationError) as exc_info:
            pay_supplier(tenant_id=tenant_a.id, purchase_id=credit_purchase["id"], amount="630.01")
        assert exc_info.value.code == "PAYMENT_EXCEEDS_OUTSTANDING"

    def test_non_positive_amount(self, db_session, tenant_a, credit_purchase):
        with pytest.raises(TransactionValidationError) as exc_info:
            pay_supplier(tenant_id=tenant_a.id, purchase_id=credit_purchase["id"], amount="0")
        assert exc_info.value.code == "INVALID_AMOUNT"

    def test_unknown_purchase(self, db_session, tenant_a):
        with pytest.raises(TransactionNotFoundError) as exc_info:
            pay_supplier(tenant_id=tenant_a.id, purchase_id=555555, amount="1")
        assert exc_info.value.code == "PURCHASE_NOT_FOUND"


class TestPurchaseReturns:

    def test_credit_note_reduces_payable(self, db_session, tenant_a, credit_purchase, flour):
        result = create_purchase_return(
            tenant_id=tenant_a.id, purchase_id=credit_purchase["id"],
            items=cart((flour, 2)), refund_type="credit_note", reason="Damaged bags",
        )

        purchase_return = result["purchase_return"]
        assert purchase_return["net_total"] == 120.0
        assert purchase_return["tax_total"] == 6.0
        assert purchase_return["total_refund"] == 126.0
        assert _journal(db_session, "purchase_return", purchase_return["id"]) == [
            ("Accounts Payable", "Inventory", Decimal("120.00")),
            ("Accounts Payable", "VAT Input", Decimal("6.00")),
        ]

        purchase = db_session.get(Purchase, credit_purchase["id"])
        assert purchase_outstanding(purchase) == Decimal("504.00")
        assert db_session.query(Inventory).filter_by(product_id=flour.id).one().quantity == 8

        vat = db_session.query(VatReport).filter_by(tenant_id=tenant_a.id).one()
        assert vat.total_purchases == Decimal("480.00")
        assert vat.purchase_vat == Decimal("24.00")

    def test_full_return_uses_remaining_amounts(self, db_session, tenant_a, credit_purchase, flour):
        create_purchase_return(tenant_id=tenant_a.id, purchase_id=credit_purchase["id"],
                               items=cart((flour, 3)), refund_type="cash")
        last = create_purchase_return(tenant_id=tenant_a.id, purchase_id=credit_purchase["id"],
                                      items=cart((flour, 7)), refund_type="cash")["purchase_return"]

        assert last["net_total"] == 420.0
        assert last["tax_total"] == 21.0

    def test_cannot_return_more_than_bought(self, db_session, tenant_a, credit_purchase, flour):
        with pytest.raises(TransactionValidationError) as exc_info:
            create_purchase_return(tenant_id=tenant_a.id, purchase_id=credit_purchase["id"],
                                   items=cart((flour, 11)), refund_type="cash")
        assert exc_info.value.code == "EXCEEDS_RETURNABLE"

    def test_cannot_return_stock_already_sold(self, db_session, tenant_a, credit_purchase, flour):
        from mtpos.services import sales_service

        sales_service.create_invoice(tenant_id=tenant_a.id, items=cart((flour, 9)), payment_method="cash")

        with pytest.raises(TransactionValidationError) as exc_info:
            create_purchase_return(tenant_id=tenant_a.id, purchase_id=credit_purchase["id"],
                                   items=cart((flour, 2)), refund_type="cash")
        assert exc_info.value.code == "INSUFFICIENT_STOCK"

    def test_credit_note_needs_credit_purchase(self, db_session, tenant_a, supplier_a, flour):
        purchase = create_purchase(
            tenant_id=tenant_a.id, supplier_id=supplier_a.id,
            items=[{"product_id": flour.id, "qty": 2}], payment_method="cash",
        )["purchase"]

        with pytest.raises(TransactionValidationError) as exc_info:
            create_purchase_return(tenant_id=tenant_a.id, purchase_id=purchase["id"],
                                   items=cart((flour, 1)), refund_type="credit_note")
        assert exc_info.value.code == "INVALID_REFUND_TYPE"
