# Overview: Pytest coverage for loyalty redeem/earn and customer aggregates.

from decimal import Decimal

import pytest

from mtpos.errors import TransactionValidationError
from mtpos.models import Customer, LoyaltyRule, LoyaltyTransaction
from mtpos.services import sales_service
from mtpos.services.loyalty_service import compute_earn_points
from tests.conftest import cart


def _sell(tenant, *lines, **kwargs):
    return sales_service.create_invoice(tenant_id=tenant.id, items=cart(*lines), payment_method="cash", **kwargs)


class TestEarnRule:

    def test_default_rule_is_one_point_per_hundred(self, db_session, tenant_a):
        assert compute_earn_points(tenant_a.id, Decimal("399.99")) == 3
        assert compute_earn_points(tenant_a.id, Decimal("99.99")) == 0
        assert compute_earn_points(tenant_a.id, Decimal("0")) == 0

    def test_configured_rule(self, db_session, tenant_a):
        db_session.add(LoyaltyRule(
            tenant_id=tenant_a.id,
            points_per_currency=Decimal("2"),
            currency_unit=Decimal("50"),
            is_active=True,
        ))
        db_session.commit()

        # floor(260 / 50 * 2) = 10
        assert compute_earn_points(tenant_a.id, Decimal("260")) == 10

    def test_latest_active_rule_wins(self, db_session, tenant_a):
        db_session.add(LoyaltyRule(tenant_id=tenant_a.id, points_per_currency=Decimal("1"),
                                   currency_unit=Decimal("10"), is_active=True))
        db_session.add(LoyaltyRule(tenant_id=tenant_a.id, points_per_currency=Decimal("1"),
                                   currency_unit=Decimal("20"), is_active=True))
        db_session.commit()

        assert compute_earn_points(tenant_a.id, Decimal("100")) == 5


class TestRedeemAndEarn:

    def test_redeem_then_earn_ledger(self, db_session, tenant_a, make_product, make_customer):
        product = make_product(tenant_a, price="300", stock=5)
        customer = make_customer(tenant_a, points=40)

        payload = _sell(tenant_a, (product, 1), customer_id=customer.id, redeem_points_requested=30)

        invoice_id = payload["invoice"]["id"]
        assert payload["invoice"]["final_amount"] == 270.0
        assert payload["loyalty"] == {"earned": 2, "redeemed": 30, "final_balance": 12}

        txns = (
            db_session.query(LoyaltyTransaction)
            .filter_by(customer_id=customer.id)
            .order_by(LoyaltyTransaction.id)
            .all()
        )
        assert [(t.transaction_type, t.points, t.balance_after) for t in txns] == [
            ("redeem", -30, 10),
            ("earn", 2, 12),
        ]
        assert all(t.invoice_id == invoice_id for t in txns)

        customer = db_session.get(Customer, customer.id)
        assert customer.loyalty_points == 12
        assert customer.lifetime_points == 2
        assert customer.total_purchases == 1
        assert customer.total_spent == Decimal("270.00")
        assert customer.last_purchase_at is not None

    def test_redeem_more_than_balance(self, db_session, tenant_a, make_product, make_customer):
        product = make_product(tenant_a, price="100", stock=5)
        customer = make_customer(tenant_a, points=10)

        with pytest.raises(TransactionValidationError) as exc_info:
            _sell(tenant_a, (product, 1), customer_id=customer.id, redeem_points_requested=11)

        assert exc_info.value.code == "INSUFFICIENT_POINTS"
        assert exc_info.value.details == {"requested": 11, "available": 10}
        assert db_session.query(LoyaltyTransaction).count() == 0
        assert db_session.get(Customer, customer.id).loyalty_points == 10

    def test_redeem_without_customer(self, db_session, tenant_a, make_product):
        product = make_product(tenant_a)

        with pytest.raises(TransactionValidationError) as exc_info:
            _sell(tenant_a, (product, 1), redeem_points_requested=5)

        assert exc_info.value.code == "INSUFFICIENT_POINTS"

    def test_redeem_cannot_push_total_below_zero(self, db_session, tenant_a, make_product, make_customer):
        product = make_product(tenant_a, price="20")
        customer = make_customer(tenant_a, points=50)

        payload = _sell(tenant_a, (product, 1), customer_id=customer.id, redeem_points_requested=50)

        assert payload["invoice"]["final_amount"] == 0.0
        assert payload["loyalty"]["earned"] == 0
        assert db_session.get(Customer, customer.id).loyalty_points == 0

    def test_anonymous_sale_earns_nothing(self, db_session, tenant_a, make_product):
        product = make_product(tenant_a, price="500")

        payload = _sell(tenant_a, (product, 1))

        assert payload["loyalty"] is None
        assert payload["invoice"]["final_amount"] == 500.0
        assert db_session.query(LoyaltyTransaction).count() == 0
