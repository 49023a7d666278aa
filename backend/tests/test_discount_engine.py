# Overview: Pytest coverage for the discount engine stages and their persistence.

"""
Discount Engine Tests

Stage order: item -> bill -> coupon -> membership tier -> staff -> redeem.
Each stage works on the total left by the previous one.
"""

from decimal import Decimal

import pytest

from mtpos.errors import AccountingConfigError, TransactionValidationError
from mtpos.models import (
    CouponUsage,
    EmployeeDiscountUsage,
    Invoice,
    InvoiceDiscount,
    InvoiceItem,
)
from mtpos.services import sales_service
from mtpos.services.discount_service import apply_discounts, calculate_staff_discount
from tests.conftest import cart


def _sell(tenant, *lines, **kwargs):
    return sales_service.create_invoice(tenant_id=tenant.id, items=cart(*lines), payment_method="cash", **kwargs)


class TestItemAndBillRules:

    def test_item_percent_rule(self, db_session, tenant_a, make_product, make_rule):
        product = make_product(tenant_a, price="100", tax="5")
        rule = make_rule(tenant_a, "item", product_id=product.id, discount_percent=10)

        payload = _sell(tenant_a, (product, 1))

        line = payload["items"][0]
        assert payload["invoice"]["final_amount"] == 90.0
        assert payload["invoice"]["item_discount_total"] == 10.0
        assert line["total"] == 90.0
        assert line["net_price"] == 85.71
        assert line["tax_amount"] == 4.29
        assert line["discount_amount"] == 10.0

        fired = db_session.query(InvoiceDiscount).filter_by(invoice_id=payload["invoice"]["id"]).one()
        assert fired.rule_id == rule.id
        assert fired.amount == Decimal("10.00")

    def test_item_fixed_rule_is_per_unit_and_clamped(self, db_session, tenant_a, make_product, make_rule):
        product = make_product(tenant_a, price="5")
        make_rule(tenant_a, "item", product_id=product.id, discount_amount=8)

        payload = _sell(tenant_a, (product, 2))

        # 8 per unit on a 10.00 line is clamped to the line gross
        assert payload["invoice"]["item_discount_total"] == 10.0
        assert payload["invoice"]["final_amount"] == 0.0

    def test_item_rule_ignores_other_products(self, db_session, tenant_a, make_product, make_rule):
        discounted = make_product(tenant_a, name="On offer", price="100")
        other = make_product(tenant_a, name="Full price", price="50")
        make_rule(tenant_a, "item", product_id=discounted.id, discount_percent=20)

        payload = _sell(tenant_a, (discounted, 1), (other, 1))

        assert payload["invoice"]["final_amount"] == 130.0
        totals = {line["product_id"]: line["total"] for line in payload["items"]}
        assert totals == {discounted.id: 80.0, other.id: 50.0}

    def test_bill_rule_respects_minimum(self, db_session, tenant_a, make_product, make_rule):
        product = make_product(tenant_a, price="100", stock=20)
        make_rule(tenant_a, "bill", discount_amount=25, min_bill_amount=300)

        small = _sell(tenant_a, (product, 2))
        large = _sell(tenant_a, (product, 3))

        assert small["invoice"]["bill_discount_total"] == 0.0
        assert large["invoice"]["bill_discount_total"] == 25.0
        assert large["invoice"]["final_amount"] == 275.0

    def test_bill_discount_spread_over_lines(self, db_session, tenant_a, make_product, make_rule):
        a = make_product(tenant_a, name="A", price="60")
        b = make_product(tenant_a, name="B", price="40")
        make_rule(tenant_a, "bill", discount_percent=10)

        payload = _sell(tenant_a, (a, 1), (b, 1))

        items = db_session.query(InvoiceItem).filter_by(invoice_id=payload["invoice"]["id"]).all()
        assert sum(item.total for item in items) == Decimal("90.00")
        assert sorted(item.total for item in items) == [Decimal("36.00"), Decimal("54.00")]
        assert [item.discount_amount for item in items] == [Decimal("0.00"), Decimal("0.00")]

    def test_bill_rule_leaves_item_discount_at_zero(self, db_session, tenant_a, make_product, make_rule):
        product = make_product(tenant_a, price="100", tax="5")
        make_rule(tenant_a, "bill", discount_percent=10)

        payload = _sell(tenant_a, (product, 1))

        line = payload["items"][0]
        assert payload["invoice"]["bill_discount_total"] == 10.0
        assert payload["invoice"]["item_discount_total"] == 0.0
        assert line["total"] == 90.0
        assert line["discount_amount"] == 0.0

    def test_item_discount_stored_per_unit(self, db_session, tenant_a, make_product, make_rule):
        product = make_product(tenant_a, price="50")
        make_rule(tenant_a, "item", product_id=product.id, discount_percent=10)
        make_rule(tenant_a, "bill", discount_amount=9)

        payload = _sell(tenant_a, (product, 3))

        item = db_session.query(InvoiceItem).filter_by(invoice_id=payload["invoice"]["id"]).one()
        assert payload["invoice"]["item_discount_total"] == 15.0
        assert item.discount_amount == Decimal("5.00")
        assert item.total == Decimal("126.00")


class TestCouponAndTier:

    def test_coupon_tier_and_redeem_stack(self, db_session, tenant_a, make_product, make_customer, make_rule):
        product = make_product(tenant_a, price="250", stock=10)
        customer = make_customer(tenant_a, tier="gold", points=50)
        make_rule(tenant_a, "coupon", code="SAVE10", discount_percent=10)
        make_rule(tenant_a, "tier", tier="gold", discount_percent=5)

        payload = _sell(
            tenant_a, (product, 2),
            customer_id=customer.id, coupon_code="save10", redeem_points_requested=27,
        )

        invoice = payload["invoice"]
        assert invoice["subtotal"] == 500.0
        assert invoice["coupon_discount_total"] == 50.0
        assert invoice["membership_discount_total"] == 22.5
        assert invoice["redeemed_points"] == 27
        assert invoice["final_amount"] == 400.5
        assert payload["loyalty"] == {"earned": 4, "redeemed": 27, "final_balance": 27}

        descriptions = [
            d.description
            for d in db_session.query(InvoiceDiscount).filter_by(invoice_id=invoice["id"]).order_by(InvoiceDiscount.id)
        ]
        assert descriptions == ["Coupon SAVE10", "Membership gold discount"]

    def test_unknown_coupon(self, db_session, tenant_a, make_product):
        product = make_product(tenant_a)
        with pytest.raises(TransactionValidationError) as exc_info:
            _sell(tenant_a, (product, 1), coupon_code="NOPE")
        assert exc_info.value.code == "INVALID_COUPON"

    def test_inactive_coupon_is_unknown(self, db_session, tenant_a, make_product, make_rule):
        product = make_product(tenant_a)
        rule = make_rule(tenant_a, "coupon", code="OLD", discount_percent=10)
        rule.is_active = False
        db_session.commit()

        with pytest.raises(TransactionValidationError) as exc_info:
            _sell(tenant_a, (product, 1), coupon_code="OLD")
        assert exc_info.value.code == "INVALID_COUPON"

    def test_coupon_minimum_bill(self, db_session, tenant_a, make_product, make_rule):
        product = make_product(tenant_a, price="40")
        make_rule(tenant_a, "coupon", code="BIG", discount_amount=10, min_bill_amount=100)

        with pytest.raises(TransactionValidationError) as exc_info:
            _sell(tenant_a, (product, 1), coupon_code="BIG")
        assert exc_info.value.code == "COUPON_MIN_BILL"

    def test_coupon_global_limit(self, db_session, tenant_a, make_product, make_rule):
        product = make_product(tenant_a, stock=10)
        coupon = make_rule(tenant_a, "coupon", code="ONCE", discount_percent=10, max_uses=1)

        _sell(tenant_a, (product, 1), coupon_code="ONCE")
        with pytest.raises(TransactionValidationError) as exc_info:
            _sell(tenant_a, (product, 1), coupon_code="ONCE")

        assert exc_info.value.code == "COUPON_LIMIT_GLOBAL"
        assert db_session.query(CouponUsage).filter_by(coupon_id=coupon.id).count() == 1
        assert db_session.query(Invoice).count() == 1

    def test_coupon_per_customer_limit(self, db_session, tenant_a, make_product, make_customer, make_rule):
        product = make_product(tenant_a, stock=10)
        first = make_customer(tenant_a, name="First")
        second = make_customer(tenant_a, name="Second")
        make_rule(tenant_a, "coupon", code="WELCOME", discount_percent=5, per_customer_limit=1)

        _sell(tenant_a, (product, 1), customer_id=first.id, coupon_code="WELCOME")
        with pytest.raises(TransactionValidationError) as exc_info:
            _sell(tenant_a, (product, 1), customer_id=first.id, coupon_code="WELCOME")
        _sell(tenant_a, (product, 1), customer_id=second.id, coupon_code="WELCOME")

        assert exc_info.value.code == "COUPON_LIMIT_CUSTOMER"

    def test_coupon_limit_counts_own_tenant_usage(self, db_session, tenant_a, tenant_b, make_product, make_rule):
        product = make_product(tenant_a, stock=10)
        foreign_product = make_product(tenant_b)
        coupon = make_rule(tenant_a, "coupon", code="ONCE", discount_percent=10, max_uses=1)
        foreign_sale = _sell(tenant_b, (foreign_product, 1))
        db_session.add(CouponUsage(tenant_id=tenant_b.id, coupon_id=coupon.id, invoice_id=foreign_sale["invoice"]["id"]))
        db_session.commit()

        payload = _sell(tenant_a, (product, 1), coupon_code="ONCE")

        assert payload["invoice"]["coupon_discount_total"] == 10.0

    def test_tier_rule_needs_matching_customer(self, db_session, tenant_a, make_product, make_customer, make_rule):
        product = make_product(tenant_a, price="100")
        silver = make_customer(tenant_a, tier="silver")
        make_rule(tenant_a, "tier", tier="gold", discount_percent=5)

        payload = _sell(tenant_a, (product, 1), customer_id=silver.id)

        assert payload["invoice"]["membership_discount_total"] == 0.0
        assert payload["invoice"]["final_amount"] == 100.0

    def test_apply_discounts_is_pure_for_preview(self, db_session, tenant_a, make_rule):
        make_rule(tenant_a, "bill", discount_percent=10)
        lines = [{"product_id": 1, "qty": 2, "price": Decimal("50"), "tax": Decimal("0")}]

        result = apply_discounts(tenant_id=tenant_a.id, items=lines)

        assert result["subtotal"] == Decimal("100.00")
        assert result["total_before_redeem"] == Decimal("90.00")
        assert result["invoice_discounts"][0]["amount"] == Decimal("10.00")


class TestStaffDiscount:

    def test_monthly_cap(self, db_session, tenant_a, make_product, employee_a, staff_rule_a):
        product = make_product(tenant_a, price="100", stock=10)

        first = _sell(tenant_a, (product, 1), employee_id=employee_a.id)
        second = _sell(tenant_a, (product, 1), employee_id=employee_a.id)
        third = _sell(tenant_a, (product, 1), employee_id=employee_a.id)

        assert first["invoice"]["staff_discount"] == 10.0
        assert second["invoice"]["staff_discount"] == 5.0
        assert third["invoice"]["staff_discount"] == 0.0
        assert third["invoice"]["final_amount"] == 100.0

        usages = db_session.query(EmployeeDiscountUsage).order_by(EmployeeDiscountUsage.id).all()
        assert [u.invoice_id for u in usages] == [first["invoice"]["id"], second["invoice"]["id"]]

        staff_rows = db_session.query(InvoiceDiscount).filter_by(rule_id=None).all()
        assert [row.description for row in staff_rows] == ["Staff discount", "Staff discount"]

    def test_per_bill_cap(self, db_session, tenant_a, make_product, employee_a, staff_rule_a):
        staff_rule_a.max_discount_amount = Decimal("3")
        staff_rule_a.monthly_limit = None
        db_session.commit()
        product = make_product(tenant_a, price="100")

        payload = _sell(tenant_a, (product, 1), employee_id=employee_a.id)

        assert payload["invoice"]["staff_discount"] == 3.0

    def test_unknown_employee(self, db_session, tenant_a, make_product, staff_rule_a):
        product = make_product(tenant_a)
        with pytest.raises(TransactionValidationError) as exc_info:
            _sell(tenant_a, (product, 1), employee_id=999999)
        assert exc_info.value.code == "INVALID_EMPLOYEE"

    def test_no_rule_gives_no_discount(self, db_session, tenant_a, make_product, employee_a):
        product = make_product(tenant_a, price="100")

        payload = _sell(tenant_a, (product, 1), employee_id=employee_a.id)

        assert payload["invoice"]["staff_discount"] == 0.0

    def test_rule_required_setting(self, app, db_session, tenant_a, employee_a, monkeypatch):
        monkeypatch.setitem(app.config, "STAFF_DISCOUNT_RULE_REQUIRED", True)

        with pytest.raises(AccountingConfigError) as exc_info:
            calculate_staff_discount(
                tenant_id=tenant_a.id, employee_id=employee_a.id, amount=Decimal("100"), record=False
            )
        assert exc_info.value.code == "NO_ACTIVE_DISCOUNT_RULE"

    def test_preview_reports_remaining_allowance(self, db_session, tenant_a, make_product, employee_a, staff_rule_a):
        product = make_product(tenant_a, price="100", stock=10)
        _sell(tenant_a, (product, 1), employee_id=employee_a.id)

        preview = sales_service.preview_invoice(
            tenant_id=tenant_a.id, items=cart((product, 1)), employee_id=employee_a.id
        )

        assert preview["staff_discount"] == 5.0
        assert preview["staff_monthly_remaining"] == 5.0
