"""
Pytest fixtures for mtpos backend tests.

Provides the test database, tenants with a seeded chart of accounts,
catalog factories and request headers for the API client.
"""

from decimal import Decimal

import pytest

from mtpos import create_app
from mtpos.extensions import db
from mtpos.models import (
    Customer,
    DiscountRule,
    Employee,
    EmployeeDiscountRule,
    Inventory,
    Product,
    Supplier,
)
from mtpos.services.tenant_service import create_tenant


@pytest.fixture(scope='session')
def app():
    """Create application for testing; the deferred tail runs inline."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'DEFERRED_TAIL_MODE': 'inline',
        'PUBLIC_BASE_URL': 'http://testserver',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def tenant_a(db_session):
    """Tenant A with counter and default chart of accounts."""
    return create_tenant(name="Tenant A - Corner Shop", code="CORNER", business_name="Corner Shop Ltd")


@pytest.fixture(scope='function')
def tenant_b(db_session):
    """Tenant B with counter and default chart of accounts."""
    return create_tenant(name="Tenant B - Market Hall", code="MARKET")


@pytest.fixture(scope='function')
def make_product(db_session):
    """
    Factory: catalog product plus its inventory row.

    price is the VAT-inclusive selling price; tax is a percent.
    """
    def _make(tenant, *, name="Item", price="100", tax="0", cost="0", stock=10, reorder_level=0, sku=None):
        product = Product(
            tenant_id=tenant.id,
            sku=sku,
            name=name,
            cost_price=Decimal(str(cost)),
            selling_price=Decimal(str(price)),
            tax=Decimal(str(tax)),
            is_active=True,
        )
        db_session.add(product)
        db_session.flush()
        if stock is not None:
            db_session.add(Inventory(
                tenant_id=tenant.id,
                product_id=product.id,
                quantity=stock,
                reorder_level=reorder_level,
            ))
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def make_customer(db_session):
    def _make(tenant, *, name="Customer", tier=None, points=0):
        customer = Customer(
            tenant_id=tenant.id,
            name=name,
            membership_tier=tier,
            loyalty_points=points,
            lifetime_points=0,
        )
        db_session.add(customer)
        db_session.commit()
        return customer

    return _make


@pytest.fixture(scope='function')
def make_rule(db_session):
    """Factory for discount rules (item, bill, coupon, tier)."""
    def _make(tenant, rule_type, **fields):
        for key in ("discount_percent", "discount_amount", "min_bill_amount"):
            if fields.get(key) is not None:
                fields[key] = Decimal(str(fields[key]))
        rule = DiscountRule(tenant_id=tenant.id, type=rule_type, is_active=True, **fields)
        db_session.add(rule)
        db_session.commit()
        return rule

    return _make


@pytest.fixture(scope='function')
def employee_a(db_session, tenant_a):
    employee = Employee(tenant_id=tenant_a.id, full_name="Staff Member", is_active=True)
    db_session.add(employee)
    db_session.commit()
    return employee


@pytest.fixture(scope='function')
def staff_rule_a(db_session, tenant_a):
    """10% staff discount, capped at 15.00 per calendar month."""
    rule = EmployeeDiscountRule(
        tenant_id=tenant_a.id,
        discount_percent=Decimal("10"),
        max_discount_amount=None,
        monthly_limit=Decimal("15"),
        is_active=True,
    )
    db_session.add(rule)
    db_session.commit()
    return rule


@pytest.fixture(scope='function')
def supplier_a(db_session, tenant_a):
    supplier = Supplier(tenant_id=tenant_a.id, name="Wholesale Co", is_active=True)
    db_session.add(supplier)
    db_session.commit()
    return supplier


def principal_headers(tenant, principal_id: int = 7, name: str = "Cashier One") -> dict:
    """Headers forwarded by the upstream gateway for an authenticated principal."""
    return {
        'X-Principal-Id': str(principal_id),
        'X-Tenant-Id': str(tenant.id),
        'X-Principal-Role': 'cashier',
        'X-Principal-Name': name,
    }


def cart(*lines) -> list[dict]:
    """cart((product, qty), ...) -> request items."""
    return [{"product_id": product.id, "qty": qty} for product, qty in lines]
