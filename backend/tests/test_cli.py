# Overview: Pytest coverage for the Flask CLI command groups.

from mtpos.models import Account, Tenant
from mtpos.services import sales_service
from tests.conftest import cart


def test_tenants_create_and_list(app, db_session):
    runner = app.test_cli_runner()

    created = runner.invoke(args=["tenants", "create", "--name", "Bakery", "--code", "BAKE"])
    listed = runner.invoke(args=["tenants", "list"])

    assert "PASS Created tenant: Bakery" in created.output
    assert "BAKE" in listed.output
    tenant = db_session.query(Tenant).filter_by(code="BAKE").one()
    assert db_session.query(Account).filter_by(tenant_id=tenant.id).count() > 0


def test_tenants_create_duplicate_code(app, db_session, tenant_a):
    result = app.test_cli_runner().invoke(args=["tenants", "create", "--name", "Copy", "--code", "CORNER"])

    assert "FAIL" in result.output


def test_coa_seed_skips_existing(app, db_session, tenant_a):
    result = app.test_cli_runner().invoke(args=["coa", "seed", "--tenant-id", str(tenant_a.id)])

    assert "SKIP" in result.output


def test_coa_list(app, db_session, tenant_a):
    result = app.test_cli_runner().invoke(args=["coa", "list", "--tenant-id", str(tenant_a.id)])

    assert "Accounts Receivable" in result.output


def test_replay_tail(app, db_session, tenant_a, make_product):
    product = make_product(tenant_a)
    invoice = sales_service.create_invoice(tenant_id=tenant_a.id, items=cart((product, 1)), payment_method="cash")

    result = app.test_cli_runner().invoke(
        args=["invoices", "replay-tail", str(invoice["invoice"]["id"]), "--tenant-id", str(tenant_a.id)]
    )

    assert "accounting   skipped" in result.output
    assert "PASS Tail complete" in result.output


def test_pending_tail_empty(app, db_session, tenant_a):
    result = app.test_cli_runner().invoke(args=["invoices", "pending-tail", "--tenant-id", str(tenant_a.id)])

    assert "No pending invoices." in result.output
