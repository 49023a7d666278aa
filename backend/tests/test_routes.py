# Overview: Pytest coverage for the HTTP surface: auth headers, status codes and error bodies.

import pytest

from mtpos.services import sales_service
from tests.conftest import cart, principal_headers


PROTECTED = [
    ("post", "/api/invoices/"),
    ("post", "/api/invoices/preview"),
    ("get", "/api/invoices/1"),
    ("post", "/api/invoices/1/replay-tail"),
    ("post", "/api/invoices/1/payments"),
    ("post", "/api/sales-returns/"),
    ("post", "/api/purchases/"),
    ("post", "/api/purchases/1/payments"),
    ("post", "/api/purchase-returns/"),
    ("get", "/api/reports/vat"),
    ("get", "/api/reports/trial-balance"),
    ("get", "/api/reports/balance-sheet"),
    ("get", "/api/reports/ledger"),
    ("get", "/api/reports/daybook"),
]


@pytest.mark.parametrize("method,path", PROTECTED)
def test_requires_principal(client, db_session, method, path):
    response = getattr(client, method)(path, json={})

    assert response.status_code == 401
    assert response.json["error"] == "UNAUTHENTICATED"


def test_missing_tenant_header(client, db_session, tenant_a):
    headers = principal_headers(tenant_a)
    del headers["X-Tenant-Id"]

    response = client.get("/api/reports/vat", headers=headers)

    assert response.status_code == 401


def test_health(client, db_session):
    response = client.get("/api/system/health")

    assert response.status_code == 200
    assert response.json["status"] == "healthy"
    assert response.json["checks"]["database"]["status"] == "healthy"
    assert response.json["checks"]["deferred_tail"]["details"]["mode"] == "inline"


class TestInvoiceRoutes:

    def test_create_invoice(self, client, db_session, tenant_a, make_product):
        product = make_product(tenant_a, price="105", tax="5")

        response = client.post(
            "/api/invoices/",
            json={"items": cart((product, 2)), "payment_method": "cash"},
            headers=principal_headers(tenant_a, name="Till Two"),
        )

        assert response.status_code == 201
        invoice = response.json["invoice"]
        assert invoice["final_amount"] == 210.0
        assert invoice["handled_by_name"] == "Till Two"
        assert response.json["items"][0]["quantity"] == 2

    def test_error_body_shape(self, client, db_session, tenant_a, make_product):
        product = make_product(tenant_a, stock=1)

        response = client.post(
            "/api/invoices/",
            json={"items": cart((product, 3)), "payment_method": "cash"},
            headers=principal_headers(tenant_a),
        )

        assert response.status_code == 400
        assert set(response.json) == {"error", "message", "details"}
        assert response.json["error"] == "INSUFFICIENT_STOCK"
        assert response.json["details"]["available"] == 1

    def test_malformed_quantity(self, client, db_session, tenant_a, make_product):
        product = make_product(tenant_a)

        response = client.post(
            "/api/invoices/",
            json={"items": [{"product_id": product.id, "qty": "two"}], "payment_method": "cash"},
            headers=principal_headers(tenant_a),
        )

        assert response.status_code == 400

    def test_preview(self, client, db_session, tenant_a, make_product):
        product = make_product(tenant_a, price="50", cost="30")

        response = client.post(
            "/api/invoices/preview", json={"items": cart((product, 2))}, headers=principal_headers(tenant_a)
        )

        assert response.status_code == 200
        assert response.json["final_amount"] == 100.0
        assert response.json["cogs_estimate"] == 60.0

    def test_get_and_replay(self, client, db_session, tenant_a, make_product):
        product = make_product(tenant_a)
        headers = principal_headers(tenant_a)
        created = client.post(
            "/api/invoices/", json={"items": cart((product, 1)), "payment_method": "cash"}, headers=headers
        )
        invoice_id = created.json["invoice"]["id"]

        fetched = client.get(f"/api/invoices/{invoice_id}", headers=headers)
        replayed = client.post(f"/api/invoices/{invoice_id}/replay-tail", headers=headers)

        assert fetched.status_code == 200
        assert fetched.json["invoice"]["status"] == "VAT_AGGREGATED"
        assert replayed.status_code == 200
        assert replayed.json["steps"]["accounting"] == "skipped"
        assert replayed.json["status"] == "VAT_AGGREGATED"

    def test_unknown_invoice(self, client, db_session, tenant_a):
        response = client.get("/api/invoices/123456", headers=principal_headers(tenant_a))

        assert response.status_code == 404
        assert response.json["error"] == "INVOICE_NOT_FOUND"

    def test_unexpected_failure_returns_log_id(self, client, db_session, tenant_a, monkeypatch):
        def broken(tenant_id, invoice_id):
            raise RuntimeError("row decode failed")

        monkeypatch.setattr(sales_service, "get_invoice", broken)

        response = client.get("/api/invoices/1", headers=principal_headers(tenant_a))

        assert response.status_code == 500
        assert response.json["error"] == "Internal server error"
        assert response.json["log_id"]

    def test_customer_payment(self, client, db_session, tenant_a, make_product, make_customer):
        product = make_product(tenant_a, price="80")
        customer = make_customer(tenant_a)
        headers = principal_headers(tenant_a)
        created = client.post(
            "/api/invoices/",
            json={"items": cart((product, 1)), "payment_method": "credit", "customer_id": customer.id},
            headers=headers,
        )

        response = client.post(
            f"/api/invoices/{created.json['invoice']['id']}/payments", json={"amount": 30}, headers=headers
        )

        assert response.status_code == 201
        assert response.json["outstanding"] == 50.0


class TestPurchaseRoutes:

    def test_purchase_payment_and_return(self, client, db_session, tenant_a, supplier_a, make_product):
        product = make_product(tenant_a, cost="10", tax="0", stock=0)
        headers = principal_headers(tenant_a)

        created = client.post(
            "/api/purchases/",
            json={"supplier_id": supplier_a.id, "items": [{"product_id": product.id, "qty": 5}]},
            headers=headers,
        )
        assert created.status_code == 201
        purchase_id = created.json["purchase"]["id"]

        paid = client.post(f"/api/purchases/{purchase_id}/payments", json={"amount": "20"}, headers=headers)
        returned = client.post(
            "/api/purchase-returns/",
            json={"purchase_id": purchase_id, "items": cart((product, 1)), "refund_type": "credit_note"},
            headers=headers,
        )

        assert paid.status_code == 201
        assert paid.json["purchase"]["amount_paid"] == 20.0
        assert returned.status_code == 201
        assert returned.json["purchase_return"]["total_refund"] == 10.0

    def test_missing_supplier_id(self, client, db_session, tenant_a):
        response = client.post("/api/purchases/", json={"items": []}, headers=principal_headers(tenant_a))

        assert response.status_code == 400
        assert response.json["details"]["field"] == "supplier_id"


class TestReportRoutes:

    @pytest.mark.parametrize(
        "path",
        ["/api/reports/vat", "/api/reports/trial-balance", "/api/reports/balance-sheet",
         "/api/reports/ledger?account=Cash", "/api/reports/daybook"],
    )
    def test_reports_render(self, client, db_session, tenant_a, path):
        response = client.get(path, headers=principal_headers(tenant_a))
        assert response.status_code == 200

    def test_bad_vat_period(self, client, db_session, tenant_a):
        response = client.get("/api/reports/vat?period=2024-99", headers=principal_headers(tenant_a))

        assert response.status_code == 400
        assert response.json["error"] == "INVALID_FIELD"

    def test_unknown_ledger_account(self, client, db_session, tenant_a):
        response = client.get("/api/reports/ledger?account=Nope", headers=principal_headers(tenant_a))
        assert response.status_code == 404
