"""
Operator route tests: API key gate, status mapping of job summaries,
token refresh and health.
"""

from unittest import mock

import pytest

from posbridge.models import Product, SystemRecord
from posbridge.services.credential_service import CREDENTIAL_TITLE
from tests.conftest import api_headers, page


@pytest.fixture
def routed_upstream(fake_upstream):
    """Every client built inside a request talks to FakeUpstream."""
    with mock.patch("posbridge.services.upstream_client.requests.Session", return_value=fake_upstream):
        yield fake_upstream


class TestApiKey:
    def test_missing_key_rejected(self, client, db_session):
        response = client.post("/api/sync/products")
        assert response.status_code == 401

    def test_wrong_key_rejected(self, client, db_session):
        response = client.post("/api/sync/products", headers=api_headers("nope"))
        assert response.status_code == 401

    def test_unconfigured_key_disables_routes(self, app, client, db_session):
        app.config["SYNC_API_KEY"] = None
        try:
            response = client.post("/api/sync/products", headers=api_headers())
        finally:
            app.config["SYNC_API_KEY"] = "operator-key"
        assert response.status_code == 503


def test_product_sync_route_returns_summary(client, routed_upstream, stored_token, db_session):
    routed_upstream.add("GET", "/products", page([{"id": 1, "name": "Tea", "basePrice": 10}]))

    response = client.post("/api/sync/products", headers=api_headers())

    assert response.status_code == 200
    data = response.get_json()
    assert data["success"] is True
    assert data["count"] == {"total": 1, "success": 1, "error": 0, "children": 0, "skipped": 0}
    assert db_session.query(Product).count() == 1


def test_missing_credential_maps_to_502(client, routed_upstream, db_session):
    response = client.post("/api/sync/customers", headers=api_headers())

    assert response.status_code == 502
    assert response.get_json()["success"] is False


@pytest.mark.parametrize("path", [
    "/api/sync/invoices/2024/13",
    "/api/sync/invoices/2023/2/29",
])
def test_bad_invoice_dates_are_400(client, stored_token, path):
    response = client.post(path, headers=api_headers())
    assert response.status_code == 400


def test_invoice_by_code_not_found_is_404(client, routed_upstream, stored_token):
    routed_upstream.add("GET", "/invoices/code/HD404", {"message": "not found"}, status=404)

    response = client.post("/api/sync/invoices/code/HD404", headers=api_headers())

    assert response.status_code == 404


def test_purchase_order_dates_must_come_together(client, stored_token):
    response = client.post("/api/sync/purchase-orders", json={"from_date": "01/01/2024"}, headers=api_headers())
    assert response.status_code == 400


def test_purchase_order_route_passes_range(client, routed_upstream, stored_token):
    routed_upstream.add("GET", "/purchaseorders", page([]))

    response = client.post(
        "/api/sync/purchase-orders",
        json={"from_date": "01/01/2024", "to_date": "01/31/2024"},
        headers=api_headers(),
    )

    assert response.status_code == 200
    params = routed_upstream.calls[0]["params"]
    assert (params["fromPurchaseDate"], params["toPurchaseDate"]) == ("01/01/2024", "01/31/2024")


def test_token_refresh_route(client, routed_upstream, db_session):
    routed_upstream.add_token("FRESH", expires_in=86400)

    response = client.post("/api/upstream/token/refresh", headers=api_headers())

    assert response.status_code == 200
    assert response.get_json()["token"]["expires_in"] == 86400
    record = db_session.query(SystemRecord).filter_by(title=CREDENTIAL_TITLE).one()
    assert record.value["token"] == "FRESH"


def test_token_refresh_route_upstream_failure(client, routed_upstream, db_session):
    routed_upstream.add_token(status=401)

    response = client.post("/api/upstream/token/refresh", headers=api_headers())

    assert response.status_code == 502
    assert response.get_json()["status"] == 401


def test_health_degraded_without_credential(client, db_session):
    response = client.get("/api/system/health")

    assert response.status_code == 200
    data = response.get_json()
    assert data["status"] == "degraded"
    assert data["checks"]["database"]["status"] == "healthy"


def test_health_ok_with_credential(client, stored_token):
    response = client.get("/api/system/health")

    assert response.status_code == 200
    assert response.get_json()["status"] == "healthy"
