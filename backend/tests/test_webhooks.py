"""
Webhook tests: signature verification over the raw body, the always-200
envelope, ledger-first change tracking and the delivery counters.
"""

import hashlib
import hmac
import json
import logging
import time

import pytest

from posbridge.models import Inventory, Product, ProductChangeLog
from posbridge.services import webhook_service
from posbridge.services.webhook_service import SignatureMismatch, verify_signature
from tests.conftest import WEBHOOK_SECRET, api_headers

WEBHOOK_URL = "/webhooks/upstream"


def _body(*entities, delivery_id="delivery-1"):
    payload = {
        "Id": delivery_id,
        "Attempt": 1,
        "Notifications": [{"Action": "product.update.teststore", "Data": list(entities)}],
    }
    return json.dumps(payload).encode("utf-8")


def _sign(body, algorithm="sha256", label=None, secret=WEBHOOK_SECRET):
    digest = hmac.new(secret.encode("utf-8"), body, getattr(hashlib, algorithm)).hexdigest()
    return f"{label or algorithm}={digest}"


def _post(client, body, signature):
    return client.post(
        WEBHOOK_URL,
        data=body,
        headers={webhook_service.SIGNATURE_HEADER: signature, "Content-Type": "application/json"},
    )


@pytest.fixture
def mirrored_product(db_session):
    product = Product(upstream_id=101, code="SP101", name="Tea", base_price=10, description="Green tea")
    db_session.add(product)
    db_session.commit()
    db_session.add(Inventory(product_id=product.id, product_upstream_id=101, branch_id=5, cost=6))
    db_session.commit()
    return product


@pytest.fixture
def soft_deadline(app):
    """Answer after 50ms and let slower deliveries finish in the background."""
    app.config["WEBHOOK_SOFT_DEADLINE_SECONDS"] = 0.05
    try:
        yield
    finally:
        webhook_service.shutdown(wait=True)
        app.config["WEBHOOK_SOFT_DEADLINE_SECONDS"] = 0


class TestVerifySignature:
    def test_sha256_and_sha1_accepted(self):
        body = b'{"a": 1}'
        assert verify_signature(body, _sign(body, "sha256"), WEBHOOK_SECRET) == "sha256"
        assert verify_signature(body, _sign(body, "sha1"), WEBHOOK_SECRET) == "sha1"

    def test_mislabelled_digest_accepted(self):
        body = b'{"a": 1}'
        assert verify_signature(body, _sign(body, "sha256", label="sha1"), WEBHOOK_SECRET) == "sha256"

    @pytest.mark.parametrize("header", [None, "", "sha256=", "sha256=deadbeef"])
    def test_bad_headers_rejected(self, header):
        with pytest.raises(SignatureMismatch):
            verify_signature(b"{}", header, WEBHOOK_SECRET)

    def test_missing_secret_rejected(self):
        body = b"{}"
        with pytest.raises(SignatureMismatch):
            verify_signature(body, _sign(body), None)


def test_price_and_cost_change_recorded_before_apply(client, mirrored_product, db_session):
    body = _body({
        "Id": 101,
        "Code": "SP101",
        "Name": "Tea",
        "BasePrice": 15,
        "Description": "Green tea",
        "Inventories": [{"BranchId": 5, "Cost": 7}],
    })

    response = _post(client, body, _sign(body))

    assert response.status_code == 200
    data = response.get_json()
    assert data["success"] is True
    assert data["processed"] == 1

    entries = db_session.query(ProductChangeLog).order_by(ProductChangeLog.id).all()
    assert [(e.field_name, e.old_value_text, e.new_value_text, e.branch_id, e.source) for e in entries] == [
        ("baseprice", "10", "15", None, "webhook"),
        ("cost", "6", "7", 5, "webhook"),
    ]

    db_session.expire_all()
    product = db_session.query(Product).filter_by(upstream_id=101).one()
    assert product.base_price == 15
    assert product.description == "Green tea"
    assert db_session.query(Inventory).filter_by(branch_id=5).one().cost == 7


def test_identical_values_write_no_entries(client, mirrored_product, db_session):
    body = _body({"Id": 101, "BasePrice": 10.0, "Description": "Green tea", "Inventories": [{"BranchId": 5, "Cost": 6}]})

    response = _post(client, body, _sign(body, "sha1"))

    assert response.status_code == 200
    assert response.get_json()["changes"] == []
    assert db_session.query(ProductChangeLog).count() == 0


def test_omitted_fields_are_not_compared(client, mirrored_product, db_session):
    body = _body({"Id": 101, "Description": "Oolong"})

    _post(client, body, _sign(body))

    entries = db_session.query(ProductChangeLog).all()
    assert [(e.field_name, e.old_value_text, e.new_value_text) for e in entries] == [("description", "Green tea", "Oolong")]
    db_session.expire_all()
    assert db_session.query(Product).one().base_price == 10


def test_bad_signature_acknowledged_but_not_applied(client, mirrored_product, db_session):
    body = _body({"Id": 101, "BasePrice": 99})

    response = _post(client, body, _sign(body, secret="wrong-secret"))

    assert response.status_code == 200
    data = response.get_json()
    assert data["signature_failed"] is True
    assert db_session.query(ProductChangeLog).count() == 0
    db_session.expire_all()
    assert db_session.query(Product).one().base_price == 10
    assert webhook_service.counters.snapshot()["signature_failed"] == 1


def test_malformed_body_acknowledged(client, db_session):
    body = b"not json at all"

    response = _post(client, body, _sign(body))

    assert response.status_code == 200
    assert "Malformed" in response.get_json()["error"]
    assert webhook_service.counters.snapshot()["malformed"] == 1


def test_first_sighting_creates_mirror_row(client, db_session):
    body = _body({"Id": 555, "Code": "SP555", "Name": "New", "BasePrice": 8, "Inventories": [{"BranchId": 1, "Cost": 4}]})

    response = _post(client, body, _sign(body))

    assert response.status_code == 200
    product = db_session.query(Product).filter_by(upstream_id=555).one()
    assert product.base_price == 8
    assert product.local_visibility is False
    assert db_session.query(Inventory).filter_by(product_id=product.id).one().cost == 4
    assert db_session.query(ProductChangeLog).count() == 0


def test_legacy_route_and_metrics(client, mirrored_product, db_session):
    body = _body({"Id": 101, "BasePrice": 12})

    response = client.post(
        "/kiotviet/webhook/product-update",
        data=body,
        headers={webhook_service.SIGNATURE_HEADER: _sign(body)},
    )

    assert response.status_code == 200
    metrics = client.get("/api/system/metrics").get_json()["webhooks"]
    assert metrics["received"] == 1
    assert metrics["processed"] == 1
    assert metrics["signature_failed"] == 0


def test_processing_failure_still_acknowledged(client, mirrored_product, db_session, monkeypatch):
    def explode(update):
        raise RuntimeError("store unavailable")

    monkeypatch.setattr(webhook_service, "apply_product_update", explode)
    body = _body({"Id": 101, "BasePrice": 12})

    response = _post(client, body, _sign(body))

    assert response.status_code == 200
    assert response.get_json()["error"] == "Processing failed"
    assert webhook_service.counters.snapshot()["failed"] == 1


def test_change_ledger_route(client, mirrored_product, db_session):
    body = _body({"Id": 101, "BasePrice": 12})
    _post(client, body, _sign(body))

    response = client.get("/api/changes?upstream_id=101", headers=api_headers())

    assert response.status_code == 200
    items = response.get_json()["items"]
    assert [(item["field_name"], item["old_value"], item["new_value"]) for item in items] == [("baseprice", "10", "12")]
    assert client.get("/api/changes?upstream_id=202", headers=api_headers()).get_json()["count"] == 0
    assert client.get("/api/changes?since=yesterday", headers=api_headers()).status_code == 400


def test_slow_delivery_deferred_then_applied(client, mirrored_product, db_session, soft_deadline, monkeypatch):
    apply = webhook_service.apply_product_update

    def slow_apply(update):
        time.sleep(0.3)
        return apply(update)

    monkeypatch.setattr(webhook_service, "apply_product_update", slow_apply)
    body = _body({"Id": 101, "BasePrice": 20})

    response = _post(client, body, _sign(body))

    assert response.status_code == 200
    assert response.get_json()["deferred"] is True
    assert webhook_service.counters.snapshot()["deferred"] == 1

    webhook_service.shutdown(wait=True)
    db_session.expire_all()
    entries = db_session.query(ProductChangeLog).all()
    assert [(e.field_name, e.old_value_text, e.new_value_text) for e in entries] == [("baseprice", "10", "20")]
    assert webhook_service.counters.snapshot()["processed"] == 1


def test_deferred_failure_is_logged(client, mirrored_product, db_session, soft_deadline, monkeypatch, caplog):
    def slow_failure(update):
        time.sleep(0.3)
        raise RuntimeError("store unavailable")

    monkeypatch.setattr(webhook_service, "apply_product_update", slow_failure)
    body = _body({"Id": 101, "BasePrice": 20})

    with caplog.at_level(logging.ERROR, logger="posbridge.services.webhook_service"):
        response = _post(client, body, _sign(body))
        webhook_service.shutdown(wait=True)

    assert response.status_code == 200
    assert response.get_json()["deferred"] is True
    counts = webhook_service.counters.snapshot()
    assert counts["deferred"] == 1
    assert counts["failed"] == 1
    assert any("Deferred webhook processing failed" in record.getMessage() for record in caplog.records)
    db_session.expire_all()
    assert db_session.query(Product).one().base_price == 10


def test_unrouted_path_is_not_a_webhook(client, db_session):
    body = _body({"Id": 101, "BasePrice": 12})

    response = client.post("/webhooks/other", data=body, headers={webhook_service.SIGNATURE_HEADER: _sign(body)})

    assert response.status_code == 404
    assert webhook_service.counters.snapshot()["received"] == 0
