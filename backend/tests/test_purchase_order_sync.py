"""
Purchase-order sync tests: completed-status filter, MM/DD/YYYY ranges,
and skip-not-overwrite for orders already mirrored.
"""

from datetime import date

import pytest

from posbridge.models import Product, PurchaseOrder, PurchaseOrderLine
from posbridge.services.purchase_order_sync_service import recent_range, sync_purchase_orders
from posbridge.services.sync_service import SyncValidationError
from tests.conftest import page


def _order(upstream_id, code, lines, **overrides):
    payload = {
        "id": upstream_id,
        "code": code,
        "purchaseDate": "2024-02-10T09:00:00",
        "branchId": 1,
        "supplierId": 40,
        "supplierCode": "NCC001",
        "supplierName": "Acme Supplies",
        "total": 1000,
        "status": 3,
        "purchaseOrderDetails": lines,
    }
    payload.update(overrides)
    return payload


def test_query_filters_completed_status_with_mdy_dates(upstream, fake_upstream, db_session):
    fake_upstream.add("GET", "/purchaseorders", page([]))

    summary = sync_purchase_orders("01/01/2024", "03/31/2024", upstream)

    assert summary.ok
    params = fake_upstream.calls[0]["params"]
    assert params["fromPurchaseDate"] == "01/01/2024"
    assert params["toPurchaseDate"] == "03/31/2024"
    assert params["status"] == 3


def test_new_orders_are_stored_with_lines(upstream, fake_upstream, db_session):
    db_session.add(Product(upstream_id=77, code="SP77", name="Flour"))
    db_session.commit()
    fake_upstream.add("GET", "/purchaseorders", page([
        _order(1, "PN001", [
            {"productId": 77, "productCode": "SP77", "quantity": 10, "price": 100,
             "productBatchExpire": {"id": 5, "batchName": "L01", "expireDate": "2025-01-01T00:00:00"}},
        ]),
    ]))

    summary = sync_purchase_orders("01/01/2024", "03/31/2024", upstream)

    assert summary.success == 1
    assert summary.children == 1
    order = db_session.query(PurchaseOrder).one()
    assert order.local_status == "pending"
    line = db_session.query(PurchaseOrderLine).one()
    assert line.batch_name == "L01"
    assert line.sub_total == 1000
    assert line.local_status == "pending"
    assert line.product_id == db_session.query(Product).one().id


def test_existing_order_is_skipped_not_overwritten(upstream, fake_upstream, db_session):
    db_session.add(PurchaseOrder(upstream_id=1, code="PN001", supplier_name="Original", local_status="done"))
    db_session.commit()
    fake_upstream.add("GET", "/purchaseorders", page([
        _order(1, "PN001", [], supplierName="Changed upstream"),
        _order(2, "PN002", []),
    ]))

    summary = sync_purchase_orders("01/01/2024", "03/31/2024", upstream)

    assert summary.ok
    assert summary.skipped == 1
    assert summary.success == 1
    db_session.expire_all()
    kept = db_session.query(PurchaseOrder).filter_by(upstream_id=1).one()
    assert kept.supplier_name == "Original"
    assert kept.local_status == "done"
    assert db_session.query(PurchaseOrder).count() == 2


@pytest.mark.parametrize("from_date,to_date", [
    ("2024-01-01", "03/31/2024"),
    ("1/1/2024", "03/31/2024"),
    ("04/01/2024", "03/31/2024"),
])
def test_bad_ranges_are_validation_errors(upstream, from_date, to_date):
    with pytest.raises(SyncValidationError):
        sync_purchase_orders(from_date, to_date, upstream)


def test_recent_range_is_trailing_three_months(app):
    assert recent_range(date(2024, 5, 31)) == ("02/29/2024", "05/31/2024")
    assert recent_range(date(2024, 1, 15)) == ("10/15/2023", "01/15/2024")
