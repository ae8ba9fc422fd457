"""
Store gateway tests: annotation discovery, merge, and the
annotation-preserving upsert.
"""

from posbridge.models import Category, Inventory, Pricebook, Product
from posbridge.services import store_gateway


def _product(db_session, upstream_id, **fields):
    product = Product(upstream_id=upstream_id, **fields)
    db_session.add(product)
    db_session.commit()
    return product


def test_annotation_columns_found_by_prefix(app):
    columns = store_gateway.annotation_columns(Product)
    assert "local_visibility" in columns
    assert "local_sort_order" in columns
    assert "name" not in columns
    assert all(name.startswith("local_") for name in columns)


def test_annotation_defaults_use_column_defaults(app):
    defaults = store_gateway.annotation_defaults(Product)
    assert defaults["local_visibility"] is False
    assert defaults["local_image_version"] == 0
    assert defaults["local_slug"] is None


def test_merge_discards_incoming_annotations(app):
    existing = {101: {"local_visibility": True, "local_sort_order": 7}}
    merged = store_gateway.merge_preserving_annotations(
        Product,
        [(101, {"upstream_id": 101, "name": "New", "local_visibility": False})],
        existing,
    )
    assert merged[0]["name"] == "New"
    assert merged[0]["local_visibility"] is True
    assert merged[0]["local_sort_order"] == 7


def test_upsert_overwrites_upstream_fields_and_keeps_annotations(db_session):
    original = _product(db_session, 101, name="Old", base_price=40, local_visibility=True, local_sort_order=7)

    ids = store_gateway.upsert_preserving_annotations(Product, [{"upstream_id": 101, "name": "New", "base_price": 50}])
    db_session.commit()
    db_session.expire_all()

    assert ids == {101: original.id}
    product = db_session.query(Product).filter_by(upstream_id=101).one()
    assert product.name == "New"
    assert product.base_price == 50
    assert product.local_visibility is True
    assert product.local_sort_order == 7
    assert product.synced_at is not None


def test_upsert_inserts_new_rows_with_default_annotations(db_session):
    ids = store_gateway.upsert_preserving_annotations(Product, [
        {"upstream_id": 1, "name": "A"},
        {"upstream_id": 2, "name": "B"},
    ])
    db_session.commit()

    assert set(ids) == {1, 2}
    rows = db_session.query(Product).order_by(Product.upstream_id).all()
    assert [row.name for row in rows] == ["A", "B"]
    assert all(row.local_visibility is False for row in rows)
    assert all(row.local_image_version == 0 for row in rows)


def test_upsert_twice_is_idempotent(db_session):
    row = {"upstream_id": 5, "name": "Same", "base_price": 10}
    first = store_gateway.upsert_preserving_annotations(Product, [row])
    second = store_gateway.upsert_preserving_annotations(Product, [row])
    db_session.commit()

    assert first == second
    assert db_session.query(Product).count() == 1


def test_upsert_last_duplicate_wins(db_session):
    store_gateway.upsert_preserving_annotations(Category, [
        {"upstream_id": 9, "name": "first"},
        {"upstream_id": 9, "name": "second"},
    ])
    db_session.commit()

    assert db_session.query(Category).one().name == "second"


def test_upsert_composite_natural_key(db_session):
    rows = [
        {"upstream_id": 7, "customer_group_name": "default", "name": "Retail"},
        {"upstream_id": 7, "customer_group_name": "VIP", "name": "Retail"},
    ]
    ids = store_gateway.upsert_preserving_annotations(Pricebook, rows, natural_key=("upstream_id", "customer_group_name"))
    store_gateway.upsert_preserving_annotations(
        Pricebook,
        [{"upstream_id": 7, "customer_group_name": "VIP", "name": "Renamed"}],
        natural_key=("upstream_id", "customer_group_name"),
    )
    db_session.commit()

    assert set(ids) == {(7, "default"), (7, "VIP")}
    names = {row.customer_group_name: row.name for row in db_session.query(Pricebook).all()}
    assert names == {"default": "Retail", "VIP": "Renamed"}


def test_upsert_empty_input_touches_nothing(db_session):
    assert store_gateway.upsert_preserving_annotations(Product, []) == {}
    assert db_session.query(Product).count() == 0


def test_delete_insert_update_helpers(db_session):
    product = _product(db_session, 300, name="P")
    inserted = store_gateway.insert_many(Inventory, [
        {"product_id": product.id, "product_upstream_id": 300, "branch_id": 1, "cost": 10},
        {"product_id": product.id, "product_upstream_id": 300, "branch_id": 2, "cost": 10},
    ])
    assert inserted == 2

    updated = store_gateway.update_where(Inventory, "product_id", product.id, {"cost": 12}, branch_id=1)
    deleted = store_gateway.delete_where(Inventory, "product_id", product.id, branch_id=2)
    db_session.commit()

    assert updated == 1
    assert deleted == 1
    rows = db_session.query(Inventory).all()
    assert [(row.branch_id, row.cost) for row in rows] == [(1, 12)]


def test_key_to_id_and_get_one(db_session):
    product = _product(db_session, 42, name="Answer")

    assert store_gateway.key_to_id(Product, "upstream_id", [42, 43]) == {42: product.id}
    assert store_gateway.get_one(Product, "upstream_id", 42).name == "Answer"
    assert store_gateway.get_one(Product, "upstream_id", 43) is None
