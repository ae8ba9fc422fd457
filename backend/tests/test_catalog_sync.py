"""
Category, customer and pricebook sync tests.
"""

from posbridge.models import Category, Customer, Pricebook, Product, ProductPricebook
from posbridge.services.category_sync_service import sync_categories
from posbridge.services.customer_sync_service import sync_customers
from posbridge.services import store_gateway
from posbridge.services.pricebook_sync_service import sync_pricebooks
from posbridge.services.store_gateway import StoreError
from tests.conftest import page


class TestCategories:
    def test_tree_is_flattened_with_parent_pointers(self, upstream, fake_upstream, db_session):
        fake_upstream.add("GET", "/categories", page([
            {"categoryId": 1, "categoryName": "Drinks", "children": [
                {"categoryId": 2, "categoryName": "Tea"},
                {"categoryId": 3, "categoryName": "Coffee", "children": [
                    {"categoryId": 4, "categoryName": "Espresso"},
                ]},
            ]},
        ]))

        summary = sync_categories(upstream)

        assert summary.ok
        assert summary.total == 4
        assert fake_upstream.calls[0]["params"]["hierachicalData"] == "true"
        parents = {c.upstream_id: c.parent_upstream_id for c in db_session.query(Category).all()}
        assert parents == {1: None, 2: 1, 3: 1, 4: 3}
        drinks = db_session.query(Category).filter_by(upstream_id=1).one()
        assert drinks.has_child is True

    def test_annotations_survive(self, upstream, fake_upstream, db_session):
        db_session.add(Category(upstream_id=1, name="Old", local_is_active=True, local_color_border="#ff0000"))
        db_session.commit()
        fake_upstream.add("GET", "/categories", page([{"categoryId": 1, "categoryName": "Drinks"}]))

        sync_categories(upstream)

        db_session.expire_all()
        category = db_session.query(Category).one()
        assert category.name == "Drinks"
        assert category.local_is_active is True
        assert category.local_color_border == "#ff0000"


class TestCustomers:
    def test_customers_upserted(self, upstream, fake_upstream, db_session):
        db_session.add(Customer(upstream_id=9, name="Old name"))
        db_session.commit()
        fake_upstream.add("GET", "/customers", page([
            {"id": 9, "code": "KH009", "name": "Lan", "contactNumber": "0901", "groups": "VIP|Sỉ", "debt": 1500},
            {"id": 10, "code": "KH010", "name": "Minh"},
        ]))

        summary = sync_customers(upstream)

        assert summary.success == 2
        params = fake_upstream.calls[0]["params"]
        assert params["includeCustomerGroup"] == "true"
        assert params["includeRemoveIds"] == "true"
        db_session.expire_all()
        lan = db_session.query(Customer).filter_by(upstream_id=9).one()
        assert lan.name == "Lan"
        assert lan.groups == "VIP|Sỉ"
        assert lan.debt == 1500
        assert db_session.query(Customer).count() == 2


class TestPricebooks:
    def _seed_products(self, db_session):
        db_session.add_all([
            Product(upstream_id=1, name="A"),
            Product(upstream_id=2, name="B"),
        ])
        db_session.commit()

    def test_one_row_per_customer_group(self, upstream, fake_upstream, db_session):
        self._seed_products(db_session)
        fake_upstream.add("GET", "/pricebooks", page([
            {
                "id": 70,
                "name": "Wholesale",
                "isActive": True,
                "priceBookCustomerGroups": [{"customerGroupName": "VIP"}, {"customerGroupName": "Sỉ"}],
                "priceBookProducts": [{"productId": 1, "price": 90}, {"productId": 2, "price": 180}],
            },
            {
                "id": 71,
                "name": "Everyone",
                "priceBookProducts": [{"productId": 1, "price": 95}, {"productId": 404, "price": 1}],
            },
        ]))

        summary = sync_pricebooks(upstream)

        assert summary.ok
        assert summary.success == 2
        assert summary.skipped == 0
        assert summary.unmirrored == 1
        assert summary.to_dict()["count"]["unmirrored"] == 1
        assert fake_upstream.calls[0]["params"]["includePriceBookCustomerGroups"] == "true"
        books = sorted((b.upstream_id, b.customer_group_name) for b in db_session.query(Pricebook).all())
        assert books == [(70, "Sỉ"), (70, "VIP"), (71, "default")]
        assert db_session.query(ProductPricebook).filter_by(pricebook_upstream_id=70).count() == 4
        assert db_session.query(ProductPricebook).filter_by(pricebook_upstream_id=71).count() == 1

    def test_prices_fully_replaced(self, upstream, fake_upstream, db_session):
        self._seed_products(db_session)
        fake_upstream.add("GET", "/pricebooks", page([
            {"id": 70, "name": "Wholesale", "priceBookProducts": [{"productId": 1, "price": 90}, {"productId": 2, "price": 180}]},
        ]))
        fake_upstream.add("GET", "/pricebooks", page([
            {"id": 70, "name": "Wholesale", "priceBookProducts": [{"productId": 2, "price": 170}]},
        ]))

        sync_pricebooks(upstream)
        sync_pricebooks(upstream)

        prices = db_session.query(ProductPricebook).all()
        assert [(p.product_upstream_id, p.price) for p in prices] == [(2, 170)]

    def test_failed_pricebook_reports_nothing_unmirrored(self, upstream, fake_upstream, db_session, monkeypatch):
        self._seed_products(db_session)
        insert_many = store_gateway.insert_many

        def failing_insert(model, rows):
            if rows and rows[0].get("pricebook_upstream_id") == 71:
                raise StoreError("disk full", table="mirror_product_pricebooks")
            return insert_many(model, rows)

        monkeypatch.setattr(store_gateway, "insert_many", failing_insert)
        fake_upstream.add("GET", "/pricebooks", page([
            {"id": 70, "name": "Wholesale", "priceBookProducts": [{"productId": 1, "price": 90}]},
            {"id": 71, "name": "Broken", "priceBookProducts": [{"productId": 2, "price": 5}, {"productId": 404, "price": 1}]},
        ]))

        summary = sync_pricebooks(upstream)

        assert summary.success == 1
        assert summary.error == 1
        assert summary.unmirrored == 0
        assert "unmirrored" not in summary.to_dict()["count"]
        assert [b.upstream_id for b in db_session.query(Pricebook).all()] == [70]
