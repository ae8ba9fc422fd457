# Overview: Product mirror sync (products, per-branch inventories, embedded pricebook prices).

from __future__ import annotations

import logging

from ..extensions import db
from ..models import CustomerGroup, Inventory, Pricebook, Product, ProductPricebook
from . import store_gateway
from .sync_service import (
    PRODUCT_BATCH_SIZE,
    SyncSummary,
    job_run,
    run_batch,
    sync_pages,
)
from .upstream_client import UpstreamClient, build_client
from .upstream_schemas import DEFAULT_CUSTOMER_GROUP, ProductRecord

logger = logging.getLogger(__name__)

PRODUCTS_PATH = "/products"

# The empty-named group every customer falls into when the upstream has none
DEFAULT_GROUP_NAME = ""


def ensure_default_customer_group() -> CustomerGroup:
    group = db.session.query(CustomerGroup).filter_by(name=DEFAULT_GROUP_NAME).one_or_none()
    if group is None:
        group = CustomerGroup(name=DEFAULT_GROUP_NAME, description="Default customer group", is_active=True)
        db.session.add(group)
        db.session.commit()
        logger.info("Created default customer group")
    return group


def _pricebook_groups(pricebook_ids: set[int]) -> dict[int, list[str]]:
    """Customer groups each known pricebook is stored under."""
    groups: dict[int, list[str]] = {}
    if not pricebook_ids:
        return groups
    rows = store_gateway.get_many(Pricebook, "upstream_id", pricebook_ids, columns=("upstream_id", "customer_group_name"))
    for row in rows:
        groups.setdefault(row["upstream_id"], []).append(row["customer_group_name"])
    return groups


def _prepare(records: list[ProductRecord]) -> dict:
    pricebook_ids = {
        entry.pricebook_upstream_id
        for record in records
        for entry in record.pricebooks
        if entry.is_active
    }
    return {"pricebook_groups": _pricebook_groups(pricebook_ids)}


def _replace_inventories(record: ProductRecord, product_id: int) -> int:
    store_gateway.delete_where(Inventory, "product_id", product_id)
    rows = [
        inventory.to_row(product_id=product_id, product_upstream_id=record.upstream_id, product_code=record.code)
        for inventory in record.inventories
    ]
    return store_gateway.insert_many(Inventory, rows)


def _replace_pricebook_prices(record: ProductRecord, product_id: int, pricebook_groups: dict) -> int:
    """Replace every price row of the product; pricebooks it no longer lists lose theirs."""
    store_gateway.delete_where(ProductPricebook, "product_id", product_id)
    count = 0
    for entry in record.pricebooks:
        if not entry.is_active:
            logger.debug("Product %s: skipping inactive pricebook %s", record.upstream_id, entry.pricebook_upstream_id)
            continue
        group_names = pricebook_groups.get(entry.pricebook_upstream_id) or [DEFAULT_CUSTOMER_GROUP]
        for group_name in group_names:
            store_gateway.upsert_preserving_annotations(
                Pricebook,
                [{
                    "upstream_id": entry.pricebook_upstream_id,
                    "customer_group_name": group_name,
                    "name": entry.pricebook_name,
                    "is_active": True,
                    "is_global": True,
                    "start_date": entry.start_date,
                    "end_date": entry.end_date,
                }],
                natural_key=("upstream_id", "customer_group_name"),
            )
            count += store_gateway.insert_many(ProductPricebook, [{
                "pricebook_upstream_id": entry.pricebook_upstream_id,
                "pricebook_name": entry.pricebook_name,
                "customer_group_name": group_name,
                "product_id": product_id,
                "product_upstream_id": record.upstream_id,
                "price": entry.price,
                "is_active": True,
                "start_date": entry.start_date,
                "end_date": entry.end_date,
            }])
    return count


def _replace_children(record: ProductRecord, product_id: int, context: dict) -> int:
    inventories = _replace_inventories(record, product_id)
    prices = _replace_pricebook_prices(record, product_id, context["pricebook_groups"])
    return inventories + prices


def sync_products(client: UpstreamClient | None = None) -> SyncSummary:
    """
    Mirror every upstream product.

    Upstream fields are overwritten, `local_*` annotations are kept, and
    each product's inventories are replaced wholesale so branches removed
    upstream disappear from the mirror.
    """
    client = client or build_client()
    summary = SyncSummary(job="products")
    with job_run(summary, "products"):
        pages = client.iter_pages(PRODUCTS_PATH, {"includeInventory": "true", "includePricebook": "true"})
        sync_pages(
            summary,
            pages,
            PRODUCT_BATCH_SIZE,
            lambda batch, guard: run_batch(
                summary,
                batch,
                label="product",
                decoder=ProductRecord.from_api,
                model=Product,
                to_row=ProductRecord.to_row,
                prepare=_prepare,
                replace_children=_replace_children,
                guard=guard,
            ),
            label="product",
            on_first_page=ensure_default_customer_group,
        )
    return summary
