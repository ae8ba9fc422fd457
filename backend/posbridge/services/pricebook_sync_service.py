# Overview: Pricebook sync; one mirror row per (pricebook, customer group) with its product prices.

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Pricebook, Product, ProductPricebook
from . import store_gateway
from .sync_service import (
    PRICEBOOK_BATCH_SIZE,
    RowGuard,
    SyncSummary,
    decode_batch,
    job_run,
    settle_rows,
    sync_pages,
)
from .upstream_client import UpstreamClient, build_client
from .upstream_schemas import PricebookRecord

logger = logging.getLogger(__name__)

PRICEBOOKS_PATH = "/pricebooks"


def _store_pricebook(record: PricebookRecord, product_ids: dict) -> tuple[int, int]:
    """
    Upsert every group row of one pricebook and replace its product prices.

    Returns (price rows written, price entries whose product is not mirrored).
    """
    store_gateway.upsert_preserving_annotations(
        Pricebook,
        [record.to_row(group) for group in record.customer_group_names],
        natural_key=("upstream_id", "customer_group_name"),
    )

    prices = []
    unmirrored = 0
    for product in record.products:
        if product.product_upstream_id not in product_ids:
            unmirrored += 1
            logger.debug("Pricebook %s: product %s is not mirrored", record.upstream_id, product.product_upstream_id)
            continue
        prices.append(product)

    count = 0
    for group in record.customer_group_names:
        store_gateway.delete_where(
            ProductPricebook,
            "pricebook_upstream_id",
            record.upstream_id,
            customer_group_name=group,
        )
        count += store_gateway.insert_many(ProductPricebook, [
            {
                "pricebook_upstream_id": record.upstream_id,
                "pricebook_name": record.name,
                "customer_group_name": group,
                "product_id": product_ids[product.product_upstream_id],
                "product_upstream_id": product.product_upstream_id,
                "price": product.price,
                "is_active": True,
                "start_date": record.start_date,
                "end_date": record.end_date,
            }
            for product in prices
        ])
    return count, unmirrored


def _store_batch(summary: SyncSummary, batch, guard: RowGuard) -> None:
    summary.batches += 1
    entries = decode_batch(guard, batch, PricebookRecord.from_api)

    upstream_ids = {
        product.product_upstream_id
        for record in entries
        if record is not None
        for product in record.products
    }
    product_ids = store_gateway.key_to_id(Product, "upstream_id", upstream_ids)

    unmirrored = 0

    def store(record):
        nonlocal unmirrored
        ok, result = guard.attempt(record.upstream_id, lambda: _store_pricebook(record, product_ids))
        if not ok:
            return False, 0
        count, missing = result
        unmirrored += missing
        return True, count

    stored, children = settle_rows(guard, entries, store)
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        summary.batches_failed += 1
        summary.record_error(f"pricebook batch {summary.batches}: commit failed: {exc}")
        return
    summary.success += stored
    summary.children += children
    summary.unmirrored += unmirrored


def sync_pricebooks(client: UpstreamClient | None = None) -> SyncSummary:
    """
    Product prices are resolved to internal product ids through the mirror,
    so this runs after the product sync. Prices for products that are not
    mirrored are left out and reported as `unmirrored`.
    """
    client = client or build_client()
    summary = SyncSummary(job="pricebooks")
    with job_run(summary, "pricebooks"):
        pages = client.iter_pages(PRICEBOOKS_PATH, {"includePriceBookCustomerGroups": "true"})
        sync_pages(
            summary,
            pages,
            PRICEBOOK_BATCH_SIZE,
            lambda batch, guard: _store_batch(summary, batch, guard),
            label="pricebook",
        )
    return summary
