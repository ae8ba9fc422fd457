# Overview: Completed purchase-order sync; orders already mirrored are skipped, never overwritten.

from __future__ import annotations

import logging
from datetime import date

from flask import current_app

from ..models import Product, PurchaseOrder, PurchaseOrderLine
from . import store_gateway
from .sync_service import (
    PURCHASE_ORDER_BATCH_SIZE,
    SyncSummary,
    SyncValidationError,
    job_run,
    run_batch,
    sync_pages,
)
from .upstream_client import UpstreamClient, build_client
from .upstream_schemas import PurchaseOrderRecord
from ..time_utils import format_mdy, months_before, parse_mdy, today_in

logger = logging.getLogger(__name__)

PURCHASE_ORDERS_PATH = "/purchaseorders"
STATUS_COMPLETED = 3
RECENT_MONTHS = 3


def _parse_range(from_date: str, to_date: str) -> tuple[date, date]:
    try:
        start = parse_mdy(from_date)
        end = parse_mdy(to_date)
    except ValueError as exc:
        raise SyncValidationError(str(exc))
    if start > end:
        raise SyncValidationError(f"from_date {from_date} is after to_date {to_date}")
    return start, end


def _skip_existing(records: list[PurchaseOrderRecord]) -> list[PurchaseOrderRecord]:
    known = store_gateway.key_to_id(PurchaseOrder, "upstream_id", [record.upstream_id for record in records])
    if known:
        logger.info("Skipping %d purchase orders already mirrored", len(known))
    return [record for record in records if record.upstream_id not in known]


def _product_ids(records: list[PurchaseOrderRecord]) -> dict:
    upstream_ids = {line.product_upstream_id for record in records for line in record.lines if line.product_upstream_id}
    return store_gateway.key_to_id(Product, "upstream_id", upstream_ids)


def _replace_lines(record: PurchaseOrderRecord, purchase_order_id: int, product_ids: dict) -> int:
    store_gateway.delete_where(PurchaseOrderLine, "purchase_order_id", purchase_order_id)
    rows = [
        line.to_row(
            purchase_order_id=purchase_order_id,
            purchase_order_upstream_id=record.upstream_id,
            product_id=product_ids.get(line.product_upstream_id),
        )
        for line in record.lines
    ]
    return store_gateway.insert_many(PurchaseOrderLine, rows)


def sync_purchase_orders(from_date: str, to_date: str, client: UpstreamClient | None = None) -> SyncSummary:
    """
    Mirror completed purchase orders purchased between two MM/DD/YYYY dates.

    Purchase orders are immutable once mirrored: an upstream_id that is
    already present is skipped even if upstream has changed it.
    """
    start, end = _parse_range(from_date, to_date)
    client = client or build_client()
    summary = SyncSummary(job=f"purchase-orders:{format_mdy(start)}-{format_mdy(end)}")
    query = {
        "fromPurchaseDate": format_mdy(start),
        "toPurchaseDate": format_mdy(end),
        "status": STATUS_COMPLETED,
    }
    with job_run(summary, "purchase orders"):
        pages = client.iter_pages(PURCHASE_ORDERS_PATH, query)
        sync_pages(
            summary,
            pages,
            PURCHASE_ORDER_BATCH_SIZE,
            lambda batch, guard: run_batch(
                summary,
                batch,
                label="purchase order",
                decoder=PurchaseOrderRecord.from_api,
                model=PurchaseOrder,
                to_row=PurchaseOrderRecord.to_row,
                prefilter=_skip_existing,
                prepare=_product_ids,
                replace_children=_replace_lines,
                guard=guard,
            ),
            label="purchase order",
        )
    return summary


def recent_range(today: date | None = None) -> tuple[str, str]:
    if today is None:
        today = today_in(current_app.config.get("SCHEDULER_TIMEZONE", "Asia/Ho_Chi_Minh"))
    return format_mdy(months_before(today, RECENT_MONTHS)), format_mdy(today)


def sync_recent_purchase_orders(client: UpstreamClient | None = None) -> SyncSummary:
    from_date, to_date = recent_range()
    return sync_purchase_orders(from_date, to_date, client)
