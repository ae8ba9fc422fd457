# Overview: Invoice mirror sync by day, by month and by code; lines are replaced per invoice.

from __future__ import annotations

import logging
from datetime import date

from flask import current_app

from ..models import Invoice, InvoiceLine, Product
from . import store_gateway
from .sync_service import (
    INVOICE_BATCH_SIZE,
    SyncSummary,
    SyncValidationError,
    job_run,
    run_batch,
    sync_pages,
)
from .upstream_client import UpstreamClient, build_client
from .upstream_errors import UpstreamPermanent
from .upstream_schemas import InvoiceRecord
from ..time_utils import format_ymd, month_bounds

logger = logging.getLogger(__name__)

INVOICES_PATH = "/invoices"


def _valid_date(year, month, day=1) -> date:
    try:
        return date(int(year), int(month), int(day))
    except (TypeError, ValueError) as exc:
        raise SyncValidationError(f"Invalid date {year}-{month}-{day}: {exc}")


def _product_ids(records: list[InvoiceRecord]) -> dict:
    upstream_ids = {line.product_upstream_id for record in records for line in record.lines if line.product_upstream_id}
    return store_gateway.key_to_id(Product, "upstream_id", upstream_ids)


def _replace_lines(record: InvoiceRecord, invoice_id: int, product_ids: dict) -> int:
    store_gateway.delete_where(InvoiceLine, "invoice_id", invoice_id)
    rows = [
        line.to_row(
            invoice_id=invoice_id,
            invoice_upstream_id=record.upstream_id,
            product_id=product_ids.get(line.product_upstream_id),
        )
        for line in record.lines
    ]
    return store_gateway.insert_many(InvoiceLine, rows)


def _store_batch(summary: SyncSummary, batch, decoder=InvoiceRecord.from_api, guard=None) -> None:
    run_batch(
        summary,
        batch,
        label="invoice",
        decoder=decoder,
        model=Invoice,
        to_row=InvoiceRecord.to_row,
        prepare=_product_ids,
        replace_children=_replace_lines,
        guard=guard,
    )


def _sync_range(job: str, start: date, end: date, client: UpstreamClient | None) -> SyncSummary:
    client = client or build_client()
    summary = SyncSummary(job=job)
    query = {
        "fromPurchaseDate": format_ymd(start),
        "toPurchaseDate": format_ymd(end),
        "includeInvoiceDetails": "true",
    }
    page_delay = current_app.config.get("UPSTREAM_INVOICE_PAGE_DELAY_SECONDS", 1.0)
    with job_run(summary, "invoices"):
        pages = client.iter_pages(INVOICES_PATH, query, page_delay=page_delay)
        sync_pages(
            summary,
            pages,
            INVOICE_BATCH_SIZE,
            lambda batch, guard: _store_batch(summary, batch, guard=guard),
            label="invoice",
        )
    return summary


def sync_invoices_by_day(year, month, day, client: UpstreamClient | None = None) -> SyncSummary:
    the_date = _valid_date(year, month, day)
    return _sync_range(f"invoices-day:{format_ymd(the_date)}", the_date, the_date, client)


def sync_invoices_by_month(year, month, client: UpstreamClient | None = None) -> SyncSummary:
    """First through last calendar day of the month (February 29 in leap years)."""
    first = _valid_date(year, month)
    start, end = month_bounds(first.year, first.month)
    return _sync_range(f"invoices-month:{first.year}-{first.month:02d}", start, end, client)


def sync_invoice_by_code(code: str, client: UpstreamClient | None = None) -> SyncSummary:
    code = (code or "").strip()
    if not code:
        raise SyncValidationError("Invoice code is required")

    client = client or build_client()
    summary = SyncSummary(job=f"invoice:{code}")
    with job_run(summary, "invoices"):
        try:
            payload = client.get(f"{INVOICES_PATH}/code/{code}")
        except UpstreamPermanent as exc:
            if exc.status != 404:
                raise
            payload = None
        if not isinstance(payload, dict) or not payload.get("id"):
            summary.ok = False
            summary.message = f"No invoice found for code {code}"
            logger.warning("Invoice %s not found upstream", code)
        else:
            summary.total = 1
            _store_batch(summary, [payload], decoder=InvoiceRecord.from_singleton)
    return summary
