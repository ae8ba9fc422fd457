# Overview: Customer mirror sync.

from __future__ import annotations

from ..models import Customer
from .sync_service import CUSTOMER_BATCH_SIZE, SyncSummary, job_run, run_batch, sync_pages
from .upstream_client import UpstreamClient, build_client
from .upstream_schemas import CustomerRecord

CUSTOMERS_PATH = "/customers"


def sync_customers(client: UpstreamClient | None = None) -> SyncSummary:
    client = client or build_client()
    summary = SyncSummary(job="customers")
    with job_run(summary, "customers"):
        pages = client.iter_pages(
            CUSTOMERS_PATH,
            {"includeCustomerGroup": "true", "includeRemoveIds": "true"},
        )
        sync_pages(
            summary,
            pages,
            CUSTOMER_BATCH_SIZE,
            lambda batch, guard: run_batch(
                summary,
                batch,
                label="customer",
                decoder=CustomerRecord.from_api,
                model=Customer,
                to_row=CustomerRecord.to_row,
                guard=guard,
            ),
            label="customer",
        )
    return summary
