# Overview: Category tree sync; the upstream tree is stored flat with parent pointers.

from __future__ import annotations

from ..models import Category
from .sync_service import CATEGORY_BATCH_SIZE, SyncSummary, job_run, run_batch, sync_page
from .upstream_client import UpstreamClient, build_client
from .upstream_errors import UpstreamDecodeError
from .upstream_schemas import CategoryRecord

CATEGORIES_PATH = "/categories"


def _flatten_page(page: list, summary: SyncSummary) -> list:
    """Decode each root and expand it depth-first; bad roots are counted."""
    flat = []
    for raw in page:
        try:
            flat.extend(CategoryRecord.from_api(raw).flatten())
        except UpstreamDecodeError as exc:
            summary.total += 1
            summary.record_error(f"category {raw.get('categoryId') if isinstance(raw, dict) else None}: {exc}")
    return flat


def sync_categories(client: UpstreamClient | None = None) -> SyncSummary:
    client = client or build_client()
    summary = SyncSummary(job="categories")
    with job_run(summary, "categories"):
        for page in client.iter_pages(CATEGORIES_PATH, {"hierachicalData": "true"}):
            records = _flatten_page(page, summary)
            summary.total += len(records)
            sync_page(
                summary,
                records,
                CATEGORY_BATCH_SIZE,
                lambda batch, guard: run_batch(
                    summary,
                    batch,
                    label="category",
                    decoder=lambda record: record,
                    model=Category,
                    to_row=CategoryRecord.to_row,
                    guard=guard,
                ),
                "category",
            )
    return summary
