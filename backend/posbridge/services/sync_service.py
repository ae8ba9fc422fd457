# Overview: Shared machinery for the upstream sync jobs (summary, batching, failure policy).

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Sequence

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from .credential_service import CredentialMissing
from .store_gateway import StoreError, upsert_preserving_annotations
from .upstream_errors import UpstreamDecodeError, UpstreamError

logger = logging.getLogger(__name__)

PRODUCT_BATCH_SIZE = 50
CUSTOMER_BATCH_SIZE = 50
CATEGORY_BATCH_SIZE = 50
PRICEBOOK_BATCH_SIZE = 25
INVOICE_BATCH_SIZE = 25
PURCHASE_ORDER_BATCH_SIZE = 25

MAX_CONSECUTIVE_FAILURES = 5
MAX_RECORDED_ERRORS = 50

ROW_ERRORS = (StoreError, UpstreamDecodeError, SQLAlchemyError)


class SyncValidationError(ValueError):
    """Operator input for a sync job is invalid."""


@dataclass
class SyncSummary:
    """
    Outcome of one job run.

    `fatal` marks a job-level abort (credential missing, upstream failure
    after retry, store unavailable); the daily sweep stops on it.
    """
    job: str
    total: int = 0
    success: int = 0
    error: int = 0
    children: int = 0
    skipped: int = 0
    unmirrored: int = 0
    batches: int = 0
    batches_failed: int = 0
    ok: bool = True
    fatal: bool = False
    message: str = ""
    pages_fetched: int | None = None
    errors: list[str] = field(default_factory=list)

    def record_error(self, message: str) -> None:
        self.error += 1
        if len(self.errors) < MAX_RECORDED_ERRORS:
            self.errors.append(message)

    def fail(self, message: str, *, pages_fetched: int | None = None) -> None:
        self.ok = False
        self.fatal = True
        self.message = message
        if pages_fetched is not None:
            self.pages_fetched = pages_fetched

    def finish(self, noun: str) -> "SyncSummary":
        if self.ok and not self.message:
            if self.total == 0:
                self.message = f"No {noun} found to sync"
            else:
                self.message = (
                    f"Synced {self.success}/{self.total} {noun}"
                    f" ({self.error} errors, {self.skipped} skipped, {self.children} child rows)"
                )
        return self

    def to_dict(self) -> dict:
        data = {
            "success": self.ok,
            "message": self.message,
            "count": {
                "total": self.total,
                "success": self.success,
                "error": self.error,
                "children": self.children,
                "skipped": self.skipped,
            },
        }
        if self.unmirrored:
            data["count"]["unmirrored"] = self.unmirrored
        if self.errors:
            data["errors"] = list(self.errors)
        if self.pages_fetched is not None:
            data["pages_fetched"] = self.pages_fetched
        return data


@contextmanager
def job_run(summary: SyncSummary, noun: str):
    """
    Convert job-level failures into a failed summary.

    Per-row and per-batch failures never reach here; they are counted
    inside run_batch.
    """
    logger.info("Sync %s started", summary.job)
    try:
        yield summary
    except CredentialMissing as exc:
        db.session.rollback()
        summary.fail(f"Upstream credential missing: {exc}")
    except UpstreamError as exc:
        db.session.rollback()
        summary.fail(f"Upstream request failed: {exc}", pages_fetched=exc.pages_fetched)
    except (StoreError, SQLAlchemyError) as exc:
        db.session.rollback()
        summary.fail(f"Store failure: {exc}")

    summary.finish(noun)
    if summary.ok:
        logger.info("Sync %s finished: %s", summary.job, summary.message)
    else:
        logger.error("Sync %s aborted: %s (%s)", summary.job, summary.message, summary.to_dict()["count"])


class RowGuard:
    """Counts consecutive row failures, in row order, across the batches of one page."""

    def __init__(self, summary: SyncSummary, label: str):
        self.summary = summary
        self.label = label
        self.consecutive = 0

    @property
    def tripped(self) -> bool:
        return self.consecutive >= MAX_CONSECUTIVE_FAILURES

    def failed(self, key: Any, exc: Exception) -> None:
        self.record(key, exc)
        self.count_failure()

    def record(self, key: Any, exc: Exception) -> None:
        self.summary.record_error(f"{self.label} {key}: {exc}")
        logger.warning("Sync %s: %s %s failed: %s", self.summary.job, self.label, key, exc)

    def count_failure(self) -> None:
        self.consecutive += 1
        if self.consecutive == MAX_CONSECUTIVE_FAILURES:
            logger.warning(
                "Sync %s: %d consecutive failures, skipping the rest of this page",
                self.summary.job,
                self.consecutive,
            )

    def succeeded(self) -> None:
        self.consecutive = 0

    def decode(self, raw: Any, decoder: Callable[[Any], Any]) -> Any | None:
        """Decode one row; a failure is recorded but not yet counted."""
        try:
            record = decoder(raw)
        except UpstreamDecodeError as exc:
            key = raw.get("id") if isinstance(raw, dict) else None
            self.record(key, exc)
            return None
        return record

    def attempt(self, key: Any, func: Callable[[], Any]) -> tuple[bool, Any]:
        """Run `func` inside a savepoint; a failure rolls back only this row."""
        try:
            with db.session.begin_nested():
                result = func()
        except ROW_ERRORS as exc:
            self.failed(key, exc)
            return False, None
        self.succeeded()
        return True, result


def decode_batch(guard: RowGuard, raw_batch: Sequence, decoder: Callable[[Any], Any]) -> list:
    """
    Decode a batch in row order; undecodable rows come back as None.

    Decoding stops where the decode failures alone would trip the guard,
    and the rows after that point are counted as skipped. The guard itself
    is only advanced by `settle_rows`, once each row's outcome is known.
    """
    entries = []
    run = guard.consecutive
    for index, raw in enumerate(raw_batch):
        if run >= MAX_CONSECUTIVE_FAILURES:
            guard.summary.skipped += len(raw_batch) - index
            break
        record = guard.decode(raw, decoder)
        entries.append(record)
        run = 0 if record is not None else run + 1
    return entries


def settle_rows(guard: RowGuard, entries: list, store: Callable[[Any], tuple[bool, int]]) -> tuple[int, int]:
    """
    Walk decoded rows in order, storing each through `store` and counting
    decode failures against the guard. Returns (stored rows, child rows).
    """
    stored = 0
    children = 0
    for index, record in enumerate(entries):
        if guard.tripped:
            guard.summary.skipped += len(entries) - index
            break
        if record is None:
            guard.count_failure()
            continue
        ok, child_count = store(record)
        if ok:
            stored += 1
            children += child_count or 0
    return stored, children


def run_batch(
    summary: SyncSummary,
    raw_batch: Sequence,
    *,
    label: str,
    decoder: Callable[[Any], Any],
    model,
    to_row: Callable[[Any], dict],
    key: Callable[[Any], Any] = lambda record: record.upstream_id,
    natural_key: str = "upstream_id",
    prefilter: Callable[[list], list] | None = None,
    prepare: Callable[[list], Any] | None = None,
    replace_children: Callable[[Any, int, Any], int] | None = None,
    guard: RowGuard | None = None,
) -> None:
    """
    Persist one batch: decode, one upsert for the parents, then per-row
    child replacement (delete precedes insert for each parent).

    `guard` carries the consecutive-failure count across the batches of a
    page. A failing parent upsert fails the whole batch, which is rolled
    back and counted; the job continues with the next batch.
    """
    summary.batches += 1
    if guard is None:
        guard = RowGuard(summary, label)

    entries = decode_batch(guard, raw_batch, decoder)
    records = [record for record in entries if record is not None]
    if prefilter is not None:
        kept = prefilter(records)
        summary.skipped += len(records) - len(kept)
        kept_ids = {id(record) for record in kept}
        entries = [record for record in entries if record is None or id(record) in kept_ids]
        records = kept
    if not records:
        settle_rows(guard, entries, lambda record: (False, 0))
        return

    try:
        ids = upsert_preserving_annotations(model, [to_row(record) for record in records], natural_key)
    except (StoreError, SQLAlchemyError) as exc:
        db.session.rollback()
        summary.batches_failed += 1
        for record in records:
            summary.record_error(f"{label} {key(record)}: batch upsert failed: {exc}")
        logger.error("Sync %s: batch %d upsert failed: %s", summary.job, summary.batches, exc)
        return

    context = prepare(records) if prepare is not None else None

    def store(record):
        record_key = key(record)
        parent_id = ids.get(record_key)
        if parent_id is None:
            guard.failed(record_key, StoreError("upserted row not found", table=model.__tablename__))
            return False, 0
        if replace_children is None:
            guard.succeeded()
            return True, 0
        return guard.attempt(record_key, lambda: replace_children(record, parent_id, context))

    stored, children = settle_rows(guard, entries, store)

    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        summary.batches_failed += 1
        summary.record_error(f"{label} batch {summary.batches}: commit failed: {exc}")
        logger.error("Sync %s: batch %d commit failed: %s", summary.job, summary.batches, exc)
        return

    summary.success += stored
    summary.children += children
    logger.info(
        "Sync %s: batch %d stored (%d/%d rows, %d child rows)",
        summary.job,
        summary.batches,
        stored,
        len(raw_batch),
        children,
    )


def sync_page(
    summary: SyncSummary,
    page: list,
    batch_size: int,
    handle_batch: Callable[[Sequence, RowGuard], None],
    label: str,
) -> None:
    """
    Feed one page through `handle_batch` in chunks, sharing one guard.

    Once the guard trips, the page's remaining batches are counted as
    skipped and the caller moves on to the next page.
    """
    guard = RowGuard(summary, label)
    for start in range(0, len(page), batch_size):
        if guard.tripped:
            summary.skipped += len(page) - start
            break
        handle_batch(page[start:start + batch_size], guard)


def sync_pages(
    summary: SyncSummary,
    pages: Iterable[list],
    batch_size: int,
    handle_batch: Callable[[Sequence, RowGuard], None],
    *,
    label: str = "row",
    on_first_page: Callable[[], None] | None = None,
) -> None:
    """Feed every upstream page, in order, through `handle_batch` in chunks."""
    first = True
    for page in pages:
        if first and on_first_page is not None:
            on_first_page()
        first = False
        summary.total += len(page)
        sync_page(summary, page, batch_size, handle_batch, label)
