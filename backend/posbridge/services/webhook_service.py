# Overview: Signed upstream webhook processing: verify, decode, diff, ledger-first apply.

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from typing import Any

from flask import Flask

from ..extensions import db
from ..models import Inventory, Product
from . import changelog_service, store_gateway
from .changelog_service import FieldChange, values_differ
from .upstream_errors import UpstreamDecodeError
from .upstream_schemas import ProductUpdateNotification, WebhookEnvelope
from ..time_utils import utcnow

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Hub-Signature"
EVENT_HEADER = "X-Webhook-Event"
DELIVERY_HEADER = "X-Webhook-Delivery"

# Upstream labels its digests inconsistently; both are tried for every label
_DIGESTS = (("sha256", hashlib.sha256), ("sha1", hashlib.sha1))


class SignatureMismatch(ValueError):
    pass


class MalformedWebhook(ValueError):
    pass


class WebhookCounters:
    """Process-wide delivery counters, exposed on the metrics route."""

    NAMES = ("received", "signature_failed", "malformed", "processed", "deferred", "failed")

    def __init__(self):
        self._lock = threading.Lock()
        self._values = {name: 0 for name in self.NAMES}

    def incr(self, name: str, amount: int = 1) -> None:
        with self._lock:
            self._values[name] = self._values.get(name, 0) + amount

    def snapshot(self) -> dict:
        with self._lock:
            return dict(self._values)

    def reset(self) -> None:
        with self._lock:
            self._values = {name: 0 for name in self.NAMES}


counters = WebhookCounters()


@dataclass
class WebhookResult:
    success: bool = True
    signature_failed: bool = False
    error: str | None = None
    deferred: bool = False
    delivery_id: str | None = None
    processed: int = 0
    changes: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        data: dict[str, Any] = {"success": self.success}
        if self.signature_failed:
            data["signature_failed"] = True
        if self.error:
            data["error"] = self.error
        if self.deferred:
            data["deferred"] = True
        if self.delivery_id:
            data["delivery_id"] = self.delivery_id
        data["processed"] = self.processed
        data["changes"] = self.changes
        return data


def verify_signature(raw_body: bytes, header_value: str | None, secret: str | None) -> str:
    """
    Check `algo=hex` against HMAC-SHA256 and HMAC-SHA1 of the raw body.

    Returns the name of the digest that matched; the declared label is
    ignored. Raises SignatureMismatch otherwise.
    """
    if not secret:
        raise SignatureMismatch("Webhook secret is not configured")
    if not header_value:
        raise SignatureMismatch(f"Missing {SIGNATURE_HEADER} header")

    _, _, provided = header_value.strip().rpartition("=")
    provided = provided.strip().lower()
    if not provided:
        raise SignatureMismatch(f"Empty {SIGNATURE_HEADER} digest")

    key = secret.encode("utf-8")
    for name, digest in _DIGESTS:
        expected = hmac.new(key, raw_body, digest).hexdigest()
        if hmac.compare_digest(expected, provided):
            return name
    raise SignatureMismatch("Signature does not match the webhook secret")


def decode_envelope(raw_body: bytes) -> WebhookEnvelope:
    try:
        payload = json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise MalformedWebhook(f"Body is not valid JSON: {exc}")
    try:
        return WebhookEnvelope.from_api(payload)
    except UpstreamDecodeError as exc:
        raise MalformedWebhook(str(exc))


def _same_text(old: str | None, new: str | None) -> bool:
    return (old or "") == (new or "")


def diff_product(product: Product, inventories: dict, update: ProductUpdateNotification) -> list[FieldChange]:
    """Field changes an update would make, against current mirror values."""
    changes = []
    if "BasePrice" in update.present and values_differ(product.base_price, update.base_price):
        changes.append(FieldChange(update.upstream_id, changelog_service.FIELD_BASE_PRICE, product.base_price, update.base_price))
    if "Description" in update.present and not _same_text(product.description, update.description):
        changes.append(FieldChange(update.upstream_id, changelog_service.FIELD_DESCRIPTION, product.description, update.description))
    for branch in update.inventories:
        current = inventories.get(branch.branch_id)
        old_cost = current.cost if current is not None else None
        if values_differ(old_cost, branch.cost):
            changes.append(FieldChange(update.upstream_id, changelog_service.FIELD_COST, old_cost, branch.cost, branch_id=branch.branch_id))
    return changes


def _apply_changes(product: Product, changes: list[FieldChange]) -> None:
    patch = {}
    for change in changes:
        if change.field_name == changelog_service.FIELD_BASE_PRICE:
            patch["base_price"] = change.new_value
        elif change.field_name == changelog_service.FIELD_DESCRIPTION:
            patch["description"] = change.new_value
        elif change.field_name == changelog_service.FIELD_COST:
            updated = store_gateway.update_where(
                Inventory,
                "product_id",
                product.id,
                {"cost": change.new_value, "synced_at": utcnow()},
                branch_id=change.branch_id,
            )
            if not updated:
                store_gateway.insert_many(Inventory, [{
                    "product_id": product.id,
                    "product_upstream_id": product.upstream_id,
                    "product_code": product.code,
                    "product_name": product.name,
                    "branch_id": change.branch_id,
                    "cost": change.new_value,
                }])
    if patch:
        patch["synced_at"] = utcnow()
        store_gateway.update_where(Product, "id", product.id, patch)


def _first_sighting(update: ProductUpdateNotification) -> None:
    """Create the mirror row for a product no sync has seen yet."""
    ids = store_gateway.upsert_preserving_annotations(Product, [{
        "upstream_id": update.upstream_id,
        "code": update.code,
        "name": update.name,
        "base_price": update.base_price,
        "description": update.description,
    }])
    product_id = ids[update.upstream_id]
    store_gateway.insert_many(Inventory, [
        {
            "product_id": product_id,
            "product_upstream_id": update.upstream_id,
            "product_code": update.code,
            "product_name": update.name,
            "branch_id": branch.branch_id,
            "cost": branch.cost,
        }
        for branch in update.inventories
    ])
    db.session.commit()
    logger.info("Webhook created mirror product %s", update.upstream_id)


def apply_product_update(update: ProductUpdateNotification) -> list[FieldChange]:
    """
    Diff one product-update against the mirror and apply it.

    Ledger entries are committed before the mirror is touched; a retry
    after a crash in between may repeat an entry, never lose one.
    """
    product = store_gateway.get_one(Product, "upstream_id", update.upstream_id)
    if product is None:
        _first_sighting(update)
        return []

    inventories = {
        row.branch_id: row
        for row in db.session.query(Inventory).filter(Inventory.product_id == product.id).all()
    }
    changes = diff_product(product, inventories, update)
    if not changes:
        logger.info("Webhook product %s: no changes", update.upstream_id)
        return []

    changelog_service.append(changes, source=changelog_service.SOURCE_WEBHOOK, commit=True)
    _apply_changes(product, changes)
    db.session.commit()
    db.session.expire_all()
    return changes


def process_delivery(raw_body: bytes, signature: str | None, secret: str | None, delivery_id: str | None = None) -> WebhookResult:
    """Full pipeline for one delivery. Never raises for bad input; store errors propagate."""
    counters.incr("received")
    result = WebhookResult(delivery_id=delivery_id)

    try:
        algorithm = verify_signature(raw_body, signature, secret)
    except SignatureMismatch as exc:
        counters.incr("signature_failed")
        logger.warning("Webhook delivery %s rejected: %s", delivery_id, exc)
        result.signature_failed = True
        result.error = str(exc)
        return result

    try:
        envelope = decode_envelope(raw_body)
        updates = envelope.product_updates()
    except (MalformedWebhook, UpstreamDecodeError) as exc:
        counters.incr("malformed")
        logger.warning("Webhook delivery %s is malformed: %s", delivery_id, exc)
        result.error = f"Malformed webhook: {exc}"
        return result

    result.delivery_id = delivery_id or envelope.delivery_id
    logger.info(
        "Webhook delivery %s verified with %s: %d product update(s)",
        result.delivery_id,
        algorithm,
        len(updates),
    )
    for update in updates:
        changes = apply_product_update(update)
        result.processed += 1
        result.changes.extend(
            {
                "upstream_id": change.upstream_id,
                "field": change.field_name,
                "old": changelog_service.ledger_text(change.old_value),
                "new": changelog_service.ledger_text(change.new_value),
                "branch_id": change.branch_id,
            }
            for change in changes
        )
    counters.incr("processed")
    return result


_executor: ThreadPoolExecutor | None = None
_executor_lock = threading.Lock()


def _get_executor() -> ThreadPoolExecutor:
    global _executor
    with _executor_lock:
        if _executor is None:
            _executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="webhook")
        return _executor


def _run_in_context(app: Flask, raw_body: bytes, signature: str | None, secret: str | None, delivery_id: str | None) -> WebhookResult:
    with app.app_context():
        try:
            return process_delivery(raw_body, signature, secret, delivery_id)
        except Exception:
            db.session.rollback()
            counters.incr("failed")
            raise


def _log_late_failure(future) -> None:
    exc = future.exception()
    if exc is not None:
        logger.error("Deferred webhook processing failed: %s", exc, exc_info=exc)


def handle_delivery(app: Flask, raw_body: bytes, signature: str | None, delivery_id: str | None = None) -> WebhookResult:
    """
    Process a delivery, answering within the soft deadline.

    Past the deadline the caller gets a deferred success envelope and the
    work keeps running in the background. A deadline of 0 processes inline.
    """
    secret = app.config.get("WEBHOOK_SECRET")
    deadline = app.config.get("WEBHOOK_SOFT_DEADLINE_SECONDS") or 0
    if deadline <= 0:
        try:
            return process_delivery(raw_body, signature, secret, delivery_id)
        except Exception:
            db.session.rollback()
            counters.incr("failed")
            raise

    future = _get_executor().submit(_run_in_context, app, raw_body, signature, secret, delivery_id)
    try:
        return future.result(timeout=deadline)
    except FutureTimeoutError:
        counters.incr("deferred")
        future.add_done_callback(_log_late_failure)
        logger.warning("Webhook delivery %s exceeded %.1fs; continuing in background", delivery_id, deadline)
        return WebhookResult(deferred=True, delivery_id=delivery_id)


def shutdown(wait: bool = False) -> None:
    global _executor
    with _executor_lock:
        if _executor is not None:
            _executor.shutdown(wait=wait)
            _executor = None
