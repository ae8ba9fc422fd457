# Overview: Operator corrections pushed back to the upstream POS, and purchase-order line review.

from __future__ import annotations

import logging
from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..models import PurchaseOrderLine
from . import changelog_service
from .changelog_service import FieldChange, values_differ
from .upstream_client import UpstreamClient, build_client
from .upstream_errors import UpstreamDecodeError
from ..time_utils import utcnow

logger = logging.getLogger(__name__)

REVIEW_DONE = "done"
REVIEW_SKIPPED = "skipped"


class CorrectionError(ValueError):
    pass


@dataclass
class ProductCorrection:
    upstream_id: int
    base_price: float | None = None
    cost: float | None = None
    description: str | None = None
    branch_id: int | None = None

    @classmethod
    def from_dict(cls, data: dict, upstream_id: int | None = None) -> "ProductCorrection":
        if not isinstance(data, dict):
            raise CorrectionError("correction must be an object")
        upstream_id = upstream_id or data.get("upstream_id") or data.get("product_upstream_id")
        if not upstream_id:
            raise CorrectionError("upstream_id is required")

        def number(key):
            value = data.get(key)
            if value is None or value == "":
                return None
            try:
                return float(value)
            except (TypeError, ValueError):
                raise CorrectionError(f"{key} must be a number")

        try:
            upstream_id = int(upstream_id)
        except (TypeError, ValueError):
            raise CorrectionError("upstream_id must be an integer")
        branch_id = data.get("branch_id")
        return cls(
            upstream_id=upstream_id,
            base_price=number("base_price"),
            cost=number("cost"),
            description=data.get("description"),
            branch_id=int(branch_id) if branch_id not in (None, "") else None,
        )


def _current_cost(product: dict, branch_id: int | None):
    inventories = product.get("inventories") or []
    if not isinstance(inventories, list):
        raise UpstreamDecodeError("'inventories' must be a list")
    for inventory in inventories:
        if isinstance(inventory, dict) and inventory.get("branchId") == branch_id:
            return inventory.get("cost")
    return None


def push_product_correction(
    upstream_id: int,
    base_price: float | None = None,
    cost: float | None = None,
    description: str | None = None,
    branch_id: int | None = None,
    client: UpstreamClient | None = None,
) -> list[FieldChange]:
    """
    Send a base price, cost and description correction upstream.

    The current upstream product is fetched first so unspecified fields
    keep their values and the ledger records real before/after pairs.
    Cost applies to `branch_id`, else the configured default branch.
    """
    client = client or build_client()
    if branch_id is None:
        branch_id = current_app.config.get("UPSTREAM_DEFAULT_BRANCH_ID")
    if cost is not None and branch_id is None:
        raise CorrectionError("branch_id is required to correct cost")

    current = client.get(f"/products/{upstream_id}")
    if not isinstance(current, dict):
        raise UpstreamDecodeError(f"GET /products/{upstream_id} did not return an object")

    new_base_price = base_price if base_price is not None else current.get("basePrice")
    new_description = description if description is not None else current.get("description")
    body = {"basePrice": new_base_price, "description": new_description}
    if cost is not None:
        body["inventories"] = [{"branchId": branch_id, "cost": cost}]

    client.put(f"/products/{upstream_id}", body)
    logger.info("Pushed correction for upstream product %s", upstream_id)

    changes = []
    if values_differ(current.get("basePrice"), new_base_price):
        changes.append(FieldChange(upstream_id, changelog_service.FIELD_BASE_PRICE, current.get("basePrice"), new_base_price))
    if cost is not None:
        old_cost = _current_cost(current, branch_id)
        if values_differ(old_cost, cost):
            changes.append(FieldChange(upstream_id, changelog_service.FIELD_COST, old_cost, cost, branch_id=branch_id))
    if (current.get("description") or "") != (new_description or ""):
        changes.append(FieldChange(upstream_id, changelog_service.FIELD_DESCRIPTION, current.get("description"), new_description))

    changelog_service.append(changes, source=changelog_service.SOURCE_CORRECTION)
    return changes


def review_purchase_order_line(
    line_id: int,
    status: str,
    correction: dict | None = None,
    client: UpstreamClient | None = None,
) -> dict:
    """
    Mark a purchase-order line `done` or `skipped`.

    For `done` with a correction, the correction is pushed upstream after
    the status is stored.
    """
    if status not in (REVIEW_DONE, REVIEW_SKIPPED):
        raise CorrectionError(f"status must be one of {REVIEW_DONE!r}, {REVIEW_SKIPPED!r}")

    line = db.session.get(PurchaseOrderLine, line_id)
    if line is None:
        raise LookupError(f"Purchase order line {line_id} not found")

    parsed = None
    if status == REVIEW_DONE and correction:
        if not isinstance(correction, dict):
            raise CorrectionError("correction must be an object")
        parsed = ProductCorrection.from_dict(correction, upstream_id=correction.get("upstream_id") or line.product_upstream_id)

    line.local_status = status
    line.local_reviewed_at = utcnow()
    db.session.commit()
    logger.info("Purchase order line %s marked %s", line_id, status)

    changes = []
    if parsed is not None:
        changes = push_product_correction(
            parsed.upstream_id,
            base_price=parsed.base_price,
            cost=parsed.cost,
            description=parsed.description,
            branch_id=parsed.branch_id,
            client=client,
        )

    return {
        "line": line.to_dict(),
        "changes": [
            {
                "field": change.field_name,
                "old": changelog_service.ledger_text(change.old_value),
                "new": changelog_service.ledger_text(change.new_value),
                "branch_id": change.branch_id,
            }
            for change in changes
        ],
    }
