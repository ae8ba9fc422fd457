# Overview: Append-only product change ledger.

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable

from ..extensions import db
from ..models import ProductChangeLog
from ..time_utils import to_utc_z

logger = logging.getLogger(__name__)

FIELD_BASE_PRICE = "baseprice"
FIELD_DESCRIPTION = "description"
FIELD_COST = "cost"

SOURCE_WEBHOOK = "webhook"
SOURCE_CORRECTION = "correction"


def ledger_text(value: Any) -> str | None:
    """
    Stringify a value for the ledger.

    Whole-number floats drop their ".0" so 10.0 and 10 both read "10".
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else repr(value)
    if isinstance(value, datetime):
        return to_utc_z(value)
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def values_differ(old: Any, new: Any) -> bool:
    """Numeric-aware comparison; 10 and 10.0 are the same value."""
    if old is None or new is None:
        return old is not new
    numeric = (int, float, Decimal)
    if isinstance(old, numeric) and isinstance(new, numeric) and not isinstance(old, bool) and not isinstance(new, bool):
        return Decimal(str(old)) != Decimal(str(new))
    return old != new


@dataclass
class FieldChange:
    upstream_id: int
    field_name: str
    old_value: Any
    new_value: Any
    branch_id: int | None = None


def append(changes: Iterable[FieldChange], *, source: str = SOURCE_WEBHOOK, commit: bool = True) -> list[ProductChangeLog]:
    """
    Write ledger rows for `changes`. Rows are never updated afterwards.

    With commit=True the entries are durable before this returns, which
    is what ledger-first callers rely on.
    """
    entries = []
    for change in changes:
        entry = ProductChangeLog(
            upstream_id=change.upstream_id,
            field_name=change.field_name,
            old_value_text=ledger_text(change.old_value),
            new_value_text=ledger_text(change.new_value),
            branch_id=change.branch_id,
            source=source,
        )
        db.session.add(entry)
        entries.append(entry)
    if not entries:
        return entries
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    logger.info(
        "Recorded %d %s change(s) for upstream product(s) %s",
        len(entries),
        source,
        sorted({entry.upstream_id for entry in entries}),
    )
    return entries


def list_changes(upstream_id: int | None = None, since: datetime | None = None, limit: int = 200) -> list[ProductChangeLog]:
    query = db.session.query(ProductChangeLog)
    if upstream_id is not None:
        query = query.filter(ProductChangeLog.upstream_id == upstream_id)
    if since is not None:
        query = query.filter(ProductChangeLog.created_at >= since)
    return query.order_by(ProductChangeLog.created_at.desc(), ProductChangeLog.id.desc()).limit(limit).all()
