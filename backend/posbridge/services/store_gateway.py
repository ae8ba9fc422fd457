# Overview: Typed CRUD over the mirror tables plus the annotation-preserving upsert.

from __future__ import annotations

import logging
from typing import Any, Iterable, Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import ANNOTATION_PREFIX
from ..time_utils import utcnow

logger = logging.getLogger(__name__)

WATERMARK_COLUMN = "synced_at"


class StoreError(RuntimeError):
    """A mirror write or read failed in the store."""

    def __init__(self, message: str, *, table: str | None = None):
        super().__init__(message)
        self.table = table


def _table(model) -> sa.Table:
    return model.__table__


def _key_columns(natural_key: str | Sequence[str]) -> tuple[str, ...]:
    if isinstance(natural_key, str):
        return (natural_key,)
    return tuple(natural_key)


def _key_of(row: dict, key_columns: tuple[str, ...]):
    if len(key_columns) == 1:
        return row[key_columns[0]]
    return tuple(row[name] for name in key_columns)


def _key_clause(table: sa.Table, key_columns: tuple[str, ...], keys: list):
    if len(key_columns) == 1:
        return table.c[key_columns[0]].in_(keys)
    return sa.tuple_(*(table.c[name] for name in key_columns)).in_(keys)


def annotation_columns(model) -> list[str]:
    """Locally-authored columns, found by the reserved name prefix."""
    return [c.name for c in _table(model).columns if c.name.startswith(ANNOTATION_PREFIX)]


def annotation_defaults(model) -> dict[str, Any]:
    defaults = {}
    for column in _table(model).columns:
        if not column.name.startswith(ANNOTATION_PREFIX):
            continue
        default = column.default
        if default is not None and default.is_scalar:
            defaults[column.name] = default.arg
        else:
            defaults[column.name] = None
    return defaults


def _dialect_insert(table: sa.Table):
    dialect = db.session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(table)
    if dialect == "sqlite":
        return sqlite.insert(table)
    raise StoreError(f"Upsert is not supported on dialect {dialect!r}", table=table.name)


def _stamp(model, rows: list[dict]) -> list[dict]:
    if WATERMARK_COLUMN not in _table(model).columns:
        return rows
    now = utcnow()
    return [{**row, WATERMARK_COLUMN: row.get(WATERMARK_COLUMN) or now} for row in rows]


def get_many(model, column: str, values: Iterable, columns: Sequence[str] | None = None) -> list[dict]:
    """Rows whose `column` is in `values`, as plain dicts."""
    values = list(values)
    if not values:
        return []
    table = _table(model)
    selected = [table.c[name] for name in columns] if columns else [table]
    stmt = sa.select(*selected).where(table.c[column].in_(values))
    try:
        return [dict(row._mapping) for row in db.session.execute(stmt)]
    except SQLAlchemyError as exc:
        raise StoreError(f"Reading {table.name} failed: {exc}", table=table.name) from exc


def get_one(model, column: str, value):
    """First ORM instance with `column == value`, or None."""
    try:
        return db.session.query(model).filter(getattr(model, column) == value).first()
    except SQLAlchemyError as exc:
        raise StoreError(f"Reading {model.__tablename__} failed: {exc}", table=model.__tablename__) from exc


def key_to_id(model, column: str, values: Iterable) -> dict:
    """Map natural-key values to internal ids for the rows that exist."""
    rows = get_many(model, column, values, columns=("id", column))
    return {row[column]: row["id"] for row in rows}


def merge_preserving_annotations(model, keyed_rows: Sequence[tuple], existing: dict) -> list[dict]:
    """
    Combine upstream rows with the stored annotations.

    `existing` maps natural key to the stored annotation values. Any
    annotation key present on an input row is discarded.
    """
    annotations = annotation_columns(model)
    defaults = annotation_defaults(model)
    merged = []
    for key, row in keyed_rows:
        upstream_part = {name: value for name, value in row.items() if not name.startswith(ANNOTATION_PREFIX)}
        stored = existing.get(key)
        if stored is not None:
            local_part = {name: stored.get(name) for name in annotations}
        else:
            local_part = dict(defaults)
        merged.append({**upstream_part, **local_part})
    return merged


def upsert_preserving_annotations(model, rows: Sequence[dict], natural_key: str | Sequence[str] = "upstream_id") -> dict:
    """
    Insert or overwrite mirror rows by natural key without touching annotations.

    1. Load stored annotations for the incoming keys.
    2. Merge: upstream fields from the input, annotations from the store
       (or column defaults for new rows).
    3. One INSERT ... ON CONFLICT DO UPDATE keyed on the natural key;
       the UPDATE half never names an annotation column.

    Returns {natural key: internal id} for every upserted row. Nothing is
    committed; the caller owns the transaction.
    """
    table = _table(model)
    key_columns = _key_columns(natural_key)

    deduped: dict = {}
    for row in rows:
        deduped[_key_of(row, key_columns)] = row
    if not deduped:
        return {}
    keys = list(deduped.keys())
    annotations = annotation_columns(model)

    try:
        existing = {}
        if annotations:
            stmt = sa.select(*(table.c[name] for name in key_columns + tuple(annotations))).where(
                _key_clause(table, key_columns, keys)
            )
            for stored in db.session.execute(stmt):
                mapping = dict(stored._mapping)
                existing[_key_of(mapping, key_columns)] = mapping

        merged = _stamp(model, merge_preserving_annotations(model, list(deduped.items()), existing))
        all_columns = sorted({name for row in merged for name in row})
        merged = [{name: row.get(name) for name in all_columns} for row in merged]

        insert_stmt = _dialect_insert(table).values(merged)
        update_columns = [
            name for name in all_columns
            if name not in key_columns and name != "id" and not name.startswith(ANNOTATION_PREFIX)
        ]
        if update_columns:
            insert_stmt = insert_stmt.on_conflict_do_update(
                index_elements=list(key_columns),
                set_={name: insert_stmt.excluded[name] for name in update_columns},
            )
        else:
            insert_stmt = insert_stmt.on_conflict_do_nothing(index_elements=list(key_columns))
        db.session.execute(insert_stmt)

        id_stmt = sa.select(table.c.id, *(table.c[name] for name in key_columns)).where(
            _key_clause(table, key_columns, keys)
        )
        ids = {}
        for stored in db.session.execute(id_stmt):
            mapping = dict(stored._mapping)
            ids[_key_of(mapping, key_columns)] = mapping["id"]
    except SQLAlchemyError as exc:
        raise StoreError(f"Upsert into {table.name} failed: {exc}", table=table.name) from exc

    logger.debug("Upserted %d rows into %s", len(merged), table.name)
    return ids


def insert_many(model, rows: Sequence[dict]) -> int:
    rows = list(rows)
    if not rows:
        return 0
    table = _table(model)
    try:
        db.session.execute(sa.insert(table), _stamp(model, rows))
    except SQLAlchemyError as exc:
        raise StoreError(f"Insert into {table.name} failed: {exc}", table=table.name) from exc
    return len(rows)


def delete_where(model, column: str, value, **extra) -> int:
    """
    Delete rows where `column` equals `value` (or is in it, for a list).

    Extra keyword filters narrow the match with equality.
    """
    table = _table(model)
    if isinstance(value, (list, tuple, set)):
        clause = table.c[column].in_(list(value))
    else:
        clause = table.c[column] == value
    stmt = sa.delete(table).where(clause)
    for name, extra_value in extra.items():
        stmt = stmt.where(table.c[name] == extra_value)
    try:
        result = db.session.execute(stmt)
    except SQLAlchemyError as exc:
        raise StoreError(f"Delete from {table.name} failed: {exc}", table=table.name) from exc
    return result.rowcount or 0


def update_where(model, column: str, value, patch: dict, **extra) -> int:
    if not patch:
        return 0
    table = _table(model)
    stmt = sa.update(table).where(table.c[column] == value).values(**patch)
    for name, extra_value in extra.items():
        stmt = stmt.where(table.c[name] == extra_value)
    try:
        result = db.session.execute(stmt)
    except SQLAlchemyError as exc:
        raise StoreError(f"Update of {table.name} failed: {exc}", table=table.name) from exc
    return result.rowcount or 0
