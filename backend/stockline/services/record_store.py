# Overview: Generic table-level query/mutate contract and its SQLAlchemy implementation.

"""
Record store contract (authoritative)

The stock, sales and offline-sync services never touch ORM sessions directly.
They talk to a RecordStore addressed by table name, exchanging plain dict
records, so the same services run against the local database, a remote
database URL, or a test double that injects failures.

Contract:
- get(table, filters)              -> record | None   (first match)
- list(table, filters)             -> [record]        (ordered by id)
- insert(table, data, upsert)      -> record
- update(table, id, patch, expect) -> record          (NotFoundError if missing)
- delete(table, filters)           -> deleted count    (0 is not an error)
- adjust(table, id, field, delta, floor) -> (before, after)

Every mutating call commits on its own. There is no multi-call transaction;
callers that touch several rows keep their own compensation log.

adjust() is the only way stock fields change. It is a locked read-modify-write
guarded by the model's version_id counter and retried on StaleDataError, so
two concurrent writers cannot lose each other's update.

Failures:
- Unknown table/column, SQLAlchemy errors -> RecordStoreError
- Missing row for update/adjust           -> NotFoundError
- update() expect mismatch                -> ConflictError (checked under the row lock)
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, inspect
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Department, Product, ProductVariant, Sale, SaleLine
from ..time_utils import parse_iso_datetime, to_utc_z
from .concurrency import lock_for_update, run_with_retry
from .errors import ConflictError, NotFoundError, RecordStoreError


TABLE_MODELS = {
    "departments": Department,
    "products": Product,
    "product_variants": ProductVariant,
    "sales": Sale,
    "sale_items": SaleLine,
}

# Managed by SQLAlchemy; payloads may carry them (e.g. a serialized record) but they are never written
_SERVER_MANAGED = {"version_id", "created_at", "updated_at"}


class RecordStore:
    """Interface implemented by every record store backend."""

    def get(self, table: str, filters: dict) -> dict | None:
        raise NotImplementedError

    def list(self, table: str, filters: dict | None = None) -> list[dict]:
        raise NotImplementedError

    def insert(self, table: str, data: dict, *, upsert: bool = False) -> dict:
        raise NotImplementedError

    def update(self, table: str, record_id: Any, patch: dict, *, expect: dict | None = None) -> dict:
        raise NotImplementedError

    def delete(self, table: str, filters: dict) -> int:
        raise NotImplementedError

    def adjust(self, table: str, record_id: Any, field: str, delta: float, *, floor: float | None = 0) -> tuple[float, float]:
        raise NotImplementedError


class SqlRecordStore(RecordStore):
    """RecordStore backed by the Flask-SQLAlchemy session."""

    def __init__(self, session=None):
        self._session = session

    @property
    def session(self):
        return self._session or db.session

    # -- helpers -----------------------------------------------------------

    def _model(self, table: str):
        model = TABLE_MODELS.get(table)
        if model is None:
            raise RecordStoreError(f"Unknown table: {table}", details={"table": table})
        return model

    def _columns(self, model) -> dict[str, Any]:
        return {c.key: c for c in inspect(model).columns}

    def _coerce(self, model, data: dict) -> dict:
        columns = self._columns(model)
        values = {}
        for key, value in (data or {}).items():
            if key in _SERVER_MANAGED:
                continue
            col = columns.get(key)
            if col is None:
                raise RecordStoreError(
                    f"Unknown column {key!r} for table {model.__tablename__}",
                    details={"table": model.__tablename__, "column": key},
                )
            if isinstance(value, str) and isinstance(col.type, DateTime):
                value = parse_iso_datetime(value)
            elif value is not None and isinstance(col.type, Boolean):
                value = bool(value)
            values[key] = value
        return values

    def _query(self, model, filters: dict | None):
        columns = self._columns(model)
        query = self.session.query(model)
        for key, value in (filters or {}).items():
            if key not in columns:
                raise RecordStoreError(
                    f"Unknown filter column {key!r} for table {model.__tablename__}",
                    details={"table": model.__tablename__, "column": key},
                )
            query = query.filter(getattr(model, key) == value)
        return query

    def _to_record(self, row) -> dict:
        record = {}
        for key in self._columns(type(row)):
            value = getattr(row, key)
            record[key] = value
        return record

    def _guard(self, func):
        try:
            return func()
        except SQLAlchemyError as exc:
            self.session.rollback()
            detail = str(exc).splitlines()[0] if str(exc) else exc.__class__.__name__
            raise RecordStoreError(f"Record store error: {detail}") from exc

    # -- reads -------------------------------------------------------------

    def get(self, table: str, filters: dict) -> dict | None:
        model = self._model(table)

        def _op():
            row = self._query(model, filters).order_by(model.id).first()
            return self._to_record(row) if row is not None else None

        return self._guard(_op)

    def list(self, table: str, filters: dict | None = None) -> list[dict]:
        model = self._model(table)

        def _op():
            return [self._to_record(row) for row in self._query(model, filters).order_by(model.id).all()]

        return self._guard(_op)

    # -- writes ------------------------------------------------------------

    def insert(self, table: str, data: dict, *, upsert: bool = False) -> dict:
        """
        Insert a record. With upsert=True a record whose id already exists is
        updated in place instead, which makes replaying the same insert safe.
        """
        model = self._model(table)
        values = self._coerce(model, data)

        def _op():
            row = None
            if upsert and values.get("id") is not None:
                row = self.session.get(model, values["id"])
            if row is None:
                row = model(**values)
                self.session.add(row)
            else:
                for key, value in values.items():
                    if key != "id":
                        setattr(row, key, value)
            self.session.commit()
            return self._to_record(row)

        return self._guard(lambda: run_with_retry(_op, session=self.session))

    def update(self, table: str, record_id: Any, patch: dict, *, expect: dict | None = None) -> dict:
        """
        Patch one row. With expect, the row's current values are compared under
        the lock first; a mismatch rolls back and raises ConflictError.
        """
        model = self._model(table)
        values = self._coerce(model, patch)
        values.pop("id", None)
        expected = self._coerce(model, expect) if expect else {}

        def _op():
            row = lock_for_update(self.session.query(model).filter_by(id=record_id)).first()
            if row is None:
                raise NotFoundError(f"{table} record {record_id} not found", details={"table": table, "id": record_id})
            current = {key: getattr(row, key) for key in expected}
            if current != expected:
                self.session.rollback()
                raise ConflictError(
                    f"{table} record {record_id} changed concurrently",
                    details={"table": table, "id": record_id, "expected": expected, "current": current},
                )
            for key, value in values.items():
                setattr(row, key, value)
            self.session.commit()
            return self._to_record(row)

        return self._guard(lambda: run_with_retry(_op, session=self.session))

    def delete(self, table: str, filters: dict) -> int:
        model = self._model(table)

        def _op():
            rows = self._query(model, filters).all()
            for row in rows:
                # session.delete (not query.delete) so ORM cascades run
                self.session.delete(row)
            self.session.commit()
            return len(rows)

        return self._guard(_op)

    def adjust(self, table: str, record_id: Any, field: str, delta: float, *, floor: float | None = 0) -> tuple[float, float]:
        """
        Add delta to a numeric field and return (before, after).

        The result is clamped at floor (None disables clamping), so after - before
        is the change actually applied, which may be smaller than delta.
        """
        model = self._model(table)
        if field not in self._columns(model):
            raise RecordStoreError(f"Unknown column {field!r} for table {table}", details={"table": table, "column": field})

        def _op():
            row = lock_for_update(self.session.query(model).filter_by(id=record_id)).first()
            if row is None:
                raise NotFoundError(f"{table} record {record_id} not found", details={"table": table, "id": record_id})
            before = getattr(row, field) or 0
            after = before + delta
            if floor is not None and after < floor:
                after = floor
            setattr(row, field, after)
            self.session.commit()
            return before, after

        return self._guard(lambda: run_with_retry(_op, session=self.session))


def serialize_record(record: dict | None) -> dict | None:
    """JSON-safe copy of a record (datetimes as ISO-8601 Z)."""
    if record is None:
        return None
    return {
        key: to_utc_z(value) if isinstance(value, datetime) else value
        for key, value in record.items()
    }
