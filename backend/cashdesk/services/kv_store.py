# Overview: Durable key-value store used to persist engine documents.

from __future__ import annotations

from typing import Protocol

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import KeyValueEntry
from cashdesk.time_utils import utcnow
from .concurrency import run_with_retry


class KeyValueStore(Protocol):
    def get(self, key: str) -> bytes | None: ...

    def put(self, key: str, value: bytes) -> None: ...


class SqlKeyValueStore:
    """One kv_entries row per key, committed on every put."""

    def get(self, key: str) -> bytes | None:
        row = db.session.query(KeyValueEntry).filter_by(key=key).first()
        if row is None:
            return None
        return bytes(row.value)

    def put(self, key: str, value: bytes) -> None:
        def _op():
            row = db.session.query(KeyValueEntry).filter_by(key=key).first()
            if row is None:
                db.session.add(KeyValueEntry(key=key, value=value))
            else:
                row.value = value
                row.updated_at = utcnow()
            db.session.commit()

        try:
            run_with_retry(_op)
        except SQLAlchemyError:
            db.session.rollback()
            raise


class MemoryKeyValueStore:
    """Process-local store; used by tests and one-off scripts."""

    def __init__(self, initial: dict[str, bytes] | None = None):
        self._data: dict[str, bytes] = dict(initial or {})

    def get(self, key: str) -> bytes | None:
        return self._data.get(key)

    def put(self, key: str, value: bytes) -> None:
        self._data[key] = bytes(value)


def get_kv_store() -> KeyValueStore:
    """The application's durable store (SQL-backed unless replaced)."""
    kv = current_app.extensions.get("kv_store")
    if kv is None:
        kv = SqlKeyValueStore()
        current_app.extensions["kv_store"] = kv
    return kv
