# Overview: Retry helpers for durable writes and the in-flight guard for settlement actions.

from __future__ import annotations

import threading
import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import WorkflowConflict


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (SQLite "database is locked", deadlocks) and
    StaleDataError (optimistic locking conflicts).
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


class InFlightGuard:
    """
    Keys currently held by a running action.

    A settlement action on a record may wait on the document sink; a second
    action on the same record must not start meanwhile.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._held: set = set()

    def is_held(self, key) -> bool:
        with self._lock:
            return key in self._held

    @contextmanager
    def hold(self, key):
        with self._lock:
            if key in self._held:
                raise WorkflowConflict(f"Another settlement action is already running for deficit {key}")
            self._held.add(key)
        try:
            yield
        finally:
            with self._lock:
                self._held.discard(key)


def settlement_guard() -> InFlightGuard:
    """The application's guard for per-record settlement actions."""
    guard = current_app.extensions.get("settlement_guard")
    if guard is None:
        guard = InFlightGuard()
        current_app.extensions["settlement_guard"] = guard
    return guard
