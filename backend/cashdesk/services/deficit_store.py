# Overview: In-memory deficit record collection with a single commit point and durable persistence.

"""
Deficit Record Store

WHY: Every service reads and writes deficits through one place, so no
caller can leave a record in a state that breaks its invariants.

DESIGN PRINCIPLES:
- Records are keyed by id; ids come from a monotonic counter persisted with
  the collection and are never reused, even after deletion
- Callers receive copies; stored records are never handed out
- Every write goes through _commit(), which recomputes derived fields,
  checks the invariants and then persists the whole collection
- A write that would break an invariant is rejected and nothing changes
- Unreadable persisted data loads as an empty collection (not fatal)
"""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import fields, replace

from flask import current_app

from ..models.deficits import (
    DEFAULT_DEFICIT_NOTE,
    PAYMENT_METHODS,
    SHIFTS,
    STATUS_PAID,
    STATUS_PENDING,
    VALID_STATUSES,
    DeficitDraft,
    DeficitRecord,
)
from ..validation import InvariantViolation, NotFound, ValidationError
from cashdesk.time_utils import add_days, utcnow
from .kv_store import KeyValueStore, get_kv_store


logger = logging.getLogger(__name__)

DEFAULT_STORE_KEY = "station_shorts_data"
STORAGE_VERSION = 1

IMMUTABLE_FIELDS = frozenset({
    "id",
    "date",
    "total_sales_cents",
    "money_given_cents",
    "short_amount_cents",
    "original_status",
    "created_at",
})
DERIVED_FIELDS = frozenset({"remaining_balance_cents"})
UPDATABLE_FIELDS = frozenset(
    f.name for f in fields(DeficitRecord)
) - IMMUTABLE_FIELDS - DERIVED_FIELDS


def invariant_violations(record: DeficitRecord, previous: DeficitRecord | None = None) -> list[str]:
    """
    Return a description of every invariant `record` breaks (empty if none).

    `previous` is the committed version of the same record, used for the
    transition rules (immutable facts, sticky was_overdue).
    """
    problems: list[str] = []

    if record.status not in VALID_STATUSES:
        problems.append(f"unknown status '{record.status}'")
    if record.short_amount_cents != max(0, record.total_sales_cents - record.money_given_cents):
        problems.append("short amount does not match sales minus money given")

    for p in record.partial_payments:
        if p.amount_cents <= 0:
            problems.append(f"payment {p.id} has a non-positive amount")
        if p.method not in PAYMENT_METHODS:
            problems.append(f"payment {p.id} has unknown method '{p.method}'")

    expected_balance = max(0, record.short_amount_cents - record.total_paid_cents)
    if record.remaining_balance_cents != expected_balance:
        problems.append("remaining balance is not derived from the payment ledger")

    if (record.status == STATUS_PAID) != (record.remaining_balance_cents == 0):
        problems.append("status 'paid' must coincide with a zero remaining balance")

    if record.copies_printed not in (0, 1, 2):
        problems.append("copies printed must be 0, 1 or 2")
    if record.copies_printed >= 1 and not (record.receipt_printed and record.receipt_number):
        problems.append("printed copies require a printed receipt with a number")
    if record.manager_signed and not record.vendor_signed:
        problems.append("manager cannot sign before the vendor")
    if record.receipt_copy_archived and not (record.manager_signed and record.status == STATUS_PAID):
        problems.append("archived receipt requires manager signature and paid status")

    if record.paid_from_payroll and record.status != STATUS_PAID:
        problems.append("payroll settlement requires paid status")

    if record.days_overdue < 0:
        problems.append("days overdue cannot be negative")

    if previous is not None:
        for name in IMMUTABLE_FIELDS:
            if getattr(record, name) != getattr(previous, name):
                problems.append(f"{name} is immutable")
        if previous.was_overdue and not record.was_overdue:
            problems.append("was_overdue cannot be cleared")

    return problems


class DeficitRecordStore:
    def __init__(self, kv: KeyValueStore, *, key: str = DEFAULT_STORE_KEY):
        self._kv = kv
        self._key = key
        self._records: dict[int, DeficitRecord] = {}
        self._next_id = 1

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> int:
        """
        Replace the in-memory collection with the persisted one.

        Returns the number of records loaded. Absent or unreadable data
        yields an empty collection.
        """
        self._records = {}
        self._next_id = 1

        raw = self._kv.get(self._key)
        if raw is None:
            return 0

        try:
            payload = json.loads(raw.decode("utf-8"))
            records = [DeficitRecord.from_dict(item) for item in payload["records"]]
            next_id = int(payload.get("next_id") or 1)
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.warning("Discarding unreadable deficit data under %s: %s", self._key, exc)
            return 0

        self._records = {r.id: r for r in records}
        highest = max(self._records, default=0)
        self._next_id = max(next_id, highest + 1)
        return len(self._records)

    def _persist(self) -> None:
        payload = {
            "version": STORAGE_VERSION,
            "next_id": self._next_id,
            "records": [r.to_dict() for r in sorted(self._records.values(), key=lambda r: r.id)],
        }
        try:
            self._kv.put(self._key, json.dumps(payload, ensure_ascii=False).encode("utf-8"))
        except Exception:
            # Fire-and-forget: memory stays authoritative, the next commit retries
            logger.exception("Failed to persist deficit records under %s", self._key)

    # ------------------------------------------------------------------
    # Commit point
    # ------------------------------------------------------------------

    def _commit(self, record: DeficitRecord, previous: DeficitRecord | None) -> DeficitRecord:
        record.remaining_balance_cents = max(0, record.short_amount_cents - record.total_paid_cents)

        problems = invariant_violations(record, previous)
        if problems:
            raise InvariantViolation(f"Deficit {record.id}: " + "; ".join(problems))

        self._records[record.id] = record
        self._persist()
        return copy.deepcopy(record)

    def _require(self, record_id: int) -> DeficitRecord:
        record = self._records.get(record_id)
        if record is None:
            raise NotFound(f"Deficit {record_id} not found")
        return record

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create(self, draft: DeficitDraft, *, grace_days: int, now=None) -> DeficitRecord:
        """
        Create a pending deficit from an intake draft.

        Raises:
            ValidationError: if the draft is incomplete or records no shortfall
        """
        if draft.date is None:
            raise ValidationError("date is required")
        if draft.total_sales_cents is None or draft.total_sales_cents <= 0:
            raise ValidationError("total_sales must be greater than 0")
        if draft.money_given_cents is None or draft.money_given_cents < 0:
            raise ValidationError("money_given must be 0 or more")
        if draft.shift not in SHIFTS:
            raise ValidationError(f"shift must be one of: {', '.join(SHIFTS)}")
        if grace_days < 0:
            raise ValidationError("grace period cannot be negative")

        short_amount = max(0, draft.total_sales_cents - draft.money_given_cents)
        if short_amount == 0:
            raise ValidationError("money_given covers total_sales; there is no deficit to record")

        record = DeficitRecord(
            id=self._next_id,
            date=draft.date,
            due_date=add_days(draft.date, grace_days),
            shift=draft.shift,
            total_sales_cents=draft.total_sales_cents,
            money_given_cents=draft.money_given_cents,
            short_amount_cents=short_amount,
            remaining_balance_cents=short_amount,
            status=STATUS_PENDING,
            original_status=STATUS_PENDING,
            notes=draft.notes or DEFAULT_DEFICIT_NOTE,
            employee_id=draft.employee_id,
            till_number=draft.till_number,
            manager_name=draft.manager_name,
            witness_name=draft.witness_name,
            created_at=now or utcnow(),
        )
        self._next_id += 1
        return self._commit(record, previous=None)

    def get(self, record_id: int) -> DeficitRecord:
        return copy.deepcopy(self._require(record_id))

    def update(self, record_id: int, patch: dict) -> DeficitRecord:
        """
        Apply `patch` (field name -> new value) to a record.

        Raises:
            NotFound: unknown record id
            ValidationError: patch touches immutable, derived or unknown fields
            InvariantViolation: the patched record would break an invariant
        """
        current = self._require(record_id)

        rejected = sorted(set(patch) - UPDATABLE_FIELDS)
        if rejected:
            raise ValidationError(f"Fields cannot be updated: {', '.join(rejected)}")

        candidate = replace(copy.deepcopy(current), **copy.deepcopy(patch))
        return self._commit(candidate, previous=current)

    def delete(self, record_id: int) -> None:
        self._require(record_id)
        del self._records[record_id]
        self._persist()

    def list(self, status: str | None = None) -> list[DeficitRecord]:
        """Records, newest first, optionally filtered by status."""
        if status is not None and status not in VALID_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(VALID_STATUSES)}")
        rows = [
            r for r in self._records.values()
            if status is None or r.status == status
        ]
        rows.sort(key=lambda r: r.id, reverse=True)
        return [copy.deepcopy(r) for r in rows]

    def __len__(self) -> int:
        return len(self._records)


def get_store() -> DeficitRecordStore:
    """The application's record store, loaded from the durable store on first use."""
    store = current_app.extensions.get("deficit_store")
    if store is None:
        store = DeficitRecordStore(get_kv_store(), key=current_app.config["DEFICIT_STORE_KEY"])
        loaded = store.load()
        logger.info("Loaded %d deficit records", loaded)
        current_app.extensions["deficit_store"] = store
    return store
