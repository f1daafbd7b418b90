"""
DeficitRecordStore tests.

Verifies:
- Intake computes the shortfall and due date
- Ids are never reused, even across reloads
- Unreadable persisted data loads as an empty collection
- The commit point rejects writes that break an invariant
"""

import json
import logging
from datetime import date

import pytest
from sqlalchemy.exc import IntegrityError

from cashdesk.models import DeficitDraft
from cashdesk.services.deficit_store import DeficitRecordStore
from cashdesk.services.kv_store import MemoryKeyValueStore, SqlKeyValueStore
from cashdesk.validation import InvariantViolation, NotFound, ValidationError


KEY = "station_shorts_data"


def _draft(total=1_000_00, given=800_00, **extra):
    return DeficitDraft(date=date(2026, 10, 1), total_sales_cents=total, money_given_cents=given, **extra)


@pytest.fixture
def kv():
    return MemoryKeyValueStore()


@pytest.fixture
def store(kv):
    s = DeficitRecordStore(kv, key=KEY)
    s.load()
    return s


class TestCreate:
    def test_computes_short_amount_and_due_date(self, store):
        record = store.create(_draft(124352625, 123002625), grace_days=5)

        assert record.id == 1
        assert record.short_amount_cents == 1350000
        assert record.remaining_balance_cents == 1350000
        assert record.due_date == date(2026, 10, 6)
        assert record.status == "pending"
        assert record.original_status == "pending"
        assert record.notes == "Nouveau déficit"
        assert record.copies_printed == 0

    def test_zero_shortfall_rejected(self, store):
        with pytest.raises(ValidationError):
            store.create(_draft(500_00, 500_00), grace_days=5)
        with pytest.raises(ValidationError):
            store.create(_draft(500_00, 600_00), grace_days=5)
        assert len(store) == 0

    @pytest.mark.parametrize("draft", [
        DeficitDraft(date=None, total_sales_cents=100, money_given_cents=0),
        DeficitDraft(date=date(2026, 10, 1), total_sales_cents=0, money_given_cents=0),
        DeficitDraft(date=date(2026, 10, 1), total_sales_cents=100, money_given_cents=-1),
        DeficitDraft(date=date(2026, 10, 1), total_sales_cents=100, money_given_cents=0, shift="Midi"),
    ])
    def test_invalid_drafts_rejected(self, store, draft):
        with pytest.raises(ValidationError):
            store.create(draft, grace_days=5)
        assert len(store) == 0


class TestIdentity:
    def test_ids_never_reused_after_delete(self, store, kv):
        first = store.create(_draft(), grace_days=5)
        second = store.create(_draft(), grace_days=5)
        store.delete(second.id)

        third = store.create(_draft(), grace_days=5)
        assert third.id == 3

        reloaded = DeficitRecordStore(kv, key=KEY)
        assert reloaded.load() == 2
        store.delete(third.id)
        reloaded.load()
        assert reloaded.create(_draft(), grace_days=5).id == 4
        assert first.id == 1

    def test_get_unknown_raises_not_found(self, store):
        with pytest.raises(NotFound):
            store.get(42)
        with pytest.raises(NotFound):
            store.delete(42)
        with pytest.raises(NotFound):
            store.update(42, {"notes": "x"})

    def test_returned_records_are_copies(self, store):
        record = store.create(_draft(), grace_days=5)
        record.status = "paid"
        record.partial_payments.append(None)

        fresh = store.get(record.id)
        assert fresh.status == "pending"
        assert fresh.partial_payments == []

    def test_list_is_newest_first_and_filters(self, store):
        a = store.create(_draft(), grace_days=5)
        b = store.create(_draft(), grace_days=5)
        store.update(a.id, {"status": "overdue", "was_overdue": True, "days_overdue": 2})

        assert [r.id for r in store.list()] == [b.id, a.id]
        assert [r.id for r in store.list(status="overdue")] == [a.id]
        with pytest.raises(ValidationError):
            store.list(status="archived")


class TestPersistence:
    def test_round_trip_through_durable_store(self, store, kv):
        store.create(_draft(notes="caisse 2"), grace_days=5)

        payload = json.loads(kv.get(KEY).decode("utf-8"))
        assert payload["next_id"] == 2
        assert payload["records"][0]["notes"] == "caisse 2"

        reloaded = DeficitRecordStore(kv, key=KEY)
        assert reloaded.load() == 1
        assert reloaded.get(1).to_dict() == store.get(1).to_dict()

    @pytest.mark.parametrize("raw", [b"not json", b'{"records": [{"id": "x"}]}', b"[1, 2]"])
    def test_unreadable_data_loads_empty(self, raw, caplog):
        kv = MemoryKeyValueStore({KEY: raw})
        store = DeficitRecordStore(kv, key=KEY)

        with caplog.at_level(logging.WARNING):
            assert store.load() == 0
        assert len(store) == 0
        assert "unreadable" in caplog.text

    def test_failed_write_keeps_memory_state(self, caplog):
        class BrokenKV:
            def get(self, key):
                return None

            def put(self, key, value):
                raise OSError("disk full")

        store = DeficitRecordStore(BrokenKV(), key=KEY)
        with caplog.at_level(logging.ERROR):
            record = store.create(_draft(), grace_days=5)

        assert store.get(record.id).short_amount_cents == 200_00
        assert "Failed to persist" in caplog.text


class TestCommitPoint:
    def test_immutable_fields_rejected(self, store):
        record = store.create(_draft(), grace_days=5)
        for patch in ({"total_sales_cents": 1}, {"short_amount_cents": 1}, {"id": 9}, {"remaining_balance_cents": 0}):
            with pytest.raises(ValidationError):
                store.update(record.id, patch)
        assert store.get(record.id).to_dict() == record.to_dict()

    def test_paid_requires_zero_balance(self, store):
        record = store.create(_draft(), grace_days=5)
        with pytest.raises(InvariantViolation):
            store.update(record.id, {"status": "paid"})
        assert store.get(record.id).status == "pending"

    def test_manager_cannot_sign_before_vendor(self, store):
        record = store.create(_draft(), grace_days=5)
        with pytest.raises(InvariantViolation):
            store.update(record.id, {"manager_signed": True})
        assert store.get(record.id).manager_signed is False

    def test_printed_copies_need_receipt_number(self, store):
        record = store.create(_draft(), grace_days=5)
        with pytest.raises(InvariantViolation):
            store.update(record.id, {"copies_printed": 1})

    def test_was_overdue_is_sticky(self, store):
        record = store.create(_draft(), grace_days=5)
        store.update(record.id, {"status": "overdue", "was_overdue": True, "days_overdue": 1})
        with pytest.raises(InvariantViolation):
            store.update(record.id, {"was_overdue": False})
        assert store.get(record.id).was_overdue is True


class TestSqlKeyValueStore:
    def test_put_then_get(self, app):
        kv = SqlKeyValueStore()
        kv.put("k", b"one")
        kv.put("k", b"two")
        assert kv.get("k") == b"two"
        assert kv.get("missing") is None

    def test_failed_put_leaves_session_usable(self, app):
        kv = SqlKeyValueStore()
        with pytest.raises(IntegrityError):
            kv.put("broken", None)

        kv.put("k", b"ok")
        assert kv.get("k") == b"ok"
        assert kv.get("broken") is None
