"""
Settlement workflow tests.

Verifies:
- The full print/sign/archive run settles a fresh deficit
- A failed vendor copy leaves the record untouched
- A failed manager copy keeps the vendor copy and is resumable
- Out-of-order actions are rejected
- One action per record at a time
"""

import logging
from datetime import datetime
from pathlib import Path

import pytest

from cashdesk.services import audit_service, ledger_service, settlement_service
from cashdesk.services.concurrency import settlement_guard
from cashdesk.services.deficit_store import get_store
from cashdesk.services.receipt_service import TextFileReceiptSink
from cashdesk.validation import SinkUnavailable, WorkflowConflict


PRINTED_AT = datetime(2026, 10, 19, 8, 30)


def _settle(record_id):
    settlement_service.print_receipts(record_id, manager_name="Mme Kone", now=PRINTED_AT)
    settlement_service.confirm_vendor_signed(record_id)
    settlement_service.confirm_manager_signed(record_id, witness_name="M. Diallo")
    return settlement_service.confirm_archive(record_id)


class TestFullRun:
    def test_fresh_record_is_settled_step_by_step(self, make_deficit, sink):
        record = make_deficit("5000.00", "2800.00")
        assert record.short_amount_cents == 2200_00
        assert settlement_service.workflow_stage(record) == "idle"

        printed = settlement_service.print_receipts(record.id, manager_name="Mme Kone", now=PRINTED_AT)
        assert printed.copies_printed == 2
        assert printed.receipt_printed is True
        assert printed.receipt_number == "REC-20261019-001"
        assert printed.print_date == PRINTED_AT
        assert printed.manager_name == "Mme Kone"
        assert sink.produced == [
            (record.id, 1, "REC-20261019-001"),
            (record.id, 2, "REC-20261019-001"),
        ]
        assert settlement_service.workflow_stage(printed) == "vendor_sign"

        signed = settlement_service.confirm_vendor_signed(record.id)
        assert signed.vendor_signed is True
        assert settlement_service.workflow_stage(signed) == "manager_sign"

        countersigned = settlement_service.confirm_manager_signed(record.id, witness_name="M. Diallo")
        assert countersigned.manager_signed is True
        assert countersigned.witness_name == "M. Diallo"
        assert settlement_service.workflow_stage(countersigned) == "archiving"

        archived = settlement_service.confirm_archive(record.id)
        assert archived.receipt_copy_archived is True
        assert archived.status == "paid"
        assert archived.remaining_balance_cents == 0
        assert len(archived.partial_payments) == 1
        assert archived.partial_payments[0].amount_cents == 2200_00
        assert archived.partial_payments[0].synthesized is True
        assert settlement_service.workflow_stage(archived) == "archived"

    def test_archive_covers_only_the_outstanding_balance(self, make_deficit, sink):
        record = make_deficit("5000.00", "2800.00")
        ledger_service.apply_payment(record.id, 700_00)

        archived = _settle(record.id)
        assert [p.amount_cents for p in archived.partial_payments] == [700_00, 1500_00]
        assert [p.synthesized for p in archived.partial_payments] == [False, True]

    def test_each_step_is_audited(self, make_deficit, sink):
        record = make_deficit("5000.00", "2800.00")
        _settle(record.id)

        types = [e.event_type for e in audit_service.list_events(record_id=record.id)]
        assert types.count("settlement.copy_printed") == 2
        for event_type in ("settlement.vendor_signed", "settlement.manager_signed", "settlement.archived"):
            assert event_type in types

    def test_receipt_numbers_follow_a_daily_counter(self, make_deficit, sink):
        first = make_deficit("5000.00", "2800.00")
        second = make_deficit("5000.00", "2800.00")

        a = settlement_service.print_receipts(first.id, now=PRINTED_AT)
        b = settlement_service.print_receipts(second.id, now=PRINTED_AT)
        assert a.receipt_number == "REC-20261019-001"
        assert b.receipt_number == "REC-20261019-002"


class TestSinkFailures:
    def test_vendor_copy_failure_leaves_record_unchanged(self, make_deficit, sink):
        record = make_deficit("5000.00", "2800.00")
        sink.fail_copies = {1}

        with pytest.raises(SinkUnavailable):
            settlement_service.print_receipts(record.id, manager_name="Mme Kone")

        current = get_store().get(record.id)
        assert current.to_dict() == record.to_dict()
        assert current.receipt_printed is False
        assert current.copies_printed == 0
        assert sink.produced == []

    def test_manager_copy_failure_keeps_vendor_copy_and_resumes(self, make_deficit, sink):
        record = make_deficit("5000.00", "2800.00")
        sink.fail_copies = {2}

        with pytest.raises(SinkUnavailable):
            settlement_service.print_receipts(record.id, now=PRINTED_AT)

        partial = get_store().get(record.id)
        assert partial.copies_printed == 1
        assert partial.receipt_printed is True
        assert partial.receipt_number == "REC-20261019-001"
        assert settlement_service.workflow_stage(partial) == "printing"

        sink.fail_copies = set()
        resumed = settlement_service.print_receipts(record.id, now=PRINTED_AT)

        assert resumed.copies_printed == 2
        assert resumed.receipt_number == "REC-20261019-001"
        assert sink.produced == [
            (record.id, 1, "REC-20261019-001"),
            (record.id, 2, "REC-20261019-001"),
        ]

    def test_unexpected_sink_error_is_reported_as_unavailable(self, app, make_deficit):
        class JammedSink:
            def produce(self, record, copy_number, receipt_number):
                raise RuntimeError("paper jam")

        app.extensions["document_sink"] = JammedSink()
        record = make_deficit("5000.00", "2800.00")

        with pytest.raises(SinkUnavailable, match="paper jam"):
            settlement_service.print_receipts(record.id)
        assert get_store().get(record.id).copies_printed == 0

    def test_text_file_sink_writes_both_copies(self, app, make_deficit):
        record = make_deficit("5000.00", "2800.00")
        printed = settlement_service.print_receipts(record.id, now=PRINTED_AT)

        out = Path(app.config["RECEIPT_OUTPUT_DIR"])
        vendor = out / f"{printed.receipt_number}-copy1.txt"
        manager = out / f"{printed.receipt_number}-copy2.txt"
        assert vendor.exists()
        assert manager.exists()
        text = vendor.read_text(encoding="utf-8")
        assert "COPIE VENDEUR" in text
        assert "2200.00" in text

    def test_text_file_sink_reports_unwritable_directory(self, tmp_path, make_deficit):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x")
        record = make_deficit("5000.00", "2800.00")

        with pytest.raises(SinkUnavailable):
            TextFileReceiptSink(blocker).produce(record, 1, "REC-20261019-001")


class TestOrdering:
    def test_signing_before_printing_is_rejected(self, make_deficit, sink):
        record = make_deficit("5000.00", "2800.00")

        with pytest.raises(WorkflowConflict):
            settlement_service.confirm_vendor_signed(record.id)
        with pytest.raises(WorkflowConflict):
            settlement_service.confirm_manager_signed(record.id)
        with pytest.raises(WorkflowConflict):
            settlement_service.confirm_archive(record.id)
        assert get_store().get(record.id).to_dict() == record.to_dict()

    def test_manager_cannot_sign_before_vendor(self, make_deficit, sink):
        record = make_deficit("5000.00", "2800.00")
        settlement_service.print_receipts(record.id)

        with pytest.raises(WorkflowConflict):
            settlement_service.confirm_manager_signed(record.id)
        current = get_store().get(record.id)
        assert current.manager_signed is False
        assert current.vendor_signed is False

    def test_archive_requires_manager_signature(self, make_deficit, sink):
        record = make_deficit("5000.00", "2800.00")
        settlement_service.print_receipts(record.id)
        settlement_service.confirm_vendor_signed(record.id)

        with pytest.raises(WorkflowConflict):
            settlement_service.confirm_archive(record.id)
        assert get_store().get(record.id).status == "pending"

    def test_printing_twice_is_rejected(self, make_deficit, sink):
        record = make_deficit("5000.00", "2800.00")
        settlement_service.print_receipts(record.id)

        with pytest.raises(WorkflowConflict):
            settlement_service.print_receipts(record.id)
        assert len(sink.produced) == 2

    def test_paid_record_cannot_be_printed(self, make_deficit, sink):
        record = make_deficit("5000.00", "2800.00")
        ledger_service.apply_payment(record.id, 2200_00)

        with pytest.raises(WorkflowConflict):
            settlement_service.print_receipts(record.id)
        assert sink.produced == []

    def test_action_in_flight_blocks_a_second_one(self, make_deficit, sink):
        record = make_deficit("5000.00", "2800.00")

        with settlement_guard().hold(record.id):
            with pytest.raises(WorkflowConflict):
                settlement_service.print_receipts(record.id)
        assert sink.produced == []

        printed = settlement_service.print_receipts(record.id)
        assert printed.copies_printed == 2


class TestAuditFailures:
    def test_failed_event_write_does_not_fail_the_step(self, make_deficit, sink, monkeypatch, caplog):
        record = make_deficit("5000.00", "2800.00")
        settlement_service.print_receipts(record.id)

        real_event = audit_service.DeficitEvent
        monkeypatch.setattr(
            audit_service, "DeficitEvent",
            lambda **fields: real_event(**{**fields, "event_type": None}),
        )
        with caplog.at_level(logging.ERROR):
            signed = settlement_service.confirm_vendor_signed(record.id)

        assert signed.vendor_signed is True
        assert "Failed to record settlement.vendor_signed" in caplog.text

        monkeypatch.undo()
        settlement_service.confirm_manager_signed(record.id)
        events = [e.event_type for e in audit_service.list_events(record_id=record.id)]
        assert "settlement.manager_signed" in events
        assert "settlement.vendor_signed" not in events
