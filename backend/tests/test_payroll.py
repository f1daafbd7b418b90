from datetime import date, datetime

import pytest

from cashdesk.services import audit_service, payroll_service, settlement_service, settings_service
from cashdesk.services.deficit_store import get_store
from cashdesk.validation import AuthorizationDenied, NotFound, ValidationError

from conftest import MANAGER_PIN, WRONG_PIN


OCTOBER = datetime(2026, 10, 19, 17, 0)


def test_wrong_pin_changes_nothing(make_deficit):
    record = make_deficit("1000.00", "400.00")

    with pytest.raises(AuthorizationDenied):
        payroll_service.settle_via_payroll(record.id, WRONG_PIN)

    assert get_store().get(record.id).to_dict() == record.to_dict()
    denied = audit_service.list_events(record_id=record.id, event_type="auth.pin_denied")
    assert len(denied) == 1
    assert denied[0].note == "payroll"


@pytest.mark.parametrize("pin", [None, "", "43210", 4321])
def test_missing_or_malformed_pin_is_denied(make_deficit, pin):
    record = make_deficit("1000.00", "400.00")
    with pytest.raises(AuthorizationDenied):
        payroll_service.settle_via_payroll(record.id, pin)


def test_settlement_marks_paid_and_resets_workflow(make_deficit, sink):
    record = make_deficit("1000.00", "400.00")
    settlement_service.print_receipts(record.id)
    settlement_service.confirm_vendor_signed(record.id)

    settled = payroll_service.settle_via_payroll(record.id, MANAGER_PIN, now=OCTOBER)

    assert settled.status == "paid"
    assert settled.remaining_balance_cents == 0
    assert settled.paid_from_payroll is True
    assert settled.payroll_period == "2026-10"
    assert settled.receipt_printed is False
    assert settled.receipt_number is None
    assert settled.print_date is None
    assert settled.vendor_signed is False
    assert settled.copies_printed == 0
    assert settlement_service.workflow_stage(settled) == "idle"

    entry = settled.partial_payments[-1]
    assert entry.method == "payroll"
    assert entry.synthesized is True
    assert entry.amount_cents == 600_00


def test_already_paid_is_rejected(make_deficit):
    record = make_deficit("1000.00", "400.00")
    payroll_service.settle_via_payroll(record.id, MANAGER_PIN)

    with pytest.raises(ValidationError):
        payroll_service.settle_via_payroll(record.id, MANAGER_PIN)


def test_unknown_record_is_reported_before_pin(app):
    with pytest.raises(NotFound):
        payroll_service.settle_via_payroll(999, WRONG_PIN)
    assert audit_service.list_events(event_type="auth.pin_denied") == []


class TestCapacity:
    def test_deductions_are_summed_for_the_period(self, make_deficit):
        a = make_deficit("1000.00", "400.00")
        b = make_deficit("3000.00", "1000.00")
        c = make_deficit("500.00", "0")
        payroll_service.settle_via_payroll(a.id, MANAGER_PIN, now=OCTOBER)
        payroll_service.settle_via_payroll(b.id, MANAGER_PIN, now=OCTOBER)
        payroll_service.settle_via_payroll(c.id, MANAGER_PIN, now=datetime(2026, 9, 30, 12, 0))

        capacity = payroll_service.payroll_capacity("2026-10")
        assert capacity.monthly_salary_cents == 15000_00
        assert capacity.deductions_cents == 2600_00
        assert capacity.remaining_cents == 12400_00
        assert capacity.over_capacity is False
        assert capacity.record_ids == [a.id, b.id]

        assert payroll_service.payroll_capacity("2026-09").deductions_cents == 500_00

    def test_defaults_to_current_month(self, make_deficit):
        record = make_deficit("1000.00", "400.00")
        payroll_service.settle_via_payroll(record.id, MANAGER_PIN, now=OCTOBER)

        capacity = payroll_service.payroll_capacity(today=date(2026, 10, 31))
        assert capacity.period == "2026-10"
        assert capacity.deductions_cents == 600_00

    def test_over_capacity_is_advisory(self, make_deficit):
        settings_service.update_settings(monthly_salary_cents=500_00)
        record = make_deficit("1000.00", "400.00")

        settled = payroll_service.settle_via_payroll(record.id, MANAGER_PIN, now=OCTOBER)
        assert settled.status == "paid"

        capacity = payroll_service.payroll_capacity("2026-10")
        assert capacity.remaining_cents == -100_00
        assert capacity.over_capacity is True
        assert capacity.to_dict()["remaining"] == "-100.00"

    @pytest.mark.parametrize("period", ["2026-13", "2026-1", "oct", "2026/10", "2026-10\n", " 2026-10"])
    def test_invalid_period_rejected(self, app, period):
        with pytest.raises(ValidationError):
            payroll_service.payroll_capacity(period)
