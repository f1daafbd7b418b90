# Overview: Settlement of deficits by payroll deduction and the monthly capacity report.

"""
Payroll Settlement

WHY: A worker who cannot repay in cash has the balance deducted from the
month's salary. This bypasses the print/sign/archive workflow entirely.

DESIGN:
- PIN-gated (authorization_service.verify)
- The outstanding balance becomes one synthesized `payroll` ledger entry, so
  the remaining balance stays derived from the ledger
- The record remembers the payroll period (YYYY-MM) it was deducted in
- Capacity (monthly salary minus the period's deductions) is advisory: an
  over-capacity settlement is logged, never blocked
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from uuid import uuid4

from ..models.deficits import (
    METHOD_PAYROLL,
    STATUS_PAID,
    WORKFLOW_RESET,
    DeficitRecord,
    PartialPayment,
)
from ..money import format_cents
from ..validation import ValidationError
from cashdesk.time_utils import month_key, today as utc_today, utcnow
from . import audit_service, authorization_service, settings_service
from .concurrency import settlement_guard
from .deficit_store import get_store


logger = logging.getLogger(__name__)

PERIOD_RE = re.compile(r"\d{4}-(0[1-9]|1[0-2])")


@dataclass
class PayrollCapacity:
    period: str
    monthly_salary_cents: int
    deductions_cents: int
    record_ids: list[int]

    @property
    def remaining_cents(self) -> int:
        return self.monthly_salary_cents - self.deductions_cents

    @property
    def over_capacity(self) -> bool:
        return self.remaining_cents < 0

    def to_dict(self) -> dict:
        return {
            "period": self.period,
            "monthly_salary_cents": self.monthly_salary_cents,
            "monthly_salary": format_cents(self.monthly_salary_cents),
            "deductions_cents": self.deductions_cents,
            "deductions": format_cents(self.deductions_cents),
            "remaining_cents": self.remaining_cents,
            "remaining": format_cents(self.remaining_cents),
            "over_capacity": self.over_capacity,
            "record_ids": list(self.record_ids),
        }


def validate_period(period: str) -> str:
    if not isinstance(period, str) or not PERIOD_RE.fullmatch(period):
        raise ValidationError("period must be formatted YYYY-MM")
    return period


def payroll_capacity(period: str | None = None, *, today: date | None = None) -> PayrollCapacity:
    """Salary left for `period` (default: current month) after payroll deductions."""
    period = validate_period(period) if period is not None else month_key(today or utc_today())
    settings = settings_service.get_settings()

    deducted = [
        r for r in get_store().list(status=STATUS_PAID)
        if r.paid_from_payroll and r.payroll_period == period
    ]
    return PayrollCapacity(
        period=period,
        monthly_salary_cents=settings.monthly_salary_cents,
        deductions_cents=sum(r.short_amount_cents for r in deducted),
        record_ids=sorted(r.id for r in deducted),
    )


def settle_via_payroll(
    record_id: int,
    pin: str | None,
    *,
    actor: str | None = None,
    now: datetime | None = None,
) -> DeficitRecord:
    """
    Settle a deficit by deducting its outstanding balance from payroll.

    Raises:
        NotFound: unknown record
        AuthorizationDenied: wrong PIN (nothing changes)
        ValidationError: record already paid
        WorkflowConflict: another action is running on this record
    """
    with settlement_guard().hold(record_id):
        store = get_store()
        record = store.get(record_id)
        authorization_service.verify(pin, action="payroll", record_id=record_id)

        if record.status == STATUS_PAID:
            raise ValidationError(f"Deficit {record_id} is already paid")

        when = now or utcnow()
        period = month_key(when)
        deducted_cents = record.remaining_balance_cents
        entry = PartialPayment(
            id=uuid4().hex,
            timestamp=when,
            amount_cents=deducted_cents,
            notes=f"Retenue sur salaire {period}",
            method=METHOD_PAYROLL,
            synthesized=True,
        )

        patch = dict(WORKFLOW_RESET)
        patch.update({
            "partial_payments": record.partial_payments + [entry],
            "status": STATUS_PAID,
            "paid_from_payroll": True,
            "payroll_period": period,
        })
        updated = store.update(record_id, patch)

        audit_service.record_event(
            "payroll.settled",
            record_id,
            actor=actor,
            payload={"period": period, "deducted_cents": deducted_cents},
        )

    capacity = payroll_capacity(period)
    if capacity.over_capacity:
        logger.warning(
            "Payroll deductions for %s exceed the monthly salary by %s",
            period, format_cents(-capacity.remaining_cents),
        )
    return updated
