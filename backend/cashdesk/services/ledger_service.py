# Overview: Partial payment ledger for deficits.

"""
Partial Payment Ledger

WHY: Workers repay deficits in instalments. Each instalment is appended to
the record's ledger and the remaining balance is derived from it.

DESIGN PRINCIPLES:
- Append-only for manual payments; amounts are positive integer cents
- remaining_balance is never set directly; the store derives it
- A manual payment supersedes a payroll deduction: the synthesized payroll
  entry is dropped and paid_from_payroll cleared
- Payments cannot exceed the outstanding balance
- No PIN required; this is the everyday adjustment path
"""

from __future__ import annotations

from datetime import datetime
from uuid import uuid4

from ..models.deficits import (
    DEFAULT_PAYMENT_NOTE,
    MANUAL_PAYMENT_METHODS,
    METHOD_CASH,
    METHOD_PAYROLL,
    STATUS_PAID,
    STATUS_PENDING,
    DeficitRecord,
    PartialPayment,
)
from ..money import format_cents
from ..validation import ValidationError
from cashdesk.time_utils import utcnow
from . import audit_service
from .deficit_store import get_store


def outstanding_cents(short_amount_cents: int, payments: list[PartialPayment]) -> int:
    return max(0, short_amount_cents - sum(p.amount_cents for p in payments))


def apply_payment(
    record_id: int,
    amount_cents: int,
    *,
    notes: str | None = None,
    method: str = METHOD_CASH,
    actor: str | None = None,
    now: datetime | None = None,
) -> DeficitRecord:
    """
    Apply a manual payment to a deficit.

    Args:
        record_id: Deficit being repaid
        amount_cents: Amount paid (in cents), must be > 0
        notes: Optional note (defaults to "Paiement partiel")
        method: cash, bank or mobile

    Returns:
        The updated record

    Raises:
        ValidationError: non-positive amount, unknown method, amount above
            the outstanding balance, or nothing left to pay
        NotFound: unknown record
    """
    if method not in MANUAL_PAYMENT_METHODS:
        raise ValidationError(f"method must be one of: {', '.join(MANUAL_PAYMENT_METHODS)}")
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
        raise ValidationError("Payment amount must be an integer number of cents")
    if amount_cents <= 0:
        raise ValidationError("Payment amount must be positive")

    store = get_store()
    record = store.get(record_id)

    # Manual cash supersedes a payroll deduction marker
    payments = [
        p for p in record.partial_payments
        if not (p.synthesized and p.method == METHOD_PAYROLL)
    ]
    outstanding = outstanding_cents(record.short_amount_cents, payments)
    if outstanding == 0:
        raise ValidationError(f"Deficit {record_id} is already settled")
    if amount_cents > outstanding:
        raise ValidationError(
            f"Payment cannot exceed the outstanding balance of {format_cents(outstanding)}"
        )

    entry = PartialPayment(
        id=uuid4().hex,
        timestamp=now or utcnow(),
        amount_cents=amount_cents,
        notes=notes or DEFAULT_PAYMENT_NOTE,
        method=method,
    )
    payments.append(entry)

    remaining = outstanding - amount_cents
    if remaining == 0:
        status = STATUS_PAID
    elif record.status == STATUS_PAID:
        # Re-opens a record that was settled by payroll deduction
        status = STATUS_PENDING
    else:
        status = record.status

    updated = store.update(record_id, {
        "partial_payments": payments,
        "status": status,
        "paid_from_payroll": False,
        "payroll_period": None,
    })

    audit_service.record_event(
        "payment.applied",
        record_id,
        actor=actor,
        note=entry.notes,
        payload={
            "payment_id": entry.id,
            "amount_cents": amount_cents,
            "method": method,
            "remaining_balance_cents": updated.remaining_balance_cents,
        },
    )
    return updated


def list_payments(record_id: int) -> list[PartialPayment]:
    return get_store().get(record_id).partial_payments


def get_payment_summary(record_id: int) -> dict:
    record = get_store().get(record_id)
    return {
        "record_id": record.id,
        "short_amount_cents": record.short_amount_cents,
        "total_paid_cents": record.total_paid_cents,
        "remaining_balance_cents": record.remaining_balance_cents,
        "status": record.status,
        "payment_count": len(record.partial_payments),
    }
