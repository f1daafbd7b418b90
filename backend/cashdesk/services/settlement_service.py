# Overview: Print/sign/archive settlement workflow for deficits, plus PIN-gated cancellation.

"""
Settlement Workflow

WHY: Settling a deficit in person leaves a paper trail. Two receipt copies are
printed, the vendor signs, the manager counter-signs, and the manager copy is
archived. Every step is a separate operator action and is retryable on its own.

STAGES (derived from the record's workflow flags, never stored):
    idle -> printing -> vendor_sign -> manager_sign -> archiving -> archived

DESIGN PRINCIPLES:
- TRANSITIONS is the single source of truth for what may happen next
- Only this module writes workflow flags (payroll settlement resets them
  through WORKFLOW_RESET)
- A failure at one step never advances to the next
- Vendor copy failure leaves the record untouched; manager copy failure keeps
  the vendor copy and a retry prints the manager copy only
- One action per record at a time (settlement_guard)
- Cancellation is PIN-gated and works from any stage, including archived
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from uuid import uuid4

from ..models.deficits import (
    METHOD_CASH,
    STATUS_OVERDUE,
    STATUS_PAID,
    STATUS_PENDING,
    WORKFLOW_RESET,
    DeficitRecord,
    PartialPayment,
)
from ..validation import DeficitError, SinkUnavailable, WorkflowConflict
from cashdesk.time_utils import utcnow
from . import audit_service, authorization_service
from .concurrency import settlement_guard
from .deficit_store import get_store
from .receipt_service import COPY_LABELS, MANAGER_COPY, VENDOR_COPY, get_sink, next_receipt_number


logger = logging.getLogger(__name__)

ARCHIVE_PAYMENT_NOTE = "Règlement archivé"

# =============================================================================
# STAGES AND TRANSITIONS
# =============================================================================

STAGE_IDLE = "idle"
STAGE_PRINTING = "printing"
STAGE_VENDOR_SIGN = "vendor_sign"
STAGE_MANAGER_SIGN = "manager_sign"
STAGE_ARCHIVING = "archiving"
STAGE_ARCHIVED = "archived"

ACTION_PRINT_VENDOR_COPY = "print_vendor_copy"
ACTION_PRINT_MANAGER_COPY = "print_manager_copy"
ACTION_VENDOR_SIGNED = "vendor_signed"
ACTION_MANAGER_SIGNED = "manager_signed"
ACTION_ARCHIVE = "archive"

TRANSITIONS = {
    (STAGE_IDLE, ACTION_PRINT_VENDOR_COPY): STAGE_PRINTING,
    (STAGE_PRINTING, ACTION_PRINT_MANAGER_COPY): STAGE_VENDOR_SIGN,
    (STAGE_VENDOR_SIGN, ACTION_VENDOR_SIGNED): STAGE_MANAGER_SIGN,
    (STAGE_MANAGER_SIGN, ACTION_MANAGER_SIGNED): STAGE_ARCHIVING,
    (STAGE_ARCHIVING, ACTION_ARCHIVE): STAGE_ARCHIVED,
}


def workflow_stage(record: DeficitRecord) -> str:
    if record.receipt_copy_archived:
        return STAGE_ARCHIVED
    if record.manager_signed:
        return STAGE_ARCHIVING
    if record.vendor_signed:
        return STAGE_MANAGER_SIGN
    if record.copies_printed >= 2:
        return STAGE_VENDOR_SIGN
    if record.copies_printed == 1:
        return STAGE_PRINTING
    return STAGE_IDLE


def _advance(record: DeficitRecord, action: str) -> str:
    """Return the stage `action` leads to, or raise WorkflowConflict."""
    stage = workflow_stage(record)
    target = TRANSITIONS.get((stage, action))
    if target is None:
        raise WorkflowConflict(
            f"Cannot perform '{action}' on deficit {record.id} at stage '{stage}'"
        )
    return target


def _produce_copy(record: DeficitRecord, copy_number: int, receipt_number: str) -> None:
    label = COPY_LABELS[copy_number]
    try:
        get_sink().produce(record, copy_number, receipt_number)
    except DeficitError:
        logger.warning("Document sink refused %s for deficit %d", label, record.id)
        raise
    except Exception as exc:
        logger.exception("Document sink failed on %s for deficit %d", label, record.id)
        raise SinkUnavailable(f"Could not produce {label.lower()}: {exc}") from exc


# =============================================================================
# WORKFLOW ACTIONS
# =============================================================================

def print_receipts(
    record_id: int,
    *,
    manager_name: str | None = None,
    actor: str | None = None,
    now: datetime | None = None,
) -> DeficitRecord:
    """
    Print the vendor copy then the manager copy of the settlement receipt.

    From `idle` both copies are printed; from `printing` (manager copy failed
    earlier) only the manager copy is.

    Raises:
        NotFound: unknown record
        WorkflowConflict: wrong stage, record already paid, or another action
            is running on this record
        SinkUnavailable: a copy could not be produced
    """
    with settlement_guard().hold(record_id):
        store = get_store()
        record = store.get(record_id)

        if workflow_stage(record) == STAGE_IDLE:
            _advance(record, ACTION_PRINT_VENDOR_COPY)
            if record.status == STATUS_PAID:
                raise WorkflowConflict(f"Deficit {record_id} is already settled")

            receipt_number = next_receipt_number(now=now)
            signer = manager_name or record.manager_name
            preview = replace(record, receipt_number=receipt_number, manager_name=signer)
            _produce_copy(preview, VENDOR_COPY, receipt_number)

            record = store.update(record_id, {
                "receipt_printed": True,
                "receipt_number": receipt_number,
                "print_date": now or utcnow(),
                "copies_printed": 1,
                "manager_name": signer,
            })
            audit_service.record_event(
                "settlement.copy_printed",
                record_id,
                actor=actor or signer,
                payload={"copy": VENDOR_COPY, "receipt_number": receipt_number},
            )

        _advance(record, ACTION_PRINT_MANAGER_COPY)
        _produce_copy(record, MANAGER_COPY, record.receipt_number)

        record = store.update(record_id, {"copies_printed": 2})
        audit_service.record_event(
            "settlement.copy_printed",
            record_id,
            actor=actor or record.manager_name,
            payload={"copy": MANAGER_COPY, "receipt_number": record.receipt_number},
        )
        return record


def confirm_vendor_signed(record_id: int, *, actor: str | None = None) -> DeficitRecord:
    with settlement_guard().hold(record_id):
        store = get_store()
        _advance(store.get(record_id), ACTION_VENDOR_SIGNED)
        record = store.update(record_id, {"vendor_signed": True})
        audit_service.record_event("settlement.vendor_signed", record_id, actor=actor)
        return record


def confirm_manager_signed(
    record_id: int,
    *,
    witness_name: str | None = None,
    actor: str | None = None,
) -> DeficitRecord:
    with settlement_guard().hold(record_id):
        store = get_store()
        _advance(store.get(record_id), ACTION_MANAGER_SIGNED)

        patch = {"manager_signed": True}
        if witness_name:
            patch["witness_name"] = witness_name
        record = store.update(record_id, patch)
        audit_service.record_event(
            "settlement.manager_signed",
            record_id,
            actor=actor or record.manager_name,
            note=witness_name,
        )
        return record


def confirm_archive(
    record_id: int,
    *,
    actor: str | None = None,
    now: datetime | None = None,
) -> DeficitRecord:
    """
    Archive the signed manager copy and mark the deficit paid.

    Any outstanding balance is covered by one synthesized ledger entry, so a
    record settled through this workflow alone ends with exactly one entry
    for the full shortfall.
    """
    with settlement_guard().hold(record_id):
        store = get_store()
        record = store.get(record_id)
        _advance(record, ACTION_ARCHIVE)

        payments = list(record.partial_payments)
        settled_cents = record.remaining_balance_cents
        if settled_cents > 0:
            payments.append(PartialPayment(
                id=uuid4().hex,
                timestamp=now or utcnow(),
                amount_cents=settled_cents,
                notes=ARCHIVE_PAYMENT_NOTE,
                method=METHOD_CASH,
                synthesized=True,
            ))

        record = store.update(record_id, {
            "partial_payments": payments,
            "receipt_copy_archived": True,
            "status": STATUS_PAID,
        })
        audit_service.record_event(
            "settlement.archived",
            record_id,
            actor=actor or record.manager_name,
            payload={"receipt_number": record.receipt_number, "settled_cents": settled_cents},
        )
        return record


# =============================================================================
# CANCELLATION
# =============================================================================

def cancel(
    record_id: int,
    pin: str | None,
    *,
    reason: str | None = None,
    actor: str | None = None,
) -> DeficitRecord:
    """
    Undo a settlement in any stage (PIN-gated).

    Clears the workflow flags and the payroll marker, drops the entries the
    engine synthesized (archive settlement, payroll deduction) and puts the
    record back to overdue or pending. Operator payments are kept; if they
    alone cover the deficit the record stays paid.

    Raises:
        NotFound: unknown record
        AuthorizationDenied: wrong PIN (nothing changes)
        WorkflowConflict: another action is running on this record
    """
    with settlement_guard().hold(record_id):
        store = get_store()
        record = store.get(record_id)
        authorization_service.verify(pin, action="cancel", record_id=record_id)

        payments = [p for p in record.partial_payments if not p.synthesized]
        manual_paid = sum(p.amount_cents for p in payments)
        if manual_paid >= record.short_amount_cents:
            status = STATUS_PAID
        elif record.was_overdue:
            status = STATUS_OVERDUE
        else:
            status = STATUS_PENDING

        reason = (reason or "").strip() or None
        patch = dict(WORKFLOW_RESET)
        patch.update({
            "partial_payments": payments,
            "status": status,
            "paid_from_payroll": False,
            "payroll_period": None,
            "cancellation_reason": reason,
        })
        previous_stage = workflow_stage(record)
        updated = store.update(record_id, patch)

        audit_service.record_event(
            "settlement.cancelled",
            record_id,
            actor=actor,
            note=reason,
            payload={
                "previous_stage": previous_stage,
                "previous_status": record.status,
                "was_paid_from_payroll": record.paid_from_payroll,
                "status": status,
            },
        )
        logger.info("Settlement of deficit %d cancelled (was %s)", record_id, previous_stage)
        return updated
