# Overview: Flask API routes for deficit records, payments and settlement; parses input and returns JSON responses.

# backend/cashdesk/routes/deficits.py
"""
Deficit API Routes

WHY: The station front-end records shift shortfalls and drives their
settlement through these endpoints.

DESIGN:
- Intake and metadata corrections (CRUD)
- Partial payments (no PIN)
- Settlement workflow: print, vendor signed, manager signed, archive
- PIN-gated cancellation and payroll settlement
- Escalation tick for operators (cron uses `flask deficits escalate`)

SECURITY:
- No user sessions; the manager PIN is the only authorization
- The optional X-Operator header names the acting person in the audit trail
"""

from flask import Blueprint, request, jsonify

from ..decorators import handle_errors
from ..models.deficits import DEFAULT_SHIFT, MANUAL_PAYMENT_METHODS, METHOD_CASH, SHIFTS, DeficitDraft
from ..services import (
    deficit_service,
    escalation_service,
    ledger_service,
    payroll_service,
    settlement_service,
)
from ..validation import (
    FIELD_CHOICE,
    FIELD_DATE,
    FIELD_MONEY,
    FIELD_TEXT,
    PayloadPolicy,
    validate_payload,
)


deficits_bp = Blueprint("deficits", __name__, url_prefix="/api/deficits")


_PEOPLE_LIMITS = {
    "employee_id": 64,
    "till_number": 32,
    "manager_name": 120,
    "witness_name": 120,
}

CREATE_POLICY = PayloadPolicy(
    fields={
        "date": FIELD_DATE,
        "total_sales": FIELD_MONEY,
        "money_given": FIELD_MONEY,
        "shift": FIELD_CHOICE,
        "notes": FIELD_TEXT,
        "employee_id": FIELD_TEXT,
        "till_number": FIELD_TEXT,
        "manager_name": FIELD_TEXT,
        "witness_name": FIELD_TEXT,
    },
    required_on_create=frozenset({"date", "total_sales", "money_given"}),
    choices={"shift": SHIFTS},
    max_lengths={"notes": 500, **_PEOPLE_LIMITS},
)

UPDATE_POLICY = PayloadPolicy(
    fields={
        "shift": FIELD_CHOICE,
        "notes": FIELD_TEXT,
        "employee_id": FIELD_TEXT,
        "till_number": FIELD_TEXT,
        "manager_name": FIELD_TEXT,
        "witness_name": FIELD_TEXT,
    },
    choices={"shift": SHIFTS},
    max_lengths={"notes": 500, **_PEOPLE_LIMITS},
)

PAYMENT_POLICY = PayloadPolicy(
    fields={"amount": FIELD_MONEY, "notes": FIELD_TEXT, "method": FIELD_CHOICE},
    required_on_create=frozenset({"amount"}),
    choices={"method": MANUAL_PAYMENT_METHODS},
    max_lengths={"notes": 255},
)

PRINT_POLICY = PayloadPolicy(fields={"manager_name": FIELD_TEXT}, max_lengths=_PEOPLE_LIMITS)
MANAGER_SIGN_POLICY = PayloadPolicy(fields={"witness_name": FIELD_TEXT}, max_lengths=_PEOPLE_LIMITS)
CANCEL_POLICY = PayloadPolicy(
    fields={"pin": FIELD_TEXT, "reason": FIELD_TEXT},
    max_lengths={"reason": 255},
)
PAYROLL_POLICY = PayloadPolicy(fields={"pin": FIELD_TEXT})
ESCALATE_POLICY = PayloadPolicy(fields={"today": FIELD_DATE})


def _actor() -> str | None:
    return (request.headers.get("X-Operator") or "").strip() or None


def _payload(policy: PayloadPolicy, *, partial: bool = True) -> dict:
    return validate_payload(payload=request.get_json(silent=True), policy=policy, partial=partial)


def record_payload(record) -> dict:
    data = record.to_dict()
    data["workflow_stage"] = settlement_service.workflow_stage(record)
    return data


# =============================================================================
# INTAKE AND ADMINISTRATION
# =============================================================================

@deficits_bp.post("")
@handle_errors("Failed to create deficit")
def create_deficit_route():
    """
    Record a shift shortfall.

    Request body:
    {
        "date": "2026-10-19",
        "total_sales": "1243526.25",
        "money_given": "1230026.25",
        "shift": "Matin",            (optional, default Matin)
        "notes": "...",              (optional)
        "employee_id": "E-12",       (optional)
        "till_number": "3",          (optional)
        "manager_name": "...",       (optional)
        "witness_name": "..."        (optional)
    }

    Returns:
        201: Deficit created
        400: Invalid input or no shortfall
    """
    data = _payload(CREATE_POLICY, partial=False)
    draft = DeficitDraft(
        date=data["date"],
        total_sales_cents=data["total_sales"],
        money_given_cents=data["money_given"],
        shift=data.get("shift") or DEFAULT_SHIFT,
        notes=data.get("notes"),
        employee_id=data.get("employee_id"),
        till_number=data.get("till_number"),
        manager_name=data.get("manager_name"),
        witness_name=data.get("witness_name"),
    )
    record = deficit_service.create_deficit(draft, actor=_actor())
    return jsonify({"deficit": record_payload(record)}), 201


@deficits_bp.get("")
@handle_errors("Failed to list deficits")
def list_deficits_route():
    """Query params: status (pending, overdue, paid). Newest first."""
    status = request.args.get("status") or None
    records = deficit_service.list_deficits(status=status)
    return jsonify({
        "deficits": [record_payload(r) for r in records],
        "count": len(records),
    }), 200


@deficits_bp.get("/<int:record_id>")
@handle_errors("Failed to get deficit")
def get_deficit_route(record_id: int):
    record = deficit_service.get_deficit(record_id)
    return jsonify({"deficit": record_payload(record)}), 200


@deficits_bp.patch("/<int:record_id>")
@handle_errors("Failed to update deficit")
def update_deficit_route(record_id: int):
    changes = _payload(UPDATE_POLICY)
    record = deficit_service.update_deficit(record_id, changes, actor=_actor())
    return jsonify({"deficit": record_payload(record)}), 200


@deficits_bp.delete("/<int:record_id>")
@handle_errors("Failed to delete deficit")
def delete_deficit_route(record_id: int):
    deficit_service.delete_deficit(record_id, actor=_actor())
    return jsonify({"deleted": True, "id": record_id}), 200


# =============================================================================
# PARTIAL PAYMENTS
# =============================================================================

@deficits_bp.post("/<int:record_id>/payments")
@handle_errors("Failed to apply payment")
def apply_payment_route(record_id: int):
    """
    Apply a partial payment.

    Request body:
    {
        "amount": "5000",
        "notes": "...",      (optional, default "Paiement partiel")
        "method": "cash"     (optional: cash, bank, mobile)
    }
    """
    data = _payload(PAYMENT_POLICY, partial=False)
    record = ledger_service.apply_payment(
        record_id,
        data["amount"],
        notes=data.get("notes"),
        method=data.get("method") or METHOD_CASH,
        actor=_actor(),
    )
    return jsonify({
        "deficit": record_payload(record),
        "summary": ledger_service.get_payment_summary(record_id),
    }), 201


@deficits_bp.get("/<int:record_id>/payments")
@handle_errors("Failed to list payments")
def list_payments_route(record_id: int):
    payments = ledger_service.list_payments(record_id)
    return jsonify({
        "payments": [p.to_dict() for p in payments],
        "summary": ledger_service.get_payment_summary(record_id),
    }), 200


# =============================================================================
# SETTLEMENT WORKFLOW
# =============================================================================

@deficits_bp.post("/<int:record_id>/settlement/print")
@handle_errors("Failed to print settlement receipts")
def print_receipts_route(record_id: int):
    """
    Print the vendor and manager copies (or only the manager copy when
    resuming after a failed second copy).

    Returns:
        200: Both copies printed
        409: Wrong stage, already paid, or another action in flight
        503: Printer unavailable (see error for which copy)
    """
    data = _payload(PRINT_POLICY)
    record = settlement_service.print_receipts(
        record_id, manager_name=data.get("manager_name"), actor=_actor()
    )
    return jsonify({"deficit": record_payload(record)}), 200


@deficits_bp.post("/<int:record_id>/settlement/vendor-signed")
@handle_errors("Failed to confirm vendor signature")
def confirm_vendor_signed_route(record_id: int):
    record = settlement_service.confirm_vendor_signed(record_id, actor=_actor())
    return jsonify({"deficit": record_payload(record)}), 200


@deficits_bp.post("/<int:record_id>/settlement/manager-signed")
@handle_errors("Failed to confirm manager signature")
def confirm_manager_signed_route(record_id: int):
    data = _payload(MANAGER_SIGN_POLICY)
    record = settlement_service.confirm_manager_signed(
        record_id, witness_name=data.get("witness_name"), actor=_actor()
    )
    return jsonify({"deficit": record_payload(record)}), 200


@deficits_bp.post("/<int:record_id>/settlement/archive")
@handle_errors("Failed to archive settlement")
def confirm_archive_route(record_id: int):
    record = settlement_service.confirm_archive(record_id, actor=_actor())
    return jsonify({"deficit": record_payload(record)}), 200


@deficits_bp.post("/<int:record_id>/settlement/cancel")
@handle_errors("Failed to cancel settlement")
def cancel_settlement_route(record_id: int):
    """
    Cancel a settlement (any stage). Requires the manager PIN.

    Request body: {"pin": "1234", "reason": "..." (optional)}
    """
    data = _payload(CANCEL_POLICY)
    record = settlement_service.cancel(
        record_id, data.get("pin"), reason=data.get("reason"), actor=_actor()
    )
    return jsonify({"deficit": record_payload(record)}), 200


# =============================================================================
# PAYROLL AND ESCALATION
# =============================================================================

@deficits_bp.post("/<int:record_id>/payroll")
@handle_errors("Failed to settle via payroll")
def settle_via_payroll_route(record_id: int):
    """Request body: {"pin": "1234"}"""
    data = _payload(PAYROLL_POLICY)
    record = payroll_service.settle_via_payroll(record_id, data.get("pin"), actor=_actor())
    capacity = payroll_service.payroll_capacity(record.payroll_period)
    return jsonify({
        "deficit": record_payload(record),
        "capacity": capacity.to_dict(),
    }), 200


@deficits_bp.post("/escalate")
@handle_errors("Failed to run escalation")
def escalate_route():
    """Promote overdue pending deficits. Body (optional): {"today": "YYYY-MM-DD"}"""
    data = _payload(ESCALATE_POLICY)
    result = escalation_service.run_escalation(today=data.get("today"))
    return jsonify(result.to_dict()), 200
