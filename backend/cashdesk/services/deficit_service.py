# Overview: Intake and administrative operations on deficit records.

from __future__ import annotations

from ..models.deficits import SHIFTS, DeficitDraft, DeficitRecord
from ..validation import ValidationError
from . import audit_service, settings_service
from .deficit_store import get_store


# Metadata an operator may correct after intake. Financial facts, ledger and
# workflow fields are owned by their services.
EDITABLE_FIELDS = frozenset({
    "notes",
    "shift",
    "employee_id",
    "till_number",
    "manager_name",
    "witness_name",
})


def create_deficit(draft: DeficitDraft, *, actor: str | None = None) -> DeficitRecord:
    """
    Record a new shift shortfall.

    The due date is the shift date plus the configured grace period.
    """
    settings = settings_service.get_settings()
    record = get_store().create(draft, grace_days=settings.due_date_grace_days)

    audit_service.record_event(
        "deficit.created",
        record.id,
        actor=actor or draft.manager_name,
        note=record.notes,
        payload={"short_amount_cents": record.short_amount_cents, "shift": record.shift},
    )
    return record


def get_deficit(record_id: int) -> DeficitRecord:
    return get_store().get(record_id)


def list_deficits(status: str | None = None) -> list[DeficitRecord]:
    return get_store().list(status=status)


def update_deficit(record_id: int, changes: dict, *, actor: str | None = None) -> DeficitRecord:
    """Correct intake metadata (notes, shift, people involved)."""
    rejected = sorted(set(changes) - EDITABLE_FIELDS)
    if rejected:
        raise ValidationError(f"Fields cannot be edited: {', '.join(rejected)}")
    if "shift" in changes and changes["shift"] not in SHIFTS:
        raise ValidationError(f"shift must be one of: {', '.join(SHIFTS)}")
    if not changes:
        return get_store().get(record_id)

    record = get_store().update(record_id, changes)
    audit_service.record_event("deficit.updated", record_id, actor=actor, payload=changes)
    return record


def delete_deficit(record_id: int, *, actor: str | None = None) -> None:
    """Administrative delete. No cascading effects beyond the store."""
    get_store().delete(record_id)
    audit_service.record_event("deficit.deleted", record_id, actor=actor)
