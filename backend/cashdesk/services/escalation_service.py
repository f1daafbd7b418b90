# Overview: Periodic promotion of pending deficits past their due date.

"""
Escalation Scheduler

WHY: A deficit not repaid within its grace period becomes overdue. The
overdue mark is sticky (was_overdue) so a later cancellation restores it.

DESIGN:
- Runs once per day from cron (`flask deficits escalate`), or on demand
- Idempotent: only `pending` records are examined, and a promoted record is
  no longer pending, so a second run changes nothing
- Touches nothing but the store (and the audit trail)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date

from ..models.deficits import STATUS_OVERDUE, STATUS_PENDING
from cashdesk.time_utils import days_past, today as utc_today
from . import audit_service
from .deficit_store import get_store


logger = logging.getLogger(__name__)


@dataclass
class EscalationResult:
    as_of: date
    scanned: int = 0
    promoted: list[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "as_of": self.as_of.isoformat(),
            "scanned": self.scanned,
            "promoted": list(self.promoted),
        }


def run_escalation(*, today: date | None = None) -> EscalationResult:
    """Promote every pending deficit whose due date has passed to overdue."""
    as_of = today or utc_today()
    store = get_store()
    result = EscalationResult(as_of=as_of)

    for record in store.list(status=STATUS_PENDING):
        result.scanned += 1
        overdue_days = days_past(record.due_date, as_of)
        if overdue_days <= 0:
            continue

        store.update(record.id, {
            "status": STATUS_OVERDUE,
            "was_overdue": True,
            "days_overdue": overdue_days,
        })
        result.promoted.append(record.id)
        audit_service.record_event(
            "deficit.escalated",
            record.id,
            note=f"{overdue_days} day(s) past due date {record.due_date.isoformat()}",
            payload={"days_overdue": overdue_days},
        )

    logger.info(
        "Escalation as of %s: %d pending scanned, %d promoted",
        as_of.isoformat(), result.scanned, len(result.promoted),
    )
    return result
