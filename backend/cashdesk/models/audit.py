from __future__ import annotations

import json

from ..extensions import db
from cashdesk.time_utils import to_utc_z


class DeficitEvent(db.Model):
    """
    Append-only audit trail for deficit engine actions.

    EVENT TYPES (event_type):
    - deficit.created / deficit.updated / deficit.deleted
    - deficit.escalated
    - payment.applied
    - settlement.copy_printed / settlement.vendor_signed /
      settlement.manager_signed / settlement.archived / settlement.cancelled
    - payroll.settled
    - auth.pin_denied / auth.pin_changed
    - settings.updated

    record_id is a plain integer (not a foreign key): records live in the
    key-value document, and events must outlive record deletion.
    """
    __tablename__ = "deficit_events"
    __table_args__ = (
        db.Index("ix_deficit_events_record_occurred", "record_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    event_type = db.Column(db.String(64), nullable=False, index=True)
    record_id = db.Column(db.Integer, nullable=True, index=True)
    actor = db.Column(db.String(128), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    # Optional structured metadata (keep small)
    note = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "record_id": self.record_id,
            "actor": self.actor,
            "occurred_at": to_utc_z(self.occurred_at),
            "note": self.note,
            "payload": json.loads(self.payload) if self.payload else None,
        }
