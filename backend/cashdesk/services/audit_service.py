# Overview: Append-only audit trail for deficit engine actions.

from __future__ import annotations

import json
import logging
from typing import Optional
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import DeficitEvent
"""
Audit trail invariants

- Append-only: no updates or deletes of existing events.
- No domain logic here; callers decide what happened.
- Events reference records by id only, so they survive record deletion.
- occurred_at is business time; defaults to the database clock.
- Events are written after the action they record is durable. A failed
  event write is logged and rolled back; it never undoes or fails the action.
"""

logger = logging.getLogger(__name__)


def record_event(
    event_type: str,
    record_id: int | None = None,
    *,
    actor: str | None = None,
    note: Optional[str] = None,
    payload: Optional[dict] = None,
    occurred_at: Optional[datetime] = None,
) -> DeficitEvent:
    ev = DeficitEvent(
        event_type=event_type,
        record_id=record_id,
        actor=actor,
        note=note[:255] if note else None,
        payload=json.dumps(payload, sort_keys=True, default=str) if payload else None,
        occurred_at=occurred_at,  # if None, db default applies
    )
    db.session.add(ev)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to record %s event for deficit %s", event_type, record_id)
    return ev


def list_events(
    *,
    record_id: int | None = None,
    event_type: str | None = None,
    limit: int = 200,
) -> list[DeficitEvent]:
    q = db.session.query(DeficitEvent)
    if record_id is not None:
        q = q.filter_by(record_id=record_id)
    if event_type:
        q = q.filter_by(event_type=event_type)
    q = q.order_by(DeficitEvent.occurred_at.desc(), DeficitEvent.id.desc())
    return q.limit(limit).all()
