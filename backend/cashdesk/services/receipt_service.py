# Overview: Receipt numbering and the document sink used by the settlement workflow.

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Protocol

from flask import current_app

from ..models.deficits import DeficitRecord
from ..money import format_cents
from ..validation import SinkUnavailable
from cashdesk.time_utils import to_utc_z, utcnow
from .kv_store import get_kv_store


logger = logging.getLogger(__name__)

RECEIPT_PREFIX = "REC"
VENDOR_COPY = 1
MANAGER_COPY = 2
COPY_LABELS = {
    VENDOR_COPY: "COPIE VENDEUR",
    MANAGER_COPY: "COPIE GERANT",
}


class DocumentSink(Protocol):
    def produce(self, record: DeficitRecord, copy_number: int, receipt_number: str) -> None:
        """Produce one copy of the settlement receipt, or raise SinkUnavailable."""


def next_receipt_number(*, now: datetime | None = None) -> str:
    """
    Allocate the next receipt number for the day: REC-YYYYMMDD-NNN.

    The per-day counter lives in the durable store; numbers consumed by a
    failed print are not handed out again.
    """
    kv = get_kv_store()
    key = current_app.config["RECEIPT_SEQUENCE_KEY"]
    day = (now or utcnow()).strftime("%Y%m%d")

    next_num = 1
    raw = kv.get(key)
    if raw is not None:
        try:
            state = json.loads(raw.decode("utf-8"))
            if state.get("day") == day:
                next_num = int(state["next"])
        except (ValueError, KeyError, TypeError, AttributeError):
            logger.warning("Resetting unreadable receipt sequence under %s", key)

    kv.put(key, json.dumps({"day": day, "next": next_num + 1}).encode("utf-8"))
    return f"{RECEIPT_PREFIX}-{day}-{next_num:03d}"


def render_receipt(record: DeficitRecord, copy_number: int, receipt_number: str) -> str:
    lines = [
        "REÇU DE RÈGLEMENT DE DÉFICIT",
        COPY_LABELS.get(copy_number, f"COPIE {copy_number}"),
        "-" * 40,
        f"Reçu n°:        {receipt_number}",
        f"Déficit n°:     {record.id}",
        f"Date du quart:  {record.date.isoformat()}",
        f"Quart:          {record.shift}",
        f"Ventes totales: {format_cents(record.total_sales_cents)}",
        f"Argent rendu:   {format_cents(record.money_given_cents)}",
        f"Déficit:        {format_cents(record.short_amount_cents)}",
        f"Déjà payé:      {format_cents(record.total_paid_cents)}",
        f"Solde:          {format_cents(record.remaining_balance_cents)}",
        f"Employé:        {record.employee_id or '-'}",
        f"Caisse:         {record.till_number or '-'}",
        f"Gérant:         {record.manager_name or '-'}",
        f"Imprimé le:     {to_utc_z(utcnow())}",
        "-" * 40,
        "Signature vendeur: ______________________",
        "",
        "Signature gérant:  ______________________",
        "",
    ]
    return "\n".join(lines)


class TextFileReceiptSink:
    """Writes each copy as <receipt_number>-copy<n>.txt under output_dir."""

    def __init__(self, output_dir: str | Path):
        self.output_dir = Path(output_dir)

    def produce(self, record: DeficitRecord, copy_number: int, receipt_number: str) -> None:
        path = self.output_dir / f"{receipt_number}-copy{copy_number}.txt"
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(render_receipt(record, copy_number, receipt_number), encoding="utf-8")
        except OSError as exc:
            raise SinkUnavailable(f"Receipt printer unavailable: {exc.strerror or exc}") from exc


def get_sink() -> DocumentSink:
    sink = current_app.extensions.get("document_sink")
    if sink is None:
        sink = TextFileReceiptSink(current_app.config["RECEIPT_OUTPUT_DIR"])
        current_app.extensions["document_sink"] = sink
    return sink
