# Overview: Summary statistics and the flat export projection of deficit records.

from __future__ import annotations

from datetime import date, timedelta

from ..models.deficits import SHIFTS, STATUS_OVERDUE, STATUS_PENDING, VALID_STATUSES, DeficitRecord
from ..money import format_cents
from ..validation import ValidationError
from cashdesk.time_utils import parse_iso_date, previous_month_bounds, to_utc_z, today as utc_today
from .deficit_store import get_store


RECENT_LIMIT = 10

RANGE_ALL = "all"
RANGE_CUSTOM = "custom"
DATE_RANGES = (
    RANGE_ALL,
    "today",
    "yesterday",
    "last7days",
    "last30days",
    "thisMonth",
    "lastMonth",
    RANGE_CUSTOM,
)


class ReportError(ValidationError):
    """Raised when report parameters are invalid."""
    pass


def summary() -> dict:
    records = get_store().list()
    count = len(records)
    total_short = sum(r.short_amount_cents for r in records)

    by_shift = {shift: {"count": 0, "short_amount_cents": 0} for shift in SHIFTS}
    by_status = {status: 0 for status in VALID_STATUSES}
    for r in records:
        bucket = by_shift.setdefault(r.shift, {"count": 0, "short_amount_cents": 0})
        bucket["count"] += 1
        bucket["short_amount_cents"] += r.short_amount_cents
        by_status[r.status] = by_status.get(r.status, 0) + 1

    outstanding = sum(r.remaining_balance_cents for r in records)
    average = total_short // count if count else 0

    return {
        "count": count,
        "total_short_cents": total_short,
        "pending_short_cents": sum(r.short_amount_cents for r in records if r.status == STATUS_PENDING),
        "overdue_short_cents": sum(r.short_amount_cents for r in records if r.status == STATUS_OVERDUE),
        "outstanding_cents": outstanding,
        "outstanding": format_cents(outstanding),
        "average_short_cents": average,
        "by_shift": by_shift,
        "by_status": by_status,
        "recent": [r.id for r in records[:RECENT_LIMIT]],
    }


def resolve_date_range(
    date_range: str,
    *,
    start: date | str | None = None,
    end: date | str | None = None,
    today: date | None = None,
) -> tuple[date | None, date | None]:
    """Inclusive (first, last) shift dates for a named range; (None, None) for `all`."""
    as_of = today or utc_today()

    if date_range == RANGE_ALL:
        return None, None
    if date_range == "today":
        return as_of, as_of
    if date_range == "yesterday":
        day = as_of - timedelta(days=1)
        return day, day
    if date_range == "last7days":
        return as_of - timedelta(days=7), as_of
    if date_range == "last30days":
        return as_of - timedelta(days=30), as_of
    if date_range == "thisMonth":
        return as_of.replace(day=1), as_of
    if date_range == "lastMonth":
        return previous_month_bounds(as_of)
    if date_range == RANGE_CUSTOM:
        first = _as_date(start, "start")
        last = _as_date(end, "end")
        if first is None or last is None:
            raise ReportError("custom range requires start and end dates")
        if first > last:
            raise ReportError("start must be on or before end")
        return first, last

    raise ReportError(f"date_range must be one of: {', '.join(DATE_RANGES)}")


def _as_date(value, name: str) -> date | None:
    if value is None or isinstance(value, date):
        return value
    try:
        return parse_iso_date(value)
    except ValueError:
        raise ReportError(f"{name} must be an ISO-8601 date")


def export_row(record: DeficitRecord) -> dict:
    return {
        "id": record.id,
        "date": record.date.isoformat(),
        "due_date": record.due_date.isoformat(),
        "shift": record.shift,
        "total_sales": format_cents(record.total_sales_cents),
        "money_given": format_cents(record.money_given_cents),
        "short_amount": format_cents(record.short_amount_cents),
        "remaining_balance": format_cents(record.remaining_balance_cents),
        "status": record.status,
        "notes": record.notes,
        "receipt_number": record.receipt_number,
        "print_date": to_utc_z(record.print_date),
    }


def export_rows(
    date_range: str = RANGE_ALL,
    *,
    start: date | str | None = None,
    end: date | str | None = None,
    status: str | None = None,
    today: date | None = None,
) -> list[dict]:
    """Flat rows for an external spreadsheet writer, oldest shift first."""
    first, last = resolve_date_range(date_range, start=start, end=end, today=today)
    rows = [
        r for r in get_store().list(status=status)
        if (first is None or r.date >= first) and (last is None or r.date <= last)
    ]
    rows.sort(key=lambda r: (r.date, r.id))
    return [export_row(r) for r in rows]
