from flask import Blueprint, jsonify, request

from cashdesk.decorators import handle_errors
from cashdesk.services import audit_service, reporting_service


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/summary")
@handle_errors("Failed to build deficit summary")
def summary_report():
    return jsonify(reporting_service.summary()), 200


@reports_bp.get("/export")
@handle_errors("Failed to export deficits")
def export_report():
    """
    Flat rows for spreadsheet export.

    Query params: date_range (all, today, yesterday, last7days, last30days,
    thisMonth, lastMonth, custom), start, end (custom only), status.
    """
    date_range = request.args.get("date_range", reporting_service.RANGE_ALL)
    start = request.args.get("start")
    end = request.args.get("end")
    status = request.args.get("status") or None

    rows = reporting_service.export_rows(date_range, start=start, end=end, status=status)
    return jsonify({"date_range": date_range, "rows": rows, "count": len(rows)}), 200


@reports_bp.get("/events")
@handle_errors("Failed to list audit events")
def audit_events():
    record_id = request.args.get("record_id", type=int)
    event_type = request.args.get("event_type")
    limit = request.args.get("limit", 200, type=int)
    limit = max(1, min(limit, 1000))

    events = audit_service.list_events(record_id=record_id, event_type=event_type, limit=limit)
    return jsonify({"events": [e.to_dict() for e in events]}), 200
