from flask import Blueprint, jsonify, request

from cashdesk.decorators import handle_errors
from cashdesk.services import payroll_service


payroll_bp = Blueprint("payroll", __name__, url_prefix="/api/payroll")


@payroll_bp.get("/capacity")
@handle_errors("Failed to compute payroll capacity")
def payroll_capacity_route():
    """Salary left for ?period=YYYY-MM (default: current month). Advisory only."""
    period = request.args.get("period") or None
    capacity = payroll_service.payroll_capacity(period)
    return jsonify(capacity.to_dict()), 200
