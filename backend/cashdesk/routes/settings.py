from __future__ import annotations

from flask import Blueprint, jsonify, request

from ..decorators import handle_errors
from ..services import authorization_service, settings_service
from ..validation import FIELD_INT, FIELD_MONEY, FIELD_TEXT, PayloadPolicy, ValidationError, validate_payload


settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


UPDATE_POLICY = PayloadPolicy(
    fields={
        "pin": FIELD_TEXT,
        "due_date_grace_days": FIELD_INT,
        "monthly_salary": FIELD_MONEY,
    },
    required_on_create=frozenset({"pin"}),
)

PIN_POLICY = PayloadPolicy(
    fields={"current_pin": FIELD_TEXT, "new_pin": FIELD_TEXT},
    required_on_create=frozenset({"current_pin", "new_pin"}),
)


def _actor() -> str | None:
    return (request.headers.get("X-Operator") or "").strip() or None


@settings_bp.get("")
@handle_errors("Failed to load settings")
def get_settings_route():
    return jsonify({"settings": settings_service.get_settings().to_dict()}), 200


@settings_bp.patch("")
@handle_errors("Failed to update settings")
def update_settings_route():
    """
    Change the grace period or monthly salary. Requires the manager PIN.

    Request body:
    {
        "pin": "1234",
        "due_date_grace_days": 7,        (optional)
        "monthly_salary": "18000.00"     (optional)
    }
    """
    data = validate_payload(payload=request.get_json(silent=True), policy=UPDATE_POLICY, partial=False)
    authorization_service.verify(data.get("pin"), action="update_settings")

    if data.get("due_date_grace_days") is None and data.get("monthly_salary") is None:
        raise ValidationError("Nothing to update")

    settings = settings_service.update_settings(
        due_date_grace_days=data.get("due_date_grace_days"),
        monthly_salary_cents=data.get("monthly_salary"),
        actor=_actor(),
    )
    return jsonify({"settings": settings.to_dict()}), 200


@settings_bp.post("/pin")
@handle_errors("Failed to change manager PIN")
def change_pin_route():
    """Request body: {"current_pin": "1234", "new_pin": "4321"}"""
    data = validate_payload(payload=request.get_json(silent=True), policy=PIN_POLICY, partial=False)
    authorization_service.change_pin(data["current_pin"], data["new_pin"], actor=_actor())
    return jsonify({"changed": True}), 200
