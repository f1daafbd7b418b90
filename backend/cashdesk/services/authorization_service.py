# Overview: Manager PIN gate for payroll settlement and cancellation.

"""
Authorization Gate

WHY: Payroll deduction and settlement cancellation are sensitive, so both
require the manager PIN. The check lives here only; both workflows call it.

SECURITY NOTES:
- The PIN is stored as a bcrypt hash (see settings_service)
- Denied attempts never touch a deficit; they are written to the audit trail
- No lockout/backoff: retry policy is the caller's concern
"""

from __future__ import annotations

from ..validation import AuthorizationDenied
from . import audit_service, settings_service


def verify(entered_pin: str | None, *, action: str | None = None, record_id: int | None = None) -> None:
    """
    Check `entered_pin` against the configured manager PIN.

    Raises:
        AuthorizationDenied: PIN missing or wrong
    """
    settings = settings_service.get_settings()
    if isinstance(entered_pin, str) and entered_pin and settings_service.pin_matches(
        entered_pin, settings.manager_pin_hash
    ):
        return

    audit_service.record_event("auth.pin_denied", record_id, note=action)
    raise AuthorizationDenied("Invalid manager PIN")


def change_pin(current_pin: str | None, new_pin: str, *, actor: str | None = None) -> None:
    """Replace the manager PIN after checking the current one."""
    verify(current_pin, action="change_pin")
    settings_service.set_manager_pin(new_pin)
    audit_service.record_event("auth.pin_changed", actor=actor)
