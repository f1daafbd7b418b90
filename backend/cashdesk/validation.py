from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from cashdesk.money import to_cents
from cashdesk.time_utils import parse_iso_date


class DeficitError(Exception):
    """Base class for every error the engine reports to its callers."""

    code = "error"
    http_status = 400


class ValidationError(DeficitError, ValueError):
    """400-level input problem. Raised before any mutation."""

    code = "validation_error"
    http_status = 400


class AuthorizationDenied(DeficitError):
    """Manager PIN mismatch. Retryable; nothing was changed."""

    code = "authorization_denied"
    http_status = 403


class NotFound(DeficitError, LookupError):
    code = "not_found"
    http_status = 404


class WorkflowConflict(DeficitError):
    """409-level settlement ordering problem (wrong stage, action in flight)."""

    code = "workflow_conflict"
    http_status = 409


class SinkUnavailable(DeficitError):
    """The document sink could not produce a receipt copy (printer, pop-up...)."""

    code = "sink_unavailable"
    http_status = 503


class InvariantViolation(DeficitError):
    """A write would break a record invariant. Indicates a programming error."""

    code = "invariant_violation"
    http_status = 500


FIELD_TEXT = "text"
FIELD_MONEY = "money"
FIELD_DATE = "date"
FIELD_CHOICE = "choice"
FIELD_INT = "int"


@dataclass(frozen=True)
class PayloadPolicy:
    """
    Central policy layer for JSON payloads:
    - fields: what clients are allowed to set and how each value is coerced
    - required_on_create: fields required for POST
    - choices: allowed values for FIELD_CHOICE fields
    - max_lengths: length caps for FIELD_TEXT fields
    """
    fields: dict[str, str]
    required_on_create: frozenset[str] = frozenset()
    choices: dict[str, tuple[str, ...]] = field(default_factory=dict)
    max_lengths: dict[str, int] = field(default_factory=dict)


def _coerce_value(name: str, kind: str, value, policy: PayloadPolicy):
    if kind == FIELD_MONEY:
        return to_cents(value, field=name)

    if kind == FIELD_DATE:
        if isinstance(value, date):
            return value
        if not isinstance(value, str):
            raise ValidationError(f"{name} must be an ISO-8601 date")
        try:
            parsed = parse_iso_date(value)
        except ValueError:
            raise ValidationError(f"{name} must be an ISO-8601 date")
        if parsed is None:
            raise ValidationError(f"{name} must be an ISO-8601 date")
        return parsed

    if kind == FIELD_INT:
        if isinstance(value, bool):
            raise ValidationError(f"{name} must be an integer")
        try:
            return int(str(value).strip())
        except ValueError:
            raise ValidationError(f"{name} must be an integer")

    if kind == FIELD_CHOICE:
        allowed = policy.choices.get(name, ())
        if value not in allowed:
            raise ValidationError(f"{name} must be one of: {', '.join(allowed)}")
        return value

    # Strings / Text
    text = str(value).strip()
    limit = policy.max_lengths.get(name)
    if limit and len(text) > limit:
        raise ValidationError(f"{name} exceeds max length {limit}")
    return text or None


def validate_payload(*, payload, policy: PayloadPolicy, partial: bool) -> dict:
    """
    Validates + normalizes incoming JSON against the policy.
    Returns a cleaned dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(
            f for f in policy.required_on_create
            if payload.get(f) in (None, "")
        )
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    for k in payload.keys():
        if k not in policy.fields:
            raise ValidationError(f"Field not allowed: {k}")

    cleaned: dict = {}
    for k, raw in payload.items():
        if raw is None:
            if k in policy.required_on_create:
                raise ValidationError(f"{k} cannot be null")
            cleaned[k] = None
            continue
        cleaned[k] = _coerce_value(k, policy.fields[k], raw, policy)

    return cleaned
