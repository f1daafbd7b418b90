from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass

import bcrypt
from flask import current_app

from ..money import format_cents, to_cents
from ..validation import ValidationError
from . import audit_service
from .kv_store import get_kv_store


logger = logging.getLogger(__name__)

PIN_RE = re.compile(r"^\d{4}$")
MAX_GRACE_DAYS = 365


@dataclass
class EngineSettings:
    manager_pin_hash: str
    due_date_grace_days: int
    monthly_salary_cents: int

    def to_dict(self) -> dict:
        # The PIN hash never leaves the service
        return {
            "due_date_grace_days": self.due_date_grace_days,
            "monthly_salary_cents": self.monthly_salary_cents,
            "monthly_salary": format_cents(self.monthly_salary_cents),
            "manager_pin_set": bool(self.manager_pin_hash),
        }

    def to_storage(self) -> dict:
        return {
            "manager_pin_hash": self.manager_pin_hash,
            "due_date_grace_days": self.due_date_grace_days,
            "monthly_salary_cents": self.monthly_salary_cents,
        }


def _key() -> str:
    return current_app.config["SETTINGS_STORE_KEY"]


def validate_pin(pin) -> str:
    if not isinstance(pin, str) or not PIN_RE.match(pin):
        raise ValidationError("PIN must be exactly 4 digits")
    return pin


def hash_pin(pin: str) -> str:
    salt = bcrypt.gensalt(rounds=current_app.config["PIN_HASH_ROUNDS"])
    return bcrypt.hashpw(pin.encode("utf-8"), salt).decode("utf-8")


def pin_matches(pin: str, pin_hash: str) -> bool:
    try:
        return bcrypt.checkpw(pin.encode("utf-8"), pin_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        logger.error("Stored manager PIN hash is malformed")
        return False


def _validate_grace_days(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("due_date_grace_days must be an integer")
    if value < 0 or value > MAX_GRACE_DAYS:
        raise ValidationError(f"due_date_grace_days must be between 0 and {MAX_GRACE_DAYS}")
    return value


def _validate_salary(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("monthly_salary_cents must be an integer")
    if value < 0:
        raise ValidationError("monthly_salary_cents must be >= 0")
    return value


def _defaults() -> EngineSettings:
    cfg = current_app.config
    return EngineSettings(
        manager_pin_hash=hash_pin(validate_pin(str(cfg["MANAGER_PIN"]))),
        due_date_grace_days=_validate_grace_days(int(cfg["DUE_DATE_GRACE_DAYS"])),
        monthly_salary_cents=_validate_salary(to_cents(cfg["MONTHLY_SALARY"], field="MONTHLY_SALARY")),
    )


def _save(settings: EngineSettings) -> None:
    get_kv_store().put(_key(), json.dumps(settings.to_storage()).encode("utf-8"))


def get_settings() -> EngineSettings:
    """
    Load engine settings from the durable store.

    Missing or unreadable settings fall back to the configured defaults,
    which are then saved so the PIN is hashed only once.
    """
    raw = get_kv_store().get(_key())
    if raw is not None:
        try:
            data = json.loads(raw.decode("utf-8"))
            return EngineSettings(
                manager_pin_hash=str(data["manager_pin_hash"]),
                due_date_grace_days=_validate_grace_days(data["due_date_grace_days"]),
                monthly_salary_cents=_validate_salary(data["monthly_salary_cents"]),
            )
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.warning("Discarding unreadable engine settings under %s: %s", _key(), exc)

    settings = _defaults()
    _save(settings)
    return settings


def update_settings(
    *,
    due_date_grace_days: int | None = None,
    monthly_salary_cents: int | None = None,
    actor: str | None = None,
) -> EngineSettings:
    settings = get_settings()
    changes = {}

    if due_date_grace_days is not None:
        settings.due_date_grace_days = _validate_grace_days(due_date_grace_days)
        changes["due_date_grace_days"] = settings.due_date_grace_days
    if monthly_salary_cents is not None:
        settings.monthly_salary_cents = _validate_salary(monthly_salary_cents)
        changes["monthly_salary_cents"] = settings.monthly_salary_cents

    if changes:
        _save(settings)
        audit_service.record_event("settings.updated", actor=actor, payload=changes)
    return settings


def set_manager_pin(new_pin: str) -> EngineSettings:
    """
    Replace the manager PIN. Callers must have verified the current PIN
    (see authorization_service.change_pin).
    """
    settings = get_settings()
    settings.manager_pin_hash = hash_pin(validate_pin(new_pin))
    _save(settings)
    return settings
