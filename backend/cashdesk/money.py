# Overview: Conversion between decimal amounts and integer cents.

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

# 999,999,999.99 - keeps sums well inside SQLite/JSON integer range
MAX_AMOUNT_CENTS = 99_999_999_999

_CENT = Decimal("0.01")


def to_cents(value, *, field: str = "amount") -> int:
    """
    Convert a decimal amount ("1243526.25", 5000, 12.5) into integer cents.

    Rounds half-up to the cent. Booleans, blanks, NaN/Infinity and values
    outside +/-MAX_AMOUNT_CENTS are rejected.
    """
    from .validation import ValidationError

    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, str):
        value = value.strip().replace(",", "")
        if not value:
            raise ValidationError(f"{field} must be a number")
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number")

    try:
        cents = int((amount.quantize(_CENT, rounding=ROUND_HALF_UP) * 100).to_integral_value())
    except InvalidOperation:
        # too many digits to hold at cent precision
        raise ValidationError(f"{field} cannot exceed {format_cents(MAX_AMOUNT_CENTS)}")
    if abs(cents) > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} cannot exceed {format_cents(MAX_AMOUNT_CENTS)}")
    return cents


def format_cents(cents: int | None) -> str | None:
    """13500000 -> "135000.00" (no grouping; display formatting is the UI's job)."""
    if cents is None:
        return None
    sign = "-" if cents < 0 else ""
    whole, frac = divmod(abs(int(cents)), 100)
    return f"{sign}{whole}.{frac:02d}"
