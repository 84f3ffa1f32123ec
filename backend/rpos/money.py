# Overview: Fixed-point currency helpers (integer cents).

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from .errors import ValidationError


# Percentages are whole percents: 10 means 10%
PERCENT_PER_UNIT = 100

# Upper bound for any single amount: 9,999,999.99
MAX_AMOUNT_CENTS = 999_999_999


def percentage_of(amount_cents: int, percent: int) -> int:
    """Return `percent`% of `amount_cents`, rounded half-up to whole cents."""
    raw = Decimal(amount_cents) * Decimal(percent) / Decimal(PERCENT_PER_UNIT)
    return int(raw.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


def format_cents(amount_cents: int, symbol: str = "S/") -> str:
    sign = "-" if amount_cents < 0 else ""
    units, cents = divmod(abs(amount_cents), 100)
    return f"{sign}{symbol} {units}.{cents:02d}"


def require_cents(value, field: str, *, allow_zero: bool = True) -> int:
    """
    Validate an amount given in cents.

    Rejects bools, floats and numeric strings with decimals so a caller
    cannot smuggle fractional cents through JSON.
    """
    if value is None:
        raise ValidationError(f"{field} is required")
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(f"{field} must be an integer amount in cents")
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped.lstrip("-").isdigit():
            raise ValidationError(f"{field} must be an integer amount in cents")
        value = int(stripped)
    if not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer amount in cents")
    if value < 0 or (value == 0 and not allow_zero):
        raise ValidationError(f"{field} must be {'non-negative' if allow_zero else 'positive'}")
    if value > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} exceeds the maximum allowed amount")
    return value
