# Overview: Shared input validation helpers and the common client-error exceptions.

from __future__ import annotations

from typing import Any

# Maximum money amount: $9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (plan limit, delete while active)."""


def require_fields(payload: dict | None, *names: str) -> dict:
    """Return the payload, raising ValidationError if any named field is missing or blank."""
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    missing = [n for n in names if payload.get(n) is None or (isinstance(payload.get(n), str) and not payload[n].strip())]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    return payload


def coerce_cents(value: Any, field: str, *, allow_none: bool = False) -> int | None:
    """
    Strict integer money parsing.

    Accepts ints and plain digit strings. Rejects floats, booleans,
    scientific notation, decimals and negative amounts.
    """
    if value is None:
        if allow_none:
            return None
        raise ValidationError(f"{field} is required")

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")

    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            value = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")

    if not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer")
    if value < 0:
        raise ValidationError(f"{field} must be >= 0")
    if value > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT_CENTS}")
    return value


def coerce_positive_int(value: Any, field: str) -> int:
    """Quantities and ids: strictly positive integers."""
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValidationError(f"{field} must be a positive integer")
    try:
        number = int(value)
    except ValueError:
        raise ValidationError(f"{field} must be a positive integer")
    if number <= 0:
        raise ValidationError(f"{field} must be a positive integer")
    return number


def clean_text(value: Any, field: str, *, max_length: int, required: bool = False) -> str | None:
    """Trim a text field; blank becomes None unless required."""
    if value is None:
        if required:
            raise ValidationError(f"{field} is required")
        return None
    text = str(value).strip()
    if not text:
        if required:
            raise ValidationError(f"{field} cannot be blank")
        return None
    if len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text
