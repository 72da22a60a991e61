"""
Input validation helpers shared by services.

All helpers raise ValidationError (400) and never touch the database, so they
can run before any role/branch check that needs a fetched record.
"""

from __future__ import annotations

import re
from typing import Any, Iterable

from .errors import ValidationError


# Maximum price: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999
MAX_QUANTITY = 10_000


def require_payload(payload: Any) -> dict:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def reject_unknown_fields(payload: dict, allowed: Iterable[str]) -> None:
    allowed = set(allowed)
    for key in payload.keys():
        if key not in allowed:
            raise ValidationError(f"Field not allowed: {key}")


def parse_strict_int(value: Any, field: str) -> int:
    """
    Integers only: rejects bools, floats, decimals and scientific notation.

    Accepts int or a string of plain digits (with optional leading minus).
    """
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def parse_id(value: Any, field: str, *, label: str | None = None) -> int:
    """Required positive integer id; the message uses label when given."""
    if value is None or value == "":
        raise ValidationError(f"{label or field} is required")
    parsed = parse_strict_int(value, field)
    if parsed < 1:
        raise ValidationError(f"{field} must be a positive integer")
    return parsed


def parse_price_cents(value: Any, field: str) -> int:
    if value is None:
        raise ValidationError(f"{field} is required")
    price = parse_strict_int(value, field)
    if price < 0:
        raise ValidationError(f"{field} must be >= 0")
    if price > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_PRICE_CENTS} ({MAX_PRICE_CENTS / 100:,.2f})")
    return price


def parse_quantity(value: Any) -> int:
    """Line quantity; omitted means 1."""
    if value is None:
        return 1
    quantity = parse_strict_int(value, "quantity")
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1")
    if quantity > MAX_QUANTITY:
        raise ValidationError(f"Quantity cannot exceed {MAX_QUANTITY}")
    return quantity


def parse_choice(value: Any, choices: Iterable[str], label: str) -> str:
    choices = tuple(choices)
    if value not in choices:
        raise ValidationError(f"{label} must be one of: {', '.join(choices)}")
    return value


def parse_bool(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ValidationError(f"{field} must be a boolean")


def clean_text(value: Any, field: str, *, max_length: int | None = None) -> str | None:
    """Trimmed string or None for blank/null input."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    stripped = value.strip()
    if not stripped:
        return None
    if max_length and len(stripped) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return stripped


def require_text(value: Any, field: str, *, label: str | None = None, max_length: int | None = None) -> str:
    cleaned = clean_text(value, field, max_length=max_length)
    if cleaned is None:
        raise ValidationError(f"{label or field} is required")
    return cleaned


# Phone numbers are stored as typed; only the digit count is checked
MIN_PHONE_DIGITS = 7
MAX_PHONE_DIGITS = 20
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def clean_phone(value: Any) -> str | None:
    phone = clean_text(value, "contact_number", max_length=32)
    if phone is None:
        return None
    digits = sum(ch.isdigit() for ch in phone)
    if digits < MIN_PHONE_DIGITS or digits > MAX_PHONE_DIGITS:
        raise ValidationError(f"Phone number must be between {MIN_PHONE_DIGITS} and {MAX_PHONE_DIGITS} digits")
    return phone


def clean_email(value: Any) -> str | None:
    email = clean_text(value, "email", max_length=255)
    if email is None:
        return None
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Invalid email format")
    return email


def parse_year(value: Any, *, latest: int) -> int | None:
    """Model year between 1900 and latest (next year's models are sold early)."""
    if value is None or value == "":
        return None
    year = parse_strict_int(value, "year")
    if year < 1900 or year > latest:
        raise ValidationError("Invalid year")
    return year
