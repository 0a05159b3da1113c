"""
Validators and helpers shared between modules
"""
import re
from datetime import datetime, timezone
from typing import Optional


def validate_phone(phone: str) -> bool:
    """
    Validate an international phone number.
    Accepts digits with common separators and an optional leading '+',
    between 7 and 15 digits (E.164).
    """
    cleaned = re.sub(r'[\s\-\(\)\.]', '', phone)
    return re.match(r'^\+?[0-9]{7,15}$', cleaned) is not None


def format_phone(phone: str) -> str:
    """Strip separators from a phone number."""
    return re.sub(r'[\s\-\(\)\.]', '', phone)


def validate_currency_code(code: str) -> bool:
    """ISO 4217: three letters."""
    return re.match(r'^[A-Za-z]{3}$', code or '') is not None


def validate_hex_color(color: str) -> bool:
    """Hex color as #RRGGBB."""
    return re.match(r'^#[0-9A-Fa-f]{6}$', color or '') is not None


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Return the datetime in UTC.
    Some backends (SQLite) return naive datetimes.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
