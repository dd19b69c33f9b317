"""Shared parsing utilities for provider record mappers.

Centralises the date and number parsing that every provider integration
needs: ISO 8601 strings, Unix timestamps and decimal amounts.
"""

from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation


def parse_unix_timestamp(value) -> datetime | None:
    """Parse a Unix epoch timestamp to a UTC-aware datetime.

    Args:
        value: An int, float, string-encoded number, or None.

    Returns:
        A timezone-aware UTC datetime, or None if the value cannot be parsed.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (ValueError, TypeError, OSError):
        return None


def parse_date(value) -> date | None:
    """Parse a provider date value to a calendar date.

    Accepts ``date``/``datetime`` objects, ISO 8601 strings (date-only or
    with a time part, ``Z`` suffix allowed) and Unix timestamps.

    Returns:
        The parsed date, or None if the value cannot be parsed.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        parsed = parse_unix_timestamp(value)
        return parsed.date() if parsed else None

    value_str = str(value).strip()
    if value_str.isdigit():
        parsed = parse_unix_timestamp(value_str)
        return parsed.date() if parsed else None
    if value_str.endswith("Z"):
        value_str = value_str[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(value_str).date()
    except ValueError:
        pass
    try:
        return date.fromisoformat(value_str[:10])
    except ValueError:
        return None


def parse_decimal(value) -> Decimal | None:
    """Parse a number or numeric string to Decimal without float rounding.

    Returns:
        The Decimal value, or None for missing/unparseable input.
    """
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not result.is_finite():
        return None
    return result
