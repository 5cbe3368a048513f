"""Shared parsing utilities for aggregator payloads.

Centralises the date/time and amount parsing that the Salt Edge mapping
code needs: ISO 8601 strings, date-only strings, numbers that may arrive
as JSON floats or strings.
"""

from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation


def parse_iso_datetime(value) -> datetime | None:
    """Parse an ISO 8601 string (or date/datetime object) to a UTC-aware datetime.

    Handles the formats the aggregator produces:
    - Z suffix ("2024-01-15T10:30:00Z")
    - Standard ISO with colon offset ("2024-06-28T18:42:46+02:00")
    - Date-only strings ("2024-06-28")
    - datetime/date objects passed through with UTC normalisation

    Args:
        value: A string, date, datetime, or None.

    Returns:
        A timezone-aware UTC datetime, or None if the value cannot be parsed.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)

    value_str = str(value)

    # Handle Z suffix: "2024-01-15T10:30:00Z" -> "2024-01-15T10:30:00+00:00"
    if value_str.endswith("Z"):
        value_str = value_str[:-1] + "+00:00"

    try:
        dt = datetime.fromisoformat(value_str)
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    except (ValueError, TypeError):
        return None


def parse_iso_date(value) -> date | None:
    """Parse a ``YYYY-MM-DD`` string (or a longer ISO timestamp) to a date.

    Args:
        value: A string, date, datetime, or None.

    Returns:
        The calendar date, or None if the value cannot be parsed.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except (ValueError, TypeError):
        return None


def to_decimal(value) -> Decimal | None:
    """Convert a JSON number or numeric string to Decimal, None on failure.

    Floats go through ``str()`` so ``12.3`` becomes ``Decimal("12.3")``
    rather than its binary expansion.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
