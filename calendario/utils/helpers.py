"""Shared parsing helpers for the calendar blueprint and record stores.

parse_date:     lenient, returns None on bad input
parse_date_input / parse_time_input: strict, raise ValueError on bad input
parse_id_list:  comma-separated or list of ints
utc_today:      current calendar day in UTC (status classification reference)
"""
from datetime import date, datetime, time, timezone


def parse_date(value):
    """Parse a date string (ISO or DD/MM/YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD/MM/YYYY (Spanish format)
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d/%m/%Y").date()
    except (ValueError, TypeError):
        return None


def parse_date_input(value):
    """Parse a date, raising ValueError on bad input.  Empty input → None."""
    if value is None or value == "":
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise ValueError("Invalid date format. Use YYYY-MM-DD or DD/MM/YYYY.")
    return parsed


def parse_time_input(value):
    """Parse ``HH:MM`` or ``HH:MM:SS``, raising ValueError on bad input.

    Empty input → None (no deadline time).
    """
    if value is None or value == "":
        return None
    if isinstance(value, time):
        return value
    text = str(value).strip()
    for fmt in ("%H:%M", "%H:%M:%S"):
        try:
            return datetime.strptime(text, fmt).time()
        except ValueError:
            continue
    raise ValueError("Invalid time format. Use HH:MM.")


def parse_id_list(value) -> list[int]:
    """Accept ``"1,2,3"`` or ``[1, "2", 3]``; raise ValueError on non-ints."""
    if value is None or value == "":
        return []
    if isinstance(value, str):
        value = [v for v in value.split(",") if v.strip()]
    try:
        return [int(v) for v in value]
    except (TypeError, ValueError) as exc:
        raise ValueError("Ids must be integers") from exc


def utc_today() -> date:
    """Today's calendar day in UTC, independent of the host timezone."""
    return datetime.now(timezone.utc).date()
