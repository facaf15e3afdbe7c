"""
Datetime utility functions.
"""

from datetime import datetime
from typing import Union
import pytz


def utcnow() -> datetime:
    """
    Get current UTC datetime using pytz.UTC.

    Returns:
        Current UTC datetime with pytz timezone information
    """
    return datetime.now(pytz.UTC)


def format_session_date(date_input: Union[str, datetime]) -> str:
    """
    Format a date for session naming in M/D/YYYY format (no leading zeros).

    Args:
        date_input: Date as ISO string ("2026-01-21") or datetime object

    Returns:
        Formatted date string like "1/21/2026"

    Examples:
        >>> format_session_date("2026-01-21")
        "1/21/2026"
    """
    if isinstance(date_input, datetime):
        return f"{date_input.month}/{date_input.day}/{date_input.year}"

    if not isinstance(date_input, str):
        raise ValueError(f"Expected string or datetime, got {type(date_input)}")

    date_str = date_input.strip()
    try:
        parsed = datetime.fromisoformat(date_str)
    except ValueError:
        # Leave unparseable input untouched
        return date_str
    return f"{parsed.month}/{parsed.day}/{parsed.year}"
