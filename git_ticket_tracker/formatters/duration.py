"""Date and duration formatting utilities."""

from typing import Any


def format_timestamp(value: Any) -> str:
    """
    Format a datetime as HH:MM:SS, or pass other values through as text.

    Args:
        value: Datetime object or anything else

    Returns:
        Formatted time string
    """
    if hasattr(value, "strftime"):
        return value.strftime("%H:%M:%S")
    return str(value)


def format_minutes(minutes: int) -> str:
    """
    Format a number of minutes as "1h 30m".

    Args:
        minutes: Whole minutes

    Returns:
        Formatted duration string
    """
    hours, rest = divmod(int(minutes), 60)
    if hours and rest:
        return f"{hours}h {rest}m"
    if hours:
        return f"{hours}h"
    return f"{rest}m"
