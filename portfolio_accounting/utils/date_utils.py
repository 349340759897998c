# portfolio_accounting/utils/date_utils.py
"""
Date utility functions shared by the normalizer, the solver and the loader.

Ledger collaborators hand over a mix of date and datetime values; the
engine works on calendar dates only.
"""

from datetime import date, datetime


def to_date(value: date | datetime) -> date:
    """
    Reduce a date or datetime to its calendar date.

    Args:
        value: date or datetime (timezone-aware datetimes keep their own day)

    Returns:
        The calendar date

    Raises:
        TypeError: If value is not a date/datetime
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raise TypeError(f"Expected date or datetime, got {type(value).__name__}")


def days_between(start: date, end: date) -> int:
    """
    Signed number of calendar days from start to end.

    >>> days_between(date(2024, 1, 1), date(2024, 1, 31))
    30
    """
    return (end - start).days
