"""Time and calendar utilities."""

import calendar
from datetime import date, datetime, timezone


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def utc_today() -> date:
    """Return the current UTC calendar date."""
    return utc_now().date()


def add_months(year: int, month: int, offset: int) -> tuple[int, int]:
    """Shift (year, month) by offset months."""
    index = year * 12 + (month - 1) + offset
    return index // 12, index % 12 + 1


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """Return the first day of the month and the first day of the following month."""
    next_year, next_month = add_months(year, month, 1)
    return date(year, month, 1), date(next_year, next_month, 1)


def due_date_in_month(year: int, month: int, due_day: int) -> date:
    """
    Rent due date for a month.

    Days past the end of a short month clamp to its last day, so a lease due
    on the 31st is due on Feb 28/29.
    """
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(due_day, last_day))


def period_key(due: date) -> str:
    """Calendar-month key ("YYYY-MM") of a date."""
    return f"{due.year:04d}-{due.month:02d}"
