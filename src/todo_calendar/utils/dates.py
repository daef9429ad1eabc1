"""Calendar day utilities.

Lists are pinned to a single calendar day. Days are carried around as
``YYYY-MM-DD`` strings so that placing a list on the grid is an exact string
comparison and never depends on time zones or time-of-day.
"""

import calendar
from datetime import date, datetime
from typing import List, Optional, Tuple, Union

from ..errors import ValidationError


DAY_FORMAT = "%Y-%m-%d"
MONTH_FORMAT = "%Y-%m"

DayLike = Union[str, date, datetime]


def today() -> str:
    """Return the local calendar day as a day string."""
    return date.today().strftime(DAY_FORMAT)


def normalize_day(value: DayLike) -> str:
    """Convert a date, datetime or ISO string to a ``YYYY-MM-DD`` day string.

    Timestamps are truncated to their calendar day, which lets rows coming
    back from the backend as ``2024-06-01T00:00:00+00:00`` compare equal to
    ``2024-06-01``.

    Args:
        value: Day to normalize

    Returns:
        Day string

    Raises:
        ValidationError: If the value cannot be interpreted as a day
    """
    if isinstance(value, datetime):
        return value.date().strftime(DAY_FORMAT)
    if isinstance(value, date):
        return value.strftime(DAY_FORMAT)
    if not isinstance(value, str):
        raise ValidationError(f"Expected a calendar day, got {type(value).__name__}")

    text = value.strip()
    try:
        return datetime.strptime(text[:10], DAY_FORMAT).strftime(DAY_FORMAT)
    except ValueError:
        raise ValidationError(f"Invalid calendar day: {value!r} (expected YYYY-MM-DD)")


def parse_day(value: DayLike) -> date:
    """Parse a day-like value into a ``date``."""
    return datetime.strptime(normalize_day(value), DAY_FORMAT).date()


def parse_month(value: Optional[str] = None) -> Tuple[int, int]:
    """Parse ``YYYY-MM`` into ``(year, month)``; defaults to the current month."""
    if value is None:
        current = date.today()
        return current.year, current.month
    try:
        parsed = datetime.strptime(value.strip(), MONTH_FORMAT)
    except ValueError:
        raise ValidationError(f"Invalid month: {value!r} (expected YYYY-MM)")
    return parsed.year, parsed.month


def format_month(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def shift_month(year: int, month: int, offset: int) -> Tuple[int, int]:
    """Move ``offset`` months forward (or backward when negative)."""
    index = year * 12 + (month - 1) + offset
    return index // 12, index % 12 + 1


def month_range(year: int, month: int) -> Tuple[str, str]:
    """Return the first and last day of a month as day strings (inclusive)."""
    last = calendar.monthrange(year, month)[1]
    return (
        date(year, month, 1).strftime(DAY_FORMAT),
        date(year, month, last).strftime(DAY_FORMAT),
    )


def month_grid(year: int, month: int, first_day_of_week: int = 6) -> List[List[Optional[str]]]:
    """Build the weeks of a month for display.

    Args:
        year: Calendar year
        month: Calendar month (1-12)
        first_day_of_week: 0=Monday ... 6=Sunday

    Returns:
        List of weeks; each week holds seven day strings, with None for
        cells that fall outside the month
    """
    cal = calendar.Calendar(firstweekday=first_day_of_week)
    weeks = []
    for week in cal.monthdatescalendar(year, month):
        weeks.append([
            d.strftime(DAY_FORMAT) if d.month == month else None
            for d in week
        ])
    return weeks


def weekday_names(first_day_of_week: int = 6) -> List[str]:
    """Abbreviated weekday headers starting at ``first_day_of_week``."""
    names = list(calendar.day_abbr)
    return [names[(first_day_of_week + i) % 7] for i in range(7)]
