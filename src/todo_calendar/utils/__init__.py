"""Utility helpers for the todo calendar."""

from .dates import (
    normalize_day,
    parse_day,
    parse_month,
    format_month,
    shift_month,
    month_range,
    month_grid,
    weekday_names,
    today,
)

__all__ = [
    "normalize_day",
    "parse_day",
    "parse_month",
    "format_month",
    "shift_month",
    "month_range",
    "month_grid",
    "weekday_names",
    "today",
]
